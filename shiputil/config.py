import json
import os
import shlex

from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from shiputil.errors import ConfigError

CONFIG_FILENAME = "packageconfig.json"
DEFAULT_VERSION_TEXT_FILE = os.path.join("Content", "Version.txt")
VCS_BACKENDS = ("git", "perforce", "none")

def _require(data: Dict, key: str, where: str):
    if key not in data:
        raise ConfigError(f"{where} is missing required key `{key}`")
    return data[key]

def _string_list(data: Dict, key: str, where: str) -> List[str]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{where}: `{key}` must be a list of strings")
    return list(value)

class Variant:
    name = None
    configuration = "Development"
    platform = None
    cultures = None
    extra_args = None
    zip = True

    def __init__(self, name: str, platform: str, configuration: str = "Development", cultures: Optional[List[str]] = None, extra_args: Optional[List[str]] = None, zip: bool = True):
        self.name = name
        self.platform = platform
        self.configuration = configuration
        self.cultures = list(cultures or [])
        self.extra_args = list(extra_args or [])
        self.zip = zip

    @classmethod
    def from_json(cls, data: Dict, index: int) -> 'Variant':
        where = f"Variant #{index + 1}"
        if not isinstance(data, dict):
            raise ConfigError(f"{where} must be an object")

        name = _require(data, "Name", where)
        where = f"Variant `{name}`"

        # ExtraBuildArguments can be a single shell-style string or an explicit list
        extra = data.get("ExtraBuildArguments")
        if extra is None:
            extra = []
        elif isinstance(extra, str):
            extra = shlex.split(extra)
        elif not isinstance(extra, list):
            raise ConfigError(f"{where}: `ExtraBuildArguments` must be a string or a list")

        return cls(
            name = name,
            platform = _require(data, "Platform", where),
            configuration = data.get("Configuration", "Development"),
            cultures = _string_list(data, "Cultures", where),
            extra_args = [str(arg) for arg in extra],
            zip = bool(data.get("Zip", True)))

    def __repr__(self):
        return f"Variant({self.name!r}, {self.configuration}, {self.platform})"

class PackageConfig:
    source_dir = None
    target = None
    output_dir = None
    zip_dir = None
    use_pak = True
    variants = None
    default_variants = None
    cook_all_maps = True
    maps_included = None
    maps_excluded = None
    vcs = None
    version_text_file = DEFAULT_VERSION_TEXT_FILE

    def __init__(self, source_dir: str, data: Dict):
        where = CONFIG_FILENAME
        self.source_dir = os.path.abspath(source_dir)

        self.target = _require(data, "Target", where)

        # directories are relative to the project folder unless absolute already
        self.output_dir = os.path.join(self.source_dir, _require(data, "OutputDir", where))
        self.zip_dir = os.path.join(self.source_dir, data["ZipDir"]) if data.get("ZipDir") else self.output_dir

        self.use_pak = bool(data.get("UsePak", True))

        variants = _require(data, "Variants", where)
        if not isinstance(variants, list):
            raise ConfigError(f"{where}: `Variants` must be a list")
        self.variants = [Variant.from_json(variant, index) for index, variant in enumerate(variants)]

        seen = set()
        for variant in self.variants:
            if variant.name in seen:
                raise ConfigError(f"{where}: variant `{variant.name}` is declared more than once")
            seen.add(variant.name)

        if "DefaultVariants" in data:
            self.default_variants = _string_list(data, "DefaultVariants", where)
        else:
            self.default_variants = [variant.name for variant in self.variants]

        self.cook_all_maps = bool(data.get("CookAllMaps", True))
        self.maps_included = _string_list(data, "MapsIncluded", where)
        self.maps_excluded = _string_list(data, "MapsExcluded", where)

        self.vcs = data.get("Vcs")
        if self.vcs is not None and self.vcs not in VCS_BACKENDS:
            raise ConfigError(f"{where}: `Vcs` must be one of {', '.join(VCS_BACKENDS)}, not `{self.vcs}`")

        self.version_text_file = data.get("VersionTextFile", DEFAULT_VERSION_TEXT_FILE)

def load_config(source_dir: str) -> PackageConfig:
    path = os.path.join(source_dir, CONFIG_FILENAME)
    if not os.path.isfile(path):
        raise ConfigError(f"No {CONFIG_FILENAME} found in {os.path.abspath(source_dir)}")

    with open(path, "r", encoding = "utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    config = PackageConfig(source_dir, data)
    print(f"CONFIG: loaded {path} ({len(config.variants)} variants)")
    return config

def find_project_file(source_dir: str) -> str:
    candidates = sorted(name for name in os.listdir(source_dir) if name.lower().endswith(".uproject"))
    if len(candidates) == 0:
        raise ConfigError(f"No .uproject file in {os.path.abspath(source_dir)}")
    if len(candidates) > 1:
        raise ConfigError(f"More than one .uproject file in {os.path.abspath(source_dir)}: {', '.join(candidates)}")
    return os.path.join(os.path.abspath(source_dir), candidates[0])

def read_project(source_dir: str) -> Tuple[str, str, str]:
    """Returns (project name, engine association, path to the .uproject)."""
    path = find_project_file(source_dir)
    with open(path, "r", encoding = "utf-8-sig") as f:
        try:
            descriptor = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path} is not valid JSON: {e}") from e

    name = os.path.splitext(os.path.basename(path))[0]
    # blank association means the project lives inside an engine source tree
    association = descriptor.get("EngineAssociation", "")
    return name, association, path
