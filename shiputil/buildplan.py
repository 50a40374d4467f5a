import os

from typing import List
from typing import Optional
from typing import Sequence

from shiputil.config import PackageConfig
from shiputil.config import Variant

# always passed; the engine's editor binaries are expected to be built already, and we do our own VCS handling
FIXED_ARGS = [
    "-nocompileeditor",
    "-nop4",
    "-build",
    "-cook",
    "-stage",
    "-archive",
]

class BuildInvocation:
    variant = None
    args = None
    output_dir = None

    def __init__(self, variant: Variant, args: List[str], output_dir: str):
        self.variant = variant
        self.args = args
        self.output_dir = output_dir

    def __repr__(self):
        return f"BuildInvocation({self.variant.name!r}, {self.args!r})"

def output_dir_for(config: PackageConfig, version: str, variant: Variant) -> str:
    return os.path.join(config.output_dir, str(version), variant.name)

def build_invocation(variant: Variant, version, config: PackageConfig, maps: Sequence[str], project_file: Optional[str] = None) -> BuildInvocation:
    output_dir = output_dir_for(config, version, variant)

    args = ["BuildCookRun"]
    if project_file is not None:
        args += [f"-project={project_file}"]

    args += FIXED_ARGS
    args += [
        f"-archivedirectory={output_dir}",
        "-package",
        f"-clientconfig={variant.configuration}",
        f"-platform={variant.platform}",
        "-utf8output",
    ]

    if config.use_pak:
        args += ["-pak"]

    if maps:
        args += [f"-Map={'+'.join(maps)}"]

    if variant.cultures:
        args += [f"-CookCultures={'+'.join(variant.cultures)}"]

    # verbatim and last so they can override anything above
    args += variant.extra_args

    return BuildInvocation(variant, args, output_dir)
