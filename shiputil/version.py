import os
import shutil
import tempfile

from typing import Callable
from typing import List
from typing import NamedTuple
from typing import Optional

from shiputil.errors import ConfigError
from shiputil.errors import ConflictingFlagsError
from shiputil.errors import InvalidFieldError

FIELDS = ("major", "minor", "patch", "hotfix")

VERSION_INI = os.path.join("Config", "DefaultGame.ini")
VERSION_SECTION = "/Script/EngineSettings.GeneralProjectSettings"
VERSION_KEY = "ProjectVersion"

class SemanticVersion(NamedTuple):
    major: int = 1
    minor: int = 0
    patch: int = 0
    hotfix: int = 0

    @classmethod
    def parse(cls, text: str) -> 'SemanticVersion':
        parts = text.strip().split(".")
        if not 1 <= len(parts) <= 4 or not all(part.isascii() and part.isdigit() for part in parts):
            raise ConfigError(f"`{text}` is not a valid version (expected up to four dot-separated numbers)")
        numbers = [int(part) for part in parts] + [0] * (4 - len(parts))
        return cls(*numbers)

    def bumped(self, field: str) -> 'SemanticVersion':
        if field not in FIELDS:
            raise InvalidFieldError(f"`{field}` is not a version field (expected one of {', '.join(FIELDS)})")

        # bump the requested field, keep everything above it, zero everything below it
        index = FIELDS.index(field)
        numbers = list(self[:index]) + [self[index] + 1] + [0] * (len(FIELDS) - index - 1)
        return SemanticVersion(*numbers)

    def __str__(self):
        return ".".join(str(number) for number in self)

def _umask() -> int:
    # the only way to read it is to set it
    mask = os.umask(0)
    os.umask(mask)
    return mask

def _atomic_write(path: str, text: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok = True)

    # write beside the target and swap it in; readers see the old file or the new one, never half of either
    fd, temppath = tempfile.mkstemp(dir = directory or ".", prefix = ".version-", suffix = ".tmp")
    try:
        with os.fdopen(fd, "w", encoding = "utf-8", newline = "") as f:
            f.write(text)
        # mkstemp creates owner-only files; keep what the target had, or what a plain open() would give
        if os.path.exists(path):
            shutil.copymode(path, temppath)
        else:
            os.chmod(temppath, 0o644 & ~_umask())
        os.replace(temppath, path)
    except BaseException:
        if os.path.exists(temppath):
            os.remove(temppath)
        raise

class VersionStore:
    project_dir = None
    ini_path = None
    text_path = None

    def __init__(self, project_dir: str, text_file: str = os.path.join("Content", "Version.txt")):
        self.project_dir = os.path.abspath(project_dir)
        self.ini_path = os.path.join(self.project_dir, VERSION_INI)
        self.text_path = os.path.join(self.project_dir, text_file)

    def artifact_paths(self) -> List[str]:
        return [self.ini_path, self.text_path]

    def _read_lines(self) -> List[str]:
        if not os.path.isfile(self.ini_path):
            return []
        with open(self.ini_path, "r", encoding = "utf-8-sig", newline = "") as f:
            return f.read().splitlines(keepends = True)

    def current_version(self) -> SemanticVersion:
        section = None
        for line in self._read_lines():
            stripped = line.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                section = stripped[1:-1]
            elif section == VERSION_SECTION and stripped.startswith(f"{VERSION_KEY}="):
                return SemanticVersion.parse(stripped[len(VERSION_KEY) + 1:])

        # nothing recorded yet; this is the engine's default project version
        return SemanticVersion()

    def _render(self, version: SemanticVersion) -> str:
        lines = self._read_lines()
        newline = "\r\n" if lines and lines[0].endswith("\r\n") else "\n"
        entry = f"{VERSION_KEY}={version}{newline}"

        section = None
        section_end = None
        for index, line in enumerate(lines):
            stripped = line.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                if section == VERSION_SECTION:
                    break
                section = stripped[1:-1]
                if section == VERSION_SECTION:
                    section_end = index + 1
            elif section == VERSION_SECTION:
                if stripped.startswith(f"{VERSION_KEY}="):
                    lines[index] = entry
                    return "".join(lines)
                if stripped:
                    section_end = index + 1

        if section_end is not None:
            if not lines[section_end - 1].endswith(("\n", "\r")):
                lines[section_end - 1] += newline
            lines.insert(section_end, entry)
        else:
            if lines and not lines[-1].endswith(("\n", "\r")):
                lines[-1] += newline
            if lines and lines[-1].strip():
                lines.append(newline)
            lines += [f"[{VERSION_SECTION}]{newline}", entry]

        return "".join(lines)

    def _read_raw(self, path: str) -> Optional[bytes]:
        if not os.path.isfile(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def _restore(self, path: str, original: Optional[bytes]) -> None:
        if original is None:
            if os.path.exists(path):
                os.remove(path)
            return
        with open(path, "wb") as f:
            f.write(original)

    def set_version(self, version: SemanticVersion, simulate: bool = False, quiet: bool = False) -> SemanticVersion:
        """Writes `version` to the ini and the text companion, both or neither.

        With `simulate` nothing is written and the version is returned as if it had been;
        `quiet` suppresses the dry-run line for callers that only want the resulting number.
        """
        if simulate:
            if not quiet:
                print(f"DRYRUN: VERSION: would write {version} to {self.ini_path} and {self.text_path}")
            return version

        original = self._read_raw(self.ini_path)
        _atomic_write(self.ini_path, self._render(version))
        try:
            _atomic_write(self.text_path, f"{version}\n")
        except BaseException:
            print(f"VERSION: couldn't write {self.text_path}, restoring {self.ini_path}")
            self._restore(self.ini_path, original)
            raise
        print(f"VERSION: wrote {version}")
        return version

    def increment(self, field: str, simulate: bool = False, quiet: bool = False) -> SemanticVersion:
        return self.set_version(self.current_version().bumped(field), simulate = simulate, quiet = quiet)

# A version change is applied twice by some VCS backends (once as a quiet preview, once for real), so it's kept as a callable.
VersionChange = Callable[..., SemanticVersion]

def decide_version(current: SemanticVersion, major: bool = False, minor: bool = False, patch: bool = False, hotfix: bool = False, explicit: Optional[str] = None) -> Optional[VersionChange]:
    """Turns the version flags into a change to apply, or None when the version stays as it is.

    Raises ConflictingFlagsError when more than one increment is requested or an
    explicit version is combined with an increment. An explicit version equal to
    `current` counts as keeping the version.
    """
    requested = [field for field, flag in zip(FIELDS, (major, minor, patch, hotfix)) if flag]

    if len(requested) > 1:
        raise ConflictingFlagsError(f"Only one version increment may be requested at a time, got {', '.join('--' + field for field in requested)}")

    if explicit is not None:
        if requested:
            raise ConflictingFlagsError(f"--version cannot be combined with --{requested[0]}")

        target = SemanticVersion.parse(explicit)
        if target == current:
            print(f"VERSION: {target} is already current, keeping it")
            return None

        return lambda store, simulate, quiet = False: store.set_version(target, simulate = simulate, quiet = quiet)

    if requested:
        field = requested[0]
        return lambda store, simulate, quiet = False: store.increment(field, simulate = simulate, quiet = quiet)

    return None
