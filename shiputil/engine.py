import configparser
import json
import os
import platform
import psutil
import subprocess

from typing import Callable
from typing import Dict
from typing import List
from typing import Optional

from shiputil.buildplan import BuildInvocation
from shiputil.errors import BuildToolFailureError
from shiputil.errors import EngineNotFoundError
from shiputil.errors import PackageError

LAUNCHER_MANIFEST = os.path.join(os.environ.get("PROGRAMDATA", "C:\\ProgramData"), "Epic", "UnrealEngineLauncher", "LauncherInstalled.dat")
INSTALL_INI = os.path.join(os.path.expanduser("~"), ".config", "Epic", "UnrealEngine", "Install.ini")

EDITOR_PROCESS_NAMES = ("unrealeditor", "ue4editor")

def build_tool_path(engine_dir: str) -> str:
    script = "RunUAT.bat" if platform.system() == "Windows" else "RunUAT.sh"
    return os.path.join(engine_dir, "Engine", "Build", "BatchFiles", script)

def is_engine_dir(path: Optional[str]) -> bool:
    return path is not None and os.path.isfile(build_tool_path(path))

def _registry_candidates(association: str) -> List[str]:
    # windows only
    import winreg

    candidates = []
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, f"SOFTWARE\\EpicGames\\Unreal Engine\\{association}") as key:
            candidates.append(winreg.QueryValueEx(key, "InstalledDirectory")[0])
    except OSError:
        pass

    # source builds register themselves by GUID
    try:
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, "SOFTWARE\\Epic Games\\Unreal Engine\\Builds") as key:
            candidates.append(winreg.QueryValueEx(key, association)[0])
    except OSError:
        pass

    return candidates

def launcher_candidates(association: str, manifest: str = LAUNCHER_MANIFEST) -> List[str]:
    if not os.path.isfile(manifest):
        return []

    with open(manifest, "r", encoding = "utf-8") as f:
        try:
            installs = json.load(f).get("InstallationList", [])
        except json.JSONDecodeError:
            print(f"ENGINE: ignoring unreadable launcher manifest {manifest}")
            return []

    return [install["InstallLocation"] for install in installs if install.get("AppName") == f"UE_{association}" and "InstallLocation" in install]

def install_ini_candidates(association: str, ini: str = INSTALL_INI) -> List[str]:
    if not os.path.isfile(ini):
        return []

    parser = configparser.ConfigParser(interpolation = None)
    parser.optionxform = str    # keep key case as written
    parser.read(ini, encoding = "utf-8")
    if not parser.has_section("Installations"):
        return []

    candidates = []
    for name, path in parser.items("Installations"):
        if name.strip("{}").lower() == association.strip("{}").lower():
            candidates.append(path)
    return candidates

def locate_engine(association: str, explicit: Optional[str] = None, environ: Optional[Dict[str, str]] = None, manifest: str = LAUNCHER_MANIFEST, ini: str = INSTALL_INI) -> str:
    if environ is None:
        environ = os.environ

    if explicit is not None:
        if not is_engine_dir(explicit):
            raise EngineNotFoundError(f"{explicit} doesn't look like an engine installation (no {build_tool_path(explicit)})")
        return os.path.abspath(explicit)

    candidates = []
    if environ.get("UE_ENGINE_DIR"):
        candidates.append(environ["UE_ENGINE_DIR"])

    if association:
        if platform.system() == "Windows":
            candidates += _registry_candidates(association)
            candidates += launcher_candidates(association, manifest)
        else:
            candidates += install_ini_candidates(association, ini)
            if platform.system() == "Darwin":
                candidates.append(f"/Users/Shared/Epic Games/UE_{association}")

    for candidate in candidates:
        if is_engine_dir(candidate):
            print(f"ENGINE: using {candidate}")
            return os.path.abspath(candidate)

    raise EngineNotFoundError(f"Can't find an engine installation for `{association or 'unspecified'}`; pass --engine or set UE_ENGINE_DIR")

def run_command(command: List[str], cwd: str) -> int:
    return subprocess.call(command, cwd = cwd)

def run_build_tool(engine_dir: str, invocation: BuildInvocation, cwd: str, dry_run: bool = False, runner: Callable[[List[str], str], int] = run_command) -> None:
    command = [build_tool_path(engine_dir)] + invocation.args
    if dry_run:
        print(f"DRYRUN: BUILD: {subprocess.list2cmdline(command)}")
        return

    print(f"BUILD: {invocation.variant.name}: {subprocess.list2cmdline(command)}")
    try:
        returncode = runner(command, cwd)
    except OSError as e:
        # missing or non-executable build script
        raise BuildToolFailureError(invocation.variant.name, output = f"couldn't run {command[0]}: {e}") from e
    if returncode != 0:
        raise BuildToolFailureError(invocation.variant.name, returncode)

def _is_project_editor(process, project_file: str) -> bool:
    name = (process.info.get("name") or "").lower()
    if not name.startswith(EDITOR_PROCESS_NAMES):
        return False
    cmdline = " ".join(process.info.get("cmdline") or []).lower()
    return os.path.basename(project_file).lower() in cmdline

def close_editor(project_file: str, dry_run: bool = False, timeout: float = 10) -> int:
    """Shuts down editors that have this project open. Returns how many were found."""
    editors = []
    for process in psutil.process_iter(["name", "cmdline"]):
        try:
            if _is_project_editor(process, project_file):
                editors.append(process)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

    for process in editors:
        if dry_run:
            print(f"DRYRUN: EDITOR: would close {process.info['name']} (pid {process.pid})")
            continue
        print(f"EDITOR: closing {process.info['name']} (pid {process.pid})")
        try:
            process.terminate()
        except psutil.NoSuchProcess:
            pass

    if not dry_run and editors:
        _, alive = psutil.wait_procs(editors, timeout = timeout)
        for process in alive:
            print(f"EDITOR: killing unresponsive pid {process.pid}")
            try:
                process.kill()
            except psutil.NoSuchProcess:
                pass

    return len(editors)

def browse(path: str, dry_run: bool = False) -> None:
    if dry_run:
        print(f"DRYRUN: would open {path}")
        return

    try:
        if platform.system() == "Windows":
            os.startfile(path)
        elif platform.system() == "Darwin":
            subprocess.call(["open", path])
        else:
            subprocess.call(["xdg-open", path])
    except OSError as e:
        raise PackageError(f"Couldn't open {path}: {e}") from e
