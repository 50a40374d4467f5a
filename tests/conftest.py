"""
Pytest configuration and shared fixtures.
"""

import json
import os
import platform

import pytest

from shiputil.config import PackageConfig
from shiputil.config import load_config


# =============================================================================
# PROJECT TREE FIXTURES
# =============================================================================

SAMPLE_CONFIG = {
    "Target": "Game",
    "OutputDir": "Saved/Packages",
    "ZipDir": "Saved/Zips",
    "UsePak": True,
    "DefaultVariants": ["Win64Dev"],
    "CookAllMaps": True,
    "MapsExcluded": ["TestMap"],
    "Vcs": "none",
    "Variants": [
        {"Name": "Win64Dev", "Platform": "Win64", "Configuration": "Development", "Zip": True},
        {"Name": "Win64Ship", "Platform": "Win64", "Configuration": "Shipping", "Cultures": ["en", "fr"], "Zip": True},
        {"Name": "LinuxShip", "Platform": "Linux", "Configuration": "Shipping", "ExtraBuildArguments": "-nodebuginfo -compressed", "Zip": False},
    ],
}

SAMPLE_INI = (
    "[/Script/EngineSettings.GeneralProjectSettings]\n"
    "ProjectID=0123456789ABCDEF\n"
    "ProjectName=Game\n"
    "ProjectVersion=1.2.0.0\n"
    "\n"
    "[/Script/Engine.GameSession]\n"
    "MaxPlayers=4\n"
)


def write_file(path, text=""):
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    with open(str(path), "w", encoding="utf-8") as f:
        f.write(text)
    return str(path)


@pytest.fixture
def project_dir(tmp_path):
    """A minimal Unreal project folder with config, version record and some maps."""
    write_file(tmp_path / "Game.uproject", json.dumps({"FileVersion": 3, "EngineAssociation": "5.3"}))
    write_file(tmp_path / "packageconfig.json", json.dumps(SAMPLE_CONFIG))
    write_file(tmp_path / "Config" / "DefaultGame.ini", SAMPLE_INI)
    write_file(tmp_path / "Content" / "Maps" / "Level1.umap")
    write_file(tmp_path / "Content" / "Maps" / "Menu.umap")
    write_file(tmp_path / "Content" / "Dev" / "TestMap.umap")
    write_file(tmp_path / "Content" / "Dev" / "Readme.txt", "not a map")
    return str(tmp_path)


@pytest.fixture
def config(project_dir):
    return load_config(project_dir)


@pytest.fixture
def make_config(tmp_path):
    """Builds a PackageConfig from overrides on top of the sample config."""
    def _make(**overrides):
        data = dict(SAMPLE_CONFIG)
        data.update(overrides)
        return PackageConfig(str(tmp_path), data)
    return _make


@pytest.fixture
def engine_dir(tmp_path):
    """A fake engine install containing only the build tool script."""
    root = tmp_path / "Engine_5.3"
    script = "RunUAT.bat" if platform.system() == "Windows" else "RunUAT.sh"
    write_file(root / "Engine" / "Build" / "BatchFiles" / script, "")
    return str(root)


# =============================================================================
# COLLABORATOR FAKES
# =============================================================================

class RecordingRunner:
    """Stands in for the git command runner; records every command and replays canned output."""

    def __init__(self, responses=None):
        self.commands = []
        self.responses = dict(responses or {})

    def __call__(self, command, cwd):
        self.commands.append((list(command), cwd))
        key = tuple(command[1:3])
        response = self.responses.get(key, "")
        if isinstance(response, Exception):
            raise response
        return response

    def subcommands(self):
        return [command[1] for command, _ in self.commands]


@pytest.fixture
def git_runner():
    return RecordingRunner({("status", "--porcelain"): ""})


@pytest.fixture
def make_runner():
    return RecordingRunner


class FakeP4Error(Exception):
    pass


class FakeP4:
    """Just enough of a P4Python connection for the perforce adapter."""

    Error = FakeP4Error

    def __init__(self, opened=None, depot_files=()):
        self.calls = []
        self.opened = list(opened or [])
        self.depot_files = set(depot_files)
        self.cwd = None
        self.exception_level = 2
        self.fail_on = None

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail_on == name:
            raise FakeP4Error(f"{name} failed")

    def run_opened(self):
        self._record("opened")
        return self.opened

    def save_change(self, spec):
        self._record("change", spec["Description"])
        return ["Change 1234 created."]

    def run_edit(self, *args):
        self._record("edit", *args)
        path = args[-1]
        if os.path.basename(path) in self.depot_files:
            return [{"depotFile": f"//depot/{os.path.basename(path)}", "action": "edit"}]
        return []

    def run_add(self, *args):
        self._record("add", *args)
        return [{"action": "add"}]

    def run_submit(self, *args):
        self._record("submit", *args)
        return [{"submittedChange": "1234"}]

    def names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_p4():
    return FakeP4(depot_files={"DefaultGame.ini"})


@pytest.fixture
def make_p4():
    return FakeP4


class FakeBuildTool:
    """Replaces the build tool runner; fabricates output folders instead of building."""

    def __init__(self, outputs=("Windows",), fail_variant=None):
        self.outputs = outputs
        self.fail_variant = fail_variant
        self.invocations = []

    def __call__(self, engine_dir, invocation, cwd, dry_run=False):
        from shiputil.errors import BuildToolFailureError

        self.invocations.append(invocation)
        if dry_run:
            return
        if invocation.variant.name == self.fail_variant:
            raise BuildToolFailureError(invocation.variant.name, 25)
        for output in self.outputs:
            write_file(os.path.join(invocation.output_dir, output, "Game.exe"), "binary")


@pytest.fixture
def build_tool():
    return FakeBuildTool()


@pytest.fixture
def make_build_tool():
    return FakeBuildTool
