import os
import re
import subprocess

from typing import Callable
from typing import List
from typing import Optional

from shiputil.errors import DirtyWorkingCopyError
from shiputil.errors import VcsCommandError
from shiputil.version import SemanticVersion
from shiputil.version import VersionChange
from shiputil.version import VersionStore

def run_command(command: List[str], cwd: str) -> str:
    try:
        result = subprocess.run(command, cwd = cwd, capture_output = True, text = True)
    except OSError as e:
        # not installed, not on PATH, or not executable
        raise VcsCommandError(command, output = str(e)) from e
    if result.returncode != 0:
        raise VcsCommandError(command, result.returncode, result.stderr or result.stdout)
    return result.stdout

def version_message(version) -> str:
    return f"Version bump to {version}"

class VcsAdapter:
    """The four operations the release flow needs from version control.

    The orchestrator only ever calls ensure_clean(), update_version() and tag();
    update_version() is where stage_version_artifact() and commit() get sequenced
    around the actual version write, since backends disagree on that order.
    """
    name = None
    supports_tags = False
    root = None
    dry_run = False

    def __init__(self, root: str, dry_run: bool = False):
        self.root = os.path.abspath(root)
        self.dry_run = dry_run

    def ensure_clean(self) -> None:
        raise NotImplementedError

    def stage_version_artifact(self, path: str) -> None:
        raise NotImplementedError

    def commit(self, message: str) -> None:
        raise NotImplementedError

    def tag(self, name: str, force: bool = False) -> None:
        raise NotImplementedError

    def update_version(self, store: VersionStore, change: VersionChange, commit: bool) -> SemanticVersion:
        # single phase: write, stage, commit
        version = change(store, self.dry_run)
        for path in store.artifact_paths():
            self.stage_version_artifact(path)
        if commit:
            self.commit(version_message(version))
        return version

    def _relative(self, path: str) -> str:
        return os.path.relpath(os.path.abspath(path), self.root)

class NoVcs(VcsAdapter):
    name = "none"

    def ensure_clean(self) -> None:
        pass

    def stage_version_artifact(self, path: str) -> None:
        pass

    def commit(self, message: str) -> None:
        pass

    def tag(self, name: str, force: bool = False) -> None:
        pass

class GitVcs(VcsAdapter):
    name = "git"
    supports_tags = True
    runner = None
    staged = None

    def __init__(self, root: str, dry_run: bool = False, runner: Callable[[List[str], str], str] = run_command):
        super().__init__(root, dry_run)
        self.runner = runner
        self.staged = []

    def _git(self, *args: str) -> str:
        return self.runner(["git"] + list(args), self.root)

    def _mutate(self, *args: str) -> None:
        if self.dry_run:
            print(f"DRYRUN: git {' '.join(args)}")
            return
        print(f"GIT: git {' '.join(args)}")
        self._git(*args)

    def ensure_clean(self) -> None:
        # read-only, so this runs for real even in dry-run mode
        changes = self._git("status", "--porcelain").strip()
        if changes:
            raise DirtyWorkingCopyError(f"Working copy at {self.root} has uncommitted changes:\n{changes}")

    def stage_version_artifact(self, path: str) -> None:
        relative = self._relative(path)
        self._mutate("add", "--", relative)
        self.staged.append(relative)

    def commit(self, message: str) -> None:
        # limited to what we staged, in case the working copy wasn't clean (test mode)
        self._mutate("commit", "-m", message, "--", *self.staged)
        self.staged = []

    def tag(self, name: str, force: bool = False) -> None:
        if force:
            self._mutate("tag", "-f", name)
        else:
            self._mutate("tag", name)

class PerforceVcs(VcsAdapter):
    name = "perforce"
    p4 = None
    error = None
    changelist = None
    pending_add = None

    def __init__(self, p4, root: str, dry_run: bool = False, error = Exception):
        super().__init__(root, dry_run)
        self.p4 = p4
        self.error = error
        self.pending_add = []

        # every command runs relative to the project, not wherever we were launched from
        self.p4.cwd = self.root

    def _p4(self, method: str, *args):
        try:
            return getattr(self.p4, method)(*args)
        except self.error as e:
            raise VcsCommandError(["p4", method.removeprefix("run_")] + [str(arg) for arg in args], output = str(e)) from e

    def ensure_clean(self) -> None:
        opened = self._p4("run_opened")
        if opened:
            files = "\n".join(entry.get("depotFile", str(entry)) if isinstance(entry, dict) else str(entry) for entry in opened)
            raise DirtyWorkingCopyError(f"Workspace has files open for edit:\n{files}")

    def open_changelist(self, description: str) -> Optional[str]:
        if self.dry_run:
            print(f"DRYRUN: p4 change (new changelist: {description})")
            return None

        result = self._p4("save_change", {'Change': 'new', 'Description': description})[0]
        # p4 hands back a sentence, not a number
        match = re.search(r'Change (\d+) created', result)
        if match is None:
            raise VcsCommandError(["p4", "change"], output = f"unexpected response: {result}")
        self.changelist = match.group(1)
        print(f"P4: opened changelist {self.changelist}")
        return self.changelist

    def stage_version_artifact(self, path: str) -> None:
        if self.dry_run:
            print(f"DRYRUN: p4 edit {path}")
            return

        if not os.path.exists(path):
            # has to be added once it exists
            self.pending_add.append(path)
            return

        self.p4.exception_level = 1  # "not on client" is a warning, and means we need to add instead
        try:
            result = self._p4("run_edit", "-c", self.changelist, path)
        finally:
            self.p4.exception_level = 2
        if result:
            print(f"P4: checked out {path}")
        else:
            self.pending_add.append(path)

    def add_pending(self) -> None:
        for path in self.pending_add:
            self._p4("run_add", "-c", self.changelist, path)
            print(f"P4: added {path}")
        self.pending_add = []

    def commit(self, message: str) -> None:
        if self.dry_run:
            print(f"DRYRUN: p4 submit -c {self.changelist or 'new'} ({message})")
            return

        self._p4("run_submit", "-c", self.changelist)
        print(f"P4: submitted changelist {self.changelist}")

    def tag(self, name: str, force: bool = False) -> None:
        pass

    def update_version(self, store: VersionStore, change: VersionChange, commit: bool) -> SemanticVersion:
        # files are read-only until checked out, so work out the version first, check out, then write
        preview = change(store, True, quiet = True)
        print(f"P4: preparing version {preview}")
        message = version_message(preview)
        self.open_changelist(message)
        for path in store.artifact_paths():
            self.stage_version_artifact(path)

        version = change(store, self.dry_run)
        if not self.dry_run:
            self.add_pending()

        if commit:
            self.commit(message)
        elif self.changelist is not None:
            print(f"P4: leaving changelist {self.changelist} pending")
        return version

def connect_perforce(root: str, server: Optional[str] = None, user: Optional[str] = None, password: Optional[str] = None, workspace: Optional[str] = None, dry_run: bool = False) -> PerforceVcs:
    import P4

    p4 = P4.P4()
    if server is not None:
        p4.port = server
    if user is not None:
        p4.user = user
    if password is not None:
        p4.password = password
    if workspace is not None:
        p4.client = workspace

    try:
        p4.connect()
        if password is not None:
            p4.run_login()
    except P4.P4Exception as e:
        raise VcsCommandError(["p4", "login"], output = str(e)) from e

    print(f"P4: connected to {p4.port} as {p4.user} with {p4.client}")
    return PerforceVcs(p4, root, dry_run = dry_run, error = P4.P4Exception)

def detect_backend(root: str, requested: Optional[str] = None, configured: Optional[str] = None) -> str:
    if requested is not None:
        return requested
    if configured is not None:
        return configured
    if os.path.exists(os.path.join(root, ".git")):
        return "git"
    return "none"

def make_vcs(backend: str, root: str, dry_run: bool = False, **p4_settings) -> VcsAdapter:
    if backend == "git":
        return GitVcs(root, dry_run = dry_run)
    if backend == "perforce":
        return connect_perforce(root, dry_run = dry_run, **p4_settings)
    if backend == "none":
        return NoVcs(root, dry_run = dry_run)
    raise ValueError(f"unknown vcs backend `{backend}`")
