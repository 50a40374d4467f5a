import os
import warnings

from typing import List
from typing import Optional

from shiputil.archive import load_aws_credentials
from shiputil.archive import upload_archives
from shiputil.archive import zip_variant
from shiputil.buildplan import BuildInvocation
from shiputil.buildplan import build_invocation
from shiputil.config import PackageConfig
from shiputil.engine import browse
from shiputil.engine import close_editor
from shiputil.engine import run_build_tool
from shiputil.errors import DirtyWorkingCopyError
from shiputil.errors import UnknownVariantWarning
from shiputil.maps import select_maps
from shiputil.prof import Context
from shiputil.variants import resolve_variants
from shiputil.vcs import VcsAdapter
from shiputil.version import VersionStore
from shiputil.version import decide_version

class ReleaseOptions:
    major = False
    minor = False
    patch = False
    hotfix = False
    version = None
    variants = None
    vcscommit = False
    forcetag = False
    test = False
    dryrun = False
    browse = False
    close_editor = True
    output_s3 = None
    aws_credentials = None

    def __init__(self, **kwargs):
        for key, value in kwargs.items():
            if not hasattr(ReleaseOptions, key):
                raise TypeError(f"unknown release option `{key}`")
            setattr(self, key, value)

class Release:
    """One packaging run, from clean check to zips.

    States run in a fixed order: CleanCheck, VersionDecision, VersionCommit,
    Tag, BuildVariant (one per variant), Archive (one per zipped variant),
    Upload, Browse. Any exception ends the run where it happened; nothing
    already done gets rolled back.
    """
    options = None
    config = None
    vcs = None
    store = None
    engine_dir = None
    project_file = None
    build_runner = None

    # results
    version = None
    display_version = None
    committed = False
    tag = None
    variants = None
    unmatched = None
    maps = None
    invocations = None
    archives = None

    def __init__(self, options: ReleaseOptions, config: PackageConfig, vcs: VcsAdapter, engine_dir: str, project_file: Optional[str] = None, store: Optional[VersionStore] = None, build_runner = run_build_tool):
        self.options = options
        self.config = config
        self.vcs = vcs
        self.engine_dir = engine_dir
        self.project_file = project_file
        self.store = store if store is not None else VersionStore(config.source_dir, config.version_text_file)
        self.build_runner = build_runner

        self.invocations = []
        self.archives = []

    def check_clean(self) -> None:
        if self.options.test:
            print("VCS: test build, skipping clean check")
            return

        try:
            self.vcs.ensure_clean()
        except DirtyWorkingCopyError as e:
            if not self.options.dryrun:
                raise
            print(f"DRYRUN: ignoring dirty working copy: {e}")

    def should_tag(self, changed: bool) -> bool:
        if not (self.vcs.supports_tags and self.options.vcscommit):
            return False
        return changed or self.options.forcetag

    def build_variant(self, variant) -> BuildInvocation:
        invocation = build_invocation(variant, self.display_version, self.config, self.maps, self.project_file)
        self.build_runner(self.engine_dir, invocation, self.config.source_dir, dry_run = self.options.dryrun)
        return invocation

    def run(self) -> 'Release':
        options = self.options

        with Context("CleanCheck"):
            self.check_clean()

        with Context("VersionDecision"):
            current = self.store.current_version()
            print(f"VERSION: current version is {current}")
            change = decide_version(current,
                major = options.major,
                minor = options.minor,
                patch = options.patch,
                hotfix = options.hotfix,
                explicit = options.version)

        changed = change is not None
        if changed:
            with Context("VersionCommit"):
                self.version = self.vcs.update_version(self.store, change, commit = options.vcscommit)
                self.committed = options.vcscommit
        else:
            self.version = current

        self.display_version = f"{self.version}-test" if options.test else str(self.version)
        print(f"VERSION: building {self.display_version}")

        if self.should_tag(changed):
            with Context("Tag"):
                self.tag = f"v{self.display_version}"
                self.vcs.tag(self.tag, force = options.forcetag)

        self.variants, self.unmatched = resolve_variants(options.variants, self.config.variants, self.config.default_variants)
        for name in self.unmatched:
            warnings.warn(f"No variant named `{name}` in configuration, skipping it", UnknownVariantWarning)
        if not self.variants:
            print("VARIANTS: nothing selected, no builds to run")

        self.maps = select_maps(self.config.source_dir, self.config)

        if self.variants and options.close_editor and self.project_file is not None:
            close_editor(self.project_file, dry_run = options.dryrun)

        # one at a time, they share the engine's intermediate files
        for variant in self.variants:
            with Context(f"BuildVariant {variant.name}"):
                self.invocations.append(self.build_variant(variant))

        for invocation in self.invocations:
            if not invocation.variant.zip:
                continue
            with Context(f"Archive {invocation.variant.name}"):
                self.archives += zip_variant(
                    invocation.output_dir,
                    self.config.zip_dir,
                    self.config.target,
                    self.display_version,
                    invocation.variant.name,
                    dry_run = options.dryrun)

        if options.output_s3 is not None and self.archives:
            with Context("Upload"):
                credentials = load_aws_credentials(options.aws_credentials) if options.aws_credentials else None
                upload_archives(self.archives, options.output_s3, credentials = credentials, dry_run = options.dryrun)

        if options.browse:
            with Context("Browse"):
                browse(os.path.join(self.config.output_dir, self.display_version), dry_run = options.dryrun)

        return self

    def summary(self) -> List[str]:
        lines = [f"Version: {self.display_version}"]
        if self.tag is not None:
            lines.append(f"Tag: {self.tag}")
        lines += [f"Built: {invocation.variant.name} -> {invocation.output_dir}" for invocation in self.invocations]
        lines += [f"Zip: {path}" for path in self.archives]
        return lines
