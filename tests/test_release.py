"""
Tests for the release flow: clean check, version decision, VCS, builds, zips.
"""

import os

import pytest

from shiputil.errors import BuildToolFailureError
from shiputil.errors import ConflictingFlagsError
from shiputil.errors import DirtyWorkingCopyError
from shiputil.errors import UnknownVariantWarning
from shiputil.prof import Context
from shiputil.prof import stages
from shiputil.release import Release
from shiputil.release import ReleaseOptions
from shiputil.vcs import GitVcs
from shiputil.vcs import NoVcs
from shiputil.vcs import PerforceVcs
from shiputil.version import SemanticVersion
from shiputil.version import VersionStore


@pytest.fixture
def release(config, engine_dir, build_tool, project_dir):
    """Builds a Release against the sample project; vcs defaults to none."""
    def _make(vcs=None, build_runner=None, **options):
        options.setdefault("close_editor", False)
        return Release(
            ReleaseOptions(**options),
            config,
            vcs if vcs is not None else NoVcs(project_dir),
            engine_dir,
            project_file=os.path.join(project_dir, "Game.uproject"),
            build_runner=build_runner or build_tool)
    return _make


def zip_names(result):
    return sorted(os.path.basename(path) for path in result.archives)


class TestReleaseBasics:
    """Default runs with no version control."""

    def test_default_variants(self, release, build_tool):
        result = release().run()
        assert [invocation.variant.name for invocation in build_tool.invocations] == ["Win64Dev"]
        assert result.display_version == "1.2.0.0"
        assert zip_names(result) == ["Game_1.2.0.0_Win64Dev.zip"]
        assert all(os.path.isfile(path) for path in result.archives)

    def test_stage_order(self, release):
        with Context("test run") as block:
            release(minor=True).run()
        assert stages(block) == [
            "CleanCheck",
            "VersionDecision",
            "VersionCommit",
            "BuildVariant Win64Dev",
            "Archive Win64Dev",
        ]

    def test_requested_variants_follow_config_order(self, release, build_tool):
        result = release(variants=["LinuxShip", "Win64Dev"]).run()
        assert [invocation.variant.name for invocation in build_tool.invocations] == ["Win64Dev", "LinuxShip"]
        # LinuxShip isn't zipped
        assert zip_names(result) == ["Game_1.2.0.0_Win64Dev.zip"]

    def test_maps_passed_to_build(self, release, build_tool):
        release().run()
        assert "-Map=Level1+Menu" in build_tool.invocations[0].args

    def test_unknown_variant_warns_and_continues(self, release, build_tool):
        with pytest.warns(UnknownVariantWarning, match="Bogus"):
            result = release(variants=["Bogus", "Win64Ship"]).run()
        assert result.unmatched == ["Bogus"]
        assert [invocation.variant.name for invocation in build_tool.invocations] == ["Win64Ship"]

    def test_no_variants_no_builds(self, release, build_tool):
        with pytest.warns(UnknownVariantWarning):
            result = release(variants=["Bogus"]).run()
        assert build_tool.invocations == []
        assert result.archives == []

    def test_multiple_outputs_zip_separately(self, release, make_build_tool):
        tool = make_build_tool(outputs=("Win", "Linux"))
        result = release(build_runner=tool).run()
        assert zip_names(result) == ["Game_1.2.0.0_Win64Dev_Linux.zip", "Game_1.2.0.0_Win64Dev_Win.zip"]

    def test_version_bump_written_before_build(self, release, project_dir, build_tool):
        store = VersionStore(project_dir)
        seen = []

        def runner(engine_dir, invocation, cwd, dry_run=False):
            seen.append(store.current_version())
            build_tool(engine_dir, invocation, cwd, dry_run)

        result = release(build_runner=runner, patch=True).run()
        assert seen == [SemanticVersion(1, 2, 1, 0)]
        assert result.version == SemanticVersion(1, 2, 1, 0)
        assert "1.2.1.0" in build_tool.invocations[0].output_dir


class TestReleaseFailures:
    """Fatal errors stop the run where they happen."""

    def test_conflicting_flags_before_mutation(self, release, project_dir, git_runner, build_tool):
        vcs = GitVcs(project_dir, runner=git_runner)
        with pytest.raises(ConflictingFlagsError):
            release(vcs=vcs, major=True, minor=True, vcscommit=True).run()
        assert git_runner.subcommands() == ["status"]
        assert VersionStore(project_dir).current_version() == SemanticVersion(1, 2, 0, 0)
        assert build_tool.invocations == []

    def test_explicit_and_increment_conflict(self, release):
        with pytest.raises(ConflictingFlagsError):
            release(version="2.0.0.0", hotfix=True).run()

    def test_dirty_working_copy(self, release, project_dir, make_runner, build_tool):
        runner = make_runner({("status", "--porcelain"): "?? junk.txt\n"})
        with pytest.raises(DirtyWorkingCopyError):
            release(vcs=GitVcs(project_dir, runner=runner)).run()
        assert build_tool.invocations == []

    def test_dirty_working_copy_in_dry_run_continues(self, release, project_dir, make_runner, build_tool):
        runner = make_runner({("status", "--porcelain"): "?? junk.txt\n"})
        release(vcs=GitVcs(project_dir, dry_run=True, runner=runner), dryrun=True).run()
        assert len(build_tool.invocations) == 1

    def test_build_failure_halts_remaining_variants(self, release, project_dir, make_build_tool):
        tool = make_build_tool(fail_variant="Win64Dev")
        with pytest.raises(BuildToolFailureError):
            release(build_runner=tool, variants=["Win64Dev", "Win64Ship"], minor=True).run()
        assert [invocation.variant.name for invocation in tool.invocations] == ["Win64Dev"]
        # no rollback
        assert VersionStore(project_dir).current_version() == SemanticVersion(1, 3, 0, 0)
        assert not os.path.exists(os.path.join(project_dir, "Saved", "Zips"))


class TestReleaseGit:
    """Commit and tag rules with git."""

    def events(self, git_runner, build_tool):
        log = []

        def runner(command, cwd):
            log.append(command[1])
            return git_runner(command, cwd)

        def builder(engine_dir, invocation, cwd, dry_run=False):
            log.append("build")
            build_tool(engine_dir, invocation, cwd, dry_run)

        return log, runner, builder

    def test_bump_commits_then_tags_then_builds(self, release, project_dir, git_runner, build_tool):
        log, runner, builder = self.events(git_runner, build_tool)
        result = release(vcs=GitVcs(project_dir, runner=runner), build_runner=builder, minor=True, vcscommit=True).run()
        assert log == ["status", "add", "add", "commit", "tag", "build"]
        assert result.tag == "v1.3.0.0"
        assert git_runner.commands[-1][0] == ["git", "tag", "v1.3.0.0"]

    def test_no_tag_without_commit(self, release, project_dir, git_runner):
        result = release(vcs=GitVcs(project_dir, runner=git_runner), minor=True).run()
        assert "commit" not in git_runner.subcommands()
        assert "tag" not in git_runner.subcommands()
        assert result.tag is None

    def test_explicit_current_version_is_kept(self, release, project_dir, git_runner):
        result = release(vcs=GitVcs(project_dir, runner=git_runner), version="1.2.0.0", vcscommit=True).run()
        assert git_runner.subcommands() == ["status"]
        assert result.tag is None
        assert not os.path.exists(VersionStore(project_dir).text_path)

    def test_force_tag_without_change(self, release, project_dir, git_runner):
        result = release(vcs=GitVcs(project_dir, runner=git_runner), vcscommit=True, forcetag=True).run()
        assert git_runner.subcommands() == ["status", "tag"]
        assert git_runner.commands[-1][0] == ["git", "tag", "-f", "v1.2.0.0"]
        assert result.tag == "v1.2.0.0"

    def test_test_build_skips_clean_check(self, release, project_dir, make_runner):
        runner = make_runner({("status", "--porcelain"): " M dirty.cpp\n"})
        result = release(vcs=GitVcs(project_dir, runner=runner), test=True).run()
        assert runner.subcommands() == []
        assert result.display_version == "1.2.0.0-test"
        assert zip_names(result) == ["Game_1.2.0.0-test_Win64Dev.zip"]

    def test_dry_run_changes_nothing(self, release, project_dir, git_runner, build_tool):
        vcs = GitVcs(project_dir, dry_run=True, runner=git_runner)
        result = release(vcs=vcs, major=True, vcscommit=True, dryrun=True).run()
        assert result.version == SemanticVersion(2, 0, 0, 0)
        assert result.tag == "v2.0.0.0"
        assert git_runner.subcommands() == ["status"]
        assert VersionStore(project_dir).current_version() == SemanticVersion(1, 2, 0, 0)
        assert len(build_tool.invocations) == 1
        assert result.archives == []
        assert not os.path.exists(os.path.join(project_dir, "Saved"))


class TestReleasePerforce:
    """The perforce backend goes through the same flow."""

    def test_bump_and_submit_without_tag(self, release, project_dir, fake_p4):
        vcs = PerforceVcs(fake_p4, project_dir, error=fake_p4.Error)
        result = release(vcs=vcs, hotfix=True, vcscommit=True).run()
        assert fake_p4.names() == ["opened", "change", "edit", "add", "submit"]
        assert result.version == SemanticVersion(1, 2, 0, 1)
        assert result.tag is None
