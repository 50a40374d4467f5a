import argparse
import os
import sys

from shiputil.config import VCS_BACKENDS
from shiputil.config import load_config
from shiputil.config import read_project
from shiputil.engine import locate_engine
from shiputil.errors import PackageError
from shiputil.prof import enable_dump
from shiputil.prof import prof
from shiputil.release import Release
from shiputil.release import ReleaseOptions
from shiputil.vcs import detect_backend
from shiputil.vcs import make_vcs

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog = "ueship",
        description = "Version, build, cook and package an Unreal project into one or more variants.",
        epilog = "Variants and output folders are configured in packageconfig.json next to the .uproject.")
    parser.add_argument("--src", help="Project folder containing the .uproject (default: current directory)", default=".")

    version = parser.add_argument_group('versioning (pick at most one)')
    version.add_argument("--major", help="Increment the major version", action="store_true")
    version.add_argument("--minor", help="Increment the minor version", action="store_true")
    version.add_argument("--patch", help="Increment the patch version", action="store_true")
    version.add_argument("--hotfix", help="Increment the hotfix version", action="store_true")
    version.add_argument("--version", help="Set the version explicitly (major.minor.patch.hotfix)")

    vcs = parser.add_argument_group('version control')
    vcs.add_argument("--vcs", help="Version control backend (default: from config, else git if there's a .git folder)", choices=VCS_BACKENDS)
    vcs.add_argument("--vcscommit", help="Commit (git) or submit (perforce) the version change", action="store_true")
    vcs.add_argument("--forcetag", help="Tag even if the version didn't change, moving an existing tag", action="store_true")

    p4info = parser.add_argument_group('p4 configuration (falls back to P4PORT, P4USER, P4CLIENT)')
    p4info.add_argument("--p4_server", help="Server name and port for p4")
    p4info.add_argument("--p4_username", help="Username for p4")
    p4info.add_argument("--p4_password", help="Password for p4")
    p4info.add_argument("--p4_workspace", help="Workspace name for p4")

    build = parser.add_argument_group('build')
    build.add_argument("--variants", help="Variants to build (default: DefaultVariants from config)", nargs="+")
    build.add_argument("--engine", help="Engine installation to use instead of looking it up")
    build.add_argument("--test", help="Non-release build: skip the clean check and mark the version `-test`", action="store_true")
    build.add_argument("--dryrun", help="Report every action instead of performing it", action="store_true")
    build.add_argument("--nocloseeditor", help="Leave a running editor for this project alone", action="store_true")
    build.add_argument("--browse", help="Open the output folder when done", action="store_true")

    s3 = parser.add_argument_group('upload')
    s3.add_argument("--output_s3", help="S3 bucket to upload the zips to")
    s3.add_argument("--aws_credentials", help="JSON file with aws_access_key_id and aws_secret_access_key (default: boto3's usual lookup)")

    return parser

@prof
def run(args: argparse.Namespace) -> Release:
    srcdir = os.path.abspath(args.src)

    config = load_config(srcdir)
    projectname, association, projectfile = read_project(srcdir)
    print(f"PROJECT: {projectname} (engine {association or 'source build'})")

    # everything that can fail without side effects happens before we touch the version
    enginedir = locate_engine(association, explicit = args.engine)

    backend = detect_backend(srcdir, requested = args.vcs, configured = config.vcs)
    p4settings = {}
    if backend == "perforce":
        p4settings = {
            "server": args.p4_server,
            "user": args.p4_username,
            "password": args.p4_password,
            "workspace": args.p4_workspace,
        }
    vcs = make_vcs(backend, srcdir, dry_run = args.dryrun, **p4settings)
    print(f"VCS: using {backend}")

    options = ReleaseOptions(
        major = args.major,
        minor = args.minor,
        patch = args.patch,
        hotfix = args.hotfix,
        version = args.version,
        variants = args.variants,
        vcscommit = args.vcscommit,
        forcetag = args.forcetag,
        test = args.test,
        dryrun = args.dryrun,
        browse = args.browse,
        close_editor = not args.nocloseeditor,
        output_s3 = args.output_s3,
        aws_credentials = args.aws_credentials)

    return Release(options, config, vcs, enginedir, project_file = projectfile).run()

def main(argv = None) -> int:
    args = build_parser().parse_args(argv)
    enable_dump()

    try:
        release = run(args)
    except PackageError as e:
        print(f"ERROR: {e}", file = sys.stderr)
        return e.exit_status

    print()
    for line in release.summary():
        print(line)
    print("SUCCESS!")
    return 0

if __name__ == "__main__":
    sys.exit(main())
