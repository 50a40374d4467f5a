import boto3
import json
import os
import zipfile

from typing import Dict
from typing import List
from typing import Optional

from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError

from shiputil.errors import ArchiveError

def archive_name(target: str, version: str, variant: str, subdir: Optional[str] = None) -> str:
    name = f"{target}_{version}_{variant}"
    if subdir is not None:
        name += f"_{subdir}"
    return name + ".zip"

def output_subdirs(output_dir: str) -> List[str]:
    if not os.path.isdir(output_dir):
        return []
    return sorted(entry for entry in os.listdir(output_dir) if os.path.isdir(os.path.join(output_dir, entry)))

def zip_directory(source: str, destination: str) -> None:
    """Zips `source` with its own folder name as the top-level entry."""
    parent = os.path.dirname(os.path.abspath(source))
    temppath = destination + ".partial"
    try:
        with zipfile.ZipFile(temppath, "w", compression = zipfile.ZIP_DEFLATED) as archive:
            for dirpath, dirnames, filenames in os.walk(source):
                dirnames.sort()
                for filename in sorted(filenames):
                    path = os.path.join(dirpath, filename)
                    archive.write(path, os.path.relpath(path, parent))
        os.replace(temppath, destination)
    except OSError as e:
        if os.path.exists(temppath):
            os.remove(temppath)
        raise ArchiveError(f"Could not write {destination}: {e}") from e

def zip_variant(output_dir: str, zip_dir: str, target: str, version: str, variant: str, dry_run: bool = False) -> List[str]:
    """One zip per immediate subdirectory of the variant's output.

    The subdirectory only shows up in the zip name when there's more than one of them.
    """
    subdirs = output_subdirs(output_dir)
    if not subdirs:
        if dry_run:
            print(f"DRYRUN: ZIP: would zip the output of {variant} from {output_dir}")
            return []
        raise ArchiveError(f"Nothing to zip for variant {variant}: {output_dir} has no output folders")

    results = []
    for subdir in subdirs:
        name = archive_name(target, version, variant, subdir if len(subdirs) > 1 else None)
        destination = os.path.join(zip_dir, name)

        if dry_run:
            print(f"DRYRUN: ZIP: {os.path.join(output_dir, subdir)} -> {destination}")
        else:
            print(f"ZIP: {os.path.join(output_dir, subdir)} -> {destination}")
            os.makedirs(zip_dir, exist_ok = True)
            zip_directory(os.path.join(output_dir, subdir), destination)

        results.append(destination)

    return results

def load_aws_credentials(path: str) -> Dict[str, str]:
    with open(path, "r") as f:
        credentials = json.load(f)
    for key in ("aws_access_key_id", "aws_secret_access_key"):
        if key not in credentials:
            raise ArchiveError(f"{path} is missing `{key}`")
    return credentials

def upload_archives(paths: List[str], bucket: str, credentials: Optional[Dict[str, str]] = None, dry_run: bool = False, client = None) -> List[str]:
    """Uploads each zip to `bucket`, keyed by file name. Returns the keys."""
    keys = []
    if not paths:
        return keys

    if client is None and not dry_run:
        if credentials is not None:
            client = boto3.client('s3',
                aws_access_key_id = credentials["aws_access_key_id"],
                aws_secret_access_key = credentials["aws_secret_access_key"])
        else:
            client = boto3.client('s3')

    for path in paths:
        key = os.path.basename(path)
        if dry_run:
            print(f"DRYRUN: S3: {path} -> s3://{bucket}/{key}")
        else:
            print(f"S3: {path} -> s3://{bucket}/{key}")
            try:
                with open(path, "rb") as f:
                    client.upload_fileobj(f, bucket, key)
            except (BotoCoreError, ClientError, OSError) as e:
                raise ArchiveError(f"Upload of {path} to s3://{bucket}/{key} failed: {e}") from e
        keys.append(key)

    return keys
