"""
Filesystem and archive operations for backups.

This module provides low-level helpers shared by the archiver, the restore
engine and the backup catalog:
- Directory creation and removal
- Path containment checks for backup files
- gzip tarball creation, listing and validated extraction
"""

from __future__ import annotations

import shutil
import tarfile
from pathlib import Path, PurePosixPath

from koharu.backup.models import BACKUP_FILE_EXTENSION, MANIFEST_FILENAME
from koharu.errors import FailedPreconditionError, InvalidArgumentError
from koharu.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Directories
# =============================================================================


def ensure_directory(path: Path, *, parents: bool = True, mode: int = 0o755) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory.
        parents: If True, create parent directories as needed.
        mode: Directory permissions (default 0o755).

    Returns:
        The directory path.

    Raises:
        FailedPreconditionError: If directory cannot be created.
    """
    try:
        path.mkdir(parents=parents, mode=mode, exist_ok=True)
        return path
    except OSError as e:
        raise FailedPreconditionError(
            f"Failed to create directory: {path}",
            details={"path": str(path), "error": str(e)},
        ) from e


def safe_remove_directory(path: Path, *, ignore_errors: bool = True) -> bool:
    """
    Remove a directory and its contents.

    Args:
        path: Path to the directory to remove.
        ignore_errors: If True, log and ignore errors during removal.

    Returns:
        True if the directory was removed, False if it didn't exist or could
        not be removed.

    Raises:
        FailedPreconditionError: If removal fails and ignore_errors is False.
    """
    if not path.exists():
        return False

    try:
        shutil.rmtree(path)
    except OSError as e:
        if not ignore_errors:
            raise FailedPreconditionError(
                f"Failed to remove directory: {path}",
                details={"path": str(path), "error": str(e)},
            ) from e
        logger.warning(
            "Failed to remove directory", extra={"path": str(path), "error": str(e)}
        )
        return False

    logger.debug("Removed directory", extra={"path": str(path)})
    return True


def copy_path(src: Path, dest: Path) -> None:
    """Copy a file or directory tree to `dest`, creating parents and overwriting."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dest, dirs_exist_ok=True)
    else:
        shutil.copy2(src, dest)


# =============================================================================
# Path validation
# =============================================================================


def is_path_within_dir(target: Path, allowed_dir: Path) -> bool:
    """Whether `target` resolves to `allowed_dir` or a path below it."""
    return target.resolve().is_relative_to(allowed_dir.resolve())


def is_valid_backup_file(path: Path) -> bool:
    """Whether `path` is an existing regular file with the backup extension."""
    return path.name.endswith(BACKUP_FILE_EXTENSION) and path.is_file()


def validate_backup_file_path(path: Path | str, backup_dir: Path) -> Path:
    """
    Resolve and validate a backup archive path.

    Relative paths are tried against the current directory first and then
    against the backup directory, so bare file names work.

    Raises:
        InvalidArgumentError: If the path is outside the backup directory.
        FailedPreconditionError: If it is not an existing backup archive.
    """
    candidate = Path(path).expanduser()
    if not candidate.is_absolute() and not candidate.exists():
        candidate = backup_dir / candidate
    resolved = candidate.resolve()

    if not is_path_within_dir(resolved, backup_dir):
        raise InvalidArgumentError(
            f"Backup file is not in backup directory: {path}",
            details={"path": str(resolved), "backup_dir": str(backup_dir)},
        )
    if not is_valid_backup_file(resolved):
        raise FailedPreconditionError(
            f"Invalid backup file: {path}",
            details={"path": str(resolved)},
        )
    return resolved


# =============================================================================
# Archives
# =============================================================================


def normalize_member_name(name: str) -> str:
    """
    Validate an archive member name and return it without "./" prefixes.

    Raises:
        InvalidArgumentError: If the name contains a NUL byte, is absolute or
            traverses to a parent directory.
    """
    if "\0" in name:
        raise InvalidArgumentError(
            "Archive entry contains a null byte", details={"entry": name}
        )
    path = PurePosixPath(name)
    if path.is_absolute():
        raise InvalidArgumentError(
            f"Archive entry is an absolute path: {name}", details={"entry": name}
        )
    if ".." in path.parts:
        raise InvalidArgumentError(
            f"Archive entry contains parent traversal: {name}", details={"entry": name}
        )
    parts = [part for part in path.parts if part != "."]
    return "/".join(parts)


def list_archive(archive_path: Path, *, files_only: bool = False) -> list[str]:
    """
    List validated member names of a gzip tarball.

    Args:
        archive_path: Archive to read.
        files_only: Leave directory entries out.

    Raises:
        InvalidArgumentError: If a member is unsafe (see normalize_member_name)
            or is a link or special file.
        tarfile.TarError: If the archive is unreadable.
    """
    names = []
    with tarfile.open(archive_path, "r:gz") as tar:
        for member in tar.getmembers():
            name = normalize_member_name(member.name)
            if not (member.isfile() or member.isdir()):
                raise InvalidArgumentError(
                    f"Archive entry is not a regular file or directory: {member.name}",
                    details={"entry": member.name},
                )
            if name and not (files_only and member.isdir()):
                names.append(name)
    return names


def create_archive(archive_path: Path, source_dir: Path) -> None:
    """Compress the contents of `source_dir` into a gzip tarball."""
    with tarfile.open(archive_path, "w:gz") as tar:
        for child in sorted(source_dir.iterdir()):
            tar.add(child, arcname=child.name)


def extract_archive(archive_path: Path, dest_dir: Path) -> None:
    """
    Extract a gzip tarball after validating every member.

    Raises:
        InvalidArgumentError: If any member is unsafe.
        tarfile.TarError: If the archive is unreadable.
    """
    list_archive(archive_path)
    with tarfile.open(archive_path, "r:gz") as tar:
        tar.extractall(dest_dir, filter="data")


def read_archive_manifest(archive_path: Path) -> bytes | None:
    """Return the raw manifest.json bytes without extracting the archive."""
    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            for member in tar.getmembers():
                if member.isfile() and normalize_member_name(member.name) == MANIFEST_FILENAME:
                    handle = tar.extractfile(member)
                    if handle is None:
                        return None
                    with handle:
                        return handle.read()
    except (tarfile.TarError, OSError, InvalidArgumentError) as e:
        logger.debug(
            "Unable to read archive manifest",
            extra={"path": str(archive_path), "error": str(e)},
        )
    return None
