"""
Backup catalog: listing and pruning archives in the backup directory.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ValidationError

from koharu.backup.models import (
    BACKUP_FILE_EXTENSION,
    BACKUP_FILE_PREFIX,
    BackupInfo,
    Manifest,
)
from koharu.backup.operations import (
    is_path_within_dir,
    is_valid_backup_file,
    read_archive_manifest,
)
from koharu.errors import InvalidArgumentError
from koharu.logging import get_logger

logger = get_logger(__name__)


class DeleteResult(BaseModel):
    """Outcome of deleting backup archives."""

    deleted_count: int = 0
    freed_space: int = 0
    skipped_count: int = 0


class BackupCatalog:
    """Archives stored in one backup directory."""

    def __init__(self, backup_dir: Path) -> None:
        self.backup_dir = backup_dir

    def list_backups(self) -> list[BackupInfo]:
        """Return the stored backups, newest first."""
        if not self.backup_dir.is_dir():
            return []

        paths = [
            path
            for path in self.backup_dir.glob(f"{BACKUP_FILE_PREFIX}*{BACKUP_FILE_EXTENSION}")
            if path.is_file()
        ]
        paths.sort(key=lambda p: (p.stat().st_mtime, p.name), reverse=True)
        return [self._describe(path) for path in paths]

    def latest(self) -> BackupInfo | None:
        """Return the newest backup, if any."""
        backups = self.list_backups()
        return backups[0] if backups else None

    def _describe(self, path: Path) -> BackupInfo:
        info = BackupInfo(name=path.name, path=str(path), size=path.stat().st_size)
        content = read_archive_manifest(path)
        if content is None:
            return info
        try:
            manifest = Manifest.model_validate(json.loads(content))
        except (ValueError, ValidationError):
            logger.debug("Unreadable manifest", extra={"path": str(path)})
            return info
        return info.model_copy(
            update={"mode": manifest.mode, "created_at": manifest.created_at}
        )

    def delete(self, paths: Iterable[Path | str]) -> DeleteResult:
        """
        Delete backup archives.

        Paths outside the backup directory and files that are not backup
        archives are skipped, not deleted.
        """
        result = DeleteResult()
        for raw in paths:
            path = Path(raw)
            if not is_path_within_dir(path, self.backup_dir) or not is_valid_backup_file(path):
                logger.warning("Skipping non-backup path", extra={"path": str(path)})
                result.skipped_count += 1
                continue
            try:
                size = path.stat().st_size
                path.unlink()
            except OSError as e:
                logger.warning(
                    "Failed to delete backup", extra={"path": str(path), "error": str(e)}
                )
                result.skipped_count += 1
                continue
            result.deleted_count += 1
            result.freed_space += size

        logger.info(
            "Deleted backups",
            extra={"deleted": result.deleted_count, "freed": result.freed_space},
        )
        return result

    def clean(self, keep: int) -> DeleteResult:
        """
        Delete all but the newest `keep` backups.

        Raises:
            InvalidArgumentError: If keep is negative.
        """
        if keep < 0:
            raise InvalidArgumentError(
                "keep must be zero or greater", details={"keep": keep}
            )
        return self.delete(info.path for info in self.list_backups()[keep:])
