"""
Backup archive creation.

BackupArchiver copies the configured project paths into a staging directory,
writes manifest.json next to them and compresses the result into a
timestamped gzip tarball in the backup directory. The archive only appears
under its final name once it is complete.
"""

from __future__ import annotations

import json
import os
import tarfile
import tempfile
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from koharu.backup.models import (
    BACKUP_FILE_EXTENSION,
    BACKUP_FILE_PREFIX,
    MANIFEST_FILENAME,
    TEMP_DIR_PREFIX,
    BackupItem,
    BackupMode,
    BackupOutput,
    BackupResult,
    Manifest,
    ManifestItem,
    select_items,
)
from koharu.backup.operations import (
    copy_path,
    create_archive,
    ensure_directory,
    safe_remove_directory,
)
from koharu.errors import BackupError, FailedPreconditionError
from koharu.logging import get_logger

if TYPE_CHECKING:
    from koharu.config import AppConfig

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _unknown_version() -> str:
    return "unknown"


class BackupArchiver:
    """
    Creates backup archives of configured project paths.

    Attributes:
        project_root: Project root the item sources are relative to.
        backup_dir: Directory archives are written to.
        items: Configured backup items.
    """

    def __init__(
        self,
        project_root: Path,
        backup_dir: Path,
        items: Sequence[BackupItem],
        *,
        version_provider: Callable[[], str] = _unknown_version,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.project_root = project_root
        self.backup_dir = backup_dir
        self.items = list(items)
        self._version_provider = version_provider
        self._clock = clock
        self._progress_callbacks: list[Callable[[list[BackupResult]], None]] = []

    @classmethod
    def from_config(cls, config: AppConfig) -> BackupArchiver:
        """Build an archiver for the configured project."""
        from koharu.updates.version import read_local_version

        return cls(
            config.project_root,
            config.backup_dir,
            config.backup.items,
            version_provider=partial(
                read_local_version,
                config.project_root,
                config.upstream.version_file,
                config.upstream.version_field,
            ),
        )

    def add_progress_callback(
        self, callback: Callable[[list[BackupResult]], None]
    ) -> None:
        """Add a callback notified after each item is processed."""
        self._progress_callbacks.append(callback)

    def _notify_progress(self, results: list[BackupResult]) -> None:
        for callback in self._progress_callbacks:
            try:
                callback(list(results))
            except Exception as e:
                logger.warning(f"Backup progress callback failed: {e}")

    def _archive_path(self, timestamp: str) -> Path:
        path = self.backup_dir / f"{BACKUP_FILE_PREFIX}{timestamp}{BACKUP_FILE_EXTENSION}"
        counter = 1
        while path.exists():
            path = self.backup_dir / (
                f"{BACKUP_FILE_PREFIX}{timestamp}-{counter}{BACKUP_FILE_EXTENSION}"
            )
            counter += 1
        return path

    def backup(self, mode: BackupMode = BackupMode.FULL) -> BackupOutput:
        """
        Create a backup archive.

        Items whose source does not exist are skipped and reported as such.
        The staging directory is removed on every exit path, and a failure
        never leaves a partial archive under the final name.

        Args:
            mode: BASIC for required items only, FULL for every item.

        Returns:
            BackupOutput with per-item results and the archive path.

        Raises:
            BackupError: If copying or compressing fails.
        """
        mode = BackupMode(mode)
        try:
            ensure_directory(self.backup_dir)
        except FailedPreconditionError as e:
            raise BackupError(
                f"Unable to create backup directory: {self.backup_dir}",
                details={"backup_dir": str(self.backup_dir), **e.details},
            ) from e

        now = self._clock()
        timestamp = now.strftime(TIMESTAMP_FORMAT)
        archive_path = self._archive_path(timestamp)
        partial_path = archive_path.with_name(f".{archive_path.name}.partial")

        try:
            staging_dir = Path(
                tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX, dir=self.backup_dir)
            )
        except OSError as e:
            raise BackupError(
                f"Unable to create staging directory: {e}",
                details={"backup_dir": str(self.backup_dir), "error": str(e)},
            ) from e

        results: list[BackupResult] = []
        current: BackupItem | None = None
        completed = False

        logger.info(
            "Starting backup",
            extra={"mode": mode.value, "archive": str(archive_path)},
        )

        try:
            for current in select_items(self.items, mode):
                src = self.project_root / current.src
                if src.exists():
                    copy_path(src, staging_dir / current.dest)
                    results.append(BackupResult(item=current, success=True, skipped=False))
                else:
                    logger.debug("Skipping missing backup item", extra={"src": current.src})
                    results.append(BackupResult(item=current, success=False, skipped=True))
                self._notify_progress(results)
            current = None

            manifest = Manifest(
                version=self._version_provider(),
                created_at=now.isoformat(),
                mode=mode,
                items=[
                    ManifestItem(src=result.item.src, dest=result.item.dest)
                    for result in results
                ],
            )
            (staging_dir / MANIFEST_FILENAME).write_text(
                json.dumps(manifest.model_dump(mode="json", by_alias=True), indent=2),
                encoding="utf-8",
            )

            create_archive(partial_path, staging_dir)
            os.replace(partial_path, archive_path)
            completed = True
        except (OSError, tarfile.TarError) as e:
            failed = current.src if current is not None else None
            raise BackupError(
                f"Backup failed: {e}",
                details={"item": failed, "archive": str(archive_path), "error": str(e)},
            ) from e
        finally:
            # No .partial file survives any exit, interrupts included.
            if not completed:
                partial_path.unlink(missing_ok=True)
            safe_remove_directory(staging_dir)

        file_size = archive_path.stat().st_size
        logger.info(
            "Backup created",
            extra={"archive": str(archive_path), "size": file_size, "mode": mode.value},
        )
        return BackupOutput(
            results=results,
            backup_file=str(archive_path),
            file_size=file_size,
            timestamp=timestamp,
            manifest=manifest,
        )
