"""
Backup restore.

RestoreEngine unpacks a backup archive into a temporary directory, checks its
manifest and copies every item back to its project path. A restore is not
rolled back when an item fails: the archive itself is the rollback point.
"""

from __future__ import annotations

import json
import tarfile
import tempfile
from pathlib import Path

from pydantic import ValidationError

from koharu.backup.models import (
    MANIFEST_FILENAME,
    MANIFEST_NAME,
    Manifest,
    RestorePreviewItem,
    RestoreReport,
)
from koharu.backup.operations import (
    copy_path,
    extract_archive,
    list_archive,
    read_archive_manifest,
    validate_backup_file_path,
)
from koharu.errors import InvalidArgumentError, RestoreError
from koharu.logging import get_logger

logger = get_logger(__name__)

RESTORE_TEMP_PREFIX = "koharu-restore-"


def parse_manifest(content: str | bytes | None, archive: Path) -> Manifest:
    """
    Parse and validate manifest.json content.

    Raises:
        RestoreError: If the manifest is missing, corrupt or was written by
            another tool.
    """
    if content is None:
        raise RestoreError(
            f"Backup manifest is missing: {archive.name}",
            details={"archive": str(archive)},
        )
    try:
        manifest = Manifest.model_validate(json.loads(content))
    except (ValueError, ValidationError) as e:
        raise RestoreError(
            f"Backup manifest is corrupt: {archive.name}",
            details={"archive": str(archive), "error": str(e)},
        ) from e

    if manifest.name != MANIFEST_NAME:
        raise RestoreError(
            f"Unknown backup manifest name {manifest.name!r}; refusing to restore "
            f"an archive created by another tool",
            details={"archive": str(archive), "name": manifest.name},
        )
    return manifest


class RestoreEngine:
    """
    Restores backup archives onto the project tree.

    Attributes:
        project_root: Project root item sources are restored to.
        backup_dir: Directory archives must live in.
    """

    def __init__(self, project_root: Path, backup_dir: Path) -> None:
        self.project_root = project_root
        self.backup_dir = backup_dir

    def preview(self, archive_path: Path | str) -> list[RestorePreviewItem]:
        """
        List the project paths a restore would write, without writing.

        Returns:
            One entry per manifest item present in the archive, with the number
            of files it holds (1 for a single file).

        Raises:
            RestoreError: If the archive or its manifest is invalid.
        """
        path = validate_backup_file_path(archive_path, self.backup_dir)
        try:
            files = list_archive(path, files_only=True)
        except (InvalidArgumentError, tarfile.TarError, OSError) as e:
            raise RestoreError(
                f"Unable to read backup archive: {e}",
                details={"archive": str(path)},
            ) from e

        manifest = parse_manifest(read_archive_manifest(path), path)
        preview = []
        for item in manifest.items:
            matching = [
                name for name in files if name == item.dest or name.startswith(f"{item.dest}/")
            ]
            if matching:
                preview.append(RestorePreviewItem(path=item.src, file_count=len(matching)))
        return preview

    def restore(self, archive_path: Path | str) -> RestoreReport:
        """
        Restore every manifest item of an archive.

        Existing files are overwritten and missing parent directories are
        created. Items listed in the manifest but absent from the archive
        (skipped at backup time) are skipped.

        Returns:
            RestoreReport with the project paths written.

        Raises:
            RestoreError: If the manifest is missing, corrupt or foreign, the
                archive is unsafe, or an item cannot be written. In the last
                case failed_item and pending_items identify what was not
                restored; earlier items stay in place.
        """
        path = validate_backup_file_path(archive_path, self.backup_dir)
        restored: list[str] = []

        with tempfile.TemporaryDirectory(prefix=RESTORE_TEMP_PREFIX) as temp:
            temp_dir = Path(temp)
            try:
                extract_archive(path, temp_dir)
            except (InvalidArgumentError, tarfile.TarError, OSError) as e:
                raise RestoreError(
                    f"Unable to extract backup archive: {e}",
                    details={"archive": str(path)},
                ) from e

            manifest_file = temp_dir / MANIFEST_FILENAME
            content = manifest_file.read_bytes() if manifest_file.is_file() else None
            manifest = parse_manifest(content, path)

            for index, item in enumerate(manifest.items):
                source = temp_dir / item.dest
                if not source.exists():
                    logger.debug("Item not in archive", extra={"dest": item.dest})
                    continue
                try:
                    copy_path(source, self.project_root / item.src)
                except OSError as e:
                    raise RestoreError(
                        f"Failed to restore {item.src}: {e}",
                        failed_item=item.src,
                        pending_items=[pending.src for pending in manifest.items[index + 1 :]],
                        details={"archive": str(path), "restored": list(restored)},
                    ) from e
                restored.append(item.src)

        logger.info(
            "Backup restored",
            extra={"archive": str(path), "restored": restored},
        )
        return RestoreReport(archive=str(path), restored=restored, manifest=manifest)
