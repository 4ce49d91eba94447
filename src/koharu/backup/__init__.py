"""
Backup creation, restore and cataloguing for koharu projects.
"""

from koharu.backup.archiver import BackupArchiver
from koharu.backup.catalog import BackupCatalog, DeleteResult
from koharu.backup.models import (
    DEFAULT_BACKUP_ITEMS,
    MANIFEST_NAME,
    BackupInfo,
    BackupItem,
    BackupMode,
    BackupOutput,
    BackupResult,
    Manifest,
    ManifestItem,
    RestorePreviewItem,
    RestoreReport,
    select_items,
)
from koharu.backup.restore import RestoreEngine

__all__ = [
    "DEFAULT_BACKUP_ITEMS",
    "MANIFEST_NAME",
    "BackupArchiver",
    "BackupCatalog",
    "BackupInfo",
    "BackupItem",
    "BackupMode",
    "BackupOutput",
    "BackupResult",
    "DeleteResult",
    "Manifest",
    "ManifestItem",
    "RestoreEngine",
    "RestorePreviewItem",
    "RestoreReport",
    "select_items",
]
