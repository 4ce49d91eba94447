"""
Data models for backups: configured items, archive manifests and results.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

MANIFEST_NAME = "jeet-u-backup"
MANIFEST_FILENAME = "manifest.json"
BACKUP_FILE_PREFIX = "backup-"
BACKUP_FILE_EXTENSION = ".tar.gz"
TEMP_DIR_PREFIX = ".tmp-backup-"


class BackupMode(str, Enum):
    """Backup modes: basic holds required items only, full holds everything."""

    FULL = "full"
    BASIC = "basic"


def _validate_relative(value: str) -> str:
    path = PurePosixPath(value)
    if not value or path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Path must be relative and inside the tree: {value!r}")
    return str(path)


class BackupItem(BaseModel):
    """
    A project path that takes part in backups.

    Attributes:
        src: Path relative to the project root.
        dest: Path relative to the archive root.
        label: Display label.
        required: Required items are part of every backup; the others only of
            full backups.
    """

    model_config = ConfigDict(frozen=True)

    src: str = Field(..., description="Project-relative source path")
    dest: str = Field(..., description="Archive-relative destination path")
    label: str = Field(default="", description="Display label")
    required: bool = Field(default=True, description="Included in basic backups")

    @field_validator("src", "dest")
    @classmethod
    def validate_relative_path(cls, v: str) -> str:
        """Reject absolute and parent-traversing paths."""
        return _validate_relative(v)


DEFAULT_BACKUP_ITEMS: tuple[BackupItem, ...] = (
    BackupItem(src="src/content/blog", dest="content/blog", label="Blog Posts"),
    BackupItem(
        src="config/site.yaml", dest="config/site.yaml", label="Site Configuration"
    ),
    BackupItem(src="src/pages/about.md", dest="pages/about.md", label="About Page"),
    BackupItem(src="public/img", dest="img", label="User Images"),
    BackupItem(src=".env", dest="env", label="Environment Variables"),
    BackupItem(
        src="public/favicon.ico",
        dest="favicon.ico",
        label="Website Icon",
        required=False,
    ),
    BackupItem(
        src="src/assets/lqips.json",
        dest="assets/lqips.json",
        label="LQIP Data",
        required=False,
    ),
    BackupItem(
        src="src/assets/similarities.json",
        dest="assets/similarities.json",
        label="Similarity Data",
        required=False,
    ),
    BackupItem(
        src="src/assets/summaries.json",
        dest="assets/summaries.json",
        label="AI Summary Data",
        required=False,
    ),
)


def select_items(items: Sequence[BackupItem], mode: BackupMode) -> list[BackupItem]:
    """Return the items a backup in `mode` covers, in configured order."""
    return [item for item in items if item.required or mode == BackupMode.FULL]


class ManifestItem(BaseModel):
    """Mapping of one archive entry back to its project path."""

    model_config = ConfigDict(frozen=True)

    src: str
    dest: str

    @field_validator("src", "dest")
    @classmethod
    def validate_relative_path(cls, v: str) -> str:
        """Reject absolute and parent-traversing paths."""
        return _validate_relative(v)


class Manifest(BaseModel):
    """
    Metadata embedded as manifest.json at the root of every backup archive.

    The item mapping travels with the archive so that restores keep working
    after the configured item list changes.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default=MANIFEST_NAME, description="Archive provenance marker")
    version: str = Field(
        default="unknown", description="Project version at backup time"
    )
    created_at: str = Field(
        ..., alias="createdAt", description="ISO 8601 creation timestamp"
    )
    mode: BackupMode = Field(..., description="Backup mode")
    items: list[ManifestItem] = Field(default_factory=list)


class BackupResult(BaseModel):
    """Outcome of copying one item into the staging directory."""

    item: BackupItem
    success: bool
    skipped: bool


class BackupOutput(BaseModel):
    """Result of a completed backup."""

    results: list[BackupResult]
    backup_file: str
    file_size: int
    timestamp: str
    manifest: Manifest


class BackupInfo(BaseModel):
    """A backup archive found in the backup directory."""

    name: str
    path: str
    size: int
    mode: BackupMode | None = None
    created_at: str | None = None


class RestorePreviewItem(BaseModel):
    """A project path a restore would write, with the number of files."""

    path: str
    file_count: int


class RestoreReport(BaseModel):
    """Project paths written by a completed restore."""

    archive: str
    restored: list[str] = Field(default_factory=list)
    manifest: Manifest
