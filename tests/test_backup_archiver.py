"""
Tests for BackupArchiver.

Tests cover:
- Full and basic backups and their manifests
- Archive naming, including same-second collisions
- Cleanup of staging and partial files on success and failure
- Progress callbacks
"""

from __future__ import annotations

import json
import tarfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from koharu.backup import archiver as archiver_module
from koharu.backup.archiver import BackupArchiver
from koharu.backup.models import (
    DEFAULT_BACKUP_ITEMS,
    MANIFEST_NAME,
    BackupMode,
    BackupResult,
    ManifestItem,
)
from koharu.config import AppConfig
from koharu.errors import BackupError

FIXED_TIME = datetime(2026, 3, 14, 15, 9, 26, tzinfo=UTC)


def make_archiver(project: Path, **kwargs: object) -> BackupArchiver:
    return BackupArchiver(
        project,
        project / "backups",
        DEFAULT_BACKUP_ITEMS,
        clock=lambda: FIXED_TIME,
        **kwargs,  # type: ignore[arg-type]
    )


def archive_names(path: str | Path) -> set[str]:
    with tarfile.open(path, "r:gz") as tar:
        return set(tar.getnames())


def archive_manifest(path: str | Path) -> dict:
    with tarfile.open(path, "r:gz") as tar:
        handle = tar.extractfile("manifest.json")
        assert handle is not None
        return json.loads(handle.read())


# =============================================================================
# Backup Contents
# =============================================================================


class TestFullBackup:
    """Tests for full backups."""

    def test_archive_name(self, blog_project: Path) -> None:
        output = make_archiver(blog_project).backup(BackupMode.FULL)

        assert output.timestamp == "2026-03-14-15-09-26"
        assert Path(output.backup_file) == (
            blog_project / "backups" / "backup-2026-03-14-15-09-26.tar.gz"
        )
        assert output.file_size == Path(output.backup_file).stat().st_size

    def test_contents(self, blog_project: Path) -> None:
        """Test every present item is stored under its destination."""
        output = make_archiver(blog_project).backup(BackupMode.FULL)

        names = archive_names(output.backup_file)
        assert {
            "manifest.json",
            "content/blog/hello.md",
            "content/blog/notes/first.md",
            "config/site.yaml",
            "pages/about.md",
            "img/avatar.png",
            "env",
            "favicon.ico",
            "assets/lqips.json",
        } <= names
        assert "assets/similarities.json" not in names

    def test_missing_items_skipped(self, blog_project: Path) -> None:
        """Test absent sources are reported as skipped, not failed."""
        output = make_archiver(blog_project).backup(BackupMode.FULL)

        skipped = {result.item.src for result in output.results if result.skipped}
        assert skipped == {"src/assets/similarities.json", "src/assets/summaries.json"}
        assert len(output.results) == len(DEFAULT_BACKUP_ITEMS)
        assert all(result.success for result in output.results if not result.skipped)

    def test_manifest(self, blog_project: Path) -> None:
        output = make_archiver(blog_project, version_provider=lambda: "1.4.2").backup()

        manifest = archive_manifest(output.backup_file)
        assert manifest["name"] == MANIFEST_NAME
        assert manifest["version"] == "1.4.2"
        assert manifest["createdAt"] == FIXED_TIME.isoformat()
        assert manifest["mode"] == "full"
        assert len(manifest["items"]) == len(DEFAULT_BACKUP_ITEMS)
        assert output.manifest.mode == BackupMode.FULL


class TestBasicBackup:
    """Tests for basic backups."""

    def test_manifest_is_required_subset(self, blog_project: Path) -> None:
        """Test a basic manifest lists exactly the required items."""
        output = make_archiver(blog_project).backup(BackupMode.BASIC)

        required = [
            ManifestItem(src=item.src, dest=item.dest)
            for item in DEFAULT_BACKUP_ITEMS
            if item.required
        ]
        assert output.manifest.items == required
        assert archive_manifest(output.backup_file)["mode"] == "basic"

    def test_optional_items_left_out(self, blog_project: Path) -> None:
        output = make_archiver(blog_project).backup("basic")  # type: ignore[arg-type]

        names = archive_names(output.backup_file)
        assert "favicon.ico" not in names
        assert "assets/lqips.json" not in names
        assert "config/site.yaml" in names


# =============================================================================
# Files Left Behind
# =============================================================================


class TestBackupFiles:
    """Tests for what a backup leaves in the backup directory."""

    def test_no_staging_leftovers(self, blog_project: Path) -> None:
        output = make_archiver(blog_project).backup()

        assert [p.name for p in (blog_project / "backups").iterdir()] == [
            Path(output.backup_file).name
        ]

    def test_same_second_collision(self, blog_project: Path) -> None:
        """Test a second backup in the same second gets a suffix."""
        archiver = make_archiver(blog_project)

        first = archiver.backup()
        second = archiver.backup()

        assert Path(first.backup_file).name == "backup-2026-03-14-15-09-26.tar.gz"
        assert Path(second.backup_file).name == "backup-2026-03-14-15-09-26-1.tar.gz"
        assert Path(first.backup_file).is_file()

    def test_creates_backup_dir(self, blog_project: Path) -> None:
        archiver = BackupArchiver(
            blog_project, blog_project / "var" / "backups", DEFAULT_BACKUP_ITEMS
        )

        output = archiver.backup()

        assert Path(output.backup_file).parent == blog_project / "var" / "backups"

    def test_compression_failure(
        self, blog_project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a failed archive leaves neither a partial file nor staging data."""

        def fail(archive_path: Path, source_dir: Path) -> None:
            archive_path.write_bytes(b"\x1f\x8b partial")
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(archiver_module, "create_archive", fail)

        with pytest.raises(BackupError, match="No space left") as exc_info:
            make_archiver(blog_project).backup()

        assert list((blog_project / "backups").iterdir()) == []
        assert exc_info.value.details["item"] is None

    def test_interrupted_compression(
        self, blog_project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test Ctrl-C during compression removes the partial archive."""

        def interrupt(archive_path: Path, source_dir: Path) -> None:
            archive_path.write_bytes(b"\x1f\x8b partial")
            raise KeyboardInterrupt

        monkeypatch.setattr(archiver_module, "create_archive", interrupt)

        with pytest.raises(KeyboardInterrupt):
            make_archiver(blog_project).backup()

        assert list((blog_project / "backups").iterdir()) == []

    def test_backup_dir_not_creatable(self, blog_project: Path) -> None:
        """Test an unusable backup directory raises BackupError."""
        (blog_project / "var").write_text("not a directory")
        archiver = BackupArchiver(
            blog_project, blog_project / "var" / "backups", DEFAULT_BACKUP_ITEMS
        )

        with pytest.raises(BackupError, match="backup directory"):
            archiver.backup()

    def test_copy_failure_names_item(
        self, blog_project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        original = archiver_module.copy_path

        def copy(src: Path, dest: Path) -> None:
            if src.name == "site.yaml":
                raise PermissionError(13, "Permission denied")
            original(src, dest)

        monkeypatch.setattr(archiver_module, "copy_path", copy)

        with pytest.raises(BackupError) as exc_info:
            make_archiver(blog_project).backup()

        assert exc_info.value.details["item"] == "config/site.yaml"
        assert list((blog_project / "backups").iterdir()) == []


# =============================================================================
# Progress and Configuration
# =============================================================================


class TestBackupProgress:
    """Tests for progress callbacks."""

    def test_called_per_item(self, blog_project: Path) -> None:
        archiver = make_archiver(blog_project)
        seen: list[list[BackupResult]] = []
        archiver.add_progress_callback(seen.append)

        archiver.backup(BackupMode.BASIC)

        required = [item for item in DEFAULT_BACKUP_ITEMS if item.required]
        assert [len(results) for results in seen] == list(range(1, len(required) + 1))
        assert seen[-1][-1].item == required[-1]

    def test_failing_callback_ignored(self, blog_project: Path) -> None:
        archiver = make_archiver(blog_project)

        def broken(results: list[BackupResult]) -> None:
            raise RuntimeError("terminal closed")

        archiver.add_progress_callback(broken)

        assert Path(archiver.backup().backup_file).is_file()


class TestFromConfig:
    """Tests for BackupArchiver.from_config."""

    def test_uses_project_paths_and_version(self, blog_project: Path) -> None:
        (blog_project / "package.json").write_text('{"version": "2.3.0"}')
        config = AppConfig.model_validate(
            {"project": {"root": str(blog_project), "backup_dir": "archives"}}
        )

        output = BackupArchiver.from_config(config).backup()

        assert Path(output.backup_file).parent == (blog_project / "archives").resolve()
        assert output.manifest.version == "2.3.0"
