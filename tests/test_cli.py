"""
Tests for the koharu command line.

Tests cover:
- Argument parsing
- backup, list, clean and restore against a project directory
- update against real git repositories
- Exit statuses for configuration and command errors
"""

from __future__ import annotations

import logging
import os
import sys
import tarfile
from collections.abc import Iterator
from pathlib import Path

import pytest
import yaml

from koharu import __version__
from koharu.cli import build_parser, format_size, main

from conftest import BLOG_FILES, commit_file, git

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Undo setup_logging() and keep KOHARU_* variables out of the config."""
    for key in list(os.environ):
        if key.startswith("KOHARU_"):
            monkeypatch.delenv(key)
    yield
    logger = logging.getLogger("koharu")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def backups_in(project: Path) -> list[Path]:
    return sorted((project / "backups").glob("backup-*.tar.gz"))


# =============================================================================
# Parser
# =============================================================================


class TestParser:
    """Tests for build_parser()."""

    def test_update_flags(self) -> None:
        args = build_parser().parse_args(["update", "--check", "--skip-backup", "-y"])

        assert args.command == "update"
        assert args.check_only
        assert args.skip_backup
        assert args.yes
        assert not args.force

    def test_clean_requires_keep(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["clean"])

        assert exc_info.value.code == 2

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == f"koharu {__version__}"


class TestFormatSize:
    """Tests for format_size()."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [(0, "0 B"), (512, "512 B"), (2048, "2.0 KB"), (5 * 1024 * 1024, "5.0 MB")],
    )
    def test_units(self, size: int, expected: str) -> None:
        assert format_size(size) == expected


# =============================================================================
# Backup Commands
# =============================================================================


class TestBackupCommands:
    """Tests for backup, list and clean."""

    def test_backup_basic(
        self, blog_project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["-C", str(blog_project), "backup"]) == 0

        (archive,) = backups_in(blog_project)
        with tarfile.open(archive, "r:gz") as tar:
            names = tar.getnames()
        assert "config/site.yaml" in names
        assert "favicon.ico" not in names
        assert "Backup created" in capsys.readouterr().out

    def test_backup_full(self, blog_project: Path) -> None:
        assert main(["-C", str(blog_project), "backup", "--full"]) == 0

        (archive,) = backups_in(blog_project)
        with tarfile.open(archive, "r:gz") as tar:
            assert "favicon.ico" in tar.getnames()

    def test_list_empty(self, blog_project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["-C", str(blog_project), "list"]) == 0
        assert "No backups" in capsys.readouterr().out

    def test_list(self, blog_project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["-C", str(blog_project), "backup", "--full"])
        capsys.readouterr()

        assert main(["-C", str(blog_project), "list"]) == 0

        out = capsys.readouterr().out
        (archive,) = backups_in(blog_project)
        assert archive.name in out
        assert "full" in out

    def test_clean(self, blog_project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        backup_dir = blog_project / "backups"
        backup_dir.mkdir()
        for day in (1, 2, 3):
            (backup_dir / f"backup-2026-01-0{day}-00-00-00.tar.gz").write_bytes(b"x" * day)

        assert main(["-C", str(blog_project), "clean", "--keep", "1"]) == 0

        assert len(backups_in(blog_project)) == 1
        assert "Deleted 2 backup(s)" in capsys.readouterr().out

    def test_clean_negative_keep(
        self, blog_project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["-C", str(blog_project), "clean", "--keep", "-1"]) == 1
        assert "Error:" in capsys.readouterr().err


class TestRestoreCommand:
    """Tests for restore."""

    def test_dry_run(self, blog_project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["-C", str(blog_project), "backup"])
        (blog_project / "config/site.yaml").write_text("title: Changed\n")
        capsys.readouterr()

        assert main(["-C", str(blog_project), "restore", "--latest", "--dry-run"]) == 0

        out = capsys.readouterr().out
        assert "config/site.yaml (1 file(s))" in out
        assert (blog_project / "config/site.yaml").read_text() == "title: Changed\n"

    def test_restore_force(self, blog_project: Path) -> None:
        main(["-C", str(blog_project), "backup"])
        (archive,) = backups_in(blog_project)
        (blog_project / "config/site.yaml").write_text("title: Changed\n")

        assert main(["-C", str(blog_project), "restore", archive.name, "--force"]) == 0

        assert (blog_project / "config/site.yaml").read_bytes() == BLOG_FILES["config/site.yaml"]

    def test_restore_declined(
        self, blog_project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        main(["-C", str(blog_project), "backup"])
        (blog_project / "config/site.yaml").write_text("title: Changed\n")
        monkeypatch.setattr("builtins.input", lambda prompt: "n")

        assert main(["-C", str(blog_project), "restore"]) == 0

        assert (blog_project / "config/site.yaml").read_text() == "title: Changed\n"

    def test_no_backups(self, blog_project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["-C", str(blog_project), "restore", "--latest"]) == 1
        assert "No backups found" in capsys.readouterr().err

    def test_archive_outside_backup_dir(
        self, blog_project: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        stray = tmp_path / "backup-stray.tar.gz"
        stray.write_bytes(b"x")

        assert main(["-C", str(blog_project), "restore", str(stray), "--force"]) == 1
        assert "not in backup directory" in capsys.readouterr().err


# =============================================================================
# Configuration Errors
# =============================================================================


class TestConfigErrors:
    """Tests for configuration failures."""

    def test_missing_config_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["-c", str(tmp_path / "missing.yml"), "list"]) == 2
        assert "Invalid configuration" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path: Path) -> None:
        config = tmp_path / "koharu.yml"
        config.write_text("upstream:\n  branch: '-x'\n")

        assert main(["-c", str(config), "list"]) == 2

    def test_default_config_in_project(
        self, blog_project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test koharu.yml in the project root is picked up."""
        (blog_project / "koharu.yml").write_text("project:\n  backup_dir: archives\n")

        assert main(["-C", str(blog_project), "backup"]) == 0

        assert len(list((blog_project / "archives").glob("backup-*.tar.gz"))) == 1


# =============================================================================
# Update Command
# =============================================================================


@pytest.fixture
def update_config(tmp_path: Path, git_repos: tuple[Path, Path]) -> Path:
    """Configuration pointing at the test upstream, kept outside the checkout."""
    upstream, _ = git_repos
    config = tmp_path / "koharu.yml"
    config.write_text(
        yaml.safe_dump(
            {
                "project": {"backup_dir": str(tmp_path / "backups")},
                "upstream": {"url": str(upstream)},
                "install": {"command": [sys.executable, "-c", "pass"]},
            }
        )
    )
    return config


@pytest.mark.integration
class TestUpdateCommand:
    """Tests for update against real repositories."""

    def test_update(
        self,
        tmp_path: Path,
        git_repos: tuple[Path, Path],
        update_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        upstream, local = git_repos
        commit_file(upstream, "src/layouts/Post.astro", "<article />\n", "Add layout")
        commit_file(upstream, "package.json", '{"version": "1.1.0"}\n', "Release 1.1.0")

        code = main(["-c", str(update_config), "-C", str(local), "update", "--yes"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Update complete." in out
        assert "Latest version:  1.1.0" in out
        assert (local / "src/layouts/Post.astro").read_text() == "<article />\n"
        assert len(list((tmp_path / "backups").glob("backup-*.tar.gz"))) == 1

    def test_up_to_date(
        self,
        git_repos: tuple[Path, Path],
        update_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _, local = git_repos

        code = main(["-c", str(update_config), "-C", str(local), "update", "--yes"])

        assert code == 0
        assert "Already up to date." in capsys.readouterr().out

    def test_dirty_tree(
        self,
        git_repos: tuple[Path, Path],
        update_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _, local = git_repos
        (local / "src/site.yaml").write_text("title: uncommitted\n")

        code = main(["-c", str(update_config), "-C", str(local), "update", "--yes"])

        assert code == 1
        assert "src/site.yaml" in capsys.readouterr().out

    def test_dirty_tree_non_utf8_name(
        self,
        git_repos: tuple[Path, Path],
        update_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test an undecodable file name ends in the dirty warning, not a traceback."""
        _, local = git_repos
        try:
            (local / os.fsdecode(b"caf\xe9.md")).write_text("menu\n")
        except OSError:
            pytest.skip("filesystem rejects non-UTF-8 names")

        code = main(["-c", str(update_config), "-C", str(local), "update", "--yes"])

        assert code == 1
        assert "caf\ufffd.md" in capsys.readouterr().out

    def test_check_only_without_remote(
        self,
        git_repos: tuple[Path, Path],
        update_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test check-only refuses to add the remote itself."""
        _, local = git_repos

        code = main(["-c", str(update_config), "-C", str(local), "update", "--check-only"])

        assert code == 1
        assert "not configured" in capsys.readouterr().err
        assert "upstream" not in git(local, "remote")

    def test_conflict(
        self,
        git_repos: tuple[Path, Path],
        update_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        upstream, local = git_repos
        commit_file(upstream, "src/site.yaml", "title: upstream\n", "Upstream title")
        commit_file(local, "src/site.yaml", "title: mine\n", "My title")

        code = main(["-c", str(update_config), "-C", str(local), "update", "--yes"])

        out = capsys.readouterr().out
        assert code == 1
        assert "src/site.yaml" in out
        assert "koharu update --abort" in out

        assert main(["-c", str(update_config), "-C", str(local), "update", "--abort"]) == 0
        assert (local / "src/site.yaml").read_text() == "title: mine\n"
