"""
Command-line interface.

Subcommands:
- update: check for and merge upstream template updates
- backup: create a backup archive
- restore: restore a backup archive
- list: list stored backups
- clean: delete old backups
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from typing import Any

import yaml
from pydantic import ValidationError

from koharu import __version__
from koharu.backup import (
    BackupArchiver,
    BackupCatalog,
    BackupMode,
    BackupOutput,
    RestoreEngine,
)
from koharu.config import AppConfig, load_config
from koharu.errors import FailedPreconditionError, KoharuError
from koharu.logging import get_logger, setup_logging
from koharu.updates import (
    MergeCoordinator,
    UpdateInfo,
    UpdateOptions,
    UpdateSession,
    UpdateState,
    UpdateStatus,
    exit_code_for,
)
from koharu.vcs import GitProbe

logger = get_logger(__name__)

_STATUS_MESSAGES: dict[UpdateStatus, str] = {
    UpdateStatus.CHECKING: "Checking working tree...",
    UpdateStatus.FETCHING: "Fetching upstream...",
    UpdateStatus.BACKING_UP: "Creating backup...",
    UpdateStatus.MERGING: "Merging upstream changes...",
    UpdateStatus.INSTALLING: "Installing dependencies...",
}


def format_size(size: int) -> str:
    """Human-readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def _ask(question: str) -> bool:
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="koharu",
        description="Upstream update and backup tool for astro-koharu blogs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", type=str, help="Path to configuration file")
    parser.add_argument(
        "--project", "-C", type=str, help="Project root (defaults to the current directory)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit JSON-formatted log records"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    update = subparsers.add_parser("update", help="Update from the upstream template")
    update.add_argument(
        "--check-only", "--check", action="store_true", help="Check for updates only"
    )
    update.add_argument("--skip-backup", action="store_true", help="Skip the backup step")
    update.add_argument(
        "--force",
        action="store_true",
        help="Update with uncommitted changes, without prompts and without a backup",
    )
    update.add_argument("--yes", "-y", action="store_true", help="Answer yes to prompts")
    update.add_argument(
        "--abort", action="store_true", help="Abort a conflicted merge and exit"
    )

    backup = subparsers.add_parser("backup", help="Create a backup archive")
    backup.add_argument(
        "--full", action="store_true", help="Include optional items (images, generated assets)"
    )

    restore = subparsers.add_parser("restore", help="Restore a backup archive")
    restore.add_argument("archive", nargs="?", help="Backup file name or path")
    restore.add_argument("--latest", action="store_true", help="Restore the newest backup")
    restore.add_argument(
        "--dry-run", action="store_true", help="Show what would be restored"
    )
    restore.add_argument("--force", "-f", action="store_true", help="Skip confirmation")

    subparsers.add_parser("list", help="List backups")

    clean = subparsers.add_parser("clean", help="Delete old backups")
    clean.add_argument(
        "--keep", type=int, required=True, metavar="N", help="Keep the newest N backups"
    )

    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if args.log_level:
        result.setdefault("logging", {})["level"] = args.log_level
    if args.json_logs:
        result.setdefault("logging", {})["json_format"] = True
    return result


# =============================================================================
# Commands
# =============================================================================


def _print_update_info(info: UpdateInfo) -> None:
    print(f"Current version: {info.current_version}")
    print(f"Latest version:  {info.latest_version}")
    print(f"{info.behind_count} new commit(s) upstream, {info.ahead_count} local commit(s)")
    for commit in info.commits:
        print(f"  {commit.hash} {commit.message} ({commit.author}, {commit.date})")


def _print_outcome(state: UpdateState) -> None:
    status = state.status
    if status == UpdateStatus.UP_TO_DATE:
        print("Already up to date.")
    elif status == UpdateStatus.DIRTY_WARNING and state.git_status is not None:
        print(
            f"Working tree has {state.git_status.uncommitted_count} uncommitted change(s):"
        )
        for path in state.git_status.uncommitted_files:
            print(f"  {path}")
        print("Commit or stash them first, or rerun with --force.")
    elif status == UpdateStatus.PREVIEW and state.update_info is not None:
        _print_update_info(state.update_info)
    elif status == UpdateStatus.CONFLICT and state.merge_result is not None:
        print("Merge stopped with conflicts in:")
        for path in sorted(state.merge_result.conflict_files):
            print(f"  {path}")
        print("Resolve them and commit, or run: koharu update --abort")
        if state.backup_file:
            print(f"Backup: {state.backup_file}")
    elif status == UpdateStatus.DONE:
        print("Update complete.")
        if state.backup_file:
            print(f"Backup: {state.backup_file}")
    elif status == UpdateStatus.ERROR:
        print(f"Update failed: {state.error}", file=sys.stderr)


def cmd_update(config: AppConfig, args: argparse.Namespace) -> int:
    if args.abort:
        MergeCoordinator(GitProbe(config.project_root), config.upstream).abort()
        print("Merge aborted.")
        return 0

    def confirm_update(info: UpdateInfo) -> bool:
        _print_update_info(info)
        return args.yes or _ask("Merge these changes?")

    def confirm_backup(state: UpdateState) -> bool:
        return args.yes or _ask("Create a backup before merging?")

    options = UpdateOptions(
        check_only=args.check_only, skip_backup=args.skip_backup, force=args.force
    )
    session = UpdateSession.from_config(
        config, options, confirm_update=confirm_update, confirm_backup=confirm_backup
    )

    def report(state: UpdateState) -> None:
        message = _STATUS_MESSAGES.get(state.status)
        if message:
            print(message)

    session.add_progress_callback(report)
    state = session.run()

    if session.cancelled:
        print(f"Cancelled. {session.cancel_reason}")
    else:
        _print_outcome(state)
    return exit_code_for(state, cancelled=session.cancelled)


def _print_backup(output: BackupOutput) -> None:
    for result in output.results:
        marker = "skipped" if result.skipped else "ok"
        print(f"  [{marker}] {result.item.label or result.item.src}")
    print(f"Backup created: {output.backup_file} ({format_size(output.file_size)})")


def cmd_backup(config: AppConfig, args: argparse.Namespace) -> int:
    mode = BackupMode.FULL if args.full else BackupMode.BASIC
    output = BackupArchiver.from_config(config).backup(mode)
    _print_backup(output)
    return 0


def cmd_restore(config: AppConfig, args: argparse.Namespace) -> int:
    archive = args.archive
    if args.latest or archive is None:
        latest = BackupCatalog(config.backup_dir).latest()
        if latest is None:
            raise FailedPreconditionError(
                f"No backups found in {config.backup_dir}",
                details={"backup_dir": str(config.backup_dir)},
            )
        archive = latest.path

    engine = RestoreEngine(config.project_root, config.backup_dir)
    preview = engine.preview(archive)
    print(f"Restoring from {archive}:")
    for item in preview:
        print(f"  {item.path} ({item.file_count} file(s))")

    if args.dry_run:
        return 0
    if not (args.force or _ask("Overwrite these paths?")):
        print("Cancelled.")
        return 0

    report = engine.restore(archive)
    print(f"Restored {len(report.restored)} item(s).")
    return 0


def cmd_list(config: AppConfig, args: argparse.Namespace) -> int:
    backups = BackupCatalog(config.backup_dir).list_backups()
    if not backups:
        print(f"No backups in {config.backup_dir}")
        return 0
    for info in backups:
        mode = info.mode.value if info.mode else "?"
        print(f"{info.name}  {format_size(info.size):>10}  {mode}")
    return 0


def cmd_clean(config: AppConfig, args: argparse.Namespace) -> int:
    result = BackupCatalog(config.backup_dir).clean(args.keep)
    print(
        f"Deleted {result.deleted_count} backup(s), freed {format_size(result.freed_space)}"
        + (f", skipped {result.skipped_count}" if result.skipped_count else "")
    )
    return 0


_COMMANDS: dict[str, Callable[[AppConfig, argparse.Namespace], int]] = {
    "update": cmd_update,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "list": cmd_list,
    "clean": cmd_clean,
}


def main(argv: list[str] | None = None) -> int:
    """
    Entry point for the koharu command.

    Returns:
        Process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(
            args.config, project_root=args.project, overrides=_overrides(args)
        )
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.logging)

    try:
        return _COMMANDS[args.command](config, args)
    except KoharuError as e:
        logger.debug(
            "Command failed", extra={"error_code": e.error_code, "details": e.details}
        )
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
