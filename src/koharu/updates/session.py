"""
Update session.

UpdateSession owns the UpdateState of one update run. It executes the
commands requested by the transition table against git, the backup archiver
and the install step, and feeds their outcomes back as actions until the
state is terminal or the user cancels at a prompt.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING

from koharu.backup.archiver import BackupArchiver
from koharu.backup.models import BackupMode
from koharu.errors import KoharuError
from koharu.logging import get_logger
from koharu.updates.fetcher import UpdateFetcher
from koharu.updates.install import DependencyInstaller
from koharu.updates.merge import MergeCoordinator
from koharu.updates.models import (
    BackupConfirm,
    BackupDone,
    BackupSkip,
    ErrorOccurred,
    Fetched,
    GitChecked,
    Installed,
    Merged,
    UpdateAction,
    UpdateConfirm,
    UpdateInfo,
    UpdateOptions,
    UpdateState,
    UpdateStatus,
)
from koharu.updates.state_machine import Command, Transition, initial_commands, transition
from koharu.vcs.git import GitProbe

if TYPE_CHECKING:
    from koharu.config import AppConfig
    from koharu.vcs.probe import VersionControlProbe

logger = get_logger(__name__)

ConfirmUpdate = Callable[[UpdateInfo], bool]
ConfirmBackup = Callable[[UpdateState], bool]


def _always(*_: object) -> bool:
    return True


class UpdateSession:
    """
    Drives one update run from `checking` to a terminal state.

    Attributes:
        options: Options fixed for this session.
        main_branch: The only branch updates may run on.
        cancelled: Whether the user declined a prompt.
        cancel_reason: Why the session stopped early, if it did.
    """

    def __init__(
        self,
        probe: VersionControlProbe,
        fetcher: UpdateFetcher,
        merger: MergeCoordinator,
        archiver: BackupArchiver,
        installer: DependencyInstaller,
        *,
        main_branch: str,
        options: UpdateOptions | None = None,
        confirm_update: ConfirmUpdate = _always,
        confirm_backup: ConfirmBackup = _always,
        backup_mode: BackupMode = BackupMode.FULL,
    ) -> None:
        self._probe = probe
        self._fetcher = fetcher
        self._merger = merger
        self._archiver = archiver
        self._installer = installer
        self.main_branch = main_branch
        self.options = options or UpdateOptions()
        self._confirm_update = confirm_update
        self._confirm_backup = confirm_backup
        self._backup_mode = backup_mode
        self._state = UpdateState.initial(self.options)
        self._progress_callbacks: list[Callable[[UpdateState], None]] = []
        self.cancelled = False
        self.cancel_reason: str | None = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        options: UpdateOptions | None = None,
        *,
        confirm_update: ConfirmUpdate = _always,
        confirm_backup: ConfirmBackup = _always,
    ) -> UpdateSession:
        """Wire a session for the configured project using the git CLI."""
        probe = GitProbe(config.project_root)
        return cls(
            probe,
            UpdateFetcher(probe, config.upstream),
            MergeCoordinator(probe, config.upstream),
            BackupArchiver.from_config(config),
            DependencyInstaller(
                config.install.command,
                config.project_root,
                timeout=config.install.timeout_seconds,
                env_file=config.env_file,
            ),
            main_branch=config.upstream.branch,
            options=options,
            confirm_update=confirm_update,
            confirm_backup=confirm_backup,
        )

    @property
    def state(self) -> UpdateState:
        """Current session state."""
        return self._state

    def add_progress_callback(self, callback: Callable[[UpdateState], None]) -> None:
        """Add a callback to be notified of state changes."""
        self._progress_callbacks.append(callback)

    def _notify_progress(self) -> None:
        """Notify all registered callbacks of state change."""
        for callback in self._progress_callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    def dispatch(self, action: UpdateAction) -> Transition:
        """Apply an action to the session state."""
        result = transition(self._state, action)
        if result.accepted:
            self._state = result.state
            self._notify_progress()
        return result

    def _cancel(self, reason: str) -> None:
        self.cancelled = True
        self.cancel_reason = reason
        logger.info(
            "Update cancelled",
            extra={"status": self._state.status.value, "reason": reason},
        )

    def run(self) -> UpdateState:
        """
        Run the session until it reaches a terminal state or is cancelled.

        Infrastructure failures become an ERROR action, so the returned state
        always explains how the session ended.

        Returns:
            The final UpdateState.
        """
        self._notify_progress()
        pending: deque[Command] = deque(initial_commands())

        while pending and not self.cancelled:
            command = pending.popleft()
            try:
                action = self._execute(command)
            except KoharuError as e:
                logger.error(
                    "Update step failed",
                    extra={"command": command.value, "error_code": e.error_code},
                )
                action = ErrorOccurred(error=e.message)

            if action is None:
                continue

            result = self.dispatch(action)
            if not result.accepted and isinstance(action, BackupSkip):
                self._cancel(
                    "A backup is required before merging; rerun with --skip-backup "
                    "to merge without one"
                )
            pending.extend(result.commands)

        return self._state

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _execute(self, command: Command) -> UpdateAction | None:
        handlers: dict[Command, Callable[[], UpdateAction | None]] = {
            Command.CHECK_STATUS: self._check_status,
            Command.FETCH_UPDATES: self._fetch_updates,
            Command.PROMPT_UPDATE: self._prompt_update,
            Command.PROMPT_BACKUP: self._prompt_backup,
            Command.RUN_BACKUP: self._run_backup,
            Command.RUN_MERGE: self._run_merge,
            Command.RUN_INSTALL: self._run_install,
        }
        return handlers[command]()

    def _check_status(self) -> UpdateAction:
        status = self._probe.status()
        if status.current_branch != self.main_branch:
            return ErrorOccurred(
                error=(
                    f"Updates must run on the '{self.main_branch}' branch "
                    f"(current: '{status.current_branch}'). "
                    f"Run: git checkout {self.main_branch}"
                )
            )
        return GitChecked(payload=status)

    def _fetch_updates(self) -> UpdateAction:
        info = self._fetcher.check_for_updates(
            allow_remote_changes=not self.options.check_only
        )
        return Fetched(payload=info)

    def _prompt_update(self) -> UpdateAction | None:
        info = self._state.update_info
        if self.options.force or (info is not None and self._confirm_update(info)):
            return UpdateConfirm()
        self._cancel("Update declined")
        return None

    def _prompt_backup(self) -> UpdateAction:
        if self._confirm_backup(self._state):
            return BackupConfirm()
        return BackupSkip()

    def _run_backup(self) -> UpdateAction:
        output = self._archiver.backup(self._backup_mode)
        return BackupDone(backup_file=output.backup_file)

    def _run_merge(self) -> UpdateAction:
        return Merged(payload=self._merger.merge_from_upstream())

    def _run_install(self) -> UpdateAction:
        result = self._installer.install()
        if not result.success:
            return ErrorOccurred(error=f"Dependency install failed: {result.error}")
        return Installed()


def exit_code_for(state: UpdateState, *, cancelled: bool = False) -> int:
    """Process exit status for a finished session."""
    if cancelled:
        return 0
    if state.status in (UpdateStatus.DONE, UpdateStatus.UP_TO_DATE):
        return 0
    if state.status == UpdateStatus.PREVIEW and state.options.check_only:
        return 0
    return 1
