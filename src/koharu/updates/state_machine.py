"""
Update state machine.

`transition()` is a pure function from (state, action) to the next state plus
the commands the session must run next. It never touches git or the
filesystem; UpdateSession executes the commands and feeds their outcomes back
in as actions.

State transitions:
- checking → dirty-warning (uncommitted changes, no force)
- checking → fetching (clean tree, or force)
- fetching → up-to-date (nothing behind)
- fetching → preview (upstream commits to merge)
- preview → backup-confirm (UPDATE_CONFIRM)
- preview → merging (UPDATE_CONFIRM with skip_backup or force)
- backup-confirm → backing-up (BACKUP_CONFIRM)
- backup-confirm → merging (BACKUP_SKIP, guarded)
- backing-up → merging (BACKUP_DONE)
- merging → installing | conflict | error (MERGED)
- installing → done (INSTALLED)
- any non-terminal state → error (ERROR)

Every transition into merging is guarded: without a backup file the session
must have been started with skip_backup or force.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import NamedTuple, cast

from koharu.logging import get_logger
from koharu.updates.models import (
    ActionType,
    BackupDone,
    ErrorOccurred,
    Fetched,
    GitChecked,
    Merged,
    UpdateAction,
    UpdateState,
    UpdateStatus,
)

logger = get_logger(__name__)


class Command(str, Enum):
    """Side effects requested by a transition, executed by the session."""

    CHECK_STATUS = "check_status"
    FETCH_UPDATES = "fetch_updates"
    PROMPT_UPDATE = "prompt_update"
    PROMPT_BACKUP = "prompt_backup"
    RUN_BACKUP = "run_backup"
    RUN_MERGE = "run_merge"
    RUN_INSTALL = "run_install"


class Transition(NamedTuple):
    """Result of applying an action.

    Attributes:
        state: The next state (the unchanged state if rejected).
        commands: Commands to run next, in order.
        accepted: Whether the action was legal for the current state.
    """

    state: UpdateState
    commands: tuple[Command, ...] = ()
    accepted: bool = True


_Handler = Callable[[UpdateState, UpdateAction], Transition | None]

# Handlers are looked up by (status, action type), so each receives only the
# action class its key names.


def initial_commands() -> tuple[Command, ...]:
    """Commands that start a fresh session."""
    return (Command.CHECK_STATUS,)


# =============================================================================
# Handlers
# =============================================================================


def _advance(
    state: UpdateState, status: UpdateStatus, *commands: Command, **changes: object
) -> Transition:
    return Transition(state.model_copy(update={"status": status, **changes}), commands)


def _enter_merging(state: UpdateState, **changes: object) -> Transition | None:
    backup_file = changes.get("backup_file", state.backup_file)
    if backup_file is None and not (state.options.skip_backup or state.options.force):
        logger.warning(
            "Refusing to merge without a backup",
            extra={"status": state.status.value},
        )
        return None
    return _advance(state, UpdateStatus.MERGING, Command.RUN_MERGE, **changes)


def _on_git_checked(state: UpdateState, action: UpdateAction) -> Transition | None:
    git_status = cast(GitChecked, action).payload
    if not git_status.is_clean and not state.options.force:
        return _advance(state, UpdateStatus.DIRTY_WARNING, git_status=git_status)
    return _advance(
        state, UpdateStatus.FETCHING, Command.FETCH_UPDATES, git_status=git_status
    )


def _on_fetched(state: UpdateState, action: UpdateAction) -> Transition | None:
    info = cast(Fetched, action).payload
    if info.behind_count == 0:
        return _advance(state, UpdateStatus.UP_TO_DATE, update_info=info)
    if state.options.check_only:
        return _advance(state, UpdateStatus.PREVIEW, update_info=info)
    return _advance(state, UpdateStatus.PREVIEW, Command.PROMPT_UPDATE, update_info=info)


def _on_update_confirm(state: UpdateState, action: UpdateAction) -> Transition | None:
    if state.options.skip_backup or state.options.force:
        return _enter_merging(state)
    return _advance(state, UpdateStatus.BACKUP_CONFIRM, Command.PROMPT_BACKUP)


def _on_backup_confirm(state: UpdateState, action: UpdateAction) -> Transition | None:
    return _advance(state, UpdateStatus.BACKING_UP, Command.RUN_BACKUP)


def _on_backup_skip(state: UpdateState, action: UpdateAction) -> Transition | None:
    return _enter_merging(state)


def _on_backup_done(state: UpdateState, action: UpdateAction) -> Transition | None:
    return _enter_merging(state, backup_file=cast(BackupDone, action).backup_file)


def _on_merged(state: UpdateState, action: UpdateAction) -> Transition | None:
    result = cast(Merged, action).payload
    if result.has_conflict:
        return _advance(state, UpdateStatus.CONFLICT, merge_result=result)
    if not result.success:
        return _advance(
            state,
            UpdateStatus.ERROR,
            merge_result=result,
            error=result.error or "Merge failed",
        )
    return _advance(state, UpdateStatus.INSTALLING, Command.RUN_INSTALL, merge_result=result)


def _on_installed(state: UpdateState, action: UpdateAction) -> Transition | None:
    return _advance(state, UpdateStatus.DONE)


def _on_error(state: UpdateState, action: UpdateAction) -> Transition | None:
    return _advance(state, UpdateStatus.ERROR, error=cast(ErrorOccurred, action).error)


_TRANSITIONS: dict[tuple[UpdateStatus, ActionType], _Handler] = {
    (UpdateStatus.CHECKING, ActionType.GIT_CHECKED): _on_git_checked,
    (UpdateStatus.FETCHING, ActionType.FETCHED): _on_fetched,
    (UpdateStatus.PREVIEW, ActionType.UPDATE_CONFIRM): _on_update_confirm,
    (UpdateStatus.BACKUP_CONFIRM, ActionType.BACKUP_CONFIRM): _on_backup_confirm,
    (UpdateStatus.BACKUP_CONFIRM, ActionType.BACKUP_SKIP): _on_backup_skip,
    (UpdateStatus.BACKING_UP, ActionType.BACKUP_DONE): _on_backup_done,
    (UpdateStatus.MERGING, ActionType.MERGED): _on_merged,
    (UpdateStatus.INSTALLING, ActionType.INSTALLED): _on_installed,
}


def is_legal(state: UpdateState, action_type: ActionType) -> bool:
    """Whether `action_type` has an entry for the current state."""
    if state.is_terminal:
        return False
    if action_type == ActionType.ERROR:
        return True
    return (state.status, action_type) in _TRANSITIONS


def transition(state: UpdateState, action: UpdateAction) -> Transition:
    """
    Apply `action` to `state`.

    Illegal actions, and guarded transitions that are refused, leave the
    state unchanged and are logged.

    Args:
        state: Current session state.
        action: Incoming action.

    Returns:
        The resulting Transition.
    """
    handler: _Handler | None = None
    if not state.is_terminal:
        handler = (
            _on_error
            if action.type == ActionType.ERROR
            else _TRANSITIONS.get((state.status, action.type))
        )

    result = handler(state, action) if handler is not None else None
    if result is None:
        logger.warning(
            "Rejected action",
            extra={"status": state.status.value, "action": action.type.value},
        )
        return Transition(state, (), accepted=False)

    logger.info(
        "Update state transition",
        extra={
            "old_status": state.status.value,
            "new_status": result.state.status.value,
            "action": action.type.value,
        },
    )
    return result
