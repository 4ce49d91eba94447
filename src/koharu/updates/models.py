"""
Data models for the upstream update workflow.

Value records (git status, commits, update info, merge results) are frozen
Pydantic models. UpdateState is also frozen: the transition table produces a
new state for every accepted action instead of mutating the current one.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from koharu.vcs.models import CommitInfo, GitStatusInfo, MergeResult

UNKNOWN_VERSION = "unknown"


class UpdateInfo(BaseModel):
    """
    Divergence between the local branch and the upstream tip.

    Commits are ordered newest first. Without an upstream both counts are zero
    and the commit list is empty.
    """

    model_config = ConfigDict(frozen=True)

    has_upstream: bool
    behind_count: int = Field(default=0, ge=0)
    ahead_count: int = Field(default=0, ge=0)
    commits: tuple[CommitInfo, ...] = ()
    current_version: str = UNKNOWN_VERSION
    latest_version: str = UNKNOWN_VERSION

    @model_validator(mode="after")
    def check_commits(self) -> UpdateInfo:
        """Enforce the counts/commit list invariants."""
        if self.has_upstream:
            if len(self.commits) != self.behind_count:
                raise ValueError(
                    f"Expected {self.behind_count} commits, got {len(self.commits)}"
                )
        elif self.behind_count or self.ahead_count or self.commits:
            raise ValueError("Counts must be zero and commits empty without upstream")
        return self

    @classmethod
    def no_upstream(cls, current_version: str = UNKNOWN_VERSION) -> UpdateInfo:
        """Sentinel for a checkout with no upstream configured."""
        return cls(has_upstream=False, current_version=current_version)


class UpdateOptions(BaseModel):
    """Options fixed for the lifetime of one update session."""

    model_config = ConfigDict(frozen=True)

    check_only: bool = False
    skip_backup: bool = False
    force: bool = False


class UpdateStatus(str, Enum):
    """
    States of an update session.

    checking -> dirty-warning | fetching
    fetching -> up-to-date | preview
    preview -> backup-confirm | merging
    backup-confirm -> backing-up | merging
    backing-up -> merging
    merging -> installing | conflict
    installing -> done
    any non-terminal state -> error
    """

    CHECKING = "checking"
    DIRTY_WARNING = "dirty-warning"
    FETCHING = "fetching"
    UP_TO_DATE = "up-to-date"
    PREVIEW = "preview"
    BACKUP_CONFIRM = "backup-confirm"
    BACKING_UP = "backing-up"
    MERGING = "merging"
    INSTALLING = "installing"
    DONE = "done"
    CONFLICT = "conflict"
    ERROR = "error"


TERMINAL_STATUSES: frozenset[UpdateStatus] = frozenset(
    {
        UpdateStatus.DIRTY_WARNING,
        UpdateStatus.UP_TO_DATE,
        UpdateStatus.DONE,
        UpdateStatus.CONFLICT,
        UpdateStatus.ERROR,
    }
)


class UpdateState(BaseModel):
    """The single record owned by one update session."""

    model_config = ConfigDict(frozen=True)

    status: UpdateStatus = UpdateStatus.CHECKING
    git_status: GitStatusInfo | None = None
    update_info: UpdateInfo | None = None
    merge_result: MergeResult | None = None
    backup_file: str | None = None
    error: str | None = None
    options: UpdateOptions = Field(default_factory=UpdateOptions)

    @classmethod
    def initial(cls, options: UpdateOptions | None = None) -> UpdateState:
        """Fresh session state in `checking`."""
        return cls(options=options or UpdateOptions())

    @property
    def is_terminal(self) -> bool:
        """Whether the session can accept no further actions."""
        if self.status == UpdateStatus.PREVIEW:
            return self.options.check_only
        return self.status in TERMINAL_STATUSES


# =============================================================================
# Actions
# =============================================================================


class ActionType(str, Enum):
    """Closed set of events an update session accepts."""

    GIT_CHECKED = "GIT_CHECKED"
    FETCHED = "FETCHED"
    BACKUP_CONFIRM = "BACKUP_CONFIRM"
    BACKUP_SKIP = "BACKUP_SKIP"
    BACKUP_DONE = "BACKUP_DONE"
    UPDATE_CONFIRM = "UPDATE_CONFIRM"
    MERGED = "MERGED"
    INSTALLED = "INSTALLED"
    ERROR = "ERROR"


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class GitChecked(_Action):
    type: Literal[ActionType.GIT_CHECKED] = ActionType.GIT_CHECKED
    payload: GitStatusInfo


class Fetched(_Action):
    type: Literal[ActionType.FETCHED] = ActionType.FETCHED
    payload: UpdateInfo


class BackupConfirm(_Action):
    type: Literal[ActionType.BACKUP_CONFIRM] = ActionType.BACKUP_CONFIRM


class BackupSkip(_Action):
    type: Literal[ActionType.BACKUP_SKIP] = ActionType.BACKUP_SKIP


class BackupDone(_Action):
    type: Literal[ActionType.BACKUP_DONE] = ActionType.BACKUP_DONE
    backup_file: str = Field(..., min_length=1)


class UpdateConfirm(_Action):
    type: Literal[ActionType.UPDATE_CONFIRM] = ActionType.UPDATE_CONFIRM


class Merged(_Action):
    type: Literal[ActionType.MERGED] = ActionType.MERGED
    payload: MergeResult


class Installed(_Action):
    type: Literal[ActionType.INSTALLED] = ActionType.INSTALLED


class ErrorOccurred(_Action):
    type: Literal[ActionType.ERROR] = ActionType.ERROR
    error: str


UpdateAction = Annotated[
    GitChecked
    | Fetched
    | BackupConfirm
    | BackupSkip
    | BackupDone
    | UpdateConfirm
    | Merged
    | Installed
    | ErrorOccurred,
    Field(discriminator="type"),
]
