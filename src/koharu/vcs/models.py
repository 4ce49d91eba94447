"""
Records produced by the version control probe.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator


class GitStatusInfo(BaseModel):
    """Working tree status, captured fresh on every check."""

    model_config = ConfigDict(frozen=True)

    current_branch: str
    is_clean: bool
    uncommitted_count: int = 0
    uncommitted_files: tuple[str, ...] = ()

    @model_validator(mode="after")
    def check_counts(self) -> GitStatusInfo:
        """Keep the count, file list and clean flag consistent."""
        if self.uncommitted_count != len(self.uncommitted_files):
            raise ValueError("uncommitted_count must equal len(uncommitted_files)")
        if self.is_clean != (self.uncommitted_count == 0):
            raise ValueError("is_clean must be true exactly when nothing is uncommitted")
        return self


class CommitInfo(BaseModel):
    """One upstream commit not yet present locally."""

    model_config = ConfigDict(frozen=True)

    hash: str
    message: str
    date: str
    author: str


class MergeResult(BaseModel):
    """Outcome of merging the upstream branch."""

    model_config = ConfigDict(frozen=True)

    success: bool
    has_conflict: bool = False
    conflict_files: frozenset[str] = frozenset()
    error: str | None = None

    @model_validator(mode="after")
    def check_conflict(self) -> MergeResult:
        """A conflict is never a success and always names its files."""
        if self.has_conflict and self.success:
            raise ValueError("A conflicted merge cannot be successful")
        if bool(self.conflict_files) != self.has_conflict:
            raise ValueError("conflict_files must be non-empty exactly when has_conflict")
        return self

    @classmethod
    def succeeded(cls) -> MergeResult:
        return cls(success=True)

    @classmethod
    def conflicted(cls, files: set[str] | frozenset[str]) -> MergeResult:
        return cls(success=False, has_conflict=True, conflict_files=frozenset(files))

    @classmethod
    def failed(cls, error: str) -> MergeResult:
        return cls(success=False, error=error)

