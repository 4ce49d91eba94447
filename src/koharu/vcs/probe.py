"""
Version control probe abstraction.

VersionControlProbe is the only seam between koharu and the version control
system. It carries no policy: callers decide what a dirty tree or a failed
merge means. Tests substitute an in-memory implementation with scripted
histories instead of a real repository.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from urllib.parse import urlparse

from koharu.vcs.models import CommitInfo, GitStatusInfo, MergeResult

_SCP_URL = re.compile(r"^[^@/]+@(?P<host>[^:/]+):(?P<path>.+)$")


def normalize_remote_url(url: str) -> str:
    """
    Reduce a remote URL to host + path for comparison.

    https://github.com/a/b.git, ssh://git@github.com/a/b and git@github.com:a/b.git
    all normalize to "github.com/a/b".
    """
    trimmed = url.strip()
    if trimmed.startswith(("http://", "https://", "ssh://", "git://")):
        parsed = urlparse(trimmed)
        host = parsed.hostname or ""
        path = parsed.path.rstrip("/").removesuffix(".git")
        return f"{host}/{path.lstrip('/')}"

    match = _SCP_URL.match(trimmed)
    if match:
        path = match.group("path").rstrip("/").removesuffix(".git")
        return f"{match.group('host')}/{path.lstrip('/')}"

    return trimmed.rstrip("/").removesuffix(".git")


def split_revision_range(revision_range: str) -> list[str]:
    """Return the endpoints of "a..b" / "a...b" ranges, or the single ref."""
    for separator in ("...", ".."):
        if separator in revision_range:
            return [part for part in revision_range.split(separator, 1) if part]
    return [revision_range]


class VersionControlProbe(ABC):
    """
    Abstract interface over the version control operations koharu needs.

    Every implementation must leave the working tree untouched in status();
    divergence() and log() return the no-upstream sentinels ((0, 0) and [])
    when a ref of the requested range does not exist.
    """

    @abstractmethod
    def status(self) -> GitStatusInfo:
        """Return the current branch and uncommitted files."""

    @abstractmethod
    def remote_url(self, name: str) -> str | None:
        """Return the URL of remote `name`, or None if it is not configured."""

    @abstractmethod
    def add_remote(self, name: str, url: str) -> None:
        """
        Configure a new remote.

        Raises:
            GitCommandError: If the remote cannot be added.
        """

    @abstractmethod
    def fetch_upstream(self, remote_name: str, url: str) -> None:
        """
        Fetch `remote_name`, which must be configured with `url`.

        Raises:
            RemoteError: If the remote is missing, points elsewhere, or is
                unreachable.
        """

    @abstractmethod
    def has_ref(self, ref: str) -> bool:
        """Whether `ref` resolves to a commit."""

    @abstractmethod
    def divergence(self, local_ref: str, upstream_ref: str) -> tuple[int, int]:
        """Return (ahead, behind) of local_ref relative to upstream_ref."""

    @abstractmethod
    def log(self, revision_range: str) -> list[CommitInfo]:
        """Return the commits in `revision_range`, newest first."""

    @abstractmethod
    def show_file(self, ref: str, path: str) -> str | None:
        """Return the content of `path` at `ref`, or None if absent."""

    @abstractmethod
    def describe_tag(self, ref: str) -> str | None:
        """Return the nearest tag reachable from `ref`, or None."""

    @abstractmethod
    def merge(self, upstream_ref: str) -> MergeResult:
        """
        Merge `upstream_ref` into the current branch.

        Returns a successful result, or a failed one carrying the tool output.
        Conflict classification is left to the caller.
        """

    @abstractmethod
    def conflicted_files(self) -> set[str]:
        """Return the paths with unresolved merge conflicts."""

    @abstractmethod
    def abort_merge(self) -> None:
        """
        Abort an in-progress merge.

        Raises:
            GitCommandError: If there is no merge to abort or aborting fails.
        """
