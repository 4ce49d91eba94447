"""
Git implementation of the version control probe.

All operations are synchronous `subprocess.run` invocations of the git CLI in
the project root. Failures surface as GitCommandError (or RemoteError for
remote access) carrying the exit status and stderr of the failing command.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

from koharu.errors import GitCommandError, InternalError, RemoteError
from koharu.logging import get_logger
from koharu.vcs.models import CommitInfo, GitStatusInfo, MergeResult
from koharu.vcs.probe import (
    VersionControlProbe,
    normalize_remote_url,
    split_revision_range,
)

logger = get_logger(__name__)

# Unit and record separators keep commit subjects containing "|" intact.
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = f"%h{_FIELD_SEP}%s{_FIELD_SEP}%aI{_FIELD_SEP}%an{_RECORD_SEP}"

# Porcelain XY codes of unmerged paths.
_UNMERGED_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})


class GitProbe(VersionControlProbe):
    """
    VersionControlProbe backed by the git command line.

    Attributes:
        repo_path: Working tree all commands run in.
        timeout: Timeout for local commands, in seconds.
        fetch_timeout: Timeout for network commands, in seconds.
    """

    DEFAULT_TIMEOUT = 60.0
    DEFAULT_FETCH_TIMEOUT = 300.0

    def __init__(
        self,
        repo_path: Path | str,
        *,
        git_executable: str = "git",
        timeout: float = DEFAULT_TIMEOUT,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.git_executable = git_executable
        self.timeout = timeout
        self.fetch_timeout = fetch_timeout

    def _run(
        self,
        *args: str,
        check: bool = True,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """
        Run a git command in the repository.

        Args:
            *args: Git arguments (without the executable).
            check: Raise GitCommandError on a non-zero exit status.
            timeout: Timeout override in seconds.

        Returns:
            The completed process with text stdout/stderr. Bytes that are
            not valid UTF-8 are replaced rather than raising.

        Raises:
            GitCommandError: If git cannot be started, times out, or (with
                check) exits non-zero.
        """
        argv = [self.git_executable, *args]
        env = {
            **os.environ,
            "LC_ALL": "C",
            "GIT_TERMINAL_PROMPT": "0",
            "GIT_MERGE_AUTOEDIT": "no",
        }
        try:
            result = subprocess.run(
                argv,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                # Paths are not necessarily UTF-8; undecodable bytes become U+FFFD.
                encoding="utf-8",
                errors="replace",
                env=env,
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError as e:
            raise GitCommandError(
                f"git executable not found: {self.git_executable}",
                command=argv,
                stderr=str(e),
            ) from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(
                f"git {args[0] if args else ''} timed out after {e.timeout}s",
                command=argv,
                stderr=str(e.stderr or ""),
            ) from e

        if result.returncode != 0:
            logger.debug(
                "git command failed",
                extra={
                    "command": argv,
                    "returncode": result.returncode,
                    "stderr": result.stderr.strip(),
                },
            )
            if check:
                raise GitCommandError(
                    f"git {' '.join(args)} failed: "
                    f"{result.stderr.strip() or result.stdout.strip()}",
                    command=argv,
                    returncode=result.returncode,
                    stderr=result.stderr,
                )

        return result

    # -------------------------------------------------------------------------
    # Working tree
    # -------------------------------------------------------------------------

    def current_branch(self) -> str:
        """Return the checked-out branch, or "HEAD" when detached."""
        result = self._run("symbolic-ref", "--short", "-q", "HEAD", check=False)
        branch = result.stdout.strip()
        return branch if result.returncode == 0 and branch else "HEAD"

    def status(self) -> GitStatusInfo:
        # --no-optional-locks keeps status from refreshing the index.
        result = self._run("--no-optional-locks", "status", "--porcelain=v1", "-z")
        files = _parse_porcelain_paths(result.stdout)
        return GitStatusInfo(
            current_branch=self.current_branch(),
            is_clean=not files,
            uncommitted_count=len(files),
            uncommitted_files=tuple(files),
        )

    # -------------------------------------------------------------------------
    # Remotes
    # -------------------------------------------------------------------------

    def remote_url(self, name: str) -> str | None:
        result = self._run("remote", "get-url", name, check=False)
        url = result.stdout.strip()
        return url if result.returncode == 0 and url else None

    def add_remote(self, name: str, url: str) -> None:
        self._run("remote", "add", name, url)
        logger.info("Added remote", extra={"remote": name, "url": url})

    def fetch_upstream(self, remote_name: str, url: str) -> None:
        current = self.remote_url(remote_name)
        if current is None:
            raise RemoteError(
                f"Remote '{remote_name}' is not configured",
                details={"remote": remote_name, "expected_url": url},
            )
        if normalize_remote_url(current) != normalize_remote_url(url):
            raise RemoteError(
                f"Remote '{remote_name}' points to {current}, expected {url}",
                details={
                    "remote": remote_name,
                    "current_url": current,
                    "expected_url": url,
                },
            )

        try:
            self._run("fetch", "--quiet", remote_name, timeout=self.fetch_timeout)
        except GitCommandError as e:
            raise RemoteError(
                f"Unable to fetch from '{remote_name}': {e.stderr.strip() or e.message}",
                details={"remote": remote_name, **e.details},
            ) from e

        logger.info("Fetched upstream", extra={"remote": remote_name})

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def has_ref(self, ref: str) -> bool:
        result = self._run(
            "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False
        )
        return result.returncode == 0

    def divergence(self, local_ref: str, upstream_ref: str) -> tuple[int, int]:
        if not (self.has_ref(local_ref) and self.has_ref(upstream_ref)):
            return 0, 0

        result = self._run(
            "rev-list", "--left-right", "--count", f"{local_ref}...{upstream_ref}"
        )
        ahead, _, behind = result.stdout.strip().partition("\t")
        try:
            return int(ahead or 0), int(behind or 0)
        except ValueError as e:
            raise InternalError(
                f"Unexpected git rev-list output: {result.stdout.strip()!r}",
                details={"local_ref": local_ref, "upstream_ref": upstream_ref},
            ) from e

    def log(self, revision_range: str) -> list[CommitInfo]:
        if not all(self.has_ref(ref) for ref in split_revision_range(revision_range)):
            return []

        result = self._run("log", f"--format={_LOG_FORMAT}", revision_range)
        commits = []
        for record in result.stdout.split(_RECORD_SEP):
            record = record.strip("\n")
            if not record:
                continue
            hash_, message, date, author = record.split(_FIELD_SEP, 3)
            commits.append(
                CommitInfo(hash=hash_, message=message, date=date, author=author)
            )
        return commits

    def show_file(self, ref: str, path: str) -> str | None:
        result = self._run("show", f"{ref}:{path}", check=False)
        return result.stdout if result.returncode == 0 else None

    def describe_tag(self, ref: str) -> str | None:
        result = self._run("describe", "--tags", "--abbrev=0", ref, check=False)
        tag = result.stdout.strip()
        return tag if result.returncode == 0 and tag else None

    # -------------------------------------------------------------------------
    # Merging
    # -------------------------------------------------------------------------

    def merge(self, upstream_ref: str) -> MergeResult:
        result = self._run("merge", "--no-edit", upstream_ref, check=False)
        if result.returncode == 0:
            logger.info("Merge completed", extra={"ref": upstream_ref})
            return MergeResult.succeeded()

        output = result.stderr.strip() or result.stdout.strip()
        return MergeResult.failed(
            output or f"git merge exited with status {result.returncode}"
        )

    def conflicted_files(self) -> set[str]:
        result = self._run("diff", "--name-only", "--diff-filter=U", "-z", check=False)
        files = {name for name in result.stdout.split("\0") if name}
        if files:
            return files

        result = self._run("--no-optional-locks", "status", "--porcelain=v1", "-z")
        return {
            path
            for code, path in _iter_porcelain(result.stdout)
            if code in _UNMERGED_CODES
        }

    def abort_merge(self) -> None:
        self._run("merge", "--abort")
        logger.info("Merge aborted")


def _iter_porcelain(output: str) -> list[tuple[str, str]]:
    """Split `status --porcelain=v1 -z` output into (XY code, path) pairs."""
    entries = []
    tokens = output.split("\0")
    index = 0
    while index < len(tokens):
        token = tokens[index]
        index += 1
        if len(token) < 4:
            continue
        code, path = token[:2], token[3:]
        entries.append((code, path))
        # Renames and copies are followed by their original path.
        if "R" in code or "C" in code:
            index += 1
    return entries


def _parse_porcelain_paths(output: str) -> list[str]:
    return [path for _, path in _iter_porcelain(output)]
