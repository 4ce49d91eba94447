"""
Pytest configuration and shared fixtures for the koharu tests.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Iterable
from pathlib import Path

import pytest

from koharu.errors import GitCommandError, RemoteError
from koharu.vcs.models import CommitInfo, GitStatusInfo, MergeResult
from koharu.vcs.probe import VersionControlProbe, split_revision_range

UPSTREAM_URL = "https://github.com/cosZone/astro-koharu.git"


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


# =============================================================================
# In-memory version control probe
# =============================================================================


def make_commits(count: int, prefix: str = "upstream") -> list[CommitInfo]:
    """Build `count` commits, newest first."""
    return [
        CommitInfo(
            hash=f"{index:07x}",
            message=f"{prefix} change {index}",
            date="2026-01-01T00:00:00+00:00",
            author="Upstream Dev",
        )
        for index in range(count, 0, -1)
    ]


class FakeProbe(VersionControlProbe):
    """VersionControlProbe with a scripted history and a call log."""

    def __init__(
        self,
        *,
        branch: str = "main",
        uncommitted: Iterable[str] = (),
        remotes: dict[str, str] | None = None,
        refs: Iterable[str] = ("HEAD",),
        fetched_refs: Iterable[str] = ("upstream/main",),
        ahead: int = 0,
        behind: int = 0,
        commits: list[CommitInfo] | None = None,
        files: dict[tuple[str, str], str] | None = None,
        tags: dict[str, str] | None = None,
        merge_result: MergeResult | None = None,
        conflicts: Iterable[str] = (),
        fetch_error: str | None = None,
    ) -> None:
        self.branch = branch
        self.uncommitted = list(uncommitted)
        self.remotes = dict(remotes or {})
        self.refs = set(refs)
        self.fetched_refs = set(fetched_refs)
        self.ahead = ahead
        self.behind = behind
        self.commits = list(commits) if commits is not None else make_commits(behind)
        self.files = dict(files or {})
        self.tags = dict(tags or {})
        self.merge_result = merge_result or MergeResult.succeeded()
        self.conflicts = set(conflicts)
        self.fetch_error = fetch_error
        self.calls: list[tuple[str, ...]] = []

    def status(self) -> GitStatusInfo:
        self.calls.append(("status",))
        return GitStatusInfo(
            current_branch=self.branch,
            is_clean=not self.uncommitted,
            uncommitted_count=len(self.uncommitted),
            uncommitted_files=tuple(self.uncommitted),
        )

    def remote_url(self, name: str) -> str | None:
        return self.remotes.get(name)

    def add_remote(self, name: str, url: str) -> None:
        self.calls.append(("add_remote", name, url))
        if name in self.remotes:
            raise GitCommandError(f"remote {name} already exists", returncode=3)
        self.remotes[name] = url

    def fetch_upstream(self, remote_name: str, url: str) -> None:
        self.calls.append(("fetch", remote_name))
        if remote_name not in self.remotes:
            raise RemoteError(f"Remote '{remote_name}' is not configured")
        if self.fetch_error:
            raise RemoteError(self.fetch_error)
        self.refs |= self.fetched_refs

    def has_ref(self, ref: str) -> bool:
        return ref in self.refs

    def divergence(self, local_ref: str, upstream_ref: str) -> tuple[int, int]:
        if not (self.has_ref(local_ref) and self.has_ref(upstream_ref)):
            return 0, 0
        return self.ahead, self.behind

    def log(self, revision_range: str) -> list[CommitInfo]:
        if not all(self.has_ref(ref) for ref in split_revision_range(revision_range)):
            return []
        return list(self.commits)

    def show_file(self, ref: str, path: str) -> str | None:
        return self.files.get((ref, path))

    def describe_tag(self, ref: str) -> str | None:
        return self.tags.get(ref)

    def merge(self, upstream_ref: str) -> MergeResult:
        self.calls.append(("merge", upstream_ref))
        return self.merge_result

    def conflicted_files(self) -> set[str]:
        return set(self.conflicts)

    def abort_merge(self) -> None:
        self.calls.append(("abort_merge",))

    def called(self, name: str) -> bool:
        """Whether an operation with this name was invoked."""
        return any(call[0] == name for call in self.calls)


@pytest.fixture
def fake_probe() -> FakeProbe:
    """A clean checkout on main with the upstream remote configured."""
    return FakeProbe(remotes={"upstream": UPSTREAM_URL})


# =============================================================================
# Real git repositories
# =============================================================================

_GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test Author",
    "GIT_AUTHOR_EMAIL": "author@example.com",
    "GIT_COMMITTER_NAME": "Test Author",
    "GIT_COMMITTER_EMAIL": "author@example.com",
    "GIT_CONFIG_GLOBAL": os.devnull,
    "GIT_CONFIG_NOSYSTEM": "1",
}


def git(cwd: Path, *args: str) -> str:
    """Run git in `cwd` and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
        env={**os.environ, **_GIT_ENV},
    )
    return result.stdout


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    """Write a file and commit it."""
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)


@pytest.fixture
def git_repos(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> tuple[Path, Path]:
    """
    An upstream repository and a local clone of its first commit.

    The clone has no `upstream` remote yet. Returns (upstream, local).
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    for key, value in _GIT_ENV.items():
        monkeypatch.setenv(key, value)

    upstream = tmp_path / "upstream"
    upstream.mkdir()
    git(upstream, "init", "-q", "-b", "main")
    commit_file(upstream, "package.json", '{"version": "1.0.0"}\n', "Initial")
    commit_file(upstream, "src/site.yaml", "title: base\n", "Add site config")

    local = tmp_path / "local"
    git(tmp_path, "clone", "-q", str(upstream), str(local))
    git(local, "remote", "rename", "origin", "mine")
    return upstream, local


# =============================================================================
# Blog project trees
# =============================================================================

BLOG_FILES: dict[str, bytes] = {
    "src/content/blog/hello.md": b"# Hello\n",
    "src/content/blog/notes/first.md": b"First note\n",
    "config/site.yaml": b"title: My Blog\n",
    "src/pages/about.md": b"About me\n",
    "public/img/avatar.png": b"\x89PNG\r\n\x1a\n\x00avatar",
    ".env": b"SITE_URL=https://blog.example.com\n",
    "public/favicon.ico": b"\x00\x00\x01\x00icon",
    "src/assets/lqips.json": b'{"hello": "data:image/webp;base64,AAAA"}\n',
}


def populate_project(root: Path, files: dict[str, bytes] | None = None) -> Path:
    """Write a blog tree under `root`.

    The similarity and summary data files are left out so that full backups
    skip them.
    """
    for name, content in (files or BLOG_FILES).items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


@pytest.fixture
def blog_project(tmp_path: Path) -> Path:
    """A populated blog project; backups go to `<project>/backups`."""
    return populate_project(tmp_path / "blog")
