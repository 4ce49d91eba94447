"""
Version control access for koharu.

VersionControlProbe is the abstract interface; GitProbe implements it on top
of the git command line.
"""

from koharu.vcs.git import GitProbe
from koharu.vcs.models import CommitInfo, GitStatusInfo, MergeResult
from koharu.vcs.probe import (
    VersionControlProbe,
    normalize_remote_url,
    split_revision_range,
)

__all__ = [
    "VersionControlProbe",
    "GitProbe",
    "GitStatusInfo",
    "CommitInfo",
    "MergeResult",
    "normalize_remote_url",
    "split_revision_range",
]
