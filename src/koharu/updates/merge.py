"""
Merge coordination.

MergeCoordinator merges the upstream tip into the current branch and
classifies the outcome. A conflicted merge is left in progress so the user can
resolve it by hand; it is only aborted on explicit request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from koharu.logging import get_logger
from koharu.vcs.models import MergeResult

if TYPE_CHECKING:
    from koharu.config import UpstreamConfig
    from koharu.vcs.probe import VersionControlProbe

logger = get_logger(__name__)


class MergeCoordinator:
    """Merges the upstream branch and reports success, conflict or failure."""

    def __init__(self, probe: VersionControlProbe, upstream: UpstreamConfig) -> None:
        self._probe = probe
        self.upstream = upstream

    def merge_from_upstream(self) -> MergeResult:
        """
        Merge the upstream tracking ref into the current branch.

        Returns:
            A successful result (also when there is nothing to merge), a
            conflicted result listing the unmerged paths, or a failed result
            carrying the git output.
        """
        result = self._probe.merge(self.upstream.tracking_ref)
        if result.success:
            return result

        conflicts = self._probe.conflicted_files()
        if conflicts:
            logger.warning(
                "Merge stopped with conflicts",
                extra={"ref": self.upstream.tracking_ref, "conflict_files": sorted(conflicts)},
            )
            return MergeResult.conflicted(conflicts)

        logger.error(
            "Merge failed",
            extra={"ref": self.upstream.tracking_ref, "error": result.error},
        )
        return result

    def abort(self) -> None:
        """
        Abort the in-progress merge.

        Raises:
            GitCommandError: If no merge is in progress.
        """
        self._probe.abort_merge()
