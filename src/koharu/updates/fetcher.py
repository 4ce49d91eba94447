"""
Upstream update detection.

UpdateFetcher makes sure the upstream remote is configured, fetches it and
summarizes how far the local branch and the upstream branch have diverged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from koharu.errors import GitCommandError, RemoteError
from koharu.logging import get_logger
from koharu.updates.models import UpdateInfo
from koharu.updates.version import VersionMarkerReader
from koharu.vcs.probe import normalize_remote_url

if TYPE_CHECKING:
    from koharu.config import UpstreamConfig
    from koharu.vcs.probe import VersionControlProbe

logger = get_logger(__name__)

LOCAL_REF = "HEAD"


class UpdateFetcher:
    """
    Computes UpdateInfo for the local checkout against the upstream template.

    Attributes:
        upstream: Upstream remote settings.
    """

    def __init__(
        self,
        probe: VersionControlProbe,
        upstream: UpstreamConfig,
        version_reader: VersionMarkerReader | None = None,
    ) -> None:
        self._probe = probe
        self.upstream = upstream
        self._version_reader = version_reader or VersionMarkerReader(
            probe, upstream.version_file, upstream.version_field
        )

    def ensure_upstream_remote(self, *, allow_add: bool = True) -> bool:
        """
        Make sure the upstream remote exists and points at the configured URL.

        Re-adding a remote that already has the configured URL is a no-op. A
        remote of the same name pointing elsewhere is never repointed.

        Args:
            allow_add: Add the remote when it is missing.

        Returns:
            True if the remote already existed, False if it was added.

        Raises:
            RemoteError: If the remote points elsewhere, is missing while
                allow_add is False, or cannot be added.
        """
        name, url = self.upstream.remote, self.upstream.url
        current = self._probe.remote_url(name)

        if current is not None:
            if normalize_remote_url(current) != normalize_remote_url(url):
                raise RemoteError(
                    f"Remote '{name}' already exists but points to {current}. "
                    f"Please update it to {url}",
                    details={"remote": name, "current_url": current, "expected_url": url},
                )
            return True

        if not allow_add:
            raise RemoteError(
                f"Remote '{name}' is not configured. Check-only mode will not modify "
                f"the repository; add it with: git remote add {name} {url}",
                details={"remote": name, "expected_url": url},
            )

        try:
            self._probe.add_remote(name, url)
        except GitCommandError as e:
            raise RemoteError(
                f"Unable to add remote '{name}': {e.message}",
                details={"remote": name, "expected_url": url, **e.details},
            ) from e
        return False

    def check_for_updates(self, *, allow_remote_changes: bool = True) -> UpdateInfo:
        """
        Configure and fetch the upstream remote, then compute the divergence.

        Args:
            allow_remote_changes: When False (check-only mode) neither add the
                remote nor fetch; the existing remote-tracking ref is used.

        Returns:
            UpdateInfo describing the upstream commits not yet merged.

        Raises:
            RemoteError: If the remote is misconfigured or unreachable, or
                the tracking ref is missing in check-only mode.
        """
        self.ensure_upstream_remote(allow_add=allow_remote_changes)

        if allow_remote_changes:
            self._probe.fetch_upstream(self.upstream.remote, self.upstream.url)
        elif not self._probe.has_ref(self.upstream.tracking_ref):
            raise RemoteError(
                f"No local copy of {self.upstream.tracking_ref}. Check-only mode "
                f"will not run git fetch; run: git fetch {self.upstream.remote}",
                details={"ref": self.upstream.tracking_ref},
            )

        return self.compute_update_info()

    def compute_update_info(self) -> UpdateInfo:
        """Compute UpdateInfo from refs already present locally."""
        tracking_ref = self.upstream.tracking_ref
        current_version = self._version_reader.read(LOCAL_REF)

        if self._probe.remote_url(self.upstream.remote) is None or not self._probe.has_ref(
            tracking_ref
        ):
            return UpdateInfo.no_upstream(current_version=current_version)

        ahead, behind = self._probe.divergence(LOCAL_REF, tracking_ref)
        commits = self._probe.log(f"{LOCAL_REF}..{tracking_ref}")

        info = UpdateInfo(
            has_upstream=True,
            behind_count=behind,
            ahead_count=ahead,
            commits=tuple(commits),
            current_version=current_version,
            latest_version=self._version_reader.read(tracking_ref),
        )
        logger.info(
            "Computed upstream divergence",
            extra={
                "ahead": ahead,
                "behind": behind,
                "current_version": info.current_version,
                "latest_version": info.latest_version,
            },
        )
        return info
