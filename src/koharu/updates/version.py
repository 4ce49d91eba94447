"""
Version marker lookup.

The project version is read from a JSON manifest (package.json by default) at
a given git ref, falling back to the nearest tag. A missing or unreadable
marker yields "unknown" instead of an error.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from koharu.logging import get_logger
from koharu.updates.models import UNKNOWN_VERSION

if TYPE_CHECKING:
    from koharu.vcs.probe import VersionControlProbe

logger = get_logger(__name__)


def parse_version_marker(content: str, field: str = "version") -> str | None:
    """
    Extract a version string from JSON manifest content.

    Dotted field names ("tool.version") address nested objects.

    Returns:
        The version string, or None if the content is not JSON or the field
        is missing or not a non-empty string.
    """
    try:
        data: Any = json.loads(content)
    except ValueError:
        return None

    for key in field.split("."):
        if not isinstance(data, dict) or key not in data:
            return None
        data = data[key]

    if isinstance(data, str) and data.strip():
        return data.strip()
    return None


def read_local_version(
    project_root: Path,
    version_file: str = "package.json",
    version_field: str = "version",
) -> str:
    """Read the version marker from the working tree."""
    path = project_root / version_file
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return UNKNOWN_VERSION
    return parse_version_marker(content, version_field) or UNKNOWN_VERSION


class VersionMarkerReader:
    """Reads the version marker at a git ref through a VersionControlProbe."""

    def __init__(
        self,
        probe: VersionControlProbe,
        version_file: str = "package.json",
        version_field: str = "version",
    ) -> None:
        self._probe = probe
        self.version_file = version_file
        self.version_field = version_field

    def read(self, ref: str) -> str:
        """
        Return the version at `ref`.

        Args:
            ref: Any git ref, e.g. "HEAD" or "upstream/main".

        Returns:
            The manifest version, else the nearest tag, else "unknown".
        """
        content = self._probe.show_file(ref, self.version_file)
        if content is not None:
            version = parse_version_marker(content, self.version_field)
            if version:
                return version
            logger.debug(
                "Version field missing from marker file",
                extra={"ref": ref, "file": self.version_file},
            )

        tag = self._probe.describe_tag(ref)
        return tag or UNKNOWN_VERSION
