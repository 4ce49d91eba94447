"""
Upstream update workflow: detection, state machine, session and merge.
"""

from koharu.updates.fetcher import UpdateFetcher
from koharu.updates.install import DependencyInstaller, InstallResult
from koharu.updates.merge import MergeCoordinator
from koharu.updates.models import (
    UNKNOWN_VERSION,
    ActionType,
    UpdateAction,
    UpdateInfo,
    UpdateOptions,
    UpdateState,
    UpdateStatus,
)
from koharu.updates.session import UpdateSession, exit_code_for
from koharu.updates.state_machine import Command, Transition, transition
from koharu.updates.version import VersionMarkerReader

__all__ = [
    "UNKNOWN_VERSION",
    "ActionType",
    "Command",
    "DependencyInstaller",
    "InstallResult",
    "MergeCoordinator",
    "Transition",
    "UpdateAction",
    "UpdateFetcher",
    "UpdateInfo",
    "UpdateOptions",
    "UpdateSession",
    "UpdateState",
    "UpdateStatus",
    "VersionMarkerReader",
    "exit_code_for",
    "transition",
]
