"""Rebuild lifecycle, client protocol and module version tracking."""

from hmrkit.runtime.contracts import (
    RebuildEvent,
    RebuildPhase,
    RebuildResult,
    RebuildStatus,
    WatcherEvent,
    WatcherState,
    transition_rebuild_state,
    transition_watcher_state,
)
from hmrkit.runtime.protocol import parse_client_message, validate_client_message
from hmrkit.runtime.state import ClientHandle, RebuildState
from hmrkit.runtime.versions import ModuleVersionTracker, StalenessReport, check_staleness, merge_versions

__all__ = [
    "ClientHandle",
    "ModuleVersionTracker",
    "RebuildEvent",
    "RebuildPhase",
    "RebuildResult",
    "RebuildState",
    "RebuildStatus",
    "StalenessReport",
    "WatcherEvent",
    "WatcherState",
    "check_staleness",
    "merge_versions",
    "parse_client_message",
    "transition_rebuild_state",
    "transition_watcher_state",
    "validate_client_message",
]
