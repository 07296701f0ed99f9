from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hmrkit.utils.diagnostics import HMRDiagnostic


class RebuildPhase(str, Enum):
    """Phases of one rebuild cycle."""

    IDLE = "idle"
    REBUILDING = "rebuilding"


class RebuildEvent(str, Enum):
    """Events that drive the rebuild cycle."""

    CHANGES_ACCEPTED = "changes_accepted"
    REBUILD_SUCCEEDED = "rebuild_succeeded"
    REBUILD_FAILED = "rebuild_failed"


class RebuildStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class WatcherState(str, Enum):
    """High-level states for polling watcher lifecycle and change batching."""

    STOPPED = "stopped"
    WATCHING = "watching"
    CHANGE_DETECTED = "change_detected"
    DEBOUNCING = "debouncing"
    DISPATCHED = "dispatched"


class WatcherEvent(str, Enum):
    """Events that drive watcher state transitions."""

    START = "start"
    FILE_CHANGE = "file_change"
    DEBOUNCE_WINDOW_OPEN = "debounce_window_open"
    DEBOUNCE_ELAPSED = "debounce_elapsed"
    BATCH_HANDLED = "batch_handled"
    STOP = "stop"


class RebuildResult(BaseModel):
    """Outcome of one rebuild cycle as seen by the host."""

    model_config = ConfigDict(extra="forbid")

    status: RebuildStatus
    affected_frameworks: List[str] = Field(default_factory=list)
    manifest: Dict[str, str] = Field(default_factory=dict)
    module_versions: Dict[str, int] = Field(default_factory=dict)
    diagnostics: List[HMRDiagnostic] = Field(default_factory=list)
    swept_files: int = 0
    error: Optional[str] = None


def transition_rebuild_state(current: RebuildPhase, event: RebuildEvent) -> RebuildPhase:
    """Compute the next rebuild phase for an event.

    A second batch cannot be accepted while rebuilding; callers queue it instead.
    Invalid transitions raise ValueError.
    """

    if current == RebuildPhase.IDLE:
        if event == RebuildEvent.CHANGES_ACCEPTED:
            return RebuildPhase.REBUILDING
        raise ValueError(f"Invalid rebuild transition: {current} -> {event}")

    if current == RebuildPhase.REBUILDING:
        if event in {RebuildEvent.REBUILD_SUCCEEDED, RebuildEvent.REBUILD_FAILED}:
            return RebuildPhase.IDLE
        raise ValueError(f"Invalid rebuild transition: {current} -> {event}")

    raise ValueError(f"Unknown rebuild phase: {current}")


def transition_watcher_state(current: WatcherState, event: WatcherEvent) -> WatcherState:
    """Compute the next watcher state for a given event.

    Invalid transitions raise ValueError.
    """

    if event == WatcherEvent.STOP:
        return WatcherState.STOPPED

    if current == WatcherState.STOPPED:
        if event == WatcherEvent.START:
            return WatcherState.WATCHING
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    if current == WatcherState.WATCHING:
        if event == WatcherEvent.FILE_CHANGE:
            return WatcherState.CHANGE_DETECTED
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    if current == WatcherState.CHANGE_DETECTED:
        if event == WatcherEvent.DEBOUNCE_WINDOW_OPEN:
            return WatcherState.DEBOUNCING
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    if current == WatcherState.DEBOUNCING:
        if event == WatcherEvent.FILE_CHANGE:
            return WatcherState.CHANGE_DETECTED
        if event == WatcherEvent.DEBOUNCE_ELAPSED:
            return WatcherState.DISPATCHED
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    if current == WatcherState.DISPATCHED:
        if event == WatcherEvent.BATCH_HANDLED:
            return WatcherState.WATCHING
        raise ValueError(f"Invalid watcher transition: {current} -> {event}")

    raise ValueError(f"Unknown watcher state: {current}")
