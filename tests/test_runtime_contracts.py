import pytest

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


def test_rebuild_phase_cycle():
    phase = transition_rebuild_state(RebuildPhase.IDLE, RebuildEvent.CHANGES_ACCEPTED)
    assert phase == RebuildPhase.REBUILDING

    assert transition_rebuild_state(phase, RebuildEvent.REBUILD_SUCCEEDED) == RebuildPhase.IDLE
    assert transition_rebuild_state(phase, RebuildEvent.REBUILD_FAILED) == RebuildPhase.IDLE


def test_rebuild_phase_rejects_second_batch_while_rebuilding():
    with pytest.raises(ValueError, match="Invalid rebuild transition"):
        transition_rebuild_state(RebuildPhase.REBUILDING, RebuildEvent.CHANGES_ACCEPTED)


def test_rebuild_phase_rejects_completion_while_idle():
    with pytest.raises(ValueError):
        transition_rebuild_state(RebuildPhase.IDLE, RebuildEvent.REBUILD_SUCCEEDED)


def test_watcher_transitions_happy_path():
    state = transition_watcher_state(WatcherState.STOPPED, WatcherEvent.START)
    assert state == WatcherState.WATCHING

    state = transition_watcher_state(state, WatcherEvent.FILE_CHANGE)
    assert state == WatcherState.CHANGE_DETECTED

    state = transition_watcher_state(state, WatcherEvent.DEBOUNCE_WINDOW_OPEN)
    assert state == WatcherState.DEBOUNCING

    state = transition_watcher_state(state, WatcherEvent.DEBOUNCE_ELAPSED)
    assert state == WatcherState.DISPATCHED

    state = transition_watcher_state(state, WatcherEvent.BATCH_HANDLED)
    assert state == WatcherState.WATCHING


def test_watcher_stop_is_always_allowed():
    for state in WatcherState:
        assert transition_watcher_state(state, WatcherEvent.STOP) == WatcherState.STOPPED


def test_watcher_rejects_invalid_transition():
    with pytest.raises(ValueError, match="Invalid watcher transition"):
        transition_watcher_state(WatcherState.WATCHING, WatcherEvent.DEBOUNCE_ELAPSED)


def test_rebuild_result_forbids_unknown_fields():
    result = RebuildResult(status=RebuildStatus.SUCCESS, affected_frameworks=["react"])
    assert result.swept_files == 0

    with pytest.raises(ValueError):
        RebuildResult(status=RebuildStatus.SUCCESS, unexpected=True)
