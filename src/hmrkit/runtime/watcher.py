from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from hmrkit.runtime.contracts import (
    WatcherEvent,
    WatcherState,
    transition_watcher_state,
)
from hmrkit.runtime.frameworks import should_ignore_path

DEFAULT_INCLUDE_PATTERNS = ["*.ts", "*.tsx", "*.js", "*.jsx", "*.vue", "*.svelte", "*.css", "*.html"]


@dataclass(frozen=True)
class WatcherPollResult:
    """Result from one watcher poll cycle."""

    should_dispatch: bool
    changed_paths: List[Path]


class PollingWatcher:
    """Polling-based source watcher over several roots, with include/exclude filters and debounce."""

    def __init__(
        self,
        roots: Iterable[Path],
        interval_ms: int = 500,
        debounce_ms: int = 100,
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None,
    ) -> None:
        self.roots = [Path(root) for root in roots]
        self.interval_ms = interval_ms
        self.debounce_ms = debounce_ms
        self.include_patterns = include_patterns or list(DEFAULT_INCLUDE_PATTERNS)
        self.exclude_patterns = exclude_patterns or []

        self.state: WatcherState = WatcherState.STOPPED
        self._snapshot: Dict[Path, int] = {}
        self._pending_changes: Set[Path] = set()
        self._last_change_at: Optional[float] = None

    def start(self) -> None:
        """Start watcher lifecycle and initialize file snapshot."""
        self.state = transition_watcher_state(self.state, WatcherEvent.START)
        self._snapshot = self._build_snapshot()

    def stop(self) -> None:
        self.state = transition_watcher_state(self.state, WatcherEvent.STOP)

    def complete_batch(self) -> None:
        """Return to watching once the dispatched batch was handed to the orchestrator."""
        if self.state != WatcherState.DISPATCHED:
            return
        self.state = transition_watcher_state(self.state, WatcherEvent.BATCH_HANDLED)

    def poll(self, now: float) -> WatcherPollResult:
        """Execute one poll cycle and return the batch once its debounce window has elapsed."""
        if self.state == WatcherState.STOPPED:
            raise RuntimeError("PollingWatcher is not started. Call start() before poll().")

        if self.state == WatcherState.DISPATCHED:
            return WatcherPollResult(should_dispatch=False, changed_paths=[])

        current_snapshot = self._build_snapshot()
        changed_paths = self._detect_changes(self._snapshot, current_snapshot)
        self._snapshot = current_snapshot

        if changed_paths:
            self._pending_changes.update(changed_paths)
            self._last_change_at = now
            self._enter_debounce_window()
            return WatcherPollResult(should_dispatch=False, changed_paths=[])

        if self.state == WatcherState.DEBOUNCING and self._last_change_at is not None:
            if (now - self._last_change_at) >= self.debounce_ms / 1000.0:
                self.state = transition_watcher_state(self.state, WatcherEvent.DEBOUNCE_ELAPSED)
                paths = sorted(self._pending_changes)
                self._pending_changes.clear()
                self._last_change_at = None
                return WatcherPollResult(should_dispatch=True, changed_paths=paths)

        return WatcherPollResult(should_dispatch=False, changed_paths=[])

    def tracked_paths(self) -> Set[Path]:
        return set(self._snapshot.keys())

    def _enter_debounce_window(self) -> None:
        if self.state in (WatcherState.WATCHING, WatcherState.DEBOUNCING):
            self.state = transition_watcher_state(self.state, WatcherEvent.FILE_CHANGE)
            self.state = transition_watcher_state(self.state, WatcherEvent.DEBOUNCE_WINDOW_OPEN)

    def _build_snapshot(self) -> Dict[Path, int]:
        snapshot: Dict[Path, int] = {}
        for root in self.roots:
            if not root.exists():
                continue

            for path in root.rglob("*"):
                if not path.is_file():
                    continue

                relative = path.relative_to(root).as_posix()
                if should_ignore_path(path.as_posix()) or not self._is_tracked_path(relative, path.name):
                    continue

                try:
                    snapshot[path.resolve()] = path.stat().st_mtime_ns
                except OSError:
                    continue

        return snapshot

    def _is_tracked_path(self, relative_path: str, filename: str) -> bool:
        included = any(
            fnmatch(relative_path, pattern) or fnmatch(filename, pattern)
            for pattern in self.include_patterns
        )
        if not included:
            return False

        excluded = any(
            fnmatch(relative_path, pattern) or fnmatch(filename, pattern)
            for pattern in self.exclude_patterns
        )
        return not excluded

    @staticmethod
    def _detect_changes(previous: Dict[Path, int], current: Dict[Path, int]) -> Set[Path]:
        changes: Set[Path] = set(current.keys() ^ previous.keys())
        for existing in previous.keys() & current.keys():
            if previous[existing] != current[existing]:
                changes.add(existing)
        return changes
