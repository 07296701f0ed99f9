import os
from pathlib import Path

import pytest

from hmrkit.runtime.contracts import WatcherState
from hmrkit.runtime.watcher import PollingWatcher


def _touch(path: Path, content: str, mtime_ns: int) -> None:
    path.write_text(content)
    os.utime(path, ns=(mtime_ns, mtime_ns))


def test_polling_watcher_tracks_sources_across_roots(tmp_path: Path):
    react = tmp_path / "react"
    svelte = tmp_path / "svelte"
    (react / "node_modules" / "lib").mkdir(parents=True)
    svelte.mkdir()
    (react / "App.tsx").write_text("export default 1;")
    (react / "notes.md").write_text("skip")
    (react / "node_modules" / "lib" / "index.js").write_text("skip")
    (svelte / "Counter.svelte").write_text("<p />")
    (svelte / "Counter.test.svelte").write_text("<p />")

    watcher = PollingWatcher(
        roots=[react, svelte, tmp_path / "missing"],
        exclude_patterns=["*.test.*"],
    )
    watcher.start()

    assert watcher.tracked_paths() == {(react / "App.tsx").resolve(), (svelte / "Counter.svelte").resolve()}


def test_polling_watcher_debounces_changes_until_window_elapses(tmp_path: Path):
    watcher = PollingWatcher(roots=[tmp_path], debounce_ms=200)
    watcher.start()

    (tmp_path / "page.html").write_text("<h1>v1</h1>")

    first_poll = watcher.poll(now=0.10)
    assert first_poll.should_dispatch is False
    assert first_poll.changed_paths == []
    assert watcher.state == WatcherState.DEBOUNCING

    second_poll = watcher.poll(now=0.25)
    assert second_poll.should_dispatch is False

    final_poll = watcher.poll(now=0.35)
    assert final_poll.should_dispatch is True
    assert final_poll.changed_paths == [(tmp_path / "page.html").resolve()]
    assert watcher.state == WatcherState.DISPATCHED

    watcher.complete_batch()
    assert watcher.state == WatcherState.WATCHING


def test_polling_watcher_holds_changes_while_a_batch_is_dispatched(tmp_path: Path):
    first = tmp_path / "a.ts"
    second = tmp_path / "b.ts"
    _touch(first, "a1", 1_000_000_000)

    watcher = PollingWatcher(roots=[tmp_path], debounce_ms=100)
    watcher.start()

    _touch(first, "a2", 2_000_000_000)
    watcher.poll(now=1.0)
    assert watcher.poll(now=1.2).should_dispatch is True

    second.write_text("b1")
    assert watcher.poll(now=1.3).changed_paths == []

    watcher.complete_batch()
    watcher.poll(now=1.4)
    ready = watcher.poll(now=1.6)
    assert ready.changed_paths == [second.resolve()]


def test_polling_watcher_coalesces_changes_inside_the_window(tmp_path: Path):
    first = tmp_path / "a.ts"
    second = tmp_path / "b.ts"

    watcher = PollingWatcher(roots=[tmp_path], debounce_ms=100)
    watcher.start()

    first.write_text("a")
    watcher.poll(now=1.0)
    second.write_text("b")
    watcher.poll(now=1.05)

    assert watcher.poll(now=1.1).should_dispatch is False
    ready = watcher.poll(now=1.2)
    assert ready.changed_paths == sorted([first.resolve(), second.resolve()])


def test_polling_watcher_detects_deleted_and_updated_files(tmp_path: Path):
    gone = tmp_path / "gone.ts"
    edited = tmp_path / "edit.ts"
    gone.write_text("x")
    _touch(edited, "v1", 1_000_000_000)
    gone_key = gone.resolve()

    watcher = PollingWatcher(roots=[tmp_path], debounce_ms=100)
    watcher.start()

    gone.unlink()
    _touch(edited, "v2", 2_000_000_000)

    assert watcher.poll(now=1.0).should_dispatch is False
    ready = watcher.poll(now=1.2)
    assert ready.should_dispatch is True
    assert set(ready.changed_paths) == {gone_key, edited.resolve()}


def test_polling_watcher_requires_start(tmp_path: Path):
    watcher = PollingWatcher(roots=[tmp_path])

    with pytest.raises(RuntimeError, match="not started"):
        watcher.poll(now=0.0)

    watcher.start()
    watcher.stop()
    assert watcher.state == WatcherState.STOPPED
