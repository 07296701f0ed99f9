from hmrkit.runtime.versions import ModuleVersionTracker, check_staleness, merge_versions


def test_check_staleness_missing_side_means_no_sync():
    assert check_staleness(None, {"a": 1}).needs_sync is False
    assert check_staleness({"a": 1}, None).stale == []
    assert check_staleness("not-a-map", {"a": 1}).needs_sync is False


def test_check_staleness_lower_client_version_is_stale():
    report = check_staleness({"a": 2}, {"a": 1})

    assert report.needs_sync is True
    assert report.stale == ["a"]


def test_check_staleness_equal_versions_are_in_sync():
    report = check_staleness({"a": 2}, {"a": 2})

    assert report.needs_sync is False
    assert report.stale == []


def test_check_staleness_absent_client_key_is_stale():
    report = check_staleness({"a": 1, "b": 3}, {"a": 1})

    assert report.stale == ["b"]


def test_merge_versions_last_write_wins_and_disjoint_deltas_commute():
    base = {"a": 1, "b": 1}

    assert merge_versions(base, {"b": 4}) == {"a": 1, "b": 4}
    assert merge_versions(merge_versions(base, {"x": 2}), {"y": 3}) == merge_versions(
        merge_versions(base, {"y": 3}), {"x": 2}
    )
    assert merge_versions(None, None) == {}
    assert base == {"a": 1, "b": 1}


def test_tracker_versions_are_strictly_increasing_across_modules():
    tracker = ModuleVersionTracker()

    first = tracker.increment("HomeIndex")
    second = tracker.increment("AboutIndex")
    third = tracker.increment("HomeIndex")

    assert first < second < third
    assert tracker.get("HomeIndex") == third
    assert tracker.snapshot() == {"HomeIndex": third, "AboutIndex": second}


def test_tracker_increment_many_bumps_each_module_once():
    tracker = ModuleVersionTracker()

    updated = tracker.increment_many(["A", "B", "A"])

    assert updated == {"A": 1, "B": 2}
    assert len(tracker) == 2


def test_tracker_clear():
    tracker = ModuleVersionTracker()
    tracker.increment_many(["A", "B"])

    tracker.clear()
    assert tracker.snapshot() == {}
    assert tracker.get("A") is None
