"""
Tests for hunkwise.decisions — per-segment decision tracking.

Run: python3 test_decisions.py
From: python/
"""

import sys

from hunkwise.decisions import DecisionManager
from hunkwise.models import Decision


def test_all_blocks_start_pending():
    manager = DecisionManager([1, 3, 5])
    assert manager.total_count() == 3
    assert manager.resolved_count() == 0
    assert all(manager.get(i) == Decision.PENDING for i in (1, 3, 5))
    print("PASS: test_all_blocks_start_pending")


def test_set_get_and_undo():
    manager = DecisionManager([1, 3])
    manager.set(1, Decision.INCOMING)
    manager.set(3, Decision.BOTH)
    assert manager.get(1) == Decision.INCOMING
    assert manager.get(3) == Decision.BOTH
    assert manager.resolved_count() == 2
    assert manager.is_complete()

    manager.undo(3)
    assert manager.get(3) == Decision.PENDING
    assert manager.resolved_count() == 1
    print("PASS: test_set_get_and_undo")


def test_unknown_index_is_a_noop():
    events = []
    manager = DecisionManager([1], on_change=events.append)

    manager.set(0, Decision.INCOMING)
    manager.set(7, Decision.CURRENT)
    manager.undo(42)

    assert manager.resolved_count() == 0
    assert manager.get(7) == Decision.PENDING
    assert 7 not in manager.snapshot()
    assert events == []
    print("PASS: test_unknown_index_is_a_noop")


def test_change_event_carries_progress():
    events = []
    manager = DecisionManager([2, 4], on_change=events.append, segment_index=1)
    manager.set(4, Decision.CURRENT)

    assert len(events) == 1
    event = events[0]
    assert event.block_index == 4
    assert event.decision == Decision.CURRENT
    assert (event.resolved_count, event.total_count) == (1, 2)
    assert event.segment_index == 1
    print("PASS: test_change_event_carries_progress")


def test_bulk_operations_notify_once():
    events = []
    manager = DecisionManager([1, 3, 5])
    unsubscribe = manager.subscribe(events.append)

    manager.accept_all_incoming()
    assert len(events) == 1
    assert events[-1].block_index == 5
    assert events[-1].decision == Decision.INCOMING
    assert manager.resolved_count() == 3

    manager.accept_all_current()
    assert all(manager.get(i) == Decision.CURRENT for i in (1, 3, 5))
    assert len(events) == 2

    manager.reset_all()
    assert manager.resolved_count() == 0
    assert events[-1].decision == Decision.PENDING
    assert len(events) == 3

    unsubscribe()
    manager.accept_all_incoming()
    assert len(events) == 3
    print("PASS: test_bulk_operations_notify_once")


def test_bulk_on_empty_manager_is_silent():
    events = []
    manager = DecisionManager([], on_change=events.append)
    manager.accept_all_incoming()
    manager.reset_all()
    assert events == []
    assert manager.total_count() == 0
    print("PASS: test_bulk_on_empty_manager_is_silent")


def test_snapshot_is_detached_and_read_only():
    manager = DecisionManager([1, 3])
    manager.set(1, Decision.INCOMING)
    snapshot = manager.snapshot()

    manager.set(1, Decision.CURRENT)
    manager.set(3, Decision.BOTH)
    assert snapshot[1] == Decision.INCOMING
    assert snapshot[3] == Decision.PENDING

    try:
        snapshot[1] = Decision.BOTH
        assert False, "snapshot should be read-only"
    except TypeError:
        pass
    print("PASS: test_snapshot_is_detached_and_read_only")


def test_string_decisions_are_coerced():
    manager = DecisionManager([0])
    manager.set(0, "both")
    assert manager.get(0) is Decision.BOTH
    print("PASS: test_string_decisions_are_coerced")


if __name__ == '__main__':
    tests = [
        test_all_blocks_start_pending,
        test_set_get_and_undo,
        test_unknown_index_is_a_noop,
        test_change_event_carries_progress,
        test_bulk_operations_notify_once,
        test_bulk_on_empty_manager_is_silent,
        test_snapshot_is_detached_and_read_only,
        test_string_decisions_are_coerced,
    ]

    passed = 0
    failed = 0
    for t in tests:
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"FAIL: {t.__name__} — {e}")
            failed += 1

    print(f"\n{'=' * 50}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed > 0:
        sys.exit(1)
    else:
        print("All tests passed!")
