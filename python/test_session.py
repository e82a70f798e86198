"""
Tests for hunkwise.session and hunkwise.host — streaming, per-segment review and apply.

Run: python3 test_session.py
From: python/
"""

import sys

from hunkwise.host import TextDocument
from hunkwise.models import Decision, Position
from hunkwise.segments import BOUNDARY_MARKER, join_segments
from hunkwise.session import Phase, SegmentCoordinator

DOC = "one\ntwo\nthree\nfour\nfive"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _multi_session(doc=None):
    doc = doc or TextDocument(DOC)
    selections = [doc.select_lines(1, 1), doc.select_lines(4, 4)]
    return doc, SegmentCoordinator(selections)


def _stream(session, text, size=4):
    for i in range(0, len(text), size):
        session.append_chunk(text[i : i + size])


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def test_single_selection_end_to_end():
    doc = TextDocument("title\nA\nB\nC\nend")
    session = SegmentCoordinator([doc.select_lines(2, 4)])
    assert session.phase == Phase.STREAMING

    session.append_chunk("A\nX")
    session.append_chunk("\nC\n\n")
    segments = session.complete()
    assert session.phase == Phase.READY

    segment = segments[0]
    assert segment.replacement_text == "A\nX\nC"
    modified = segment.blocks[1]
    assert modified.original_value == "B"
    assert modified.original_start_line == 3  # absolute document line
    assert session.aggregate_progress() == (0, 1)

    session.set_decision(0, 1, Decision.INCOMING)
    assert session.aggregate_progress() == (1, 1)

    result = session.apply(doc)
    assert result.ok
    assert result.applied == 1
    assert doc.text == "title\nA\nX\nC\nend"
    print("PASS: test_single_selection_end_to_end")


def test_multi_selection_apply_bottom_up():
    doc, session = _multi_session()
    _stream(session, join_segments(["ONE", "FOUR"]))
    session.complete()

    assert len(session.segments) == 2
    assert session.segment(1).start_line == 4
    session.accept_all_incoming()
    assert session.aggregate_progress() == (2, 2)

    finalized = session.finalize()
    assert [ins.segment_index for ins in finalized.replacements] == [1, 0]
    assert finalized.texts == ["ONE", "FOUR"]

    assert session.apply(doc).ok
    assert doc.text == "ONE\ntwo\nthree\nFOUR\nfive"
    print("PASS: test_multi_selection_apply_bottom_up")


def test_segments_are_independent():
    doc, session = _multi_session()
    session.append_chunk(join_segments(["ONE", "FOUR"]))
    session.complete()

    session.set_decision(1, 0, Decision.INCOMING)
    assert session.segment(0).decisions.get(0) == Decision.PENDING

    finalized = session.finalize(Decision.CURRENT)
    assert finalized.texts == ["one", "FOUR"]
    assert session.finalize(Decision.INCOMING).texts == ["ONE", "FOUR"]
    print("PASS: test_segments_are_independent")


def test_previews_while_streaming():
    doc, session = _multi_session()
    session.append_chunk("ONE")
    session.append_chunk(BOUNDARY_MARKER[:9])

    previews = session.previews()
    assert [p.segment_index for p in previews] == [0, 1]
    assert previews[0].replacement_text == "ONE"
    assert previews[1].pending
    assert previews[1].start_line == 4

    session.append_chunk(BOUNDARY_MARKER[9:] + "FO")
    previews = session.previews()
    assert previews[1].replacement_text == "FO"
    assert not previews[1].pending
    # Previews never create review state
    assert session.segments == ()
    print("PASS: test_previews_while_streaming")


def test_segment_count_mismatch_falls_back():
    doc = TextDocument("a\nb\nc")
    session = SegmentCoordinator([doc.select_lines(1, 1), doc.select_lines(2, 2), doc.select_lines(3, 3)])
    session.append_chunk(join_segments(["A", "B"]))
    segments = session.complete()

    assert session.fallback_used
    assert len(segments) == 3
    assert segments[0].replacement_text == "A\nB"
    assert segments[1].replacement_text == ""
    assert segments[2].replacement_text == ""
    assert session.finalize(Decision.CURRENT).texts == ["a", "b", "c"]
    print("PASS: test_segment_count_mismatch_falls_back")


def test_stream_error_makes_finalize_a_noop():
    doc, session = _multi_session()
    session.append_chunk("partial")
    session.fail("Request timed out")

    assert session.phase == Phase.READY
    assert session.segments == ()
    result = session.finalize()
    assert not result.ok
    assert result.error == "Request timed out"
    assert result.replacements == []

    applied = session.apply(doc)
    assert applied.error == "Request timed out"
    assert doc.text == DOC
    print("PASS: test_stream_error_makes_finalize_a_noop")


def test_cancel_discards_state():
    _doc, session = _multi_session()
    session.append_chunk(join_segments(["ONE", "FOUR"]))
    session.complete()
    session.accept_all_incoming()

    session.cancel()
    assert session.segments == ()
    assert session.aggregate_progress() == (0, 0)
    try:
        session.finalize()
        assert False, "finalize after cancel should raise"
    except RuntimeError:
        pass
    print("PASS: test_cancel_discards_state")


def test_lifecycle_misuse_raises():
    _doc, session = _multi_session()
    try:
        session.finalize()
        assert False, "finalize while streaming should raise"
    except RuntimeError:
        pass

    session.complete()
    try:
        session.append_chunk("late")
        assert False, "append after completion should raise"
    except RuntimeError:
        pass
    try:
        session.complete()
        assert False, "second completion should raise"
    except RuntimeError:
        pass
    print("PASS: test_lifecycle_misuse_raises")


def test_unknown_segment_and_block_are_ignored():
    _doc, session = _multi_session()
    session.append_chunk(join_segments(["ONE", "FOUR"]))
    session.complete()

    session.set_decision(9, 0, Decision.INCOMING)
    session.set_decision(0, 99, Decision.INCOMING)
    session.undo(5, 0)
    assert session.aggregate_progress() == (0, 2)
    print("PASS: test_unknown_segment_and_block_are_ignored")


def test_events_are_tagged_with_segment():
    _doc, session = _multi_session()
    session.append_chunk(join_segments(["ONE", "FOUR"]))
    session.complete()

    events = []
    unsubscribe = session.subscribe(events.append)
    session.set_decision(1, 0, Decision.BOTH)
    session.accept_all_current()

    assert events[0].segment_index == 1
    assert events[0].decision == Decision.BOTH
    # One event per segment for the bulk operation
    assert [e.segment_index for e in events[1:]] == [0, 1]

    unsubscribe()
    session.reset_all()
    assert len(events) == 3
    print("PASS: test_events_are_tagged_with_segment")


def test_reset_then_current_restores_document():
    doc, session = _multi_session()
    session.append_chunk(join_segments(["ONE", "FOUR"]))
    session.complete()
    session.accept_all_incoming()
    session.reset_all()

    assert session.apply(doc, Decision.CURRENT).ok
    assert doc.text == DOC
    print("PASS: test_reset_then_current_restores_document")


def test_edited_replacement_is_applied():
    doc = TextDocument("A\nB\nC")
    session = SegmentCoordinator([doc.select_lines(1, 3)])
    session.append_chunk("A\nX\nC")
    session.complete()

    assert session.edit_replacement(0, 1, "Y")
    assert not session.edit_replacement(0, 0, "ignored")
    assert not session.edit_replacement(3, 1, "ignored")

    session.set_decision(0, 1, Decision.INCOMING)
    assert session.finalize().texts == ["A\nY\nC"]
    print("PASS: test_edited_replacement_is_applied")


def test_host_failure_keeps_state_for_retry():
    _doc, session = _multi_session()
    session.append_chunk(join_segments(["ONE", "FOUR"]))
    session.complete()
    session.accept_all_incoming()

    # Host text shrank: the stored ranges no longer exist
    stale = TextDocument("one")
    result = session.apply(stale)
    assert not result.ok
    assert stale.text == "one"
    assert session.aggregate_progress() == (2, 2)

    fresh = TextDocument(DOC)
    assert session.apply(fresh).ok
    assert fresh.text == "ONE\ntwo\nthree\nFOUR\nfive"
    print("PASS: test_host_failure_keeps_state_for_retry")


def test_for_text_single_selection():
    session = SegmentCoordinator.for_text("A\nB", start=Position(line=2, ch=0))
    selection = session.selections[0]
    assert selection.end == Position(line=3, ch=1)
    assert selection.start_line == 3

    session.append_chunk("A\nC")
    session.complete()
    assert session.segment(0).blocks[1].original_start_line == 4
    print("PASS: test_for_text_single_selection")


def test_text_document_positions():
    doc = TextDocument("ab\ncde\n")
    assert doc.offset_at(Position(line=1, ch=2)) == 5
    assert doc.position_at(5) == Position(line=1, ch=2)
    assert doc.get_range(Position(line=0, ch=1), Position(line=1, ch=1)) == "b\nc"

    for bad in (Position(line=5, ch=0), Position(line=0, ch=9)):
        try:
            doc.offset_at(bad)
            assert False, "out-of-range position should raise"
        except ValueError:
            pass
    print("PASS: test_text_document_positions")


if __name__ == '__main__':
    tests = [
        test_single_selection_end_to_end,
        test_multi_selection_apply_bottom_up,
        test_segments_are_independent,
        test_previews_while_streaming,
        test_segment_count_mismatch_falls_back,
        test_stream_error_makes_finalize_a_noop,
        test_cancel_discards_state,
        test_lifecycle_misuse_raises,
        test_unknown_segment_and_block_are_ignored,
        test_events_are_tagged_with_segment,
        test_reset_then_current_restores_document,
        test_edited_replacement_is_applied,
        test_host_failure_keeps_state_for_retry,
        test_for_text_single_selection,
        test_text_document_positions,
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
