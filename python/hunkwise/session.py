"""
Review session over one or more host selections.

Lifecycle: the reply streams in (previews only) -> stream completes and every
segment is diffed -> the reviewer records decisions -> finalize produces one
replacement per selection, ordered bottom-up for the host to apply.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import structlog

from hunkwise.decisions import DecisionListener, DecisionManager
from hunkwise.diff import compute_diff
from hunkwise.models import Block, Decision, DiffOptions, DiffResult, Position, ReplaceInstruction, SelectionRange
from hunkwise.reconcile import build_replacements, generate_final_text
from hunkwise.segments import (
    BOUNDARY_MARKER,
    StreamPreview,
    build_previews,
    join_segments,
    normalize_stream_text,
    partition_for_finalize,
)

logger = structlog.get_logger(__name__)


class Phase(str, Enum):
    STREAMING = "streaming"
    COMPUTING = "computing"
    READY = "ready"


class HostDocument(Protocol):
    def apply(self, instructions: Sequence[ReplaceInstruction]) -> int: ...


@dataclass
class FinalizeResult:
    replacements: List[ReplaceInstruction] = field(default_factory=list)
    texts: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ApplyResult:
    applied: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Segment:
    """One independently diffed original/replacement pair and its decisions."""

    def __init__(
        self,
        segment_index: int,
        original_text: str,
        replacement_text: str,
        start_line: int,
        diff: DiffResult,
        selection: Optional[SelectionRange] = None,
        on_change: Optional[DecisionListener] = None,
    ):
        self.segment_index = segment_index
        self.original_text = original_text
        self.replacement_text = replacement_text
        self.start_line = start_line
        self.selection = selection
        self.diff = diff
        self.decisions = DecisionManager(diff.modified_indices, on_change=on_change, segment_index=segment_index)

    @property
    def blocks(self) -> List[Block]:
        return self.diff.blocks

    def edit_replacement(self, block_index: int, text: str) -> bool:
        """Overrides the incoming text of a modified block. Returns False for unknown blocks."""
        block = self.diff.block(block_index)
        if block is None or not block.is_modified:
            logger.debug(f"Ignoring edit for block {block_index}", segment=self.segment_index)
            return False
        self.diff.blocks[block_index] = block.model_copy(update={"replacement_value": text})
        return True

    def final_text(self, default: Decision = Decision.CURRENT) -> str:
        return generate_final_text(self.blocks, self.decisions.snapshot(), default)


class SegmentCoordinator:
    """
    Owns every segment of one review session.

    Not thread-safe: appends, decisions and finalize must be serialized by the caller.
    """

    def __init__(
        self,
        selections: Sequence[SelectionRange],
        marker: str = BOUNDARY_MARKER,
        options: Optional[DiffOptions] = None,
    ):
        if not selections:
            raise ValueError("A session needs at least one selection.")

        self.selections = list(selections)
        self.marker = marker
        self.options = options or DiffOptions()
        self.original_text = join_segments([s.text for s in self.selections], marker)
        self.replacement_text = ""
        self.phase = Phase.STREAMING
        self.error: Optional[str] = None
        self.cancelled = False
        self.fallback_used = False

        self._chunks: List[str] = []
        self._segments: List[Segment] = []
        self._listeners: List[DecisionListener] = []

    @classmethod
    def for_text(
        cls,
        text: str,
        start: Optional[Position] = None,
        marker: str = BOUNDARY_MARKER,
        options: Optional[DiffOptions] = None,
    ) -> "SegmentCoordinator":
        """Session over a single selection whose end is derived from its text."""
        start = start or Position(line=0, ch=0)
        lines = text.split("\n")
        end_ch = len(lines[-1]) + (start.ch if len(lines) == 1 else 0)
        end = Position(line=start.line + len(lines) - 1, ch=end_ch)
        return cls([SelectionRange(text=text, start=start, end=end)], marker=marker, options=options)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    @property
    def accumulated_text(self) -> str:
        return "".join(self._chunks)

    def append_chunk(self, chunk: str) -> None:
        self._ensure_active()
        if self.phase != Phase.STREAMING:
            raise RuntimeError(f"Cannot append to a session in phase '{self.phase.value}'.")
        self._chunks.append(chunk)

    def previews(self) -> List[StreamPreview]:
        return build_previews(
            self.original_text,
            self.accumulated_text,
            [s.start_line for s in self.selections],
            self.marker,
        )

    def complete(self) -> List[Segment]:
        """Freezes the reply and diffs every segment."""
        self._ensure_active()
        if self.phase != Phase.STREAMING:
            raise RuntimeError(f"Cannot complete a session in phase '{self.phase.value}'.")

        self.phase = Phase.COMPUTING
        self.replacement_text = normalize_stream_text(self.accumulated_text)

        partition = partition_for_finalize(self.original_text, self.replacement_text, self.marker)
        self.fallback_used = partition.fallback

        segments = []
        for i in range(partition.count):
            original = partition.original_parts[i] if i < len(partition.original_parts) else ""
            replacement = partition.replacement_parts[i] if i < len(partition.replacement_parts) else ""
            selection = self.selections[i] if i < len(self.selections) else None
            start_line = selection.start_line if selection else 1

            diff = compute_diff(original, replacement, start_line, self.options)
            segments.append(
                Segment(i, original, replacement, start_line, diff, selection=selection, on_change=self._relay)
            )

        self._segments = segments
        self.phase = Phase.READY
        _resolved, total = self.aggregate_progress()
        logger.info(f"Session ready: {len(segments)} segments, {total} modified blocks", fallback=partition.fallback)
        return list(segments)

    def fail(self, message: str) -> None:
        """Stream error: the session becomes ready with no segments and remembers the message."""
        self.error = message
        self._segments = []
        self.phase = Phase.READY
        logger.warning(f"Stream failed: {message}")

    def cancel(self) -> None:
        """Discards all segment state. Nothing is finalized."""
        self.cancelled = True
        self._segments = []
        self._chunks = []
        self._listeners = []
        logger.info("Session cancelled")

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return tuple(self._segments)

    def segment(self, segment_index: int) -> Optional[Segment]:
        if 0 <= segment_index < len(self._segments):
            return self._segments[segment_index]
        return None

    def set_decision(self, segment_index: int, block_index: int, decision: Decision) -> None:
        segment = self.segment(segment_index)
        if segment is None:
            logger.debug(f"Ignoring decision for unknown segment {segment_index}")
            return
        segment.decisions.set(block_index, decision)

    def undo(self, segment_index: int, block_index: int) -> None:
        self.set_decision(segment_index, block_index, Decision.PENDING)

    def edit_replacement(self, segment_index: int, block_index: int, text: str) -> bool:
        segment = self.segment(segment_index)
        return segment.edit_replacement(block_index, text) if segment else False

    def accept_all_incoming(self) -> None:
        for segment in self._segments:
            segment.decisions.accept_all_incoming()

    def accept_all_current(self) -> None:
        for segment in self._segments:
            segment.decisions.accept_all_current()

    def reset_all(self) -> None:
        for segment in self._segments:
            segment.decisions.reset_all()

    def aggregate_progress(self) -> Tuple[int, int]:
        """(resolved, total) modified blocks across all segments."""
        resolved = sum(s.decisions.resolved_count() for s in self._segments)
        total = sum(s.decisions.total_count() for s in self._segments)
        return resolved, total

    def subscribe(self, listener: DecisionListener) -> Callable[[], None]:
        """Receives every segment's decision events, tagged with the segment index."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _relay(self, event) -> None:
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Finalize / apply
    # ------------------------------------------------------------------

    def finalize(self, default: Decision = Decision.CURRENT) -> FinalizeResult:
        """
        Resolves every segment to its final text, pending blocks taking `default`.
        A failed stream yields no replacements and carries the stream's error.
        """
        self._ensure_active()
        if self.error is not None:
            return FinalizeResult(error=self.error)
        if self.phase != Phase.READY:
            raise RuntimeError("Cannot finalize before the stream has completed.")

        texts = [segment.final_text(default) for segment in self._segments]
        return FinalizeResult(replacements=build_replacements(self.selections, texts), texts=texts)

    def apply(self, document: HostDocument, default: Decision = Decision.CURRENT) -> ApplyResult:
        """
        Finalizes and writes the result into the host document.
        Host failures are reported in the result; the session keeps its state so the
        caller can retry.
        """
        result = self.finalize(default)
        if not result.ok:
            return ApplyResult(error=result.error)

        try:
            applied = document.apply(result.replacements)
        except (FileNotFoundError, ValueError) as e:
            logger.warning(f"Apply failed: {e}")
            return ApplyResult(error=str(e))

        logger.info(f"Applied {applied} replacements")
        return ApplyResult(applied=applied)

    def _ensure_active(self) -> None:
        if self.cancelled:
            raise RuntimeError("Session was cancelled.")
