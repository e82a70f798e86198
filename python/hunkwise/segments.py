"""
Splitting of combined multi-selection texts.

Several selections travel to the model as one text with a boundary marker
between them; the model is asked to keep the markers. These helpers cut
both sides back into per-segment texts, for live previews while the reply
is still streaming and for the final per-segment diff.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import structlog

logger = structlog.get_logger(__name__)

BOUNDARY_MARKER = "\n---SELECTION_BOUNDARY---\n"

# Shown for a segment whose replacement has not started arriving yet
PENDING_PLACEHOLDER = "..."


def trim_blank_lines(text: str) -> str:
    """Removes leading and trailing whitespace-only lines, keeping indentation of content lines."""
    lines = text.split("\n")
    start = 0
    end = len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(lines[start:end])


def split_segments(text: str, marker: str = BOUNDARY_MARKER) -> List[str]:
    """Splits a combined text on the boundary marker. Always returns at least one part."""
    if not marker:
        raise ValueError("Boundary marker cannot be empty.")
    return [trim_blank_lines(part) for part in text.split(marker)]


def join_segments(parts: Sequence[str], marker: str = BOUNDARY_MARKER) -> str:
    if not marker:
        raise ValueError("Boundary marker cannot be empty.")
    return marker.join(parts)


def normalize_stream_text(text: str) -> str:
    """
    Cleans a completed model reply before diffing:
    drops leading/trailing blank lines and collapses runs of blank lines to one.
    """
    cleaned = re.sub(r"\A\s*\n+", "", text)
    cleaned = re.sub(r"\n+\s*\Z", "", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned


def numbered_lines(text: str, start_line: int) -> List[Tuple[int, str]]:
    return [(start_line + i, line) for i, line in enumerate(text.split("\n"))]


@dataclass
class StreamPreview:
    """Advisory side-by-side view of one segment while the reply streams in."""

    segment_index: int
    start_line: int
    original_text: str
    replacement_text: str
    pending: bool = False

    def original_lines(self) -> List[Tuple[int, str]]:
        return numbered_lines(self.original_text, self.start_line)

    def replacement_lines(self) -> List[Tuple[int, str]]:
        # Same start line as the original so both columns line up
        return numbered_lines(self.replacement_text, self.start_line)


@dataclass
class Partition:
    original_parts: List[str]
    replacement_parts: List[str]
    fallback: bool = False
    replacement_count: int = 0

    @property
    def count(self) -> int:
        return max(len(self.original_parts), len(self.replacement_parts))


def build_previews(
    original_text: str,
    partial_text: str,
    start_lines: Optional[Sequence[int]] = None,
    marker: str = BOUNDARY_MARKER,
) -> List[StreamPreview]:
    """
    One preview per original segment from the reply received so far.
    A reply that has not reached a segment yet shows the pending placeholder.
    """
    original_parts = split_segments(original_text, marker)
    visible = _strip_partial_marker(partial_text, marker)
    stream_parts = split_segments(visible, marker) if visible else []
    start_lines = start_lines or []

    previews = []
    for i, original in enumerate(original_parts):
        replacement = stream_parts[i] if i < len(stream_parts) else ""
        previews.append(
            StreamPreview(
                segment_index=i,
                start_line=start_lines[i] if i < len(start_lines) else 1,
                original_text=original,
                replacement_text=replacement or PENDING_PLACEHOLDER,
                pending=not replacement,
            )
        )
    return previews


def partition_for_finalize(
    original_text: str,
    replacement_text: str,
    marker: str = BOUNDARY_MARKER,
) -> Partition:
    """
    Splits both sides of a finished reply into aligned segment lists.

    When the reply does not carry the same number of segments as the original,
    per-segment alignment is unknowable: the whole reply (markers removed) goes to
    segment 0 and every other segment gets an empty replacement.
    """
    original_parts = split_segments(original_text, marker)
    replacement_parts = split_segments(replacement_text, marker)
    replacement_count = len(replacement_parts)

    if replacement_count == len(original_parts):
        return Partition(original_parts, replacement_parts, replacement_count=replacement_count)

    logger.warning(
        f"Segment count mismatch: {len(original_parts)} original, {replacement_count} replacement. "
        "Falling back to single-segment replacement."
    )
    merged = trim_blank_lines("\n".join(part for part in replacement_parts if part))
    padded = [merged] + [""] * (len(original_parts) - 1)
    return Partition(original_parts, padded, fallback=True, replacement_count=replacement_count)


def _strip_partial_marker(text: str, marker: str) -> str:
    # A marker may arrive split across chunks; hide its head until it completes
    for size in range(len(marker) - 1, 0, -1):
        if text.endswith(marker[:size]):
            return text[:-size]
    return text
