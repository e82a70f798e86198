"""
Plain-text host document.

Stands in for the editor buffer a review session writes back into: it knows how
to turn (line, ch) positions into offsets and how to apply a batch of
position-addressed replacements without one invalidating the next.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import structlog

from hunkwise.models import Position, ReplaceInstruction, SelectionRange

logger = structlog.get_logger(__name__)


class TextDocument:
    def __init__(self, text: str, path: Optional[Union[str, Path]] = None):
        self.text = text
        self.path = Path(path) if path else None

    @classmethod
    def load(cls, path: Union[str, Path]) -> "TextDocument":
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"File not found: {path}")
        with open(p, "r", encoding="utf-8") as f:
            return cls(f.read(), path=p)

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        target = Path(path) if path else self.path
        if target is None:
            raise ValueError("No path to save the document to.")
        if path is None and not target.exists():
            # The file this document was opened from is gone
            raise FileNotFoundError(f"File not found: {target}")
        with open(target, "w", encoding="utf-8") as f:
            f.write(self.text)
        return target

    @property
    def lines(self) -> List[str]:
        return self.text.split("\n")

    def offset_at(self, position: Position) -> int:
        lines = self.lines
        if position.line >= len(lines):
            raise ValueError(f"Line {position.line} is outside the document ({len(lines)} lines).")
        if position.ch > len(lines[position.line]):
            raise ValueError(f"Column {position.ch} is outside line {position.line}.")
        return sum(len(line) + 1 for line in lines[: position.line]) + position.ch

    def position_at(self, offset: int) -> Position:
        if offset < 0 or offset > len(self.text):
            raise ValueError(f"Offset {offset} is outside the document.")
        before = self.text[:offset]
        line = before.count("\n")
        return Position(line=line, ch=offset - (before.rfind("\n") + 1))

    def get_range(self, start: Position, end: Position) -> str:
        start_idx, end_idx = self._span(start, end)
        return self.text[start_idx:end_idx]

    def selection(self, start: Position, end: Position) -> SelectionRange:
        return SelectionRange(text=self.get_range(start, end), start=start, end=end)

    def select_lines(self, first_line: int, last_line: int) -> SelectionRange:
        """Selection covering whole 1-indexed lines first_line..last_line inclusive."""
        lines = self.lines
        if first_line < 1 or last_line < first_line or last_line > len(lines):
            raise ValueError(f"Invalid line range {first_line}:{last_line} for {len(lines)} lines.")
        start = Position(line=first_line - 1, ch=0)
        end = Position(line=last_line - 1, ch=len(lines[last_line - 1]))
        return self.selection(start, end)

    def replace_range(self, text: str, start: Position, end: Position) -> None:
        start_idx, end_idx = self._span(start, end)
        self.text = self.text[:start_idx] + text + self.text[end_idx:]

    def apply(self, instructions: Sequence[ReplaceInstruction]) -> int:
        """
        Applies a batch of replacements addressed against the current text.

        Every range is resolved before anything changes, so a bad range leaves the
        document untouched. Returns the number of replacements applied.
        """
        resolved: List[Tuple[int, int, ReplaceInstruction]] = []
        for ins in instructions:
            start_idx, end_idx = self._span(ins.start, ins.end)
            resolved.append((start_idx, end_idx, ins))

        # Check for overlapping ranges
        ordered = sorted(resolved, key=lambda x: (x[0], x[1]))
        for (s1, e1, _a), (s2, _e2, b) in zip(ordered, ordered[1:]):
            if s2 < e1:
                raise ValueError(f"Replacement for segment {b.segment_index} overlaps another range.")

        # Bottom of the document first
        result = self.text
        for start_idx, end_idx, ins in sorted(resolved, key=lambda x: x[0], reverse=True):
            logger.debug(f"Replacing [{start_idx}:{end_idx}]", segment=ins.segment_index)
            result = result[:start_idx] + ins.text + result[end_idx:]

        self.text = result
        return len(resolved)

    def _span(self, start: Position, end: Position) -> Tuple[int, int]:
        start_idx = self.offset_at(start)
        end_idx = self.offset_at(end)
        if end_idx < start_idx:
            raise ValueError(f"Range end {end.line}:{end.ch} precedes start {start.line}:{start.ch}.")
        return start_idx, end_idx
