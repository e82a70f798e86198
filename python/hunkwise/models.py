from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Decision(str, Enum):
    PENDING = "pending"
    INCOMING = "incoming"
    CURRENT = "current"
    BOTH = "both"


class BlockKind(str, Enum):
    UNCHANGED = "unchanged"
    MODIFIED = "modified"


class DiffOptions(BaseModel):
    """
    Tuning knobs for the line diff.
    The defaults mirror what an editor merge view expects: whitespace is significant,
    moves are tagged and there is no time budget.
    """

    ignore_trim_whitespace: bool = Field(False, description="Compare lines with surrounding whitespace stripped.")
    compute_moves: bool = Field(True, description="Tag delete/insert pairs carrying identical lines as moves.")
    max_computation_time_ms: int = Field(0, ge=0, description="Alignment budget in milliseconds. 0 means unbounded.")
    semantic_cleanup: bool = Field(
        False,
        description="Fold short unchanged runs sitting between two edits into one larger change.",
    )


class LineRange(BaseModel):
    """1-indexed, half-open range of lines."""

    model_config = ConfigDict(frozen=True)

    start_line: int
    end_line_exclusive: int

    @property
    def length(self) -> int:
        return self.end_line_exclusive - self.start_line

    @property
    def is_empty(self) -> bool:
        return self.length <= 0


class LineChange(BaseModel):
    """A contiguous original range replaced by a contiguous modified range."""

    model_config = ConfigDict(frozen=True)

    original: LineRange
    modified: LineRange
    moved: bool = False


class Block(BaseModel):
    """
    One addressable unit of a segment's diff.

    Unchanged blocks carry `unchanged_value`. Modified blocks carry the original and/or
    replacement side; a side is None when the change has no lines on it (pure insertion
    or pure deletion).
    Original line numbers are absolute document lines, replacement line numbers are
    relative to the replacement text.
    """

    model_config = ConfigDict(frozen=True)

    index: int
    kind: BlockKind
    unchanged_value: Optional[str] = None
    original_value: Optional[str] = None
    replacement_value: Optional[str] = None
    original_start_line: int
    original_end_line: int
    replacement_start_line: Optional[int] = None
    replacement_end_line: Optional[int] = None
    moved: bool = False

    @model_validator(mode="after")
    def _check_sides(self) -> "Block":
        if self.kind == BlockKind.UNCHANGED:
            if self.unchanged_value is None:
                raise ValueError("Unchanged block requires unchanged_value.")
            if self.original_value is not None or self.replacement_value is not None:
                raise ValueError("Unchanged block cannot carry original/replacement values.")
        elif self.original_value is None and self.replacement_value is None:
            raise ValueError("Modified block requires at least one side.")
        return self

    @property
    def is_modified(self) -> bool:
        return self.kind == BlockKind.MODIFIED

    def original_side(self) -> Optional[str]:
        """Content this block contributes to the original text, None if nothing."""
        if self.kind == BlockKind.UNCHANGED:
            return self.unchanged_value
        return self.original_value

    def replacement_side(self) -> Optional[str]:
        """Content this block contributes to the replacement text, None if nothing."""
        if self.kind == BlockKind.UNCHANGED:
            return self.unchanged_value
        return self.replacement_value


class DiffResult(BaseModel):
    blocks: List[Block] = Field(default_factory=list)
    modified_indices: List[int] = Field(default_factory=list)

    @property
    def total_modified(self) -> int:
        return len(self.modified_indices)

    def block(self, index: int) -> Optional[Block]:
        if 0 <= index < len(self.blocks):
            return self.blocks[index]
        return None


class Position(BaseModel):
    """0-based line / column inside the host document."""

    model_config = ConfigDict(frozen=True)

    line: int = Field(..., ge=0)
    ch: int = Field(0, ge=0)

    def sort_key(self):
        return (self.line, self.ch)


class SelectionRange(BaseModel):
    """A slice of the host document handed to the session as one segment."""

    text: str
    start: Position
    end: Position

    @property
    def start_line(self) -> int:
        """1-indexed document line where this selection begins."""
        return self.start.line + 1


class ReplaceInstruction(BaseModel):
    """Replace [start, end) of the host document with `text`."""

    model_config = ConfigDict(frozen=True)

    start: Position
    end: Position
    text: str
    segment_index: int = 0


@dataclass(frozen=True)
class DecisionChangeEvent:
    block_index: int
    decision: Decision
    resolved_count: int
    total_count: int
    segment_index: Optional[int] = None
