from typing import Dict, List, Optional, Sequence, Tuple

import structlog
from diff_match_patch import diff_match_patch

from hunkwise.models import Block, BlockKind, DiffOptions, DiffResult, LineChange, LineRange

logger = structlog.get_logger(__name__)


def compute_diff(
    original_text: str,
    replacement_text: str,
    start_line: int = 1,
    options: Optional[DiffOptions] = None,
) -> DiffResult:
    """
    Line-diffs two texts and segments the result into addressable blocks.

    Args:
        original_text: The text being replaced.
        replacement_text: The proposed text.
        start_line: 1-indexed document line of the first original line. Original
                    line numbers of the resulting blocks are shifted by it.
        options: Diff configuration; defaults to DiffOptions().
    """
    original_lines = original_text.split("\n")
    replacement_lines = replacement_text.split("\n")

    changes = compute_line_changes(original_lines, replacement_lines, options)
    result = segment_blocks(changes, original_lines, replacement_lines, start_line)

    logger.debug(
        f"Computed {len(result.blocks)} blocks ({result.total_modified} modified)",
        start_line=start_line,
    )
    return result


def compute_line_changes(
    original_lines: Sequence[str],
    modified_lines: Sequence[str],
    options: Optional[DiffOptions] = None,
) -> List[LineChange]:
    """
    Aligns two line sequences and returns the changed ranges in document order.
    Lines outside every returned change are unchanged. An empty list means the
    sequences are line-identical.
    """
    options = options or DiffOptions()
    dmp = diff_match_patch()
    # diff_match_patch treats 0 as "no deadline"
    dmp.Diff_Timeout = options.max_computation_time_ms / 1000.0

    # 1. Line-Level Encoding
    chars1, chars2 = _lines_to_chars(original_lines, modified_lines, options.ignore_trim_whitespace)

    # 2. Alignment
    diffs = dmp.diff_main(chars1, chars2, False)
    if options.semantic_cleanup:
        dmp.diff_cleanupSemantic(diffs)

    # 3. Collapse each run of non-equal operations into one change
    changes: List[LineChange] = []
    original_pos = 0
    modified_pos = 0
    pending: Optional[Tuple[int, int]] = None

    for op, text in diffs:
        if op == dmp.DIFF_EQUAL:
            if pending is not None:
                changes.append(_make_change(pending, original_pos, modified_pos))
                pending = None
            original_pos += len(text)
            modified_pos += len(text)
            continue

        if pending is None:
            pending = (original_pos, modified_pos)
        if op == dmp.DIFF_DELETE:
            original_pos += len(text)
        else:
            modified_pos += len(text)

    if pending is not None:
        changes.append(_make_change(pending, original_pos, modified_pos))

    if options.compute_moves and changes:
        changes = _tag_moves(changes, original_lines, modified_lines, options.ignore_trim_whitespace)

    return changes


def segment_blocks(
    changes: Sequence[LineChange],
    original_lines: Sequence[str],
    modified_lines: Sequence[str],
    start_line: int = 1,
) -> DiffResult:
    """
    Turns a change list into an ordered block list that partitions both texts.

    Unchanged and modified blocks share one index space assigned in document order.
    """
    blocks: List[Block] = []
    # 1-indexed, exclusive ends of the last consumed region on each side
    last_original = 1
    last_modified = 1

    for change in changes:
        o_start = change.original.start_line
        o_end = change.original.end_line_exclusive
        m_start = change.modified.start_line
        m_end = change.modified.end_line_exclusive

        if o_start > last_original:
            blocks.append(
                Block(
                    index=len(blocks),
                    kind=BlockKind.UNCHANGED,
                    unchanged_value="\n".join(original_lines[last_original - 1 : o_start - 1]),
                    original_start_line=start_line + last_original - 1,
                    original_end_line=start_line + o_start - 1,
                    replacement_start_line=last_modified,
                    replacement_end_line=m_start,
                )
            )

        if change.original.is_empty and change.modified.is_empty:
            logger.warning("Skipping empty change reported by line diff", original=o_start, modified=m_start)
        else:
            blocks.append(
                Block(
                    index=len(blocks),
                    kind=BlockKind.MODIFIED,
                    original_value=_join_span(original_lines, o_start, o_end),
                    replacement_value=_join_span(modified_lines, m_start, m_end),
                    original_start_line=start_line + o_start - 1,
                    original_end_line=start_line + o_end - 1,
                    replacement_start_line=m_start,
                    replacement_end_line=m_end,
                    moved=change.moved,
                )
            )

        last_original = o_end
        last_modified = m_end

    # Trailing unchanged lines
    if len(original_lines) >= last_original:
        blocks.append(
            Block(
                index=len(blocks),
                kind=BlockKind.UNCHANGED,
                unchanged_value="\n".join(original_lines[last_original - 1 :]),
                original_start_line=start_line + last_original - 1,
                original_end_line=start_line + len(original_lines),
                replacement_start_line=last_modified,
                replacement_end_line=len(modified_lines) + 1,
            )
        )

    modified_indices = [b.index for b in blocks if b.kind == BlockKind.MODIFIED]
    return DiffResult(blocks=blocks, modified_indices=modified_indices)


def _make_change(start: Tuple[int, int], original_pos: int, modified_pos: int) -> LineChange:
    o_start, m_start = start
    return LineChange(
        original=LineRange(start_line=o_start + 1, end_line_exclusive=original_pos + 1),
        modified=LineRange(start_line=m_start + 1, end_line_exclusive=modified_pos + 1),
    )


def _join_span(lines: Sequence[str], start: int, end: int) -> Optional[str]:
    # Absent side: the change has no lines there, not an empty line
    if end <= start:
        return None
    return "\n".join(lines[start - 1 : end - 1])


def _tag_moves(
    changes: List[LineChange],
    original_lines: Sequence[str],
    modified_lines: Sequence[str],
    ignore_trim_whitespace: bool,
) -> List[LineChange]:
    """
    Pairs pure deletions with pure insertions carrying the same lines.
    Only the `moved` flag is touched; ranges stay as aligned.
    """

    def key_for(lines: Sequence[str], span: LineRange) -> Tuple[str, ...]:
        chunk = lines[span.start_line - 1 : span.end_line_exclusive - 1]
        return tuple(line.strip() if ignore_trim_whitespace else line for line in chunk)

    deletions: Dict[Tuple[str, ...], List[int]] = {}
    for i, change in enumerate(changes):
        if change.modified.is_empty and not change.original.is_empty:
            key = key_for(original_lines, change.original)
            if any(line.strip() for line in key):
                deletions.setdefault(key, []).append(i)

    moved = set()
    for i, change in enumerate(changes):
        if change.original.is_empty and not change.modified.is_empty:
            candidates = deletions.get(key_for(modified_lines, change.modified))
            if candidates:
                moved.add(candidates.pop(0))
                moved.add(i)

    if moved:
        logger.debug(f"Tagged {len(moved)} changes as moves")
    return [c.model_copy(update={"moved": True}) if i in moved else c for i, c in enumerate(changes)]


def _lines_to_chars(
    original_lines: Sequence[str],
    modified_lines: Sequence[str],
    ignore_trim_whitespace: bool,
) -> Tuple[str, str]:
    """
    Encodes every distinct line as one unicode character so the character diff
    aligns whole lines.
    """
    token_hash: Dict[str, int] = {}

    def encode_lines(lines: Sequence[str]) -> str:
        encoded_chars = []
        for line in lines:
            token = line.strip() if ignore_trim_whitespace else line
            code = token_hash.get(token)
            if code is None:
                code = len(token_hash)
                token_hash[token] = code
            encoded_chars.append(chr(code))
        return "".join(encoded_chars)

    chars1 = encode_lines(original_lines)
    chars2 = encode_lines(modified_lines)
    return chars1, chars2
