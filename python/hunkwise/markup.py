"""
CriticMarkup rendering of a segment's blocks, for terminal and text review.
"""

from typing import List, Mapping, Optional, Sequence

from hunkwise.models import Block, BlockKind, Decision


def _build_critic_markup(
    original: Optional[str],
    incoming: Optional[str],
    decision: Decision,
    block_index: int,
    include_index: bool,
) -> str:
    """
    Generates CriticMarkup for one modified block.
    Pending blocks show both sides; decided blocks show what they will resolve to.
    """
    parts = []

    if decision == Decision.PENDING:
        if original is not None:
            parts.append(f"{{--{original}--}}")
        if incoming is not None:
            parts.append(f"{{++{incoming}++}}")
    elif decision == Decision.INCOMING:
        if incoming is not None:
            parts.append(incoming)
    elif decision == Decision.CURRENT:
        if original is not None:
            parts.append(original)
    else:
        parts.append("\n".join(side for side in (original, incoming) if side is not None))

    # Build metadata block
    meta_parts = []
    if include_index:
        meta_parts.append(f"[Block:{block_index}]")
        if decision != Decision.PENDING:
            meta_parts.append(decision.value)

    if meta_parts:
        parts.append(f"{{>>{' '.join(meta_parts)}<<}}")

    return "".join(parts)


def render_critic_markup(
    blocks: Sequence[Block],
    decisions: Optional[Mapping[int, Decision]] = None,
    include_index: bool = False,
) -> str:
    """
    Renders blocks as one CriticMarkup-annotated text.

    Args:
        blocks: A segment's blocks in index order.
        decisions: Recorded decisions; missing entries render as pending.
        include_index: If True, tag every modified block with {>>[Block:N]<<} so a
                       reviewer can address it.
    """
    decisions = decisions or {}
    rendered: List[str] = []

    for block in blocks:
        if block.kind == BlockKind.UNCHANGED:
            rendered.append(block.unchanged_value)
            continue

        markup = _build_critic_markup(
            original=block.original_value,
            incoming=block.replacement_value,
            decision=decisions.get(block.index, Decision.PENDING),
            block_index=block.index,
            include_index=include_index,
        )
        if markup:
            rendered.append(markup)

    return "\n".join(rendered)
