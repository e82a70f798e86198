from typing import List, Mapping, Optional, Sequence

import structlog

from hunkwise.models import Block, BlockKind, Decision, ReplaceInstruction, SelectionRange

logger = structlog.get_logger(__name__)

DEFAULT_POLICIES = (Decision.INCOMING, Decision.CURRENT)


def effective_decision(block: Block, decisions: Mapping[int, Decision], default: Decision) -> Decision:
    """The recorded decision for a block, or `default` while it is still pending."""
    decision = decisions.get(block.index, Decision.PENDING)
    return default if decision == Decision.PENDING else Decision(decision)


def generate_final_text(
    blocks: Sequence[Block],
    decisions: Mapping[int, Decision],
    default: Decision = Decision.CURRENT,
) -> str:
    """
    Rebuilds a segment's text from its blocks and the reviewer's decisions.

    Every block resolves to concrete output: pending (or never recorded) decisions
    fall back to `default`, which must be INCOMING or CURRENT.
    """
    default = Decision(default)
    if default not in DEFAULT_POLICIES:
        raise ValueError(f"Default decision must be 'incoming' or 'current', got '{default.value}'.")

    parts: List[str] = []
    for block in blocks:
        if block.kind == BlockKind.UNCHANGED:
            parts.append(block.unchanged_value)
            continue

        contribution = _resolve_block(block, effective_decision(block, decisions, default))
        if contribution is not None:
            parts.append(contribution)

    return "\n".join(parts)


def _resolve_block(block: Block, decision: Decision) -> Optional[str]:
    original = block.original_value
    incoming = block.replacement_value

    if decision == Decision.INCOMING:
        return incoming
    if decision == Decision.CURRENT:
        return original

    # BOTH: original first, then incoming; degrade to whichever side exists
    if original is not None and incoming is not None:
        return original + "\n" + incoming
    return original if original is not None else incoming


def build_replacements(
    selections: Sequence[SelectionRange],
    final_texts: Sequence[str],
) -> List[ReplaceInstruction]:
    """
    Pairs each host selection with its segment's final text.

    A selection without a segment keeps its own text; segments beyond the last
    selection have nowhere to go and are dropped. Instructions are ordered from the
    bottom of the document up so applying them in sequence never shifts a range
    that is still waiting.
    """
    if len(final_texts) > len(selections):
        logger.warning(f"Dropping {len(final_texts) - len(selections)} segments with no matching selection")

    instructions = []
    for idx, selection in enumerate(selections):
        text = final_texts[idx] if idx < len(final_texts) else selection.text
        instructions.append(
            ReplaceInstruction(start=selection.start, end=selection.end, text=text, segment_index=idx)
        )

    instructions.sort(key=lambda ins: ins.start.sort_key(), reverse=True)
    return instructions
