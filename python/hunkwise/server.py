import logging
import sys
from typing import Dict, List, Optional, Tuple

import structlog
from mcp.server.fastmcp import FastMCP

from hunkwise.host import TextDocument
from hunkwise.markup import render_critic_markup
from hunkwise.models import Decision, DiffOptions
from hunkwise.segments import join_segments
from hunkwise.session import SegmentCoordinator

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("Hunkwise Review Service")


def _parse_decision_key(key: str) -> Tuple[int, int]:
    """'3' addresses block 3 of segment 0; '1:3' addresses block 3 of segment 1."""
    if ":" in key:
        segment, block = key.split(":", 1)
        return int(segment), int(block)
    return 0, int(key)


def _run_session(
    session: SegmentCoordinator,
    replacement: str,
    decisions: Optional[Dict[str, str]],
) -> SegmentCoordinator:
    session.append_chunk(replacement)
    session.complete()
    for key, value in (decisions or {}).items():
        segment_index, block_index = _parse_decision_key(key)
        session.set_decision(segment_index, block_index, Decision(value))
    return session


@mcp.tool()
def diff_texts(original: str, modified: str, ignore_whitespace: bool = False) -> str:
    """
    Compares two texts line by line and returns the change blocks as CriticMarkup.

    Args:
        original: The current text. Several passages may be joined with the selection boundary marker.
        modified: The rewritten text, using the same boundary markers.
        ignore_whitespace: If True, lines differing only in leading/trailing whitespace count as equal.

    Returns:
        One CriticMarkup section per segment. Every modified block is tagged {>>[Block:N]<<};
        address it as 'N' (segment 0) or 'S:N' in resolve_texts / apply_to_file.
    """
    try:
        session = SegmentCoordinator.for_text(original, options=DiffOptions(ignore_trim_whitespace=ignore_whitespace))
        _run_session(session, modified, None)

        _resolved, total = session.aggregate_progress()
        output = [f"{total} modified blocks in {len(session.segments)} segments."]
        if session.fallback_used:
            output.append("Warning: segment counts differ; the whole rewrite was compared against segment 0.")
        for segment in session.segments:
            output.append(f"=== Segment {segment.segment_index} ===")
            output.append(render_critic_markup(segment.blocks, include_index=True))
        return "\n".join(output)
    except Exception as e:
        return f"Error computing diff: {str(e)}"


@mcp.tool()
def resolve_texts(
    original: str,
    modified: str,
    decisions: Optional[Dict[str, str]] = None,
    default_decision: str = "current",
) -> str:
    """
    Builds the final text from a rewrite and per-block decisions.

    Args:
        original: The current text.
        modified: The rewritten text.
        decisions: Map of block address ('N' or 'S:N', see diff_texts) to one of
                   'incoming', 'current', 'both' or 'pending'.
        default_decision: How undecided blocks resolve: 'current' (keep original, default) or 'incoming'.
    """
    try:
        session = _run_session(SegmentCoordinator.for_text(original), modified, decisions)
        result = session.finalize(Decision(default_decision))
        if not result.ok:
            return f"Error resolving texts: {result.error}"
        return join_segments(result.texts, session.marker)
    except Exception as e:
        return f"Error resolving texts: {str(e)}"


@mcp.tool()
def apply_to_file(
    file_path: str,
    selections: List[str],
    modified: str,
    decisions: Optional[Dict[str, str]] = None,
    default_decision: str = "current",
    output_path: Optional[str] = None,
) -> str:
    """
    Merges a rewrite of one or more line ranges back into a text file.

    Args:
        file_path: Absolute path to the text file.
        selections: 1-indexed inclusive line ranges, e.g. ["3:5", "10:12"]. One per rewritten passage.
        modified: The rewritten passages joined with the selection boundary marker, in selection order.
        decisions: Block decisions as in resolve_texts.
        default_decision: Resolution for undecided blocks ('current' or 'incoming').
        output_path: Optional destination. Defaults to overwriting file_path.
    """
    try:
        document = TextDocument.load(file_path)
        ranges = []
        for item in selections:
            first, _, last = item.partition(":")
            ranges.append(document.select_lines(int(first), int(last or first)))

        session = _run_session(SegmentCoordinator(ranges), modified, decisions)
        result = session.apply(document, Decision(default_decision))
        if not result.ok:
            return f"Error applying changes: {result.error}"

        saved = document.save(output_path)
        resolved, total = session.aggregate_progress()
        return f"Applied {result.applied} replacements ({resolved}/{total} blocks decided). Saved to: {saved}"

    except FileNotFoundError:
        return f"Error: File not found: {file_path}"
    except Exception as e:
        return f"Error applying changes: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
