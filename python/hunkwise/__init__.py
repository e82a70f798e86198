from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from hunkwise.decisions import DecisionManager
from hunkwise.diff import compute_diff, compute_line_changes, segment_blocks
from hunkwise.host import TextDocument
from hunkwise.markup import render_critic_markup
from hunkwise.models import Block, BlockKind, Decision, DiffOptions, Position, SelectionRange
from hunkwise.reconcile import generate_final_text
from hunkwise.segments import BOUNDARY_MARKER, join_segments, split_segments
from hunkwise.session import Phase, SegmentCoordinator

try:
    __version__ = version("hunkwise")
except PackageNotFoundError:
    # Running from a source checkout without installed metadata
    _version_file = Path(__file__).parent / "VERSION"
    if _version_file.is_file():
        __version__ = _version_file.read_text().strip()
    else:
        __version__ = "0.0.0-dev"

__all__ = [
    "BOUNDARY_MARKER",
    "Block",
    "BlockKind",
    "Decision",
    "DecisionManager",
    "DiffOptions",
    "Phase",
    "Position",
    "SegmentCoordinator",
    "SelectionRange",
    "TextDocument",
    "compute_diff",
    "compute_line_changes",
    "generate_final_text",
    "join_segments",
    "render_critic_markup",
    "segment_blocks",
    "split_segments",
    "__version__",
]
