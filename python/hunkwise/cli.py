import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List

import structlog

from hunkwise import __version__
from hunkwise.diff import compute_diff
from hunkwise.host import TextDocument
from hunkwise.markup import render_critic_markup
from hunkwise.models import Block, Decision, DiffOptions
from hunkwise.session import SegmentCoordinator


def _configure_logging(verbose: bool):
    # stdout carries command output; logs go to stderr
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _options_from_args(args: argparse.Namespace) -> DiffOptions:
    return DiffOptions(
        ignore_trim_whitespace=args.ignore_whitespace,
        compute_moves=not args.no_moves,
        max_computation_time_ms=args.timeout_ms,
        semantic_cleanup=args.semantic,
    )


def _read_text(path: Path) -> str:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _parse_selection(value: str):
    try:
        first, _, last = value.partition(":")
        return int(first), int(last or first)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid selection '{value}', expected FIRST:LAST line numbers.")


def _load_decisions(path: Path) -> Dict[int, Dict[int, Decision]]:
    """Reads {"segment": {"block": "decision"}} from a JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return {
            int(segment): {int(block): Decision(value) for block, value in blocks.items()}
            for segment, blocks in data.items()
        }
    except Exception as e:
        print(f"Error parsing JSON decisions: {e}", file=sys.stderr)
        sys.exit(1)


def _describe_block(block: Block) -> str:
    lines = f"L{block.original_start_line}-{block.original_end_line - 1}"
    tag = " (moved)" if block.moved else ""
    if block.replacement_value is None:
        return f"[-] {lines}{tag}: '{block.original_value}'"
    if block.original_value is None:
        return f"[+] {lines}{tag}: '{block.replacement_value}'"
    return f"[~] {lines}{tag}: '{block.original_value}' -> '{block.replacement_value}'"


def handle_diff(args):
    text_orig = _read_text(args.original)
    text_mod = _read_text(args.modified)

    result = compute_diff(text_orig, text_mod, options=_options_from_args(args))

    if args.json:
        output = [b.model_dump(mode="json") for b in result.blocks]
        print(json.dumps(output, indent=2))
    elif args.markup:
        print(render_critic_markup(result.blocks, include_index=True))
    else:
        print(f"Found {result.total_modified} changes:", file=sys.stderr)
        for block in result.blocks:
            if block.is_modified:
                print(f"#{block.index} {_describe_block(block)}")


def handle_apply(args):
    try:
        document = TextDocument.load(args.input)
        if args.selection:
            selections = [document.select_lines(first, last) for first, last in args.selection]
        else:
            selections = [document.select_lines(1, len(document.lines))]
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    session = SegmentCoordinator(selections, options=_options_from_args(args))
    session.append_chunk(_read_text(args.modified))
    session.complete()

    if session.fallback_used:
        print("Warning: segment count mismatch, whole reply applied to the first selection.", file=sys.stderr)

    if args.decisions:
        for segment_index, blocks in _load_decisions(args.decisions).items():
            for block_index, decision in blocks.items():
                session.set_decision(segment_index, block_index, decision)

    resolved, total = session.aggregate_progress()
    default = Decision(args.default)
    result = session.apply(document, default=default)
    if not result.ok:
        print(f"Error applying changes: {result.error}", file=sys.stderr)
        sys.exit(1)

    output_path = args.output or args.input.with_name(f"{args.input.stem}_merged{args.input.suffix}")
    document.save(output_path)

    print(f"✅ Saved to {output_path}", file=sys.stderr)
    print(f"Stats: {resolved}/{total} blocks decided, {total - resolved} resolved as '{default.value}'.", file=sys.stderr)


def _add_diff_options(parser: argparse.ArgumentParser):
    parser.add_argument("--ignore-whitespace", action="store_true", help="Ignore leading/trailing whitespace")
    parser.add_argument("--no-moves", action="store_true", help="Do not tag moved blocks")
    parser.add_argument("--timeout-ms", type=int, default=0, help="Diff time budget in ms (default: unbounded)")
    parser.add_argument("--semantic", action="store_true", help="Merge short unchanged runs between edits")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hunkwise", description="Hunkwise: block-level review of rewritten text")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_diff = subparsers.add_parser("diff", help="Show the change blocks between two text files")
    p_diff.add_argument("original", type=Path, help="Original text file")
    p_diff.add_argument("modified", type=Path, help="Modified text file")
    p_diff.add_argument("--json", action="store_true", help="Output raw JSON blocks")
    p_diff.add_argument("--markup", action="store_true", help="Output CriticMarkup with block indices")
    _add_diff_options(p_diff)
    p_diff.set_defaults(func=handle_diff)

    p_apply = subparsers.add_parser("apply", help="Merge a rewritten text back into a file")
    p_apply.add_argument("input", type=Path, help="File to merge into")
    p_apply.add_argument("modified", type=Path, help="Rewritten text, one part per selection")
    p_apply.add_argument(
        "-s",
        "--selection",
        type=_parse_selection,
        action="append",
        help="1-indexed line range FIRST:LAST of one selection (repeatable; default: whole file)",
    )
    p_apply.add_argument("--decisions", type=Path, help='JSON decisions: {"segment": {"block": "incoming"}}')
    p_apply.add_argument(
        "--default",
        choices=[Decision.CURRENT.value, Decision.INCOMING.value],
        default=Decision.CURRENT.value,
        help="Resolution for undecided blocks (default: current)",
    )
    p_apply.add_argument("-o", "--output", type=Path, help="Output path (default: <input>_merged)")
    _add_diff_options(p_apply)
    p_apply.set_defaults(func=handle_apply)
    return parser


def main(argv: List[str] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
