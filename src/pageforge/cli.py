# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageForge CLI: inspect, convert, variants and diff commands.

Usage:
    pageforge inspect CAPTURE
    pageforge convert CAPTURE [-o OUT]
    pageforge variants MULTI_CAPTURE [-o OUT]
    pageforge diff DOCUMENT CAPTURE [--apply] [--kind KIND ...] [-o OUT]

CAPTURE is the extraction JSON; MULTI_CAPTURE holds one capture per viewport;
DOCUMENT is the JSON written by ``convert``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tabulate import tabulate

from . import ChangeKind
from .builder import MemoryBuilder
from .capture import CaptureResult, MultiViewportCapture, parse_capture, parse_multi_viewport
from .config import ImportSettings, load_settings
from .errors import MalformedInputError, PageForgeError

logger = logging.getLogger("pageforge.cli")


def _read_capture(path_str: str) -> CaptureResult:
    path = Path(path_str)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise MalformedInputError(f"Cannot read capture {path}: {e.strerror}") from e
    return parse_capture(raw)


def _read_multi_viewport(path_str: str) -> MultiViewportCapture:
    path = Path(path_str)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise MalformedInputError(f"Cannot read capture {path}: {e.strerror}") from e
    return parse_multi_viewport(raw)


def _read_document(path_str: str) -> MemoryBuilder:
    path = Path(path_str)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise MalformedInputError(f"Cannot read document {path}: {e.strerror}") from e
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Document {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict) or "pages" not in data:
        raise MalformedInputError(f"Document {path} has no 'pages' (was it written by 'pageforge convert'?)")
    try:
        return MemoryBuilder.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedInputError(f"Document {path} is malformed: {e}") from e


def _write_json(data: dict, output: str | None) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if output:
        out = Path(output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {out}", file=sys.stderr)
    else:
        print(text)


def _settings(args: argparse.Namespace) -> ImportSettings:
    return load_settings(args.settings)


def cmd_inspect(args: argparse.Namespace) -> None:
    """Summarise a capture: node count, tokens, component patterns."""
    from .converter import detect_capture_components
    from .fingerprint import count_nodes

    capture = _read_capture(args.capture)
    settings = _settings(args)
    components = detect_capture_components(capture, settings)

    print(f"Source:     {capture.url}")
    print(f"Nodes:      {count_nodes(capture.root_node)}")
    print(f"Tokens:     {capture.tokens.total}")
    print(f"Components: {len(components)}")
    if components:
        rows = [[c.name, c.structural_hash, c.instance_count, c.representative.tag] for c in components]
        print()
        print(tabulate(rows, headers=["Name", "Hash", "Instances", "Tag"], tablefmt="simple"))


def cmd_convert(args: argparse.Namespace) -> None:
    """Import a capture into a fresh in-memory document."""
    from ._progress import phase_status, print_step
    from .converter import convert_capture

    capture = _read_capture(args.capture)
    settings = _settings(args)
    builder = MemoryBuilder()

    with phase_status(f"Importing {capture.url}...") as on_progress:
        result = asyncio.run(convert_capture(capture, builder, settings, on_progress))

    print_step(f"Nodes: {result.node_count}/{result.total_nodes} ({result.skipped_count} skipped)")
    print_step(f"Components: {result.component_count} ({result.instance_count} instances)")
    print_step(f"Styles: {result.style_count}")
    if result.precondition_failures:
        print_step(f"Created without font/image: {result.precondition_failures}")
    _write_json(builder.to_dict(), args.output)


def cmd_variants(args: argparse.Namespace) -> None:
    """Import a multi-viewport capture as one component set."""
    from ._progress import phase_status, print_step
    from .converter import convert_variants

    multi = _read_multi_viewport(args.capture)
    settings = _settings(args)
    builder = MemoryBuilder()

    with phase_status(f"Importing {multi.url} at {len(multi.extractions)} viewport(s)...") as on_progress:
        result = asyncio.run(convert_variants(multi, builder, settings, on_progress))

    for variant in result.variants:
        print_step(f"{variant.root.name}: {variant.node_count}/{variant.total_nodes} nodes")
    print_step(f"Components: {result.component_count}")
    print_step(f"Styles: {result.style_count}")
    _write_json(builder.to_dict(), args.output)


def cmd_diff(args: argparse.Namespace) -> None:
    """Diff a capture against a document and optionally apply the changes."""
    from ._progress import phase_status, print_step
    from .reconciler import apply_changes, compute_reimport_diff

    builder = _read_document(args.document)
    capture = _read_capture(args.capture)
    settings = _settings(args)

    async def _run():
        existing = await builder.locate_existing_tree(capture.url)
        if existing is None:
            raise MalformedInputError(f"Document {args.document} contains no import to re-sync")
        with phase_status("Comparing...") as on_progress:
            diff = await compute_reimport_diff(capture, builder, existing, on_progress)
        if args.kind:
            wanted = {ChangeKind(k) for k in args.kind}
            for change in diff.changes:
                change.selected = change.kind in wanted
        applied = None
        if args.apply:
            with phase_status("Applying...") as on_progress:
                applied = await apply_changes(diff.changes, capture, existing, builder, settings, on_progress)
        return diff, applied

    diff, applied = asyncio.run(_run())

    s = diff.summary
    rows = [[c.kind.value, c.path, c.node_kind, c.description, "x" if c.selected else ""] for c in diff.changes]
    if rows:
        print(tabulate(rows, headers=["Change", "Path", "Node", "Description", "Sel"], tablefmt="simple"))
        print()
    print(
        f"{s.total_nodes} nodes: {s.modified_count} modified, {s.added_count} added, "
        f"{s.removed_count} removed, {s.unchanged_count} unchanged"
    )

    if applied is not None:
        print_step(
            f"Applied: {applied.updated_count} updated, {applied.added_count} added, "
            f"{applied.removed_count} removed, {applied.precondition_failures} resource failure(s)"
        )
        _write_json(builder.to_dict(), args.output or args.document)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="PageForge CLI", prog="pageforge")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--settings", type=str, metavar="FILE", help="YAML import settings")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_inspect = subparsers.add_parser("inspect", help="Summarise a capture and its component patterns")
    p_inspect.add_argument("capture", metavar="CAPTURE")

    p_convert = subparsers.add_parser("convert", help="Import a capture into a new document")
    p_convert.add_argument("capture", metavar="CAPTURE")
    p_convert.add_argument("-o", "--output", type=str, metavar="PATH", help="Document output path (default: stdout)")

    p_variants = subparsers.add_parser("variants", help="Import a multi-viewport capture as variants")
    p_variants.add_argument("capture", metavar="MULTI_CAPTURE")
    p_variants.add_argument("-o", "--output", type=str, metavar="PATH", help="Document output path (default: stdout)")

    p_diff = subparsers.add_parser(
        "diff",
        help="Compare a new capture against a document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s doc.json capture.json                  Show changes only
  %(prog)s doc.json capture.json --apply          Apply all changes in place
  %(prog)s doc.json capture.json --apply --kind modified -o new.json""",
    )
    p_diff.add_argument("document", metavar="DOCUMENT")
    p_diff.add_argument("capture", metavar="CAPTURE")
    p_diff.add_argument("--apply", action="store_true", help="Apply selected changes to the document")
    p_diff.add_argument(
        "--kind",
        action="append",
        choices=[k.value for k in ChangeKind],
        help="Select only changes of this kind (repeatable)",
    )
    p_diff.add_argument("-o", "--output", type=str, metavar="PATH", help="Write the updated document here")

    commands = {"inspect": cmd_inspect, "convert": cmd_convert, "variants": cmd_variants, "diff": cmd_diff}

    args = parser.parse_args(argv)

    from .logging_config import configure

    configure(json_output=args.json_logs, level="DEBUG" if args.verbose else "WARNING")

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except PageForgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            logger.debug("Command %s failed", args.command, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
