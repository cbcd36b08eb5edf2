# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Re-sync pipeline — diff a new capture against an existing document and apply.

Flow:
1. Locate the existing import root (by source id via the builder)
2. Walk the existing output tree, collecting path + fingerprint metadata
3. Fingerprint the new capture
4. ``compute_diff`` → change records for review
5. ``apply_changes`` with the records the caller left selected

Each change is applied and re-stamped before the next one starts, so an
interrupted apply leaves finished changes in place and the rest untouched;
a second diff picks up whatever is left.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from . import ChangeKind, ChangeRecord, ChangeSummary, DiffResult, ExistingFingerprintEntry, FingerprintEntry
from .builder import INSTANCE
from .capture import CapturedNode, CaptureResult, NodeKind, parse_capture
from .config import ImportSettings
from .errors import ResourcePreconditionError
from .fingerprint import build_fingerprint_map, compute_fingerprint, parent_path, path_depth, path_sort_key
from .nodes import create_output_node, node_spec
from .progress import APPLY_PLAN, DIFF_PLAN, ImportPhase, ProgressCallback, ProgressTracker
from .styles import StyleMap, create_styles

if TYPE_CHECKING:
    from .builder import NodeBuilder

logger = logging.getLogger("pageforge.reconciler")

DESCRIPTION_TEXT_LIMIT = 30


# ---------------------------------------------------------------------------
# Diff (pure)
# ---------------------------------------------------------------------------


def describe_node(node: CapturedNode, kind: ChangeKind) -> str:
    if node.text:
        clipped = node.text[:DESCRIPTION_TEXT_LIMIT]
        ellipsis = "..." if len(node.text) > DESCRIPTION_TEXT_LIMIT else ""
        label = f'"{clipped}{ellipsis}"'
    else:
        label = f"<{node.tag}>"
    verb = "New" if kind == ChangeKind.ADDED else "Changed"
    return f"{verb} {node.kind} {label}"


def nearest_existing(path: str, existing: Mapping[str, Any]) -> str | None:
    """Closest ancestor of *path* present in *existing*."""
    parent = parent_path(path)
    while parent is not None:
        if parent in existing:
            return parent
        parent = parent_path(parent)
    return None


def _inside_instance(path: str, existing_map: Mapping[str, ExistingFingerprintEntry]) -> bool:
    ancestor = nearest_existing(path, existing_map)
    return ancestor is not None and existing_map[ancestor].is_instance


def compute_diff(
    new_map: dict[str, FingerprintEntry],
    existing_map: dict[str, ExistingFingerprintEntry],
) -> DiffResult:
    """Classify every path as added, modified, removed or unchanged.

    Records follow new-map order, then removed paths in existing-map order.
    A new path whose nearest existing ancestor is a component instance is
    rendered by that instance's template and counts as unchanged.
    """
    changes: list[ChangeRecord] = []
    modified = added = unchanged = 0
    has_instances = any(e.is_instance for e in existing_map.values())

    for path, entry in new_map.items():
        existing = existing_map.get(path)
        if existing is None and has_instances and _inside_instance(path, existing_map):
            unchanged += 1
            continue
        if existing is None:
            added += 1
            kind = ChangeKind.ADDED
        elif existing.fingerprint != entry.fingerprint:
            modified += 1
            kind = ChangeKind.MODIFIED
        else:
            unchanged += 1
            continue
        changes.append(
            ChangeRecord(
                id=path,
                kind=kind,
                path=path,
                node_kind=entry.node.kind.value,
                description=describe_node(entry.node, kind),
            )
        )

    removed = 0
    for path in existing_map:
        if path in new_map:
            continue
        removed += 1
        changes.append(
            ChangeRecord(
                id=path,
                kind=ChangeKind.REMOVED,
                path=path,
                node_kind=NodeKind.UNKNOWN.value,
                description=f"Node at {path} removed",
            )
        )

    summary = ChangeSummary(
        total_nodes=len(new_map),
        modified_count=modified,
        added_count=added,
        removed_count=removed,
        unchanged_count=unchanged,
    )
    return DiffResult(changes=changes, summary=summary)


# ---------------------------------------------------------------------------
# Existing document
# ---------------------------------------------------------------------------


async def find_existing_import(builder: NodeBuilder, source_id: str) -> Any | None:
    return await builder.locate_existing_tree(source_id)


async def index_output_tree(builder: NodeBuilder, root: Any) -> dict[str, tuple[Any, str]]:
    """Path → (handle, fingerprint) for every tagged node under *root* (rebuilt on each call)."""
    index: dict[str, tuple[Any, str]] = {}
    stack = [root]
    while stack:
        handle = stack.pop()
        tag = await builder.read_path_and_fingerprint(handle)
        if tag is not None:
            path, fingerprint = tag
            if path in index:
                logger.warning("Duplicate path %s in existing document; keeping first", path)
            else:
                index[path] = (handle, fingerprint)
        stack.extend(reversed(builder.children_of(handle)))
    return index


async def collect_existing_fingerprints(builder: NodeBuilder, root: Any) -> dict[str, ExistingFingerprintEntry]:
    """Recover the fingerprint map stamped on a previously produced document."""
    index = await index_output_tree(builder, root)
    return {
        path: ExistingFingerprintEntry(
            path=path,
            fingerprint=fingerprint,
            node_id=builder.node_id(handle),
            is_instance=builder.kind_of(handle) == INSTANCE,
        )
        for path, (handle, fingerprint) in index.items()
    }


async def compute_reimport_diff(
    capture: CaptureResult | dict | str | bytes,
    builder: NodeBuilder,
    existing_root: Any | None = None,
    on_progress: ProgressCallback | None = None,
) -> DiffResult | None:
    """Diff *capture* against its previous import; ``None`` when there is nothing to diff against."""
    tracker = ProgressTracker(on_progress, DIFF_PLAN)
    tracker.report(ImportPhase.PREPARING, 0.0)
    capture = parse_capture(capture)
    if existing_root is None:
        existing_root = await find_existing_import(builder, capture.url)
        if existing_root is None:
            logger.info("No existing import for %s", capture.url)
            return None

    tracker.report(ImportPhase.DIFFING, 0.0, "Building new fingerprint map...")
    new_map = build_fingerprint_map(capture.root_node)
    tracker.report(ImportPhase.DIFFING, 0.3, "Collecting existing fingerprints...")
    existing_map = await collect_existing_fingerprints(builder, existing_root)
    tracker.report(ImportPhase.DIFFING, 0.6, "Computing differences...")
    result = compute_diff(new_map, existing_map)
    tracker.report(ImportPhase.DIFFING, 1.0, f"Found {len(result.changes)} changes")

    s = result.summary
    logger.info(
        "Diff for %s: %d modified, %d added, %d removed, %d unchanged",
        capture.url,
        s.modified_count,
        s.added_count,
        s.removed_count,
        s.unchanged_count,
    )
    return result


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ApplyResult:
    updated_count: int = 0
    added_count: int = 0
    removed_count: int = 0
    missed_count: int = 0  # change paths with no counterpart (no-op)
    precondition_failures: int = 0  # text updates skipped or nodes added without a font/image


def _apply_order(changes: Iterable[ChangeRecord]) -> list[ChangeRecord]:
    """Removals deepest-first, then modifications, then additions shallow-to-deep."""
    changes = list(changes)
    removed = [c for c in changes if c.kind == ChangeKind.REMOVED]
    modified = [c for c in changes if c.kind == ChangeKind.MODIFIED]
    added = [c for c in changes if c.kind == ChangeKind.ADDED]
    removed.sort(key=lambda c: path_depth(c.path), reverse=True)
    added.sort(key=lambda c: path_sort_key(c.path))
    return removed + modified + added


class _Applier:
    """Applies change records against one existing document."""

    def __init__(
        self,
        builder: NodeBuilder,
        root: Any,
        new_map: dict[str, FingerprintEntry],
        index: dict[str, Any],
        style_map: StyleMap | None,
    ) -> None:
        self.builder = builder
        self.root = root
        self.new_map = new_map
        self.index = index
        self.style_map = style_map
        self.result = ApplyResult()

    async def apply(self, change: ChangeRecord) -> None:
        if change.kind == ChangeKind.MODIFIED:
            await self._modify(change.path)
        elif change.kind == ChangeKind.ADDED:
            await self._add(change.path)
        else:
            await self._remove(change.path)

    async def _modify(self, path: str) -> None:
        handle = self.index.get(path)
        entry = self.new_map.get(path)
        if handle is None or entry is None:
            logger.debug("Modify %s: no counterpart, skipping", path)
            self.result.missed_count += 1
            return
        node = entry.node
        await self.builder.update_node(handle, node_spec(node, self.style_map))
        if node.kind == NodeKind.TEXT and self.builder.kind_of(handle) == NodeKind.TEXT.value:
            try:
                await self.builder.replace_text(handle, node.text or "")
            except ResourcePreconditionError as e:
                logger.warning("Text update skipped at %s: %s", path, e)
                self.result.precondition_failures += 1
        await self.builder.tag_with_path(handle, path, entry.fingerprint)
        self.result.updated_count += 1

    async def _insertion_index(self, parent: Any, path: str) -> int | None:
        # keep sibling order: insert before the first tagged sibling that sorts after us
        key = path_sort_key(path)
        for i, child in enumerate(self.builder.children_of(parent)):
            tag = await self.builder.read_path_and_fingerprint(child)
            if tag is not None and path_sort_key(tag[0]) > key:
                return i
        return None

    async def _add(self, path: str) -> None:
        entry = self.new_map.get(path)
        if entry is None:
            self.result.missed_count += 1
            return
        ancestor = nearest_existing(path, self.index)
        if ancestor is not None and self.builder.kind_of(self.index[ancestor]) == INSTANCE:
            logger.debug("Add %s: inside instance %s, skipping", path, ancestor)
            self.result.missed_count += 1
            return
        parent_key = parent_path(path)
        parent = self.index.get(parent_key) if parent_key is not None else None
        if parent is None:
            logger.debug("Add %s: parent %s not found, attaching to document root", path, parent_key)
            parent = self.root
        handle, degraded = await create_output_node(self.builder, entry.node, self.style_map)
        if degraded:
            self.result.precondition_failures += 1
        await self.builder.tag_with_path(handle, path, compute_fingerprint(entry.node))
        index = await self._insertion_index(parent, path)
        await self.builder.append_child(parent, handle, index)
        self.index[path] = handle
        self.result.added_count += 1

    async def _remove(self, path: str) -> None:
        handle = self.index.pop(path, None)
        if handle is None:
            logger.debug("Remove %s: no counterpart, skipping", path)
            self.result.missed_count += 1
            return
        await self.builder.remove_node(handle)
        prefix = f"{path}-"
        for stale in [p for p in self.index if p.startswith(prefix)]:
            del self.index[stale]
        self.result.removed_count += 1


async def apply_changes(
    changes: Iterable[ChangeRecord],
    capture: CaptureResult | dict | str | bytes,
    existing_root: Any,
    builder: NodeBuilder,
    settings: ImportSettings | None = None,
    on_progress: ProgressCallback | None = None,
) -> ApplyResult:
    """Apply the selected change records to the document rooted at *existing_root*."""
    settings = settings or ImportSettings()
    tracker = ProgressTracker(on_progress, APPLY_PLAN)
    tracker.report(ImportPhase.PREPARING, 0.0)

    capture = parse_capture(capture)
    selected = _apply_order(c for c in changes if c.selected)
    if not selected:
        tracker.finish("Nothing to apply")
        return ApplyResult()

    style_map = await create_styles(capture.tokens, builder) if settings.create_styles else None
    new_map = build_fingerprint_map(capture.root_node)
    index = {path: handle for path, (handle, _fp) in (await index_output_tree(builder, existing_root)).items()}
    applier = _Applier(builder, existing_root, new_map, index, style_map)
    tracker.report(ImportPhase.PREPARING, 1.0)

    total = len(selected)
    for n, change in enumerate(selected, start=1):
        await applier.apply(change)
        tracker.report(ImportPhase.APPLYING_DIFF, n / total, f"Applying change {n}/{total}...")

    await builder.mark_import_root(existing_root, capture.url, int(time.time() * 1000))
    tracker.finish()

    r = applier.result
    logger.info(
        "Applied %d change(s) to %s: %d updated, %d added, %d removed, %d missed, %d resource failure(s)",
        total,
        capture.url,
        r.updated_count,
        r.added_count,
        r.removed_count,
        r.missed_count,
        r.precondition_failures,
    )
    return r
