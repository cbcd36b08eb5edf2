# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Core converter — recursive captured tree → builder node pipeline.

Entry points:

- ``convert_capture(capture, builder, settings, on_progress)`` — the full
  import: styles, component detection, page container, node tree.
- ``convert_variants(multi, builder, settings, on_progress)`` — one
  component per viewport capture, combined into a component set; styles are
  created once from the widest capture and shared.
- ``convert_tree(root, builder, settings, ...)`` — the node walk alone.

Walk rules (depth-first, pre-order):
- hidden nodes below the root are skipped with their subtree unless
  ``include_hidden``; nodes deeper than ``max_depth`` are pruned;
- below the root, a node with a component template (Framer boundary or
  structural hash) becomes an instance and its subtree is not visited (but
  is counted);
- every other node is created, its children converted in order, then it is
  tagged with its path and fingerprint and appended to its parent.

A node whose font or image cannot be loaded is created without it and
counted in ``precondition_failures``; the walk carries on.

The walk hands control back to the event loop every ``yield_every`` nodes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from . import DetectedComponent
from .capture import (
    CONTAINER_KINDS,
    CapturedNode,
    CaptureResult,
    MultiViewportCapture,
    NodeKind,
    parse_capture,
    parse_multi_viewport,
)
from .components import ComponentMap, create_components
from .config import ImportSettings
from .detector import detect_components, enhance_framer_components
from .errors import BuilderError, PageForgeError
from .fingerprint import ROOT_PATH, compute_fingerprint, count_nodes
from .nodes import NodeSpec, create_output_node, output_dimension
from .progress import (
    IMPORT_PLAN,
    PHASE_LABELS,
    VARIANT_PLAN,
    ImportPhase,
    ProgressCallback,
    ProgressTracker,
)
from .styles import StyleMap, create_styles

if TYPE_CHECKING:
    from .builder import NodeBuilder

logger = logging.getLogger("pageforge.converter")

NodeProgress = Callable[[int, str], None]
PhaseReport = Callable[[ImportPhase, float, str], None]


@dataclass(slots=True)
class ConvertResult:
    root: Any  # handle of the outermost created node
    node_count: int = 0
    component_count: int = 0
    instance_count: int = 0
    style_count: int = 0
    token_count: int = 0
    skipped_count: int = 0
    total_nodes: int = 0
    precondition_failures: int = 0  # nodes created without a font or image


@dataclass(slots=True)
class VariantResult:
    root: Any  # the component set
    variants: list[ConvertResult] = field(default_factory=list)
    style_count: int = 0

    @property
    def variant_count(self) -> int:
        return len(self.variants)

    @property
    def node_count(self) -> int:
        return sum(v.node_count for v in self.variants)

    @property
    def component_count(self) -> int:
        return sum(v.component_count for v in self.variants)

    @property
    def precondition_failures(self) -> int:
        return sum(v.precondition_failures for v in self.variants)


class _Walk:
    """Mutable state shared by one conversion walk."""

    __slots__ = (
        "builder",
        "settings",
        "style_map",
        "components",
        "total",
        "processed",
        "skipped",
        "instances",
        "precondition_failures",
        "_since_yield",
        "_on_progress",
    )

    def __init__(
        self,
        builder: NodeBuilder,
        settings: ImportSettings,
        style_map: StyleMap | None,
        components: ComponentMap | None,
        total: int,
        on_progress: NodeProgress | None,
    ) -> None:
        self.builder = builder
        self.settings = settings
        self.style_map = style_map
        self.components = components or ComponentMap()
        self.total = total
        self.processed = 0
        self.skipped = 0
        self.instances = 0
        self.precondition_failures = 0
        self._since_yield = 0
        self._on_progress = on_progress

    async def advance(self, count: int) -> None:
        # bounded by the up-front total so progress never overshoots
        self.processed = min(self.total, self.processed + count)
        if self._on_progress is not None:
            self._on_progress(self.processed, f"Created {self.processed}/{self.total} nodes")
        self._since_yield += 1
        if self._since_yield >= self.settings.yield_every:
            self._since_yield = 0
            await asyncio.sleep(0)


async def convert_node(node: CapturedNode, parent: Any, walk: _Walk, depth: int = 0, path: str = ROOT_PATH) -> Any:
    """Convert *node* (and its subtree) under *parent*; returns the handle or None when skipped."""
    if depth > 0 and not node.visible and not walk.settings.include_hidden:
        walk.skipped += count_nodes(node)
        return None
    if depth > walk.settings.max_depth:
        walk.skipped += count_nodes(node)
        return None

    builder = walk.builder
    fingerprint = compute_fingerprint(node)

    if depth > 0 and (component := walk.components.lookup(node)) is not None:
        instance = await builder.create_component_instance(node, component)
        await builder.tag_with_path(instance, path, fingerprint)
        if parent is not None:
            await builder.append_child(parent, instance)
        walk.instances += 1
        await walk.advance(count_nodes(node))
        return instance

    handle, degraded = await create_output_node(builder, node, walk.style_map)
    if degraded:
        walk.precondition_failures += 1
    if node.kind in CONTAINER_KINDS:
        for i, child in enumerate(node.children):
            await convert_node(child, handle, walk, depth + 1, f"{path}-{i}")
    elif node.children:
        # leaf primitives (text, image, svg, input) carry no child layers
        walk.skipped += count_nodes(node) - 1

    await builder.tag_with_path(handle, path, fingerprint)
    if parent is not None:
        await builder.append_child(parent, handle)
    await walk.advance(1)
    return handle


async def convert_tree(
    root: CapturedNode,
    builder: NodeBuilder,
    settings: ImportSettings | None = None,
    *,
    parent: Any = None,
    components: ComponentMap | None = None,
    style_map: StyleMap | None = None,
    on_progress: NodeProgress | None = None,
    path_prefix: str = ROOT_PATH,
) -> ConvertResult:
    """Materialise *root* through *builder*.

    ``on_progress`` receives ``(nodes_processed, message)``; the count only
    grows and never exceeds ``count_nodes(root)``.
    """
    settings = settings or ImportSettings()
    total = count_nodes(root)
    walk = _Walk(builder, settings, style_map, components, total, on_progress)
    handle = await convert_node(root, parent, walk, 0, path_prefix)
    return ConvertResult(
        root=handle,
        node_count=walk.processed,
        component_count=walk.components.count,
        instance_count=walk.instances,
        skipped_count=walk.skipped,
        total_nodes=total,
        precondition_failures=walk.precondition_failures + walk.components.precondition_failures,
    )


def detect_capture_components(capture: CaptureResult, settings: ImportSettings) -> list[DetectedComponent]:
    """Hash-based detection, plus Framer boundaries on Framer sites when enabled."""
    detected = detect_components(capture.root_node, settings.component_threshold)
    if settings.framer_aware and capture.is_framer_site:
        detected = enhance_framer_components(detected, capture.root_node)
    return detected


async def _materialise(
    capture: CaptureResult,
    builder: NodeBuilder,
    settings: ImportSettings,
    style_map: StyleMap | None,
    report: PhaseReport,
    create_container: Callable[[], Awaitable[Any]],
) -> ConvertResult:
    """Components, then the container, then the node tree inside it."""
    root = capture.root_node
    total = count_nodes(root)

    component_map = ComponentMap()
    if settings.create_components:
        report(ImportPhase.DETECTING_COMPONENTS, 0.0, "")
        detected = detect_capture_components(capture, settings)
        report(ImportPhase.DETECTING_COMPONENTS, 0.3, f"Found {len(detected)} component patterns...")

        def _component_progress(created: int, count: int) -> None:
            report(
                ImportPhase.DETECTING_COMPONENTS,
                0.3 + 0.7 * created / count,
                f"Creating component {created}/{count}...",
            )

        component_map = await create_components(detected, builder, settings, style_map, _component_progress)

    report(ImportPhase.CREATING_NODES, 0.0, f"Creating {total} nodes...")
    container = await create_container()
    result = await convert_tree(
        root,
        builder,
        settings,
        parent=container,
        components=component_map,
        style_map=style_map,
        on_progress=lambda done, msg: report(ImportPhase.CREATING_NODES, done / total, msg),
    )
    result.root = container
    result.style_count = style_map.count if style_map is not None else 0
    result.token_count = capture.tokens.total
    return result


async def _create_page(builder: NodeBuilder, capture: CaptureResult) -> Any:
    title = capture.metadata.title or f"Import from {capture.url}"
    spec = NodeSpec(
        name=title,
        width=output_dimension(capture.viewport.width),
        height=output_dimension(capture.viewport.height),
    )
    page = await builder.create_node(NodeKind.FRAME, spec)
    await builder.mark_import_root(page, capture.url, capture.timestamp)
    return page


async def convert_capture(
    capture: CaptureResult | dict | str | bytes,
    builder: NodeBuilder,
    settings: ImportSettings | None = None,
    on_progress: ProgressCallback | None = None,
) -> ConvertResult:
    """Full first-time import of a capture.

    Raises:
        MalformedInputError: the capture fails validation (nothing is created).
        BuilderError: the builder failed in a way the import cannot recover from.
    """
    settings = settings or ImportSettings()
    tracker = ProgressTracker(on_progress, IMPORT_PLAN)

    tracker.report(ImportPhase.PREPARING, 0.0)
    capture = parse_capture(capture)
    total = count_nodes(capture.root_node)
    tracker.report(ImportPhase.PREPARING, 1.0, f"Captured tree has {total} nodes")

    try:
        style_map: StyleMap | None = None
        if settings.create_styles:
            tracker.report(ImportPhase.CREATING_STYLES, 0.0)
            style_map = await create_styles(capture.tokens, builder)
            tracker.report(ImportPhase.CREATING_STYLES, 1.0, f"Created {style_map.count} styles")

        result = await _materialise(
            capture,
            builder,
            settings,
            style_map,
            tracker.report,
            lambda: _create_page(builder, capture),
        )
    except PageForgeError:
        logger.error("Import of %s failed", capture.url, exc_info=True)
        raise
    except Exception as e:
        logger.error("Import of %s failed: builder error", capture.url, exc_info=True)
        raise BuilderError(f"Builder failed during import: {e}") from e

    tracker.finish()
    logger.info(
        "Imported %s: %d/%d nodes, %d components (%d instances), %d styles, %d skipped, %d without resources",
        capture.url,
        result.node_count,
        total,
        result.component_count,
        result.instance_count,
        result.style_count,
        result.skipped_count,
        result.precondition_failures,
        extra={"phase_ms": tracker.elapsed_per_phase()},
    )
    return result


# ---------------------------------------------------------------------------
# Multi-viewport variants
# ---------------------------------------------------------------------------

# share of one variant's band spent on each inner phase
_VARIANT_SPLIT: dict[ImportPhase, tuple[float, float]] = {
    ImportPhase.DETECTING_COMPONENTS: (0.0, 0.2),
    ImportPhase.CREATING_NODES: (0.2, 0.8),
}


def _variant_report(tracker: ProgressTracker, index: int, count: int, label: str) -> PhaseReport:
    def report(phase: ImportPhase, fraction: float, message: str) -> None:
        start, width = _VARIANT_SPLIT[phase]
        tracker.report(
            ImportPhase.CREATING_VARIANTS,
            (index + start + width * fraction) / count,
            f"[{label}] {message or PHASE_LABELS[phase]}",
        )

    return report


def _set_name(multi: MultiViewportCapture, widest: CaptureResult) -> str:
    if widest.metadata.title:
        return widest.metadata.title
    return f"Import from {urlsplit(multi.url).hostname or 'unknown'}"


async def convert_variants(
    multi: MultiViewportCapture | dict | str | bytes,
    builder: NodeBuilder,
    settings: ImportSettings | None = None,
    on_progress: ProgressCallback | None = None,
) -> VariantResult:
    """Import every viewport capture as a ``Viewport=<label>`` component and combine them.

    Captures are converted widest first; design tokens come from the widest
    capture only and its styles are shared by every variant.

    Raises:
        MalformedInputError: the capture set fails validation (nothing is created).
        BuilderError: the builder failed in a way the import cannot recover from.
    """
    settings = settings or ImportSettings()
    tracker = ProgressTracker(on_progress, VARIANT_PLAN)
    tracker.report(ImportPhase.PREPARING, 0.0)
    multi = parse_multi_viewport(multi)
    ordered = sorted(multi.extractions, key=lambda e: e.width, reverse=True)
    tracker.report(ImportPhase.PREPARING, 1.0, f"{len(ordered)} viewport(s)")

    result = VariantResult(root=None)
    try:
        style_map: StyleMap | None = None
        if settings.create_styles:
            tracker.report(ImportPhase.CREATING_STYLES, 0.0)
            style_map = await create_styles(ordered[0].result.tokens, builder)
            tracker.report(ImportPhase.CREATING_STYLES, 1.0, f"Created {style_map.count} styles")
            result.style_count = style_map.count

        variants = []
        for i, extraction in enumerate(ordered):
            capture = extraction.result
            name = f"Viewport={extraction.label}"
            spec = NodeSpec(
                name=name,
                width=output_dimension(capture.viewport.width),
                height=output_dimension(capture.viewport.height),
            )
            converted = await _materialise(
                capture,
                builder,
                settings,
                style_map,
                _variant_report(tracker, i, len(ordered), extraction.label),
                lambda spec=spec, name=name: builder.create_component(name, spec),
            )
            variants.append(converted.root)
            result.variants.append(converted)
            logger.debug("Variant %s: %d nodes", name, converted.node_count)

        result.root = await builder.combine_as_variants(variants, _set_name(multi, ordered[0].result))
    except PageForgeError:
        logger.error("Variant import of %s failed", multi.url, exc_info=True)
        raise
    except Exception as e:
        logger.error("Variant import of %s failed: builder error", multi.url, exc_info=True)
        raise BuilderError(f"Builder failed during variant import: {e}") from e

    tracker.finish()
    logger.info(
        "Imported %s as %d variant(s): %d nodes, %d components, %d styles",
        multi.url,
        result.variant_count,
        result.node_count,
        result.component_count,
        result.style_count,
        extra={"phase_ms": tracker.elapsed_per_phase()},
    )
    return result
