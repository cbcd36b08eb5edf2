# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Materialise detected components as builder templates.

Each DetectedComponent's representative is built once as a component
template; the converter then emits instances of it wherever the structural
hash reappears.  Templates are built without nested substitution so a
component never instantiates itself.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from . import DetectedComponent
from .capture import CONTAINER_KINDS, CapturedNode
from .config import ImportSettings
from .detector import framer_component_key
from .errors import BuilderError
from .nodes import create_output_node, node_spec
from .styles import StyleMap

if TYPE_CHECKING:
    from .builder import NodeBuilder

logger = logging.getLogger("pageforge.components")


@dataclass(slots=True)
class ComponentMap:
    """Component key (structural hash or ``framer-<type>``) → template handle."""

    by_hash: dict[str, Any] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)
    precondition_failures: int = 0

    @property
    def count(self) -> int:
        return len(self.by_hash)

    def get(self, structural_hash: str | None) -> Any | None:
        if not structural_hash:
            return None
        return self.by_hash.get(structural_hash)

    def lookup(self, node: CapturedNode) -> Any | None:
        """Template for *node*: its Framer boundary first, then its structural hash."""
        key = framer_component_key(node)
        if key is not None and key in self.by_hash:
            return self.by_hash[key]
        return self.get(node.component_hash)


async def _build_subtree(
    node: CapturedNode,
    parent: Any,
    builder: NodeBuilder,
    settings: ImportSettings,
    style_map: StyleMap | None,
    depth: int,
) -> int:
    """Build *node* under *parent*; returns how many nodes lost a resource."""
    if not node.visible and not settings.include_hidden:
        return 0
    if depth > settings.max_depth:
        return 0
    handle, degraded = await create_output_node(builder, node, style_map)
    failures = int(degraded)
    if node.kind in CONTAINER_KINDS:
        for child in node.children:
            failures += await _build_subtree(child, handle, builder, settings, style_map, depth + 1)
    await builder.append_child(parent, handle)
    return failures


async def build_component(
    component: DetectedComponent,
    builder: NodeBuilder,
    settings: ImportSettings,
    style_map: StyleMap | None = None,
) -> tuple[Any, int]:
    """Create the template for *component* from its representative.

    Returns the template and the number of nodes built without a resource.
    """
    representative = component.representative
    template = await builder.create_component(component.name, node_spec(representative, style_map))
    failures = 0
    for child in representative.children:
        failures += await _build_subtree(child, template, builder, settings, style_map, 1)
    return template, failures


async def create_components(
    components: Sequence[DetectedComponent],
    builder: NodeBuilder,
    settings: ImportSettings,
    style_map: StyleMap | None = None,
    on_progress: Callable[[int, int], None] | None = None,
) -> ComponentMap:
    """Build one template per component; a template the builder rejects is skipped.

    Skipped components simply do not appear in the map, so their instances
    are expanded in full by the converter.
    """
    component_map = ComponentMap()
    total = len(components)
    for i, component in enumerate(components, start=1):
        try:
            template, failures = await build_component(component, builder, settings, style_map)
        except BuilderError:
            logger.warning(
                "Component %r (%d instances) could not be created; expanding instances",
                component.name,
                component.instance_count,
                exc_info=True,
            )
        else:
            component_map.by_hash[component.structural_hash] = template
            component_map.names[component.structural_hash] = component.name
            component_map.precondition_failures += failures
        if on_progress is not None:
            on_progress(i, total)
    logger.info("Created %d/%d component template(s)", component_map.count, total)
    return component_map
