# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Single-node creation shared by the converter, component templates and re-sync.

``node_spec()`` turns a CapturedNode into the platform-neutral NodeSpec a
builder consumes; ``create_output_node()`` hands it to the builder.  Neither
recurses: callers decide what happens to children.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .capture import CapturedNode
from .errors import ResourcePreconditionError
from .styles import StyleMap, normalize_color, primary_font_family, typography_key

if TYPE_CHECKING:
    from .builder import NodeBuilder

logger = logging.getLogger("pageforge.nodes")

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

_TRANSPARENT = frozenset({"transparent", "rgba(0, 0, 0, 0)", "rgba(0,0,0,0)"})

MIN_DIMENSION = 1.0


@dataclass(frozen=True, slots=True)
class NodeSpec:
    """Everything a builder needs to create or refresh one output primitive."""

    name: str
    x: float = 0.0
    y: float = 0.0
    width: float = MIN_DIMENSION
    height: float = MIN_DIMENSION
    visible: bool = True
    text: str | None = None
    fill: str | None = None
    text_color: str | None = None
    font_family: str | None = None
    font_size: float | None = None
    font_weight: int | None = None
    corner_radius: float | None = None
    opacity: float | None = None
    image_url: str | None = None
    svg_data: str | None = None
    style_refs: dict[str, str] = field(default_factory=dict, hash=False)


def parse_css_number(value: str | None) -> float | None:
    """First number in a CSS value (``"16px"`` → 16.0); ``None`` when absent."""
    if not value:
        return None
    m = _NUMBER_RE.search(value)
    if not m:
        return None
    return float(m.group())


def output_dimension(value: float) -> float:
    """Output primitives cannot be zero or negative sized."""
    return max(MIN_DIMENSION, float(math.floor(value + 0.5)))


def is_transparent(color: str | None) -> bool:
    return not color or normalize_color(color) in _TRANSPARENT


def layer_name(node: CapturedNode) -> str:
    return node.data_attributes.get("data-framer-name") or node.tag


def node_spec(node: CapturedNode, style_map: StyleMap | None = None) -> NodeSpec:
    """Build the NodeSpec for *node*, referencing styles from *style_map* where a value matches."""
    styles = node.styles
    refs: dict[str, str] = {}

    fill = None if is_transparent(styles.background_color) else styles.background_color
    font_size = parse_css_number(styles.font_size)
    weight = parse_css_number(styles.font_weight)
    font_weight = int(weight) if weight is not None else None
    family = primary_font_family(styles.font_family) if styles.font_family else None

    if style_map is not None:
        if fill and (ref := style_map.colors.get(normalize_color(fill))):
            refs["fill"] = ref
        if styles.color and (ref := style_map.colors.get(normalize_color(styles.color))):
            refs["text_fill"] = ref
        if family and font_size is not None:
            key = typography_key(family, font_size, font_weight or 400)
            if ref := style_map.typography.get(key):
                refs["text"] = ref
        if styles.box_shadow and (ref := style_map.effects.get(styles.box_shadow.strip())):
            refs["effect"] = ref

    opacity = parse_css_number(styles.opacity)
    return NodeSpec(
        name=layer_name(node),
        x=node.bounds.x,
        y=node.bounds.y,
        width=output_dimension(node.bounds.width),
        height=output_dimension(node.bounds.height),
        visible=node.visible,
        text=node.text,
        fill=fill,
        text_color=styles.color,
        font_family=family,
        font_size=font_size,
        font_weight=font_weight,
        corner_radius=parse_css_number(styles.border_radius),
        opacity=opacity if opacity is not None and opacity < 1 else None,
        image_url=node.image_url or node.image_data_uri,
        svg_data=node.svg_data,
        style_refs=refs,
    )


def without_resources(spec: NodeSpec) -> NodeSpec:
    """*spec* minus anything the host must load first (font, image)."""
    refs = {k: v for k, v in spec.style_refs.items() if k != "text"}
    return dataclasses.replace(spec, font_family=None, image_url=None, style_refs=refs)


async def create_output_node(
    builder: NodeBuilder, node: CapturedNode, style_map: StyleMap | None = None
) -> tuple[Any, bool]:
    """Create exactly one output node for *node* (children are the caller's business).

    Returns ``(handle, degraded)``.  When the builder cannot load a font or
    image the node needs, it is created once more without them and
    ``degraded`` is True.  A second precondition failure propagates.
    """
    spec = node_spec(node, style_map)
    try:
        return await builder.create_node(node.kind, spec), False
    except ResourcePreconditionError as e:
        logger.warning("Creating %s <%s> without %s: %s", node.kind, node.tag, e.resource or "resource", e)
    return await builder.create_node(node.kind, without_resources(spec)), True
