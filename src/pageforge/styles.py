# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Design-token styles: register captured tokens with the builder.

Tokens are created most-used first so the builder's style list reads in
order of importance.  The resulting StyleMap is keyed by normalised value,
which is how node specs look up a style to reference instead of a raw value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .capture import DesignTokens
from .errors import BuilderError

if TYPE_CHECKING:
    from .builder import NodeBuilder

logger = logging.getLogger("pageforge.styles")


def normalize_color(value: str) -> str:
    return value.strip().lower()


def primary_font_family(value: str) -> str:
    """``'"Inter", sans-serif'`` → ``Inter``."""
    return value.split(",")[0].strip().strip("'\"")


def typography_key(family: str, size: float, weight: int) -> str:
    return f"{primary_font_family(family).lower()}|{size:g}|{weight}"


@dataclass(slots=True)
class StyleMap:
    """Normalised token value → builder style id."""

    colors: dict[str, str] = field(default_factory=dict)
    typography: dict[str, str] = field(default_factory=dict)
    effects: dict[str, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.colors) + len(self.typography) + len(self.effects)


def _unique_name(name: str, seen: set[str]) -> str:
    base = name.strip() or "Style"
    candidate = base
    n = 2
    while candidate in seen:
        candidate = f"{base} {n}"
        n += 1
    seen.add(candidate)
    return candidate


async def create_styles(tokens: DesignTokens, builder: NodeBuilder) -> StyleMap:
    """Create one builder style per distinct token value.

    A style the builder refuses is logged and skipped; nodes then fall back
    to raw values.
    """
    style_map = StyleMap()
    names: set[str] = set()

    for token in sorted(tokens.colors, key=lambda t: t.usage_count, reverse=True):
        key = normalize_color(token.value)
        if key in style_map.colors:
            continue
        try:
            style_map.colors[key] = await builder.create_style("color", _unique_name(token.name, names), token.value)
        except BuilderError:
            logger.warning("Color style %r rejected by builder", token.name, exc_info=True)

    for token in sorted(tokens.typography, key=lambda t: t.usage_count, reverse=True):
        key = typography_key(token.font_family, token.font_size, token.font_weight)
        if key in style_map.typography:
            continue
        value = f"{token.font_weight} {token.font_size:g}px {primary_font_family(token.font_family)}"
        try:
            style_map.typography[key] = await builder.create_style("text", _unique_name(token.name, names), value)
        except BuilderError:
            logger.warning("Text style %r rejected by builder", token.name, exc_info=True)

    for token in sorted(tokens.effects, key=lambda t: t.usage_count, reverse=True):
        key = token.value.strip()
        if key in style_map.effects:
            continue
        try:
            style_map.effects[key] = await builder.create_style("effect", _unique_name(token.name, names), token.value)
        except BuilderError:
            logger.warning("Effect style %r rejected by builder", token.name, exc_info=True)

    logger.debug(
        "Created %d style(s): %d color, %d text, %d effect",
        style_map.count,
        len(style_map.colors),
        len(style_map.typography),
        len(style_map.effects),
    )
    return style_map
