# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Component detection — group repeated subtrees by structural hash.

The extraction stage stamps ``componentHash`` on frames whose subtree shape
recurs among siblings.  A hash seen on ``threshold`` or more qualifying frames
becomes a DetectedComponent; its representative (first instance in pre-order)
is later materialised as the component template.

Framer sites also mark component boundaries explicitly with
``data-framer-component-type``; ``enhance_framer_components`` turns those
into components at a lower threshold and lets them replace overlapping
hash-detected ones.

Pure functions, no builder dependency.
"""

from __future__ import annotations

import logging

from . import DetectedComponent
from .capture import CapturedNode, NodeKind
from .fingerprint import iter_paths
from .naming import component_name, framer_type_name

logger = logging.getLogger("pageforge.detector")

COMPONENT_THRESHOLD = 3
FRAMER_COMPONENT_THRESHOLD = 2

FRAMER_TYPE_ATTRIBUTE = "data-framer-component-type"
FRAMER_KEY_PREFIX = "framer-"


def _is_candidate(node: CapturedNode) -> bool:
    # leaves and non-frames never become component roots, even when hashed
    return bool(node.component_hash) and node.kind == NodeKind.FRAME and len(node.children) > 0


def collect_hash_groups(root: CapturedNode) -> dict[str, list[CapturedNode]]:
    """Pre-order walk grouping candidate nodes by structural hash (dict order = first seen)."""
    groups: dict[str, list[CapturedNode]] = {}
    for _path, node, _depth in iter_paths(root):
        if _is_candidate(node):
            groups.setdefault(node.component_hash, []).append(node)
    return groups


def detect_components(root: CapturedNode, threshold: int = COMPONENT_THRESHOLD) -> list[DetectedComponent]:
    """Detect repeated component patterns, most instances first.

    Ties keep first-detected order (``sorted`` is stable).
    """
    groups = collect_hash_groups(root)
    components = [
        DetectedComponent(
            structural_hash=structural_hash,
            name=component_name(instances),
            instances=tuple(instances),
        )
        for structural_hash, instances in groups.items()
        if len(instances) >= threshold
    ]
    components.sort(key=lambda c: c.instance_count, reverse=True)
    logger.debug(
        "Detected %d component(s) from %d hash group(s) (threshold=%d)",
        len(components),
        len(groups),
        threshold,
    )
    return components


# ---------------------------------------------------------------------------
# Framer boundaries
# ---------------------------------------------------------------------------


def framer_component_key(node: CapturedNode) -> str | None:
    """``framer-<type>`` for a frame marked as a Framer component boundary."""
    component_type = node.data_attributes.get(FRAMER_TYPE_ATTRIBUTE)
    if component_type and node.kind == NodeKind.FRAME and node.children:
        return f"{FRAMER_KEY_PREFIX}{component_type}"
    return None


def enhance_framer_components(
    detected: list[DetectedComponent],
    root: CapturedNode,
    threshold: int = FRAMER_COMPONENT_THRESHOLD,
) -> list[DetectedComponent]:
    """Merge Framer-marked components into *detected*.

    Boundaries are grouped by component type.  A hash-detected component
    whose hash appears on any Framer instance is dropped in favour of the
    Framer one, which carries the designer's name.  Result is sorted most
    instances first, hash-detected before Framer on ties.
    """
    groups: dict[str, list[CapturedNode]] = {}
    for _path, node, _depth in iter_paths(root):
        if key := framer_component_key(node):
            groups.setdefault(key, []).append(node)

    framer = [
        DetectedComponent(
            structural_hash=key,
            name=framer_type_name(key.removeprefix(FRAMER_KEY_PREFIX)),
            instances=tuple(instances),
        )
        for key, instances in groups.items()
        if len(instances) >= threshold
    ]
    covered = {node.component_hash for c in framer for node in c.instances if node.component_hash}
    merged = [c for c in detected if c.structural_hash not in covered]
    merged.extend(framer)
    merged.sort(key=lambda c: c.instance_count, reverse=True)
    logger.debug(
        "Framer boundaries: %d type(s), %d component(s), %d hash component(s) replaced",
        len(groups),
        len(framer),
        len(detected) - (len(merged) - len(framer)),
    )
    return merged
