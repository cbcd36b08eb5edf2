# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-node content fingerprints and positional path maps.

Leaf module: depends only on the capture schema.  Fingerprints are coarse
FNV-1a digests used to detect that a node *looks* different between two
captures; they are not identities and collisions are tolerated.

Paths are positional: ``root`` for the top node, then ``-<sibling index>``
per level (``root-0-2``).  Reordering siblings therefore shows up as
remove + add pairs, never as a move.
"""

from __future__ import annotations

import math
from collections.abc import Iterator

from . import FingerprintEntry
from .capture import CapturedNode

ROOT_PATH = "root"

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193
_MASK_32 = 0xFFFFFFFF


def fnv1a_32(data: str) -> str:
    """FNV-1a 32-bit hash of the UTF-8 bytes of *data* as 8 hex digits."""
    h = _FNV_OFFSET
    for byte in data.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & _MASK_32
    return f"{h:08x}"


def _round_half_up(value: float) -> int:
    # half-up like the extraction side, not banker's rounding
    return math.floor(value + 0.5)


def compute_fingerprint(node: CapturedNode) -> str:
    """Fingerprint the fields a visual re-render would change.

    Children are not included: a change deep in a subtree flags only the node
    that changed, not its ancestors.
    """
    styles = node.styles
    parts = (
        node.kind.value,
        node.tag,
        node.text or "",
        f"{_round_half_up(node.bounds.width)}x{_round_half_up(node.bounds.height)}",
        styles.background_color or "",
        styles.color or "",
        styles.font_size or "",
        node.component_hash or "",
    )
    return fnv1a_32("|".join(parts))


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def iter_paths(root: CapturedNode, path_prefix: str = ROOT_PATH) -> Iterator[tuple[str, CapturedNode, int]]:
    """Yield ``(path, node, depth)`` in pre-order.

    Iterative so captures deeper than the interpreter recursion limit are fine.
    """
    stack: list[tuple[str, CapturedNode, int]] = [(path_prefix, root, 0)]
    while stack:
        path, node, depth = stack.pop()
        yield path, node, depth
        # reversed push keeps sibling order on pop
        for i in range(len(node.children) - 1, -1, -1):
            stack.append((f"{path}-{i}", node.children[i], depth + 1))


def count_nodes(root: CapturedNode) -> int:
    """Total node count of the subtree rooted at *root* (root included)."""
    count = 0
    stack = [root]
    while stack:
        node = stack.pop()
        count += 1
        stack.extend(node.children)
    return count


def build_fingerprint_map(root: CapturedNode, path_prefix: str = ROOT_PATH) -> dict[str, FingerprintEntry]:
    """Map every node's path to its fingerprint (dict order is pre-order).

    Every node gets an entry regardless of kind or visibility, so
    ``len(result) == count_nodes(root)``.
    """
    return {
        path: FingerprintEntry(path=path, fingerprint=compute_fingerprint(node), node=node)
        for path, node, _depth in iter_paths(root, path_prefix)
    }


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def parent_path(path: str) -> str | None:
    """Drop the last sibling index; ``None`` for a root path."""
    head, sep, tail = path.rpartition("-")
    if not sep or not tail.isdigit():
        return None
    return head


def path_depth(path: str) -> int:
    """Number of sibling indices in *path* (0 for the root)."""
    depth = 0
    while (parent := parent_path(path)) is not None:
        depth += 1
        path = parent
    return depth


def path_sort_key(path: str) -> tuple[int, tuple[int, ...]]:
    """Shallow-to-deep, then by sibling indices (``root-2`` before ``root-10``)."""
    indices: list[int] = []
    while (parent := parent_path(path)) is not None:
        indices.append(int(path.rsplit("-", 1)[1]))
        path = parent
    indices.reverse()
    return len(indices), tuple(indices)
