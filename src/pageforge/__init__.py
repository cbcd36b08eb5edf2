# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageForge: captured web page → editable design document, with re-sync.

Turns a serialized page tree into a design-tool node tree through an injected
builder, recognises repeated structures as reusable components, and later
reconciles a fresh capture against the document it produced:
- detector: structural-hash grouping → named components
- converter: recursive materialisation with path + fingerprint tagging
- reconciler: fingerprint diff and selective apply
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .capture import CapturedNode

__version__ = "0.3.0"


@dataclass(frozen=True, slots=True)
class DetectedComponent:
    """A structural pattern repeated often enough to become a component."""

    structural_hash: str
    name: str
    instances: tuple[CapturedNode, ...]

    @property
    def representative(self) -> CapturedNode:
        # first instance in pre-order; also the template for materialisation
        return self.instances[0]

    @property
    def instance_count(self) -> int:
        return len(self.instances)


@dataclass(frozen=True, slots=True)
class FingerprintEntry:
    """Path-map entry for a freshly captured node."""

    path: str
    fingerprint: str
    node: CapturedNode = field(repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class ExistingFingerprintEntry:
    """Path-map entry recovered from a previously materialised output node.

    ``is_instance`` marks a component instance: its subtree is rendered by
    the component template, so paths below it have no output nodes.
    """

    path: str
    fingerprint: str
    node_id: str
    is_instance: bool = False


class ChangeKind(StrEnum):
    MODIFIED = "modified"
    ADDED = "added"
    REMOVED = "removed"


@dataclass(slots=True)
class ChangeRecord:
    """One difference between a new capture and the existing document.

    ``selected`` is the only mutable field: callers toggle it before apply.
    """

    id: str
    kind: ChangeKind
    path: str
    node_kind: str
    description: str
    selected: bool = True

    def __str__(self) -> str:
        mark = "x" if self.selected else " "
        return f"[{mark}] {self.kind}: {self.path} {self.description}"


@dataclass(frozen=True, slots=True)
class ChangeSummary:
    total_nodes: int
    modified_count: int = 0
    added_count: int = 0
    removed_count: int = 0
    unchanged_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.modified_count or self.added_count or self.removed_count)


@dataclass(frozen=True, slots=True)
class DiffResult:
    changes: list[ChangeRecord]
    summary: ChangeSummary

    def selected(self) -> list[ChangeRecord]:
        return [c for c in self.changes if c.selected]
