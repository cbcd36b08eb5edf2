# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Node-creation capability injected into the converter and reconciler.

The core never talks to a design-tool SDK directly.  A host implements
``NodeBuilder`` over its own node objects (the *handles*); ``MemoryBuilder``
is the in-process implementation used by the CLI and the test-suite.

All methods are coroutines: node creation and resource loading are
suspension points on the host side.  Callers await them one at a time, in
tree pre-order.
"""

from __future__ import annotations

import abc
import dataclasses
import itertools
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .capture import CapturedNode, NodeKind
from .errors import BuilderError, ResourcePreconditionError
from .nodes import NodeSpec, output_dimension

logger = logging.getLogger("pageforge.builder")

# Metadata keys stamped on output nodes (mirrors the host's plugin-data keys).
PATH_KEY = "pageforge.path"
FINGERPRINT_KEY = "pageforge.fingerprint"
IMPORT_KEY = "pageforge.import"
SOURCE_KEY = "pageforge.source"
TIMESTAMP_KEY = "pageforge.timestamp"


class NodeBuilder(abc.ABC):
    """Abstract output platform.  Handles are opaque to the core."""

    @abc.abstractmethod
    async def create_node(self, kind: NodeKind, spec: NodeSpec) -> Any:
        """Create a detached output node of *kind*.

        Raises:
            ResourcePreconditionError: a font or image in *spec* could not be
                loaded; callers retry without it.
        """

    @abc.abstractmethod
    async def create_component(self, name: str, spec: NodeSpec) -> Any:
        """Create a detached component template container."""

    @abc.abstractmethod
    async def create_component_instance(self, node: CapturedNode, component: Any) -> Any:
        """Create a detached instance of *component* sized for *node*."""

    @abc.abstractmethod
    async def combine_as_variants(self, variants: Sequence[Any], name: str) -> Any:
        """Group component *variants* into one top-level component set named *name*."""

    @abc.abstractmethod
    async def append_child(self, parent: Any, child: Any, index: int | None = None) -> None:
        """Attach *child* under *parent* (at *index*, or last)."""

    @abc.abstractmethod
    async def remove_node(self, handle: Any) -> None: ...

    @abc.abstractmethod
    async def update_node(self, handle: Any, spec: NodeSpec) -> None:
        """Refresh geometry and paint of an existing node (never its text)."""

    @abc.abstractmethod
    async def replace_text(self, handle: Any, text: str) -> None:
        """Replace displayed text.

        Raises:
            ResourcePreconditionError: the font the node uses could not be loaded.
        """

    @abc.abstractmethod
    async def create_style(self, kind: str, name: str, value: str) -> str:
        """Register a shared style; returns its id."""

    @abc.abstractmethod
    async def tag_with_path(self, handle: Any, path: str, fingerprint: str) -> None: ...

    @abc.abstractmethod
    async def read_path_and_fingerprint(self, handle: Any) -> tuple[str, str] | None: ...

    @abc.abstractmethod
    async def mark_import_root(self, handle: Any, source_id: str, timestamp: int) -> None:
        """Record which capture produced the document rooted at *handle*."""

    @abc.abstractmethod
    async def locate_existing_tree(self, source_id: str) -> Any | None:
        """Most recent import root for *source_id*, else the most recent import, else None."""

    @abc.abstractmethod
    def children_of(self, handle: Any) -> Sequence[Any]: ...

    @abc.abstractmethod
    def node_id(self, handle: Any) -> str: ...

    @abc.abstractmethod
    def kind_of(self, handle: Any) -> str:
        """Output kind of *handle*: a NodeKind value, ``"component"`` or ``"instance"``."""


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

INSTANCE = "instance"
COMPONENT = "component"
COMPONENT_SET = "component-set"


@dataclass(eq=False, slots=True)
class OutputNode:
    """One node in the in-memory document arena."""

    id: str
    kind: str
    spec: NodeSpec
    children: list[OutputNode] = field(default_factory=list)
    parent: OutputNode | None = field(default=None, repr=False)
    data: dict[str, str] = field(default_factory=dict)
    component_id: str | None = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def text(self) -> str | None:
        return self.spec.text

    def walk(self):
        """Pre-order iterator over this node and its descendants."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "kind": self.kind, "spec": dataclasses.asdict(self.spec)}
        if self.data:
            d["data"] = dict(self.data)
        if self.component_id:
            d["componentId"] = self.component_id
        if self.children:
            d["children"] = [c.to_dict() for c in self.children]
        return d


class MemoryBuilder(NodeBuilder):
    """Arena-backed builder with no host platform.

    Args:
        failing_fonts: font families whose loading fails, to exercise the
            text-update precondition path.
        broken_resources: font families or image URLs that fail to load when
            a node using them is created.
        max_nodes: refuse creation beyond this many nodes (BuilderError).
    """

    def __init__(
        self,
        *,
        failing_fonts: Sequence[str] = (),
        broken_resources: Sequence[str] = (),
        max_nodes: int | None = None,
    ) -> None:
        self.nodes: dict[str, OutputNode] = {}
        self.pages: list[OutputNode] = []  # top-level documents, in creation order
        self.components: dict[str, OutputNode] = {}
        self.styles: dict[str, dict[str, str]] = {}
        self.failing_fonts = {f.lower() for f in failing_fonts}
        self.broken_resources = {r.lower() for r in broken_resources}
        self.max_nodes = max_nodes
        self._ids = itertools.count(1)

    # -- creation -----------------------------------------------------------

    def _new(self, kind: str, spec: NodeSpec) -> OutputNode:
        if self.max_nodes is not None and len(self.nodes) >= self.max_nodes:
            raise BuilderError(f"Node limit reached ({self.max_nodes}); cannot create {kind} {spec.name!r}")
        node = OutputNode(id=f"{next(self._ids)}:0", kind=kind, spec=spec)
        self.nodes[node.id] = node
        return node

    async def create_node(self, kind: NodeKind, spec: NodeSpec) -> OutputNode:
        for resource in (spec.font_family, spec.image_url):
            if resource and resource.lower() in self.broken_resources:
                raise ResourcePreconditionError(f"Cannot load {resource!r}", resource=resource)
        return self._new(NodeKind(kind).value, spec)

    async def create_component(self, name: str, spec: NodeSpec) -> OutputNode:
        component = self._new(COMPONENT, dataclasses.replace(spec, name=name))
        self.components[component.id] = component
        return component

    async def create_component_instance(self, node: CapturedNode, component: OutputNode) -> OutputNode:
        if component.id not in self.components:
            raise BuilderError(f"Unknown component {component.id}")
        spec = dataclasses.replace(
            component.spec,
            name=node.tag,
            x=node.bounds.x,
            y=node.bounds.y,
            width=output_dimension(node.bounds.width),
            height=output_dimension(node.bounds.height),
            visible=node.visible,
        )
        instance = self._new(INSTANCE, spec)
        instance.component_id = component.id
        return instance

    async def combine_as_variants(self, variants: Sequence[OutputNode], name: str) -> OutputNode:
        if not variants:
            raise BuilderError("A component set needs at least one variant")
        width = max(v.spec.width for v in variants)
        height = sum(v.spec.height for v in variants)
        component_set = self._new(COMPONENT_SET, NodeSpec(name=name, width=width, height=height))
        for variant in variants:
            # variants live inside the set, not in the template list
            self.components.pop(variant.id, None)
            await self.append_child(component_set, variant)
        self.pages.append(component_set)
        return component_set

    async def create_style(self, kind: str, name: str, value: str) -> str:
        style_id = f"S:{kind}:{len(self.styles) + 1}"
        self.styles[style_id] = {"kind": kind, "name": name, "value": value}
        return style_id

    # -- tree mutation ------------------------------------------------------

    async def append_child(self, parent: OutputNode, child: OutputNode, index: int | None = None) -> None:
        if child.parent is not None:
            child.parent.children.remove(child)
        if index is None or index >= len(parent.children):
            parent.children.append(child)
        else:
            parent.children.insert(max(index, 0), child)
        child.parent = parent

    async def remove_node(self, handle: OutputNode) -> None:
        if handle.parent is not None:
            handle.parent.children.remove(handle)
            handle.parent = None
        elif handle in self.pages:
            self.pages.remove(handle)
        for node in handle.walk():
            self.nodes.pop(node.id, None)

    async def update_node(self, handle: OutputNode, spec: NodeSpec) -> None:
        handle.spec = dataclasses.replace(spec, text=handle.spec.text)

    async def replace_text(self, handle: OutputNode, text: str) -> None:
        family = (handle.spec.font_family or "").lower()
        if family and family in self.failing_fonts:
            raise ResourcePreconditionError(f"Font {handle.spec.font_family!r} failed to load", resource=family)
        handle.spec = dataclasses.replace(handle.spec, text=text)

    # -- metadata -----------------------------------------------------------

    async def tag_with_path(self, handle: OutputNode, path: str, fingerprint: str) -> None:
        handle.data[PATH_KEY] = path
        handle.data[FINGERPRINT_KEY] = fingerprint

    async def read_path_and_fingerprint(self, handle: OutputNode) -> tuple[str, str] | None:
        path = handle.data.get(PATH_KEY)
        fingerprint = handle.data.get(FINGERPRINT_KEY)
        if path and fingerprint:
            return path, fingerprint
        return None

    async def mark_import_root(self, handle: OutputNode, source_id: str, timestamp: int) -> None:
        if handle.parent is None and handle not in self.pages:
            self.pages.append(handle)
        handle.data[IMPORT_KEY] = "true"
        handle.data[SOURCE_KEY] = source_id
        handle.data[TIMESTAMP_KEY] = str(timestamp)

    async def locate_existing_tree(self, source_id: str) -> OutputNode | None:
        imports = [p for p in self.pages if p.data.get(IMPORT_KEY) == "true"]
        exact = [p for p in imports if p.data.get(SOURCE_KEY) == source_id]
        candidates = exact or imports
        if not candidates:
            return None
        return max(candidates, key=lambda p: int(p.data.get(TIMESTAMP_KEY) or 0))

    def children_of(self, handle: OutputNode) -> Sequence[OutputNode]:
        return tuple(handle.children)

    def node_id(self, handle: OutputNode) -> str:
        return handle.id

    def kind_of(self, handle: OutputNode) -> str:
        return handle.kind

    # -- serialisation ------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready document: pages, component templates and styles."""
        return {
            "pages": [p.to_dict() for p in self.pages],
            "components": [c.to_dict() for c in self.components.values()],
            "styles": dict(self.styles),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> MemoryBuilder:
        """Rebuild a builder from ``to_dict()`` output (ids are preserved)."""
        builder = cls(**kwargs)
        builder.styles = {k: dict(v) for k, v in data.get("styles", {}).items()}

        def load(d: dict[str, Any], parent: OutputNode | None) -> OutputNode:
            node = OutputNode(
                id=d["id"],
                kind=d["kind"],
                spec=NodeSpec(**d["spec"]),
                data=dict(d.get("data", {})),
                component_id=d.get("componentId"),
                parent=parent,
            )
            builder.nodes[node.id] = node
            node.children = [load(c, node) for c in d.get("children", ())]
            return node

        for c in data.get("components", ()):
            component = load(c, None)
            builder.components[component.id] = component
        builder.pages = [load(p, None) for p in data.get("pages", ())]

        highest = max((int(i.split(":", 1)[0]) for i in builder.nodes), default=0)
        builder._ids = itertools.count(highest + 1)
        return builder
