# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pydantic schema for the captured page tree (extraction → import boundary).

The extraction stage serialises a page as camelCase JSON; these models accept
that wire format verbatim and expose snake_case attributes to the rest of the
package.  Models are frozen: a capture is an immutable snapshot.

Key public API:

- ``CapturedNode``  — one page element and its ordered children.
- ``CaptureResult`` — root node plus url/viewport/timestamp/tokens metadata.
- ``parse_capture()`` — validate JSON text, bytes or a dict; raises
  ``MalformedInputError`` on any schema violation.
- ``MultiViewportCapture`` / ``parse_multi_viewport()`` — the same page
  captured at several viewport widths, imported as variants.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import MalformedInputError

_WIRE_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    allow_inf_nan=False,
)


class NodeKind(StrEnum):
    """Captured element classification (set by the extraction stage)."""

    FRAME = "frame"
    TEXT = "text"
    IMAGE = "image"
    SVG = "svg"
    INPUT = "input"
    VIDEO = "video"
    UNKNOWN = "unknown"


# Kinds whose children are materialised; the rest are output leaves.
CONTAINER_KINDS = frozenset({NodeKind.FRAME, NodeKind.VIDEO, NodeKind.UNKNOWN})


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------


class Bounds(BaseModel):
    """Element box in page coordinates (CSS pixels)."""

    model_config = _WIRE_CONFIG

    x: float = 0.0
    y: float = 0.0
    width: float = Field(0.0, ge=0)
    height: float = Field(0.0, ge=0)


class StyleDigest(BaseModel):
    """Subset of computed style relevant to rendering.

    Only the fields the importer reads are declared; anything else the
    extractor sends is kept in ``model_extra``.
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="allow", allow_inf_nan=False
    )

    background_color: str | None = None
    color: str | None = None
    font_size: str | None = None
    font_family: str | None = None
    font_weight: str | None = None
    line_height: str | None = None
    border_radius: str | None = None
    box_shadow: str | None = None
    opacity: str | None = None


class CapturedNode(BaseModel):
    """Immutable snapshot of one page element."""

    model_config = _WIRE_CONFIG

    kind: NodeKind = Field(alias="type")
    tag: str
    bounds: Bounds = Field(default_factory=Bounds)
    styles: StyleDigest = Field(default_factory=StyleDigest)
    text: str | None = None
    visible: bool = True
    component_hash: str | None = None  # structural hash, set only for repetition candidates
    class_names: tuple[str, ...] = ()
    aria_role: str | None = None
    data_attributes: dict[str, str] = Field(default_factory=dict)
    image_url: str | None = None
    image_data_uri: str | None = None
    svg_data: str | None = None
    children: tuple[CapturedNode, ...] = ()


# ---------------------------------------------------------------------------
# Design tokens
# ---------------------------------------------------------------------------


class ColorToken(BaseModel):
    model_config = _WIRE_CONFIG

    name: str
    value: str
    usage_count: int = 0
    css_variable: str | None = None


class TypographyToken(BaseModel):
    model_config = _WIRE_CONFIG

    name: str
    font_family: str
    font_size: float
    font_weight: int = 400
    line_height: float = 0.0
    letter_spacing: float = 0.0
    usage_count: int = 0


class EffectToken(BaseModel):
    model_config = _WIRE_CONFIG

    name: str
    type: str  # "drop-shadow" | "inner-shadow" | "blur"
    value: str
    usage_count: int = 0


class DesignTokens(BaseModel):
    model_config = _WIRE_CONFIG

    colors: tuple[ColorToken, ...] = ()
    typography: tuple[TypographyToken, ...] = ()
    effects: tuple[EffectToken, ...] = ()

    @property
    def total(self) -> int:
        return len(self.colors) + len(self.typography) + len(self.effects)


# ---------------------------------------------------------------------------
# Capture envelope
# ---------------------------------------------------------------------------


class Viewport(BaseModel):
    model_config = _WIRE_CONFIG

    width: float = Field(1440.0, ge=0)
    height: float = Field(900.0, ge=0)


class CaptureMetadata(BaseModel):
    model_config = _WIRE_CONFIG

    title: str = ""
    description: str | None = None
    is_framer_site: bool = False
    framer_project_id: str | None = None


class CaptureResult(BaseModel):
    """Full output of one page capture."""

    model_config = _WIRE_CONFIG

    url: str
    viewport: Viewport = Field(default_factory=Viewport)
    timestamp: int = 0  # ms since epoch
    framework: str = "unknown"
    root_node: CapturedNode
    tokens: DesignTokens = Field(default_factory=DesignTokens)
    metadata: CaptureMetadata = Field(default_factory=CaptureMetadata)

    @property
    def is_framer_site(self) -> bool:
        return self.framework == "framer" or self.metadata.is_framer_site


class ViewportCapture(BaseModel):
    """One capture of a multi-viewport set (``label`` is e.g. ``Desktop``)."""

    model_config = _WIRE_CONFIG

    viewport_key: str = ""
    label: str
    width: float = Field(ge=0)
    height: float = Field(0.0, ge=0)
    result: CaptureResult


class MultiViewportCapture(BaseModel):
    """The same page captured at several viewport widths."""

    model_config = _WIRE_CONFIG

    type: Literal["multi-viewport"] = "multi-viewport"
    url: str
    timestamp: int = 0
    extractions: tuple[ViewportCapture, ...] = Field(min_length=1)


def _malformed(what: str, e: ValidationError) -> MalformedInputError:
    errors = e.errors(include_url=False, include_context=False)
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ())) or "<root>"
    return MalformedInputError(
        f"Invalid {what}: {e.error_count()} error(s), first at {loc}: {first.get('msg', 'invalid')}",
        errors=errors,
    )


def parse_capture(data: str | bytes | dict[str, Any] | CaptureResult) -> CaptureResult:
    """Validate a capture from JSON text, bytes or an already-decoded dict.

    Raises:
        MalformedInputError: the payload is not valid JSON or violates the schema.
    """
    if isinstance(data, CaptureResult):
        return data
    try:
        if isinstance(data, (str, bytes)):
            return CaptureResult.model_validate_json(data)
        return CaptureResult.model_validate(data)
    except ValidationError as e:
        raise _malformed("capture", e) from e


def parse_multi_viewport(data: str | bytes | dict[str, Any] | MultiViewportCapture) -> MultiViewportCapture:
    """Validate a multi-viewport capture set; same error contract as ``parse_capture``."""
    if isinstance(data, MultiViewportCapture):
        return data
    try:
        if isinstance(data, (str, bytes)):
            return MultiViewportCapture.model_validate_json(data)
        return MultiViewportCapture.model_validate(data)
    except ValidationError as e:
        raise _malformed("multi-viewport capture", e) from e
