# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageForge exception hierarchy.

All PageForge-specific errors inherit from PageForgeError, allowing callers
to catch the base class for any import/re-sync failure or specific subclasses
for targeted handling.

Recoverable conditions (a font that will not load, a change whose path has no
output counterpart) are logged and counted by the caller; only
MalformedInputError and BuilderError end an operation.
"""

from __future__ import annotations


class PageForgeError(Exception):
    """Base exception for all PageForge errors."""


class MalformedInputError(PageForgeError):
    """Captured tree failed schema validation (raised before any node is created)."""

    def __init__(self, message: str, *, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class ResourcePreconditionError(PageForgeError):
    """A resource (font, image) required before mutating a node could not be loaded."""

    def __init__(self, message: str, *, resource: str = "") -> None:
        super().__init__(message)
        self.resource = resource


class BuilderError(PageForgeError):
    """The output platform refused to create or mutate a node."""


class ConfigError(PageForgeError):
    """Import settings file or environment override is invalid."""
