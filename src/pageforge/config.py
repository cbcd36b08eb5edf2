# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Import settings: defaults → YAML file → ``PAGEFORGE_*`` environment.

Later sources win.  Settings files may use the extension's camelCase keys
(``maxDepth``, ``includeHiddenElements``) or snake_case field names.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger("pageforge.config")

MAX_NODE_DEPTH = 50
# conversion recurses once per level; keep well under the interpreter limit
MAX_DEPTH_LIMIT = 500
DEFAULT_YIELD_EVERY = 50


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class ImportSettings:
    create_styles: bool = True
    create_components: bool = True
    include_hidden: bool = False
    framer_aware: bool = True
    max_depth: int = MAX_NODE_DEPTH
    component_threshold: int = 3
    yield_every: int = DEFAULT_YIELD_EVERY

    def __post_init__(self) -> None:
        if not 0 <= self.max_depth <= MAX_DEPTH_LIMIT:
            raise ConfigError(f"max_depth must be between 0 and {MAX_DEPTH_LIMIT}, got {self.max_depth}")
        if self.component_threshold < 2:
            raise ConfigError(f"component_threshold must be >= 2, got {self.component_threshold}")
        if self.yield_every < 1:
            raise ConfigError(f"yield_every must be >= 1, got {self.yield_every}")


_ALIASES = {
    "createStyles": "create_styles",
    "createComponents": "create_components",
    "includeHiddenElements": "include_hidden",
    "includeHidden": "include_hidden",
    "framerAwareMode": "framer_aware",
    "framerAware": "framer_aware",
    "maxDepth": "max_depth",
    "componentThreshold": "component_threshold",
    "yieldEvery": "yield_every",
}

_ENV_VARS = {
    "PAGEFORGE_CREATE_STYLES": "create_styles",
    "PAGEFORGE_CREATE_COMPONENTS": "create_components",
    "PAGEFORGE_INCLUDE_HIDDEN": "include_hidden",
    "PAGEFORGE_FRAMER_AWARE": "framer_aware",
    "PAGEFORGE_MAX_DEPTH": "max_depth",
    "PAGEFORGE_COMPONENT_THRESHOLD": "component_threshold",
    "PAGEFORGE_YIELD_EVERY": "yield_every",
}

_FIELD_TYPES = {f.name: f.type for f in dataclasses.fields(ImportSettings)}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _coerce(name: str, value: Any) -> bool | int:
    kind = _FIELD_TYPES[name]
    if kind == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"{name}: expected a boolean, got {value!r}")
    if isinstance(value, bool):
        raise ConfigError(f"{name}: expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name}: expected an integer, got {value!r}") from None


def settings_from_mapping(data: Mapping[str, Any], base: ImportSettings | None = None) -> ImportSettings:
    """Overlay *data* on *base*; unknown keys are logged and ignored."""
    updates: dict[str, Any] = {}
    for key, value in data.items():
        name = _ALIASES.get(key, key)
        if name not in _FIELD_TYPES:
            logger.warning("Ignoring unknown setting %r", key)
            continue
        updates[name] = _coerce(name, value)
    return dataclasses.replace(base or ImportSettings(), **updates)


def load_settings(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> ImportSettings:
    """Resolve settings from an optional YAML file and the environment."""
    settings = ImportSettings()
    if path is not None:
        try:
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read settings file {path}: {e.strerror}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in settings file {path}: {e}") from e
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Settings file {path} must contain a mapping, got {type(raw).__name__}")
        settings = settings_from_mapping(raw, settings)

    environ = os.environ if env is None else env
    overrides = {name: environ[var].strip() for var, name in _ENV_VARS.items() if environ.get(var, "").strip()}
    if overrides:
        settings = settings_from_mapping(overrides, settings)
    return settings
