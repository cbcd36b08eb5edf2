# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for PageForge.

Library modules log through ``logging.getLogger("pageforge.<module>")``; this
module decides how those records are rendered.  Terminals get the
ConsoleRenderer, pipes and log collectors get JSON lines.

Leaf module — no pageforge imports.  Call once, early, from the CLI or host.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def configure(*, json_output: bool = False, level: str | int = "INFO", stream: TextIO | None = None) -> None:
    """Install a single stderr handler rendering stdlib and structlog records alike.

    Args:
        json_output: JSON lines instead of human-readable console output.
        level: level for the ``pageforge`` logger tree; the root stays at WARNING
            so third-party chatter is kept out of import logs.
        stream: output stream (default ``sys.stderr``).
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)
    logging.getLogger("pageforge").setLevel(_resolve_level(level))
