# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Terminal progress for CLI commands.

A rich status line follows the import's phase callback while stderr is a
TTY; piped output gets nothing but the final step lines.
"""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Generator

from rich.console import Console

from .progress import ImportPhase, ProgressCallback


@contextlib.contextmanager
def phase_status(initial: str) -> Generator[ProgressCallback, None, None]:
    """Yield a progress callback that drives a spinner (no-op when piped)."""
    if not sys.stderr.isatty():
        yield lambda _phase, _fraction, _message: None
        return

    console = Console(stderr=True)
    with console.status(initial) as status:

        def _update(phase: ImportPhase, fraction: float, message: str) -> None:
            status.update(f"[{fraction:4.0%}] {phase.value}: {message}")

        yield _update


def print_step(msg: str) -> None:
    """Print a step message to stderr (only when interactive)."""
    if sys.stderr.isatty():
        print(msg, file=sys.stderr)
