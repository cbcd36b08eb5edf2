# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Phase-aware progress reporting with per-phase timing.

Each operation declares a *plan*: an ordered list of phases with weights.
``ProgressTracker.report(phase, fraction)`` maps the in-phase fraction onto
the overall [0, 1] range and never reports a smaller value than before, so
hosts can drive a progress bar straight from the callback.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger("pageforge.progress")


class ImportPhase(StrEnum):
    PREPARING = "preparing"
    CREATING_STYLES = "creating-styles"
    DETECTING_COMPONENTS = "detecting-components"
    CREATING_NODES = "creating-nodes"
    CREATING_VARIANTS = "creating-variants"
    DIFFING = "diffing"
    APPLYING_DIFF = "applying-diff"
    FINALIZING = "finalizing"


PHASE_LABELS: dict[ImportPhase, str] = {
    ImportPhase.PREPARING: "Preparing import...",
    ImportPhase.CREATING_STYLES: "Creating design tokens...",
    ImportPhase.DETECTING_COMPONENTS: "Detecting components...",
    ImportPhase.CREATING_NODES: "Creating nodes...",
    ImportPhase.CREATING_VARIANTS: "Creating viewport variants...",
    ImportPhase.DIFFING: "Comparing with existing import...",
    ImportPhase.APPLYING_DIFF: "Applying changes...",
    ImportPhase.FINALIZING: "Finalizing import...",
}

# (phase, weight); weights are normalised per plan.
IMPORT_PLAN: tuple[tuple[ImportPhase, float], ...] = (
    (ImportPhase.PREPARING, 0.02),
    (ImportPhase.CREATING_STYLES, 0.08),
    (ImportPhase.DETECTING_COMPONENTS, 0.15),
    (ImportPhase.CREATING_NODES, 0.73),
    (ImportPhase.FINALIZING, 0.02),
)
VARIANT_PLAN: tuple[tuple[ImportPhase, float], ...] = (
    (ImportPhase.PREPARING, 0.02),
    (ImportPhase.CREATING_STYLES, 0.06),
    (ImportPhase.CREATING_VARIANTS, 0.90),
    (ImportPhase.FINALIZING, 0.02),
)
DIFF_PLAN: tuple[tuple[ImportPhase, float], ...] = (
    (ImportPhase.PREPARING, 0.05),
    (ImportPhase.DIFFING, 0.95),
)
APPLY_PLAN: tuple[tuple[ImportPhase, float], ...] = (
    (ImportPhase.PREPARING, 0.05),
    (ImportPhase.APPLYING_DIFF, 0.90),
    (ImportPhase.FINALIZING, 0.05),
)

ProgressCallback = Callable[[ImportPhase, float, str], None]


@dataclass(slots=True)
class _Band:
    start: float
    width: float
    started_ns: int = 0
    ended_ns: int = 0


class ProgressTracker:
    """Translate per-phase progress into monotonic overall progress."""

    __slots__ = ("_callback", "_bands", "_order", "_current", "_last")

    def __init__(
        self,
        callback: ProgressCallback | None = None,
        plan: tuple[tuple[ImportPhase, float], ...] = IMPORT_PLAN,
    ) -> None:
        total = sum(w for _, w in plan) or 1.0
        self._callback = callback
        self._bands: dict[ImportPhase, _Band] = {}
        self._order = [phase for phase, _ in plan]
        start = 0.0
        for phase, weight in plan:
            width = weight / total
            self._bands[phase] = _Band(start=start, width=width)
            start += width
        self._current: ImportPhase | None = None
        self._last = 0.0

    @property
    def current_phase(self) -> ImportPhase | None:
        return self._current

    @property
    def overall(self) -> float:
        return self._last

    def report(self, phase: ImportPhase, fraction: float = 0.0, message: str = "") -> None:
        """Report *fraction* (0..1) of *phase* done."""
        band = self._bands.get(phase)
        if band is None:
            raise ValueError(f"Phase {phase!r} is not part of this operation")
        if phase != self._current:
            self._enter(phase)
        fraction = min(1.0, max(0.0, fraction))
        value = max(self._last, band.start + band.width * fraction)
        self._last = value
        if self._callback is not None:
            self._callback(phase, value, message or PHASE_LABELS[phase])

    def _enter(self, phase: ImportPhase) -> None:
        now = time.monotonic_ns()
        if self._current is not None:
            self._bands[self._current].ended_ns = now
        self._bands[phase].started_ns = now
        self._current = phase

    def finish(self, message: str = "Done!") -> None:
        """Report 100% in the last phase of the plan and close timing."""
        self.report(self._order[-1], 1.0, message)
        self._bands[self._order[-1]].ended_ns = time.monotonic_ns()

    def elapsed_per_phase(self) -> dict[str, float]:
        """Return ``{phase: elapsed_ms}`` for every phase entered so far."""
        now = time.monotonic_ns()
        result: dict[str, float] = {}
        for phase in self._order:
            band = self._bands[phase]
            if not band.started_ns:
                continue
            end = band.ended_ns or now
            result[phase.value] = round((end - band.started_ns) / 1e6, 1)
        return result
