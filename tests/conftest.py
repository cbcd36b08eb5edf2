# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pageforge  # noqa: F401
except ImportError:
    raise ImportError("pageforge is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from pageforge.builder import MemoryBuilder
from pageforge.config import ImportSettings


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep PAGEFORGE_* variables from the developer shell out of settings tests."""
    import os

    for var in [v for v in os.environ if v.startswith("PAGEFORGE_")]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def builder() -> MemoryBuilder:
    return MemoryBuilder()


@pytest.fixture
def settings() -> ImportSettings:
    return ImportSettings()
