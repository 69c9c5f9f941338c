"""Pytest configuration — ensures the project root is importable and pins the clock."""

import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from case_verifier.config import EngineSettings  # noqa: E402

TODAY = date(2025, 6, 15)


@pytest.fixture
def settings() -> EngineSettings:
    """Engine settings with a fixed `today`, so PRESENT and ages never drift."""
    return EngineSettings(today=TODAY)
