"""Shared pytest fixtures."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from replay_analyzer.config import reset_settings as _reset_settings


@pytest.fixture(autouse=True)
def reset_settings():
    """Drop cached settings before and after each test."""
    _reset_settings()
    yield
    _reset_settings()


@pytest.fixture
def as_of() -> datetime:
    """Fixed reference time for detector tests."""
    return datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)
