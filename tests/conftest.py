"""Shared fixtures for Trackflow tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


class MockClock:
    """A controllable clock for testing time-dependent behavior."""

    def __init__(self, start: datetime = NOW) -> None:
        self._now = start

    def __call__(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now += timedelta(**kwargs)


@pytest.fixture
def clock() -> MockClock:
    return MockClock()
