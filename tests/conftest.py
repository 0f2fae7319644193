# tests/conftest.py
"""Shared fixtures for the correlation core tests."""

from datetime import datetime, timedelta, timezone

import pytest

from correlator.coordinator import IngestionCoordinator
from correlator.normalizer import LogNormalizer
from correlator.rules import RuleEngine
from correlator.store import EventStore

BASE = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = BASE) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def normalizer(clock):
    return LogNormalizer(clock)


@pytest.fixture
def engine(clock):
    return RuleEngine(clock=clock)


@pytest.fixture
def coordinator(clock):
    coordinator = IngestionCoordinator(
        store=EventStore(),
        rules=RuleEngine(clock=clock),
        normalizer=LogNormalizer(clock),
    )
    yield coordinator
    coordinator.shutdown(timeout=2.0)
