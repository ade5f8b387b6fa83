"""
Pytest configuration and shared fixtures.

Configures pytest markers and provides event/profile factories used by the
test modules under src/<area>/tests.
"""

from datetime import datetime, timezone

import pytest

from src.core.schema import (
    ActivityEvent,
    ActivityKind,
    BehaviorProfile,
    Coordinate,
    LocationSample,
    ReportedLocation,
)

# Monday 10:00 UTC: inside default working hours, not a weekend
WEEKDAY_MORNING = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

PRETORIA = (-25.8627, 28.1871)
JOHANNESBURG = (-26.1076, 28.0567)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (may be slow or require full setup)"
    )
    config.addinivalue_line(
        "markers",
        "unit: mark test as unit test (fast, isolated)"
    )


def build_event(
    agent_id="AGENT_001",
    kind=ActivityKind.VISIT_START,
    timestamp=WEEKDAY_MORNING,
    location=PRETORIA,
    accuracy=10.0,
    **kwargs
) -> ActivityEvent:
    reported = None
    if location is not None:
        reported = ReportedLocation(latitude=location[0], longitude=location[1], accuracy=accuracy)
    return ActivityEvent(agent_id=agent_id, kind=kind, timestamp=timestamp, location=reported, **kwargs)


def build_sample(latitude, longitude, timestamp, accuracy=10.0) -> LocationSample:
    return LocationSample(
        coordinate=Coordinate(latitude=latitude, longitude=longitude),
        accuracy=accuracy,
        timestamp=timestamp,
    )


@pytest.fixture
def make_event():
    """Factory for ActivityEvents; defaults to a weekday-morning visit start in Pretoria."""
    return build_event


@pytest.fixture
def make_sample():
    return build_sample


@pytest.fixture
def weekday_morning():
    return WEEKDAY_MORNING


@pytest.fixture
def profile():
    """Brand-new agent baseline."""
    return BehaviorProfile(agent_id="AGENT_001")
