"""
Tests for movement analytics over a location history window.
"""

from datetime import timedelta

import pytest

from src.core.schema import Coordinate
from src.geo.movement import (
    count_speed_violations,
    detect_movement_anomalies,
    segment_speeds,
    summarize_movement,
)


@pytest.fixture
def teleporting_track(make_sample, weekday_morning):
    """Pretoria -> Johannesburg -> Pretoria, a minute apart each."""
    return [
        make_sample(-25.8627, 28.1871, weekday_morning),
        make_sample(-26.1076, 28.0567, weekday_morning + timedelta(seconds=60)),
        make_sample(-25.8627, 28.1871, weekday_morning + timedelta(seconds=120)),
    ]


@pytest.fixture
def walking_track(make_sample, weekday_morning):
    """About 111 m every two minutes."""
    return [
        make_sample(0.0, 0.001 * i, weekday_morning + timedelta(minutes=2 * i))
        for i in range(5)
    ]


@pytest.mark.unit
def test_segment_speeds(walking_track, make_sample, weekday_morning):
    speeds = segment_speeds(walking_track)

    assert len(speeds) == 4
    assert all(s == pytest.approx(111.195 / 120, rel=0.01) for s in speeds)
    assert segment_speeds(walking_track[:1]) == []

    same_instant = [make_sample(0, 0, weekday_morning), make_sample(0, 1, weekday_morning)]
    assert segment_speeds(same_instant) == [None]


@pytest.mark.unit
def test_count_speed_violations(teleporting_track, walking_track):
    assert count_speed_violations(teleporting_track, 50.0) == 2
    assert count_speed_violations(walking_track, 50.0) == 0


@pytest.mark.unit
def test_teleport_anomalies_capped_at_100(teleporting_track, make_sample, weekday_morning):
    track = teleporting_track + [
        make_sample(-26.1076, 28.0567, weekday_morning + timedelta(seconds=180)),
    ]

    result = detect_movement_anomalies(track)

    assert result.patterns.count("Teleportation detected") == 3
    assert len(result.anomalies) == 3
    assert result.risk_score == 100


@pytest.mark.unit
def test_stationary_and_low_accuracy_patterns(make_sample, weekday_morning):
    track = [
        make_sample(-25.8627, 28.1871, weekday_morning),
        make_sample(-25.8627, 28.1871, weekday_morning + timedelta(hours=2), accuracy=250.0),
    ]

    result = detect_movement_anomalies(track)

    assert "Extended stationary period with exact coordinates" in result.patterns
    assert "Low accuracy GPS reading" in result.patterns
    assert result.risk_score == 30


@pytest.mark.unit
def test_summary_labels(teleporting_track, walking_track):
    assert summarize_movement(walking_track).travel_pattern == "NORMAL"
    assert summarize_movement(teleporting_track).travel_pattern == "FRAUDULENT"
    assert summarize_movement(teleporting_track[:2]).travel_pattern == "SUSPICIOUS"


@pytest.mark.unit
def test_summary_totals(teleporting_track):
    summary = summarize_movement(teleporting_track)

    assert summary.time_spent == pytest.approx(120.0)
    assert summary.total_distance == pytest.approx(2 * 30_190, rel=0.02)
    assert summary.average_speed == pytest.approx(summary.total_distance / 120.0)
    assert summary.most_visited_area == Coordinate(latitude=-25.8627, longitude=28.1871)


@pytest.mark.unit
def test_summary_of_short_track_is_empty(walking_track):
    summary = summarize_movement(walking_track[:1])

    assert summary.total_distance == 0.0
    assert summary.most_visited_area is None
