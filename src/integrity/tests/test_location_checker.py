"""
Tests for LocationIntegrityChecker

Each rule fires on its own; a clean sample produces no flags.
"""

from datetime import timedelta

import pytest

from src.core.schema import CommonLocation, FlagCategory, Severity
from src.integrity.location_checker import LocationIntegrityChecker


@pytest.fixture
def checker():
    return LocationIntegrityChecker()


def severities(flags):
    return [f.severity for f in flags]


@pytest.mark.unit
def test_clean_sample_has_no_flags(checker, make_sample, weekday_morning):
    history = [make_sample(-25.8627, 28.1871, weekday_morning - timedelta(minutes=30))]
    current = make_sample(-25.8650, 28.1900, weekday_morning)

    assert checker.check(current, history) == []


@pytest.mark.unit
def test_low_accuracy_is_medium(checker, make_sample, weekday_morning):
    flags = checker.check(make_sample(-25.8627, 28.1871, weekday_morning, accuracy=150.0), [])

    assert severities(flags) == [Severity.MEDIUM]
    assert flags[0].category == FlagCategory.LOCATION
    assert flags[0].confidence == 0.7


@pytest.mark.unit
def test_impossible_speed_is_critical(checker, make_sample, weekday_morning):
    history = [make_sample(-25.8627, 28.1871, weekday_morning)]
    current = make_sample(-26.1076, 28.0567, weekday_morning + timedelta(seconds=60))

    flags = checker.check(current, history)

    assert severities(flags) == [Severity.CRITICAL]
    assert flags[0].evidence["speed"] > 50
    assert flags[0].evidence["time_diff"] == 60.0


@pytest.mark.unit
def test_suspicious_speed_is_high(checker, make_sample, weekday_morning):
    # ~111 km in one hour = ~31 m/s
    history = [make_sample(0.0, 0.0, weekday_morning)]
    current = make_sample(0.0, 1.0, weekday_morning + timedelta(hours=1))

    flags = checker.check(current, history)

    assert severities(flags) == [Severity.HIGH]


@pytest.mark.unit
def test_speed_at_or_below_30_has_no_speed_flag(checker, make_sample, weekday_morning):
    # ~111 km in 1.5 hours = ~20.6 m/s
    history = [make_sample(0.0, 0.0, weekday_morning)]
    current = make_sample(0.0, 1.0, weekday_morning + timedelta(minutes=90))

    assert checker.check(current, history) == []


@pytest.mark.unit
def test_zero_elapsed_time_skips_speed_check(checker, make_sample, weekday_morning):
    history = [make_sample(-25.8627, 28.1871, weekday_morning)]
    current = make_sample(-26.1076, 28.0567, weekday_morning)

    assert checker.check(current, history) == []


@pytest.mark.unit
def test_excess_precision_is_medium(checker, make_sample, weekday_morning):
    flags = checker.check(make_sample(-25.862712345, 28.1871, weekday_morning), [])

    assert severities(flags) == [Severity.MEDIUM]
    assert flags[0].evidence["latitude_digits"] == 9


@pytest.mark.unit
def test_repeated_exact_coordinates(checker, make_sample, weekday_morning):
    history = [
        make_sample(-25.8627, 28.1871, weekday_morning - timedelta(hours=h))
        for h in (5, 4, 3, 2)
    ]
    current = make_sample(-25.8627, 28.1871, weekday_morning)

    flags = checker.check(current, history)

    assert severities(flags) == [Severity.HIGH]
    assert flags[0].evidence["exact_matches"] == 4

    # Three repeats are tolerated
    assert checker.check(current, history[1:]) == []


@pytest.mark.unit
def test_unusual_location_needs_ten_common_locations(checker, make_sample, weekday_morning):
    common = [CommonLocation(latitude=-25.8627 + 0.001 * i, longitude=28.1871) for i in range(10)]
    far_away = make_sample(-33.9249, 18.4241, weekday_morning)

    flags = checker.check(far_away, [], common)
    assert severities(flags) == [Severity.LOW]
    assert flags[0].confidence == 0.6

    assert checker.check(far_away, [], common[:9]) == []
    assert checker.check(make_sample(-25.8627, 28.1871, weekday_morning), [], common) == []


@pytest.mark.unit
def test_rules_combine(checker, make_sample, weekday_morning):
    history = [make_sample(-25.8627, 28.1871, weekday_morning)]
    current = make_sample(-26.107612345, 28.0567, weekday_morning + timedelta(seconds=60), accuracy=500.0)

    flags = checker.check(current, history)

    assert sorted(severities(flags)) == sorted([Severity.MEDIUM, Severity.CRITICAL, Severity.MEDIUM])
