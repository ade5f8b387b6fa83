"""
Tests for RiskScorer: weighted formula, thresholds and the CRITICAL floor.
"""

import pytest

from src.core.schema import Flag, FlagCategory, RiskLevel, Severity
from src.scoring.risk_scorer import RiskScorer, calculate_risk_score, risk_level_for


def flag(severity, confidence, category=FlagCategory.LOCATION):
    return Flag(category=category, severity=severity, description="test", confidence=confidence)


@pytest.mark.unit
def test_no_flags_scores_zero():
    assert RiskScorer().score([]) == (0.0, RiskLevel.LOW)


@pytest.mark.unit
def test_weighted_average():
    flags = [flag(Severity.MEDIUM, 0.8), flag(Severity.HIGH, 0.6)]

    expected = 100 * (25 * 0.8 + 50 * 0.6) / (25 + 50)
    assert calculate_risk_score(flags) == pytest.approx(expected)


@pytest.mark.unit
def test_single_flag_score_is_its_confidence():
    assert calculate_risk_score([flag(Severity.LOW, 0.5)]) == pytest.approx(50.0)


@pytest.mark.unit
@pytest.mark.parametrize("score, level", [
    (0.0, RiskLevel.LOW),
    (29.999, RiskLevel.LOW),
    (30.0, RiskLevel.MEDIUM),
    (59.999, RiskLevel.MEDIUM),
    (60.0, RiskLevel.HIGH),
    (79.999, RiskLevel.HIGH),
    (80.0, RiskLevel.CRITICAL),
    (100.0, RiskLevel.CRITICAL),
])
def test_level_thresholds_are_exact(score, level):
    assert risk_level_for(score) == level


@pytest.mark.unit
def test_full_confidence_critical_is_always_critical():
    noise = [flag(Severity.LOW, 0.1) for _ in range(20)] + [flag(Severity.HIGH, 0.1) for _ in range(5)]
    flags = noise + [flag(Severity.CRITICAL, 1.0, FlagCategory.SALES)]

    score, level = RiskScorer().score(flags)

    assert score == 100.0
    assert level == RiskLevel.CRITICAL


@pytest.mark.unit
def test_adding_a_critical_flag_never_lowers_score():
    base = [flag(Severity.MEDIUM, 0.9), flag(Severity.HIGH, 0.85)]
    before = calculate_risk_score(base)

    after = calculate_risk_score(base + [flag(Severity.CRITICAL, 0.95)])

    assert after >= before


@pytest.mark.unit
def test_score_is_order_independent():
    flags = [flag(Severity.LOW, 0.5), flag(Severity.CRITICAL, 0.95), flag(Severity.MEDIUM, 0.7)]

    assert calculate_risk_score(flags) == pytest.approx(calculate_risk_score(list(reversed(flags))))
