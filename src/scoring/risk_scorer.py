"""
Risk Scorer

Turns a flag list into a 0-100 score and a risk level.

Formula:
    score = 100 * sum(weight(f) * f.confidence) / sum(weight(f))
    weights: LOW=10, MEDIUM=25, HIGH=50, CRITICAL=100

    If any CRITICAL flag is present the score is floored at
    100 * max(confidence of the CRITICAL flags).

Levels (exact policy constants):
    >= 80 CRITICAL, >= 60 HIGH, >= 30 MEDIUM, else LOW

No flags -> score 0, LOW.
"""

from typing import Sequence, Tuple

from src.core.schema import Flag, RiskLevel, Severity

SEVERITY_WEIGHTS = {
    Severity.LOW: 10,
    Severity.MEDIUM: 25,
    Severity.HIGH: 50,
    Severity.CRITICAL: 100,
}

# (minimum score, level), checked top-down
LEVEL_THRESHOLDS = [
    (80.0, RiskLevel.CRITICAL),
    (60.0, RiskLevel.HIGH),
    (30.0, RiskLevel.MEDIUM),
]


def calculate_risk_score(flags: Sequence[Flag]) -> float:
    if not flags:
        return 0.0

    total_weight = sum(SEVERITY_WEIGHTS[f.severity] for f in flags)
    weighted = sum(SEVERITY_WEIGHTS[f.severity] * f.confidence for f in flags)
    score = 100.0 * weighted / total_weight

    critical = [f.confidence for f in flags if f.severity == Severity.CRITICAL]
    if critical:
        score = max(score, 100.0 * max(critical))

    return min(100.0, max(0.0, score))


def risk_level_for(score: float) -> RiskLevel:
    for minimum, level in LEVEL_THRESHOLDS:
        if score >= minimum:
            return level
    return RiskLevel.LOW


class RiskScorer:
    """
    Usage:
        scorer = RiskScorer()
        score, level = scorer.score(flags)
    """

    def score(self, flags: Sequence[Flag]) -> Tuple[float, RiskLevel]:
        value = calculate_risk_score(flags)
        return value, risk_level_for(value)
