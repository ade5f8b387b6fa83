"""
Policy Engine

Maps a risk level to automatic actions and a flag set to recommendations.

Actions:
    every level  -> LOG_INCIDENT
    CRITICAL     -> + SUSPEND_AGENT, ALERT_MANAGER
    HIGH         -> + ALERT_MANAGER, REQUIRE_VERIFICATION
    MEDIUM       -> + ALERT_MANAGER
    LOW          -> nothing extra

Recommendations depend only on which flag categories are present (one line
per category, first-seen order), never on the score.
"""

from typing import Dict, List, Sequence

from src.core.schema import ActionKind, AutoAction, Flag, FlagCategory, RiskLevel

RECOMMENDATIONS: Dict[FlagCategory, str] = {
    FlagCategory.LOCATION: "Verify agent location using alternative methods",
    FlagCategory.TIME: "Review agent work schedule and overtime policies",
    FlagCategory.PHOTO: "Request additional photo verification",
    FlagCategory.SALES: "Verify sales transactions with customers",
    FlagCategory.BEHAVIOR: "Monitor agent behavior patterns closely",
    FlagCategory.PATTERN: "Investigate potential collusion or systematic fraud",
}

ESCALATIONS: Dict[RiskLevel, List[ActionKind]] = {
    RiskLevel.CRITICAL: [ActionKind.SUSPEND_AGENT, ActionKind.ALERT_MANAGER],
    RiskLevel.HIGH: [ActionKind.ALERT_MANAGER, ActionKind.REQUIRE_VERIFICATION],
    RiskLevel.MEDIUM: [ActionKind.ALERT_MANAGER],
    RiskLevel.LOW: [],
}

REASONS: Dict[ActionKind, str] = {
    ActionKind.SUSPEND_AGENT: "Critical fraud risk detected",
    ActionKind.ALERT_MANAGER: "{level} fraud risk requires manager review",
    ActionKind.REQUIRE_VERIFICATION: "High fraud risk requires additional verification",
}


class PolicyEngine:
    """
    Usage:
        policy = PolicyEngine()
        actions = policy.actions_for("AGENT_7", RiskLevel.HIGH, flags)
        recommendations = policy.recommendations_for(flags)
    """

    def recommendations_for(self, flags: Sequence[Flag]) -> List[str]:
        seen = []
        for flag in flags:
            if flag.category not in seen:
                seen.append(flag.category)
        return [RECOMMENDATIONS[category] for category in seen]

    def actions_for(self, agent_id: str, level: RiskLevel, flags: Sequence[Flag]) -> List[AutoAction]:
        actions = [
            AutoAction(
                action=ActionKind.LOG_INCIDENT,
                reason=f"Fraud detection triggered - {level.value} risk",
                data={"agent_id": agent_id, "risk_level": level.value, "flag_count": len(flags)},
            )
        ]

        for kind in ESCALATIONS[level]:
            actions.append(AutoAction(
                action=kind,
                reason=REASONS[kind].format(level=level.value.capitalize()),
                data={"agent_id": agent_id, "risk_level": level.value},
            ))

        return actions
