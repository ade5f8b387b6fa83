"""
Six signal detectors: location, time, photo, behavior, sales, pattern.

Each is a pure function (event, context, profile) -> List[Flag]. They read
nothing but their arguments, so a fixed fixture always gives the same flags.

DETECTORS maps a stable name to each function in evaluation order; the
orchestrator runs them one by one and isolates failures per name.
"""

from typing import Callable, Dict, List

from src.core.schema import (
    ActivityEvent,
    ActivityKind,
    BehaviorProfile,
    Flag,
    FlagCategory,
    Severity,
)
from src.detectors.context import DetectionContext
from src.geo.geo_math import distance_meters
from src.geo.movement import count_speed_violations
from src.integrity.location_checker import IMPOSSIBLE_SPEED_MPS, LocationIntegrityChecker
from src.media.photo_services import exif_gps, has_exif, has_exif_gps, photo_taken_at

Detector = Callable[[ActivityEvent, DetectionContext, BehaviorProfile], List[Flag]]

# Thresholds
EARLY_HOUR = 6
LATE_HOUR = 22
MAX_ACTIVITIES_PER_HOUR = 10
MAX_PHOTO_TIME_DRIFT_SECONDS = 300
SHORT_VISIT_RATIO = 0.3
LONG_VISIT_RATIO = 3.0
DAILY_ACTIVITY_RATIO = 2.0
LARGE_SALE_RATIO = 5.0
ROUND_AMOUNT_UNIT = 100
MAX_SAME_CUSTOMER_ACTIVITIES = 5
MAX_NEARBY_AGENTS = 2
SPEED_ESCALATION_STEP = 0.05

_checker = LocationIntegrityChecker()


# ============================================================================
# LOCATION
# ============================================================================

def detect_location_fraud(event: ActivityEvent, context: DetectionContext, profile: BehaviorProfile) -> List[Flag]:
    """
    Integrity checks on the reported location, plus a 24h cross-check:
    every consecutive pair above 50 m/s beyond the first raises the
    confidence of this pass's LOCATION flags by 0.05 (max 1.0).
    """
    sample = event.location_sample()
    if sample is None:
        return []

    flags = _checker.check(sample, context.history, profile.common_locations)

    violations = count_speed_violations(list(context.history) + [sample], IMPOSSIBLE_SPEED_MPS)
    if violations < 2 or not flags:
        return flags

    boost = SPEED_ESCALATION_STEP * (violations - 1)
    return [
        flag.model_copy(update={
            "confidence": min(1.0, flag.confidence + boost),
            "evidence": {**flag.evidence, "speed_violations_24h": violations},
        })
        for flag in flags
    ]


# ============================================================================
# TIME
# ============================================================================

def detect_time_fraud(event: ActivityEvent, context: DetectionContext, profile: BehaviorProfile) -> List[Flag]:
    flags = []
    local = event.timestamp.astimezone(context.zone)
    hour = local.hour

    if not profile.working_hours.contains(hour):
        odd_hour = hour < EARLY_HOUR or hour > LATE_HOUR
        flags.append(Flag(
            category=FlagCategory.TIME,
            severity=Severity.HIGH if odd_hour else Severity.MEDIUM,
            description=f"Activity outside normal working hours ({hour:02d}:00)",
            evidence={
                "hour": hour,
                "working_hours": profile.working_hours.model_dump(),
            },
            confidence=0.8,
        ))

    # Monday=0 ... Saturday=5, Sunday=6
    if local.weekday() >= 5:
        flags.append(Flag(
            category=FlagCategory.TIME,
            severity=Severity.MEDIUM,
            description="Weekend activity detected",
            evidence={"day_of_week": local.strftime("%A")},
            confidence=0.6,
        ))

    if context.recent_activity_count > MAX_ACTIVITIES_PER_HOUR:
        flags.append(Flag(
            category=FlagCategory.TIME,
            severity=Severity.HIGH,
            description=f"Activity frequency anomaly: {context.recent_activity_count} activities in the last hour",
            evidence={"activity_count": context.recent_activity_count, "window_minutes": 60},
            confidence=0.85,
        ))

    return flags


# ============================================================================
# PHOTO
# ============================================================================

def detect_photo_fraud(event: ActivityEvent, context: DetectionContext, profile: BehaviorProfile) -> List[Flag]:
    photo = event.photo
    if photo is None:
        return []

    flags = []

    if not has_exif(photo):
        flags.append(Flag(
            category=FlagCategory.PHOTO,
            severity=Severity.MEDIUM,
            description="Photo missing EXIF metadata - possible stock photo",
            evidence={"media_id": photo.media_id},
            confidence=0.7,
        ))
    elif has_exif_gps(photo) and event.location is not None:
        evidence = {"reported_location": event.location.coordinate.model_dump()}
        embedded = exif_gps(photo)
        if embedded is not None:
            evidence["photo_location"] = embedded.model_dump()
            evidence["distance"] = distance_meters(embedded, event.location)
        flags.append(Flag(
            category=FlagCategory.PHOTO,
            severity=Severity.LOW,
            description="Photo GPS data requires cross-validation with reported location",
            evidence=evidence,
            confidence=0.5,
        ))

    taken_at = photo_taken_at(photo)
    if taken_at is not None:
        drift = abs((event.timestamp - taken_at).total_seconds())
        if drift > MAX_PHOTO_TIME_DRIFT_SECONDS:
            flags.append(Flag(
                category=FlagCategory.PHOTO,
                severity=Severity.MEDIUM,
                description="Photo timestamp does not match activity time",
                evidence={
                    "photo_time": taken_at.isoformat(),
                    "activity_time": event.timestamp.isoformat(),
                    "time_diff": drift,
                },
                confidence=0.75,
            ))

    if context.is_duplicate_photo:
        flags.append(Flag(
            category=FlagCategory.PHOTO,
            severity=Severity.HIGH,
            description="Duplicate photo detected",
            evidence={"media_id": photo.media_id},
            confidence=0.9,
        ))

    return flags


# ============================================================================
# BEHAVIOR
# ============================================================================

def detect_behavior_fraud(event: ActivityEvent, context: DetectionContext, profile: BehaviorProfile) -> List[Flag]:
    flags = []

    duration = event.metadata.get("duration")
    if event.kind == ActivityKind.VISIT_END and isinstance(duration, (int, float)):
        average = profile.average_visit_duration
        if duration < average * SHORT_VISIT_RATIO:
            flags.append(Flag(
                category=FlagCategory.BEHAVIOR,
                severity=Severity.MEDIUM,
                description="Visit duration too short",
                evidence={"duration": duration, "average_duration": average},
                confidence=0.8,
            ))
        elif duration > average * LONG_VISIT_RATIO:
            flags.append(Flag(
                category=FlagCategory.BEHAVIOR,
                severity=Severity.LOW,
                description="Visit duration unusually long",
                evidence={"duration": duration, "average_duration": average},
                confidence=0.6,
            ))

    if context.today_activity_count > profile.average_visits_per_day * DAILY_ACTIVITY_RATIO:
        flags.append(Flag(
            category=FlagCategory.BEHAVIOR,
            severity=Severity.MEDIUM,
            description="Unusually high activity count today",
            evidence={
                "today_count": context.today_activity_count,
                "average_per_day": profile.average_visits_per_day,
            },
            confidence=0.75,
        ))

    return flags


# ============================================================================
# SALES
# ============================================================================

def detect_sales_fraud(event: ActivityEvent, context: DetectionContext, profile: BehaviorProfile) -> List[Flag]:
    if event.kind != ActivityKind.SALE:
        return []

    flags = []
    amount = event.amount

    if amount is not None:
        if amount > profile.average_sale_amount * LARGE_SALE_RATIO:
            flags.append(Flag(
                category=FlagCategory.SALES,
                severity=Severity.HIGH,
                description=f"Unusually large sale amount: {amount:.2f} vs average {profile.average_sale_amount:.2f}",
                evidence={"amount": amount, "average_amount": profile.average_sale_amount},
                confidence=0.85,
            ))

        if amount > ROUND_AMOUNT_UNIT and amount % ROUND_AMOUNT_UNIT == 0:
            flags.append(Flag(
                category=FlagCategory.SALES,
                severity=Severity.LOW,
                description="Round number sale amount - potential manual entry",
                evidence={"amount": amount},
                confidence=0.5,
            ))

    # Unknown (None) existence means the lookup failed; only a definite miss flags
    if event.customer_id and context.customer_exists is False:
        flags.append(Flag(
            category=FlagCategory.SALES,
            severity=Severity.CRITICAL,
            description="Sale to non-existent customer",
            evidence={"customer_id": event.customer_id},
            confidence=1.0,
        ))

    return flags


# ============================================================================
# PATTERN
# ============================================================================

def detect_pattern_fraud(event: ActivityEvent, context: DetectionContext, profile: BehaviorProfile) -> List[Flag]:
    flags = []

    if event.customer_id and context.same_customer_count > MAX_SAME_CUSTOMER_ACTIVITIES:
        flags.append(Flag(
            category=FlagCategory.PATTERN,
            severity=Severity.MEDIUM,
            description="Repetitive activity pattern with same customer",
            evidence={"customer_id": event.customer_id, "activity_count": context.same_customer_count},
            confidence=0.7,
        ))

    if event.location is not None and len(context.nearby_agents) > MAX_NEARBY_AGENTS:
        flags.append(Flag(
            category=FlagCategory.PATTERN,
            severity=Severity.HIGH,
            description="Multiple agents at same location - possible collusion",
            evidence={
                "nearby_agents": list(context.nearby_agents),
                "location": event.location.coordinate.model_dump(),
            },
            confidence=0.8,
        ))

    return flags


# Evaluation order
DETECTORS: Dict[str, Detector] = {
    "location": detect_location_fraud,
    "time": detect_time_fraud,
    "photo": detect_photo_fraud,
    "behavior": detect_behavior_fraud,
    "sales": detect_sales_fraud,
    "pattern": detect_pattern_fraud,
}
