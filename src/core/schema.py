"""
Typed data model for the fraud engine.

Every value that crosses a component boundary is one of these models:
- ActivityEvent: the unit of analysis (one per incoming request)
- LocationSample: one point of an agent's location history
- BehaviorProfile: the per-agent rolling baseline
- Flag / AutoAction / FraudResult: scoring output

All timestamps are normalised to timezone-aware UTC on the way in.
Flags, actions and results are frozen: they are produced once and never mutated.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================

class ActivityKind(str, Enum):
    VISIT_START = "visit_start"
    VISIT_END = "visit_end"
    SALE = "sale"
    PHOTO_UPLOAD = "photo_upload"
    SURVEY_COMPLETE = "survey_complete"
    STOCK_DRAW = "stock_draw"


class LocationSource(str, Enum):
    GPS = "GPS"
    NETWORK = "NETWORK"
    PASSIVE = "PASSIVE"


class FlagCategory(str, Enum):
    LOCATION = "LOCATION"
    TIME = "TIME"
    PHOTO = "PHOTO"
    BEHAVIOR = "BEHAVIOR"
    SALES = "SALES"
    PATTERN = "PATTERN"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ActionKind(str, Enum):
    ALERT_MANAGER = "ALERT_MANAGER"
    SUSPEND_AGENT = "SUSPEND_AGENT"
    REQUIRE_VERIFICATION = "REQUIRE_VERIFICATION"
    LOG_INCIDENT = "LOG_INCIDENT"


# ============================================================================
# LOCATION
# ============================================================================

class Coordinate(BaseModel):
    """Latitude/longitude pair in decimal degrees."""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class LocationSample(BaseModel):
    """One entry of an agent's location history."""
    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    accuracy: float = Field(0.0, ge=0, description="Horizontal accuracy in meters")
    timestamp: datetime
    source: LocationSource = LocationSource.GPS

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v):
        return ensure_utc(v)


class ReportedLocation(BaseModel):
    """Location as reported by the device alongside an activity."""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    accuracy: float = Field(0.0, ge=0)
    source: LocationSource = LocationSource.GPS

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


# ============================================================================
# ACTIVITY EVENT
# ============================================================================

class PhotoPayload(BaseModel):
    """
    Photo as supplied by the media store.

    EXIF extraction happens upstream; `exif` is None when the file had none.
    """
    model_config = ConfigDict(frozen=True)

    media_id: Optional[str] = None
    content: bytes = b""
    exif: Optional[Dict[str, Any]] = None
    captured_at: Optional[datetime] = None

    @field_validator("captured_at")
    @classmethod
    def captured_at_utc(cls, v):
        return ensure_utc(v) if v is not None else v


class ActivityEvent(BaseModel):
    """
    A single tracked agent activity submitted for fraud analysis.

    Agent id and coordinate sanity are checked by the orchestrator, not here,
    so that a malformed event is answered with an incident result instead of
    an exception.
    """
    model_config = ConfigDict(frozen=True)

    agent_id: str
    kind: ActivityKind
    timestamp: datetime
    location: Optional[ReportedLocation] = None
    customer_id: Optional[str] = None
    amount: Optional[float] = Field(None, description="Caller-currency amount, no currency code")
    photo: Optional[PhotoPayload] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v):
        return ensure_utc(v)

    def location_sample(self) -> Optional[LocationSample]:
        if self.location is None:
            return None
        return LocationSample(
            coordinate=self.location.coordinate,
            accuracy=self.location.accuracy,
            timestamp=self.timestamp,
            source=self.location.source,
        )


# ============================================================================
# BEHAVIOR PROFILE
# ============================================================================

class WorkingHours(BaseModel):
    """Half-open local hour-of-day interval [start, end)."""
    start: int = Field(8, ge=0, le=23)
    end: int = Field(17, ge=1, le=24)

    def contains(self, hour: int) -> bool:
        return self.start <= hour < self.end


class CommonLocation(BaseModel):
    latitude: float
    longitude: float
    frequency: int = Field(1, ge=1)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class BehaviorProfile(BaseModel):
    """
    Per-agent behavior baseline used as the "normal" reference.

    Defaults are the conservative values given to a brand-new agent.
    `current_day` / `current_day_visits` accumulate the visit-start count of
    the local day in progress; it is folded into `average_visits_per_day`
    when the next day starts.
    """
    agent_id: str
    average_visit_duration: float = 1800.0
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    average_visits_per_day: float = 8.0
    average_sale_amount: float = 150.0
    common_locations: List[CommonLocation] = Field(default_factory=list)
    average_photo_quality: float = 75.0
    suspicious_activity_count: int = 0
    current_day: Optional[str] = None
    current_day_visits: int = 0
    last_updated: Optional[datetime] = None

    @field_validator("last_updated")
    @classmethod
    def last_updated_utc(cls, v):
        return ensure_utc(v) if v is not None else v


# ============================================================================
# SCORING OUTPUT
# ============================================================================

class Flag(BaseModel):
    """A single typed, scored piece of fraud evidence."""
    model_config = ConfigDict(frozen=True)

    category: FlagCategory
    severity: Severity
    description: str
    evidence: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0.0, le=1.0)


class AutoAction(BaseModel):
    """Policy-determined response, performed by the notification dispatcher."""
    model_config = ConfigDict(frozen=True)

    action: ActionKind
    reason: str
    data: Dict[str, Any] = Field(default_factory=dict)


class FraudResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk_level: RiskLevel
    risk_score: float = Field(..., ge=0, le=100)
    flags: List[Flag] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    auto_actions: List[AutoAction] = Field(default_factory=list)


class FraudLogRecord(BaseModel):
    """
    Append-only audit record written once per detected event.

    Also serves as the activity log that history and counts are read from.
    """
    model_config = ConfigDict(frozen=True)

    agent_id: str
    kind: ActivityKind
    event_timestamp: datetime
    location: Optional[ReportedLocation] = None
    customer_id: Optional[str] = None
    amount: Optional[float] = None
    risk_level: RiskLevel
    risk_score: float
    flags: List[Flag] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_timestamp")
    @classmethod
    def event_timestamp_utc(cls, v):
        return ensure_utc(v)

    @classmethod
    def from_result(cls, event: ActivityEvent, result: FraudResult) -> "FraudLogRecord":
        return cls(
            agent_id=event.agent_id,
            kind=event.kind,
            event_timestamp=event.timestamp,
            location=event.location,
            customer_id=event.customer_id,
            amount=event.amount,
            risk_level=result.risk_level,
            risk_score=result.risk_score,
            flags=result.flags,
            metadata=event.metadata,
        )
