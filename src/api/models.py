"""
Pydantic models for API request/response validation.
Enforces strict type checking at API boundary.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.core.schema import ActivityEvent, AutoAction, Flag, RiskLevel


class ActivityRequest(ActivityEvent):
    """
    Input: one tracked agent activity.

    Same shape as ActivityEvent; photo `content` travels as a string and
    `exif` as the tag dict already extracted by the media store.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "agent_id": "AGENT_0042",
                "kind": "visit_start",
                "timestamp": "2026-03-02T10:15:00Z",
                "location": {
                    "latitude": -25.8627,
                    "longitude": 28.1871,
                    "accuracy": 12.0,
                    "source": "GPS"
                },
                "customer_id": "CUST_1001",
                "metadata": {"visit_id": "V-7781"}
            }
        }
    )

    def to_event(self) -> ActivityEvent:
        return ActivityEvent(**self.model_dump())


class DetectionResponse(BaseModel):
    """
    Output: fraud detection result with request metadata.
    """
    agent_id: str
    risk_level: RiskLevel
    risk_score: float = Field(..., ge=0, le=100, description="Weighted flag score [0,100]")
    flags: List[Flag] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    auto_actions: List[AutoAction] = Field(default_factory=list)
    latency_ms: float = Field(..., description="Total detection latency")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "agent_id": "AGENT_0042",
                "risk_level": "CRITICAL",
                "risk_score": 95.0,
                "flags": [{
                    "category": "LOCATION",
                    "severity": "CRITICAL",
                    "description": "Impossible travel speed detected: 1811.6 km/h",
                    "evidence": {"distance": 30190.2, "time_diff": 60.0, "speed": 503.2},
                    "confidence": 0.95
                }],
                "recommendations": ["Verify agent location using alternative methods"],
                "auto_actions": [
                    {"action": "LOG_INCIDENT", "reason": "Fraud detection triggered - CRITICAL risk", "data": {}},
                    {"action": "SUSPEND_AGENT", "reason": "Critical fraud risk detected", "data": {}},
                    {"action": "ALERT_MANAGER", "reason": "Critical fraud risk requires manager review", "data": {}}
                ],
                "latency_ms": 12.4
            }
        }
    )


class HealthCheckResponse(BaseModel):
    """System health status."""
    status: str = Field(..., description="healthy | degraded | down")
    store_ok: bool
    detectors: List[str] = Field(default_factory=list)
    uptime_seconds: float
    last_detection_ms: Optional[float] = None


class MetricsResponse(BaseModel):
    """API performance metrics."""
    total_requests: int
    flagged_events: int
    flag_rate: float = Field(..., description="Fraction of events scored above LOW")
    rejected_events: int = 0
    degraded_events: int = 0
    error_count: int = 0
    risk_levels: Dict[str, int] = Field(default_factory=dict)
    avg_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    requests_per_second: float


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    message: str
    agent_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
