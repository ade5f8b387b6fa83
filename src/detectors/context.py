"""
Facts gathered from the stores before detectors run.

The orchestrator does all I/O up front and hands detectors this snapshot,
so every detector is a pure function of (event, context, profile).
"""

from typing import List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from src.core.schema import LocationSample


class DetectionContext(BaseModel):
    history: List[LocationSample] = Field(default_factory=list, description="Prior samples, oldest first")
    recent_activity_count: int = Field(0, description="Activities in the trailing 60 minutes")
    today_activity_count: int = Field(0, description="Activities since local midnight")
    same_customer_count: int = Field(0, description="Activities with this customer in the last 24h")
    nearby_agents: List[str] = Field(default_factory=list)
    customer_exists: Optional[bool] = Field(None, description="None when the lookup was not possible")
    is_duplicate_photo: bool = False
    timezone: str = "UTC"

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
