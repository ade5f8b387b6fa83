"""
Persistence contract consumed by the fraud engine.

The store supplies location history, activity counts, customer lookups and
the persisted behavior baseline; it accepts baseline upserts and fraud-event
log appends. The fraud-event log is also the activity log: every detected
event is appended once, and history/counts are read back from it.

Implementations must raise PersistenceError (never a driver exception) on
any failure.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from src.core.schema import BehaviorProfile, Coordinate, FraudLogRecord, LocationSample


class FraudStore(ABC):

    @abstractmethod
    def get_profile(self, agent_id: str) -> Optional[BehaviorProfile]:
        """Stored profile, or None if the agent has none yet."""

    @abstractmethod
    def create_profile_if_absent(self, profile: BehaviorProfile) -> BehaviorProfile:
        """
        Insert `profile` unless one exists for the agent.

        Returns whichever profile is stored afterwards, so concurrent first
        access never yields two profiles.
        """

    @abstractmethod
    def save_profile(self, profile: BehaviorProfile) -> None:
        """Upsert the agent's profile."""

    @abstractmethod
    def location_history(self, agent_id: str, since: datetime, until: datetime) -> List[LocationSample]:
        """Samples in [since, until), oldest first."""

    @abstractmethod
    def count_activities(
        self,
        agent_id: str,
        since: datetime,
        until: datetime,
        customer_id: Optional[str] = None
    ) -> int:
        """Logged activities in [since, until), optionally for one customer."""

    @abstractmethod
    def nearby_agents(
        self,
        point: Coordinate,
        radius_meters: float,
        since: datetime,
        until: datetime,
        exclude_agent_id: str
    ) -> List[str]:
        """Distinct other agents with a logged location within the radius and window."""

    @abstractmethod
    def customer_exists(self, customer_id: str) -> bool:
        """Does the customer id resolve?"""

    @abstractmethod
    def append_fraud_log(self, record: FraudLogRecord) -> None:
        """Append one audit record. Never updates existing records."""

    @abstractmethod
    def ping(self) -> bool:
        """Cheap reachability check for health endpoints."""
