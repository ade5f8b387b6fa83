"""
In-memory FraudStore.

Keeps per-agent fraud-log deques and a profile dict, all behind one lock.
Used by the test-suite and for embedding the engine without a database.
"""

import threading
from collections import defaultdict, deque
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional

from src.core.schema import BehaviorProfile, Coordinate, FraudLogRecord, LocationSample
from src.geo.geo_math import distance_meters
from src.storage.base import FraudStore

MAX_RECORDS_PER_AGENT = 10_000


class InMemoryFraudStore(FraudStore):

    def __init__(self, customers: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._profiles: Dict[str, BehaviorProfile] = {}
        self._log: Dict[str, Deque[FraudLogRecord]] = defaultdict(
            lambda: deque(maxlen=MAX_RECORDS_PER_AGENT)
        )
        self._customers = set(customers)

    # --- test / seeding helpers ---

    def register_customer(self, customer_id: str) -> None:
        with self._lock:
            self._customers.add(customer_id)

    def records(self, agent_id: str) -> List[FraudLogRecord]:
        with self._lock:
            return list(self._log.get(agent_id, ()))

    # --- profiles ---

    def get_profile(self, agent_id: str) -> Optional[BehaviorProfile]:
        with self._lock:
            profile = self._profiles.get(agent_id)
            return profile.model_copy(deep=True) if profile else None

    def create_profile_if_absent(self, profile: BehaviorProfile) -> BehaviorProfile:
        with self._lock:
            stored = self._profiles.setdefault(profile.agent_id, profile.model_copy(deep=True))
            return stored.model_copy(deep=True)

    def save_profile(self, profile: BehaviorProfile) -> None:
        with self._lock:
            self._profiles[profile.agent_id] = profile.model_copy(deep=True)

    # --- activity log ---

    def _window(self, agent_id: str, since: datetime, until: datetime) -> List[FraudLogRecord]:
        records = [r for r in self._log.get(agent_id, ())
                   if since <= r.event_timestamp < until]
        return sorted(records, key=lambda r: r.event_timestamp)

    def location_history(self, agent_id: str, since: datetime, until: datetime) -> List[LocationSample]:
        with self._lock:
            return [
                LocationSample(
                    coordinate=r.location.coordinate,
                    accuracy=r.location.accuracy,
                    timestamp=r.event_timestamp,
                    source=r.location.source,
                )
                for r in self._window(agent_id, since, until)
                if r.location is not None
            ]

    def count_activities(
        self,
        agent_id: str,
        since: datetime,
        until: datetime,
        customer_id: Optional[str] = None
    ) -> int:
        with self._lock:
            records = self._window(agent_id, since, until)
            if customer_id is not None:
                records = [r for r in records if r.customer_id == customer_id]
            return len(records)

    def nearby_agents(
        self,
        point: Coordinate,
        radius_meters: float,
        since: datetime,
        until: datetime,
        exclude_agent_id: str
    ) -> List[str]:
        with self._lock:
            found = []
            for agent_id, records in self._log.items():
                if agent_id == exclude_agent_id:
                    continue
                for r in records:
                    if (r.location is not None and since <= r.event_timestamp < until
                            and distance_meters(point, r.location) <= radius_meters):
                        found.append(agent_id)
                        break
            return sorted(found)

    def customer_exists(self, customer_id: str) -> bool:
        with self._lock:
            return customer_id in self._customers

    def append_fraud_log(self, record: FraudLogRecord) -> None:
        with self._lock:
            self._log[record.agent_id].append(record)

    def ping(self) -> bool:
        return True
