"""
Behavior baseline maintenance.

Update formula (applied once per scored event):
    sample' = clamp(sample, avg / CLAMP, avg * CLAMP)
    avg'    = (1 - alpha) * avg + alpha * sample'

One event moves a baseline by at most alpha * (CLAMP - 1) * avg.

Which averages move:
- visit_end with metadata["duration"]  -> average_visit_duration
- sale with an amount                  -> average_sale_amount
- photo present                        -> average_photo_quality
- visit_start                          -> visits/day, folded in per local day
- any location                         -> common_locations (merge within 1 km)
- HIGH or CRITICAL result              -> suspicious_activity_count + 1
Working hours are left as configured.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional
from weakref import WeakValueDictionary
from zoneinfo import ZoneInfo

from src.core.schema import (
    ActivityEvent,
    ActivityKind,
    BehaviorProfile,
    CommonLocation,
    FraudResult,
    RiskLevel,
)
from src.geo.geo_math import distance_meters
from src.storage.base import FraudStore

logger = logging.getLogger(__name__)

COMMON_LOCATION_MERGE_METERS = 1000.0


def default_profile(agent_id: str) -> BehaviorProfile:
    """Conservative baseline for an agent seen for the first time."""
    return BehaviorProfile(agent_id=agent_id)


def smooth(average: float, sample: float, alpha: float, clamp: float) -> float:
    """Clamped exponential moving average step."""
    if average <= 0:
        return sample
    bounded = min(max(sample, average / clamp), average * clamp)
    return (1 - alpha) * average + alpha * bounded


def local_day(ts: datetime, tz: ZoneInfo) -> str:
    return ts.astimezone(tz).date().isoformat()


def _merge_location(profile: BehaviorProfile, latitude: float, longitude: float, max_locations: int):
    point = CommonLocation(latitude=latitude, longitude=longitude)
    locations = [c.model_copy() for c in profile.common_locations]

    nearest_index, nearest_distance = None, None
    for i, common in enumerate(locations):
        d = distance_meters(point, common)
        if nearest_distance is None or d < nearest_distance:
            nearest_index, nearest_distance = i, d

    if nearest_distance is not None and nearest_distance <= COMMON_LOCATION_MERGE_METERS:
        hit = locations[nearest_index]
        locations[nearest_index] = hit.model_copy(update={"frequency": hit.frequency + 1})
    else:
        # Full: the least frequent entry (oldest on ties) makes room for the new point
        if locations and len(locations) >= max_locations:
            evict = min(range(len(locations)), key=lambda i: locations[i].frequency)
            del locations[evict]
        locations.append(point)

    return locations


def apply_activity(
    profile: BehaviorProfile,
    event: ActivityEvent,
    result: FraudResult,
    photo_quality: Optional[float] = None,
    tz: ZoneInfo = ZoneInfo("UTC"),
    alpha: float = 0.1,
    clamp: float = 3.0,
    max_locations: int = 50,
    now: Optional[datetime] = None,
) -> BehaviorProfile:
    """
    Return the profile adjusted for one scored event.

    The input profile is left untouched.
    """
    updates = {}

    duration = event.metadata.get("duration")
    if event.kind == ActivityKind.VISIT_END and isinstance(duration, (int, float)) and duration > 0:
        updates["average_visit_duration"] = smooth(profile.average_visit_duration, float(duration), alpha, clamp)

    if event.kind == ActivityKind.SALE and event.amount is not None and event.amount > 0:
        updates["average_sale_amount"] = smooth(profile.average_sale_amount, event.amount, alpha, clamp)

    if photo_quality is not None:
        updates["average_photo_quality"] = smooth(profile.average_photo_quality, photo_quality, alpha, clamp)

    if event.kind == ActivityKind.VISIT_START:
        day = local_day(event.timestamp, tz)
        if profile.current_day is None or day == profile.current_day:
            updates["current_day"] = day
            updates["current_day_visits"] = profile.current_day_visits + 1
        elif day > profile.current_day:
            updates["average_visits_per_day"] = smooth(
                profile.average_visits_per_day, float(profile.current_day_visits), alpha, clamp
            )
            updates["current_day"] = day
            updates["current_day_visits"] = 1
        # Late events for an already-closed day do not reopen it

    if event.location is not None:
        updates["common_locations"] = _merge_location(
            profile, event.location.latitude, event.location.longitude, max_locations
        )

    if result.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        updates["suspicious_activity_count"] = profile.suspicious_activity_count + 1

    updates["last_updated"] = now or datetime.now(timezone.utc)
    return profile.model_copy(update=updates, deep=True)


class AgentLockRegistry:
    """
    One re-entrant lock per agent id.

    Events for the same agent serialize on their lock; different agents
    never contend. A lock lives only while some caller still holds it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "WeakValueDictionary[str, threading.RLock]" = WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def for_agent(self, agent_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(agent_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[agent_id] = lock
            return lock


class ProfileStore:
    """
    get() / update() facade over the persistence store.

    Usage:
        profiles = ProfileStore(store)
        profile = profiles.get("AGENT_7")
        profiles.update("AGENT_7", event, result)
    """

    def __init__(
        self,
        store: FraudStore,
        tz: ZoneInfo = ZoneInfo("UTC"),
        alpha: float = 0.1,
        clamp: float = 3.0,
        max_locations: int = 50,
    ):
        self.store = store
        self.tz = tz
        self.alpha = alpha
        self.clamp = clamp
        self.max_locations = max_locations

    def get(self, agent_id: str) -> BehaviorProfile:
        """Existing profile, or a default one created idempotently."""
        profile = self.store.get_profile(agent_id)
        if profile is not None:
            return profile

        logger.info(f"Creating default behavior profile for agent {agent_id}")
        return self.store.create_profile_if_absent(default_profile(agent_id))

    def update(
        self,
        agent_id: str,
        event: ActivityEvent,
        result: FraudResult,
        photo_quality: Optional[float] = None,
    ) -> BehaviorProfile:
        """Re-read the stored baseline, fold the event in and upsert it."""
        updated = apply_activity(
            self.get(agent_id), event, result,
            photo_quality=photo_quality,
            tz=self.tz,
            alpha=self.alpha,
            clamp=self.clamp,
            max_locations=self.max_locations,
        )
        self.store.save_profile(updated)
        return updated
