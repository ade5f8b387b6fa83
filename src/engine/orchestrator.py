"""
Fraud Detection Orchestrator.

Single entry point: detect(event) -> FraudResult. Never raises.

Pipeline (per event, under the agent's lock):
1. Validate the event (malformed -> LOW result + LOG_INCIDENT, nothing stored)
2. Load profile, 24h history, counts, nearby agents, customer lookup
   (every store call bounded by a timeout; failure -> degraded scoring)
3. Run the six detectors, each isolated
4. Score flags, pick level, derive recommendations and actions
5. Append the fraud log record, update the behavior profile
   (writes queue per agent; a write that outlives its timeout still lands
   before the next write for the same agent starts)
6. Hand actions to the dispatcher, record metrics
"""

import logging
import math
import time
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from src.core.errors import DetectorError, PersistenceError, ValidationError
from src.core.schema import (
    ActionKind,
    ActivityEvent,
    ActivityKind,
    AutoAction,
    BehaviorProfile,
    Flag,
    FraudLogRecord,
    FraudResult,
    RiskLevel,
)
from src.detectors.context import DetectionContext
from src.detectors.signal_detectors import DETECTORS, Detector
from src.engine.dispatch import ActionDispatcher, LoggingDispatcher
from src.engine.metrics import ServiceMetrics
from src.media.photo_services import (
    DuplicatePhotoChecker,
    MetadataQualityScorer,
    NullDuplicateChecker,
    PhotoQualityScorer,
)
from src.profiles.behavior_profile import AgentLockRegistry, ProfileStore, default_profile
from src.scoring.policy_engine import PolicyEngine
from src.scoring.risk_scorer import RiskScorer
from src.storage.base import FraudStore

logger = logging.getLogger(__name__)

SYSTEM_ERROR_RECOMMENDATION = "Fraud detection system error - manual review recommended"
RECENT_ACTIVITY_WINDOW = timedelta(minutes=60)


def validate_event(event: ActivityEvent) -> None:
    """Raise ValidationError for events no detector should see."""
    if not event.agent_id or not event.agent_id.strip():
        raise ValidationError("agent_id is required", field="agent_id")

    location = event.location
    if location is not None:
        for name, value in (("latitude", location.latitude),
                            ("longitude", location.longitude),
                            ("accuracy", location.accuracy)):
            if not math.isfinite(value):
                raise ValidationError(f"{name} must be finite, got {value}", field=f"location.{name}")
        if not -90.0 <= location.latitude <= 90.0:
            raise ValidationError(f"latitude out of range: {location.latitude}", field="location.latitude")
        if not -180.0 <= location.longitude <= 180.0:
            raise ValidationError(f"longitude out of range: {location.longitude}", field="location.longitude")

    if event.amount is not None and not math.isfinite(event.amount):
        raise ValidationError(f"amount must be finite, got {event.amount}", field="amount")


def incident(reason: str, **data) -> AutoAction:
    return AutoAction(action=ActionKind.LOG_INCIDENT, reason=reason, data=data)


def _run_after(previous: Optional[Future], fn, *args, **kwargs):
    if previous is not None:
        wait([previous])
    return fn(*args, **kwargs)


class FraudDetectionOrchestrator:
    """
    Wires store, detectors, scorer, policy and dispatcher together.

    Usage:
        store = DuckDBFraudStore("data/fraud_engine.duckdb")
        engine = FraudDetectionOrchestrator(store, timezone_name="Africa/Johannesburg")
        result = engine.detect(event)
    """

    def __init__(
        self,
        store: FraudStore,
        dispatcher: Optional[ActionDispatcher] = None,
        duplicate_checker: Optional[DuplicatePhotoChecker] = None,
        quality_scorer: Optional[PhotoQualityScorer] = None,
        detectors: Optional[Dict[str, Detector]] = None,
        timezone_name: str = "UTC",
        history_window_hours: int = 24,
        store_timeout_seconds: float = 2.0,
        smoothing_alpha: float = 0.1,
        outlier_clamp: float = 3.0,
        max_common_locations: int = 50,
        collusion_radius_meters: float = 100.0,
        collusion_window_minutes: int = 60,
        max_latency_ms: float = 500.0,
        store_workers: int = 8,
    ):
        self.store = store
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.duplicate_checker = duplicate_checker or NullDuplicateChecker()
        self.quality_scorer = quality_scorer or MetadataQualityScorer()
        self.detectors = dict(detectors if detectors is not None else DETECTORS)

        self.timezone_name = timezone_name
        self.tz = ZoneInfo(timezone_name)
        self.history_window = timedelta(hours=history_window_hours)
        self.store_timeout_seconds = store_timeout_seconds
        self.collusion_radius_meters = collusion_radius_meters
        self.collusion_window = timedelta(minutes=collusion_window_minutes)
        self.max_latency_ms = max_latency_ms

        self.profiles = ProfileStore(
            store,
            tz=self.tz,
            alpha=smoothing_alpha,
            clamp=outlier_clamp,
            max_locations=max_common_locations,
        )
        self.locks = AgentLockRegistry()
        self.scorer = RiskScorer()
        self.policy = PolicyEngine()
        self.metrics = ServiceMetrics()
        self._executor = ThreadPoolExecutor(max_workers=store_workers, thread_name_prefix="fraud-store")
        self._writes_lock = threading.Lock()
        self._pending_writes: Dict[str, Future] = {}

        logger.info("✅ FraudDetectionOrchestrator ready")
        logger.info(f"   Detectors: {', '.join(self.detectors)}")
        logger.info(f"   Timezone: {timezone_name}, store timeout: {store_timeout_seconds}s")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(self, event: ActivityEvent) -> FraudResult:
        start_time = time.time()

        try:
            validate_event(event)
        except ValidationError as e:
            logger.warning(f"⚠️  Rejected activity for agent {event.agent_id!r}: {e}")
            self.metrics.record_rejected()
            result = FraudResult(
                risk_level=RiskLevel.LOW,
                risk_score=0.0,
                auto_actions=[incident(f"Activity rejected: {e}", field=e.field, agent_id=event.agent_id)],
            )
            self._dispatch(event.agent_id, result)
            return result

        try:
            logger.info(f"📨 Detecting fraud for {event.agent_id} ({event.kind.value})")
            with self.locks.for_agent(event.agent_id):
                result, degraded = self._detect_locked(event)
        except Exception as e:
            logger.error(f"❌ Fraud detection failed for {event.agent_id}: {e}", exc_info=True)
            self.metrics.record_error()
            result = FraudResult(
                risk_level=RiskLevel.LOW,
                risk_score=0.0,
                recommendations=[SYSTEM_ERROR_RECOMMENDATION],
                auto_actions=[incident("System error", error=str(e), agent_id=event.agent_id)],
            )
            self._dispatch(event.agent_id, result)
            return result

        self._dispatch(event.agent_id, result)

        latency_ms = (time.time() - start_time) * 1000
        self.metrics.record_request(latency_ms, result.risk_level, degraded=degraded)
        if latency_ms > self.max_latency_ms:
            logger.warning(
                f"⚠️  Latency exceeded SLA: {latency_ms:.1f}ms (target: {self.max_latency_ms}ms)"
            )

        logger.info(
            f"✅ Scored {event.agent_id}: level={result.risk_level.value}, "
            f"score={result.risk_score:.1f}, flags={len(result.flags)}, latency={latency_ms:.1f}ms"
        )
        return result

    def health_check(self) -> Dict:
        store_ok = self.store.ping()
        return {
            "status": "healthy" if store_ok else "degraded",
            "store_ok": store_ok,
            "detectors": list(self.detectors),
            "last_detection_ms": self.metrics.latencies[-1] if self.metrics.latencies else None,
        }

    def get_metrics(self) -> Dict:
        return self.metrics.get_summary()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued store writes; True once none are outstanding."""
        with self._writes_lock:
            pending = list(self._pending_writes.values())
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self):
        logger.info("Closing FraudDetectionOrchestrator...")
        logger.info(
            f"Final stats: {self.metrics.total_requests} requests, "
            f"{self.metrics.flagged_events} flagged, {self.metrics.error_count} errors"
        )
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _detect_locked(self, event: ActivityEvent) -> Tuple[FraudResult, bool]:
        incidents: List[AutoAction] = []

        self._await_writes(event.agent_id)
        profile, context, degraded = self._gather(event, incidents)
        flags = self._run_detectors(event, context, profile, incidents)

        score, level = self.scorer.score(flags)
        actions = self.policy.actions_for(event.agent_id, level, flags)
        scored = FraudResult(
            risk_level=level,
            risk_score=score,
            flags=flags,
            recommendations=self.policy.recommendations_for(flags),
            auto_actions=actions,
        )

        self._persist(event, scored, incidents)

        if not incidents:
            return scored, degraded
        return scored.model_copy(update={"auto_actions": actions + incidents}), degraded

    def _timed(self, operation: str, fn, *args, **kwargs):
        """Run one store call on the worker pool, bounded by the store timeout."""
        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.store_timeout_seconds)
        except FutureTimeoutError as e:
            future.cancel()
            raise PersistenceError(operation, f"timed out after {self.store_timeout_seconds}s", timed_out=True) from e

    def _timed_write(self, agent_id: str, operation: str, fn, *args, **kwargs):
        """
        Queue a write behind the agent's previous one and wait up to the store timeout.

        On timeout the write keeps its place in the queue.
        """
        with self._writes_lock:
            previous = self._pending_writes.get(agent_id)
            future = self._executor.submit(_run_after, previous, fn, *args, **kwargs)
            self._pending_writes[agent_id] = future
        future.add_done_callback(lambda f: self._write_done(agent_id, f))

        try:
            return future.result(timeout=self.store_timeout_seconds)
        except FutureTimeoutError as e:
            raise PersistenceError(
                operation, f"still pending after {self.store_timeout_seconds}s", timed_out=True
            ) from e

    def _write_done(self, agent_id: str, future: Future) -> None:
        with self._writes_lock:
            if self._pending_writes.get(agent_id) is future:
                del self._pending_writes[agent_id]

    def _await_writes(self, agent_id: str) -> None:
        """Give an outstanding write for this agent up to the store timeout to land before reading."""
        with self._writes_lock:
            pending = self._pending_writes.get(agent_id)
        if pending is not None and not wait([pending], timeout=self.store_timeout_seconds).done:
            logger.warning(f"⚠️  Previous write for {agent_id} still pending, reading current state")

    def _local_midnight(self, ts: datetime) -> datetime:
        local = ts.astimezone(self.tz)
        return local.replace(hour=0, minute=0, second=0, microsecond=0).astimezone(timezone.utc)

    def _gather(
        self,
        event: ActivityEvent,
        incidents: List[AutoAction]
    ) -> Tuple[BehaviorProfile, DetectionContext, bool]:
        """Profile plus detection context; falls back to defaults if the store fails."""
        agent_id = event.agent_id
        now = event.timestamp
        duplicate = self._check_duplicate(event, incidents)

        try:
            profile = self._timed("get_profile", self.profiles.get, agent_id)
            history = self._timed(
                "location_history", self.store.location_history, agent_id, now - self.history_window, now
            )
            recent = self._timed(
                "count_activities", self.store.count_activities, agent_id, now - RECENT_ACTIVITY_WINDOW, now
            )
            today = self._timed(
                "count_activities", self.store.count_activities, agent_id, self._local_midnight(now), now
            )

            same_customer = 0
            if event.customer_id:
                same_customer = self._timed(
                    "count_activities", self.store.count_activities,
                    agent_id, now - self.history_window, now, customer_id=event.customer_id,
                )

            nearby = []
            if event.location is not None:
                nearby = self._timed(
                    "nearby_agents", self.store.nearby_agents,
                    event.location.coordinate, self.collusion_radius_meters,
                    now - self.collusion_window, now + self.collusion_window, agent_id,
                )

            customer_exists = None
            if event.kind == ActivityKind.SALE and event.customer_id:
                customer_exists = self._timed("customer_exists", self.store.customer_exists, event.customer_id)

        except PersistenceError as e:
            logger.warning(f"⚠️  Degraded scoring for {agent_id}: {e}")
            incidents.append(incident(
                "Degraded scoring: persistence store unavailable, default profile and empty history used",
                operation=e.operation, error=str(e),
            ))
            context = DetectionContext(is_duplicate_photo=duplicate, timezone=self.timezone_name)
            return default_profile(agent_id), context, True

        context = DetectionContext(
            history=history,
            recent_activity_count=recent,
            today_activity_count=today,
            same_customer_count=same_customer,
            nearby_agents=nearby,
            customer_exists=customer_exists,
            is_duplicate_photo=duplicate,
            timezone=self.timezone_name,
        )
        return profile, context, False

    def _check_duplicate(self, event: ActivityEvent, incidents: List[AutoAction]) -> bool:
        if event.photo is None:
            return False
        try:
            return bool(self._timed("is_duplicate", self.duplicate_checker.is_duplicate, event.agent_id, event.photo))
        except Exception as e:
            error = DetectorError("photo_duplicate", e)
            logger.warning(f"⚠️  {error}", exc_info=True)
            incidents.append(incident(f"Detector 'photo_duplicate' failed: {e}", detector="photo_duplicate"))
            return False

    def _run_detectors(
        self,
        event: ActivityEvent,
        context: DetectionContext,
        profile: BehaviorProfile,
        incidents: List[AutoAction]
    ) -> List[Flag]:
        flags = []
        for name, detector in self.detectors.items():
            try:
                flags.extend(detector(event, context, profile))
            except Exception as e:
                error = DetectorError(name, e)
                logger.warning(f"⚠️  {error}", exc_info=True)
                incidents.append(incident(f"Detector '{name}' failed: {e}", detector=name))
        return flags

    def _photo_quality(self, event: ActivityEvent) -> Optional[float]:
        if event.photo is None:
            return None
        try:
            return self.quality_scorer.score(event.photo)
        except Exception as e:
            logger.warning(f"⚠️  Photo quality scoring failed for {event.agent_id}: {e}")
            return None

    def _persist(self, event: ActivityEvent, result: FraudResult, incidents: List[AutoAction]) -> None:
        """Append the audit record, then fold the event into the profile."""
        agent_id = event.agent_id
        try:
            self._timed_write(
                agent_id, "append_fraud_log", self.store.append_fraud_log, FraudLogRecord.from_result(event, result)
            )
        except PersistenceError as e:
            incidents.append(self._write_incident("Fraud log write", agent_id, e))

        try:
            self._timed_write(
                agent_id, "update_profile", self.profiles.update,
                agent_id, event, result, photo_quality=self._photo_quality(event),
            )
        except PersistenceError as e:
            incidents.append(self._write_incident("Behavior profile update", agent_id, e))

    def _write_incident(self, what: str, agent_id: str, error: PersistenceError) -> AutoAction:
        if error.timed_out:
            logger.warning(f"⚠️  {what} for {agent_id} still pending: {error}")
            return incident(f"{what} timed out, still pending", operation=error.operation, error=str(error))
        logger.error(f"❌ {what} failed for {agent_id}: {error}", exc_info=True)
        return incident(f"{what} failed", operation=error.operation, error=str(error))

    def _dispatch(self, agent_id: str, result: FraudResult) -> None:
        try:
            self.dispatcher.dispatch(agent_id, result.auto_actions)
        except Exception as e:
            logger.error(f"❌ Action dispatch failed for {agent_id}: {e}", exc_info=True)
