"""
DuckDB-backed FraudStore.

Tables:
- behavior_profiles  one row per agent (upserted)
- fraud_event_log    append-only audit log, also read back as activity history
- customers          customer directory used to resolve sale references

Timestamps are stored as naive UTC TIMESTAMPs and handed back tz-aware.
One connection is shared behind a lock; DuckDB connections are not safe
for concurrent use from several threads.
"""

import json
import logging
import math
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import duckdb
import pandas as pd

from src.core.errors import PersistenceError
from src.core.schema import (
    BehaviorProfile,
    CommonLocation,
    Coordinate,
    FraudLogRecord,
    LocationSample,
    LocationSource,
    WorkingHours,
)
from src.geo.geo_math import EARTH_RADIUS_METERS, distance_meters
from src.storage.base import FraudStore

logger = logging.getLogger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS behavior_profiles (
        agent_id VARCHAR PRIMARY KEY,
        average_visit_duration DOUBLE,
        working_hours_start INTEGER,
        working_hours_end INTEGER,
        average_visits_per_day DOUBLE,
        average_sale_amount DOUBLE,
        common_locations VARCHAR,
        average_photo_quality DOUBLE,
        suspicious_activity_count INTEGER,
        current_day VARCHAR,
        current_day_visits INTEGER,
        last_updated TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fraud_event_log (
        agent_id VARCHAR NOT NULL,
        activity_kind VARCHAR NOT NULL,
        event_timestamp TIMESTAMP NOT NULL,
        latitude DOUBLE,
        longitude DOUBLE,
        accuracy DOUBLE,
        location_source VARCHAR,
        customer_id VARCHAR,
        amount DOUBLE,
        risk_level VARCHAR NOT NULL,
        risk_score DOUBLE NOT NULL,
        flags VARCHAR,
        metadata VARCHAR,
        recorded_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_fraud_log_agent_ts ON fraud_event_log (agent_id, event_timestamp)",
    "CREATE TABLE IF NOT EXISTS customers (customer_id VARCHAR PRIMARY KEY)",
]

PROFILE_COLUMNS = (
    "agent_id, average_visit_duration, working_hours_start, working_hours_end, "
    "average_visits_per_day, average_sale_amount, common_locations, average_photo_quality, "
    "suspicious_activity_count, current_day, current_day_visits, last_updated"
)


def _to_db(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _from_db(ts) -> Optional[datetime]:
    if ts is None or pd.isna(ts):
        return None
    if isinstance(ts, pd.Timestamp):
        ts = ts.to_pydatetime()
    return ts.replace(tzinfo=timezone.utc)


class DuckDBFraudStore(FraudStore):
    """
    Usage:
        store = DuckDBFraudStore("data/fraud_engine.duckdb")
        store.register_customers(["CUST_001", "CUST_002"])
    """

    def __init__(self, duckdb_path: str = ":memory:"):
        if duckdb_path != ":memory:":
            Path(duckdb_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        try:
            self.con = duckdb.connect(duckdb_path)
            for statement in SCHEMA:
                self.con.execute(statement)
        except duckdb.Error as e:
            raise PersistenceError("connect", str(e)) from e

        logger.info(f"DuckDB fraud store ready at {duckdb_path}")

    def _run(self, operation: str, query: str, params: Optional[list] = None, fetch: bool = False):
        try:
            with self._lock:
                cursor = self.con.execute(query, params or [])
                return cursor.fetchone() if fetch else None
        except duckdb.Error as e:
            raise PersistenceError(operation, str(e)) from e

    def _frame(self, operation: str, query: str, params: Optional[list] = None) -> pd.DataFrame:
        try:
            with self._lock:
                return self.con.execute(query, params or []).df()
        except duckdb.Error as e:
            raise PersistenceError(operation, str(e)) from e

    def close(self):
        with self._lock:
            self.con.close()

    # --- customers ---

    def register_customers(self, customer_ids: Iterable[str]) -> None:
        for customer_id in customer_ids:
            self._run(
                "register_customer",
                "INSERT INTO customers VALUES (?) ON CONFLICT DO NOTHING",
                [customer_id],
            )

    def customer_exists(self, customer_id: str) -> bool:
        row = self._run(
            "customer_exists",
            "SELECT 1 FROM customers WHERE customer_id = ?",
            [customer_id],
            fetch=True,
        )
        return row is not None

    # --- profiles ---

    @staticmethod
    def _profile_params(profile: BehaviorProfile) -> list:
        return [
            profile.agent_id,
            profile.average_visit_duration,
            profile.working_hours.start,
            profile.working_hours.end,
            profile.average_visits_per_day,
            profile.average_sale_amount,
            json.dumps([c.model_dump() for c in profile.common_locations]),
            profile.average_photo_quality,
            profile.suspicious_activity_count,
            profile.current_day,
            profile.current_day_visits,
            _to_db(profile.last_updated),
        ]

    def get_profile(self, agent_id: str) -> Optional[BehaviorProfile]:
        df = self._frame(
            "get_profile",
            f"SELECT {PROFILE_COLUMNS} FROM behavior_profiles WHERE agent_id = ?",
            [agent_id],
        )
        if df.empty:
            return None

        row = df.iloc[0]
        return BehaviorProfile(
            agent_id=row["agent_id"],
            average_visit_duration=float(row["average_visit_duration"]),
            working_hours=WorkingHours(
                start=int(row["working_hours_start"]),
                end=int(row["working_hours_end"]),
            ),
            average_visits_per_day=float(row["average_visits_per_day"]),
            average_sale_amount=float(row["average_sale_amount"]),
            common_locations=[CommonLocation(**c) for c in json.loads(row["common_locations"] or "[]")],
            average_photo_quality=float(row["average_photo_quality"]),
            suspicious_activity_count=int(row["suspicious_activity_count"]),
            current_day=row["current_day"] if isinstance(row["current_day"], str) else None,
            current_day_visits=int(row["current_day_visits"]),
            last_updated=_from_db(row["last_updated"]),
        )

    def create_profile_if_absent(self, profile: BehaviorProfile) -> BehaviorProfile:
        placeholders = ", ".join(["?"] * 12)
        self._run(
            "create_profile",
            f"INSERT INTO behavior_profiles ({PROFILE_COLUMNS}) VALUES ({placeholders}) "
            "ON CONFLICT (agent_id) DO NOTHING",
            self._profile_params(profile),
        )
        stored = self.get_profile(profile.agent_id)
        if stored is None:
            raise PersistenceError("create_profile", f"profile for {profile.agent_id} not readable after insert")
        return stored

    def save_profile(self, profile: BehaviorProfile) -> None:
        placeholders = ", ".join(["?"] * 12)
        self._run(
            "save_profile",
            f"INSERT OR REPLACE INTO behavior_profiles ({PROFILE_COLUMNS}) VALUES ({placeholders})",
            self._profile_params(profile),
        )

    # --- activity log ---

    def location_history(self, agent_id: str, since: datetime, until: datetime) -> List[LocationSample]:
        df = self._frame(
            "location_history",
            """
            SELECT latitude, longitude, accuracy, location_source, event_timestamp
            FROM fraud_event_log
            WHERE agent_id = ?
              AND event_timestamp >= ? AND event_timestamp < ?
              AND latitude IS NOT NULL AND longitude IS NOT NULL
            ORDER BY event_timestamp
            """,
            [agent_id, _to_db(since), _to_db(until)],
        )

        return [
            LocationSample(
                coordinate=Coordinate(latitude=row.latitude, longitude=row.longitude),
                accuracy=0.0 if pd.isna(row.accuracy) else row.accuracy,
                timestamp=_from_db(row.event_timestamp),
                source=LocationSource(row.location_source or LocationSource.GPS.value),
            )
            for row in df.itertuples(index=False)
        ]

    def count_activities(
        self,
        agent_id: str,
        since: datetime,
        until: datetime,
        customer_id: Optional[str] = None
    ) -> int:
        query = """
            SELECT COUNT(*) FROM fraud_event_log
            WHERE agent_id = ? AND event_timestamp >= ? AND event_timestamp < ?
        """
        params = [agent_id, _to_db(since), _to_db(until)]
        if customer_id is not None:
            query += " AND customer_id = ?"
            params.append(customer_id)

        return int(self._run("count_activities", query, params, fetch=True)[0])

    def nearby_agents(
        self,
        point: Coordinate,
        radius_meters: float,
        since: datetime,
        until: datetime,
        exclude_agent_id: str
    ) -> List[str]:
        # Bounding-box prefilter in SQL, exact Haversine in Python
        lat_delta = math.degrees(radius_meters / EARTH_RADIUS_METERS)
        lon_delta = lat_delta / max(math.cos(math.radians(point.latitude)), 1e-6)

        df = self._frame(
            "nearby_agents",
            """
            SELECT agent_id, latitude, longitude
            FROM fraud_event_log
            WHERE agent_id <> ?
              AND event_timestamp >= ? AND event_timestamp < ?
              AND latitude BETWEEN ? AND ?
              AND longitude BETWEEN ? AND ?
            """,
            [
                exclude_agent_id, _to_db(since), _to_db(until),
                point.latitude - lat_delta, point.latitude + lat_delta,
                point.longitude - lon_delta, point.longitude + lon_delta,
            ],
        )
        if df.empty:
            return []

        within = df[[
            distance_meters(point, Coordinate(latitude=lat, longitude=lon)) <= radius_meters
            for lat, lon in zip(df["latitude"], df["longitude"])
        ]]
        return sorted(within["agent_id"].unique().tolist())

    def append_fraud_log(self, record: FraudLogRecord) -> None:
        location = record.location
        self._run(
            "append_fraud_log",
            """
            INSERT INTO fraud_event_log (
                agent_id, activity_kind, event_timestamp, latitude, longitude, accuracy,
                location_source, customer_id, amount, risk_level, risk_score, flags, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                record.agent_id,
                record.kind.value,
                _to_db(record.event_timestamp),
                location.latitude if location else None,
                location.longitude if location else None,
                location.accuracy if location else None,
                location.source.value if location else None,
                record.customer_id,
                record.amount,
                record.risk_level.value,
                record.risk_score,
                json.dumps([f.model_dump(mode="json") for f in record.flags]),
                json.dumps(record.metadata, default=str),
            ],
        )

    def ping(self) -> bool:
        try:
            self._run("ping", "SELECT 1", fetch=True)
            return True
        except PersistenceError as e:
            logger.warning(f"⚠️  Store ping failed: {e}")
            return False
