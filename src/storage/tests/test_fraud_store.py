"""
FraudStore contract tests, run against both implementations.

The DuckDB store runs on an in-memory database.
"""

from datetime import timedelta

import pytest

from src.core.errors import PersistenceError
from src.core.schema import (
    ActivityKind,
    BehaviorProfile,
    CommonLocation,
    Coordinate,
    Flag,
    FlagCategory,
    FraudLogRecord,
    FraudResult,
    RiskLevel,
    Severity,
    WorkingHours,
)
from src.storage.duckdb_store import DuckDBFraudStore
from src.storage.memory_store import InMemoryFraudStore

LOW_RESULT = FraudResult(risk_level=RiskLevel.LOW, risk_score=0.0)


@pytest.fixture(params=["memory", "duckdb"])
def store(request):
    if request.param == "memory":
        yield InMemoryFraudStore(customers=["CUST_1"])
    else:
        duck = DuckDBFraudStore(":memory:")
        duck.register_customers(["CUST_1"])
        yield duck
        duck.close()


def log(store, event, result=LOW_RESULT):
    store.append_fraud_log(FraudLogRecord.from_result(event, result))


# ============================================================================
# PROFILES
# ============================================================================

@pytest.mark.integration
def test_profile_roundtrip(store, weekday_morning):
    profile = BehaviorProfile(
        agent_id="AGENT_001",
        average_visit_duration=1500.0,
        working_hours=WorkingHours(start=7, end=19),
        common_locations=[CommonLocation(latitude=-25.8627, longitude=28.1871, frequency=3)],
        suspicious_activity_count=2,
        current_day="2026-03-02",
        current_day_visits=4,
        last_updated=weekday_morning,
    )

    assert store.get_profile("AGENT_001") is None
    store.save_profile(profile)

    assert store.get_profile("AGENT_001") == profile


@pytest.mark.integration
def test_create_if_absent_keeps_existing(store):
    first = store.create_profile_if_absent(BehaviorProfile(agent_id="AGENT_001", average_sale_amount=300.0))
    second = store.create_profile_if_absent(BehaviorProfile(agent_id="AGENT_001"))

    assert first.average_sale_amount == 300.0
    assert second.average_sale_amount == 300.0


@pytest.mark.integration
def test_save_profile_upserts(store):
    store.save_profile(BehaviorProfile(agent_id="AGENT_001"))
    store.save_profile(BehaviorProfile(agent_id="AGENT_001", average_visits_per_day=12.0))

    assert store.get_profile("AGENT_001").average_visits_per_day == 12.0


# ============================================================================
# ACTIVITY LOG
# ============================================================================

@pytest.mark.integration
def test_location_history_window_is_half_open_and_sorted(store, make_event, weekday_morning):
    for minutes in (30, 90, 10, 0):
        log(store, make_event(timestamp=weekday_morning - timedelta(minutes=minutes),
                              location=(-25.8627 + minutes / 1000, 28.1871)))
    log(store, make_event(agent_id="AGENT_002", timestamp=weekday_morning - timedelta(minutes=5)))
    log(store, make_event(timestamp=weekday_morning - timedelta(minutes=20), location=None))

    history = store.location_history("AGENT_001", weekday_morning - timedelta(hours=1), weekday_morning)

    assert [s.timestamp for s in history] == [
        weekday_morning - timedelta(minutes=30),
        weekday_morning - timedelta(minutes=10),
    ]
    assert history[0].coordinate.latitude == pytest.approx(-25.8627 + 0.03)


@pytest.mark.integration
def test_count_activities(store, make_event, weekday_morning):
    for minutes in (5, 15, 25):
        log(store, make_event(timestamp=weekday_morning - timedelta(minutes=minutes), customer_id="CUST_1"))
    log(store, make_event(timestamp=weekday_morning - timedelta(minutes=35), customer_id="CUST_2"))
    log(store, make_event(timestamp=weekday_morning, customer_id="CUST_1"))

    since = weekday_morning - timedelta(hours=1)

    assert store.count_activities("AGENT_001", since, weekday_morning) == 4
    assert store.count_activities("AGENT_001", since, weekday_morning, customer_id="CUST_1") == 3
    assert store.count_activities("AGENT_404", since, weekday_morning) == 0


@pytest.mark.integration
def test_nearby_agents(store, make_event, weekday_morning):
    log(store, make_event(agent_id="AGENT_002", location=(-25.8627, 28.1875)))   # ~40 m
    log(store, make_event(agent_id="AGENT_003", location=(-25.8630, 28.1871)))   # ~33 m
    log(store, make_event(agent_id="AGENT_003", location=(-25.8631, 28.1871)))
    log(store, make_event(agent_id="AGENT_004", location=(-25.8700, 28.1871)))   # ~800 m
    log(store, make_event(agent_id="AGENT_005", location=(-25.8627, 28.1871),
                          timestamp=weekday_morning - timedelta(hours=3)))
    log(store, make_event(agent_id="AGENT_001", location=(-25.8627, 28.1871)))

    nearby = store.nearby_agents(
        Coordinate(latitude=-25.8627, longitude=28.1871), 100.0,
        weekday_morning - timedelta(hours=1), weekday_morning + timedelta(hours=1),
        exclude_agent_id="AGENT_001",
    )

    assert nearby == ["AGENT_002", "AGENT_003"]


@pytest.mark.integration
def test_customer_lookup(store):
    assert store.customer_exists("CUST_1")
    assert not store.customer_exists("GHOST")


@pytest.mark.integration
def test_fraud_log_accepts_flagged_records(store, make_event, weekday_morning):
    flagged = FraudResult(
        risk_level=RiskLevel.MEDIUM,
        risk_score=45.0,
        flags=[Flag(category=FlagCategory.TIME, severity=Severity.MEDIUM, description="x", confidence=0.6)],
    )
    log(store, make_event(kind=ActivityKind.SALE, amount=120.0, customer_id="CUST_1"), flagged)

    window = (weekday_morning - timedelta(minutes=1), weekday_morning + timedelta(minutes=1))
    assert store.count_activities("AGENT_001", *window, customer_id="CUST_1") == 1
    assert store.ping()


# ============================================================================
# DUCKDB SPECIFICS
# ============================================================================

@pytest.mark.integration
def test_duckdb_errors_surface_as_persistence_error():
    duck = DuckDBFraudStore(":memory:")
    duck.close()

    with pytest.raises(PersistenceError):
        duck.get_profile("AGENT_001")
    assert duck.ping() is False


@pytest.mark.integration
def test_duckdb_file_store_persists(tmp_path, make_event):
    path = str(tmp_path / "db" / "fraud.duckdb")
    first = DuckDBFraudStore(path)
    first.save_profile(BehaviorProfile(agent_id="AGENT_001", average_sale_amount=210.0))
    log(first, make_event())
    first.close()

    reopened = DuckDBFraudStore(path)
    try:
        assert reopened.get_profile("AGENT_001").average_sale_amount == 210.0
        assert len(reopened.location_history(
            "AGENT_001",
            make_event().timestamp - timedelta(hours=1),
            make_event().timestamp + timedelta(hours=1),
        )) == 1
    finally:
        reopened.close()


@pytest.mark.unit
def test_memory_store_records_helper(make_event):
    store = InMemoryFraudStore()
    log(store, make_event())

    assert len(store.records("AGENT_001")) == 1
    assert store.records("AGENT_404") == []
