"""
FastAPI REST API for field-agent fraud detection.

Architecture:
- POST /detect: Score one agent activity
- GET /health: Store reachability and detector list
- GET /metrics: Performance metrics
- Engine: FraudDetectionOrchestrator over a DuckDB fraud store

The engine never raises; malformed JSON is rejected with 422 by FastAPI
before it reaches the engine.
"""
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import time
import logging
from typing import Dict, Optional

from src.api.models import (
    ActivityRequest,
    DetectionResponse,
    HealthCheckResponse,
    MetricsResponse,
    ErrorResponse
)
from src.api.config import settings
from src.engine.orchestrator import FraudDetectionOrchestrator
from src.storage.duckdb_store import DuckDBFraudStore

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global instances (initialized at startup)
store: Optional[DuckDBFraudStore] = None
engine: Optional[FraudDetectionOrchestrator] = None
startup_time: Optional[float] = None


def build_engine(fraud_store: DuckDBFraudStore) -> FraudDetectionOrchestrator:
    return FraudDetectionOrchestrator(
        fraud_store,
        timezone_name=settings.AGENT_TIMEZONE,
        history_window_hours=settings.HISTORY_WINDOW_HOURS,
        store_timeout_seconds=settings.STORE_TIMEOUT_SECONDS,
        smoothing_alpha=settings.PROFILE_SMOOTHING_ALPHA,
        outlier_clamp=settings.PROFILE_OUTLIER_CLAMP,
        max_common_locations=settings.MAX_COMMON_LOCATIONS,
        collusion_radius_meters=settings.COLLUSION_RADIUS_METERS,
        collusion_window_minutes=settings.COLLUSION_WINDOW_MINUTES,
        max_latency_ms=settings.MAX_LATENCY_MS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: open the DuckDB store, build the engine, verify health.
    Shutdown: stop the engine, close the store.
    """
    global store, engine, startup_time

    logger.info("="*70)
    logger.info("🚀 STARTING FIELD AGENT FRAUD DETECTION API")
    logger.info("="*70)

    startup_time = time.time()

    try:
        store = DuckDBFraudStore(settings.DUCKDB_PATH)
        engine = build_engine(store)

        health = engine.health_check()
        if health["status"] != "healthy":
            raise RuntimeError(f"Service unhealthy: {health}")

        logger.info("✅ Health check passed")
        logger.info(f"🎯 API ready at http://{settings.API_HOST}:{settings.API_PORT}")
        logger.info("="*70)

        yield

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    finally:
        logger.info("Shutting down API...")
        if engine:
            if not engine.flush(timeout=settings.STORE_TIMEOUT_SECONDS):
                logger.warning("⚠️  Store writes still pending at shutdown")
            engine.close()
        if store:
            store.close()
        logger.info("✅ Shutdown complete")


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=(
        "Fraud detection and geolocation-integrity checks for field agents\n\n"
        "Signals:\n"
        "- Location (accuracy, impossible travel, precision, repeats, unusual place)\n"
        "- Time (working hours, weekends, frequency)\n"
        "- Photo (EXIF, capture time, duplicates)\n"
        "- Behavior, sales and collusion patterns\n"
    ),
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all uncaught exceptions gracefully."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred. Please try again.",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.post(
    "/detect",
    response_model=DetectionResponse,
    status_code=status.HTTP_200_OK,
    summary="Detect Fraud for an Agent Activity",
    responses={
        200: {"description": "Activity analysed (including rejected or degraded results)"},
        500: {"model": ErrorResponse, "description": "Unexpected server error"}
    }
)
def detect_activity(activity: ActivityRequest) -> DetectionResponse:
    """
    Score one activity. Runs in the worker threadpool since detection
    blocks on the store.
    """
    start_time = time.time()
    result = engine.detect(activity.to_event())
    latency_ms = (time.time() - start_time) * 1000

    return DetectionResponse(
        agent_id=activity.agent_id,
        latency_ms=latency_ms,
        **result.model_dump()
    )


@app.get(
    "/health",
    response_model=HealthCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Health Check"
)
async def health_check() -> HealthCheckResponse:
    try:
        health = engine.health_check()
        health["uptime_seconds"] = time.time() - startup_time
        return HealthCheckResponse(**health)

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return HealthCheckResponse(
            status="down",
            store_ok=False,
            uptime_seconds=time.time() - startup_time,
        )


@app.get(
    "/metrics",
    response_model=MetricsResponse,
    status_code=status.HTTP_200_OK,
    summary="Performance Metrics"
)
async def get_metrics() -> MetricsResponse:
    return MetricsResponse(**engine.get_metrics())


@app.get(
    "/",
    summary="Root Endpoint",
    description="Welcome message with API information"
)
async def root() -> Dict:
    return {
        "service": settings.API_TITLE,
        "version": settings.API_VERSION,
        "status": "running",
        "uptime_seconds": time.time() - startup_time,
        "endpoints": {
            "detect": "POST /detect - Score an agent activity",
            "health": "GET /health - Health check",
            "metrics": "GET /metrics - Performance metrics",
            "docs": "GET /docs - Interactive API documentation"
        },
        "timezone": settings.AGENT_TIMEZONE
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
