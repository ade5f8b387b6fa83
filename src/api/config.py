"""
Configuration management using Pydantic Settings.
Loads from environment variables or .env file.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Engine and API configuration loaded from environment variables.

    Usage:
        # .env file
        DUCKDB_PATH=data/fraud_engine.duckdb
        AGENT_TIMEZONE=Africa/Johannesburg
        API_PORT=8000

        # In code
        from src.api.config import settings
        print(settings.DUCKDB_PATH)
    """
    # Persistence
    DUCKDB_PATH: str = "data/fraud_engine.duckdb"  # ":memory:" for throwaway runs
    STORE_TIMEOUT_SECONDS: float = 2.0

    # Detection windows
    HISTORY_WINDOW_HOURS: int = 24
    AGENT_TIMEZONE: str = "UTC"  # IANA name, drives working hours / weekends / "today"
    COLLUSION_RADIUS_METERS: float = 100.0
    COLLUSION_WINDOW_MINUTES: int = 60

    # Behavior baseline
    PROFILE_SMOOTHING_ALPHA: float = 0.1
    PROFILE_OUTLIER_CLAMP: float = 3.0
    MAX_COMMON_LOCATIONS: int = 50

    # Performance
    MAX_LATENCY_MS: float = 500.0  # SLA target

    # API settings
    API_TITLE: str = "Field Agent Fraud Detection API"
    API_VERSION: str = "1.0.0"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
