"""
Settings for FlightSurety services.

Values are read from the environment (or a local .env file).
Amounts are expressed in wei (1 unit = 10**18 wei).
"""

import functools

from pydantic_settings import BaseSettings, SettingsConfigDict

WEI_PER_UNIT = 10**18


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Infrastructure
    DATABASE_URL: str = "sqlite:///./flightsurety.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Ledger economics
    MIN_AIRLINE_FUND: int = 10 * WEI_PER_UNIT
    MAX_INSURANCE: int = 1 * WEI_PER_UNIT

    # Orchestration collaborator (the only principal expected to push flight status)
    ORCHESTRATOR_ADDRESS: str = "0x0000000000000000000000000000000000000a11"

    # Streams
    LEDGER_EVENTS_STREAM: str = "flightsurety:ledger:events"
    ORACLE_STATUS_STREAM: str = "flightsurety:oracle:status"
    PAYOUTS_STREAM: str = "flightsurety:payouts"
    LEDGER_GROUP_NAME: str = "ledger"
    STREAM_MAX_LEN: int = 100000

    # Worker tunables
    LEDGER_BATCH_SIZE: int = 10
    LEDGER_BLOCK_MS: int = 5000
    LEDGER_RECLAIM_INTERVAL: int = 60
    LEDGER_RECLAIM_IDLE_MS: int = 60000

    # Outbox relay
    OUTBOX_BATCH_SIZE: int = 100
    OUTBOX_POLL_INTERVAL_EMPTY: float = 5.0
    OUTBOX_POLL_INTERVAL_BUSY: float = 0.1


@functools.lru_cache()
def get_settings() -> Settings:
    """Get settings (cached)."""
    return Settings()
