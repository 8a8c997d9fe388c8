"""Runtime configuration with environment variable support.

All settings can be overridden with ``ROSTER_ADVISOR_``-prefixed environment
variables or a local ``.env`` file.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Roster advisor settings."""

    model_config = SettingsConfigDict(
        env_prefix="ROSTER_ADVISOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sports-data feed
    sleeper_base_url: str = "https://api.sleeper.app/v1"
    request_timeout: float = Field(default=20.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)
    backoff_factor: float = Field(default=0.5, ge=0)

    # Cache
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL; the in-memory cache is used when unset",
    )
    cache_prefix: str = "roster_advisor:"

    # Store
    store_path: str = "data/store.json"

    # Engines
    league_timezone: str = "America/New_York"
    projection_lookback: int = Field(default=6, ge=1)
    valuation_lookback: int = Field(default=4, ge=2)
    max_trade_packages: int = Field(default=10, ge=1)
    max_waiver_recommendations: int = Field(default=10, ge=1)
    default_faab_budget: int = Field(default=100, ge=0)

    # Batches
    sync_chunk_size: int = Field(default=100, ge=50, le=100)
    projection_chunk_size: int = Field(default=50, ge=50, le=100)
    backfill_week_delay: float = Field(default=1.0, ge=0)

    # Injury monitor
    status_cache_size: int = Field(default=5000, ge=1)
