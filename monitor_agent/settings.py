"""Monitoring engine configuration.

Loads from environment variables and .env file.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class MonitorSettings(BaseSettings):
    """Configuration for the monitoring engine and its API.

    All values can be set via environment variables or .env file.
    """

    # ----- Data store (Supabase PostgREST) -----
    supabase_url: str = Field(
        default="",
        description="Supabase project URL. Empty selects the in-memory store.",
    )
    supabase_service_key: str = Field(
        default="",
        description="Supabase service role key.",
    )

    # ----- Scan cycle -----
    sale_event_window: int = Field(
        default=200,
        ge=1,
        le=1000,
        description="Number of most recent sale events fetched per scan.",
    )
    scan_deadline_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Overall deadline for one scan cycle.",
    )
    auto_resolve_batch_size: int = Field(
        default=2,
        ge=0,
        description="Maximum issues auto-resolved per scan cycle.",
    )
    auto_resolve_min_age_hours: float = Field(
        default=24.0,
        gt=0,
        description="Minimum age before a low-severity issue may be auto-resolved.",
    )
    thresholds_path: str | None = Field(
        default=None,
        description="Optional YAML file overriding detection thresholds.",
    )

    # ----- Scheduler -----
    scheduler_enabled: bool = Field(
        default=False,
        description="Run scans on a fixed interval in the API process.",
    )
    scan_interval_seconds: int = Field(
        default=300,
        ge=10,
        description="Interval between scheduled scans.",
    )

    # ----- Insights / health -----
    low_stock_threshold: int = Field(
        default=50,
        ge=0,
        description="Active products below this stock level count as low stock.",
    )
    upsell_threshold: Decimal = Field(
        default=Decimal("50.00"),
        ge=0,
        description="Average order value below which an upsell note is emitted.",
    )

    # ----- Server -----
    monitor_host: str = Field(default="0.0.0.0", description="Bind host.")
    monitor_port: int = Field(default=8002, description="Bind port.")
    monitor_dev_mode: bool = Field(
        default=False,
        description="Dev mode: enables CORS wildcard and error details.",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> MonitorSettings:
    """Get cached settings singleton."""
    return MonitorSettings()
