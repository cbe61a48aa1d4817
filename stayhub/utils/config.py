"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    admin_token: str | None
    session_ttl_minutes: int
    default_commission_percentage: Decimal
    base_occupancy_per_room: int
    b2b_advance_ratio: Decimal
    refund_window_days: int
    store_retry_attempts: int
    store_retry_base_delay_seconds: float
    seed_demo_data: bool
    confirmation_prefix: str
    b2b_confirmation_prefix: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "StayHub Booking API"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/stayhub.db")),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        session_ttl_minutes=int(os.getenv("SESSION_TTL_MINUTES", "480")),
        default_commission_percentage=Decimal(os.getenv("DEFAULT_COMMISSION_PERCENTAGE", "10")),
        base_occupancy_per_room=int(os.getenv("BASE_OCCUPANCY_PER_ROOM", "2")),
        b2b_advance_ratio=Decimal(os.getenv("B2B_ADVANCE_RATIO", "0.5")),
        refund_window_days=int(os.getenv("REFUND_WINDOW_DAYS", "3")),
        store_retry_attempts=int(os.getenv("STORE_RETRY_ATTEMPTS", "3")),
        store_retry_base_delay_seconds=float(os.getenv("STORE_RETRY_BASE_DELAY_SECONDS", "0.05")),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        confirmation_prefix=os.getenv("CONFIRMATION_PREFIX", "BK"),
        b2b_confirmation_prefix=os.getenv("B2B_CONFIRMATION_PREFIX", "B2BREQ"),
    )
