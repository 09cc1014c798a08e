from __future__ import annotations

import os
from dataclasses import dataclass

from packages.core.reminders.runner import DEFAULT_DISPATCH_DELAY_SECONDS


def _default_db_path() -> str:
    data_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "data"))
    return os.path.join(data_dir, "expiry.db")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class AppConfig:
    db_path: str
    scheduler_enabled: bool
    scheduler_mode: str
    interval_minutes: int
    dispatch_delay_seconds: float
    email_provider: str


def load_config() -> AppConfig:
    return AppConfig(
        db_path=os.getenv("EXPIRY_REMINDERS_DB_PATH", _default_db_path()),
        scheduler_enabled=_env_bool("EXPIRY_REMINDERS_SCHEDULER_ENABLED", True),
        scheduler_mode=os.getenv("EXPIRY_REMINDERS_SCHEDULER_MODE", "interval").lower(),
        interval_minutes=int(os.getenv("EXPIRY_REMINDERS_INTERVAL_MINUTES", "60")),
        dispatch_delay_seconds=float(
            os.getenv(
                "EXPIRY_REMINDERS_DISPATCH_DELAY_SECONDS", str(DEFAULT_DISPATCH_DELAY_SECONDS)
            )
        ),
        email_provider=os.getenv("EMAIL_PROVIDER", "brevo").lower(),
    )
