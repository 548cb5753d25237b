"""Runtime settings read from the environment.

Settings only affect the service layer and the command line (where the
database lives, which timezone defines "today", logging). The calculation
functions take everything they need as arguments.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_DATABASE_URL = "sqlite:///late_fee_data.sqlite3"
DEFAULT_TIMEZONE = "America/Santo_Domingo"


def _flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    reject_overpayment: bool = False


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from ``LATE_FEE_*`` environment variables."""
    env = os.environ if environ is None else environ
    log_format = env.get("LATE_FEE_LOG_FORMAT", "json").lower()
    if log_format not in ("json", "text"):
        raise ValueError(f"LATE_FEE_LOG_FORMAT must be 'json' or 'text'; got {log_format}")
    return Settings(
        database_url=env.get("LATE_FEE_DATABASE_URL") or DEFAULT_DATABASE_URL,
        timezone=env.get("LATE_FEE_TIMEZONE") or DEFAULT_TIMEZONE,
        log_level=env.get("LATE_FEE_LOG_LEVEL", "INFO").upper(),
        log_format=log_format,
        reject_overpayment=_flag(env.get("LATE_FEE_REJECT_OVERPAYMENT")),
    )
