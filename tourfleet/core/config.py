import os
from datetime import time

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_time(value: str | None, default: time) -> time:
    if not value:
        return default
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tourfleet.db")

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:3000"])

# Operating day for tours.
DAY_START = _get_time(os.getenv("DAY_START"), time(8, 0))
DAY_END = _get_time(os.getenv("DAY_END"), time(22, 0))
SLOT_INTERVAL_MINUTES = int(os.getenv("SLOT_INTERVAL_MINUTES", "60"))

MIN_DURATION_HOURS = 1
MAX_DURATION_HOURS = 12
MIN_PARTY_SIZE = 1
MAX_PARTY_SIZE = 50

MIN_YEAR = 2000
MAX_YEAR = 2100

MIN_LEAD_HOURS = int(os.getenv("MIN_LEAD_HOURS", "48"))
BASELINE_DURATION_HOURS = float(os.getenv("BASELINE_DURATION_HOURS", "4"))
MAX_CALENDAR_RANGE_DAYS = int(os.getenv("MAX_CALENDAR_RANGE_DAYS", "90"))

HOLD_EXPIRATION_MINUTES = int(os.getenv("HOLD_EXPIRATION_MINUTES", "15"))
BUFFER_MINUTES = int(os.getenv("BUFFER_MINUTES", "60"))


def validate_runtime_config() -> None:
    if DAY_START >= DAY_END:
        raise RuntimeError("DAY_START must be earlier than DAY_END.")
    if SLOT_INTERVAL_MINUTES <= 0:
        raise RuntimeError("SLOT_INTERVAL_MINUTES must be positive.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at Postgres in production.")
