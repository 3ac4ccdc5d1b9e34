"""
Configuration for the archiver service
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass(slots=True)
class ArchiverConfig:
    """Configuration for the telemetry archiver service"""

    database_url: str
    blob_token: str
    blob_base_url: str
    bucket_name: str

    # Archive readings for the day this many days back
    days_old: int = 30
    # Originals are kept unless explicitly turned on
    deletion_enabled: bool = False

    # Processing options
    fetch_batch_size: int = 500  # Rows pulled per round trip while scanning
    history_table: str = "solar_readings_history"
    daily_table: str = "solar_readings_daily"


def _get_database_url() -> str:
    """Get database URL, fixing postgres:// to postgresql:// for psycopg2"""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required for archiver service")

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


def _parse_int(value: Optional[str], default: int) -> int:
    """Parse integer from environment variable"""
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse boolean from environment variable"""
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load() -> ArchiverConfig:
    """Load configuration from environment variables"""
    load_dotenv(Path(".env"), override=False)

    database_url = _get_database_url()

    blob_token = os.getenv("VERCEL_BLOB_RW_TOKEN")
    if not blob_token:
        raise RuntimeError("VERCEL_BLOB_RW_TOKEN is required for archiver service")

    blob_base_url = os.getenv("VERCEL_BLOB_BASE_URL")
    if not blob_base_url:
        raise RuntimeError("VERCEL_BLOB_BASE_URL must be set")

    bucket_name = os.getenv("ARCHIVER_BUCKET_NAME")
    if not bucket_name:
        raise RuntimeError("ARCHIVER_BUCKET_NAME is required for archiver service")

    return ArchiverConfig(
        database_url=database_url,
        blob_token=blob_token,
        blob_base_url=blob_base_url.rstrip("/"),
        bucket_name=bucket_name.strip("/"),
        days_old=_parse_int(os.getenv("ARCHIVER_DAYS_OLD"), 30),
        deletion_enabled=_parse_bool(os.getenv("ARCHIVER_DELETION_ENABLED"), False),
        fetch_batch_size=_parse_int(os.getenv("ARCHIVER_FETCH_BATCH_SIZE"), 500),
        history_table=os.getenv("ARCHIVER_HISTORY_TABLE") or "solar_readings_history",
        daily_table=os.getenv("ARCHIVER_DAILY_TABLE") or "solar_readings_daily",
    )
