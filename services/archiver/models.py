"""
Data model for archived telemetry readings and their daily rollups
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional


def to_utc(ts: datetime) -> datetime:
    """Return ts as an aware UTC datetime (naive values are taken as UTC)"""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def start_of_day(day: date) -> datetime:
    """Midnight UTC of the given calendar date"""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


@dataclass(frozen=True)
class HistoryRecord:
    """One telemetry sample from the history collection"""

    id: str
    reading_timestamp: Optional[datetime]
    ingested_timestamp: Optional[datetime] = None
    is_online: bool = False
    current_power_w: Optional[float] = 0.0
    daily_production_kwh: Optional[float] = 0.0

    def __post_init__(self):
        # Missing measurements read as zero
        if self.current_power_w is None:
            object.__setattr__(self, "current_power_w", 0.0)
        if self.daily_production_kwh is None:
            object.__setattr__(self, "daily_production_kwh", 0.0)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> HistoryRecord:
        """Build a record from a database row"""
        power = row.get("current_power_w")
        production = row.get("daily_production_kwh")
        return cls(
            id=row["id"],
            reading_timestamp=row.get("reading_timestamp"),
            ingested_timestamp=row.get("ingested_timestamp"),
            is_online=bool(row.get("is_online")),
            current_power_w=float(power) if power is not None else None,
            daily_production_kwh=float(production) if production is not None else None,
        )

    def is_between(self, start: datetime, end: datetime) -> bool:
        """True when the reading lies strictly inside (start, end)"""
        if self.reading_timestamp is None:
            return False
        ts = to_utc(self.reading_timestamp)
        return to_utc(start) < ts < to_utc(end)


@dataclass(frozen=True)
class DailyStat:
    """Aggregate of one UTC calendar day, keyed by its ISO date"""

    id: str
    date: datetime
    daily_production_kwh: float
    average_power_w: float
    max_power_w: float


@dataclass(frozen=True)
class ArchivalWindow:
    """Half-open instant range [start, end) plus the date used for naming"""

    start: datetime
    end: datetime
    logical_date: date

    @classmethod
    def for_reference_date(cls, reference_date: date, days_old: int) -> ArchivalWindow:
        """
        Window archived for a reference date

        The start reaches back days_old days from reference_date and the
        end is the midnight following reference_date.
        """
        return cls(
            start=start_of_day(reference_date - timedelta(days=days_old)),
            end=start_of_day(reference_date + timedelta(days=1)),
            logical_date=reference_date,
        )

    @property
    def is_valid(self) -> bool:
        return to_utc(self.start) < to_utc(self.end)


SUMMARY_TEMPLATE = (
    "Archival process for GCS date {date} completed. Status: {status} "
    "Documents fetched: {fetched}, Successfully archived to GCS (CSV): {archived}, "
    "Successfully deleted from Firestore: {deleted}."
)

FETCH_ERROR_TEMPLATE = (
    "Archival for GCS date {date} failed during fetch: {error}. "
    "Fetched: 0, Archived: 0, Deleted: 0. Status: Fetch error."
)


@dataclass(frozen=True)
class RunSummary:
    """Outcome of one archival run; str() renders the report line"""

    logical_date: Optional[date]
    status: str
    fetched: int = 0
    archived: int = 0
    deleted: int = 0
    fetch_error: Optional[str] = None

    @classmethod
    def for_fetch_error(cls, logical_date: Optional[date], error: BaseException) -> RunSummary:
        return cls(logical_date=logical_date, status="Fetch error.", fetch_error=str(error))

    def __str__(self) -> str:
        if self.fetch_error is not None:
            return FETCH_ERROR_TEMPLATE.format(date=self.logical_date, error=self.fetch_error)
        return SUMMARY_TEMPLATE.format(
            date=self.logical_date,
            status=self.status,
            fetched=self.fetched,
            archived=self.archived,
            deleted=self.deleted,
        )
