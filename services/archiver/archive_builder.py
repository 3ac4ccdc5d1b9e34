"""
Archive builder - converts readings to CSV rows and names archive objects
"""

from __future__ import annotations

import csv
from datetime import date, datetime, timezone
from typing import Iterable, Optional, TextIO

from .models import HistoryRecord, to_utc

CSV_HEADER = [
    "id",
    "readingTimestamp",
    "ingestedTimestamp",
    "isOnline",
    "currentPowerW",
    "dailyProductionKWh",
]


def format_timestamp(ts: Optional[datetime]) -> str:
    """
    ISO-8601 UTC instant with a Z suffix, empty for None

    Fractional seconds are omitted when zero and otherwise printed as
    milliseconds or microseconds, whichever is exact.
    """
    if ts is None:
        return ""
    ts = to_utc(ts)
    text = ts.strftime("%Y-%m-%dT%H:%M:%S")
    if ts.microsecond and ts.microsecond % 1000 == 0:
        text += f".{ts.microsecond // 1000:03d}"
    elif ts.microsecond:
        text += f".{ts.microsecond:06d}"
    return text + "Z"


def format_row(record: HistoryRecord) -> list[str]:
    """
    Convert a reading to CSV fields in header order

    Args:
        record: Reading to convert

    Returns:
        Field strings; quoting is left to the csv writer
    """
    return [
        record.id if record.id is not None else "",
        format_timestamp(record.reading_timestamp),
        format_timestamp(record.ingested_timestamp),
        "true" if record.is_online else "false",
        repr(float(record.current_power_w)),
        repr(float(record.daily_production_kwh)),
    ]


def write_csv(records: Iterable[HistoryRecord], fh: TextIO) -> int:
    """
    Write the header and one row per reading, in input order

    Fields containing a comma, quote or newline are quoted with
    inner quotes doubled.

    Returns:
        Number of data rows written
    """
    writer = csv.writer(fh, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    count = 0
    for record in records:
        writer.writerow(format_row(record))
        count += 1
    return count


def build_archive_key(bucket: str, logical_date: date, written_at: Optional[datetime] = None) -> str:
    """
    Build the object key for an archive

    Layout: <bucket>/archive/YYYY/MM/DD/firestore-export-YYYY-MM-DD-HHMMSS-ffffff.csv.gz
    The write-time suffix keeps retried runs from colliding.
    """
    if written_at is None:
        written_at = datetime.now(timezone.utc)
    suffix = to_utc(written_at).strftime("%H%M%S-%f")
    archive_dir = logical_date.strftime("archive/%Y/%m/%d")
    filename = f"firestore-export-{logical_date.isoformat()}-{suffix}.csv.gz"
    return f"{bucket}/{archive_dir}/{filename}"
