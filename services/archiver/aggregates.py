"""
Daily rollups of telemetry readings

Each UTC calendar day present in a batch of readings reduces to one
DailyStat:
- daily_production_kwh: maximum of the day's cumulative production values
- average_power_w: mean of current_power_w over the day's readings
- max_power_w: maximum current_power_w of the day
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List

import pandas as pd

from .models import DailyStat, HistoryRecord, start_of_day, to_utc

logger = logging.getLogger(__name__)


def build_daily_stat(day: date, readings: pd.DataFrame) -> DailyStat:
    """
    Reduce one day's readings to a DailyStat.

    Args:
        day: Calendar date of the group
        readings: DataFrame with columns [current_power_w, daily_production_kwh]

    Returns:
        DailyStat keyed by the ISO date
    """
    # Production values are cumulative-to-date, so the max is the day's total
    return DailyStat(
        id=day.isoformat(),
        date=start_of_day(day),
        daily_production_kwh=float(readings["daily_production_kwh"].max()),
        average_power_w=float(readings["current_power_w"].mean()),
        max_power_w=float(readings["current_power_w"].max()),
    )


def compute_daily_stats(records: Iterable[HistoryRecord]) -> List[DailyStat]:
    """
    Group readings by UTC calendar day and reduce each group.

    Args:
        records: Readings to aggregate

    Returns:
        One DailyStat per day, ordered by date
    """
    rows = [
        {
            "day": to_utc(r.reading_timestamp).date(),
            "current_power_w": float(r.current_power_w),
            "daily_production_kwh": float(r.daily_production_kwh),
        }
        for r in records
        if r.reading_timestamp is not None
    ]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    stats = [build_daily_stat(day, group) for day, group in df.groupby("day", sort=True)]

    logger.info(f"Calculated daily stats for {len(stats)} days from {len(rows)} readings")
    return stats
