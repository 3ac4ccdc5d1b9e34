"""
Database operations for the archiver service
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterable, Iterator, Optional, Protocol

import psycopg2
import psycopg2.extras
from psycopg2 import sql

from .config import ArchiverConfig
from .models import DailyStat, HistoryRecord

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Source of raw telemetry readings"""

    def fetch_between(self, start: datetime, end: datetime) -> Iterable[HistoryRecord]:
        ...

    def delete_all(self, records: Optional[list[HistoryRecord]]) -> int:
        ...


class DailyStatsStore(Protocol):
    """Destination for daily rollups, upserted by id"""

    def save_all(self, stats: list[DailyStat]) -> int:
        ...


class ArchiveDatabase:
    """Owns a single Postgres connection"""

    def __init__(self, cfg: ArchiverConfig):
        self.cfg = cfg
        self.conn: Optional[psycopg2.extensions.connection] = None

    def connect(self) -> None:
        """Establish database connection"""
        if self.conn is None or self.conn.closed:
            self.conn = psycopg2.connect(
                self.cfg.database_url,
                cursor_factory=psycopg2.extras.RealDictCursor
            )
            logger.info("Connected to database")

    def close(self) -> None:
        """Close database connection"""
        if self.conn and not self.conn.closed:
            self.conn.close()
            logger.info("Closed database connection")

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class HistoryRepository:
    """Reads and deletes rows of the raw history table"""

    def __init__(self, db: ArchiveDatabase):
        self.db = db
        self.table = sql.Identifier(db.cfg.history_table)

    def fetch_between(self, start: datetime, end: datetime) -> Iterator[HistoryRecord]:
        """
        Yield readings with start < reading_timestamp < end

        The whole table is scanned through a server-side cursor and filtered
        here, so no index on reading_timestamp is needed.

        Args:
            start: Exclusive lower bound
            end: Exclusive upper bound

        Yields:
            HistoryRecord for every matching row
        """
        self.db.connect()
        logger.info(f"Fetching readings with timestamp after {start} and before {end}")

        query = sql.SQL(
            """
            SELECT
                id,
                reading_timestamp,
                ingested_timestamp,
                is_online,
                current_power_w,
                daily_production_kwh
            FROM {table}
            """
        ).format(table=self.table)

        scanned = 0
        matched = 0
        try:
            with self.db.conn.cursor(name=f"history_scan_{uuid.uuid4().hex}") as cur:
                cur.itersize = self.db.cfg.fetch_batch_size
                cur.execute(query)
                for row in cur:
                    scanned += 1
                    record = HistoryRecord.from_row(row)
                    if record.is_between(start, end):
                        matched += 1
                        yield record
            self.db.conn.commit()
        except Exception as e:
            logger.error(f"Error fetching readings between {start} and {end}: {e}")
            self.db.conn.rollback()
            raise

        logger.debug(f"Scanned {scanned} rows, {matched} between {start} and {end}")

    def delete_all(self, records: Optional[list[HistoryRecord]]) -> int:
        """
        Delete the given readings by id

        Returns:
            Number of rows deleted (0 for an empty or missing list)
        """
        if not records:
            logger.debug("No readings provided for deletion")
            return 0

        self.db.connect()
        ids = [record.id for record in records]
        query = sql.SQL("DELETE FROM {table} WHERE id = ANY(%s)").format(table=self.table)

        try:
            with self.db.conn.cursor() as cur:
                cur.execute(query, (ids,))
                deleted = cur.rowcount
            self.db.conn.commit()
        except Exception as e:
            logger.error(f"Failed to delete {len(ids)} readings: {e}")
            self.db.conn.rollback()
            raise

        logger.info(f"Deleted {deleted} readings from {self.db.cfg.history_table}")
        return deleted


class DailyStatsRepository:
    """Upserts daily rollups keyed by ISO date"""

    def __init__(self, db: ArchiveDatabase):
        self.db = db
        self.table = sql.Identifier(db.cfg.daily_table)

    def save_all(self, stats: list[DailyStat]) -> int:
        if not stats:
            logger.debug("No daily stats to save")
            return 0

        self.db.connect()
        query = sql.SQL(
            """
            INSERT INTO {table} (id, date, daily_production_kwh, average_power_w, max_power_w)
            VALUES %s
            ON CONFLICT (id) DO UPDATE SET
                date = EXCLUDED.date,
                daily_production_kwh = EXCLUDED.daily_production_kwh,
                average_power_w = EXCLUDED.average_power_w,
                max_power_w = EXCLUDED.max_power_w
            """
        ).format(table=self.table)
        rows = [
            (s.id, s.date, s.daily_production_kwh, s.average_power_w, s.max_power_w)
            for s in stats
        ]

        try:
            with self.db.conn.cursor() as cur:
                psycopg2.extras.execute_values(cur, query, rows)
            self.db.conn.commit()
        except Exception:
            self.db.conn.rollback()
            raise

        logger.info(f"Saved {len(rows)} daily stats: {', '.join(s.id for s in stats)}")
        return len(rows)
