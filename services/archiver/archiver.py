"""
Main archiver service logic
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from .aggregates import compute_daily_stats
from .config import ArchiverConfig
from .db import (
    ArchiveDatabase,
    DailyStatsRepository,
    DailyStatsStore,
    HistoryRepository,
    RecordStore,
)
from .models import ArchivalWindow, HistoryRecord, RunSummary
from .uploader import ArchiveUploader
from .writer import ArchiveWriter

logger = logging.getLogger(__name__)

PAYLOAD_DATE_KEY = "archiveBeforeDate"


class ArchiverService:
    """
    Moves one day of readings from the history table to blob storage

    A run fetches the window's readings, saves their daily stats in the
    background, writes the archive and, when enabled, deletes the originals.
    Every outcome is reported through the returned RunSummary.
    """

    def __init__(
        self,
        cfg: ArchiverConfig,
        history: RecordStore,
        daily_stats: DailyStatsStore,
        writer: ArchiveWriter,
    ):
        self.cfg = cfg
        self.history = history
        self.daily_stats = daily_stats
        self.writer = writer
        # Stats saves never share workers with the archive write
        self.write_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="archiver-write")
        self.stats_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="archiver-stats")
        self._pending = []
        self._on_close: list[Callable[[], None]] = []

    @classmethod
    def from_config(cls, cfg: ArchiverConfig) -> ArchiverService:
        """Build the service with Postgres stores and blob storage"""
        history_db = ArchiveDatabase(cfg)
        stats_db = ArchiveDatabase(cfg)
        service = cls(
            cfg,
            history=HistoryRepository(history_db),
            daily_stats=DailyStatsRepository(stats_db),
            writer=ArchiveWriter(ArchiveUploader(cfg), cfg.bucket_name),
        )
        service._on_close.extend([history_db.close, stats_db.close])
        return service

    def close(self) -> None:
        """Wait for background stats saves and release resources"""
        for future in self._pending:
            future.exception()
        self._pending.clear()
        self.write_executor.shutdown(wait=True)
        self.stats_executor.shutdown(wait=True)
        for callback in self._on_close:
            callback()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def archive_default(self) -> RunSummary:
        """Archive the day configured by days_old, relative to today (UTC)"""
        return self.archive_older_than(datetime.now(timezone.utc).date())

    def archive_older_than(self, reference_date: date) -> RunSummary:
        """
        Archive readings for reference_date

        The fetch window starts days_old days before reference_date and
        ends at the midnight after it.
        """
        window = ArchivalWindow.for_reference_date(reference_date, self.cfg.days_old)
        logger.info(
            f"Archiving readings for {reference_date} "
            f"(reading timestamp range [{window.start}, {window.end}))"
        )
        return self.run_window(window)

    def run_window(self, window: ArchivalWindow) -> RunSummary:
        """
        Run the archival pipeline over an explicit window

        Args:
            window: Time range to fetch and the date used for naming

        Returns:
            Summary of the run; failures are reported here, not raised
        """
        logical_date = window.logical_date
        logger.info(f"Archiving range [{window.start}, {window.end}) for archive date {logical_date}")

        if not window.is_valid:
            logger.warning(
                f"Invalid range for archival: start ({window.start}) must be before "
                f"end ({window.end}). Skipping archival for {logical_date}."
            )
            return self._finish(RunSummary(
                logical_date=logical_date,
                status="Skipped due to invalid date range (start not before end).",
            ))

        try:
            records = list(self.history.fetch_between(window.start, window.end))
        except Exception as e:
            logger.error(f"Archival for {logical_date} failed during fetch: {e}", exc_info=True)
            return self._finish(RunSummary.for_fetch_error(logical_date, e))

        self._submit_daily_stats(records)

        fetched = len(records)
        if not records:
            logger.info(f"No readings found in range to archive for {logical_date}")
            return self._finish(RunSummary(logical_date=logical_date, status="No data to archive."))

        logger.info(f"Fetched {fetched} readings to archive for {logical_date}")
        try:
            location = self.write_executor.submit(self.writer.write, records, logical_date).result()
        except Exception as e:
            logger.error(f"Failed to archive {fetched} readings for {logical_date}: {e}")
            return self._finish(RunSummary(
                logical_date=logical_date,
                status="GCS archival failed.",
                fetched=fetched,
            ))

        return self._finish(self._delete_after_archive(records, logical_date, location))

    def _delete_after_archive(
        self,
        records: list[HistoryRecord],
        logical_date: date,
        location: Optional[str],
    ) -> RunSummary:
        """Delete archived originals when deletion is enabled"""
        count = len(records)
        if not self.cfg.deletion_enabled:
            logger.info(f"Deletion is DISABLED. Keeping {count} archived readings.")
            return RunSummary(
                logical_date=logical_date,
                status="Success (Deletion Disabled).",
                fetched=count,
                archived=count,
            )

        logger.info(f"Deletion is ENABLED. Deleting {count} archived readings.")
        try:
            self.history.delete_all(records)
        except Exception as e:
            # The archive exists, only the cleanup is missing
            logger.error(f"Failed to delete {count} readings archived for {logical_date} to {location}: {e}")
            return RunSummary(
                logical_date=logical_date,
                status="Deletion failed.",
                fetched=count,
                archived=count,
            )

        logger.info(f"Deleted {count} readings archived for {logical_date}")
        return RunSummary(
            logical_date=logical_date,
            status="Success (Data Deleted).",
            fetched=count,
            archived=count,
            deleted=count,
        )

    def _submit_daily_stats(self, records: list[HistoryRecord]) -> None:
        if not records:
            logger.debug("No readings for daily stats")
            return
        self._pending = [f for f in self._pending if not f.done()]
        self._pending.append(self.stats_executor.submit(self._save_daily_stats, records))

    def _save_daily_stats(self, records: list[HistoryRecord]) -> None:
        """Compute and store daily stats; failures are only logged"""
        try:
            stats = compute_daily_stats(records)
            self.daily_stats.save_all(stats)
            logger.info(f"Saved daily stats for {len(stats)} days")
        except Exception as e:
            logger.error(f"Error saving daily stats: {e}", exc_info=True)

    @staticmethod
    def _finish(summary: RunSummary) -> RunSummary:
        logger.info(str(summary))
        return summary


def parse_archive_date(value: Any) -> date:
    """
    Parse the payload's archive date

    Raises:
        TypeError: value is not a string
        ValueError: value is not a YYYY-MM-DD date
    """
    if not isinstance(value, str):
        raise TypeError(f"expected a YYYY-MM-DD string, got {type(value).__name__}")
    return datetime.strptime(value, "%Y-%m-%d").date()


def archive_for_payload(service: ArchiverService, payload: Optional[dict[str, Any]]) -> str:
    """
    Run the archival requested by an invocation payload

    An absent or empty payload archives the default day; a valid
    archiveBeforeDate archives that day. A malformed date returns an error
    string without touching the stores.
    """
    logger.info(f"Archiver triggered with payload: {payload}")

    if not payload or PAYLOAD_DATE_KEY not in payload:
        return str(service.archive_default())

    try:
        target = parse_archive_date(payload[PAYLOAD_DATE_KEY])
    except (TypeError, ValueError) as e:
        logger.error(f"Error processing '{PAYLOAD_DATE_KEY}' from payload {payload}: {e}")
        return (
            f"Error: Invalid '{PAYLOAD_DATE_KEY}' in payload. "
            f"Use YYYY-MM-DD format. Details: {e}"
        )

    logger.info(f"Payload-driven archival for {target}")
    return str(service.archive_older_than(target))


def run_archiver(
    payload: Optional[dict[str, Any]] = None,
    cfg: Optional[ArchiverConfig] = None,
) -> str:
    """
    Run the archiver service

    Args:
        payload: Optional invocation payload
        cfg: Configuration object (loads from env if not provided)

    Returns:
        Summary line of the run
    """
    from .config import load

    if cfg is None:
        cfg = load()

    with ArchiverService.from_config(cfg) as service:
        return archive_for_payload(service, payload)
