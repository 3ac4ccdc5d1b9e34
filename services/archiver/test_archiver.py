"""
Unit tests for the archiver service pipeline and payload handling.
"""

import unittest
from datetime import date, datetime, timedelta, timezone
from unittest import mock

from .archiver import ArchiverService, archive_for_payload, parse_archive_date
from .config import ArchiverConfig
from .models import ArchivalWindow, HistoryRecord, RunSummary

UTC = timezone.utc
LOGICAL_DATE = date(2024, 5, 1)


def _config(deletion_enabled=False, days_old=30):
    return ArchiverConfig(
        database_url="postgresql://dummy",
        blob_token="token",
        blob_base_url="https://blob.example.com",
        bucket_name="solar-archive",
        days_old=days_old,
        deletion_enabled=deletion_enabled,
    )


def _records(n):
    ts = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    return [
        HistoryRecord(id=f"doc-{i}", reading_timestamp=ts + timedelta(minutes=i), current_power_w=100.0)
        for i in range(n)
    ]


def _window():
    return ArchivalWindow(
        start=datetime(2024, 5, 1, tzinfo=UTC),
        end=datetime(2024, 5, 2, tzinfo=UTC),
        logical_date=LOGICAL_DATE,
    )


def _summary(status, fetched, archived, deleted):
    return (
        f"Archival process for GCS date 2024-05-01 completed. Status: {status} "
        f"Documents fetched: {fetched}, Successfully archived to GCS (CSV): {archived}, "
        f"Successfully deleted from Firestore: {deleted}."
    )


class ArchiverTestCase(unittest.TestCase):

    def _service(self, records=(), deletion_enabled=False, days_old=30):
        self.history = mock.MagicMock()
        self.history.fetch_between.return_value = iter(list(records))
        self.daily_stats = mock.MagicMock()
        self.writer = mock.MagicMock()
        self.writer.write.return_value = "solar-archive/archive/2024/05/01/export.csv.gz"
        service = ArchiverService(
            _config(deletion_enabled=deletion_enabled, days_old=days_old),
            history=self.history,
            daily_stats=self.daily_stats,
            writer=self.writer,
        )
        self.addCleanup(service.close)
        return service


class TestRunWindow(ArchiverTestCase):
    """Test suite for each branch of the archival pipeline."""

    def test_invalid_range_is_skipped(self):
        """A window whose start is not before its end never queries the store."""
        service = self._service(_records(2))
        start = datetime(2024, 5, 2, tzinfo=UTC)
        for end in (start, start - timedelta(seconds=1)):
            summary = service.run_window(ArchivalWindow(start, end, LOGICAL_DATE))

            self.assertEqual((summary.fetched, summary.archived, summary.deleted), (0, 0, 0))
            self.assertIn("invalid date range", str(summary))
        self.history.fetch_between.assert_not_called()

    def test_no_data(self):
        """An empty fetch ends the run without writing."""
        service = self._service([])

        summary = service.run_window(_window())

        self.assertEqual(str(summary), _summary("No data to archive.", 0, 0, 0))
        self.writer.write.assert_not_called()
        self.history.delete_all.assert_not_called()

    def test_success_with_deletion_disabled(self):
        """Archived readings are kept when deletion is off."""
        records = _records(3)
        service = self._service(records)

        summary = service.run_window(_window())

        self.assertEqual(str(summary), _summary("Success (Deletion Disabled).", 3, 3, 0))
        self.writer.write.assert_called_once_with(records, LOGICAL_DATE)
        self.history.delete_all.assert_not_called()

    def test_success_with_deletion_enabled(self):
        """Archived readings are deleted when deletion is on."""
        records = _records(4)
        service = self._service(records, deletion_enabled=True)

        summary = service.run_window(_window())

        self.assertEqual(str(summary), _summary("Success (Data Deleted).", 4, 4, 4))
        self.history.delete_all.assert_called_once_with(records)

    def test_write_failure(self):
        """A failed write keeps the originals and reports zero archived."""
        service = self._service(_records(2), deletion_enabled=True)
        self.writer.write.side_effect = RuntimeError("bucket unavailable")

        summary = service.run_window(_window())

        self.assertEqual(str(summary), _summary("GCS archival failed.", 2, 0, 0))
        self.history.delete_all.assert_not_called()

    def test_delete_failure_keeps_archived_count(self):
        """A failed delete still reports the readings as archived."""
        service = self._service(_records(2), deletion_enabled=True)
        self.history.delete_all.side_effect = RuntimeError("permission denied")

        summary = service.run_window(_window())

        self.assertEqual(str(summary), _summary("Deletion failed.", 2, 2, 0))

    def test_fetch_failure(self):
        """A fetch error short-circuits the run with the fetch-error line."""
        service = self._service()
        self.history.fetch_between.side_effect = RuntimeError("boom")

        summary = service.run_window(_window())

        self.assertEqual(
            str(summary),
            "Archival for GCS date 2024-05-01 failed during fetch: boom. "
            "Fetched: 0, Archived: 0, Deleted: 0. Status: Fetch error.",
        )
        self.assertEqual((summary.fetched, summary.archived, summary.deleted), (0, 0, 0))
        self.writer.write.assert_not_called()
        self.daily_stats.save_all.assert_not_called()

    def test_fetch_failure_while_iterating(self):
        """Errors raised part way through the scan are treated as fetch errors."""
        service = self._service()

        def failing_scan(start, end):
            yield _records(1)[0]
            raise RuntimeError("cursor lost")

        self.history.fetch_between.side_effect = failing_scan

        summary = service.run_window(_window())

        self.assertIn("failed during fetch: cursor lost", str(summary))
        self.writer.write.assert_not_called()

    def test_daily_stats_saved(self):
        """Fetched readings are rolled up into daily stats."""
        service = self._service(_records(3))

        service.run_window(_window())
        service.close()

        self.daily_stats.save_all.assert_called_once()
        stats = self.daily_stats.save_all.call_args[0][0]
        self.assertEqual([s.id for s in stats], ["2024-05-01"])
        self.assertEqual(stats[0].average_power_w, 100.0)

    def test_daily_stats_failure_does_not_affect_run(self):
        """A failing stats save is only logged."""
        service = self._service(_records(2), deletion_enabled=True)
        self.daily_stats.save_all.side_effect = RuntimeError("stats table missing")

        summary = service.run_window(_window())
        service.close()

        self.assertEqual(str(summary), _summary("Success (Data Deleted).", 2, 2, 2))

    def test_write_runs_off_caller_thread(self):
        """The archive write is dispatched to a worker thread."""
        import threading

        caller = threading.current_thread().name
        seen = []
        service = self._service(_records(1))
        self.writer.write.side_effect = lambda records, day: seen.append(threading.current_thread().name)

        service.run_window(_window())

        self.assertEqual(len(seen), 1)
        self.assertNotEqual(seen[0], caller)

    def test_slow_stats_save_does_not_delay_next_write(self):
        """A stats save still running from an earlier run leaves the write free."""
        import threading
        import time

        release = threading.Event()
        service = self._service(_records(2))
        self.addCleanup(release.set)
        self.daily_stats.save_all.side_effect = lambda stats: release.wait(5)

        service.run_window(_window())
        self.history.fetch_between.return_value = iter(_records(2))
        started = time.monotonic()
        summary = service.run_window(_window())
        elapsed = time.monotonic() - started

        self.assertLess(elapsed, 1.0)
        self.assertEqual(str(summary), _summary("Success (Deletion Disabled).", 2, 2, 0))
        self.assertEqual(self.writer.write.call_count, 2)

    def test_mixed_naive_and_aware_bounds(self):
        """Naive bounds are read as UTC when validating the window."""
        service = self._service([])

        summary = service.run_window(ArchivalWindow(
            start=datetime(2024, 5, 2),
            end=datetime(2024, 5, 1, tzinfo=UTC),
            logical_date=LOGICAL_DATE,
        ))
        self.assertIn("invalid date range", str(summary))
        self.history.fetch_between.assert_not_called()

        summary = service.run_window(ArchivalWindow(
            start=datetime(2024, 5, 1),
            end=datetime(2024, 5, 2, tzinfo=UTC),
            logical_date=LOGICAL_DATE,
        ))
        self.assertEqual(str(summary), _summary("No data to archive.", 0, 0, 0))
        self.history.fetch_between.assert_called_once()


class TestArchiveWindows(ArchiverTestCase):
    """Test suite for the window derived from a reference date."""

    def test_archive_older_than_window(self):
        """Start reaches back days_old days, end is the following midnight."""
        service = self._service([], days_old=30)

        summary = service.archive_older_than(date(2024, 5, 31))

        self.history.fetch_between.assert_called_once_with(
            datetime(2024, 5, 1, tzinfo=UTC),
            datetime(2024, 6, 1, tzinfo=UTC),
        )
        self.assertEqual(summary.logical_date, date(2024, 5, 31))

    def test_archive_default_uses_today(self):
        """The default run uses today's UTC date as reference."""
        service = self._service([], days_old=0)
        today = datetime.now(UTC).date()

        summary = service.archive_default()

        start, end = self.history.fetch_between.call_args[0]
        self.assertEqual(end - start, timedelta(days=1))
        self.assertIn(summary.logical_date, (today, today + timedelta(days=1)))


class TestPayload(ArchiverTestCase):
    """Test suite for the invocation payload contract."""

    def test_missing_payload_runs_default(self):
        for payload in (None, {}, {"other": "x"}):
            service = mock.MagicMock()
            service.archive_default.return_value = RunSummary(LOGICAL_DATE, "No data to archive.")

            result = archive_for_payload(service, payload)

            service.archive_default.assert_called_once_with()
            service.archive_older_than.assert_not_called()
            self.assertIn("No data to archive.", result)

    def test_valid_date_runs_that_day(self):
        service = mock.MagicMock()
        service.archive_older_than.return_value = RunSummary(LOGICAL_DATE, "No data to archive.")

        result = archive_for_payload(service, {"archiveBeforeDate": "2024-05-01"})

        service.archive_older_than.assert_called_once_with(date(2024, 5, 1))
        self.assertEqual(result, _summary("No data to archive.", 0, 0, 0))

    def test_invalid_date_returns_error_without_store_access(self):
        service = self._service(_records(1))

        result = archive_for_payload(service, {"archiveBeforeDate": "not-a-date"})

        self.assertTrue(result.startswith(
            "Error: Invalid 'archiveBeforeDate' in payload. Use YYYY-MM-DD format. Details: "
        ))
        self.history.fetch_between.assert_not_called()
        self.history.delete_all.assert_not_called()

    def test_non_string_date_returns_error(self):
        service = self._service()

        for value in (20240501, None):
            result = archive_for_payload(service, {"archiveBeforeDate": value})
            self.assertIn("Invalid 'archiveBeforeDate'", result)
        self.history.fetch_between.assert_not_called()

    def test_parse_archive_date(self):
        self.assertEqual(parse_archive_date("2024-02-29"), date(2024, 2, 29))
        with self.assertRaises(ValueError):
            parse_archive_date("2023-02-29")
        with self.assertRaises(ValueError):
            parse_archive_date("01/05/2024")
        with self.assertRaises(TypeError):
            parse_archive_date(date(2024, 5, 1))


if __name__ == '__main__':
    unittest.main()
