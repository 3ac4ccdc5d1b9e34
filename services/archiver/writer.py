"""
Writes batches of readings to gzipped CSV archives in blob storage
"""

from __future__ import annotations

import gzip
import io
import logging
import threading
from datetime import date
from typing import Optional, Sequence

from .archive_builder import build_archive_key, write_csv
from .models import HistoryRecord
from .uploader import ArchiveUploader

logger = logging.getLogger(__name__)

ARCHIVE_CONTENT_TYPE = "application/gzip"


class ArchiveWriteError(RuntimeError):
    """Writing or committing an archive failed"""

    def __init__(self, key: str, cause: Optional[BaseException] = None):
        message = f"Archive write failed for path {key}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.key = key


class ArchiveWriter:
    """Serializes readings to CSV, gzips them and commits the object"""

    def __init__(self, uploader: ArchiveUploader, bucket_name: str):
        self.uploader = uploader
        self.bucket_name = bucket_name

    def write(self, records: Sequence[HistoryRecord], logical_date: date) -> Optional[str]:
        """
        Archive records under the logical date's folder

        Args:
            records: Readings to archive, written in order
            logical_date: Date used for the archive path

        Returns:
            Storage key of the committed archive, or None when records is empty

        Raises:
            ValueError: logical_date is None
            ArchiveWriteError: any failure while writing or committing
        """
        if not records:
            logger.warning(f"No readings provided to archive for date {logical_date}")
            return None
        if logical_date is None:
            raise ValueError("logical_date cannot be None")

        key = build_archive_key(self.bucket_name, logical_date)
        logger.info(
            f"Archiving {len(records)} readings for {logical_date} to {key} "
            f"on thread {threading.current_thread().name}"
        )

        try:
            with self.uploader.open_writable(key, ARCHIVE_CONTENT_TYPE) as raw, \
                    gzip.GzipFile(fileobj=raw, mode="wb") as gz, \
                    io.TextIOWrapper(gz, encoding="utf-8", newline="") as text:
                written = write_csv(records, text)
        except Exception as e:
            logger.error(f"Archive write failed for date {logical_date} path {key}: {e}")
            raise ArchiveWriteError(key, e) from e

        logger.info(f"Wrote {written} readings for {logical_date} to {key}")
        return key
