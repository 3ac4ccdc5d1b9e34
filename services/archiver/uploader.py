"""
Blob storage uploader for archives
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from io import BytesIO
from typing import BinaryIO, Iterator

import vercel_blob

from .config import ArchiverConfig

logger = logging.getLogger(__name__)


class ArchiveUploader:
    """Uploads archive files to blob storage"""

    def __init__(self, cfg: ArchiverConfig):
        self.cfg = cfg
        # Set token for vercel_blob library
        os.environ["BLOB_READ_WRITE_TOKEN"] = cfg.blob_token

    def _resolve_url(self, info: dict, fallback_key: str) -> str:
        """Resolve the final URL from blob upload response"""
        url = info.get("url") or info.get("downloadUrl")
        if url:
            return url
        pathname = info.get("pathname") or fallback_key
        return f"{self.cfg.blob_base_url}/{pathname.lstrip('/')}"

    def upload_bytes(self, key: str, data: bytes, content_type: str, overwrite: bool = False) -> str:
        """
        Upload bytes to blob storage

        Returns:
            URL of uploaded blob
        """
        info = vercel_blob.put(
            key,
            data,
            {
                "contentType": content_type,
                "allowOverwrite": overwrite
            }
        )
        url = self._resolve_url(info, key)
        logger.info(f"Uploaded {len(data)} bytes to {url}")
        return url

    @contextmanager
    def open_writable(self, key: str, content_type: str) -> Iterator[BinaryIO]:
        """
        Buffer writes for key and upload them when the block exits cleanly

        Nothing is uploaded if the block raises.
        """
        buffer = BytesIO()
        yield buffer
        self.upload_bytes(key, buffer.getvalue(), content_type)
