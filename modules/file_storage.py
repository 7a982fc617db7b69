"""Temp file storage for uploaded documents."""

from __future__ import annotations

import os
import secrets
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Set

from werkzeug.utils import secure_filename

from logging_config import get_logger


logger = get_logger(__name__)


class FileStorage:
    """
    Stores uploads under one folder and deletes them on request.

    Deletion is best-effort: an OSError is logged and the path is kept as
    an orphan so a later retry_orphans() call (run by the expiry sweep) can
    try again. Callers never see a deletion failure.
    """

    def __init__(self, upload_folder: str | Path):
        self._folder = Path(upload_folder)
        self._folder.mkdir(parents=True, exist_ok=True)
        self._orphans: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def upload_folder(self) -> Path:
        return self._folder

    @property
    def orphans(self) -> Set[str]:
        with self._lock:
            return set(self._orphans)

    def store(self, upload) -> str:
        """
        Save a werkzeug FileStorage to the upload folder.

        Returns:
            Absolute path of the stored file
        """
        safe_name = secure_filename(upload.filename or "") or "upload"
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        stored_path = self._folder / f"{timestamp}_{secrets.token_hex(4)}_{safe_name}"
        upload.save(str(stored_path))
        logger.info(f"Stored upload as {stored_path.name}")
        return str(stored_path)

    def exists(self, file_reference: str | None) -> bool:
        return bool(file_reference) and os.path.exists(file_reference)

    def delete(self, file_reference: str | None) -> bool:
        """
        Delete a stored file.

        Returns:
            True if the file is gone afterwards, False if deletion failed
            (the path is then remembered as an orphan).
        """
        if not file_reference:
            return True
        try:
            os.remove(file_reference)
            logger.debug(f"Deleted {file_reference}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete {file_reference}: {e}")
            with self._lock:
                self._orphans.add(file_reference)
            return False

        with self._lock:
            self._orphans.discard(file_reference)
        return True

    def retry_orphans(self) -> int:
        """
        Retry deletion of files whose earlier deletion failed.

        Returns:
            Number of orphans removed by this call
        """
        pending = self.orphans
        removed = sum(1 for path in pending if self.delete(path))
        if removed:
            logger.info(f"Removed {removed} orphaned upload(s)")
        return removed
