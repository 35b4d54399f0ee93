"""
===================================================================
SCAN EVENT LOG
===================================================================

Append-only, line-oriented log of scan events and findings, kept in the
keysentry working directory. Lines look like:

    [2024-05-01T12:00:00.000000Z] [WARNING] Secret detected: ...

Writers are serialized by an in-process mutex plus an exclusive-create
``<log>.lock`` file, so overlapping sessions (even from separate
processes) never interleave partial lines. Lock acquisition is bounded
by a timeout.
===================================================================
"""
import logging
import os
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from keysentry.config import LOCK_POLL_INTERVAL, LOCK_TIMEOUT_SECONDS, LOG_MAX_BYTES
from keysentry.dedup import DeduplicationCache
from keysentry.errors import LogLockTimeoutError
from keysentry.scanner import Finding

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "secrets-"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


class LogSink:
    """Locked, deduplicated, size-rotated scan log."""

    def __init__(
        self,
        path: Union[str, Path],
        dedup: Optional[DeduplicationCache] = None,
        max_bytes: int = LOG_MAX_BYTES,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS
    ):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.dedup = dedup if dedup is not None else DeduplicationCache()
        self.max_bytes = max_bytes
        self.lock_timeout = lock_timeout
        self._mutex = threading.Lock()

    @staticmethod
    def format_entry(message: str, level: str, timestamp: Optional[str] = None) -> str:
        return f"[{timestamp or utc_timestamp()}] [{level.upper()}] {message}"

    def append(self, message: str, level: str = "info") -> bool:
        """
        Append one entry to the log.

        Args:
            message: Log message (must never carry an unredacted secret)
            level: Log level name, written upper-case

        Returns:
            True if a line was written, False if it was a duplicate

        Raises:
            LogLockTimeoutError: if the log lock could not be acquired
        """
        dedup_key = f"[{level.upper()}] {message}"
        if dedup_key in self.dedup:
            logger.debug(f"Skipping duplicate log entry: {message}")
            return False

        with self._locked():
            # another writer may have logged it while we waited
            if dedup_key in self.dedup:
                return False

            self._rotate_if_needed()
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(self.format_entry(message, level) + "\n")

            # only remembered once written, so a failed append can be retried
            self.dedup.record(dedup_key)

        return True

    def log_finding(self, finding: Finding, level: str = "warning") -> bool:
        """Record a finding by location only; the secret is never written."""
        return self.append(
            f"Secret detected: {finding.pattern_name} at line {finding.line_number} "
            f"in {finding.file_path}",
            level
        )

    def _rotate_if_needed(self) -> Optional[Path]:
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return None

        if size <= self.max_bytes:
            return None

        stamp = utc_timestamp().replace(':', '-')
        archive = self.path.with_name(f"{ARCHIVE_PREFIX}{stamp}.log")
        try:
            os.replace(self.path, archive)
        except OSError as e:
            logger.error(f"Error rotating log file {self.path}: {e}")
            return None

        logger.info(f"Rotated scan log to {archive}")
        return archive

    @contextmanager
    def _locked(self) -> Iterator[None]:
        deadline = time.monotonic() + self.lock_timeout

        if not self._mutex.acquire(timeout=self.lock_timeout):
            raise LogLockTimeoutError(str(self.lock_path), self.lock_timeout)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = self._acquire_lock_file(deadline)
            try:
                yield
            finally:
                os.close(fd)
                try:
                    os.unlink(self.lock_path)
                except OSError as e:
                    logger.error(f"Error removing lock file {self.lock_path}: {e}")
        finally:
            self._mutex.release()

    def _acquire_lock_file(self, deadline: float) -> int:
        while True:
            try:
                return os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise LogLockTimeoutError(str(self.lock_path), self.lock_timeout)
                time.sleep(LOCK_POLL_INTERVAL)
