"""Bounded FIFO cache of message digests used to suppress repeated log lines."""
import hashlib
import threading
from typing import Dict

from keysentry.config import DEDUP_CAPACITY


def calculate_message_hash(message: str) -> str:
    """SHA256 hex digest of a message."""
    return hashlib.sha256(message.encode('utf-8')).hexdigest()


class DeduplicationCache:
    """
    Remembers the digests of the last ``capacity`` distinct messages.

    Eviction is by insertion order (oldest first); a repeated lookup does
    not refresh an entry's position.
    """

    def __init__(self, capacity: int = DEDUP_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        # dicts keep insertion order
        self._digests: Dict[str, None] = {}
        self._lock = threading.Lock()

    def is_duplicate(self, message: str) -> bool:
        """
        Check a message and record it if new.

        Returns:
            True if the message was already seen (cache unchanged),
            False if it was new (and is now recorded)
        """
        digest = calculate_message_hash(message)
        with self._lock:
            if digest in self._digests:
                return True
            self._insert(digest)
            return False

    def record(self, message: str) -> None:
        """Remember a message without checking it first."""
        digest = calculate_message_hash(message)
        with self._lock:
            if digest not in self._digests:
                self._insert(digest)

    def _insert(self, digest: str) -> None:
        self._digests[digest] = None
        if len(self._digests) > self.capacity:
            oldest = next(iter(self._digests))
            del self._digests[oldest]

    def clear(self) -> None:
        with self._lock:
            self._digests.clear()

    def __contains__(self, message: str) -> bool:
        digest = calculate_message_hash(message)
        with self._lock:
            return digest in self._digests

    def __len__(self) -> int:
        return len(self._digests)
