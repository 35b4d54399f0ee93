"""Exception taxonomy for keysentry."""
from typing import List, Optional, Tuple


class KeysentryError(Exception):
    """Base class for all keysentry errors."""


class PatternConfigError(KeysentryError):
    """
    One or more user-supplied patterns failed to compile.

    The registry built from the remaining valid patterns is kept on
    ``registry`` so callers can still scan with it.
    """

    def __init__(self, failures: List[Tuple[str, str]], registry=None):
        self.failures = failures
        self.registry = registry
        names = ", ".join(f"{name} ({reason})" for name, reason in failures)
        super().__init__(f"Invalid custom pattern(s): {names}")


class WorkspaceError(KeysentryError):
    """The file set to scan could not be enumerated."""


class ScanInProgressError(KeysentryError):
    """A scan session is already active in this process."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "A secret scan is already in progress.")


class LogLockTimeoutError(KeysentryError):
    """The scan log lock could not be acquired before the timeout."""

    def __init__(self, lock_path: str, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.1f}s waiting for log lock {lock_path}")
