"""
keysentry: heuristic detection of API keys, credentials and private keys
in source trees.
"""
from keysentry.config import VERSION as __version__
from keysentry.dedup import DeduplicationCache
from keysentry.entropy import EntropyFilter, shannon_entropy
from keysentry.errors import (
    KeysentryError,
    LogLockTimeoutError,
    PatternConfigError,
    ScanInProgressError,
    WorkspaceError,
)
from keysentry.logsink import LogSink
from keysentry.orchestrator import (
    CancellationToken,
    ProgressSink,
    ScanOrchestrator,
    ScanResult,
    ScanSession,
)
from keysentry.patterns import Pattern, PatternRegistry
from keysentry.report import ReportGenerator, Severity
from keysentry.scanner import ContentScanner, Finding, get_partial_secret

__all__ = [
    "__version__",
    "CancellationToken",
    "ContentScanner",
    "DeduplicationCache",
    "EntropyFilter",
    "Finding",
    "KeysentryError",
    "LogLockTimeoutError",
    "LogSink",
    "Pattern",
    "PatternConfigError",
    "PatternRegistry",
    "ProgressSink",
    "ReportGenerator",
    "ScanInProgressError",
    "ScanOrchestrator",
    "ScanResult",
    "ScanSession",
    "Severity",
    "WorkspaceError",
    "get_partial_secret",
    "shannon_entropy",
]
