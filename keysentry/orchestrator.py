"""
===================================================================
SCAN ORCHESTRATION
===================================================================

Runs one cancellable scan session over a file set:

    files -> bounded async reads -> ContentScanner -> session findings
          -> EntropyFilter -> ScanResult

File reads are prefetched in parallel (bounded by a semaphore), but each
file is scanned and accounted for one at a time as its read completes.
The cancellation token is checked before every file, so a scan cancelled
after N files reports exactly N files scanned. Reads still in flight at
that point are abandoned. Each task reads, scans and returns nothing, so a
file's content is released as soon as it has been scanned.

At most one session runs per process; a second request raises
ScanInProgressError instead of queueing.
===================================================================
"""
import asyncio
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Union

import aiofiles
from tqdm import tqdm

from keysentry.config import MAX_CONCURRENT_FILES, MAX_FILE_SIZE_BYTES
from keysentry.entropy import EntropyFilter
from keysentry.errors import ScanInProgressError
from keysentry.logsink import LogSink
from keysentry.scanner import ContentScanner, Finding
from keysentry.workspace import is_binary_file

logger = logging.getLogger(__name__)

FileRef = Union[str, Path]


# ===================================================================
# CANCELLATION & PROGRESS
# ===================================================================

class CancellationToken:
    """Polling cancellation flag, safe to set from any thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressSink:
    """Receives progress after every processed file. The base class ignores it."""

    def report(self, done: int, total: int, current_item: str) -> None:
        pass

    def close(self) -> None:
        pass


NullProgress = ProgressSink


class TqdmProgress(ProgressSink):
    """Terminal progress bar."""

    def __init__(self, desc: str = "Scanning files", **tqdm_kwargs):
        self.desc = desc
        self.tqdm_kwargs = tqdm_kwargs
        self._bar: Optional[tqdm] = None

    def report(self, done: int, total: int, current_item: str) -> None:
        if self._bar is None:
            self._bar = tqdm(total=total, desc=self.desc, unit="file", **self.tqdm_kwargs)
        self._bar.update(done - self._bar.n)
        self._bar.set_postfix_str(current_item, refresh=False)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


# ===================================================================
# SESSION STATE
# ===================================================================

_session_lock = threading.Lock()


def is_scan_in_progress() -> bool:
    return _session_lock.locked()


@contextmanager
def scan_session_guard() -> Iterator[None]:
    """Hold the process-wide "scan in progress" flag for the duration."""
    if not _session_lock.acquire(blocking=False):
        raise ScanInProgressError()
    try:
        yield
    finally:
        _session_lock.release()


@dataclass
class ScanSession:
    """Mutable state of one orchestrator invocation."""
    files: List[Path]
    token: CancellationToken
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    findings: Set[Finding] = field(default_factory=set)
    files_processed: int = 0
    failed_files: List[str] = field(default_factory=list)
    cancelled: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def files_total(self) -> int:
        return len(self.files)

    def add_findings(self, findings: Iterable[Finding]) -> None:
        with self._lock:
            self.findings.update(findings)

    def mark_processed(self, failed_path: Optional[str] = None) -> int:
        with self._lock:
            self.files_processed += 1
            if failed_path is not None:
                self.failed_files.append(failed_path)
            return self.files_processed


@dataclass(frozen=True)
class ScanResult:
    findings: FrozenSet[Finding]
    files_scanned: int
    files_total: int
    cancelled: bool
    failed_files: Tuple[str, ...] = ()
    session_id: str = ""


# ===================================================================
# ORCHESTRATOR
# ===================================================================

class ScanOrchestrator:
    """Drives a ContentScanner over a set of files."""

    def __init__(
        self,
        scanner: ContentScanner,
        entropy_filter: Optional[EntropyFilter] = None,
        log_sink: Optional[LogSink] = None,
        max_concurrent_files: int = MAX_CONCURRENT_FILES,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
        root: Optional[FileRef] = None
    ):
        self.scanner = scanner
        self.entropy_filter = entropy_filter
        self.log_sink = log_sink
        self.max_concurrent_files = max(1, max_concurrent_files)
        self.max_file_size = max_file_size
        self.root = Path(root) if root is not None else None

    def run(
        self,
        files: Iterable[FileRef],
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressSink] = None
    ) -> ScanResult:
        """Synchronous wrapper around run_async()."""
        return asyncio.run(self.run_async(files, token, progress))

    async def run_async(
        self,
        files: Iterable[FileRef],
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressSink] = None
    ) -> ScanResult:
        """
        Scan every file, honouring cancellation between files.

        Args:
            files: Files to scan
            token: Cancellation token checked before each file
            progress: Sink receiving (done, total, current_item) after each file

        Returns:
            ScanResult with entropy-filtered findings

        Raises:
            ScanInProgressError: if another session is active
        """
        session = ScanSession(files=[Path(f) for f in files], token=token or CancellationToken())
        progress = progress or NullProgress()

        with scan_session_guard():
            logger.info(
                f"Scan {session.session_id} started: {session.files_total} files",
                extra={"scan_id": session.session_id}
            )
            self._log(f"Scan started: {session.files_total} files to scan.", "info")

            await self._process_files(session, progress)

            findings = session.findings
            if self.entropy_filter is not None:
                findings = set(self.entropy_filter.filter(findings))

            if session.cancelled:
                logger.warning(
                    f"Scan {session.session_id} cancelled after "
                    f"{session.files_processed}/{session.files_total} files"
                )
                self._log(
                    f"Scan cancelled after {session.files_processed} of "
                    f"{session.files_total} files.",
                    "warning"
                )
            else:
                logger.info(
                    f"Scan {session.session_id} complete: {len(findings)} potential secrets "
                    f"in {session.files_processed} files",
                    extra={"scan_id": session.session_id, "finding_count": len(findings)}
                )
                self._log(
                    f"Scan complete: {session.files_processed} files scanned, "
                    f"{len(findings)} potential secrets.",
                    "info"
                )

        return ScanResult(
            findings=frozenset(findings),
            files_scanned=session.files_processed,
            files_total=session.files_total,
            cancelled=session.cancelled,
            failed_files=tuple(session.failed_files),
            session_id=session.session_id,
        )

    async def _process_files(self, session: ScanSession, progress: ProgressSink) -> None:
        if session.token.cancelled:
            session.cancelled = True
            return

        semaphore = asyncio.Semaphore(self.max_concurrent_files)
        tasks = [
            asyncio.ensure_future(self._scan_file_with_semaphore(path, semaphore, session, progress))
            for path in session.files
        ]

        try:
            for coro in asyncio.as_completed(tasks):
                await coro
                if session.cancelled:
                    break
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _scan_file_with_semaphore(
        self,
        path: Path,
        semaphore: asyncio.Semaphore,
        session: ScanSession,
        progress: ProgressSink
    ) -> None:
        """
        Read, scan and account for one file.

        Everything after the read runs without yielding to the event loop,
        so the cancellation check and the processed count cannot interleave
        with another file. The content is dropped when this returns.
        """
        async with semaphore:
            if session.token.cancelled:
                session.cancelled = True
                return
            try:
                content, error = await self._read_file(path), None
            except OSError as e:
                content, error = None, e

        if session.token.cancelled:
            session.cancelled = True
            return

        label = self._label(path)
        if error is not None:
            logger.error(f"Error while reading file {label}: {error}")
            self._log(f"Error while reading file: {label}", "error")
            done = session.mark_processed(failed_path=label)
        else:
            if content:
                session.add_findings(self.scanner.scan(content, label))
            done = session.mark_processed()

        progress.report(done, session.files_total, label)

    async def _read_file(self, path: Path) -> Optional[str]:
        file_size = path.stat().st_size
        if file_size > self.max_file_size:
            logger.debug(f"Skipping large file: {path} ({file_size} bytes)")
            return None

        if is_binary_file(path):
            logger.debug(f"Skipping binary file (content): {path}")
            return None

        async with aiofiles.open(path, 'r', encoding='utf-8', errors='ignore') as f:
            return await f.read()

    def _label(self, path: Path) -> str:
        if self.root is not None:
            try:
                return path.relative_to(self.root).as_posix()
            except ValueError:
                pass
        return str(path)

    def _log(self, message: str, level: str) -> None:
        if self.log_sink is not None:
            self.log_sink.append(message, level)
