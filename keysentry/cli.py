"""
===================================================================
KEYSENTRY COMMAND LINE
===================================================================

Host layer around the detection engine: resolves settings, runs one scan
session over a workspace, applies the ignore list, writes the scan log
and HTML report, and exposes the ``keysentry`` console command.

USAGE:
    keysentry                       # scan the current directory
    keysentry ~/src/project -v
    keysentry . --custom-patterns patterns.json --entropy-threshold 4.0
    keysentry . --write-ignore      # accept current findings as known

EXIT CODES:
    0   No secrets found
    1   Secrets found
    2   Error (bad path, bad config, scan already running)
    130 Interrupted by user (Ctrl+C)
===================================================================
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, Union

from tqdm import tqdm

from keysentry import config
from keysentry.config import Settings, setup_logging
from keysentry.dedup import DeduplicationCache
from keysentry.entropy import EntropyFilter
from keysentry.errors import ScanInProgressError, WorkspaceError
from keysentry.logsink import LogSink
from keysentry.orchestrator import (
    CancellationToken,
    ProgressSink,
    ScanOrchestrator,
    TqdmProgress,
    is_scan_in_progress,
)
from keysentry.patterns import PatternRegistry
from keysentry.report import ReportGenerator
from keysentry.scanner import ContentScanner, Finding
from keysentry.workspace import (
    collect_files,
    ensure_gitignore,
    filter_ignored,
    get_ignore_path,
    get_log_path,
    get_report_path,
    get_work_dir,
    load_ignore_list,
    save_ignore_list,
)

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]


def _default_notify(message: str) -> None:
    tqdm.write(message)


# ===================================================================
# HOST COMMANDS
# ===================================================================

def run_scan(
    root: Union[str, Path],
    settings: Optional[Settings] = None,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressSink] = None,
    notify: Optional[Notifier] = None
) -> Optional[List[Finding]]:
    """
    Scan a workspace and handle the results.

    Args:
        root: Workspace root directory
        settings: Resolved settings (defaults from the environment)
        token: Cancellation token for the session
        progress: Progress sink (defaults to no progress output)
        notify: Callback for user-facing notices

    Returns:
        Non-ignored findings, or None if the scan could not run
    """
    settings = settings or Settings.from_env()
    notify = notify or _default_notify

    if is_scan_in_progress():
        notify("A secret scan is already in progress.")
        return None

    root_path = Path(root).expanduser().resolve()
    try:
        files = collect_files(root_path, settings.max_depth, settings.follow_symlinks)
    except WorkspaceError as e:
        logger.error(str(e))
        notify(f"No workspace available to scan: {e}")
        return None

    get_work_dir(root_path)
    if settings.add_to_gitignore:
        ensure_gitignore(root_path)

    registry, failures = PatternRegistry.load_lenient(user_patterns=settings.custom_patterns)
    for name, reason in failures:
        notify(f"Custom pattern '{name}' was not loaded: {reason}")

    log_sink = LogSink(
        get_log_path(root_path),
        dedup=DeduplicationCache(settings.dedup_capacity),
        max_bytes=settings.log_max_bytes,
        lock_timeout=settings.lock_timeout,
    )
    orchestrator = ScanOrchestrator(
        ContentScanner(registry, min_length=settings.min_match_length),
        entropy_filter=EntropyFilter(settings.entropy_threshold, registry=registry),
        log_sink=log_sink,
        max_concurrent_files=settings.max_concurrent_files,
        max_file_size=settings.max_file_size_bytes,
        root=root_path,
    )

    log_sink.append(f"Found {len(files)} files to scan.", "info")
    try:
        result = orchestrator.run(files, token, progress)
    except ScanInProgressError as e:
        notify(str(e))
        return None

    if result.cancelled:
        notify(f"Scan cancelled after {result.files_scanned} of {result.files_total} files.")

    findings = filter_ignored(result.findings, load_ignore_list(get_ignore_path(root_path)))
    findings.sort(key=lambda f: (f.file_path, f.line_number, f.pattern_name))

    if not findings:
        notify("No secrets detected in the workspace.")
        return findings

    for finding in findings:
        log_sink.log_finding(finding)

    if settings.write_ignore:
        count = save_ignore_list(get_ignore_path(root_path), findings)
        notify(f"Recorded {count} finding(s) in the ignore list.")

    try:
        report_path = ReportGenerator().generate(
            findings, result.files_scanned, get_report_path(root_path)
        )
        notify(f"Secrets report generated at: {report_path}")
    except Exception as e:
        logger.error(f"Failed to generate report: {e}", exc_info=True)
        log_sink.append(f"Error generating report: {e}", "error")

    return findings


def start_scan(
    root: Union[str, Path],
    settings: Optional[Settings] = None,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressSink] = None,
    notify: Optional[Notifier] = None
) -> bool:
    """Scan a workspace; True when any non-ignored secret was found."""
    return bool(run_scan(root, settings, token, progress, notify))


# ===================================================================
# COMMAND LINE INTERFACE
# ===================================================================

def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments and display help information."""
    parser = argparse.ArgumentParser(
        prog='keysentry',
        description='Heuristic scanner for API keys, credentials and private keys in source trees',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
ENVIRONMENT VARIABLES (Optional):
  KEYSENTRY_CONFIG_FILE            JSON config with customPatterns / addToGitIgnore
  KEYSENTRY_MAX_CONCURRENT_FILES   Parallel file reads (default: 50)
  KEYSENTRY_MAX_FILE_SIZE_MB       Skip files larger than this in MB (default: 10)
  KEYSENTRY_ENTROPY_THRESHOLD      Minimum entropy for generic matches (default: 3.5)
  KEYSENTRY_LOCK_TIMEOUT           Seconds to wait for the scan log lock (default: 10)

OUTPUT:
  .keysentry/keysentry-report.html   HTML report (only when secrets are found)
  .keysentry/exposed-secrets.log     Scan event log, rotated at 1 MiB

EXIT CODES:
  0   No secrets found
  1   Secrets found
  2   Error
  130 Interrupted by user (Ctrl+C)
        '''
    )

    parser.add_argument(
        'path',
        nargs='?',
        default='.',
        help='Workspace directory to scan (default: current directory)'
    )

    parser.add_argument(
        '--config',
        type=str,
        metavar='FILE',
        default=config.CONFIG_FILE,
        help='JSON config file with customPatterns and addToGitIgnore'
    )

    parser.add_argument(
        '--custom-patterns',
        type=str,
        metavar='FILE',
        help='JSON file of extra {name, regex} patterns'
    )

    parser.add_argument(
        '--entropy-threshold',
        type=float,
        default=config.ENTROPY_THRESHOLD,
        help=f'Minimum Shannon entropy for generic matches (default: {config.ENTROPY_THRESHOLD})'
    )

    parser.add_argument(
        '--min-length',
        type=int,
        default=config.MIN_MATCH_LENGTH,
        help=f'Minimum regex match length (default: {config.MIN_MATCH_LENGTH})'
    )

    parser.add_argument(
        '--max-depth',
        type=int,
        default=config.MAX_DEPTH,
        help=f'Maximum directory depth (default: {config.MAX_DEPTH})'
    )

    parser.add_argument(
        '--follow-symlinks',
        action='store_true',
        help='Follow symbolic links while collecting files'
    )

    parser.add_argument(
        '--no-gitignore',
        action='store_true',
        help='Do not add .keysentry to .gitignore'
    )

    parser.add_argument(
        '--write-ignore',
        action='store_true',
        help='Record the current findings as ignored for future scans'
    )

    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable the progress bar'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        choices=['text', 'json'],
        default=config.LOG_FORMAT,
        help=f'Logging format (default: {config.LOG_FORMAT})'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose debug logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {config.VERSION}'
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Resolve settings from environment, config files and CLI flags."""
    settings = Settings()

    if args.config:
        settings.update_from_file(Path(args.config))
    if args.custom_patterns:
        settings.custom_patterns.extend(
            config.load_config_file(Path(args.custom_patterns)).get("customPatterns", [])
        )

    settings.entropy_threshold = args.entropy_threshold
    settings.min_match_length = args.min_length
    settings.max_depth = args.max_depth
    settings.follow_symlinks = args.follow_symlinks
    settings.write_ignore = args.write_ignore
    if args.no_gitignore:
        settings.add_to_gitignore = False

    return settings


# ===================================================================
# MAIN ENTRY POINT
# ===================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with validation and error handling."""
    args = parse_arguments(argv)
    setup_logging(args.log_format, verbose=args.verbose)

    try:
        settings = build_settings(args)
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info("=" * 70)
    logger.info("KEYSENTRY SECRET SCAN")
    logger.info("=" * 70)
    logger.info(f"Scan path: {Path(args.path).expanduser().resolve()}")
    logger.info(f"Custom patterns: {len(settings.custom_patterns)}")
    logger.info(f"Entropy threshold: {settings.entropy_threshold}")
    logger.info("=" * 70)

    progress = ProgressSink() if args.no_progress else TqdmProgress()
    try:
        findings = run_scan(args.path, settings, progress=progress)
    except KeyboardInterrupt:
        logger.warning("Scan interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 2
    finally:
        progress.close()

    if findings is None:
        return 2
    return 1 if findings else 0


if __name__ == "__main__":
    sys.exit(main())
