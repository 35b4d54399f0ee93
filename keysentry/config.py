"""
===================================================================
KEYSENTRY CONFIGURATION & LOGGING
===================================================================

Environment-driven defaults, the host configuration file, and the
diagnostic logging setup shared by every keysentry module.

CONFIGURATION:
    Set via environment variables:
    - KEYSENTRY_MAX_CONCURRENT_FILES: Parallel file reads (default: 50)
    - KEYSENTRY_MAX_FILE_SIZE_MB: Skip files larger than this (default: 10)
    - KEYSENTRY_ENTROPY_THRESHOLD: Minimum Shannon entropy (default: 3.5)
    - KEYSENTRY_MIN_MATCH_LENGTH: Minimum regex match length (default: 5)
    - KEYSENTRY_LOG_MAX_BYTES: Scan log rotation size (default: 1 MiB)
    - KEYSENTRY_LOCK_TIMEOUT: Seconds to wait for the log lock (default: 10)
    - KEYSENTRY_DEDUP_CAPACITY: Recent log lines remembered (default: 100)
    - KEYSENTRY_MAX_DEPTH: Max directory depth when collecting files (default: 25)
    - KEYSENTRY_LOG_FORMAT: text|json (default: text)
    - KEYSENTRY_CONFIG_FILE: JSON file with customPatterns / addToGitIgnore

===================================================================
"""
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

# ===================================================================
# CONFIGURATION & CONSTANTS
# ===================================================================

VERSION = "1.0.0"

MAX_CONCURRENT_FILES = int(os.environ.get("KEYSENTRY_MAX_CONCURRENT_FILES", "50"))
MAX_FILE_SIZE_MB = int(os.environ.get("KEYSENTRY_MAX_FILE_SIZE_MB", "10"))
ENTROPY_THRESHOLD = float(os.environ.get("KEYSENTRY_ENTROPY_THRESHOLD", "3.5"))
MIN_MATCH_LENGTH = int(os.environ.get("KEYSENTRY_MIN_MATCH_LENGTH", "5"))
LOG_MAX_BYTES = int(os.environ.get("KEYSENTRY_LOG_MAX_BYTES", str(1 * 1024 * 1024)))
LOCK_TIMEOUT_SECONDS = float(os.environ.get("KEYSENTRY_LOCK_TIMEOUT", "10"))
DEDUP_CAPACITY = int(os.environ.get("KEYSENTRY_DEDUP_CAPACITY", "100"))
MAX_DEPTH = int(os.environ.get("KEYSENTRY_MAX_DEPTH", "25"))
LOG_FORMAT = os.environ.get("KEYSENTRY_LOG_FORMAT", "text")  # text|json
CONFIG_FILE = os.environ.get("KEYSENTRY_CONFIG_FILE", "")

MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
LOCK_POLL_INTERVAL = 0.01

# Working directory layout
WORK_DIR_NAME = ".keysentry"
REPORT_FILE_NAME = "keysentry-report.html"
LOG_FILE_NAME = "exposed-secrets.log"
IGNORE_FILE_NAME = "ignored-secrets.json"

# Binary detection
BINARY_SAMPLE_SIZE = 8192


# ===================================================================
# LOGGING SETUP
# ===================================================================

class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add custom fields
        if hasattr(record, 'scan_id'):
            log_data["scan_id"] = record.scan_id
        if hasattr(record, 'file_path'):
            log_data["file_path"] = record.file_path
        if hasattr(record, 'finding_count'):
            log_data["finding_count"] = record.finding_count

        return json.dumps(log_data)


def setup_logging(log_format: str = "text", verbose: bool = False) -> logging.Logger:
    """Setup package logging with either text or JSON format."""
    logger = logging.getLogger("keysentry")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    logger.addHandler(handler)
    logger.propagate = False
    return logger


logger = logging.getLogger(__name__)


# ===================================================================
# SETTINGS
# ===================================================================

@dataclass
class Settings:
    """Resolved settings for one keysentry run."""
    custom_patterns: List[Dict[str, Any]] = field(default_factory=list)
    add_to_gitignore: bool = True
    entropy_threshold: float = ENTROPY_THRESHOLD
    min_match_length: int = MIN_MATCH_LENGTH
    max_concurrent_files: int = MAX_CONCURRENT_FILES
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES
    max_depth: int = MAX_DEPTH
    follow_symlinks: bool = False
    log_max_bytes: int = LOG_MAX_BYTES
    lock_timeout: float = LOCK_TIMEOUT_SECONDS
    dedup_capacity: int = DEDUP_CAPACITY
    write_ignore: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls()
        if CONFIG_FILE:
            settings.update_from_file(Path(CONFIG_FILE))
        return settings

    def update_from_file(self, path: Path) -> None:
        """Merge a host configuration file into these settings."""
        data = load_config_file(path)
        if "customPatterns" in data:
            self.custom_patterns = list(data["customPatterns"])
        if "addToGitIgnore" in data:
            self.add_to_gitignore = bool(data["addToGitIgnore"])


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Load a host configuration file.

    Expected format:
    {
      "customPatterns": [
        {"name": "Internal Token", "regex": "itk_[A-Za-z0-9]{32}"}
      ],
      "addToGitIgnore": true
    }

    A bare JSON list is read as the customPatterns array.

    Args:
        path: Path to the JSON configuration file

    Returns:
        Dictionary with the recognised keys

    Raises:
        FileNotFoundError: if the file does not exist
        ValueError: if the file is not valid JSON or has the wrong shape
    """
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {path}: {e}") from e

    if isinstance(data, list):
        data = {"customPatterns": data}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    patterns = data.get("customPatterns", [])
    if not isinstance(patterns, list):
        raise ValueError("customPatterns must be a list of {name, regex} objects")

    logger.debug(f"Loaded config file {path} with {len(patterns)} custom pattern(s)")
    return data
