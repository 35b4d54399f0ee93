"""
===================================================================
WORKSPACE HELPERS
===================================================================

File selection, the ``.keysentry`` working directory, ``.gitignore``
upkeep, and the persisted ignore list of dismissed findings.
===================================================================
"""
import fnmatch
import json
import logging
import os
from pathlib import Path
from typing import Iterable, List, Set, Tuple, Union

from keysentry.config import (
    BINARY_SAMPLE_SIZE,
    IGNORE_FILE_NAME,
    LOG_FILE_NAME,
    MAX_DEPTH,
    REPORT_FILE_NAME,
    WORK_DIR_NAME,
)
from keysentry.errors import WorkspaceError
from keysentry.scanner import Finding

logger = logging.getLogger(__name__)

# Extensions (or whole file names) that are scanned
INCLUDE_FORMATS = (
    "js", "ts", "jsx", "tsx", "py", "java", "rb", "php", "c", "cpp", "h", "cs", "go",
    "swift", "kt", "r", "scala", "sh", "bash", "json", "yml", "yaml", "toml", "xml", "ini",
    "properties", "env", "md", "rst", "log", "txt", "sql", "csv", "html", "bak", "swp", "tmp",
    "zip", "tar.gz", "tar", "rar", "dockerfile", "gitlab-ci.yml", "circleci.yml", "tf",
)

# Directory names that are never descended into
EXCLUDE_DIRS = frozenset({"node_modules", "dist", ".git", WORK_DIR_NAME})

# File name globs that are never scanned
EXCLUDE_GLOBS = ("*.min.js",)

IgnoreKey = Tuple[str, int, str]


# ===================================================================
# FILE SELECTION
# ===================================================================

def is_included(name: str) -> bool:
    """Check a file name against the include list."""
    lowered = name.lower()
    if any(fnmatch.fnmatch(lowered, glob) for glob in EXCLUDE_GLOBS):
        return False
    if lowered in INCLUDE_FORMATS:
        return True
    return any(lowered.endswith("." + fmt) for fmt in INCLUDE_FORMATS)


def should_skip_dir(name: str) -> bool:
    return name in EXCLUDE_DIRS


def collect_files(
    root: Union[str, Path],
    max_depth: int = MAX_DEPTH,
    follow_symlinks: bool = False
) -> List[Path]:
    """
    Collect the files to scan under ``root``.

    Args:
        root: Workspace root directory
        max_depth: Maximum directory depth to traverse (root is depth 0)
        follow_symlinks: Whether to follow symbolic links

    Returns:
        Sorted list of file paths

    Raises:
        WorkspaceError: if root does not exist or is not a directory
    """
    root_path = Path(root)
    if not root_path.exists():
        raise WorkspaceError(f"Path does not exist: {root_path}")
    if not root_path.is_dir():
        raise WorkspaceError(f"Path is not a directory: {root_path}")

    files: List[Path] = []

    def _on_error(error: OSError) -> None:
        logger.debug(f"Cannot access {error.filename}: {error}")

    for current, dirs, names in os.walk(root_path, followlinks=follow_symlinks, onerror=_on_error):
        current_path = Path(current)
        depth = len(current_path.relative_to(root_path).parts)

        # Filter directories in-place to skip unwanted paths
        if depth >= max_depth:
            dirs[:] = []
        else:
            dirs[:] = [d for d in dirs if not should_skip_dir(d)]

        for name in names:
            file_path = current_path / name
            if file_path.is_symlink() and not follow_symlinks:
                continue
            if is_included(name):
                files.append(file_path)

    files.sort()
    logger.debug(f"Collected {len(files)} files under {root_path}")
    return files


def is_binary_file(file_path: Path, sample_size: int = BINARY_SAMPLE_SIZE) -> bool:
    """
    Detect if a file is binary by checking for null bytes in the first chunk.

    Unreadable files are reported as text so the regular read path can
    log the failure.
    """
    try:
        with open(file_path, 'rb') as f:
            chunk = f.read(sample_size)
    except OSError as e:
        logger.debug(f"Cannot read file for binary check {file_path}: {e}")
        return False

    return b'\x00' in chunk


# ===================================================================
# WORKING DIRECTORY
# ===================================================================

def get_work_dir(root: Union[str, Path], create: bool = True) -> Path:
    work_dir = Path(root) / WORK_DIR_NAME
    if create:
        work_dir.mkdir(parents=True, exist_ok=True)
    return work_dir


def get_report_path(root: Union[str, Path]) -> Path:
    return Path(root) / WORK_DIR_NAME / REPORT_FILE_NAME


def get_log_path(root: Union[str, Path]) -> Path:
    return Path(root) / WORK_DIR_NAME / LOG_FILE_NAME


def get_ignore_path(root: Union[str, Path]) -> Path:
    return Path(root) / WORK_DIR_NAME / IGNORE_FILE_NAME


def ensure_gitignore(root: Union[str, Path]) -> bool:
    """
    Add the working directory to ``.gitignore`` in a git checkout.

    Returns:
        True if ``.gitignore`` was modified
    """
    root_path = Path(root)
    if not (root_path / ".git").is_dir():
        return False

    gitignore = root_path / ".gitignore"
    try:
        existing = gitignore.read_text(encoding='utf-8') if gitignore.exists() else ""
        if any(line.strip().strip("/") == WORK_DIR_NAME for line in existing.splitlines()):
            return False

        with open(gitignore, 'a', encoding='utf-8') as f:
            if existing and not existing.endswith("\n"):
                f.write("\n")
            f.write(f"{WORK_DIR_NAME}\n")
    except OSError as e:
        logger.warning(f"Failed to update {gitignore}: {e}")
        return False

    logger.info(f"Added {WORK_DIR_NAME} to {gitignore}")
    return True


# ===================================================================
# IGNORE LIST
# ===================================================================

def load_ignore_list(filepath: Path) -> Set[IgnoreKey]:
    """
    Load the findings a user has dismissed.

    Args:
        filepath: Path to the ignore list JSON file

    Returns:
        Set of (pattern_name, line_number, file_path) keys
    """
    ignored: Set[IgnoreKey] = set()

    if not filepath.exists():
        return ignored

    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not load ignore list {filepath}: {e}")
        return ignored

    entries = data.get("ignored", []) if isinstance(data, dict) else data
    for entry in entries:
        try:
            ignored.add((entry["patternName"], int(entry["lineNumber"]), entry["filePath"]))
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Skipping malformed ignore entry: {entry!r}")

    logger.info(f"Loaded {len(ignored)} ignored finding(s)")
    return ignored


def save_ignore_list(filepath: Path, findings: Iterable[Finding]) -> int:
    """Write finding metadata (never the secret) as the new ignore list."""
    entries = sorted(
        (finding.metadata() for finding in findings),
        key=lambda e: (e["filePath"], e["lineNumber"], e["patternName"])
    )
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump({"ignored": entries}, f, indent=2)
    return len(entries)


def filter_ignored(findings: Iterable[Finding], ignored: Set[IgnoreKey]) -> List[Finding]:
    return [finding for finding in findings if finding.key not in ignored]
