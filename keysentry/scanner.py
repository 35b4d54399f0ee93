"""
===================================================================
CONTENT SCANNER
===================================================================

Applies every rule in a PatternRegistry to the lines of one file and
produces raw candidate findings. Comment and docstring lines are
skipped via the line classifier.
===================================================================
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Tuple

from keysentry.classifier import is_suppressed_line, split_lines
from keysentry.config import MIN_MATCH_LENGTH
from keysentry.patterns import PatternRegistry

logger = logging.getLogger(__name__)

SECRET_SEPARATORS = ("=", ":")
PARTIAL_PREFIX_LENGTH = 6
PARTIAL_SUFFIX_LENGTH = 4


@dataclass(frozen=True)
class Finding:
    """
    One detected candidate secret at a specific location.

    Findings compare equal on (pattern_name, line_number, file_path);
    the secret itself takes no part in equality or hashing.
    """
    secret: str = field(compare=False, repr=False)
    line_number: int
    pattern_name: str
    file_path: str

    @property
    def key(self) -> Tuple[str, int, str]:
        return (self.pattern_name, self.line_number, self.file_path)

    @property
    def partial_secret(self) -> str:
        return get_partial_secret(self.secret)

    def metadata(self) -> Dict[str, Any]:
        """Persistable view of the finding, without the secret."""
        return {
            "patternName": self.pattern_name,
            "lineNumber": self.line_number,
            "filePath": self.file_path,
        }


def get_partial_secret(secret: str) -> str:
    """
    Redact a secret to its first 6 and last 4 characters.

    Secrets too short to keep anything hidden that way only show their
    first two characters.
    """
    if len(secret) <= PARTIAL_PREFIX_LENGTH + PARTIAL_SUFFIX_LENGTH:
        return f"{secret[:2]}..."
    return f"{secret[:PARTIAL_PREFIX_LENGTH]}...{secret[-PARTIAL_SUFFIX_LENGTH:]}"


def extract_secret(matched_text: str) -> str:
    """
    Pull the secret value out of a regex match.

    For ``key = value`` / ``key: value`` shaped matches the text after the
    first separator is used, trimmed of whitespace and quotes. Otherwise
    the whole match is the secret.
    """
    positions = [matched_text.find(sep) for sep in SECRET_SEPARATORS]
    positions = [pos for pos in positions if pos >= 0]
    if not positions:
        return matched_text

    value = matched_text[min(positions) + 1:].strip().strip('\'"').strip()
    return value or matched_text


class ContentScanner:
    """Stateless, per-call scanner of file content against a registry."""

    def __init__(self, registry: PatternRegistry, min_length: int = MIN_MATCH_LENGTH):
        self.registry = registry
        self.min_length = min_length

    def scan(self, content: str, file_path: str) -> List[Finding]:
        """
        Scan file content for secrets.

        Args:
            content: Decoded file content
            file_path: Path reported on each finding

        Returns:
            List of candidate findings, in pattern then line order
        """
        findings: List[Finding] = []
        if not content:
            return findings

        lines = split_lines(content)
        active_lines = [
            (number, line)
            for number, line in enumerate(lines, start=1)
            if line and not is_suppressed_line(line)
        ]

        for pattern in self.registry:
            seen: Set[Tuple[str, int]] = set()

            for line_number, line in active_lines:
                try:
                    line_findings = []
                    for match in pattern.regex.finditer(line):
                        matched_text = match.group(0)
                        if len(matched_text) < self.min_length:
                            continue

                        match_key = (matched_text, line_number)
                        if match_key in seen:
                            continue
                        seen.add(match_key)

                        line_findings.append(Finding(
                            secret=extract_secret(matched_text),
                            line_number=line_number,
                            pattern_name=pattern.name,
                            file_path=file_path,
                        ))
                except Exception as e:
                    logger.debug(
                        f"Pattern {pattern.name} failed on {file_path}:{line_number}: {e}"
                    )
                    continue

                findings.extend(line_findings)

        return findings
