"""
===================================================================
ENTROPY FILTERING
===================================================================

Shannon entropy scoring used to discard low-randomness candidates
(placeholders such as ``password=changeme``). Findings from
high-confidence, fixed-format patterns bypass the filter.
===================================================================
"""
import logging
import math
from collections import Counter
from typing import Iterable, List, Optional

from keysentry.config import ENTROPY_THRESHOLD
from keysentry.patterns import HIGH_CONFIDENCE_PATTERNS, PatternRegistry
from keysentry.scanner import Finding

logger = logging.getLogger(__name__)

DEFAULT_ENTROPY_THRESHOLD = ENTROPY_THRESHOLD
MIN_ENTROPY_CALC_LENGTH = 2


def shannon_entropy(data: str) -> float:
    """
    Calculate Shannon entropy of a string (bits per character).

    High entropy (>4.5) often indicates cryptographic material.
    Low entropy (<3.5) typically indicates human-readable text.

    Args:
        data: String to analyze

    Returns:
        Entropy value in bits per character (0.0 to ~8.0)
    """
    if not data or len(data) < MIN_ENTROPY_CALC_LENGTH:
        return 0.0

    counts = Counter(data)
    length = len(data)
    probs = [count / length for count in counts.values()]
    return -sum(p * math.log2(p) for p in probs if p > 0)


class EntropyFilter:
    """Keeps findings whose secret is random enough to be a real credential."""

    def __init__(
        self,
        threshold: float = DEFAULT_ENTROPY_THRESHOLD,
        registry: Optional[PatternRegistry] = None
    ):
        self.threshold = threshold
        self.registry = registry

    def is_high_confidence(self, pattern_name: str) -> bool:
        if self.registry is not None:
            return self.registry.is_high_confidence(pattern_name)
        return pattern_name in HIGH_CONFIDENCE_PATTERNS

    def filter(self, findings: Iterable[Finding], threshold: Optional[float] = None) -> List[Finding]:
        """
        Drop low-entropy findings.

        Args:
            findings: Candidate findings (any iterable, usually a set)
            threshold: Override for the configured threshold

        Returns:
            Retained findings sorted by file, line and pattern
        """
        limit = self.threshold if threshold is None else threshold
        retained = []
        dropped = 0

        for finding in findings:
            if self.is_high_confidence(finding.pattern_name):
                retained.append(finding)
                continue

            score = shannon_entropy(finding.secret)
            if score > limit:
                retained.append(finding)
            else:
                dropped += 1
                logger.debug(
                    f"Dropped low-entropy {finding.pattern_name} at "
                    f"{finding.file_path}:{finding.line_number} ({score:.2f} <= {limit})"
                )

        if dropped:
            logger.info(f"Entropy filter removed {dropped} likely false positive(s)")

        return sorted(retained, key=lambda f: (f.file_path, f.line_number, f.pattern_name))
