"""
===================================================================
REPORT GENERATION
===================================================================

Renders findings into a self-contained HTML document: a scan overview
with a per-file summary table, followed by one detail table per file.
Only the partial (redacted) form of each secret is ever rendered.
===================================================================
"""
import html
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from keysentry.config import VERSION
from keysentry.scanner import Finding, get_partial_secret

logger = logging.getLogger(__name__)

HIGH_SEVERITY_MIN_LENGTH = 50
RISK_SCORE_PER_CHAR = 2


class Severity(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


SEVERITY_COLORS = {
    Severity.HIGH: "red",
    Severity.MEDIUM: "orange",
    Severity.LOW: "green",
}


@dataclass(frozen=True)
class EnrichedFinding:
    """A finding with the severity and risk score shown in reports."""
    finding: Finding
    severity: Severity
    risk_score: int

    @property
    def partial_secret(self) -> str:
        return get_partial_secret(self.finding.secret)


def score_secret(secret: str):
    """Return (severity, risk_score) for a secret value."""
    severity = Severity.HIGH if len(secret) > HIGH_SEVERITY_MIN_LENGTH else Severity.MEDIUM
    return severity, len(secret) * RISK_SCORE_PER_CHAR


REPORT_STYLE = """
    body { font-family: Arial, sans-serif; margin: 0; padding: 0; background-color: #f9f9f9; color: #333; }
    header { background-color: #0047ab; color: white; padding: 20px; text-align: center; }
    header h1 { display: inline-block; font-size: 24px; margin: 0; }
    main { padding: 20px; }
    .boxed-section { margin-top: 20px; padding: 20px; background: #fff; border: 1px solid #ddd; border-radius: 8px; }
    table { width: 100%; border-collapse: collapse; margin-top: 10px; }
    th, td { border: 1px solid #ddd; padding: 12px; text-align: left; }
    th { background-color: #f2f2f2; }
    tr:nth-child(even) { background-color: #f9f9f9; }
    h2 { color: #0047ab; margin-top: 30px; }
    .file-section { margin-top: 20px; padding: 15px; background: #fff; border: 1px solid #ddd; border-radius: 8px; }
    .file-section h3 { margin: 0 0 10px 0; font-size: 20px; }
    footer { text-align: center; padding: 10px; background-color: #f2f2f2; color: #666; margin-top: 20px; }
"""


class ReportGenerator:
    """Builds the HTML secrets report."""

    def __init__(self, title: str = "keysentry Secrets Report"):
        self.title = title

    @staticmethod
    def enrich(finding: Finding) -> EnrichedFinding:
        severity, risk_score = score_secret(finding.secret)
        return EnrichedFinding(finding=finding, severity=severity, risk_score=risk_score)

    def group_by_file(self, findings: Iterable[Finding]) -> Dict[str, List[EnrichedFinding]]:
        grouped: Dict[str, List[EnrichedFinding]] = defaultdict(list)
        for finding in sorted(findings, key=lambda f: (f.file_path, f.line_number, f.pattern_name)):
            grouped[finding.file_path].append(self.enrich(finding))
        return dict(grouped)

    @staticmethod
    def severity_counts(entries: List[EnrichedFinding]) -> Dict[Severity, int]:
        counts = {severity: 0 for severity in (Severity.HIGH, Severity.MEDIUM, Severity.LOW)}
        for entry in entries:
            counts[entry.severity] += 1
        return counts

    def generate(
        self,
        findings: Iterable[Finding],
        total_files_scanned: int,
        report_path: Union[str, Path]
    ) -> Optional[Path]:
        """
        Write the report, unless there is nothing to report.

        Args:
            findings: Findings to include
            total_files_scanned: Number of files the scan covered
            report_path: Destination of the HTML document

        Returns:
            The written path, or None when findings is empty
        """
        findings = list(findings)
        if not findings:
            logger.info("No secrets detected, skipping report generation.")
            return None

        output_path = Path(report_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.render(findings, total_files_scanned), encoding='utf-8')

        logger.info(f"Report generated at: {output_path}")
        return output_path

    def render(self, findings: List[Finding], total_files_scanned: int) -> str:
        grouped = self.group_by_file(findings)
        esc = html.escape

        summary_rows = []
        for file_path, entries in grouped.items():
            counts = self.severity_counts(entries)
            summary_rows.append(
                "<tr>"
                f"<td>{esc(file_path)}</td>"
                f"<td>{len(entries)}</td>"
                f"<td>{counts[Severity.HIGH]}</td>"
                f"<td>{counts[Severity.MEDIUM]}</td>"
                f"<td>{counts[Severity.LOW]}</td>"
                "</tr>"
            )

        sections = []
        for file_path, entries in grouped.items():
            rows = "\n".join(
                "<tr>"
                f"<td>{entry.finding.line_number}</td>"
                f"<td>{esc(entry.finding.pattern_name)}</td>"
                f"<td>{esc(entry.partial_secret)}</td>"
                f'<td style="color:{SEVERITY_COLORS[entry.severity]}">{entry.severity.value}</td>'
                f"<td>{entry.risk_score}</td>"
                "</tr>"
                for entry in entries
            )
            sections.append(f"""
            <div class="file-section">
                <h3>Secrets in: {esc(file_path)}</h3>
                <table>
                    <thead>
                        <tr><th>Line Number</th><th>Pattern</th><th>Partial Secret</th><th>Severity</th><th>Risk Score</th></tr>
                    </thead>
                    <tbody>
{rows}
                    </tbody>
                </table>
            </div>""")

        generated_at = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
        summary_body = "\n".join(summary_rows)
        details_body = "\n".join(sections)

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{esc(self.title)}</title>
    <style>{REPORT_STYLE}</style>
</head>
<body>
    <header><h1>{esc(self.title)}</h1></header>
    <main>
        <div class="boxed-section">
            <h2>Scan Overview</h2>
            <p>Total Files Scanned: {total_files_scanned}</p>
            <p>Total Secrets Found: {len(findings)}</p>
            <table>
                <thead>
                    <tr><th>File Path</th><th>Total Secrets</th><th>High Severity</th><th>Medium Severity</th><th>Low Severity</th></tr>
                </thead>
                <tbody>
{summary_body}
                </tbody>
            </table>
        </div>
        <div class="boxed-section">
            <h2>Exposed Secrets Details</h2>
{details_body}
        </div>
    </main>
    <footer><p>Generated {generated_at} by keysentry {VERSION}</p></footer>
</body>
</html>
"""
