"""Security checks around parsing.

The pre-scan looks only at metadata (name, declared type, size) and runs before
any byte is decoded. The post-scan runs over the normalized text. The optional
deep scan looks for statistical anomalies that regexes miss.
"""

from __future__ import annotations

import re
from collections import Counter
from pathlib import PurePosixPath
from typing import ClassVar

from aps_ingestion.ingestion.models import (
    DeepAnalysis,
    FindingCategory,
    PostscanResult,
    PrescanResult,
    RiskLevel,
    SecurityFinding,
    Severity,
)
from aps_ingestion.logging.logger import Log

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024

ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {
        "text/csv",
        "text/plain",
        "text/tab-separated-values",
        "application/json",
        "text/xml",
        "application/xml",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/hl7-v2",
        "x-application/hl7-v2+er7",
        "application/fhir+json",
        "application/fhir+xml",
    }
)

BLOCKED_EXTENSIONS: frozenset[str] = frozenset(
    {".exe", ".bat", ".cmd", ".scr", ".com", ".pif", ".php", ".asp", ".jsp"}
)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


class SecurityScanner:
    """Pre-scan, post-scan and deep scan of an uploaded file."""

    _PATTERNS: ClassVar[dict[FindingCategory, tuple[Severity, tuple[re.Pattern[str], ...]]]] = {
        FindingCategory.MALICIOUS_SCRIPT: (
            Severity.HIGH,
            _compile(
                r"<\s*/?\s*script\b",
                r"\b(?:javascript|vbscript)\s*:",
                r"\bdata:text/html",
                r"\b(?:eval|setTimeout|setInterval)\s*\(",
                r"\bdocument\.(?:cookie|write|location|domain)\b",
                r"\bwindow\.(?:location|open)\b",
                r"\blocation\.(?:href|replace|assign)\b",
                r"\bon(?:load|error|click|mouseover)\s*=",
            ),
        ),
        FindingCategory.SQL_INJECTION: (
            Severity.HIGH,
            _compile(
                r"\bunion\s+(?:all\s+)?select\b",
                r"\bdrop\s+table\b",
                r"\bdelete\s+from\b",
                r"\binsert\s+into\b",
                r"\bupdate\s+\w+\s+set\b",
                r"\balter\s+table\b",
                r"'\s*(?:or|and)\s*'",
                r"'\s*(?:--|#)",
                r";\s*--",
                r"\bexec(?:ute)?\s*\(",
                r"\bxp_\w+",
                r"\bsp_(?:executesql|configure|oacreate|addlogin)\b",
            ),
        ),
        FindingCategory.PATH_TRAVERSAL: (
            Severity.MEDIUM,
            _compile(
                r"\.\./",
                r"\.\.\\",
                r"/etc/passwd",
                r"[/\\]windows[/\\]system32",
                r"\b(?:file|ftp)://",
            ),
        ),
    }
    _SUSPICIOUS_NAME_RE: ClassVar[re.Pattern[str]] = re.compile(r'[<>:"|?*\x00-\x1f]')

    AVERAGE_LINE_LIMIT: ClassVar[int] = 10_000
    NON_ASCII_RATIO_LIMIT: ClassVar[float] = 0.1
    REPEATED_LINE_MIN: ClassVar[int] = 3
    REPEATED_PATTERN_LIMIT: ClassVar[int] = 100

    def __init__(self, max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE) -> None:
        self._max_file_size = max_file_size_bytes

    def prescan(self, filename: str, declared_type: str, size: int) -> PrescanResult:
        """Check metadata only. Rejections abort ingestion in every mode."""
        rejections: list[str] = []
        issues: list[str] = []
        warnings: list[str] = []

        if size <= 0:
            rejections.append("file is empty")
        elif size > self._max_file_size:
            rejections.append(
                f"file size {size} bytes exceeds the limit of {self._max_file_size} bytes"
            )

        if not filename.strip():
            rejections.append("filename is missing")
        if "/" in filename or "\\" in filename or ".." in filename:
            rejections.append("filename contains path separators or '..'")

        suffix = PurePosixPath(filename.lower()).suffix
        if suffix in BLOCKED_EXTENSIONS:
            rejections.append(f"extension '{suffix}' is not allowed")

        if self._SUSPICIOUS_NAME_RE.search(filename):
            issues.append("filename contains suspicious characters")
        if len(filename) > 255:
            issues.append("filename is longer than 255 characters")

        mime = (declared_type or "").split(";", 1)[0].strip().lower()
        if mime and mime not in ALLOWED_MIME_TYPES:
            warnings.append(f"declared type '{mime}' is not on the allowed list")

        result = PrescanResult(
            passed=not rejections and not issues,
            rejections=tuple(rejections),
            issues=tuple(issues),
            warnings=tuple(warnings),
        )
        Log.info(
            f"Pre-scan {'passed' if result.passed else 'failed'}",
            file=filename,
            stage="prescan",
        )
        return result

    def postscan(self, text: str) -> PostscanResult:
        """Scan normalized content for injection and traversal patterns."""
        findings: list[SecurityFinding] = []
        for category, (severity, patterns) in self._PATTERNS.items():
            count = sum(len(pattern.findall(text)) for pattern in patterns)
            if count:
                findings.append(SecurityFinding(category, severity, count))

        warnings: list[str] = []
        if "�" in text:
            warnings.append("content contains replacement characters")
        return PostscanResult(findings=tuple(findings), warnings=tuple(warnings))

    def deep_scan(self, text: str) -> DeepAnalysis:
        lines = text.split("\n")
        average = sum(len(line) for line in lines) / len(lines) if lines else 0.0
        non_ascii = sum(1 for char in text if ord(char) > 127)
        ratio = non_ascii / len(text) if text else 0.0
        repeated = Counter(line for line in lines if line.strip())
        patterns = sum(1 for count in repeated.values() if count > self.REPEATED_LINE_MIN)

        anomalies: list[str] = []
        risk = RiskLevel.LOW
        if average > self.AVERAGE_LINE_LIMIT:
            anomalies.append(f"average line length {average:.0f} is unusually long")
            risk = RiskLevel.MEDIUM
        if ratio > self.NON_ASCII_RATIO_LIMIT:
            anomalies.append(f"non-ASCII character ratio {ratio:.2%} is unusually high")
        if patterns > self.REPEATED_PATTERN_LIMIT:
            anomalies.append(f"{patterns} lines repeat more than {self.REPEATED_LINE_MIN} times")

        return DeepAnalysis(
            average_line_length=round(average, 2),
            non_ascii_ratio=round(ratio, 4),
            repeated_patterns=patterns,
            anomalies=tuple(anomalies),
            risk=risk,
        )

    @staticmethod
    def overall_risk(
        prescan: PrescanResult,
        postscan: PostscanResult | None,
        deep: DeepAnalysis | None = None,
    ) -> RiskLevel:
        """High on any High finding; Medium on Medium findings or any warning."""
        highest = postscan.highest_severity if postscan else None
        if highest is Severity.HIGH:
            return RiskLevel.HIGH
        has_warnings = bool(
            prescan.warnings
            or prescan.issues
            or (postscan and postscan.warnings)
        )
        if highest is Severity.MEDIUM or has_warnings:
            return RiskLevel.MEDIUM
        if deep is not None and deep.risk is not RiskLevel.LOW:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW
