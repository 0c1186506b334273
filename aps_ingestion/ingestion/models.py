from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DetectedFormat(str, Enum):
    TABULAR = "tabular"
    XML = "xml"
    JSON = "json"
    HL7 = "hl7"
    FHIR = "fhir"
    UNKNOWN = "unknown"


class DomainType(str, Enum):
    PHYSICIAN = "physician"
    HOSPITAL = "hospital"
    MUNICIPALITY = "municipality"
    STATE = "state"
    PATIENT = "patient"
    DIAGNOSIS_CODE = "diagnosis_code"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FindingCategory(str, Enum):
    MALICIOUS_SCRIPT = "malicious_script"
    SQL_INJECTION = "sql_injection"
    PATH_TRAVERSAL = "path_traversal"


class ReportStatus(str, Enum):
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class Resolution(str, Enum):
    PENDING = "pending"
    KEEP_EXISTING = "keep_existing"
    REPLACE = "replace"
    MERGE = "merge"
    SKIP = "skip"


class BulkAction(str, Enum):
    SKIP_ALL = "skip_all"
    FORCE = "force"


@dataclass(frozen=True)
class CanonicalRecord:
    """One parsed entity, independent of the format it came from."""

    domain_type: DomainType
    fields: dict[str, Any]
    source: str = ""
    partial: bool = False

    def get(self, name: str) -> str:
        """Return a field as stripped text, empty when missing."""
        value = self.fields.get(name)
        if value is None:
            return ""
        return str(value).strip()

    def is_populated(self) -> bool:
        return any(str(v).strip() for v in self.fields.values() if v is not None)


@dataclass
class ParseResult:
    """Records emitted by one parser run plus per-record diagnostics."""

    records: list[CanonicalRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False

    def extend(self, other: ParseResult) -> None:
        self.records.extend(other.records)
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.cancelled = self.cancelled or other.cancelled


@dataclass(frozen=True)
class NormalizationOutcome:
    text: str
    encoding: str
    corrections: tuple[str, ...] = ()
    corruption_indicators: tuple[str, ...] = ()


@dataclass(frozen=True)
class IngestionOptions:
    """Caller-provided knobs for one ingestion run."""

    strict_mode: bool = False
    allow_quarantine: bool = True
    perform_deep_scan: bool = False
    expected_domain_type: DomainType | None = None
    declared_encoding: str | None = None
    force_justification: str | None = None

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> IngestionOptions:
        values: dict[str, Any] = {
            "strict_mode": settings.strict_mode,
            "allow_quarantine": settings.allow_quarantine,
            "perform_deep_scan": settings.perform_deep_scan,
        }
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class SecurityFinding:
    category: FindingCategory
    severity: Severity
    match_count: int


@dataclass(frozen=True)
class PrescanResult:
    passed: bool
    rejections: tuple[str, ...] = ()
    issues: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class PostscanResult:
    findings: tuple[SecurityFinding, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def highest_severity(self) -> Severity | None:
        if any(f.severity is Severity.HIGH for f in self.findings):
            return Severity.HIGH
        if any(f.severity is Severity.MEDIUM for f in self.findings):
            return Severity.MEDIUM
        if self.findings:
            return Severity.LOW
        return None


@dataclass(frozen=True)
class DeepAnalysis:
    average_line_length: float
    non_ascii_ratio: float
    repeated_patterns: int
    anomalies: tuple[str, ...] = ()
    risk: RiskLevel = RiskLevel.LOW


@dataclass(frozen=True)
class RecordValidation:
    index: int
    domain_type: DomainType
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationStats:
    records_found: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    missing_fields: dict[str, int] = field(default_factory=dict)
    quality_score: float = 0.0
    results: tuple[RecordValidation, ...] = ()


@dataclass(frozen=True)
class ExistingRecord:
    """A stored entity returned by the storage collaborator's lookup."""

    ref: str
    domain_type: DomainType
    fields: dict[str, Any]


@dataclass
class DuplicateCandidate:
    """An incoming record whose natural key matches a stored one.

    ``resolution`` changes only through an explicit resolution action.
    """

    incoming: CanonicalRecord
    existing: ExistingRecord
    natural_key: str
    confidence: int
    differing_fields: tuple[str, ...] = ()
    resolution: Resolution = Resolution.PENDING
    resolved_record: CanonicalRecord | None = None

    @property
    def requires_write(self) -> bool:
        return self.resolution in (Resolution.REPLACE, Resolution.MERGE)
