from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from aps_ingestion.ingestion.models import (
    CanonicalRecord,
    DeepAnalysis,
    DetectedFormat,
    DomainType,
    DuplicateCandidate,
    PostscanResult,
    PrescanResult,
    ReportStatus,
    RiskLevel,
    ValidationStats,
)


@dataclass(frozen=True)
class FileMetadata:
    filename: str
    size_bytes: int
    declared_type: str
    detected_format: DetectedFormat = DetectedFormat.UNKNOWN
    domain_type: DomainType = DomainType.UNKNOWN
    encoding: str = ""
    original_sha256: str = ""
    normalized_sha256: str = ""
    normalized_size: int = 0


@dataclass(frozen=True)
class SecuritySummary:
    prescan: PrescanResult
    postscan: PostscanResult | None = None
    deep_analysis: DeepAnalysis | None = None
    overall_risk: RiskLevel = RiskLevel.LOW


@dataclass(frozen=True)
class QuarantineDecision:
    required: bool = False
    queued: bool = False
    overridden: bool = False
    reason: str = ""
    justification: str | None = None


@dataclass(frozen=True)
class StageEntry:
    stage: str
    message: str
    elapsed_ms: float


@dataclass(frozen=True)
class ValidationReport:
    """Immutable outcome of one ingestion run; the only artifact handed to storage."""

    validation_id: str
    created_at: datetime
    processing_time_ms: float
    status: ReportStatus
    file: FileMetadata
    security: SecuritySummary
    validation: ValidationStats = field(default_factory=ValidationStats)
    corrections: tuple[str, ...] = ()
    corruption_indicators: tuple[str, ...] = ()
    parse_errors: tuple[str, ...] = ()
    parse_warnings: tuple[str, ...] = ()
    duplicates: tuple[DuplicateCandidate, ...] = ()
    quarantine: QuarantineDecision = field(default_factory=QuarantineDecision)
    issues: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    next_steps: tuple[str, ...] = ()
    records: tuple[CanonicalRecord, ...] = ()
    stages: tuple[StageEntry, ...] = ()

    @property
    def accepted(self) -> bool:
        """True when records may be handed to storage."""
        if self.status is ReportStatus.FAILED:
            return False
        return not self.quarantine.required or self.quarantine.overridden
