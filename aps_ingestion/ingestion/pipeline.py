import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

from aps_ingestion.ingestion.models import (
    CanonicalRecord,
    DeepAnalysis,
    DetectedFormat,
    DomainType,
    DuplicateCandidate,
    IngestionOptions,
    NormalizationOutcome,
    ParseResult,
    PostscanResult,
    PrescanResult,
    ValidationStats,
)
from aps_ingestion.ingestion.parsers.spreadsheet import Sheet
from aps_ingestion.logging.logger import Log
from aps_ingestion.report.models import StageEntry


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class IngestionContext:
    raw: bytes
    filename: str
    declared_type: str
    options: IngestionOptions
    cancel_event: threading.Event | None = None
    started_at: datetime = field(default_factory=_now)
    prescan: PrescanResult | None = None
    strict_violation: bool = False
    normalization: NormalizationOutcome | None = None
    sheets: list[Sheet] = field(default_factory=list)
    text: str = ""
    detected_format: DetectedFormat = DetectedFormat.UNKNOWN
    domain_type: DomainType = DomainType.UNKNOWN
    parse: ParseResult = field(default_factory=ParseResult)
    postscan: PostscanResult | None = None
    deep_analysis: DeepAnalysis | None = None
    validation: ValidationStats | None = None
    duplicates: list[DuplicateCandidate] = field(default_factory=list)
    duplicate_warnings: list[str] = field(default_factory=list)
    accepted_records: list[CanonicalRecord] = field(default_factory=list)
    stages: list[StageEntry] = field(default_factory=list)

    def log_stage(self, stage: str, message: str) -> None:
        elapsed = round((_now() - self.started_at).total_seconds() * 1000, 2)
        self.stages.append(StageEntry(stage=stage, message=message, elapsed_ms=elapsed))
        Log.info(message, file=self.filename, stage=stage)


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: IngestionContext) -> IngestionContext:
        raise NotImplementedError
