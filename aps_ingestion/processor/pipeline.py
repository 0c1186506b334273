from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from aps_ingestion.ingestion.models import BulkAction, CanonicalRecord, Resolution
from aps_ingestion.processor.models import UploadedFile
from aps_ingestion.report.models import ValidationReport
from aps_ingestion.storage.base import PersistResult


@dataclass(slots=True)
class ProcessorContext:
    uploaded_file_id: int
    job_id: int | None = None
    uploaded_file: UploadedFile | None = None
    raw_bytes: bytes = b""
    report: ValidationReport | None = None
    persisted: PersistResult | None = None
    error_message: str = ""
    # set only when resolving duplicates
    natural_key: str | None = None
    resolution: Resolution | None = None
    bulk_action: BulkAction | None = None
    resolved: list[CanonicalRecord] = field(default_factory=list)


class ProcessorStep(ABC):
    @abstractmethod
    def run(self, context: ProcessorContext) -> ProcessorContext:
        raise NotImplementedError
