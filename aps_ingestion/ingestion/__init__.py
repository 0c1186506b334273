from aps_ingestion.ingestion.ingestor import Ingestor, build_ingestor
from aps_ingestion.ingestion.models import (
    CanonicalRecord,
    DetectedFormat,
    DomainType,
    IngestionOptions,
    ReportStatus,
    Resolution,
)

__all__ = [
    "CanonicalRecord",
    "DetectedFormat",
    "DomainType",
    "IngestionOptions",
    "Ingestor",
    "ReportStatus",
    "Resolution",
    "build_ingestor",
]
