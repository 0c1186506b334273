from __future__ import annotations

import hashlib
import threading

from aps_ingestion.config.settings import Settings
from aps_ingestion.ingestion.detector import Detector
from aps_ingestion.ingestion.duplicates import DuplicateResolver
from aps_ingestion.ingestion.encoding import EncodingNormalizer
from aps_ingestion.ingestion.exceptions import RejectedFileError, StrictModeViolation
from aps_ingestion.ingestion.models import IngestionOptions, PrescanResult, RiskLevel
from aps_ingestion.ingestion.parsers.spreadsheet import SpreadsheetReader
from aps_ingestion.ingestion.parsers.tabular import TabularParser
from aps_ingestion.ingestion.pipeline import IngestionContext, PipelineStep
from aps_ingestion.ingestion.schemas import build_schema_registry
from aps_ingestion.ingestion.security import SecurityScanner
from aps_ingestion.ingestion.steps import (
    DeepScanStep,
    DetectStep,
    DuplicateStep,
    NormalizeStep,
    ParseStep,
    PostscanStep,
    PrescanStep,
    StandardizeValuesStep,
    ValidateStep,
)
from aps_ingestion.ingestion.validator import DomainValidator
from aps_ingestion.ingestion.values import ValueStandardizer
from aps_ingestion.logging.logger import Log
from aps_ingestion.report.builder import ReportBuilder
from aps_ingestion.report.models import FileMetadata, SecuritySummary, ValidationReport
from aps_ingestion.storage.base import BaseRecordStore


class Ingestor:
    """Runs one file through the ingestion pipeline.

    Pipeline: pre-scan -> normalize -> detect -> parse -> post-scan ->
    deep scan -> validate -> duplicates -> report.

    ``ingest`` is total: a rejected file or a crashing stage still yields a
    report, with status Failed.
    """

    def __init__(
        self,
        steps: list[PipelineStep],
        report_builder: ReportBuilder,
        scanner: SecurityScanner,
    ) -> None:
        self._steps = steps
        self._report_builder = report_builder
        self._scanner = scanner

    def ingest(
        self,
        file_bytes: bytes,
        filename: str,
        declared_type: str = "",
        options: IngestionOptions | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ValidationReport:
        context = IngestionContext(
            raw=file_bytes,
            filename=filename,
            declared_type=declared_type,
            options=options or IngestionOptions(),
            cancel_event=cancel_event,
        )
        rejection: list[str] = []
        fatal_error: str | None = None
        try:
            for step in self._steps:
                context = step.run(context)
        except RejectedFileError as exc:
            rejection = exc.reasons
            Log.warning(f"File rejected: {exc}", file=filename)
        except Exception as exc:  # noqa: BLE001
            fatal_error = f"{type(exc).__name__}: {exc}"
            Log.exception(f"Ingestion failed: {fatal_error}", file=filename)

        return self._build_report(context, rejection, fatal_error)

    def _build_report(
        self,
        context: IngestionContext,
        rejection: list[str],
        fatal_error: str | None,
    ) -> ValidationReport:
        prescan = context.prescan or PrescanResult(passed=False)
        risk = self._scanner.overall_risk(prescan, context.postscan, context.deep_analysis)
        if context.strict_violation:
            risk = RiskLevel.HIGH

        normalized = context.text.encode("utf-8")
        file = FileMetadata(
            filename=context.filename,
            size_bytes=len(context.raw),
            declared_type=context.declared_type,
            detected_format=context.detected_format,
            domain_type=context.domain_type,
            encoding=context.normalization.encoding if context.normalization else "",
            original_sha256=hashlib.sha256(context.raw).hexdigest(),
            normalized_sha256=hashlib.sha256(normalized).hexdigest() if context.text else "",
            normalized_size=len(normalized),
        )
        return self._report_builder.build(
            file=file,
            security=SecuritySummary(
                prescan=prescan,
                postscan=context.postscan,
                deep_analysis=context.deep_analysis,
                overall_risk=risk,
            ),
            options=context.options,
            started_at=context.started_at,
            normalization=context.normalization,
            parse=context.parse,
            validation=context.validation,
            duplicates=context.duplicates,
            duplicate_warnings=context.duplicate_warnings,
            accepted_records=context.accepted_records,
            stages=context.stages,
            rejection=rejection,
            fatal_error=fatal_error,
        )


def build_ingestor(settings: Settings, store: BaseRecordStore) -> Ingestor:
    """Build an Ingestor with the default stage chain."""
    schemas = build_schema_registry()
    detector = Detector(schemas)
    normalizer = EncodingNormalizer(settings.encoding_fallbacks)
    scanner = SecurityScanner(settings.max_file_size_bytes)
    steps: list[PipelineStep] = [
        PrescanStep(scanner),
        NormalizeStep(normalizer, SpreadsheetReader(normalizer)),
        DetectStep(detector),
        ParseStep(detector, TabularParser()),
        StandardizeValuesStep(ValueStandardizer(schemas)),
        PostscanStep(scanner),
        DeepScanStep(scanner),
        ValidateStep(DomainValidator(schemas)),
        DuplicateStep(DuplicateResolver(store)),
    ]
    return Ingestor(
        steps=steps,
        report_builder=ReportBuilder(settings.quality_warning_threshold),
        scanner=scanner,
    )
