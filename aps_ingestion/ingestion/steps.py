from dataclasses import replace

from aps_ingestion.ingestion.detector import Detector, is_spreadsheet
from aps_ingestion.ingestion.duplicates import DuplicateResolver
from aps_ingestion.ingestion.encoding import EncodingNormalizer, structural_indicators
from aps_ingestion.ingestion.exceptions import RejectedFileError, StrictModeViolation
from aps_ingestion.ingestion.models import (
    DetectedFormat,
    DomainType,
    NormalizationOutcome,
)
from aps_ingestion.ingestion.parsers.factory import ParserFactory
from aps_ingestion.ingestion.parsers.spreadsheet import SpreadsheetReader
from aps_ingestion.ingestion.parsers.tabular import TabularParser
from aps_ingestion.ingestion.pipeline import IngestionContext, PipelineStep
from aps_ingestion.ingestion.security import SecurityScanner
from aps_ingestion.ingestion.validator import DomainValidator
from aps_ingestion.ingestion.values import ValueStandardizer
from aps_ingestion.logging.logger import Log
from aps_ingestion.storage.exceptions import RecordStoreError


class PrescanStep(PipelineStep):
    def __init__(self, scanner: SecurityScanner) -> None:
        self._scanner = scanner

    def run(self, context: IngestionContext) -> IngestionContext:
        result = self._scanner.prescan(context.filename, context.declared_type, len(context.raw))
        context.prescan = result
        if result.rejections:
            raise RejectedFileError(list(result.rejections))
        if context.options.strict_mode and not result.passed:
            context.strict_violation = True
            raise StrictModeViolation(list(result.issues))
        context.log_stage("prescan", f"Pre-scan passed for {len(context.raw)} bytes")
        return context


class NormalizeStep(PipelineStep):
    def __init__(
        self,
        normalizer: EncodingNormalizer,
        spreadsheet_reader: SpreadsheetReader,
    ) -> None:
        self._normalizer = normalizer
        self._spreadsheet_reader = spreadsheet_reader

    def run(self, context: IngestionContext) -> IngestionContext:
        if is_spreadsheet(context.raw, context.filename):
            context.sheets = self._spreadsheet_reader.read(context.raw)
            context.text = "\n".join(sheet.as_text() for sheet in context.sheets)
            context.normalization = NormalizationOutcome(text=context.text, encoding="xlsx")
            context.detected_format = DetectedFormat.TABULAR
            context.log_stage("normalize", f"Read {len(context.sheets)} worksheet(s)")
            return context

        outcome = self._normalizer.normalize(context.raw, context.options.declared_encoding)
        context.normalization = outcome
        context.text = outcome.text
        context.log_stage(
            "normalize",
            f"Decoded as {outcome.encoding} with {len(outcome.corrections)} correction(s)",
        )
        return context


class DetectStep(PipelineStep):
    def __init__(self, detector: Detector) -> None:
        self._detector = detector

    def run(self, context: IngestionContext) -> IngestionContext:
        if not context.sheets:
            context.detected_format = self._detector.detect_format(context.filename, context.text)

        expected = context.options.expected_domain_type
        if expected is not None and expected is not DomainType.UNKNOWN:
            context.domain_type = expected
        elif context.sheets:
            context.domain_type = self._detector.domain_from_name(context.filename)
        else:
            context.domain_type = self._detector.detect_domain_type(
                context.filename, context.text, context.detected_format
            )

        if context.domain_type is DomainType.UNKNOWN and not context.sheets:
            context.parse.warnings.append("could not determine the domain type of the file")
        if context.normalization is not None and not context.sheets:
            found = structural_indicators(context.text, context.detected_format)
            if found:
                context.normalization = replace(
                    context.normalization,
                    corruption_indicators=(*context.normalization.corruption_indicators, *found),
                )
        context.log_stage(
            "detect",
            f"Detected {context.detected_format.value} / {context.domain_type.value}",
        )
        return context


class ParseStep(PipelineStep):
    def __init__(self, detector: Detector, tabular_parser: TabularParser) -> None:
        self._detector = detector
        self._tabular_parser = tabular_parser

    def run(self, context: IngestionContext) -> IngestionContext:
        if context.sheets:
            for sheet in context.sheets:
                domain_type = self._sheet_domain(context, sheet.name, sheet.rows)
                context.parse.extend(
                    self._tabular_parser.parse_rows(
                        sheet.rows, domain_type, context.cancel_event, label=f"{sheet.name} row"
                    )
                )
        elif context.detected_format is DetectedFormat.UNKNOWN:
            context.parse.errors.append("unrecognized file format")
        else:
            parser = ParserFactory.create(context.detected_format)
            context.parse.extend(
                parser.parse(context.text, context.domain_type, context.cancel_event)
            )

        for error in context.parse.errors:
            Log.warning(error, file=context.filename, stage="parse")
        context.log_stage(
            "parse",
            f"Parsed {len(context.parse.records)} record(s), "
            f"{len(context.parse.errors)} error(s), {len(context.parse.warnings)} warning(s)",
        )
        return context

    def _sheet_domain(
        self,
        context: IngestionContext,
        sheet_name: str,
        rows: list[tuple[int, list[str]]],
    ) -> DomainType:
        if context.options.expected_domain_type not in (None, DomainType.UNKNOWN):
            return context.domain_type
        by_name = self._detector.domain_from_name(sheet_name)
        if by_name is not DomainType.UNKNOWN:
            return by_name
        if context.domain_type is not DomainType.UNKNOWN:
            return context.domain_type
        return self._detector.fingerprint(rows[0][1]) if rows else DomainType.UNKNOWN


class StandardizeValuesStep(PipelineStep):
    def __init__(self, standardizer: ValueStandardizer) -> None:
        self._standardizer = standardizer

    def run(self, context: IngestionContext) -> IngestionContext:
        outcome = self._standardizer.standardize(context.parse.records)
        context.parse.records = list(outcome.records)
        if outcome.corrections and context.normalization is not None:
            context.normalization = replace(
                context.normalization,
                corrections=(*context.normalization.corrections, *outcome.corrections),
            )
        context.log_stage(
            "standardize",
            f"Standardized values: {', '.join(outcome.corrections) or 'no changes'}",
        )
        return context


class PostscanStep(PipelineStep):
    def __init__(self, scanner: SecurityScanner) -> None:
        self._scanner = scanner

    def run(self, context: IngestionContext) -> IngestionContext:
        context.postscan = self._scanner.postscan(context.text)
        context.log_stage(
            "postscan", f"Post-scan found {len(context.postscan.findings)} finding categories"
        )
        return context


class DeepScanStep(PipelineStep):
    def __init__(self, scanner: SecurityScanner) -> None:
        self._scanner = scanner

    def run(self, context: IngestionContext) -> IngestionContext:
        if not context.options.perform_deep_scan:
            return context
        context.deep_analysis = self._scanner.deep_scan(context.text)
        context.log_stage(
            "deep_scan", f"Deep scan found {len(context.deep_analysis.anomalies)} anomalies"
        )
        return context


class ValidateStep(PipelineStep):
    def __init__(self, validator: DomainValidator) -> None:
        self._validator = validator

    def run(self, context: IngestionContext) -> IngestionContext:
        stats = self._validator.validate_records(context.parse.records)
        context.validation = stats
        context.log_stage(
            "validate",
            f"{stats.valid_records}/{stats.records_found} valid, quality {stats.quality_score}",
        )
        return context


class DuplicateStep(PipelineStep):
    def __init__(self, resolver: DuplicateResolver) -> None:
        self._resolver = resolver

    def run(self, context: IngestionContext) -> IngestionContext:
        if context.validation is None:
            raise ValueError("IngestionContext.validation must be set before duplicate checks")
        valid = [
            record
            for record, result in zip(context.parse.records, context.validation.results)
            if result.is_valid
        ]
        try:
            candidates, warnings = self._resolver.find_duplicates(valid)
        except RecordStoreError as exc:
            context.duplicate_warnings.append(f"duplicate check unavailable: {exc}")
            context.accepted_records = valid
            Log.error(f"Duplicate lookup failed: {exc}", file=context.filename)
            return context

        held = {id(candidate.incoming) for candidate in candidates}
        context.duplicates = candidates
        context.duplicate_warnings.extend(warnings)
        context.accepted_records = [record for record in valid if id(record) not in held]
        context.log_stage(
            "duplicates",
            f"{len(candidates)} duplicate(s), {len(context.accepted_records)} record(s) accepted",
        )
        return context
