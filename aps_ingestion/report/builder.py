from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

from aps_ingestion.ingestion.models import (
    CanonicalRecord,
    DuplicateCandidate,
    IngestionOptions,
    NormalizationOutcome,
    ParseResult,
    ReportStatus,
    Resolution,
    RiskLevel,
    ValidationStats,
)
from aps_ingestion.logging.logger import Log
from aps_ingestion.report.models import (
    FileMetadata,
    QuarantineDecision,
    SecuritySummary,
    StageEntry,
    ValidationReport,
)

LOW_QUALITY_THRESHOLD = 70.0


class ReportBuilder:
    """Assemble the final report and derive its status.

    Failed: the file was rejected, a stage crashed, nothing usable was parsed
    or no record passed validation. Warning: quality below the threshold,
    Medium/High risk, corruption indicators, or parse diagnostics.
    """

    def __init__(self, quality_warning_threshold: float = 80.0) -> None:
        self._threshold = quality_warning_threshold

    def build(
        self,
        *,
        file: FileMetadata,
        security: SecuritySummary,
        options: IngestionOptions,
        started_at: datetime,
        normalization: NormalizationOutcome | None = None,
        parse: ParseResult | None = None,
        validation: ValidationStats | None = None,
        duplicates: Sequence[DuplicateCandidate] = (),
        duplicate_warnings: Sequence[str] = (),
        accepted_records: Sequence[CanonicalRecord] = (),
        stages: Sequence[StageEntry] = (),
        rejection: Sequence[str] = (),
        fatal_error: str | None = None,
    ) -> ValidationReport:
        parse = parse or ParseResult()
        validation = validation or ValidationStats()
        corrections = normalization.corrections if normalization else ()
        indicators = normalization.corruption_indicators if normalization else ()
        risk = security.overall_risk

        issues = [*rejection, *parse.errors]
        if fatal_error:
            issues.append(fatal_error)
        for result in validation.results:
            issues.extend(f"record {result.index}: {error}" for error in result.errors)

        warnings = [
            *security.prescan.issues,
            *security.prescan.warnings,
            *(security.postscan.warnings if security.postscan else ()),
            *parse.warnings,
            *duplicate_warnings,
        ]
        for finding in security.postscan.findings if security.postscan else ():
            warnings.append(
                f"{finding.match_count} {finding.category.value} pattern match(es) "
                f"({finding.severity.value} severity)"
            )
        if security.deep_analysis:
            warnings.extend(security.deep_analysis.anomalies)
        for result in validation.results:
            warnings.extend(f"record {result.index}: {warning}" for warning in result.warnings)

        status = self._status(
            rejected=bool(rejection) or fatal_error is not None,
            parse=parse,
            validation=validation,
            risk=risk,
            corrupted=bool(indicators),
            extra_warnings=bool(duplicate_warnings),
        )
        quarantine = self._quarantine(risk, options)
        pending = sum(1 for d in duplicates if d.resolution is Resolution.PENDING)

        finished = datetime.now(timezone.utc)
        report = ValidationReport(
            validation_id=f"val_{uuid.uuid4().hex}",
            created_at=finished,
            processing_time_ms=round((finished - started_at).total_seconds() * 1000, 2),
            status=status,
            file=file,
            security=security,
            validation=validation,
            corrections=tuple(corrections),
            corruption_indicators=tuple(indicators),
            parse_errors=tuple(parse.errors),
            parse_warnings=tuple(parse.warnings),
            duplicates=tuple(duplicates),
            quarantine=quarantine,
            issues=tuple(issues),
            warnings=tuple(warnings),
            recommendations=tuple(
                self._recommendations(validation, risk, bool(indicators), pending)
            ),
            next_steps=tuple(self._next_steps(status, quarantine, pending)),
            records=tuple(accepted_records) if status is not ReportStatus.FAILED else (),
            stages=tuple(stages),
        )
        Log.info(
            f"Report {report.validation_id}: {status.value}, quality "
            f"{validation.quality_score}, risk {risk.value}",
            file=file.filename,
            stage="report",
        )
        return report

    def _status(
        self,
        *,
        rejected: bool,
        parse: ParseResult,
        validation: ValidationStats,
        risk: RiskLevel,
        corrupted: bool,
        extra_warnings: bool,
    ) -> ReportStatus:
        if rejected:
            return ReportStatus.FAILED
        if validation.records_found == 0:
            return ReportStatus.FAILED if parse.errors else ReportStatus.WARNING
        if validation.valid_records == 0:
            return ReportStatus.FAILED
        if (
            validation.quality_score < self._threshold
            or risk is not RiskLevel.LOW
            or corrupted
            or parse.errors
            or parse.warnings
            or extra_warnings
        ):
            return ReportStatus.WARNING
        return ReportStatus.PASSED

    @staticmethod
    def _quarantine(risk: RiskLevel, options: IngestionOptions) -> QuarantineDecision:
        if risk is not RiskLevel.HIGH:
            return QuarantineDecision()
        reason = "high security risk detected"
        if options.force_justification:
            Log.warning(f"Quarantine overridden: {options.force_justification}")
            return QuarantineDecision(
                required=True,
                overridden=True,
                reason=reason,
                justification=options.force_justification,
            )
        return QuarantineDecision(
            required=True,
            queued=options.allow_quarantine,
            reason=reason,
        )

    @staticmethod
    def _recommendations(
        validation: ValidationStats,
        risk: RiskLevel,
        corrupted: bool,
        pending_duplicates: int,
    ) -> list[str]:
        recommendations: list[str] = []
        if validation.records_found and validation.quality_score < LOW_QUALITY_THRESHOLD:
            recommendations.append(
                "Review the source data: fewer than 70% of the records are valid"
            )
        named = {k: v for k, v in validation.missing_fields.items() if not k.startswith("__")}
        if named:
            field_name, count = max(named.items(), key=lambda item: item[1])
            recommendations.append(
                f"Fill in '{field_name}', missing in {count} record(s)"
            )
        if risk is RiskLevel.MEDIUM:
            recommendations.append("Run an additional security review of this file")
        if risk is RiskLevel.HIGH:
            recommendations.append("Do not use this data until the security findings are cleared")
        if corrupted:
            recommendations.append(
                "Verify the source file: it shows signs of encoding corruption or truncation"
            )
        if pending_duplicates:
            recommendations.append(f"Resolve {pending_duplicates} duplicate record(s)")
        return recommendations

    @staticmethod
    def _next_steps(
        status: ReportStatus,
        quarantine: QuarantineDecision,
        pending_duplicates: int,
    ) -> list[str]:
        if status is ReportStatus.FAILED:
            return [
                "Correct the issues listed in this report",
                "Upload the corrected file again",
            ]
        if quarantine.required and not quarantine.overridden:
            return [
                "The file is held for manual security review",
                "Proceed only with a documented justification",
            ]
        steps: list[str] = []
        if status is ReportStatus.WARNING:
            steps.append("Review the warnings and the flagged records")
        if pending_duplicates:
            steps.append("Choose keep, replace, merge or skip for each duplicate")
        steps.append("Store the accepted records")
        return steps
