from __future__ import annotations

from collections import Counter
from typing import Mapping

from aps_ingestion.ingestion.models import (
    CanonicalRecord,
    DomainType,
    RecordValidation,
    ValidationStats,
)
from aps_ingestion.ingestion.schemas import FORMAT_CHECKS, ValidationSchema
from aps_ingestion.logging.logger import Log

# Structural gaps, tallied in missing_fields beside field names.
COLUMN_GAP = "__columns__"
SCHEMA_GAP = "__schema__"


class DomainValidator:
    """Check parsed records against their domain schema.

    Missing required fields invalidate a record; format violations on present
    fields only produce warnings.
    """

    def __init__(self, schemas: Mapping[DomainType, ValidationSchema]) -> None:
        self._schemas = schemas

    def validate_records(
        self,
        records: list[CanonicalRecord],
        domain_type: DomainType | None = None,
    ) -> ValidationStats:
        """Validate ``records`` against ``domain_type``, or each record's own type."""
        results: list[RecordValidation] = []
        missing: Counter[str] = Counter()

        for index, record in enumerate(records):
            target = domain_type or record.domain_type
            result = self._validate_record(index, record, target, missing)
            results.append(result)

        valid = sum(1 for r in results if r.is_valid)
        found = len(records)
        score = round(valid / found * 100, 2) if found else 0.0
        Log.debug(f"Validated {found} records: {valid} valid, quality {score}")
        return ValidationStats(
            records_found=found,
            valid_records=valid,
            invalid_records=found - valid,
            missing_fields=dict(missing),
            quality_score=score,
            results=tuple(results),
        )

    def _validate_record(
        self,
        index: int,
        record: CanonicalRecord,
        domain_type: DomainType,
        missing: Counter[str],
    ) -> RecordValidation:
        errors: list[str] = []
        warnings: list[str] = []

        schema = self._schemas.get(domain_type)
        if schema is None:
            errors.append(f"no validation schema for domain '{domain_type.value}'")
            missing[SCHEMA_GAP] += 1
            return RecordValidation(index, domain_type, False, tuple(errors))

        if record.partial:
            errors.append("column count does not match header")
            missing[COLUMN_GAP] += 1

        for name in schema.required:
            if not record.get(name):
                errors.append(f"missing required field '{name}'")
                missing[name] += 1

        for name, fmt in schema.formats.items():
            value = record.get(name)
            if value and not FORMAT_CHECKS[fmt](value):
                warnings.append(f"field '{name}' has invalid format (expected {fmt.value})")

        return RecordValidation(
            index=index,
            domain_type=domain_type,
            is_valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
        )
