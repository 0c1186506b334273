"""Field-value standardization.

Parsers keep values as the source wrote them. This pass rewrites the
formatted kinds to one canonical form so that stored records and natural-key
comparisons do not depend on how each hospital formats dates, phones or CPFs:

- dates ``DD/MM/YYYY`` and ``DD-MM-YYYY`` become ISO ``YYYY-MM-DD``;
- phones with 10 or 11 digits become ``(XX) XXXX-XXXX`` / ``(XX) XXXXX-XXXX``;
- CPFs with 11 digits become ``XXX.XXX.XXX-XX``;
- free-text values starting with ``=``, ``+``, ``-`` or ``@`` are prefixed with
  ``'`` so spreadsheet tools never evaluate them as formulas.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, replace
from typing import Any, Callable, ClassVar, Mapping

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType
from aps_ingestion.ingestion.schemas import FieldFormat, ValidationSchema

_NON_DIGITS = re.compile(r"\D")
_DMY_RE = re.compile(r"^(\d{2})[/-](\d{2})[/-](\d{4})$")
_FORMULA_PREFIXES = ("=", "+", "-", "@")


def iso_date(value: str) -> str:
    match = _DMY_RE.match(value)
    if match is None:
        return value
    day, month, year = match.groups()
    return f"{year}-{month}-{day}"


def format_phone(value: str) -> str:
    digits = _NON_DIGITS.sub("", value)
    if len(digits) == 11:
        return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    return value


def format_cpf(value: str) -> str:
    digits = _NON_DIGITS.sub("", value)
    if len(digits) != 11:
        return value
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def escape_formula(value: str) -> str:
    return f"'{value}" if value.startswith(_FORMULA_PREFIXES) else value


@dataclass(frozen=True)
class StandardizationResult:
    records: tuple[CanonicalRecord, ...]
    corrections: tuple[str, ...] = ()


class ValueStandardizer:
    """Rewrite record values according to each field's schema format."""

    _FORMATTERS: ClassVar[dict[FieldFormat, tuple[str, Callable[[str], str]]]] = {
        FieldFormat.DATE: ("date value(s) converted to ISO 8601", iso_date),
        FieldFormat.PHONE: ("phone value(s) reformatted", format_phone),
        FieldFormat.CPF: ("CPF value(s) reformatted", format_cpf),
    }
    _NOT_FREE_TEXT: ClassVar[frozenset[FieldFormat]] = frozenset({
        FieldFormat.DATE,
        FieldFormat.PHONE,
        FieldFormat.CPF,
        FieldFormat.DECIMAL,
        FieldFormat.NUMERIC_CODE,
    })

    def __init__(self, schemas: Mapping[DomainType, ValidationSchema]) -> None:
        self._schemas = schemas

    def standardize(self, records: list[CanonicalRecord]) -> StandardizationResult:
        counts: Counter[str] = Counter()
        output: list[CanonicalRecord] = []
        for record in records:
            fields = self._standardize_fields(record, counts)
            output.append(record if fields == record.fields else replace(record, fields=fields))

        corrections = [f"{count} {label}" for label, count in counts.items()]
        return StandardizationResult(records=tuple(output), corrections=tuple(corrections))

    def _standardize_fields(
        self,
        record: CanonicalRecord,
        counts: Counter[str],
    ) -> dict[str, Any]:
        schema = self._schemas.get(record.domain_type)
        formats = schema.formats if schema is not None else {}
        fields: dict[str, Any] = {}
        for name, value in record.fields.items():
            if not isinstance(value, str) or not value:
                fields[name] = value
                continue
            fmt = formats.get(name)
            label = ""
            new_value = value
            if fmt in self._FORMATTERS:
                label, formatter = self._FORMATTERS[fmt]
                new_value = formatter(value)
            elif fmt not in self._NOT_FREE_TEXT:
                label = "formula-like value(s) escaped"
                new_value = escape_formula(value)
            if new_value != value:
                counts[label] += 1
            fields[name] = new_value
        return fields
