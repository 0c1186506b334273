"""Format and domain-type detection.

Both detections are pure: the same filename and content always give the same
answer. Format is decided from content signatures first and the file extension
second; domain type from filename hints first and header fingerprinting second.
"""

from __future__ import annotations

import json
import re
from pathlib import PurePosixPath
from typing import Any, ClassVar, Mapping

from aps_ingestion.ingestion.models import DetectedFormat, DomainType
from aps_ingestion.ingestion.parsers.fields import first_record
from aps_ingestion.ingestion.parsers.tabular import detect_delimiter
from aps_ingestion.ingestion.schemas import ValidationSchema
from aps_ingestion.text.folding import TextFolder, get_folder

FHIR_NAMESPACE = "http://hl7.org/fhir"

_FHIR_DOMAINS: Mapping[str, DomainType] = {
    "Patient": DomainType.PATIENT,
    "Organization": DomainType.HOSPITAL,
    "Practitioner": DomainType.PHYSICIAN,
}

_EXTENSION_FORMATS: Mapping[str, DetectedFormat] = {
    ".csv": DetectedFormat.TABULAR,
    ".tsv": DetectedFormat.TABULAR,
    ".txt": DetectedFormat.TABULAR,
    ".xlsx": DetectedFormat.TABULAR,
    ".xls": DetectedFormat.TABULAR,
    ".json": DetectedFormat.JSON,
    ".xml": DetectedFormat.XML,
    ".hl7": DetectedFormat.HL7,
    ".fhir": DetectedFormat.FHIR,
}

_XLSX_MAGIC = b"PK\x03\x04"
_XLS_MAGIC = b"\xd0\xcf\x11\xe0"


def is_spreadsheet(raw: bytes, filename: str) -> bool:
    """True for Excel workbooks, which skip byte-level text decoding."""
    suffix = PurePosixPath(filename.lower()).suffix
    if raw.startswith(_XLSX_MAGIC) and suffix in {".xlsx", ".xlsm", ""}:
        return True
    return raw.startswith(_XLS_MAGIC) or suffix in {".xlsx", ".xls", ".xlsm"}


class Detector:
    """Decide the container format and the healthcare entity of a file."""

    _FILENAME_HINTS: ClassVar[tuple[tuple[DomainType, tuple[str, ...]], ...]] = (
        (DomainType.PHYSICIAN, ("medico", "doctor", "physician", "profissional")),
        (DomainType.HOSPITAL, ("hospit", "clinic", "estabelecimento", "unidade")),
        (DomainType.MUNICIPALITY, ("municipio", "cidade", "municipality", "city")),
        (DomainType.STATE, ("estado", "state")),
        (DomainType.PATIENT, ("paciente", "patient", "beneficiario")),
        (DomainType.DIAGNOSIS_CODE, ("cid10", "icd", "diagnos", "classificacao")),
    )
    _TOKEN_HINTS: ClassVar[dict[str, DomainType]] = {
        "uf": DomainType.STATE,
        "cid": DomainType.DIAGNOSIS_CODE,
    }

    def __init__(
        self,
        schemas: Mapping[DomainType, ValidationSchema],
        folder: TextFolder | None = None,
    ) -> None:
        self._schemas = schemas
        self._folder = folder or get_folder()

    def detect_format(self, filename: str, content: str) -> DetectedFormat:
        stripped = content.lstrip()
        if any(line.startswith("MSH|") for line in stripped.splitlines()[:50]):
            return DetectedFormat.HL7

        if stripped.startswith(("{", "[")):
            return DetectedFormat.FHIR if self._looks_like_fhir_json(stripped) else DetectedFormat.JSON

        if stripped.startswith("<"):
            return DetectedFormat.FHIR if FHIR_NAMESPACE in stripped[:2048] else DetectedFormat.XML

        suffix = PurePosixPath(filename.lower()).suffix
        by_extension = _EXTENSION_FORMATS.get(suffix)
        if by_extension is not None:
            return by_extension

        first_line = stripped.split("\n", 1)[0]
        if any(d in first_line for d in (",", ";", "\t", "|")):
            return DetectedFormat.TABULAR
        return DetectedFormat.UNKNOWN

    def detect_domain_type(
        self,
        filename: str,
        content: str,
        detected_format: DetectedFormat,
    ) -> DomainType:
        if detected_format is DetectedFormat.HL7:
            return DomainType.PATIENT
        if detected_format is DetectedFormat.FHIR:
            return self._fhir_domain(content)

        field_names = self._field_names(content, detected_format)
        if field_names is None:
            return DomainType.UNKNOWN

        hinted = self.domain_from_name(filename)
        if hinted is not DomainType.UNKNOWN:
            return hinted
        return self.fingerprint(field_names)

    def domain_from_name(self, name: str) -> DomainType:
        """Match a filename or worksheet name against the known entity hints."""
        stem = PurePosixPath(name).stem if "." in name else name
        folded = self._folder.fold_identifier(stem)
        for domain_type, hints in self._FILENAME_HINTS:
            if any(hint in folded for hint in hints):
                return domain_type
        for token in folded.split("_"):
            if token in self._TOKEN_HINTS:
                return self._TOKEN_HINTS[token]
        return DomainType.UNKNOWN

    def fingerprint(self, field_names: list[str]) -> DomainType:
        """Pick the schema whose required fields appear most often in the header.

        Ties resolve in registry order; zero hits is Unknown.
        """
        folded = {self._folder.fold_identifier(name) for name in field_names}
        best, best_hits = DomainType.UNKNOWN, 0
        for domain_type, schema in self._schemas.items():
            hits = sum(1 for name in schema.required if name in folded)
            if hits > best_hits:
                best, best_hits = domain_type, hits
        return best

    def _field_names(self, content: str, detected_format: DetectedFormat) -> list[str] | None:
        """Header names of the first record, or None when there are no data rows."""
        if detected_format is DetectedFormat.TABULAR:
            lines = [line for line in content.split("\n") if line.strip()]
            if len(lines) < 2:
                return None
            delimiter = detect_delimiter(lines[0])
            return [name.strip().strip('"') for name in lines[0].split(delimiter)]

        if detected_format is DetectedFormat.JSON:
            try:
                data = json.loads(content)
            except ValueError:
                return None
            record = first_record(data)
            return list(record) if record else None

        if detected_format is DetectedFormat.XML:
            names = re.findall(r"<([A-Za-z_][\w\-]*)[\s>/]", content)
            # root and the first record element carry no field data
            return names[2:] or None

        return None

    def _looks_like_fhir_json(self, content: str) -> bool:
        try:
            data: Any = json.loads(content)
        except ValueError:
            return '"resourceType"' in content[:4096]
        if isinstance(data, list):
            data = next((item for item in data if isinstance(item, dict)), {})
        return isinstance(data, dict) and "resourceType" in data

    def _fhir_domain(self, content: str) -> DomainType:
        match = re.search(r'"resourceType"\s*:\s*"(\w+)"', content)
        if match is None:
            match = re.search(r"<(Patient|Organization|Practitioner)[\s>]", content)
        if match is None:
            return DomainType.UNKNOWN
        resource = match.group(1)
        if resource == "Bundle":
            inner = re.findall(r'"resourceType"\s*:\s*"(\w+)"', content)
            resource = next((r for r in inner if r in _FHIR_DOMAINS), resource)
        return _FHIR_DOMAINS.get(resource, DomainType.UNKNOWN)
