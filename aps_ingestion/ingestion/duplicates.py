"""Duplicate detection against the record store, and explicit resolution."""

from __future__ import annotations

import re
from typing import Any, ClassVar, Mapping

from aps_ingestion.ingestion.exceptions import ResolutionError
from aps_ingestion.ingestion.models import (
    BulkAction,
    CanonicalRecord,
    DomainType,
    DuplicateCandidate,
    ExistingRecord,
    Resolution,
)
from aps_ingestion.logging.logger import Log
from aps_ingestion.storage.base import BaseRecordStore
from aps_ingestion.text.folding import TextFolder, get_folder

KEY_FIELDS: Mapping[DomainType, tuple[str, ...]] = {
    DomainType.PATIENT: ("cpf", "id"),
    DomainType.HOSPITAL: ("cnes", "codigo"),
    DomainType.PHYSICIAN: ("crm", "estado_crm", "codigo"),
    DomainType.DIAGNOSIS_CODE: ("codigo",),
    DomainType.MUNICIPALITY: ("codigo_ibge",),
    DomainType.STATE: ("codigo_uf", "uf"),
}

_NON_DIGITS = re.compile(r"\D")


def natural_key(record: CanonicalRecord) -> str | None:
    """Business identity of a record within its domain, or None when absent."""
    domain_type = record.domain_type
    if domain_type is DomainType.PATIENT:
        cpf = _NON_DIGITS.sub("", record.get("cpf"))
        return cpf if len(cpf) == 11 else record.get("id") or None
    if domain_type is DomainType.HOSPITAL:
        return _NON_DIGITS.sub("", record.get("cnes")) or record.get("codigo") or None
    if domain_type is DomainType.PHYSICIAN:
        crm = _NON_DIGITS.sub("", record.get("crm"))
        if crm:
            return f"{crm}/{record.get('estado_crm').upper()}"
        return record.get("codigo") or None
    if domain_type is DomainType.DIAGNOSIS_CODE:
        return record.get("codigo").upper() or None
    if domain_type is DomainType.MUNICIPALITY:
        return record.get("codigo_ibge") or None
    if domain_type is DomainType.STATE:
        return record.get("codigo_uf") or record.get("uf").upper() or None
    return None


def _filled(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def merge_fields(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
    """Union of both field sets; a non-empty incoming value wins, an empty one never does."""
    merged = dict(existing)
    for name, value in incoming.items():
        if _filled(value) or name not in merged:
            merged[name] = value
    return merged


class DuplicateResolver:
    """Find incoming records that already exist and apply user resolutions.

    Detection never changes a candidate's resolution; only ``apply_resolution``
    and ``resolve_all`` do.
    """

    _BULK: ClassVar[dict[BulkAction, Resolution]] = {
        BulkAction.SKIP_ALL: Resolution.SKIP,
        BulkAction.FORCE: Resolution.REPLACE,
    }

    def __init__(self, store: BaseRecordStore, folder: TextFolder | None = None) -> None:
        self._store = store
        self._folder = folder or get_folder()

    def find_duplicates(
        self,
        records: list[CanonicalRecord],
    ) -> tuple[list[DuplicateCandidate], list[str]]:
        """Return stored-record candidates and warnings for keys repeated in the batch."""
        candidates: list[DuplicateCandidate] = []
        warnings: list[str] = []
        seen: dict[tuple[DomainType, str], str] = {}

        for record in records:
            key = natural_key(record)
            if key is None:
                continue
            batch_key = (record.domain_type, key)
            if batch_key in seen:
                warnings.append(
                    f"{record.source}: {record.domain_type.value} key {key} "
                    f"already appears at {seen[batch_key]}"
                )
                continue
            seen[batch_key] = record.source

            existing = self._store.find_existing_by_natural_key(record.domain_type, key)
            if existing is None:
                continue
            confidence, differing = self.confidence(record, existing)
            candidates.append(
                DuplicateCandidate(
                    incoming=record,
                    existing=existing,
                    natural_key=key,
                    confidence=confidence,
                    differing_fields=differing,
                )
            )

        if candidates:
            Log.info(f"Found {len(candidates)} duplicate candidate(s)", stage="duplicates")
        return candidates, warnings

    def confidence(
        self,
        incoming: CanonicalRecord,
        existing: ExistingRecord,
    ) -> tuple[int, tuple[str, ...]]:
        """Percentage of compared non-key fields that match after folding."""
        keys = set(KEY_FIELDS.get(incoming.domain_type, ()))
        names = sorted(
            name
            for name in set(incoming.fields) | set(existing.fields)
            if name not in keys
            and (_filled(incoming.fields.get(name)) or _filled(existing.fields.get(name)))
        )
        if not names:
            return 100, ()
        differing = tuple(
            name
            for name in names
            if self._folder.fold(str(incoming.fields.get(name) or ""))
            != self._folder.fold(str(existing.fields.get(name) or ""))
        )
        matched = len(names) - len(differing)
        return round(matched / len(names) * 100), differing

    def apply_resolution(
        self,
        candidate: DuplicateCandidate,
        resolution: Resolution,
    ) -> CanonicalRecord:
        """Resolve one candidate and return the record storage should hold.

        Raises:
            ResolutionError: if ``resolution`` is Pending.
        """
        incoming, existing = candidate.incoming, candidate.existing
        if resolution is Resolution.PENDING:
            raise ResolutionError("a duplicate cannot be resolved as pending")

        if resolution in (Resolution.KEEP_EXISTING, Resolution.SKIP):
            fields = dict(existing.fields)
        elif resolution is Resolution.REPLACE:
            keys = KEY_FIELDS.get(incoming.domain_type, ())
            fields = {k: existing.fields[k] for k in keys if _filled(existing.fields.get(k))}
            fields.update({k: v for k, v in incoming.fields.items() if _filled(v) or k not in fields})
        else:
            fields = merge_fields(existing.fields, incoming.fields)

        resolved = CanonicalRecord(
            domain_type=incoming.domain_type,
            fields=fields,
            source=existing.ref,
        )
        candidate.resolution = resolution
        candidate.resolved_record = resolved
        Log.info(
            f"Resolved duplicate {candidate.natural_key} as {resolution.value}",
            stage="duplicates",
        )
        return resolved

    def resolve_all(
        self,
        candidates: list[DuplicateCandidate],
        action: BulkAction,
    ) -> list[CanonicalRecord]:
        """Apply one bulk action to every still-pending candidate."""
        resolution = self._BULK[action]
        return [
            self.apply_resolution(candidate, resolution)
            for candidate in candidates
            if candidate.resolution is Resolution.PENDING
        ]
