import threading
import uuid

from aps_ingestion.ingestion.duplicates import merge_fields, natural_key
from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ExistingRecord
from aps_ingestion.logging.logger import Log
from aps_ingestion.storage.base import BaseRecordStore, PersistResult


class InMemoryRecordStore(BaseRecordStore):
    """Process-local record store for local runs and tests."""

    def __init__(self) -> None:
        self._records: dict[tuple[DomainType, str], ExistingRecord] = {}
        self._lock = threading.Lock()

    def find_existing_by_natural_key(
        self,
        domain_type: DomainType,
        natural_key: str,
    ) -> ExistingRecord | None:
        with self._lock:
            return self._records.get((domain_type, natural_key))

    def persist(
        self,
        records: list[CanonicalRecord],
        source_file_id: int | None = None,
        replace: bool = False,
    ) -> PersistResult:
        inserted = updated = 0
        with self._lock:
            for record in records:
                key = natural_key(record) or uuid.uuid4().hex
                existing = self._records.get((record.domain_type, key))
                if existing is None:
                    self._records[(record.domain_type, key)] = ExistingRecord(
                        ref=f"{record.domain_type.value}:{key}",
                        domain_type=record.domain_type,
                        fields=dict(record.fields),
                    )
                    inserted += 1
                else:
                    self._records[(record.domain_type, key)] = ExistingRecord(
                        ref=existing.ref,
                        domain_type=existing.domain_type,
                        fields=(
                            dict(record.fields)
                            if replace
                            else merge_fields(existing.fields, record.fields)
                        ),
                    )
                    updated += 1
        verb = "replaced" if replace else "merged"
        Log.info(f"Stored {inserted} new and {updated} {verb} record(s) in memory")
        return PersistResult(inserted=inserted, updated=updated)
