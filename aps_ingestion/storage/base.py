from abc import ABC, abstractmethod
from dataclasses import dataclass

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ExistingRecord


@dataclass(frozen=True)
class PersistResult:
    inserted: int = 0
    updated: int = 0


class BaseRecordStore(ABC):
    """Contract for the storage collaborator that owns accepted records."""

    @abstractmethod
    def find_existing_by_natural_key(
        self,
        domain_type: DomainType,
        natural_key: str,
    ) -> ExistingRecord | None:
        """Return the stored record with this natural key, if any.

        Raises:
            RecordStoreError: if the store cannot be queried.
        """

    @abstractmethod
    def persist(
        self,
        records: list[CanonicalRecord],
        source_file_id: int | None = None,
        replace: bool = False,
    ) -> PersistResult:
        """Insert new records and merge into existing ones.

        An existing field is only overwritten by a non-empty incoming value.
        With ``replace`` an existing record's fields become exactly the
        incoming ones; resolved duplicates are written this way.

        Raises:
            RecordStoreError: if the write fails.
        """
