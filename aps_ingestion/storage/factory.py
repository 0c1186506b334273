from aps_ingestion.config.settings import Settings
from aps_ingestion.database.repositories.records_repository import RecordsRepository
from aps_ingestion.storage.base import BaseRecordStore
from aps_ingestion.storage.memory_store import InMemoryRecordStore


class RecordStoreFactory:
    """Creates the record store selected in settings."""

    ADAPTERS: dict[str, type[BaseRecordStore]] = {
        "postgres": RecordsRepository,
        "memory": InMemoryRecordStore,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseRecordStore:
        name = settings.record_store.lower()
        adapter_cls = cls.ADAPTERS.get(name)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown record store '{name}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()
