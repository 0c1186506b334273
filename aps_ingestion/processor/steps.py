from typing import Any, ClassVar

from aps_ingestion.config.settings import Settings
from aps_ingestion.database.repositories.uploaded_files_repository import UploadedFilesRepository
from aps_ingestion.ingestion.duplicates import DuplicateResolver
from aps_ingestion.ingestion.ingestor import Ingestor
from aps_ingestion.ingestion.models import DomainType, IngestionOptions, Resolution
from aps_ingestion.logging.logger import Log
from aps_ingestion.processor.exceptions import DuplicateNotFoundError
from aps_ingestion.processor.file_loader import FileLoader
from aps_ingestion.processor.pipeline import ProcessorContext, ProcessorStep
from aps_ingestion.report.serializer import report_to_payload
from aps_ingestion.storage.base import BaseRecordStore

_OPTION_FLAGS = ("strict_mode", "allow_quarantine", "perform_deep_scan")


def _domain_type(value: Any) -> DomainType | None:
    try:
        return DomainType(value)
    except ValueError:
        Log.warning(f"Ignoring unknown expected_domain_type {value!r}; detecting from content")
        return None


def options_for(settings: Settings, overrides: dict[str, Any] | None) -> IngestionOptions:
    """Merge per-upload overrides stored with the file over the settings defaults."""
    values: dict[str, Any] = {}
    for key, value in (overrides or {}).items():
        if key in _OPTION_FLAGS:
            values[key] = bool(value)
        elif key == "expected_domain_type" and value:
            values[key] = _domain_type(value)
        elif key in ("declared_encoding", "force_justification") and value:
            values[key] = str(value)
    return IngestionOptions.from_settings(settings, **values)


class LoadFileStep(ProcessorStep):
    def __init__(
        self,
        file_loader: FileLoader,
        files_repo: UploadedFilesRepository,
    ) -> None:
        self._file_loader = file_loader
        self._files_repo = files_repo

    def run(self, context: ProcessorContext) -> ProcessorContext:
        uploaded_file = self._files_repo.find_by_id(context.uploaded_file_id)
        context.uploaded_file = uploaded_file
        context.raw_bytes = self._file_loader.load(uploaded_file)
        Log.info(
            f"Loaded {len(context.raw_bytes)} bytes for uploaded file {context.uploaded_file_id}"
        )
        return context


class IngestStep(ProcessorStep):
    def __init__(self, ingestor: Ingestor, settings: Settings) -> None:
        self._ingestor = ingestor
        self._settings = settings

    def run(self, context: ProcessorContext) -> ProcessorContext:
        if context.uploaded_file is None:
            raise ValueError("ProcessorContext.uploaded_file must be set before ingestion")
        uploaded_file = context.uploaded_file
        context.report = self._ingestor.ingest(
            context.raw_bytes,
            uploaded_file.original_filename,
            uploaded_file.mime_type,
            options_for(self._settings, uploaded_file.options),
        )
        return context


class PersistRecordsStep(ProcessorStep):
    def __init__(self, store: BaseRecordStore) -> None:
        self._store = store

    def run(self, context: ProcessorContext) -> ProcessorContext:
        if context.report is None:
            raise ValueError("ProcessorContext.report must be set before persisting records")
        if not context.report.accepted or not context.report.records:
            Log.info(f"No records stored for uploaded file {context.uploaded_file_id}")
            return context
        context.persisted = self._store.persist(
            list(context.report.records),
            source_file_id=context.uploaded_file_id,
        )
        return context


class ResolveDuplicatesStep(ProcessorStep):
    """Apply a resolution to the duplicates of a re-ingested upload and store the outcome.

    Replace and Merge outcomes are written with the store's replace mode, since
    the resolved record already holds the final field set. Keep-existing and
    Skip leave storage untouched.
    """

    _STORED: ClassVar[frozenset[Resolution]] = frozenset({Resolution.REPLACE, Resolution.MERGE})

    def __init__(self, resolver: DuplicateResolver, store: BaseRecordStore) -> None:
        self._resolver = resolver
        self._store = store

    def run(self, context: ProcessorContext) -> ProcessorContext:
        if context.report is None:
            raise ValueError("ProcessorContext.report must be set before resolving duplicates")
        candidates = list(context.report.duplicates)

        if context.bulk_action is not None:
            context.resolved = self._resolver.resolve_all(candidates, context.bulk_action)
        elif context.natural_key is not None and context.resolution is not None:
            candidate = next(
                (c for c in candidates if c.natural_key == context.natural_key), None
            )
            if candidate is None:
                raise DuplicateNotFoundError(
                    f"Uploaded file {context.uploaded_file_id} has no duplicate "
                    f"with key {context.natural_key}"
                )
            context.resolved = [self._resolver.apply_resolution(candidate, context.resolution)]
        else:
            raise ValueError("ProcessorContext needs a natural key and resolution, or a bulk action")

        to_store = [
            candidate.resolved_record
            for candidate in candidates
            if candidate.resolution in self._STORED and candidate.resolved_record is not None
        ]
        if to_store:
            context.persisted = self._store.persist(
                to_store, source_file_id=context.uploaded_file_id, replace=True
            )
        Log.info(
            f"Resolved {len(context.resolved)} duplicate(s) of uploaded file "
            f"{context.uploaded_file_id}, stored {len(to_store)}"
        )
        return context


class PersistReportStep(ProcessorStep):
    def __init__(self, files_repo: UploadedFilesRepository) -> None:
        self._files_repo = files_repo

    def run(self, context: ProcessorContext) -> ProcessorContext:
        if context.report is None:
            raise ValueError("ProcessorContext.report must be set before persisting the report")
        self._files_repo.update_validation_report(
            context.uploaded_file_id,
            status=context.report.status.value,
            report_payload=report_to_payload(context.report),
        )
        return context


class RecordErrorStep(ProcessorStep):
    def __init__(self, files_repo: UploadedFilesRepository) -> None:
        self._files_repo = files_repo

    def run(self, context: ProcessorContext) -> ProcessorContext:
        self._files_repo.update_validation_report(
            context.uploaded_file_id,
            status="error",
            report_payload={"error": context.error_message},
        )
        Log.error(
            f"Uploaded file {context.uploaded_file_id} errored in job {context.job_id}: "
            f"{context.error_message}"
        )
        return context
