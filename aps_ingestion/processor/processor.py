from pathlib import Path

from aps_ingestion.config.settings import Settings
from aps_ingestion.database.repositories.uploaded_files_repository import UploadedFilesRepository
from aps_ingestion.ingestion.duplicates import DuplicateResolver
from aps_ingestion.ingestion.ingestor import build_ingestor
from aps_ingestion.ingestion.models import BulkAction, CanonicalRecord, Resolution
from aps_ingestion.logging.logger import Log
from aps_ingestion.processor.file_loader import FileLoader
from aps_ingestion.processor.pipeline import ProcessorContext, ProcessorStep
from aps_ingestion.processor.steps import (
    IngestStep,
    LoadFileStep,
    PersistRecordsStep,
    PersistReportStep,
    RecordErrorStep,
    ResolveDuplicatesStep,
)
from aps_ingestion.report.models import ValidationReport
from aps_ingestion.storage.base import BaseRecordStore
from aps_ingestion.storage.factory import RecordStoreFactory


class Processor:
    """Orchestrates one uploaded file through the worker pipeline.

    Pipeline: load -> ingest -> persist records -> persist report.
    Resolution: load -> ingest -> resolve duplicates. Ingestion is
    deterministic, so re-ingesting the upload yields the same candidates
    the report listed.
    """

    def __init__(
        self,
        steps: list[ProcessorStep],
        failed_step: ProcessorStep | None = None,
        resolution_steps: list[ProcessorStep] | None = None,
    ) -> None:
        self._steps = steps
        self._failed_step = failed_step
        self._resolution_steps = resolution_steps or []

    def process(self, uploaded_file_id: int, job_id: int) -> ValidationReport:
        """Run all steps; on error run the failed step and re-raise."""
        Log.info(f"Processing uploaded file {uploaded_file_id} for job {job_id}")
        context = ProcessorContext(uploaded_file_id=uploaded_file_id, job_id=job_id)
        try:
            for step in self._steps:
                context = step.run(context)
        except Exception as exc:
            context.error_message = str(exc)
            if self._failed_step is not None:
                self._failed_step.run(context)
            raise

        if context.report is None:
            raise RuntimeError(f"Pipeline produced no report for uploaded file {uploaded_file_id}")
        return context.report

    def resolve(
        self,
        uploaded_file_id: int,
        natural_key: str,
        resolution: Resolution,
    ) -> CanonicalRecord:
        """Resolve the upload's duplicate with ``natural_key`` and return the resolved record.

        Raises:
            DuplicateNotFoundError: if no duplicate carries ``natural_key``.
            ResolutionError: if ``resolution`` is Pending.
        """
        Log.info(f"Resolving duplicate {natural_key} of uploaded file {uploaded_file_id}")
        context = self._run_resolution(
            ProcessorContext(
                uploaded_file_id=uploaded_file_id,
                natural_key=natural_key,
                resolution=resolution,
            )
        )
        return context.resolved[0]

    def resolve_all(self, uploaded_file_id: int, action: BulkAction) -> list[CanonicalRecord]:
        """Apply one bulk action to every duplicate of the upload."""
        Log.info(f"Resolving all duplicates of uploaded file {uploaded_file_id} with {action.value}")
        context = self._run_resolution(
            ProcessorContext(uploaded_file_id=uploaded_file_id, bulk_action=action)
        )
        return context.resolved

    def _run_resolution(self, context: ProcessorContext) -> ProcessorContext:
        if not self._resolution_steps:
            raise RuntimeError("Processor was built without resolution steps")
        for step in self._resolution_steps:
            context = step.run(context)
        return context


def build_processor(
    settings: Settings,
    files_root: Path | None = None,
    store: BaseRecordStore | None = None,
) -> Processor:
    """Build a Processor with all required adapters."""
    file_loader = FileLoader(files_root=files_root or Path(settings.files_root))
    files_repo = UploadedFilesRepository()
    record_store = store or RecordStoreFactory.create(settings)
    ingestor = build_ingestor(settings, record_store)
    load_step = LoadFileStep(file_loader=file_loader, files_repo=files_repo)
    ingest_step = IngestStep(ingestor=ingestor, settings=settings)
    steps: list[ProcessorStep] = [
        load_step,
        ingest_step,
        PersistRecordsStep(store=record_store),
        PersistReportStep(files_repo=files_repo),
    ]
    resolution_steps: list[ProcessorStep] = [
        load_step,
        ingest_step,
        ResolveDuplicatesStep(DuplicateResolver(record_store), record_store),
    ]
    return Processor(
        steps=steps,
        failed_step=RecordErrorStep(files_repo),
        resolution_steps=resolution_steps,
    )
