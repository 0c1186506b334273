from aps_ingestion.config.settings import Settings
from aps_ingestion.database.models import JobRecord
from aps_ingestion.database.repositories.job_repository import JobRepository
from aps_ingestion.ingestion.models import ReportStatus
from aps_ingestion.logging.logger import Log
from aps_ingestion.processor.processor import Processor


class JobRunner:
    """Run one job, catch exceptions, and apply retry logic.

    A Failed report is terminal for the job; only exceptions are retried.
    """

    def __init__(
        self,
        processor: Processor,
        job_repo: JobRepository,
        settings: Settings,
    ) -> None:
        self._processor = processor
        self._job_repo = job_repo
        self._settings = settings

    def run(self, job: JobRecord) -> None:
        """Execute a single job with error handling."""
        Log.info(f"Running job {job.id} (attempt {job.attempts + 1})")
        try:
            report = self._processor.process(job.uploaded_file_id, job.id)
        except Exception as exc:
            self._handle_failure(job, exc)
            return

        if report.status is ReportStatus.FAILED:
            summary = "; ".join(report.issues[:5]) or "validation failed"
            self._job_repo.mark_failed(job.id, summary)
            Log.warning(f"Job {job.id} finished with a failed report: {summary}")
        elif report.quarantine.required and not report.quarantine.overridden:
            self._job_repo.mark_quarantined(job.id, report.quarantine.reason)
            Log.warning(f"Job {job.id} quarantined: {report.quarantine.reason}")
        else:
            self._job_repo.mark_done(job.id)
            Log.info(f"Job {job.id} completed with status {report.status.value}")

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        """Increment attempts; mark failed if at max, otherwise back to pending."""
        Log.error(f"Job {job.id} failed: {exc}")
        if job.attempts + 1 >= self._settings.max_job_attempts:
            self._job_repo.mark_failed(job.id, str(exc))
            Log.error(f"Job {job.id} permanently failed after {job.attempts + 1} attempts")
        else:
            self._job_repo.increment_attempts(job.id)
            Log.warning(f"Job {job.id} will be retried (attempt {job.attempts + 1})")
