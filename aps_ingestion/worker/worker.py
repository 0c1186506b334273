import time
from concurrent.futures import Future
from functools import partial

from aps_ingestion.config.settings import Settings
from aps_ingestion.database.connection import get_connection
from aps_ingestion.database.models import JobRecord
from aps_ingestion.database.repositories.job_repository import JobRepository
from aps_ingestion.logging.logger import Log
from aps_ingestion.worker.job_runner import JobRunner
from aps_ingestion.worker.pool import BoundedPool


class Worker:
    """Poll loop: reserve a slot -> claim -> dispatch to the pool.

    No job is claimed unless a pool slot is free, so at most
    ``max_concurrent_files`` files are in flight.
    """

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        settings: Settings,
        pool: BoundedPool | None = None,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._settings = settings
        self._pool = pool or BoundedPool(settings.max_concurrent_files)

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_jobs is set, stop after dispatching that many jobs (for testing).
        In-flight jobs are always allowed to finish before returning.
        """
        Log.info(f"Worker started with {self._pool.size} slot(s), polling for jobs")
        jobs_done = 0
        try:
            while max_jobs is None or jobs_done < max_jobs:
                if not self._pool.acquire(timeout=self._settings.job_poll_interval_seconds):
                    continue
                job = self._try_claim_job()
                if job:
                    future = self._pool.submit_acquired(self._job_runner.run, job)
                    future.add_done_callback(partial(self._log_crash, job))
                    jobs_done += 1
                else:
                    self._pool.release()
                    Log.debug("No jobs available, sleeping")
                    time.sleep(self._settings.job_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")
        finally:
            self._pool.shutdown(wait=True)

    @staticmethod
    def _log_crash(job: JobRecord, future: "Future[None]") -> None:
        """Log an error that escaped the runner; such a job is left in processing."""
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            Log.exception(f"Job {job.id} crashed outside the runner", exc=error, job_id=job.id)

    def _try_claim_job(self) -> JobRecord | None:
        """Attempt to claim the next pending job. Gracefully handle DB errors."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
