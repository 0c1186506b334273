from typing import Any

import psycopg
from psycopg.rows import dict_row

from aps_ingestion.database.connection import get_connection
from aps_ingestion.database.models import JobRecord, JobStatus

_JOB_COLUMNS = "id, uploaded_file_id, status, attempts, error_message, locked_at, created_at, updated_at"


class JobRepository:
    """Queue operations on ingestion_jobs.

    A job moves pending -> processing on claim, then to done, failed or
    quarantined; a retried job goes back to pending with attempts + 1.
    """

    def __init__(self, max_attempts: int) -> None:
        self._max_attempts = max_attempts

    def claim_next_job(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Atomically lock the oldest claimable job and mark it processing.

        Rows locked by other workers are skipped, so concurrent workers never
        claim the same job.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                UPDATE ingestion_jobs
                SET status = %s, locked_at = NOW(), updated_at = NOW()
                WHERE id = (
                    SELECT id
                    FROM ingestion_jobs
                    WHERE status = %s AND attempts < %s
                    ORDER BY created_at
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {_JOB_COLUMNS}
                """,
                (JobStatus.PROCESSING.value, JobStatus.PENDING.value, self._max_attempts),
            )
            row = cur.fetchone()
        conn.commit()
        return JobRecord(**row) if row is not None else None

    def mark_done(self, job_id: int) -> None:
        self._transition(job_id, JobStatus.DONE)

    def mark_failed(self, job_id: int, error: str) -> None:
        """Terminal failure; the job is not claimed again."""
        self._transition(job_id, JobStatus.FAILED, error)

    def mark_quarantined(self, job_id: int, reason: str) -> None:
        """Hold a job whose file needs manual security review."""
        self._transition(job_id, JobStatus.QUARANTINED, reason)

    def increment_attempts(self, job_id: int) -> None:
        """Release the lock and return the job to the queue for another attempt."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ingestion_jobs
                SET attempts = attempts + 1, status = %s,
                    locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (JobStatus.PENDING.value, job_id),
            )
            conn.commit()

    def find_by_id(self, job_id: int) -> JobRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM ingestion_jobs WHERE id = %s",
                    (job_id,),
                )
                row = cur.fetchone()
        return JobRecord(**row) if row is not None else None

    def _transition(self, job_id: int, status: JobStatus, error: str | None = None) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ingestion_jobs
                SET status = %s, error_message = %s, locked_at = NULL, updated_at = NOW()
                WHERE id = %s
                """,
                (status.value, error, job_id),
            )
            conn.commit()
