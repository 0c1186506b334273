from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from aps_ingestion.database.connection import get_connection
from aps_ingestion.processor.exceptions import UploadedFileNotFoundError
from aps_ingestion.processor.models import UploadedFile


class UploadedFilesRepository:
    """Database operations for the uploaded_files table."""

    def find_by_id(self, file_id: int) -> UploadedFile:
        """Find an uploaded file by ID.

        Raises:
            UploadedFileNotFoundError: if no file with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, uuid, user_id, original_filename, storage_disk,
                           mime_type, file_size_bytes, file_hash_sha256,
                           ingestion_options
                    FROM uploaded_files
                    WHERE id = %s
                    """,
                    (file_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise UploadedFileNotFoundError(f"Uploaded file {file_id} not found")

        return UploadedFile(
            id=row["id"],
            uuid=str(row["uuid"]),
            user_id=row["user_id"],
            original_filename=row["original_filename"],
            storage_disk=row["storage_disk"],
            mime_type=row["mime_type"] or "",
            file_size_bytes=row["file_size_bytes"],
            file_hash_sha256=row["file_hash_sha256"],
            options=row["ingestion_options"],
        )

    def update_validation_report(
        self,
        file_id: int,
        status: str,
        report_payload: dict[str, Any],
    ) -> None:
        """Persist the validation report and its status.

        Args:
            file_id: Target uploaded file ID.
            status: Report status (passed, warning, failed).
            report_payload: JSONB-ready report dict.

        Raises:
            UploadedFileNotFoundError: if no file with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE uploaded_files
                    SET validation_status = %s,
                        validation_report = %s,
                        validated_at = NOW()
                    WHERE id = %s
                    """,
                    (status, Jsonb(report_payload), file_id),
                )
                if cur.rowcount == 0:
                    raise UploadedFileNotFoundError(f"Uploaded file {file_id} not found")
            conn.commit()
