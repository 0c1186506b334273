import uuid

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from aps_ingestion.database.connection import get_connection
from aps_ingestion.ingestion.duplicates import merge_fields, natural_key
from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ExistingRecord
from aps_ingestion.logging.logger import Log
from aps_ingestion.storage.base import BaseRecordStore, PersistResult
from aps_ingestion.storage.exceptions import RecordStoreError


class RecordsRepository(BaseRecordStore):
    """Record store backed by the healthcare_records table.

    Rows are unique on (domain_type, natural_key); ``fields`` is JSONB.
    """

    def find_existing_by_natural_key(
        self,
        domain_type: DomainType,
        natural_key: str,
    ) -> ExistingRecord | None:
        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT id, fields
                        FROM healthcare_records
                        WHERE domain_type = %s AND natural_key = %s
                        """,
                        (domain_type.value, natural_key),
                    )
                    row = cur.fetchone()
        except psycopg.Error as exc:
            raise RecordStoreError(f"lookup of {domain_type.value} {natural_key} failed") from exc

        if row is None:
            return None
        return ExistingRecord(
            ref=f"healthcare_records:{row['id']}",
            domain_type=domain_type,
            fields=dict(row["fields"] or {}),
        )

    def persist(
        self,
        records: list[CanonicalRecord],
        source_file_id: int | None = None,
        replace: bool = False,
    ) -> PersistResult:
        """Upsert all records in one transaction."""
        inserted = updated = 0
        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    for record in records:
                        key = natural_key(record) or uuid.uuid4().hex
                        cur.execute(
                            """
                            SELECT id, fields
                            FROM healthcare_records
                            WHERE domain_type = %s AND natural_key = %s
                            FOR UPDATE
                            """,
                            (record.domain_type.value, key),
                        )
                        row = cur.fetchone()
                        if row is None:
                            cur.execute(
                                """
                                INSERT INTO healthcare_records
                                    (domain_type, natural_key, fields, source_file_id,
                                     created_at, updated_at)
                                VALUES (%s, %s, %s, %s, NOW(), NOW())
                                """,
                                (record.domain_type.value, key, Jsonb(record.fields), source_file_id),
                            )
                            inserted += 1
                        else:
                            fields = (
                                dict(record.fields)
                                if replace
                                else merge_fields(row["fields"] or {}, record.fields)
                            )
                            cur.execute(
                                """
                                UPDATE healthcare_records
                                SET fields = %s, source_file_id = %s, updated_at = NOW()
                                WHERE id = %s
                                """,
                                (Jsonb(fields), source_file_id, row["id"]),
                            )
                            updated += 1
                conn.commit()
        except psycopg.Error as exc:
            raise RecordStoreError(f"persisting {len(records)} record(s) failed") from exc

        verb = "replaced" if replace else "merged"
        Log.info(f"Stored {inserted} new and {updated} {verb} record(s)")
        return PersistResult(inserted=inserted, updated=updated)
