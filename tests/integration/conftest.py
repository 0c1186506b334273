import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest
from psycopg.rows import dict_row
from psycopg_pool import PoolTimeout

from aps_ingestion.config.settings import Settings
from aps_ingestion.database.connection import close_pool, get_connection, init_pool
from aps_ingestion.database.models import JobRecord

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "aps_ingestion" / "database" / "migrations"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "aps_ingestion_test")
    return Settings()


def _apply_migrations() -> None:
    with get_connection() as conn:
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            conn.execute(path.read_text(encoding="utf-8"))
        conn.commit()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        _apply_migrations()
    except (psycopg.Error, PoolTimeout) as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run integration tests")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup() -> Generator[list[tuple[str, int]], None, None]:
    cleanup: list[tuple[str, int]] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            # children first
            for table in ("healthcare_records", "ingestion_jobs", "uploaded_files"):
                for row_table, row_id in cleanup:
                    if row_table == table:
                        cur.execute(f"DELETE FROM {table} WHERE id = %s", (row_id,))
        conn.commit()


@pytest.fixture
def seed_uploaded_file(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
) -> tuple[int, str]:
    file_uuid = str(uuid.uuid4())
    with db_conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO uploaded_files
            (uuid, user_id, original_filename, storage_disk, mime_type,
             file_size_bytes, file_hash_sha256)
            VALUES (%s::uuid, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (file_uuid, 10, "medicos.csv", "local", "text/csv", 1024, "a" * 64),
        )
        row = cur.fetchone()
        assert row is not None
        file_id = row[0]
    db_conn.commit()
    integration_cleanup.append(("uploaded_files", file_id))
    return (file_id, file_uuid)


@pytest.fixture
def seed_job(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
    seed_uploaded_file: tuple[int, str],
) -> JobRecord:
    file_id = seed_uploaded_file[0]
    with db_conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            """
            INSERT INTO ingestion_jobs (uploaded_file_id, status, attempts)
            VALUES (%s, 'pending', 0)
            RETURNING id, uploaded_file_id, status, attempts
            """,
            (file_id,),
        )
        row = cur.fetchone()
        assert row is not None
        job_id = row["id"]
    db_conn.commit()
    integration_cleanup.append(("ingestion_jobs", job_id))
    return JobRecord(
        id=job_id,
        uploaded_file_id=file_id,
        status="pending",
        attempts=0,
    )
