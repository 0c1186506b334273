from unittest.mock import MagicMock, patch

import psycopg
import pytest

from aps_ingestion.database.repositories.records_repository import RecordsRepository
from aps_ingestion.ingestion.models import CanonicalRecord, DomainType
from aps_ingestion.storage.exceptions import RecordStoreError

_REPO = "aps_ingestion.database.repositories.records_repository.get_connection"


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


def _make_hospital(cnes: str, nome: str = "Hospital Central") -> CanonicalRecord:
    return CanonicalRecord(
        domain_type=DomainType.HOSPITAL,
        fields={"codigo": "c3d4", "nome": nome, "cnes": cnes},
    )


class TestFindExistingByNaturalKey:
    @patch(_REPO)
    def test_returns_existing_record(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {"id": 42, "fields": {"nome": "Hospital Central"}}

        existing = RecordsRepository().find_existing_by_natural_key(DomainType.HOSPITAL, "2077485")

        assert existing is not None
        assert existing.ref == "healthcare_records:42"
        assert existing.domain_type is DomainType.HOSPITAL
        assert existing.fields == {"nome": "Hospital Central"}
        assert mock_cursor.execute.call_args.args[1] == ("hospital", "2077485")

    @patch(_REPO)
    def test_returns_none_when_missing(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert RecordsRepository().find_existing_by_natural_key(DomainType.STATE, "35") is None

    @patch(_REPO)
    def test_database_error_becomes_record_store_error(self, mock_get_conn: MagicMock) -> None:
        mock_get_conn.side_effect = psycopg.OperationalError("connection refused")

        with pytest.raises(RecordStoreError, match="lookup of patient 12345678909 failed"):
            RecordsRepository().find_existing_by_natural_key(DomainType.PATIENT, "12345678909")


class TestPersist:
    @patch(_REPO)
    def test_inserts_new_records(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        result = RecordsRepository().persist(
            [_make_hospital("2077485"), _make_hospital("2078015")], source_file_id=7
        )

        assert result.inserted == 2
        assert result.updated == 0
        # one SELECT and one INSERT per record
        assert mock_cursor.execute.call_count == 4
        mock_conn.commit.assert_called_once()

    @patch(_REPO)
    def test_merges_into_existing_record(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {
            "id": 42,
            "fields": {"nome": "Hospital Central", "telefone": "1133334444"},
        }

        result = RecordsRepository().persist([_make_hospital("2077485", nome="")], source_file_id=7)

        assert result.updated == 1
        update_params = mock_cursor.execute.call_args.args[1]
        assert update_params[0].obj == {
            "nome": "Hospital Central",
            "telefone": "1133334444",
            "codigo": "c3d4",
            "cnes": "2077485",
        }
        assert update_params[1:] == (7, 42)
        mock_conn.commit.assert_called_once()

    @patch(_REPO)
    def test_replace_overwrites_existing_fields(self, mock_get_conn: MagicMock) -> None:
        _mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {
            "id": 42,
            "fields": {"nome": "Hospital Central", "telefone": "1133334444"},
        }

        result = RecordsRepository().persist(
            [_make_hospital("2077485", nome="Hospital Central II")], source_file_id=7, replace=True
        )

        assert result.updated == 1
        update_params = mock_cursor.execute.call_args.args[1]
        assert update_params[0].obj == {
            "codigo": "c3d4",
            "nome": "Hospital Central II",
            "cnes": "2077485",
        }

    @patch(_REPO)
    def test_database_error_becomes_record_store_error(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.execute.side_effect = psycopg.errors.UniqueViolation("duplicate key")

        with pytest.raises(RecordStoreError, match="persisting 1 record"):
            RecordsRepository().persist([_make_hospital("2077485")])
        mock_conn.commit.assert_not_called()
