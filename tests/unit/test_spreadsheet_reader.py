import io
from datetime import date

import pytest
from openpyxl import Workbook

from aps_ingestion.ingestion.encoding import EncodingNormalizer
from aps_ingestion.ingestion.exceptions import UnsupportedFormatError
from aps_ingestion.ingestion.parsers.spreadsheet import Sheet, SpreadsheetReader


def _make_workbook(*sheets: tuple[str, list[list[object]]]) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets:
        worksheet = workbook.create_sheet(title)
        for row in rows:
            worksheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def reader() -> SpreadsheetReader:
    return SpreadsheetReader(EncodingNormalizer())


class TestRead:
    def test_reads_every_sheet(self, reader: SpreadsheetReader) -> None:
        raw = _make_workbook(
            ("medicos", [["codigo", "nome_completo"], ["a1", "Maria Silva"]]),
            ("hospitais", [["codigo", "nome"], ["c3", "Hospital Central"]]),
        )

        sheets = reader.read(raw)

        assert [s.name for s in sheets] == ["medicos", "hospitais"]
        assert sheets[0].rows == [(1, ["codigo", "nome_completo"]), (2, ["a1", "Maria Silva"])]

    def test_converts_cell_types(self, reader: SpreadsheetReader) -> None:
        raw = _make_workbook(
            ("pacientes", [["cidade", "nascimento", "ativo", "peso"], [3550308.0, date(1980, 1, 15), True, 72.5]])
        )

        sheets = reader.read(raw)

        assert sheets[0].rows[1][1] == ["3550308", "1980-01-15", "true", "72.5"]

    def test_skips_empty_rows_keeping_numbers(self, reader: SpreadsheetReader) -> None:
        raw = _make_workbook(("cid", [["codigo", "descricao"], [None, None], ["A09", "Diarreia"]]))

        sheets = reader.read(raw)

        assert [number for number, _ in sheets[0].rows] == [1, 3]

    def test_cleans_double_encoded_text(self, reader: SpreadsheetReader) -> None:
        raw = _make_workbook(("municipios", [["nome"], ["SÃ£o Paulo"]]))

        sheets = reader.read(raw)

        assert sheets[0].rows[1][1] == ["São Paulo"]

    def test_legacy_xls_is_unsupported(self, reader: SpreadsheetReader) -> None:
        with pytest.raises(UnsupportedFormatError, match="legacy"):
            reader.read(b"\xd0\xcf\x11\xe0" + b"\x00" * 64)

    def test_corrupt_workbook_is_unsupported(self, reader: SpreadsheetReader) -> None:
        with pytest.raises(UnsupportedFormatError, match="unreadable workbook"):
            reader.read(b"PK\x03\x04not really a zip")


class TestSheet:
    def test_as_text(self) -> None:
        sheet = Sheet(name="x", rows=[(1, ["a", "b"]), (2, ["1", "2"])])

        assert sheet.as_text() == "a,b\n1,2"
