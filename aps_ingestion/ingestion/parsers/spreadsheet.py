from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from aps_ingestion.ingestion.encoding import EncodingNormalizer
from aps_ingestion.ingestion.exceptions import UnsupportedFormatError
from aps_ingestion.logging.logger import Log

_XLS_MAGIC = b"\xd0\xcf\x11\xe0"


@dataclass
class Sheet:
    """One worksheet flattened to numbered rows of text cells."""

    name: str
    rows: list[tuple[int, list[str]]] = field(default_factory=list)

    def as_text(self) -> str:
        return "\n".join(",".join(cells) for _, cells in self.rows)


class SpreadsheetReader:
    """Read ``.xlsx`` workbooks with openpyxl."""

    def __init__(self, normalizer: EncodingNormalizer) -> None:
        self._normalizer = normalizer

    def read(self, raw: bytes) -> list[Sheet]:
        """Return every worksheet with its non-empty rows.

        Raises:
            UnsupportedFormatError: for legacy ``.xls`` files or unreadable workbooks.
        """
        if raw.startswith(_XLS_MAGIC):
            raise UnsupportedFormatError("legacy binary .xls workbooks are not supported")
        try:
            workbook = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            raise UnsupportedFormatError(f"unreadable workbook: {exc}") from exc

        sheets: list[Sheet] = []
        try:
            for worksheet in workbook.worksheets:
                sheet = Sheet(name=worksheet.title)
                for number, values in enumerate(worksheet.iter_rows(values_only=True), start=1):
                    cells = [self._cell_text(value) for value in values]
                    if any(cells):
                        sheet.rows.append((number, cells))
                sheets.append(sheet)
        finally:
            workbook.close()

        Log.info(f"Read workbook with {len(sheets)} sheet(s)")
        return sheets

    def _cell_text(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, datetime):
            return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return self._normalizer.clean_text(str(value)).strip()
