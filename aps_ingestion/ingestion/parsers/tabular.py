from __future__ import annotations

import csv
import io
import threading

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ParseResult
from aps_ingestion.ingestion.parsers.base import BaseParser
from aps_ingestion.ingestion.parsers.fields import canonical_name
from aps_ingestion.logging.logger import Log
from aps_ingestion.text.folding import TextFolder, get_folder

DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|")

Row = tuple[int, list[str]]


def detect_delimiter(header_line: str) -> str:
    """Most frequent candidate delimiter in the header; comma when none occur."""
    best = max(DELIMITERS, key=header_line.count)
    return best if header_line.count(best) > 0 else ","


class TabularParser(BaseParser):
    """Delimited text with a header row.

    Quoted cells may span lines; a row is labelled with the line it starts on.
    An unreadable row is reported and skipped.
    """

    format_name = "tabular"

    def __init__(self, folder: TextFolder | None = None) -> None:
        self._folder = folder or get_folder()

    def parse(
        self,
        content: str,
        domain_hint: DomainType,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        first_line = next((line for line in content.split("\n") if line.strip()), None)
        if first_line is None:
            return ParseResult(warnings=["file contains no rows"])

        result = ParseResult()
        rows = self._read_rows(content, detect_delimiter(first_line), result)
        result.extend(self.parse_rows(rows, domain_hint, cancel_event))
        return result

    def _read_rows(self, content: str, delimiter: str, result: ParseResult) -> list[Row]:
        reader = csv.reader(io.StringIO(content), delimiter=delimiter)
        rows: list[Row] = []
        while True:
            start = reader.line_num + 1
            try:
                cells = next(reader)
            except StopIteration:
                break
            except csv.Error as exc:
                result.errors.append(f"row {start}: {exc}")
                Log.warning(f"Unreadable row {start}: {exc}", parser=self.format_name)
                if reader.line_num < start:
                    break
                continue
            if any(cell.strip() for cell in cells):
                rows.append((start, cells))
        return rows

    def parse_rows(
        self,
        rows: list[Row],
        domain_type: DomainType,
        cancel_event: threading.Event | None = None,
        label: str = "row",
    ) -> ParseResult:
        """Turn a header row plus data rows into records of ``domain_type``."""
        result = ParseResult()
        if not rows:
            result.warnings.append("file contains no rows")
            return result

        header = self._map_header(rows[0][1], domain_type)
        if len(rows) == 1:
            result.warnings.append("file contains a header but no data rows")
            return result

        for number, cells in rows[1:]:
            if self._cancelled(cancel_event, result):
                break
            if not any(cell.strip() for cell in cells):
                continue
            partial = len(cells) != len(header)
            if partial:
                result.warnings.append(
                    f"{label} {number}: expected {len(header)} columns, found {len(cells)}"
                )
            fields = {
                name: (cells[i].strip() if i < len(cells) else "")
                for i, name in enumerate(header)
                if name
            }
            record = CanonicalRecord(
                domain_type=domain_type,
                fields=fields,
                source=f"{label} {number}",
                partial=partial,
            )
            self._emit(result, record, f"{label} {number}")
        return result

    def _map_header(self, cells: list[str], domain_type: DomainType) -> list[str]:
        """Fold header cells and map synonyms onto canonical field names.

        A column already named canonically wins over a synonym for the same field.
        """
        folded = [self._folder.fold_identifier(cell) for cell in cells]
        taken = set(folded)
        header: list[str] = []
        for name in folded:
            canonical = canonical_name(domain_type, name)
            if canonical != name and canonical in taken:
                header.append(name)
            else:
                taken.add(canonical)
                header.append(canonical)
        return header
