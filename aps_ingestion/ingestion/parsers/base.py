import threading
from abc import ABC, abstractmethod

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ParseResult
from aps_ingestion.logging.logger import Log


class BaseParser(ABC):
    """Contract for all format parsers."""

    format_name: str = ""

    @abstractmethod
    def parse(
        self,
        content: str,
        domain_hint: DomainType,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        """Parse normalized text into canonical records.

        Args:
            content: UTF-8 text produced by the encoding normalizer.
            domain_hint: Domain type detected for the file; parsers that carry
                their own entity markers may override it per record.
            cancel_event: Checked between records; when set, parsing stops and
                the records emitted so far are returned.

        Returns:
            A ParseResult. A malformed record becomes an error entry and never
            aborts the remaining records.
        """

    @staticmethod
    def _cancelled(cancel_event: threading.Event | None, result: ParseResult) -> bool:
        if result.cancelled:
            return True
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            result.warnings.append(
                f"parsing cancelled after {len(result.records)} record(s)"
            )
            return True
        return False

    def _emit(self, result: ParseResult, record: CanonicalRecord, label: str) -> None:
        """Append ``record`` unless it carries no data at all."""
        if not record.is_populated():
            result.errors.append(f"{label}: no recognizable fields")
            Log.warning(f"Dropped empty record at {label}", parser=self.format_name)
            return
        result.records.append(record)
