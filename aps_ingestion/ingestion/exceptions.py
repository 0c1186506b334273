class IngestionError(Exception):
    """Base exception for all ingestion-related errors."""


class RejectedFileError(IngestionError):
    """Raised when a file is rejected before any parser runs."""

    def __init__(self, reasons: list[str]) -> None:
        self.reasons = list(reasons)
        super().__init__("; ".join(self.reasons) or "file rejected")


class StrictModeViolation(RejectedFileError):
    """Raised when the pre-scan fails while strict mode is enabled."""


class UnsupportedFormatError(IngestionError):
    """Raised when no parser exists for the detected format."""


class RecordParseError(IngestionError):
    """Raised for a single record that cannot be parsed."""


class ResolutionError(IngestionError):
    """Raised when a duplicate resolution cannot be applied."""
