class ProcessorError(Exception):
    """Base for failures outside the ingestion core: lookup, disk access."""


class UploadedFileNotFoundError(ProcessorError):
    """No uploaded_files row with the requested id."""


class UnsupportedStorageDiskError(ProcessorError):
    """The upload lives on a disk this worker cannot read (only 'local' is supported)."""


class FileReadError(ProcessorError):
    """The upload exists on disk but reading it failed."""


class DuplicateNotFoundError(ProcessorError):
    """The re-ingested upload has no duplicate with the requested natural key."""
