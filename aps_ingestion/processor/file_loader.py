from pathlib import Path, PurePosixPath

from aps_ingestion.processor.exceptions import FileReadError, UnsupportedStorageDiskError
from aps_ingestion.processor.models import UploadedFile


def uploaded_file_path(files_root: Path, uploaded_file: UploadedFile) -> Path:
    """Build path to an upload: {files_root}/{user_id}/{uuid}{original suffix}"""
    suffix = PurePosixPath(uploaded_file.original_filename).suffix.lower()
    return files_root / str(uploaded_file.user_id) / f"{uploaded_file.uuid}{suffix}"


class FileLoader:
    """Resolves filesystem path for an uploaded file and reads its bytes."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def load(self, uploaded_file: UploadedFile) -> bytes:
        """Read file bytes from disk.

        Raises:
            FileNotFoundError: if the file does not exist at resolved path.
            UnsupportedStorageDiskError: if storage_disk is not 'local'.
            FileReadError: if the file exists but cannot be read.
        """
        if uploaded_file.storage_disk != "local":
            raise UnsupportedStorageDiskError(
                f"storage_disk '{uploaded_file.storage_disk}' is not supported"
            )
        path = uploaded_file_path(self._files_root, uploaded_file)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Cannot read {path}: {exc}") from exc
