from dataclasses import dataclass


@dataclass(frozen=True)
class UploadedFile:
    """Domain model for an uploaded file (subset of DB columns)."""

    id: int
    uuid: str
    user_id: int
    original_filename: str
    storage_disk: str
    mime_type: str
    file_size_bytes: int
    file_hash_sha256: str
    options: dict[str, object] | None = None
