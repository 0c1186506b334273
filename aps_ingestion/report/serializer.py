from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from aps_ingestion.report.models import ValidationReport


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def report_to_payload(report: ValidationReport, include_records: bool = False) -> dict[str, Any]:
    """Build the JSONB-ready payload for a report.

    Accepted records are omitted unless asked for; storage receives them
    through the record store, not through the report column.
    """
    payload: dict[str, Any] = _jsonable(report)
    if not include_records:
        payload.pop("records", None)
        for candidate in payload.get("duplicates", []):
            candidate.pop("resolved_record", None)
    return payload
