from __future__ import annotations

import json
import threading
from typing import Any

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ParseResult
from aps_ingestion.ingestion.parsers.base import BaseParser
from aps_ingestion.ingestion.parsers.fields import (
    ENVELOPE_KEYS,
    domain_for_collection,
    map_fields,
)
from aps_ingestion.logging.logger import Log


def _scalar(value: Any) -> str | None:
    if value is None or isinstance(value, dict):
        return None
    if isinstance(value, list):
        items = [str(item) for item in value if not isinstance(item, (dict, list))]
        return ";".join(items) if items else None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class JsonParser(BaseParser):
    """Plain JSON exports: arrays of entities, keyed collections or an
    integrated envelope holding several collections."""

    format_name = "json"

    def parse(
        self,
        content: str,
        domain_hint: DomainType,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        result = ParseResult()
        try:
            data = json.loads(content)
        except ValueError as exc:
            result.errors.append(f"malformed JSON document: {exc}")
            Log.warning(f"JSON document rejected: {exc}", parser=self.format_name)
            return result

        if isinstance(data, list):
            self._parse_array(data, self._classify_array(data, domain_hint), result, cancel_event)
            return result
        if not isinstance(data, dict):
            result.errors.append("JSON document holds no objects")
            return result

        for key in ENVELOPE_KEYS:
            if isinstance(data.get(key), dict):
                data = data[key]
                break

        collections: list[tuple[DomainType, list[Any]]] = []
        for key, value in data.items():
            domain = domain_for_collection(key)
            if domain is not None and isinstance(value, list):
                collections.append((domain, value))
        if collections:
            for domain_type, items in collections:
                if self._cancelled(cancel_event, result):
                    break
                self._parse_array(items, domain_type, result, cancel_event)
            return result

        self._parse_object(data, self._classify_object(data, domain_hint), result, "object #1")
        return result

    def _parse_array(
        self,
        items: list[Any],
        domain_type: DomainType,
        result: ParseResult,
        cancel_event: threading.Event | None,
    ) -> None:
        for position, item in enumerate(items, start=1):
            if self._cancelled(cancel_event, result):
                return
            label = f"{domain_type.value} #{position}"
            if not isinstance(item, dict):
                result.errors.append(f"{label}: expected an object, found {type(item).__name__}")
                continue
            self._parse_object(item, domain_type, result, label)

    def _parse_object(
        self,
        item: dict[str, Any],
        domain_type: DomainType,
        result: ParseResult,
        label: str,
    ) -> None:
        lowered = {str(key).lower(): value for key, value in item.items()}
        fields = map_fields(domain_type, lambda name: _scalar(lowered.get(name)))
        self._emit(result, CanonicalRecord(domain_type, fields, source=label), label)

    @staticmethod
    def _classify_object(item: dict[str, Any], fallback: DomainType) -> DomainType:
        keys = {str(key).lower() for key in item}
        if "cnes" in keys:
            return DomainType.HOSPITAL
        if "crm" in keys or "especialidade" in keys:
            return DomainType.PHYSICIAN
        if "cpf" in keys:
            return DomainType.PATIENT
        return fallback

    def _classify_array(self, items: list[Any], fallback: DomainType) -> DomainType:
        first = next((item for item in items if isinstance(item, dict)), None)
        if first is None:
            return fallback
        return self._classify_object(first, fallback)
