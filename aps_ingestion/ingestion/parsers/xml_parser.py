from __future__ import annotations

import threading
import xml.etree.ElementTree as ET
from typing import ClassVar

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as SafeET

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ParseResult
from aps_ingestion.ingestion.parsers.base import BaseParser
from aps_ingestion.ingestion.parsers.fields import (
    ENVELOPE_KEYS,
    domain_for_collection,
    map_fields,
)
from aps_ingestion.logging.logger import Log


def local_name(tag: str) -> str:
    """Strip an ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


class XmlParser(BaseParser):
    """Healthcare XML exports: one collection root, or an integrated root that
    nests several collections. DTDs and entity expansion are refused."""

    format_name = "xml"

    _ELEMENT_MARKERS: ClassVar[tuple[tuple[DomainType, tuple[str, ...]], ...]] = (
        (DomainType.HOSPITAL, ("hospital", "estabelecimento", "unidade")),
        (DomainType.PHYSICIAN, ("medico", "profissional")),
        (DomainType.PATIENT, ("paciente", "usuario", "beneficiario")),
        (DomainType.MUNICIPALITY, ("municipio",)),
        (DomainType.STATE, ("estado",)),
        (DomainType.DIAGNOSIS_CODE, ("cid", "diagnostico")),
    )

    def parse(
        self,
        content: str,
        domain_hint: DomainType,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        result = ParseResult()
        try:
            root = SafeET.fromstring(content, forbid_dtd=True)
        except (ET.ParseError, DefusedXmlException) as exc:
            result.errors.append(f"malformed XML document: {exc}")
            Log.warning(f"XML document rejected: {exc}", parser=self.format_name)
            return result

        root_name = local_name(root.tag).lower()
        if root_name in ENVELOPE_KEYS:
            for section in root:
                if self._cancelled(cancel_event, result):
                    break
                section_type = domain_for_collection(local_name(section.tag))
                if section_type is not None:
                    self._parse_collection(section, section_type, result, cancel_event)
                else:
                    self._parse_element(section, self._classify(section, domain_hint), result)
            return result

        collection_type = domain_for_collection(root_name)
        if collection_type is not None:
            self._parse_collection(root, collection_type, result, cancel_event)
            return result

        if self._is_single_entity(root):
            # a single entity whose children are its fields
            self._parse_element(root, self._classify(root, domain_hint), result)
            return result

        for child in root:
            if self._cancelled(cancel_event, result):
                break
            self._parse_element(child, self._classify(child, domain_hint), result)
        return result

    def _parse_collection(
        self,
        collection: ET.Element,
        domain_type: DomainType,
        result: ParseResult,
        cancel_event: threading.Event | None,
    ) -> None:
        for element in collection:
            if self._cancelled(cancel_event, result):
                return
            self._parse_element(element, domain_type, result)

    def _parse_element(
        self,
        element: ET.Element,
        domain_type: DomainType,
        result: ParseResult,
    ) -> None:
        label = f"<{local_name(element.tag)}> #{len(result.records) + len(result.errors) + 1}"
        fields = map_fields(domain_type, lambda name: self._lookup(element, name))
        record = CanonicalRecord(domain_type=domain_type, fields=fields, source=label)
        self._emit(result, record, label)

    def _classify(self, element: ET.Element, fallback: DomainType) -> DomainType:
        name = local_name(element.tag).lower()
        for domain_type, markers in self._ELEMENT_MARKERS:
            if any(marker in name for marker in markers):
                return domain_type
        return fallback

    @staticmethod
    def _lookup(element: ET.Element, name: str) -> str | None:
        """Child element text first, then attributes, trying common casings."""
        variants = (name, name.upper(), name.capitalize())
        children = {local_name(child.tag): child for child in element}
        for variant in variants:
            child = children.get(variant)
            if child is not None and child.text and child.text.strip():
                return child.text.strip()
        for variant in variants:
            value = element.get(variant)
            if value:
                return value
        return None

    @staticmethod
    def _is_single_entity(root: ET.Element) -> bool:
        children = list(root)
        if not children:
            return False
        leaves = all(len(child) == 0 and not child.attrib for child in children)
        return leaves and len({child.tag for child in children}) == len(children)
