"""FHIR R4 parser for Patient, Organization and Practitioner resources, alone
or inside a Bundle. JSON is tried first, XML second; XML resources are turned
into the same dictionary shape as their JSON form before extraction."""

from __future__ import annotations

import json
import re
import threading
import xml.etree.ElementTree as ET
from typing import Any, ClassVar

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as SafeET

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ParseResult
from aps_ingestion.ingestion.parsers.base import BaseParser
from aps_ingestion.ingestion.parsers.xml_parser import local_name
from aps_ingestion.logging.logger import Log

NAMING_SYSTEM = "http://www.saude.gov.br/fhir/r4/NamingSystem/"


def fhir_xml_to_dict(element: ET.Element) -> dict[str, Any]:
    """Convert a FHIR XML element into its JSON-equivalent dictionary."""
    data: dict[str, Any] = {}
    for child in element:
        name = local_name(child.tag)
        if "value" in child.attrib and len(child) == 0:
            value: Any = child.attrib["value"]
        elif name == "resource" and len(child):
            inner = child[0]
            value = {"resourceType": local_name(inner.tag), **fhir_xml_to_dict(inner)}
        else:
            value = fhir_xml_to_dict(child)
        if name in FhirParser.REPEATING:
            data.setdefault(name, []).append(value)
        else:
            data[name] = value
    return data


class FhirParser(BaseParser):
    format_name = "fhir"

    REPEATING: ClassVar[frozenset[str]] = frozenset(
        {"identifier", "name", "given", "telecom", "address", "line", "entry",
         "qualification", "coding", "type"}
    )
    _DIGITS_RE: ClassVar[re.Pattern[str]] = re.compile(r"\D")
    _GENDERS: ClassVar[dict[str, str]] = {"male": "M", "female": "F"}

    def parse(
        self,
        content: str,
        domain_hint: DomainType,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        result = ParseResult()
        resources = self._load(content, result)
        for position, resource in enumerate(resources, start=1):
            if self._cancelled(cancel_event, result):
                break
            self._parse_resource(resource, position, result, cancel_event)
        return result

    def _load(self, content: str, result: ParseResult) -> list[dict[str, Any]]:
        try:
            data = json.loads(content)
        except ValueError:
            data = None
        if data is not None:
            items = data if isinstance(data, list) else [data]
            return [item for item in items if isinstance(item, dict)]

        try:
            root = SafeET.fromstring(content, forbid_dtd=True)
        except (ET.ParseError, DefusedXmlException) as exc:
            result.errors.append(f"document is neither FHIR JSON nor FHIR XML: {exc}")
            Log.warning(f"FHIR document rejected: {exc}", parser=self.format_name)
            return []
        return [{"resourceType": local_name(root.tag), **fhir_xml_to_dict(root)}]

    def _parse_resource(
        self,
        resource: dict[str, Any],
        position: int,
        result: ParseResult,
        cancel_event: threading.Event | None,
    ) -> None:
        resource_type = resource.get("resourceType", "")
        label = f"{resource_type or 'resource'} #{position}"

        if resource_type == "Bundle":
            entries = resource.get("entry") or []
            if not isinstance(entries, list):
                result.errors.append(f"{label}: entry is not a list")
                return
            for index, entry in enumerate(entries, start=1):
                if self._cancelled(cancel_event, result):
                    return
                inner = entry.get("resource") if isinstance(entry, dict) else None
                if not isinstance(inner, dict):
                    result.errors.append(f"Bundle entry #{index}: no resource")
                    continue
                self._parse_resource(inner, index, result, cancel_event)
            return

        extractors = {
            "Patient": self._patient,
            "Organization": self._organization,
            "Practitioner": self._practitioner,
        }
        extractor = extractors.get(resource_type)
        if extractor is None:
            result.warnings.append(f"{label}: unsupported resource type '{resource_type}'")
            return
        try:
            record = extractor(resource, label)
        except (AttributeError, TypeError, ValueError) as exc:
            # one malformed resource never costs the rest of the Bundle
            result.errors.append(f"{label}: malformed resource: {exc}")
            Log.warning(f"FHIR resource dropped at {label}: {exc}", parser=self.format_name)
            return
        self._emit(result, record, label)

    def _patient(self, resource: dict[str, Any], label: str) -> CanonicalRecord:
        fields: dict[str, Any] = {
            "id": resource.get("id", ""),
            "nome": self._human_name(resource),
            "cpf": self._identifier(resource, "cpf") or self._eleven_digit_identifier(resource),
            "nascimento": resource.get("birthDate", ""),
            "sexo": self._GENDERS.get(str(resource.get("gender", "")).lower(), ""),
        }
        fields.update(self._telecom(resource))
        fields.update(self._address(resource))
        return self._record(DomainType.PATIENT, fields, label)

    def _organization(self, resource: dict[str, Any], label: str) -> CanonicalRecord:
        fields: dict[str, Any] = {
            "codigo": resource.get("id", ""),
            "cnes": self._identifier(resource, "cnes"),
            "nome": resource.get("name", ""),
            "tipo": self._type_text(resource),
        }
        fields.update(self._telecom(resource))
        fields.update(self._address(resource))
        return self._record(DomainType.HOSPITAL, fields, label)

    def _practitioner(self, resource: dict[str, Any], label: str) -> CanonicalRecord:
        fields: dict[str, Any] = {
            "codigo": resource.get("id", ""),
            "nome_completo": self._human_name(resource),
            "crm": self._identifier(resource, "crm"),
            "cpf": self._identifier(resource, "cpf"),
            "especialidade": self._qualification(resource),
        }
        fields.update(self._telecom(resource))
        return self._record(DomainType.PHYSICIAN, fields, label)

    @staticmethod
    def _record(domain_type: DomainType, fields: dict[str, Any], label: str) -> CanonicalRecord:
        cleaned = {k: str(v).strip() for k, v in fields.items() if v and str(v).strip()}
        return CanonicalRecord(domain_type=domain_type, fields=cleaned, source=label)

    @staticmethod
    def _identifier(resource: dict[str, Any], kind: str) -> str:
        for identifier in resource.get("identifier") or []:
            if not isinstance(identifier, dict):
                continue
            system = str(identifier.get("system", ""))
            type_text = ""
            types = identifier.get("type")
            if isinstance(types, list):
                types = types[0] if types else {}
            if isinstance(types, dict):
                type_text = str(types.get("text", ""))
            if system == NAMING_SYSTEM + kind or type_text.lower() == kind:
                return str(identifier.get("value", ""))
        return ""

    def _eleven_digit_identifier(self, resource: dict[str, Any]) -> str:
        for identifier in resource.get("identifier") or []:
            value = str(identifier.get("value", "")) if isinstance(identifier, dict) else ""
            if len(self._DIGITS_RE.sub("", value)) == 11:
                return value
        return ""

    @staticmethod
    def _human_name(resource: dict[str, Any]) -> str:
        names = resource.get("name") or []
        if isinstance(names, dict):
            names = [names]
        if not names or not isinstance(names[0], dict):
            return ""
        name = names[0]
        if name.get("text"):
            return str(name["text"])
        given = name.get("given") or []
        if isinstance(given, str):
            given = [given]
        family = name.get("family", "")
        return " ".join(part for part in [*given, family] if part)

    @staticmethod
    def _telecom(resource: dict[str, Any]) -> dict[str, str]:
        fields: dict[str, str] = {}
        for contact in resource.get("telecom") or []:
            if not isinstance(contact, dict):
                continue
            system = contact.get("system")
            if system == "phone" and "telefone" not in fields:
                fields["telefone"] = str(contact.get("value", ""))
            elif system == "email" and "email" not in fields:
                fields["email"] = str(contact.get("value", ""))
        return fields

    @staticmethod
    def _address(resource: dict[str, Any]) -> dict[str, str]:
        addresses = resource.get("address") or []
        if isinstance(addresses, dict):
            addresses = [addresses]
        if not addresses or not isinstance(addresses[0], dict):
            return {}
        address = addresses[0]
        lines = address.get("line") or []
        if isinstance(lines, str):
            lines = [lines]
        return {
            "endereco": ", ".join(str(line) for line in lines),
            "cidade": str(address.get("city", "")),
            "bairro": str(address.get("district", "")),
            "estado": str(address.get("state", "")),
            "cep": str(address.get("postalCode", "")),
        }

    @staticmethod
    def _type_text(resource: dict[str, Any]) -> str:
        types = resource.get("type") or []
        if isinstance(types, dict):
            types = [types]
        if not types or not isinstance(types[0], dict):
            return ""
        first = types[0]
        if first.get("text"):
            return str(first["text"])
        codings = first.get("coding") or []
        if codings and isinstance(codings[0], dict):
            return str(codings[0].get("display", ""))
        return ""

    @staticmethod
    def _qualification(resource: dict[str, Any]) -> str:
        qualifications = resource.get("qualification") or []
        if not qualifications or not isinstance(qualifications[0], dict):
            return ""
        code = qualifications[0].get("code") or {}
        if code.get("text"):
            return str(code["text"])
        codings = code.get("coding") or []
        if codings and isinstance(codings[0], dict):
            return str(codings[0].get("display") or codings[0].get("code", ""))
        return ""
