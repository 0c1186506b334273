"""HL7 v2 parser for ADT (admission/transfer/discharge) and ORM (order)
messages. A file may hold many messages; each starts with an MSH segment."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import ClassVar

from aps_ingestion.ingestion.exceptions import RecordParseError
from aps_ingestion.ingestion.models import CanonicalRecord, DomainType, ParseResult
from aps_ingestion.ingestion.parsers.base import BaseParser
from aps_ingestion.logging.logger import Log


@dataclass
class Hl7Message:
    number: int
    segments: dict[str, list[list[str]]] = field(default_factory=dict)
    component_separator: str = "^"
    repetition_separator: str = "~"
    subcomponent_separator: str = "&"

    def segment(self, name: str) -> list[str] | None:
        occurrences = self.segments.get(name)
        return occurrences[0] if occurrences else None

    def value(self, segment: list[str] | None, position: int) -> str:
        if segment is None or position >= len(segment):
            return ""
        return segment[position].strip()

    def components(self, raw: str) -> list[str]:
        return raw.split(self.component_separator) if raw else []

    def component(self, raw: str, position: int) -> str:
        parts = self.components(raw)
        return parts[position].strip() if position < len(parts) else ""


class Hl7Parser(BaseParser):
    format_name = "hl7"

    SUPPORTED_TYPES: ClassVar[frozenset[tuple[str, str]]] = frozenset(
        {("ADT", "A01"), ("ADT", "A02"), ("ADT", "A03"), ("ORM", "O01")}
    )
    _DIGITS_RE: ClassVar[re.Pattern[str]] = re.compile(r"\D")

    def parse(
        self,
        content: str,
        domain_hint: DomainType,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        result = ParseResult()
        blocks = self.split_messages(content)
        if not blocks:
            result.errors.append("no MSH segment found")
            return result

        for number, lines in enumerate(blocks, start=1):
            if self._cancelled(cancel_event, result):
                break
            try:
                message = self._read_message(number, lines)
                self._extract(message, result)
            except RecordParseError as exc:
                result.errors.append(f"message {number}: {exc}")
                Log.warning(f"HL7 message {number} dropped: {exc}", parser=self.format_name)
        return result

    @staticmethod
    def split_messages(content: str) -> list[list[str]]:
        messages: list[list[str]] = []
        for line in content.split("\n"):
            line = line.strip()
            if not line:
                continue
            if line.startswith("MSH"):
                messages.append([line])
            elif messages:
                messages[-1].append(line)
        return messages

    def _read_message(self, number: int, lines: list[str]) -> Hl7Message:
        header = lines[0]
        if len(header) < 8:
            raise RecordParseError("MSH segment is truncated")
        field_separator = header[3]
        encoding = header[4:8]
        message = Hl7Message(
            number=number,
            component_separator=encoding[0],
            repetition_separator=encoding[1],
            subcomponent_separator=encoding[3],
        )
        for line in lines:
            fields = line.split(field_separator)
            name = fields[0]
            if len(name) != 3 or not name.isalnum():
                raise RecordParseError(f"invalid segment '{line[:20]}'")
            if name == "MSH":
                # MSH-1 is the separator itself, so shift to keep HL7 numbering
                fields = ["MSH", field_separator, *fields[1:]]
            message.segments.setdefault(name, []).append(fields)

        msh = message.segment("MSH")
        if msh is None or len(msh) <= 9:
            raise RecordParseError("MSH segment has no message type (MSH-9)")
        return message

    def _extract(self, message: Hl7Message, result: ParseResult) -> None:
        msh = message.segment("MSH")
        raw_type = message.value(msh, 9)
        message_type = message.component(raw_type, 0)
        trigger = message.component(raw_type, 1)
        if (message_type, trigger) not in self.SUPPORTED_TYPES:
            result.warnings.append(
                f"message {message.number}: unsupported message type {message_type}^{trigger}"
            )
            return

        label = f"message {message.number}"
        result.records.append(self._patient(message))
        if message_type == "ADT":
            hospital = self._facility(message)
            if hospital is not None:
                result.records.append(hospital)
        else:
            physician = self._ordering_provider(message)
            if physician is not None:
                result.records.append(physician)
        Log.debug(f"Parsed HL7 {message_type}^{trigger}", source=label)

    def _patient(self, message: Hl7Message) -> CanonicalRecord:
        pid = message.segment("PID")
        if pid is None:
            raise RecordParseError("missing PID segment")

        cpf = ""
        other_id = ""
        for identifier in message.value(pid, 3).split(message.repetition_separator):
            value = message.component(identifier, 0)
            type_code = message.component(identifier, 4)
            digits = self._DIGITS_RE.sub("", value)
            if not cpf and (type_code.upper() == "CPF" or len(digits) == 11):
                cpf = value
            elif not other_id and value:
                other_id = value

        raw_name = message.value(pid, 5)
        family = message.component(raw_name, 0)
        given = message.component(raw_name, 1)
        name = " ".join(part for part in (given, family) if part)

        if not name:
            raise RecordParseError("patient name (PID-5) is missing")
        if not cpf:
            raise RecordParseError("patient CPF (PID-3) is missing")

        fields = {
            "id": other_id or cpf,
            "nome": name,
            "cpf": cpf,
        }
        birth = message.value(pid, 7)
        if re.match(r"^\d{8}", birth):
            fields["nascimento"] = f"{birth[:4]}-{birth[4:6]}-{birth[6:8]}"
        sex = message.value(pid, 8).upper()
        if sex in {"M", "F"}:
            fields["sexo"] = sex
        address = message.value(pid, 11)
        if address:
            fields["endereco"] = message.component(address, 0)
            fields["cidade"] = message.component(address, 2)
        phone = message.component(message.value(pid, 13), 0)
        if phone:
            fields["telefone"] = phone

        return CanonicalRecord(
            domain_type=DomainType.PATIENT,
            fields={k: v for k, v in fields.items() if v},
            source=f"message {message.number} PID",
        )

    def _facility(self, message: Hl7Message) -> CanonicalRecord | None:
        pv1 = message.segment("PV1")
        facility = message.component(message.value(pv1, 3), 3)
        if not facility:
            return None
        parts = facility.split(message.subcomponent_separator)
        cnes = parts[0].strip()
        name = parts[1].strip() if len(parts) > 1 else ""
        if not cnes and not name:
            return None
        return CanonicalRecord(
            domain_type=DomainType.HOSPITAL,
            fields={k: v for k, v in {"cnes": cnes, "nome": name}.items() if v},
            source=f"message {message.number} PV1",
        )

    def _ordering_provider(self, message: Hl7Message) -> CanonicalRecord | None:
        orc = message.segment("ORC")
        provider = message.value(orc, 12)
        if not provider:
            return None
        crm = message.component(provider, 0)
        family = message.component(provider, 1)
        given = message.component(provider, 2)
        name = " ".join(part for part in (given, family) if part)
        if not crm and not name:
            return None
        return CanonicalRecord(
            domain_type=DomainType.PHYSICIAN,
            fields={k: v for k, v in {"crm": crm, "nome_completo": name}.items() if v},
            source=f"message {message.number} ORC",
        )
