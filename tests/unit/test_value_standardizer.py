from collections.abc import Mapping

import pytest

from aps_ingestion.ingestion.models import CanonicalRecord, DomainType
from aps_ingestion.ingestion.schemas import ValidationSchema
from aps_ingestion.ingestion.values import (
    ValueStandardizer,
    escape_formula,
    format_cpf,
    format_phone,
    iso_date,
)


def _make_patient(**overrides: str) -> CanonicalRecord:
    fields = {
        "id": "e5f6a7b8-0000-0000-0000-000000000000",
        "nome": "Maria Silva",
        "cpf": "12345678909",
        "telefone": "11987654321",
        "nascimento": "15/01/1980",
    }
    fields.update(overrides)
    return CanonicalRecord(domain_type=DomainType.PATIENT, fields=fields, source="row 2")


@pytest.fixture
def standardizer(schemas: Mapping[DomainType, ValidationSchema]) -> ValueStandardizer:
    return ValueStandardizer(schemas)


class TestFormatters:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("15/01/1980", "1980-01-15"),
            ("15-01-1980", "1980-01-15"),
            ("1980-01-15", "1980-01-15"),
            ("janeiro 1980", "janeiro 1980"),
        ],
    )
    def test_iso_date(self, value: str, expected: str) -> None:
        assert iso_date(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("11987654321", "(11) 98765-4321"),
            ("(11) 3333-4444", "(11) 3333-4444"),
            ("11 3333 4444", "(11) 3333-4444"),
            ("98765", "98765"),
        ],
    )
    def test_format_phone(self, value: str, expected: str) -> None:
        assert format_phone(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("12345678909", "123.456.789-09"),
            ("123.456.789-09", "123.456.789-09"),
            ("1234567890", "1234567890"),
        ],
    )
    def test_format_cpf(self, value: str, expected: str) -> None:
        assert format_cpf(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("=HYPERLINK(\"x\")", "'=HYPERLINK(\"x\")"),
            ("@SUM(A1)", "'@SUM(A1)"),
            ("+55", "'+55"),
            ("Maria", "Maria"),
        ],
    )
    def test_escape_formula(self, value: str, expected: str) -> None:
        assert escape_formula(value) == expected


class TestStandardize:
    def test_rewrites_formatted_fields(self, standardizer: ValueStandardizer) -> None:
        outcome = standardizer.standardize([_make_patient()])

        record = outcome.records[0]
        assert record.fields["cpf"] == "123.456.789-09"
        assert record.fields["telefone"] == "(11) 98765-4321"
        assert record.fields["nascimento"] == "1980-01-15"
        assert record.source == "row 2"
        assert outcome.corrections == (
            "1 CPF value(s) reformatted",
            "1 phone value(s) reformatted",
            "1 date value(s) converted to ISO 8601",
        )

    def test_clean_record_is_returned_unchanged(self, standardizer: ValueStandardizer) -> None:
        record = _make_patient(
            cpf="123.456.789-09", telefone="(11) 98765-4321", nascimento="1980-01-15"
        )

        outcome = standardizer.standardize([record])

        assert outcome.records[0] is record
        assert outcome.corrections == ()

    def test_formula_in_free_text_is_escaped(self, standardizer: ValueStandardizer) -> None:
        outcome = standardizer.standardize([_make_patient(endereco="=cmd|' /C calc'!A0")])

        assert outcome.records[0].fields["endereco"] == "'=cmd|' /C calc'!A0"
        assert "1 formula-like value(s) escaped" in outcome.corrections

    def test_signed_coordinates_are_left_alone(self, standardizer: ValueStandardizer) -> None:
        municipality = CanonicalRecord(
            domain_type=DomainType.MUNICIPALITY,
            fields={"codigo_ibge": "3550308", "latitude": "-23.5329", "longitude": "-46.6395"},
        )

        outcome = standardizer.standardize([municipality])

        assert outcome.records[0].fields["latitude"] == "-23.5329"
        assert outcome.corrections == ()

    def test_unknown_domain_only_escapes(self, standardizer: ValueStandardizer) -> None:
        record = CanonicalRecord(
            domain_type=DomainType.UNKNOWN,
            fields={"telefone": "11987654321", "nota": "-apagar"},
        )

        outcome = standardizer.standardize([record])

        assert outcome.records[0].fields == {"telefone": "11987654321", "nota": "'-apagar"}
