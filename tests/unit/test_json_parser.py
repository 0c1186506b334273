import threading

from aps_ingestion.ingestion.models import DomainType
from aps_ingestion.ingestion.parsers.json_parser import JsonParser
from tests.conftest import JSON_INTEGRATED


class TestIntegratedEnvelope:
    def test_parses_every_collection(self) -> None:
        result = JsonParser().parse(JSON_INTEGRATED, DomainType.UNKNOWN)

        assert [r.domain_type for r in result.records] == [
            DomainType.HOSPITAL,
            DomainType.PHYSICIAN,
            DomainType.PATIENT,
        ]
        assert result.errors == []

    def test_maps_synonyms(self) -> None:
        hospital, physician, patient = JsonParser().parse(JSON_INTEGRATED, DomainType.UNKNOWN).records

        assert hospital.get("leitos_totais") == "120"
        assert hospital.get("especialidades") == "Cardiologia;Pediatria"
        assert physician.get("nome_completo") == "Maria Silva"
        assert physician.get("estado_crm") == "SP"
        assert patient.get("nome") == "Ana Lima"
        assert patient.get("cpf") == "12345678909"

    def test_source_labels(self) -> None:
        result = JsonParser().parse(JSON_INTEGRATED, DomainType.UNKNOWN)

        assert result.records[1].source == "physician #1"


class TestArrays:
    def test_top_level_array_classified_by_first_item(self) -> None:
        content = '[{"cnes": "2077485", "nome": "Hospital Central"}, {"cnes": "2078015", "nome": "Santa Casa"}]'

        result = JsonParser().parse(content, DomainType.UNKNOWN)

        assert {r.domain_type for r in result.records} == {DomainType.HOSPITAL}
        assert len(result.records) == 2

    def test_non_object_items_become_errors(self) -> None:
        content = '{"pacientes": [{"cpf": "12345678909", "nome": "Ana"}, 42]}'

        result = JsonParser().parse(content, DomainType.UNKNOWN)

        assert len(result.records) == 1
        assert result.errors == ["patient #2: expected an object, found int"]

    def test_empty_object_becomes_error(self) -> None:
        content = '{"medicos": [{}]}'

        result = JsonParser().parse(content, DomainType.UNKNOWN)

        assert result.records == []
        assert result.errors == ["physician #1: no recognizable fields"]

    def test_keys_are_case_insensitive(self) -> None:
        content = '[{"CPF": "12345678909", "Nome": "Ana Lima"}]'

        result = JsonParser().parse(content, DomainType.PATIENT)

        assert result.records[0].fields == {"nome": "Ana Lima", "cpf": "12345678909"}


class TestSingleObject:
    def test_classified_by_marker_key(self) -> None:
        result = JsonParser().parse('{"crm": "123456", "nome": "Maria Silva"}', DomainType.UNKNOWN)

        assert result.records[0].domain_type is DomainType.PHYSICIAN

    def test_falls_back_to_hint(self) -> None:
        result = JsonParser().parse('{"codigo": "A09", "descricao": "Diarreia"}', DomainType.DIAGNOSIS_CODE)

        assert result.records[0].domain_type is DomainType.DIAGNOSIS_CODE
        assert result.records[0].source == "object #1"


class TestMalformed:
    def test_invalid_json(self) -> None:
        result = JsonParser().parse('{"medicos": [', DomainType.PHYSICIAN)

        assert result.records == []
        assert result.errors[0].startswith("malformed JSON document")

    def test_scalar_document(self) -> None:
        result = JsonParser().parse("42", DomainType.PHYSICIAN)

        assert result.errors == ["JSON document holds no objects"]


class TestCancellation:
    def test_stops_when_event_is_set(self) -> None:
        event = threading.Event()
        event.set()

        result = JsonParser().parse(JSON_INTEGRATED, DomainType.UNKNOWN, event)

        assert result.records == []
        assert result.cancelled is True
        assert len(result.warnings) == 1
