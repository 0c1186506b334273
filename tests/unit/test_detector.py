from collections.abc import Mapping

import pytest

from aps_ingestion.ingestion.detector import Detector, is_spreadsheet
from aps_ingestion.ingestion.models import DetectedFormat, DomainType
from aps_ingestion.ingestion.schemas import ValidationSchema
from tests.conftest import (
    FHIR_PATIENT_BUNDLE,
    HL7_THREE_MESSAGES_ONE_CORRUPT,
    HOSPITALS_CSV,
    JSON_INTEGRATED,
    PHYSICIANS_CSV,
    XML_HOSPITALS,
)


@pytest.fixture
def detector(schemas: Mapping[DomainType, ValidationSchema]) -> Detector:
    return Detector(schemas)


class TestDetectFormat:
    def test_hl7_by_msh_segment(self, detector: Detector) -> None:
        assert detector.detect_format("adt.txt", HL7_THREE_MESSAGES_ONE_CORRUPT) is DetectedFormat.HL7

    def test_fhir_json_by_resource_type(self, detector: Detector) -> None:
        assert detector.detect_format("bundle.json", FHIR_PATIENT_BUNDLE) is DetectedFormat.FHIR

    def test_plain_json(self, detector: Detector) -> None:
        assert detector.detect_format("export.json", JSON_INTEGRATED) is DetectedFormat.JSON

    def test_fhir_xml_by_namespace(self, detector: Detector) -> None:
        content = '<Patient xmlns="http://hl7.org/fhir"><id value="1"/></Patient>'
        assert detector.detect_format("p.xml", content) is DetectedFormat.FHIR

    def test_plain_xml(self, detector: Detector) -> None:
        assert detector.detect_format("hospitais.xml", XML_HOSPITALS) is DetectedFormat.XML

    def test_csv_by_extension(self, detector: Detector) -> None:
        assert detector.detect_format("medicos.csv", PHYSICIANS_CSV) is DetectedFormat.TABULAR

    def test_delimited_text_without_extension(self, detector: Detector) -> None:
        assert detector.detect_format("upload", "a;b;c\n1;2;3") is DetectedFormat.TABULAR

    def test_unrecognized_content(self, detector: Detector) -> None:
        assert detector.detect_format("notes.dat", "just some words") is DetectedFormat.UNKNOWN

    def test_content_signature_beats_extension(self, detector: Detector) -> None:
        assert detector.detect_format("export.csv", JSON_INTEGRATED) is DetectedFormat.JSON


class TestDetectDomainType:
    def test_filename_hint(self, detector: Detector) -> None:
        result = detector.detect_domain_type("medicos.csv", PHYSICIANS_CSV, DetectedFormat.TABULAR)
        assert result is DomainType.PHYSICIAN

    def test_fingerprint_without_hint(self, detector: Detector) -> None:
        result = detector.detect_domain_type("upload.csv", HOSPITALS_CSV, DetectedFormat.TABULAR)
        assert result is DomainType.HOSPITAL

    def test_filename_hint_beats_fingerprint(self, detector: Detector) -> None:
        result = detector.detect_domain_type("pacientes.csv", HOSPITALS_CSV, DetectedFormat.TABULAR)
        assert result is DomainType.PATIENT

    def test_header_only_file_is_unknown(self, detector: Detector) -> None:
        result = detector.detect_domain_type(
            "medicos.csv", "codigo,nome_completo\n", DetectedFormat.TABULAR
        )
        assert result is DomainType.UNKNOWN

    def test_hl7_is_patient(self, detector: Detector) -> None:
        result = detector.detect_domain_type(
            "adt.hl7", HL7_THREE_MESSAGES_ONE_CORRUPT, DetectedFormat.HL7
        )
        assert result is DomainType.PATIENT

    def test_fhir_bundle_uses_first_known_resource(self, detector: Detector) -> None:
        result = detector.detect_domain_type("b.json", FHIR_PATIENT_BUNDLE, DetectedFormat.FHIR)
        assert result is DomainType.PATIENT

    def test_json_fingerprint_looks_inside_envelope(self, detector: Detector) -> None:
        result = detector.detect_domain_type("export.json", JSON_INTEGRATED, DetectedFormat.JSON)
        assert result is DomainType.HOSPITAL

    def test_same_input_gives_same_answer(self, detector: Detector) -> None:
        first = detector.detect_domain_type("upload.csv", HOSPITALS_CSV, DetectedFormat.TABULAR)
        second = detector.detect_domain_type("upload.csv", HOSPITALS_CSV, DetectedFormat.TABULAR)
        assert first is second


class TestDomainFromName:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Médicos_2024.csv", DomainType.PHYSICIAN),
            ("hospitais-sp.xlsx", DomainType.HOSPITAL),
            ("municipios.csv", DomainType.MUNICIPALITY),
            ("lista_uf.csv", DomainType.STATE),
            ("tabela_cid.csv", DomainType.DIAGNOSIS_CODE),
            ("pacientes", DomainType.PATIENT),
            ("dados.csv", DomainType.UNKNOWN),
        ],
    )
    def test_hints(self, detector: Detector, name: str, expected: DomainType) -> None:
        assert detector.domain_from_name(name) is expected


class TestFingerprint:
    def test_tie_resolves_in_registry_order(self, detector: Detector) -> None:
        assert detector.fingerprint(["nome", "latitude", "longitude"]) is DomainType.MUNICIPALITY

    def test_no_hits_is_unknown(self, detector: Detector) -> None:
        assert detector.fingerprint(["foo", "bar"]) is DomainType.UNKNOWN

    def test_accented_headers_are_folded(self, detector: Detector) -> None:
        assert detector.fingerprint(["Código", "Descrição"]) is DomainType.DIAGNOSIS_CODE


class TestIsSpreadsheet:
    def test_xlsx_magic(self) -> None:
        assert is_spreadsheet(b"PK\x03\x04rest", "dados.xlsx") is True

    def test_legacy_xls_magic(self) -> None:
        assert is_spreadsheet(b"\xd0\xcf\x11\xe0rest", "dados.bin") is True

    def test_csv_is_not_spreadsheet(self) -> None:
        assert is_spreadsheet(b"a,b\n1,2", "dados.csv") is False
