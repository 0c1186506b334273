from collections.abc import Mapping

import pytest

from aps_ingestion.config.settings import Settings
from aps_ingestion.ingestion.ingestor import Ingestor, build_ingestor
from aps_ingestion.ingestion.models import DomainType
from aps_ingestion.ingestion.schemas import ValidationSchema, build_schema_registry
from aps_ingestion.storage.memory_store import InMemoryRecordStore

PHYSICIANS_CSV = (
    "codigo,nome_completo,especialidade,cidade\n"
    "a1b2c3d4-0000-0000-0000-000000000000,Maria Silva,Cardiologia,3550308\n"
    "b2c3d4e5-0000-0000-0000-000000000000,João Souza,Pediatria,3304557\n"
)

PATIENTS_WITHOUT_CPF_CSV = (
    "nome,email\n"
    "Ana Lima,ana@example.com\n"
    "Carlos Rocha,carlos@example.com\n"
)

HOSPITALS_CSV = (
    "codigo;nome;cidade;bairro;leitos_totais;cnes\n"
    "c3d4e5f6-0000-0000-0000-000000000000;Hospital Central;3550308;Centro;120;2077485\n"
    "d4e5f6a7-0000-0000-0000-000000000000;Santa Casa;3550308;Consolação;300;2078015\n"
)

HL7_THREE_MESSAGES_ONE_CORRUPT = (
    "MSH|^~\\&|HIS|HOSP|APS|SES|20240105120000||ADT^A01|MSG0001|P|2.5\n"
    "EVN|A01|20240105120000\n"
    "PID|1||12345^^^HOSP^MR~123.456.789-09^^^^CPF||Silva^Maria||19800115|F|||Rua A 10^^São Paulo^SP||11987654321\n"
    "MSH|^~\\&|HIS|HOSP|APS|SES|20240105121000||ADT^A01|MSG0002|P|2.5\n"
    "PID|1||67890^^^HOSP^MR||Souza^João||19751120|M\n"
    "MSH|^~\\&|HIS|HOSP|APS|SES|20240105122000||ADT^A03|MSG0003|P|2.5\n"
    "PID|1||55555^^^HOSP^MR~98765432100^^^^CPF||Lima^Ana||19900302|F\n"
)

FHIR_PATIENT_BUNDLE = """{
  "resourceType": "Bundle",
  "type": "collection",
  "entry": [
    {"resource": {
      "resourceType": "Patient",
      "id": "e5f6a7b8-0000-0000-0000-000000000000",
      "identifier": [{"system": "http://www.saude.gov.br/fhir/r4/NamingSystem/cpf", "value": "12345678909"}],
      "name": [{"family": "Silva", "given": ["Maria"]}],
      "gender": "female",
      "birthDate": "1980-01-15",
      "telecom": [{"system": "phone", "value": "11987654321"}, {"system": "email", "value": "maria@example.com"}],
      "address": [{"line": ["Rua A, 10"], "city": "São Paulo", "state": "SP", "postalCode": "01000-000"}]
    }},
    {"resource": {
      "resourceType": "Organization",
      "id": "f6a7b8c9-0000-0000-0000-000000000000",
      "identifier": [{"type": {"text": "CNES"}, "value": "2077485"}],
      "name": "Hospital Central",
      "type": [{"coding": [{"display": "Hospital Geral"}]}]
    }},
    {"resource": {"resourceType": "Observation", "id": "obs-1"}}
  ]
}"""

XML_HOSPITALS = """<?xml version="1.0" encoding="UTF-8"?>
<hospitais>
  <hospital>
    <codigo>c3d4e5f6-0000-0000-0000-000000000000</codigo>
    <codigo_cnes>2077485</codigo_cnes>
    <razao_social>Hospital Central</razao_social>
    <cidade>3550308</cidade>
    <bairro>Centro</bairro>
    <capacidade_leitos>120</capacidade_leitos>
  </hospital>
  <hospital cnes="2078015" nome="Santa Casa" cidade="3550308" bairro="Consolação" leitos="300"/>
</hospitais>
"""

JSON_INTEGRATED = """{
  "dados_saude": {
    "hospitais": [
      {"codigo": "c3d4e5f6-0000-0000-0000-000000000000", "cnes": "2077485", "nome": "Hospital Central",
       "cidade": "3550308", "bairro": "Centro", "leitos": 120, "especialidades": ["Cardiologia", "Pediatria"]}
    ],
    "medicos": [
      {"codigo": "a1b2c3d4-0000-0000-0000-000000000000", "nome": "Maria Silva", "crm": "123456",
       "uf_crm": "SP", "especialidade": "Cardiologia", "cidade": "3550308"}
    ],
    "pacientes": [
      {"id": "e5f6a7b8-0000-0000-0000-000000000000", "nome_completo": "Ana Lima", "documento": "12345678909"}
    ]
  }
}"""


@pytest.fixture
def schemas() -> Mapping[DomainType, ValidationSchema]:
    return build_schema_registry()


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def ingestor(record_store: InMemoryRecordStore) -> Ingestor:
    return build_ingestor(Settings(), record_store)
