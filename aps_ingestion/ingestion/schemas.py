"""Per-domain validation schemas.

Schemas are immutable and built once; the validator and the detector receive
the registry as a dependency instead of reaching for module state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping

from aps_ingestion.ingestion.models import DomainType


class FieldFormat(str, Enum):
    UUID = "uuid"
    PERSON_NAME = "person_name"
    NUMERIC_CODE = "numeric_code"
    DECIMAL = "decimal"
    UF = "uf"
    CPF = "cpf"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    SEX = "sex"
    SEMICOLON_LIST = "semicolon_list"
    BOOLEAN = "boolean"
    ICD10 = "icd10"


_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_NAME_RE = re.compile(r"^[^\W\d_]+(?:[ '.\-]+[^\W\d_]+)*\.?$")
_NUMERIC_RE = re.compile(r"^\d+$")
_DECIMAL_RE = re.compile(r"^-?\d+\.?\d*$")
_UF_RE = re.compile(r"^[A-Z]{2}$")
_CPF_RE = re.compile(r"^\d{3}\.\d{3}\.\d{3}-\d{2}$|^\d{11}$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^\(\d{2}\)\s\d{4,5}-\d{4}$|^\d{10,11}$")
_ICD10_RE = re.compile(r"^[A-Z]\d{2}(\.\d{1,2})?$")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")


def _is_date(value: str) -> bool:
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
        except ValueError:
            continue
        return True
    return False


def _is_semicolon_list(value: str) -> bool:
    return all(item.strip() for item in value.split(";"))


FORMAT_CHECKS: Mapping[FieldFormat, Callable[[str], bool]] = MappingProxyType(
    {
        FieldFormat.UUID: lambda v: bool(_UUID_RE.match(v)),
        FieldFormat.PERSON_NAME: lambda v: bool(_NAME_RE.match(v)),
        FieldFormat.NUMERIC_CODE: lambda v: bool(_NUMERIC_RE.match(v)),
        FieldFormat.DECIMAL: lambda v: bool(_DECIMAL_RE.match(v)),
        FieldFormat.UF: lambda v: bool(_UF_RE.match(v)),
        FieldFormat.CPF: lambda v: bool(_CPF_RE.match(v)),
        FieldFormat.EMAIL: lambda v: bool(_EMAIL_RE.match(v)),
        FieldFormat.PHONE: lambda v: bool(_PHONE_RE.match(v)),
        FieldFormat.DATE: _is_date,
        FieldFormat.SEX: lambda v: v.upper() in {"M", "F"},
        FieldFormat.SEMICOLON_LIST: _is_semicolon_list,
        FieldFormat.BOOLEAN: lambda v: v.lower() in {"true", "false", "1", "0", "sim", "nao", "não", "s", "n"},
        FieldFormat.ICD10: lambda v: bool(_ICD10_RE.match(v.upper())),
    }
)


@dataclass(frozen=True)
class ValidationSchema:
    domain_type: DomainType
    required: tuple[str, ...]
    optional: tuple[str, ...] = ()
    formats: Mapping[str, FieldFormat] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def fields(self) -> tuple[str, ...]:
        return self.required + self.optional


def _schema(
    domain_type: DomainType,
    required: tuple[str, ...],
    optional: tuple[str, ...],
    formats: dict[str, FieldFormat],
) -> ValidationSchema:
    return ValidationSchema(
        domain_type=domain_type,
        required=required,
        optional=optional,
        formats=MappingProxyType(dict(formats)),
    )


def build_schema_registry() -> Mapping[DomainType, ValidationSchema]:
    """Return the read-only registry, in fingerprint tie-break order."""
    schemas = [
        _schema(
            DomainType.PHYSICIAN,
            required=("codigo", "nome_completo", "especialidade", "cidade"),
            optional=("crm", "estado_crm", "cpf", "email", "telefone"),
            formats={
                "codigo": FieldFormat.UUID,
                "nome_completo": FieldFormat.PERSON_NAME,
                "especialidade": FieldFormat.PERSON_NAME,
                "cidade": FieldFormat.NUMERIC_CODE,
                "crm": FieldFormat.NUMERIC_CODE,
                "estado_crm": FieldFormat.UF,
                "cpf": FieldFormat.CPF,
                "email": FieldFormat.EMAIL,
                "telefone": FieldFormat.PHONE,
            },
        ),
        _schema(
            DomainType.HOSPITAL,
            required=("codigo", "nome", "cidade", "bairro", "leitos_totais"),
            optional=(
                "cnes", "especialidades", "tipo", "endereco", "telefone",
                "email", "latitude", "longitude", "ativo",
            ),
            formats={
                "codigo": FieldFormat.UUID,
                "cidade": FieldFormat.NUMERIC_CODE,
                "leitos_totais": FieldFormat.NUMERIC_CODE,
                "cnes": FieldFormat.NUMERIC_CODE,
                "especialidades": FieldFormat.SEMICOLON_LIST,
                "telefone": FieldFormat.PHONE,
                "email": FieldFormat.EMAIL,
                "latitude": FieldFormat.DECIMAL,
                "longitude": FieldFormat.DECIMAL,
                "ativo": FieldFormat.BOOLEAN,
            },
        ),
        _schema(
            DomainType.MUNICIPALITY,
            required=("codigo_ibge", "nome", "latitude", "longitude", "codigo_uf", "populacao"),
            optional=("capital", "siafi_id", "ddd", "fuso_horario"),
            formats={
                "codigo_ibge": FieldFormat.NUMERIC_CODE,
                "latitude": FieldFormat.DECIMAL,
                "longitude": FieldFormat.DECIMAL,
                "codigo_uf": FieldFormat.NUMERIC_CODE,
                "populacao": FieldFormat.NUMERIC_CODE,
                "capital": FieldFormat.BOOLEAN,
                "siafi_id": FieldFormat.NUMERIC_CODE,
                "ddd": FieldFormat.NUMERIC_CODE,
            },
        ),
        _schema(
            DomainType.STATE,
            required=("codigo_uf", "uf", "nome", "latitude", "longitude", "regiao"),
            optional=(),
            formats={
                "codigo_uf": FieldFormat.NUMERIC_CODE,
                "uf": FieldFormat.UF,
                "latitude": FieldFormat.DECIMAL,
                "longitude": FieldFormat.DECIMAL,
            },
        ),
        _schema(
            DomainType.PATIENT,
            required=("id", "nome", "cpf"),
            optional=("email", "telefone", "endereco", "cidade", "nascimento", "sexo", "cartao_sus"),
            formats={
                "id": FieldFormat.UUID,
                "nome": FieldFormat.PERSON_NAME,
                "cpf": FieldFormat.CPF,
                "email": FieldFormat.EMAIL,
                "telefone": FieldFormat.PHONE,
                "nascimento": FieldFormat.DATE,
                "sexo": FieldFormat.SEX,
            },
        ),
        _schema(
            DomainType.DIAGNOSIS_CODE,
            required=("codigo", "descricao"),
            optional=(
                "categoria", "subcategoria", "especialidade_recomendada",
                "grau_severidade", "sexo", "faixa_etaria",
            ),
            formats={"codigo": FieldFormat.ICD10},
        ),
    ]
    return MappingProxyType({schema.domain_type: schema for schema in schemas})
