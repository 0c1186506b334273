"""Source-name synonyms shared by the structured-document parsers.

Parsers only know how a field may be spelled in the source; which fields are
required is the validator's business.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from aps_ingestion.ingestion.models import DomainType

ENVELOPE_KEYS: tuple[str, ...] = ("dados_saude", "sistema_saude", "aps_dados")

COLLECTION_KEYS: Mapping[str, DomainType] = {
    "hospitais": DomainType.HOSPITAL,
    "estabelecimentos": DomainType.HOSPITAL,
    "unidades_saude": DomainType.HOSPITAL,
    "medicos": DomainType.PHYSICIAN,
    "profissionais": DomainType.PHYSICIAN,
    "equipe_medica": DomainType.PHYSICIAN,
    "pacientes": DomainType.PATIENT,
    "usuarios": DomainType.PATIENT,
    "beneficiarios": DomainType.PATIENT,
    "municipios": DomainType.MUNICIPALITY,
    "estados": DomainType.STATE,
    "cid10": DomainType.DIAGNOSIS_CODE,
    "diagnosticos": DomainType.DIAGNOSIS_CODE,
}

FIELD_SYNONYMS: Mapping[DomainType, Mapping[str, tuple[str, ...]]] = {
    DomainType.PHYSICIAN: {
        "codigo": ("codigo", "uuid", "id"),
        "nome_completo": ("nome_completo", "nome"),
        "especialidade": ("especialidade", "especialidades"),
        "cidade": ("cidade", "codigo_ibge", "municipio_codigo", "ibge"),
        "crm": ("crm", "numero_crm"),
        "estado_crm": ("estado_crm", "uf_crm", "crm_uf"),
        "cpf": ("cpf", "documento"),
        "telefone": ("telefone", "fone"),
        "email": ("email", "e_mail"),
    },
    DomainType.HOSPITAL: {
        "codigo": ("codigo", "uuid"),
        "cnes": ("cnes", "codigo_cnes", "id"),
        "nome": ("nome", "razao_social", "denominacao"),
        "cidade": ("cidade", "codigo_ibge", "municipio_codigo", "ibge"),
        "bairro": ("bairro",),
        "leitos_totais": ("leitos_totais", "leitos", "capacidade_leitos"),
        "especialidades": ("especialidades",),
        "tipo": ("tipo", "tipo_unidade"),
        "endereco": ("endereco", "logradouro"),
        "telefone": ("telefone", "fone"),
        "email": ("email", "e_mail"),
        "latitude": ("latitude", "lat"),
        "longitude": ("longitude", "lng", "lon"),
        "ativo": ("ativo", "status"),
    },
    DomainType.PATIENT: {
        "id": ("id", "codigo", "uuid"),
        "nome": ("nome", "nome_completo"),
        "cpf": ("cpf", "documento"),
        "email": ("email", "e_mail"),
        "telefone": ("telefone", "fone"),
        "endereco": ("endereco", "logradouro"),
        "cidade": ("cidade", "codigo_ibge", "municipio_codigo", "ibge"),
        "nascimento": ("nascimento", "data_nascimento"),
        "sexo": ("sexo", "genero"),
        "cartao_sus": ("cartao_sus", "sus"),
    },
    DomainType.MUNICIPALITY: {
        "codigo_ibge": ("codigo_ibge", "ibge", "codigo"),
        "nome": ("nome",),
        "latitude": ("latitude", "lat"),
        "longitude": ("longitude", "lng", "lon"),
        "codigo_uf": ("codigo_uf",),
        "populacao": ("populacao",),
        "capital": ("capital",),
        "siafi_id": ("siafi_id",),
        "ddd": ("ddd",),
        "fuso_horario": ("fuso_horario",),
    },
    DomainType.STATE: {
        "codigo_uf": ("codigo_uf", "codigo"),
        "uf": ("uf", "sigla"),
        "nome": ("nome",),
        "latitude": ("latitude", "lat"),
        "longitude": ("longitude", "lng", "lon"),
        "regiao": ("regiao",),
    },
    DomainType.DIAGNOSIS_CODE: {
        "codigo": ("codigo", "cid", "cid10", "code"),
        "descricao": ("descricao", "description"),
        "categoria": ("categoria",),
        "subcategoria": ("subcategoria",),
        "especialidade_recomendada": ("especialidade_recomendada",),
        "grau_severidade": ("grau_severidade", "severidade"),
        "sexo": ("sexo",),
        "faixa_etaria": ("faixa_etaria",),
    },
}


def map_fields(
    domain_type: DomainType,
    lookup: Callable[[str], str | None],
) -> dict[str, str]:
    """Collect canonical fields for ``domain_type`` using ``lookup`` on source names.

    The first synonym with a non-blank value wins.
    """
    fields: dict[str, str] = {}
    for canonical, synonyms in FIELD_SYNONYMS.get(domain_type, {}).items():
        for name in synonyms:
            value = lookup(name)
            if value is not None and str(value).strip():
                fields[canonical] = str(value).strip()
                break
    return fields


def canonical_name(domain_type: DomainType, source_name: str) -> str:
    """Map one already folded source column name onto its canonical field."""
    for canonical, synonyms in FIELD_SYNONYMS.get(domain_type, {}).items():
        if source_name in synonyms:
            return canonical
    return source_name


def domain_for_collection(key: str) -> DomainType | None:
    return COLLECTION_KEYS.get(key.lower())


def first_record(data: Any) -> dict[str, Any] | None:
    """Return the first entity object inside a decoded JSON document."""
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict):
                return item
        return None
    if not isinstance(data, dict):
        return None
    for key in ENVELOPE_KEYS:
        if isinstance(data.get(key), dict):
            return first_record(data[key])
    for key, value in data.items():
        if domain_for_collection(key) is not None and isinstance(value, list):
            return first_record(value)
    return data
