from aps_ingestion.ingestion.exceptions import UnsupportedFormatError
from aps_ingestion.ingestion.models import DetectedFormat
from aps_ingestion.ingestion.parsers.base import BaseParser
from aps_ingestion.ingestion.parsers.fhir import FhirParser
from aps_ingestion.ingestion.parsers.hl7 import Hl7Parser
from aps_ingestion.ingestion.parsers.json_parser import JsonParser
from aps_ingestion.ingestion.parsers.tabular import TabularParser
from aps_ingestion.ingestion.parsers.xml_parser import XmlParser


class ParserFactory:
    """Creates the parser for a detected format."""

    ADAPTERS: dict[DetectedFormat, type[BaseParser]] = {
        DetectedFormat.TABULAR: TabularParser,
        DetectedFormat.XML: XmlParser,
        DetectedFormat.JSON: JsonParser,
        DetectedFormat.HL7: Hl7Parser,
        DetectedFormat.FHIR: FhirParser,
    }

    @classmethod
    def create(cls, detected_format: DetectedFormat) -> BaseParser:
        adapter_cls = cls.ADAPTERS.get(detected_format)
        if adapter_cls is None:
            raise UnsupportedFormatError(
                f"No parser for format '{detected_format.value}'. "
                f"Choose from: {[f.value for f in cls.ADAPTERS]}"
            )
        return adapter_cls()
