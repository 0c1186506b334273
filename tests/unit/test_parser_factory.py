import pytest

from aps_ingestion.ingestion.exceptions import UnsupportedFormatError
from aps_ingestion.ingestion.models import DetectedFormat
from aps_ingestion.ingestion.parsers.factory import ParserFactory
from aps_ingestion.ingestion.parsers.fhir import FhirParser
from aps_ingestion.ingestion.parsers.hl7 import Hl7Parser
from aps_ingestion.ingestion.parsers.json_parser import JsonParser
from aps_ingestion.ingestion.parsers.tabular import TabularParser
from aps_ingestion.ingestion.parsers.xml_parser import XmlParser


class TestParserFactory:
    @pytest.mark.parametrize(
        ("detected_format", "parser_cls"),
        [
            (DetectedFormat.TABULAR, TabularParser),
            (DetectedFormat.XML, XmlParser),
            (DetectedFormat.JSON, JsonParser),
            (DetectedFormat.HL7, Hl7Parser),
            (DetectedFormat.FHIR, FhirParser),
        ],
    )
    def test_creates_parser(self, detected_format: DetectedFormat, parser_cls: type) -> None:
        assert isinstance(ParserFactory.create(detected_format), parser_cls)

    def test_unknown_format_raises(self) -> None:
        with pytest.raises(UnsupportedFormatError, match="No parser for format 'unknown'"):
            ParserFactory.create(DetectedFormat.UNKNOWN)
