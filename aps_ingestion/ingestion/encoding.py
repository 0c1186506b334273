"""Byte-to-text normalization.

Decoding tries each configured encoding in order and keeps the first one that
decodes strictly without C1 control characters (the signature of Windows-1252
bytes read as ISO-8859-1). The decoded text is then repaired: double-encoded
UTF-8 sequences are folded back, line endings unified and invisible characters
stripped. Every change is recorded so the report can explain it.
"""

from __future__ import annotations

import codecs
import json
import re
from typing import ClassVar

from aps_ingestion.ingestion.models import DetectedFormat, NormalizationOutcome
from aps_ingestion.logging.logger import Log

DEFAULT_ENCODINGS: tuple[str, ...] = ("utf-8", "iso-8859-1", "windows-1252")

MAX_TAG_IMBALANCE = 5

_OPEN_TAG_RE = re.compile(r"<[A-Za-z_][\w:.\-]*(?:\s[^<>]*)?(?<!/)>")
_CLOSE_TAG_RE = re.compile(r"</[A-Za-z_][\w:.\-]*\s*>")


def structural_indicators(text: str, detected_format: DetectedFormat) -> list[str]:
    """Integrity problems visible only once the wire format is known.

    JSON (and JSON-encoded FHIR) must parse; XML may not have more than
    ``MAX_TAG_IMBALANCE`` unclosed or stray closing tags.
    """
    stripped = text.strip()
    if not stripped:
        return []
    is_json = detected_format is DetectedFormat.JSON or (
        detected_format is DetectedFormat.FHIR and stripped.startswith(("{", "["))
    )
    is_xml = detected_format is DetectedFormat.XML or (
        detected_format is DetectedFormat.FHIR and stripped.startswith("<")
    )
    if is_json:
        try:
            json.loads(stripped)
        except ValueError as exc:
            return [f"JSON content does not parse: {exc}"]
    elif is_xml:
        opened = len(_OPEN_TAG_RE.findall(stripped))
        closed = len(_CLOSE_TAG_RE.findall(stripped))
        if abs(opened - closed) > MAX_TAG_IMBALANCE:
            return [f"unbalanced XML tags: {opened} opened, {closed} closed"]
    return []


class EncodingNormalizer:
    """Turn raw upload bytes into clean UTF-8 text."""

    _MOJIBAKE: ClassVar[dict[str, str]] = {
        "Ã¡": "á",
        "Ã\u00a0": "à",
        "Ã£": "ã",
        "Ã¢": "â",
        "Ã©": "é",
        "Ã¨": "è",
        "Ãª": "ê",
        "Ã­": "í",
        "Ã¬": "ì",
        "Ã®": "î",
        "Ã³": "ó",
        "Ã²": "ò",
        "Ãµ": "õ",
        "Ã´": "ô",
        "Ãº": "ú",
        "Ã¹": "ù",
        "Ã»": "û",
        "Ã§": "ç",
        "Ã±": "ñ",
    }
    _MOJIBAKE_RE: ClassVar[re.Pattern[str]] = re.compile(
        "|".join(re.escape(k) for k in sorted(_MOJIBAKE, key=len, reverse=True))
    )
    _C1_CONTROL_RE: ClassVar[re.Pattern[str]] = re.compile(r"[\x80-\x9f]")
    _INVISIBLE_RE: ClassVar[re.Pattern[str]] = re.compile("[\u200b-\u200d\ufeff]")
    _CONTROL_RE: ClassVar[re.Pattern[str]] = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
    _TRUNCATION_MARKERS: ClassVar[tuple[str, ...]] = ("[TRUNCATED]",)

    def __init__(self, encodings: list[str] | tuple[str, ...] | None = None) -> None:
        self._encodings = tuple(encodings) if encodings else DEFAULT_ENCODINGS

    def normalize(
        self,
        raw: bytes,
        declared_encoding: str | None = None,
    ) -> NormalizationOutcome:
        """Decode ``raw`` and return the repaired text with its audit trail.

        Never raises: when nothing decodes cleanly, the first encoding is used
        with replacement characters and a corruption indicator is recorded.
        """
        corrections: list[str] = []
        indicators: list[str] = []

        if raw.startswith(codecs.BOM_UTF8):
            raw = raw[len(codecs.BOM_UTF8):]
            corrections.append("removed UTF-8 byte order mark")

        text, encoding = self._decode(raw, declared_encoding, indicators)

        repaired, repairs = self._MOJIBAKE_RE.subn(lambda m: self._MOJIBAKE[m.group(0)], text)
        if repairs:
            text = repaired
            corrections.append(f"repaired {repairs} double-encoded character(s)")
            indicators.append("double-encoded UTF-8 sequences")

        if "\r" in text:
            text = text.replace("\r\n", "\n").replace("\r", "\n")
            corrections.append("normalized line endings to LF")

        stripped, invisible = self._INVISIBLE_RE.subn("", text)
        if invisible:
            text = stripped
            corrections.append(f"removed {invisible} invisible character(s)")

        stripped, controls = self._CONTROL_RE.subn("", text)
        if controls:
            text = stripped
            corrections.append(f"removed {controls} control character(s)")

        indicators.extend(self.find_corruption_indicators(text))

        if corrections:
            Log.debug(f"Normalized content as {encoding}: {', '.join(corrections)}")
        return NormalizationOutcome(
            text=text,
            encoding=encoding,
            corrections=tuple(corrections),
            corruption_indicators=tuple(indicators),
        )

    def clean_text(self, value: str) -> str:
        """Apply the text-level repairs to an already decoded value."""
        value = self._MOJIBAKE_RE.sub(lambda m: self._MOJIBAKE[m.group(0)], value)
        value = value.replace("\r\n", "\n").replace("\r", "\n")
        value = self._INVISIBLE_RE.sub("", value)
        return self._CONTROL_RE.sub("", value)

    def find_corruption_indicators(self, text: str) -> list[str]:
        indicators: list[str] = []
        if "�" in text:
            indicators.append("replacement characters present")
        if "????" in text:
            indicators.append("runs of question marks from lossy transcoding")
        for marker in self._TRUNCATION_MARKERS:
            if marker in text:
                indicators.append(f"truncation marker {marker} found")
        return indicators

    def _candidates(self, declared_encoding: str | None) -> list[str]:
        ordered: list[str] = []
        seen: set[str] = set()
        for name in (declared_encoding, *self._encodings):
            if not name:
                continue
            try:
                canonical = codecs.lookup(name).name
            except LookupError:
                Log.warning(f"Ignoring unknown encoding '{name}'")
                continue
            if canonical not in seen:
                seen.add(canonical)
                ordered.append(name)
        return ordered

    def _decode(
        self,
        raw: bytes,
        declared_encoding: str | None,
        indicators: list[str],
    ) -> tuple[str, str]:
        if raw.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
            return raw.decode("utf-16"), "utf-16"

        candidates = self._candidates(declared_encoding)
        for position, encoding in enumerate(candidates):
            try:
                text = raw.decode(encoding)
            except UnicodeDecodeError:
                continue
            if self._C1_CONTROL_RE.search(text):
                continue
            if position > 0 and encoding != declared_encoding:
                indicators.append(f"decoded as {encoding} after {candidates[0]} failed")
            return text, encoding

        fallback = candidates[0] if candidates else "utf-8"
        indicators.append(f"undecodable bytes replaced while decoding as {fallback}")
        return raw.decode(fallback, errors="replace"), fallback
