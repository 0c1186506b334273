"""Accent- and case-insensitive text folding via ICU transliteration.

Used wherever two human-entered strings must compare equal regardless of
diacritics, casing or surrounding whitespace: header names, filename hints and
duplicate field comparison.
"""

from __future__ import annotations

import re
import unicodedata
from typing import ClassVar

import icu  # type: ignore[import-untyped]


class TextFolder:
    """Fold text to a Latin-ASCII, lowercase comparison key."""

    _ICU_TRANSFORM: ClassVar[str] = "Any-Latin; Latin-ASCII; Lower"
    _WHITESPACE_RE: ClassVar[re.Pattern[str]] = re.compile(r"\s+")

    def __init__(self) -> None:
        self._transliterator: icu.Transliterator = icu.Transliterator.createInstance(
            self._ICU_TRANSFORM
        )

    def fold(self, text: str) -> str:
        """Return the comparison key for ``text``.

        NFC normalization runs first so decomposed accents fold the same way as
        precomposed ones.
        """
        if not text:
            return ""
        nfc = unicodedata.normalize("NFC", text)
        folded = self._transliterator.transliterate(nfc)
        return self._WHITESPACE_RE.sub(" ", folded).strip()

    def fold_identifier(self, text: str) -> str:
        """Fold a header or element name to ``snake_case`` ASCII."""
        folded = self.fold(text)
        return re.sub(r"[^a-z0-9]+", "_", folded).strip("_")


_default_folder: TextFolder | None = None


def get_folder() -> TextFolder:
    """Return the process-wide folder; the ICU transliterator is built once."""
    global _default_folder  # noqa: PLW0603
    if _default_folder is None:
        _default_folder = TextFolder()
    return _default_folder
