"""Phrase normalizers, selectable by name per realm."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Callable
from dataclasses import dataclass

from phrasenote.exceptions import ValidationError

_WHITESPACE = re.compile(r"\s+")
_GERMAN = str.maketrans({"ß": "ss", "ä": "ae", "ö": "oe", "ü": "ue"})


@dataclass(frozen=True, slots=True)
class Normalizer:
    """A named canonicalization function with a description for display."""

    name: str
    description: str
    code: Callable[[str], str]

    def __call__(self, phrase: str) -> str:
        return self.code(phrase)


def squish(s: str) -> str:
    """Trim and collapse internal whitespace to single spaces."""
    return _WHITESPACE.sub(" ", s.strip())


def strip_diacritics(s: str) -> str:
    """Decompose and drop combining marks."""
    return "".join(
        c for c in unicodedata.normalize("NFD", s)
        if not unicodedata.combining(c)
    )


def _keep_word_characters(s: str) -> str:
    # letters, numbers, whitespace, underscore, apostrophe and hyphen
    return "".join(
        c for c in s
        if c.isalpha() or c.isnumeric() or c.isspace() or c in "_'-"
    )


def default_normalizer(phrase: str) -> str:
    # lowercase first: lowercasing can produce combining marks
    return squish(_keep_word_characters(strip_diacritics(phrase.lower())))


def german_normalizer(phrase: str) -> str:
    phrase = phrase.lower().translate(_GERMAN)
    return squish(_keep_word_characters(strip_diacritics(phrase)))


DEFAULT = Normalizer(
    name="default",
    description=(
        "Strips marginal whitespace, replaces any internal spaces with a single "
        "space, strips diacritics, removes characters other than letters, "
        "numbers, apostrophes, underscores and hyphens, converts to lowercase."
    ),
    code=default_normalizer,
)

GERMAN = Normalizer(
    name="German",
    description=(
        "Identical to the default normalizer but it also converts ß, ä, ö, "
        "and ü to ss, ae, oe, and ue, respectively."
    ),
    code=german_normalizer,
)

# Registry keyed by the name a realm refers to; "" is the default.
NORMALIZERS: dict[str, Normalizer] = {
    "": DEFAULT,
    "German": GERMAN,
}


def get_normalizer(name: str | None) -> Normalizer:
    """Look up a normalizer, falling back to the default for unknown names."""
    return NORMALIZERS.get(name or "", DEFAULT)


def register_normalizer(
    key: str, code: Callable[[str], str], description: str = "",
) -> Normalizer:
    """Register (or replace) a normalizer under ``key``."""
    if not key:
        raise ValidationError("The default normalizer cannot be replaced")
    normalizer = Normalizer(name=key, description=description, code=code)
    NORMALIZERS[key] = normalizer
    return normalizer


def normalize(phrase: str, name: str | None = None) -> str:
    return get_normalizer(name)(phrase)
