"""Naming conventions used to default relation keys."""
from __future__ import annotations

_IRREGULAR = {
    "people": "person",
    "men": "man",
    "women": "woman",
    "children": "child",
    "teeth": "tooth",
    "feet": "foot",
    "mice": "mouse",
    "geese": "goose",
}

_UNCOUNTABLE = frozenset(
    {"equipment", "information", "rice", "money", "species", "series", "fish", "sheep"}
)

_ES_STEMS = ("s", "x", "z", "ch", "sh")


def singularize(word: str) -> str:
    """Best-effort plural → singular conversion for table names.

    Handles the irregulars and suffix rules that show up in database
    schemas (``categories`` → ``category``, ``boxes`` → ``box``,
    ``users`` → ``user``).  Words ending in ``ss`` are left alone.
    """
    lower = word.lower()
    if lower in _IRREGULAR:
        return _IRREGULAR[lower]
    if lower in _UNCOUNTABLE:
        return word
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("es") and word[:-2].endswith(_ES_STEMS):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def foreign_key(table: str) -> str:
    """Infer the foreign key column for ``table`` (``users`` → ``user_id``)."""
    return f"{singularize(table)}_id"


def norm_key(value: object) -> str | None:
    """Normalize a key for dictionary matching.

    Keys are compared as strings so ``1`` and ``"1"`` match.  ``None``
    stays ``None`` so callers can skip null keys.
    """
    if value is None:
        return None
    return str(value)
