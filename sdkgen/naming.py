"""Convert schema and operation names into declaration identifiers.

Every name that reaches the IR passes through here:
  - CamelCase for types and fields  ("list-pets"   -> "ListPets")
  - lowerCamel for arguments         ("pet_id"      -> "petId")
  - singular forms for item names    ("Categories"  -> "Category")
  - leading symbol escapes           ("+1" -> "Plus1", "@type" -> "AtType")

Examples:
  identifier("order_items")     -> "OrderItems"
  identifier("2fa")             -> "N2fa"
  make_singular("OrderStatus")  -> "OrderStatus"
  make_singular("Colors")       -> "Color"
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

# Irregular singular -> plural forms
_PLURALS: dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "datum": "data",
    "criterion": "criteria",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
    "analysis": "analyses",
}

_SINGULARS: dict[str, str] = {v: k for k, v in _PLURALS.items()}

# Words that look plural but are not
_UNCOUNTABLE = {"series", "species", "news", "data", "metadata", "status", "settings"}

# Leading characters that cannot start an identifier
_SYMBOL_PREFIXES: dict[str, str] = {
    "+": "Plus",
    "-": "Minus",
    "@": "At",
    "$": "",
}

_LAST_WORD = re.compile(r"([A-Z]?[a-z]+|[A-Z]+)$")


def _singularize(word: str) -> str:
    """Return the singular form of a lowercase word."""
    if word in _SINGULARS:
        return _SINGULARS[word]
    if word in _PLURALS or word in _UNCOUNTABLE:
        return word
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith(("sses", "shes", "ches", "xes", "zes", "uses")):
        return word[:-2]
    if word.endswith(("ss", "us", "is")):
        return word
    if word.endswith("s") and len(word) > 1:
        return word[:-1]
    return word


def _restore_case(original: str, converted: str) -> str:
    if original.isupper():
        return converted.upper()
    if original[:1].isupper():
        return converted[:1].upper() + converted[1:]
    return converted


def _convert_last_word(name: str, convert: Callable[[str], str]) -> str:
    match = _LAST_WORD.search(name)
    if match is None:
        return name
    word = match.group(1)
    return name[: match.start()] + _restore_case(word, convert(word.lower()))


def make_singular(name: str) -> str:
    """Singularize the last word of a (possibly CamelCase) name."""
    return _convert_last_word(name, _singularize)


def escape_symbols(name: str) -> str:
    """Replace a leading character that cannot start an identifier."""
    if name and name[0] in _SYMBOL_PREFIXES:
        return _SYMBOL_PREFIXES[name[0]] + name[1:]
    return name


def _split_words(name: str) -> list[str]:
    return [p for p in re.split(r"[^0-9A-Za-z]+", name) if p]


def _capitalize(word: str) -> str:
    if word.isupper() and len(word) > 1:
        return word.capitalize()
    return word[:1].upper() + word[1:]


def to_camel(name: str) -> str:
    """Convert any name to CamelCase, escaping leading symbols first."""
    if name and name[0] in _SYMBOL_PREFIXES:
        # The escape is a word of its own: "@type" -> "AtType"
        name = _SYMBOL_PREFIXES[name[0]] + " " + name[1:]
    return "".join(_capitalize(w) for w in _split_words(name))


def to_lower_camel(name: str) -> str:
    """Convert any name to lowerCamelCase."""
    camel = to_camel(name)
    match = re.match(r"[A-Z]+(?=[A-Z][a-z]|[0-9]|$)", camel)
    if match and len(match.group()) > 1:
        return match.group().lower() + camel[match.end():]
    return camel[:1].lower() + camel[1:]


def to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    name = escape_symbols(name)
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s2 = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1)
    s3 = re.sub(r"[^0-9A-Za-z]+", "_", s2)
    return s3.strip("_").lower()


def identifier(name: str, fallback: str = "Value") -> str:
    """Return a CamelCase name that is a valid identifier."""
    camel = to_camel(name) or fallback
    if camel[0].isdigit():
        camel = "N" + camel
    return camel


def unique_by(items: Iterable[T], key: Callable[[T], str]) -> list[T]:
    """Drop items whose key was already seen, keeping the first one."""
    seen: set[str] = set()
    result: list[T] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        result.append(item)
    return result


class NameAllocator:
    """Hands out declaration names that are unique within one run.

    Names of reusable components are reserved before resolution starts so
    that an inline declaration can never take a name a ``$ref`` points to.
    """

    def __init__(self) -> None:
        self._taken: set[str] = set()

    def __contains__(self, name: str) -> bool:
        return name in self._taken

    def reserve(self, name: str) -> None:
        self._taken.add(name)

    def allocate(self, name: str) -> str:
        """Claim ``name``, or ``name`` plus the lowest free numeric suffix."""
        candidate = name
        n = 2
        while candidate in self._taken:
            candidate = f"{name}{n}"
            n += 1
        self._taken.add(candidate)
        return candidate
