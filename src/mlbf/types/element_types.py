"""Element key helpers.

Filters hash raw bytes. This module normalises the values callers hand in
(bytes, text, integers) into ``ElementKey`` so every level of a cascade hashes
exactly the same byte string for the same element.
"""
from __future__ import annotations

from typing import Iterable, NewType, Union

# Alias kept as plain bytes; mmh3 hashes it directly.
ElementKey = NewType("ElementKey", bytes)

Element = Union[bytes, bytearray, memoryview, str, int]


def normalize_element(value: Element) -> ElementKey:
    """Return the byte form of an element (text is UTF-8 encoded)."""
    if isinstance(value, bytes):
        return ElementKey(value)
    if isinstance(value, (bytearray, memoryview)):
        return ElementKey(bytes(value))
    if isinstance(value, str):
        return ElementKey(value.encode("utf-8"))
    # bool is an int subclass but never a sensible element
    if isinstance(value, int) and not isinstance(value, bool):
        return ElementKey(str(value).encode("utf-8"))
    raise TypeError(f"unsupported element type: {type(value).__name__}")


def normalize_elements(values: Iterable[Element]) -> list[ElementKey]:
    """Normalise and de-duplicate elements, keeping first-seen order."""
    return list(dict.fromkeys(normalize_element(v) for v in values))


def hex_to_key(hex_str: str) -> ElementKey:
    """Decode a hex string (e.g. a hash160) into an ElementKey."""
    return ElementKey(bytes.fromhex(hex_str.strip()))
