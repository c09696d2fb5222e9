"""Single-level Bloom filter hashed with seeded MurmurHash3 (x86, 32-bit).

Hash function ``i`` is ``murmur3_32(data, seed=i)``; no tweak is mixed into
the seed, so bit positions match every other implementation of the same
scheme byte for byte.
"""
from __future__ import annotations

import base64
import json
from collections.abc import Mapping
from typing import Any, Iterable, Optional

import mmh3
from bitarray import bitarray

from mlbf.bloom.bloom_params import MAX_HASH_FUNCS, MIN_HASH_FUNCS, BloomParams
from mlbf.errors import (
    HashFuncCountExceedsMax,
    InvalidHashFuncCount,
    MissingFilterData,
    MissingHashFuncCount,
    UnrecognizedArgument,
)
from mlbf.types.element_types import Element, normalize_element

# Field names written by older serialisers
_LEGACY_FIELDS = {"data": "vData", "hashFuncCount": "nHashFuncs"}


def _check_hash_func_count(count: Any) -> int:
    if count is None or count == 0:
        raise MissingHashFuncCount()
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidHashFuncCount(count)
    if count > MAX_HASH_FUNCS:
        raise HashFuncCountExceedsMax(count, MAX_HASH_FUNCS)
    if count < MIN_HASH_FUNCS:
        raise InvalidHashFuncCount(count)
    return count


def _decode_data(raw: Any) -> bytes:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw)
    if isinstance(raw, str):
        return base64.b64decode(raw, validate=True)
    if isinstance(raw, (list, tuple)):
        return bytes(raw)
    raise UnrecognizedArgument(raw)


class BitFilter:
    def __init__(
        self,
        data: bytes | bytearray,
        hash_func_count: int,
        elements: Optional[float] = None,
        fp_rate: Optional[float] = None,
        level: Optional[int] = None,
    ) -> None:
        """Wrap raw filter bytes; ``hash_func_count`` must be in [1, 50]."""
        self._k = _check_hash_func_count(hash_func_count)
        self._bits = bitarray(endian="little")
        self._bits.frombytes(bytes(data))
        self._m = len(self._bits)
        self.elements = elements
        self.fp_rate = fp_rate
        self.level = level

    @classmethod
    def create(
        cls,
        elements: float,
        false_positive_rate: float,
        level: Optional[int] = None,
        min_bytes: int = 0,
    ) -> "BitFilter":
        """Allocate an empty filter sized for ``elements`` at ``false_positive_rate``."""
        params = BloomParams.for_capacity(elements, false_positive_rate, min_bytes=min_bytes)
        return cls(
            bytes(params.byte_len),
            params.hash_func_count,
            elements=elements,
            fp_rate=false_positive_rate,
            level=level,
        )

    @classmethod
    def from_record(cls, record: Any) -> "BitFilter":
        """Validate a record and rebuild the filter; raises the BitFilterError family."""
        if not isinstance(record, Mapping):
            raise UnrecognizedArgument(record)
        raw = record.get("data", record.get(_LEGACY_FIELDS["data"]))
        if raw is None:
            raise MissingFilterData()
        count = record.get("hashFuncCount", record.get(_LEGACY_FIELDS["hashFuncCount"]))
        return cls(
            _decode_data(raw),
            count,
            elements=record.get("elements"),
            fp_rate=record.get("fpRate"),
            level=record.get("level"),
        )

    @classmethod
    def from_json(cls, text: str) -> "BitFilter":
        """Inverse of ``to_json``."""
        return cls.from_record(json.loads(text))

    def to_record(self) -> dict[str, Any]:
        """Record with raw ``data`` bytes, ``hashFuncCount`` and any bookkeeping fields set."""
        record: dict[str, Any] = {"data": self.data, "hashFuncCount": self._k}
        if self.elements is not None:
            record["elements"] = self.elements
        if self.fp_rate is not None:
            record["fpRate"] = self.fp_rate
        if self.level is not None:
            record["level"] = self.level
        return record

    def to_json(self) -> str:
        """JSON form of ``to_record`` with ``data`` base64-encoded."""
        record = self.to_record()
        record["data"] = base64.b64encode(record["data"]).decode("ascii")
        return json.dumps(record)

    @property
    def data(self) -> bytes:
        return self._bits.tobytes()

    @property
    def bits(self) -> bitarray:
        return self._bits

    @property
    def hash_func_count(self) -> int:
        return self._k

    @property
    def byte_len(self) -> int:
        return self._m // 8

    @property
    def m_bits(self) -> int:
        return self._m

    def hash(self, hash_num: int, data: Element) -> int:
        """Bit position for hash function ``hash_num``."""
        if not self._m:
            raise ValueError("cannot hash into a zero-length filter")
        return mmh3.hash(normalize_element(data), hash_num, signed=False) % self._m

    def _positions(self, key: bytes) -> Iterable[int]:
        for i in range(self._k):
            yield mmh3.hash(key, i, signed=False) % self._m

    def insert(self, data: Element) -> "BitFilter":
        """Set the k bits for ``data``; no-op on a zero-length filter."""
        if not self._m:
            return self
        for pos in self._positions(normalize_element(data)):
            self._bits[pos] = 1
        return self

    def insert_many(self, items: Iterable[Element]) -> None:
        """Insert each item in turn."""
        for item in items:
            self.insert(item)

    def contains(self, data: Element) -> bool:
        """True if all k bits are set; always False on a zero-length filter."""
        if not self._m:
            return False
        for pos in self._positions(normalize_element(data)):
            if not self._bits[pos]:
                return False
        return True

    def __contains__(self, data: Element) -> bool:
        return self.contains(data)

    def clear(self) -> None:
        """Zero every bit, keeping size and hash count."""
        self._bits.setall(0)

    def fill_ratio(self) -> float:
        """Fraction of bits set."""
        if not self._m:
            return 0.0
        return self._bits.count(1) / self._m

    def estimate_fpr(self) -> float:
        """Estimate the current FPR from saturation (set bits / m) ** k."""
        return self.fill_ratio() ** self._k

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BitFilter):
            return NotImplemented
        return self._k == other._k and self._bits == other._bits

    __hash__ = None  # type: ignore[assignment]

    def inspect(self) -> str:
        return f"<BitFilter:{list(self.data)} hashFuncCount:{self._k}>"

    def __repr__(self) -> str:
        return self.inspect()
