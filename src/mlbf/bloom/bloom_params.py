"""Sizing parameters for BitFilter."""
from __future__ import annotations

import math
from dataclasses import dataclass

MAX_HASH_FUNCS = 50
MIN_HASH_FUNCS = 1
LN2 = math.log(2)
LN2SQUARED = LN2 ** 2


@dataclass(frozen=True)
class BloomParams:
    byte_len: int
    hash_func_count: int

    @property
    def m_bits(self) -> int:
        return self.byte_len * 8

    @staticmethod
    def for_capacity(expected_items: float, target_fpr: float, min_bytes: int = 0) -> "BloomParams":
        """Compute byte length and hash count for a capacity and false-positive rate.

        Ideal size is ``-n * ln(p) / ln(2)^2`` bits, truncated to whole bytes;
        ideal hash count is ``m * ln(2) / n`` truncated and clamped to
        ``[MIN_HASH_FUNCS, MAX_HASH_FUNCS]``. The result may be zero bytes.
        """
        if expected_items < 0:
            raise ValueError("expected_items must be non-negative")
        if not (0 < target_fpr < 1):
            raise ValueError("target_fpr must be in (0,1)")

        size = -1.0 / LN2SQUARED * expected_items * math.log(target_fpr)
        byte_len = max(int(math.floor(size / 8)), min_bytes, 0)

        if expected_items == 0:
            k = MIN_HASH_FUNCS
        else:
            k = int(math.floor(byte_len * 8 / expected_items * LN2))
        k = min(max(k, MIN_HASH_FUNCS), MAX_HASH_FUNCS)
        return BloomParams(byte_len=byte_len, hash_func_count=k)
