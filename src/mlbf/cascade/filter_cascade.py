"""Multi-level Bloom filter cascade.

Level 0 holds the target set R. Each later level holds the elements of the
opposite side that slipped through the level before it, so a query walks
the levels in order, flipping its answer on every hit and stopping at the
first miss.
"""
from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any, Iterable, Optional

from mlbf.bloom.bit_filter import BitFilter
from mlbf.errors import CascadeDepthExceeded, CascadeVerificationError, UnrecognizedArgument
from mlbf.types.element_types import Element, ElementKey, normalize_element, normalize_elements

DEFAULT_MAX_LEVELS = 4096
DEFAULT_FP_RATE = 0.5
MAX_LEVEL_BITS = 2 ** 32


class FilterCascade:
    def __init__(self, filters: Optional[Iterable[BitFilter]] = None) -> None:
        self.filters: list[BitFilter] = list(filters or [])
        self.build_events: list[str] = []
        self._verbose = False

    @classmethod
    def build(
        cls,
        target: Iterable[Element],
        candidates: Iterable[Element],
        target_capacity: float,
        candidate_capacity: float,
        fp_rate: float = DEFAULT_FP_RATE,
        max_levels: int = DEFAULT_MAX_LEVELS,
        verbose: bool = False,
    ) -> "FilterCascade":
        """Build a cascade recognising ``target`` among ``candidates``.

        Capacities only drive filter sizing. Candidates that are also targets
        are ignored on the candidate side. Raises CascadeDepthExceeded if the
        surviving elements cannot be separated within ``max_levels`` levels.
        """
        if not (0 < fp_rate < 1):
            raise ValueError("fp_rate must be in (0,1)")
        if max_levels < 2:
            raise ValueError("max_levels must be at least 2")

        r = normalize_elements(target)
        r_set = set(r)
        s = [x for x in normalize_elements(candidates) if x not in r_set]

        cascade = cls()
        cascade._verbose = verbose

        top = BitFilter.create(max(target_capacity, len(r)), fp_rate, level=0, min_bytes=1 if r else 0)
        top.insert_many(r)
        cascade._append(top, side="target", inserted=len(r))

        s = [x for x in s if top.contains(x)]
        fp_filter = cls._level_for(math.ceil(candidate_capacity * fp_rate), s, fp_rate, level=1)
        cascade._append(fp_filter, side="candidate", inserted=len(s))

        # side -> (last level built for that side, members inserted into it)
        previous = {True: (top, len(r)), False: (fp_filter, len(s))}
        rate_modifier = fp_rate
        in_target = True
        while True:
            last = cascade.filters[-1]
            if in_target:
                survivors = [x for x in r if last.contains(x)]
                # A lone target survivor still needs its own level
                if not survivors:
                    cascade._event(f"stop: no target survivors after level {last.level}")
                    break
                capacity = target_capacity * rate_modifier
            else:
                rate_modifier *= fp_rate
                survivors = [x for x in s if last.contains(x)]
                if len(survivors) <= 1:
                    cascade._event(
                        f"stop: {len(survivors)} candidate survivor(s) after level {last.level}"
                    )
                    break
                capacity = candidate_capacity * rate_modifier

            if len(cascade.filters) >= max_levels:
                raise CascadeDepthExceeded(
                    max_levels,
                    len(survivors) if in_target else len(r),
                    len(s) if in_target else len(survivors),
                )

            # Same survivors in a same-sized filter hit the same bits again;
            # grow the level so the colliding positions move.
            prev_filter, prev_count = previous[in_target]
            min_bytes = 1
            if len(survivors) >= prev_count:
                min_bytes = max(1, prev_filter.byte_len * 2)
                # positions come from 32-bit hashes, past 2**32 bits they stop moving
                if min_bytes * 8 > MAX_LEVEL_BITS:
                    raise CascadeDepthExceeded(
                        len(cascade.filters),
                        len(survivors) if in_target else len(r),
                        len(s) if in_target else len(survivors),
                    )

            level = cls._level_for(capacity, survivors, fp_rate, level=len(cascade.filters), min_bytes=min_bytes)
            cascade._append(level, side="target" if in_target else "candidate", inserted=len(survivors))
            previous[in_target] = (level, len(survivors))
            if in_target:
                r = survivors
            else:
                s = survivors
            in_target = not in_target

        return cascade

    @staticmethod
    def _level_for(
        capacity: float, members: list[ElementKey], fp_rate: float, level: int, min_bytes: int = 1
    ) -> BitFilter:
        """Create a level sized for at least its members and insert them."""
        f = BitFilter.create(
            max(capacity, len(members)), fp_rate, level=level, min_bytes=min_bytes if members else 0
        )
        f.insert_many(members)
        return f

    def _append(self, f: BitFilter, side: str, inserted: int) -> None:
        self.filters.append(f)
        self._event(
            f"level={f.level} side={side} inserted={inserted} capacity={f.elements:.3f} "
            f"bytes={f.byte_len} k={f.hash_func_count}"
        )

    def _event(self, message: str) -> None:
        self.build_events.append(message)
        if self._verbose:
            print(f"[Cascade Build] {message}")

    def contains(self, data: Element) -> bool:
        """Parity walk: flip on every hit, stop at the first level that misses."""
        included = False
        key = normalize_element(data)
        for f in self.filters:
            if f.contains(key):
                included = not included
            else:
                break
        return included

    def __contains__(self, data: Element) -> bool:
        return self.contains(data)

    def depth(self, data: Element) -> int:
        """Number of consecutive levels, from level 0, that report a hit."""
        key = normalize_element(data)
        matched = 0
        for f in self.filters:
            if not f.contains(key):
                break
            matched += 1
        return matched

    def verify(self, entries: Iterable[Element], exclusions: Iterable[Element]) -> int:
        """Check recall of ``entries``; return how many ``exclusions`` still match."""
        for entry in entries:
            if not self.contains(entry):
                raise CascadeVerificationError(normalize_element(entry))
        return sum(1 for x in exclusions if self.contains(x))

    def layer_count(self) -> int:
        return len(self.filters)

    def __len__(self) -> int:
        return len(self.filters)

    def bit_count(self) -> int:
        """Total bits across all levels."""
        return sum(f.m_bits for f in self.filters)

    def byte_size(self) -> int:
        return sum(f.byte_len for f in self.filters)

    def to_record(self) -> dict[str, Any]:
        """Ordered list of level records under ``filters``."""
        return {"filters": [f.to_record() for f in self.filters]}

    @classmethod
    def from_record(cls, record: Any) -> "FilterCascade":
        """Rebuild a cascade from ``{"filters": [...]}``."""
        if not isinstance(record, Mapping) or not isinstance(record.get("filters"), list):
            raise UnrecognizedArgument(record)
        return cls(BitFilter.from_record(f) for f in record["filters"])

    def to_json(self) -> str:
        """JSON text with base64 level data."""
        return json.dumps({"filters": [json.loads(f.to_json()) for f in self.filters]})

    @classmethod
    def from_json(cls, text: str) -> "FilterCascade":
        """Inverse of ``to_json``."""
        return cls.from_record(json.loads(text))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FilterCascade):
            return NotImplemented
        return self.filters == other.filters

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"FilterCascade(levels={len(self.filters)}, bytes={self.byte_size():,})"
