"""Owns a FilterCascade, answers membership queries and records metrics."""
from __future__ import annotations

import time
from enum import Enum, auto
from typing import Any, Iterable, Optional

from mlbf.cascade.filter_cascade import DEFAULT_FP_RATE, DEFAULT_MAX_LEVELS, FilterCascade
from mlbf.metrics.metrics import Metrics
from mlbf.types.element_types import Element, normalize_element


class CheckResult(Enum):
    MEMBER = auto()
    NON_MEMBER = auto()
    EARLY_REJECT = auto()


class CascadeManager:
    def __init__(self, cascade: FilterCascade, metrics: Optional[Metrics] = None) -> None:
        self.cascade = cascade
        self.metrics = metrics or Metrics()
        self.rebuild_no = 1
        self.rebuild_events: list[str] = []

    @classmethod
    def from_sets(
        cls,
        target: Iterable[Element],
        candidates: Iterable[Element],
        target_capacity: Optional[float] = None,
        candidate_capacity: Optional[float] = None,
        fp_rate: float = DEFAULT_FP_RATE,
        max_levels: int = DEFAULT_MAX_LEVELS,
        verbose: bool = False,
    ) -> "CascadeManager":
        """Build a cascade; capacities default to the collection sizes."""
        manager = cls(FilterCascade())
        manager._build(target, candidates, target_capacity, candidate_capacity, fp_rate, max_levels, verbose)
        return manager

    def fast_check(self, element: Element) -> CheckResult:
        """Walk the cascade once, returning the verdict and recording metrics."""
        start = time.perf_counter_ns()
        key = normalize_element(element)

        depth = self.cascade.depth(key)
        # Odd number of consecutive hits means member
        member = depth % 2 == 1
        self.metrics.record_check(member, depth)
        self.metrics.record_lookup_latency(self._micros_since(start))

        if member:
            return CheckResult.MEMBER
        if depth == 0:
            return CheckResult.EARLY_REJECT
        return CheckResult.NON_MEMBER

    def rebuild(
        self,
        target: Iterable[Element],
        candidates: Iterable[Element],
        target_capacity: Optional[float] = None,
        candidate_capacity: Optional[float] = None,
        fp_rate: float = DEFAULT_FP_RATE,
        max_levels: int = DEFAULT_MAX_LEVELS,
        verbose: bool = False,
    ) -> FilterCascade:
        """Replace the cascade with a freshly built one and log the event."""
        prev_levels = len(self.cascade)
        prev_bytes = self.cascade.byte_size()
        self._build(target, candidates, target_capacity, candidate_capacity, fp_rate, max_levels, verbose)
        event = (
            f"time={int(time.time())}, prev_levels={prev_levels}, prev_bytes={prev_bytes}, "
            f"levels={len(self.cascade)}, bytes={self.cascade.byte_size()}, fp_rate={fp_rate}"
        )
        self.rebuild_events.append(event)
        if verbose:
            print(f"[Cascade Rebuild #{self.rebuild_no}] {event}")
        self.rebuild_no += 1
        return self.cascade

    def stats(self) -> dict[str, Any]:
        return {
            "levels": len(self.cascade),
            "bytes": self.cascade.byte_size(),
            "checks": self.metrics.checks,
            "positives": self.metrics.positives,
            "negatives": self.metrics.negatives,
            "early_rejects": self.metrics.early_rejects,
            "positive_rate": self.metrics.positive_rate(),
            "average_depth": self.metrics.average_depth(),
            "average_latency_us": self.metrics.average_lookup_latency_us(),
            "builds": self.metrics.builds,
        }

    # Internal helpers
    def _build(self, target, candidates, target_capacity, candidate_capacity, fp_rate, max_levels, verbose) -> None:
        target = list(target)
        candidates = list(candidates)
        if target_capacity is None:
            target_capacity = max(1, len(target))
        if candidate_capacity is None:
            candidate_capacity = max(1, len(candidates))
        self.cascade = FilterCascade.build(
            target,
            candidates,
            target_capacity,
            candidate_capacity,
            fp_rate=fp_rate,
            max_levels=max_levels,
            verbose=verbose,
        )
        self.metrics.record_build()

    @staticmethod
    def _micros_since(start_ns: int) -> int:
        end = time.perf_counter_ns()
        return int((end - start_ns) / 1000)
