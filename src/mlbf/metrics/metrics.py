"""Compact query counters for cascade lookups."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Metrics:
    checks: int = 0
    positives: int = 0
    negatives: int = 0
    early_rejects: int = 0
    levels_evaluated: int = 0
    builds: int = 0
    lookup_latency_total_us: int = 0
    lookup_count: int = 0

    def record_check(self, member: bool, depth: int) -> None:
        self.checks += 1
        self.levels_evaluated += depth
        if member:
            self.positives += 1
        else:
            self.negatives += 1
            if depth == 0:
                self.early_rejects += 1

    def record_build(self) -> None:
        self.builds += 1

    def record_lookup_latency(self, micros: int) -> None:
        self.lookup_latency_total_us += micros
        self.lookup_count += 1

    def average_lookup_latency_us(self) -> float:
        if self.lookup_count == 0:
            return 0.0
        return self.lookup_latency_total_us / float(self.lookup_count)

    def positive_rate(self) -> float:
        if self.checks == 0:
            return 0.0
        return self.positives / float(self.checks)

    def average_depth(self) -> float:
        if self.checks == 0:
            return 0.0
        return self.levels_evaluated / float(self.checks)
