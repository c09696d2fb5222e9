"""CLI demo: multi-level Bloom filter cascade.

- Step 1: load a target list and a candidate list from CSV and build the cascade.
- Step 2: replay a labelled query CSV through fast_check and print FPR/recall.
- Step 3/4: save the cascade to JSON or load one back.
"""

from __future__ import annotations

import csv
import os
import time
from typing import Dict, List, Optional

import psutil

from mlbf.cascade.filter_cascade import FilterCascade
from mlbf.manager.cascade_manager import CascadeManager, CheckResult
from mlbf.types.element_types import ElementKey, normalize_element

# Dataset paths
TARGET_CSV = "data/target.csv"
CANDIDATE_CSV = "data/candidates.csv"
QUERY_CSV = "data/queries.csv"
CASCADE_JSON = "data/cascade.json"

ELEMENT_COLUMN = "element"
LABEL_COLUMN = "label"

# Build settings
FP_RATE = 0.5
CAPACITY_SLACK = 1.1


def _current_memory_bytes() -> int:
    return psutil.Process(os.getpid()).memory_info().rss


def load_elements(csv_path: str, column: str = ELEMENT_COLUMN) -> List[ElementKey]:
    """Read one CSV column into ElementKeys (deduplicated, order kept)."""
    keys: list[ElementKey] = []
    seen: set[ElementKey] = set()
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for row in reader:
            raw = (row.get(column) or "").strip()
            if not raw:
                continue
            key = normalize_element(raw)
            if key in seen:
                continue
            seen.add(key)
            keys.append(key)
    return keys


def build_manager(target_csv: str = TARGET_CSV, candidate_csv: str = CANDIDATE_CSV) -> CascadeManager:
    target = load_elements(target_csv)
    candidates = load_elements(candidate_csv)
    print(f"[Load] target={len(target)} candidates={len(candidates)}")

    start = time.time()
    manager = CascadeManager.from_sets(
        target,
        candidates,
        target_capacity=len(target) * CAPACITY_SLACK,
        candidate_capacity=len(candidates) * CAPACITY_SLACK,
        fp_rate=FP_RATE,
        verbose=True,
    )
    cascade = manager.cascade
    print(
        f"[Init] levels={len(cascade)} bytes={cascade.byte_size():,} bits={cascade.bit_count():,} "
        f"build_time={time.time() - start:.2f}s"
    )
    return manager


def _label_is_member(label_raw: str) -> bool:
    label = (label_raw or "").strip().lower()
    return label in ("1", "true", "yes", "member", "target")


def run_query_dataset(
    manager: CascadeManager,
    csv_path: str,
    element_column: str = ELEMENT_COLUMN,
    label_column: str = LABEL_COLUMN,
    verbose: bool = False,
    max_rows: Optional[int] = None,
) -> Dict[str, int | float]:
    """Stream a query CSV through fast_check and return counters."""

    stats: Dict[str, int | float] = {
        "total_queries": 0,
        "member_gt": 0,
        "non_member_gt": 0,
        "true_positive": 0,
        "false_positive": 0,
        "false_negative": 0,
        "early_reject": 0,
    }

    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"Dataset not found: {csv_path}")

    start_time = time.time()
    start_mem = _current_memory_bytes()

    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for idx, row in enumerate(reader, start=1):
            raw = (row.get(element_column) or "").strip()
            if not raw:
                continue

            expected = _label_is_member(row.get(label_column) or "")
            stats["total_queries"] += 1
            stats["member_gt" if expected else "non_member_gt"] += 1

            result = manager.fast_check(raw)
            member = result is CheckResult.MEMBER
            if result is CheckResult.EARLY_REJECT:
                stats["early_reject"] += 1
            if member and expected:
                stats["true_positive"] += 1
            elif member:
                stats["false_positive"] += 1
            elif expected:
                stats["false_negative"] += 1

            if verbose:
                print(f"[Row {idx}] element={raw} expected={expected} -> {result.name}")

            if max_rows is not None and stats["total_queries"] >= max_rows:
                break

            if idx % 50000 == 0:
                elapsed = max(1e-9, time.time() - start_time)
                print(
                    f"[Replay] processed={idx} fp={stats['false_positive']} fn={stats['false_negative']} "
                    f"throughput={stats['total_queries'] / elapsed:,.0f} q/s"
                )

    stats["duration_sec"] = time.time() - start_time
    stats["start_mem_bytes"] = start_mem
    stats["end_mem_bytes"] = _current_memory_bytes()
    return stats


def print_stats(stats: Dict[str, int | float]) -> None:
    total = stats.get("total_queries", 0)
    member_gt = stats.get("member_gt", 0)
    non_member_gt = stats.get("non_member_gt", 0)
    tp = stats.get("true_positive", 0)
    fp = stats.get("false_positive", 0)
    fn = stats.get("false_negative", 0)
    duration = stats.get("duration_sec") or 0.0

    print("\n=== Summary ===")
    print(f"Queries: {total}")
    print(f"Members (label): {member_gt}")
    print(f"Non-members (label): {non_member_gt}")
    print(f" ├─ Level-0 rejects: {stats.get('early_reject', 0)}")
    print(f" └─ False positives: {fp}")
    if duration > 0 and total > 0:
        print(f"Duration: {duration:.1f}s (~{total / duration:,.0f} q/s)")
    end_mem = stats.get("end_mem_bytes")
    start_mem = stats.get("start_mem_bytes")
    if end_mem is not None and start_mem is not None:
        print(f"Process memory: {end_mem:,} bytes (Δ={end_mem - start_mem:+,} bytes)")

    if non_member_gt > 0:
        print(f"- Observed FPR ≈ {fp}/{non_member_gt} ≈ {fp / non_member_gt:.2%}")
    if member_gt > 0:
        print(f"- Recall ≈ {tp}/{member_gt} ≈ {tp / member_gt:.2%} (false negatives: {fn})")


def save_cascade(manager: CascadeManager, path: str = CASCADE_JSON) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(manager.cascade.to_json())
    print(f"[Save] {len(manager.cascade)} levels -> {path}")


def load_cascade(path: str = CASCADE_JSON) -> CascadeManager:
    with open(path, encoding="utf-8") as f:
        cascade = FilterCascade.from_json(f.read())
    print(f"[Load] {len(cascade)} levels <- {path}")
    return CascadeManager(cascade)


def main() -> None:
    print("=== Multi-level Bloom filter cascade demo ===")
    manager: Optional[CascadeManager] = None

    while True:
        print("\nMenu:")
        print(" 1. Build cascade from target + candidate CSV")
        print(" 2. Replay query CSV through fast_check")
        print(" 3. Save cascade to JSON")
        print(" 4. Load cascade from JSON")
        print(" 5. Quit")
        choice = input("Choose [1-5]: ").strip()

        if choice == "1" or choice == "":
            manager = build_manager()
        elif choice == "2":
            if manager is None:
                print("Build or load a cascade first (1 or 4).")
                continue
            path = input(f"Query CSV [{QUERY_CSV}]: ").strip() or QUERY_CSV
            verbose = input("Print every row? [y/N]: ").strip().lower() == "y"
            print_stats(run_query_dataset(manager, path, verbose=verbose))
        elif choice == "3":
            if manager is None:
                print("Nothing to save yet.")
                continue
            save_cascade(manager)
        elif choice == "4":
            manager = load_cascade()
        elif choice == "5":
            print("Bye.")
            break
        else:
            print("Invalid choice.")


if __name__ == "__main__":
    main()
