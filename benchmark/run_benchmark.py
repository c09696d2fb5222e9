# benchmark/run_benchmark.py
"""
Benchmark: single BitFilter vs multi-level FilterCascade.

- A single filter sized for |R| at rate p versus a cascade built from R and S
- False-positive rate on non-members, false negatives on members
- Query throughput, structure size and process RSS (psutil)
- Multiple runs aggregated as mean ± std (numpy), table (tabulate), plot (matplotlib)
- Optional real input: CSV or Parquet files in data/ with an element column (pandas)
"""

import os
import random
import string
import time
from glob import glob
from typing import List, Optional, Set, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import psutil
from tabulate import tabulate

from mlbf.bloom.bit_filter import BitFilter
from mlbf.cascade.filter_cascade import FilterCascade


def random_element(n: int = 16) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=n))


def load_elements(file_paths: List[str], column: str = "element", sample_size: int = 100_000) -> Set[str]:
    """Load unique elements from CSV/Parquet files, stopping at sample_size."""
    elements: Set[str] = set()
    for path in file_paths:
        print(f"  Processing {os.path.basename(path)}...")
        if path.endswith(".parquet"):
            df = pd.read_parquet(path, columns=[column])
        else:
            df = pd.read_csv(path, usecols=[column], low_memory=False)
        for value in df[column].astype(str).unique().tolist():
            if value != "nan":
                elements.add(value)
                if len(elements) >= sample_size:
                    return elements
    print(f"  Unique elements: {len(elements):,}")
    return elements


def prepare_sets(
    universe: Optional[Set[str]] = None,
    target_size: int = 1_000,
    candidate_size: int = 100_000,
) -> Tuple[List[str], List[str]]:
    """Split a universe (or random strings) into a target set R and non-members S \\ R."""
    if universe is None:
        universe = set()
        while len(universe) < target_size + candidate_size:
            universe.add(random_element())
    pool = list(universe)
    random.shuffle(pool)
    target = pool[:target_size]
    non_members = pool[target_size:target_size + candidate_size]
    print(f"Prepared sets: target={len(target):,} non_members={len(non_members):,}")
    return target, non_members


def _measure(contains, target: List[str], non_members: List[str], unseen: List[str]) -> dict:
    start = time.time()
    false_negatives = sum(1 for x in target if not contains(x))
    fp_known = sum(1 for x in non_members if contains(x))
    fp_unseen = sum(1 for x in unseen if contains(x))
    duration = time.time() - start
    total = len(target) + len(non_members) + len(unseen)
    return {
        "false_negatives": false_negatives,
        "fpr_known": fp_known / max(1, len(non_members)),
        "fpr_unseen": fp_unseen / max(1, len(unseen)),
        "throughput_qps": total / max(duration, 1e-9),
    }


def benchmark_single_filter(target: List[str], non_members: List[str], unseen: List[str], fp_rate: float) -> dict:
    print("\n=== Single BitFilter ===")
    bf = BitFilter.create(len(target), fp_rate)
    start = time.time()
    bf.insert_many(target)
    insert_duration = time.time() - start

    result = _measure(bf.contains, target, non_members, unseen)
    result.update(
        insert_time_s=insert_duration,
        size_bytes=bf.byte_len,
        levels=1,
        memory_kb=psutil.Process().memory_info().rss / 1024,
    )
    return result


def benchmark_cascade(target: List[str], non_members: List[str], unseen: List[str], fp_rate: float) -> dict:
    print("\n=== FilterCascade ===")
    start = time.time()
    cascade = FilterCascade.build(target, target + non_members, len(target), len(non_members), fp_rate)
    insert_duration = time.time() - start

    result = _measure(cascade.contains, target, non_members, unseen)
    result.update(
        insert_time_s=insert_duration,
        size_bytes=cascade.byte_size(),
        levels=len(cascade),
        memory_kb=psutil.Process().memory_info().rss / 1024,
    )
    return result


def run_full_benchmark(
    data_paths: Optional[List[str]] = None,
    target_size: int = 1_000,
    candidate_size: int = 100_000,
    unseen_queries: int = 100_000,
    fp_rate: float = 0.5,
    num_runs: int = 3,
) -> dict:
    results = {"Single BitFilter": [], "FilterCascade": []}

    for run in range(1, num_runs + 1):
        print(f"\n{'=' * 20} RUN {run}/{num_runs} {'=' * 20}")
        universe = load_elements(data_paths, sample_size=target_size + candidate_size) if data_paths else None
        target, non_members = prepare_sets(universe, target_size, candidate_size)
        known = set(target) | set(non_members)
        unseen = []
        while len(unseen) < unseen_queries:
            x = random_element(20)
            if x not in known:
                unseen.append(x)

        results["Single BitFilter"].append(benchmark_single_filter(target, non_members, unseen, fp_rate))
        results["FilterCascade"].append(benchmark_cascade(target, non_members, unseen, fp_rate))

    summary = {}
    for name, runs in results.items():
        summary[name] = {
            "fpr_known_mean": np.mean([r["fpr_known"] for r in runs]),
            "fpr_known_std": np.std([r["fpr_known"] for r in runs]),
            "fpr_unseen_mean": np.mean([r["fpr_unseen"] for r in runs]),
            "fpr_unseen_std": np.std([r["fpr_unseen"] for r in runs]),
            "false_negatives": int(np.sum([r["false_negatives"] for r in runs])),
            "throughput_mean": np.mean([r["throughput_qps"] for r in runs]),
            "throughput_std": np.std([r["throughput_qps"] for r in runs]),
            "size_mean": np.mean([r["size_bytes"] for r in runs]),
            "size_std": np.std([r["size_bytes"] for r in runs]),
            "levels_mean": np.mean([r["levels"] for r in runs]),
        }

    print_results(summary, num_runs)
    plot_results(summary)
    return summary


def print_results(summary: dict, num_runs: int) -> None:
    table = []
    for name, s in summary.items():
        table.append([
            name,
            f"{s['fpr_known_mean']:.4%} ± {s['fpr_known_std']:.4%}",
            f"{s['fpr_unseen_mean']:.4%} ± {s['fpr_unseen_std']:.4%}",
            s["false_negatives"],
            f"{s['throughput_mean']:,.0f} ± {s['throughput_std']:,.0f} qps",
            f"{s['size_mean']:,.0f} ± {s['size_std']:,.0f} B",
            f"{s['levels_mean']:.1f}",
        ])

    print(f"\n=== BENCHMARK RESULTS (mean ± std over {num_runs} runs) ===")
    print(tabulate(
        table,
        headers=["Method", "FPR (S\\R)", "FPR (unseen)", "False neg.", "Throughput", "Size", "Levels"],
        tablefmt="github",
    ))


def plot_results(summary: dict) -> None:
    names = list(summary.keys())
    fpr_means = [summary[n]["fpr_known_mean"] * 100 for n in names]
    fpr_stds = [summary[n]["fpr_known_std"] * 100 for n in names]
    throughput_means = [summary[n]["throughput_mean"] / 1000 for n in names]
    throughput_stds = [summary[n]["throughput_std"] / 1000 for n in names]
    size_means = [summary[n]["size_mean"] / 1024 for n in names]
    size_stds = [summary[n]["size_std"] / 1024 for n in names]

    fig, (ax1, ax2, ax3) = plt.subplots(1, 3, figsize=(18, 6))

    ax1.bar(names, fpr_means, yerr=fpr_stds, capsize=5, color=["orange", "green"], alpha=0.8)
    ax1.set_ylabel("False Positive Rate on S \\ R (%)")
    ax1.set_title("False Positive Rate")

    ax2.bar(names, throughput_means, yerr=throughput_stds, capsize=5, color=["orange", "green"], alpha=0.8)
    ax2.set_ylabel("Throughput (K queries/s)")
    ax2.set_title("Throughput")

    ax3.bar(names, size_means, yerr=size_stds, capsize=5, color=["orange", "green"], alpha=0.8)
    ax3.set_ylabel("Structure size (KB)")
    ax3.set_title("Size")

    plt.suptitle("FilterCascade vs single BitFilter")
    plt.tight_layout()

    os.makedirs("plots", exist_ok=True)
    plot_path = "plots/benchmark_cascade_comparison.png"
    plt.savefig(plot_path, dpi=200)
    plt.close(fig)
    print(f"\nPlot saved to: {plot_path}")


if __name__ == "__main__":
    data_files = glob("data/*.csv") + glob("data/*.parquet")
    if not data_files:
        print("No data files in 'data/', using random elements.")
    run_full_benchmark(data_paths=data_files[:4] or None)
