"""Evaluation script: runs every request distribution and generates plots."""

import sys
import os
import json

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from costbench.config import small_config
from costbench.pool import ClientThreadPool
from costbench.store import create_store_factory
from costbench.workload import CoreWorkload

DISTRIBUTIONS = ["uniform", "zipfian", "latest", "churn"]
DIST_COLORS = {
    "uniform": "#444444",
    "zipfian": "#2196F3",
    "latest": "#FF9800",
    "churn": "#F44336",
}


def run_distribution(dist, record_count=1000, operation_count=20000,
                     cache_capacity=250, threads=4, get_proportion=0.9,
                     eviction_sample=1):
    config = small_config()
    config.record_count = record_count
    config.operation_count = operation_count
    config.cache_capacity = cache_capacity
    config.eviction_sample = eviction_sample
    config.thread_count = threads
    config.request_distribution = dist
    config.working_set = max(1, record_count // 10)
    config.mix.memget_proportion = get_proportion
    config.mix.memset_proportion = 1.0 - get_proportion

    workload = CoreWorkload(config).init()
    pool = ClientThreadPool(workload, create_store_factory(config),
                            num_threads=threads,
                            operation_count=operation_count,
                            record_count=record_count,
                            show_histogram=False)
    return pool.run()


def collect_results(dists, **kwargs):
    results = {}
    for i, dist in enumerate(dists, 1):
        print(f"  [{i}/{len(dists)}] {dist}...")
        stats = run_distribution(dist, **kwargs)
        results[dist] = {
            "total_miss_cost": stats.total_miss_cost,
            "total_miss": stats.total_miss,
            "num_get": stats.num_get,
            "num_set": stats.num_set,
            "miss_ratio": stats.miss_ratio,
            "avg_miss_cost": stats.avg_miss_cost,
            "histogram": stats.histogram(),
        }
    return results


def plot_bar(results, dists, metric, ylabel, title, filename, outdir):
    fig, ax = plt.subplots(figsize=(8, 5))
    vals = [results[d][metric] for d in dists]
    ax.bar(range(len(dists)), vals, color=[DIST_COLORS[d] for d in dists])
    ax.set_xticks(range(len(dists)))
    ax.set_xticklabels(dists)
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    plt.tight_layout()
    plt.savefig(os.path.join(outdir, filename), dpi=150)
    plt.close()


def plot_histogram(results, dists, outdir):
    fig, ax = plt.subplots(figsize=(12, 5))
    for dist in dists:
        hist = results[dist]["histogram"]
        ax.plot(range(len(hist)), hist, label=dist, color=DIST_COLORS[dist],
                linewidth=0.8)
    ax.set_xlabel("Miss cost")
    ax.set_ylabel("Occurrences")
    ax.set_title("Billed miss cost distribution")
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(os.path.join(outdir, "miss_cost_histogram.png"), dpi=150)
    plt.close()


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Run evaluation and generate plots")
    parser.add_argument("--record-count", type=int, default=1000)
    parser.add_argument("--operation-count", type=int, default=20000)
    parser.add_argument("--cache-capacity", type=int, default=250)
    parser.add_argument("--threads", type=int, default=4)
    parser.add_argument("--get-proportion", type=float, default=0.9)
    parser.add_argument("--eviction-sample", type=int, default=1,
                        help="1 = plain LRU, >1 = evict cheapest of the N oldest")
    parser.add_argument("--outdir", default="results")
    parser.add_argument("--distributions", default=None,
                        help="Comma-separated distributions (default: all)")
    args = parser.parse_args()

    os.makedirs(args.outdir, exist_ok=True)
    dists = args.distributions.split(",") if args.distributions else DISTRIBUTIONS

    print("Running evaluation...")
    results = collect_results(
        dists,
        record_count=args.record_count,
        operation_count=args.operation_count,
        cache_capacity=args.cache_capacity,
        threads=args.threads,
        get_proportion=args.get_proportion,
        eviction_sample=args.eviction_sample,
    )

    with open(os.path.join(args.outdir, "results.json"), "w") as f:
        json.dump(results, f, indent=2)
    print(f"Results saved to {args.outdir}/results.json")

    print("Generating plots...")
    plot_bar(results, dists, "total_miss_cost", "Total miss cost",
             "Miss Cost by Distribution", "miss_cost.png", args.outdir)
    plot_bar(results, dists, "miss_ratio", "Miss ratio",
             "Miss Ratio by Distribution", "miss_ratio.png", args.outdir)
    plot_histogram(results, dists, args.outdir)
    print(f"Plots saved to {args.outdir}/")

    print(f"\n{'='*60}")
    print(f"  {'distribution':<12} {'miss cost':>12} {'misses':>10} {'ratio':>8}")
    print(f"  {'-'*12} {'-'*12} {'-'*10} {'-'*8}")
    for dist in dists:
        r = results[dist]
        print(f"  {dist:<12} {r['total_miss_cost']:>12} {r['total_miss']:>10} "
              f"{r['miss_ratio']:>8.4f}")


if __name__ == "__main__":
    main()
