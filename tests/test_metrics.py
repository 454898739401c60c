import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import itertools
import random
import threading

from costbench.metrics import HISTOGRAM_MAX_COST, MissCostStats
from costbench.workload import OperationKind, OperationResult


def set_result(key, cost):
    return OperationResult(True, OperationKind.SET, key, cost, False)


def get_hit(key):
    return OperationResult(True, OperationKind.GET, key, None, False)


def get_miss(key, new_cost):
    return OperationResult(True, OperationKind.GET, key, new_cost, True)


def test_set_records_cost():
    stats = MissCostStats()
    stats.record(set_result("k1", 40))
    stats.record(set_result("k1", 70))
    assert stats.costs == {"k1": 70}
    assert stats.num_set == 2
    assert stats.num_get == 0


def test_refill_set_not_counted():
    stats = MissCostStats()
    stats.record(set_result("k1", 40), is_refill=True)
    assert stats.costs == {"k1": 40}
    assert stats.num_set == 0


def test_miss_bills_last_known_cost():
    stats = MissCostStats()
    stats.record(set_result("k1", 120))
    stats.record(get_miss("k1", 30))

    assert stats.total_miss_cost == 120
    assert stats.total_miss == 1
    assert stats.num_get == 1
    assert stats.num_set == 2          # the refill counts as a set
    assert stats.costs["k1"] == 30     # refill is the new baseline
    assert stats.cost_distribution[120] == 1

    stats.record(get_miss("k1", 80))
    assert stats.total_miss_cost == 150


def test_miss_on_unknown_key_bills_own_cost():
    stats = MissCostStats()
    stats.record(get_miss("k9", 55))
    assert stats.total_miss_cost == 55
    assert stats.costs == {"k9": 55}
    assert stats.cost_distribution[55] == 1


def test_hit_only_counts_get():
    stats = MissCostStats()
    stats.record(set_result("k1", 10))
    stats.record(get_hit("k1"))
    assert stats.num_get == 1
    assert stats.total_miss == 0
    assert stats.total_miss_cost == 0
    assert stats.costs == {"k1": 10}


def test_neutral_results_ignored():
    stats = MissCostStats()
    stats.record(OperationResult.neutral(True))
    stats.record(OperationResult.neutral(False))
    assert stats.snapshot() == MissCostStats().snapshot()


def test_order_independent():
    results = [
        set_result("a", 10),
        set_result("b", 200),
        get_miss("c", 300),
        get_miss("d", 5),
        get_hit("e"),
        set_result("f", 450),
    ]
    baseline = MissCostStats()
    for r in results:
        baseline.record(r)

    for perm in itertools.permutations(results):
        stats = MissCostStats()
        for r in perm:
            stats.record(r)
        assert stats.snapshot() == baseline.snapshot()
        assert stats.costs == baseline.costs
        assert stats.histogram() == baseline.histogram()


def test_concurrent_updates():
    stats = MissCostStats()

    def worker(worker_id):
        for i in range(1000):
            stats.record(get_miss(f"w{worker_id}-{i}", 3))
            stats.record(set_result(f"s{worker_id}-{i}", 7))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert stats.total_miss == 8000
    assert stats.total_miss_cost == 24000
    assert stats.num_get == 8000
    assert stats.num_set == 16000
    assert len(stats.costs) == 16000


def test_histogram_shape():
    stats = MissCostStats()
    rng = random.Random(1)
    for i in range(100):
        stats.record(get_miss(f"k{i}", rng.randint(0, 450)))
    hist = stats.histogram()
    assert len(hist) == HISTOGRAM_MAX_COST + 1 == 451
    assert sum(hist) == 100

    text = stats.format_histogram()
    assert text.startswith("[") and text.endswith("]")
    assert text.count(",") == 450


def test_summary_line():
    stats = MissCostStats()
    stats.record(set_result("k1", 12))
    stats.record(get_miss("k1", 3))
    assert stats.summary_line() == (
        "Total Miss Cost = 12 Total Miss = 1 Num Get = 1 Num Set = 2")
    assert stats.miss_ratio == 1.0
    assert stats.avg_miss_cost == 12.0


if __name__ == "__main__":
    test_set_records_cost()
    test_refill_set_not_counted()
    test_miss_bills_last_known_cost()
    test_miss_on_unknown_key_bills_own_cost()
    test_hit_only_counts_get()
    test_neutral_results_ignored()
    test_order_independent()
    test_concurrent_updates()
    test_histogram_shape()
    test_summary_line()
    print("all metrics tests passed")
