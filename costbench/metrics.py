import threading
from collections import Counter
from dataclasses import dataclass, field

from costbench.workload import OperationKind, OperationResult

HISTOGRAM_MAX_COST = 450


@dataclass
class MissCostStats:
    # miss accounting
    total_miss_cost: int = 0
    total_miss: int = 0

    # operation counters
    num_get: int = 0
    num_set: int = 0

    # key -> most recent cost written for it
    costs: dict = field(default_factory=dict, repr=False)

    # histogram: billed miss cost -> occurrences
    cost_distribution: Counter = field(default_factory=Counter, repr=False)

    _lock: threading.Lock = field(default_factory=threading.Lock,
                                  repr=False, compare=False)

    def record(self, result: OperationResult, is_refill: bool = False):
        """Fold one operation result into the totals.

        ``is_refill`` marks a SET issued to refill a miss; it updates the
        cost table without counting as a committed set.
        """
        if result.op is OperationKind.SET:
            with self._lock:
                self.costs[result.key] = result.cost
                if not is_refill:
                    self.num_set += 1
        elif result.op is OperationKind.GET:
            with self._lock:
                if result.miss:
                    billed = self.costs.get(result.key)
                    if billed is None:
                        billed = result.cost
                    self.total_miss_cost += billed
                    self.total_miss += 1
                    self.cost_distribution[billed] += 1
                    # the refill is the new baseline for the next miss
                    self.costs[result.key] = result.cost
                    self.num_set += 1
                self.num_get += 1

    @property
    def miss_ratio(self):
        return self.total_miss / self.num_get if self.num_get > 0 else 0.0

    @property
    def avg_miss_cost(self):
        if self.total_miss == 0:
            return 0.0
        return self.total_miss_cost / self.total_miss

    def histogram(self, max_cost: int = HISTOGRAM_MAX_COST):
        with self._lock:
            return [self.cost_distribution.get(cost, 0) for cost in range(max_cost + 1)]

    def format_histogram(self, max_cost: int = HISTOGRAM_MAX_COST):
        return "[" + ",".join(str(n) for n in self.histogram(max_cost)) + "]"

    def summary_line(self):
        with self._lock:
            return (f"Total Miss Cost = {self.total_miss_cost} "
                    f"Total Miss = {self.total_miss} "
                    f"Num Get = {self.num_get} "
                    f"Num Set = {self.num_set}")

    def snapshot(self):
        with self._lock:
            return {
                "total_miss_cost": self.total_miss_cost,
                "total_miss": self.total_miss,
                "num_get": self.num_get,
                "num_set": self.num_set,
                "keys_tracked": len(self.costs),
            }

    def summary(self):
        data = self.snapshot()
        data["miss_ratio"] = f"{self.miss_ratio:.4f}"
        data["avg_miss_cost"] = f"{self.avg_miss_cost:.1f}"
        return data

    def print_summary(self):
        print("\n--- Miss Cost Summary ---")
        for k, v in self.summary().items():
            print(f"  {k}: {v}")
        print()
