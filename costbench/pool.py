import logging
import threading
import time

from costbench.errors import PoolError, StoreError
from costbench.metrics import MissCostStats

logger = logging.getLogger(__name__)


class StatusReporter(threading.Thread):
    """Logs pool progress every ``interval`` seconds until stopped."""

    def __init__(self, pool, interval: float):
        super().__init__(name=f"{pool.name}-status", daemon=True)
        self.pool = pool
        self.interval = interval
        self._stop_event = threading.Event()
        self._started_at = time.monotonic()

    def run(self):
        while not self._stop_event.wait(self.interval):
            self.report()

    def report(self):
        done = self.pool.completed
        elapsed = time.monotonic() - self._started_at
        rate = done / elapsed if elapsed > 0 else 0.0
        stats = self.pool.stats.snapshot()
        logger.info("%s: %d/%d operations, %.1f ops/sec, %d misses, miss cost %d",
                    self.pool.name, done, self.pool.operation_count, rate,
                    stats["total_miss"], stats["total_miss_cost"])

    def stop(self):
        self._stop_event.set()
        if self.is_alive():
            self.join()


class ClientThreadPool:
    """Runs a workload on ``num_threads`` workers sharing one operation budget.

    Every worker gets its own store connection, opened here before any
    worker starts. The first ``record_count`` claimed operations are
    inserts, the rest are transactions, and every result is folded into
    ``stats``.
    """

    def __init__(self, workload, store_factory, num_threads: int,
                 operation_count: int, record_count: int, pool_id: int = 0,
                 show_histogram: bool = True, status_interval: float = 0.0):
        if num_threads < 1:
            raise PoolError(f"thread count must be positive, got {num_threads}")
        self.name = f"ThreadPool-{pool_id}"
        self.workload = workload
        self.operation_count = operation_count
        self.record_count = record_count
        self.show_histogram = show_histogram
        self.stats = MissCostStats()
        self.errors = []

        self._lock = threading.Lock()
        self._print_lock = threading.Lock()
        self._alive = True
        self._remaining = operation_count

        stores = self._open_stores(store_factory, num_threads)
        self._threads = [
            threading.Thread(target=self._run_worker, args=(worker_id, store),
                             name=f"{self.name}-PooledThread-{worker_id}",
                             daemon=True)
            for worker_id, store in enumerate(stores)
        ]
        self._reporter = None
        if status_interval > 0:
            self._reporter = StatusReporter(self, status_interval)

        logger.info("%s: starting %d workers for %d operations (%d inserts)",
                    self.name, num_threads, operation_count,
                    min(record_count, operation_count))
        for thread in self._threads:
            thread.start()
        if self._reporter is not None:
            self._reporter.start()

    def _open_stores(self, store_factory, num_threads):
        stores = []
        try:
            for _ in range(num_threads):
                store = store_factory()
                store.init()
                stores.append(store)
        except (StoreError, OSError) as e:
            for store in stores:
                try:
                    store.cleanup()
                except (StoreError, OSError) as cleanup_error:
                    logger.warning("cleanup after failed start: %s", cleanup_error)
            raise PoolError(f"cannot open store connection: {e}") from e
        return stores

    @property
    def is_alive(self):
        return self._alive

    @property
    def remaining(self):
        return self._remaining

    @property
    def completed(self):
        # claimed so far, including operations still in flight
        return self.operation_count - self._remaining

    def _claim(self):
        with self._lock:
            if not self._alive or self._remaining <= 0:
                return None
            self._remaining -= 1
            return self.operation_count - self._remaining

    def claim_next(self) -> bool:
        return self._claim() is not None

    def _run_worker(self, worker_id, store):
        try:
            while True:
                ticket = self._claim()
                if ticket is None:
                    break
                if ticket > self.record_count:
                    result = self.workload.do_transaction(store, self.stats.num_set)
                else:
                    result = self.workload.do_insert(store, True)
                if not result.success:
                    logger.debug("worker %d: %s on %s failed",
                                 worker_id, result.op.value if result.op else "op",
                                 result.key)
                self.stats.record(result)
        except Exception as e:
            logger.exception("worker %d aborted", worker_id)
            self.errors.append(e)
        finally:
            try:
                store.cleanup()
            except (StoreError, OSError) as e:
                logger.warning("worker %d: store cleanup failed: %s", worker_id, e)
            self._report()

    def _report(self):
        with self._print_lock:
            print(f"Client Thread Done. {self.stats.summary_line()}")
            if self.show_histogram:
                print(self.stats.format_histogram())

    def close(self):
        with self._lock:
            if not self._alive:
                return
            self._alive = False
        logger.info("%s: closed with %d operations unclaimed", self.name, self._remaining)

    def join(self):
        for thread in self._threads:
            thread.join()
        if self._reporter is not None:
            self._reporter.stop()

    def run(self) -> MissCostStats:
        self.join()
        return self.stats
