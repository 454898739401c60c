"""Key, operation and cost generators.

Every generator draws from an optional ``random.Random`` so runs can be
reproduced; without one the module-level ``random`` functions are used.
Generators touched by more than one worker guard their mutable state with
a lock.
"""

import logging
import random
import threading

logger = logging.getLogger(__name__)

FNV_OFFSET_BASIS_64 = 0xCBF29CE484222325
FNV_PRIME_64 = 0x100000001B3
_MASK_64 = (1 << 64) - 1

ZIPFIAN_CONSTANT = 0.99

# largest key space ScrambledZipfianGenerator keeps a sorted id table for
SCRAMBLE_TABLE_LIMIT = 1 << 22


def fnv_hash64(value: int) -> int:
    # FNV-1a over the 8 little-endian octets of the value
    h = FNV_OFFSET_BASIS_64
    for _ in range(8):
        h ^= value & 0xFF
        h = (h * FNV_PRIME_64) & _MASK_64
        value >>= 8
    return h


class CounterGenerator:
    """Hands out successive integers starting at ``start``."""

    def __init__(self, start: int = 0):
        self._lock = threading.Lock()
        self._next = start
        self._last = start - 1

    def next_value(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            self._last = value
            return value

    @property
    def last_value(self) -> int:
        return self._last


class AcknowledgedCounterGenerator(CounterGenerator):
    """Counter whose ``last_value`` only covers acknowledged ids.

    ``last_value`` is the highest id L such that every id issued in
    ``[start, L]`` has been acknowledged, so readers never see an id whose
    insert is still in flight.
    """

    def __init__(self, start: int = 0):
        super().__init__(start)
        self._ack_lock = threading.Lock()
        self._limit = start - 1
        self._pending = set()

    def acknowledge(self, value: int):
        with self._ack_lock:
            if value <= self._limit:
                return
            self._pending.add(value)
            while self._limit + 1 in self._pending:
                self._limit += 1
                self._pending.discard(self._limit)

    @property
    def last_value(self) -> int:
        return self._limit

    @property
    def last_issued(self) -> int:
        return self._last


class UniformIntegerGenerator:
    def __init__(self, lo: int, hi: int, rng=None):
        if lo > hi:
            raise ValueError(f"empty range [{lo}, {hi}]")
        self.lo = lo
        self.hi = hi
        self._rng = rng or random
        self._last = None

    def next_value(self) -> int:
        self._last = self._rng.randint(self.lo, self.hi)
        return self._last

    @property
    def last_value(self):
        return self._last


class DiscreteGenerator:
    """Weighted draw over registered labels."""

    def __init__(self, rng=None):
        self._values = []
        self._total = 0.0
        self._rng = rng or random
        self._last = None

    def add_value(self, weight: float, label):
        if weight < 0:
            raise ValueError(f"negative weight {weight} for {label!r}")
        self._values.append((weight, label))
        self._total += weight

    @property
    def labels(self):
        return [label for _, label in self._values]

    def __len__(self):
        return len(self._values)

    def next_value(self):
        if not self._values or self._total <= 0:
            raise ValueError("no values registered")
        val = self._rng.random() * self._total
        for weight, label in self._values:
            if val < weight:
                self._last = label
                return label
            val -= weight
        # float rounding can leave val just above the final weight
        self._last = self._values[-1][1]
        return self._last

    @property
    def last_value(self):
        return self._last


def zeta(start: int, n: int, theta: float, initial_sum: float = 0.0) -> float:
    # sum of 1/i^theta for i in (start, n], continued from initial_sum
    total = initial_sum
    for i in range(start, n):
        total += 1.0 / ((i + 1) ** theta)
    return total


class ZipfianGenerator:
    """Zipfian over ``[lo, hi]`` using Gray et al.'s inverse transform.

    Popular items sit at the low end of the range: ``lo`` is the most
    frequent value, ``lo + 1`` the next and so on. ``zeta(n, theta)`` is
    computed once at construction. When the caller asks for a different
    item count only the terms between the old and new count are summed,
    which keeps each draw O(1) for a slowly moving count.
    """

    def __init__(self, lo: int, hi: int, theta: float = ZIPFIAN_CONSTANT,
                 zetan: float = None, rng=None):
        if lo > hi:
            raise ValueError(f"empty range [{lo}, {hi}]")
        if not 0.0 < theta < 1.0:
            raise ValueError(f"zipfian constant must be in (0, 1), got {theta}")
        self.base = lo
        self.items = hi - lo + 1
        self.theta = theta
        self._rng = rng or random
        self._lock = threading.Lock()
        self._last = None

        self.alpha = 1.0 / (1.0 - theta)
        self.zeta2theta = zeta(0, 2, theta)
        if zetan is None:
            zetan = zeta(0, self.items, theta)
        # (item count, zetan, eta) swapped as one tuple so readers never mix
        self._state = (self.items, zetan, self._eta(self.items, zetan))

    @property
    def count_for_zeta(self):
        return self._state[0]

    @property
    def zetan(self):
        return self._state[1]

    @property
    def eta(self):
        return self._state[2]

    def _eta(self, item_count, zetan):
        denom = 1.0 - self.zeta2theta / zetan
        if denom == 0.0:
            # two items: the first two branches of next_value cover every draw
            return 0.0
        return (1.0 - (2.0 / item_count) ** (1.0 - self.theta)) / denom

    def _resize(self, item_count):
        with self._lock:
            count, zetan, _ = self._state
            if item_count > count:
                zetan = zeta(count, item_count, self.theta, zetan)
            elif item_count < count:
                zetan -= zeta(item_count, count, self.theta)
            else:
                return self._state
            self._state = (item_count, zetan, self._eta(item_count, zetan))
            return self._state

    def next_value(self, item_count: int = None) -> int:
        if item_count is None:
            item_count = self.items
        elif item_count < 1:
            raise ValueError(f"item count must be positive, got {item_count}")
        state = self._state
        if item_count != state[0]:
            state = self._resize(item_count)

        _, zetan, eta = state
        u = self._rng.random()
        uz = u * zetan
        if uz < 1.0:
            value = self.base
        elif uz < 1.0 + 0.5 ** self.theta:
            value = self.base + 1
        else:
            rank = int(item_count * ((eta * u - eta + 1.0) ** self.alpha))
            value = self.base + min(rank, item_count - 1)
        self._last = value
        return value

    @property
    def last_value(self):
        return self._last


class ScrambledZipfianGenerator:
    """Zipfian popularity spread over ``[lo, hi]`` instead of clustered at ``lo``.

    A Zipfian rank is mapped to the id holding that position when all ids
    are ordered by their FNV hash. Two generators built over different
    item counts agree on the relative popularity of every id they share,
    so sizing the generator for the eventual key space keeps rankings
    stable while keys are inserted.

    The ordering is a sorted table of every id, built once. Above
    ``SCRAMBLE_TABLE_LIMIT`` ids that table costs too much memory and
    startup time, so ranks map to ``fnv(rank) % items`` instead. That
    mapping is not stable under growth and may send two ranks to one id.
    """

    def __init__(self, lo: int, hi: int, theta: float = ZIPFIAN_CONSTANT, rng=None):
        if lo > hi:
            raise ValueError(f"empty range [{lo}, {hi}]")
        self.base = lo
        self.items = hi - lo + 1
        self._zipfian = ZipfianGenerator(0, self.items - 1, theta, rng=rng)
        if self.items <= SCRAMBLE_TABLE_LIMIT:
            self._ranked = sorted(range(self.items), key=fnv_hash64)
        else:
            logger.info("scrambled zipfian over %d ids: hashing ranks", self.items)
            self._ranked = None
        self._last = None

    def _id_for(self, rank):
        if self._ranked is None:
            return self.base + fnv_hash64(rank) % self.items
        return self.base + self._ranked[rank]

    @property
    def ranked_ids(self):
        """Ids ordered from most to least popular."""
        return [self._id_for(rank) for rank in range(self.items)]

    def next_value(self) -> int:
        self._last = self._id_for(self._zipfian.next_value())
        return self._last

    @property
    def last_value(self):
        return self._last


class SkewedLatestGenerator:
    """Favours ids close to the basis counter's ``last_value``."""

    def __init__(self, basis: CounterGenerator, theta: float = ZIPFIAN_CONSTANT, rng=None):
        self._basis = basis
        count = max(basis.last_value + 1, 1)
        self._zipfian = ZipfianGenerator(0, count - 1, theta, rng=rng)
        self._last = None

    def next_value(self) -> int:
        count = max(self._basis.last_value + 1, 1)
        self._last = count - 1 - self._zipfian.next_value(count)
        return self._last

    @property
    def last_value(self):
        return self._last


class ChurnGenerator:
    """Uniform draws inside a working-set window that slides over the keys.

    The window covers ``working_set`` consecutive ids (modulo
    ``record_count``). After every ``working_set`` draws it moves forward
    by ``churn_delta`` ids, so old keys fall out and new ones come in.
    """

    def __init__(self, working_set: int, churn_delta: int, record_count: int, rng=None):
        if record_count < 1:
            raise ValueError(f"record count must be positive, got {record_count}")
        if churn_delta < 0:
            raise ValueError(f"churn delta must be non-negative, got {churn_delta}")
        self.record_count = record_count
        self.working_set = min(max(working_set, 1), record_count)
        self.churn_delta = churn_delta
        self._rng = rng or random
        self._lock = threading.Lock()
        self._offset = 0
        self._draws = 0
        self._last = None

    @property
    def window(self):
        start = self._offset
        return start, (start + self.working_set - 1) % self.record_count

    def next_value(self) -> int:
        with self._lock:
            offset = self._offset
            self._draws += 1
            if self._draws % self.working_set == 0:
                self._offset = (self._offset + self.churn_delta) % self.record_count
        self._last = (offset + self._rng.randint(0, self.working_set - 1)) % self.record_count
        return self._last

    @property
    def last_value(self):
        return self._last
