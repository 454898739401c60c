import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass

from costbench.errors import StoreError

logger = logging.getLogger(__name__)


class Store(ABC):
    """Capability a backing key/value store exposes to the workload.

    Write-style calls return a truthy value on success and a falsy one when
    the store refused the request. Transport or protocol failures raise
    ``StoreError``.
    """

    def init(self):
        pass

    def cleanup(self):
        pass

    @abstractmethod
    def set(self, key: str, value: str, load: bool = False) -> bool: ...

    @abstractmethod
    def set_cost(self, key: str, value: str, load: bool, cost: int) -> bool: ...

    @abstractmethod
    def get(self, key: str):
        """Return the stored value, or None on a miss."""

    @abstractmethod
    def add(self, key: str, value: str) -> bool: ...

    @abstractmethod
    def append(self, key: str, value: str) -> bool: ...

    @abstractmethod
    def prepend(self, key: str, value: str) -> bool: ...

    @abstractmethod
    def gets(self, key: str):
        """Return the key's cas token, or None on a miss."""

    @abstractmethod
    def cas(self, key: str, token: int, value: str) -> bool: ...

    @abstractmethod
    def incr(self, key: str, delta: int = 1): ...

    @abstractmethod
    def decr(self, key: str, delta: int = 1): ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def replace(self, key: str, value: str) -> bool: ...

    @abstractmethod
    def update(self, key: str, value: str) -> bool: ...


@dataclass
class CacheItem:
    value: str
    cost: int = 0
    token: int = 0


class MemoryCacheServer:
    """In-process cache shared by every ``MemoryStore`` connection.

    ``capacity`` bounds the number of entries (0 = unbounded). Eviction
    removes the least recently used entry; when entries carry costs, the
    cheapest of the ``eviction_sample`` least recently used entries goes
    first so expensive values survive longer.
    """

    def __init__(self, capacity: int = 0, eviction_sample: int = 1):
        self.capacity = capacity
        self.eviction_sample = max(1, eviction_sample)
        self._items = OrderedDict()
        self._lock = threading.Lock()
        self._next_token = 1
        self.evictions = 0

    def __len__(self):
        return len(self._items)

    def __contains__(self, key):
        return key in self._items

    def cost_of(self, key):
        item = self._items.get(key)
        return None if item is None else item.cost

    def _token(self):
        token = self._next_token
        self._next_token += 1
        return token

    def _evict_one(self):
        victim = None
        for i, (key, item) in enumerate(self._items.items()):
            if i >= self.eviction_sample:
                break
            if victim is None or item.cost < self._items[victim].cost:
                victim = key
        del self._items[victim]
        self.evictions += 1

    def _store(self, key, value, cost=0):
        # caller holds the lock
        if key in self._items:
            self._items.move_to_end(key)
        elif self.capacity > 0:
            while len(self._items) >= self.capacity:
                self._evict_one()
        self._items[key] = CacheItem(value, cost, self._token())

    def set(self, key, value, cost=0):
        with self._lock:
            self._store(key, value, cost)
        return True

    def get(self, key):
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            self._items.move_to_end(key)
            return item

    def add(self, key, value):
        with self._lock:
            if key in self._items:
                return False
            self._store(key, value)
        return True

    def modify(self, key, func):
        # apply func to an existing item's value; False on a miss
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return False
            self._store(key, func(item.value), item.cost)
        return True

    def cas(self, key, token, value):
        with self._lock:
            item = self._items.get(key)
            if item is None or item.token != token:
                return False
            self._store(key, value, item.cost)
        return True

    def incr(self, key, delta):
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            try:
                number = max(0, int(item.value) + delta)
            except ValueError:
                raise StoreError(f"cannot increment non-numeric value of {key!r}") from None
            self._store(key, str(number), item.cost)
            return number

    def delete(self, key):
        with self._lock:
            return self._items.pop(key, None) is not None


class MemoryStore(Store):
    """One connection to a ``MemoryCacheServer``."""

    def __init__(self, server: MemoryCacheServer):
        self.server = server
        self._open = False

    def init(self):
        self._open = True

    def cleanup(self):
        self._open = False

    def _check(self):
        if not self._open:
            raise StoreError("connection is not open")

    def set(self, key, value, load=False):
        self._check()
        return self.server.set(key, value)

    def set_cost(self, key, value, load, cost):
        self._check()
        return self.server.set(key, value, cost)

    def get(self, key):
        self._check()
        item = self.server.get(key)
        return None if item is None else item.value

    def add(self, key, value):
        self._check()
        return self.server.add(key, value)

    def append(self, key, value):
        self._check()
        return self.server.modify(key, lambda old: old + value)

    def prepend(self, key, value):
        self._check()
        return self.server.modify(key, lambda old: value + old)

    def gets(self, key):
        self._check()
        item = self.server.get(key)
        return None if item is None else item.token

    def cas(self, key, token, value):
        self._check()
        if token is None:
            return False
        return self.server.cas(key, token, value)

    def incr(self, key, delta=1):
        self._check()
        return self.server.incr(key, delta)

    def decr(self, key, delta=1):
        self._check()
        return self.server.incr(key, -delta)

    def delete(self, key):
        self._check()
        return self.server.delete(key)

    def replace(self, key, value):
        self._check()
        return self.server.modify(key, lambda _old: value)

    def update(self, key, value):
        # unconditional overwrite that keeps the entry's cost
        self._check()
        if self.server.modify(key, lambda _old: value):
            return True
        return self.server.set(key, value)


def create_store_factory(config):
    """Resolve ``config.store`` into a zero-argument connection factory."""
    if config.store == "memory":
        server = MemoryCacheServer(config.cache_capacity, config.eviction_sample)
        logger.debug("memory store: capacity=%d sample=%d",
                     config.cache_capacity, config.eviction_sample)

        def factory():
            return MemoryStore(server)

        factory.server = server
        return factory
    raise StoreError(f"unknown store: {config.store!r}")
