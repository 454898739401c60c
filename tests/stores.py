"""Store doubles shared by the test modules."""

import threading

from costbench.errors import StoreError
from costbench.store import Store


class ScriptedStore(Store):
    """Dict-backed store that records every call.

    ``misses`` scripts the outcome of the first GETs (True = miss); once it
    runs out a GET misses only when the key was never written.
    """

    def __init__(self, misses=None, fail_writes=False, fail_init=False):
        self.data = {}
        self.calls = []
        self.misses = list(misses or [])
        self.fail_writes = fail_writes
        self.fail_init = fail_init
        self.initialized = False
        self.cleaned = False

    def init(self):
        if self.fail_init:
            raise StoreError("connection refused")
        self.initialized = True

    def cleanup(self):
        self.cleaned = True

    def _write(self, key, value):
        if self.fail_writes:
            raise StoreError("write failed")
        self.data[key] = value
        return True

    def set(self, key, value, load=False):
        self.calls.append(("set", key, load))
        return self._write(key, value)

    def set_cost(self, key, value, load, cost):
        self.calls.append(("set_cost", key, load, cost))
        return self._write(key, value)

    def get(self, key):
        self.calls.append(("get", key))
        if self.misses:
            miss = self.misses.pop(0)
        else:
            miss = key not in self.data
        return None if miss else self.data.get(key, "")

    def add(self, key, value):
        self.calls.append(("add", key))
        if key in self.data:
            return False
        return self._write(key, value)

    def append(self, key, value):
        self.calls.append(("append", key))
        return key in self.data

    def prepend(self, key, value):
        self.calls.append(("prepend", key))
        return key in self.data

    def gets(self, key):
        self.calls.append(("gets", key))
        return 1 if key in self.data else None

    def cas(self, key, token, value):
        self.calls.append(("cas", key, token))
        return token == 1

    def incr(self, key, delta=1):
        self.calls.append(("incr", key, delta))
        return 1

    def decr(self, key, delta=1):
        self.calls.append(("decr", key, delta))
        return 0

    def delete(self, key):
        self.calls.append(("delete", key))
        return self.data.pop(key, None) is not None

    def replace(self, key, value):
        self.calls.append(("replace", key))
        return key in self.data

    def update(self, key, value):
        self.calls.append(("update", key))
        return self._write(key, value)


class GatedStore(ScriptedStore):
    """Blocks every write until ``gate`` is set."""

    def __init__(self, gate: threading.Event, started: threading.Event):
        super().__init__()
        self.gate = gate
        self.started = started

    def set_cost(self, key, value, load, cost):
        self.started.set()
        self.gate.wait()
        return super().set_cost(key, value, load, cost)
