import logging
import random
import string
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from costbench.config import BenchmarkConfig
from costbench.errors import StoreError, WorkloadError
from costbench.generators import (
    AcknowledgedCounterGenerator,
    ChurnGenerator,
    DiscreteGenerator,
    ScrambledZipfianGenerator,
    SkewedLatestGenerator,
    UniformIntegerGenerator,
    ZipfianGenerator,
    fnv_hash64,
)

logger = logging.getLogger(__name__)

KEY_LENGTH = 16
APPEND_VALUE = "appended_string"
PREPEND_VALUE = "prepended_string"

_ASCII = string.ascii_letters + string.digits


class OperationKind(str, Enum):
    ADD = "ADD"
    APPEND = "APPEND"
    CAS = "CAS"
    DECR = "DECR"
    DELETE = "DELETE"
    GET = "GET"
    GETS = "GETS"
    INCR = "INCR"
    PREPEND = "PREPEND"
    REPLACE = "REPLACE"
    SET = "SET"
    UPDATE = "UPDATE"


class CostTier(str, Enum):
    HIGH = "HIGH"
    MID = "MID"
    LOW = "LOW"


@dataclass(frozen=True)
class OperationResult:
    success: bool
    op: Optional[OperationKind]
    key: Optional[str]
    cost: Optional[int]
    miss: bool = False
    committed_sets: int = 0

    @classmethod
    def neutral(cls, success=True, committed_sets=0):
        # maintenance operations: nothing for the aggregator to account
        return cls(success, None, None, None, False, committed_sets)


def format_key(prefix: str, keynum: int) -> str:
    # keep the trailing KEY_LENGTH characters; shorter keys are left alone
    key = f"{prefix}{keynum}"
    return key[-KEY_LENGTH:]


class CoreWorkload:
    """Memcached-style CRUD workload with tiered miss costs.

    Built once from a ``BenchmarkConfig`` via ``init()`` and then shared by
    every worker: ``do_insert`` populates the store, ``do_transaction``
    draws an operation kind and runs it against the caller's connection.
    """

    def __init__(self, config: BenchmarkConfig, rng=None):
        self.config = config
        if rng is None and config.seed:
            rng = random.Random(config.seed)
        self._rng = rng or random
        self._initialized = False

    def init(self):
        config = self.config
        rng = self._rng

        if config.insert_order not in ("ordered", "hashed"):
            raise WorkloadError(f"unknown insert order {config.insert_order!r}")
        self.ordered_inserts = config.insert_order == "ordered"

        self.key_sequence = AcknowledgedCounterGenerator(config.insert_start)

        self.operation_chooser = DiscreteGenerator(rng)
        for kind in OperationKind:
            weight = getattr(config.mix, f"mem{kind.value.lower()}_proportion")
            if weight > 0:
                self.operation_chooser.add_value(weight, kind)
        if not len(self.operation_chooser):
            raise WorkloadError("no operation has a positive proportion")

        self.cost_chooser = DiscreteGenerator(rng)
        self.cost_generators = {}
        for tier in CostTier:
            tier_config = config.cost_tiers[tier.value]
            if tier_config.prob > 0:
                self.cost_chooser.add_value(tier_config.prob, tier)
            try:
                self.cost_generators[tier] = UniformIntegerGenerator(
                    tier_config.cost_min, tier_config.cost_max, rng)
            except ValueError as e:
                raise WorkloadError(f"{tier.value} cost range: {e}") from None
        if not len(self.cost_chooser):
            raise WorkloadError("no cost tier has a positive probability")

        self.key_chooser = self._build_key_chooser()
        self.field_chooser = UniformIntegerGenerator(0, max(config.field_count - 1, 0), rng)

        try:
            if config.scan_length_distribution == "uniform":
                self.scan_length = UniformIntegerGenerator(1, config.max_scan_length, rng)
            elif config.scan_length_distribution == "zipfian":
                self.scan_length = ZipfianGenerator(
                    1, config.max_scan_length, config.zipfian_constant, rng=rng)
            else:
                raise WorkloadError(
                    f"distribution {config.scan_length_distribution!r} "
                    "not allowed for scan length")
        except ValueError as e:
            raise WorkloadError(f"scan length: {e}") from None

        self._initialized = True
        logger.info(
            "workload ready: distribution=%s records=%d ops=%d kinds=%s",
            config.request_distribution, config.record_count,
            config.operation_count,
            ",".join(k.value for k in self.operation_chooser.labels),
        )
        return self

    def _build_key_chooser(self):
        config = self.config
        rng = self._rng
        record_count = max(config.record_count, 1)
        dist = config.request_distribution
        try:
            if dist == "uniform":
                return UniformIntegerGenerator(0, record_count - 1, rng)
            if dist == "zipfian":
                # size the key space for the inserts still to come so that
                # new keys do not reshuffle which keys are popular
                item_count = record_count + config.expected_new_keys
                return ScrambledZipfianGenerator(
                    0, item_count - 1, config.zipfian_constant, rng=rng)
            if dist == "latest":
                return SkewedLatestGenerator(
                    self.key_sequence, config.zipfian_constant, rng=rng)
            if dist == "churn":
                return ChurnGenerator(
                    config.working_set, config.churn_delta, record_count, rng=rng)
        except ValueError as e:
            raise WorkloadError(f"{dist} distribution: {e}") from None
        raise WorkloadError(f"unknown distribution {dist!r}")

    # -- shared helpers --------------------------------------------------

    def _key_for(self, keynum: int) -> str:
        if not self.ordered_inserts:
            keynum = fnv_hash64(keynum)
        return format_key(self.config.key_prefix, keynum)

    def next_existing_keynum(self) -> Optional[int]:
        """Draw a key id whose insert has already completed.

        Returns None while nothing has been committed yet.
        """
        limit = self.key_sequence.last_value
        if limit < 0:
            return None
        keynum = self.key_chooser.next_value()
        while keynum > limit:
            keynum = self.key_chooser.next_value()
            limit = self.key_sequence.last_value
        return keynum

    def _existing_key(self) -> Optional[str]:
        keynum = self.next_existing_keynum()
        return None if keynum is None else self._key_for(keynum)

    def _payload(self, length: int) -> str:
        return "".join(self._rng.choices(_ASCII, k=length))

    def _draw_cost(self):
        tier = self.cost_chooser.next_value()
        cost = self.cost_generators[tier].next_value()
        value = self._payload(self.config.cost_tiers[tier.value].value_length)
        return cost, value

    def _write(self, store, key, value, cost, load) -> bool:
        if self.config.default_set:
            return self._call(store.set, key, value, load)
        return self._call(store.set_cost, key, value, load, cost)

    def _call(self, func, key, *args) -> bool:
        # store failures become a failed result, never an exception
        try:
            result = func(key, *args)
        except StoreError as e:
            logger.debug("%s(%s) failed: %s", func.__name__, key, e)
            return False
        return result is not None and result is not False

    # -- public operations -----------------------------------------------

    def do_insert(self, store, is_load_phase: bool = True,
                  committed_sets: int = 0) -> OperationResult:
        if not self._initialized:
            raise WorkloadError("workload used before init()")
        keynum = self.key_sequence.next_value()
        key = self._key_for(keynum)
        cost, value = self._draw_cost()
        try:
            ok = self._write(store, key, value, cost, is_load_phase)
        finally:
            self.key_sequence.acknowledge(keynum)
        return OperationResult(ok, OperationKind.SET, key, cost, False, committed_sets)

    def do_transaction(self, store, committed_sets: int = 0) -> OperationResult:
        if not self._initialized:
            raise WorkloadError("workload used before init()")
        op = self.operation_chooser.next_value()

        if op is OperationKind.GET:
            return self._transaction_get(store, committed_sets)
        if op is OperationKind.SET:
            return self.do_insert(store, False, committed_sets)
        if op is OperationKind.ADD:
            ok = self._transaction_add(store)
        else:
            key = self._existing_key()
            if key is None:
                logger.debug("%s skipped: no committed keys yet", op.value)
                return OperationResult.neutral(False, committed_sets)
            ok = self._maintenance(op, store, key)
        return OperationResult.neutral(ok, committed_sets)

    def _transaction_get(self, store, committed_sets):
        key = self._existing_key()
        if key is None:
            return OperationResult(False, OperationKind.GET, None, None, False,
                                   committed_sets)
        try:
            hit = store.get(key) is not None
        except StoreError as e:
            logger.debug("get(%s) failed: %s", key, e)
            return OperationResult(False, OperationKind.GET, key, None, False,
                                   committed_sets)
        if hit:
            return OperationResult(True, OperationKind.GET, key, None, False,
                                   committed_sets)

        # miss: recompute the value and write it back
        cost, value = self._draw_cost()
        ok = self._write(store, key, value, cost, False)
        return OperationResult(ok, OperationKind.GET, key, cost, True, committed_sets)

    def _transaction_add(self, store):
        keynum = self.key_sequence.next_value()
        try:
            value = self._payload(self.config.value_length)
            return self._call(store.add, self._key_for(keynum), value)
        finally:
            self.key_sequence.acknowledge(keynum)

    def _maintenance(self, op, store, key):
        if op is OperationKind.APPEND:
            return self._call(store.append, key, APPEND_VALUE)
        if op is OperationKind.PREPEND:
            return self._call(store.prepend, key, PREPEND_VALUE)
        if op is OperationKind.GETS:
            return self._call(store.gets, key)
        if op is OperationKind.CAS:
            try:
                token = store.gets(key)
            except StoreError as e:
                logger.debug("gets(%s) failed: %s", key, e)
                return False
            value = self._payload(self.config.value_length)
            return self._call(store.cas, key, token, value)
        if op is OperationKind.INCR:
            return self._call(store.incr, key, 1)
        if op is OperationKind.DECR:
            return self._call(store.decr, key, 1)
        if op is OperationKind.DELETE:
            return self._call(store.delete, key)
        if op is OperationKind.REPLACE:
            return self._call(store.replace, key, self._payload(self.config.value_length))
        if op is OperationKind.UPDATE:
            return self._call(store.update, key, self._payload(self.config.value_length))
        raise WorkloadError(f"unhandled operation {op!r}")
