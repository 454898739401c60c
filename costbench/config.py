from dataclasses import dataclass, field, fields

from costbench.errors import WorkloadError


@dataclass
class OperationMix:
    # relative weights; kinds with a zero weight are never drawn
    memadd_proportion: float = 0.0
    memappend_proportion: float = 0.0
    memcas_proportion: float = 0.0
    memdecr_proportion: float = 0.0
    memdelete_proportion: float = 0.0
    memget_proportion: float = 0.95
    memgets_proportion: float = 0.0
    memincr_proportion: float = 0.0
    memprepend_proportion: float = 0.0
    memreplace_proportion: float = 0.0
    memset_proportion: float = 0.05
    memupdate_proportion: float = 0.0


@dataclass
class CostTierConfig:
    prob: float = 0.0
    cost_min: int = 0
    cost_max: int = 0
    value_length: int = 100


@dataclass
class BenchmarkConfig:
    record_count: int = 1000
    operation_count: int = 3000
    insert_start: int = 0
    key_prefix: str = "user"
    insert_order: str = "hashed"        # ordered, hashed
    request_distribution: str = "uniform"  # uniform, zipfian, latest, churn
    zipfian_constant: float = 0.99
    working_set: int = 100
    churn_delta: int = 10
    scan_length_distribution: str = "uniform"
    max_scan_length: int = 1000
    field_count: int = 10
    value_length: int = 100
    thread_count: int = 1
    default_set: bool = False

    # bundled cache store
    store: str = "memory"
    cache_capacity: int = 500           # entries, 0 = unbounded
    eviction_sample: int = 5

    show_histogram: bool = True
    status_interval: float = 0.0        # seconds, 0 disables
    seed: int = 0                       # 0 = unseeded

    mix: OperationMix = field(default_factory=OperationMix)
    high_cost: CostTierConfig = field(default_factory=lambda: CostTierConfig(
        prob=0.1, cost_min=300, cost_max=450, value_length=1024))
    mid_cost: CostTierConfig = field(default_factory=lambda: CostTierConfig(
        prob=0.3, cost_min=100, cost_max=299, value_length=512))
    low_cost: CostTierConfig = field(default_factory=lambda: CostTierConfig(
        prob=0.6, cost_min=1, cost_max=99, value_length=128))

    @property
    def cost_tiers(self):
        return {"HIGH": self.high_cost, "MID": self.mid_cost, "LOW": self.low_cost}

    @property
    def expected_new_keys(self):
        # 2 is a fudge factor so the zipfian key space outgrows the inserts
        return int(self.operation_count * self.mix.memset_proportion * 2.0)


def default_config():
    return BenchmarkConfig()


def small_config():
    # smaller config for development and testing
    return BenchmarkConfig(
        record_count=100,
        operation_count=300,
        cache_capacity=50,
        show_histogram=False,
    )


# YCSB-style spellings accepted on top of the dataclass field names
_ALIASES = {
    "recordcount": "record_count",
    "operationcount": "operation_count",
    "insertstart": "insert_start",
    "insertorder": "insert_order",
    "requestdistribution": "request_distribution",
    "zipfianconstant": "zipfian_constant",
    "scanlengthdistribution": "scan_length_distribution",
    "maxscanlength": "max_scan_length",
    "fieldcount": "field_count",
    "valuelength": "value_length",
    "threadcount": "thread_count",
    "threads": "thread_count",
    "workingset": "working_set",
    "churndelta": "churn_delta",
    "keyprefix": "key_prefix",
    "defaultset": "default_set",
}

_TIER_KEYS = {
    "prob": "prob",
    "min": "cost_min",
    "max": "cost_max",
}


def _convert(raw, current, name):
    if isinstance(current, bool):
        lowered = str(raw).strip().lower()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off"):
            return False
        raise WorkloadError(f"property {name!r}: expected a boolean, got {raw!r}")
    try:
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
    except ValueError:
        raise WorkloadError(
            f"property {name!r}: cannot convert {raw!r} to {type(current).__name__}"
        ) from None
    return str(raw)


def _resolve(config, name):
    # returns (target object, attribute name) for a flat property name
    key = _ALIASES.get(name, name)
    top = {f.name for f in fields(config)}
    if key in top and key not in ("mix", "high_cost", "mid_cost", "low_cost"):
        return config, key
    if key in {f.name for f in fields(config.mix)}:
        return config.mix, key

    for prefix in ("high", "mid", "low"):
        tier = getattr(config, f"{prefix}_cost")
        if key == f"{prefix}_value_length":
            return tier, "value_length"
        for suffix, attr in _TIER_KEYS.items():
            if key == f"{prefix}_cost_{suffix}":
                return tier, attr
    raise WorkloadError(f"unknown property: {name!r}")


def apply_properties(config: BenchmarkConfig, props: dict) -> BenchmarkConfig:
    """Apply flat ``name=value`` properties onto ``config`` in place.

    Naming any ``mem*_proportion`` replaces the whole operation mix:
    proportions that are not named drop to 0.
    """
    if any(_resolve(config, name.strip())[0] is config.mix for name in props):
        config.mix = OperationMix(memget_proportion=0.0, memset_proportion=0.0)
    for name, raw in props.items():
        target, attr = _resolve(config, name.strip())
        setattr(target, attr, _convert(raw, getattr(target, attr), name))
    return config


def parse_properties(lines) -> dict:
    props = {}
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            raise WorkloadError(f"malformed property line: {line!r}")
        name, value = line.split("=", 1)
        props[name.strip()] = value.strip()
    return props


def load_properties(path: str) -> dict:
    with open(path, "r") as f:
        return parse_properties(f)
