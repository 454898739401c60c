import sys
import os
import argparse
import logging
import time
from dataclasses import asdict

# allow running from project root
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from costbench.config import apply_properties, default_config, load_properties
from costbench.errors import BenchmarkError
from costbench.pool import ClientThreadPool
from costbench.store import create_store_factory
from costbench.workload import CoreWorkload


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def parse_overrides(pairs):
    props = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise BenchmarkError(f"expected name=value, got {pair!r}")
        name, value = pair.split("=", 1)
        props[name.strip()] = value.strip()
    return props


def build_config(args):
    config = default_config()
    # files first, -p overrides last, applied as one set
    props = {}
    for path in args.property_files or []:
        props.update(load_properties(path))
    props.update(parse_overrides(args.props))
    apply_properties(config, props)
    if args.threads is not None:
        config.thread_count = args.threads
    return config


def run_benchmark(config):
    workload = CoreWorkload(config).init()
    store_factory = create_store_factory(config)

    start = time.monotonic()
    pool = ClientThreadPool(
        workload, store_factory,
        num_threads=config.thread_count,
        operation_count=config.operation_count,
        record_count=config.record_count,
        show_histogram=config.show_histogram,
        status_interval=config.status_interval,
    )
    try:
        pool.join()
    except KeyboardInterrupt:
        logging.warning("interrupted; letting in-flight operations finish")
        pool.close()
        pool.join()
    elapsed = time.monotonic() - start
    return pool, elapsed


def print_results(config, pool, elapsed):
    stats = pool.stats
    done = pool.completed
    print(f"\n{'='*60}")
    print(f"Distribution: {config.request_distribution} "
          f"(records={config.record_count}, ops={config.operation_count}, "
          f"threads={config.thread_count})")
    print(f"{'='*60}")
    rows = [
        ("operations", str(done)),
        ("elapsed (s)", f"{elapsed:.2f}"),
        ("throughput (ops/s)", f"{done / elapsed:.1f}" if elapsed > 0 else "n/a"),
    ]
    rows += [(k.replace("_", " "), str(v)) for k, v in stats.summary().items()]
    for label, value in rows:
        print(f"  {label:<22} {value:>14}")


def cmd_run(args):
    config = build_config(args)
    pool, elapsed = run_benchmark(config)
    print_results(config, pool, elapsed)
    return 1 if pool.errors else 0


def cmd_show_config(args):
    config = build_config(args)
    for name, value in asdict(config).items():
        if isinstance(value, dict):
            for sub, subvalue in value.items():
                print(f"  {name}.{sub}: {subvalue}")
        else:
            print(f"  {name}: {value}")
    return 0


def add_config_options(parser):
    parser.add_argument("-P", dest="property_files", action="append",
                        help="Properties file (name=value per line); repeatable")
    parser.add_argument("-p", dest="props", action="append", metavar="NAME=VALUE",
                        help="Override one property; repeatable")
    parser.add_argument("--threads", type=int, default=None)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Cost-aware cache load generator")
    parser.add_argument("--log-level", default="INFO",
                        help="DEBUG, INFO, WARNING or ERROR")
    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Run the benchmark")
    add_config_options(run)

    show = subparsers.add_parser("show-config", help="Print the resolved configuration")
    add_config_options(show)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command is None:
        # default: run with built-in defaults
        args.property_files = None
        args.props = None
        args.threads = None
        args.command = "run"

    try:
        if args.command == "show-config":
            return cmd_show_config(args)
        return cmd_run(args)
    except BenchmarkError as e:
        logging.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
