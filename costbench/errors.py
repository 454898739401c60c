class BenchmarkError(Exception):
    """Base class for every error raised by the benchmark."""


class WorkloadError(BenchmarkError):
    """Invalid workload or generator configuration."""


class StoreError(BenchmarkError):
    """A store could not be created, initialised or served a request."""


class PoolError(BenchmarkError):
    """The worker pool could not be constructed."""
