"""
Work partitioning for the per-tick compute phase.

StepScheduler splits an index range into contiguous partitions and runs a
function over each one, on a ThreadPoolExecutor when more than one worker is
configured. Results always come back in partition order, so the caller sees
the same sequence whatever the worker count. An exception raised inside a
worker is re-raised from map()/map_partitions() in the calling thread.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


class StepScheduler:

    def __init__(self, workers: int = 1):
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.workers = workers
        self._pool = None
        if workers > 1:
            self._pool = ThreadPoolExecutor(max_workers=workers,
                                            thread_name_prefix="evosim-step")
            logger.debug("step pool started with %d workers", workers)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def partitions(self, n: int) -> list:
        """Contiguous (start, stop) ranges covering 0..n, at most one per worker."""
        if n <= 0:
            return []
        parts = min(self.workers, n)
        bounds = [n * i // parts for i in range(parts + 1)]
        return [(bounds[i], bounds[i + 1]) for i in range(parts)]

    def map_partitions(self, fn, n: int, *args) -> list:
        """fn(start, stop, *args) per partition; results in partition order."""
        ranges = self.partitions(n)
        if self._pool is None or len(ranges) <= 1:
            return [fn(lo, hi, *args) for lo, hi in ranges]
        futures = [self._pool.submit(fn, lo, hi, *args) for lo, hi in ranges]
        return [f.result() for f in futures]

    def map(self, fn, n: int, *args) -> list:
        """fn(*args, i) for i in 0..n, flattened back into index order."""
        def run(lo, hi, *a):
            return [fn(*a, i) for i in range(lo, hi)]
        out = []
        for chunk in self.map_partitions(run, n, *args):
            out.extend(chunk)
        return out

    def close(self):
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
            logger.debug("step pool shut down")
