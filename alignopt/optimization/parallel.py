"""Sub-range dispatch of elementwise vector operations.

The optimizer modifies the derivative elementwise (division by scales,
multiplication by the learning rate). Each element is independent, so the
index range ``[0, n)`` is split into disjoint contiguous sub-ranges that a
fixed-size thread pool processes; ``run`` returns only after every
sub-range finished. Any partitioning yields identical results because the
writes never overlap.

Small vectors run in-line on the calling thread: thread dispatch costs
more than the arithmetic below ``minimum_parallel_size`` elements.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from alignopt.utils.logging import get_logger

logger = get_logger(__name__)

_DEFAULT_MIN_PARALLEL_SIZE = 4096

SubRangeFunction = Callable[[int, int], None]


def default_number_of_workers() -> int:
    """Number of workers used when none is configured."""
    return max(1, min(4, os.cpu_count() or 1))


def partition_range(n: int, n_parts: int) -> list[tuple[int, int]]:
    """Split ``[0, n)`` into at most ``n_parts`` contiguous ``(start, stop)``.

    Sizes differ by at most one; empty ranges are never returned.

    Examples
    --------
    >>> partition_range(10, 3)
    [(0, 4), (4, 7), (7, 10)]
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    if n_parts < 1:
        raise ValueError(f"n_parts must be >= 1, got {n_parts}")
    if n == 0:
        return []

    n_parts = min(n_parts, n)
    base, extra = divmod(n, n_parts)
    ranges = []
    start = 0
    for part in range(n_parts):
        stop = start + base + (1 if part < extra else 0)
        ranges.append((start, stop))
        start = stop
    return ranges


class SubRangeExecutor:
    """Fixed-size worker pool running a function over disjoint sub-ranges.

    Parameters
    ----------
    n_workers : int, optional
        Pool size. Defaults to :func:`default_number_of_workers`.
    minimum_parallel_size : int
        Ranges shorter than this run in-line on the calling thread.

    Notes
    -----
    The thread pool is created lazily and persists across calls; use
    :meth:`shutdown` or the context manager to release it.
    """

    def __init__(
        self,
        n_workers: int | None = None,
        minimum_parallel_size: int = _DEFAULT_MIN_PARALLEL_SIZE,
    ) -> None:
        n_workers = default_number_of_workers() if n_workers is None else n_workers
        if n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")
        self._n_workers = int(n_workers)
        self._minimum_parallel_size = max(1, int(minimum_parallel_size))
        self._executor: ThreadPoolExecutor | None = None

    @property
    def n_workers(self) -> int:
        return self._n_workers

    @property
    def minimum_parallel_size(self) -> int:
        return self._minimum_parallel_size

    def should_run_parallel(self, n: int) -> bool:
        return self._n_workers > 1 and n >= self._minimum_parallel_size

    def run(self, func: SubRangeFunction, n: int) -> int:
        """Call ``func(start, stop)`` over a partition of ``[0, n)``.

        Blocks until every sub-range is done. An exception raised by any
        sub-range is re-raised after all of them finished.

        Returns
        -------
        int
            Number of sub-ranges processed.
        """
        if not self.should_run_parallel(n):
            if n > 0:
                func(0, n)
                return 1
            return 0

        ranges = partition_range(n, self._n_workers)
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._n_workers, thread_name_prefix="alignopt-subrange"
            )
            logger.debug("Started sub-range pool with %d workers", self._n_workers)

        futures = [self._executor.submit(func, start, stop) for start, stop in ranges]

        first_error: BaseException | None = None
        for future in futures:
            error = future.exception()
            if error is not None and first_error is None:
                first_error = error
        if first_error is not None:
            raise first_error
        return len(ranges)

    def shutdown(self) -> None:
        """Shut down the pool. Idempotent."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            logger.debug("Sub-range pool shut down")

    def __enter__(self) -> SubRangeExecutor:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()
