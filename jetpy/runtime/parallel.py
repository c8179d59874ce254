"""
Parallel Reducer
================

Order-preserving parallel map and deterministic reduction for the
independent summands of finite-sum closed forms and bound convolutions.

Determinism:
    Work items may be evaluated concurrently on a thread pool, but results
    are always collected by index and reduced left to right, so the value
    of a sum never depends on scheduling. Small inputs (fewer than
    ``min_parallel_size`` items) are evaluated sequentially.

Usage:
    >>> reducer = ParallelReducer(workers=4)
    >>> reducer.map(lambda k: k * k, range(5))
    [0, 1, 4, 9, 16]
    >>> reducer.sum(lambda k: 1.0 / (k + 1), range(3), start=0.0)
    1.8333333333333333
"""

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

_NO_START = object()


@dataclass
class ParallelStats:
    """Statistics for parallel execution."""
    tasks_submitted: int = 0
    tasks_completed: int = 0
    parallelized_calls: int = 0
    fallback_calls: int = 0


class ParallelReducer:
    """
    Thread-pool map with index-ordered reduction.

    Usage:
        >>> reducer = ParallelReducer(workers=2, min_parallel_size=1)
        >>> total = reducer.sum(lambda f: engine.iterated_fderiv(f, 2, x), functions)
    """

    def __init__(
        self,
        workers: Optional[int] = None,
        chunk_size: int = 16,
        min_parallel_size: int = 64,
    ):
        self.workers = workers or max(1, (os.cpu_count() or 2) - 1)
        self.chunk_size = max(1, chunk_size)
        self.min_parallel_size = min_parallel_size
        self.stats = ParallelStats()

    def map(self, func: Callable, data: Iterable) -> List:
        """Apply ``func`` to every item; results keep the input order."""
        data_list = list(data)

        if self.workers <= 1 or len(data_list) < self.min_parallel_size:
            self.stats.fallback_calls += 1
            return [func(item) for item in data_list]

        self.stats.parallelized_calls += 1
        return self._parallel_map(func, data_list)

    def sum(self, func: Callable, data: Iterable, start: Any = _NO_START) -> Any:
        """
        Σ func(item), reduced strictly in input order.

        Without ``start`` the first value seeds the sum, so any type with
        ``+`` (arrays, multilinear maps) can be reduced.
        """
        values = self.map(func, data)
        if start is _NO_START:
            if not values:
                raise ValueError("sum of an empty sequence needs a start value")
            result, rest = values[0], values[1:]
        else:
            result, rest = start, values
        for value in rest:
            result = result + value
        return result

    def _parallel_map(self, func: Callable, data: List) -> List:
        chunks = self._partition(data)
        self.stats.tasks_submitted += len(chunks)

        results = []
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(_apply_chunk, func, chunk) for chunk in chunks]
            # Collect in submission order, not completion order
            for future in futures:
                results.extend(future.result())
                self.stats.tasks_completed += 1
        return results

    def _partition(self, data: List) -> List[List]:
        return [data[i:i + self.chunk_size] for i in range(0, len(data), self.chunk_size)]


def _apply_chunk(func: Callable, chunk: List) -> List:
    return [func(item) for item in chunk]
