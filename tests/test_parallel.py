"""
Tests for the deterministic parallel reducer.
"""

import threading
import time

import numpy as np
import pytest
from jetpy.runtime.parallel import ParallelReducer


class TestParallelReducer:
    def test_map_preserves_order(self):
        reducer = ParallelReducer(workers=4, min_parallel_size=1, chunk_size=2)

        def slow_square(k):
            # Later items finish first
            time.sleep(0.001 * (10 - k))
            return k * k

        assert reducer.map(slow_square, range(10)) == [k * k for k in range(10)]

    def test_small_inputs_run_sequentially(self):
        reducer = ParallelReducer(workers=4, min_parallel_size=64)
        seen = []
        reducer.map(lambda k: seen.append(threading.current_thread().name), range(5))
        assert set(seen) == {threading.current_thread().name}
        assert reducer.stats.fallback_calls == 1
        assert reducer.stats.parallelized_calls == 0

    def test_single_worker_fallback(self):
        reducer = ParallelReducer(workers=1, min_parallel_size=1)
        assert reducer.map(str, [1, 2]) == ["1", "2"]
        assert reducer.stats.fallback_calls == 1

    def test_stats(self):
        reducer = ParallelReducer(workers=2, min_parallel_size=1, chunk_size=4)
        reducer.map(lambda k: k, range(10))
        assert reducer.stats.parallelized_calls == 1
        assert reducer.stats.tasks_submitted == 3
        assert reducer.stats.tasks_completed == 3

    def test_sum_is_deterministic(self):
        values = [1e16, 1.0, -1e16, 1.0] * 25
        sequential = ParallelReducer(workers=1).sum(lambda v: v, values, start=0.0)
        for _ in range(3):
            reducer = ParallelReducer(workers=4, min_parallel_size=1, chunk_size=3)
            assert reducer.sum(lambda v: v, values, start=0.0) == sequential

    def test_sum_without_start(self):
        reducer = ParallelReducer(workers=2, min_parallel_size=1)
        total = reducer.sum(lambda k: np.full(2, float(k)), range(4))
        assert np.allclose(total, [6.0, 6.0])

    def test_empty_sum(self):
        reducer = ParallelReducer()
        assert reducer.sum(lambda k: k, [], start=0) == 0
        with pytest.raises(ValueError):
            reducer.sum(lambda k: k, [])

    def test_errors_propagate(self):
        reducer = ParallelReducer(workers=2, min_parallel_size=1)

        def fail(k):
            if k == 3:
                raise ZeroDivisionError("boom")
            return k

        with pytest.raises(ZeroDivisionError):
            reducer.map(fail, range(6))
