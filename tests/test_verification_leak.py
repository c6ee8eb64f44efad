"""Verification Test: Memory stays bounded while watching.

The sample store keeps at most ``capacity`` samples, so a long watch session
must not grow without limit. These tests push far more samples and runs
through the pipeline than the store can hold and check that resident memory
levels off.
"""

import gc
import sys
import time
from datetime import datetime

import psutil

from pvwatch.analysis import SampleStore, rate_series, summarize
from pvwatch.events import UpdateNotification
from pvwatch.models import Sample
from pvwatch.pipeline import Pipeline


def get_current_memory_mb() -> float:
    """Get current process memory usage in MB."""
    process = psutil.Process()
    return process.memory_info().rss / (1024 * 1024)


class TestMemoryLeakCheck:
    """Memory leak verification suite tests."""

    def test_store_memory_levels_off(self):
        """
        Test that a full store does not grow when appends continue.

        The first pass fills the store and warms the allocator; the second
        pass of the same size must not add significant memory.
        """
        store = SampleStore()
        wall_time = datetime(2024, 1, 1)

        def append_many(start: int, count: int) -> None:
            for i in range(start, start + count):
                store.append(Sample(captured_at=float(i), wall_time=wall_time, value=float(i), max=1e9))

        append_many(0, 100_000)
        gc.collect()
        warm_memory = get_current_memory_mb()

        append_many(100_000, 100_000)
        gc.collect()
        final_memory = get_current_memory_mb()

        assert len(store) == store.capacity
        assert store.snapshot()[0].value == 199_000.0
        memory_delta = final_memory - warm_memory
        assert memory_delta < 2.0, f"Store grew by {memory_delta:.2f}MB after it was full"

    def test_derived_series_bounded_by_store(self):
        """Test derived series never exceed the store's size."""
        store = SampleStore(capacity=100)
        wall_time = datetime(2024, 1, 1)
        for i in range(1000):
            store.append(Sample(captured_at=float(i), wall_time=wall_time, value=float(i), max=2000.0))

        samples = store.snapshot()
        assert len(rate_series(samples)) < 100
        summary = summarize(samples)
        assert summary is not None
        assert summary.eta == (2000.0 - 999.0) / 1.0

    def test_pipeline_memory_stability_short(self):
        """
        Test that a running pipeline doesn't leak memory over a short session.

        Runs a fast command for a few seconds with a small store so it wraps
        many times, then compares resident memory before and after.
        """
        gc.collect()
        pipeline = Pipeline(
            [sys.executable, "-c", "import time; print(f'{int(time.time() * 1000) % 1000}/1000')"],
            interval=0.1,
            capacity=5,
            watch_resize=False,
        )
        initial_memory = get_current_memory_mb()

        pipeline.start()
        try:
            updates = 0
            start_time = time.time()
            while time.time() - start_time < 5.0:
                event = pipeline.events.get(timeout=1.0)
                if isinstance(event, UpdateNotification):
                    updates += 1
                    _ = summarize(pipeline.samples())
                    _ = pipeline.last_result()

            assert updates >= 5, "Should have processed several runs"
            assert len(pipeline.store) <= 5
        finally:
            pipeline.close()

        gc.collect()
        time.sleep(0.3)
        memory_delta = get_current_memory_mb() - initial_memory

        assert memory_delta < 5.0, f"Memory increased by {memory_delta:.2f}MB over 5s of watching"
