"""Verification Test: Load Test - large outputs and a busy consumer.

A watched command may print megabytes per run, and the UI side polls the
event channel at frame rate while the watcher works. Neither must block the
other.
"""

import sys
import time

import pytest

from pvwatch.analysis import rate_series, summarize
from pvwatch.events import UpdateNotification
from pvwatch.models import CommandOutput
from pvwatch.pipeline import Pipeline

BIG_OUTPUT_SCRIPT = """
import sys
sys.stdout.write("line of filler output\\n" * 400_000)
sys.stdout.write("42/84\\n")
sys.stderr.write("warning\\n" * 200_000)
"""


@pytest.fixture
def big_output_pipeline():
    pipeline = Pipeline([sys.executable, "-c", BIG_OUTPUT_SCRIPT], interval=0.1, watch_resize=False)
    try:
        yield pipeline
    finally:
        pipeline.close()


class TestLoadTest:
    """Load test verification suite tests."""

    def test_large_output_is_captured_without_deadlock(self, big_output_pipeline):
        """
        Test that several megabytes on both streams are captured in full.

        Both pipes are drained together, so a command filling stderr while
        stdout is still being read must not hang the run.
        """
        started = time.perf_counter()
        result = big_output_pipeline.watcher.run_once()
        elapsed = time.perf_counter() - started

        assert isinstance(result, CommandOutput)
        assert result.stdout.endswith("42/84\n")
        assert result.stderr.count("warning") == 200_000
        assert elapsed < 10.0, f"Run took {elapsed:.2f}s, expected < 10s"

    def test_first_match_in_large_output(self, big_output_pipeline):
        """Test the progress line is found after a large amount of filler."""
        big_output_pipeline.start()
        event = big_output_pipeline.events.get(timeout=15.0)

        assert isinstance(event, UpdateNotification)
        samples = big_output_pipeline.samples()
        assert samples[0].value == 42.0
        assert samples[0].max == 84.0

    def test_ui_decoupling_simulation(self):
        """
        Test that the consumer keeps its frame rate while runs are in flight.

        Simulates a 30 FPS UI draining the channel and taking snapshots while
        the watcher runs a command continuously.
        """
        pipeline = Pipeline(
            [sys.executable, "-c", "import time; time.sleep(0.2); print(f'{int(time.time()) % 50}/50')"],
            interval=0.1,
            watch_resize=False,
        )
        pipeline.start()

        try:
            frames = 0
            updates = 0
            start_time = time.time()
            target_duration = 2.0
            min_frames = 30

            while time.time() - start_time < target_duration:
                for event in pipeline.events.drain():
                    if isinstance(event, UpdateNotification):
                        updates += 1
                samples = pipeline.samples()
                _ = summarize(samples)
                _ = rate_series(samples)
                frames += 1
                time.sleep(0.033)

            assert frames >= min_frames, f"UI achieved only {frames} frames, expected >= {min_frames}"
            assert updates >= 1, "Expected at least one update while the UI was drawing"

        finally:
            pipeline.close()
