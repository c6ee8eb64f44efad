"""Sample history and the series derived from it."""

import logging
import math
import threading
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

from pvwatch.matchers import Matcher, RegexMatcher
from pvwatch.models import CommandOutput, Sample

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000

Point = tuple[float, float]


class SampleStore:
    """
    Bounded, insertion-ordered sample buffer.

    Appends come from the watcher thread while the UI takes snapshots, so
    every access goes through one lock. Once full, each append evicts the
    oldest sample.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """
        Initialize the SampleStore.

        Args:
            capacity: Maximum number of samples retained.
        """
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._samples: deque[Sample] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        """Maximum number of samples retained."""
        return self._samples.maxlen or 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def append(self, sample: Sample) -> None:
        """Append a sample, evicting the oldest one when full."""
        with self._lock:
            self._samples.append(sample)

    def snapshot(self) -> list[Sample]:
        """Return a point-in-time copy of the samples, oldest first."""
        with self._lock:
            return list(self._samples)

    def clear(self) -> None:
        """Drop every sample."""
        with self._lock:
            self._samples.clear()


class Analyzer:
    """Feeds command output through a matcher into a SampleStore."""

    def __init__(
        self,
        matcher: Matcher | None = None,
        store: SampleStore | None = None,
    ) -> None:
        self.matcher = matcher if matcher is not None else RegexMatcher()
        self.store = store if store is not None else SampleStore()

    def process_output(self, output: CommandOutput) -> Sample | None:
        """Extract a sample from stdout and store it. Returns the sample, if any."""
        sample = self.matcher.extract(output.stdout)
        if sample is not None:
            self.store.append(sample)
            logger.debug("Sample %s/%s", sample.value, sample.max)
        return sample


@dataclass(slots=True, frozen=True)
class TimeSeries:
    """Value series with offsets (seconds) relative to the newest sample."""

    points: list[Point]
    time_scale: float  # span shown on the time axis, at least 1s

    @property
    def first(self) -> Point | None:
        return self.points[0] if self.points else None

    @property
    def last(self) -> Point | None:
        return self.points[-1] if self.points else None


@dataclass(slots=True, frozen=True)
class ProgressSummary:
    """Current reading and projection, as shown in the status pane."""

    value: float
    max: float
    ratio: float
    eta: float | None  # seconds; None when unknown


def time_series(samples: Sequence[Sample]) -> TimeSeries:
    """Build the windowed value series for ``samples`` (oldest first)."""
    if not samples:
        return TimeSeries(points=[], time_scale=1.0)

    newest = samples[-1].captured_at
    span = newest - samples[0].captured_at
    time_scale = max(span, 1.0)
    origin = newest - time_scale
    points = [
        (sample.captured_at - newest, sample.value)
        for sample in samples
        if sample.captured_at >= origin
    ]
    return TimeSeries(points=points, time_scale=time_scale)


def rate_of_change(points: Sequence[Point]) -> list[Point]:
    """
    Derive a value-per-second series from ``(time, value)`` points.

    Runs of equal values are coalesced into the interval that ends at the next
    change, so idle stretches never show up as zero rate. Each rate is keyed
    at the start of its interval.
    """
    rates: list[Point] = []
    anchor: Point | None = None
    for t, v in points:
        if anchor is None:
            anchor = (t, v)
            continue
        anchor_t, anchor_v = anchor
        if v == anchor_v or t <= anchor_t:
            continue
        rates.append((anchor_t, (v - anchor_v) / (t - anchor_t)))
        anchor = (t, v)
    return rates


def rate_series(samples: Sequence[Sample]) -> list[Point]:
    """
    Rate series for ``samples``, keyed by offset from the newest sample.

    The oldest sample sits on the window boundary and is dropped before the
    rates are derived.
    """
    if len(samples) < 3:
        return []
    return rate_of_change(time_series(samples).points[1:])


def estimate_eta(series: TimeSeries, maximum: float) -> float | None:
    """
    Seconds until the series reaches ``maximum``, extrapolating linearly.

    Returns None when the speed is zero or not finite, or when the estimate
    would be negative.
    """
    first, last = series.first, series.last
    if first is None or last is None:
        return None
    elapsed = last[0] - first[0]
    if elapsed <= 0:
        return None
    speed = (last[1] - first[1]) / elapsed
    if speed == 0 or not math.isfinite(speed):
        return None
    eta = (maximum - last[1]) / speed
    if not math.isfinite(eta) or eta < 0:
        return None
    return eta


def summarize(samples: Sequence[Sample]) -> ProgressSummary | None:
    """Summarize ``samples``; None until at least two samples exist."""
    if len(samples) < 2:
        return None

    newest = samples[-1]
    series = time_series(samples)
    if newest.max > 0:
        ratio = min(max(newest.value / newest.max, 0.0), 1.0)
    else:
        ratio = 0.0
    return ProgressSummary(
        value=newest.value,
        max=newest.max,
        ratio=ratio,
        eta=estimate_eta(series, newest.max),
    )


def format_duration(seconds: float) -> str:
    """Format seconds as e.g. ``1d 2h 3m 4s``."""
    total = int(seconds)
    if total <= 0:
        return "0s"
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    for amount, unit in ((days, "d"), (hours, "h"), (minutes, "m"), (secs, "s")):
        if amount:
            parts.append(f"{amount}{unit}")
    return " ".join(parts)
