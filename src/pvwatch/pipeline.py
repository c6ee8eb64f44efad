"""Supervisor owning the shared monitoring state and its worker threads."""

import logging
import threading
from collections.abc import Sequence

from pvwatch.analysis import DEFAULT_CAPACITY, Analyzer, SampleStore
from pvwatch.events import EventMultiplexer, ResizeWatcher, UpdateNotification
from pvwatch.matchers import Matcher
from pvwatch.models import CommandFailure, CommandOutput, CommandResult, Sample
from pvwatch.watcher import CommandWatcher

logger = logging.getLogger(__name__)


class ResultSlot:
    """Holds the most recent CommandResult; each put replaces the previous one."""

    def __init__(self) -> None:
        self._result: CommandResult | None = None
        self._lock = threading.Lock()

    def put(self, result: CommandResult) -> None:
        with self._lock:
            self._result = result

    def get(self) -> CommandResult | None:
        with self._lock:
            return self._result


class Pipeline:
    """
    Wires the command watcher to the sample store, result slot and event channel.

    The store and result slot are written only from the watcher thread and
    read by the UI through ``samples()`` / ``last_result()``. Each is guarded
    by its own lock and never both at once.
    """

    def __init__(
        self,
        command: Sequence[str],
        matcher: Matcher | None = None,
        interval: float = 1.0,
        capacity: int = DEFAULT_CAPACITY,
        events: EventMultiplexer | None = None,
        watch_resize: bool = True,
    ) -> None:
        """
        Initialize the Pipeline.

        Args:
            command: Argument vector of the watched command.
            matcher: Progress detection strategy. Defaults to ``<int>/<int>``.
            interval: Delay between command runs (seconds).
            capacity: Maximum number of samples kept.
            events: Channel for update notifications. A new one by default.
            watch_resize: Also run a ResizeWatcher feeding ``events``.
        """
        self.events = events if events is not None else EventMultiplexer()
        self.analyzer = Analyzer(matcher=matcher, store=SampleStore(capacity))
        self.result = ResultSlot()
        self.watcher = CommandWatcher(command, self._on_result, interval=interval)
        self.resize_watcher = ResizeWatcher(self.events) if watch_resize else None

    @property
    def store(self) -> SampleStore:
        return self.analyzer.store

    def samples(self) -> list[Sample]:
        """Snapshot of the sample store."""
        return self.store.snapshot()

    def last_result(self) -> CommandResult | None:
        return self.result.get()

    def start(self) -> None:
        """Start the watcher threads."""
        logger.info("Watching %s every %.1fs", self.watcher.command, self.watcher.interval)
        self.watcher.start()
        if self.resize_watcher is not None:
            self.resize_watcher.start()

    def request_stop(self) -> None:
        """Signal every worker thread to stop without joining them."""
        self.watcher.request_stop()
        if self.resize_watcher is not None:
            self.resize_watcher.request_stop()

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop every worker thread."""
        self.watcher.stop(timeout=timeout)
        if self.resize_watcher is not None:
            self.resize_watcher.stop(timeout=timeout)

    def _on_result(self, result: CommandResult) -> None:
        if isinstance(result, CommandOutput):
            self.analyzer.process_output(result)
        elif isinstance(result, CommandFailure):
            logger.info("Run failed: %s", result.error)
        self.result.put(result)
        self.events.emit(UpdateNotification())
