"""Event multiplexing between the worker threads and the UI loop."""

import logging
import os
import sys
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from queue import Empty, Queue

logger = logging.getLogger(__name__)

QUIT_KEYS = frozenset({"q", "escape", "ctrl+c"})
HELP_KEYS = frozenset({"h"})


@dataclass(slots=True, frozen=True)
class TerminalInput:
    """A key decoded from the controlling terminal."""

    key: str


@dataclass(slots=True, frozen=True)
class ResizeSignal:
    """The terminal changed size."""

    width: int
    height: int


@dataclass(slots=True, frozen=True)
class UpdateNotification:
    """A command run finished; store and last result may have changed."""


@dataclass(slots=True, frozen=True)
class SourceFailure:
    """An event source died; the UI cannot go on without it."""

    source: str
    error: str


AppEvent = TerminalInput | ResizeSignal | UpdateNotification | SourceFailure


class Action(Enum):
    """What the main loop does in response to an event."""

    QUIT = "quit"
    TOGGLE_HELP = "toggle_help"
    REDRAW = "redraw"
    FAIL = "fail"
    IGNORE = "ignore"


def dispatch(event: AppEvent) -> Action:
    """Map an event to the main loop's action."""
    if isinstance(event, TerminalInput):
        if event.key in QUIT_KEYS:
            return Action.QUIT
        if event.key in HELP_KEYS:
            return Action.TOGGLE_HELP
        return Action.IGNORE
    if isinstance(event, (ResizeSignal, UpdateNotification)):
        return Action.REDRAW
    if isinstance(event, SourceFailure):
        return Action.FAIL
    return Action.IGNORE


class EventMultiplexer:
    """
    Single ordered channel fed by any number of producer threads.

    Backed by an unbounded Queue, so events from one producer keep their order
    and the consumer sees everything in arrival order.
    """

    def __init__(self) -> None:
        self._queue: Queue[AppEvent] = Queue()

    def emit(self, event: AppEvent) -> None:
        """Push an event; safe to call from any thread."""
        self._queue.put(event)

    def fail(self, source: str, error: BaseException) -> None:
        """Push a SourceFailure for ``source``."""
        logger.error("Event source %s failed: %s", source, error)
        self._queue.put(SourceFailure(source=source, error=str(error) or type(error).__name__))

    def get(self, timeout: float | None = None) -> AppEvent | None:
        """Block for the next event; None if ``timeout`` expires first."""
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def drain(self) -> Iterator[AppEvent]:
        """Yield every event queued right now, without blocking."""
        while True:
            try:
                yield self._queue.get_nowait()
            except Empty:
                return


class ResizeWatcher:
    """
    Emits a ResizeSignal whenever the terminal size changes.

    Probes the size every ``interval`` seconds in a daemon thread. A probe
    that raises OSError is reported as a SourceFailure and ends the watcher.
    """

    def __init__(
        self,
        events: EventMultiplexer,
        probe: Callable[[], tuple[int, int]] | None = None,
        interval: float = 0.25,
    ) -> None:
        """
        Initialize the ResizeWatcher.

        Args:
            events: Channel to emit ResizeSignal / SourceFailure into.
            probe: Returns ``(columns, lines)``. Defaults to the size of the
                terminal Textual draws on.
            interval: Seconds between probes.
        """
        self._events = events
        self._probe = probe if probe is not None else _terminal_size
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._size: tuple[int, int] | None = None

    @property
    def is_running(self) -> bool:
        """Check if the watcher thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the watcher thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            daemon=True,
            name="ResizeWatcher",
        )
        self._thread.start()

    def request_stop(self) -> None:
        """Ask the watcher thread to finish without waiting for it."""
        self._stop_event.set()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the watcher thread."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _watch_loop(self) -> None:
        try:
            self._size = self._probe()
            while not self._stop_event.wait(timeout=self._interval):
                size = self._probe()
                if size != self._size:
                    self._size = size
                    self._events.emit(ResizeSignal(width=size[0], height=size[1]))
        except OSError as e:
            self._events.fail("resize", e)


def _terminal_size() -> tuple[int, int]:
    # Textual draws on stderr; a dead tty raises OSError here instead of
    # falling back to a default size.
    size = os.get_terminal_size(sys.__stderr__.fileno())
    return size.columns, size.lines
