"""Periodic command execution for pvwatch."""

import logging
import subprocess
import threading
from collections.abc import Callable, Sequence

import psutil

from pvwatch.models import CommandFailure, CommandOutput, CommandResult

logger = logging.getLogger(__name__)

MIN_INTERVAL = 0.1


def terminate_tree(proc: subprocess.Popen, timeout: float = 1.0) -> None:
    """Terminate ``proc`` and its descendants, killing whatever survives ``timeout``."""
    try:
        children = psutil.Process(proc.pid).children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    for child in children:
        try:
            child.terminate()
        except psutil.NoSuchProcess:
            continue
    proc.terminate()

    _, alive = psutil.wait_procs(children, timeout=timeout)
    for child in alive:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            continue
    try:
        proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()


class CommandWatcher:
    """
    Runs a command over and over, like watch(1).

    Each run happens to completion in a daemon thread; the result (or the
    failure to spawn) is handed to ``on_result`` before waiting ``interval``
    seconds for the next run. ``stop()`` interrupts both the wait and a run in
    progress.
    """

    def __init__(
        self,
        command: Sequence[str],
        on_result: Callable[[CommandResult], None],
        interval: float = 1.0,
        wait_timeout: float = 0.25,
    ) -> None:
        """
        Initialize the CommandWatcher.

        Args:
            command: Argument vector; ``command[0]`` is the program.
            on_result: Called from the watcher thread after every run.
            interval: Delay between runs (in seconds). Default 1.0s.
            wait_timeout: How often a running command is checked for cancellation.
        """
        if not command:
            raise ValueError("command must not be empty")
        self._command = list(command)
        self._on_result = on_result
        self._interval = max(MIN_INTERVAL, interval)
        self._wait_timeout = wait_timeout
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._runs = 0

    @property
    def command(self) -> list[str]:
        """The watched argument vector."""
        return list(self._command)

    @property
    def interval(self) -> float:
        """Get the delay between runs."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the delay between runs."""
        self._interval = max(MIN_INTERVAL, value)

    @property
    def runs(self) -> int:
        """Number of results delivered so far."""
        return self._runs

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
            target=self._run_loop,
            daemon=True,
            name="CommandWatcher",
        )
        self._thread.start()

    def request_stop(self) -> None:
        """
        Signal the watcher thread to stop and return immediately.

        A command still in progress is terminated from the watcher thread.
        """
        self._stop_event.set()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the watcher thread, terminating a command still in progress.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run_loop(self) -> None:
        """Main loop running in the background thread."""
        while not self._stop_event.is_set():
            result = self.run_once()
            if result is None:
                break

            try:
                self._on_result(result)
            except Exception:
                logger.exception("Result callback failed")
            self._runs += 1

            self._stop_event.wait(timeout=self._interval)

    def run_once(self) -> CommandResult | None:
        """
        Run the command once and capture its output.

        Returns None if the watcher was stopped while the command ran.
        """
        try:
            proc = subprocess.Popen(
                self._command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("Failed to run %s: %s", self._command[0], e)
            return CommandFailure(error=str(e))

        try:
            stdout, stderr = self._communicate(proc)
        except OSError as e:
            logger.warning("Failed to wait for %s: %s", self._command[0], e)
            terminate_tree(proc)
            return CommandFailure(error=str(e))

        if stdout is None:
            logger.debug("Stopped while %s was running", self._command[0])
            return None

        return CommandOutput(
            exit_status=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    def _communicate(self, proc: subprocess.Popen) -> tuple[bytes | None, bytes]:
        """Wait for ``proc``, giving up (and terminating it) once stop is requested."""
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self._wait_timeout)
            except subprocess.TimeoutExpired:
                if self._stop_event.is_set():
                    terminate_tree(proc)
                    return None, b""
                continue
            return stdout, stderr
