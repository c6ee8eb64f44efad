"""Data models for pvwatch."""

import signal
from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class Sample:
    """Immutable progress reading extracted from one command run."""

    captured_at: float  # time.monotonic() seconds
    wall_time: datetime
    value: float
    max: float


@dataclass(slots=True, frozen=True)
class CommandOutput:
    """Captured output of a command that ran to completion."""

    exit_status: int  # negative: killed by that signal
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """True if the command exited with status 0."""
        return self.exit_status == 0

    def describe_status(self) -> str:
        """Human-readable exit status, e.g. ``exit status: 1``."""
        if self.exit_status < 0:
            signum = -self.exit_status
            try:
                name = signal.Signals(signum).name
            except ValueError:
                return f"signal: {signum}"
            return f"signal: {signum} ({name})"
        return f"exit status: {self.exit_status}"


@dataclass(slots=True, frozen=True)
class CommandFailure:
    """The command could not be spawned or waited for."""

    error: str


CommandResult = CommandOutput | CommandFailure
