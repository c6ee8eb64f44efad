"""Command-line configuration for pvwatch."""

import argparse
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from pvwatch.analysis import DEFAULT_CAPACITY
from pvwatch.matchers import DEFAULT_PATTERN


@dataclass(slots=True, frozen=True)
class Config:
    """Settings for one pvwatch session."""

    command: tuple[str, ...]
    interval: float = 1.0
    pattern: str = DEFAULT_PATTERN
    capacity: int = DEFAULT_CAPACITY
    log_file: Path | None = None
    log_level: str = "INFO"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pvwatch",
        description="Run a command periodically and chart the progress it reports.",
        epilog="example: pvwatch -n 2 -- sh -c 'ls out | wc -l; echo /500'",
    )
    parser.add_argument(
        "-n",
        "--interval",
        type=float,
        default=1.0,
        help="seconds to wait between runs (default: %(default)s)",
    )
    parser.add_argument(
        "--pattern",
        default=DEFAULT_PATTERN,
        help="regex with two groups (or named groups 'value' and 'max') "
        "locating the progress in stdout (default: %(default)s)",
    )
    parser.add_argument(
        "--capacity",
        type=int,
        default=DEFAULT_CAPACITY,
        help="number of samples kept for charting (default: %(default)s)",
    )
    parser.add_argument("--log-file", type=Path, help="write a debug log to this file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="log level for --log-file (default: %(default)s)",
    )
    parser.add_argument("command", nargs=argparse.REMAINDER, help="command to watch")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> Config:
    """Parse ``argv`` into a Config, exiting with usage on bad input."""
    parser = build_parser()
    args = parser.parse_args(argv)

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.error("a command to watch is required")
    if args.interval <= 0:
        parser.error("--interval must be positive")
    if args.capacity < 2:
        parser.error("--capacity must be at least 2")

    return Config(
        command=tuple(command),
        interval=args.interval,
        pattern=args.pattern,
        capacity=args.capacity,
        log_file=args.log_file,
        log_level=args.log_level,
    )


def configure_logging(config: Config) -> None:
    """Send log records to ``config.log_file``; drop them otherwise, the TUI owns the terminal."""
    if config.log_file is not None:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s")
        )
    else:
        handler = logging.NullHandler()
    logging.basicConfig(level=config.log_level, handlers=[handler], force=True)
