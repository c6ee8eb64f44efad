"""Tests for command-line configuration."""

import logging

import pytest

from pvwatch.config import Config, configure_logging, parse_args


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_defaults():
    """Test a bare command gets the default settings."""
    config = parse_args(["--", "make", "-j4"])

    assert config == Config(command=("make", "-j4"))
    assert config.interval == 1.0
    assert config.capacity == 1000
    assert config.pattern == r"([0-9]+)/([0-9]+)"


def test_options():
    """Test options before the command are parsed."""
    config = parse_args(
        ["-n", "2.5", "--pattern", r"(\d+) of (\d+)", "--capacity", "50", "--", "ls", "-l"]
    )

    assert config.command == ("ls", "-l")
    assert config.interval == 2.5
    assert config.pattern == r"(\d+) of (\d+)"
    assert config.capacity == 50


def test_command_without_separator():
    """Test the command may follow the options without '--'."""
    assert parse_args(["wc", "-l", "file"]).command == ("wc", "-l", "file")


def test_command_options_not_consumed():
    """Test options after the command belong to the command."""
    config = parse_args(["--", "rsync", "-n", "src", "dst"])

    assert config.command == ("rsync", "-n", "src", "dst")
    assert config.interval == 1.0


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["--"],
        ["-n", "0", "--", "true"],
        ["--capacity", "1", "--", "true"],
        ["--log-level", "LOUD", "--", "true"],
    ],
)
def test_invalid_arguments(argv):
    """Test bad arguments exit with a usage error."""
    with pytest.raises(SystemExit) as excinfo:
        parse_args(argv)
    assert excinfo.value.code == 2


def test_configure_logging_to_file(tmp_path, restore_logging):
    """Test --log-file sends records to that file."""
    log_file = tmp_path / "pvwatch.log"
    configure_logging(Config(command=("true",), log_file=log_file, log_level="DEBUG"))

    logging.getLogger("pvwatch.test").debug("hello from the test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "hello from the test" in log_file.read_text()


def test_configure_logging_without_file(restore_logging):
    """Test records are discarded when no log file is given."""
    configure_logging(Config(command=("true",)))

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.NullHandler)
