"""Progress detection strategies."""

import logging
import math
import re
import time
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from pvwatch.models import Sample

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = r"([0-9]+)/([0-9]+)"


class Matcher(Protocol):
    """Turns command output into at most one Sample."""

    def extract(self, text: str) -> Sample | None: ...


class RegexMatcher:
    """
    Matcher that reads ``value`` and ``max`` from the first regex match.

    Named groups ``value`` and ``max`` are used when the pattern defines them,
    otherwise the first two groups. Matches whose numbers do not parse to
    finite floats are skipped.
    """

    def __init__(
        self,
        pattern: str | re.Pattern[str] = DEFAULT_PATTERN,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the RegexMatcher.

        Args:
            pattern: Regex with two capture groups (or ``value``/``max`` groups).
            clock: Monotonic clock used for ``Sample.captured_at``.
            wall_clock: Calendar clock used for ``Sample.wall_time``.

        Raises:
            ValueError: If the pattern has fewer than two groups.
        """
        self._regex = re.compile(pattern)
        if self._regex.groups < 2:
            raise ValueError(f"pattern needs two capture groups: {self._regex.pattern!r}")
        named = self._regex.groupindex
        if "value" in named and "max" in named:
            self._groups: tuple[int | str, int | str] = ("value", "max")
        else:
            self._groups = (1, 2)
        self._clock = clock
        self._wall_clock = wall_clock

    @property
    def pattern(self) -> str:
        """The source of the compiled pattern."""
        return self._regex.pattern

    def extract(self, text: str) -> Sample | None:
        """Return a Sample for the first match in ``text``, or None."""
        match = self._regex.search(text)
        if match is None:
            return None

        raw_value, raw_max = match.group(*self._groups)
        try:
            value = float(raw_value)
            maximum = float(raw_max)
        except (TypeError, ValueError):
            logger.warning("Skipping unparsable progress %r", match.group(0))
            return None
        if not (math.isfinite(value) and math.isfinite(maximum)):
            logger.warning("Skipping out-of-range progress %r", match.group(0))
            return None

        return Sample(
            captured_at=self._clock(),
            wall_time=self._wall_clock(),
            value=value,
            max=maximum,
        )
