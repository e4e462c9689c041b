"""
Timing tracker: records monotonic milestones for a logical request.
"""
import logging
import time
from typing import Callable, Optional

from .types import Timings

logger = logging.getLogger("fetch_pipeline.timings")

# Order in which milestones must appear
MILESTONES = (
    "start",
    "socket",
    "lookup",
    "connect",
    "secure_connect",
    "upload",
    "response",
    "end",
)

# Milestones that belong to a single attempt and are cleared on re-entry
ATTEMPT_MILESTONES = ("socket", "lookup", "connect", "secure_connect", "upload", "response")


class TimingTracker:
    """
    Owns the single Timings record of a logical request.

    Every attempt starts with fresh connection milestones while ``start``
    survives retries and redirects. Recorded values are clamped to the
    latest earlier milestone so the ordering in MILESTONES always holds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.timings = Timings(start=clock())

    def now(self) -> float:
        return self._clock()

    def begin_attempt(self) -> None:
        """Forget the previous attempt's connection milestones."""
        for name in ATTEMPT_MILESTONES:
            setattr(self.timings, name, None)

    def _floor(self, name: str) -> float:
        """Latest recorded milestone preceding ``name``."""
        floor = self.timings.start
        for earlier in MILESTONES[: MILESTONES.index(name)]:
            value = getattr(self.timings, earlier)
            if value is not None and value > floor:
                floor = value
        return floor

    def mark(self, name: str, at: Optional[float] = None) -> float:
        """Record milestone ``name`` (first write wins within an attempt)."""
        if name not in MILESTONES or name == "start":
            raise ValueError(f"Unknown milestone: {name}")
        current = getattr(self.timings, name)
        if current is not None:
            return current
        value = max(at if at is not None else self.now(), self._floor(name))
        setattr(self.timings, name, value)
        logger.debug(f"TimingTracker.mark: {name}=+{value - self.timings.start:.6f}s")
        return value

    def mark_reused_socket(self) -> None:
        """A pooled connection was used: no lookup or connect happened."""
        if self.timings.socket is None:
            at = self.mark("socket")
            self.mark("lookup", at)
            self.mark("connect", at)

    def finish(self) -> Timings:
        """Mark the end of a successful logical request."""
        if self.timings.end is None:
            if self.timings.response is not None and self.timings.upload is None:
                self.mark("upload", self.timings.response)
            self.timings.end = max(self.now(), self._floor("end"))
        return self.timings

    def fail(self) -> Timings:
        """Mark the terminal error of a logical request."""
        if self.timings.error is None:
            self.timings.error = max(self.now(), self.timings.start)
        return self.timings
