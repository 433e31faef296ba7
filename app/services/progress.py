from __future__ import annotations

import logging
import time
from typing import Callable

from app.config import settings
from app.models.response import ScanProgress

logger = logging.getLogger("progress")

ProgressObserver = Callable[[ScanProgress], None]


class ProgressReporter:
    """Fan-out of ScanProgress updates to any number of observers.

    Observers registered late only see updates emitted after they
    subscribed. A failing observer is treated as a disconnected sink: the
    error is swallowed and the scan carries on.
    """

    def __init__(self):
        self._observers: list[ProgressObserver] = []

    def subscribe(self, observer: ProgressObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: ProgressObserver) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def emit(self, update: ScanProgress) -> None:
        for observer in list(self._observers):
            try:
                observer(update)
            except Exception as e:
                logger.debug(f"Progress observer {observer!r} failed: {e}")


class ProgressTracker:
    """Counts finished units of work and decides when an update is due.

    An update is due when `interval` seconds passed since the last one, every
    `every` units, and always on the final unit.
    """

    def __init__(
        self,
        total: int,
        interval: float | None = None,
        every: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total = total
        self.current = 0
        self._interval = interval if interval is not None else settings.progress_interval_seconds
        self._every = max(1, every if every is not None else settings.progress_every_contracts)
        self._clock = clock
        self._started = clock()
        self._last_emit = self._started

    def advance(self, matches_so_far: int) -> ScanProgress | None:
        """Record one finished unit; return an update if one should go out."""
        self.current = min(self.current + 1, self.total)
        now = self._clock()

        due = (
            self.current == self.total
            or self.current % self._every == 0
            or now - self._last_emit >= self._interval
        )
        if not due:
            return None

        self._last_emit = now
        return self.snapshot(matches_so_far, now)

    def snapshot(self, matches_so_far: int, now: float | None = None) -> ScanProgress:
        now = self._clock() if now is None else now
        elapsed = now - self._started
        remaining_units = self.total - self.current
        if self.current and elapsed > 0:
            eta = remaining_units / (self.current / elapsed)
        else:
            eta = 0.0
        percentage = (self.current / self.total * 100) if self.total else 100.0
        return ScanProgress(
            current=self.current,
            total=self.total,
            percentage=round(percentage, 2),
            matches_so_far=matches_so_far,
            estimated_seconds_remaining=round(eta, 1),
        )
