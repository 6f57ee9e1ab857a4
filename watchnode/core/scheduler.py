"""Fixed-interval tick scheduler.

Fires a callback on a dedicated thread at a fixed wall-clock cadence. The
callback is expected to hand its work off and return quickly; the schedule
is deadline based, so a slow callback delays at most the ticks that were due
while it ran, and those missed ticks are skipped rather than fired in a burst.
The first tick fires one interval after start.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from watchnode.core.errors import SchedulingError
from watchnode.core.logging_setup import get_logger

logger = get_logger(__name__)


class TickScheduler:
    """Calls ``on_tick(tick_number)`` every ``interval_s`` seconds until stopped."""

    def __init__(
        self,
        interval_s: float,
        on_tick: Callable[[int], None],
        max_ticks: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize scheduler.

        Args:
            interval_s: Seconds between ticks.
            on_tick: Callback receiving the 1-based tick number.
            max_ticks: Stop by itself after this many ticks (None: run forever).
            clock: Monotonic clock, injectable for tests.
        """
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive: {interval_s}")
        if max_ticks is not None and max_ticks <= 0:
            raise ValueError(f"max_ticks must be positive: {max_ticks}")

        self.interval_s = interval_s
        self.on_tick = on_tick
        self.max_ticks = max_ticks
        self._clock = clock

        self.tick_count = 0
        self.skipped_ticks = 0
        self.error: SchedulingError | None = None

        self._stop_event = threading.Event()
        self._done_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """True while the scheduler thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the scheduler thread.

        Raises:
            SchedulingError: If the thread cannot be started.
        """
        if self._thread is not None:
            raise RuntimeError("TickScheduler can only be started once")
        self._thread = threading.Thread(target=self._run, name="watchnode-ticks", daemon=True)
        try:
            self._thread.start()
        except RuntimeError as e:
            self._done_event.set()
            raise SchedulingError(e) from e

    def stop(self) -> None:
        """Ask the scheduler to stop; returns immediately."""
        self._stop_event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the scheduler stops.

        Args:
            timeout: Seconds to wait (None: forever).

        Returns:
            True if the scheduler has stopped.

        Raises:
            SchedulingError: If the scheduler stopped because it failed.
        """
        # Short waits keep the main thread responsive to KeyboardInterrupt
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._done_event.wait(0.25):
            if deadline is not None and time.monotonic() >= deadline:
                return False
        if self.error is not None:
            raise self.error
        return True

    def _run(self) -> None:
        try:
            # First tick fires one interval after start
            next_deadline = self._clock() + self.interval_s
            while not self._stop_event.is_set():
                now = self._clock()
                if now < next_deadline:
                    self._stop_event.wait(next_deadline - now)
                    continue

                self._fire()
                if self.max_ticks is not None and self.tick_count >= self.max_ticks:
                    break

                next_deadline += self.interval_s
                now = self._clock()
                if next_deadline <= now:
                    missed = int((now - next_deadline) // self.interval_s) + 1
                    self.skipped_ticks += missed
                    next_deadline += missed * self.interval_s
                    logger.debug(f"Tick callback overran; skipped {missed} tick(s)")
        except Exception as e:
            self.error = SchedulingError(e)
            logger.error(str(self.error), exc_info=True)
        finally:
            self._done_event.set()

    def _fire(self) -> None:
        self.tick_count += 1
        try:
            self.on_tick(self.tick_count)
        except Exception:
            # One tick's failure never stops the schedule
            logger.exception(f"Tick {self.tick_count} failed")
