"""Automatic sync scheduling for Vault Sync.

A Scheduler owns at most one live timer.  Every configuration change
cancels the current timer before a new one is armed, so a sync run can
never be triggered twice by leaked timers.

States:
  idle            no timer
  interval_armed  fires every N minutes (N >= 1)
  daily_armed     first fire at the next HH:MM, then every 24 hours
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from vault_sync.config import SCHEDULE_DAILY, SyncSettings, parse_daily_time

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_INTERVAL_ARMED = "interval_armed"
STATE_DAILY_ARMED = "daily_armed"

DAY_SECONDS = 24 * 60 * 60


def next_daily_fire(now: datetime, hour: int, minute: int) -> datetime:
    """Return the first ``hour:minute`` strictly after *now* (today or tomorrow)."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def _default_timer(delay: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, function)
    timer.daemon = True
    timer.name = "SyncSchedule"
    return timer


class Scheduler:
    """
    Fires *callback* on an interval or daily schedule.

    Parameters
    ----------
    callback : callable
        Invoked on every fire (on the timer thread).  Exceptions are logged.
    timer_factory : callable, optional
        ``(delay_seconds, function) -> timer`` where the timer has
        ``start()`` and ``cancel()``.  Defaults to a daemon threading.Timer.
    clock : callable, optional
        Returns the current local time.  Defaults to ``datetime.now``.
    """

    def __init__(
        self,
        callback: Callable[[], Any],
        timer_factory: Callable[[float, Callable[[], None]], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._callback = callback
        self._timer_factory = timer_factory or _default_timer
        self._clock = clock or datetime.now
        self._lock = threading.Lock()
        self._timer: Any | None = None
        self._generation = 0
        self._state = STATE_IDLE
        self._next_fire: datetime | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def next_fire(self) -> datetime | None:
        """When the armed timer is due, or None when idle."""
        return self._next_fire

    # ---- configuration ----

    def apply(self, settings: SyncSettings) -> None:
        """Re-arm from a settings snapshot."""
        self.configure(
            enabled=settings.schedule_enabled,
            mode=settings.schedule_mode,
            interval_minutes=settings.interval_minutes,
            daily_time=settings.daily_time,
        )

    def configure(
        self,
        enabled: bool,
        mode: str,
        interval_minutes: float = 60,
        daily_time: str = "09:00",
    ) -> None:
        """Tear down any armed timer, then arm a new one if *enabled*."""
        with self._lock:
            self._teardown()
            if not enabled:
                logger.info("Scheduled sync disabled.")
                return

            if mode == SCHEDULE_DAILY:
                hour, minute = parse_daily_time(daily_time)
                now = self._clock()
                delay = (next_daily_fire(now, hour, minute) - now).total_seconds()
                self._arm(delay, DAY_SECONDS, STATE_DAILY_ARMED)
            else:
                try:
                    minutes = max(1, float(interval_minutes or 1))
                    if not math.isfinite(minutes):
                        minutes = 1
                except (TypeError, ValueError, OverflowError):
                    minutes = 1
                self._arm(minutes * 60, minutes * 60, STATE_INTERVAL_ARMED)
            logger.info("Next scheduled sync at %s", self._next_fire)

    def stop(self) -> None:
        """Cancel any armed timer.  Safe to call repeatedly."""
        with self._lock:
            self._teardown()

    # ---- internals (call with the lock held) ----

    def _teardown(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._state = STATE_IDLE
        self._next_fire = None

    def _arm(self, delay: float, period: float, state: str) -> None:
        generation = self._generation
        timer = self._timer_factory(delay, lambda: self._fire(generation, period))
        self._timer = timer
        self._state = state
        self._next_fire = self._clock() + timedelta(seconds=delay)
        timer.start()

    def _fire(self, generation: int, period: float) -> None:
        with self._lock:
            if generation != self._generation:
                return  # superseded by a reconfigure or stop
            self._timer = None
            self._arm(period, period, self._state)
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled sync raised an error")
