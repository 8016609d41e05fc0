"""
Cooperative timers for the decision and ramp ticks.

Every timer is an explicit TimerHandle owned by whoever started it;
cancel() is synchronous and idempotent. Callbacks always run on the thread
that drives the clock, one at a time.

- ManualClock: virtual time advanced by the caller (tests, simulations)
- RealtimeClock: wall-clock loop built on sched, run in the caller's thread
"""

import itertools
import logging
import sched
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellation handle for a one-shot or repeating callback."""

    def __init__(self, clock: "Clock", callback: Callable[[], None], interval: float, repeat: bool):
        self.clock = clock
        self.callback = callback
        self.interval = interval
        self.repeat = repeat
        self.due = 0.0
        self.cancelled = False
        self.fired = 0
        self._event = None

    @property
    def active(self) -> bool:
        return not self.cancelled and (self.repeat or self.fired == 0)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self.clock._discard(self)

    def __repr__(self) -> str:
        kind = "every" if self.repeat else "after"
        return f"TimerHandle({kind} {self.interval:.3f}s, active={self.active})"


class Clock(ABC):
    """Source of time and timers."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds."""

    @abstractmethod
    def _schedule(self, handle: TimerHandle) -> None:
        """Arm a handle whose `due` time is set."""

    @abstractmethod
    def _discard(self, handle: TimerHandle) -> None:
        """Disarm a cancelled handle."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after `delay` seconds."""
        handle = TimerHandle(self, callback, delay, repeat=False)
        handle.due = self.now() + delay
        self._schedule(handle)
        return handle

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback every `interval` seconds, first run one interval from now."""
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        handle = TimerHandle(self, callback, interval, repeat=True)
        handle.due = self.now() + interval
        self._schedule(handle)
        return handle

    def _fire(self, handle: TimerHandle) -> None:
        if handle.cancelled:
            return
        handle.fired += 1
        if handle.repeat:
            handle.due += handle.interval
            self._schedule(handle)
        handle.callback()


class ManualClock(Clock):
    """Virtual clock: time only moves when advance() is called."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._pending: List[tuple] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def _schedule(self, handle: TimerHandle) -> None:
        self._pending.append((handle.due, next(self._seq), handle))

    def _discard(self, handle: TimerHandle) -> None:
        self._pending = [entry for entry in self._pending if entry[2] is not handle]

    @property
    def pending(self) -> List[TimerHandle]:
        return [entry[2] for entry in sorted(self._pending)]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order."""
        target = self._now + seconds
        # Small epsilon so accumulated float steps (0.1 + 0.1 + ...) still fire
        while True:
            due_entries = [e for e in self._pending if e[0] <= target + 1e-9]
            if not due_entries:
                break
            entry = min(due_entries)
            self._pending.remove(entry)
            self._now = max(self._now, entry[0])
            self._fire(entry[2])
        self._now = target


class RealtimeClock(Clock):
    """Wall-clock timers dispatched by run() in the calling thread."""

    def __init__(self):
        self._scheduler = sched.scheduler(time.monotonic, time.sleep)
        self._stopped = False

    def now(self) -> float:
        return time.monotonic()

    def _schedule(self, handle: TimerHandle) -> None:
        delay = max(0.0, handle.due - self.now())
        handle._event = self._scheduler.enter(delay, 0, self._fire, (handle,))

    def _discard(self, handle: TimerHandle) -> None:
        if handle._event is None:
            return
        try:
            self._scheduler.cancel(handle._event)
        except ValueError:
            # Already dispatched
            pass
        handle._event = None

    def run(self, duration: Optional[float] = None) -> None:
        """
        Dispatch timers until stop() is called, no timers remain,
        or `duration` seconds have passed.
        """
        self._stopped = False
        deadline = None if duration is None else self.now() + duration
        while not self._stopped and not self._scheduler.empty():
            if deadline is not None and self.now() >= deadline:
                break
            next_run = self._scheduler.run(blocking=False)
            if next_run is None:
                continue
            wait = next_run
            if deadline is not None:
                wait = min(wait, max(0.0, deadline - self.now()))
            time.sleep(max(0.0, wait))

    def stop(self) -> None:
        self._stopped = True
