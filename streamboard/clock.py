"""
Monotonic update loop used for every timed behaviour in the engine.

All fades, crossfade handoffs, track-end timers and time updates are
scheduled here instead of on free-running threads. Timers only ever fire
from run_pending()/advance(), so engine state is touched from one loop.
Other threads (the audio callback, global hotkeys) hand work over with
call_soon_threadsafe().
"""

import heapq
import itertools
import logging
import queue
import time
from typing import Callable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellation token for a scheduled callback."""

    def __init__(
        self,
        clock: "Clock",
        callback: Callable[[], None],
        deadline: float,
        interval: Optional[float] = None,
    ):
        self._clock = clock
        self._callback = callback
        self.deadline = deadline
        self.interval = interval
        self.cancelled = False
        self.done = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.done)

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    def cancel(self):
        """Cancel the timer. Safe to call more than once or from its own callback."""
        if self.cancelled:
            return
        self.cancelled = True
        self._clock._forget(self)

    def _run(self):
        self._callback()


class Clock:
    """Base timer queue. Subclasses supply now()."""

    def __init__(self):
        self._heap: List[Tuple[float, int, TimerHandle]] = []
        self._active: Set[TimerHandle] = set()
        self._seq = itertools.count()
        self._threadsafe: queue.Queue = queue.Queue()

    def now(self) -> float:
        raise NotImplementedError

    @property
    def pending_timers(self) -> int:
        """Number of timers that are scheduled and not cancelled."""
        return len(self._active)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once, delay seconds from now."""
        handle = TimerHandle(self, callback, self.now() + max(0.0, delay))
        self._schedule(handle)
        return handle

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback every interval seconds until the handle is cancelled."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = TimerHandle(self, callback, self.now() + interval, interval)
        self._schedule(handle)
        return handle

    def call_soon_threadsafe(self, callback: Callable[[], None]):
        """Queue callback from any thread; it runs on the next loop pass."""
        self._threadsafe.put(callback)

    def run_pending(self) -> int:
        """Fire every callback that is due now. Returns how many ran."""
        return self._run_until(self.now())

    def _schedule(self, handle: TimerHandle):
        self._active.add(handle)
        heapq.heappush(self._heap, (handle.deadline, next(self._seq), handle))

    def _forget(self, handle: TimerHandle):
        self._active.discard(handle)

    def _drain_threadsafe(self) -> int:
        ran = 0
        while True:
            try:
                callback = self._threadsafe.get_nowait()
            except queue.Empty:
                break
            self._invoke(callback)
            ran += 1
        return ran

    def _pop_due(self, limit: float) -> Optional[TimerHandle]:
        while self._heap and self._heap[0][0] <= limit:
            _, _, handle = heapq.heappop(self._heap)
            if handle.active:
                return handle
        return None

    def _fire(self, handle: TimerHandle):
        if handle.repeating:
            # Reschedule before running so the callback may cancel itself
            handle.deadline += handle.interval
            heapq.heappush(self._heap, (handle.deadline, next(self._seq), handle))
        else:
            handle.done = True
            self._active.discard(handle)
        self._invoke(handle._run)

    def _invoke(self, callback: Callable[[], None]):
        try:
            callback()
        except Exception:
            logger.error("Unhandled error in clock callback", exc_info=True)

    def _run_until(self, limit: float) -> int:
        ran = self._drain_threadsafe()
        while True:
            handle = self._pop_due(limit)
            if handle is None:
                break
            self._before_fire(handle.deadline)
            self._fire(handle)
            ran += 1
            ran += self._drain_threadsafe()
        return ran

    def _before_fire(self, deadline: float):
        """Hook for clocks that need to move their notion of now."""


class VirtualClock(Clock):
    """
    Manually advanced clock for deterministic tests.

    advance() walks time forward timer by timer, so now() inside a callback
    equals that callback's deadline.
    """

    def __init__(self, start: float = 0.0):
        super().__init__()
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> int:
        """Move time forward, firing every timer that comes due on the way."""
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        target = self._now + seconds
        ran = self._run_until(target)
        self._now = target
        return ran

    def _before_fire(self, deadline: float):
        if deadline > self._now:
            self._now = deadline


class MonotonicClock(Clock):
    """Wall clock based on time.monotonic(), driven by run_forever()."""

    def now(self) -> float:
        return time.monotonic()

    def run_forever(
        self,
        stop_when: Optional[Callable[[], bool]] = None,
        poll_interval: float = 0.005,
    ):
        """Run the loop until stop_when() returns True (or forever)."""
        while True:
            self.run_pending()
            if stop_when is not None and stop_when():
                return
            time.sleep(poll_interval)
