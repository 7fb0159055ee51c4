"""
Linear volume ramps driven by the engine clock.
"""

import logging
from typing import TYPE_CHECKING, Callable, Dict, Optional

from .clock import Clock, TimerHandle
from .constants import FADE

if TYPE_CHECKING:
    from .backends import PlaybackSource

logger = logging.getLogger(__name__)


class Ramp:
    """One running ramp: start -> target in a fixed number of steps."""

    def __init__(
        self,
        scheduler: "FadeScheduler",
        source: "PlaybackSource",
        start: float,
        target: float,
        steps: int,
        on_complete: Optional[Callable[[], None]],
    ):
        self._scheduler = scheduler
        self.source = source
        self.start = start
        self.target = target
        self.steps = steps
        self.step = 0
        self.on_complete = on_complete
        self.timer: Optional[TimerHandle] = None

    @property
    def value(self) -> float:
        """Volume at the current step."""
        return self.start + (self.target - self.start) * self.step / self.steps

    @property
    def finished(self) -> bool:
        return self.step >= self.steps

    def tick(self):
        self.step += 1
        if self.finished:
            self.source.volume = self.target
            self._scheduler._finish(self)
            if self.on_complete is not None:
                self.on_complete()
            return
        self.source.volume = self.value

    def cancel(self):
        if self.timer is not None:
            self.timer.cancel()


class FadeScheduler:
    """
    Runs at most one ramp per playback source.

    Starting a ramp on a source that is already ramping cancels the old ramp
    where it stands; the source keeps that instantaneous volume.
    """

    def __init__(self, clock: Clock, steps: int = FADE["steps"]):
        self.clock = clock
        self.steps = steps
        self._ramps: Dict[int, Ramp] = {}

    @property
    def active_count(self) -> int:
        return len(self._ramps)

    def ramp(
        self,
        source: "PlaybackSource",
        start: float,
        target: float,
        duration: float,
        on_complete: Optional[Callable[[], None]] = None,
        steps: Optional[int] = None,
    ) -> Optional[Ramp]:
        """
        Ramp source.volume from start to target over duration seconds.

        A duration <= 0 sets the target immediately, calls on_complete and
        creates no timer; None is returned in that case.
        """
        self.cancel(source)

        if duration <= 0:
            source.volume = target
            if on_complete is not None:
                on_complete()
            return None

        steps = steps or self.steps
        ramp = Ramp(self, source, start, target, steps, on_complete)
        source.volume = start
        self._ramps[id(source)] = ramp
        ramp.timer = self.clock.call_every(duration / steps, ramp.tick)
        logger.debug("Ramp %.3f -> %.3f over %.2fs (%d steps)", start, target, duration, steps)
        return ramp

    def is_fading(self, source: "PlaybackSource") -> bool:
        return id(source) in self._ramps

    def cancel(self, source: "PlaybackSource") -> bool:
        """Stop the ramp on source, leaving its current volume. False if none ran."""
        ramp = self._ramps.pop(id(source), None)
        if ramp is None:
            return False
        ramp.cancel()
        logger.debug("Ramp cancelled at step %d/%d", ramp.step, ramp.steps)
        return True

    def cancel_all(self):
        for ramp in list(self._ramps.values()):
            ramp.cancel()
        self._ramps.clear()

    def _finish(self, ramp: Ramp):
        ramp.cancel()
        if self._ramps.get(id(ramp.source)) is ramp:
            del self._ramps[id(ramp.source)]
