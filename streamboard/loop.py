"""
Finite/infinite repeat bookkeeping.
"""

import logging

logger = logging.getLogger(__name__)

INFINITE = -1


class LoopController:
    """
    Decides on natural track end whether to replay.

    count is the number of extra replays after the first playthrough;
    INFINITE (-1) replays forever without counting.
    """

    def __init__(self, enabled: bool = False, count: int = 1):
        self.enabled = enabled
        self.count = count
        self.current = 0

    @property
    def is_infinite(self) -> bool:
        return self.count == INFINITE

    def configure(self, enabled: bool, count: int):
        self.enabled = enabled
        self.count = count
        logger.debug("Looping set to: %s (count: %s)", enabled, count)

    def reset(self):
        self.current = 0

    def on_track_end(self) -> bool:
        """Return True if the track should restart from position 0."""
        if not self.enabled:
            self.reset()
            return False

        if self.is_infinite:
            return True

        if self.current < self.count:
            self.current += 1
            logger.debug("Loop replay %d of %d", self.current, self.count)
            return True

        self.reset()
        return False
