"""
Per-track stop listeners.

A track card that starts playback registers a callback under its track id.
When the engine displaces that track the callback runs once and is removed,
so the card can drop its local "playing" flag without polling. stop() fires
every registered listener, whichever track it belongs to.
"""

import logging
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class StopListenerRegistry:
    def __init__(self):
        self._listeners: Dict[str, Callable[[], None]] = {}

    def register(self, track_id: str, callback: Callable[[], None]):
        """Register the listener for a track, replacing any existing one."""
        self._listeners[track_id] = callback

    def unregister(self, track_id: str):
        self._listeners.pop(track_id, None)

    def has(self, track_id: str) -> bool:
        return track_id in self._listeners

    def fire(self, track_id: str) -> bool:
        """Invoke and remove the listener for track_id. Returns False if none."""
        callback = self._listeners.pop(track_id, None)
        if callback is None:
            return False
        logger.debug("Stop listener fired: %s", track_id)
        try:
            callback()
        except Exception as e:
            logger.error("Error in stop listener for %s: %s", track_id, e, exc_info=True)
        return True

    def fire_all(self) -> int:
        """Invoke and remove every listener once. Returns how many ran."""
        fired = 0
        # Listeners may register again while running; only the current set fires
        for track_id in list(self._listeners):
            if self.fire(track_id):
                fired += 1
        return fired

    def clear(self):
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
