"""
Play-count tracking driven by engine events.

The engine performs no storage I/O. UsageTracker listens for track changes
and track ends and writes updated track records to a TrackStore.
"""

import dataclasses
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, Optional

from .events import EventName, TrackChangeEvent, TrackEndEvent
from .models import Track

if TYPE_CHECKING:
    from .engine import AudioEngine

logger = logging.getLogger(__name__)


class TrackStore:
    """Storage collaborator. Only the two calls used here are required."""

    def get_track(self, track_id: str) -> Optional[Track]:
        raise NotImplementedError

    def save_track(self, track: Track):
        raise NotImplementedError


class MemoryTrackStore(TrackStore):
    def __init__(self):
        self.tracks: Dict[str, Track] = {}

    def get_track(self, track_id: str) -> Optional[Track]:
        return self.tracks.get(track_id)

    def save_track(self, track: Track):
        self.tracks[track.id] = track


class UsageTracker:
    """Increments usage_count on every track change and refreshes last_used."""

    def __init__(self, store: TrackStore, now: Callable[[], datetime] = datetime.now):
        self.store = store
        self._now = now
        self._engine: Optional["AudioEngine"] = None

    def attach(self, engine: "AudioEngine"):
        self.detach()
        self._engine = engine
        engine.on(EventName.TRACK_CHANGE, self._on_track_change)
        engine.on(EventName.TRACK_END, self._on_track_end)

    def detach(self):
        if self._engine is None:
            return
        self._engine.off(EventName.TRACK_CHANGE, self._on_track_change)
        self._engine.off(EventName.TRACK_END, self._on_track_end)
        self._engine = None

    def record_play(self, track: Track) -> Track:
        stored = self.store.get_track(track.id) or track
        updated = dataclasses.replace(
            stored, usage_count=stored.usage_count + 1, last_used=self._now()
        )
        self.store.save_track(updated)
        logger.debug("Usage for %s: %d", track.id, updated.usage_count)
        return updated

    def _on_track_change(self, event: TrackChangeEvent):
        if event.track is not None:
            self.record_play(event.track)

    def _on_track_end(self, event: TrackEndEvent):
        stored = self.store.get_track(event.track.id) or event.track
        self.store.save_track(dataclasses.replace(stored, last_used=self._now()))
