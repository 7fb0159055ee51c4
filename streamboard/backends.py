"""
Playback backend interface and the clock-driven simulated backend.

A backend turns a resolved audio URL into a PlaybackSource. The engine owns
at most two sources at a time (the primary device and one transient
crossfade source) and is the only caller of these methods.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from .clock import Clock, TimerHandle
from .errors import DeviceRejected, SourceError

logger = logging.getLogger(__name__)


def clamp_volume(volume: float) -> float:
    return max(0.0, min(1.0, float(volume)))


class PlaybackSource:
    """A loaded, playable audio source. Volume is 0.0-1.0."""

    def __init__(self, url: str, on_ended: Callable[["PlaybackSource"], None]):
        self.url = url
        self._on_ended = on_ended
        self._volume = 1.0
        self.closed = False

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float):
        self._volume = clamp_volume(value)

    @property
    def position(self) -> float:
        raise NotImplementedError

    @property
    def duration(self) -> float:
        raise NotImplementedError

    @property
    def is_playing(self) -> bool:
        raise NotImplementedError

    def play(self):
        """Start or continue playback. Raises DeviceRejected if refused."""
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def seek(self, seconds: float):
        raise NotImplementedError

    def close(self):
        raise NotImplementedError


class PlaybackBackend:
    """Factory for playback sources."""

    def load(
        self,
        url: str,
        on_ended: Callable[["PlaybackSource"], None],
        duration: Optional[float] = None,
    ) -> PlaybackSource:
        """Load url. Raises SourceError when nothing playable is there."""
        raise NotImplementedError

    def close(self):
        pass


# =============================================================================
# SIMULATED BACKEND
# =============================================================================


class SimulatedSource(PlaybackSource):
    """Element-like source whose position advances with the engine clock."""

    def __init__(
        self,
        backend: "SimulatedBackend",
        url: str,
        duration: float,
        on_ended: Callable[["PlaybackSource"], None],
    ):
        super().__init__(url, on_ended)
        self._backend = backend
        self._duration = max(0.0, duration)
        self._offset = 0.0
        self._started_at: Optional[float] = None
        self._end_timer: Optional[TimerHandle] = None

    @property
    def _clock(self) -> Clock:
        return self._backend.clock

    @property
    def position(self) -> float:
        if self._started_at is None:
            return self._offset
        elapsed = self._clock.now() - self._started_at
        return min(self._duration, self._offset + elapsed)

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None

    def play(self):
        if self.closed:
            raise DeviceRejected(f"Source already closed: {self.url}")
        if not self._backend.allows(self.url):
            raise DeviceRejected(f"Playback blocked by host policy: {self.url}")
        if self.is_playing:
            return
        self._started_at = self._clock.now()
        self._schedule_end()

    def pause(self):
        if not self.is_playing:
            return
        self._offset = self.position
        self._started_at = None
        self._cancel_end()

    def seek(self, seconds: float):
        self._offset = max(0.0, min(self._duration, seconds))
        if self.is_playing:
            self._started_at = self._clock.now()
            self._schedule_end()

    def close(self):
        self.pause()
        self.closed = True
        self._backend._release(self)

    def _schedule_end(self):
        self._cancel_end()
        remaining = self._duration - self._offset
        self._end_timer = self._clock.call_later(remaining, self._reach_end)

    def _cancel_end(self):
        if self._end_timer is not None:
            self._end_timer.cancel()
            self._end_timer = None

    def _reach_end(self):
        self._end_timer = None
        self._offset = self._duration
        self._started_at = None
        self._on_ended(self)


class SimulatedBackend(PlaybackBackend):
    """
    Headless backend with no audio output.

    blocked_urls (or autoplay_allowed=False) make play() raise DeviceRejected,
    the way a browser refuses automatic playback. missing_urls make load()
    raise SourceError.
    """

    def __init__(
        self,
        clock: Clock,
        autoplay_allowed: bool = True,
        blocked_urls: Iterable[str] = (),
        missing_urls: Iterable[str] = (),
        durations: Optional[Dict[str, float]] = None,
        default_duration: float = 60.0,
    ):
        self.clock = clock
        self.autoplay_allowed = autoplay_allowed
        self.blocked_urls = set(blocked_urls)
        self.missing_urls = set(missing_urls)
        self.durations = dict(durations or {})
        self.default_duration = default_duration
        self.open_sources: List[SimulatedSource] = []

    def allows(self, url: str) -> bool:
        return self.autoplay_allowed and url not in self.blocked_urls

    def load(
        self,
        url: str,
        on_ended: Callable[["PlaybackSource"], None],
        duration: Optional[float] = None,
    ) -> SimulatedSource:
        if url in self.missing_urls:
            raise SourceError(f"No audio found at {url}")
        if not duration:
            duration = self.durations.get(url, self.default_duration)
        source = SimulatedSource(self, url, duration, on_ended)
        self.open_sources.append(source)
        logger.debug("Loaded simulated source: %s (%.2fs)", url, duration)
        return source

    def close(self):
        for source in list(self.open_sources):
            source.close()

    def _release(self, source: SimulatedSource):
        if source in self.open_sources:
            self.open_sources.remove(source)


def create_backend(name: str, clock: Clock, **kwargs) -> PlaybackBackend:
    """Select a backend by name: "simulated" or "sounddevice"."""
    if name == "simulated":
        return SimulatedBackend(clock, **kwargs)
    if name == "sounddevice":
        # Imported here so headless use never needs PortAudio
        from .audio import SoundDeviceBackend

        return SoundDeviceBackend(clock, **kwargs)
    raise ValueError(f"Unknown playback backend: {name}")
