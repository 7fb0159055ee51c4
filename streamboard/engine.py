"""
Unified audio playback engine.

Owns the single active playback device and guarantees that at most one
track is claimed as playing. Composes the fade scheduler, loop controller,
stop-listener registry and event bus; UI widgets and integrations only ever
call the public methods here.

State machine:

    IDLE -> LOADING -> PLAYING <-> PAUSED
    PLAYING/PAUSED -> IDLE   (stop, error, natural end without a replay)
"""

import logging
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional

from .backends import PlaybackBackend, PlaybackSource, clamp_volume
from .clock import Clock, TimerHandle
from .constants import AUDIO, VOLUME
from .errors import DeviceRejected, EngineError, PlaybackInterrupted, SourceError
from .events import (
    ErrorEvent,
    EventBus,
    EventCallback,
    EventName,
    FadeCompleteEvent,
    FadeKind,
    FadeStartEvent,
    PlayStateChangeEvent,
    TimeUpdateEvent,
    TrackChangeEvent,
    TrackEndEvent,
    VolumeChangeEvent,
)
from .fades import FadeScheduler
from .listeners import StopListenerRegistry
from .loop import LoopController
from .models import AudioSettings, AudioState, EngineState, Track, resolve_audio_source

logger = logging.getLogger(__name__)


class _Crossfade:
    """An in-flight transition to an incoming track on a transient source."""

    def __init__(self, track: Track, source: PlaybackSource, timer: TimerHandle, future: Future):
        self.track = track
        self.source = source
        self.timer = timer
        self.future = future


class AudioEngine:
    """
    Playback engine. Build one per application and pass it to consumers.

    Volume is stored canonically as 0.0-1.0 in AudioSettings.volume;
    set_volume()/get_volume() speak the public 0-100 scale.
    """

    def __init__(
        self,
        backend: PlaybackBackend,
        clock: Clock,
        settings: Optional[AudioSettings] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.backend = backend
        self.clock = clock
        self.events = event_bus or EventBus()
        self.fades = FadeScheduler(clock)
        self.stop_listeners = StopListenerRegistry()

        # Own copy; callers may reuse their settings object
        self._settings = AudioSettings.from_dict(settings.to_dict() if settings else {})
        self._settings.volume = clamp_volume(self._settings.volume)
        self.loop = LoopController(self._settings.loop_enabled, self._settings.loop_count)

        self._state = EngineState.IDLE
        self._current_track: Optional[Track] = None
        self._primary: Optional[PlaybackSource] = None
        self._crossfade: Optional[_Crossfade] = None
        self._ticker: Optional[TimerHandle] = None
        self._ducked = False

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_crossfading(self) -> bool:
        return self._crossfade is not None

    # =========================================================================
    # Playback
    # =========================================================================

    def play_track(self, track: Track, crossfade: bool = False) -> Future:
        """
        Make track the current track and start it.

        Returns a Future that resolves once playback has started (for a
        crossfade: once the handoff commits) or fails with SourceError,
        DeviceRejected or PlaybackInterrupted. The previous track is released
        first and its stop listener fires exactly once; with crossfade=True
        while a track is playing the release happens at the end of the
        crossfade window instead.
        """
        future: Future = Future()
        future.set_running_or_notify_cancel()

        url = resolve_audio_source(track)
        if url is None:
            self._reject(future, SourceError(f"Track has no valid audio source: {track.id}"))
            return future

        if crossfade and self._can_crossfade():
            self._begin_crossfade(track, url, future)
            return future

        # Anything mid-crossfade falls back to a hard cut to this track
        self._abort_crossfade()
        self._release_current(incoming=track)
        self._start(track, url, future)
        return future

    def pause(self):
        if self._state is not EngineState.PLAYING:
            return
        if self._crossfade is not None:
            self._commit_crossfade()
        self._primary.pause()
        self._set_state(EngineState.PAUSED)

    def resume(self):
        """Continue the current track (from 0 after a natural end)."""
        if self._state in (EngineState.PLAYING, EngineState.LOADING):
            return
        if self._current_track is None or self._primary is None:
            return
        try:
            self._primary.play()
        except DeviceRejected as e:
            self._fail_playback(e)
            return
        self._set_state(EngineState.PLAYING)

    def stop(self):
        """Stop playback, release the current track and fire every stop listener."""
        self._abort_crossfade()
        had_track = self._current_track is not None
        self._release_current()
        self.stop_listeners.fire_all()
        if had_track:
            self.events.emit(TrackChangeEvent(None))

    def seek_to(self, seconds: float):
        """Seek within the current track, clamped to [0, duration]."""
        if self._current_track is None or self._primary is None:
            return
        self._primary.seek(max(0.0, min(seconds, self.get_duration())))

    # =========================================================================
    # Volume and fades
    # =========================================================================

    def set_volume(self, volume: float):
        """Set volume on the public 0-100 scale (clamped)."""
        percent = max(VOLUME["min"], min(VOLUME["max"], float(volume)))
        self._settings.volume = percent / VOLUME["max"]
        self._apply_volume()
        logger.debug("Volume set to: %s", percent)
        self.events.emit(VolumeChangeEvent(percent))

    def get_volume(self) -> float:
        return round(self._settings.volume * VOLUME["max"], 4)

    def fade_in(self, duration: float):
        """Ramp the device from silence to the configured volume."""
        if self._primary is None:
            return
        if duration <= 0:
            self._apply_volume()
            self.events.emit(VolumeChangeEvent(self._settings.volume * VOLUME["max"]))
            return
        self._fade_primary_in(duration)

    def fade_out(self, duration: float, pause_on_complete: bool = True):
        """
        Ramp the device from its current volume to silence.

        With pause_on_complete the engine pauses when the ramp finishes and
        restores the configured volume for the next play.
        """
        source = self._primary
        if source is None:
            return

        def complete():
            if duration > 0:
                self.events.emit(FadeCompleteEvent(FadeKind.OUT))
            if pause_on_complete and source is self._primary:
                self.pause()
                source.volume = self._effective_volume()

        if duration > 0:
            self.events.emit(FadeStartEvent(FadeKind.OUT, duration))
        self.fades.ramp(source, source.volume, 0.0, duration, on_complete=complete)

    # =========================================================================
    # Looping
    # =========================================================================

    def set_looping(self, enabled: bool, count: int = -1):
        """Enable looping; count extra replays, -1 for infinite."""
        self._settings.loop_enabled = enabled
        self._settings.loop_count = count
        self.loop.configure(enabled, count)

    def get_loop_settings(self) -> Dict[str, Any]:
        return {"enabled": self._settings.loop_enabled, "count": self._settings.loop_count}

    # =========================================================================
    # Settings
    # =========================================================================

    def get_settings(self) -> AudioSettings:
        return AudioSettings.from_dict(self._settings.to_dict())

    def update_settings(self, **changes):
        """Apply a partial settings update. Volume here is 0.0-1.0."""
        unknown = set(changes) - set(self._settings.to_dict())
        if unknown:
            raise ValueError(f"Unknown audio settings: {', '.join(sorted(unknown))}")

        volume = changes.pop("volume", None)
        loop_enabled = changes.pop("loop_enabled", None)
        loop_count = changes.pop("loop_count", None)

        for key, value in changes.items():
            setattr(self._settings, key, value)
        self._settings.ducking_amount = clamp_volume(self._settings.ducking_amount)

        if volume is not None:
            self.set_volume(volume * VOLUME["max"])
        elif "ducking_enabled" in changes or "ducking_amount" in changes:
            self._apply_volume()

        if loop_enabled is not None or loop_count is not None:
            self.set_looping(
                self._settings.loop_enabled if loop_enabled is None else loop_enabled,
                self._settings.loop_count if loop_count is None else loop_count,
            )

    def enable_ducking(self, enabled: bool):
        self._settings.ducking_enabled = enabled
        logger.debug("Ducking enabled: %s", enabled)
        self._apply_volume()

    def set_ducking_threshold(self, threshold: float):
        self._settings.ducking_threshold = threshold

    def set_ducking_amount(self, amount: float):
        self._settings.ducking_amount = clamp_volume(amount)
        self._apply_volume()

    def enable_normalization(self, enabled: bool):
        self._settings.normalization_enabled = enabled

    def duck(self, active: bool = True):
        """Lower the applied volume by ducking_amount while ducking is enabled."""
        self._ducked = active
        self._apply_volume()

    @property
    def is_ducked(self) -> bool:
        return self._ducked and self._settings.ducking_enabled

    # =========================================================================
    # Events and stop listeners
    # =========================================================================

    def on(self, event: EventName, callback: EventCallback):
        self.events.on(event, callback)

    def off(self, event: EventName, callback: EventCallback):
        self.events.off(event, callback)

    def register_stop_listener(self, track_id: str, callback: Callable[[], None]):
        self.stop_listeners.register(track_id, callback)

    def unregister_stop_listener(self, track_id: str):
        self.stop_listeners.unregister(track_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_current_state(self) -> AudioState:
        return AudioState(
            current_track=self._current_track,
            is_playing=self._state is EngineState.PLAYING,
            state=self._state,
            volume=self.get_volume(),
            current_time=self.get_current_time(),
            duration=self.get_duration(),
            is_looping=self._settings.loop_enabled,
            loop_count=self.loop.current,
        )

    def get_current_track(self) -> Optional[Track]:
        return self._current_track

    def is_track_playing(self, track_id: Optional[str] = None) -> bool:
        playing = self._state is EngineState.PLAYING
        if track_id is None:
            return playing
        return playing and self._current_track is not None and self._current_track.id == track_id

    def get_current_time(self) -> float:
        return self._primary.position if self._primary is not None else 0.0

    def get_duration(self) -> float:
        if self._primary is not None and self._primary.duration > 0:
            return self._primary.duration
        if self._current_track is not None:
            return self._current_track.duration
        return 0.0

    def destroy(self):
        """Release every source and timer. The engine is unusable afterwards."""
        self.stop_listeners.clear()
        self._abort_crossfade()
        self._release_current()
        self.fades.cancel_all()
        self.events.clear()
        self.backend.close()

    # =========================================================================
    # Internals
    # =========================================================================

    def _can_crossfade(self) -> bool:
        return (
            self._state is EngineState.PLAYING
            and self._current_track is not None
            and self._primary is not None
            and self._crossfade is None
            and self._settings.crossfade_duration > 0
        )

    def _effective_volume(self) -> float:
        volume = self._settings.volume
        if self.is_ducked:
            volume *= 1.0 - self._settings.ducking_amount
        return clamp_volume(volume)

    def _apply_volume(self):
        # The crossfade commit applies the volume to the incoming source
        if self._primary is None or self._crossfade is not None:
            return
        self.fades.cancel(self._primary)
        self._primary.volume = self._effective_volume()

    def _set_state(self, state: EngineState):
        previous = self._state
        if state is previous:
            return
        self._state = state
        logger.debug("State: %s -> %s", previous.value, state.value)

        if state is EngineState.PLAYING:
            self._start_ticker()
        else:
            self._stop_ticker()

        was_playing = previous is EngineState.PLAYING
        is_playing = state is EngineState.PLAYING
        loading = EngineState.LOADING in (previous, state)
        if loading and was_playing == is_playing:
            return
        self.events.emit(PlayStateChangeEvent(is_playing, state))

    def _start_ticker(self):
        if self._ticker is None:
            self._ticker = self.clock.call_every(
                AUDIO["time_update_interval"], self._emit_time_update
            )

    def _stop_ticker(self):
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _emit_time_update(self):
        self.events.emit(TimeUpdateEvent(self.get_current_time(), self.get_duration()))

    def _reject(self, future: Future, error: EngineError):
        logger.warning("Playback failed: %s", error)
        self.events.emit(ErrorEvent(error, str(error)))
        future.set_exception(error)

    def _fail_playback(self, error: EngineError):
        """A device error on a loaded track: report it and go Idle."""
        logger.warning("Playback error: %s", error)
        if self._primary is not None:
            self.fades.cancel(self._primary)
        self._set_state(EngineState.IDLE)
        self.events.emit(ErrorEvent(error, str(error)))

    def _load(self, track: Track, url: str) -> PlaybackSource:
        return self.backend.load(url, self._handle_ended, duration=track.duration or None)

    def _start(self, track: Track, url: str, future: Future):
        self._set_state(EngineState.LOADING)
        try:
            source = self._load(track, url)
        except SourceError as e:
            self._set_state(EngineState.IDLE)
            self._reject(future, e)
            return

        fade_in = self._settings.fade_in_duration
        source.volume = 0.0 if fade_in > 0 else self._effective_volume()
        try:
            source.play()
        except DeviceRejected as e:
            source.close()
            self._set_state(EngineState.IDLE)
            self._reject(future, e)
            return

        self._primary = source
        self._current_track = track
        self.loop.reset()
        logger.debug("Playing track: %s (%s)", track.title, url)
        self._set_state(EngineState.PLAYING)
        self.events.emit(TrackChangeEvent(track))

        if fade_in > 0:
            self._fade_primary_in(fade_in)

        future.set_result(None)

    def _fade_primary_in(self, duration: float):
        self.events.emit(FadeStartEvent(FadeKind.IN, duration))
        self.fades.ramp(
            self._primary,
            0.0,
            self._effective_volume(),
            duration,
            on_complete=lambda: self.events.emit(FadeCompleteEvent(FadeKind.IN)),
        )

    def _release_current(self, incoming: Optional[Track] = None) -> Optional[Track]:
        """
        Hard-stop the primary source and drop the current track.

        The displaced track's stop listener fires unless incoming is the same
        track being restarted.
        """
        displaced = self._current_track
        if self._primary is not None:
            self.fades.cancel(self._primary)
            self._primary.pause()
            self._primary.seek(0.0)
            self._primary.close()
            self._primary = None

        self._current_track = None
        self.loop.reset()
        self._set_state(EngineState.IDLE)

        if displaced is not None and (incoming is None or incoming.id != displaced.id):
            self.stop_listeners.fire(displaced.id)
        return displaced

    def _begin_crossfade(self, track: Track, url: str, future: Future):
        try:
            incoming = self._load(track, url)
        except SourceError as e:
            self._reject(future, e)
            return

        incoming.volume = 0.0
        try:
            incoming.play()
        except DeviceRejected as e:
            # The outgoing track keeps playing
            incoming.close()
            self._reject(future, e)
            return

        duration = self._settings.crossfade_duration
        outgoing = self._primary
        logger.debug(
            "Crossfading %s -> %s over %.2fs", self._current_track.id, track.id, duration
        )

        self.events.emit(FadeStartEvent(FadeKind.OUT, duration))
        self.events.emit(FadeStartEvent(FadeKind.IN, duration))
        self.fades.ramp(
            outgoing,
            outgoing.volume,
            0.0,
            duration,
            on_complete=lambda: self.events.emit(FadeCompleteEvent(FadeKind.OUT)),
        )
        self.fades.ramp(
            incoming,
            0.0,
            self._effective_volume(),
            duration,
            on_complete=lambda: self.events.emit(FadeCompleteEvent(FadeKind.IN)),
        )

        timer = self.clock.call_later(duration, self._commit_crossfade)
        self._crossfade = _Crossfade(track, incoming, timer, future)

    def _commit_crossfade(self):
        """Hand the device over to the incoming track."""
        crossfade = self._crossfade
        if crossfade is None:
            return
        self._crossfade = None
        crossfade.timer.cancel()

        outgoing = self._primary
        if outgoing is not None:
            if self.fades.cancel(outgoing):
                self.events.emit(FadeCompleteEvent(FadeKind.OUT))
            outgoing.close()
        if self.fades.cancel(crossfade.source):
            self.events.emit(FadeCompleteEvent(FadeKind.IN))

        crossfade.source.volume = self._effective_volume()
        displaced = self._current_track
        self._primary = crossfade.source
        self._current_track = crossfade.track
        self.loop.reset()
        logger.debug("Crossfade committed: %s", crossfade.track.id)

        if displaced is not None and displaced.id != crossfade.track.id:
            self.stop_listeners.fire(displaced.id)
        self.events.emit(TrackChangeEvent(crossfade.track))
        crossfade.future.set_result(None)

    def _abort_crossfade(self):
        """Cancel both ramps and discard the transient source."""
        crossfade = self._crossfade
        if crossfade is None:
            return
        self._crossfade = None
        crossfade.timer.cancel()
        self.fades.cancel(crossfade.source)
        if self._primary is not None:
            self.fades.cancel(self._primary)
        crossfade.source.close()
        logger.debug("Crossfade to %s aborted", crossfade.track.id)
        crossfade.future.set_exception(
            PlaybackInterrupted(f"Crossfade to {crossfade.track.id} was interrupted")
        )

    def _handle_ended(self, source: PlaybackSource):
        if self._crossfade is not None:
            if source is not self._crossfade.source and source is not self._primary:
                return
            # Either side running out ends the crossfade window early
            self._commit_crossfade()

        if source is not self._primary or self._state is not EngineState.PLAYING:
            return

        track = self._current_track
        if self.loop.on_track_end():
            logger.debug("Replaying track: %s", track.id)
            source.seek(0.0)
            try:
                source.play()
            except DeviceRejected as e:
                self._fail_playback(e)
            return

        self.fades.cancel(source)
        source.seek(0.0)
        self._set_state(EngineState.IDLE)
        self.events.emit(TrackEndEvent(track))
