"""
Error types raised and reported by the playback engine.

Seeks outside the track are clamped and non-positive fade durations are an
immediate volume set, so neither has an exception type.
"""


class EngineError(Exception):
    """Base class for every playback engine error."""


class SourceError(EngineError):
    """No resolvable or loadable audio source exists for a track."""


class DeviceRejected(EngineError):
    """The playback device refused to start (host policy, no output device)."""


class PlaybackInterrupted(EngineError):
    """A pending crossfade was superseded by stop() or a newer play_track()."""
