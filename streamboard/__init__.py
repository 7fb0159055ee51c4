"""
Streamboard Playback Engine

The audio core of a browser-style streaming soundboard: one playback
device, at most one current track, timed fades and crossfades, finite and
infinite looping, and typed events for decoupled UI widgets.

The sound-device backend lives in streamboard.audio and is imported on
demand (see create_backend) so headless use does not need PortAudio.
"""

from .backends import PlaybackBackend, PlaybackSource, SimulatedBackend, create_backend
from .clock import Clock, MonotonicClock, VirtualClock
from .config import load_config, save_config
from .engine import AudioEngine
from .errors import DeviceRejected, EngineError, PlaybackInterrupted, SourceError
from .events import EventBus, EventName, FadeKind
from .hotkeys import HotkeyAction, HotkeyConfig, HotkeyManager
from .models import AudioSettings, AudioState, EngineState, Track
from .usage import MemoryTrackStore, TrackStore, UsageTracker

__all__ = [
    "AudioEngine",
    "AudioSettings",
    "AudioState",
    "Clock",
    "DeviceRejected",
    "EngineError",
    "EngineState",
    "EventBus",
    "EventName",
    "FadeKind",
    "HotkeyAction",
    "HotkeyConfig",
    "HotkeyManager",
    "MemoryTrackStore",
    "MonotonicClock",
    "PlaybackBackend",
    "PlaybackInterrupted",
    "PlaybackSource",
    "SimulatedBackend",
    "SourceError",
    "Track",
    "TrackStore",
    "UsageTracker",
    "VirtualClock",
    "create_backend",
    "load_config",
    "save_config",
]
__version__ = "1.0.0"
