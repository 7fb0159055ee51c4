"""
Data models for the streamboard playback engine.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .constants import DEFAULT_SETTINGS, TRACKS_DIR


@dataclass
class Track:
    """A playable track. Owned by storage; the engine only holds a reference."""

    id: str
    title: str
    duration: float = 0.0  # seconds
    audio_url: Optional[str] = None
    loop_friendly: bool = False
    usage_count: int = 0
    last_used: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "duration": self.duration,
            "audio_url": self.audio_url,
            "loop_friendly": self.loop_friendly,
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        """Create a Track from a dictionary."""
        last_used = data.get("last_used")
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            duration=float(data.get("duration", 0.0)),
            audio_url=data.get("audio_url"),
            loop_friendly=data.get("loop_friendly", False),
            usage_count=data.get("usage_count", 0),
            last_used=datetime.fromisoformat(last_used) if last_used else None,
        )


@dataclass
class AudioSettings:
    """Process-wide playback settings. Volume is canonical 0.0-1.0."""

    volume: float = DEFAULT_SETTINGS["volume"]
    fade_in_duration: float = DEFAULT_SETTINGS["fade_in_duration"]
    fade_out_duration: float = DEFAULT_SETTINGS["fade_out_duration"]
    crossfade_duration: float = DEFAULT_SETTINGS["crossfade_duration"]
    ducking_enabled: bool = DEFAULT_SETTINGS["ducking_enabled"]
    ducking_threshold: float = DEFAULT_SETTINGS["ducking_threshold"]
    ducking_amount: float = DEFAULT_SETTINGS["ducking_amount"]
    normalization_enabled: bool = DEFAULT_SETTINGS["normalization_enabled"]
    loop_enabled: bool = DEFAULT_SETTINGS["loop_enabled"]
    loop_count: int = DEFAULT_SETTINGS["loop_count"]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "volume": self.volume,
            "fade_in_duration": self.fade_in_duration,
            "fade_out_duration": self.fade_out_duration,
            "crossfade_duration": self.crossfade_duration,
            "ducking_enabled": self.ducking_enabled,
            "ducking_threshold": self.ducking_threshold,
            "ducking_amount": self.ducking_amount,
            "normalization_enabled": self.normalization_enabled,
            "loop_enabled": self.loop_enabled,
            "loop_count": self.loop_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AudioSettings":
        """Create AudioSettings from a dictionary, ignoring unknown keys."""
        merged = {**DEFAULT_SETTINGS, **{k: v for k, v in data.items() if k in DEFAULT_SETTINGS}}
        return cls(**merged)


class EngineState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class AudioState:
    """Read-only snapshot returned by AudioEngine.get_current_state()."""

    current_track: Optional[Track]
    is_playing: bool
    state: EngineState
    volume: float  # public 0-100 scale
    current_time: float
    duration: float
    is_looping: bool
    loop_count: int  # current repeat index


def resolve_audio_source(track: Track) -> Optional[str]:
    """
    Find the playable source for a track.

    Priority: the track's audio_url, then a file in the tracks directory named
    after the title (lower-cased, whitespace removed).
    """
    if track.audio_url:
        return track.audio_url

    if track.title:
        name = re.sub(r"\s+", "", track.title.lower())
        if name:
            return f"{TRACKS_DIR}/{name}.mp3"

    return None
