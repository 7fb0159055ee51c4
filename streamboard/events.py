"""
Typed publish/subscribe events for the playback engine.

Each event kind has its own payload dataclass bound to an EventName, so
subscribers receive a typed object instead of loose positional arguments.
UI widgets, hotkey handlers and the usage tracker subscribe here without
holding references to each other.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, ClassVar, Dict, List, Optional, Union

if TYPE_CHECKING:
    from .errors import EngineError
    from .models import EngineState, Track

logger = logging.getLogger(__name__)


class EventName(Enum):
    TRACK_CHANGE = "track_change"
    PLAY_STATE_CHANGE = "play_state_change"
    VOLUME_CHANGE = "volume_change"
    TIME_UPDATE = "time_update"
    TRACK_END = "track_end"
    ERROR = "error"
    FADE_START = "fade_start"
    FADE_COMPLETE = "fade_complete"


class FadeKind(Enum):
    IN = "in"
    OUT = "out"


@dataclass(frozen=True)
class TrackChangeEvent:
    """The engine's current track changed (None after stop)."""

    name: ClassVar[EventName] = EventName.TRACK_CHANGE
    track: Optional["Track"]


@dataclass(frozen=True)
class PlayStateChangeEvent:
    name: ClassVar[EventName] = EventName.PLAY_STATE_CHANGE
    is_playing: bool
    state: "EngineState"


@dataclass(frozen=True)
class VolumeChangeEvent:
    """Volume on the public 0-100 scale."""

    name: ClassVar[EventName] = EventName.VOLUME_CHANGE
    volume: float


@dataclass(frozen=True)
class TimeUpdateEvent:
    name: ClassVar[EventName] = EventName.TIME_UPDATE
    current_time: float
    duration: float


@dataclass(frozen=True)
class TrackEndEvent:
    """A track finished naturally and no loop replay follows."""

    name: ClassVar[EventName] = EventName.TRACK_END
    track: "Track"


@dataclass(frozen=True)
class ErrorEvent:
    name: ClassVar[EventName] = EventName.ERROR
    error: "EngineError"
    message: str


@dataclass(frozen=True)
class FadeStartEvent:
    name: ClassVar[EventName] = EventName.FADE_START
    kind: FadeKind
    duration: float


@dataclass(frozen=True)
class FadeCompleteEvent:
    name: ClassVar[EventName] = EventName.FADE_COMPLETE
    kind: FadeKind


Event = Union[
    TrackChangeEvent,
    PlayStateChangeEvent,
    VolumeChangeEvent,
    TimeUpdateEvent,
    TrackEndEvent,
    ErrorEvent,
    FadeStartEvent,
    FadeCompleteEvent,
]

EventCallback = Callable[[Event], None]


class EventBus:
    """
    Synchronous dispatcher.

    Callbacks run in registration order. A callback that raises is logged
    and skipped; the remaining callbacks for the same event still run.
    """

    def __init__(self):
        self._subscribers: Dict[EventName, List[EventCallback]] = {}

    def on(self, event: EventName, callback: EventCallback):
        self._subscribers.setdefault(event, []).append(callback)

    def off(self, event: EventName, callback: EventCallback):
        callbacks = self._subscribers.get(event)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            pass

    def emit(self, event: Event):
        # Snapshot so callbacks may subscribe/unsubscribe while dispatching
        for callback in list(self._subscribers.get(event.name, ())):
            try:
                callback(event)
            except Exception as e:
                logger.error("Error in %s callback: %s", event.name.value, e, exc_info=True)

    def subscriber_count(self, event: EventName) -> int:
        return len(self._subscribers.get(event, ()))

    def clear(self):
        self._subscribers.clear()
