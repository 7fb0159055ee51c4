"""
Hotkey bindings for engine actions.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .clock import Clock
from .constants import VOLUME
from .errors import EngineError
from .models import EngineState, Track

if TYPE_CHECKING:
    from .engine import AudioEngine

logger = logging.getLogger(__name__)

# Try to import keyboard for global hotkeys
try:
    import keyboard

    HOTKEYS_AVAILABLE = True
except ImportError:
    HOTKEYS_AVAILABLE = False


class HotkeyAction(Enum):
    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"
    VOLUME_UP = "volume_up"
    VOLUME_DOWN = "volume_down"
    MUTE = "mute"
    DUCK = "duck"


@dataclass
class HotkeyConfig:
    """A key combination bound to an engine action."""

    key: str
    action: HotkeyAction
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    track_id: Optional[str] = None  # required for PLAY

    @property
    def combo(self) -> str:
        """Combination in keyboard-library form, e.g. "ctrl+shift+k"."""
        parts = []
        if self.ctrl:
            parts.append("ctrl")
        if self.shift:
            parts.append("shift")
        if self.alt:
            parts.append("alt")
        parts.append(self.key.lower().strip())
        return "+".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "key": self.key,
            "action": self.action.value,
            "ctrl": self.ctrl,
            "shift": self.shift,
            "alt": self.alt,
            "track_id": self.track_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HotkeyConfig":
        """Create a HotkeyConfig from a dictionary."""
        return cls(
            key=data["key"],
            action=HotkeyAction(data["action"]),
            ctrl=data.get("ctrl", False),
            shift=data.get("shift", False),
            alt=data.get("alt", False),
            track_id=data.get("track_id"),
        )


def normalize_combo(combo: str) -> str:
    """Lower-case a combo and put modifiers in ctrl, shift, alt order."""
    parts = [p.strip().lower() for p in combo.split("+") if p.strip()]
    modifiers = [m for m in ("ctrl", "shift", "alt") if m in parts]
    keys = [p for p in parts if p not in ("ctrl", "shift", "alt")]
    return "+".join(modifiers + keys)


class HotkeyManager:
    """
    Maps key combinations to engine actions.

    trigger() dispatches directly and is what tests and UI shortcuts call.
    enable(True) also registers global hotkeys through the keyboard library
    when it is installed; its callbacks arrive on the keyboard thread and
    are handed to the engine clock before they touch the engine.
    """

    def __init__(
        self,
        engine: "AudioEngine",
        track_lookup: Callable[[str], Optional[Track]],
        clock: Optional[Clock] = None,
    ):
        self.engine = engine
        self.track_lookup = track_lookup
        self.clock = clock or engine.clock
        self.hotkeys: Dict[str, HotkeyConfig] = {}
        self.enabled = False
        self.registered_hotkeys: List[str] = []
        self._volume_before_mute: Optional[float] = None

    def add_hotkey(self, config: HotkeyConfig):
        if config.action is HotkeyAction.PLAY and not config.track_id:
            raise ValueError("PLAY hotkeys need a track_id")
        self.hotkeys[config.combo] = config
        logger.debug("Hotkey added: %s -> %s", config.combo, config.action.value)
        if self.enabled:
            self._register_hotkeys()

    def remove_hotkey(self, combo: str):
        self.hotkeys.pop(normalize_combo(combo), None)
        if self.enabled:
            self._register_hotkeys()

    def get_hotkeys(self) -> Dict[str, HotkeyConfig]:
        return dict(self.hotkeys)

    def enable(self, enabled: bool):
        self.enabled = enabled
        if enabled:
            self._register_hotkeys()
        else:
            self._unregister_hotkeys()
        logger.debug("Hotkeys enabled: %s", enabled)

    def trigger(self, combo: str) -> bool:
        """Run the action bound to combo. Returns False if nothing is bound."""
        config = self.hotkeys.get(normalize_combo(combo))
        if config is None:
            return False
        self._dispatch(config)
        return True

    def _dispatch(self, config: HotkeyConfig):
        engine = self.engine
        action = config.action

        if action is HotkeyAction.PLAY:
            track = self.track_lookup(config.track_id)
            if track is None:
                logger.warning("Hotkey %s: unknown track %s", config.combo, config.track_id)
                return
            future = engine.play_track(track)
            future.add_done_callback(self._log_failure)
        elif action is HotkeyAction.PAUSE:
            if engine.state is EngineState.PLAYING:
                engine.pause()
            else:
                engine.resume()
        elif action is HotkeyAction.STOP:
            engine.stop()
        elif action is HotkeyAction.VOLUME_UP:
            engine.set_volume(engine.get_volume() + VOLUME["step"])
        elif action is HotkeyAction.VOLUME_DOWN:
            engine.set_volume(engine.get_volume() - VOLUME["step"])
        elif action is HotkeyAction.MUTE:
            if self._volume_before_mute is None:
                self._volume_before_mute = engine.get_volume()
                engine.set_volume(VOLUME["min"])
            else:
                engine.set_volume(self._volume_before_mute)
                self._volume_before_mute = None
        elif action is HotkeyAction.DUCK:
            engine.duck(not engine.is_ducked)

    def _log_failure(self, future):
        error = future.exception()
        if isinstance(error, EngineError):
            logger.warning("Hotkey playback failed: %s", error)

    def _register_hotkeys(self):
        """Register global hotkeys with the keyboard library."""
        if not HOTKEYS_AVAILABLE:
            return

        self._unregister_hotkeys()
        for combo, config in self.hotkeys.items():
            try:
                keyboard.add_hotkey(
                    combo,
                    lambda c=config: self.clock.call_soon_threadsafe(lambda: self._dispatch(c)),
                )
                self.registered_hotkeys.append(combo)
            except (ValueError, ImportError, OSError) as e:
                logger.warning("Could not register hotkey %s: %s", combo, e)

    def _unregister_hotkeys(self):
        if not HOTKEYS_AVAILABLE:
            return
        for combo in self.registered_hotkeys:
            try:
                keyboard.remove_hotkey(combo)
            except (KeyError, ValueError) as e:
                logger.debug("Hotkey %s was not registered: %s", combo, e)
        self.registered_hotkeys.clear()
