"""
Load and save engine settings and hotkeys as JSON.
"""

import json
import logging
import os
from typing import List, Optional, Tuple

from .constants import CONFIG_FILE
from .hotkeys import HotkeyConfig
from .models import AudioSettings

logger = logging.getLogger(__name__)


def load_config(path: Optional[str] = None) -> Tuple[AudioSettings, List[HotkeyConfig]]:
    """Load configuration from JSON file, falling back to defaults."""
    path = path or CONFIG_FILE
    if not os.path.exists(path):
        return AudioSettings(), []

    try:
        with open(path, encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Error loading config %s: %s", path, e)
        return AudioSettings(), []

    audio = config.get("audio", {}) if isinstance(config, dict) else None
    hotkey_list = config.get("hotkeys", []) if isinstance(config, dict) else None
    if not isinstance(audio, dict) or not isinstance(hotkey_list, list):
        logger.warning("Error loading config %s: unexpected layout", path)
        return AudioSettings(), []

    settings = AudioSettings.from_dict(audio)

    hotkeys = []
    for data in hotkey_list:
        try:
            hotkeys.append(HotkeyConfig.from_dict(data))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid hotkey %s: %s", data, e)

    return settings, hotkeys


def save_config(
    settings: AudioSettings,
    hotkeys: Optional[List[HotkeyConfig]] = None,
    path: Optional[str] = None,
):
    """Save configuration to JSON file using atomic write to prevent corruption."""
    path = path or CONFIG_FILE
    config = {
        "audio": settings.to_dict(),
        "hotkeys": [h.to_dict() for h in hotkeys or []],
    }

    # Atomic write: write to temp file first, then rename
    temp_file = path + ".tmp"
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, ensure_ascii=False)
        os.replace(temp_file, path)
    except OSError:
        if os.path.exists(temp_file):
            os.remove(temp_file)
        raise
