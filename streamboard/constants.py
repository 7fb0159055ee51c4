"""
Constants and configuration values for the streamboard playback engine.
"""

# =============================================================================
# AUDIO SETTINGS
# =============================================================================

AUDIO = {
    "sample_rate": 48000,
    "block_size": 1024,
    "channels": 2,
    "time_update_interval": 0.25,  # seconds between time_update events
}


# =============================================================================
# FADE SETTINGS
# =============================================================================

FADE = {
    "steps": 60,  # one step per ~1/60th of the fade duration
}


# =============================================================================
# VOLUME SETTINGS
# =============================================================================

# Public scale used by set_volume()/get_volume(); the engine stores 0.0-1.0
VOLUME = {
    "min": 0,
    "max": 100,
    "step": 5,  # hotkey volume up/down increment
}


# =============================================================================
# DEFAULT PLAYBACK SETTINGS
# =============================================================================

DEFAULT_SETTINGS = {
    "volume": 0.5,
    "fade_in_duration": 2.0,
    "fade_out_duration": 2.0,
    "crossfade_duration": 1.0,
    "ducking_enabled": False,
    "ducking_threshold": -20.0,  # dB
    "ducking_amount": 0.5,
    "normalization_enabled": False,
    "loop_enabled": False,
    "loop_count": 1,  # -1 = infinite
}


# =============================================================================
# FILE/PATH SETTINGS
# =============================================================================

CONFIG_FILE = "soundboard_config.json"
TRACKS_DIR = "tracks"

# Local formats the sound-device backend can decode
SUPPORTED_FORMATS = (
    "*.mp3",
    "*.wav",
    "*.ogg",
    "*.flac",
    "*.m4a",
    "*.aac",
    "*.wma",
    "*.aiff",
    "*.aif",
    "*.opus",
    "*.webm",
    "*.mp4",
    "*.wv",
    "*.ape",
)
