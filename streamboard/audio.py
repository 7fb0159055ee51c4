"""
Sound-device playback backend.

Decodes local files into memory, then mixes every playing source into one
sounddevice output stream. The stream callback runs on PortAudio's thread;
end-of-data notifications are handed back to the engine clock so engine
state is only touched from the engine loop.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import sounddevice as sd
import soundfile as sf

from .backends import PlaybackBackend, PlaybackSource
from .clock import Clock
from .constants import AUDIO
from .errors import DeviceRejected, SourceError

logger = logging.getLogger(__name__)


# Try to get ffmpeg path from imageio-ffmpeg (bundled ffmpeg)
try:
    import imageio_ffmpeg

    FFMPEG_PATH = imageio_ffmpeg.get_ffmpeg_exe()
except ImportError:
    FFMPEG_PATH = None

# Try to import pydub for extended format support (M4A, AAC, WMA, etc.)
try:
    from pydub import AudioSegment

    # Configure pydub to use ffmpeg from imageio-ffmpeg if available
    if FFMPEG_PATH:
        AudioSegment.converter = FFMPEG_PATH
        AudioSegment.ffmpeg = FFMPEG_PATH  # type: ignore[attr-defined]
        AudioSegment.ffprobe = FFMPEG_PATH.replace("ffmpeg", "ffprobe")  # type: ignore[attr-defined]
    PYDUB_AVAILABLE = True
except ImportError:
    PYDUB_AVAILABLE = False


REMOTE_PREFIXES = ("http://", "https://", "ftp://", "blob:", "data:")


def read_audio_file(file_path: str) -> Tuple[np.ndarray, int]:
    """
    Read an audio file, using pydub as fallback for formats
    that soundfile doesn't support well (OGG, M4A, AAC, WMA, etc.).

    Returns:
        Tuple of (audio_data as numpy array, sample_rate)

    Raises:
        RuntimeError if the file cannot be loaded
    """
    ext = Path(file_path).suffix.lower()

    try:
        data, sr = sf.read(file_path, dtype="float32")
        return data, sr
    except Exception as e:
        logger.debug("soundfile could not read %s: %s", file_path, e)

    if not PYDUB_AVAILABLE:
        raise RuntimeError(
            f"Cannot load '{ext}' files. Install pydub and ffmpeg for extended format support: "
            f"pip install pydub"
        )

    try:
        audio = AudioSegment.from_file(file_path)
    except Exception as e:
        raise RuntimeError(
            f"Failed to load audio file '{file_path}'. Format may require ffmpeg: {e}"
        ) from e

    channels = audio.channels
    sr = audio.frame_rate
    samples = np.array(audio.get_array_of_samples(), dtype=np.float32)

    # Normalize to [-1.0, 1.0] range
    max_val = float(2 ** (audio.sample_width * 8 - 1))
    samples = samples / max_val

    if channels == 2:
        samples = samples.reshape((-1, 2))

    return samples, sr


def _resample_audio(data: np.ndarray, orig_sr: int, target_sr: int) -> np.ndarray:
    """Resample audio with numpy linear interpolation (mono or multi-channel)."""
    if orig_sr == target_sr:
        return data

    ratio = target_sr / orig_sr
    new_length = int(len(data) * ratio)
    old_indices = np.arange(len(data))
    new_indices = np.linspace(0, len(data) - 1, new_length)

    if data.ndim == 1:
        return np.interp(new_indices, old_indices, data).astype(np.float32)

    result = np.zeros((new_length, data.shape[1]), dtype=np.float32)
    for ch in range(data.shape[1]):
        result[:, ch] = np.interp(new_indices, old_indices, data[:, ch])
    return result


def _to_stereo(data: np.ndarray) -> np.ndarray:
    if data.ndim == 1:
        return np.column_stack([data, data]).astype(np.float32)
    if data.shape[1] == 1:
        return np.column_stack([data[:, 0], data[:, 0]]).astype(np.float32)
    return data[:, :2].astype(np.float32)


def _soft_clip(x: np.ndarray) -> np.ndarray:
    """
    Soft limiter for the mixed block.

    Values within [-1, 1] pass through unchanged; anything hotter is squeezed
    towards 1.4 with a tanh curve instead of being hard clipped. Only reached
    while two sources overlap during a crossfade.
    """
    if np.max(np.abs(x)) <= 1.0:
        return x.astype(np.float32)

    abs_x = np.abs(x)
    result = np.copy(x)
    hot = abs_x > 1.0
    result[hot] = np.sign(x[hot]) * (1.0 + 0.4 * np.tanh(abs_x[hot] - 1.0))
    return result.astype(np.float32)


class SoundCache:
    """
    In-memory cache of decoded audio at the output sample rate.

    Decoding and resampling happen once per file, not on every play.
    """

    def __init__(self, sample_rate: Optional[int] = None):
        self.sample_rate = sample_rate or AUDIO["sample_rate"]
        self._cache: Dict[str, np.ndarray] = {}  # filepath -> stereo float32 data
        self._lock = threading.Lock()

    def _load_into_cache(self, file_path: str) -> np.ndarray:
        """Load and resample audio file, caching the result."""
        with self._lock:
            if file_path in self._cache:
                return self._cache[file_path]

        data, sr = read_audio_file(file_path)
        if sr != self.sample_rate:
            data = _resample_audio(data, sr, self.sample_rate)
        data = _to_stereo(data)

        with self._lock:
            self._cache[file_path] = data
        return data

    def get_sound_data(self, file_path: str) -> np.ndarray:
        """Get decoded audio for a file. Raises RuntimeError if it cannot be read."""
        return self._load_into_cache(file_path)

    def preload_sounds(self, file_paths: List[str]):
        """Pre-load multiple sounds into cache (call on startup)."""
        for path in file_paths:
            if path and os.path.exists(path):
                try:
                    self._load_into_cache(path)
                except RuntimeError as e:
                    logger.warning("Failed to preload %s: %s", path, e)

    def remove_sound(self, file_path: str):
        with self._lock:
            self._cache.pop(file_path, None)

    def clear_cache(self):
        """Clear the in-memory cache (files remain on disk)."""
        with self._lock:
            self._cache.clear()

    def is_cached(self, file_path: str) -> bool:
        with self._lock:
            return file_path in self._cache

    def get_sound_duration(self, file_path: str) -> float:
        """Duration of a sound in seconds."""
        return len(self.get_sound_data(file_path)) / self.sample_rate


class StreamSource(PlaybackSource):
    """A decoded track mixed into the backend's output stream."""

    def __init__(
        self,
        backend: "SoundDeviceBackend",
        url: str,
        data: np.ndarray,
        on_ended: Callable[[PlaybackSource], None],
    ):
        super().__init__(url, on_ended)
        self._backend = backend
        self.data = data
        self.frame = 0
        self.playing = False

    @property
    def position(self) -> float:
        return self.frame / self._backend.sample_rate

    @property
    def duration(self) -> float:
        return len(self.data) / self._backend.sample_rate

    @property
    def is_playing(self) -> bool:
        return self.playing

    def play(self):
        if self.closed:
            raise DeviceRejected(f"Source already closed: {self.url}")
        self._backend._ensure_stream()
        with self._backend.lock:
            at_end = self.frame >= len(self.data)
            self.playing = not at_end
        if at_end:
            self._backend.clock.call_soon_threadsafe(self._notify_ended)

    def pause(self):
        with self._backend.lock:
            self.playing = False

    def seek(self, seconds: float):
        frame = int(seconds * self._backend.sample_rate)
        with self._backend.lock:
            self.frame = max(0, min(len(self.data), frame))

    def close(self):
        with self._backend.lock:
            self.playing = False
            self.closed = True
        self._backend._release(self)

    def _notify_ended(self):
        if not self.closed:
            self._on_ended(self)


class SoundDeviceBackend(PlaybackBackend):
    """
    Mixes the engine's sources into a single sounddevice output stream.

    The stream is opened on the first play() and stays open until close().
    """

    def __init__(
        self,
        clock: Clock,
        output_device: Optional[int] = None,
        sample_rate: Optional[int] = None,
        block_size: Optional[int] = None,
        sound_cache: Optional[SoundCache] = None,
    ):
        self.clock = clock
        self.output_device = output_device
        self.sample_rate = sample_rate or AUDIO["sample_rate"]
        self.block_size = block_size or AUDIO["block_size"]
        self.channels = AUDIO["channels"]
        self.sound_cache = sound_cache or SoundCache(self.sample_rate)

        self.lock = threading.Lock()
        self.sources: List[StreamSource] = []
        self.output_stream = None

    def load(
        self,
        url: str,
        on_ended: Callable[[PlaybackSource], None],
        duration: Optional[float] = None,
    ) -> StreamSource:
        if url.startswith(REMOTE_PREFIXES):
            raise SourceError(f"Remote sources are not supported: {url}")
        if not os.path.exists(url):
            raise SourceError(f"Audio file not found: {url}")

        try:
            data = self.sound_cache.get_sound_data(url)
        except RuntimeError as e:
            raise SourceError(str(e)) from e

        source = StreamSource(self, url, data, on_ended)
        with self.lock:
            self.sources.append(source)
        logger.debug("Loaded %s: %d frames", url, len(data))
        return source

    def close(self):
        """End the output stream. Non-blocking - uses abort() for faster shutdown."""
        with self.lock:
            for source in self.sources:
                source.playing = False
                source.closed = True
            self.sources.clear()

        if self.output_stream is not None:
            try:
                self.output_stream.abort()
                self.output_stream.close()
            except sd.PortAudioError as e:
                logger.warning("Error closing output stream: %s", e)
            self.output_stream = None

    def _ensure_stream(self):
        if self.output_stream is not None:
            return
        try:
            stream = sd.OutputStream(
                device=self.output_device,
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                channels=self.channels,
                callback=self._output_callback,
                dtype=np.float32,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise DeviceRejected(f"Output device unavailable: {e}") from e
        self.output_stream = stream

    def _release(self, source: StreamSource):
        with self.lock:
            if source in self.sources:
                self.sources.remove(source)

    def _output_callback(self, outdata, frames, time, status):
        """
        Real-time mixing callback for the output stream.

        Called by sounddevice for each audio block.
        Keep this minimal - no blocking operations!
        """
        mixed = np.zeros((frames, self.channels), dtype=np.float32)
        ended = []

        with self.lock:
            for source in self.sources:
                if not source.playing:
                    continue

                pos = source.frame
                remaining = len(source.data) - pos
                chunk_size = min(frames, remaining)
                if chunk_size > 0:
                    mixed[:chunk_size] += source.data[pos : pos + chunk_size] * source.volume
                    source.frame += chunk_size

                if source.frame >= len(source.data):
                    source.playing = False
                    ended.append(source)

        for source in ended:
            self.clock.call_soon_threadsafe(source._notify_ended)

        outdata[:] = _soft_clip(mixed)
