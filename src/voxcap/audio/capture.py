"""
Audio Capture Sources

Provides MicCapture for live microphone input and ScriptedAudioSource for tests.
"""

import asyncio
import logging
import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Literal

import numpy as np

from voxcap.core.errors import MicrophoneAccessError

logger = logging.getLogger(__name__)


@dataclass
class AudioCaptureConfig:
    """Configuration for audio capture."""

    sample_rate: int = 16000
    channels: int = 1  # Clips are always mono
    chunk_duration_ms: int = 100  # One VAD tick per chunk
    device_index: int | None = None


@dataclass
class AudioChunk:
    """A chunk of audio data from capture."""

    chunk_id: str
    data: bytes  # Raw int16 PCM, mono
    sample_rate: int
    duration_ms: int
    offset_ms: int  # Position of the chunk start since capture began
    timestamp: datetime = field(default_factory=datetime.now)
    source: Literal["mic", "scripted"] = "mic"

    @property
    def samples(self) -> np.ndarray:
        return np.frombuffer(self.data, dtype=np.int16)


class AudioSource(ABC):
    """Abstract base for audio sources.

    A source is used for exactly one capture: started once, read until it
    returns None while not running, then stopped.
    """

    @abstractmethod
    async def start(self) -> None:
        """Acquire the input device and start capturing.

        Raises:
            MicrophoneAccessError: if the device could not be opened.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop capturing and release the device. Safe to call repeatedly."""
        ...

    @abstractmethod
    async def read_chunk(self) -> AudioChunk | None:
        """Read next audio chunk, or None if nothing is available yet."""
        ...

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if source is currently running."""
        ...


class MicCapture(AudioSource):
    """Microphone capture using sounddevice.

    PortAudio exposes no echo-cancellation or noise-suppression controls, so the
    stream is opened as plain mono int16 at the configured rate.
    """

    def __init__(self, config: AudioCaptureConfig | None = None):
        self.config = config or AudioCaptureConfig()
        self._stream = None
        self._buffer: asyncio.Queue[AudioChunk] = asyncio.Queue()
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._frames_seen = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Open and start the microphone stream."""
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise MicrophoneAccessError(f"sounddevice is unavailable: {e}") from e

        self._loop = asyncio.get_running_loop()
        self._frames_seen = 0

        blocksize = int(self.config.sample_rate * self.config.chunk_duration_ms / 1000)

        try:
            self._stream = sd.InputStream(
                samplerate=self.config.sample_rate,
                channels=1,
                dtype="int16",
                blocksize=blocksize,
                callback=self._audio_callback,
                device=self.config.device_index,
            )
            self._running = True
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self._running = False
            self._close_stream()
            raise MicrophoneAccessError(str(e)) from e

        logger.info(
            f"Microphone capture started (sample_rate={self.config.sample_rate}, "
            f"chunk_ms={self.config.chunk_duration_ms})"
        )

    def _audio_callback(self, indata, frames, time_info, status):
        """Callback for sounddevice stream (runs on the PortAudio thread)."""
        if status:
            logger.warning(f"Audio callback status: {status}")

        if self._running and self._loop:
            offset_ms = int(self._frames_seen * 1000 / self.config.sample_rate)
            self._frames_seen += frames
            chunk = AudioChunk(
                chunk_id=f"mic-{uuid.uuid4().hex[:8]}",
                data=indata[:, 0].tobytes() if indata.ndim > 1 else indata.tobytes(),
                sample_rate=self.config.sample_rate,
                duration_ms=int(frames * 1000 / self.config.sample_rate),
                offset_ms=offset_ms,
                source="mic",
            )
            self._loop.call_soon_threadsafe(self._buffer.put_nowait, chunk)

    async def read_chunk(self) -> AudioChunk | None:
        """Read next chunk from buffer."""
        if not self._running:
            return None
        try:
            return await asyncio.wait_for(self._buffer.get(), timeout=1.0)
        except asyncio.TimeoutError:
            return None

    async def stop(self) -> None:
        """Stop microphone stream."""
        was_running = self._running
        self._running = False
        self._close_stream()
        if was_running:
            logger.info("Microphone capture stopped")

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None


def tone(amplitude: float, duration_ms: int = 100, sample_rate: int = 16000, freq_hz: float = 440.0) -> np.ndarray:
    """Synthesize an int16 sine chunk; amplitude is a fraction of full scale."""
    length = int(sample_rate * duration_ms / 1000)
    t = np.arange(length)
    waveform = np.sin(2 * math.pi * freq_hz * t / sample_rate) * amplitude * 32767
    return waveform.astype(np.int16)


class ScriptedAudioSource(AudioSource):
    """Replays scripted PCM chunks instead of opening a device.

    Used by tests and for dry runs. Chunks are delivered as fast as the event
    loop allows unless ``pace_s`` is set.
    """

    def __init__(
        self,
        frames: Iterable[np.ndarray],
        sample_rate: int = 16000,
        *,
        pace_s: float = 0.0,
        hold_open: bool = False,
        fail_with: Exception | None = None,
    ):
        """Initialize scripted source.

        Args:
            frames: int16 PCM arrays, one per chunk
            sample_rate: Sample rate of the frames
            pace_s: Delay before each chunk is delivered
            hold_open: Keep running after the script is exhausted (simulates
                a live microphone that only hears silence)
            fail_with: Raise this from start() to simulate device failure
        """
        self.sample_rate = sample_rate
        self.pace_s = pace_s
        self.hold_open = hold_open
        self._frames = [np.asarray(frame, dtype=np.int16) for frame in frames]
        self._fail_with = fail_with
        self._index = 0
        self._offset_ms = 0
        self._running = False
        self.start_count = 0
        self.stop_count = 0

    @classmethod
    def from_amplitudes(cls, amplitudes: Iterable[float], chunk_ms: int = 100, sample_rate: int = 16000, **kwargs) -> "ScriptedAudioSource":
        """Build a source from per-chunk tone amplitudes (0.0 = digital silence)."""
        frames = [tone(amplitude, chunk_ms, sample_rate) for amplitude in amplitudes]
        return cls(frames, sample_rate, **kwargs)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def released(self) -> bool:
        return not self._running and self.stop_count > 0

    async def start(self) -> None:
        self.start_count += 1
        if self._fail_with is not None:
            raise MicrophoneAccessError(str(self._fail_with)) from self._fail_with
        self._running = True

    async def read_chunk(self) -> AudioChunk | None:
        if not self._running:
            return None

        if self.pace_s:
            await asyncio.sleep(self.pace_s)
        else:
            await asyncio.sleep(0)

        if not self._running:
            return None

        if self._index >= len(self._frames):
            if not self.hold_open:
                self._running = False
            else:
                await asyncio.sleep(0.005)
            return None

        frame = self._frames[self._index]
        self._index += 1
        duration_ms = int(len(frame) * 1000 / self.sample_rate)
        chunk = AudioChunk(
            chunk_id=f"scripted-{self._index}",
            data=frame.tobytes(),
            sample_rate=self.sample_rate,
            duration_ms=duration_ms,
            offset_ms=self._offset_ms,
            source="scripted",
        )
        self._offset_ms += duration_ms
        return chunk

    async def stop(self) -> None:
        self.stop_count += 1
        self._running = False

    @property
    def remaining(self) -> int:
        """Get number of chunks not yet delivered."""
        return max(0, len(self._frames) - self._index)
