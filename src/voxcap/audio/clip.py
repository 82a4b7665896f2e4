"""Buffered audio clip for the recorded-clip engine."""

import base64
import io
import logging

import numpy as np
import soundfile as sf

from voxcap.audio.capture import AudioChunk
from voxcap.core.errors import TranscriptionError

logger = logging.getLogger(__name__)


class AudioClip:
    """Ordered chunks collected during one capture.

    The clip never leaves the engine that owns it: only the encoded payload is
    handed to the transcription client, and the buffer is dropped afterwards.
    """

    def __init__(self, sample_rate: int = 16000, audio_format: str = "FLAC"):
        self.sample_rate = sample_rate
        self.audio_format = audio_format
        self._chunks: list[AudioChunk] = []
        self._discarded = False

    def append(self, chunk: AudioChunk) -> None:
        if self._discarded:
            raise RuntimeError("Cannot append to a discarded clip")
        if chunk.data:
            self._chunks.append(chunk)

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def is_empty(self) -> bool:
        return not self._chunks

    @property
    def duration_ms(self) -> int:
        return sum(chunk.duration_ms for chunk in self._chunks)

    def assemble(self) -> np.ndarray:
        """Concatenate chunks into one int16 signal."""
        if not self._chunks:
            return np.array([], dtype=np.int16)
        return np.concatenate([chunk.samples for chunk in self._chunks]).astype(np.int16, copy=False)

    def encode(self) -> bytes:
        """Encode the assembled signal as a single audio file."""
        buffer = io.BytesIO()
        try:
            sf.write(buffer, self.assemble(), self.sample_rate, format=self.audio_format, subtype="PCM_16")
        except RuntimeError as e:
            raise TranscriptionError(f"Could not encode clip: {e}") from e
        return buffer.getvalue()

    def to_base64(self) -> str:
        """Transport-safe representation of the encoded clip."""
        payload = base64.b64encode(self.encode()).decode("ascii")
        logger.debug(f"Encoded clip: {len(self)} chunks, {self.duration_ms}ms, {len(payload)} b64 chars")
        return payload

    def discard(self) -> None:
        """Drop buffered audio."""
        self._chunks.clear()
        self._discarded = True
