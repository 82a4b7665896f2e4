"""
Voice Activity Detection for endpointing

Decides from a live stream of energy samples when the speaker has finished.
The level of each sample window is computed the way a browser analyser node
reports it: a windowed FFT mapped onto byte magnitudes, averaged, and converted
to a decibel-like scale relative to the byte maximum.
"""

import logging
from dataclasses import dataclass

import numpy as np

from voxcap.config import get_config

logger = logging.getLogger(__name__)

LEVEL_FLOOR_DB = -100.0
ANALYSER_MIN_DB = -100.0
ANALYSER_MAX_DB = -30.0
BYTE_MAX = 255.0


def frequency_snapshot(
    samples: np.ndarray,
    fft_size: int = 512,
    min_db: float = ANALYSER_MIN_DB,
    max_db: float = ANALYSER_MAX_DB,
) -> np.ndarray:
    """Byte-scaled magnitude spectrum of the most recent ``fft_size`` samples.

    Args:
        samples: int16 PCM
        fft_size: Analysis window length (power of two)
        min_db: Magnitude mapped to byte 0
        max_db: Magnitude mapped to byte 255

    Returns:
        uint8 array of ``fft_size // 2`` frequency bins.
    """
    window = np.asarray(samples, dtype=np.float64)[-fft_size:] / 32768.0
    if len(window) < fft_size:
        window = np.pad(window, (fft_size - len(window), 0))

    spectrum = np.fft.rfft(window * np.blackman(fft_size))[: fft_size // 2]
    magnitude = np.abs(spectrum) / fft_size

    with np.errstate(divide="ignore"):
        db = 20 * np.log10(magnitude)

    scaled = BYTE_MAX * (db - min_db) / (max_db - min_db)
    return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, BYTE_MAX).astype(np.uint8)


def snapshot_level_db(snapshot: np.ndarray) -> float:
    """Average snapshot amplitude as ``20*log10(avg/255)``, floored for silence."""
    if len(snapshot) == 0:
        return LEVEL_FLOOR_DB
    average = float(np.mean(snapshot))
    if average <= 0:
        return LEVEL_FLOOR_DB
    return max(LEVEL_FLOOR_DB, 20 * np.log10(average / BYTE_MAX))


@dataclass
class VADState:
    """Per-capture endpointing state."""

    silence_threshold_db: float = -45.0
    silence_duration_ms: int = 1500
    has_spoken: bool = False
    silence_started_at: int | None = None
    endpoint_reached: bool = False
    endpoint_silence_ms: int = 0
    last_level_db: float = LEVEL_FLOOR_DB


class VoiceActivityDetector:
    """Silence-after-speech endpoint detector.

    Fed one level per sampling tick (≈100 ms). No endpoint is ever signalled
    before speech has been heard, so pure background noise never stops a
    capture; the caller can still stop manually.
    """

    def __init__(
        self,
        silence_threshold_db: float | None = None,
        silence_duration_ms: int | None = None,
        fft_size: int | None = None,
    ):
        config = get_config()

        self.fft_size = fft_size or config.VAD_FFT_SIZE
        self.state = VADState(
            silence_threshold_db=(
                silence_threshold_db
                if silence_threshold_db is not None
                else config.VAD_SILENCE_THRESHOLD_DB
            ),
            silence_duration_ms=(
                silence_duration_ms
                if silence_duration_ms is not None
                else config.VAD_SILENCE_DURATION_MS
            ),
        )

    def reset(self) -> None:
        """Clear speech/silence tracking for a new capture."""
        self.state = VADState(
            silence_threshold_db=self.state.silence_threshold_db,
            silence_duration_ms=self.state.silence_duration_ms,
        )

    def observe(self, level_db: float, now_ms: int) -> bool:
        """Feed one level sample.

        Args:
            level_db: Level of the sample window
            now_ms: Monotonic time of the sample in milliseconds

        Returns:
            True exactly once, on the sample where the endpoint is reached.
        """
        state = self.state
        state.last_level_db = level_db

        if state.endpoint_reached:
            return False

        if level_db > state.silence_threshold_db:
            state.has_spoken = True
            state.silence_started_at = None
            return False

        if not state.has_spoken:
            return False

        if state.silence_started_at is None:
            state.silence_started_at = now_ms
            return False

        if now_ms - state.silence_started_at >= state.silence_duration_ms:
            state.endpoint_reached = True
            state.endpoint_silence_ms = now_ms - state.silence_started_at
            logger.debug(
                f"Endpoint after {now_ms - state.silence_started_at}ms of silence "
                f"(threshold={state.silence_threshold_db}dB)"
            )
            return True

        return False

    def analyse(self, samples: np.ndarray, now_ms: int) -> bool:
        """Compute the level of a PCM window and feed it to ``observe``."""
        level = snapshot_level_db(frequency_snapshot(samples, self.fft_size))
        return self.observe(level, now_ms)

