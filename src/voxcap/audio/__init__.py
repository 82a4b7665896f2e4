"""
Audio capture and endpointing.

Provides:
- MicCapture: microphone capture using sounddevice
- ScriptedAudioSource: scripted chunks for tests and dry runs
- VoiceActivityDetector: silence-after-speech endpoint detection
- AudioClip: buffered clip with FLAC/base64 encoding
"""

from voxcap.audio.capture import (
    AudioCaptureConfig,
    AudioChunk,
    AudioSource,
    MicCapture,
    ScriptedAudioSource,
    tone,
)
from voxcap.audio.clip import AudioClip
from voxcap.audio.vad import (
    VADState,
    VoiceActivityDetector,
    frequency_snapshot,
    snapshot_level_db,
)

__all__ = [
    # Data types
    "AudioChunk",
    "AudioCaptureConfig",
    "AudioClip",
    "VADState",
    # Sources
    "AudioSource",
    "MicCapture",
    "ScriptedAudioSource",
    "tone",
    # Processing
    "VoiceActivityDetector",
    "frequency_snapshot",
    "snapshot_level_db",
]
