"""Default configuration values for voxcap."""

from typing import Literal

# Languages
VOICE_LANGUAGE: Literal["primary", "secondary"] = "primary"
LANGUAGE_LOCALES = {
    "primary": "en-IN",
    "secondary": "hi-IN",
}

# Engine selection ("continuous" falls back to "clip" when unsupported)
PREFERRED_ENGINE: Literal["continuous", "clip"] = "continuous"

# Endpointing
VAD_SILENCE_THRESHOLD_DB: float = -45.0
VAD_SILENCE_DURATION_MS: int = 1500
VAD_FFT_SIZE: int = 512

# Microphone capture
AUDIO_SAMPLE_RATE: int = 16000
AUDIO_CHUNK_MS: int = 100
AUDIO_DEVICE_INDEX: int | None = None

# Remote transcription service
TRANSCRIBE_URL: str = ""
TRANSCRIBE_API_KEY: str = ""
TRANSCRIBE_TIMEOUT_S: float = 30.0

# Continuous recognizer
RECOGNIZER_NO_SPEECH_TIMEOUT_S: float = 8.0
RECOGNIZER_PHRASE_LIMIT_S: float = 15.0

# All configurable keys (for validation)
CONFIG_KEYS = {
    "VOICE_LANGUAGE",
    "LANGUAGE_LOCALES",
    "PREFERRED_ENGINE",
    "VAD_SILENCE_THRESHOLD_DB",
    "VAD_SILENCE_DURATION_MS",
    "VAD_FFT_SIZE",
    "AUDIO_SAMPLE_RATE",
    "AUDIO_CHUNK_MS",
    "AUDIO_DEVICE_INDEX",
    "TRANSCRIBE_URL",
    "TRANSCRIBE_API_KEY",
    "TRANSCRIBE_TIMEOUT_S",
    "RECOGNIZER_NO_SPEECH_TIMEOUT_S",
    "RECOGNIZER_PHRASE_LIMIT_S",
}
