"""
voxcap Configuration

Copy this file to config.py and fill in your values.
config.py is gitignored to keep secrets safe.
"""

# =============================================================================
# Transcription Service
# =============================================================================

TRANSCRIBE_URL = "https://example.invalid/functions/v1/transcribe"
TRANSCRIBE_API_KEY = ""  # Sent as a Bearer token when set
TRANSCRIBE_TIMEOUT_S = 30.0

# =============================================================================
# Languages
# =============================================================================

# Language used for new sessions ("primary" or "secondary")
VOICE_LANGUAGE = "primary"

# Recognizer locale per language
LANGUAGE_LOCALES = {
    "primary": "en-IN",
    "secondary": "hi-IN",
}

# =============================================================================
# Engines
# =============================================================================

# "continuous" uses on-device streaming recognition when available,
# "clip" always records and sends the clip to TRANSCRIBE_URL
PREFERRED_ENGINE = "continuous"

RECOGNIZER_NO_SPEECH_TIMEOUT_S = 8.0   # Give up if nobody speaks
RECOGNIZER_PHRASE_LIMIT_S = 15.0       # Longest single phrase

# =============================================================================
# Endpointing
# =============================================================================

VAD_SILENCE_THRESHOLD_DB = -45.0  # Below this level counts as silence
VAD_SILENCE_DURATION_MS = 1500    # Silence after speech that ends a clip
VAD_FFT_SIZE = 512

# =============================================================================
# Microphone
# =============================================================================

AUDIO_SAMPLE_RATE = 16000
AUDIO_CHUNK_MS = 100
AUDIO_DEVICE_INDEX = None  # None = system default input
