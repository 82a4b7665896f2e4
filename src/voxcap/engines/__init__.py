"""
Speech-to-text engines.

Provides:
- ContinuousRecognizer: streaming recognizer over a RecognitionBackend
- SpeechRecognitionBackend: backend built on the SpeechRecognition library
- MockRecognitionBackend: scripted backend for tests and dry runs
- RecordedClipTranscriber: record, endpoint on silence, transcribe remotely
"""

from voxcap.engines.base import Engine
from voxcap.engines.clip import RecordedClipTranscriber, default_source_factory
from voxcap.engines.continuous import (
    ContinuousRecognizer,
    MockRecognitionBackend,
    RecognitionBackend,
    RecognizerEvent,
    SpeechRecognitionBackend,
)

__all__ = [
    "Engine",
    # Engine A
    "ContinuousRecognizer",
    "RecognitionBackend",
    "RecognizerEvent",
    "SpeechRecognitionBackend",
    "MockRecognitionBackend",
    # Engine B
    "RecordedClipTranscriber",
    "default_source_factory",
]
