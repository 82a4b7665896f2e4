"""Core module - errors, events, messages, sessions."""

from .errors import (
    ErrorEvent,
    ErrorKind,
    EmptyTranscriptError,
    EngineUnavailableError,
    MicrophoneAccessError,
    TranscriptionError,
    VoiceCaptureError,
)
from .events import Event, EventBus, EventType, event_bus
from .messages import (
    CaptureStopped,
    EndpointReached,
    EngineFailed,
    EngineMessage,
    ListeningEnded,
    ListeningStarted,
    MessageSink,
    TranscriptReady,
)
from .session import (
    CaptureSession,
    EngineKind,
    Language,
    SessionState,
    TranscriptResult,
)

__all__ = [
    # Errors
    "ErrorEvent",
    "ErrorKind",
    "EmptyTranscriptError",
    "EngineUnavailableError",
    "MicrophoneAccessError",
    "TranscriptionError",
    "VoiceCaptureError",
    # Events
    "Event",
    "EventBus",
    "EventType",
    "event_bus",
    # Messages
    "CaptureStopped",
    "EndpointReached",
    "EngineFailed",
    "EngineMessage",
    "ListeningEnded",
    "ListeningStarted",
    "MessageSink",
    "TranscriptReady",
    # Session
    "CaptureSession",
    "EngineKind",
    "Language",
    "SessionState",
    "TranscriptResult",
]
