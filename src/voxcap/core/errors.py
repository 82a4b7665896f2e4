"""Error taxonomy for voice capture.

Every engine failure is reduced to an ErrorKind before it reaches the caller.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Normalized error kinds."""

    PERMISSION_DENIED = "permission-denied"
    NO_SPEECH_DETECTED = "no-speech-detected"
    CAPTURE_HARDWARE_UNAVAILABLE = "capture-hardware-unavailable"
    NETWORK_UNAVAILABLE = "network-unavailable"
    OPERATION_ABORTED = "operation-aborted"
    TRANSCRIPTION_SERVICE_ERROR = "transcription-service-error"
    MICROPHONE_ACCESS_ERROR = "microphone-access-error"
    OTHER = "other"


# Platform recognizer error codes -> kinds
RECOGNIZER_ERROR_CODES: dict[str, ErrorKind] = {
    "not-allowed": ErrorKind.PERMISSION_DENIED,
    "service-not-allowed": ErrorKind.PERMISSION_DENIED,
    "no-speech": ErrorKind.NO_SPEECH_DETECTED,
    "audio-capture": ErrorKind.CAPTURE_HARDWARE_UNAVAILABLE,
    "network": ErrorKind.NETWORK_UNAVAILABLE,
    "aborted": ErrorKind.OPERATION_ABORTED,
}

RECOVERABLE_KINDS = frozenset({
    ErrorKind.NO_SPEECH_DETECTED,
    ErrorKind.TRANSCRIPTION_SERVICE_ERROR,
})

GENERIC_MESSAGE = "Voice recognition failed. Please try again."

DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.PERMISSION_DENIED: "Please allow microphone access to use voice input.",
    ErrorKind.MICROPHONE_ACCESS_ERROR: "Could not access microphone. Please check permissions.",
    ErrorKind.TRANSCRIPTION_SERVICE_ERROR: "Failed to transcribe audio. Please try again.",
}

FALLBACK_NOTICE = "Switched to recorded voice input after a network failure."


def kind_for_code(code: str) -> ErrorKind:
    """Map a platform recognizer error code to an ErrorKind."""
    return RECOGNIZER_ERROR_CODES.get(code, ErrorKind.OTHER)


@dataclass(frozen=True)
class ErrorEvent:
    """A normalized error delivered to the caller."""

    kind: ErrorKind
    message: str
    recoverable: bool = False

    @classmethod
    def from_kind(cls, kind: ErrorKind, message: str | None = None) -> "ErrorEvent":
        """Build an event, filling in the default human-readable message."""
        return cls(
            kind=kind,
            message=message or DEFAULT_MESSAGES.get(kind, GENERIC_MESSAGE),
            recoverable=kind in RECOVERABLE_KINDS,
        )


class VoiceCaptureError(Exception):
    """Base class for voice capture failures."""

    kind: ErrorKind = ErrorKind.OTHER


class MicrophoneAccessError(VoiceCaptureError):
    """The audio input stream could not be opened."""

    kind = ErrorKind.MICROPHONE_ACCESS_ERROR


class TranscriptionError(VoiceCaptureError):
    """The remote transcription call failed or returned no text."""

    kind = ErrorKind.TRANSCRIPTION_SERVICE_ERROR


class EngineUnavailableError(VoiceCaptureError):
    """The requested engine is not supported on this platform."""


class EmptyTranscriptError(TranscriptionError):
    """The service answered but produced no text."""

    user_message = "No transcription received"
