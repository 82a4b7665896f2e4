"""Capture session records."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Language(str, Enum):
    """The two supported input languages."""

    PRIMARY = "primary"
    SECONDARY = "secondary"

    def other(self) -> "Language":
        return Language.SECONDARY if self is Language.PRIMARY else Language.PRIMARY


class EngineKind(str, Enum):
    """Speech-to-text engines."""

    CONTINUOUS = "continuous"  # Engine A: on-device streaming recognizer
    CLIP = "clip"  # Engine B: recorded clip + remote transcription


class SessionState(str, Enum):
    """Lifecycle states of a capture session."""

    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    ERROR = "error"
    DONE = "done"


TERMINAL_STATES = frozenset({SessionState.IDLE, SessionState.ERROR, SessionState.DONE})

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.LISTENING, SessionState.ERROR}),
    SessionState.LISTENING: frozenset({
        SessionState.PROCESSING,
        SessionState.DONE,
        SessionState.ERROR,
        SessionState.IDLE,
    }),
    SessionState.PROCESSING: frozenset({SessionState.DONE, SessionState.ERROR}),
    SessionState.ERROR: frozenset(),
    SessionState.DONE: frozenset(),
}


@dataclass(frozen=True)
class TranscriptResult:
    """Text produced by one successful session."""

    text: str
    source_engine: EngineKind


@dataclass
class CaptureSession:
    """One bounded listen-to-result lifecycle.

    A session is created idle, moves through listening (and processing for the
    clip engine), and ends in done, error, or back in idle when the capture was
    aborted without an outcome.
    """

    engine: EngineKind
    language: Language
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: SessionState = SessionState.IDLE
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: datetime | None = None
    result: TranscriptResult | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def transition(self, state: SessionState) -> None:
        """Move to a new state, rejecting transitions the lifecycle does not allow."""
        if state == self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid session transition {self.state.value} -> {state.value}")
        self.state = state

    def finish(self, state: SessionState, result: TranscriptResult | None = None) -> None:
        """End the session in a terminal state."""
        if state not in TERMINAL_STATES:
            raise ValueError(f"{state.value} is not a terminal state")
        self.transition(state)
        self.result = result
        self.ended_at = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "engine": self.engine.value,
            "language": self.language.value,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "text": self.result.text if self.result else None,
            "metadata": self.metadata,
        }
