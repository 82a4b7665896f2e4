"""Messages posted by engines to the orchestrator."""

from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Union

from voxcap.core.errors import ErrorKind
from voxcap.core.session import EngineKind


@dataclass(frozen=True)
class ListeningStarted:
    engine: EngineKind


@dataclass(frozen=True)
class EndpointReached:
    """The VAD decided the utterance is over."""

    engine: EngineKind
    silence_ms: int


@dataclass(frozen=True)
class CaptureStopped:
    """Recording ended and the clip is being transcribed."""

    engine: EngineKind
    chunk_count: int


@dataclass(frozen=True)
class TranscriptReady:
    engine: EngineKind
    text: str


@dataclass(frozen=True)
class EngineFailed:
    engine: EngineKind
    kind: ErrorKind
    detail: str = ""
    message: str | None = None  # User-facing override of the default text


@dataclass(frozen=True)
class ListeningEnded:
    """The engine went idle without producing a transcript or an error."""

    engine: EngineKind


EngineMessage = Union[
    ListeningStarted,
    EndpointReached,
    CaptureStopped,
    TranscriptReady,
    EngineFailed,
    ListeningEnded,
]

# Async sink engines post their messages to
MessageSink = Callable[[EngineMessage], Coroutine[Any, Any, None]]


async def discard(message: EngineMessage) -> None:
    """Sink used by engines that are not yet attached to an orchestrator."""
