"""
Capture Orchestrator

The single entry point for voice input. Hides which engine is listening,
applies the network fallback from the continuous recognizer to the clip
engine, and turns engine messages into caller callbacks.
"""

import logging
from typing import TYPE_CHECKING, Callable

from voxcap.config import get_config
from voxcap.core.errors import (
    FALLBACK_NOTICE,
    EngineUnavailableError,
    ErrorEvent,
    ErrorKind,
)
from voxcap.core.events import Event, EventBus, EventType, event_bus
from voxcap.core.messages import (
    CaptureStopped,
    EndpointReached,
    EngineFailed,
    EngineMessage,
    ListeningEnded,
    ListeningStarted,
    TranscriptReady,
)
from voxcap.core.session import (
    CaptureSession,
    EngineKind,
    Language,
    SessionState,
    TranscriptResult,
)

if TYPE_CHECKING:
    from voxcap.engines.base import Engine
    from voxcap.engines.clip import RecordedClipTranscriber
    from voxcap.engines.continuous import ContinuousRecognizer

logger = logging.getLogger(__name__)

ResultHandler = Callable[[str], None]
ErrorHandler = Callable[[ErrorKind, str], None]
NoticeHandler = Callable[[str], None]


class CaptureOrchestrator:
    """Runs at most one capture session at a time over two engines.

    Usage:
        orchestrator = CaptureOrchestrator(
            clip_engine,
            continuous_engine,
            on_result=lambda text: print(text),
            on_error=lambda kind, message: print(kind, message),
        )
        await orchestrator.start()
        ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        clip_engine: "RecordedClipTranscriber",
        continuous_engine: "ContinuousRecognizer | None" = None,
        on_result: ResultHandler | None = None,
        on_error: ErrorHandler | None = None,
        on_notice: NoticeHandler | None = None,
        language: Language | None = None,
        preferred_engine: EngineKind | None = None,
        bus: EventBus | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            clip_engine: Engine B, always available
            continuous_engine: Engine A, used when the platform supports it
            on_result: Called with the transcript of each successful session
            on_error: Called with (kind, message) for user-facing errors
            on_notice: Called with informational notices (engine switch)
            language: Initial language (defaults to config)
            preferred_engine: Initial engine (defaults to config)
            bus: Event bus for voice events (defaults to the global bus)
        """
        config = get_config()

        self._engines: dict[EngineKind, "Engine"] = {EngineKind.CLIP: clip_engine}
        if continuous_engine is not None:
            self._engines[EngineKind.CONTINUOUS] = continuous_engine
        for engine in self._engines.values():
            engine.attach(self._handle)

        self._on_result = on_result
        self._on_error = on_error
        self._on_notice = on_notice
        self._bus = bus or event_bus

        self._language = language or Language(config.VOICE_LANGUAGE)

        preferred = preferred_engine or EngineKind(config.PREFERRED_ENGINE)
        if preferred is EngineKind.CONTINUOUS and not self.continuous_supported:
            logger.info("Continuous recognition unavailable; using clip engine")
            preferred = EngineKind.CLIP
        self._active_engine = preferred

        self._session: CaptureSession | None = None
        self._last_session: CaptureSession | None = None
        self._fallback_engaged = False
        self._pending_transcript: str | None = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def continuous_supported(self) -> bool:
        engine = self._engines.get(EngineKind.CONTINUOUS)
        return engine is not None and engine.is_supported()

    @property
    def active_engine(self) -> EngineKind:
        return self._active_engine

    @property
    def session(self) -> CaptureSession | None:
        return self._session

    @property
    def last_session(self) -> CaptureSession | None:
        return self._last_session

    @property
    def session_active(self) -> bool:
        return self._session is not None

    @property
    def fallback_engaged(self) -> bool:
        return self._fallback_engaged

    @property
    def current_language(self) -> Language:
        return self._language

    @property
    def _current_engine(self) -> "Engine":
        kind = self._session.engine if self._session else self._active_engine
        return self._engines[kind]

    @property
    def is_listening(self) -> bool:
        return self._current_engine.is_listening

    @property
    def is_processing(self) -> bool:
        return self._current_engine.is_processing

    @property
    def is_active(self) -> bool:
        return self.session_active or self.is_listening or self.is_processing

    @property
    def has_pending_transcript(self) -> bool:
        return bool(self._pending_transcript)

    def take_pending_transcript(self) -> str | None:
        """Return the last transcript not yet consumed by the caller, and clear it."""
        text, self._pending_transcript = self._pending_transcript, None
        return text

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Start a capture session on the active engine.

        Returns:
            True if a session was started; False if one is already active or
            the engine refused to start.
        """
        if self._session is not None:
            logger.warning("Capture session already active; start ignored")
            return False
        return await self._begin(self._active_engine)

    async def stop(self) -> None:
        """Stop listening. Safe to call repeatedly and from any state.

        A clip that is already being transcribed still produces its outcome.
        """
        if self._session is not None:
            self._session.metadata["stop_requested"] = True
        for engine in self._engines.values():
            await engine.stop()

    async def toggle(self) -> bool:
        """Start when idle, stop when listening, ignore while processing.

        Returns:
            True if this call started a session.
        """
        if self._session is None:
            return await self.start()
        if self.is_listening:
            await self.stop()
        else:
            logger.info("Transcription in progress; toggle ignored")
        return False

    def select_engine(self, kind: EngineKind) -> bool:
        """Choose the engine for the next session.

        Returns:
            False while a session is active (the choice is left unchanged).

        Raises:
            EngineUnavailableError: if the engine is missing or unsupported.
        """
        if self._session is not None:
            logger.warning("Cannot switch engines during an active session")
            return False
        if kind not in self._engines or (kind is EngineKind.CONTINUOUS and not self.continuous_supported):
            raise EngineUnavailableError(f"Engine '{kind.value}' is not available")
        if kind is not self._active_engine:
            logger.info(f"Engine selected: {kind.value}")
        self._active_engine = kind
        return True

    def toggle_engine(self) -> bool:
        """Flip between the two engines; same rules as ``select_engine``."""
        other = EngineKind.CLIP if self._active_engine is EngineKind.CONTINUOUS else EngineKind.CONTINUOUS
        return self.select_engine(other)

    def set_language(self, language: Language) -> bool:
        """Change the language for the next session. Rejected while a session is active."""
        if self._session is not None:
            logger.warning("Cannot change language during an active session")
            return False
        self._language = language
        return True

    def toggle_language(self) -> bool:
        return self.set_language(self._language.other())

    async def aclose(self) -> None:
        """Stop everything and release engine resources."""
        await self.stop()
        for engine in self._engines.values():
            await engine.aclose()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _begin(self, kind: EngineKind) -> bool:
        return await self._launch(self._open_session(kind))

    def _open_session(self, kind: EngineKind) -> CaptureSession:
        session = CaptureSession(engine=kind, language=self._language)
        self._session = session
        return session

    async def _launch(self, session: CaptureSession) -> bool:
        engine = self._engines[session.engine]
        await self._emit(EventType.VOICE_SESSION_STARTED, session)

        try:
            started = await engine.start(session.language)
        except EngineUnavailableError as e:
            logger.warning(f"{e}; switching to clip engine")
            self._active_engine = EngineKind.CLIP
            self._end_session(session, SessionState.IDLE)
            await self._emit(EventType.VOICE_SESSION_ENDED, session)
            return await self._begin(EngineKind.CLIP)

        if not started and self._session is session:
            # Refused without posting an outcome
            self._end_session(session, SessionState.IDLE)
            await self._emit(EventType.VOICE_SESSION_ENDED, session)

        return started

    def _end_session(
        self,
        session: CaptureSession,
        state: SessionState,
        result: TranscriptResult | None = None,
    ) -> None:
        session.finish(state, result)
        self._last_session = session
        if self._session is session:
            self._session = None

    async def _handle(self, message: EngineMessage) -> None:
        """Single decision point for every engine message."""
        session = self._session
        if session is None or message.engine is not session.engine:
            logger.debug(f"Ignoring {type(message).__name__} outside an active session")
            return

        if isinstance(message, ListeningStarted):
            session.transition(SessionState.LISTENING)

        elif isinstance(message, EndpointReached):
            await self._emit(EventType.VOICE_ENDPOINT, session, silence_ms=message.silence_ms)

        elif isinstance(message, CaptureStopped):
            session.transition(SessionState.PROCESSING)
            session.metadata["chunks"] = message.chunk_count
            await self._emit(EventType.VOICE_PROCESSING, session)

        elif isinstance(message, TranscriptReady):
            result = TranscriptResult(text=message.text, source_engine=message.engine)
            self._end_session(session, SessionState.DONE, result)
            self._pending_transcript = message.text
            logger.debug(f"Transcript ({message.engine.value}): {message.text[:50]}")
            await self._emit(EventType.VOICE_TRANSCRIPT, session, text=message.text)
            self._notify_result(message.text)

        elif isinstance(message, EngineFailed):
            await self._handle_failure(session, message)

        elif isinstance(message, ListeningEnded):
            self._end_session(session, SessionState.IDLE)
            await self._emit(EventType.VOICE_SESSION_ENDED, session)

    async def _handle_failure(self, session: CaptureSession, message: EngineFailed) -> None:
        if message.kind is ErrorKind.OPERATION_ABORTED:
            logger.info("Listening aborted")
            self._end_session(session, SessionState.IDLE)
            await self._emit(EventType.VOICE_SESSION_ENDED, session)
            return

        if message.kind is ErrorKind.NETWORK_UNAVAILABLE and message.engine is EngineKind.CONTINUOUS:
            await self._engage_fallback(session, message.detail)
            return

        error = ErrorEvent.from_kind(message.kind, message.message)
        session.metadata["error"] = error.kind.value
        self._end_session(session, SessionState.ERROR)
        await self._emit(
            EventType.VOICE_ERROR,
            session,
            kind=error.kind.value,
            message=error.message,
            recoverable=error.recoverable,
        )
        self._notify_error(error)

    async def _engage_fallback(self, failed: CaptureSession, detail: str) -> None:
        """Switch to the clip engine for the rest of the process and start capturing."""
        logger.warning(f"Continuous recognition lost the network ({detail}); switching to clip engine")
        self._active_engine = EngineKind.CLIP
        self._fallback_engaged = True

        failed.metadata["fallback"] = True
        self._end_session(failed, SessionState.ERROR)
        # A stop that raced the failure must not reopen the microphone
        resume = not failed.metadata.get("stop_requested", False)
        # The replacement session is open before anything yields
        session = self._open_session(EngineKind.CLIP) if resume else None

        await self._bus.emit_now(
            Event(
                EventType.VOICE_ENGINE_SWITCHED,
                {"from": EngineKind.CONTINUOUS.value, "to": EngineKind.CLIP.value},
            )
        )
        self._notify_notice(FALLBACK_NOTICE)
        if session is None:
            logger.info("Stop requested before the switch; not restarting capture")
            return
        await self._launch(session)

    # ------------------------------------------------------------------
    # Caller notification
    # ------------------------------------------------------------------

    async def _emit(self, event_type: EventType, session: CaptureSession, **data) -> None:
        payload = {
            "session_id": session.id,
            "engine": session.engine.value,
            "language": session.language.value,
            "state": session.state.value,
        }
        payload.update(data)
        await self._bus.emit_now(Event(event_type, payload))

    def _notify_result(self, text: str) -> None:
        if self._on_result:
            try:
                self._on_result(text)
            except Exception as e:
                logger.error(f"Error in result callback: {e}")

    def _notify_error(self, error: ErrorEvent) -> None:
        if self._on_error:
            try:
                self._on_error(error.kind, error.message)
            except Exception as e:
                logger.error(f"Error in error callback: {e}")

    def _notify_notice(self, message: str) -> None:
        if self._on_notice:
            try:
                self._on_notice(message)
            except Exception as e:
                logger.error(f"Error in notice callback: {e}")
