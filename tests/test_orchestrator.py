"""Tests for the capture orchestrator."""

import asyncio
import json

import httpx
import pytest

from voxcap.audio.capture import ScriptedAudioSource
from voxcap.core.errors import (
    DEFAULT_MESSAGES,
    FALLBACK_NOTICE,
    GENERIC_MESSAGE,
    EngineUnavailableError,
    ErrorKind,
)
from voxcap.core.events import EventBus, EventType
from voxcap.core.orchestrator import CaptureOrchestrator
from voxcap.core.session import EngineKind, Language, SessionState
from voxcap.engines.clip import RecordedClipTranscriber
from voxcap.engines.continuous import (
    ContinuousRecognizer,
    MockRecognitionBackend,
    RecognizerEvent,
)
from voxcap.providers.transcription import TranscriptionClient

LOCALES = {"primary": "en-IN", "secondary": "hi-IN"}
UTTERANCE = [0.3] * 5 + [0.0] * 20


class Harness:
    """Orchestrator wired to scripted engines, recording every callback."""

    def __init__(
        self,
        backend: MockRecognitionBackend | None = None,
        sources: list[ScriptedAudioSource] | None = None,
        status: int = 200,
        body: dict | None = None,
        gated: bool = False,
        preferred: EngineKind = EngineKind.CONTINUOUS,
        with_continuous: bool = True,
        on_result=None,
        raise_error: Exception | None = None,
    ):
        self.requests = []
        self.results = []
        self.errors = []
        self.notices = []
        self.events = []
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()

        self.backend = backend or MockRecognitionBackend()
        self.sources = list(sources) if sources is not None else [
            ScriptedAudioSource.from_amplitudes(UTTERANCE) for _ in range(3)
        ]
        self.opened = []

        async def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(json.loads(request.content))
            await self.gate.wait()
            if raise_error is not None:
                raise raise_error
            return httpx.Response(status, json=body if body is not None else {"text": "hello"})

        client = TranscriptionClient(
            url="https://transcribe.test/v1",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        self.clip_engine = RecordedClipTranscriber(
            client,
            source_factory=self._next_source,
            silence_threshold_db=-45.0,
            silence_duration_ms=1500,
        )
        self.continuous_engine = ContinuousRecognizer(self.backend, locales=LOCALES)

        self.bus = EventBus()
        self.bus.subscribe(None, self._record_event)

        self.orchestrator = CaptureOrchestrator(
            self.clip_engine,
            self.continuous_engine if with_continuous else None,
            on_result=on_result or self.results.append,
            on_error=lambda kind, message: self.errors.append((kind, message)),
            on_notice=self.notices.append,
            language=Language.PRIMARY,
            preferred_engine=preferred,
            bus=self.bus,
        )

    def _next_source(self) -> ScriptedAudioSource:
        source = self.sources.pop(0)
        self.opened.append(source)
        return source

    async def _record_event(self, event) -> None:
        self.events.append(event)

    def event_types(self) -> list[EventType]:
        return [event.type for event in self.events]

    async def settle(self, wait_until) -> None:
        await wait_until(lambda: not self.orchestrator.is_active)

    async def close(self) -> None:
        await self.orchestrator.aclose()


class ImmediateNetworkFailureBackend(MockRecognitionBackend):
    """Reports a network failure from inside ``start``."""

    def start(self, locale, on_event) -> None:
        self.started_locales.append(locale)
        on_event(RecognizerEvent.error("network", "offline"))
        on_event(RecognizerEvent.end())


class TestEngineSelection:
    @pytest.mark.asyncio
    async def test_prefers_continuous_when_supported(self):
        harness = Harness()
        assert harness.orchestrator.active_engine is EngineKind.CONTINUOUS
        assert harness.orchestrator.continuous_supported
        await harness.close()

    @pytest.mark.asyncio
    async def test_unsupported_platform_uses_clip(self):
        harness = Harness(backend=MockRecognitionBackend(supported=False))
        assert harness.orchestrator.active_engine is EngineKind.CLIP

        with pytest.raises(EngineUnavailableError):
            harness.orchestrator.select_engine(EngineKind.CONTINUOUS)
        await harness.close()

    @pytest.mark.asyncio
    async def test_toggle_engine_to_unsupported_raises(self):
        harness = Harness(backend=MockRecognitionBackend(supported=False))

        with pytest.raises(EngineUnavailableError):
            harness.orchestrator.toggle_engine()
        assert harness.orchestrator.active_engine is EngineKind.CLIP
        await harness.close()

    @pytest.mark.asyncio
    async def test_support_lost_before_start_uses_clip(self, wait_until):
        harness = Harness()
        harness.backend.supported = False

        assert await harness.orchestrator.start()
        await harness.settle(wait_until)

        types = harness.event_types()
        assert types[:3] == [
            EventType.VOICE_SESSION_STARTED,
            EventType.VOICE_SESSION_ENDED,
            EventType.VOICE_SESSION_STARTED,
        ]
        assert harness.orchestrator.active_engine is EngineKind.CLIP
        assert harness.results == ["hello"]
        assert harness.errors == []
        await harness.close()

    @pytest.mark.asyncio
    async def test_without_continuous_engine(self):
        harness = Harness(with_continuous=False)
        assert harness.orchestrator.active_engine is EngineKind.CLIP
        assert not harness.orchestrator.continuous_supported
        await harness.close()

    @pytest.mark.asyncio
    async def test_toggle_engine(self):
        harness = Harness()
        orchestrator = harness.orchestrator

        assert orchestrator.toggle_engine()
        assert orchestrator.active_engine is EngineKind.CLIP
        assert orchestrator.toggle_engine()
        assert orchestrator.active_engine is EngineKind.CONTINUOUS
        await harness.close()

    @pytest.mark.asyncio
    async def test_engine_locked_during_session(self):
        harness = Harness(backend=MockRecognitionBackend([]))
        orchestrator = harness.orchestrator

        await orchestrator.start()
        assert not orchestrator.select_engine(EngineKind.CLIP)
        assert orchestrator.active_engine is EngineKind.CONTINUOUS

        await orchestrator.stop()
        assert orchestrator.select_engine(EngineKind.CLIP)
        await harness.close()


class TestSessions:
    @pytest.mark.asyncio
    async def test_continuous_transcript(self, wait_until):
        harness = Harness(backend=MockRecognitionBackend([RecognizerEvent.result("hello there")]))
        orchestrator = harness.orchestrator

        assert await orchestrator.start()
        assert orchestrator.is_listening
        await harness.settle(wait_until)

        assert harness.results == ["hello there"]
        assert harness.errors == []
        session = orchestrator.last_session
        assert session.state is SessionState.DONE
        assert session.result.source_engine is EngineKind.CONTINUOUS
        assert session.ended_at is not None
        assert orchestrator.session is None
        await harness.close()

    @pytest.mark.asyncio
    async def test_clip_round_trip(self, wait_until):
        harness = Harness(preferred=EngineKind.CLIP)
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await harness.settle(wait_until)

        assert harness.results == ["hello"]
        assert harness.requests[0]["language"] == "primary"
        assert orchestrator.last_session.state is SessionState.DONE
        assert orchestrator.last_session.metadata["chunks"] == 21
        assert harness.opened[0].released
        await harness.close()

    @pytest.mark.asyncio
    async def test_start_while_active_is_ignored(self):
        harness = Harness(backend=MockRecognitionBackend([], []))
        orchestrator = harness.orchestrator

        assert await orchestrator.start()
        assert not await orchestrator.start()

        assert len(harness.backend.started_locales) == 1
        await harness.close()

    @pytest.mark.asyncio
    async def test_exclusive_capture_across_engines(self, wait_until):
        harness = Harness(preferred=EngineKind.CLIP, gated=True)
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await wait_until(lambda: orchestrator.is_processing)

        assert not await orchestrator.start()
        assert not orchestrator.select_engine(EngineKind.CONTINUOUS)
        assert harness.backend.started_locales == []
        assert len(harness.opened) == 1

        harness.gate.set()
        await harness.settle(wait_until)
        assert harness.results == ["hello"]
        await harness.close()

    @pytest.mark.asyncio
    async def test_pending_transcript(self, wait_until):
        harness = Harness(backend=MockRecognitionBackend([RecognizerEvent.result("draft text")]))
        orchestrator = harness.orchestrator

        assert not orchestrator.has_pending_transcript
        await orchestrator.start()
        await harness.settle(wait_until)

        assert orchestrator.has_pending_transcript
        assert orchestrator.take_pending_transcript() == "draft text"
        assert not orchestrator.has_pending_transcript
        assert orchestrator.take_pending_transcript() is None
        await harness.close()

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_wedge_session(self, wait_until):
        def on_result(text):
            raise RuntimeError("UI exploded")

        harness = Harness(
            backend=MockRecognitionBackend([RecognizerEvent.result("one")], [RecognizerEvent.result("two")]),
            on_result=on_result,
        )
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await harness.settle(wait_until)
        assert await orchestrator.start()
        await harness.settle(wait_until)

        assert orchestrator.take_pending_transcript() == "two"
        await harness.close()


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        harness = Harness(backend=MockRecognitionBackend([]))
        orchestrator = harness.orchestrator

        await orchestrator.stop()
        await orchestrator.start()
        await orchestrator.stop()
        await orchestrator.stop()

        assert harness.backend.abort_count == 1
        assert not orchestrator.is_active
        assert harness.errors == []
        await harness.close()

    @pytest.mark.asyncio
    async def test_abort_is_silent(self):
        harness = Harness(backend=MockRecognitionBackend([]))
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await orchestrator.stop()

        assert harness.errors == []
        assert harness.results == []
        assert orchestrator.last_session.state is SessionState.IDLE
        assert EventType.VOICE_ERROR not in harness.event_types()
        await harness.close()

    @pytest.mark.asyncio
    async def test_stop_racing_network_failure_keeps_microphone_closed(self, wait_until):
        harness = Harness(backend=ImmediateNetworkFailureBackend())
        orchestrator = harness.orchestrator

        assert await orchestrator.start()
        await orchestrator.stop()
        await asyncio.sleep(0.05)

        assert not orchestrator.is_active
        assert harness.opened == []
        assert orchestrator.active_engine is EngineKind.CLIP
        assert orchestrator.fallback_engaged
        assert harness.notices == [FALLBACK_NOTICE]
        assert harness.errors == []
        assert orchestrator.last_session.engine is EngineKind.CONTINUOUS
        assert orchestrator.last_session.metadata["stop_requested"]
        assert harness.event_types().count(EventType.VOICE_SESSION_STARTED) == 1

        # The next start goes straight to the clip engine
        assert await orchestrator.start()
        await harness.settle(wait_until)
        assert harness.results == ["hello"]
        assert len(harness.opened) == 1
        await harness.close()

    @pytest.mark.asyncio
    async def test_stop_during_processing_keeps_outcome(self, wait_until):
        harness = Harness(preferred=EngineKind.CLIP, gated=True)
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await wait_until(lambda: orchestrator.is_processing)
        await orchestrator.stop()
        assert orchestrator.is_processing

        harness.gate.set()
        await harness.settle(wait_until)
        assert harness.results == ["hello"]
        await harness.close()

    @pytest.mark.asyncio
    async def test_toggle(self, wait_until):
        harness = Harness(
            backend=MockRecognitionBackend([]),
            sources=[ScriptedAudioSource.from_amplitudes(UTTERANCE)],
            gated=True,
        )
        orchestrator = harness.orchestrator

        assert await orchestrator.toggle()
        assert orchestrator.is_listening
        assert not await orchestrator.toggle()
        assert not orchestrator.is_active
        assert harness.errors == []

        orchestrator.select_engine(EngineKind.CLIP)
        assert await orchestrator.toggle()
        await wait_until(lambda: orchestrator.is_processing)
        assert not await orchestrator.toggle()
        assert orchestrator.is_processing

        harness.gate.set()
        await harness.settle(wait_until)
        assert harness.results == ["hello"]
        await harness.close()


class TestFallback:
    @pytest.mark.asyncio
    async def test_network_error_switches_to_clip(self, wait_until):
        harness = Harness(backend=MockRecognitionBackend([RecognizerEvent.error("network")]))
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await harness.settle(wait_until)

        assert orchestrator.fallback_engaged
        assert orchestrator.active_engine is EngineKind.CLIP
        assert harness.notices == [FALLBACK_NOTICE]
        assert harness.errors == []
        assert harness.results == ["hello"]
        assert orchestrator.last_session.engine is EngineKind.CLIP
        assert len(harness.opened) == 1
        await harness.close()

    @pytest.mark.asyncio
    async def test_fallback_is_permanent(self, wait_until):
        harness = Harness(
            backend=MockRecognitionBackend(
                [RecognizerEvent.error("network")],
                [RecognizerEvent.result("unused")],
            )
        )
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await harness.settle(wait_until)
        await orchestrator.start()
        await harness.settle(wait_until)

        assert len(harness.backend.started_locales) == 1
        assert harness.results == ["hello", "hello"]
        assert harness.notices == [FALLBACK_NOTICE]
        await harness.close()

    @pytest.mark.asyncio
    async def test_fallback_events(self, wait_until):
        harness = Harness(backend=MockRecognitionBackend([RecognizerEvent.error("network")]))

        await harness.orchestrator.start()
        await harness.settle(wait_until)

        types = harness.event_types()
        switched = types.index(EventType.VOICE_ENGINE_SWITCHED)
        assert types.count(EventType.VOICE_SESSION_STARTED) == 2
        assert types[switched + 1] is EventType.VOICE_SESSION_STARTED
        assert types[-1] is EventType.VOICE_TRANSCRIPT
        await harness.close()

    @pytest.mark.asyncio
    async def test_other_errors_do_not_fall_back(self, wait_until):
        harness = Harness(backend=MockRecognitionBackend([RecognizerEvent.error("not-allowed")]))
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await harness.settle(wait_until)

        assert not orchestrator.fallback_engaged
        assert orchestrator.active_engine is EngineKind.CONTINUOUS
        assert harness.errors == [
            (ErrorKind.PERMISSION_DENIED, DEFAULT_MESSAGES[ErrorKind.PERMISSION_DENIED])
        ]
        assert harness.opened == []
        await harness.close()

    @pytest.mark.asyncio
    async def test_manual_switch_back_after_fallback(self, wait_until):
        harness = Harness(
            backend=MockRecognitionBackend(
                [RecognizerEvent.error("network")],
                [RecognizerEvent.result("back online")],
            )
        )
        orchestrator = harness.orchestrator

        await orchestrator.start()
        await harness.settle(wait_until)
        assert orchestrator.select_engine(EngineKind.CONTINUOUS)
        await orchestrator.start()
        await harness.settle(wait_until)

        assert harness.results == ["hello", "back online"]
        assert orchestrator.fallback_engaged
        await harness.close()


class TestErrors:
    @pytest.mark.asyncio
    async def test_no_speech(self, wait_until):
        harness = Harness(backend=MockRecognitionBackend([RecognizerEvent.error("no-speech")]))

        await harness.orchestrator.start()
        await harness.settle(wait_until)

        assert harness.errors == [(ErrorKind.NO_SPEECH_DETECTED, GENERIC_MESSAGE)]
        error_event = harness.events[-1]
        assert error_event.type is EventType.VOICE_ERROR
        assert error_event.data["recoverable"] is True
        await harness.close()

    @pytest.mark.asyncio
    async def test_transcription_service_error(self, wait_until):
        harness = Harness(preferred=EngineKind.CLIP, status=500)

        await harness.orchestrator.start()
        await harness.settle(wait_until)

        assert harness.errors == [
            (
                ErrorKind.TRANSCRIPTION_SERVICE_ERROR,
                DEFAULT_MESSAGES[ErrorKind.TRANSCRIPTION_SERVICE_ERROR],
            )
        ]
        assert not harness.orchestrator.fallback_engaged
        assert harness.orchestrator.last_session.state is SessionState.ERROR
        await harness.close()

    @pytest.mark.asyncio
    async def test_unexpected_transport_failure(self, wait_until):
        harness = Harness(preferred=EngineKind.CLIP, raise_error=RuntimeError("transport closed"))
        orchestrator = harness.orchestrator

        assert await orchestrator.start()
        await harness.settle(wait_until)

        assert harness.errors == [
            (
                ErrorKind.TRANSCRIPTION_SERVICE_ERROR,
                DEFAULT_MESSAGES[ErrorKind.TRANSCRIPTION_SERVICE_ERROR],
            )
        ]
        assert orchestrator.last_session.state is SessionState.ERROR
        assert not orchestrator.is_processing
        assert await orchestrator.start()
        await harness.close()

    @pytest.mark.asyncio
    async def test_empty_transcription(self, wait_until):
        harness = Harness(preferred=EngineKind.CLIP, body={"text": ""})

        await harness.orchestrator.start()
        await harness.settle(wait_until)

        assert harness.errors == [(ErrorKind.TRANSCRIPTION_SERVICE_ERROR, "No transcription received")]
        await harness.close()

    @pytest.mark.asyncio
    async def test_microphone_access_error(self, wait_until):
        harness = Harness(
            preferred=EngineKind.CLIP,
            sources=[ScriptedAudioSource([], fail_with=OSError("denied"))],
        )

        assert not await harness.orchestrator.start()

        assert harness.errors == [
            (ErrorKind.MICROPHONE_ACCESS_ERROR, DEFAULT_MESSAGES[ErrorKind.MICROPHONE_ACCESS_ERROR])
        ]
        assert not harness.orchestrator.is_active
        await harness.close()


class TestLanguage:
    @pytest.mark.asyncio
    async def test_toggle_language(self, wait_until):
        harness = Harness(backend=MockRecognitionBackend([RecognizerEvent.result("namaste")]))
        orchestrator = harness.orchestrator

        assert orchestrator.toggle_language()
        assert orchestrator.current_language is Language.SECONDARY

        await orchestrator.start()
        await harness.settle(wait_until)

        assert harness.backend.started_locales == ["hi-IN"]
        assert orchestrator.last_session.language is Language.SECONDARY
        await harness.close()

    @pytest.mark.asyncio
    async def test_language_locked_during_session(self):
        harness = Harness(backend=MockRecognitionBackend([]))
        orchestrator = harness.orchestrator

        await orchestrator.start()
        assert not orchestrator.set_language(Language.SECONDARY)
        assert orchestrator.current_language is Language.PRIMARY

        await orchestrator.stop()
        assert orchestrator.set_language(Language.SECONDARY)
        await harness.close()
