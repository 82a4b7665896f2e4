"""Tests for the recorded-clip engine."""

import asyncio
import json

import httpx
import pytest

from voxcap.audio.capture import ScriptedAudioSource
from voxcap.core.errors import ErrorKind, TranscriptionError
from voxcap.core.messages import (
    CaptureStopped,
    EndpointReached,
    EngineFailed,
    ListeningStarted,
    TranscriptReady,
)
from voxcap.core.session import EngineKind, Language
from voxcap.engines.clip import RecordedClipTranscriber
from voxcap.providers.transcription import TranscriptionClient

SPEECH = 0.3
SILENCE = 0.0


def utterance(speech_chunks: int = 5, silence_chunks: int = 20) -> list[float]:
    return [SPEECH] * speech_chunks + [SILENCE] * silence_chunks


class FakeTranscriptionClient:
    """Records calls; optionally blocks until released."""

    def __init__(self, text: str = "hello", error: Exception | None = None, gated: bool = False):
        self.text = text
        self.error = error
        self.calls = []
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()

    async def transcribe(self, audio_b64: str, language: Language) -> str:
        self.calls.append((audio_b64, language))
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text


def make_engine(client, sources, collector) -> RecordedClipTranscriber:
    pending = list(sources)
    return RecordedClipTranscriber(
        client,
        source_factory=lambda: pending.pop(0),
        silence_threshold_db=-45.0,
        silence_duration_ms=1500,
        post=collector,
    )


def outcomes(collector):
    return collector.of(TranscriptReady) + collector.of(EngineFailed)


class TestRecordedClipTranscriber:
    @pytest.mark.asyncio
    async def test_round_trip_through_client(self, collector, wait_until):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"text": "hello"})

        client = TranscriptionClient(
            url="https://transcribe.test/v1",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        source = ScriptedAudioSource.from_amplitudes(utterance())
        engine = make_engine(client, [source], collector)

        assert await engine.start(Language.PRIMARY)
        await wait_until(lambda: outcomes(collector))

        assert collector.types == [
            "ListeningStarted",
            "EndpointReached",
            "CaptureStopped",
            "TranscriptReady",
        ]
        assert collector.of(TranscriptReady)[0].text == "hello"
        assert collector.of(EndpointReached)[0].silence_ms == 1500
        assert bodies[0]["language"] == "primary"
        assert bodies[0]["audio"]

    @pytest.mark.asyncio
    async def test_endpoint_stops_capture_and_releases_device(self, collector, wait_until):
        source = ScriptedAudioSource.from_amplitudes(utterance(5, 25))
        engine = make_engine(FakeTranscriptionClient(), [source], collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: outcomes(collector))

        # Endpoint at the chunk starting 1500ms into the silence
        assert collector.of(CaptureStopped)[0].chunk_count == 21
        assert source.remaining == 9
        assert source.released
        assert engine.vad is None
        assert not engine.is_active

    @pytest.mark.asyncio
    async def test_transcription_failure_posts_one_error(self, collector, wait_until):
        client = FakeTranscriptionClient(error=TranscriptionError("Transcription failed: 503"))
        source = ScriptedAudioSource.from_amplitudes(utterance())
        engine = make_engine(client, [source], collector)

        await engine.start(Language.SECONDARY)
        await wait_until(lambda: outcomes(collector))
        await asyncio.sleep(0.02)

        assert collector.of(TranscriptReady) == []
        failures = collector.of(EngineFailed)
        assert len(failures) == 1
        assert failures[0].kind is ErrorKind.TRANSCRIPTION_SERVICE_ERROR
        assert failures[0].message is None
        assert client.calls[0][1] is Language.SECONDARY

    @pytest.mark.asyncio
    async def test_unexpected_client_failure_posts_one_error(self, collector, wait_until):
        client = FakeTranscriptionClient(error=RuntimeError("connection pool closed"))
        engine = make_engine(client, [ScriptedAudioSource.from_amplitudes(utterance())], collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: outcomes(collector))
        await asyncio.sleep(0.02)

        failures = collector.of(EngineFailed)
        assert len(failures) == 1
        assert failures[0].kind is ErrorKind.TRANSCRIPTION_SERVICE_ERROR
        assert "connection pool closed" in failures[0].detail
        assert not engine.is_processing
        assert collector.of(TranscriptReady) == []

    @pytest.mark.asyncio
    async def test_empty_transcript_message(self, collector, wait_until):
        from voxcap.core.errors import EmptyTranscriptError

        client = FakeTranscriptionClient(error=EmptyTranscriptError("no text"))
        engine = make_engine(client, [ScriptedAudioSource.from_amplitudes(utterance())], collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: outcomes(collector))

        failure = collector.of(EngineFailed)[0]
        assert failure.kind is ErrorKind.TRANSCRIPTION_SERVICE_ERROR
        assert failure.message == "No transcription received"

    @pytest.mark.asyncio
    async def test_microphone_failure(self, collector):
        source = ScriptedAudioSource([], fail_with=OSError("device busy"))
        engine = make_engine(FakeTranscriptionClient(), [source], collector)

        assert not await engine.start(Language.PRIMARY)

        assert collector.types == ["EngineFailed"]
        assert collector.messages[0].kind is ErrorKind.MICROPHONE_ACCESS_ERROR
        assert not engine.is_capturing
        assert source.released

    @pytest.mark.asyncio
    async def test_rejects_start_while_processing(self, collector, wait_until):
        client = FakeTranscriptionClient(gated=True)
        first = ScriptedAudioSource.from_amplitudes(utterance())
        second = ScriptedAudioSource.from_amplitudes(utterance())
        engine = make_engine(client, [first, second], collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: engine.is_processing)

        assert not await engine.start(Language.PRIMARY)
        assert second.start_count == 0

        client.gate.set()
        await wait_until(lambda: outcomes(collector))
        assert not engine.is_processing
        assert len(collector.of(ListeningStarted)) == 1

    @pytest.mark.asyncio
    async def test_manual_stop_transcribes_captured_audio(self, collector, wait_until):
        client = FakeTranscriptionClient()
        source = ScriptedAudioSource.from_amplitudes([SPEECH] * 3, hold_open=True)
        engine = make_engine(client, [source], collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: source.remaining == 0)
        assert engine.is_capturing

        await engine.stop()
        await engine.stop()
        await wait_until(lambda: outcomes(collector))

        assert collector.of(EndpointReached) == []
        assert len(collector.of(CaptureStopped)) == 1
        assert collector.of(TranscriptReady)[0].text == "hello"
        assert source.released

    @pytest.mark.asyncio
    async def test_background_silence_never_endpoints(self, collector, wait_until):
        source = ScriptedAudioSource.from_amplitudes([SILENCE] * 40, hold_open=True)
        engine = make_engine(FakeTranscriptionClient(), [source], collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: source.remaining == 0)
        await asyncio.sleep(0.02)

        assert engine.is_capturing
        assert collector.of(EndpointReached) == []

        await engine.stop()
        await wait_until(lambda: outcomes(collector))

    @pytest.mark.asyncio
    async def test_no_audio_captured(self, collector, wait_until):
        client = FakeTranscriptionClient()
        engine = make_engine(client, [ScriptedAudioSource([])], collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: outcomes(collector))

        failure = collector.of(EngineFailed)[0]
        assert failure.kind is ErrorKind.TRANSCRIPTION_SERVICE_ERROR
        assert "No audio captured" in failure.detail
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, collector):
        engine = make_engine(FakeTranscriptionClient(), [], collector)

        await engine.stop()
        await engine.stop()

        assert collector.messages == []
        assert engine.kind is EngineKind.CLIP
        assert engine.is_supported()

    @pytest.mark.asyncio
    async def test_back_to_back_captures(self, collector, wait_until):
        sources = [ScriptedAudioSource.from_amplitudes(utterance()) for _ in range(2)]
        engine = make_engine(FakeTranscriptionClient(), sources, collector)

        await engine.start(Language.PRIMARY)
        await wait_until(lambda: len(outcomes(collector)) == 1)
        await engine.start(Language.PRIMARY)
        await wait_until(lambda: len(outcomes(collector)) == 2)

        assert all(source.released for source in sources)
        assert len(collector.of(TranscriptReady)) == 2
