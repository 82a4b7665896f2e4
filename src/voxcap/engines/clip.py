"""
Engine B: recorded-clip transcriber

Records the microphone into a buffered clip, lets the VAD decide when the
speaker is done, then sends the encoded clip to the remote transcription
service.
"""

import asyncio
import logging
from typing import Callable

from voxcap.audio.capture import AudioCaptureConfig, AudioSource, MicCapture
from voxcap.audio.clip import AudioClip
from voxcap.audio.vad import VoiceActivityDetector
from voxcap.config import get_config
from voxcap.core.errors import (
    EmptyTranscriptError,
    ErrorKind,
    MicrophoneAccessError,
    TranscriptionError,
)
from voxcap.core.messages import (
    CaptureStopped,
    EndpointReached,
    EngineFailed,
    EngineMessage,
    ListeningStarted,
    MessageSink,
    TranscriptReady,
)
from voxcap.core.session import EngineKind, Language
from voxcap.engines.base import Engine
from voxcap.providers.transcription import TranscriptionClient

logger = logging.getLogger(__name__)


def default_source_factory() -> AudioSource:
    """Open a fresh microphone source configured from the global config."""
    config = get_config()
    return MicCapture(
        AudioCaptureConfig(
            sample_rate=config.AUDIO_SAMPLE_RATE,
            chunk_duration_ms=config.AUDIO_CHUNK_MS,
            device_index=config.AUDIO_DEVICE_INDEX,
        )
    )


class RecordedClipTranscriber(Engine):
    """Capture → endpoint → encode → remote transcription.

    Capturing and processing are separate phases with separate flags. A new
    capture is rejected until the previous clip has been transcribed, so the
    device is never opened twice.
    """

    kind = EngineKind.CLIP

    def __init__(
        self,
        client: TranscriptionClient,
        source_factory: Callable[[], AudioSource] | None = None,
        silence_threshold_db: float | None = None,
        silence_duration_ms: int | None = None,
        post: MessageSink | None = None,
    ):
        """Initialize the clip engine.

        Args:
            client: Remote transcription client
            source_factory: Creates one audio source per capture (defaults to
                the configured microphone)
            silence_threshold_db: VAD speech/silence threshold (defaults to config)
            silence_duration_ms: Silence after speech that ends a capture
                (defaults to config)
            post: Message sink
        """
        super().__init__(post)
        config = get_config()

        self._client = client
        self._source_factory = source_factory or default_source_factory
        self._threshold_db = (
            silence_threshold_db
            if silence_threshold_db is not None
            else config.VAD_SILENCE_THRESHOLD_DB
        )
        self._silence_ms = (
            silence_duration_ms
            if silence_duration_ms is not None
            else config.VAD_SILENCE_DURATION_MS
        )
        self._sample_rate = config.AUDIO_SAMPLE_RATE

        # Per-capture resources; all None while idle
        self._source: AudioSource | None = None
        self._clip: AudioClip | None = None
        self._vad: VoiceActivityDetector | None = None
        self._capture_task: asyncio.Task | None = None
        self._process_task: asyncio.Task | None = None
        self._language = Language.PRIMARY

        self._capturing = False
        self._processing = False

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    @property
    def is_listening(self) -> bool:
        return self._capturing

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def vad(self) -> VoiceActivityDetector | None:
        """The detector of the capture in progress (None while not capturing)."""
        return self._vad

    async def start(self, language: Language) -> bool:
        """Open the microphone and begin buffering + endpointing."""
        if self._capturing or self._processing:
            logger.warning("Clip capture rejected: previous capture still in flight")
            return False

        source = self._source_factory()
        try:
            await source.start()
        except MicrophoneAccessError as e:
            logger.error(f"Microphone access error: {e}")
            await source.stop()
            await self._post(EngineFailed(self.kind, ErrorKind.MICROPHONE_ACCESS_ERROR, str(e)))
            return False

        self._language = language
        self._source = source
        self._clip = AudioClip(sample_rate=self._sample_rate)
        self._vad = VoiceActivityDetector(self._threshold_db, self._silence_ms)
        self._capturing = True

        await self._post(ListeningStarted(self.kind))
        self._capture_task = asyncio.create_task(self._capture_loop())
        logger.info(f"Clip capture started (language={language.value})")
        return True

    async def stop(self) -> None:
        """Stop recording (if recording) and hand the clip to transcription."""
        if self._capturing:
            await self._end_capture()
        else:
            await self._release()

    async def _capture_loop(self) -> None:
        """Buffer chunks and run the VAD on each one."""
        source = self._source
        while self._capturing and source is not None:
            chunk = await source.read_chunk()

            if chunk is None:
                if not source.is_running:
                    logger.info("Audio source ended")
                    break
                continue

            self._clip.append(chunk)
            if self._vad.analyse(chunk.samples, chunk.offset_ms):
                silence = self._vad.state.endpoint_silence_ms
                logger.info(f"Endpoint reached after {silence}ms of silence")
                await self._post(EndpointReached(self.kind, silence))
                break

        if self._capturing:
            await self._end_capture()

    async def _end_capture(self) -> None:
        """Tear down capture resources and start the transcription phase."""
        if not self._capturing:
            return
        self._capturing = False

        clip = self._clip
        self._clip = None
        await self._release()

        self._processing = True
        await self._post(CaptureStopped(self.kind, len(clip)))
        self._process_task = asyncio.create_task(self._transcribe(clip, self._language))

    async def _release(self) -> None:
        """Stop the device, drop the VAD, cancel the capture loop."""
        source, self._source = self._source, None
        self._vad = None

        if source is not None:
            await source.stop()

        task, self._capture_task = self._capture_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _transcribe(self, clip: AudioClip, language: Language) -> None:
        """Encode and send the clip; post exactly one outcome."""
        outcome: EngineMessage
        try:
            if clip.is_empty:
                raise TranscriptionError("No audio captured")
            payload = clip.to_base64()
            text = await self._client.transcribe(payload, language)
        except EmptyTranscriptError as e:
            logger.error(f"Transcription returned no text: {e}")
            outcome = EngineFailed(
                self.kind, ErrorKind.TRANSCRIPTION_SERVICE_ERROR, str(e), e.user_message
            )
        except TranscriptionError as e:
            logger.error(f"Transcription error: {e}")
            outcome = EngineFailed(self.kind, ErrorKind.TRANSCRIPTION_SERVICE_ERROR, str(e))
        except Exception as e:
            logger.exception(f"Unexpected transcription failure: {e}")
            outcome = EngineFailed(self.kind, ErrorKind.TRANSCRIPTION_SERVICE_ERROR, str(e))
        else:
            outcome = TranscriptReady(self.kind, text)
        finally:
            clip.discard()
            self._processing = False
            self._process_task = None

        await self._post(outcome)

    async def aclose(self) -> None:
        """Stop any capture and wait out an in-flight transcription."""
        await self.stop()
        task = self._process_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
