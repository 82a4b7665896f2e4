"""
Engine A: continuous recognizer

Wraps a platform streaming recognizer that segments the utterance itself and
returns one finalized transcript per listening period. The platform side is
an adapter (RecognitionBackend) that reports result / error / end events; this
module turns those into engine messages.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Literal

from voxcap.config import get_config
from voxcap.core.errors import EngineUnavailableError, ErrorKind, kind_for_code
from voxcap.core.messages import (
    EngineFailed,
    EngineMessage,
    ListeningEnded,
    ListeningStarted,
    MessageSink,
    TranscriptReady,
)
from voxcap.core.session import EngineKind, Language
from voxcap.engines.base import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognizerEvent:
    """An event reported by a platform recognizer."""

    type: Literal["result", "error", "end"]
    text: str = ""
    code: str = ""

    @classmethod
    def result(cls, text: str) -> "RecognizerEvent":
        return cls("result", text=text)

    @classmethod
    def error(cls, code: str, message: str = "") -> "RecognizerEvent":
        return cls("error", text=message, code=code)

    @classmethod
    def end(cls) -> "RecognizerEvent":
        return cls("end")


# Must be invoked on the event loop thread
RecognizerCallback = Callable[[RecognizerEvent], None]


class RecognitionBackend(ABC):
    """Platform continuous-recognition capability.

    After ``start`` the backend reports at most one ``result`` or ``error``,
    followed by exactly one ``end`` once the microphone has been released.
    Error codes follow the browser speech API names: ``not-allowed``,
    ``no-speech``, ``audio-capture``, ``network``, ``aborted``.
    """

    @abstractmethod
    def is_supported(self) -> bool:
        ...

    @abstractmethod
    def start(self, locale: str, on_event: RecognizerCallback) -> None:
        ...

    @abstractmethod
    def abort(self) -> None:
        """Stop immediately; reports ``aborted`` then ``end`` if listening."""
        ...


class ContinuousRecognizer(Engine):
    """Engine A.

    States: idle → listening → (transcript | error) → idle. Backend events are
    queued and handled in order by a single pump task; the outcome is held
    until the backend's ``end`` so it is only posted after the device has been
    released.
    """

    kind = EngineKind.CONTINUOUS

    def __init__(
        self,
        backend: RecognitionBackend | None = None,
        locales: dict[str, str] | None = None,
        post: MessageSink | None = None,
        stop_timeout_s: float = 2.0,
    ):
        super().__init__(post)
        config = get_config()

        self._backend = backend or SpeechRecognitionBackend()
        self._locales = locales or config.LANGUAGE_LOCALES
        self._stop_timeout_s = stop_timeout_s

        self._events: asyncio.Queue[tuple[int, RecognizerEvent]] | None = None
        self._pump_task: asyncio.Task | None = None
        self._generation = 0
        self._listening = False
        self._outcome: EngineMessage | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def backend(self) -> RecognitionBackend:
        return self._backend

    @property
    def is_listening(self) -> bool:
        return self._listening

    def is_supported(self) -> bool:
        return self._backend.is_supported()

    def locale_for(self, language: Language) -> str:
        return self._locales.get(language.value, language.value)

    async def start(self, language: Language) -> bool:
        """Start one listening period."""
        if self._listening:
            logger.warning("Continuous recognizer already listening")
            return False
        if not self.is_supported():
            raise EngineUnavailableError("Continuous recognition is not supported on this platform")

        self._ensure_pump()
        self._generation += 1
        generation = self._generation
        self._listening = True
        self._outcome = None
        self._idle.clear()

        await self._post(ListeningStarted(self.kind))
        locale = self.locale_for(language)
        logger.info(f"Continuous recognition started (locale={locale})")
        self._backend.start(locale, lambda event: self._enqueue(generation, event))
        return True

    async def stop(self) -> None:
        """Abort the listening period; no-op when idle."""
        if not self._listening:
            return

        self._backend.abort()
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=self._stop_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Recognizer did not report end after abort; forcing idle")
            self._generation += 1
            self._outcome = EngineFailed(self.kind, ErrorKind.OPERATION_ABORTED, "forced stop")
            await self._finish()

    def _ensure_pump(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._events = asyncio.Queue()
            self._pump_task = asyncio.create_task(self._pump())

    def _enqueue(self, generation: int, event: RecognizerEvent) -> None:
        if self._events is not None:
            self._events.put_nowait((generation, event))

    async def _pump(self) -> None:
        """Handle backend events one at a time, in arrival order."""
        while True:
            generation, event = await self._events.get()
            try:
                await self._handle(generation, event)
            finally:
                self._events.task_done()

    async def _handle(self, generation: int, event: RecognizerEvent) -> None:
        if generation != self._generation or not self._listening:
            logger.debug(f"Dropping stale recognizer event {event.type}")
            return

        if event.type == "result":
            if self._outcome is None:
                text = event.text.strip()
                if text:
                    self._outcome = TranscriptReady(self.kind, text)
                else:
                    self._outcome = EngineFailed(self.kind, ErrorKind.NO_SPEECH_DETECTED, "empty result")

        elif event.type == "error":
            if self._outcome is None:
                kind = kind_for_code(event.code)
                if kind is not ErrorKind.OPERATION_ABORTED:
                    logger.error(f"Recognizer error: {event.code} {event.text}".rstrip())
                self._outcome = EngineFailed(self.kind, kind, event.text or event.code)

        elif event.type == "end":
            await self._finish()

    async def _finish(self) -> None:
        outcome, self._outcome = self._outcome, None
        self._listening = False
        try:
            await self._post(outcome or ListeningEnded(self.kind))
        finally:
            self._idle.set()

    async def aclose(self) -> None:
        await self.stop()
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None


class SpeechRecognitionBackend(RecognitionBackend):
    """Recognizer built on the SpeechRecognition library.

    The library's background listener segments the utterance with its own
    energy-based endpointing; the finished phrase is decoded with the Google
    web recognizer. Listener callbacks run on a worker thread and are
    marshalled back onto the event loop.
    """

    def __init__(
        self,
        no_speech_timeout_s: float | None = None,
        phrase_limit_s: float | None = None,
        device_index: int | None = None,
        sample_rate: int | None = None,
    ):
        config = get_config()

        self._no_speech_timeout_s = (
            no_speech_timeout_s
            if no_speech_timeout_s is not None
            else config.RECOGNIZER_NO_SPEECH_TIMEOUT_S
        )
        self._phrase_limit_s = (
            phrase_limit_s if phrase_limit_s is not None else config.RECOGNIZER_PHRASE_LIMIT_S
        )
        self._device_index = device_index if device_index is not None else config.AUDIO_DEVICE_INDEX
        self._sample_rate = sample_rate or config.AUDIO_SAMPLE_RATE

        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_event: RecognizerCallback | None = None
        self._stop_listening: Callable[..., None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._session = 0
        self._active = False

    def is_supported(self) -> bool:
        try:
            import speech_recognition as sr

            sr.Microphone.get_pyaudio()
        except (ImportError, AttributeError, OSError):
            return False
        return True

    def start(self, locale: str, on_event: RecognizerCallback) -> None:
        import speech_recognition as sr

        session = self._begin_session(on_event)

        if not sr.Microphone.list_microphone_names():
            self._fail(session, "audio-capture", "No microphone found")
            return

        microphone = sr.Microphone(device_index=self._device_index, sample_rate=self._sample_rate)
        try:
            # Open once on this thread so access failures surface here
            with microphone:
                pass
        except OSError as e:
            self._fail(session, "not-allowed", str(e))
            return

        recognizer = sr.Recognizer()
        recognizer.dynamic_energy_threshold = True

        def on_phrase(rec: "sr.Recognizer", audio: "sr.AudioData") -> None:
            self._recognize(session, rec, audio, locale)

        self._stop_listening = recognizer.listen_in_background(
            microphone, on_phrase, phrase_time_limit=self._phrase_limit_s
        )
        self._arm_no_speech_timer(session)

    def _begin_session(self, on_event: RecognizerCallback) -> int:
        """Invalidate any earlier session and route events to ``on_event``."""
        self._loop = asyncio.get_running_loop()
        self._on_event = on_event
        self._session += 1
        self._active = True
        return self._session

    def _arm_no_speech_timer(self, session: int) -> None:
        self._timer = self._loop.call_later(
            self._no_speech_timeout_s, self._fail, session, "no-speech", "No speech detected"
        )

    def _recognize(self, session: int, recognizer, audio, locale: str) -> None:
        """Decode one phrase (worker thread)."""
        import speech_recognition as sr

        try:
            text = recognizer.recognize_google(audio, language=locale)
        except sr.UnknownValueError:
            event = RecognizerEvent.error("no-speech", "Speech was not understood")
        except sr.RequestError as e:
            event = RecognizerEvent.error("network", str(e))
        else:
            event = RecognizerEvent.result(text)

        self._loop.call_soon_threadsafe(self._complete, session, event)

    def _complete(self, session: int, event: RecognizerEvent) -> None:
        if session != self._session or not self._active:
            return
        self._release()
        self._deliver(event)
        self._deliver(RecognizerEvent.end())

    def _fail(self, session: int, code: str, message: str) -> None:
        self._complete(session, RecognizerEvent.error(code, message))

    def abort(self) -> None:
        if not self._active:
            return
        self._complete(self._session, RecognizerEvent.error("aborted"))

    def _release(self) -> None:
        self._active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._stop_listening is not None:
            self._stop_listening(wait_for_stop=False)
            self._stop_listening = None

    def _deliver(self, event: RecognizerEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)


class MockRecognitionBackend(RecognitionBackend):
    """Scripted recognizer for tests without audio hardware.

    Each ``start`` consumes the next script. A script is a list of events
    delivered on the event loop; ``end`` is appended automatically. An empty
    script keeps listening until ``abort``.
    """

    def __init__(self, *scripts: list[RecognizerEvent], supported: bool = True):
        self._scripts = [list(script) for script in scripts]
        self.supported = supported
        self.started_locales: list[str] = []
        self.abort_count = 0
        self._on_event: RecognizerCallback | None = None
        self._session = 0
        self._active = False

    def is_supported(self) -> bool:
        return self.supported

    def add_script(self, *events: RecognizerEvent) -> None:
        self._scripts.append(list(events))

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self, locale: str, on_event: RecognizerCallback) -> None:
        loop = asyncio.get_running_loop()
        self.started_locales.append(locale)
        self._on_event = on_event
        self._session += 1
        self._active = True
        session = self._session

        script = self._scripts.pop(0) if self._scripts else []
        if script and script[-1].type != "end":
            script.append(RecognizerEvent.end())
        for event in script:
            loop.call_soon(self._deliver, session, event)

    def _deliver(self, session: int, event: RecognizerEvent) -> None:
        if session != self._session or not self._active:
            return
        if event.type == "end":
            self._active = False
        self._on_event(event)

    def abort(self) -> None:
        self.abort_count += 1
        if not self._active:
            return
        self._active = False
        self._on_event(RecognizerEvent.error("aborted"))
        self._on_event(RecognizerEvent.end())
