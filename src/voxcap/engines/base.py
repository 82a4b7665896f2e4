"""Common engine interface."""

from abc import ABC, abstractmethod

from voxcap.core.messages import EngineMessage, MessageSink, discard
from voxcap.core.session import EngineKind, Language


class Engine(ABC):
    """A speech-to-text mechanism driven by the orchestrator.

    Engines report everything through messages posted to their sink; they never
    call caller-facing callbacks themselves.
    """

    kind: EngineKind

    def __init__(self, post: MessageSink | None = None):
        self._post_sink: MessageSink = post or discard

    def attach(self, post: MessageSink) -> None:
        """Route this engine's messages to a new sink."""
        self._post_sink = post

    async def _post(self, message: EngineMessage) -> None:
        await self._post_sink(message)

    def is_supported(self) -> bool:
        """Whether the platform can run this engine at all."""
        return True

    @abstractmethod
    async def start(self, language: Language) -> bool:
        """Begin listening. Returns False when the start was rejected."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening and release resources. Idempotent."""
        ...

    @property
    @abstractmethod
    def is_listening(self) -> bool:
        ...

    @property
    def is_processing(self) -> bool:
        return False

    @property
    def is_active(self) -> bool:
        return self.is_listening or self.is_processing

    async def aclose(self) -> None:
        """Release everything the engine holds for process shutdown."""
        await self.stop()
