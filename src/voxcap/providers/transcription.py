"""Remote transcription service client.

Sends one base64-encoded clip per request and returns the transcribed text.

Request:  {"audio": "<base64 clip>", "language": "primary" | "secondary"}
Response: {"text": "..."}
"""

import logging

import httpx
from pydantic import BaseModel, ValidationError

from voxcap.config import get_config
from voxcap.core.errors import EmptyTranscriptError, TranscriptionError
from voxcap.core.session import Language

logger = logging.getLogger(__name__)


class TranscriptionRequest(BaseModel):
    audio: str
    language: Language


class TranscriptionResponse(BaseModel):
    text: str | None = None


class TranscriptionClient:
    """Async client for the remote transcription endpoint."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transcription client.

        Args:
            url: Endpoint URL (defaults to config TRANSCRIBE_URL)
            api_key: Bearer token (defaults to config TRANSCRIBE_API_KEY)
            timeout: Request timeout in seconds (defaults to config)
            client: Preconfigured httpx client, e.g. with a mock transport
        """
        config = get_config()

        self._url = url if url is not None else config.TRANSCRIBE_URL
        self._api_key = api_key if api_key is not None else config.TRANSCRIBE_API_KEY
        self._timeout = timeout if timeout is not None else config.TRANSCRIBE_TIMEOUT_S
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(headers=headers, timeout=self._timeout)
        return self._client

    async def transcribe(self, audio_b64: str, language: Language) -> str:
        """Transcribe one clip.

        Args:
            audio_b64: Base64-encoded audio file
            language: Spoken language of the clip

        Returns:
            The transcribed text, stripped.

        Raises:
            TranscriptionError: on transport failure, error status, or a
                malformed response.
            EmptyTranscriptError: when the response carries no text.
        """
        if not self._url:
            raise TranscriptionError("Transcription URL not configured")

        request = TranscriptionRequest(audio=audio_b64, language=language)
        client = self._get_client()

        try:
            response = await client.post(self._url, json=request.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TranscriptionError(f"Transcription failed: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request error: {e}") from e

        try:
            body = TranscriptionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TranscriptionError(f"Invalid transcription response: {e}") from e

        text = (body.text or "").strip()
        if not text:
            raise EmptyTranscriptError("Transcription response contained no text")

        logger.debug(f"Transcribed {len(audio_b64)} b64 chars -> {text[:50]!r}")
        return text

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
