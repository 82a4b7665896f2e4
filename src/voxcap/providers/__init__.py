"""Remote service providers for voxcap."""

from .transcription import TranscriptionClient, TranscriptionRequest, TranscriptionResponse

__all__ = [
    "TranscriptionClient",
    "TranscriptionRequest",
    "TranscriptionResponse",
]
