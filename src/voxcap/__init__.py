"""voxcap - voice input capture with endpointing and engine fallback."""

from voxcap.core.orchestrator import CaptureOrchestrator
from voxcap.core.errors import ErrorKind
from voxcap.core.session import EngineKind, Language

__version__ = "0.1.0"

__all__ = [
    "CaptureOrchestrator",
    "EngineKind",
    "ErrorKind",
    "Language",
    "__version__",
]
