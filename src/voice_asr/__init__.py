"""voice-asr: audio normalization and streaming speech recognition."""

from .asr import RecognitionFacade, RecognitionResult
from .audio import AudioClip, AudioNormalizer
from .errors import (
    AsrError,
    ConversionError,
    HandshakeRejected,
    RecognitionTimeout,
    RemoteServiceError,
    SigningError,
    TransportError,
)

__all__ = [
    "RecognitionFacade",
    "RecognitionResult",
    "AudioClip",
    "AudioNormalizer",
    "AsrError",
    "ConversionError",
    "HandshakeRejected",
    "RecognitionTimeout",
    "RemoteServiceError",
    "SigningError",
    "TransportError",
]
