"""Streaming speech recognition client for the iFlytek IAT service."""

from .assembler import TranscriptAssembler
from .service import RecognitionFacade
from .session import SessionOutcome, SessionState, StreamingSession
from .signer import RequestSigner
from .types import (
    BusinessOptions,
    Credentials,
    ErrorEvent,
    FinalEvent,
    PartialEvent,
    RecognitionEvent,
    RecognitionResult,
    SessionHandshake,
)

__all__ = [
    "RecognitionFacade",
    "StreamingSession",
    "SessionOutcome",
    "SessionState",
    "RequestSigner",
    "TranscriptAssembler",
    "BusinessOptions",
    "Credentials",
    "SessionHandshake",
    "RecognitionEvent",
    "PartialEvent",
    "FinalEvent",
    "ErrorEvent",
    "RecognitionResult",
]
