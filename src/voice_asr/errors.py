"""Error taxonomy for the speech recognition client."""

from __future__ import annotations

from typing import Optional


class AsrError(RuntimeError):
    """Base class for failures surfaced by a recognition attempt."""


class ConversionError(AsrError):
    """Raised when the transcoder fails or produces unusable output."""

    def __init__(self, message: str, *, stderr: Optional[str] = None) -> None:
        super().__init__(message)
        self.stderr = stderr


class SigningError(AsrError):
    """Raised when the handshake cannot be signed because credentials are missing."""


class TransportError(AsrError):
    """Raised when the connection fails or drops before the terminal status."""


class ProtocolError(TransportError):
    """Raised when an inbound frame cannot be parsed."""


class TransportClosed(TransportError):
    """Raised when the remote side closes the connection."""


class RemoteServiceError(AsrError):
    """Raised when the remote service answers with a non-zero code."""

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(f"remote service error {code}: {message}".rstrip(": "))
        self.code = code
        self.message = message


class HandshakeRejected(AsrError):
    """Raised when the service refuses the WebSocket upgrade with a 4xx status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"handshake rejected with HTTP {status_code}")
        self.status_code = status_code


class RecognitionTimeout(AsrError):
    """Raised when an attempt exceeds its hard duration bound."""


class AssemblerClosedError(RuntimeError):
    """Raised when a transcript assembler is fed after it stopped consuming."""


class InvalidTransition(RuntimeError):
    """Raised when a session event is not valid for the current state."""


__all__ = [
    "AsrError",
    "ConversionError",
    "SigningError",
    "TransportError",
    "ProtocolError",
    "TransportClosed",
    "RemoteServiceError",
    "HandshakeRejected",
    "RecognitionTimeout",
    "AssemblerClosedError",
    "InvalidTransition",
]
