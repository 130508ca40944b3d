from __future__ import annotations

from dataclasses import dataclass

from .types import AudioClip


@dataclass(slots=True)
class IngestLimits:
    max_bytes: int


class PayloadTooLarge(ValueError):
    """Raised when an uploaded clip exceeds the configured size."""


class AudioIngestor:
    """Turns upload bodies into AudioClip objects."""

    def __init__(self, *, limits: IngestLimits) -> None:
        self._limits = limits

    async def from_bytes(self, *, data: bytes, content_type: str) -> AudioClip:
        self._enforce_size(len(data))
        return AudioClip(data=data, content_type=(content_type or "").strip() or "application/octet-stream")

    def _enforce_size(self, size: int) -> None:
        if size > self._limits.max_bytes:
            raise PayloadTooLarge("audio payload exceeds configured size limit")
