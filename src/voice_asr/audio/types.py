from __future__ import annotations

from dataclasses import dataclass

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_SAMPLE_WIDTH = 2


@dataclass(slots=True)
class AudioClip:
    """Raw audio payload supplied by clients."""

    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def is_empty(self) -> bool:
        return not self.data


@dataclass(slots=True)
class AudioMetadata:
    """Metadata reported by the normalized WAV container."""

    sample_rate: int
    channels: int
    sample_width: int
    duration_seconds: float
    source_format: str


@dataclass(slots=True, frozen=True)
class PcmFrame:
    """16-bit little-endian mono PCM at 16 kHz, produced by AudioNormalizer."""

    pcm: bytes
    metadata: AudioMetadata

    def __len__(self) -> int:
        return len(self.pcm)
