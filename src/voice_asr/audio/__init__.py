"""Audio ingestion and normalization."""

from .ingest import AudioIngestor, IngestLimits, PayloadTooLarge
from .normalizer import AudioNormalizer, extension_for_mime
from .types import AudioClip, AudioMetadata, PcmFrame

__all__ = [
    "AudioIngestor",
    "IngestLimits",
    "PayloadTooLarge",
    "AudioNormalizer",
    "extension_for_mime",
    "AudioClip",
    "AudioMetadata",
    "PcmFrame",
]
