from __future__ import annotations

import abc
from typing import Optional

from ...audio.types import PcmFrame
from ..types import RecognitionResult


class AsrProvider(abc.ABC):
    """Interface for ASR providers."""

    name: str
    requires_audio: bool = True

    @abc.abstractmethod
    async def transcribe(self, *, frame: Optional[PcmFrame], language: str) -> RecognitionResult:
        """Produce a transcription for the provided PCM audio."""
        raise NotImplementedError
