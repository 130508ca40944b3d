from __future__ import annotations

from typing import Optional

from ...audio.types import PcmFrame
from ..types import CONFIDENCE_MOCK, RecognitionResult
from .base import AsrProvider

MOCK_TEXT_ZH = "测试音频识别结果"
MOCK_TEXT_EN = "Sample speech recognition result"


def mock_text_for(language: str) -> str:
    return MOCK_TEXT_ZH if (language or "").strip().lower().startswith("zh") else MOCK_TEXT_EN


class MockAsrProvider(AsrProvider):
    """Fallback used when no credentials are configured; never touches audio or network."""

    name = "mock"
    requires_audio = False

    async def transcribe(self, *, frame: Optional[PcmFrame], language: str) -> RecognitionResult:
        return RecognitionResult(text=mock_text_for(language), confidence=CONFIDENCE_MOCK, provider=self.name)
