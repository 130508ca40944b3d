from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

CONFIDENCE_RECOGNIZED = 0.85
CONFIDENCE_EMPTY = 0.0
CONFIDENCE_MOCK = 0.9


@dataclass(frozen=True)
class Credentials:
    app_id: Optional[str] = None
    key_id: Optional[str] = None
    key_secret: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.app_id and self.key_id and self.key_secret)

    def __repr__(self) -> str:
        return f"Credentials(app_id={self.app_id!r}, key_id={self.key_id!r}, key_secret=***)"


@dataclass(frozen=True)
class SessionHandshake:
    """Signed connection material for exactly one recognition attempt."""

    signed_url: str
    date: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(slots=True)
class BusinessOptions:
    """Recognition parameters carried by the first outbound frame."""

    language: str = "zh_cn"
    domain: str = "iat"
    accent: Optional[str] = "mandarin"
    vad_eos: int = 1600
    dwa: Optional[str] = "wpgs"

    @classmethod
    def for_language(cls, lang: Optional[str], *, vad_eos: int = 1600, dwa: Optional[str] = "wpgs") -> "BusinessOptions":
        language = remote_language(lang)
        return cls(
            language=language,
            accent="mandarin" if language == "zh_cn" else None,
            vad_eos=vad_eos,
            dwa=dwa or None,
        )


def remote_language(lang: Optional[str]) -> str:
    """Map a BCP-47 style tag such as ``zh-CN`` onto the service language code."""

    if lang and lang.strip().lower().startswith("en"):
        return "en_us"
    return "zh_cn"


@dataclass(frozen=True)
class PartialEvent:
    fragments: tuple[str, ...] = ()


@dataclass(frozen=True)
class FinalEvent:
    fragments: tuple[str, ...] = ()


@dataclass(frozen=True)
class ErrorEvent:
    code: int
    message: str = ""


RecognitionEvent = Union[PartialEvent, FinalEvent, ErrorEvent]


@dataclass(slots=True)
class RecognitionResult:
    text: str
    confidence: float
    degraded: bool = False
    provider: Optional[str] = None

    @classmethod
    def empty(cls) -> "RecognitionResult":
        return cls(text="", confidence=CONFIDENCE_EMPTY)

    @classmethod
    def from_transcript(cls, text: str, *, degraded: bool = False, provider: Optional[str] = None) -> "RecognitionResult":
        confidence = CONFIDENCE_RECOGNIZED if text else CONFIDENCE_EMPTY
        return cls(text=text, confidence=confidence, degraded=degraded, provider=provider)
