"""Wire format of the IAT JSON-over-WebSocket protocol."""

from __future__ import annotations

import base64
import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ProtocolError
from .types import BusinessOptions, ErrorEvent, FinalEvent, PartialEvent, RecognitionEvent

STATUS_FIRST = 0
STATUS_CONTINUE = 1
STATUS_LAST = 2

AUDIO_FORMAT = "audio/L16;rate=16000"
AUDIO_ENCODING = "raw"


# -----------------------------
# Outbound frames
# -----------------------------
def _audio_data(status: int, audio: bytes) -> Dict[str, Any]:
    return {
        "status": status,
        "format": AUDIO_FORMAT,
        "encoding": AUDIO_ENCODING,
        "audio": base64.b64encode(audio).decode("ascii"),
    }


def build_first_frame(app_id: str, business: BusinessOptions, audio: bytes) -> Dict[str, Any]:
    business_payload: Dict[str, Any] = {
        "language": business.language,
        "domain": business.domain,
        "vad_eos": business.vad_eos,
    }
    if business.accent:
        business_payload["accent"] = business.accent
    if business.dwa:
        business_payload["dwa"] = business.dwa
    return {
        "common": {"app_id": app_id},
        "business": business_payload,
        "data": _audio_data(STATUS_FIRST, audio),
    }


def build_audio_frame(audio: bytes) -> Dict[str, Any]:
    return {"data": _audio_data(STATUS_CONTINUE, audio)}


def build_last_frame() -> Dict[str, Any]:
    return {"data": {"status": STATUS_LAST}}


def encode_frame(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, ensure_ascii=False, separators=(",", ":"))


# -----------------------------
# Inbound frames
# -----------------------------
class WordCandidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    w: str = ""


class WordGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cw: List[WordCandidate] = Field(default_factory=list)


class RecognitionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sn: Optional[int] = None
    ls: Optional[bool] = None
    pgs: Optional[str] = None
    ws: List[WordGroup] = Field(default_factory=list)


class InboundData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[int] = None
    result: Optional[RecognitionPayload] = None


class InboundFrame(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: int
    message: str = ""
    sid: Optional[str] = None
    data: Optional[InboundData] = None

    @property
    def status(self) -> Optional[int]:
        return self.data.status if self.data is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.status == STATUS_LAST

    def fragments(self) -> tuple[str, ...]:
        if self.data is None or self.data.result is None:
            return ()
        return tuple(candidate.w for group in self.data.result.ws for candidate in group.cw if candidate.w)


def parse_frame(raw: str | bytes) -> InboundFrame:
    try:
        return InboundFrame.model_validate_json(raw)
    except ValidationError as exc:
        raise ProtocolError(f"malformed inbound frame: {exc.error_count()} error(s)") from exc


def to_event(frame: InboundFrame) -> RecognitionEvent:
    if frame.code != 0:
        return ErrorEvent(code=frame.code, message=frame.message)
    if frame.is_terminal:
        return FinalEvent(fragments=frame.fragments())
    return PartialEvent(fragments=frame.fragments())


def parse_event(raw: str | bytes) -> RecognitionEvent:
    return to_event(parse_frame(raw))


__all__ = [
    "STATUS_FIRST",
    "STATUS_CONTINUE",
    "STATUS_LAST",
    "AUDIO_FORMAT",
    "AUDIO_ENCODING",
    "build_first_frame",
    "build_audio_frame",
    "build_last_frame",
    "encode_frame",
    "InboundFrame",
    "parse_frame",
    "to_event",
    "parse_event",
]
