"""Shared fixtures for voice-asr tests."""

import asyncio
import json
from typing import Any, Iterable, List, Optional, Union

import pytest

from voice_asr.asr.transport import Transport
from voice_asr.asr.types import Credentials
from voice_asr.audio.types import AudioMetadata, PcmFrame
from voice_asr.errors import TransportClosed

Scripted = Union[str, bytes, dict, BaseException]


def make_frame(pcm: bytes = b"\x00\x00" * 1600) -> PcmFrame:
    return PcmFrame(
        pcm=pcm,
        metadata=AudioMetadata(
            sample_rate=16000,
            channels=1,
            sample_width=2,
            duration_seconds=len(pcm) / 32000.0,
            source_format="audio/wav",
        ),
    )


def result_message(words: Iterable[str], *, status: int, code: int = 0) -> dict:
    return {
        "code": code,
        "message": "success",
        "sid": "iat000001",
        "data": {
            "status": status,
            "result": {"sn": 1, "ls": status == 2, "ws": [{"cw": [{"w": word}]} for word in words]},
        },
    }


class FakeTransport(Transport):
    """Scripted transport: replays inbound items, then closes or hangs."""

    def __init__(self, inbound: Optional[List[Scripted]] = None, *, hang: bool = False) -> None:
        self._inbound = list(inbound or [])
        self._hang = hang
        self.sent: List[dict] = []
        self.closed = False
        self.recv_calls = 0
        self.recv_started = asyncio.Event()

    async def send(self, message: str) -> None:
        if self.closed:
            raise TransportClosed("closed")
        self.sent.append(json.loads(message))

    async def recv(self) -> Union[str, bytes]:
        self.recv_calls += 1
        self.recv_started.set()
        if self._inbound:
            item = self._inbound.pop(0)
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, dict):
                return json.dumps(item, ensure_ascii=False)
            return item
        if self._hang:
            await asyncio.Event().wait()
        raise TransportClosed("connection closed before the terminal status")

    async def close(self) -> None:
        self.closed = True

    @property
    def statuses(self) -> List[Any]:
        return [frame["data"]["status"] for frame in self.sent]


class FakeConnector:
    def __init__(self, *transports: FakeTransport) -> None:
        self._transports = list(transports)
        self.urls: List[str] = []

    async def __call__(self, url: str) -> Transport:
        self.urls.append(url)
        return self._transports.pop(0)

    @property
    def calls(self) -> int:
        return len(self.urls)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(app_id="app123", key_id="key456", key_secret="secret789")


@pytest.fixture
def pcm_frame() -> PcmFrame:
    return make_frame()
