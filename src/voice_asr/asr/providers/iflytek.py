from __future__ import annotations

from datetime import timedelta
from typing import Optional

from ...audio.types import PcmFrame
from ...errors import ConversionError
from ...settings import IatSettings
from ..session import DEFAULT_HOST, DEFAULT_PATH, StreamingSession
from ..signer import RequestSigner
from ..transport import Connector, WebSocketConnector
from ..types import BusinessOptions, Credentials, RecognitionResult
from .base import AsrProvider


class IflytekAsrProvider(AsrProvider):
    """ASR provider backed by the iFlytek IAT streaming WebSocket API.

    Every call opens a fresh ``StreamingSession`` with a handshake signed just
    before connecting; nothing but the read-only credentials is shared between
    concurrent calls.
    """

    name = "iflytek"

    def __init__(
        self,
        *,
        credentials: Credentials,
        host: str = DEFAULT_HOST,
        path: str = DEFAULT_PATH,
        vad_eos_ms: int = 1600,
        dwa: Optional[str] = "wpgs",
        frame_bytes: int = 0,
        frame_interval: float = 0.04,
        session_timeout: float = 30.0,
        signer: Optional[RequestSigner] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self._credentials = credentials
        self._host = host
        self._path = path
        self._vad_eos_ms = vad_eos_ms
        self._dwa = dwa
        self._frame_bytes = frame_bytes
        self._frame_interval = frame_interval
        self._session_timeout = session_timeout
        self._signer = signer or RequestSigner()
        self._connector = connector or WebSocketConnector()

    @classmethod
    def from_settings(cls, credentials: Credentials, cfg: IatSettings) -> "IflytekAsrProvider":
        return cls(
            credentials=credentials,
            host=cfg.host,
            path=cfg.path,
            vad_eos_ms=cfg.vad_eos_ms,
            dwa=cfg.dwa,
            frame_bytes=cfg.frame_bytes,
            frame_interval=cfg.frame_interval_ms / 1000.0,
            session_timeout=cfg.session_timeout_seconds,
            signer=RequestSigner(max_clock_skew=timedelta(seconds=cfg.max_clock_skew_seconds)),
            connector=WebSocketConnector(open_timeout=cfg.connect_timeout_seconds),
        )

    def open_session(self, language: str) -> StreamingSession:
        return StreamingSession(
            credentials=self._credentials,
            business=BusinessOptions.for_language(language, vad_eos=self._vad_eos_ms, dwa=self._dwa),
            connector=self._connector,
            signer=self._signer,
            host=self._host,
            path=self._path,
            timeout=self._session_timeout,
            frame_bytes=self._frame_bytes,
            frame_interval=self._frame_interval,
        )

    async def transcribe(self, *, frame: Optional[PcmFrame], language: str) -> RecognitionResult:
        if frame is None:
            raise ConversionError("iflytek provider requires normalized PCM audio")
        outcome = await self.open_session(language).run(frame)
        return RecognitionResult.from_transcript(outcome.text, degraded=outcome.degraded, provider=self.name)
