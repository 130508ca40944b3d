"""Single-attempt streaming recognition session.

The session is an explicit state machine::

    IDLE -> CONNECTING -> HANDSHAKING -> STREAMING -> AWAITING_FINAL -> CLOSED

with ERROR reachable from every non-terminal state. ``transition`` is a pure
lookup of (state, event) -> (next state, action); ``StreamingSession`` performs
the actions against a transport and feeds inbound frames to a
``TranscriptAssembler`` one at a time, in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..audio.types import PcmFrame
from ..errors import AsrError, InvalidTransition, RecognitionTimeout, TransportError
from .assembler import TranscriptAssembler
from .protocol import build_audio_frame, build_first_frame, build_last_frame, encode_frame
from .signer import RequestSigner
from .transport import Connector, Transport, WebSocketConnector
from .types import BusinessOptions, Credentials

logger = logging.getLogger(__name__)

DEFAULT_HOST = "iat-api.xfyun.cn"
DEFAULT_PATH = "/v2/iat"


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    STREAMING = "streaming"
    AWAITING_FINAL = "awaiting_final"
    CLOSED = "closed"
    ERROR = "error"


class SessionEvent(str, Enum):
    CONNECT = "connect"
    OPENED = "opened"
    AUDIO_PENDING = "audio_pending"
    AUDIO_EXHAUSTED = "audio_exhausted"
    RESULT = "result"
    TERMINAL = "terminal"
    FAILED = "failed"


class SessionAction(str, Enum):
    OPEN_TRANSPORT = "open_transport"
    SEND_FIRST_FRAME = "send_first_frame"
    SEND_AUDIO_FRAME = "send_audio_frame"
    SEND_LAST_FRAME = "send_last_frame"
    ACCUMULATE = "accumulate"
    RESOLVE = "resolve"
    ABORT = "abort"


TERMINAL_STATES = frozenset({SessionState.CLOSED, SessionState.ERROR})

_S = SessionState
_E = SessionEvent
_A = SessionAction

_TRANSITIONS: dict[tuple[SessionState, SessionEvent], tuple[SessionState, SessionAction]] = {
    (_S.IDLE, _E.CONNECT): (_S.CONNECTING, _A.OPEN_TRANSPORT),
    (_S.CONNECTING, _E.OPENED): (_S.HANDSHAKING, _A.SEND_FIRST_FRAME),
    (_S.HANDSHAKING, _E.AUDIO_PENDING): (_S.STREAMING, _A.SEND_AUDIO_FRAME),
    (_S.HANDSHAKING, _E.AUDIO_EXHAUSTED): (_S.AWAITING_FINAL, _A.SEND_LAST_FRAME),
    (_S.STREAMING, _E.AUDIO_PENDING): (_S.STREAMING, _A.SEND_AUDIO_FRAME),
    (_S.STREAMING, _E.AUDIO_EXHAUSTED): (_S.AWAITING_FINAL, _A.SEND_LAST_FRAME),
    (_S.HANDSHAKING, _E.RESULT): (_S.HANDSHAKING, _A.ACCUMULATE),
    (_S.STREAMING, _E.RESULT): (_S.STREAMING, _A.ACCUMULATE),
    (_S.AWAITING_FINAL, _E.RESULT): (_S.AWAITING_FINAL, _A.ACCUMULATE),
    (_S.HANDSHAKING, _E.TERMINAL): (_S.CLOSED, _A.RESOLVE),
    (_S.STREAMING, _E.TERMINAL): (_S.CLOSED, _A.RESOLVE),
    (_S.AWAITING_FINAL, _E.TERMINAL): (_S.CLOSED, _A.RESOLVE),
}


def transition(state: SessionState, event: SessionEvent) -> tuple[SessionState, SessionAction]:
    if event is SessionEvent.FAILED and state not in TERMINAL_STATES:
        return SessionState.ERROR, SessionAction.ABORT
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"event {event.value!r} is not valid in state {state.value!r}") from None


def split_chunks(pcm: bytes, frame_bytes: int) -> List[bytes]:
    if frame_bytes <= 0 or len(pcm) <= frame_bytes:
        return [pcm]
    return [pcm[offset : offset + frame_bytes] for offset in range(0, len(pcm), frame_bytes)]


@dataclass(slots=True)
class SessionOutcome:
    text: str
    state: SessionState
    degraded: bool = False
    error: Optional[AsrError] = None


class StreamingSession:
    """Owns one recognition attempt against the IAT service.

    A transport failure, a malformed frame, a close before the terminal status
    or the hard timeout moves the session to ERROR. Text assembled up to that
    point is returned as a degraded outcome; with no text the error is raised.
    ``RemoteServiceError`` is always raised. The transport is closed on every
    exit path, cancellation included.
    """

    def __init__(
        self,
        *,
        credentials: Credentials,
        business: BusinessOptions,
        connector: Optional[Connector] = None,
        signer: Optional[RequestSigner] = None,
        host: str = DEFAULT_HOST,
        path: str = DEFAULT_PATH,
        timeout: float = 30.0,
        frame_bytes: int = 0,
        frame_interval: float = 0.04,
    ) -> None:
        self._credentials = credentials
        self._business = business
        self._connector = connector or WebSocketConnector()
        self._signer = signer or RequestSigner()
        self._host = host
        self._path = path
        self._timeout = timeout
        self._frame_bytes = frame_bytes
        self._frame_interval = max(0.0, frame_interval)
        self._assembler = TranscriptAssembler()
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def assembler(self) -> TranscriptAssembler:
        return self._assembler

    def _advance(self, event: SessionEvent) -> SessionAction:
        previous = self._state
        self._state, action = transition(previous, event)
        logger.debug(
            "asr.session.transition",
            extra={"from_state": previous.value, "event": event.value, "to_state": self._state.value},
        )
        return action

    async def run(self, frame: PcmFrame) -> SessionOutcome:
        if self._state is not SessionState.IDLE:
            raise InvalidTransition("a session performs exactly one attempt")

        started = time.perf_counter()
        try:
            async with asyncio.timeout(self._timeout):
                outcome = await self._drive(frame.pcm)
        except TimeoutError as exc:
            error = RecognitionTimeout(f"recognition exceeded {self._timeout:.1f}s")
            error.__cause__ = exc
            return self._degrade(error)
        except TransportError as exc:
            return self._degrade(exc)
        except BaseException:
            if self._state not in TERMINAL_STATES:
                self._advance(SessionEvent.FAILED)
            raise

        logger.info(
            "asr.session.closed",
            extra={
                "text_length": len(outcome.text),
                "fragments": len(self._assembler.fragments),
                "elapsed_ms": round((time.perf_counter() - started) * 1000.0, 1),
            },
        )
        return outcome

    def _degrade(self, error: AsrError) -> SessionOutcome:
        if self._state not in TERMINAL_STATES:
            self._advance(SessionEvent.FAILED)
        text = self._assembler.current_text()
        if not text:
            logger.warning("asr.session.failed", extra={"error": type(error).__name__})
            raise error
        logger.warning(
            "asr.session.degraded",
            extra={"error": type(error).__name__, "text_length": len(text)},
        )
        return SessionOutcome(text=text, state=self._state, degraded=True, error=error)

    async def _drive(self, pcm: bytes) -> SessionOutcome:
        transport = await self._open(self._advance(SessionEvent.CONNECT))
        try:
            chunks = split_chunks(pcm, self._frame_bytes)
            logger.info(
                "asr.session.open",
                extra={
                    "host": self._host,
                    "language": self._business.language,
                    "pcm_bytes": len(pcm),
                    "chunks": len(chunks),
                },
            )
            await self._perform(SessionEvent.OPENED, transport, chunks[0])

            sender = asyncio.create_task(self._send_remaining(transport, chunks[1:]))
            try:
                while True:
                    raw = await self._next_message(transport, sender)
                    self._assembler.feed(raw)
                    event = SessionEvent.TERMINAL if self._assembler.is_terminal() else SessionEvent.RESULT
                    if self._advance(event) is SessionAction.RESOLVE:
                        break
            finally:
                if not sender.done():
                    sender.cancel()
                await asyncio.gather(sender, return_exceptions=True)
        finally:
            await self._close(transport)

        return SessionOutcome(text=self._assembler.current_text(), state=self._state)

    async def _send_remaining(self, transport: Transport, chunks: List[bytes]) -> None:
        try:
            for chunk in chunks:
                if self._frame_interval:
                    await asyncio.sleep(self._frame_interval)
                if self._state in TERMINAL_STATES:
                    return
                await self._perform(SessionEvent.AUDIO_PENDING, transport, chunk)
            if self._state in TERMINAL_STATES:
                return
            await self._perform(SessionEvent.AUDIO_EXHAUSTED, transport)
        except TransportError as exc:
            # The receive side reports the close; buffered frames may still carry an error code.
            logger.warning("asr.session.send_failed", extra={"error": type(exc).__name__})

    async def _open(self, action: SessionAction) -> Transport:
        if action is not SessionAction.OPEN_TRANSPORT:
            raise InvalidTransition(f"cannot open a transport for action {action.value!r}")
        handshake = self._signer.sign(self._credentials, self._host, self._path)
        return await self._connector(handshake.signed_url)

    def _frame_for(self, action: SessionAction, chunk: bytes) -> Optional[dict]:
        if action is SessionAction.SEND_FIRST_FRAME:
            return build_first_frame(self._credentials.app_id or "", self._business, chunk)
        if action is SessionAction.SEND_AUDIO_FRAME:
            return build_audio_frame(chunk)
        if action is SessionAction.SEND_LAST_FRAME:
            return build_last_frame()
        return None

    async def _perform(self, event: SessionEvent, transport: Transport, chunk: bytes = b"") -> None:
        """Advance on ``event`` and send whatever frame the resulting action calls for."""

        frame = self._frame_for(self._advance(event), chunk)
        if frame is not None:
            await transport.send(encode_frame(frame))

    async def _next_message(self, transport: Transport, sender: asyncio.Task[None]) -> str | bytes:
        if sender.done():
            _reraise_unexpected(sender)
            return await transport.recv()

        receiver = asyncio.ensure_future(transport.recv())
        try:
            done, _ = await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
            if receiver not in done:
                _reraise_unexpected(sender)
            return await receiver
        finally:
            if not receiver.done():
                receiver.cancel()

    async def _close(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as exc:  # pragma: no cover - close errors do not change the outcome
            logger.debug("asr.session.close_failed", extra={"error": type(exc).__name__})


def _reraise_unexpected(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        raise exc


__all__ = [
    "SessionState",
    "SessionEvent",
    "SessionAction",
    "SessionOutcome",
    "StreamingSession",
    "TERMINAL_STATES",
    "transition",
    "split_chunks",
]
