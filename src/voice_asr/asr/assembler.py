from __future__ import annotations

from typing import List

from ..errors import AssemblerClosedError, RemoteServiceError
from .protocol import parse_event
from .types import ErrorEvent, FinalEvent, RecognitionEvent


class TranscriptAssembler:
    """Accumulates recognized word fragments from inbound frames.

    Fragments are kept in arrival order. Progressive revisions sent by the
    service are not reconciled, so an overlapping resend is duplicated.
    """

    def __init__(self) -> None:
        self._fragments: List[str] = []
        self._terminal = False
        self._failed = False

    def feed(self, raw: str | bytes) -> RecognitionEvent:
        """Consume one inbound message and return the decoded event."""

        if self._failed:
            raise AssemblerClosedError("assembler stopped after a remote error")
        if self._terminal:
            raise AssemblerClosedError("assembler already received the terminal status")

        event = parse_event(raw)
        if isinstance(event, ErrorEvent):
            self._failed = True
            raise RemoteServiceError(event.code, event.message)

        self._fragments.extend(event.fragments)
        if isinstance(event, FinalEvent):
            self._terminal = True
        return event

    def is_terminal(self) -> bool:
        return self._terminal

    def current_text(self) -> str:
        return "".join(self._fragments)

    @property
    def fragments(self) -> tuple[str, ...]:
        return tuple(self._fragments)


__all__ = ["TranscriptAssembler"]
