"""HMAC-SHA256 request signing for the IAT WebSocket handshake."""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Optional
from urllib.parse import urlencode

from ..errors import SigningError
from .types import Credentials, SessionHandshake

SIGNING_ALGORITHM = "hmac-sha256"
SIGNED_HEADERS = "host date request-line"
DEFAULT_MAX_CLOCK_SKEW = timedelta(seconds=300)


def http_date(moment: datetime) -> str:
    """Format ``moment`` as an RFC 7231 IMF-fixdate, e.g. ``Tue, 01 Jan 2030 00:00:00 GMT``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return format_datetime(moment.astimezone(timezone.utc).replace(microsecond=0), usegmt=True)


def canonical_string(hostname: str, date: str, path: str) -> str:
    return f"host: {hostname}\ndate: {date}\nGET {path} HTTP/1.1"


class RequestSigner:
    """Builds signed, time-boxed ``wss://`` URLs.

    The service rejects signatures whose date drifts too far from its own
    clock, so a handshake must be produced right before connecting.
    """

    def __init__(self, *, max_clock_skew: timedelta = DEFAULT_MAX_CLOCK_SKEW) -> None:
        self._max_clock_skew = max_clock_skew

    def sign(
        self,
        credentials: Credentials,
        hostname: str,
        path: str,
        timestamp: Optional[datetime] = None,
    ) -> SessionHandshake:
        if not credentials.key_id or not credentials.key_secret:
            raise SigningError("key id and key secret are required to sign the handshake")

        moment = timestamp or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        date = http_date(moment)

        digest = hmac.new(
            credentials.key_secret.encode("utf-8"),
            canonical_string(hostname, date, path).encode("utf-8"),
            hashlib.sha256,
        ).digest()
        signature = base64.b64encode(digest).decode("ascii")

        authorization_origin = (
            f'api_key="{credentials.key_id}", algorithm="{SIGNING_ALGORITHM}", '
            f'headers="{SIGNED_HEADERS}", signature="{signature}"'
        )
        authorization = base64.b64encode(authorization_origin.encode("utf-8")).decode("ascii")

        query = urlencode({"authorization": authorization, "date": date, "host": hostname})
        return SessionHandshake(
            signed_url=f"wss://{hostname}{path}?{query}",
            date=date,
            expires_at=moment + self._max_clock_skew,
        )


__all__ = ["RequestSigner", "http_date", "canonical_string", "SIGNING_ALGORITHM", "SIGNED_HEADERS"]
