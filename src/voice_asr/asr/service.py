from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from ..audio import AudioClip, AudioNormalizer, PcmFrame
from ..errors import ProtocolError, RecognitionTimeout, TransportError
from ..settings import Settings
from .providers.base import AsrProvider
from .providers.iflytek import IflytekAsrProvider
from .providers.mock import MockAsrProvider
from .types import Credentials, RecognitionResult

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "zh-CN"


class RecognitionFacade:
    """Public entry point: clip in, ``RecognitionResult`` out.

    Empty clips short-circuit to an empty result. Without a live provider the
    mock fallback answers without transcoding or network access. Otherwise the
    clip is normalized and handed to the provider, retrying only transport
    failures that produced no text, up to ``retry_limit`` extra attempts.
    """

    def __init__(
        self,
        *,
        provider: Optional[AsrProvider] = None,
        normalizer: Optional[AudioNormalizer] = None,
        default_language: str = DEFAULT_LANGUAGE,
        retry_limit: int = 0,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self._provider = provider or MockAsrProvider()
        self._normalizer = normalizer or AudioNormalizer()
        self._default_language = default_language
        self._retry_limit = max(0, retry_limit)
        self._retry_backoff_seconds = max(0.0, retry_backoff_seconds)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "RecognitionFacade":
        credentials = Credentials(
            app_id=cfg.credentials.app_id,
            key_id=cfg.credentials.api_key,
            key_secret=cfg.credentials.api_secret,
        )
        provider: AsrProvider
        if credentials.is_complete():
            provider = IflytekAsrProvider.from_settings(credentials, cfg.iat)
        else:
            logger.warning("asr.credentials.missing", extra={"provider": MockAsrProvider.name})
            provider = MockAsrProvider()
        return cls(
            provider=provider,
            normalizer=AudioNormalizer.from_settings(cfg.transcoder),
            default_language=cfg.iat.default_lang,
            retry_limit=cfg.iat.retry_limit,
            retry_backoff_seconds=cfg.iat.retry_backoff_seconds,
        )

    @property
    def provider(self) -> AsrProvider:
        return self._provider

    async def recognize(self, clip: AudioClip, language: Optional[str] = None) -> RecognitionResult:
        lang = language or self._default_language
        if clip.is_empty:
            return RecognitionResult.empty()
        if not self._provider.requires_audio:
            return await self._provider.transcribe(frame=None, language=lang)

        started = time.perf_counter()
        frame = await self._normalizer.normalize(clip)
        result = await self._transcribe_with_retry(frame, lang)
        logger.info(
            "asr.recognize.done",
            extra={
                "provider": self._provider.name,
                "language": lang,
                "text_length": len(result.text),
                "degraded": result.degraded,
                "latency_ms": round((time.perf_counter() - started) * 1000.0, 1),
            },
        )
        return result

    async def _transcribe_with_retry(self, frame: PcmFrame, language: str) -> RecognitionResult:
        attempt = 0
        total_attempts = self._retry_limit + 1
        while True:
            attempt += 1
            try:
                return await self._provider.transcribe(frame=frame, language=language)
            except ProtocolError:
                raise
            except (TransportError, RecognitionTimeout) as exc:
                if attempt >= total_attempts:
                    raise
                logger.warning(
                    "asr.recognize.retry",
                    extra={"attempt": attempt, "error": type(exc).__name__},
                )
                await asyncio.sleep(self._retry_backoff_seconds * attempt)


__all__ = ["RecognitionFacade", "DEFAULT_LANGUAGE"]
