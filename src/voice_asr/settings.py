"""Runtime configuration helpers for voice-asr."""

from __future__ import annotations

import os
from dataclasses import dataclass

_BOOL_TRUTHY = {"1", "true", "yes", "on"}


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _env_optional(name: str, default: str) -> str | None:
    """Like ``_env_str`` but an explicitly empty value disables the option."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or None


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _BOOL_TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class CredentialSettings:
    app_id: str | None
    api_key: str | None
    api_secret: str | None


@dataclass(frozen=True)
class IatSettings:
    host: str
    path: str
    default_lang: str
    vad_eos_ms: int
    dwa: str | None
    frame_bytes: int
    frame_interval_ms: int
    session_timeout_seconds: float
    connect_timeout_seconds: float
    max_clock_skew_seconds: int
    retry_limit: int
    retry_backoff_seconds: float


@dataclass(frozen=True)
class TranscoderSettings:
    ffmpeg_path: str | None
    bundled_ffmpeg_path: str | None
    max_duration_seconds: float
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class UploadSettings:
    enabled: bool
    max_bytes: int


@dataclass(frozen=True)
class Settings:
    credentials: CredentialSettings
    iat: IatSettings
    transcoder: TranscoderSettings
    upload: UploadSettings


def load_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""

    credential_settings = CredentialSettings(
        app_id=_env_str("XF_APP_ID"),
        api_key=_env_str("XF_API_KEY"),
        api_secret=_env_str("XF_API_SECRET"),
    )

    iat_settings = IatSettings(
        host=_env_str("ASR_HOST", "iat-api.xfyun.cn") or "iat-api.xfyun.cn",
        path=_env_str("ASR_PATH", "/v2/iat") or "/v2/iat",
        default_lang=_env_str("ASR_DEFAULT_LANG", "zh-CN") or "zh-CN",
        vad_eos_ms=_env_int("ASR_VAD_EOS_MS", 1600),
        dwa=_env_optional("ASR_DWA", "wpgs"),
        frame_bytes=_env_int("ASR_FRAME_BYTES", 0),
        frame_interval_ms=_env_int("ASR_FRAME_INTERVAL_MS", 40),
        session_timeout_seconds=_env_float("ASR_SESSION_TIMEOUT_SECONDS", 30.0),
        connect_timeout_seconds=_env_float("ASR_CONNECT_TIMEOUT_SECONDS", 10.0),
        max_clock_skew_seconds=_env_int("ASR_MAX_CLOCK_SKEW_SECONDS", 300),
        retry_limit=max(0, _env_int("ASR_RETRY_LIMIT", 0)),
        retry_backoff_seconds=_env_float("ASR_RETRY_BACKOFF_SECONDS", 0.5),
    )

    transcoder_settings = TranscoderSettings(
        ffmpeg_path=_env_str("ASR_FFMPEG_PATH") or _env_str("FFMPEG_PATH"),
        bundled_ffmpeg_path=_env_str("ASR_FFMPEG_BUNDLED_PATH"),
        max_duration_seconds=_env_float("ASR_MAX_DURATION_SECONDS", 60.0),
        timeout_seconds=_env_float("ASR_TRANSCODE_TIMEOUT_SECONDS", 30.0),
    )

    upload_settings = UploadSettings(
        enabled=_env_bool("ASR_ENABLED", True),
        max_bytes=_env_int("ASR_MAX_BYTES", 5 * 1024 * 1024),
    )

    return Settings(
        credentials=credential_settings,
        iat=iat_settings,
        transcoder=transcoder_settings,
        upload=upload_settings,
    )


settings = load_settings()

__all__ = [
    "Settings",
    "CredentialSettings",
    "IatSettings",
    "TranscoderSettings",
    "UploadSettings",
    "settings",
    "load_settings",
]
