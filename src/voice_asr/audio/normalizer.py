from __future__ import annotations

import asyncio
import io
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf

from ..errors import ConversionError
from ..settings import TranscoderSettings
from .types import (
    TARGET_CHANNELS,
    TARGET_SAMPLE_RATE,
    TARGET_SAMPLE_WIDTH,
    AudioClip,
    AudioMetadata,
    PcmFrame,
)

logger = logging.getLogger(__name__)

_MIME_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/webm;codecs=opus": "webm",
    "audio/mp3": "mp3",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/wave": "wav",
    "audio/x-wav": "wav",
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
}
_FALLBACK_EXTENSION = "bin"
_STDERR_TAIL_CHARS = 2000


def extension_for_mime(content_type: Optional[str]) -> str:
    """Map a declared MIME type onto the file extension handed to the transcoder."""

    normalized = "".join((content_type or "").split()).lower()
    if normalized in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[normalized]
    base_type = normalized.split(";", 1)[0]
    return _MIME_EXTENSIONS.get(base_type, _FALLBACK_EXTENSION)


def _read_if_exists(path: Path) -> bytes:
    return path.read_bytes() if path.exists() else b""


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
        await process.wait()


class AudioNormalizer:
    """Transcodes arbitrary clips into 16 kHz mono 16-bit PCM using ffmpeg.

    Every call works inside its own temporary directory which is removed on all
    exit paths, including transcoder failures, timeouts and task cancellation.
    A transcoder still running after ``timeout_seconds`` is killed. Declared WAV
    input is transcoded like everything else since its header cannot be trusted
    to match the required format.
    """

    def __init__(
        self,
        *,
        ffmpeg_path: Optional[str] = None,
        bundled_ffmpeg_path: Optional[str] = None,
        max_duration_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = 30.0,
        temp_dir: Optional[str | os.PathLike[str]] = None,
    ) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._bundled_ffmpeg_path = bundled_ffmpeg_path
        self._max_duration_seconds = max_duration_seconds
        self._timeout_seconds = timeout_seconds
        self._temp_dir = os.fspath(temp_dir) if temp_dir is not None else None

    @classmethod
    def from_settings(cls, cfg: TranscoderSettings | None) -> "AudioNormalizer":
        if cfg is None:
            return cls()
        return cls(
            ffmpeg_path=cfg.ffmpeg_path,
            bundled_ffmpeg_path=cfg.bundled_ffmpeg_path,
            max_duration_seconds=cfg.max_duration_seconds,
            timeout_seconds=cfg.timeout_seconds,
        )

    def resolve_executable(self) -> str:
        if self._ffmpeg_path:
            return self._ffmpeg_path
        if self._bundled_ffmpeg_path and os.path.isfile(self._bundled_ffmpeg_path):
            return self._bundled_ffmpeg_path
        found = shutil.which("ffmpeg")
        if found:
            return found
        raise ConversionError("ffmpeg executable not found")

    async def normalize(self, clip: AudioClip) -> PcmFrame:
        if clip.is_empty:
            raise ConversionError("cannot normalize an empty audio clip")

        executable = self.resolve_executable()
        extension = extension_for_mime(clip.content_type)

        with tempfile.TemporaryDirectory(prefix="voice-asr-", dir=self._temp_dir) as workdir:
            source = Path(workdir) / f"input.{extension}"
            target = Path(workdir) / "output.wav"
            await asyncio.to_thread(source.write_bytes, clip.data)
            await self._transcode(executable, source, target)
            wav_bytes = await asyncio.to_thread(_read_if_exists, target)

        frame = self._decode_wav(wav_bytes, clip.content_type)
        logger.info(
            "audio.normalize.done",
            extra={
                "content_type": clip.content_type,
                "input_bytes": len(clip.data),
                "pcm_bytes": len(frame.pcm),
                "duration_seconds": round(frame.metadata.duration_seconds, 3),
            },
        )
        return frame

    async def _transcode(self, executable: str, source: Path, target: Path) -> None:
        cmd = [
            executable,
            "-y",
            "-loglevel",
            "error",
            "-i",
            str(source),
            "-vn",
            "-acodec",
            "pcm_s16le",
            "-ar",
            str(TARGET_SAMPLE_RATE),
            "-ac",
            str(TARGET_CHANNELS),
            "-f",
            "wav",
            str(target),
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("audio.normalize.spawn_failed", extra={"executable": executable, "error": repr(exc)})
            raise ConversionError(f"failed to start transcoder: {exc}") from exc

        try:
            async with asyncio.timeout(self._timeout_seconds or None):
                _, stderr = await process.communicate()
        except TimeoutError as exc:
            await _terminate(process)
            logger.warning("audio.normalize.timeout", extra={"timeout_seconds": self._timeout_seconds})
            raise ConversionError(f"audio conversion exceeded {self._timeout_seconds:.1f}s") from exc
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        if process.returncode != 0:
            detail = (stderr or b"").decode("utf-8", "ignore").strip()[-_STDERR_TAIL_CHARS:]
            logger.warning(
                "audio.normalize.failed",
                extra={"returncode": process.returncode, "stderr": detail},
            )
            raise ConversionError(
                f"audio conversion failed with exit code {process.returncode}",
                stderr=detail or None,
            )

    def _decode_wav(self, wav_bytes: bytes, source_format: str) -> PcmFrame:
        if not wav_bytes:
            raise ConversionError("transcoder produced no output")
        try:
            with sf.SoundFile(io.BytesIO(wav_bytes)) as handle:
                sample_rate = handle.samplerate
                channels = handle.channels
                subtype = handle.subtype
                samples = handle.read(dtype="int16", always_2d=True)
        except RuntimeError as exc:
            raise ConversionError("transcoder output is not a readable WAV file") from exc

        if sample_rate != TARGET_SAMPLE_RATE or channels != TARGET_CHANNELS or subtype != "PCM_16":
            raise ConversionError(
                f"unexpected transcoder output: {sample_rate} Hz, {channels} channel(s), {subtype}"
            )
        if samples.shape[0] == 0:
            raise ConversionError("transcoder produced no audio samples")

        duration = float(samples.shape[0]) / float(sample_rate)
        if self._max_duration_seconds and duration > self._max_duration_seconds:
            raise ConversionError("audio duration exceeds configured limit")

        pcm = np.ascontiguousarray(samples[:, 0], dtype="<i2").tobytes()
        metadata = AudioMetadata(
            sample_rate=sample_rate,
            channels=channels,
            sample_width=TARGET_SAMPLE_WIDTH,
            duration_seconds=duration,
            source_format=source_format,
        )
        return PcmFrame(pcm=pcm, metadata=metadata)


__all__ = ["AudioNormalizer", "extension_for_mime"]
