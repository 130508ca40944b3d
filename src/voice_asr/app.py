import base64
import binascii
import logging
import os
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .asr import RecognitionFacade
from .audio import AudioClip, AudioIngestor, IngestLimits, PayloadTooLarge
from .errors import AsrError
from .settings import settings as runtime_settings

app = FastAPI()
logger = logging.getLogger(__name__)

GENERIC_FAILURE_DETAIL = "speech recognition failed"

_upload_cfg = runtime_settings.upload
audio_ingestor = AudioIngestor(limits=IngestLimits(max_bytes=_upload_cfg.max_bytes))
recognizer = RecognitionFacade.from_settings(runtime_settings)


async def _prepare_clip(body: Dict[str, Any]) -> tuple[AudioClip, str | None]:
    raw_audio = body.get("audio")
    if not isinstance(raw_audio, str) or not raw_audio.strip():
        raise HTTPException(status_code=400, detail="audio required")

    content_type = str(body.get("contentType") or "application/octet-stream")
    lang_value = body.get("lang")
    lang = lang_value.strip() if isinstance(lang_value, str) and lang_value.strip() else None

    try:
        audio_bytes = base64.b64decode(raw_audio, validate=True)
    except (binascii.Error, TypeError):
        raise HTTPException(status_code=400, detail="invalid audio encoding")

    try:
        clip = await audio_ingestor.from_bytes(data=audio_bytes, content_type=content_type)
    except PayloadTooLarge:
        raise HTTPException(status_code=413, detail="audio payload too large")
    return clip, lang


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "service": "voice-asr",
        "asr_enabled": _upload_cfg.enabled,
        "asr_provider": recognizer.provider.name if _upload_cfg.enabled else None,
    }


@app.post("/speech/recognize")
async def speech_recognize(request: Request) -> JSONResponse:
    if not _upload_cfg.enabled:
        raise HTTPException(status_code=503, detail="speech recognition disabled")

    try:
        body = await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="invalid json")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="invalid json")

    clip, lang = await _prepare_clip(body)
    logger.info(
        "speech.recognize.received",
        extra={"content_type": clip.content_type, "size_bytes": len(clip.data)},
    )

    try:
        result = await recognizer.recognize(clip, language=lang)
    except AsrError as exc:
        logger.exception("speech.recognize.failed", extra={"error": type(exc).__name__})
        raise HTTPException(status_code=502, detail=GENERIC_FAILURE_DETAIL) from exc

    return JSONResponse({"result": result.text, "confidence": result.confidence})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("voice_asr.app:app", host="0.0.0.0", port=int(os.getenv("PORT", "8100")), reload=False)
