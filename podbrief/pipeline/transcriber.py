"""Audio download and speech-to-text for the summary pipeline."""
import logging
import os
from urllib.parse import urlparse

import httpx

from podbrief.core.config import settings
from podbrief.core.openai_client import get_openai_client
from podbrief.utils.retry import with_retry

logger = logging.getLogger(__name__)


class AudioTooLarge(ValueError):
    pass


def download_audio(audio_url: str, *, max_bytes: int | None = None, timeout: float = 60.0) -> bytes:
    """Stream audio_url into memory, refusing anything larger than max_bytes (default MAX_AUDIO_MB).
    Why available: The transcription API takes a file upload, and oversized files must fail fast instead of exhausting memory."""
    parsed = urlparse(audio_url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Audio URL is not HTTP/HTTPS: {audio_url[:80]}")

    limit = max_bytes or settings.max_audio_mb * 1024 * 1024
    buf = bytearray()
    with httpx.stream("GET", audio_url, timeout=timeout, follow_redirects=True) as resp:
        resp.raise_for_status()
        declared = resp.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            raise AudioTooLarge(f"Audio is {int(declared)} bytes (limit {limit})")
        for chunk in resp.iter_bytes():
            buf.extend(chunk)
            if len(buf) > limit:
                raise AudioTooLarge(f"Audio exceeds {limit} bytes")
    return bytes(buf)


def _filename_for(audio_url: str) -> str:
    name = os.path.basename(urlparse(audio_url).path) or "episode.mp3"
    return name if "." in name else name + ".mp3"


def transcribe_audio(audio_url: str, language: str = "en") -> str:
    """Download audio_url and return its transcript text from the transcription model."""
    audio = with_retry(
        lambda: download_audio(audio_url),
        retry_on=(httpx.TransportError,),
        label="audio_download",
    )
    logger.info("audio_downloaded", extra={"bytes": len(audio), "audio_url": audio_url[:80]})

    oc = get_openai_client()
    resp = with_retry(
        lambda: oc.audio.transcriptions.create(
            model=settings.transcription_model,
            file=(_filename_for(audio_url), audio),
            language=language,
        ),
        label="transcription",
    )
    text = (getattr(resp, "text", None) or "").strip()
    if not text:
        raise ValueError("Transcription returned no text")
    return text
