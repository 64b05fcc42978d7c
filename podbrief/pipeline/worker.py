import logging
import time
from typing import Optional

from podbrief.pipeline.summarizer import summarize_transcript
from podbrief.pipeline.transcriber import transcribe_audio
from podbrief.store.catalog import CATALOG, Catalog

logger = logging.getLogger(__name__)


def enqueue_summary(episode_id: str, level: str, language: str, catalog: Optional[Catalog] = None) -> tuple[str, bool]:
    """Mark a summary as queued unless it is ready or already in progress. Returns (status, should_start).
    Why available: Makes POST /episodes/{id}/summaries idempotent so a tracker re-sending the request never starts a second job."""
    return (catalog or CATALOG).claim_summary(episode_id, level, language)


def _ensure_transcript(episode_id: str, audio_url: str, level: str, language: str, catalog: Catalog) -> str:
    """Return the transcript text, transcribing the audio if no ready transcript exists."""
    existing = catalog.get_transcript(episode_id, language)
    if existing is not None and existing.status == "ready" and existing.text:
        return existing.text

    catalog.set_transcript(episode_id, language, "transcribing")
    catalog.set_summary(episode_id, level, language, "transcribing")
    try:
        text = transcribe_audio(audio_url, language=language)
    except Exception as e:
        catalog.set_transcript(episode_id, language, "failed", error=str(e) or type(e).__name__)
        raise
    catalog.set_transcript(episode_id, language, "ready", text=text)
    return text


def run_summary_job(episode_id: str, level: str = "deep", language: str = "en", catalog: Optional[Catalog] = None) -> str:
    """Transcribe (or reuse the transcript) then summarize one episode, writing each state to the catalog. Returns the final summary status.
    Why available: Background task behind POST /episodes/{id}/summaries; the tracker observes its progress through the status endpoint.
    Failures are recorded on the summary row and never raised."""
    catalog = catalog or CATALOG
    episode = catalog.get_episode(episode_id)
    if episode is None:
        logger.error("summary_job_unknown_episode", extra={"episode_id": episode_id})
        return "failed"

    started = time.perf_counter()
    try:
        text = _ensure_transcript(episode_id, episode.audio_url, level, language, catalog)
        catalog.set_summary(episode_id, level, language, "summarizing")
        content = summarize_transcript(text, episode.title, level=level)
    except Exception as e:
        logger.exception("summary_job_failed", extra={"episode_id": episode_id, "level": level})
        catalog.set_summary(episode_id, level, language, "failed", error=str(e) or type(e).__name__)
        return "failed"

    catalog.set_summary(episode_id, level, language, "ready", content=content)
    logger.info(
        "summary_job_done",
        extra={"episode_id": episode_id, "level": level, "duration_s": round(time.perf_counter() - started, 1)},
    )
    return "ready"
