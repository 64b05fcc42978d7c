import logging
from datetime import datetime, timezone
from urllib.parse import urlparse

from fastapi import (
    FastAPI,
    HTTPException,
    Request,
    BackgroundTasks,
)

from podbrief.core.config import settings
from podbrief.models.schemas import (
    ImportEpisodeRequest,
    ImportEpisodeResponse,
    EpisodeResponse,
    EpisodeStatusResponse,
    SummaryRequest,
    SummaryRequestResponse,
    EpisodeSummariesResponse,
    SummaryLevel,
    SummaryLevels,
    SummaryState,
    TranscriptState,
    AudioUrlsRequest,
    SummaryAvailability,
    CheckSummariesResponse,
    BatchLookupItem,
    BatchLookupResponse,
    LimitsResponse,
)
from podbrief.store.catalog import CATALOG, Summary, normalize_published_at
from podbrief.pipeline.status import best_status, overall_status
from podbrief.pipeline.worker import enqueue_summary, run_summary_job
from podbrief.guardrails.errors import as_http_500
from podbrief.guardrails.rate_limit import SimpleRateLimiter
from podbrief.observability.middleware import RequestTimingMiddleware, get_request_id

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)


# -------------------------
# App setup
# -------------------------

app = FastAPI(title="PodBrief Episode Summaries")
app.add_middleware(RequestTimingMiddleware)

rate_limiter = SimpleRateLimiter(
    max_requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window_seconds,
)

MAX_TITLE_CHARS = 1000
MAX_DESCRIPTION_CHARS = 50000


def _validate_import(req: ImportEpisodeRequest) -> None:
    """Reject malformed import payloads with 400 before anything is written.
    Why available: Import data comes from third-party catalogs; bad titles, dates or audio URLs would poison the catalog and the transcription job."""
    ep = req.episode
    if not ep.title or not ep.title.strip() or len(ep.title) > MAX_TITLE_CHARS:
        raise HTTPException(status_code=400, detail="Invalid episode title")
    if ep.description and len(ep.description) > MAX_DESCRIPTION_CHARS:
        raise HTTPException(status_code=400, detail="Description too long")
    if ep.audio_url:
        parsed = urlparse(ep.audio_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise HTTPException(status_code=400, detail="audioUrl must be HTTP/HTTPS")
    if ep.published_at:
        try:
            normalize_published_at(ep.published_at)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid publishedAt date")
    if not req.podcast.name or not req.podcast.name.strip():
        raise HTTPException(status_code=400, detail="Invalid podcast name")


def _validate_audio_urls(urls: list, limit: int) -> list:
    if not urls:
        raise HTTPException(status_code=400, detail="audioUrls array is required")
    if len(urls) > limit:
        raise HTTPException(status_code=400, detail=f"Maximum {limit} audio URLs allowed per request")
    if not all(isinstance(u, str) and u for u in urls):
        raise HTTPException(status_code=400, detail="audioUrls must be non-empty strings")
    return urls


def _require_episode(episode_id: str):
    episode = CATALOG.get_episode(episode_id)
    if episode is None:
        raise HTTPException(status_code=404, detail="Episode not found")
    return episode


def _episode_status(episode_id: str, language: str, level: str = "deep") -> str:
    transcript = CATALOG.get_transcript(episode_id, language)
    summary = CATALOG.get_summary(episode_id, level, language)
    return overall_status(transcript.status if transcript else None, summary.status if summary else None)


def _summary_state(s: Summary | None) -> SummaryState | None:
    if s is None:
        return None
    return SummaryState(
        status=s.status,
        content=s.content if s.status == "ready" else None,
        updated_at=_iso(s.updated_at),
        error=s.error,
    )


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


# -------------------------
# Root
# -------------------------

@app.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL."""
    return {"app": "PodBrief Episode Summaries", "docs": "/docs"}


@app.get("/health")
def health():
    """Returns 200 OK with status. Used by load balancers and probes."""
    return {"status": "ok"}


@app.get("/limits", response_model=LimitsResponse)
def limits(request: Request):
    """Returns batch limits and the polling policy clients are expected to follow.
    Why available: Lets trackers size lookup batches and poll intervals before they hit 400/429."""
    rate_limiter.check(request)
    return LimitsResponse(
        max_check_urls=settings.max_check_urls,
        max_batch_lookup_urls=settings.max_batch_lookup_urls,
        max_audio_mb=settings.max_audio_mb,
        poll_interval_seconds=settings.poll_interval_seconds,
        max_poll_attempts=settings.max_poll_attempts,
        rate_limit_requests=settings.rate_limit_requests,
        rate_limit_window_seconds=settings.rate_limit_window_seconds,
    )


# -------------------------
# Import
# -------------------------

@app.post("/episodes/import", response_model=ImportEpisodeResponse)
def import_episode(req: ImportEpisodeRequest, request: Request):
    """Registers external episode + podcast metadata and returns the internal episode id. Calling it again with the same external id (or audio URL) returns the same id with isNew=false.
    Why available: Episodes discovered on Apple/Spotify/YouTube must exist internally before they can be summarized."""
    rate_limiter.check(request)
    _validate_import(req)

    try:
        episode_id, podcast_id, is_new = CATALOG.import_episode(req.episode, req.podcast)
    except Exception as e:
        raise as_http_500(e, what="import episode")

    logger.info(
        "episode_imported",
        extra={"episode_id": episode_id, "is_new": is_new, "request_id": get_request_id(request)},
    )
    return ImportEpisodeResponse(episode_id=episode_id, podcast_id=podcast_id, is_new=is_new)


# -------------------------
# Batch lookup / availability
# -------------------------

@app.post("/episodes/batch-lookup", response_model=BatchLookupResponse)
def batch_lookup(req: AudioUrlsRequest, request: Request):
    """Maps audio URLs to internal episode ids and deep-summary status; URLs never imported are absent from results."""
    rate_limiter.check(request)
    urls = _validate_audio_urls(req.audio_urls, settings.max_batch_lookup_urls)

    results = {}
    for url, episode in CATALOG.episodes_by_audio_url(urls).items():
        deep = CATALOG.get_summary(episode.episode_id, "deep")
        results[url] = BatchLookupItem(
            episode_id=episode.episode_id,
            summary_status=deep.status if deep else "not_ready",
        )
    return BatchLookupResponse(results=results)


@app.post("/summaries/check", response_model=CheckSummariesResponse)
def check_summaries(req: AudioUrlsRequest, request: Request):
    """Returns one availability row per requested audio URL (in request order): episode id if imported, and the best quick/deep summary status across languages.
    Why available: Backs the tracker's coalesced lookups so a feed of dozens of cards costs one round-trip."""
    rate_limiter.check(request)
    urls = _validate_audio_urls(req.audio_urls, settings.max_check_urls)

    by_url = CATALOG.episodes_by_audio_url(urls)
    availability = []
    for url in urls:
        episode = by_url.get(url)
        if episode is None:
            availability.append(SummaryAvailability(audio_url=url))
            continue
        rows = CATALOG.summaries_for(episode.episode_id)
        quick = best_status(s.status for s in rows if s.level == "quick")
        deep = best_status(s.status for s in rows if s.level == "deep")
        availability.append(SummaryAvailability(
            audio_url=url,
            episode_id=episode.episode_id,
            has_quick_summary=quick == "ready",
            has_deep_summary=deep == "ready",
            quick_status=quick,
            deep_status=deep,
        ))
    return CheckSummariesResponse(availability=availability)


# -------------------------
# Episodes
# -------------------------

@app.get("/episodes/{episode_id}", response_model=EpisodeResponse)
def get_episode(episode_id: str, request: Request):
    rate_limiter.check(request)
    ep = _require_episode(episode_id)
    return EpisodeResponse(
        episode_id=ep.episode_id,
        podcast_id=ep.podcast_id,
        title=ep.title,
        description=ep.description,
        audio_url=ep.audio_url,
        duration_seconds=ep.duration_seconds,
        published_at=ep.published_at,
    )


@app.get("/episodes/{episode_id}/status", response_model=EpisodeStatusResponse)
def episode_status(episode_id: str, request: Request, language: str = "en", level: SummaryLevel = "deep"):
    """Returns the overall processing status (not_ready / queued / transcribing / summarizing / ready / failed) of one summary level.
    Why available: Polling endpoint for the client-side status tracker."""
    rate_limiter.check(request)
    _require_episode(episode_id)
    return EpisodeStatusResponse(episode_id=episode_id, status=_episode_status(episode_id, language, level))


@app.post("/episodes/{episode_id}/summaries", response_model=SummaryRequestResponse)
def request_summary(episode_id: str, req: SummaryRequest, request: Request, background_tasks: BackgroundTasks):
    """Starts summary generation for a level unless it is ready or already running (idempotent). The job runs in the background; clients poll /episodes/{id}/status."""
    rate_limiter.check(request)
    _require_episode(episode_id)

    status, should_start = enqueue_summary(episode_id, req.level, req.language)
    if should_start:
        background_tasks.add_task(run_summary_job, episode_id, req.level, req.language)
        logger.info("summary_enqueued", extra={"episode_id": episode_id, "level": req.level})
    return SummaryRequestResponse(episode_id=episode_id, level=req.level, status=status)


@app.get("/episodes/{episode_id}/summaries", response_model=EpisodeSummariesResponse)
def get_summaries(episode_id: str, request: Request, language: str = "en"):
    """Returns transcript status and both summary levels; content is included only for ready summaries."""
    rate_limiter.check(request)
    _require_episode(episode_id)

    transcript = CATALOG.get_transcript(episode_id, language)
    return EpisodeSummariesResponse(
        episode_id=episode_id,
        status=_episode_status(episode_id, language),
        transcript=TranscriptState(
            status=transcript.status, language=transcript.language, error=transcript.error
        ) if transcript else None,
        summaries=SummaryLevels(
            quick=_summary_state(CATALOG.get_summary(episode_id, "quick", language)),
            deep=_summary_state(CATALOG.get_summary(episode_id, "deep", language)),
        ),
    )
