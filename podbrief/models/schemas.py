from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any, Literal

SummaryLevel = Literal["quick", "deep"]
EpisodeStatus = Literal["not_ready", "queued", "transcribing", "summarizing", "ready", "failed"]


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase on the wire.
    Why available: The import/status/check contract is camelCase JSON; every request and response model shares this config."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EpisodeMetadata(CamelModel):
    """Episode metadata from an external catalog (Apple/Spotify/RSS/YouTube) as sent to /episodes/import."""

    external_id: str = Field(..., min_length=1)
    title: str
    description: Optional[str] = ""
    published_at: Optional[str] = Field(None, description="ISO 8601 publish date")
    duration: Optional[int] = Field(None, ge=0, description="Duration in seconds")
    audio_url: Optional[str] = None


class PodcastMetadata(CamelModel):
    """Podcast (show) metadata sent alongside an episode import."""

    external_id: str = Field(..., min_length=1)
    name: str
    artist_name: str = ""
    artwork_url: str = ""
    feed_url: Optional[str] = None


class ImportEpisodeRequest(CamelModel):
    episode: EpisodeMetadata
    podcast: PodcastMetadata


class ImportEpisodeResponse(CamelModel):
    """Response for POST /episodes/import. Why available: The tracker only needs episode_id; is_new tells callers whether the call created anything."""

    episode_id: str
    podcast_id: str
    is_new: bool


class EpisodeResponse(CamelModel):
    episode_id: str
    podcast_id: str
    title: str
    description: Optional[str] = None
    audio_url: str
    duration_seconds: Optional[int] = None
    published_at: Optional[str] = None


class EpisodeStatusResponse(CamelModel):
    """Response for GET /episodes/{id}/status: one overall status derived from transcript and deep summary. Polled by the tracker."""

    episode_id: str
    status: EpisodeStatus


class SummaryRequest(CamelModel):
    """Body for POST /episodes/{id}/summaries."""

    level: SummaryLevel = "deep"
    language: str = Field("en", min_length=2, max_length=8)


class SummaryRequestResponse(CamelModel):
    episode_id: str
    level: SummaryLevel
    status: EpisodeStatus


class TranscriptState(CamelModel):
    status: str
    language: str
    error: Optional[str] = None


class SummaryState(CamelModel):
    status: str
    content: Optional[Dict[str, Any]] = Field(None, description="Summary JSON, present only when status is ready")
    updated_at: Optional[str] = None
    error: Optional[str] = None


class SummaryLevels(CamelModel):
    quick: Optional[SummaryState] = None
    deep: Optional[SummaryState] = None


class EpisodeSummariesResponse(CamelModel):
    """Response for GET /episodes/{id}/summaries: transcript state plus both summary levels. Why available: Lets pages render summary content once ready."""

    episode_id: str
    status: EpisodeStatus
    transcript: Optional[TranscriptState] = None
    summaries: SummaryLevels = Field(default_factory=SummaryLevels)


class AudioUrlsRequest(CamelModel):
    """Body for POST /summaries/check and POST /episodes/batch-lookup."""

    audio_urls: List[str] = Field(default_factory=list)


class SummaryAvailability(CamelModel):
    """One row of POST /summaries/check. Why available: Tells list pages which episodes already have summaries so they skip redundant imports."""

    audio_url: str
    episode_id: Optional[str] = None
    has_quick_summary: bool = False
    has_deep_summary: bool = False
    quick_status: Optional[str] = None
    deep_status: Optional[str] = None


class CheckSummariesResponse(CamelModel):
    availability: List[SummaryAvailability] = Field(default_factory=list)


class BatchLookupItem(CamelModel):
    episode_id: str
    summary_status: str


class BatchLookupResponse(CamelModel):
    results: Dict[str, BatchLookupItem] = Field(default_factory=dict)


class LimitsResponse(CamelModel):
    """Response for GET /limits. Why available: Lets clients size lookup batches and polling before they hit 400/429."""

    max_check_urls: int
    max_batch_lookup_urls: int
    max_audio_mb: int
    poll_interval_seconds: float
    max_poll_attempts: int
    rate_limit_requests: int
    rate_limit_window_seconds: int
