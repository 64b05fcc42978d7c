"""In-memory catalog for imported podcasts and episodes and their transcript / summary job rows."""
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from podbrief.models.schemas import EpisodeMetadata, PodcastMetadata
from podbrief.pipeline.status import IN_PROGRESS


@dataclass
class Podcast:
    podcast_id: str
    title: str
    author: str
    feed_ref: str  # feed URL, or apple:{externalId} when the feed is unknown
    image_url: str = ""
    latest_episode_date: Optional[str] = None


@dataclass
class Episode:
    episode_id: str
    podcast_id: str
    external_id: str
    title: str
    audio_url: str  # real audio URL, or apple:{externalId} placeholder
    description: Optional[str] = None
    duration_seconds: Optional[int] = None
    published_at: Optional[str] = None
    created_at: float = field(default_factory=time.time)


@dataclass
class Transcript:
    """Transcript row per (episode, language): status is queued | transcribing | ready | failed."""

    episode_id: str
    language: str
    status: str
    text: Optional[str] = None
    error: Optional[str] = None
    updated_at: float = field(default_factory=time.time)


@dataclass
class Summary:
    """Summary row per (episode, level, language): status is queued | transcribing | summarizing | ready | failed.
    Why available: The status endpoint and availability check read these rows; the worker writes them as the job advances."""

    episode_id: str
    level: str
    language: str
    status: str
    content: Optional[dict] = None
    error: Optional[str] = None
    updated_at: float = field(default_factory=time.time)


def normalize_published_at(value: Optional[str]) -> Optional[str]:
    """Parse an ISO 8601 date (a trailing Z is accepted) and return it as UTC ISO text; None passes through. Raises ValueError when unparseable."""
    if not value:
        return None
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


class Catalog:
    """Thread-safe in-memory store (MVP). In production: a relational DB.
    Why available: Backs the import, status and availability endpoints and the background summary worker."""

    def __init__(self):
        self._lock = threading.Lock()
        self.podcasts: Dict[str, Podcast] = {}
        self.episodes: Dict[str, Episode] = {}
        self.transcripts: Dict[Tuple[str, str], Transcript] = {}
        self.summaries: Dict[Tuple[str, str, str], Summary] = {}
        self._podcast_by_ref: Dict[str, str] = {}
        self._episode_by_external: Dict[Tuple[str, str], str] = {}
        self._episode_by_audio: Dict[str, str] = {}

    # -------------------------
    # Import
    # -------------------------

    def import_episode(self, episode: EpisodeMetadata, podcast: PodcastMetadata) -> Tuple[str, str, bool]:
        """Create podcast and episode if missing; return (episode_id, podcast_id, is_new). Idempotent per external id and per audio URL."""
        published_at = normalize_published_at(episode.published_at)
        podcast_ref = f"apple:{podcast.external_id}"
        episode_ref = f"apple:{episode.external_id}"

        with self._lock:
            podcast_id = self._podcast_by_ref.get(podcast.feed_url or "") or self._podcast_by_ref.get(podcast_ref)
            if podcast_id is None:
                podcast_id = str(uuid.uuid4())
                feed_ref = podcast.feed_url or podcast_ref
                self.podcasts[podcast_id] = Podcast(
                    podcast_id=podcast_id,
                    title=podcast.name,
                    author=podcast.artist_name,
                    feed_ref=feed_ref,
                    image_url=podcast.artwork_url,
                )
                self._podcast_by_ref[feed_ref] = podcast_id
                self._podcast_by_ref[podcast_ref] = podcast_id

            existing = self._episode_by_external.get((podcast_id, episode.external_id))
            if existing is None and episode.audio_url:
                existing = self._episode_by_audio.get(episode.audio_url)
            if existing is not None:
                return existing, self.episodes[existing].podcast_id, False

            episode_id = str(uuid.uuid4())
            audio_url = episode.audio_url or episode_ref
            self.episodes[episode_id] = Episode(
                episode_id=episode_id,
                podcast_id=podcast_id,
                external_id=episode.external_id,
                title=episode.title,
                audio_url=audio_url,
                description=episode.description or None,
                duration_seconds=episode.duration or None,
                published_at=published_at,
            )
            self._episode_by_external[(podcast_id, episode.external_id)] = episode_id
            self._episode_by_audio[audio_url] = episode_id

            # latest_episode_date only moves forward
            p = self.podcasts[podcast_id]
            if published_at and (p.latest_episode_date is None or p.latest_episode_date < published_at):
                p.latest_episode_date = published_at

            return episode_id, podcast_id, True

    # -------------------------
    # Lookups
    # -------------------------

    def get_episode(self, episode_id: str) -> Optional[Episode]:
        return self.episodes.get(episode_id)

    def episodes_by_audio_url(self, audio_urls: Iterable[str]) -> Dict[str, Episode]:
        """Return audio_url -> Episode for the URLs that have been imported."""
        with self._lock:
            out = {}
            for url in audio_urls:
                eid = self._episode_by_audio.get(url)
                if eid is not None:
                    out[url] = self.episodes[eid]
            return out

    def summaries_for(self, episode_id: str, language: Optional[str] = None) -> List[Summary]:
        with self._lock:
            return [
                s for (eid, _level, lang), s in self.summaries.items()
                if eid == episode_id and (language is None or lang == language)
            ]

    # -------------------------
    # Job rows
    # -------------------------

    def get_transcript(self, episode_id: str, language: str = "en") -> Optional[Transcript]:
        return self.transcripts.get((episode_id, language))

    def set_transcript(self, episode_id: str, language: str, status: str, *, text: Optional[str] = None, error: Optional[str] = None) -> Transcript:
        with self._lock:
            t = self.transcripts.get((episode_id, language))
            if t is None:
                t = Transcript(episode_id=episode_id, language=language, status=status)
                self.transcripts[(episode_id, language)] = t
            t.status = status
            if text is not None:
                t.text = text
            t.error = error
            t.updated_at = time.time()
            return t

    def get_summary(self, episode_id: str, level: str, language: str = "en") -> Optional[Summary]:
        return self.summaries.get((episode_id, level, language))

    def set_summary(self, episode_id: str, level: str, language: str, status: str, *, content: Optional[dict] = None, error: Optional[str] = None) -> Summary:
        with self._lock:
            s = self.summaries.get((episode_id, level, language))
            if s is None:
                s = Summary(episode_id=episode_id, level=level, language=language, status=status)
                self.summaries[(episode_id, level, language)] = s
            s.status = status
            if content is not None:
                s.content = content
            s.error = error
            s.updated_at = time.time()
            return s

    def claim_summary(self, episode_id: str, level: str, language: str) -> Tuple[str, bool]:
        """Atomically mark a summary queued unless it is ready or in progress. Returns (status, started).
        A failed transcript is reset to queued in the same step so the episode stops reading as failed."""
        with self._lock:
            s = self.summaries.get((episode_id, level, language))
            if s is not None and (s.status == "ready" or s.status in IN_PROGRESS):
                return s.status, False

            now = time.time()
            t = self.transcripts.get((episode_id, language))
            if t is not None and t.status == "failed":
                t.status, t.error, t.updated_at = "queued", None, now

            if s is None:
                s = Summary(episode_id=episode_id, level=level, language=language, status="queued")
                self.summaries[(episode_id, level, language)] = s
            s.status, s.error, s.updated_at = "queued", None, now
            return "queued", True

    def clear(self) -> None:
        with self._lock:
            self.podcasts.clear()
            self.episodes.clear()
            self.transcripts.clear()
            self.summaries.clear()
            self._podcast_by_ref.clear()
            self._episode_by_external.clear()
            self._episode_by_audio.clear()


CATALOG = Catalog()
