"""Async HTTP client for the summaries backend (import, status, summary request, availability check)."""
import logging
from typing import Dict, List, Optional

import httpx

from podbrief.core.config import settings
from podbrief.models.schemas import (
    CheckSummariesResponse,
    EpisodeMetadata,
    EpisodeStatusResponse,
    ImportEpisodeRequest,
    ImportEpisodeResponse,
    PodcastMetadata,
    SummaryRequest,
)
from podbrief.tracker.models import FAILED, READY, LookupResult

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Non-2xx response from the backend."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}" if detail else f"HTTP {status_code}")


class BackendClient:
    """Thin wrapper over httpx.AsyncClient speaking the camelCase wire contract.

    Raises BackendError for non-2xx responses and lets httpx.HTTPError through
    for transport failures; the tracker turns both into state.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=base_url or settings.backend_url,
            timeout=timeout or settings.request_timeout_seconds,
        )

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        resp = await self._http.request(method, url, **kwargs)
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if resp.status_code >= 400:
            if isinstance(payload, dict):
                detail = payload.get("detail") or payload.get("error") or ""
            else:
                detail = resp.text[:200]
            raise BackendError(resp.status_code, str(detail))
        if not isinstance(payload, dict):
            raise BackendError(resp.status_code, "response is not a JSON object")
        return payload

    async def import_episode(self, episode: EpisodeMetadata, podcast: PodcastMetadata) -> str:
        """POST /episodes/import; returns the internal episode id."""
        body = ImportEpisodeRequest(episode=episode, podcast=podcast)
        data = await self._request(
            "POST", "/episodes/import", json=body.model_dump(by_alias=True, exclude_none=True)
        )
        return ImportEpisodeResponse.model_validate(data).episode_id

    async def request_summary(self, episode_id: str, level: str = "deep", language: str = "en") -> str:
        """POST /episodes/{id}/summaries; idempotent on the backend. Returns the status it reports."""
        body = SummaryRequest(level=level, language=language)
        data = await self._request(
            "POST", f"/episodes/{episode_id}/summaries", json=body.model_dump(by_alias=True)
        )
        return data.get("status", "queued")

    async def get_status(self, episode_id: str, level: str = "deep") -> str:
        """GET /episodes/{id}/status for one summary level; returns not_ready | queued | transcribing | summarizing | ready | failed."""
        data = await self._request("GET", f"/episodes/{episode_id}/status", params={"level": level})
        return EpisodeStatusResponse.model_validate(data).status

    async def check_summaries(self, audio_urls: List[str]) -> Dict[str, LookupResult]:
        """POST /summaries/check; returns audio_url -> LookupResult for every row the backend sent."""
        data = await self._request("POST", "/summaries/check", json={"audioUrls": list(audio_urls)})
        parsed = CheckSummariesResponse.model_validate(data)
        out = {}
        for row in parsed.availability:
            status = row.deep_status if row.deep_status in (READY, FAILED) else None
            out[row.audio_url] = LookupResult(
                audio_url=row.audio_url,
                episode_id=row.episode_id,
                summary_status=status,
            )
        return out

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
