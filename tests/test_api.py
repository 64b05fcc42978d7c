import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from podbrief.core.config import settings
from podbrief.main import app, rate_limiter
from podbrief.models.schemas import EpisodeMetadata, PodcastMetadata
from podbrief.pipeline import worker
from podbrief.tracker.client import BackendClient
from podbrief.tracker.queue import SummarizeStatusTracker

AUDIO_URL = "https://cdn.example.com/episodes/pilot.mp3"


@pytest.fixture(scope="session")
def client():
    return TestClient(app)


@pytest.fixture
def fake_pipeline(monkeypatch):
    """Replace transcription and the LLM call so jobs finish instantly without network access."""
    calls = {"transcribe": 0, "summarize": 0, "fail_transcribe": False}

    def transcribe(audio_url, language="en"):
        calls["transcribe"] += 1
        if calls["fail_transcribe"]:
            raise RuntimeError("audio unavailable")
        return "Alex: welcome to the show. Sam: today we talk about tracing."

    def summarize(transcript, title, level="deep"):
        calls["summarize"] += 1
        return {"tldr": f"{title} in brief.", "sections": [], "resources": [], "action_prompts": [], "topics": ["tracing"]}

    monkeypatch.setattr(worker, "transcribe_audio", transcribe)
    monkeypatch.setattr(worker, "summarize_transcript", summarize)
    return calls


def _log(item, title: str, request: dict, response: dict):
    """
    Store logs on the test item so conftest can attach to pytest-html report.
    """
    logs = getattr(item, "_api_logs", [])
    logs.append({"title": title, "request": request, "response": response})
    item._api_logs = logs


def _import_body(external_id="1000123", audio_url=AUDIO_URL, **episode):
    ep = {
        "externalId": external_id,
        "title": "Pilot",
        "description": "The first one.",
        "publishedAt": "2024-05-01T08:00:00Z",
        "duration": 1800,
        "audioUrl": audio_url,
    }
    ep.update(episode)
    return {
        "episode": ep,
        "podcast": {"externalId": "42", "name": "Example Show", "artistName": "Example Studio", "feedUrl": "https://example.com/feed.xml"},
    }


def _import(client, item=None, **kw) -> dict:
    body = _import_body(**kw)
    resp = client.post("/episodes/import", json=body)
    if item is not None:
        _log(item, "POST /episodes/import", {"json": body}, {"status_code": resp.status_code, "json": resp.json()})
    assert resp.status_code == 200, resp.text
    return resp.json()


# -------------------------
# Basics
# -------------------------


def test_health_and_request_id(client: TestClient):
    resp = client.get("/health", headers={"x-request-id": "abc-123"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["x-request-id"] == "abc-123"


def test_limits(client: TestClient):
    data = client.get("/limits").json()
    assert data["maxCheckUrls"] > 0
    assert data["maxBatchLookupUrls"] > 0
    assert data["maxPollAttempts"] > 0
    assert data["pollIntervalSeconds"] > 0


def test_rate_limit_returns_429(client: TestClient, monkeypatch):
    monkeypatch.setattr(rate_limiter, "max_requests", 2)
    assert client.get("/limits").status_code == 200
    assert client.get("/limits").status_code == 200
    resp = client.get("/limits")
    assert resp.status_code == 429
    assert "Retry-After" in resp.headers


# -------------------------
# Import
# -------------------------


def test_import_is_idempotent(client: TestClient, request):
    first = _import(client, request.node)
    assert first["isNew"] is True

    again = _import(client, request.node)
    assert again == {**first, "isNew": False}

    # same audio URL under another external id is the same episode
    same_audio = _import(client, request.node, external_id="other-id")
    assert same_audio["episodeId"] == first["episodeId"]
    assert same_audio["isNew"] is False

    ep = client.get(f"/episodes/{first['episodeId']}").json()
    assert ep["audioUrl"] == AUDIO_URL
    assert ep["durationSeconds"] == 1800
    assert ep["publishedAt"].startswith("2024-05-01T08:00:00")


def test_import_without_audio_url_uses_placeholder(client: TestClient):
    data = _import(client, audio_url=None)
    ep = client.get(f"/episodes/{data['episodeId']}").json()
    assert ep["audioUrl"] == "apple:1000123"


@pytest.mark.parametrize(
    "override",
    [
        {"title": "   "},
        {"audioUrl": "ftp://cdn.example.com/a.mp3"},
        {"publishedAt": "last tuesday"},
    ],
)
def test_import_rejects_bad_episode(client: TestClient, override):
    resp = client.post("/episodes/import", json=_import_body(**override))
    assert resp.status_code == 400, resp.text


def test_import_rejects_blank_podcast_name(client: TestClient):
    body = _import_body()
    body["podcast"]["name"] = " "
    assert client.post("/episodes/import", json=body).status_code == 400


def test_import_requires_external_id(client: TestClient):
    body = _import_body()
    del body["episode"]["externalId"]
    assert client.post("/episodes/import", json=body).status_code == 422


# -------------------------
# Status + summaries
# -------------------------


def test_status_unknown_episode_is_404(client: TestClient):
    assert client.get("/episodes/nope/status").status_code == 404


def test_status_before_any_request_is_not_ready(client: TestClient):
    eid = _import(client)["episodeId"]
    assert client.get(f"/episodes/{eid}/status").json() == {"episodeId": eid, "status": "not_ready"}


def test_summary_request_runs_job_to_ready(client: TestClient, fake_pipeline, request):
    eid = _import(client)["episodeId"]

    resp = client.post(f"/episodes/{eid}/summaries", json={"level": "deep"})
    _log(request.node, "POST /episodes/{id}/summaries", {"json": {"level": "deep"}}, {"status_code": resp.status_code, "json": resp.json()})
    assert resp.status_code == 200
    assert resp.json()["status"] == "queued"

    # TestClient runs background tasks before returning
    assert client.get(f"/episodes/{eid}/status").json()["status"] == "ready"

    summaries = client.get(f"/episodes/{eid}/summaries").json()
    assert summaries["status"] == "ready"
    assert summaries["transcript"]["status"] == "ready"
    assert summaries["summaries"]["deep"]["content"]["tldr"] == "Pilot in brief."
    assert summaries["summaries"]["quick"] is None

    # ready summaries are not regenerated
    again = client.post(f"/episodes/{eid}/summaries", json={"level": "deep"}).json()
    assert again["status"] == "ready"
    assert fake_pipeline["summarize"] == 1


def test_quick_summary_reuses_transcript(client: TestClient, fake_pipeline):
    eid = _import(client)["episodeId"]
    client.post(f"/episodes/{eid}/summaries", json={"level": "deep"})
    client.post(f"/episodes/{eid}/summaries", json={"level": "quick"})
    assert fake_pipeline["transcribe"] == 1
    assert fake_pipeline["summarize"] == 2


def test_failed_job_reports_failed_and_can_be_requested_again(client: TestClient, fake_pipeline):
    eid = _import(client)["episodeId"]
    fake_pipeline["fail_transcribe"] = True
    client.post(f"/episodes/{eid}/summaries", json={"level": "deep"})
    assert client.get(f"/episodes/{eid}/status").json()["status"] == "failed"
    deep = client.get(f"/episodes/{eid}/summaries").json()["summaries"]["deep"]
    assert deep["status"] == "failed"
    assert deep["error"] == "audio unavailable"
    assert deep["content"] is None

    fake_pipeline["fail_transcribe"] = False
    resp = client.post(f"/episodes/{eid}/summaries", json={"level": "deep"})
    assert resp.json()["status"] == "queued"
    assert client.get(f"/episodes/{eid}/status").json()["status"] == "ready"


def test_status_reports_the_requested_level(client: TestClient, fake_pipeline):
    eid = _import(client)["episodeId"]
    client.post(f"/episodes/{eid}/summaries", json={"level": "quick"})
    assert client.get(f"/episodes/{eid}/status", params={"level": "quick"}).json()["status"] == "ready"
    assert client.get(f"/episodes/{eid}/status").json()["status"] == "not_ready"
    assert client.get(f"/episodes/{eid}/status", params={"level": "medium"}).status_code == 422


def test_summary_request_rejects_unknown_level(client: TestClient):
    eid = _import(client)["episodeId"]
    assert client.post(f"/episodes/{eid}/summaries", json={"level": "medium"}).status_code == 422


# -------------------------
# Availability
# -------------------------


def test_check_summaries_preserves_order(client: TestClient, fake_pipeline):
    eid = _import(client)["episodeId"]
    client.post(f"/episodes/{eid}/summaries", json={"level": "deep"})

    urls = ["https://cdn.example.com/unknown.mp3", AUDIO_URL]
    rows = client.post("/summaries/check", json={"audioUrls": urls}).json()["availability"]
    assert [r["audioUrl"] for r in rows] == urls
    assert rows[0]["episodeId"] is None
    assert rows[0]["hasDeepSummary"] is False
    assert rows[1]["episodeId"] == eid
    assert rows[1]["hasDeepSummary"] is True
    assert rows[1]["deepStatus"] == "ready"
    assert rows[1]["quickStatus"] is None


def test_check_summaries_validates_batch(client: TestClient):
    assert client.post("/summaries/check", json={"audioUrls": []}).status_code == 400
    too_many = [f"https://cdn.example.com/{i}.mp3" for i in range(101)]
    assert client.post("/summaries/check", json={"audioUrls": too_many}).status_code == 400


def test_batch_lookup_only_returns_imported(client: TestClient):
    eid = _import(client)["episodeId"]
    data = client.post(
        "/episodes/batch-lookup",
        json={"audioUrls": [AUDIO_URL, "https://cdn.example.com/unknown.mp3"]},
    ).json()
    assert data == {"results": {AUDIO_URL: {"episodeId": eid, "summaryStatus": "not_ready"}}}


# -------------------------
# Tracker against the real app
# -------------------------


def test_tracker_drives_summary_through_backend(fake_pipeline):
    async def scenario():
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://backend")
        backend = BackendClient(http=http)
        try:
            async with SummarizeStatusTracker(backend, poll_interval=0.01, max_poll_attempts=50) as tracker:
                result = await tracker.summarize_external(
                    EpisodeMetadata(external_id="777", title="Live", audio_url=AUDIO_URL),
                    PodcastMetadata(external_id="42", name="Example Show"),
                )
                assert result.ok
                entry = await tracker.wait_for(result.episode_id, timeout=5)
                assert entry.state == "ready"

                assert tracker.get_lookup_result(AUDIO_URL).episode_id == result.episode_id

                unknown = "https://cdn.example.com/never-imported.mp3"
                tracker.register_lookup(unknown)
                await tracker.flush_lookups()
                assert tracker.get_lookup_result(unknown).episode_id is None
        finally:
            await http.aclose()

    asyncio.run(scenario())
    assert fake_pipeline["summarize"] == 1


def test_quick_level_tracker_reaches_ready(fake_pipeline):
    async def scenario():
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://backend")
        try:
            tracker = SummarizeStatusTracker(
                BackendClient(http=http), poll_interval=0.01, max_poll_attempts=50, summary_level="quick"
            )
            async with tracker:
                result = await tracker.summarize_external(
                    EpisodeMetadata(external_id="778", title="Short", audio_url=AUDIO_URL),
                    PodcastMetadata(external_id="42", name="Example Show"),
                )
                entry = await tracker.wait_for(result.episode_id, timeout=5)
                assert entry.state == "ready"
        finally:
            await http.aclose()

    asyncio.run(scenario())
    assert fake_pipeline["summarize"] == 1


def test_tracker_resolves_a_feed_larger_than_one_batch(fake_pipeline):
    async def scenario():
        sizes = []

        async def record_batch(request):
            if request.url.path == "/summaries/check":
                sizes.append(len(json.loads(request.content)["audioUrls"]))

        http = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://backend",
            event_hooks={"request": [record_batch]},
        )
        try:
            async with SummarizeStatusTracker(BackendClient(http=http)) as tracker:
                imported = await tracker.import_episode(
                    EpisodeMetadata(external_id="e0", title="Known", audio_url="https://cdn.example.com/feed/0.mp3"),
                    PodcastMetadata(external_id="42", name="Example Show"),
                )
                urls = [f"https://cdn.example.com/feed/{i}.mp3" for i in range(1, settings.max_check_urls + 2)]
                urls.append("https://cdn.example.com/feed/0.mp3")
                for url in urls:
                    tracker.register_lookup(url)
                await tracker.flush_lookups()
                for _ in range(100):
                    if not any(tracker.is_lookup_pending(u) for u in urls):
                        break
                    await asyncio.sleep(0.02)

                resolved = [u for u in urls if tracker.get_lookup_result(u) is not None]
                assert len(resolved) == len(urls)
                assert tracker.get_lookup_result("https://cdn.example.com/feed/0.mp3").episode_id == imported.episode_id
                assert tracker.get_lookup_result(urls[0]).episode_id is None
        finally:
            await http.aclose()

        return sizes

    sizes = asyncio.run(scenario())
    assert sizes
    assert max(sizes) <= min(settings.lookup_max_batch, settings.max_check_urls)
    assert sum(sizes) == settings.max_check_urls + 1
