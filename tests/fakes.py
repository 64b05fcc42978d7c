"""In-process stand-in for BackendClient: scripted statuses and call accounting per episode."""
import asyncio
from collections import defaultdict

from podbrief.tracker.models import LookupResult


class FakeBackend:
    """Duck-typed BackendClient.

    statuses[episode_id] is the sequence returned by successive get_status
    calls; the last value repeats. errors[episode_id] is a list of
    exceptions raised by the first get_status calls before the script is used.
    Every call asserts no other request for the same episode is outstanding.
    """

    def __init__(self, statuses=None, *, delay: float = 0.0):
        self.statuses = dict(statuses or {})
        self.errors = defaultdict(list)
        self.delay = delay
        self.status_calls = defaultdict(int)
        self.summary_requests = defaultdict(int)
        self.outstanding = defaultdict(int)
        self.max_outstanding = defaultdict(int)
        self.known_urls = {}
        self.check_calls = []
        self.check_error = None
        self.import_error = None
        self.imports = []

    def script(self, episode_id, statuses):
        self.statuses[episode_id] = list(statuses)
        self.status_calls[episode_id] = 0

    async def _enter(self, episode_id):
        self.outstanding[episode_id] += 1
        self.max_outstanding[episode_id] = max(self.max_outstanding[episode_id], self.outstanding[episode_id])
        assert self.outstanding[episode_id] == 1, f"overlapping requests for {episode_id}"
        if self.delay:
            await asyncio.sleep(self.delay)

    async def request_summary(self, episode_id, level="deep", language="en"):
        await self._enter(episode_id)
        try:
            self.summary_requests[episode_id] += 1
            return "queued"
        finally:
            self.outstanding[episode_id] -= 1

    async def get_status(self, episode_id, level="deep"):
        await self._enter(episode_id)
        try:
            if self.errors[episode_id]:
                raise self.errors[episode_id].pop(0)
            self.status_calls[episode_id] += 1
            seq = self.statuses.get(episode_id, ["queued"])
            return seq[min(self.status_calls[episode_id], len(seq)) - 1]
        finally:
            self.outstanding[episode_id] -= 1

    async def check_summaries(self, audio_urls):
        self.check_calls.append(list(audio_urls))
        if self.check_error is not None:
            raise self.check_error
        return {
            url: LookupResult(audio_url=url, episode_id=eid, summary_status="ready")
            for url, eid in self.known_urls.items()
            if url in audio_urls
        }

    async def import_episode(self, episode, podcast):
        self.imports.append(episode.external_id)
        if self.import_error is not None:
            raise self.import_error
        return f"ep-{episode.external_id}"

    async def aclose(self):
        pass


class FakeClock:
    """Monotonic clock that advances one second per reading."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now
