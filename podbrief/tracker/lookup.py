"""Micro-batching queue that coalesces audio-URL lookups into one availability request."""
import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

import httpx

from podbrief.tracker.client import BackendError
from podbrief.tracker.models import LookupResult

logger = logging.getLogger(__name__)

FetchBatch = Callable[[List[str]], Awaitable[Dict[str, LookupResult]]]


class LookupBatcher:
    """Collects audio URLs registered within a debounce window and resolves them with one fetch call.

    Each registration restarts the window (delay_seconds); reaching max_batch
    pending URLs flushes that batch at once. No fetch call carries more than
    max_batch URLs. URLs absent from a response are stored with
    episode_id=None so they are not fetched again. A failed batch is logged
    and its URLs may be registered again.
    """

    def __init__(self, fetch: FetchBatch, *, delay_seconds: float, max_batch: int):
        if delay_seconds < 0 or max_batch <= 0:
            raise ValueError("delay_seconds must be >= 0 and max_batch > 0")
        self._fetch = fetch
        self.delay_seconds = delay_seconds
        self.max_batch = max_batch
        self._results: Dict[str, LookupResult] = {}
        self._pending: Dict[str, None] = {}  # insertion-ordered set
        self._fetching: Set[str] = set()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def register(self, audio_url: str) -> None:
        """Queue audio_url for the next batch; no-op if it is known, pending or in flight. Must be called on the event loop."""
        if not audio_url or self._closed:
            return
        if audio_url in self._results or audio_url in self._pending or audio_url in self._fetching:
            return

        self._pending[audio_url] = None
        self._cancel_timer()
        if len(self._pending) >= self.max_batch:
            self._start_flush()
        if self._pending:
            self._timer = asyncio.get_running_loop().call_later(self.delay_seconds, self._start_flush)

    def get(self, audio_url: str) -> Optional[LookupResult]:
        return self._results.get(audio_url)

    def is_pending(self, audio_url: str) -> bool:
        return audio_url in self._pending or audio_url in self._fetching

    def record(self, result: LookupResult) -> None:
        """Store a result learned elsewhere (e.g. after an import) without a round-trip."""
        self._results[result.audio_url] = result

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _take_batch(self) -> List[str]:
        """Move up to max_batch pending URLs (oldest first) into the in-flight set."""
        urls = list(itertools.islice(self._pending, self.max_batch))
        for url in urls:
            del self._pending[url]
        self._fetching.update(urls)
        return urls

    def _start_flush(self) -> None:
        """Hand every pending URL to background fetch tasks, max_batch URLs per task."""
        self._cancel_timer()
        while self._pending:
            task = asyncio.get_running_loop().create_task(self._fetch_batch(self._take_batch()))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def flush(self) -> None:
        """Send every pending URL now, in fetch calls of at most max_batch URLs."""
        self._cancel_timer()
        batches = []
        while self._pending:
            batches.append(self._take_batch())
        if batches:
            await asyncio.gather(*(self._fetch_batch(urls) for urls in batches))

    async def _fetch_batch(self, urls: List[str]) -> None:
        try:
            found = await self._fetch(urls)
        except (httpx.HTTPError, BackendError, ValueError) as e:
            logger.error("lookup batch of %d failed: %s", len(urls), e)
        else:
            for url in urls:
                self._results[url] = found.get(url) or LookupResult(audio_url=url)
            logger.debug("lookup batch resolved %d urls", len(urls))
        finally:
            self._fetching.difference_update(urls)

    async def aclose(self) -> None:
        """Drop the pending window and cancel in-flight batches."""
        self._closed = True
        self._cancel_timer()
        self._pending.clear()
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
