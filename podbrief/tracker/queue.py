"""
Client-side summarize queue: tracks episode summarization jobs through
queued -> transcribing -> summarizing -> ready (or failed) by polling the
backend, with at most one outstanding request per episode.

One tracker per user session. Create it on the running event loop, pass it
to whatever renders episode cards, and close it (``aclose`` or ``async with``)
when the session ends; pending timers and in-flight requests are dropped.
"""
import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Set

import httpx

from podbrief.core.config import settings
from podbrief.models.schemas import EpisodeMetadata, PodcastMetadata
from podbrief.tracker.client import BackendClient, BackendError
from podbrief.tracker.lookup import LookupBatcher
from podbrief.tracker.models import (
    ACTIVE_STATES,
    FAILED,
    PROCESSING_FAILED,
    QUEUED,
    READY,
    STATE_ORDER,
    TIMED_OUT,
    ImportResult,
    LookupResult,
    QueueEntry,
    QueueStats,
)

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"

_POLL_ERRORS = (httpx.HTTPError, BackendError, ValueError)


@dataclass
class _Slot:
    entry: QueueEntry
    seq: int  # FIFO tie-break; changes on retry so stale responses are dropped
    requested: bool = False  # summary request sent for this incarnation


class SummarizeStatusTracker:
    """In-memory, single-session tracker of summarization jobs keyed by episode id.

    All failures are recorded as entry state (see QueueEntry.error and
    last_error); nothing raised by the backend escapes the tracker.
    """

    def __init__(
        self,
        backend: BackendClient,
        *,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
        lookup_delay: Optional[float] = None,
        lookup_max_batch: Optional[int] = None,
        summary_level: str = "deep",
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts or settings.max_poll_attempts
        self.summary_level = summary_level
        self._clock = clock

        self._slots: Dict[str, _Slot] = {}
        self._seq = itertools.count()
        self._inflight: Set[str] = set()
        self._poll_tasks: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._changed = asyncio.Event()
        self._stats = QueueStats()
        self._owns_backend = False
        self._closed = False

        self._lookups = LookupBatcher(
            backend.check_summaries,
            delay_seconds=lookup_delay if lookup_delay is not None else settings.lookup_batch_delay_ms / 1000.0,
            max_batch=lookup_max_batch or settings.lookup_max_batch,
        )

    @classmethod
    def create(cls, base_url: Optional[str] = None, **kwargs) -> "SummarizeStatusTracker":
        """Build a tracker with its own BackendClient; aclose() also closes that client."""
        tracker = cls(BackendClient(base_url), **kwargs)
        tracker._owns_backend = True
        return tracker

    async def __aenter__(self) -> "SummarizeStatusTracker":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # -------------------------
    # Queue operations
    # -------------------------

    def add_to_queue(self, episode_id: str) -> QueueEntry:
        """Start tracking episode_id in queued state and make sure polling runs.
        Idempotent: an already tracked episode keeps its entry and state (use retry_episode after a failure)."""
        if not episode_id:
            raise ValueError("episode_id is required")
        self._check_open()

        slot = self._slots.get(episode_id)
        if slot is None:
            slot = _Slot(QueueEntry(episode_id=episode_id, state=QUEUED, enqueued_at=self._clock()), seq=next(self._seq))
            self._slots[episode_id] = slot
            self._stats.total += 1
            logger.info("queued %s (position %d)", episode_id, self.get_queue_position(episode_id))
            self._notify()
        self._ensure_polling()
        return replace(slot.entry)

    def retry_episode(self, episode_id: str) -> Optional[QueueEntry]:
        """Re-queue a failed (or untracked) episode with a fresh enqueue time and zero attempts.
        Returns the new entry, or None when the episode is tracked in any non-failed state (no-op)."""
        self._check_open()
        slot = self._slots.get(episode_id)
        if slot is None:
            return self.add_to_queue(episode_id)
        if slot.entry.state != FAILED:
            return None

        e = slot.entry
        e.state = QUEUED
        e.enqueued_at = self._clock()
        e.poll_attempts = 0
        e.retry_count += 1
        e.error = None
        e.last_error = None
        slot.seq = next(self._seq)
        slot.requested = False
        self._stats.total += 1
        logger.info("retrying %s (retry %d)", episode_id, e.retry_count)
        self._notify()
        self._ensure_polling()
        return replace(e)

    def remove_from_queue(self, episode_id: str) -> bool:
        """Stop tracking episode_id; an in-flight poll for it is discarded when it returns."""
        removed = self._slots.pop(episode_id, None) is not None
        if removed:
            self._notify()
        return removed

    def clear_finished(self) -> int:
        """Drop ready and failed entries and reset stats. Returns the number of entries removed."""
        done = [eid for eid, s in self._slots.items() if s.entry.is_terminal]
        for eid in done:
            del self._slots[eid]
        self._stats = QueueStats()
        if done:
            self._notify()
        return len(done)

    # -------------------------
    # Selectors
    # -------------------------

    def get_queue_item(self, episode_id: str) -> Optional[QueueEntry]:
        slot = self._slots.get(episode_id)
        return replace(slot.entry) if slot else None

    def get_queue_position(self, episode_id: str) -> int:
        """0-based FIFO rank among queued entries, or -1 if episode_id is not queued."""
        slot = self._slots.get(episode_id)
        if slot is None or slot.entry.state != QUEUED:
            return -1
        key = (slot.entry.enqueued_at, slot.seq)
        return sum(
            1 for s in self._slots.values()
            if s is not slot and s.entry.state == QUEUED and (s.entry.enqueued_at, s.seq) < key
        )

    @property
    def queue(self) -> List[QueueEntry]:
        """Snapshots of all tracked entries, oldest first."""
        slots = sorted(self._slots.values(), key=lambda s: (s.entry.enqueued_at, s.seq))
        return [replace(s.entry) for s in slots]

    @property
    def stats(self) -> QueueStats:
        return replace(self._stats)

    async def wait_for(self, episode_id: str, timeout: Optional[float] = None) -> Optional[QueueEntry]:
        """Wait until episode_id reaches ready or failed and return that entry.
        Returns None if it is not (or no longer) tracked; raises asyncio.TimeoutError after timeout."""

        async def _wait() -> Optional[QueueEntry]:
            while True:
                slot = self._slots.get(episode_id)
                if slot is None or self._closed:
                    return None
                if slot.entry.is_terminal:
                    return replace(slot.entry)
                await self._changed.wait()

        return await asyncio.wait_for(_wait(), timeout)

    # -------------------------
    # Lookups and import
    # -------------------------

    def register_lookup(self, audio_url: str) -> None:
        """Ask for audio_url's episode id and summary status in the next coalesced batch."""
        if not self._closed:
            self._lookups.register(audio_url)

    def get_lookup_result(self, audio_url: str) -> Optional[LookupResult]:
        return self._lookups.get(audio_url)

    def is_lookup_pending(self, audio_url: str) -> bool:
        return self._lookups.is_pending(audio_url)

    async def flush_lookups(self) -> None:
        """Resolve pending lookups now instead of waiting for the debounce window."""
        await self._lookups.flush()

    async def import_episode(self, episode: EpisodeMetadata, podcast: PodcastMetadata) -> ImportResult:
        """One-shot import of external metadata. Failure comes back as ImportResult(status="import_failed") and creates no queue entry."""
        try:
            episode_id = await self._backend.import_episode(episode, podcast)
        except _POLL_ERRORS as e:
            logger.warning("import of %s failed: %s", episode.external_id, e)
            return ImportResult(status="import_failed", error=str(e) or type(e).__name__)

        if episode.audio_url:
            prev = self._lookups.get(episode.audio_url)
            self._lookups.record(LookupResult(
                audio_url=episode.audio_url,
                episode_id=episode_id,
                summary_status=prev.summary_status if prev else None,
            ))
        return ImportResult(status="imported", episode_id=episode_id)

    async def summarize_external(self, episode: EpisodeMetadata, podcast: PodcastMetadata) -> ImportResult:
        """Import an external episode and queue its summary (retrying if a previous attempt failed)."""
        result = await self.import_episode(episode, podcast)
        if result.ok:
            existing = self._slots.get(result.episode_id)
            if existing is not None and existing.entry.state == FAILED:
                self.retry_episode(result.episode_id)
            else:
                self.add_to_queue(result.episode_id)
        return result

    # -------------------------
    # Polling
    # -------------------------

    def _ensure_polling(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.get_running_loop().create_task(self._poll_loop())

    def _has_active(self) -> bool:
        return any(s.entry.state in ACTIVE_STATES for s in self._slots.values())

    async def _poll_loop(self) -> None:
        while self._has_active():
            self._tick()
            await asyncio.sleep(self.poll_interval)

    def _tick(self) -> None:
        """Start one poll per active episode that has no request outstanding."""
        for episode_id, slot in list(self._slots.items()):
            if slot.entry.state not in ACTIVE_STATES or episode_id in self._inflight:
                continue
            self._inflight.add(episode_id)
            task = asyncio.get_running_loop().create_task(self._poll_one(episode_id, slot.seq))
            self._poll_tasks.add(task)
            task.add_done_callback(self._poll_tasks.discard)

    async def _poll_one(self, episode_id: str, seq: int) -> None:
        try:
            slot = self._current(episode_id, seq)
            if slot is None:
                return
            if not slot.requested:
                await self._backend.request_summary(episode_id, level=self.summary_level)
                slot = self._current(episode_id, seq)
                if slot is None:
                    return
                slot.requested = True
            status = await self._backend.get_status(episode_id, level=self.summary_level)
        except _POLL_ERRORS as e:
            self._record_poll_error(episode_id, seq, e)
        else:
            self._apply_status(episode_id, seq, status)
        finally:
            self._inflight.discard(episode_id)

    def _current(self, episode_id: str, seq: int) -> Optional[_Slot]:
        """The slot a response belongs to, if it is still the same incarnation and still active."""
        slot = self._slots.get(episode_id)
        if slot is None or slot.seq != seq or slot.entry.state not in ACTIVE_STATES:
            return None
        return slot

    def _apply_status(self, episode_id: str, seq: int, status: str) -> None:
        slot = self._current(episode_id, seq)
        if slot is None:
            return
        entry = slot.entry

        if status == FAILED:
            self._finish(slot, FAILED, PROCESSING_FAILED)
        elif status == READY:
            self._finish(slot, READY)
        elif STATE_ORDER.get(status, -1) > STATE_ORDER[entry.state]:
            logger.info("%s: %s -> %s", episode_id, entry.state, status)
            entry.state = status
            entry.poll_attempts = 0
            entry.last_error = None
            self._notify()
        else:
            self._count_attempt(slot)

    def _record_poll_error(self, episode_id: str, seq: int, err: Exception) -> None:
        slot = self._current(episode_id, seq)
        if slot is None:
            return
        slot.entry.last_error = str(err) or type(err).__name__
        if isinstance(err, BackendError) and err.status_code == 404:
            self._finish(slot, FAILED, NOT_FOUND)
            return
        logger.warning("poll for %s failed (attempt %d): %s", episode_id, slot.entry.poll_attempts + 1, err)
        self._count_attempt(slot)

    def _count_attempt(self, slot: _Slot) -> None:
        slot.entry.poll_attempts += 1
        if slot.entry.poll_attempts >= self.max_poll_attempts:
            self._finish(slot, FAILED, TIMED_OUT)

    def _finish(self, slot: _Slot, state: str, error: Optional[str] = None) -> None:
        entry = slot.entry
        entry.state = state
        entry.error = error
        if state == READY:
            self._stats.completed += 1
            logger.info("%s ready", entry.episode_id)
        else:
            self._stats.failed += 1
            logger.warning("%s failed (%s) after %d polls", entry.episode_id, error, entry.poll_attempts)
        self._notify()

    def _notify(self) -> None:
        self._changed.set()
        self._changed = asyncio.Event()

    # -------------------------
    # Lifecycle
    # -------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("tracker is closed")

    async def aclose(self) -> None:
        """Cancel polling, in-flight requests and pending lookups, then drop all entries."""
        if self._closed:
            return
        self._closed = True

        tasks = list(self._poll_tasks)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self._lookups.aclose()
        self._slots.clear()
        self._inflight.clear()
        self._notify()
        if self._owns_backend:
            await self._backend.aclose()
