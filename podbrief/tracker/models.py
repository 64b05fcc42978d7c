"""State carried by the client-side summarize tracker: queue entries, lookup results, import outcomes."""
from dataclasses import dataclass
from typing import Literal, Optional

QueueState = Literal["queued", "transcribing", "summarizing", "ready", "failed"]

QUEUED = "queued"
TRANSCRIBING = "transcribing"
SUMMARIZING = "summarizing"
READY = "ready"
FAILED = "failed"

# Happy-path order; a backend status is adopted only when it ranks higher.
STATE_ORDER = {QUEUED: 0, TRANSCRIBING: 1, SUMMARIZING: 2, READY: 3}
ACTIVE_STATES = (QUEUED, TRANSCRIBING, SUMMARIZING)
TERMINAL_STATES = (READY, FAILED)

# Failure causes recorded on QueueEntry.error
PROCESSING_FAILED = "processing_failed"
TIMED_OUT = "timed_out"


@dataclass
class QueueEntry:
    """One tracked episode: state (queued | transcribing | summarizing | ready | failed), enqueue time and poll attempts.
    Why available: The unit the tracker hands to callers; get_queue_item returns a copy so callers never mutate tracker state."""

    episode_id: str
    state: str
    enqueued_at: float
    poll_attempts: int = 0
    retry_count: int = 0
    error: Optional[str] = None  # processing_failed | timed_out
    last_error: Optional[str] = None  # last transient poll failure

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def timed_out(self) -> bool:
        return self.state == FAILED and self.error == TIMED_OUT


@dataclass(frozen=True)
class LookupResult:
    """Audio URL lookup: episode_id is None until the episode has been imported; summary_status is ready | failed | None."""

    audio_url: str
    episode_id: Optional[str] = None
    summary_status: Optional[str] = None


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a one-shot import: status is "imported" or "import_failed". Never a queue state."""

    status: Literal["imported", "import_failed"]
    episode_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "imported"


@dataclass
class QueueStats:
    """Counters for a session toast: completed and failed jobs out of total enqueued."""

    completed: int = 0
    failed: int = 0
    total: int = 0
