"""Summary status ordering and the overall episode status reported to pollers."""
from typing import Iterable, Optional

# Higher number = higher priority; picks the "best" status when several rows exist.
SUMMARY_STATUS_PRIORITY = {
    "ready": 6,
    "summarizing": 5,
    "transcribing": 4,
    "queued": 3,
    "failed": 2,
    "not_ready": 1,
}

IN_PROGRESS = ("queued", "transcribing", "summarizing")


def best_status(statuses: Iterable[Optional[str]]) -> Optional[str]:
    """Return the highest-priority status among statuses (None and unknown values ignored), or None."""
    best = None
    best_p = 0
    for s in statuses:
        p = SUMMARY_STATUS_PRIORITY.get(s or "", 0)
        if p > best_p:
            best, best_p = s, p
    return best


def overall_status(transcript_status: Optional[str], summary_status: Optional[str]) -> str:
    """Collapse transcript and summary-level statuses into the single status polled by the tracker.
    Why available: The tracker's state machine speaks one status; the backend stores a transcript row and one row per summary level."""
    if summary_status == "ready":
        return "ready"
    if summary_status == "failed" or transcript_status == "failed":
        return "failed"
    if summary_status == "summarizing":
        return "summarizing"
    if summary_status == "transcribing" or transcript_status == "transcribing":
        return "transcribing"
    if summary_status == "queued" or transcript_status == "queued":
        return "queued"
    return "not_ready"
