#!/usr/bin/env python3
"""Print tracker polling policy and backend limits (from config). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from podbrief.core.config import settings


def main():
    """Print the configured polling policy, lookup batching and API limits."""
    give_up_s = settings.poll_interval_seconds * settings.max_poll_attempts
    print("Tracker policy")
    print("--------------")
    print(f"  BACKEND_URL             = {settings.backend_url}")
    print(f"  POLL_INTERVAL_SECONDS   = {settings.poll_interval_seconds}")
    print(f"  MAX_POLL_ATTEMPTS       = {settings.max_poll_attempts} (gives up after ~{give_up_s / 60:.1f} min without progress)")
    print(f"  LOOKUP_BATCH_DELAY_MS   = {settings.lookup_batch_delay_ms}")
    print(f"  LOOKUP_MAX_BATCH        = {settings.lookup_max_batch}")
    print("")
    print("Backend limits")
    print("--------------")
    print(f"  MAX_CHECK_URLS          = {settings.max_check_urls} (per /summaries/check)")
    print(f"  MAX_BATCH_LOOKUP_URLS   = {settings.max_batch_lookup_urls} (per /episodes/batch-lookup)")
    print(f"  MAX_AUDIO_MB            = {settings.max_audio_mb}")
    print(f"  Rate limit              = {settings.rate_limit_requests} requests / {settings.rate_limit_window_seconds} s (per client IP)")
    if settings.lookup_max_batch > settings.max_check_urls:
        print("")
        print("WARNING: LOOKUP_MAX_BATCH exceeds MAX_CHECK_URLS; large feeds will get 400s.")


if __name__ == "__main__":
    main()
