import time
from collections import defaultdict, deque
from typing import Deque, Dict

from fastapi import HTTPException
from starlette.requests import Request


class SimpleRateLimiter:
    """Sliding-window rate limiter; in-memory (per process). Caps requests per client IP.
    Why available: The tracker polls every few seconds per episode, so one misbehaving client must not starve the others."""

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.storage: Dict[str, Deque[float]] = defaultdict(deque)  # ip -> timestamps

    def check(self, request: Request):
        """Raise 429 if the client has exceeded the rate limit; otherwise record the request."""
        now = time.time()
        ip = request.client.host if request.client else "unknown"

        timestamps = self.storage[ip]
        while timestamps and now - timestamps[0] >= self.window_seconds:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded. Please retry later.",
                headers={"Retry-After": str(self.window_seconds)},
            )

        timestamps.append(now)

    def reset(self) -> None:
        self.storage.clear()
