import logging
import time
from typing import Callable, Optional, Type, TypeVar, Tuple

T = TypeVar("T")

logger = logging.getLogger(__name__)


def with_retry(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    backoff_seconds: float = 0.5,
    retry_on: Optional[Tuple[Type[BaseException], ...]] = (Exception,),
    label: str = "call",
) -> T:
    """Run fn() with retries and exponential backoff (backoff_seconds * 2**attempt). If retry_on is None, defaults to (Exception,).
    Why available: Wraps the OpenAI transcription and summary calls and the audio download so a transient API or network failure does not fail the whole summary job."""
    exc_types: Tuple[Type[BaseException], ...] = retry_on or (Exception,)

    for attempt in range(retries + 1):
        try:
            return fn()
        except exc_types as e:
            if attempt >= retries:
                raise
            sleep_s = backoff_seconds * (2 ** attempt)
            logger.warning(
                "retrying %s after %s (attempt %d/%d, sleep %.2fs)",
                label, type(e).__name__, attempt + 1, retries, sleep_s,
            )
            time.sleep(sleep_s)

    raise RuntimeError("unreachable")
