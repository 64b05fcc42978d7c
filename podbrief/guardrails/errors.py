import logging

from fastapi import HTTPException

logger = logging.getLogger(__name__)


def as_http_500(e: Exception, *, what: str = "request") -> HTTPException:
    """Log exception and return a generic 500 HTTPException naming only the failed operation (no internal details leaked)."""
    logger.error("%s failed: %s", what, type(e).__name__, exc_info=e)
    return HTTPException(status_code=500, detail=f"Failed to {what}")
