"""OpenAI client for transcription and summaries (api_key from config)."""
from typing import Any

from podbrief.core.config import settings
from openai import OpenAI

_openai_client: Any = None


def get_openai_client() -> OpenAI:
    """Return a singleton OpenAI client configured with api_key from settings. Used for audio transcription and summary generation.
    Why available: Single place to get the OpenAI client so the transcriber and summarizer share the same config."""
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAI(api_key=settings.openai_api_key)
    return _openai_client
