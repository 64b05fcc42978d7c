import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment: OpenAI key and models, tracker polling/lookup policy, backend request limits, and prompt version.
    Why available: Single source of configuration so the backend, the pipeline and the tracker agree on limits and timings."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    transcription_model: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # tracker (client side)
    backend_url: str = os.getenv("BACKEND_URL", "http://localhost:8000")
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))
    poll_interval_seconds: float = float(os.getenv("POLL_INTERVAL_SECONDS", "2.5"))
    max_poll_attempts: int = int(os.getenv("MAX_POLL_ATTEMPTS", "240"))  # ~10 min at 2.5s
    lookup_batch_delay_ms: int = int(os.getenv("LOOKUP_BATCH_DELAY_MS", "50"))
    lookup_max_batch: int = int(os.getenv("LOOKUP_MAX_BATCH", "100"))

    # backend
    max_check_urls: int = int(os.getenv("MAX_CHECK_URLS", "100"))
    max_batch_lookup_urls: int = int(os.getenv("MAX_BATCH_LOOKUP_URLS", "50"))
    max_audio_mb: int = int(os.getenv("MAX_AUDIO_MB", "25"))
    max_transcript_chars: int = int(os.getenv("MAX_TRANSCRIPT_CHARS", "100000"))
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "120"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    @field_validator(
        "request_timeout_seconds",
        "poll_interval_seconds",
        "max_poll_attempts",
        "lookup_batch_delay_ms",
        "lookup_max_batch",
        "max_check_urls",
        "max_batch_lookup_urls",
        "max_audio_mb",
        "max_transcript_chars",
        "rate_limit_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure timings and limits are positive. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v


settings = Settings()
