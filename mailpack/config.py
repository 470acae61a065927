"""
Runtime configuration for MailPack.

Values come from environment variables (optionally loaded from a .env file
by the service entry points).
"""

import os

from pydantic import BaseModel, Field

DEFAULT_MODEL = os.getenv("MAILPACK_MODEL", "gemini-2.5-flash")


class EnrichmentSettings(BaseModel):
    """Retry, backoff and concurrency settings for the enrichment workers."""

    max_attempts: int = Field(
        default=3, ge=1, description="Attempts per processing cycle before failing"
    )
    backoff_base_seconds: float = Field(
        default=2.0, ge=0, description="Delay before the second attempt"
    )
    backoff_max_seconds: float = Field(
        default=60.0, ge=0, description="Ceiling for the retry delay"
    )
    analysis_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for a single AI analysis call"
    )
    worker_count: int = Field(default=2, ge=1, description="Number of worker tasks")

    @classmethod
    def from_env(cls) -> "EnrichmentSettings":
        """Build settings from ENRICHMENT_* environment variables."""
        return cls(
            max_attempts=int(os.getenv("ENRICHMENT_MAX_ATTEMPTS", "3")),
            backoff_base_seconds=float(
                os.getenv("ENRICHMENT_BACKOFF_BASE_SECONDS", "2.0")
            ),
            backoff_max_seconds=float(
                os.getenv("ENRICHMENT_BACKOFF_MAX_SECONDS", "60.0")
            ),
            analysis_timeout_seconds=float(
                os.getenv("ENRICHMENT_TIMEOUT_SECONDS", "30.0")
            ),
            worker_count=int(os.getenv("ENRICHMENT_WORKERS", "2")),
        )
