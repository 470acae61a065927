from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class EnrichmentJob(BaseModel):
    """
    Queue entry asking a worker to enrich one mail package.

    The payload is a snapshot of the combined OCR text taken at enqueue
    time, so later changes to the package never alter an in-flight job.
    """

    package_id: str = Field(description="Mail package to enrich (reference only)")
    payload: str = Field(description="Combined OCR text sent for analysis")
    attempt: int = Field(default=1, ge=1, description="Attempt number, starts at 1")
    enqueued_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When this attempt was queued",
    )

    model_config = ConfigDict(frozen=True)

    def next_attempt(self) -> "EnrichmentJob":
        """Return the job for the following attempt."""
        return EnrichmentJob(
            package_id=self.package_id,
            payload=self.payload,
            attempt=self.attempt + 1,
        )
