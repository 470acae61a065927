from datetime import datetime, timezone
from enum import StrEnum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PackageState(StrEnum):
    """Lifecycle state of a mail package"""

    SCANNING = "scanning"  # Images being captured and uploaded
    PROCESSING = "processing"  # Waiting for or running AI enrichment
    READY_FOR_SURVEY = "ready_for_survey"  # Enriched, waiting for the user
    SURVEY_COMPLETE = "survey_complete"  # Terminal
    FAILED = "failed"  # Enrichment gave up, user may retry

    def can_transition_to(self, target: "PackageState") -> bool:
        """Whether moving from this state to ``target`` is a legal edge."""
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[PackageState, frozenset[PackageState]] = {
    PackageState.SCANNING: frozenset({PackageState.PROCESSING}),
    PackageState.PROCESSING: frozenset(
        {PackageState.READY_FOR_SURVEY, PackageState.FAILED}
    ),
    # Reprocess resets a finished package back to processing
    PackageState.READY_FOR_SURVEY: frozenset(
        {PackageState.SURVEY_COMPLETE, PackageState.PROCESSING}
    ),
    PackageState.SURVEY_COMPLETE: frozenset({PackageState.PROCESSING}),
    PackageState.FAILED: frozenset({PackageState.PROCESSING}),
}

# States from which an explicit reprocess is accepted
REPROCESSABLE_STATES = frozenset(
    {
        PackageState.READY_FOR_SURVEY,
        PackageState.SURVEY_COMPLETE,
        PackageState.FAILED,
    }
)


def combine_ocr_texts(texts: list[str]) -> str:
    """
    Combine per-image OCR texts into the single blob sent for analysis.

    Args:
        texts: OCR text of each image, in capture order

    Returns:
        Combined text with one "--- Image N ---" section per image
    """
    return "".join(
        f"--- Image {index} ---\n{text}\n\n" for index, text in enumerate(texts, 1)
    )


class ScanReference(BaseModel):
    """Uploaded scan image"""

    storage_ref: str = Field(description="Reference returned by the upload service")
    sequence: int = Field(ge=1, description="1-based position in capture order")
    content_type: str = Field(default="image/jpeg", description="MIME type")
    sha256: Optional[str] = Field(default=None, description="SHA-256 of image bytes")
    size_bytes: Optional[int] = Field(default=None, description="Image size")


class PackageArtifacts(BaseModel):
    """Scan images plus the combined OCR text of a package"""

    images: list[ScanReference] = Field(
        default_factory=list, description="Scan images in capture order"
    )
    ocr_text: Optional[str] = Field(
        default=None, description="Combined OCR text, set when scanning finishes"
    )
    ocr_text_ref: Optional[str] = Field(
        default=None, description="Storage reference of the uploaded OCR text"
    )


class EnrichmentResult(BaseModel):
    """AI analysis output for a mail package"""

    industry: str = Field(description="Industry of the sender")
    brand_name: Optional[str] = Field(default=None, description="Sending brand")
    primary_offer: Optional[str] = Field(default=None, description="Main offer")
    response_intention: Optional[str] = Field(
        default=None, description="What the mail asks the recipient to do"
    )
    name_check: Optional[str] = Field(
        default=None, description="Whether the addressee name could be verified"
    )
    urgency_level: Optional[str] = Field(default=None, description="Urgency of offer")
    estimated_value: Optional[str] = Field(
        default=None, description="Estimated value of the offer"
    )
    recipient: Optional[str] = Field(
        default=None, description="Addressee printed on the mail piece"
    )
    mail_type: Optional[str] = Field(
        default=None, description="Kind of mail (promotional, statement, ...)"
    )

    @property
    def has_specific_recipient(self) -> bool:
        """True when the mail is addressed to a named person."""
        if not self.recipient or not self.recipient.strip():
            return False
        return self.recipient.strip().lower() != "current resident"


class SurveyAnswers(BaseModel):
    """Answers submitted by the user for an enriched package"""

    recipient_answer: Optional[Literal["me", "someone_else", "dont_know"]] = Field(
        default=None,
        description="Who the addressee is (required when a recipient was detected)",
    )
    brand_name_answer: Literal["yes", "no"] = Field(
        description="Whether the offer was sent by the detected brand"
    )
    intention_answer: Literal["yes", "no"] = Field(
        description="Whether the user intends to act on the offer"
    )
    industry: Optional[str] = Field(default=None, description="Corrected industry")
    brand_name: Optional[str] = Field(default=None, description="Corrected brand")
    primary_offer: Optional[str] = Field(default=None, description="Corrected offer")
    is_approved: bool = Field(default=True, description="User approves the package")


class SurveyResult(BaseModel):
    """User-confirmed package details recorded at survey completion"""

    recipient_answer: Optional[str] = None
    brand_name_answer: str
    intention_answer: str
    industry: Optional[str] = None
    brand_name: Optional[str] = None
    primary_offer: Optional[str] = None
    company_validated: bool = False
    is_approved: bool = True


class MailPackage(BaseModel):
    """
    A physical mail item being documented by a user.

    Moves scanning -> processing -> ready_for_survey -> survey_complete,
    with processing -> failed and failed -> processing as the exceptions.
    """

    # Identity
    id: str = Field(description="Package identifier (UUID)")
    state: PackageState = Field(
        default=PackageState.SCANNING, description="Current lifecycle state"
    )

    # Content
    artifacts: PackageArtifacts = Field(default_factory=PackageArtifacts)
    enrichment: Optional[EnrichmentResult] = Field(
        default=None, description="AI analysis, set when processing succeeds"
    )
    survey_result: Optional[SurveyResult] = Field(
        default=None, description="Survey outcome, set on completion"
    )

    # Retry tracking
    retry_count: int = Field(
        default=0, ge=0, description="Enrichment failures over the package lifetime"
    )
    retry_budget_start: int = Field(
        default=0,
        ge=0,
        description="retry_count when the current processing cycle began",
    )
    failure_reason: Optional[str] = Field(
        default=None, description="Why enrichment gave up"
    )

    # Timing
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    survey_completed_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Record creation time",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last update time",
    )
    version: int = Field(default=0, ge=0, description="Write counter")

    @property
    def attempts_in_cycle(self) -> int:
        """Enrichment failures since the current processing cycle began."""
        return self.retry_count - self.retry_budget_start

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "3f0c2a4e-8d5b-4c1e-9a8f-2b7d6e5c4a10",
                "state": "ready_for_survey",
                "artifacts": {
                    "images": [
                        {
                            "storage_ref": "scans/3f0c2a4e/1.jpg",
                            "sequence": 1,
                            "content_type": "image/jpeg",
                        }
                    ],
                    "ocr_text": "--- Image 1 ---\nSAVE 20% ON YOUR NEXT ORDER\n\n",
                    "ocr_text_ref": "scans/3f0c2a4e/ocr.txt",
                },
                "enrichment": {
                    "industry": "Retail",
                    "brand_name": "Target",
                    "primary_offer": "20% off next order",
                    "recipient": "CURRENT RESIDENT",
                },
                "retry_count": 0,
                "created_at": "2026-01-23T10:00:00Z",
                "updated_at": "2026-01-23T10:00:15Z",
            }
        }
    )


class DisplayStatus(BaseModel):
    """Client-facing rendering of a package state"""

    label: str = Field(description="Text shown to the user")
    actionable: bool = Field(description="Whether the user can act on the package")
    terminal: bool = Field(default=False, description="No further changes expected")
    action: Optional[Literal["survey", "retry"]] = Field(
        default=None, description="Action offered to the user"
    )


class PackageStatus(BaseModel):
    """Polling view of a single package"""

    package_id: str
    state: PackageState
    display: DisplayStatus
    retry_count: int
    failure_reason: Optional[str] = None
    updated_at: datetime
