"""
API request/response models.

These models define the structure of requests and responses for the
scan submission, survey and status endpoints.
"""

from pydantic import BaseModel, Field, model_validator

from mailpack.models.package import (
    MailPackage,
    PackageStatus,
    SurveyAnswers,
    combine_ocr_texts,
)

# Constants
MAX_IMAGES_PER_REQUEST = 20


class ScanImagePayload(BaseModel):
    """Single scan image in a submission."""

    image_data: str = Field(description="Base64 encoded image data", min_length=1)
    content_type: str | None = Field(
        default=None, description="MIME type (detected from bytes when omitted)"
    )
    filename: str | None = Field(default=None, description="Original filename")


class OcrTextPayload(BaseModel):
    """OCR text that finishes scanning, combined or per page."""

    ocr_text: str | None = Field(
        default=None, description="Combined OCR text for the whole package"
    )
    page_texts: list[str] | None = Field(
        default=None, description="OCR text per image, in capture order"
    )

    @model_validator(mode="after")
    def _one_text_source(self):
        if self.ocr_text is not None and self.page_texts is not None:
            raise ValueError("Provide either ocr_text or page_texts, not both")
        if self.ocr_text is not None and not self.ocr_text.strip():
            raise ValueError("OCR text is empty")
        if self.page_texts is not None and not any(
            text.strip() for text in self.page_texts
        ):
            raise ValueError("OCR text is empty on every page")
        return self

    def combined_text(self) -> str | None:
        """Combined OCR text, or None when scanning is not finished."""
        if self.page_texts is not None:
            return combine_ocr_texts(self.page_texts)
        return self.ocr_text


class SubmitScanRequest(OcrTextPayload):
    """Request body for creating a package or appending scans to it."""

    package_id: str | None = Field(
        default=None, description="Existing package to append to (new if omitted)"
    )
    images: list[ScanImagePayload] = Field(
        default_factory=list,
        description="Scan images to upload",
        max_length=MAX_IMAGES_PER_REQUEST,
    )


class FinalizeScanRequest(OcrTextPayload):
    """Request body for finishing scanning and starting enrichment."""

    @model_validator(mode="after")
    def _text_required(self):
        if self.ocr_text is None and self.page_texts is None:
            raise ValueError("ocr_text or page_texts is required")
        return self


class SubmitSurveyRequest(SurveyAnswers):
    """Request body for survey submission."""


class PackageResponse(BaseModel):
    """Package plus its display status."""

    package: MailPackage
    status: PackageStatus


class PackageListResponse(BaseModel):
    """Paginated package list."""

    packages: list[PackageStatus]
    total: int
    limit: int
    offset: int
