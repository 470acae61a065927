"""
MailPack data models.

This package contains all Pydantic models for the mail package workflow.
"""

# Job models
from mailpack.models.job import EnrichmentJob

# Package models
from mailpack.models.package import (
    ALLOWED_TRANSITIONS,
    DisplayStatus,
    EnrichmentResult,
    MailPackage,
    PackageArtifacts,
    PackageState,
    PackageStatus,
    ScanReference,
    SurveyAnswers,
    SurveyResult,
    combine_ocr_texts,
)

__all__ = [
    # Package models
    "ALLOWED_TRANSITIONS",
    "DisplayStatus",
    "EnrichmentResult",
    "MailPackage",
    "PackageArtifacts",
    "PackageState",
    "PackageStatus",
    "ScanReference",
    "SurveyAnswers",
    "SurveyResult",
    "combine_ocr_texts",
    # Job models
    "EnrichmentJob",
]
