"""
SQLAlchemy Table definitions for the MailPack database.

Uses SQLAlchemy Core (not ORM) for flexibility with Pydantic models.
JSON columns are stored as JSONB on PostgreSQL and plain JSON elsewhere.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB

metadata = MetaData()

JSONType = JSON().with_variant(JSONB(), "postgresql")

# =============================================================================
# TABLE: mail_packages
# =============================================================================

mail_packages = Table(
    "mail_packages",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("state", String(20), nullable=False, default="scanning"),
    # Scans and OCR text
    Column("images", JSONType, nullable=False, default=[]),
    Column("ocr_text", Text),
    Column("ocr_text_ref", Text),
    # Enrichment and survey results
    Column("enrichment", JSONType),
    Column("survey_result", JSONType),
    # Retry tracking
    Column("retry_count", Integer, nullable=False, default=0),
    Column("retry_budget_start", Integer, nullable=False, default=0),
    Column("failure_reason", Text),
    # Timing
    Column("processing_started_at", DateTime(timezone=True)),
    Column("processing_completed_at", DateTime(timezone=True)),
    Column("survey_completed_at", DateTime(timezone=True)),
    # Timestamps and optimistic concurrency
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("version", Integer, nullable=False, default=0),
    Index("ix_mail_packages_state", "state"),
)
