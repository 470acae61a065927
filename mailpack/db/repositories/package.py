"""
Mail package repository for database operations.

Handles package CRUD and conditional state transitions.
"""

from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy import Table, func, select, update

from mailpack.db.repositories.base import (
    BaseRepository,
    as_utc,
    jsonb_to_model,
    jsonb_to_models,
    model_to_jsonb,
    models_to_jsonb,
)
from mailpack.db.tables import mail_packages
from mailpack.errors import InvalidState, PackageNotFound, PreconditionFailed
from mailpack.models.package import (
    EnrichmentResult,
    MailPackage,
    PackageArtifacts,
    PackageState,
    ScanReference,
    SurveyResult,
)

PackageMutation = Callable[[MailPackage], MailPackage]


class PackageRepository(BaseRepository[MailPackage]):
    """Repository for MailPackage operations with optimistic concurrency."""

    @property
    def table(self) -> Table:
        return mail_packages

    def _row_to_model(self, row: Any) -> MailPackage:
        """Convert database row to MailPackage model."""
        return MailPackage(
            id=str(row.id),
            state=PackageState(row.state),
            artifacts=PackageArtifacts(
                images=jsonb_to_models(row.images, ScanReference),
                ocr_text=row.ocr_text,
                ocr_text_ref=row.ocr_text_ref,
            ),
            enrichment=jsonb_to_model(row.enrichment, EnrichmentResult),
            survey_result=jsonb_to_model(row.survey_result, SurveyResult),
            retry_count=row.retry_count or 0,
            retry_budget_start=row.retry_budget_start or 0,
            failure_reason=row.failure_reason,
            processing_started_at=as_utc(row.processing_started_at),
            processing_completed_at=as_utc(row.processing_completed_at),
            survey_completed_at=as_utc(row.survey_completed_at),
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
            version=row.version or 0,
        )

    def _model_to_dict(self, model: MailPackage) -> dict:
        """Convert MailPackage model to database dict."""
        return {
            "id": model.id or str(uuid4()),
            "state": model.state.value,
            "images": models_to_jsonb(model.artifacts.images),
            "ocr_text": model.artifacts.ocr_text,
            "ocr_text_ref": model.artifacts.ocr_text_ref,
            "enrichment": model_to_jsonb(model.enrichment),
            "survey_result": model_to_jsonb(model.survey_result),
            "retry_count": model.retry_count,
            "retry_budget_start": model.retry_budget_start,
            "failure_reason": model.failure_reason,
            "processing_started_at": model.processing_started_at,
            "processing_completed_at": model.processing_completed_at,
            "survey_completed_at": model.survey_completed_at,
            "created_at": model.created_at,
            "updated_at": model.updated_at,
            "version": model.version,
        }

    def apply_transition(
        self,
        package_id: str,
        expected_state: PackageState,
        mutation: PackageMutation,
    ) -> MailPackage:
        """
        Apply a mutation to a package conditioned on its current state.

        The write only lands if the row still has the state and version that
        were read, so a concurrent writer makes this call fail instead of
        being overwritten.

        Args:
            package_id: Package ID
            expected_state: State the caller assumes the package is in
            mutation: Receives a copy of the package and returns the new version

        Returns:
            The stored package after the mutation

        Raises:
            PackageNotFound: No package with this ID
            PreconditionFailed: State differs from expected_state, or the row
                changed between read and write
            InvalidState: The mutation attempts an illegal state edge
        """
        current = self.get_by_id(package_id)
        if current is None:
            raise PackageNotFound(package_id)

        if current.state != expected_state:
            raise PreconditionFailed(
                package_id, expected_state.value, current.state.value
            )

        updated = mutation(current.model_copy(deep=True))

        if updated.state != current.state and not current.state.can_transition_to(
            updated.state
        ):
            raise InvalidState(
                package_id,
                current.state.value,
                f"move to '{updated.state.value}'",
            )

        updated.id = current.id
        updated.created_at = current.created_at
        updated.updated_at = datetime.now(timezone.utc)
        updated.version = current.version + 1

        values = self._model_to_dict(updated)
        values.pop("id")
        values.pop("created_at")

        stmt = (
            update(self.table)
            .where(self.table.c.id == package_id)
            .where(self.table.c.state == expected_state.value)
            .where(self.table.c.version == current.version)
            .values(**values)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 0:
            raise PreconditionFailed(package_id, expected_state.value)

        return updated

    def get_by_state(
        self,
        state: PackageState | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[MailPackage]:
        """
        List packages, oldest first.

        Args:
            state: Optional state filter
            limit: Maximum number of packages to return
            offset: Number of packages to skip

        Returns:
            List of packages
        """
        stmt = select(self.table)
        if state is not None:
            stmt = stmt.where(self.table.c.state == state.value)

        stmt = (
            stmt.order_by(self.table.c.created_at.asc(), self.table.c.id.asc())
            .limit(limit)
            .offset(offset)
        )

        result = self.session.execute(stmt)
        return [self._row_to_model(row) for row in result.fetchall()]

    def count_by_state(self, state: PackageState | None = None) -> int:
        """Count packages, optionally filtered by state."""
        stmt = select(func.count()).select_from(self.table)
        if state is not None:
            stmt = stmt.where(self.table.c.state == state.value)
        return self.session.execute(stmt).scalar_one()
