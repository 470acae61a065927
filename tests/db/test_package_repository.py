"""
Unit tests for PackageRepository conditional writes.

These tests drive the repository with a mock session, so the race between
the read and the conditional update can be simulated without a database.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from mailpack.db.repositories.package import PackageRepository
from mailpack.errors import PreconditionFailed
from mailpack.models.package import MailPackage, PackageState


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock database session."""
    return MagicMock()


@pytest.fixture
def package_repo(mock_session: MagicMock) -> PackageRepository:
    """Create a PackageRepository with mock session."""
    return PackageRepository(mock_session)


def _row(state: PackageState = PackageState.SCANNING, version: int = 4):
    now = datetime(2026, 1, 23, 10, 0, 0)
    return SimpleNamespace(
        id="pkg-1",
        state=state.value,
        images=[{"storage_ref": "fake://scan/1.jpg", "sequence": 1}],
        ocr_text=None,
        ocr_text_ref=None,
        enrichment=None,
        survey_result=None,
        retry_count=0,
        retry_budget_start=0,
        failure_reason=None,
        processing_started_at=None,
        processing_completed_at=None,
        survey_completed_at=None,
        created_at=now,
        updated_at=now,
        version=version,
    )


def _select_result(row) -> MagicMock:
    result = MagicMock()
    result.first.return_value = row
    return result


def _to_processing(package: MailPackage) -> MailPackage:
    package.artifacts.ocr_text = "text"
    package.state = PackageState.PROCESSING
    return package


class TestRowConversion:
    def test_naive_timestamps_read_back_as_utc(self, package_repo: PackageRepository):
        package = package_repo._row_to_model(_row())

        assert package.created_at.tzinfo == timezone.utc
        assert package.artifacts.images[0].storage_ref == "fake://scan/1.jpg"

    def test_model_to_dict_serializes_nested_models(
        self, package_repo: PackageRepository
    ):
        package = package_repo._row_to_model(_row())
        data = package_repo._model_to_dict(package)

        assert data["state"] == "scanning"
        assert data["images"][0]["sequence"] == 1
        assert data["enrichment"] is None


class TestApplyTransition:
    def test_bumps_version_and_updates(
        self, package_repo: PackageRepository, mock_session: MagicMock
    ):
        mock_session.execute.side_effect = [
            _select_result(_row(version=4)),
            MagicMock(rowcount=1),
        ]

        updated = package_repo.apply_transition(
            "pkg-1", PackageState.SCANNING, _to_processing
        )

        assert updated.version == 5
        assert updated.state == PackageState.PROCESSING
        assert mock_session.execute.call_count == 2

    def test_concurrent_write_between_read_and_update(
        self, package_repo: PackageRepository, mock_session: MagicMock
    ):
        """Row matched on read but the conditional update touched nothing."""
        mock_session.execute.side_effect = [
            _select_result(_row(version=4)),
            MagicMock(rowcount=0),
        ]

        with pytest.raises(PreconditionFailed) as exc_info:
            package_repo.apply_transition(
                "pkg-1", PackageState.SCANNING, _to_processing
            )

        assert exc_info.value.expected == "scanning"

    def test_identity_fields_are_preserved(
        self, package_repo: PackageRepository, mock_session: MagicMock
    ):
        def mutation(package: MailPackage) -> MailPackage:
            package.id = "other"
            package.version = 99
            return _to_processing(package)

        mock_session.execute.side_effect = [
            _select_result(_row(version=1)),
            MagicMock(rowcount=1),
        ]
        updated = package_repo.apply_transition(
            "pkg-1", PackageState.SCANNING, mutation
        )

        assert updated.id == "pkg-1"
        assert updated.version == 2
        assert updated.created_at == datetime(2026, 1, 23, 10, 0, tzinfo=timezone.utc)

