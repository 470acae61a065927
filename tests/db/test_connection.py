"""
Tests for DatabaseConnection lifecycle and UnitOfWork session handling.
"""

from datetime import datetime, timezone

import pytest

from mailpack.db import DatabaseConnection, PackageStore, UnitOfWork
from mailpack.db.repositories.package import PackageRepository
from mailpack.models.package import MailPackage, PackageArtifacts, PackageState


def _package(package_id: str) -> MailPackage:
    now = datetime.now(timezone.utc)
    return MailPackage(
        id=package_id,
        state=PackageState.SCANNING,
        artifacts=PackageArtifacts(),
        created_at=now,
        updated_at=now,
    )


class TestLifecycle:
    def test_initialized_database_hands_out_sessions(self, database):
        assert DatabaseConnection.is_initialized()

        session = DatabaseConnection.get_session()
        try:
            assert session.bind is DatabaseConnection.get_engine()
        finally:
            session.close()

    def test_close_blocks_new_sessions(self, database):
        DatabaseConnection.close()

        assert not DatabaseConnection.is_initialized()
        with pytest.raises(RuntimeError):
            DatabaseConnection.get_session()
        with pytest.raises(RuntimeError):
            DatabaseConnection.get_engine()


class TestUnitOfWork:
    def test_commit_persists(self, store: PackageStore):
        with UnitOfWork() as uow:
            uow.packages.create(_package("kept"))
            uow.commit()

        assert store.get("kept").state == PackageState.SCANNING

    def test_exception_rolls_back(self, store: PackageStore):
        with pytest.raises(ValueError):
            with UnitOfWork() as uow:
                uow.packages.create(_package("dropped"))
                raise ValueError("boom")

        assert store.list_packages()[1] == 0

    def test_session_outside_context_rejected(self, database):
        with pytest.raises(RuntimeError):
            UnitOfWork().session

    def test_repository_has_no_unconditional_update(self):
        assert not hasattr(PackageRepository, "update_by_id")
