"""
Unit of Work pattern for transaction coordination.

Provides a clean way to work with repositories within a single transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mailpack.db.connection import DatabaseConnection
from mailpack.db.repositories.package import PackageRepository

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class UnitOfWork:
    """
    Unit of Work for managing database transactions.

    Usage:
        with UnitOfWork() as uow:
            package = uow.packages.create(package)
            uow.commit()  # Explicit commit

        # Auto-rollback on exception:
        with UnitOfWork() as uow:
            uow.packages.apply_transition(package_id, state, mutation)
            raise Exception("Something went wrong")
            # Transaction is automatically rolled back
    """

    def __init__(self):
        self._session: Session | None = None
        self._packages: PackageRepository | None = None

    def __enter__(self) -> UnitOfWork:
        self._session = DatabaseConnection.get_session()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rollback()
        self._close()
        return False  # Don't suppress exceptions

    @property
    def session(self) -> Session:
        """Get current session (raises if not in context)."""
        if self._session is None:
            raise RuntimeError("UnitOfWork must be used within a context manager")
        return self._session

    @property
    def packages(self) -> PackageRepository:
        """Mail package repository for this unit of work."""
        if self._packages is None:
            self._packages = PackageRepository(self.session)
        return self._packages

    def commit(self):
        """Commit the current transaction."""
        self.session.commit()

    def rollback(self):
        """Rollback the current transaction."""
        self.session.rollback()

    def _close(self):
        """Close the session."""
        if self._session is not None:
            self._session.close()
            self._session = None
            self._packages = None
