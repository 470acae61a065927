"""
PackageStore: the durable record of mail packages.

Every call runs in its own unit of work and is committed before it returns,
so a successful write is visible to the next read.
"""

from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

from mailpack.db.repositories.package import PackageMutation
from mailpack.db.unit_of_work import UnitOfWork
from mailpack.errors import PackageNotFound
from mailpack.models.package import MailPackage, PackageArtifacts, PackageState


class PackageStore:
    """Conditional-write store for MailPackage records."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork] = UnitOfWork):
        self._uow_factory = uow_factory

    def create(
        self, artifacts: PackageArtifacts, package_id: str | None = None
    ) -> str:
        """
        Create a package in the scanning state.

        Args:
            artifacts: Initial scan artifacts
            package_id: Pre-allocated ID (generated when omitted)

        Returns:
            The package ID
        """
        now = datetime.now(timezone.utc)
        package = MailPackage(
            id=package_id or str(uuid4()),
            state=PackageState.SCANNING,
            artifacts=artifacts,
            created_at=now,
            updated_at=now,
        )
        with self._uow_factory() as uow:
            created = uow.packages.create(package)
            uow.commit()
        return created.id

    def get(self, package_id: str) -> MailPackage:
        """Get a package, raising PackageNotFound if it does not exist."""
        with self._uow_factory() as uow:
            package = uow.packages.get_by_id(package_id)
        if package is None:
            raise PackageNotFound(package_id)
        return package

    def apply_transition(
        self,
        package_id: str,
        expected_state: PackageState,
        mutation: PackageMutation,
    ) -> MailPackage:
        """Apply ``mutation`` if the package is still in ``expected_state``."""
        with self._uow_factory() as uow:
            updated = uow.packages.apply_transition(
                package_id, expected_state, mutation
            )
            uow.commit()
        return updated

    def list_by_state(self, state: PackageState) -> list[MailPackage]:
        """All packages currently in ``state``, oldest first."""
        packages: list[MailPackage] = []
        batch_size = 500
        with self._uow_factory() as uow:
            while True:
                batch = uow.packages.get_by_state(
                    state, limit=batch_size, offset=len(packages)
                )
                packages.extend(batch)
                if len(batch) < batch_size:
                    return packages

    def list_packages(
        self,
        state: PackageState | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[MailPackage], int]:
        """Page through packages. Returns (packages, total)."""
        with self._uow_factory() as uow:
            packages = uow.packages.get_by_state(state, limit=limit, offset=offset)
            total = uow.packages.count_by_state(state)
        return packages, total

    def count(self, state: PackageState | None = None) -> int:
        """Number of packages, optionally only those in ``state``."""
        with self._uow_factory() as uow:
            return uow.packages.count_by_state(state)
