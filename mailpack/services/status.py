"""
StatusProjector: read-only display state for polling clients.
"""

from mailpack.db.store import PackageStore
from mailpack.models.package import (
    DisplayStatus,
    MailPackage,
    PackageState,
    PackageStatus,
)

PROCESSING_LABEL = "Processing…"

DISPLAY_STATUSES: dict[PackageState, DisplayStatus] = {
    PackageState.SCANNING: DisplayStatus(label=PROCESSING_LABEL, actionable=False),
    PackageState.PROCESSING: DisplayStatus(label=PROCESSING_LABEL, actionable=False),
    PackageState.READY_FOR_SURVEY: DisplayStatus(
        label="Ready for Survey", actionable=True, action="survey"
    ),
    PackageState.SURVEY_COMPLETE: DisplayStatus(
        label="Completed", actionable=False, terminal=True
    ),
    PackageState.FAILED: DisplayStatus(
        label="Needs Attention", actionable=True, action="retry"
    ),
}


def project(state: PackageState) -> DisplayStatus:
    """Map a package state to what the client shows."""
    return DISPLAY_STATUSES[state].model_copy()


def to_package_status(package: MailPackage) -> PackageStatus:
    return PackageStatus(
        package_id=package.id,
        state=package.state,
        display=project(package.state),
        retry_count=package.retry_count,
        failure_reason=package.failure_reason,
        updated_at=package.updated_at,
    )


class StatusProjector:
    """Status view over the package store."""

    def __init__(self, store: PackageStore):
        self.store = store

    def status(self, package_id: str) -> PackageStatus:
        """
        Current status of a package.

        Raises:
            PackageNotFound: Package does not exist
        """
        return to_package_status(self.store.get(package_id))
