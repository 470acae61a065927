"""
Error taxonomy for the mail package workflow.

Store and queue errors are raised to the caller. Only transient analysis
errors are absorbed by the enrichment workers, up to the retry budget.
"""


class MailPackError(Exception):
    """Base class for workflow errors."""


class PackageNotFound(MailPackError):
    def __init__(self, package_id: str):
        self.package_id = package_id
        super().__init__(f"Mail package not found: {package_id}")


class InvalidState(MailPackError):
    """Operation is not allowed in the package's current state."""

    def __init__(self, package_id: str, state: str, operation: str):
        self.package_id = package_id
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} mail package {package_id} in state '{state}'"
        )


class NotReady(MailPackError):
    """Survey submitted before enrichment finished."""

    def __init__(self, package_id: str, state: str):
        self.package_id = package_id
        self.state = state
        super().__init__(
            f"Mail package {package_id} is not ready for survey (state '{state}')"
        )


class AlreadyComplete(MailPackError):
    """Survey already recorded. Clients may treat this as success."""

    def __init__(self, package_id: str):
        self.package_id = package_id
        super().__init__(f"Survey already completed for mail package {package_id}")


class PreconditionFailed(MailPackError):
    """Conditional write lost: the stored package no longer matches."""

    def __init__(self, package_id: str, expected: str, actual: str | None = None):
        self.package_id = package_id
        self.expected = expected
        self.actual = actual
        detail = f"expected state '{expected}'"
        if actual is not None:
            detail += f", found '{actual}'"
        super().__init__(f"Precondition failed for mail package {package_id}: {detail}")


class DuplicateJob(MailPackError):
    def __init__(self, package_id: str):
        self.package_id = package_id
        super().__init__(
            f"An enrichment job is already outstanding for mail package {package_id}"
        )


class QueueClosed(MailPackError):
    """Raised by dequeue once the queue has been shut down."""


class UploadFailed(MailPackError):
    """The upload collaborator could not persist an artifact."""


class InvalidScan(MailPackError):
    """Scan submission is malformed (e.g. no images for a new package)."""


class InvalidSurvey(MailPackError):
    """Survey answers are incomplete for this package."""


class AnalysisError(MailPackError):
    """Base class for AI analysis failures."""

    transient = True


class AnalysisTimeout(AnalysisError):
    """The analysis call did not answer in time."""


class AnalysisUnavailable(AnalysisError):
    """Network error or server-side failure of the analysis service."""


class AnalysisRejected(AnalysisError):
    """The analysis service refused the input. Never retried."""

    transient = False
