"""
pytest configuration and fixtures.

Loads environment variables from .env file for all tests and provides a
file-backed SQLite store plus scripted fakes for the upload and AI analysis
collaborators.
"""

import asyncio
from pathlib import Path
from typing import Iterable

import pytest
from dotenv import load_dotenv

from mailpack.config import EnrichmentSettings
from mailpack.db import DatabaseConnection, PackageStore
from mailpack.errors import UploadFailed
from mailpack.models.package import (
    EnrichmentResult,
    MailPackage,
    PackageArtifacts,
    PackageState,
    ScanReference,
)
from mailpack.storage.uploader import build_filename
from mailpack.worker.queue import EnrichmentQueue

# Sentinel outcome: the analyzer call never answers
HANG = object()


def pytest_configure(config):
    """Load .env file before running tests"""
    # Find the project root (where .env is located)
    project_root = Path(__file__).parent.parent
    env_file = project_root / ".env"

    if env_file.exists():
        print(f"Loading environment from {env_file}")
        load_dotenv(env_file)


class FakeUploader:
    """Records uploads; fails every call once ``fail_after`` uploads succeeded."""

    def __init__(self, fail_after: int | None = None):
        self.fail_after = fail_after
        self.calls: list[dict] = []

    def store(self, data: bytes, content_type: str, metadata: dict[str, str]) -> str:
        if self.fail_after is not None and len(self.calls) >= self.fail_after:
            raise UploadFailed("Upload service unavailable")
        self.calls.append(
            {"data": data, "content_type": content_type, "metadata": dict(metadata)}
        )
        filename = build_filename(content_type, metadata)
        return f"fake://{metadata.get('package_id')}/{filename}"


class ScriptedAnalyzer:
    """
    MailAnalyzer fake that plays back scripted outcomes.

    Each call consumes the next outcome: an EnrichmentResult is returned, an
    exception is raised, HANG never answers. Once the script is exhausted the
    default result is returned. ``delays`` maps OCR text to seconds to sleep
    before answering.
    """

    def __init__(
        self,
        script: Iterable = (),
        default: EnrichmentResult | None = None,
        delays: dict[str, float] | None = None,
    ):
        self.script = list(script)
        self.default = default or EnrichmentResult(industry="Retail", brand_name="Acme")
        self.delays = delays or {}
        self.calls: list[str] = []
        self.completed: list[str] = []
        self.active: dict[str, int] = {}
        self.max_concurrent_same_text = 0

    async def analyze(self, text: str) -> EnrichmentResult:
        self.calls.append(text)
        self.active[text] = self.active.get(text, 0) + 1
        self.max_concurrent_same_text = max(
            self.max_concurrent_same_text, self.active[text]
        )
        try:
            outcome = self.script.pop(0) if self.script else self.default
            delay = self.delays.get(text, 0)
            if delay:
                await asyncio.sleep(delay)
            if outcome is HANG:
                await asyncio.sleep(3600)
            if isinstance(outcome, BaseException):
                raise outcome
            self.completed.append(text)
            return outcome
        finally:
            self.active[text] -= 1


@pytest.fixture
def database(tmp_path: Path):
    """Initialize a fresh SQLite database file for one test."""
    DatabaseConnection.close()
    DatabaseConnection.initialize(database_url=f"sqlite:///{tmp_path / 'mailpack.db'}")
    DatabaseConnection.create_schema()
    yield DatabaseConnection
    DatabaseConnection.close()


@pytest.fixture
def store(database) -> PackageStore:
    return PackageStore()


@pytest.fixture
def queue() -> EnrichmentQueue:
    return EnrichmentQueue()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def uploader_factory():
    """Build uploaders with custom failure behaviour."""
    return FakeUploader


@pytest.fixture
def analyzer_factory():
    """Build scripted analyzers."""
    return ScriptedAnalyzer


@pytest.fixture
def hang():
    """Outcome that makes a scripted analyzer call never answer."""
    return HANG


@pytest.fixture
def settings() -> EnrichmentSettings:
    """Enrichment settings with millisecond backoff for fast tests."""
    return EnrichmentSettings(
        max_attempts=3,
        backoff_base_seconds=0.01,
        backoff_max_seconds=0.05,
        analysis_timeout_seconds=0.2,
        worker_count=2,
    )


@pytest.fixture
def sample_enrichment() -> EnrichmentResult:
    return EnrichmentResult(
        industry="Retail",
        brand_name="Target",
        primary_offer="20% off next order",
        response_intention="purchase",
        urgency_level="medium",
        recipient="CURRENT RESIDENT",
        mail_type="promotional",
    )


@pytest.fixture
def make_package(store: PackageStore):
    """
    Create a stored package and walk it to the requested state.

    Usage:
        package = make_package(PackageState.READY_FOR_SURVEY, enrichment=...)
    """

    def _make(
        state: PackageState = PackageState.SCANNING,
        ocr_text: str = "--- Image 1 ---\nSAVE 20% TODAY\n\n",
        enrichment: EnrichmentResult | None = None,
    ) -> MailPackage:
        package_id = store.create(
            PackageArtifacts(
                images=[ScanReference(storage_ref="fake://scan/1.jpg", sequence=1)]
            )
        )
        if state == PackageState.SCANNING:
            return store.get(package_id)

        def to_processing(package: MailPackage) -> MailPackage:
            package.artifacts.ocr_text = ocr_text
            package.state = PackageState.PROCESSING
            return package

        package = store.apply_transition(
            package_id, PackageState.SCANNING, to_processing
        )
        if state == PackageState.PROCESSING:
            return package

        if state == PackageState.FAILED:

            def to_failed(package: MailPackage) -> MailPackage:
                package.retry_count += 1
                package.failure_reason = "AnalysisRejected: unreadable"
                package.state = PackageState.FAILED
                return package

            return store.apply_transition(
                package_id, PackageState.PROCESSING, to_failed
            )

        def to_ready(package: MailPackage) -> MailPackage:
            package.enrichment = enrichment or EnrichmentResult(industry="Retail")
            package.state = PackageState.READY_FOR_SURVEY
            return package

        package = store.apply_transition(package_id, PackageState.PROCESSING, to_ready)
        if state == PackageState.READY_FOR_SURVEY:
            return package

        def to_complete(package: MailPackage) -> MailPackage:
            package.state = PackageState.SURVEY_COMPLETE
            return package

        return store.apply_transition(
            package_id, PackageState.READY_FOR_SURVEY, to_complete
        )

    return _make


@pytest.fixture
def wait_for_state(store: PackageStore):
    """Poll the store until a package reaches one of the given states."""

    async def _wait(
        package_id: str, *states: PackageState, timeout: float = 5.0
    ) -> MailPackage:
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            package = store.get(package_id)
            if package.state in states:
                return package
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError(
                    f"Package {package_id} stuck in {package.state.value}, "
                    f"expected {[s.value for s in states]}"
                )
            await asyncio.sleep(0.01)

    return _wait
