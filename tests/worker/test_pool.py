"""
Tests for the enrichment worker pool.

These run real asyncio workers against the SQLite store with a scripted
analyzer and millisecond backoff.
"""

import asyncio

import pytest

from mailpack.config import EnrichmentSettings
from mailpack.db import PackageStore
from mailpack.errors import AnalysisUnavailable, DuplicateJob
from mailpack.models.job import EnrichmentJob
from mailpack.models.package import EnrichmentResult, MailPackage, PackageState
from mailpack.worker.pool import EnrichmentWorkerPool
from mailpack.worker.queue import EnrichmentQueue

pytest_plugins = ("pytest_asyncio",)


def _enqueue(queue: EnrichmentQueue, package: MailPackage) -> None:
    queue.enqueue(
        EnrichmentJob(package_id=package.id, payload=package.artifacts.ocr_text)
    )


class TestEnrichmentScenarios:
    @pytest.mark.asyncio
    async def test_success(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
        wait_for_state,
    ):
        pool = EnrichmentWorkerPool(queue, store, analyzer_factory(), settings)
        await pool.start()
        try:
            package = make_package(PackageState.PROCESSING)
            _enqueue(queue, package)
            done = await wait_for_state(package.id, PackageState.READY_FOR_SURVEY)
        finally:
            await pool.stop()

        assert done.enrichment.brand_name == "Acme"
        assert done.retry_count == 0

    @pytest.mark.asyncio
    async def test_two_timeouts_then_success(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        make_package,
        analyzer_factory,
        wait_for_state,
        hang,
    ):
        settings = EnrichmentSettings(
            max_attempts=3,
            backoff_base_seconds=0.01,
            backoff_max_seconds=0.02,
            analysis_timeout_seconds=0.05,
            worker_count=1,
        )
        third = EnrichmentResult(industry="Finance", brand_name="Third Call Bank")
        analyzer = analyzer_factory(script=[hang, hang, third])

        pool = EnrichmentWorkerPool(queue, store, analyzer, settings)
        await pool.start()
        try:
            package = make_package(PackageState.PROCESSING)
            _enqueue(queue, package)
            done = await wait_for_state(package.id, PackageState.READY_FOR_SURVEY)
        finally:
            await pool.stop()

        assert done.retry_count == 2
        assert done.enrichment == third
        assert len(analyzer.calls) == 3

    @pytest.mark.asyncio
    async def test_budget_exhaustion_fails_and_stays_failed(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
        wait_for_state,
    ):
        analyzer = analyzer_factory(
            script=[AnalysisUnavailable("503")] * 3,
            default=EnrichmentResult(industry="Never Used"),
        )

        pool = EnrichmentWorkerPool(queue, store, analyzer, settings)
        await pool.start()
        try:
            package = make_package(PackageState.PROCESSING)
            _enqueue(queue, package)
            failed = await wait_for_state(package.id, PackageState.FAILED)
            await asyncio.sleep(0.1)
            later = store.get(package.id)
        finally:
            await pool.stop()

        assert failed.retry_count == settings.max_attempts
        assert later.state == PackageState.FAILED
        assert len(analyzer.calls) == settings.max_attempts
        assert not queue.is_outstanding(package.id)

    @pytest.mark.asyncio
    async def test_later_package_may_finish_first(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
        wait_for_state,
    ):
        analyzer = analyzer_factory(delays={"A": 0.5})

        pool = EnrichmentWorkerPool(queue, store, analyzer, settings)
        await pool.start()
        try:
            package_a = make_package(PackageState.PROCESSING, ocr_text="A")
            package_b = make_package(PackageState.PROCESSING, ocr_text="B")
            _enqueue(queue, package_a)
            _enqueue(queue, package_b)
            await wait_for_state(package_b.id, PackageState.READY_FOR_SURVEY)
            a_meanwhile = store.get(package_a.id)
            await wait_for_state(package_a.id, PackageState.READY_FOR_SURVEY)
        finally:
            await pool.stop()

        assert a_meanwhile.state == PackageState.PROCESSING
        assert analyzer.completed == ["B", "A"]

    @pytest.mark.asyncio
    async def test_duplicate_enqueue_never_runs_concurrently(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
        wait_for_state,
    ):
        analyzer = analyzer_factory(delays={"A": 0.1})

        pool = EnrichmentWorkerPool(queue, store, analyzer, settings)
        await pool.start()
        try:
            package = make_package(PackageState.PROCESSING, ocr_text="A")
            _enqueue(queue, package)
            with pytest.raises(DuplicateJob):
                _enqueue(queue, package)
            await asyncio.sleep(0.02)
            with pytest.raises(DuplicateJob):
                _enqueue(queue, package)
            await wait_for_state(package.id, PackageState.READY_FOR_SURVEY)
        finally:
            await pool.stop()

        assert analyzer.calls == ["A"]
        assert analyzer.max_concurrent_same_text == 1


class TestRecovery:
    def test_orphaned_processing_packages_requeued(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
    ):
        orphan = make_package(PackageState.PROCESSING)
        make_package(PackageState.SCANNING)
        make_package(PackageState.FAILED)

        pool = EnrichmentWorkerPool(queue, store, analyzer_factory(), settings)

        assert pool.recover_orphans() == 1
        assert queue.is_outstanding(orphan.id)
        assert queue.pending_count == 1

    @pytest.mark.asyncio
    async def test_attempt_continues_from_retry_count(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
    ):
        orphan = make_package(PackageState.PROCESSING)

        def two_failures(package: MailPackage) -> MailPackage:
            package.retry_count = 2
            return package

        store.apply_transition(orphan.id, PackageState.PROCESSING, two_failures)
        pool = EnrichmentWorkerPool(queue, store, analyzer_factory(), settings)
        pool.recover_orphans()

        job = await queue.dequeue()
        assert job.attempt == 3
        assert job.payload == orphan.artifacts.ocr_text

    def test_outstanding_packages_skipped(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
    ):
        package = make_package(PackageState.PROCESSING)
        _enqueue(queue, package)
        pool = EnrichmentWorkerPool(queue, store, analyzer_factory(), settings)

        assert pool.recover_orphans() == 0
        assert queue.pending_count == 1

    def test_recovered_package_rejects_second_enqueue(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
    ):
        orphan = make_package(PackageState.PROCESSING)
        pool = EnrichmentWorkerPool(queue, store, analyzer_factory(), settings)
        pool.recover_orphans()

        with pytest.raises(DuplicateJob):
            _enqueue(queue, orphan)
        assert queue.pending_count == 1

    @pytest.mark.asyncio
    async def test_start_recovers_and_processes(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        make_package,
        analyzer_factory,
        wait_for_state,
    ):
        orphan = make_package(PackageState.PROCESSING)
        pool = EnrichmentWorkerPool(queue, store, analyzer_factory(), settings)

        recovered = await pool.start()
        try:
            await wait_for_state(orphan.id, PackageState.READY_FOR_SURVEY)
        finally:
            await pool.stop()

        assert recovered == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_twice_rejected(
        self,
        store: PackageStore,
        queue: EnrichmentQueue,
        settings: EnrichmentSettings,
        analyzer_factory,
    ):
        pool = EnrichmentWorkerPool(queue, store, analyzer_factory(), settings)
        await pool.start()
        try:
            assert pool.running
            with pytest.raises(RuntimeError):
                await pool.start()
        finally:
            await pool.stop()

        assert not pool.running
        assert queue.closed
