"""
Worker pool draining the enrichment queue.

Each worker is an asyncio task running a pull loop. Workers share nothing
but the queue and the store; per-package exclusivity is enforced by the queue.
"""

import asyncio
import logging
import random

from mailpack.agents.mail_analyzer import MailAnalyzer
from mailpack.config import EnrichmentSettings
from mailpack.db.store import PackageStore
from mailpack.errors import DuplicateJob, QueueClosed
from mailpack.models.job import EnrichmentJob
from mailpack.models.package import PackageState
from mailpack.worker.handlers import handle_enrichment_job
from mailpack.worker.queue import EnrichmentQueue

logger = logging.getLogger(__name__)


class EnrichmentWorkerPool:
    """
    Fixed-size pool of enrichment workers.

    Usage:
        pool = EnrichmentWorkerPool(queue, store, analyzer, settings)
        await pool.start()   # recovers orphaned packages, spawns workers
        ...
        await pool.stop()
    """

    def __init__(
        self,
        queue: EnrichmentQueue,
        store: PackageStore,
        analyzer: MailAnalyzer,
        settings: EnrichmentSettings | None = None,
        rng: random.Random | None = None,
    ):
        self.queue = queue
        self.store = store
        self.analyzer = analyzer
        self.settings = settings or EnrichmentSettings()
        self._rng = rng
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> int:
        """
        Re-enqueue orphaned packages and start the workers.

        Returns:
            Number of packages recovered
        """
        if self.running:
            raise RuntimeError("Worker pool is already running")

        recovered = self.recover_orphans()
        self._tasks = [
            asyncio.create_task(self._run(worker_id), name=f"enrichment-worker-{worker_id}")
            for worker_id in range(self.settings.worker_count)
        ]
        logger.info(
            "Started %d enrichment worker(s), recovered %d package(s)",
            self.settings.worker_count,
            recovered,
        )
        return recovered

    async def stop(self) -> None:
        """Close the queue and wait for the workers to exit."""
        self.queue.close()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Enrichment workers stopped")

    def recover_orphans(self) -> int:
        """
        Enqueue a job for every processing package that has none outstanding.

        Covers packages left behind by a crash. The attempt number continues
        from the failures already recorded in the current processing cycle.

        Returns:
            Number of jobs enqueued
        """
        recovered = 0
        for package in self.store.list_by_state(PackageState.PROCESSING):
            if self.queue.is_outstanding(package.id):
                continue
            if not package.artifacts.ocr_text:
                logger.warning(
                    "Package %s is processing without OCR text, skipping recovery",
                    package.id,
                )
                continue

            attempt = min(package.attempts_in_cycle + 1, self.settings.max_attempts)
            try:
                self.queue.enqueue(
                    EnrichmentJob(
                        package_id=package.id,
                        payload=package.artifacts.ocr_text,
                        attempt=attempt,
                    )
                )
            except DuplicateJob:
                continue
            recovered += 1
            logger.info("Recovered package %s at attempt %d", package.id, attempt)

        return recovered

    async def _run(self, worker_id: int) -> None:
        """Pull loop for a single worker."""
        while True:
            try:
                job = await self.queue.dequeue()
            except QueueClosed:
                return

            try:
                await handle_enrichment_job(
                    job,
                    queue=self.queue,
                    store=self.store,
                    analyzer=self.analyzer,
                    settings=self.settings,
                    rng=self._rng,
                )
            except QueueClosed:
                return
            except Exception:
                # Package stays in processing and is picked up by recovery
                logger.exception(
                    "Worker %d failed to handle job for package %s",
                    worker_id,
                    job.package_id,
                )
                self.queue.complete(job.package_id)
