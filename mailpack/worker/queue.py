"""
In-process enrichment job queue.

Jobs are served by eligible time (enqueue time plus any retry delay), ties
broken by enqueue order. A package has at most one outstanding job, counted
from enqueue until the worker holding it calls ``complete``.
"""

import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable

from mailpack.errors import DuplicateJob, QueueClosed
from mailpack.models.job import EnrichmentJob

logger = logging.getLogger(__name__)


class EnrichmentQueue:
    """
    Delay-aware priority queue with per-package exclusivity.

    Usage:
        queue = EnrichmentQueue()
        queue.enqueue(job)

        # in a worker
        job = await queue.dequeue()
        try:
            ...
        finally:
            queue.complete(job.package_id)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._heap: list[tuple[float, int, EnrichmentJob]] = []
        self._sequence = itertools.count()
        self._outstanding: set[str] = set()
        self._in_flight: set[str] = set()
        self._wakeup = asyncio.Event()
        self._closed = False

    def enqueue(self, job: EnrichmentJob, delay: float = 0.0) -> EnrichmentJob:
        """
        Add a job for a package that has nothing outstanding.

        Args:
            job: Job to schedule
            delay: Seconds before the job becomes eligible

        Returns:
            The queued job

        Raises:
            DuplicateJob: The package already has a queued or in-flight job
            QueueClosed: The queue has been shut down
        """
        if self._closed:
            raise QueueClosed("Enrichment queue is closed")
        if job.package_id in self._outstanding:
            raise DuplicateJob(job.package_id)

        self._outstanding.add(job.package_id)
        self._push(job, delay)
        logger.info(
            "Queued enrichment for package %s (attempt %d)",
            job.package_id,
            job.attempt,
        )
        return job

    def retry(self, job: EnrichmentJob, delay: float) -> EnrichmentJob:
        """
        Schedule another attempt for a package held by the caller.

        The package stays outstanding, so no other job can be queued for it
        while it waits for its backoff deadline.
        """
        if self._closed:
            raise QueueClosed("Enrichment queue is closed")
        if job.package_id not in self._in_flight:
            raise ValueError(
                f"Package {job.package_id} is not held by a worker; use enqueue()"
            )

        self._in_flight.discard(job.package_id)
        self._push(job, delay)
        return job

    async def dequeue(self) -> EnrichmentJob:
        """
        Wait for the next eligible job and mark its package in flight.

        Raises:
            QueueClosed: The queue was shut down while waiting
        """
        while True:
            if self._closed:
                raise QueueClosed("Enrichment queue is closed")

            timeout = None
            if self._heap:
                eligible_at, _, job = self._heap[0]
                now = self._clock()
                if eligible_at <= now:
                    heapq.heappop(self._heap)
                    self._in_flight.add(job.package_id)
                    return job
                timeout = eligible_at - now

            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout)
            except asyncio.TimeoutError:
                pass

    def complete(self, package_id: str) -> None:
        """Release a package after its job succeeded, failed or was dropped."""
        self._in_flight.discard(package_id)
        self._outstanding.discard(package_id)

    def is_outstanding(self, package_id: str) -> bool:
        return package_id in self._outstanding

    @property
    def pending_count(self) -> int:
        """Jobs waiting in the queue, including those still in backoff."""
        return len(self._heap)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop handing out jobs and wake every waiting worker."""
        self._closed = True
        self._wakeup.set()

    def _push(self, job: EnrichmentJob, delay: float) -> None:
        eligible_at = self._clock() + max(delay, 0.0)
        heapq.heappush(self._heap, (eligible_at, next(self._sequence), job))
        self._wakeup.set()
