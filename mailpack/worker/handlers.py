"""
Enrichment job handler.

Contains the business logic a worker runs for one dequeued job: call the AI
analyzer, then apply the result, schedule a retry, or fail the package.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone

from mailpack.agents.mail_analyzer import MailAnalyzer
from mailpack.config import EnrichmentSettings
from mailpack.db.store import PackageStore
from mailpack.errors import (
    AnalysisError,
    AnalysisTimeout,
    PackageNotFound,
    PreconditionFailed,
)
from mailpack.models.job import EnrichmentJob
from mailpack.models.package import EnrichmentResult, MailPackage, PackageState
from mailpack.worker.backoff import compute_backoff
from mailpack.worker.queue import EnrichmentQueue

logger = logging.getLogger(__name__)


async def handle_enrichment_job(
    job: EnrichmentJob,
    *,
    queue: EnrichmentQueue,
    store: PackageStore,
    analyzer: MailAnalyzer,
    settings: EnrichmentSettings,
    rng: random.Random | None = None,
) -> dict:
    """
    Handle one enrichment attempt.

    The caller must hold the job (it came from ``queue.dequeue()``). On every
    path except a scheduled retry the package is released from the queue.

    Args:
        job: Dequeued job
        queue: Queue the job came from
        store: Package store
        analyzer: AI analysis collaborator
        settings: Retry and timeout settings
        rng: Random source for backoff jitter

    Returns:
        dict: Outcome with "status" in
            {"enriched", "retry_scheduled", "failed", "discarded"}
    """
    logger.info(
        "Enriching package %s (attempt %d/%d)",
        job.package_id,
        job.attempt,
        settings.max_attempts,
    )

    try:
        result = await asyncio.wait_for(
            analyzer.analyze(job.payload),
            timeout=settings.analysis_timeout_seconds,
        )
    except asyncio.TimeoutError:
        error: Exception = AnalysisTimeout(
            f"Analysis timed out after {settings.analysis_timeout_seconds}s"
        )
    except AnalysisError as e:
        error = e
    except Exception as e:
        logger.exception("Unexpected analysis error for package %s", job.package_id)
        error = e
    else:
        return _apply_result(job, result, queue=queue, store=store)

    return _handle_failure(
        job, error, queue=queue, store=store, settings=settings, rng=rng
    )


def _apply_result(
    job: EnrichmentJob,
    result: EnrichmentResult,
    *,
    queue: EnrichmentQueue,
    store: PackageStore,
) -> dict:
    """Store the enrichment and move the package to ready_for_survey."""

    def mutation(package: MailPackage) -> MailPackage:
        package.enrichment = result
        package.state = PackageState.READY_FOR_SURVEY
        package.processing_completed_at = datetime.now(timezone.utc)
        return package

    try:
        store.apply_transition(job.package_id, PackageState.PROCESSING, mutation)
    except (PreconditionFailed, PackageNotFound) as e:
        # Package was reprocessed or removed meanwhile; the result is stale
        logger.info("Discarding enrichment for package %s: %s", job.package_id, e)
        return {"status": "discarded", "package_id": job.package_id}
    finally:
        queue.complete(job.package_id)

    logger.info(
        "Package %s ready for survey",
        job.package_id,
        extra={
            "json_fields": {
                "package_id": job.package_id,
                "attempt": job.attempt,
                "industry": result.industry,
                "brand_name": result.brand_name,
            }
        },
    )
    return {
        "status": "enriched",
        "package_id": job.package_id,
        "attempt": job.attempt,
    }


def _handle_failure(
    job: EnrichmentJob,
    error: Exception,
    *,
    queue: EnrichmentQueue,
    store: PackageStore,
    settings: EnrichmentSettings,
    rng: random.Random | None,
) -> dict:
    """Record a failed attempt and either schedule a retry or fail the package."""
    transient = getattr(error, "transient", True)
    give_up = not transient or job.attempt >= settings.max_attempts
    reason = f"{type(error).__name__}: {error}"

    def mutation(package: MailPackage) -> MailPackage:
        package.retry_count += 1
        if give_up:
            package.state = PackageState.FAILED
            package.failure_reason = reason
        return package

    try:
        package = store.apply_transition(
            job.package_id, PackageState.PROCESSING, mutation
        )
    except (PreconditionFailed, PackageNotFound) as e:
        queue.complete(job.package_id)
        logger.info("Dropping job for package %s: %s", job.package_id, e)
        return {"status": "discarded", "package_id": job.package_id}
    except Exception:
        queue.complete(job.package_id)
        raise

    if give_up:
        queue.complete(job.package_id)
        logger.warning(
            "Enrichment failed for package %s after %d attempt(s): %s",
            job.package_id,
            job.attempt,
            reason,
            extra={
                "json_fields": {
                    "package_id": job.package_id,
                    "attempt": job.attempt,
                    "retry_count": package.retry_count,
                    "permanent": not transient,
                }
            },
        )
        return {
            "status": "failed",
            "package_id": job.package_id,
            "attempt": job.attempt,
            "reason": reason,
        }

    delay = compute_backoff(
        job.attempt,
        settings.backoff_base_seconds,
        settings.backoff_max_seconds,
        rng,
    )
    queue.retry(job.next_attempt(), delay)
    logger.warning(
        "Transient enrichment failure for package %s, retrying in %.2fs: %s",
        job.package_id,
        delay,
        reason,
        extra={
            "json_fields": {
                "package_id": job.package_id,
                "attempt": job.attempt,
                "next_attempt": job.attempt + 1,
                "retry_count": package.retry_count,
                "delay_seconds": delay,
            }
        },
    )
    return {
        "status": "retry_scheduled",
        "package_id": job.package_id,
        "attempt": job.attempt,
        "delay_seconds": delay,
    }
