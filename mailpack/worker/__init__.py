"""
MailPack enrichment workers

In-process background processing for finalized mail packages:
- Delay-aware job queue with one outstanding job per package
- Worker pool calling the AI mail analyzer
- Bounded retries with exponential backoff and jitter
"""

from mailpack.worker.backoff import compute_backoff
from mailpack.worker.handlers import handle_enrichment_job
from mailpack.worker.pool import EnrichmentWorkerPool
from mailpack.worker.queue import EnrichmentQueue

__all__ = [
    "EnrichmentQueue",
    "EnrichmentWorkerPool",
    "compute_backoff",
    "handle_enrichment_job",
]
