"""
ledger_services -- stateful orchestration above the kernel and modules.

PostingOrchestrator owns the unit of work for every top-level call;
JobDispatcher turns committed postings into background jobs and webhooks.
"""

from ledger_services.jobs import InMemoryJobQueue, JobDispatcher, JobQueue, QueuedJob
from ledger_services.posting_orchestrator import PostingContext, PostingOrchestrator

__all__ = [
    "InMemoryJobQueue",
    "JobDispatcher",
    "JobQueue",
    "PostingContext",
    "PostingOrchestrator",
    "QueuedJob",
]
