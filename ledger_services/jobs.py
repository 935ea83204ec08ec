"""
Post-commit job dispatch (``ledger_services.jobs``).

Responsibility:
    Fire-and-forget enqueue of background jobs (anomaly detection,
    insights, recommendations) and webhook events after a posting has
    committed.

Invariants:
    - Dispatch only ever runs from ``UnitOfWork.after_commit``.
    - A failing enqueue is logged as ``post_commit_job_failed`` and never
      propagates: the committed posting is not revisited.

The queue handle is injected; ``InMemoryJobQueue`` serves tests and local
runs.  There is no process-wide queue singleton.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.jobs")

DEFAULT_POST_COMMIT_JOBS = ("detect-anomalies", "generate-insights", "generate-recommendations")
WEBHOOK_JOB = "webhook"


class JobQueue(Protocol):
    def enqueue(self, name: str, payload: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class QueuedJob:
    name: str
    payload: dict[str, Any]
    enqueued_at: datetime


@dataclass
class InMemoryJobQueue:
    """List-backed queue.  Not thread-safe."""

    clock: Clock = field(default_factory=SystemClock)
    jobs: list[QueuedJob] = field(default_factory=list)

    def enqueue(self, name: str, payload: dict[str, Any]) -> None:
        self.jobs.append(QueuedJob(name=name, payload=dict(payload), enqueued_at=self.clock.now()))

    def names(self) -> list[str]:
        return [job.name for job in self.jobs]

    def webhook_events(self) -> list[str]:
        return [job.payload["event"] for job in self.jobs if job.name == WEBHOOK_JOB]

    def clear(self) -> None:
        self.jobs.clear()

    def __len__(self) -> int:
        return len(self.jobs)


class JobDispatcher:
    """
    Enqueues the configured post-commit jobs and webhook events.

    Webhook events not listed in ``webhook_events`` are dropped with a
    debug log, so a deployment can switch individual events off in config.
    """

    def __init__(
        self,
        queue: JobQueue,
        post_commit_jobs: tuple[str, ...] = DEFAULT_POST_COMMIT_JOBS,
        webhook_events: tuple[str, ...] | None = None,
    ):
        self._queue = queue
        self._post_commit_jobs = tuple(post_commit_jobs)
        self._webhook_events = None if webhook_events is None else frozenset(webhook_events)

    def _enqueue(self, name: str, payload: dict[str, Any]) -> bool:
        try:
            self._queue.enqueue(name, payload)
        except Exception:
            logger.error(
                "post_commit_job_failed",
                extra={"job": name, "document_id": payload.get("document_id")},
                exc_info=True,
            )
            return False
        logger.debug("post_commit_job_enqueued", extra={"job": name})
        return True

    def dispatch(
        self,
        *,
        tenant_id: str,
        company_id: str,
        document_type: str,
        document_id: Any,
        event: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> int:
        """Enqueue every post-commit job plus ``event``; returns how many were accepted."""
        payload: dict[str, Any] = {
            "tenant_id": tenant_id,
            "company_id": company_id,
            "document_type": document_type,
            "document_id": str(document_id),
            "correlation_id": LogContext.get_all().get("correlation_id"),
        }
        payload.update(details or {})

        accepted = 0
        for job in self._post_commit_jobs:
            accepted += self._enqueue(job, payload)

        if event is not None:
            if self._webhook_events is not None and event not in self._webhook_events:
                logger.debug("webhook_event_disabled", extra={"event": event})
            else:
                accepted += self._enqueue(WEBHOOK_JOB, {**payload, "event": event})
        return accepted
