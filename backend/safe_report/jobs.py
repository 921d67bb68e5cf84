# backend/safe_report/jobs.py
from __future__ import annotations

import asyncio
import datetime as dt
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

from .log import get_logger
from .models import DeliveryReceipt

LOG = get_logger("jobs")

QUEUED = "queued"
RENDERING = "rendering"
SENDING = "sending"
SENT = "sent"
FAILED = "failed"


def _utcnow_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@dataclass
class DeliveryJob:
    id: str
    recipient: str
    status: str = QUEUED
    error: Optional[str] = None
    receipt: Optional[DeliveryReceipt] = None
    created_at: str = field(default_factory=_utcnow_iso)
    finished_at: Optional[str] = None
    done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def finished(self) -> bool:
        return self.status in (SENT, FAILED)

    def as_dict(self) -> dict:
        out = {"success": self.status != FAILED, "jobId": self.id, "status": self.status,
               "recipient": self.recipient, "createdAt": self.created_at}
        if self.finished_at:
            out["finishedAt"] = self.finished_at
        if self.error:
            out["error"] = self.error
        if self.receipt:
            out["messageId"] = self.receipt.message_id
        return out

    async def wait(self, timeout: Optional[float] = None) -> "DeliveryJob":
        await asyncio.wait_for(self.done.wait(), timeout)
        return self


class DeliveryJobStore:
    """In-memory status for background sends, keyed by job id."""

    def __init__(self, max_jobs: int = 1000):
        self.max_jobs = max_jobs
        self._jobs: Dict[str, DeliveryJob] = {}

    def create(self, recipient: str) -> DeliveryJob:
        job = DeliveryJob(id=uuid.uuid4().hex, recipient=recipient)
        self._jobs[job.id] = job
        self._prune()
        return job

    def get(self, job_id: str) -> Optional[DeliveryJob]:
        return self._jobs.get(job_id)

    def _prune(self) -> None:
        # drop the oldest finished jobs once over capacity
        if len(self._jobs) <= self.max_jobs:
            return
        for job_id in [j.id for j in self._jobs.values() if j.finished]:
            if len(self._jobs) <= self.max_jobs:
                break
            del self._jobs[job_id]

    async def run(self, job: DeliveryJob,
                  work: Callable[[DeliveryJob], Awaitable[DeliveryReceipt]]) -> DeliveryJob:
        """Run work for job, recording the outcome instead of raising."""
        LOG.info(f"[Background] Starting email process for {job.recipient} (job {job.id})")
        try:
            job.receipt = await work(job)
            job.status = SENT
            LOG.info(f"[Background] Email successfully sent to {job.recipient} (job {job.id})")
        except Exception as e:
            job.status = FAILED
            job.error = str(e) or e.__class__.__name__
            LOG.error(f"[Background] Failed to send email to {job.recipient} (job {job.id}): {e}", exc_info=True)
        finally:
            job.finished_at = _utcnow_iso()
            job.done.set()
        return job
