"""In-memory job storage."""

import asyncio
from collections import Counter
from typing import Any

from src.models import CaptureJob, JobPhase
from src.utils.logging import get_logger

logger = get_logger(__name__)


class JobStore:
    """
    Thread-safe in-memory store for capture jobs.

    Terminal jobs stay in the store so their status can still be looked up;
    ``get_active`` returns only jobs that have not finished.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, CaptureJob] = {}
        self._lock = asyncio.Lock()

    async def add(self, job: CaptureJob) -> None:
        """Add a job to the store."""
        async with self._lock:
            self._jobs[job.id] = job
            logger.debug("Job added to store", job_id=job.id)

    def get(self, job_id: str) -> CaptureJob | None:
        """Get a job by ID (no lock needed for read)."""
        return self._jobs.get(job_id)

    async def update(self, job: CaptureJob) -> None:
        """Update an existing job."""
        async with self._lock:
            if job.id in self._jobs:
                self._jobs[job.id] = job
                logger.debug("Job updated", job_id=job.id, phase=job.phase.value)

    def get_by_requester(self, requester_id: str) -> list[CaptureJob]:
        """Get all jobs submitted by a requester."""
        return [job for job in self._jobs.values() if job.request.requester_id == requester_id]

    def get_active(self) -> list[CaptureJob]:
        """Jobs that have not reached a terminal phase."""
        return [job for job in self._jobs.values() if not job.phase.is_terminal]

    def get_all(self) -> list[CaptureJob]:
        """Get all jobs."""
        return list(self._jobs.values())

    def stats(self) -> dict[str, Any]:
        """Job counts per phase and the mean run time of completed jobs."""
        by_phase = Counter(job.phase.value for job in self._jobs.values())
        durations = [
            job.execution_time_ms
            for job in self._jobs.values()
            if job.phase == JobPhase.COMPLETED and job.execution_time_ms is not None
        ]
        return {
            "total": len(self._jobs),
            "by_phase": dict(by_phase),
            "average_duration_ms": round(sum(durations) / len(durations)) if durations else None,
        }

    @property
    def count(self) -> int:
        """Total number of jobs."""
        return len(self._jobs)


# Global store instance
job_store = JobStore()
