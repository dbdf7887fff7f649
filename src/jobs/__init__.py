"""Job management module."""

from src.jobs.queue import CaptureQueue, capture_queue
from src.jobs.scheduler import AdmissionDecision, AdmissionScheduler, has_permission, scheduler
from src.jobs.store import JobStore, job_store
from src.jobs.worker import CaptureWorker

__all__ = [
    "CaptureQueue",
    "capture_queue",
    "AdmissionDecision",
    "AdmissionScheduler",
    "has_permission",
    "scheduler",
    "JobStore",
    "job_store",
    "CaptureWorker",
]
