"""Capture queue: admission, job creation and worker scheduling."""

import asyncio
import uuid
from datetime import datetime
from typing import Any

from src.auth import OneTimeCodeSource
from src.browser.manager import browser_manager
from src.delivery import DeliveryChannel, local_delivery
from src.errors import FailureKind, RateLimitedError
from src.jobs.scheduler import AdmissionScheduler, scheduler as default_scheduler
from src.jobs.store import JobStore, job_store
from src.jobs.worker import CaptureWorker, SessionFactory
from src.locator import redact_locator
from src.models import CaptureJob, CaptureRequest, JobPhase
from src.utils.cancellation import CancellationToken
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Phases in which a cancellation request is accepted; a request made while
# still initializing is observed once authentication starts
CANCEL_REQUEST_PHASES = frozenset(
    {JobPhase.INITIALIZING, JobPhase.AUTHENTICATING, JobPhase.CAPTURING}
)


class CaptureQueue:
    """
    Admits capture requests and runs each admitted job in its own worker.

    Admission is decided synchronously by the scheduler, so a queued job
    already holds its concurrency slot; the processor only starts workers.
    """

    def __init__(
        self,
        scheduler: AdmissionScheduler | None = None,
        store: JobStore | None = None,
        delivery: DeliveryChannel | None = None,
        session_factory: SessionFactory | None = None,
        code_source: OneTimeCodeSource | None = None,
        worker_options: dict[str, Any] | None = None,
    ) -> None:
        self.scheduler = scheduler or default_scheduler
        self.store = store or job_store
        self.delivery = delivery or local_delivery
        self.session_factory = session_factory or browser_manager.open_session
        self.code_source = code_source
        self.worker_options = worker_options or {}
        self._running = False
        self._job_queue: asyncio.Queue[CaptureJob] = asyncio.Queue()
        self._active_workers: dict[str, asyncio.Task[CaptureJob]] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._processor_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start the queue processor."""
        if self._running:
            return

        self._running = True
        self._processor_task = asyncio.create_task(self._process_jobs())
        logger.info("Capture queue started", max_concurrent=self.scheduler.max_concurrent)

    async def stop(self) -> None:
        """Stop the processor and cancel running jobs."""
        self._running = False

        if self._processor_task:
            self._processor_task.cancel()
            try:
                await self._processor_task
            except asyncio.CancelledError:
                pass
            self._processor_task = None

        # Jobs admitted but never started still hold a scheduler slot
        while not self._job_queue.empty():
            job = self._job_queue.get_nowait()
            job.mark_failed(FailureKind.CANCELLED, "Service shutting down")
            await self.store.update(job)
            self._tokens.pop(job.id, None)
            self.scheduler.release(job.request.requester_id)

        if self._active_workers:
            logger.info("Cancelling active workers", count=len(self._active_workers))
            for token in self._tokens.values():
                token.cancel()
            await asyncio.gather(*self._active_workers.values(), return_exceptions=True)
            self._active_workers.clear()

        logger.info("Capture queue stopped")

    async def submit(self, request: CaptureRequest) -> CaptureJob:
        """
        Admit a request and queue its job.

        Raises:
            RateLimitedError: When the scheduler denies admission
        """
        decision = self.scheduler.try_admit(request.requester_id)
        if not decision.admitted:
            raise RateLimitedError(
                decision.reason or "Rate limited",
                retry_after=decision.retry_after,
            )

        job = CaptureJob(
            id=str(uuid.uuid4()),
            request=request,
            queued_at=datetime.utcnow(),
        )
        await self.store.add(job)
        self._tokens[job.id] = CancellationToken()
        await self._job_queue.put(job)

        logger.info(
            "Capture job queued",
            job_id=job.id,
            requester_id=request.requester_id,
            document=redact_locator(request.locator.url),
        )
        return job

    def cancel(self, job_id: str) -> bool:
        """
        Request cooperative cancellation of a job.

        Returns:
            True if the request was accepted, False if the job is unknown or
            past the point where it can be cancelled
        """
        job = self.store.get(job_id)
        token = self._tokens.get(job_id)
        if job is None or token is None or job.phase not in CANCEL_REQUEST_PHASES:
            return False
        token.cancel()
        logger.info("Cancellation requested", job_id=job_id, phase=job.phase.value)
        return True

    async def _process_jobs(self) -> None:
        """Background task that starts workers for queued jobs."""
        while self._running:
            try:
                try:
                    job = await asyncio.wait_for(self._job_queue.get(), timeout=1.0)
                except TimeoutError:
                    continue

                worker = CaptureWorker(
                    job,
                    scheduler=self.scheduler,
                    delivery=self.delivery,
                    store=self.store,
                    session_factory=self.session_factory,
                    code_source=self.code_source,
                    cancellation=self._tokens[job.id],
                    **self.worker_options,
                )
                task = asyncio.create_task(self._run_worker_with_cleanup(job.id, worker))
                self._active_workers[job.id] = task

                logger.debug(
                    "Capture worker started",
                    job_id=job.id,
                    active_workers=len(self._active_workers),
                )

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error starting capture worker", error=str(e))

    async def _run_worker_with_cleanup(self, job_id: str, worker: CaptureWorker) -> CaptureJob:
        """Run a worker and drop it from the active set when done."""
        try:
            return await worker.run()
        finally:
            self._active_workers.pop(job_id, None)
            self._tokens.pop(job_id, None)
            logger.debug(
                "Capture worker finished",
                job_id=job_id,
                active_workers=len(self._active_workers),
            )

    async def wait_for(self, job_id: str) -> CaptureJob | None:
        """Wait until a job's worker has finished; returns the stored job."""
        while True:
            task = self._active_workers.get(job_id)
            if task is not None:
                await asyncio.gather(task, return_exceptions=True)
                return self.store.get(job_id)
            job = self.store.get(job_id)
            if job is None or job.phase.is_terminal:
                return job
            await asyncio.sleep(0.01)

    def get_job(self, job_id: str) -> CaptureJob | None:
        """Get a job by ID."""
        return self.store.get(job_id)

    @property
    def pending_jobs(self) -> int:
        """Number of admitted jobs waiting for a worker."""
        return self._job_queue.qsize()

    @property
    def active_jobs(self) -> int:
        """Number of jobs currently being processed."""
        return len(self._active_workers)


# Global capture queue instance
capture_queue = CaptureQueue()
