"""Capture worker: runs one job through its lifecycle."""

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from src.assembly import DocumentAssembler
from src.auth import GateConfig, GateResolver, OneTimeCodeSource, UnconfiguredCodeSource
from src.browser.backend import RenderingBackend
from src.browser.cdp import CDPError, NavigationError
from src.capture import CaptureConfig, PaginationController
from src.config import settings
from src.delivery import DeliveryChannel
from src.errors import CaptureError, DocumentUnavailableError, FailureKind, JobCancelledError
from src.jobs.scheduler import AdmissionScheduler
from src.jobs.store import JobStore
from src.locator import redact_locator
from src.models import CANCELLABLE_PHASES, AssembledDocument, CaptureJob, JobPhase, JobResult
from src.utils.cancellation import CancellationToken
from src.utils.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[str], AbstractAsyncContextManager[RenderingBackend]]

# Failure kind for unclassified errors, by the phase they happened in
PHASE_FAILURES: dict[JobPhase, FailureKind] = {
    JobPhase.INITIALIZING: FailureKind.RESOURCE_INIT_FAILED,
    JobPhase.AUTHENTICATING: FailureKind.UNSUPPORTED_GATE,
    JobPhase.CAPTURING: FailureKind.PAGE_CAPTURE_FAILED,
    JobPhase.ASSEMBLING: FailureKind.ASSEMBLY_FAILED,
    JobPhase.DELIVERING: FailureKind.DELIVERY_FAILED,
}


class CaptureWorker:
    """
    Sequences one capture job.

    Initializing opens the browser session, Authenticating clears the gates,
    Capturing walks the pages; the session is closed as soon as capturing
    ends. Assembling and Delivering run without a browser. The scheduler
    admission is released exactly once, whatever the outcome.
    """

    def __init__(
        self,
        job: CaptureJob,
        *,
        scheduler: AdmissionScheduler,
        delivery: DeliveryChannel,
        store: JobStore,
        session_factory: SessionFactory,
        code_source: OneTimeCodeSource | None = None,
        cancellation: CancellationToken | None = None,
        gate_config: GateConfig | None = None,
        capture_config: CaptureConfig | None = None,
        assembler: DocumentAssembler | None = None,
        size_limit: int | None = None,
    ) -> None:
        self.job = job
        self.scheduler = scheduler
        self.delivery = delivery
        self.store = store
        self.session_factory = session_factory
        self.code_source = code_source or UnconfiguredCodeSource()
        self.cancellation = cancellation or CancellationToken()
        self.gate_config = gate_config
        self.capture_config = capture_config
        self.assembler = assembler or DocumentAssembler()
        self.size_limit = size_limit if size_limit is not None else settings.delivery_size_limit_bytes
        self._notify_tasks: set[asyncio.Task[None]] = set()

    async def run(self) -> CaptureJob:
        """Run the job to a terminal phase; never raises for job failures."""
        job = self.job
        requester_id = job.request.requester_id
        logger.info(
            "Starting capture job",
            job_id=job.id,
            requester_id=requester_id,
            document=redact_locator(job.request.locator.url),
            pages=list(job.request.pages) if job.request.pages else "all",
        )

        job.mark_started()
        await self.store.update(job)
        self._notify(JobPhase.INITIALIZING)

        try:
            document = await self._capture_and_assemble()
            await self._advance(JobPhase.DELIVERING)
            result = await self._deliver(document)
            job.mark_completed(result)
            await self.store.update(job)
            self._notify(JobPhase.COMPLETED, page_count=result.page_count, byte_size=result.byte_size)
            logger.info(
                "Capture job completed",
                job_id=job.id,
                execution_time_ms=job.execution_time_ms,
                page_count=result.page_count,
                byte_size=result.byte_size,
            )

        except JobCancelledError as e:
            await self._record_cancellation(str(e))

        except asyncio.CancelledError:
            await self._record_cancellation("Worker task cancelled")
            raise

        except Exception as e:
            if isinstance(e, CaptureError):
                kind = e.kind
            else:
                kind = PHASE_FAILURES.get(job.phase, FailureKind.UNSUPPORTED_GATE)
            await self._record_failure(kind, str(e) or type(e).__name__)

        finally:
            self.scheduler.release(requester_id)

        return job

    async def _advance(self, phase: JobPhase) -> None:
        self.job.advance(phase)
        await self.store.update(self.job)
        self._notify(phase)
        logger.info("Job phase changed", job_id=self.job.id, phase=phase.value)

    async def _capture_and_assemble(self) -> AssembledDocument:
        request = self.job.request

        async with self.session_factory(self.job.id) as backend:
            await self._advance(JobPhase.AUTHENTICATING)
            await self._open_document(backend)
            resolver = GateResolver(
                backend,
                self.code_source,
                config=self.gate_config,
                cancellation=self.cancellation,
            )
            await resolver.clear_gates()

            await self._advance(JobPhase.CAPTURING)
            controller = PaginationController(
                backend,
                config=self.capture_config,
                cancellation=self.cancellation,
            )
            captures = await controller.capture_all_pages(request.pages)

        await self._advance(JobPhase.ASSEMBLING)
        return await asyncio.to_thread(self.assembler.assemble, captures.items)

    async def _open_document(self, backend: RenderingBackend) -> None:
        self.cancellation.raise_if_cancelled()
        try:
            await backend.navigate(self.job.request.locator.clean_url)
        except NavigationError as e:
            raise DocumentUnavailableError(f"Viewer could not be loaded: {e}") from e
        except CDPError as e:
            # Slow loads are left to the gate probe and its deadline
            logger.warning("Viewer still loading after navigation", job_id=self.job.id, error=str(e))

    async def _deliver(self, document: AssembledDocument) -> JobResult:
        request = self.job.request
        metadata: dict[str, Any] = {
            "job_id": self.job.id,
            "requester_id": request.requester_id,
            "document_id": request.locator.document_id,
            "page_count": document.page_count,
            "byte_size": document.byte_size,
            "pages": list(document.page_numbers),
        }

        if document.byte_size <= self.size_limit:
            await self.delivery.deliver_small(document.data, metadata)
            delivery, locator = "inline", None
        else:
            locator = await self.delivery.deliver_large(document.data, metadata)
            delivery = "overflow"

        return JobResult(
            page_count=document.page_count,
            byte_size=document.byte_size,
            pages=list(document.page_numbers),
            delivery=delivery,
            locator=locator,
            metadata={"document_id": request.locator.document_id},
        )

    async def _record_cancellation(self, message: str) -> None:
        if self.job.phase.is_terminal:
            return
        if self.job.phase in CANCELLABLE_PHASES:
            self.job.mark_cancelled()
            await self.store.update(self.job)
            self._notify(JobPhase.CANCELLED)
            logger.info("Capture job cancelled", job_id=self.job.id)
            await self._report(FailureKind.CANCELLED, message)
        else:
            await self._record_failure(FailureKind.CANCELLED, message)

    async def _record_failure(self, kind: FailureKind, message: str) -> None:
        if self.job.phase.is_terminal:
            return
        failed_in = self.job.phase
        self.job.mark_failed(kind, message)
        await self.store.update(self.job)
        self._notify(JobPhase.FAILED, kind=kind.value)
        logger.error(
            "Capture job failed",
            job_id=self.job.id,
            phase=failed_in.value,
            kind=kind.value,
            error=message,
        )
        await self._report(kind, message)

    async def _report(self, kind: FailureKind, message: str) -> None:
        metadata = {
            "requester_id": self.job.request.requester_id,
            "document_id": self.job.request.locator.document_id,
        }
        try:
            await self.delivery.report_failure(self.job.id, kind, message, metadata)
        except Exception as e:
            logger.error("Failure report could not be delivered", job_id=self.job.id, error=str(e))

    def _notify(self, phase: JobPhase, **details: Any) -> None:
        """Report progress without waiting for, or depending on, the channel."""
        task = asyncio.create_task(self._send_notification(phase, details))
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_tasks.discard)

    async def _send_notification(self, phase: JobPhase, details: dict[str, Any]) -> None:
        try:
            await self.delivery.notify(self.job.id, phase, details)
        except Exception as e:
            logger.warning("Progress notification failed", job_id=self.job.id, error=str(e))
