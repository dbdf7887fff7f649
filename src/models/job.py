"""Job models and types."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.errors import FAILURE_EXPLANATIONS, FailureKind
from src.models.request import CaptureRequest


class JobPhase(str, Enum):
    """Lifecycle phases of a capture job."""

    INITIALIZING = "initializing"
    AUTHENTICATING = "authenticating"
    CAPTURING = "capturing"
    ASSEMBLING = "assembling"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES


_FORWARD_ORDER = [
    JobPhase.INITIALIZING,
    JobPhase.AUTHENTICATING,
    JobPhase.CAPTURING,
    JobPhase.ASSEMBLING,
    JobPhase.DELIVERING,
    JobPhase.COMPLETED,
]
_TERMINAL_PHASES = frozenset({JobPhase.COMPLETED, JobPhase.FAILED, JobPhase.CANCELLED})
CANCELLABLE_PHASES = frozenset({JobPhase.AUTHENTICATING, JobPhase.CAPTURING})


class InvalidTransitionError(RuntimeError):
    """Raised when a job is moved to a phase it cannot reach."""


class JobResult(BaseModel):
    """Result of a completed job."""

    page_count: int
    byte_size: int
    pages: list[int] = Field(default_factory=list)
    delivery: str = "inline"
    locator: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class JobFailure(BaseModel):
    """Classified failure of a job."""

    kind: FailureKind
    message: str
    explanation: str

    @classmethod
    def from_kind(cls, kind: FailureKind, message: str) -> "JobFailure":
        return cls(kind=kind, message=message, explanation=FAILURE_EXPLANATIONS[kind])


class PhaseTransition(BaseModel):
    """A recorded phase change."""

    phase: JobPhase
    at: datetime


class CaptureJob(BaseModel):
    """Orchestration record for one capture request."""

    id: str
    request: CaptureRequest
    phase: JobPhase = JobPhase.INITIALIZING
    queued_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    execution_time_ms: int | None = None
    result: JobResult | None = None
    failure: JobFailure | None = None
    history: list[PhaseTransition] = Field(default_factory=list)

    def mark_started(self) -> None:
        """Mark the job as started."""
        self.started_at = datetime.utcnow()
        self.history.append(PhaseTransition(phase=self.phase, at=self.started_at))

    def advance(self, phase: JobPhase) -> None:
        """
        Move the job to ``phase``.

        Forward moves go one step at a time; FAILED is reachable from any
        non-terminal phase and CANCELLED only from the cancellable phases.
        """
        current = self.phase
        if current.is_terminal:
            raise InvalidTransitionError(f"Job {self.id} is already {current.value}")

        if phase == JobPhase.FAILED:
            pass
        elif phase == JobPhase.CANCELLED:
            if current not in CANCELLABLE_PHASES:
                raise InvalidTransitionError(f"Cannot cancel a job that is {current.value}")
        elif _FORWARD_ORDER.index(phase) != _FORWARD_ORDER.index(current) + 1:
            raise InvalidTransitionError(f"Cannot move from {current.value} to {phase.value}")

        self.phase = phase
        now = datetime.utcnow()
        self.history.append(PhaseTransition(phase=phase, at=now))
        if phase.is_terminal:
            self._finish(now)

    def mark_completed(self, result: JobResult) -> None:
        """Mark the job as completed with result."""
        self.result = result
        self.advance(JobPhase.COMPLETED)

    def mark_failed(self, kind: FailureKind, message: str) -> None:
        """Mark the job as failed with a classified error."""
        self.failure = JobFailure.from_kind(kind, message)
        self.advance(JobPhase.FAILED)

    def mark_cancelled(self) -> None:
        """Mark the job as cancelled."""
        self.failure = JobFailure.from_kind(FailureKind.CANCELLED, "Cancelled by request")
        self.advance(JobPhase.CANCELLED)

    def _finish(self, now: datetime) -> None:
        self.completed_at = now
        if self.started_at:
            delta = self.completed_at - self.started_at
            self.execution_time_ms = int(delta.total_seconds() * 1000)


class JobResponse(BaseModel):
    """API response model for a job."""

    id: str
    phase: JobPhase
    requester_id: str
    document_id: str
    pages: list[int] | None = None
    execution_time_ms: int | None = None
    queued_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: JobResult | None = None
    failure: JobFailure | None = None
    history: list[PhaseTransition] = Field(default_factory=list)

    @classmethod
    def from_job(cls, job: CaptureJob) -> "JobResponse":
        return cls(
            id=job.id,
            phase=job.phase,
            requester_id=job.request.requester_id,
            document_id=job.request.locator.document_id,
            pages=list(job.request.pages) if job.request.pages else None,
            execution_time_ms=job.execution_time_ms,
            queued_at=job.queued_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            result=job.result,
            failure=job.failure,
            history=job.history,
        )


class CaptureCreateResponse(BaseModel):
    """Response after a capture was admitted."""

    id: str
    phase: JobPhase
    document_id: str
    pages: list[int] | None = None
