"""Data models for gated document capture."""

from src.models.capture import AssembledDocument, PageCapture, PageCaptures
from src.models.job import (
    CANCELLABLE_PHASES,
    CaptureCreateResponse,
    CaptureJob,
    InvalidTransitionError,
    JobFailure,
    JobPhase,
    JobResponse,
    JobResult,
    PhaseTransition,
)
from src.models.request import CaptureCreateRequest, CaptureRequest, DocumentLocator

__all__ = [
    "AssembledDocument",
    "PageCapture",
    "PageCaptures",
    "CANCELLABLE_PHASES",
    "CaptureCreateResponse",
    "CaptureJob",
    "InvalidTransitionError",
    "JobFailure",
    "JobPhase",
    "JobResponse",
    "JobResult",
    "PhaseTransition",
    "CaptureCreateRequest",
    "CaptureRequest",
    "DocumentLocator",
]
