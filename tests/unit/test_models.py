"""Tests for data models."""

import uuid
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from src.errors import FailureKind
from src.models import (
    AssembledDocument,
    CaptureJob,
    CaptureRequest,
    DocumentLocator,
    InvalidTransitionError,
    JobPhase,
    JobResponse,
    JobResult,
    PageCapture,
    PageCaptures,
)


def _request(pages: tuple[int, ...] | None = None) -> CaptureRequest:
    locator = DocumentLocator(
        url="https://docsend.com/view/abc123",
        clean_url="https://docsend.com/view/abc123",
        document_id="abc123",
    )
    return CaptureRequest(requester_id="user-1", locator=locator, pages=pages)


def _job() -> CaptureJob:
    return CaptureJob(id=str(uuid.uuid4()), request=_request(), queued_at=datetime.now(UTC))


def test_job_creation() -> None:
    """Test basic job creation."""
    job = _job()

    assert job.phase == JobPhase.INITIALIZING
    assert job.result is None
    assert job.failure is None
    assert job.id is not None


def test_request_is_immutable() -> None:
    request = _request(pages=(1, 2))

    with pytest.raises(ValidationError):
        request.pages = (3,)


def test_locator_requires_document_id() -> None:
    with pytest.raises(ValidationError):
        DocumentLocator(url="x", clean_url="x", document_id="")


def test_job_moves_forward_one_phase_at_a_time() -> None:
    job = _job()
    job.mark_started()

    with pytest.raises(InvalidTransitionError):
        job.advance(JobPhase.CAPTURING)

    for phase in (
        JobPhase.AUTHENTICATING,
        JobPhase.CAPTURING,
        JobPhase.ASSEMBLING,
        JobPhase.DELIVERING,
    ):
        job.advance(phase)

    job.mark_completed(JobResult(page_count=3, byte_size=1024, pages=[1, 2, 3]))

    assert job.phase == JobPhase.COMPLETED
    assert job.completed_at is not None
    assert job.execution_time_ms is not None
    assert [t.phase for t in job.history][-1] == JobPhase.COMPLETED


def test_failed_is_reachable_from_any_running_phase() -> None:
    job = _job()
    job.mark_started()
    job.advance(JobPhase.AUTHENTICATING)

    job.mark_failed(FailureKind.CREDENTIAL_MISMATCH, "e-mail refused")

    assert job.phase == JobPhase.FAILED
    assert job.failure is not None
    assert job.failure.kind == FailureKind.CREDENTIAL_MISMATCH
    assert job.failure.explanation

    with pytest.raises(InvalidTransitionError):
        job.advance(JobPhase.CAPTURING)


def test_cancel_only_while_authenticating_or_capturing() -> None:
    job = _job()
    job.mark_started()

    with pytest.raises(InvalidTransitionError):
        job.mark_cancelled()

    job.advance(JobPhase.AUTHENTICATING)
    job.advance(JobPhase.CAPTURING)
    job.mark_cancelled()

    assert job.phase == JobPhase.CANCELLED
    assert job.failure is not None
    assert job.failure.kind == FailureKind.CANCELLED


def test_job_response_from_job() -> None:
    job = CaptureJob(id="job-1", request=_request(pages=(2, 4)), queued_at=datetime.now(UTC))

    response = JobResponse.from_job(job)

    assert response.id == "job-1"
    assert response.document_id == "abc123"
    assert response.pages == [2, 4]
    assert response.phase == JobPhase.INITIALIZING


def test_page_captures_reject_duplicates() -> None:
    captures = PageCaptures()
    captures.add(PageCapture(page_number=1, image=b"a"))
    captures.add(PageCapture(page_number=3, image=b"b"))

    with pytest.raises(ValueError):
        captures.add(PageCapture(page_number=1, image=b"c"))

    assert captures.page_numbers == [1, 3]
    assert len(captures) == 2


def test_page_capture_numbers_start_at_one() -> None:
    with pytest.raises(ValueError):
        PageCapture(page_number=0, image=b"a")


def test_assembled_document_metadata() -> None:
    document = AssembledDocument(data=b"%PDF-1.4", page_numbers=(1, 2))

    assert document.page_count == 2
    assert document.byte_size == 8
    assert document.content_type == "application/pdf"
