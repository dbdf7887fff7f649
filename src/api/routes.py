"""API route definitions."""

import math

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.config import settings
from src.delivery import LocalDelivery, local_delivery
from src.errors import InvalidLocatorError, PageSelectionError, RateLimitedError
from src.jobs.queue import CaptureQueue, capture_queue
from src.jobs.scheduler import has_permission
from src.locator import parse_document_locator, parse_page_selection
from src.models import (
    CaptureCreateRequest,
    CaptureCreateResponse,
    CaptureJob,
    CaptureRequest,
    JobPhase,
    JobResponse,
)
from src.utils.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


def get_capture_queue() -> CaptureQueue:
    return capture_queue


def get_delivery() -> LocalDelivery:
    return local_delivery


def _get_job_or_404(queue: CaptureQueue, job_id: str) -> CaptureJob:
    job = queue.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job not found: {job_id}",
        )
    return job


@router.post(
    "/captures",
    response_model=CaptureCreateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a document capture",
    description="Validate a document link, admit the request and queue a capture job.",
)
async def create_capture(
    body: CaptureCreateRequest,
    queue: CaptureQueue = Depends(get_capture_queue),
) -> CaptureCreateResponse:
    """
    Admit a capture request.

    Invalid links or page selections are rejected before any job exists;
    rate-limited requests get a ``Retry-After`` header.
    """
    if not has_permission(body.requester_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Requester is not allowed to use this service",
        )

    try:
        locator = parse_document_locator(body.url)
        pages = parse_page_selection(body.pages, max_page=settings.page_ceiling)
    except (InvalidLocatorError, PageSelectionError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    request = CaptureRequest(requester_id=body.requester_id, locator=locator, pages=pages)

    try:
        job = await queue.submit(request)
    except RateLimitedError as e:
        retry_after = math.ceil(e.retry_after or settings.global_retry_after_seconds)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": str(retry_after)},
        ) from e

    return CaptureCreateResponse(
        id=job.id,
        phase=job.phase,
        document_id=locator.document_id,
        pages=list(pages) if pages else None,
    )


@router.get(
    "/captures",
    response_model=list[JobResponse],
    summary="List capture jobs",
    description="List jobs still in progress, optionally for one requester; include_finished adds terminal jobs.",
)
async def list_captures(
    requester_id: str | None = Query(default=None),
    include_finished: bool = Query(default=False),
    queue: CaptureQueue = Depends(get_capture_queue),
) -> list[JobResponse]:
    if requester_id is not None:
        jobs = queue.store.get_by_requester(requester_id)
    elif include_finished:
        jobs = queue.store.get_all()
    else:
        jobs = queue.store.get_active()

    if requester_id is not None and not include_finished:
        jobs = [job for job in jobs if not job.phase.is_terminal]

    return [JobResponse.from_job(job) for job in jobs]


@router.get(
    "/captures/{job_id}",
    response_model=JobResponse,
    summary="Get capture status",
    description="Retrieve the phase, timing, result or failure of a capture job.",
)
async def get_capture(
    job_id: str,
    queue: CaptureQueue = Depends(get_capture_queue),
) -> JobResponse:
    return JobResponse.from_job(_get_job_or_404(queue, job_id))


@router.get(
    "/captures/{job_id}/artifact",
    summary="Download the captured document",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def get_artifact(
    job_id: str,
    queue: CaptureQueue = Depends(get_capture_queue),
    delivery: LocalDelivery = Depends(get_delivery),
) -> Response:
    job = _get_job_or_404(queue, job_id)

    if job.phase != JobPhase.COMPLETED or job.result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is {job.phase.value}, no document available",
        )
    if job.result.delivery != "inline":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Document was too large for download and is stored at {job.result.locator}",
        )

    data = delivery.get_artifact(job_id)
    if data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document already downloaded or expired: {job_id}",
        )
    delivery.discard(job_id)

    filename = f"{job.request.locator.document_id}.pdf"
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/captures/{job_id}/cancel",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel a capture job",
)
async def cancel_capture(
    job_id: str,
    queue: CaptureQueue = Depends(get_capture_queue),
) -> JobResponse:
    job = _get_job_or_404(queue, job_id)

    if not queue.cancel(job_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is {job.phase.value} and can no longer be cancelled",
        )

    return JobResponse.from_job(job)
