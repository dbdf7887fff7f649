"""Capture request models."""

from pydantic import BaseModel, ConfigDict, Field


class DocumentLocator(BaseModel):
    """Validated reference to a gated document."""

    url: str
    clean_url: str
    document_id: str = Field(..., min_length=1)
    sub_document_id: str | None = None

    model_config = ConfigDict(frozen=True)


class CaptureRequest(BaseModel):
    """An admitted request to capture one document."""

    requester_id: str = Field(..., min_length=1)
    locator: DocumentLocator
    pages: tuple[int, ...] | None = Field(
        default=None, description="Ascending explicit page numbers; None means all pages"
    )

    model_config = ConfigDict(frozen=True)


class CaptureCreateRequest(BaseModel):
    """API body for submitting a capture."""

    requester_id: str = Field(..., min_length=1, description="Identity of the requester")
    url: str = Field(..., description="Document viewer link")
    pages: str | list[int] | None = Field(
        default=None, description='Explicit pages, e.g. "1,3-5,7" or [1, 3, 4]'
    )
