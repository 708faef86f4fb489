"""Pydantic request and response models for the Prompt Gallery API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for request validation, serialisation, and OpenAPI documentation.

Models
------
GenerateRequest
    Payload for ``POST /api/images/generate``.
ImageResponse
    Public view of one catalog record, with the creator summarised.
GenerateResponse
    Success envelope returned by ``POST /api/images/generate``.
GalleryPage
    One page of ``GET /api/images``.
ErrorResponse
    Body of every pipeline failure: ``{kind, message, attempts?}``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from promptgallery.core.catalog import ImageRecord


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/images/generate`` endpoint.

    The prompt is unconstrained here; length rules are enforced
    by the generation pipeline so that every rejection is reported as
    ``InvalidInput`` in the standard error body.

    Attributes:
        prompt: Natural-language description of the image to generate.
    """

    prompt: str | None = Field(
        default=None,
        description="Text prompt (3-500 characters after trimming).",
    )


class CreatorSummary(BaseModel):
    """Display-only view of an image's creator."""

    id: str
    username: str | None = None


class ImageResponse(BaseModel):
    """Public representation of a gallery image."""

    id: str
    image_url: str
    prompt: str
    tags: list[str]
    creator: CreatorSummary
    like_count: int
    view_count: int
    is_public: bool
    created_at: str

    @classmethod
    def from_record(cls, record: ImageRecord) -> ImageResponse:
        return cls(
            id=record.id,
            image_url=record.image_url,
            prompt=record.prompt,
            tags=record.tags,
            creator=CreatorSummary(id=record.creator_id, username=record.creator_name),
            like_count=record.like_count,
            view_count=record.view_count,
            is_public=record.is_public,
            created_at=record.created_at,
        )


class GenerateResponse(BaseModel):
    """Response body for a successful generation."""

    success: bool = True
    message: str = "Image generated successfully"
    image: ImageResponse


class GalleryPage(BaseModel):
    """One page of public gallery images, newest first."""

    total: int
    page: int
    per_page: int
    pages: int
    images: list[ImageResponse]


class ErrorResponse(BaseModel):
    """Structured pipeline error."""

    kind: str = Field(..., description="Machine-readable error kind, e.g. 'InferenceExhausted'.")
    message: str = Field(..., description="Human-readable detail.")
    attempts: int | None = Field(
        default=None,
        description="Inference attempts spent (exhaustion only).",
    )
