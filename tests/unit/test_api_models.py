"""Tests for promptgallery.api.models and the error contract.

Tests cover:
- GenerateRequest accepts any prompt text (validation happens in the pipeline).
- ImageResponse built from a catalog record.
- GenerationError serialisation to ``{kind, message, attempts?}``.
"""

from __future__ import annotations

import pytest

from promptgallery.api.models import ErrorResponse, GenerateRequest, ImageResponse
from promptgallery.core.artifact_store import StorageReference
from promptgallery.core.catalog import ImageRecord
from promptgallery.core.errors import (
    ArtifactPersistError,
    CatalogWriteError,
    DeadlineExceeded,
    InferenceExhausted,
    InvalidInput,
    ServiceMisconfigured,
)


class TestGenerateRequest:
    def test_prompt_optional(self):
        assert GenerateRequest().prompt is None

    def test_short_prompt_is_accepted_by_model(self):
        assert GenerateRequest(prompt="ab").prompt == "ab"


class TestImageResponse:
    def test_from_record(self):
        record = ImageRecord.new(
            "a cat in space",
            StorageReference(public_url="https://cdn.test/f/a.png", storage_key="f/a"),
            "u1",
            ["cat", "space"],
        )
        record.creator_name = "alice"

        response = ImageResponse.from_record(record)

        assert response.id == record.id
        assert response.image_url == "https://cdn.test/f/a.png"
        assert response.tags == ["cat", "space"]
        assert response.creator.username == "alice"
        assert response.like_count == 0
        assert response.view_count == 0
        assert "storage_key" not in response.model_dump()


class TestErrorContract:
    """Each error kind serialises to the documented body and status."""

    @pytest.mark.parametrize(
        ("error_cls", "status"),
        [
            (InvalidInput, 400),
            (ServiceMisconfigured, 503),
            (InferenceExhausted, 502),
            (ArtifactPersistError, 502),
            (CatalogWriteError, 500),
            (DeadlineExceeded, 504),
        ],
    )
    def test_status_and_kind(self, error_cls, status):
        error = error_cls("detail")
        assert error.status_code == status
        assert error.to_dict() == {"kind": error_cls.__name__, "message": "detail"}

    def test_attempts_included_when_set(self):
        error = InferenceExhausted("gave up", attempts=3)
        body = error.to_dict()

        assert body["attempts"] == 3
        assert ErrorResponse(**body).attempts == 3

    def test_default_message(self):
        assert InvalidInput().message == "Prompt must be at least 3 characters long."
