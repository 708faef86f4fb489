"""Exception hierarchy for the generation pipeline.

Every terminal failure of :meth:`GenerationOrchestrator.generate` is reported
as exactly one :class:`GenerationError` subclass.  The ``kind`` attribute is
the machine-readable name sent to API clients and ``status_code`` is the HTTP
status the API layer responds with.

Hierarchy
---------
::

    Exception
    ├── GenerationError
    │   ├── InvalidInput           → 400
    │   ├── ServiceMisconfigured   → 503
    │   ├── InferenceExhausted     → 502
    │   ├── ArtifactPersistError   → 502
    │   ├── CatalogWriteError      → 500
    │   └── DeadlineExceeded       → 504
    ├── StorageError               (artifact store adapter, internal)
    └── CatalogStoreError          (catalog store, internal)

``StorageError`` and ``CatalogStoreError`` never reach API clients directly;
the orchestrator and catalog writer translate them into the pipeline kinds
above.
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for every reported pipeline failure.

    Attributes:
        message: Human-readable detail, safe to show to the requester.
        attempts: Number of inference attempts spent, when relevant.
    """

    kind: str = "GenerationError"
    status_code: int = 500
    default_message: str = "Image generation failed."

    def __init__(self, message: str | None = None, *, attempts: int | None = None) -> None:
        self.message = message or self.default_message
        self.attempts = attempts
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialise to the API error contract ``{kind, message, attempts?}``."""
        body: dict = {"kind": self.kind, "message": self.message}
        if self.attempts is not None:
            body["attempts"] = self.attempts
        return body


class InvalidInput(GenerationError):
    """The prompt was missing, too short, or too long."""

    kind = "InvalidInput"
    status_code = 400
    default_message = "Prompt must be at least 3 characters long."


class ServiceMisconfigured(GenerationError):
    """A required credential for an outbound service is not configured."""

    kind = "ServiceMisconfigured"
    status_code = 503
    default_message = "The generation service is not configured."


class InferenceExhausted(GenerationError):
    """All primary attempts and the fallback were spent without an image."""

    kind = "InferenceExhausted"
    status_code = 502
    default_message = "Failed to generate image after multiple attempts."


class ArtifactPersistError(GenerationError):
    """The image was generated but could not be uploaded to object storage."""

    kind = "ArtifactPersistError"
    status_code = 502
    default_message = "The generated image could not be stored. Please resubmit."


class CatalogWriteError(GenerationError):
    """The image was stored but its catalog record or owner index failed."""

    kind = "CatalogWriteError"
    status_code = 500
    default_message = "The generated image could not be saved to the gallery."


class DeadlineExceeded(GenerationError):
    """The overall pipeline deadline elapsed before a terminal outcome."""

    kind = "DeadlineExceeded"
    status_code = 504
    default_message = "Image generation took too long."


class StorageError(Exception):
    """Raised by an artifact store when an upload or delete fails."""


class CatalogStoreError(Exception):
    """Raised by a catalog store when a read or write fails."""
