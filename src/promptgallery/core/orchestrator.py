"""Generation orchestration: one prompt in, one cataloged image out.

:class:`GenerationOrchestrator` sequences the pipeline for a single request:

1. Validate the prompt (no external calls on failure).
2. Check that the inference and storage services are configured.
3. Run the retry/fallback controller until an image is obtained.
4. Upload the image to object storage exactly once.
5. Commit the catalog record and the owner index entry.

Every failure surfaces as one :class:`~promptgallery.core.errors.GenerationError`
subclass.  Stage 3 runs under ``inference_deadline_seconds``.  Stages 4 and 5
are shielded: once an image exists they run to completion, so a request that
reports a failure never leaves a catalog record behind without a logged
orphan.

Usage
-----
::

    orchestrator = GenerationOrchestrator(
        config,
        controller=RetryController(InferenceClient(config), config),
        artifact_store=CloudinaryArtifactStore(config),
        catalog_writer=CatalogWriter(SQLiteCatalogStore(config.catalog_db_path)),
    )
    record = await orchestrator.generate("a cat in space", requester_id="u1")
"""

from __future__ import annotations

import asyncio
import logging

from promptgallery.core.artifact_store import ArtifactStore
from promptgallery.core.catalog import CatalogWriter, ImageRecord
from promptgallery.core.config import GalleryConfig
from promptgallery.core.errors import (
    ArtifactPersistError,
    DeadlineExceeded,
    InvalidInput,
    ServiceMisconfigured,
    StorageError,
)
from promptgallery.core.retry import RetryController
from promptgallery.core.tags import derive_tags

logger = logging.getLogger(__name__)

MIN_PROMPT_LENGTH = 3
MAX_PROMPT_LENGTH = 500


def validate_prompt(prompt: str | None) -> str:
    """Return the trimmed prompt or raise :class:`InvalidInput`."""
    if prompt is None or not prompt.strip():
        raise InvalidInput("Please provide a prompt.")
    prompt = prompt.strip()
    if len(prompt) < MIN_PROMPT_LENGTH:
        raise InvalidInput(f"Prompt must be at least {MIN_PROMPT_LENGTH} characters long.")
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise InvalidInput(f"Prompt must be at most {MAX_PROMPT_LENGTH} characters long.")
    return prompt


class GenerationOrchestrator:
    """Turn a prompt into a stored, cataloged image.

    Args:
        config: Pipeline configuration (credentials and deadline).
        controller: Retry/fallback controller wrapping the inference client.
        artifact_store: Durable storage for the generated bytes.
        catalog_writer: Writes the record and the owner index entry.
    """

    def __init__(
        self,
        config: GalleryConfig,
        controller: RetryController,
        artifact_store: ArtifactStore,
        catalog_writer: CatalogWriter,
    ):
        self.config = config
        self.controller = controller
        self.artifact_store = artifact_store
        self.catalog_writer = catalog_writer

    def check_configuration(self) -> None:
        """Raise :class:`ServiceMisconfigured` if a required credential is unset."""
        missing = self.config.missing_inference_settings() + self.config.missing_storage_settings()
        if missing:
            raise ServiceMisconfigured(
                f"Image generation is not configured (missing: {', '.join(missing)})."
            )

    async def generate(self, prompt: str | None, requester_id: str) -> ImageRecord:
        """Run the full pipeline for one request.

        Args:
            prompt: Raw prompt text from the requester.
            requester_id: Identifier of the authenticated requester.

        Returns:
            The new record with ``creator_name`` populated and zero likes and
            views.

        Raises:
            InvalidInput: Prompt missing, shorter than 3 or longer than 500
                characters.
            ServiceMisconfigured: A required credential is not configured.
            InferenceExhausted: Every attempt failed.
            ArtifactPersistError: The upload to object storage failed.
            CatalogWriteError: The record or index write failed.
            DeadlineExceeded: ``inference_deadline_seconds`` elapsed before
                inference produced an image.
        """
        prompt = validate_prompt(prompt)
        self.check_configuration()

        logger.info(f"Generating image for {requester_id}: {prompt!r}")
        deadline = self.config.inference_deadline_seconds
        try:
            result = await asyncio.wait_for(self.controller.run(prompt), timeout=deadline)
        except asyncio.TimeoutError as exc:
            logger.error(f"Inference for {requester_id} exceeded {deadline:g}s deadline")
            raise DeadlineExceeded(
                f"Image generation did not finish within {deadline:g} seconds."
            ) from exc

        # Upload and catalog writes run to completion even if the caller is cancelled.
        return await asyncio.shield(self._persist(result.payload, prompt, requester_id))

    async def _persist(self, payload: bytes, prompt: str, requester_id: str) -> ImageRecord:
        try:
            storage_ref = await self.artifact_store.store(payload)
        except StorageError as exc:
            logger.error(f"Discarding {len(payload)} generated bytes for {requester_id}: {exc}")
            raise ArtifactPersistError(
                f"The image was generated but could not be stored ({exc}). Please resubmit."
            ) from exc

        tags = derive_tags(prompt)
        return await self.catalog_writer.commit(prompt, storage_ref, requester_id, tags)
