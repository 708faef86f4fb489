"""Core generation pipeline for Prompt Gallery.

This package holds everything needed to turn a prompt into a cataloged image,
independent of the HTTP layer:

- **config.py**: Environment-based configuration using Pydantic Settings
  (``PROMPTGALLERY_`` prefix)
- **inference_client.py**: One request to the inference service, classified
  into an attempt outcome
- **retry.py**: Retry/fallback state machine driving the inference client
- **artifact_store.py**: Object storage adapter (Cloudinary)
- **catalog.py**: Image records, owner indices (SQLite) and the catalog writer
- **orchestrator.py**: Sequences the stages and maps failures to errors
- **errors.py**: Pipeline error taxonomy
- **tags.py**: Deterministic search tag derivation

Usage Example
-------------
    from promptgallery.core import (
        CatalogWriter, CloudinaryArtifactStore, GenerationOrchestrator,
        InferenceClient, RetryController, SQLiteCatalogStore, config,
    )

    orchestrator = GenerationOrchestrator(
        config,
        controller=RetryController(InferenceClient(config), config),
        artifact_store=CloudinaryArtifactStore(config),
        catalog_writer=CatalogWriter(SQLiteCatalogStore(config.catalog_db_path)),
    )
    record = await orchestrator.generate("a cat in space", requester_id="u1")
"""

from promptgallery.core.artifact_store import CloudinaryArtifactStore
from promptgallery.core.catalog import CatalogWriter, SQLiteCatalogStore
from promptgallery.core.config import GalleryConfig, config
from promptgallery.core.inference_client import InferenceClient
from promptgallery.core.orchestrator import GenerationOrchestrator
from promptgallery.core.retry import RetryController

__all__ = [
    "CatalogWriter",
    "CloudinaryArtifactStore",
    "GalleryConfig",
    "GenerationOrchestrator",
    "InferenceClient",
    "RetryController",
    "SQLiteCatalogStore",
    "config",
]
