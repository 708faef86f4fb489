"""Shared pytest fixtures for Prompt Gallery tests.

The pipeline talks to three external systems (inference, object storage,
catalog).  Tests replace the first two with the scripted doubles defined
here and use a real SQLite catalog in a temporary directory.
"""

import io
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

from promptgallery.core.artifact_store import ArtifactStore, StorageReference
from promptgallery.core.catalog import CatalogWriter, SQLiteCatalogStore
from promptgallery.core.config import GalleryConfig
from promptgallery.core.errors import StorageError
from promptgallery.core.inference_client import Success
from promptgallery.core.orchestrator import GenerationOrchestrator
from promptgallery.core.retry import RetryController


class FakeInferenceClient:
    """Inference double that replays a scripted list of outcomes.

    Each call pops the next outcome for the requested model.  Outcomes may
    be given for a specific model via ``by_model``; otherwise the shared
    ``outcomes`` list is used.
    """

    def __init__(self, outcomes=None, by_model=None):
        self.outcomes = list(outcomes or [])
        self.by_model = {model: list(items) for model, items in (by_model or {}).items()}
        self.calls: list[tuple[str, str]] = []

    async def attempt(self, prompt: str, model: str):
        self.calls.append((prompt, model))
        queue = self.by_model.get(model, self.outcomes)
        if not queue:
            raise AssertionError(f"No scripted outcome left for {model}")
        return queue.pop(0)

    def calls_for(self, model: str) -> int:
        return sum(1 for _, called in self.calls if called == model)


class FakeArtifactStore(ArtifactStore):
    """Object storage double that records uploads and deletions."""

    def __init__(self, fail_store: bool = False, fail_delete: bool = False):
        self.fail_store = fail_store
        self.fail_delete = fail_delete
        self.stored: list[bytes] = []
        self.deleted: list[str] = []

    async def store(self, payload: bytes) -> StorageReference:
        if self.fail_store:
            raise StorageError("upload rejected")
        self.stored.append(payload)
        key = f"ai-image-gallery/img{len(self.stored)}"
        return StorageReference(
            public_url=f"https://res.cloudinary.com/demo/image/upload/v1/{key}.png",
            storage_key=key,
        )

    async def delete(self, storage_key: str) -> None:
        if self.fail_delete:
            raise StorageError("delete rejected")
        self.deleted.append(storage_key)


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> GalleryConfig:
    """Create a fully credentialed configuration rooted in a temp directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        GalleryConfig instance for testing
    """
    return GalleryConfig(
        _env_file=None,
        hf_api_token="hf_test_token",
        inference_base_url="https://inference.test/models",
        cloudinary_cloud_name="demo",
        cloudinary_api_key="key",
        cloudinary_api_secret="secret",
        data_dir=str(temp_dir / "data"),
    )


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(0, 128, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def success(png_bytes: bytes) -> Success:
    """A successful attempt outcome carrying ``png_bytes``."""
    return Success(payload=png_bytes, content_type="image/png")


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def artifact_store() -> FakeArtifactStore:
    return FakeArtifactStore()


@pytest.fixture
def catalog_store(test_config: GalleryConfig) -> SQLiteCatalogStore:
    """SQLite catalog with one known user, ``u1`` (``alice``)."""
    store = SQLiteCatalogStore(test_config.catalog_db_path)
    store.ensure_user("u1", "alice")
    return store


@pytest.fixture
def make_orchestrator(test_config, artifact_store, catalog_store, recording_sleep):
    """Factory building an orchestrator around a scripted inference double.

    Returns:
        Callable ``(inference_client, **overrides) -> GenerationOrchestrator``.
        ``overrides`` may replace ``config``, ``artifact_store`` or
        ``catalog_store``.
    """

    def _make(inference_client, **overrides) -> GenerationOrchestrator:
        cfg = overrides.get("config", test_config)
        return GenerationOrchestrator(
            cfg,
            controller=RetryController(inference_client, cfg, sleep=recording_sleep),
            artifact_store=overrides.get("artifact_store", artifact_store),
            catalog_writer=CatalogWriter(overrides.get("catalog_store", catalog_store)),
        )

    return _make


@pytest.fixture
def fake_inference_factory():
    """Return the ``FakeInferenceClient`` class for building scripted doubles."""
    return FakeInferenceClient


@pytest.fixture
def fake_artifact_store_factory():
    """Return the ``FakeArtifactStore`` class for building storage doubles."""
    return FakeArtifactStore
