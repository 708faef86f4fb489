"""Durable object storage for generated images.

The pipeline talks to object storage through the small :class:`ArtifactStore`
interface: ``store`` exchanges raw bytes for a :class:`StorageReference` and
``delete`` removes an object by its storage key.  Neither operation retries;
a failure is raised as :class:`~promptgallery.core.errors.StorageError` and
the caller decides what to do with it.

:class:`CloudinaryArtifactStore` is the production implementation.  The
Cloudinary SDK is synchronous, so every call runs in a worker thread to keep
the event loop free while the upload is in flight.
"""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

import cloudinary.exceptions
import cloudinary.uploader

from promptgallery.core.config import GalleryConfig
from promptgallery.core.errors import ServiceMisconfigured, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageReference:
    """Where a stored image lives.

    Attributes:
        public_url: Stable HTTPS URL served to gallery clients.
        storage_key: Identifier needed to delete the object later.
    """

    public_url: str
    storage_key: str


def storage_key_from_url(url: str) -> str:
    """Derive a storage key from a public URL.

    Takes the last two path segments and strips the file extension, e.g.
    ``.../upload/v1700000000/ai-image-gallery/abc123.png`` becomes
    ``ai-image-gallery/abc123``.  New records persist the key returned at
    upload time; this derivation only serves records that lack one.

    Raises:
        ValueError: If the URL path has fewer than two segments.
    """
    segments = [segment for segment in urlparse(url).path.split("/") if segment]
    if len(segments) < 2:
        raise ValueError(f"Cannot derive a storage key from {url!r}")
    folder, filename = segments[-2:]
    return f"{folder}/{PurePosixPath(filename).stem}"


class ArtifactStore(ABC):
    """Interface for durable image storage."""

    @abstractmethod
    async def store(self, payload: bytes) -> StorageReference:
        """Upload *payload* and return its reference.

        Raises:
            StorageError: If the upload fails.
        """

    @abstractmethod
    async def delete(self, storage_key: str) -> None:
        """Remove the object identified by *storage_key*.

        Raises:
            StorageError: If the deletion fails.
        """


class CloudinaryArtifactStore(ArtifactStore):
    """Store images in a Cloudinary folder.

    Credentials are taken from the injected configuration and passed with
    every call, so no process-global SDK state is required.

    Args:
        config: Configuration with ``cloudinary_*`` credentials and
            ``storage_folder``.

    Raises:
        ServiceMisconfigured: If any Cloudinary credential is missing.
    """

    def __init__(self, config: GalleryConfig):
        missing = config.missing_storage_settings()
        if missing:
            raise ServiceMisconfigured(
                f"Object storage is not configured (missing: {', '.join(missing)})."
            )
        self.folder = config.storage_folder
        self._credentials = {
            "cloud_name": config.cloudinary_cloud_name,
            "api_key": config.cloudinary_api_key,
            "api_secret": config.cloudinary_api_secret,
        }

    def _upload(self, payload: bytes) -> dict:
        return cloudinary.uploader.upload(
            io.BytesIO(payload),
            folder=self.folder,
            resource_type="image",
            **self._credentials,
        )

    def _destroy(self, storage_key: str) -> dict:
        return cloudinary.uploader.destroy(storage_key, resource_type="image", **self._credentials)

    async def store(self, payload: bytes) -> StorageReference:
        logger.info(f"Uploading {len(payload)} bytes to folder {self.folder!r}")
        try:
            result = await asyncio.to_thread(self._upload, payload)
        except (cloudinary.exceptions.Error, OSError) as exc:
            logger.error(f"Upload to object storage failed: {exc}")
            raise StorageError(f"Upload failed: {exc}") from exc

        try:
            reference = StorageReference(
                public_url=result["secure_url"],
                storage_key=result["public_id"],
            )
        except (KeyError, TypeError) as exc:
            raise StorageError(f"Upload response missing {exc}") from exc

        logger.info(f"Uploaded image as {reference.storage_key}")
        return reference

    async def delete(self, storage_key: str) -> None:
        try:
            result = await asyncio.to_thread(self._destroy, storage_key)
        except (cloudinary.exceptions.Error, OSError) as exc:
            logger.error(f"Deleting {storage_key} from object storage failed: {exc}")
            raise StorageError(f"Delete failed: {exc}") from exc

        outcome = result.get("result") if isinstance(result, dict) else None
        if outcome == "not found":
            logger.warning(f"Object {storage_key} was already absent from storage")
        elif outcome != "ok":
            raise StorageError(f"Delete of {storage_key} returned {outcome!r}")
        else:
            logger.info(f"Deleted {storage_key} from object storage")
