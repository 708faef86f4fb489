"""Prompt Gallery — FastAPI Application.

This module defines the FastAPI application factory, all REST API routes,
the error mapping for pipeline failures, and the ``main()`` CLI function that
launches the uvicorn server.

Architecture
------------
- **Generation** is delegated to
  :class:`~promptgallery.core.orchestrator.GenerationOrchestrator`, built
  once per process in the lifespan handler and shared by every request.  Each
  request runs the pipeline as its own coroutine; there is no queue.
- **Catalog reads** go straight to the
  :class:`~promptgallery.core.catalog.CatalogStore`.  Read routes are plain
  ``def`` handlers so FastAPI runs the SQLite calls in its threadpool.
- **Identity** is supplied by the upstream authentication layer in the
  ``X-User-Id`` (required) and ``X-User-Name`` (optional) headers.  The user
  row is created in the catalog on first sight.
- **Errors** raised by the pipeline are
  :class:`~promptgallery.core.errors.GenerationError` subclasses and are
  rendered as ``{kind, message, attempts?}`` with the status code carried by
  the exception class.

Endpoints
---------
========  ===========================  =====================================
Method    Path                         Purpose
========  ===========================  =====================================
GET       ``/api/health``              Liveness and configuration status
POST      ``/api/images/generate``     Generate, store and catalog an image
GET       ``/api/images``              Paginated public gallery listing
GET       ``/api/images/{id}``         Single image (counts a view)
DELETE    ``/api/images/{id}``         Delete own image and stored object
========  ===========================  =====================================

Usage
-----
CLI (installed entry point)::

    promptgallery

Direct invocation::

    python -m promptgallery.api.main
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from promptgallery import __version__
from promptgallery.api.models import (
    ErrorResponse,
    GalleryPage,
    GenerateRequest,
    GenerateResponse,
    ImageResponse,
)
from promptgallery.core.artifact_store import (
    ArtifactStore,
    CloudinaryArtifactStore,
    storage_key_from_url,
)
from promptgallery.core.catalog import CatalogStore, CatalogWriter, SQLiteCatalogStore, UserRecord
from promptgallery.core.config import GalleryConfig, config
from promptgallery.core.errors import (
    CatalogStoreError,
    GenerationError,
    ServiceMisconfigured,
    StorageError,
)
from promptgallery.core.inference_client import InferenceClient
from promptgallery.core.logging_setup import configure_logging
from promptgallery.core.orchestrator import GenerationOrchestrator
from promptgallery.core.retry import RetryController

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    cfg: GalleryConfig | None = None,
    *,
    orchestrator: GenerationOrchestrator | None = None,
    catalog_store: CatalogStore | None = None,
    artifact_store: ArtifactStore | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Components that are not supplied are built from *cfg* when the
    application starts.  Tests pass pre-built doubles instead.

    Args:
        cfg: Configuration; defaults to the global ``config`` instance.
        orchestrator: Pre-built generation pipeline.
        catalog_store: Pre-built catalog store.
        artifact_store: Pre-built object storage adapter.

    Returns:
        The configured application.
    """
    cfg = cfg or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build shared pipeline components on startup and release them on shutdown.

        When ``require_credentials`` is set, missing inference or storage
        credentials abort startup with :class:`ServiceMisconfigured` instead
        of failing later on the first request.
        """
        # --- Startup -----------------------------------------------------------
        store = catalog_store or SQLiteCatalogStore(cfg.catalog_db_path)
        inference_client: InferenceClient | None = None
        pipeline = orchestrator
        storage = artifact_store

        missing = cfg.missing_inference_settings() + cfg.missing_storage_settings()
        if pipeline is None and missing:
            message = f"Missing required configuration: {', '.join(missing)}"
            if cfg.require_credentials:
                logger.critical(message)
                raise ServiceMisconfigured(message)
            logger.warning(f"{message}; image generation is disabled.")

        if storage is None and not cfg.missing_storage_settings():
            storage = CloudinaryArtifactStore(cfg)

        if pipeline is None and not missing:
            inference_client = InferenceClient(cfg)
            pipeline = GenerationOrchestrator(
                cfg,
                controller=RetryController(inference_client, cfg),
                artifact_store=storage,
                catalog_writer=CatalogWriter(store),
            )

        app.state.catalog_store = store
        app.state.artifact_store = storage
        app.state.orchestrator = pipeline
        logger.info("Prompt Gallery API started.")

        yield  # Application runs here.

        # --- Shutdown ----------------------------------------------------------
        if inference_client is not None:
            await inference_client.aclose()
        logger.info("Prompt Gallery API stopped.")

    app = FastAPI(
        title="Prompt Gallery",
        description="Generate images from prompts and browse them in a shared gallery.",
        version=__version__,
        lifespan=lifespan,
    )

    # Allow cross-origin requests so a separately served frontend can call
    # the API.  Restrict ``allow_origins`` in production deployments.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GenerationError)
    async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(CatalogStoreError)
    async def catalog_error_handler(request: Request, exc: CatalogStoreError) -> JSONResponse:
        logger.error(f"Catalog failure on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"kind": "CatalogUnavailable", "message": "The gallery is unavailable."},
        )

    app.state.config = cfg
    app.include_router(_build_router())
    return app


# ---------------------------------------------------------------------------
# Dependencies.
# ---------------------------------------------------------------------------


def get_catalog_store(request: Request) -> CatalogStore:
    return request.app.state.catalog_store


def get_requester(
    store: CatalogStore = Depends(get_catalog_store),
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
) -> UserRecord:
    """Resolve the authenticated requester from identity headers.

    Raises:
        HTTPException: 401 if ``X-User-Id`` is missing or blank.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return store.ensure_user(x_user_id.strip(), x_user_name)


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


def _build_router() -> APIRouter:
    router = APIRouter(prefix="/api")

    @router.get("/health")
    async def health(request: Request) -> dict:
        """Return liveness plus whether image generation is available."""
        return {
            "status": "ok",
            "version": __version__,
            "generation_enabled": request.app.state.orchestrator is not None,
        }

    @router.post(
        "/images/generate",
        status_code=201,
        response_model=GenerateResponse,
        responses=ERROR_RESPONSES,
    )
    async def generate_image(
        req: GenerateRequest,
        request: Request,
        requester: UserRecord = Depends(get_requester),
    ) -> GenerateResponse:
        """Generate an image from a prompt, store it, and add it to the gallery.

        This endpoint:

        1. Validates the prompt (3-500 characters after trimming).
        2. Calls the inference service, waiting through model warm-up and
           retrying or falling back on failures.
        3. Uploads the image to object storage.
        4. Creates the catalog record and links it from the requester's
           profile.

        Raises:
            GenerationError: Rendered as ``{kind, message, attempts?}``.
        """
        pipeline: GenerationOrchestrator | None = request.app.state.orchestrator
        if pipeline is None:
            raise ServiceMisconfigured("Image generation is not configured on this server.")

        record = await pipeline.generate(req.prompt, requester.id)
        return GenerateResponse(image=ImageResponse.from_record(record))

    @router.get("/images", response_model=GalleryPage)
    def list_images(
        page: int = 1,
        per_page: int = Query(default=12, ge=1, le=100),
        store: CatalogStore = Depends(get_catalog_store),
    ) -> GalleryPage:
        """Return a page of public images, newest first.

        Out-of-range pages are clamped to the nearest valid page.
        """
        result = store.list_public_images(page, per_page)
        return GalleryPage(
            total=result["total"],
            page=result["page"],
            per_page=result["per_page"],
            pages=result["pages"],
            images=[ImageResponse.from_record(r) for r in result["images"]],
        )

    @router.get("/images/{image_id}", response_model=ImageResponse)
    def get_image(
        image_id: str,
        store: CatalogStore = Depends(get_catalog_store),
    ) -> ImageResponse:
        """Return a single image and count the view.

        Raises:
            HTTPException: 404 if the image is not found.
        """
        record = store.increment_views(image_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Image not found")
        return ImageResponse.from_record(record)

    @router.delete("/images/{image_id}")
    async def delete_image(
        image_id: str,
        request: Request,
        requester: UserRecord = Depends(get_requester),
        store: CatalogStore = Depends(get_catalog_store),
    ) -> dict:
        """Delete an image owned by the requester.

        The stored object is removed first, using the storage key persisted
        at upload time (or one derived from the URL for older records), then
        the catalog record and its index entry.

        Raises:
            HTTPException: 404 if not found, 403 if the requester is not the
                creator, 502 if object storage rejects the deletion.
        """
        record = await asyncio.to_thread(store.get_image, image_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Image not found")
        if record.creator_id != requester.id:
            raise HTTPException(status_code=403, detail="Not authorized to delete this image")

        storage: ArtifactStore | None = request.app.state.artifact_store
        if storage is None:
            raise ServiceMisconfigured("Object storage is not configured on this server.")

        storage_key = record.storage_key or storage_key_from_url(record.image_url)
        try:
            await storage.delete(storage_key)
        except StorageError as exc:
            raise HTTPException(status_code=502, detail=f"Could not delete stored image: {exc}") from exc

        await asyncio.to_thread(store.delete_image, image_id)
        return {"success": True, "deleted": image_id}

    return router


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~promptgallery.core.config.config`
    (``PROMPTGALLERY_SERVER_HOST``, ``PROMPTGALLERY_SERVER_PORT``,
    ``PROMPTGALLERY_LOG_LEVEL``).

    This function is registered as the ``promptgallery`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    configure_logging(config.log_level)
    uvicorn.run(
        "promptgallery.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
