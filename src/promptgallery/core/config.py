"""Configuration management for Prompt Gallery.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PROMPTGALLERY_
prefix, allowing credentials and tuning values to be supplied without code
changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PROMPTGALLERY_* prefix)
2. .env file in the project root
3. Default values defined in GalleryConfig

Example .env file:
    PROMPTGALLERY_HF_API_TOKEN=hf_xxxxxxxx
    PROMPTGALLERY_CLOUDINARY_CLOUD_NAME=my-cloud
    PROMPTGALLERY_CLOUDINARY_API_KEY=123456789
    PROMPTGALLERY_CLOUDINARY_API_SECRET=xxxxxxxx
    PROMPTGALLERY_DATA_DIR=data

Required Keys
-------------
The generation pipeline cannot run without credentials for both outbound
services:

- Inference: ``hf_api_token``
- Object storage: ``cloudinary_cloud_name``, ``cloudinary_api_key``,
  ``cloudinary_api_secret``

:meth:`GalleryConfig.missing_inference_settings` and
:meth:`GalleryConfig.missing_storage_settings` report which of these are
absent.  The application checks them once at startup and refuses to serve
generation requests when any is missing.

Global Configuration Instance
------------------------------
A global ``config`` instance is created automatically at module import time.
Components never read the environment themselves; they receive a
``GalleryConfig`` at construction.

Usage Example
-------------
    from promptgallery.core.config import config

    print(config.primary_model)
    print(config.catalog_db_path)
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GalleryConfig(BaseSettings):
    """Main configuration for Prompt Gallery.

    Values are loaded from environment variables with the PROMPTGALLERY_
    prefix, with fallback to the defaults defined here.

    Attributes
    ----------
    Inference Settings:
        hf_api_token : str | None
            Bearer token for the inference service (required)
        inference_base_url : str
            Base URL; the model identifier is appended as a path segment
        primary_model : str
            Model used for every primary attempt
        fallback_model : str
            Substitute model tried once when the primary is unreachable
        negative_prompt : str
            Fixed negative prompt sent with every request
        num_inference_steps : int
            Fixed diffusion step count sent with every request
        inference_timeout_seconds : float
            Upper bound for a single inference HTTP call

    Retry Settings:
        max_attempts : int
            Primary attempt budget (loading waits do not consume it)
        max_loading_waits : int
            Upper bound on total "model loading" waits per request
        default_loading_wait_seconds : float
            Wait used when the service gives no estimate
        content_retry_backoff_seconds : float
            Pause after an error response from the service
        transport_retry_backoff_seconds : float
            Pause after a network-level error
        inference_deadline_seconds : float
            Bound on the inference stage of one generation request; upload
            and catalog writes always run to completion once an image exists

    Storage Settings:
        cloudinary_cloud_name, cloudinary_api_key, cloudinary_api_secret : str | None
            Object storage credentials (required)
        storage_folder : str
            Folder (namespace) that uploads are placed in

    Catalog Settings:
        data_dir : Path
            Directory holding the catalog database
        catalog_db_name : str
            SQLite file name inside ``data_dir``

    Server Settings:
        server_host, server_port : bind address for uvicorn
        log_level : root log level
        require_credentials : fail at startup when credentials are missing
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMPTGALLERY_",
        case_sensitive=False,
    )

    # Inference service
    hf_api_token: str | None = Field(
        default=None,
        description="Bearer token for the inference service",
    )
    inference_base_url: str = Field(
        default="https://api-inference.huggingface.co/models",
        description="Inference endpoint prefix; the model id is appended",
    )
    primary_model: str = Field(
        default="stabilityai/stable-diffusion-xl-base-1.0",
        description="Model identifier used for primary attempts",
    )
    fallback_model: str = Field(
        default="runwayml/stable-diffusion-v1-5",
        description="Substitute model when the primary is not found or forbidden",
    )
    negative_prompt: str = Field(default="blurry, bad quality")
    num_inference_steps: int = Field(default=20, ge=1, le=150)
    inference_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for a single inference call",
        gt=0,
    )

    # Retry policy
    max_attempts: int = Field(default=3, ge=1, le=10)
    max_loading_waits: int = Field(
        default=10,
        description="Total loading waits per request tolerated before giving up",
        ge=1,
    )
    default_loading_wait_seconds: float = Field(default=20.0, ge=0)
    content_retry_backoff_seconds: float = Field(default=10.0, ge=0)
    transport_retry_backoff_seconds: float = Field(default=5.0, ge=0)
    inference_deadline_seconds: float = Field(
        default=600.0,
        description="Bound on the inference stage of one generation",
        gt=0,
    )

    # Object storage
    cloudinary_cloud_name: str | None = Field(default=None)
    cloudinary_api_key: str | None = Field(default=None)
    cloudinary_api_secret: str | None = Field(default=None)
    storage_folder: str = Field(
        default="ai-image-gallery",
        description="Folder that uploaded images are placed in",
    )

    # Catalog
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for the catalog database",
    )
    catalog_db_name: str = Field(default="catalog.db")

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=5000, ge=1024, le=65535)
    log_level: str = Field(default="INFO")
    require_credentials: bool = Field(
        default=True,
        description="Refuse to start when required credentials are missing",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def catalog_db_path(self) -> Path:
        """Absolute location of the SQLite catalog file."""
        return self.data_dir / self.catalog_db_name

    def missing_inference_settings(self) -> list[str]:
        """Return the names of required inference settings that are unset."""
        return [] if self.hf_api_token else ["hf_api_token"]

    def missing_storage_settings(self) -> list[str]:
        """Return the names of required object storage settings that are unset."""
        required = {
            "cloudinary_cloud_name": self.cloudinary_cloud_name,
            "cloudinary_api_key": self.cloudinary_api_key,
            "cloudinary_api_secret": self.cloudinary_api_secret,
        }
        return [name for name, value in required.items() if not value]


# Global configuration instance, loaded from PROMPTGALLERY_* variables and .env.
config = GalleryConfig()
