"""Tests for promptgallery.core.config — configuration management.

Tests cover:
- Default values for the retry policy and inference parameters.
- Environment variable overrides via the PROMPTGALLERY_ prefix.
- Automatic data directory creation.
- Reporting of missing required credentials.
- Pydantic validation constraints.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from promptgallery.core.config import GalleryConfig


def _bare_config(temp_dir: Path, **overrides) -> GalleryConfig:
    return GalleryConfig(_env_file=None, data_dir=str(temp_dir / "data"), **overrides)


class TestConfigDefaults:
    """Verify that GalleryConfig provides the documented defaults."""

    def test_retry_defaults(self, temp_dir: Path):
        cfg = _bare_config(temp_dir)
        assert cfg.max_attempts == 3
        assert cfg.default_loading_wait_seconds == 20.0
        assert cfg.content_retry_backoff_seconds == 10.0
        assert cfg.transport_retry_backoff_seconds == 5.0

    def test_model_defaults(self, temp_dir: Path):
        cfg = _bare_config(temp_dir)
        assert cfg.primary_model == "stabilityai/stable-diffusion-xl-base-1.0"
        assert cfg.fallback_model == "runwayml/stable-diffusion-v1-5"
        assert cfg.negative_prompt == "blurry, bad quality"
        assert cfg.num_inference_steps == 20

    def test_storage_folder_default(self, temp_dir: Path):
        assert _bare_config(temp_dir).storage_folder == "ai-image-gallery"

    def test_catalog_db_path(self, temp_dir: Path):
        cfg = _bare_config(temp_dir)
        assert cfg.catalog_db_path == temp_dir / "data" / "catalog.db"


class TestConfigEnvironment:
    """Environment overrides with the PROMPTGALLERY_ prefix."""

    def test_env_override(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("PROMPTGALLERY_HF_API_TOKEN", "hf_from_env")
        monkeypatch.setenv("PROMPTGALLERY_MAX_ATTEMPTS", "5")

        cfg = _bare_config(temp_dir)

        assert cfg.hf_api_token == "hf_from_env"
        assert cfg.max_attempts == 5


class TestConfigDirectoryCreation:
    def test_creates_nested_data_dir(self, temp_dir: Path):
        deep = temp_dir / "a" / "b" / "data"
        cfg = GalleryConfig(_env_file=None, data_dir=str(deep))

        assert cfg.data_dir.exists()
        assert cfg.data_dir.is_dir()


class TestRequiredSettings:
    """Reporting of missing credentials."""

    def test_all_missing(self, monkeypatch, temp_dir: Path):
        for name in ("HF_API_TOKEN", "CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
            monkeypatch.delenv(f"PROMPTGALLERY_{name}", raising=False)
        cfg = _bare_config(temp_dir)

        assert cfg.missing_inference_settings() == ["hf_api_token"]
        assert cfg.missing_storage_settings() == [
            "cloudinary_cloud_name",
            "cloudinary_api_key",
            "cloudinary_api_secret",
        ]

    def test_fully_configured(self, test_config: GalleryConfig):
        assert test_config.missing_inference_settings() == []
        assert test_config.missing_storage_settings() == []

    def test_empty_string_counts_as_missing(self, temp_dir: Path):
        cfg = _bare_config(temp_dir, hf_api_token="")
        assert cfg.missing_inference_settings() == ["hf_api_token"]


class TestConfigValidation:
    """Verify Pydantic validation constraints on config fields."""

    def test_invalid_port_too_low(self, temp_dir: Path):
        with pytest.raises(Exception):
            _bare_config(temp_dir, server_port=80)

    def test_max_attempts_must_be_positive(self, temp_dir: Path):
        with pytest.raises(Exception):
            _bare_config(temp_dir, max_attempts=0)

    def test_deadline_must_be_positive(self, temp_dir: Path):
        with pytest.raises(Exception):
            _bare_config(temp_dir, inference_deadline_seconds=0)
