"""Prompt Gallery - prompt-to-image generation with a cataloged gallery."""

__version__ = "0.1.0"

from promptgallery.core.config import GalleryConfig, config
from promptgallery.core.orchestrator import GenerationOrchestrator

__all__ = [
    "GalleryConfig",
    "GenerationOrchestrator",
    "config",
]
