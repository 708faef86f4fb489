"""Single-attempt client for the external image inference service.

:class:`InferenceClient` issues exactly one HTTP request per call to
:meth:`InferenceClient.attempt` and classifies the response into one of the
:data:`AttemptOutcome` variants.  It never sleeps and never retries; that
policy lives in :mod:`promptgallery.core.retry`.

Outcome classification
----------------------
========================================  =====================================
Response                                  Outcome
========================================  =====================================
2xx with a decodable image body           :class:`Success`
error body mentioning "loading"           :class:`Loading` (``estimated_time``)
404 / 403                                 :class:`RecoverableFailure`
                                          (``model_unavailable=True``)
429 / 5xx, or 2xx with a non-image body   :class:`RecoverableFailure`
any other 4xx                             :class:`FatalFailure`
``httpx.TransportError`` (incl. timeout)  :class:`RecoverableFailure`
                                          (``transport_error=True``)
other ``httpx.RequestError`` (decoding)   :class:`RecoverableFailure`
========================================  =====================================
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Union

import httpx
from PIL import Image, UnidentifiedImageError

from promptgallery.core.config import GalleryConfig
from promptgallery.core.errors import ServiceMisconfigured

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    """The service returned image bytes."""

    payload: bytes = field(repr=False)
    content_type: str = "image/png"


@dataclass(frozen=True)
class Loading:
    """The model is warming up; ``estimated_wait`` is the service's own hint."""

    estimated_wait: float | None = None


@dataclass(frozen=True)
class RecoverableFailure:
    """A failure worth retrying."""

    reason: str
    status_code: int | None = None
    model_unavailable: bool = False
    transport_error: bool = False


@dataclass(frozen=True)
class FatalFailure:
    """A failure that no amount of retrying will fix."""

    reason: str
    status_code: int | None = None


AttemptOutcome = Union[Success, Loading, RecoverableFailure, FatalFailure]


def _error_detail(response: httpx.Response) -> tuple[str, float | None]:
    """Extract the error message and loading estimate from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip(), None

    if not isinstance(body, dict):
        return str(body), None

    error = body.get("error", "")
    if isinstance(error, list):
        error = "; ".join(str(item) for item in error)

    estimated = body.get("estimated_time")
    try:
        estimated_wait = float(estimated) if estimated is not None else None
    except (TypeError, ValueError):
        estimated_wait = None

    return str(error), estimated_wait


def _image_format(payload: bytes) -> str | None:
    """Return the Pillow format name of *payload*, or ``None`` if not an image."""
    try:
        with Image.open(io.BytesIO(payload)) as image:
            image.verify()
            return image.format
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None


def classify_response(response: httpx.Response) -> AttemptOutcome:
    """Map one inference HTTP response onto an attempt outcome.

    Args:
        response: The completed HTTP response.

    Returns:
        The outcome variant for this response.
    """
    status = response.status_code

    if response.is_success:
        image_format = _image_format(response.content)
        if image_format is None:
            return RecoverableFailure(
                reason="Inference service returned a response that is not an image",
                status_code=status,
            )
        return Success(payload=response.content, content_type=f"image/{image_format.lower()}")

    error, estimated_wait = _error_detail(response)
    reason = f"HTTP {status}: {error or response.reason_phrase}"

    if "loading" in error.lower():
        return Loading(estimated_wait=estimated_wait)

    if status in (403, 404):
        return RecoverableFailure(reason=reason, status_code=status, model_unavailable=True)

    if status == 429 or status >= 500:
        return RecoverableFailure(reason=reason, status_code=status)

    return FatalFailure(reason=reason, status_code=status)


class InferenceClient:
    """Issue single text-to-image requests against the inference service.

    Args:
        config: Configuration supplying the token, endpoint and fixed
            generation parameters.
        client: Optional pre-built ``httpx.AsyncClient``.  When omitted, a
            client bounded by ``inference_timeout_seconds`` is created and
            owned by this instance.
    """

    def __init__(self, config: GalleryConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.inference_timeout_seconds)

    def build_payload(self, prompt: str) -> dict:
        """Build the JSON request body for *prompt*."""
        return {
            "inputs": prompt,
            "parameters": {
                "negative_prompt": self.config.negative_prompt,
                "num_inference_steps": self.config.num_inference_steps,
            },
            "options": {"wait_for_model": True, "use_cache": False},
        }

    def model_url(self, model: str) -> str:
        return f"{self.config.inference_base_url.rstrip('/')}/{model}"

    async def attempt(self, prompt: str, model: str) -> AttemptOutcome:
        """Send one generation request for *prompt* to *model*.

        Raises:
            ServiceMisconfigured: If no inference token is configured.
        """
        token = self.config.hf_api_token
        if not token:
            raise ServiceMisconfigured("Inference API token is not configured.")

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "x-use-cache": "false",
        }

        try:
            response = await self._client.post(
                self.model_url(model),
                json=self.build_payload(prompt),
                headers=headers,
            )
        except httpx.TransportError as exc:
            logger.warning(f"Transport error calling {model}: {exc!r}")
            return RecoverableFailure(
                reason=f"Network error connecting to inference service: {exc}",
                transport_error=True,
            )
        except httpx.RequestError as exc:
            logger.warning(f"Unreadable response from {model}: {exc!r}")
            return RecoverableFailure(reason=f"Unreadable response from inference service: {exc}")

        outcome = classify_response(response)
        logger.debug(f"Inference response from {model}: {response.status_code} -> {outcome!r}")
        return outcome

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()
