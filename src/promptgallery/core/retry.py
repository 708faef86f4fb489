"""Retry and fallback policy for inference attempts.

:class:`RetryController` drives an :class:`~promptgallery.core.inference_client.InferenceClient`
through a bounded number of attempts.  The policy is expressed as an explicit
state machine so that each rule is visible in one place:

::

    Attempting(n) ──Success──────────────────────────────▶ Succeeded
         │  ▲
         │  └──Loading(wait): sleep(wait), same n ───────┐
         │                                               │
         ├──RecoverableFailure(model_unavailable)        │
         │     └─ one fallback call ──Success──────────▶ Succeeded
         │        otherwise continue below               │
         ├──RecoverableFailure, n < max: sleep(backoff) ─▶ Attempting(n + 1)
         ├──RecoverableFailure, n == max ───────────────▶ Exhausted
         └──FatalFailure ───────────────────────────────▶ Exhausted

Rules
-----
- ``Loading`` never consumes a primary attempt.  The wait is the service's
  ``estimated_time`` or ``default_loading_wait_seconds`` when absent.  A
  separate ``max_loading_waits`` cap stops a model that never finishes
  loading from holding the request forever.
- A "model not found/forbidden" failure triggers exactly one substitute call
  against ``fallback_model``.  Fallback calls are counted separately and do
  not consume primary attempts.
- Other recoverable failures consume an attempt and back off
  ``content_retry_backoff_seconds`` (error response) or
  ``transport_retry_backoff_seconds`` (network error) before the next one.
- ``FatalFailure`` or reaching ``max_attempts`` ends in ``Exhausted``, which
  :meth:`RetryController.run` raises as
  :class:`~promptgallery.core.errors.InferenceExhausted`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, Union

from promptgallery.core.config import GalleryConfig
from promptgallery.core.errors import InferenceExhausted
from promptgallery.core.inference_client import (
    AttemptOutcome,
    FatalFailure,
    Loading,
    RecoverableFailure,
    Success,
)

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class Attempter(Protocol):
    """Anything that can make one inference attempt."""

    async def attempt(self, prompt: str, model: str) -> AttemptOutcome: ...


# ---------------------------------------------------------------------------
# Controller states.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Attempting:
    """About to make primary attempt number ``attempt`` (1-based)."""

    attempt: int


@dataclass(frozen=True)
class Succeeded:
    outcome: Success
    model: str
    attempt: int


@dataclass(frozen=True)
class Exhausted:
    detail: str
    attempts: int


ControllerState = Union[Attempting, Succeeded, Exhausted]


@dataclass
class InferenceResult:
    """Image bytes plus the accounting of how they were obtained.

    Attributes:
        payload: Raw image bytes.
        content_type: MIME type reported by the inference client.
        model: Model identifier that produced the image.
        attempts: Primary attempts consumed (loading waits excluded).
        fallback_calls: Substitute calls made against the fallback model.
        loading_waits: Number of "model loading" waits slept through.
        calls: Total HTTP calls made, primary and fallback.
    """

    payload: bytes = field(repr=False)
    content_type: str
    model: str
    attempts: int
    fallback_calls: int = 0
    loading_waits: int = 0
    calls: int = 0


@dataclass
class _RunCounters:
    fallback_calls: int = 0
    loading_waits: int = 0
    calls: int = 0


class RetryController:
    """Run inference attempts until success or exhaustion.

    Args:
        client: Object exposing ``async attempt(prompt, model)``.
        config: Supplies model identifiers, budgets and backoff durations.
        sleep: Coroutine used for every deliberate wait.  Defaults to
            :func:`asyncio.sleep`; tests pass a recorder instead.
    """

    def __init__(
        self,
        client: Attempter,
        config: GalleryConfig,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.client = client
        self.config = config
        self._sleep = sleep

    async def run(self, prompt: str) -> InferenceResult:
        """Obtain one image for *prompt*.

        Raises:
            InferenceExhausted: When the attempt budget is spent or a fatal
                failure is observed.  ``attempts`` carries the primary
                attempts consumed.
        """
        counters = _RunCounters()
        state: ControllerState = Attempting(1)

        while isinstance(state, Attempting):
            state = await self._step(state, prompt, counters)

        if isinstance(state, Exhausted):
            logger.error(
                f"Inference exhausted after {state.attempts} attempt(s): {state.detail}"
            )
            raise InferenceExhausted(
                f"Failed to generate image after {state.attempts} attempt(s): {state.detail}",
                attempts=state.attempts,
            )

        logger.info(
            f"Image generated by {state.model} "
            f"(attempts={state.attempt}, fallback_calls={counters.fallback_calls}, "
            f"loading_waits={counters.loading_waits})"
        )
        return InferenceResult(
            payload=state.outcome.payload,
            content_type=state.outcome.content_type,
            model=state.model,
            attempts=state.attempt,
            fallback_calls=counters.fallback_calls,
            loading_waits=counters.loading_waits,
            calls=counters.calls,
        )

    async def _step(
        self, state: Attempting, prompt: str, counters: _RunCounters
    ) -> ControllerState:
        """Make one primary call and return the next state."""
        attempt = state.attempt
        primary = self.config.primary_model
        logger.info(f"Attempt {attempt}/{self.config.max_attempts} against {primary}")

        outcome = await self.client.attempt(prompt, primary)
        counters.calls += 1

        if isinstance(outcome, Success):
            return Succeeded(outcome=outcome, model=primary, attempt=attempt)

        if isinstance(outcome, Loading):
            return await self._wait_for_model(outcome, attempt, counters)

        if isinstance(outcome, FatalFailure):
            return Exhausted(detail=outcome.reason, attempts=attempt)

        detail = outcome.reason
        if outcome.model_unavailable:
            fallback = await self._call_fallback(prompt, counters)
            if isinstance(fallback, Success):
                return Succeeded(outcome=fallback, model=self.config.fallback_model, attempt=attempt)
            detail = f"{outcome.reason}; fallback {self.config.fallback_model}: {_describe(fallback)}"

        if attempt >= self.config.max_attempts:
            return Exhausted(detail=detail, attempts=attempt)

        backoff = (
            self.config.transport_retry_backoff_seconds
            if outcome.transport_error
            else self.config.content_retry_backoff_seconds
        )
        logger.info(f"Retrying in {backoff:g}s after: {detail}")
        await self._sleep(backoff)
        return Attempting(attempt + 1)

    async def _wait_for_model(
        self, outcome: Loading, attempt: int, counters: _RunCounters
    ) -> ControllerState:
        """Sleep through a model warm-up without consuming an attempt."""
        counters.loading_waits += 1
        if counters.loading_waits > self.config.max_loading_waits:
            return Exhausted(
                detail=f"model still loading after {self.config.max_loading_waits} waits",
                attempts=attempt,
            )

        wait = outcome.estimated_wait
        if wait is None:
            wait = self.config.default_loading_wait_seconds
        logger.info(f"Model is loading, waiting {wait:g}s")
        await self._sleep(wait)
        return Attempting(attempt)

    async def _call_fallback(self, prompt: str, counters: _RunCounters) -> AttemptOutcome:
        fallback = self.config.fallback_model
        logger.warning(f"Primary model not accessible, trying {fallback}")
        counters.fallback_calls += 1
        counters.calls += 1
        return await self.client.attempt(prompt, fallback)


def _describe(outcome: AttemptOutcome) -> str:
    if isinstance(outcome, (RecoverableFailure, FatalFailure)):
        return outcome.reason
    if isinstance(outcome, Loading):
        return "model loading"
    return "succeeded"
