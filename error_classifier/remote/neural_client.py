"""
File: remote/neural_client.py
Purpose: Async client for the optional remote (neural) classifier.
Dependencies: httpx, schema models.
Performance: <=2s health probe, <=1s classify (hard timeouts).

Contract consumed::

    GET  /health                 -> 2xx when the backend is up
    POST /neural/classify-error  {"context": {...}}
                                 -> {"available": bool, "classification": ..., ...}

Every timeout, non-2xx response, transport error or malformed body on
classify raises RemoteClassifierError; callers count it as a breaker
failure. ``{"available": false}`` is returned as ``None``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from error_classifier.config import RemoteConfig
from error_classifier.schema import (
    Classification,
    ErrorContext,
    ModelSource,
    RemoteClassifierError,
)
from error_classifier.telemetry import TelemetryCollector, get_logger

logger = get_logger("error_classifier.remote.neural_client")

_IGNORED_KEYS = frozenset({"available", "modelSource", "model_source"})


class NeuralClassifierClient:
    """Thin async adapter over the remote classifier's HTTP API.

    Args:
        config: Remote backend configuration.
        client: Pre-built ``httpx.AsyncClient`` (tests inject one with a
            ``MockTransport``); one is created from *config* otherwise.
        telemetry: Optional telemetry collector.
    """

    def __init__(
        self,
        config: Optional[RemoteConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self._config = config or RemoteConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self._config.base_url)
        self._telemetry = telemetry

    async def health_check(self) -> bool:
        """Probe the backend's health endpoint.

        Returns:
            ``True`` on a 2xx answer within the health timeout; ``False``
            on anything else. Never raises.
        """
        timeout = self._config.health_timeout_seconds
        try:
            response = await asyncio.wait_for(
                self._client.get(self._config.health_path, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Remote classifier health check timed out")
            return False
        except httpx.HTTPError as exc:
            logger.warning(f"Remote classifier unreachable: {exc}")
            return False

        if response.is_success:
            logger.info("Remote classifier available")
            return True
        logger.warning(
            f"Remote classifier health check returned {response.status_code}"
        )
        return False

    async def classify(self, context: ErrorContext) -> Optional[Classification]:
        """Ask the backend to classify *context*.

        Args:
            context: Sanitized error context.

        Returns:
            A Classification with ``model_source=neural``, or ``None`` when
            the backend answers that it cannot classify right now.

        Raises:
            RemoteClassifierError: On timeout, transport error, non-2xx
                status or malformed body.
        """
        timeout = self._config.classify_timeout_seconds
        payload = {"context": context.model_dump(by_alias=True, exclude_none=True)}

        if self._telemetry:
            self._telemetry.remote_calls_total.inc()
        try:
            if self._telemetry:
                with self._telemetry.measure("remote"):
                    response = await self._post(payload, timeout)
            else:
                response = await self._post(payload, timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteClassifierError("classify", f"timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise RemoteClassifierError("classify", str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise RemoteClassifierError("classify", f"HTTP {response.status_code}")
        return self._parse(response)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    # ---- internal ---------------------------------------------------------

    async def _post(self, payload: Dict[str, Any], timeout: float) -> httpx.Response:
        return await asyncio.wait_for(
            self._client.post(
                self._config.classify_path, json=payload, timeout=timeout,
            ),
            timeout=timeout,
        )

    @staticmethod
    def _parse(response: httpx.Response) -> Optional[Classification]:
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteClassifierError("classify", "response is not JSON") from exc
        if not isinstance(body, dict):
            raise RemoteClassifierError("classify", "response is not an object")
        if not body.get("available", False):
            return None

        fields = {k: v for k, v in body.items() if k not in _IGNORED_KEYS}
        fields["modelSource"] = ModelSource.NEURAL.value
        try:
            return Classification.model_validate(fields)
        except ValidationError as exc:
            raise RemoteClassifierError(
                "classify", f"malformed classification: {exc.error_count()} error(s)"
            ) from exc
