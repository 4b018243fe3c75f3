"""Tests for error_classifier.remote.neural_client."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from error_classifier.config import RemoteConfig
from error_classifier.schema import (
    ErrorContext,
    ModelSource,
    RemoteClassifierError,
    RetryAction,
)
from error_classifier.telemetry import TelemetryCollector

CTX = ErrorContext(http_status=429, error_message="Too many requests")


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_healthy(self, neural_client_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "ok"})

        client = neural_client_factory(handler)
        assert await client.health_check() is True

    @pytest.mark.asyncio
    async def test_non_2xx(self, neural_client_factory) -> None:
        client = neural_client_factory(lambda request: httpx.Response(503))
        assert await client.health_check() is False

    @pytest.mark.asyncio
    async def test_unreachable(self, neural_client_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = neural_client_factory(handler)
        assert await client.health_check() is False

    @pytest.mark.asyncio
    async def test_hard_timeout(self, neural_client_factory) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        client = neural_client_factory(
            handler, RemoteConfig(health_timeout_seconds=0.05)
        )
        assert await client.health_check() is False


class TestClassify:
    @pytest.mark.asyncio
    async def test_success(self, neural_client_factory, neural_response) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=neural_response())

        client = neural_client_factory(handler)
        result = await client.classify(CTX)

        assert seen["path"] == "/neural/classify-error"
        assert seen["body"] == {
            "context": {"httpStatus": 429, "errorMessage": "Too many requests"}
        }
        assert result.classification == "RATE_LIMIT"
        assert result.action == RetryAction.RETRY_WITH_BACKOFF
        assert result.max_retries == 4
        assert result.model_source == ModelSource.NEURAL

    @pytest.mark.asyncio
    async def test_backend_model_source_overridden(
        self, neural_client_factory, neural_response
    ) -> None:
        client = neural_client_factory(
            lambda request: httpx.Response(
                200, json=neural_response(modelSource="decision_tree")
            )
        )
        result = await client.classify(CTX)
        assert result.model_source == ModelSource.NEURAL

    @pytest.mark.asyncio
    async def test_unavailable_marker(self, neural_client_factory) -> None:
        client = neural_client_factory(
            lambda request: httpx.Response(200, json={"available": False})
        )
        assert await client.classify(CTX) is None

    @pytest.mark.asyncio
    async def test_missing_available_flag_is_unavailable(
        self, neural_client_factory
    ) -> None:
        client = neural_client_factory(
            lambda request: httpx.Response(200, json={"classification": "X"})
        )
        assert await client.classify(CTX) is None

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, neural_client_factory) -> None:
        client = neural_client_factory(lambda request: httpx.Response(500))
        with pytest.raises(RemoteClassifierError, match="HTTP 500"):
            await client.classify(CTX)

    @pytest.mark.asyncio
    async def test_non_json_raises(self, neural_client_factory) -> None:
        client = neural_client_factory(
            lambda request: httpx.Response(200, text="<html>oops</html>")
        )
        with pytest.raises(RemoteClassifierError, match="not JSON"):
            await client.classify(CTX)

    @pytest.mark.asyncio
    async def test_non_object_raises(self, neural_client_factory) -> None:
        client = neural_client_factory(
            lambda request: httpx.Response(200, json=[1, 2, 3])
        )
        with pytest.raises(RemoteClassifierError):
            await client.classify(CTX)

    @pytest.mark.asyncio
    async def test_malformed_classification_raises(
        self, neural_client_factory, neural_response
    ) -> None:
        client = neural_client_factory(
            lambda request: httpx.Response(
                200, json=neural_response(confidence=7.5, action="panic")
            )
        )
        with pytest.raises(RemoteClassifierError, match="malformed"):
            await client.classify(CTX)

    @pytest.mark.asyncio
    async def test_transport_timeout_raises(self, neural_client_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = neural_client_factory(handler)
        with pytest.raises(RemoteClassifierError):
            await client.classify(CTX)

    @pytest.mark.asyncio
    async def test_hard_timeout_raises(self, neural_client_factory) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={"available": True})

        client = neural_client_factory(
            handler, RemoteConfig(classify_timeout_seconds=0.05)
        )
        with pytest.raises(RemoteClassifierError, match="timed out"):
            await client.classify(CTX)

    @pytest.mark.asyncio
    async def test_counts_calls(self, neural_client_factory, neural_response) -> None:
        telemetry = TelemetryCollector()
        client = neural_client_factory(
            lambda request: httpx.Response(200, json=neural_response()),
            telemetry=telemetry,
        )
        await client.classify(CTX)
        await client.classify(CTX)
        assert telemetry.remote_calls_total.value == 2
        assert telemetry.remote_latency.count == 2


class TestClose:
    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, neural_client_factory) -> None:
        client = neural_client_factory(lambda request: httpx.Response(200))
        await client.aclose()
        assert await client.health_check() is True
