"""Shared fixtures for error_classifier tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional

import httpx
import pytest

from error_classifier.config import (
    BatchConfig,
    ClassifierConfig,
    RemoteConfig,
    StateConfig,
)
from error_classifier.core.decision_tree import classify_error
from error_classifier.remote.neural_client import NeuralClassifierClient
from error_classifier.schema import (
    ClassificationRecord,
    ErrorContext,
    ModelSource,
    Outcome,
    OutcomeRecord,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def training_dir(tmp_path: Path) -> Path:
    return tmp_path / "training-data"


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "error-classification-state.json"


@pytest.fixture
def config(training_dir: Path, state_file: Path) -> ClassifierConfig:
    """Remote disabled, slow timer, everything written under tmp_path."""
    return ClassifierConfig(
        batch=BatchConfig(flush_interval_seconds=60.0),
        state=StateConfig(state_file=str(state_file)),
        remote=RemoteConfig(enabled=False),
        training_data_dir=str(training_dir),
    )


def make_record(
    status: Optional[int] = 429,
    message: Optional[str] = None,
    deployment_id: Optional[str] = None,
) -> ClassificationRecord:
    """A classification record as the service would enqueue it."""
    result = classify_error(status, message)
    return ClassificationRecord(
        context=ErrorContext(
            http_status=status,
            error_message=message,
            deployment_id=deployment_id,
        ),
        classification=result,
        model_source=ModelSource.DECISION_TREE,
    )


def make_outcome_record(
    label: str = "SERVER_ERROR", status: int = 500, success: bool = True
) -> OutcomeRecord:
    return OutcomeRecord(
        classification=label,
        context=ErrorContext(http_status=status),
        outcome=Outcome(success=success, retries_used=1, total_time_ms=250.0),
    )



@pytest.fixture
def record_factory() -> Callable[..., ClassificationRecord]:
    return make_record


@pytest.fixture
def outcome_factory() -> Callable[..., OutcomeRecord]:
    return make_outcome_record


Handler = Callable[[httpx.Request], httpx.Response]


def make_neural_client(
    handler: Handler,
    config: Optional[RemoteConfig] = None,
    **kwargs,
) -> NeuralClassifierClient:
    """NeuralClassifierClient backed by an ``httpx.MockTransport``."""
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://neural.test",
    )
    return NeuralClassifierClient(config or RemoteConfig(), client=client, **kwargs)


def neural_body(**overrides) -> Dict[str, object]:
    """A well-formed ``available`` classify response."""
    body: Dict[str, object] = {
        "available": True,
        "classification": "RATE_LIMIT",
        "action": "retry_with_backoff",
        "confidence": 0.97,
        "maxRetries": 4,
        "delaySeconds": 2.0,
        "learningEnabled": True,
    }
    body.update(overrides)
    return body


@pytest.fixture
def neural_client_factory() -> Callable[..., NeuralClassifierClient]:
    return make_neural_client


@pytest.fixture
def neural_response() -> Callable[..., Dict[str, object]]:
    return neural_body
