"""
File: schema.py
Purpose: Type-safe Pydantic v2 schemas for the error classifier.
Dependencies: pydantic >=2.0
Performance: Schema validation <1ms per object.

Python attributes are snake_case. The JSON wire form (remote backend
payloads and training-data files) uses camelCase aliases; both spellings
are accepted on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ═══════════════════════════════════════════════════════════════
#  ENUMS
# ═══════════════════════════════════════════════════════════════


class RetryAction(str, Enum):
    """What the caller should do about the failed request."""
    NO_RETRY = "no_retry"
    RETRY_ONCE_AFTER_REFRESH = "retry_once_after_refresh"
    RETRY_WITH_BACKOFF = "retry_with_backoff"
    RETRY_IMMEDIATE = "retry_immediate"


class ModelSource(str, Enum):
    """Which classification path produced a result."""
    NEURAL = "neural"
    DECISION_TREE = "decision_tree"
    PATTERN_MATCH = "pattern_match"


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class ServiceMode(str, Enum):
    """Whether the remote classifier is currently in use."""
    NEURAL_ENHANCED = "neural_enhanced"
    DECISION_TREE_ONLY = "decision_tree_only"


_WIRE = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    protected_namespaces=(),
)


# ═══════════════════════════════════════════════════════════════
#  CONTEXT + CLASSIFICATION
# ═══════════════════════════════════════════════════════════════


class ErrorContext(BaseModel):
    """Sanitized description of a failed request.

    Only produced by :func:`error_classifier.core.sanitizer.sanitize_context`,
    which guarantees the bounds below.

    Attributes:
        http_status: HTTP status code, 100-599.
        error_message: Error text, at most 1000 chars.
        error_type: Caller-defined error type, at most 100 chars.
        source_system: Calling system, at most 100 chars.
        target_system: Called system, at most 100 chars.
        retry_count: Retries already attempted, 0-100.
        deployment_id: Deployment identifier, at most 100 chars.
        timestamp: Caller-supplied timestamp string, at most 100 chars.
    """
    model_config = _WIRE

    http_status: Optional[int] = Field(default=None, ge=100, le=599)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    error_type: Optional[str] = Field(default=None, max_length=100)
    source_system: Optional[str] = Field(default=None, max_length=100)
    target_system: Optional[str] = Field(default=None, max_length=100)
    retry_count: Optional[int] = Field(default=None, ge=0, le=100)
    deployment_id: Optional[str] = Field(default=None, max_length=100)
    timestamp: Optional[str] = Field(default=None, max_length=100)


class Classification(BaseModel):
    """Retry advice for one error.

    Attributes:
        classification: Error class label, e.g. ``RATE_LIMIT``.
        action: Recommended retry behaviour.
        confidence: Confidence in the label, 0.0-1.0.
        max_retries: Upper bound on retries, if any are advised.
        delay_seconds: Suggested initial delay between retries.
        learning_enabled: Whether outcomes may be logged for training.
        model_source: Path that produced the result.
    """
    model_config = _WIRE

    classification: str
    action: RetryAction
    confidence: float = Field(ge=0.0, le=1.0)
    max_retries: Optional[int] = Field(default=None, ge=0)
    delay_seconds: Optional[float] = Field(default=None, ge=0.0)
    learning_enabled: bool = True
    model_source: ModelSource = ModelSource.DECISION_TREE


def default_classification() -> Classification:
    """The result returned when nothing better is known."""
    return Classification(
        classification="UNKNOWN_ERROR",
        action=RetryAction.RETRY_WITH_BACKOFF,
        confidence=0.5,
        max_retries=2,
        learning_enabled=True,
        model_source=ModelSource.DECISION_TREE,
    )


# ═══════════════════════════════════════════════════════════════
#  LOG RECORDS
# ═══════════════════════════════════════════════════════════════


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Outcome(BaseModel):
    """What happened after the caller acted on a classification.

    Attributes:
        success: Whether the request eventually succeeded.
        retries_used: Retries actually performed.
        total_time_ms: Wall time spent, including retries.
        final_status: Last HTTP status seen, if any.
    """
    model_config = _WIRE

    success: bool
    retries_used: int = Field(default=0, ge=0)
    total_time_ms: float = Field(default=0.0, ge=0.0)
    final_status: Optional[int] = None


class ClassificationRecord(BaseModel):
    """A classification queued for training-data persistence."""
    model_config = _WIRE

    kind: Literal["classification"] = "classification"
    context: ErrorContext
    classification: Classification
    model_source: ModelSource
    timestamp: datetime = Field(default_factory=_utc_now)

    @property
    def label(self) -> str:
        return self.classification.classification

    @property
    def learning_enabled(self) -> bool:
        return self.classification.learning_enabled


class OutcomeRecord(BaseModel):
    """An outcome report queued for training-data persistence."""
    model_config = _WIRE

    kind: Literal["outcome"] = "outcome"
    classification: str
    context: ErrorContext
    outcome: Outcome
    learning_enabled: bool = True
    timestamp: datetime = Field(default_factory=_utc_now)

    @property
    def label(self) -> str:
        return self.classification


LogRecord = Union[ClassificationRecord, OutcomeRecord]


# ═══════════════════════════════════════════════════════════════
#  PERSISTED STATE + HEALTH
# ═══════════════════════════════════════════════════════════════


class PersistedState(BaseModel):
    """Aggregate counters kept in the state file.

    Attributes:
        pattern_counts: ``{"<status>_<label>": count}``.
        total_classifications: Records written by flushed batches.
        last_updated: Time of the last successful merge.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    pattern_counts: Dict[str, int] = Field(default_factory=dict)
    total_classifications: int = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=_utc_now)


class HealthReport(BaseModel):
    """Snapshot of the service's resilience state."""
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    service: str = "error-classification"
    mode: ServiceMode
    remote_available: bool
    breaker_state: CircuitState
    breaker_failures: int
    cache_size: int
    queue_size: int
    file_count: int
    file_count_healthy: bool
    training_data_path: str
    timestamp: datetime = Field(default_factory=_utc_now)


# ═══════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ═══════════════════════════════════════════════════════════════


class ErrorClassifierError(Exception):
    """Base class for errors raised inside the classifier."""


class RemoteClassifierError(ErrorClassifierError):
    """The remote classifier timed out, failed, or sent a malformed body."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Remote classifier {operation} failed: {reason}")
