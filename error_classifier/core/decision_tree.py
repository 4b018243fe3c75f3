"""
File: core/decision_tree.py
Purpose: Deterministic (status, message) -> Classification lookup.
Dependencies: schema models only (no I/O, no remote calls).
Performance: O(1) table lookup + O(len(message)) pattern scan.

Always available and never fails. Used when the remote classifier is
disabled, unreachable, or short-circuited by the circuit breaker.

Table shape::

    status bucket --> Leaf
                  \\-> PatternBranch --[timeout|connection|validation|server|default]--> Leaf
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from error_classifier.schema import (
    Classification,
    ErrorContext,
    ModelSource,
    RetryAction,
    default_classification,
)


class MessagePattern(str, Enum):
    """Closed set of message tags an entry can branch on."""
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    VALIDATION = "validation"
    SERVER = "server"
    DEFAULT = "default"


# Ordered: the first tag whose needles occur in the message wins.
_PATTERN_NEEDLES: Tuple[Tuple[MessagePattern, Tuple[str, ...]], ...] = (
    (MessagePattern.TIMEOUT, ("timeout", "timed out")),
    (MessagePattern.CONNECTION, ("connection", "connect", "network")),
    (MessagePattern.VALIDATION, ("validation", "invalid", "missing")),
    (MessagePattern.SERVER, ("server", "internal")),
)


@dataclass(frozen=True)
class Leaf:
    """Static retry policy at the bottom of the table."""
    classification: str
    action: RetryAction
    confidence: float
    max_retries: Optional[int] = None
    delay_seconds: Optional[float] = None
    learning_enabled: bool = True

    def to_classification(self) -> Classification:
        return Classification(
            classification=self.classification,
            action=self.action,
            confidence=self.confidence,
            max_retries=self.max_retries,
            delay_seconds=self.delay_seconds,
            learning_enabled=self.learning_enabled,
            model_source=ModelSource.DECISION_TREE,
        )


@dataclass(frozen=True)
class PatternBranch:
    """Status entry that refines its answer by message pattern.

    Tags missing from *leaves* resolve to *default*.
    """
    leaves: Dict[MessagePattern, Leaf]
    default: Leaf

    def select(self, pattern: MessagePattern) -> Leaf:
        return self.leaves.get(pattern, self.default)


StatusEntry = Union[Leaf, PatternBranch]


_SERVER_ERROR = Leaf(
    "SERVER_ERROR", RetryAction.RETRY_WITH_BACKOFF, 0.80, max_retries=3,
)

# 4xx retry counts follow the action (0 for no_retry, 1 for a token
# refresh), not a blanket default of 3.
DECISION_TABLE: Dict[str, StatusEntry] = {
    "400": PatternBranch(
        leaves={
            MessagePattern.VALIDATION: Leaf(
                "VALIDATION_ERROR", RetryAction.NO_RETRY, 0.95, max_retries=0,
            ),
        },
        default=Leaf(
            "VALIDATION_ERROR", RetryAction.NO_RETRY, 0.80, max_retries=0,
        ),
    ),
    "401": Leaf(
        "AUTHENTICATION_ERROR", RetryAction.RETRY_ONCE_AFTER_REFRESH, 0.90,
        max_retries=1,
    ),
    "403": Leaf(
        "AUTHORIZATION_ERROR", RetryAction.NO_RETRY, 0.95,
        max_retries=0, learning_enabled=False,
    ),
    "404": Leaf(
        "RESOURCE_NOT_FOUND", RetryAction.NO_RETRY, 0.90, max_retries=0,
    ),
    "429": Leaf(
        "RATE_LIMIT", RetryAction.RETRY_WITH_BACKOFF, 0.95, max_retries=5,
    ),
    "500": PatternBranch(
        leaves={
            MessagePattern.TIMEOUT: Leaf(
                "TIMEOUT_ERROR", RetryAction.RETRY_WITH_BACKOFF, 0.85,
                max_retries=3,
            ),
            MessagePattern.CONNECTION: Leaf(
                "CONNECTION_ERROR", RetryAction.RETRY_IMMEDIATE, 0.90,
                max_retries=3,
            ),
            MessagePattern.SERVER: _SERVER_ERROR,
        },
        default=Leaf(
            "SERVER_ERROR", RetryAction.RETRY_WITH_BACKOFF, 0.70,
            max_retries=3,
        ),
    ),
    "502": Leaf(
        "BAD_GATEWAY", RetryAction.RETRY_WITH_BACKOFF, 0.85, max_retries=3,
    ),
    "503": Leaf(
        "SERVICE_UNAVAILABLE", RetryAction.RETRY_WITH_BACKOFF, 0.90,
        max_retries=3,
    ),
}


def match_message_pattern(message: Optional[str]) -> MessagePattern:
    """Tag *message* with the first matching pattern (case-insensitive)."""
    if not message:
        return MessagePattern.DEFAULT
    lowered = message.lower()
    for pattern, needles in _PATTERN_NEEDLES:
        if any(needle in lowered for needle in needles):
            return pattern
    return MessagePattern.DEFAULT


def classify_error(
    http_status: Optional[int],
    error_message: Optional[str] = None,
) -> Classification:
    """Classify an error from its status code and message.

    Args:
        http_status: HTTP status code, or None when unknown.
        error_message: Free-form error text.

    Returns:
        A fresh Classification with ``model_source=decision_tree``.
        Unmapped or missing statuses yield ``UNKNOWN_ERROR`` at 0.50.
    """
    entry = DECISION_TABLE.get(str(http_status)) if http_status is not None else None
    if entry is None:
        return default_classification()
    if isinstance(entry, PatternBranch):
        entry = entry.select(match_message_pattern(error_message))
    return entry.to_classification()


class DecisionTreeClassifier:
    """Deterministic fallback classifier over :data:`DECISION_TABLE`."""

    def classify(self, context: ErrorContext) -> Classification:
        """Classify a sanitized context."""
        return classify_error(context.http_status, context.error_message)
