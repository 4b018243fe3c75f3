"""
File: core/sanitizer.py
Purpose: Clamp and truncate untrusted context fields into an ErrorContext.
Dependencies: schema models.
Performance: O(fields), no I/O.

Never raises: numeric fields are clamped rather than rejected, strings
are truncated, and wrong-typed fields are dropped.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Dict, Optional, Tuple

from error_classifier.schema import ErrorContext

STATUS_RANGE: Tuple[int, int] = (100, 599)
RETRY_COUNT_RANGE: Tuple[int, int] = (0, 100)

# field -> max length
_STRING_LIMITS: Dict[str, int] = {
    "error_message": 1000,
    "error_type": 100,
    "source_system": 100,
    "target_system": 100,
    "deployment_id": 100,
    "timestamp": 100,
}

_INT_RANGES: Dict[str, Tuple[int, int]] = {
    "http_status": STATUS_RANGE,
    "retry_count": RETRY_COUNT_RANGE,
}

# camelCase wire names accepted alongside the snake_case ones.
_ALIASES: Dict[str, str] = {
    "httpStatus": "http_status",
    "errorMessage": "error_message",
    "errorType": "error_type",
    "sourceSystem": "source_system",
    "targetSystem": "target_system",
    "retryCount": "retry_count",
    "deploymentId": "deployment_id",
}


def _clamp(value: Any, bounds: Tuple[int, int]) -> Optional[int]:
    # bool is an int subclass but never a valid status or count.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    low, high = bounds
    return int(max(low, min(high, value)))


def _lookup(raw: Mapping, field: str) -> Any:
    if field in raw:
        return raw[field]
    for alias, name in _ALIASES.items():
        if name == field and alias in raw:
            return raw[alias]
    return None


def sanitize_context(raw: Any) -> ErrorContext:
    """Build a bounded :class:`ErrorContext` from arbitrary input.

    Args:
        raw: Mapping with camelCase or snake_case keys, an existing
            ErrorContext, or anything else (treated as empty).

    Returns:
        ErrorContext whose fields are all within their declared bounds.
    """
    if isinstance(raw, ErrorContext):
        return raw
    if not isinstance(raw, Mapping):
        return ErrorContext()

    fields: Dict[str, Any] = {}

    for name, bounds in _INT_RANGES.items():
        clamped = _clamp(_lookup(raw, name), bounds)
        if clamped is not None:
            fields[name] = clamped

    for name, limit in _STRING_LIMITS.items():
        value = _lookup(raw, name)
        if isinstance(value, str):
            fields[name] = value[:limit]

    return ErrorContext(**fields)
