"""
File: service.py
Purpose: Error Classification Service, the orchestration layer.
Dependencies: All submodules.
Performance: <1ms cache hit / decision tree, <=1s with the remote classifier.

Pipeline for classify():
  Phase 1: Sanitize the untrusted context.
  Phase 2: Serve from the result cache if fresh.
  Phase 3: Try the remote classifier if the circuit breaker allows it.
  Phase 4: Otherwise fall back to the decision tree.
  Phase 5: Cache the result and queue it for training-data logging.

Entry point::

    async with ErrorClassificationService() as service:
        advice = await service.classify({"httpStatus": 429})
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from error_classifier.config import ClassifierConfig
from error_classifier.core.decision_tree import DecisionTreeClassifier
from error_classifier.core.sanitizer import sanitize_context
from error_classifier.persistence.batch_logger import BatchLogger
from error_classifier.persistence.state_store import StateStore
from error_classifier.remote.circuit_breaker import CircuitBreaker
from error_classifier.remote.neural_client import NeuralClassifierClient
from error_classifier.result_cache import ResultCache
from error_classifier.schema import (
    Classification,
    ClassificationRecord,
    ErrorContext,
    HealthReport,
    Outcome,
    OutcomeRecord,
    RemoteClassifierError,
    ServiceMode,
    default_classification,
)
from error_classifier.telemetry import TelemetryCollector, get_logger, set_log_level

logger = get_logger("error_classifier.service")


class ErrorClassificationService:
    """Never-failing error classifier with an optional remote model.

    Construct once per process, then ``await start()`` and eventually
    ``await shutdown()`` (or use it as an async context manager).

    Args:
        config: Service configuration.
        remote: Remote classifier adapter. Built from ``config.remote``
            when omitted and the remote is enabled; pass one to inject a
            test double.
        clock: Monotonic time source shared by the breaker and cache.

    Example::

        service = ErrorClassificationService()
        await service.start()
        advice = await service.classify({"httpStatus": 503})
        service.log_outcome(advice, ctx, {"success": True, "retriesUsed": 1,
                                          "totalTimeMs": 420})
        await service.shutdown()
    """

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        *,
        remote: Optional[NeuralClassifierClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or ClassifierConfig()
        set_log_level(self._config.log_level)
        self._telemetry = TelemetryCollector()

        self._tree = DecisionTreeClassifier()
        self._breaker = CircuitBreaker(
            failure_threshold=self._config.breaker.failure_threshold,
            cooldown_seconds=self._config.breaker.cooldown_seconds,
            clock=clock,
            telemetry=self._telemetry,
        )
        self._cache = ResultCache(
            capacity=self._config.cache.capacity,
            ttl_seconds=self._config.cache.ttl_seconds,
            clock=clock,
        )
        self._state_store = StateStore(
            self._config.state.state_file,
            max_state_file_size=self._config.state.max_state_file_size,
            telemetry=self._telemetry,
        )
        self._batch_logger = BatchLogger(
            self._config.training_data_dir,
            config=self._config.batch,
            state_store=self._state_store,
            telemetry=self._telemetry,
        )

        if remote is None and self._config.remote.enabled:
            remote = NeuralClassifierClient(
                self._config.remote, telemetry=self._telemetry
            )
        self._remote = remote
        self._remote_available = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Probe the remote classifier and start the flush timer."""
        await self._batch_logger.start()
        if self._remote is not None:
            await self.refresh_remote_health()
        logger.info(
            f"Error classification service started in "
            f"{self.mode.value} mode",
            extra={"layer": "lifecycle"},
        )

    async def shutdown(self) -> None:
        """Flush pending records, clear the cache, close the remote client."""
        await self._batch_logger.shutdown()
        self._cache.clear()
        if self._remote is not None:
            await self._remote.aclose()
        logger.info("Error classification service stopped", extra={"layer": "lifecycle"})

    async def __aenter__(self) -> ErrorClassificationService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    async def refresh_remote_health(self) -> bool:
        """Run the remote health probe through the circuit breaker.

        Returns:
            Whether the remote classifier is considered available.
        """
        if self._remote is None or not self._breaker.allow_request():
            return self._remote_available
        try:
            healthy = await self._remote.health_check()
        except asyncio.CancelledError:
            self._breaker.release_probe()
            raise
        if healthy:
            self._breaker.record_success()
        else:
            self._breaker.record_failure()
        self._remote_available = healthy
        return healthy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def classify(self, context: Any) -> Classification:
        """Classify an error and advise on retries.

        Args:
            context: Untrusted context mapping (camelCase or snake_case
                keys). Anything else is treated as an empty context.

        Returns:
            A populated Classification. Never raises.
        """
        start = time.perf_counter()
        self._telemetry.classifications_total.inc()
        try:
            return await self._classify(context)
        except Exception:
            self._telemetry.classifications_failed.inc()
            logger.error(
                "Classification failed, returning default",
                exc_info=True,
                extra={"layer": "pipeline"},
            )
            return default_classification()
        finally:
            self._telemetry.classify_latency.observe(
                (time.perf_counter() - start) * 1000
            )

    def log_outcome(
        self,
        classification: Union[Classification, str],
        context: Any,
        outcome: Union[Outcome, Mapping[str, Any]],
    ) -> None:
        """Queue what happened after acting on a classification.

        Fire-and-forget: never raises and never waits for persistence.

        Args:
            classification: The Classification acted on, or its label.
            context: The (untrusted) context that was classified.
            outcome: An Outcome, or a mapping with ``success``,
                ``retriesUsed``, ``totalTimeMs`` and optional
                ``finalStatus``.
        """
        try:
            if isinstance(classification, Classification):
                label = classification.classification
                learning_enabled = classification.learning_enabled
            else:
                label = str(classification)
                learning_enabled = True
            record = OutcomeRecord(
                classification=label,
                context=sanitize_context(context),
                outcome=(
                    outcome if isinstance(outcome, Outcome)
                    else Outcome.model_validate(outcome)
                ),
                learning_enabled=learning_enabled,
            )
            self._batch_logger.enqueue(record)
        except (ValidationError, TypeError, ValueError):
            logger.warning(
                "Discarding malformed outcome report",
                exc_info=True,
                extra={"layer": "outcome"},
            )
        except Exception:
            logger.error(
                "Failed to queue outcome report",
                exc_info=True,
                extra={"layer": "outcome"},
            )

    async def health(self) -> HealthReport:
        """Return a snapshot of the service's resilience state."""
        file_count = await self._batch_logger.file_count()
        count = file_count if file_count is not None else 0
        return HealthReport(
            mode=self.mode,
            remote_available=self._remote_available,
            breaker_state=self._breaker.state,
            breaker_failures=self._breaker.consecutive_failures,
            cache_size=self._cache.size,
            queue_size=self._batch_logger.queue_size,
            file_count=count,
            file_count_healthy=(
                file_count is not None
                and file_count < self._config.batch.max_files_in_dir
            ),
            training_data_path=str(self._batch_logger.training_data_dir),
        )

    def metrics(self) -> Dict[str, Any]:
        """Return a snapshot of the in-process counters and latencies."""
        return self._telemetry.snapshot()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ServiceMode:
        if self._remote is not None and self._remote_available:
            return ServiceMode.NEURAL_ENHANCED
        return ServiceMode.DECISION_TREE_ONLY

    @property
    def config(self) -> ClassifierConfig:
        return self._config

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def batch_logger(self) -> BatchLogger:
        return self._batch_logger

    @property
    def state_store(self) -> StateStore:
        return self._state_store

    @property
    def telemetry(self) -> TelemetryCollector:
        return self._telemetry

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _classify(self, raw: Any) -> Classification:
        context = sanitize_context(raw)
        key = ResultCache.compute_key(context)

        cached = self._cache.get(key)
        if cached is not None:
            self._telemetry.cache_hits.inc()
            return cached
        self._telemetry.cache_misses.inc()

        result = await self._try_remote(context)
        if result is None:
            self._telemetry.fallback_triggers.inc()
            result = self._tree.classify(context)

        self._cache.put(key, result)
        self._batch_logger.enqueue(
            ClassificationRecord(
                context=context,
                classification=result,
                model_source=result.model_source,
            )
        )
        return result

    async def _try_remote(self, context: ErrorContext) -> Optional[Classification]:
        if self._remote is None or not self._breaker.allow_request():
            return None
        try:
            result = await self._remote.classify(context)
        except asyncio.CancelledError:
            # Caller gave up; the call has no outcome to record.
            self._breaker.release_probe()
            raise
        except RemoteClassifierError as exc:
            self._telemetry.remote_calls_failed.inc()
            self._breaker.record_failure()
            self._remote_available = False
            logger.warning(
                f"Remote classifier failed, using decision tree: {exc}",
                extra={"breaker_state": self._breaker.snapshot.state.value},
            )
            return None
        except Exception:
            self._telemetry.remote_calls_failed.inc()
            self._breaker.record_failure()
            self._remote_available = False
            logger.error(
                "Unexpected remote classifier error, using decision tree",
                exc_info=True,
                extra={"breaker_state": self._breaker.snapshot.state.value},
            )
            return None

        if result is None:
            self._telemetry.remote_unavailable.inc()
            self._breaker.release_probe()
            return None

        self._breaker.record_success()
        self._remote_available = True
        return result
