"""
File: persistence/batch_logger.py
Purpose: Non-blocking batched persistence of classification/outcome events.
Dependencies: aiofiles, schema models, StateStore.
Performance: enqueue() is O(1) and never awaits.

Flush triggers:
  * queue length reaches ``batch_size`` -> one flush task is scheduled,
    draining full batches until it finishes;
  * a periodic timer task started by ``start()``.

Both triggers drain the same deque in one synchronous step, so each record
is flushed exactly once. When the training directory is at capacity the
dequeued batch is dropped with a warning (availability over durability).
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, List, Optional, Set

import aiofiles
import aiofiles.os

from error_classifier.config import BatchConfig
from error_classifier.persistence.state_store import StateStore
from error_classifier.schema import LogRecord
from error_classifier.telemetry import TelemetryCollector, get_logger

logger = get_logger("error_classifier.persistence.batch_logger")

RECORD_VERSION = "1.0.0"


@dataclass(frozen=True)
class FlushResult:
    """What one flush did.

    Attributes:
        dequeued: Records taken off the queue.
        written: Records persisted as files.
        skipped_oversize: Records over ``max_file_size``.
        abandoned: Whether the whole batch was dropped (directory full
            or unreadable).
    """
    dequeued: int = 0
    written: int = 0
    skipped_oversize: int = 0
    abandoned: bool = False


def record_filename(record: LogRecord) -> str:
    """``<kind>-<epoch ms>-<9 hex chars>.json``."""
    return f"{record.kind}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}.json"


def serialize_record(record: LogRecord) -> str:
    """Render *record* as a training-data JSON document."""
    payload = record.model_dump(mode="json", by_alias=True, exclude_none=True)
    payload["version"] = RECORD_VERSION
    payload["deploymentId"] = record.context.deployment_id or "unknown"
    return json.dumps(payload, indent=2)


class BatchLogger:
    """Buffers log records and persists them in batches.

    Args:
        training_data_dir: Directory receiving one file per record.
        config: Batch sizing and resource limits.
        state_store: Aggregate store updated after each written batch.
        telemetry: Optional telemetry collector.
    """

    def __init__(
        self,
        training_data_dir: str | Path,
        config: Optional[BatchConfig] = None,
        state_store: Optional[StateStore] = None,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self._dir = Path(training_data_dir)
        self._config = config or BatchConfig()
        self._state_store = state_store
        self._telemetry = telemetry
        self._queue: Deque[LogRecord] = deque()
        self._tasks: Set[asyncio.Task] = set()
        self._timer: Optional[asyncio.Task] = None
        self._flush_pending = False

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def training_data_dir(self) -> Path:
        return self._dir

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ---- lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """Create the training directory and start the periodic flush timer."""
        try:
            await aiofiles.os.makedirs(self._dir, exist_ok=True)
        except OSError as exc:
            logger.error(f"Failed to create training data directory: {exc}")
        if not self.running:
            self._timer = asyncio.create_task(self._run_timer())

    async def shutdown(self) -> None:
        """Stop the timer, finish in-flight work and drain the queue."""
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        while self._queue:
            result = await self.flush()
            if result.dequeued == 0:
                break
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for scheduled flushes and state updates to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- intake -----------------------------------------------------------

    def enqueue(self, record: LogRecord) -> bool:
        """Queue *record* for persistence.

        Records whose classification disables learning are dropped.

        Returns:
            ``True`` if the record was queued.
        """
        if not record.learning_enabled:
            if self._telemetry:
                self._telemetry.records_dropped.inc()
            return False

        self._queue.append(record)
        if self._telemetry:
            self._telemetry.records_enqueued.inc()

        if len(self._queue) >= self._config.batch_size and not self._flush_pending:
            self._flush_pending = self._spawn(self._flush_full_batches())
        return True

    # ---- flushing ---------------------------------------------------------

    async def flush(self) -> FlushResult:
        """Persist up to ``batch_size`` records from the head of the queue."""
        batch = self._dequeue_batch()
        if not batch:
            return FlushResult()

        start = time.perf_counter()
        file_count = await self.file_count()
        if file_count is None or file_count >= self._config.max_files_in_dir:
            logger.warning(
                "Training data directory at capacity, skipping logging",
                extra={"count": len(batch), "path": str(self._dir)},
            )
            if self._telemetry:
                self._telemetry.batches_abandoned.inc()
                self._telemetry.records_dropped.inc(len(batch))
            return FlushResult(dequeued=len(batch), abandoned=True)

        written: List[LogRecord] = []
        skipped = 0
        for record in batch:
            data = serialize_record(record)
            if len(data.encode("utf-8")) > self._config.max_file_size:
                logger.warning(
                    "Training data file too large, skipping",
                    extra={"layer": "batch_logger"},
                )
                skipped += 1
                continue
            if await self._write(record, data):
                written.append(record)

        if self._telemetry:
            self._telemetry.batches_flushed.inc()
            self._telemetry.records_written.inc(len(written))
            self._telemetry.records_skipped_oversize.inc(skipped)
            self._telemetry.flush_latency.observe(
                (time.perf_counter() - start) * 1000
            )

        if written and self._state_store is not None:
            self._spawn(self._update_state(written))

        return FlushResult(
            dequeued=len(batch),
            written=len(written),
            skipped_oversize=skipped,
        )

    async def file_count(self) -> Optional[int]:
        """Number of items in the training directory.

        Returns:
            The count, 0 if the directory does not exist yet, or ``None``
            if it cannot be listed.
        """
        try:
            return len(await aiofiles.os.listdir(self._dir))
        except FileNotFoundError:
            return 0
        except OSError as exc:
            logger.error(f"Cannot list training data directory: {exc}")
            return None

    # ---- internal ---------------------------------------------------------

    def _dequeue_batch(self) -> List[LogRecord]:
        take = min(self._config.batch_size, len(self._queue))
        return [self._queue.popleft() for _ in range(take)]

    async def _write(self, record: LogRecord, data: str) -> bool:
        path = self._dir / record_filename(record)
        try:
            await aiofiles.os.makedirs(self._dir, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as fh:
                await fh.write(data)
            return True
        except OSError as exc:
            logger.error(
                f"Failed to write training record: {exc}",
                extra={"path": str(path)},
            )
            return False

    async def _flush_full_batches(self) -> None:
        try:
            while len(self._queue) >= self._config.batch_size:
                await self.flush()
        finally:
            self._flush_pending = False

    async def _update_state(self, records: List[LogRecord]) -> None:
        try:
            await self._state_store.apply_batch(records)
        except Exception:
            if self._telemetry:
                self._telemetry.state_updates_failed.inc()
            logger.error("Failed to update state", exc_info=True)

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self._config.flush_interval_seconds)
            try:
                await self.flush()
            except Exception:
                logger.error("Failed to flush log queue", exc_info=True)

    def _spawn(self, coro) -> bool:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            # No running loop: the timer or shutdown() picks the records up.
            coro.close()
            return False
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return True

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Background flush failed", exc_info=task.exception()
            )
