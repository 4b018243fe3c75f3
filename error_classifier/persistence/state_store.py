"""
File: persistence/state_store.py
Purpose: Aggregate classification counters with backup-protected writes.
Dependencies: aiofiles, pydantic, schema models.
Performance: One read + one write + one read-back per applied batch.

Write protocol for apply_batch()::

    read primary (defaults if missing / oversized / corrupt)
      -> merge batch
      -> copy primary to <primary>.backup (best-effort)
      -> serialize (abandon if > max_state_file_size)
      -> write <primary>.tmp, atomically replace primary
      -> read back + re-parse
      -> on failure: restore primary from .backup

Assumes a single writer per path: applies within one process are
serialized by an asyncio.Lock, and nothing coordinates across processes.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from error_classifier.schema import LogRecord, PersistedState
from error_classifier.telemetry import TelemetryCollector, get_logger

logger = get_logger("error_classifier.persistence.state_store")


def pattern_key(record: LogRecord) -> str:
    """``"<status>_<label>"``, with ``unknown`` for a missing status."""
    status = record.context.http_status
    return f"{status if status is not None else 'unknown'}_{record.label}"


def merge_batch(state: PersistedState, records: Sequence[LogRecord]) -> PersistedState:
    """Return *state* with *records* counted in. Does not mutate *state*."""
    counts = dict(state.pattern_counts)
    for record in records:
        key = pattern_key(record)
        counts[key] = counts.get(key, 0) + 1
    return PersistedState(
        pattern_counts=counts,
        total_classifications=state.total_classifications + len(records),
        last_updated=datetime.now(timezone.utc),
    )


class StateStore:
    """Durable aggregate counters in a single JSON file.

    Args:
        state_file: Primary state file path.
        max_state_file_size: Largest file read or written, in bytes.
        telemetry: Optional telemetry collector.
    """

    def __init__(
        self,
        state_file: str | Path,
        max_state_file_size: int = 5 * 1024 * 1024,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self._path = Path(state_file)
        self._backup_path = self._path.with_name(self._path.name + ".backup")
        self._tmp_path = self._path.with_name(self._path.name + ".tmp")
        self._max_size = max_state_file_size
        self._telemetry = telemetry
        self._lock = asyncio.Lock()
        self._snapshot: Optional[PersistedState] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backup_path(self) -> Path:
        return self._backup_path

    @property
    def snapshot(self) -> Optional[PersistedState]:
        """Last state merged by this process, if any."""
        return self._snapshot

    async def load(self) -> PersistedState:
        """Read the durable state.

        Returns:
            The parsed state, or zeroed defaults when the file is missing,
            larger than the size limit, or corrupt. Never raises.
        """
        try:
            stat = await aiofiles.os.stat(self._path)
            if stat.st_size > self._max_size:
                logger.warning(
                    "State file too large, resetting",
                    extra={"path": str(self._path)},
                )
                return PersistedState()
            async with aiofiles.open(self._path, "rb") as fh:
                raw = await fh.read()
            return PersistedState.model_validate_json(raw)
        except FileNotFoundError:
            return PersistedState()
        except (ValidationError, ValueError):
            logger.warning(
                "State file corrupt, resetting to defaults",
                extra={"path": str(self._path)},
            )
            return PersistedState()
        except OSError as exc:
            logger.warning(
                f"State file unreadable, using defaults: {exc}",
                extra={"path": str(self._path)},
            )
            return PersistedState()

    async def apply_batch(
        self, records: Sequence[LogRecord]
    ) -> Optional[PersistedState]:
        """Count *records* into the durable state.

        Args:
            records: Records written by one flushed batch.

        Returns:
            The new durable state, or ``None`` when nothing was written
            (empty batch, oversized state, or a failed write). Never raises.
        """
        if not records:
            return None
        async with self._lock:
            state = merge_batch(await self.load(), records)
            if not await self._persist(state):
                return None
            self._snapshot = state
            return state

    # ---- internal ---------------------------------------------------------

    async def _persist(self, state: PersistedState) -> bool:
        await self._copy(self._path, self._backup_path, missing_ok=True)

        payload = state.model_dump_json(indent=2, by_alias=True)
        if len(payload.encode("utf-8")) > self._max_size:
            logger.warning(
                "State file would exceed size limit, skipping update",
                extra={"path": str(self._path)},
            )
            return False

        try:
            await aiofiles.os.makedirs(self._path.parent, exist_ok=True)
            async with aiofiles.open(self._tmp_path, "w", encoding="utf-8") as fh:
                await fh.write(payload)
            await aiofiles.os.replace(self._tmp_path, self._path)

            async with aiofiles.open(self._path, "rb") as fh:
                PersistedState.model_validate_json(await fh.read())
        except (OSError, ValidationError, ValueError):
            logger.error(
                "Failed to update state, restoring backup",
                exc_info=True,
                extra={"path": str(self._path)},
            )
            if self._telemetry:
                self._telemetry.state_updates_failed.inc()
            await self._copy(self._backup_path, self._path, missing_ok=False)
            return False
        return True

    async def _copy(self, src: Path, dst: Path, *, missing_ok: bool) -> bool:
        try:
            async with aiofiles.open(src, "rb") as fh:
                data = await fh.read()
            async with aiofiles.open(dst, "wb") as fh:
                await fh.write(data)
            return True
        except FileNotFoundError:
            if not missing_ok:
                logger.error(
                    "No backup to restore; state resets on next read",
                    extra={"path": str(src)},
                )
            return False
        except OSError as exc:
            logger.error(
                f"Failed to copy {src} -> {dst}: {exc}",
                extra={"path": str(dst)},
            )
            return False
