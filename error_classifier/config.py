"""
File: config.py
Purpose: Frozen dataclass configuration for the error classifier.
Dependencies: PyYAML + pydantic (file loading), standard library otherwise.
Performance: O(1) attribute access.

All configuration is immutable after construction.
Use ClassifierConfig.from_env() for environment-based overrides, or
load_config() to read a YAML file first and then apply the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

_MIB = 1024 * 1024


@dataclass(frozen=True)
class BreakerConfig:
    """Circuit breaker guarding the remote classifier.

    Attributes:
        failure_threshold: Consecutive failures before OPEN.
        cooldown_seconds: Seconds since the last failure before HALF_OPEN.
    """
    failure_threshold: int = 5
    cooldown_seconds: float = 60.0


@dataclass(frozen=True)
class CacheConfig:
    """Result cache bounds.

    Attributes:
        capacity: Maximum number of cached classifications.
        ttl_seconds: Age after which an entry is treated as a miss.
    """
    capacity: int = 1000
    ttl_seconds: float = 300.0


@dataclass(frozen=True)
class BatchConfig:
    """Training-data batch logging settings.

    Attributes:
        batch_size: Queue length that triggers an immediate flush.
        flush_interval_seconds: Period of the background flush timer.
        max_files_in_dir: Directory item count at which flushes are dropped.
        max_file_size: Largest serialized record written, in bytes.
    """
    batch_size: int = 100
    flush_interval_seconds: float = 5.0
    max_files_in_dir: int = 10_000
    max_file_size: int = 10 * _MIB


@dataclass(frozen=True)
class StateConfig:
    """Aggregate state file settings.

    Attributes:
        state_file: Primary JSON state file; ``<state_file>.backup`` is
            the sibling holding the previous version.
        max_state_file_size: Largest state file read or written, in bytes.
    """
    state_file: str = "./state/error-classification-state.json"
    max_state_file_size: int = 5 * _MIB


@dataclass(frozen=True)
class RemoteConfig:
    """Optional remote (neural) classifier backend.

    Attributes:
        enabled: Whether to consult the backend at all.
        base_url: Backend root URL.
        health_path: GET endpoint returning 2xx when healthy.
        classify_path: POST endpoint returning a classification.
        health_timeout_seconds: Hard timeout for the health probe.
        classify_timeout_seconds: Hard timeout for a classify call.
    """
    enabled: bool = True
    base_url: str = "http://127.0.0.1:5555"
    health_path: str = "/health"
    classify_path: str = "/neural/classify-error"
    health_timeout_seconds: float = 2.0
    classify_timeout_seconds: float = 1.0


@dataclass(frozen=True)
class ClassifierConfig:
    """Master configuration for the error classification service.

    Composes all sub-configs with sensible defaults.
    """
    breaker: BreakerConfig = None  # type: ignore[assignment]
    cache: CacheConfig = None  # type: ignore[assignment]
    batch: BatchConfig = None  # type: ignore[assignment]
    state: StateConfig = None  # type: ignore[assignment]
    remote: RemoteConfig = None  # type: ignore[assignment]

    training_data_dir: str = "./training-data/error-classification/"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Populate None fields with frozen defaults and validate."""
        if self.breaker is None:
            object.__setattr__(self, "breaker", BreakerConfig())
        if self.cache is None:
            object.__setattr__(self, "cache", CacheConfig())
        if self.batch is None:
            object.__setattr__(self, "batch", BatchConfig())
        if self.state is None:
            object.__setattr__(self, "state", StateConfig())
        if self.remote is None:
            object.__setattr__(self, "remote", RemoteConfig())

        if self.breaker.failure_threshold <= 0:
            raise ValueError("breaker.failure_threshold must be > 0")
        if self.breaker.cooldown_seconds < 0:
            raise ValueError("breaker.cooldown_seconds must be >= 0")
        if self.cache.capacity <= 0:
            raise ValueError("cache.capacity must be > 0")
        if self.cache.ttl_seconds <= 0:
            raise ValueError("cache.ttl_seconds must be > 0")
        if self.batch.batch_size <= 0:
            raise ValueError("batch.batch_size must be > 0")
        if self.batch.flush_interval_seconds <= 0:
            raise ValueError("batch.flush_interval_seconds must be > 0")
        if self.batch.max_files_in_dir <= 0:
            raise ValueError("batch.max_files_in_dir must be > 0")
        if self.batch.max_file_size <= 0 or self.state.max_state_file_size <= 0:
            raise ValueError("file size limits must be > 0")
        if (
            self.remote.health_timeout_seconds <= 0
            or self.remote.classify_timeout_seconds <= 0
        ):
            raise ValueError("remote timeouts must be > 0")

    @classmethod
    def from_env(cls, base: Optional[ClassifierConfig] = None) -> ClassifierConfig:
        """Create config with environment variable overrides.

        Args:
            base: Config to override; defaults are used when omitted.

        Returns:
            ClassifierConfig with env-based overrides.
        """
        base = base or cls()
        env = os.environ

        remote = base.remote
        if "ERROR_CLASSIFIER_NEURAL_URL" in env:
            remote = replace(remote, base_url=env["ERROR_CLASSIFIER_NEURAL_URL"])
        if "ERROR_CLASSIFIER_USE_NEURAL" in env:
            remote = replace(
                remote,
                enabled=env["ERROR_CLASSIFIER_USE_NEURAL"].lower() == "true",
            )

        state = base.state
        if "ERROR_CLASSIFIER_STATE_FILE" in env:
            state = replace(state, state_file=env["ERROR_CLASSIFIER_STATE_FILE"])

        return replace(
            base,
            remote=remote,
            state=state,
            training_data_dir=env.get(
                "ERROR_CLASSIFIER_TRAINING_DIR", base.training_data_dir
            ),
            log_level=env.get("ERROR_CLASSIFIER_LOG_LEVEL", base.log_level),
        )


# ── YAML file loading ──────────────────────────────────────────────


class _FileSettings(BaseModel):
    """Shape of the optional YAML config file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    training_data_dir: Optional[str] = None
    log_level: Optional[str] = None
    breaker: Dict[str, Any] = Field(default_factory=dict)
    cache: Dict[str, Any] = Field(default_factory=dict)
    batch: Dict[str, Any] = Field(default_factory=dict)
    state: Dict[str, Any] = Field(default_factory=dict)
    remote: Dict[str, Any] = Field(default_factory=dict)


def load_config(config_path: Optional[str] = None) -> ClassifierConfig:
    """Load config from *config_path* (if it exists), then merge env vars.

    Args:
        config_path: Path to a YAML file. Missing files yield defaults.

    Returns:
        Validated :class:`ClassifierConfig`.

    Raises:
        yaml.YAMLError: If the file contains invalid YAML.
        pydantic.ValidationError: If the file has unknown top-level keys.
        TypeError: If a section names an unknown field.
        ValueError: If a value violates a config invariant.
    """
    raw: Dict[str, Any] = {}
    if config_path and Path(config_path).exists():
        with open(config_path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}

    settings = _FileSettings.model_validate(raw)
    defaults = ClassifierConfig()
    config = ClassifierConfig(
        breaker=BreakerConfig(**settings.breaker),
        cache=CacheConfig(**settings.cache),
        batch=BatchConfig(**settings.batch),
        state=StateConfig(**settings.state),
        remote=RemoteConfig(**settings.remote),
        training_data_dir=settings.training_data_dir or defaults.training_data_dir,
        log_level=settings.log_level or defaults.log_level,
    )
    return ClassifierConfig.from_env(config)
