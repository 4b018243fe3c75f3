"""Tests for error_classifier.config."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from error_classifier.config import (
    BatchConfig,
    BreakerConfig,
    CacheConfig,
    ClassifierConfig,
    RemoteConfig,
    load_config,
)

_ENV_VARS = (
    "ERROR_CLASSIFIER_NEURAL_URL",
    "ERROR_CLASSIFIER_USE_NEURAL",
    "ERROR_CLASSIFIER_STATE_FILE",
    "ERROR_CLASSIFIER_TRAINING_DIR",
    "ERROR_CLASSIFIER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_values(self) -> None:
        cfg = ClassifierConfig()
        assert cfg.breaker.failure_threshold == 5
        assert cfg.breaker.cooldown_seconds == 60.0
        assert cfg.cache.capacity == 1000
        assert cfg.cache.ttl_seconds == 300.0
        assert cfg.batch.batch_size == 100
        assert cfg.batch.flush_interval_seconds == 5.0
        assert cfg.batch.max_files_in_dir == 10_000
        assert cfg.batch.max_file_size == 10 * 1024 * 1024
        assert cfg.state.max_state_file_size == 5 * 1024 * 1024
        assert cfg.remote.base_url == "http://127.0.0.1:5555"
        assert cfg.remote.health_timeout_seconds == 2.0
        assert cfg.remote.classify_timeout_seconds == 1.0

    def test_frozen(self) -> None:
        cfg = ClassifierConfig()
        with pytest.raises(AttributeError):
            cfg.log_level = "DEBUG"  # type: ignore[misc]


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"breaker": BreakerConfig(failure_threshold=0)},
            {"breaker": BreakerConfig(cooldown_seconds=-1)},
            {"cache": CacheConfig(capacity=0)},
            {"cache": CacheConfig(ttl_seconds=0)},
            {"batch": BatchConfig(batch_size=0)},
            {"batch": BatchConfig(flush_interval_seconds=0)},
            {"batch": BatchConfig(max_files_in_dir=0)},
            {"batch": BatchConfig(max_file_size=0)},
            {"remote": RemoteConfig(classify_timeout_seconds=0)},
        ],
    )
    def test_invalid_values_rejected(self, kwargs) -> None:
        with pytest.raises(ValueError):
            ClassifierConfig(**kwargs)


class TestFromEnv:
    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ERROR_CLASSIFIER_NEURAL_URL", "http://neural:9000")
        monkeypatch.setenv("ERROR_CLASSIFIER_USE_NEURAL", "false")
        monkeypatch.setenv("ERROR_CLASSIFIER_STATE_FILE", "/tmp/state.json")
        monkeypatch.setenv("ERROR_CLASSIFIER_TRAINING_DIR", "/tmp/training")
        monkeypatch.setenv("ERROR_CLASSIFIER_LOG_LEVEL", "DEBUG")

        cfg = ClassifierConfig.from_env()

        assert cfg.remote.base_url == "http://neural:9000"
        assert cfg.remote.enabled is False
        assert cfg.state.state_file == "/tmp/state.json"
        assert cfg.training_data_dir == "/tmp/training"
        assert cfg.log_level == "DEBUG"

    def test_no_env_keeps_base(self) -> None:
        base = ClassifierConfig(cache=CacheConfig(capacity=7))
        assert ClassifierConfig.from_env(base) == base


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_config(str(tmp_path / "absent.yaml")) == ClassifierConfig()

    def test_yaml_sections(self, tmp_path: Path) -> None:
        path = tmp_path / "classifier.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "breaker": {"failure_threshold": 3},
                    "cache": {"ttl_seconds": 30},
                    "remote": {"enabled": False},
                    "training_data_dir": "/data/training",
                }
            )
        )
        cfg = load_config(str(path))
        assert cfg.breaker.failure_threshold == 3
        assert cfg.cache.ttl_seconds == 30
        assert cfg.remote.enabled is False
        assert cfg.training_data_dir == "/data/training"
        assert cfg.batch == BatchConfig()

    def test_env_beats_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "classifier.yaml"
        path.write_text("log_level: WARNING\n")
        monkeypatch.setenv("ERROR_CLASSIFIER_LOG_LEVEL", "ERROR")
        assert load_config(str(path)).log_level == "ERROR"

    def test_unknown_section_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "classifier.yaml"
        path.write_text("metrics:\n  enabled: true\n")
        with pytest.raises(ValidationError):
            load_config(str(path))

    def test_unknown_field_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "classifier.yaml"
        path.write_text("cache:\n  size: 5\n")
        with pytest.raises(TypeError):
            load_config(str(path))

    def test_invalid_value_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "classifier.yaml"
        path.write_text("batch:\n  batch_size: 0\n")
        with pytest.raises(ValueError):
            load_config(str(path))
