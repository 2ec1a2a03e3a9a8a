"""Tests for plumage.core.config."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from plumage.core.config import EngineConfig, LearningConfig, StorageConfig
from plumage.core.errors import ConfigurationError


class TestDefaults:
    """Defaults match the documented engine behavior."""

    def test_learning_defaults(self):
        config = LearningConfig()
        assert config.confidence_threshold == 0.7
        assert config.min_samples_for_guidance == 5
        assert config.min_corrections_for_guidance == 3
        assert config.rejection_warning_threshold == 3
        assert config.approval_boost_rate == 0.1
        assert config.rejection_penalty_rate == 0.15
        assert config.correction_weight == 2
        assert config.effectiveness_saturation == 20

    def test_storage_defaults(self):
        config = StorageConfig()
        assert config.backend == "memory"
        assert config.bucket == "ml-patterns"
        assert config.key == "learned-patterns.json"
        assert config.timeout_seconds == 10.0

    def test_engine_defaults(self):
        config = EngineConfig()
        assert config.persistence.background is True
        assert config.persistence.skip_initial_load is False
        assert config.logging.format == "console"


class TestFromYaml:
    """Tests for YAML loading."""

    def test_from_yaml_string(self):
        config = EngineConfig.from_yaml_string(textwrap.dedent(
            """
            learning:
              confidence_threshold: 0.6
              min_samples_for_guidance: 3
            storage:
              backend: file
              file_root: /tmp/plumage
            logging:
              level: DEBUG
              format: json
            """
        ))
        assert config.learning.confidence_threshold == 0.6
        assert config.learning.min_samples_for_guidance == 3
        assert config.learning.rejection_penalty_rate == 0.15
        assert config.storage.backend == "file"
        assert config.storage.file_root == Path("/tmp/plumage")
        assert config.logging.level == "DEBUG"

    def test_empty_yaml_gives_defaults(self):
        assert EngineConfig.from_yaml_string("") == EngineConfig()

    def test_from_yaml_file(self, tmp_path: Path):
        path = tmp_path / "plumage.yaml"
        path.write_text("persistence:\n  background: false\n")
        assert EngineConfig.from_yaml(path).persistence.background is False

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="Cannot read config"):
            EngineConfig.from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_yaml_string("learning: [unclosed")

    @pytest.mark.parametrize(
        "yaml_str",
        [
            "learning:\n  confidence_threshold: 1.5\n",
            "learning:\n  approval_boost_rate: 0\n",
            "storage:\n  backend: s3\n",
            "storage:\n  timeout_seconds: -1\n",
            "logging:\n  level: TRACE\n",
            "- not\n- a mapping\n",
        ],
    )
    def test_invalid_values_rejected(self, yaml_str: str):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_yaml_string(yaml_str)
