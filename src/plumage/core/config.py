"""Configuration models for the Plumage learning engine.

Pydantic models loaded from YAML. Every section has defaults, so an empty
file (or no file at all) yields a working in-memory engine.

Example YAML:
    learning:
      confidence_threshold: 0.7
      min_samples_for_guidance: 5
    storage:
      backend: supabase
      supabase_url_env: SUPABASE_URL
      supabase_key_env: SUPABASE_SERVICE_ROLE_KEY
    persistence:
      background: true
    logging:
      level: INFO
      format: json
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from plumage.core.errors import ConfigurationError


class LearningConfig(BaseModel):
    """Thresholds and adaptation rates for the feedback processor and advisors."""

    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum annotation confidence for a plain observation to be learned from.",
    )
    min_samples_for_guidance: int = Field(
        default=5,
        ge=1,
        description="Observations a pattern needs before it contributes prompt guidance.",
    )
    min_corrections_for_guidance: int = Field(
        default=3,
        ge=1,
        description="Corrections a pattern needs before its position delta is added to prompts.",
    )
    rejection_warning_threshold: int = Field(
        default=3,
        ge=0,
        description="A rejection reason seen more than this many times becomes a prompt warning.",
    )
    max_prompt_history: int = Field(
        default=10,
        ge=1,
        description="Successful prompts retained per pattern (most recent last).",
    )
    max_box_samples: int = Field(
        default=20,
        ge=0,
        description="Recent bounding boxes retained per pattern for inspection.",
    )
    max_pronunciations: int = Field(default=5, ge=0)
    approval_boost_rate: float = Field(
        default=0.1,
        gt=0.0,
        le=1.0,
        description="Fraction of the remaining distance to 1.0 gained on approval.",
    )
    rejection_penalty_rate: float = Field(
        default=0.15,
        gt=0.0,
        le=1.0,
        description="Fraction of the current confidence lost on rejection.",
    )
    correction_weight: int = Field(
        default=2,
        ge=1,
        description="Observations a human correction counts as in running averages.",
    )
    approval_box_weight: int = Field(
        default=2,
        ge=1,
        description="Times an approved bounding box is folded into the running box.",
    )
    default_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    correction_default_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    effectiveness_saturation: int = Field(
        default=20,
        ge=2,
        description="Observation count at which prompt effectiveness reaches 1.0.",
    )
    top_features_limit: int = Field(default=10, ge=1)


class StorageConfig(BaseModel):
    """Where the pattern snapshot is persisted."""

    backend: Literal["memory", "supabase", "file"] = Field(
        default="memory",
        description="Storage backend for the learned-pattern snapshot.",
    )
    bucket: str = Field(default="ml-patterns", min_length=1)
    key: str = Field(default="learned-patterns.json", min_length=1)
    timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for a single upload or download.",
    )
    supabase_url: str | None = Field(default=None)
    supabase_url_env: str = Field(default="SUPABASE_URL")
    supabase_key_env: str = Field(default="SUPABASE_SERVICE_ROLE_KEY")
    file_root: Path = Field(default=Path(".plumage"))


class PersistenceConfig(BaseModel):
    """Session restore and write-through behavior."""

    skip_initial_load: bool = Field(
        default=False,
        description="Start with an empty store without downloading the snapshot.",
    )
    background: bool = Field(
        default=True,
        description="Run write-through saves as background tasks instead of awaiting them.",
    )


class LogConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "console"] = "console"
    file_path: Path | None = None
    max_file_size_mb: int = Field(default=20, gt=0, le=1000)
    backup_count: int = Field(default=3, ge=0, le=100)
    include_timestamps: bool = True
    include_context: bool = True


class EngineConfig(BaseModel):
    """Top-level configuration for a PatternLearner instance."""

    learning: LearningConfig = Field(default_factory=LearningConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> EngineConfig:
        """Load engine configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, not YAML, or invalid.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config {path}: {e}") from e
        return cls._validate(data)

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> EngineConfig:
        """Load engine configuration from a YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML: {e}") from e
        return cls._validate(data)

    @classmethod
    def _validate(cls, data: object) -> EngineConfig:
        if data is None:
            return cls()
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e


__all__ = [
    "EngineConfig",
    "LearningConfig",
    "LogConfig",
    "PersistenceConfig",
    "StorageConfig",
]
