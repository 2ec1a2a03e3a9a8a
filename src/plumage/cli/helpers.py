"""Shared utilities for Plumage CLI commands.

- Config loading with user-facing error reporting
- Logging setup from the loaded config
- Building a learner and restoring its persisted session
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from rich.markup import escape

from plumage.core.config import EngineConfig
from plumage.core.errors import ConfigurationError
from plumage.core.logging import configure_logging, get_logger
from plumage.learning import PatternLearner
from plumage.storage import build_storage

from .output import console

_logger = get_logger("cli")


class ErrorMessages:
    """Constants for CLI error messages."""

    CONFIG_LOAD_ERROR = "Error loading config"
    STORAGE_ERROR = "Error opening pattern storage"


def load_config(config_path: Path | None) -> EngineConfig:
    """Load the engine config, or defaults when no path is given.

    Exits with status 1 on an unreadable or invalid file.
    """
    if config_path is None:
        return EngineConfig()
    try:
        return EngineConfig.from_yaml(config_path)
    except ConfigurationError as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


def configure_cli_logging(config: EngineConfig, json_output: bool) -> None:
    """Configure logging from the config.

    In JSON mode informational logs are suppressed so stdout stays parseable.
    """
    log = config.logging
    level = "WARNING" if json_output and log.level in ("DEBUG", "INFO") else log.level
    configure_logging(
        level=level,
        format=log.format,
        file_path=log.file_path,
        max_file_size_mb=log.max_file_size_mb,
        backup_count=log.backup_count,
        include_timestamps=log.include_timestamps,
        include_context=log.include_context,
    )


async def _restore(learner: PatternLearner) -> None:
    try:
        await learner.ensure_initialized()
    finally:
        await learner.storage.close()


def open_learner(config_path: Path | None, json_output: bool = False) -> PatternLearner:
    """Build a learner from config and restore its persisted patterns.

    The storage backend is closed once the session is restored; the
    returned learner is meant for read-only queries.
    """
    config = load_config(config_path)
    configure_cli_logging(config, json_output)
    try:
        storage = build_storage(config.storage)
    except ConfigurationError as e:
        console.print(f"[red]{ErrorMessages.STORAGE_ERROR}:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    learner = PatternLearner(storage=storage, config=config, skip_initial_load=False)
    asyncio.run(_restore(learner))
    _logger.debug("cli_learner_ready", patterns=learner.get_analytics().total_patterns)
    return learner


def emit_json(data: Any) -> None:
    """Write JSON to stdout without Rich markup or wrapping."""
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))
