"""Pytest fixtures for Plumage tests."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
import structlog

from plumage.core.config import EngineConfig, PersistenceConfig
from plumage.learning import PatternLearner
from plumage.storage import InMemoryStorage


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset structlog and root handlers around each test."""
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    structlog.reset_defaults()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


@pytest.fixture
def storage() -> InMemoryStorage:
    """Empty in-memory storage backend."""
    return InMemoryStorage()


@pytest.fixture
def sync_config() -> EngineConfig:
    """Config whose write-through saves are awaited inline."""
    return EngineConfig(persistence=PersistenceConfig(background=False))


@pytest.fixture
def learner(storage: InMemoryStorage, sync_config: EngineConfig) -> PatternLearner:
    """Learner over in-memory storage with inline saves."""
    return PatternLearner(storage=storage, config=sync_config)
