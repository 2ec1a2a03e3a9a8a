"""Exception hierarchy for Plumage.

All Plumage exceptions inherit from PlumageError, enabling callers to catch
broad (PlumageError) or narrow (e.g., StorageError). The learning engine
absorbs storage and corrupt-state errors itself; they surface only from the
storage backends and the snapshot codec.
"""

from __future__ import annotations


class PlumageError(Exception):
    """Base exception for all Plumage errors."""


class StorageError(PlumageError):
    """Raised when a storage backend fails to upload or download an object.

    Distinct from "not found", which backends report by returning None.
    """

    def __init__(self, message: str, *, bucket: str, key: str) -> None:
        super().__init__(f"{message} ({bucket}/{key})")
        self.bucket = bucket
        self.key = key


class CorruptStateError(PlumageError):
    """Raised when a persisted pattern snapshot is present but unreadable."""


class AnnotationValidationError(PlumageError, ValueError):
    """Raised when an inbound annotation fails validation.

    Batch operations skip the offending item instead of propagating this.
    """


class ConfigurationError(PlumageError):
    """Raised when engine configuration cannot be loaded or is incomplete."""


__all__ = [
    "AnnotationValidationError",
    "ConfigurationError",
    "CorruptStateError",
    "PlumageError",
    "StorageError",
]
