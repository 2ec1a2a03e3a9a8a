"""Object storage backends for learned-pattern snapshots.

All backends implement :class:`StorageBackend`; the learning engine does not
know which one it is talking to.

- InMemoryStorage: dict-backed, for tests and ephemeral engines
- SupabaseStorage: Supabase Storage bucket over HTTP (production)
- LocalFileStorage: files under a local directory
"""

from plumage.core.config import StorageConfig
from plumage.storage.base import StorageBackend
from plumage.storage.file import LocalFileStorage
from plumage.storage.memory import InMemoryStorage
from plumage.storage.supabase import SupabaseStorage


def build_storage(config: StorageConfig) -> StorageBackend:
    """Construct the backend selected by ``config.backend``.

    Raises:
        ConfigurationError: If the Supabase backend is selected but not configured.
    """
    if config.backend == "supabase":
        return SupabaseStorage.from_config(config)
    if config.backend == "file":
        return LocalFileStorage(config.file_root)
    return InMemoryStorage()


__all__ = [
    "InMemoryStorage",
    "LocalFileStorage",
    "StorageBackend",
    "SupabaseStorage",
    "build_storage",
]
