"""Abstract base for snapshot storage backends."""

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """Abstract object storage used to persist learned-pattern snapshots.

    Implementations must give ``upload`` overwrite semantics and must report
    an absent object by returning None from ``download``. Any I/O failure is
    raised as :class:`plumage.core.errors.StorageError`, never as None.
    """

    @abstractmethod
    async def upload(self, bucket: str, key: str, data: bytes) -> None:
        """Store ``data`` under ``bucket``/``key``, replacing any existing object.

        Raises:
            StorageError: If the object could not be written.
        """
        ...

    @abstractmethod
    async def download(self, bucket: str, key: str) -> bytes | None:
        """Fetch the object stored under ``bucket``/``key``.

        Returns:
            The object bytes, or None if no such object exists.

        Raises:
            StorageError: If the backend could not be read.
        """
        ...

    async def close(self) -> None:
        """Release any connections held by the backend."""
        return None
