"""In-memory storage backend.

Deterministic, no I/O. Used by tests and by ephemeral engines that do not
need their patterns to outlive the process.
"""

from plumage.storage.base import StorageBackend


class InMemoryStorage(StorageBackend):
    """Keeps uploaded objects in a dict keyed by ``(bucket, key)``."""

    def __init__(self, objects: dict[tuple[str, str], bytes] | None = None) -> None:
        self.objects: dict[tuple[str, str], bytes] = dict(objects or {})
        self.upload_count = 0

    async def upload(self, bucket: str, key: str, data: bytes) -> None:
        self.objects[(bucket, key)] = bytes(data)
        self.upload_count += 1

    async def download(self, bucket: str, key: str) -> bytes | None:
        return self.objects.get((bucket, key))
