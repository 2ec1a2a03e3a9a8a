"""Local filesystem storage backend.

Maps ``bucket``/``key`` to ``{root}/{bucket}/{key}``; each ``/`` in the key becomes
a subdirectory, so distinct keys never share a file. Segments that could
escape the root (``..``, empty, backslashes) are refused with StorageError.
Writes are atomic, using a temp file + rename like the JSON state files.
Handy for single-host deployments and local development.
"""

import asyncio
import os
from pathlib import Path

from plumage.core.errors import StorageError
from plumage.storage.base import StorageBackend

_UNSAFE_SEGMENTS = frozenset({"", ".", ".."})


def _path_segments(value: str, *, allow_nested: bool) -> list[str]:
    """Split an object name into path segments, refusing anything that escapes the root."""
    segments = value.split("/") if allow_nested else [value]
    for segment in segments:
        if segment in _UNSAFE_SEGMENTS or "/" in segment or "\\" in segment or "\x00" in segment:
            raise ValueError(f"Unsafe path segment {segment!r} in {value!r}")
    return segments


class LocalFileStorage(StorageBackend):
    """Filesystem-backed object storage."""

    def __init__(self, root: Path) -> None:
        """Initialize the file backend.

        Args:
            root: Directory under which one subdirectory per bucket is created.
        """
        self.root = Path(root)

    def _object_path(self, bucket: str, key: str) -> Path:
        try:
            parts = _path_segments(bucket, allow_nested=False) + _path_segments(key, allow_nested=True)
        except ValueError as e:
            raise StorageError(str(e), bucket=bucket, key=key) from e
        return self.root.joinpath(*parts)

    async def upload(self, bucket: str, key: str, data: bytes) -> None:
        path = self._object_path(bucket, key)
        try:
            await asyncio.to_thread(self._write_atomic, path, data)
        except OSError as e:
            raise StorageError(f"Failed to write object: {e}", bucket=bucket, key=key) from e

    async def download(self, bucket: str, key: str) -> bytes | None:
        path = self._object_path(bucket, key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read object: {e}", bucket=bucket, key=key) from e

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = path.with_name(f"{path.name}.tmp")
        temp_file.write_bytes(data)
        os.replace(temp_file, path)
