"""In-process pattern store with per-key atomic updates.

Patterns are published copy-on-write: an edit works on a private copy of the
current pattern and replaces the stored object only when it commits. Readers
therefore only ever see whole published patterns, and a snapshot taken while
an edit is in flight contains either the old or the new version of that key,
never a mix.

Usage::

    async with store.edit(key) as edit:
        pattern = edit.current or LearnedPattern.create(feature, species)
        pattern.observation_count += 1
        edit.commit(pattern)
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager

from plumage.learning.models import LearnedPattern


class PatternEdit:
    """Handle for one atomic read-modify-write of a single key."""

    __slots__ = ("_committed", "current", "key")

    def __init__(self, key: str, current: LearnedPattern | None) -> None:
        self.key = key
        self.current = current
        self._committed: LearnedPattern | None = None

    def commit(self, pattern: LearnedPattern) -> None:
        """Mark ``pattern`` to be published when the edit block exits cleanly."""
        if pattern.id != self.key:
            raise ValueError(f"Pattern id {pattern.id!r} does not match edited key {self.key!r}")
        self._committed = pattern

    @property
    def committed(self) -> LearnedPattern | None:
        return self._committed


class PatternStore:
    """Mapping of pattern key to LearnedPattern, safe for concurrent edits."""

    def __init__(self) -> None:
        self._patterns: dict[str, LearnedPattern] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, key: object) -> bool:
        return key in self._patterns

    def get(self, key: str) -> LearnedPattern | None:
        """Return the published pattern for ``key``. Callers must not mutate it."""
        return self._patterns.get(key)

    def values(self) -> list[LearnedPattern]:
        """Return the currently published patterns. Callers must not mutate them."""
        return list(self._patterns.values())

    def snapshot(self) -> list[LearnedPattern]:
        """Return deep copies of every published pattern."""
        return [copy.deepcopy(p) for p in list(self._patterns.values())]

    def replace_all(self, patterns: Mapping[str, LearnedPattern]) -> None:
        """Replace the whole store, e.g. after restoring a session."""
        self._patterns = dict(patterns)

    def _claim_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return lock

    def _release_lock(self, key: str) -> None:
        # Locks only live while an edit holds or awaits them
        remaining = self._lock_users[key] - 1
        if remaining:
            self._lock_users[key] = remaining
        else:
            del self._lock_users[key]
            del self._locks[key]

    @asynccontextmanager
    async def edit(self, key: str) -> AsyncIterator[PatternEdit]:
        """Hold the lock for ``key`` and yield a handle with a private copy.

        The committed pattern is published when the block exits without an
        exception; otherwise the store is left untouched.
        """
        lock = self._claim_lock(key)
        try:
            async with lock:
                current = self._patterns.get(key)
                edit = PatternEdit(key, copy.deepcopy(current) if current is not None else None)
                yield edit
                if edit.committed is not None:
                    self._patterns[key] = edit.committed
        finally:
            self._release_lock(key)


__all__ = ["PatternEdit", "PatternStore"]
