"""Base class for PatternLearner: session restore and write-through saves.

This module provides the foundational ``PatternLearnerBase`` that handles:
- Holding the injected storage backend, configuration and pattern store
- One-time session restore (``ensure_initialized``), tolerant of missing,
  corrupt or unreachable snapshots
- Write-through persistence after every mutation, best-effort and bounded
  by the storage timeout

Mixins inherit from this base to add feedback, advisory and analytics
operations.
"""

from __future__ import annotations

import asyncio

from plumage.core.config import EngineConfig
from plumage.core.errors import CorruptStateError, StorageError
from plumage.core.logging import PlumageLogger, get_logger
from plumage.learning.snapshot import decode_snapshot, encode_snapshot
from plumage.learning.store import PatternStore
from plumage.storage.base import StorageBackend
from plumage.storage.memory import InMemoryStorage

# Module-level logger for the learning engine
_logger = get_logger("learning.engine")


class PatternLearnerBase:
    """Session management shared by all PatternLearner mixins.

    Attributes:
        config: Engine configuration.
        storage: Backend the pattern snapshot is restored from and saved to.
        last_save_error: Message of the most recent failed save, cleared on success.
    """

    def __init__(
        self,
        storage: StorageBackend | None = None,
        config: EngineConfig | None = None,
        *,
        skip_initial_load: bool | None = None,
    ) -> None:
        """Initialize the learner without performing any I/O.

        Args:
            storage: Snapshot storage. Defaults to a fresh InMemoryStorage.
            config: Engine configuration. Defaults to EngineConfig().
            skip_initial_load: Start empty without downloading the snapshot.
                Overrides ``config.persistence.skip_initial_load`` when given.
        """
        self.config = config or EngineConfig()
        self.storage = storage if storage is not None else InMemoryStorage()
        self._learning = self.config.learning
        self._store = PatternStore()
        self._logger: PlumageLogger = _logger
        self._skip_initial_load = (
            self.config.persistence.skip_initial_load
            if skip_initial_load is None
            else skip_initial_load
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._save_lock = asyncio.Lock()
        self._pending_saves: set[asyncio.Task[None]] = set()
        self.last_save_error: str | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def _bucket(self) -> str:
        return self.config.storage.bucket

    @property
    def _object_key(self) -> str:
        return self.config.storage.key

    @property
    def _timeout(self) -> float:
        return self.config.storage.timeout_seconds

    async def ensure_initialized(self) -> None:
        """Restore the persisted session once; later calls are no-ops.

        Safe to call concurrently. Never raises: a missing, empty, corrupt
        or unreachable snapshot leaves the learner with an empty store.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            if self._skip_initial_load:
                self._logger.info("session_restore_skipped")
            else:
                await self._restore_session()
            self._initialized = True
            self._logger.info("pattern_learner_initialized", patterns=len(self._store))

    async def _restore_session(self) -> None:
        bucket, key = self._bucket, self._object_key
        try:
            payload = await asyncio.wait_for(self.storage.download(bucket, key), self._timeout)
        except TimeoutError:
            self._logger.warning("session_restore_timeout", bucket=bucket, key=key, timeout=self._timeout)
            return
        except StorageError as e:
            self._logger.warning("session_restore_unavailable", bucket=bucket, key=key, error=str(e))
            return
        except Exception:
            self._logger.exception("session_restore_failed", bucket=bucket, key=key)
            return

        if not payload:
            self._logger.info("no_previous_session", bucket=bucket, key=key)
            return

        try:
            patterns = decode_snapshot(payload)
        except CorruptStateError as e:
            self._logger.warning("corrupt_session_discarded", bucket=bucket, key=key, error=str(e))
            return
        except Exception:
            self._logger.exception("session_decode_failed", bucket=bucket, key=key)
            return

        self._store.replace_all(patterns)
        self._logger.info("session_restored", patterns=len(patterns))

    async def _write_through(self) -> None:
        """Persist the store after a mutation, in the background by default."""
        if not self.config.persistence.background:
            await self._save_patterns()
            return
        task = asyncio.create_task(self._save_patterns())
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save_patterns(self) -> None:
        """Upload a full snapshot. Failures are logged, never raised.

        The snapshot is taken under the save lock so that saves reach the
        backend in the order their snapshots were taken.
        """
        async with self._save_lock:
            payload = encode_snapshot(self._store.snapshot())
            bucket, key = self._bucket, self._object_key
            try:
                await asyncio.wait_for(self.storage.upload(bucket, key, payload), self._timeout)
            except TimeoutError:
                self.last_save_error = f"upload timed out after {self._timeout}s"
                self._logger.warning("pattern_save_timeout", bucket=bucket, key=key, timeout=self._timeout)
            except StorageError as e:
                self.last_save_error = str(e)
                self._logger.error("pattern_save_failed", bucket=bucket, key=key, error=str(e))
            except Exception as e:
                self.last_save_error = str(e) or type(e).__name__
                self._logger.exception("pattern_save_crashed", bucket=bucket, key=key)
            else:
                self.last_save_error = None
                self._logger.debug("patterns_persisted", patterns=len(self._store), size=len(payload))

    async def flush(self) -> None:
        """Wait for all background saves scheduled so far to finish."""
        while self._pending_saves:
            await asyncio.gather(*list(self._pending_saves))

    async def close(self) -> None:
        """Flush pending saves and release the storage backend."""
        await self.flush()
        await self.storage.close()
