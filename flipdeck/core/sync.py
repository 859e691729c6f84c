"""
Decides, per read, whether the remote store or the local cache is the source of
truth, and keeps the cache warm with every successful remote read.

The policy is best effort and last write wins: remote reads race a deadline and
fall back to the offline cache on any failure; writes go to the remote store,
are mirrored locally regardless of outcome, and surface remote failures.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from flipdeck.exceptions import RemoteError, RemoteTimeoutError, SetValidationError
from flipdeck.models.flashcards import FlashcardSet, now_ms
from flipdeck.storage.cache import LocalCacheStore
from flipdeck.utils.structured_logger import StructuredLogger, SyncLogger

from .connectivity import ConnectivityState

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOAD_TIMEOUT = 10.0
DEFAULT_REFRESH_TIMEOUT = 5.0


class RemoteStore(Protocol):
    async def list_sets(self) -> list[FlashcardSet]: ...

    async def get_set(self, set_id: str) -> FlashcardSet | None: ...

    async def save_set(self, flashcard_set: FlashcardSet) -> None: ...

    async def delete_set(self, set_id: str) -> None: ...

    async def count_sets(self) -> int: ...


@dataclass
class SourceReport:
    """What each data source currently holds."""

    remote_count: int | None = None
    remote_error: str | None = None
    backup_sets: list[FlashcardSet] = field(default_factory=list)
    offline_sets: list[FlashcardSet] = field(default_factory=list)


class SyncOrchestrator:
    """
    Owns the current set list and the loading flag consumers observe.

    Overlapping loads are not serialised; whichever finishes last sets the list.
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCacheStore,
        connectivity: ConnectivityState,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
        refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT,
        backup: LocalCacheStore | None = None,
        events: SyncLogger | None = None,
    ):
        """
        Args:
            remote: The remote store client.
            cache: The offline cache slot mirrored after each successful read.
            connectivity: Shared online/offline state (read only here).
            load_timeout: Deadline in seconds for the initial load.
            refresh_timeout: Deadline in seconds for on-demand refreshes.
            backup: The remote client's write-through slot, consulted last by get_set.
            events: Structured logger for sync events.
        """
        self.remote = remote
        self.cache = cache
        self.connectivity = connectivity
        self.load_timeout = load_timeout
        self.refresh_timeout = refresh_timeout
        self.backup = backup
        self._events = events or SyncLogger(
            StructuredLogger("flipdeck.sync", enable_json=False)
        )

        self._sets: list[FlashcardSet] = []
        self._in_flight = 0
        self._unsubscribe: Callable[[], None] | None = None
        self._reloads: set[asyncio.Task] = set()

    @property
    def sets(self) -> list[FlashcardSet]:
        return list(self._sets)

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online

    async def load(self) -> list[FlashcardSet]:
        """Initial load: remote with the long deadline, cache on any failure."""
        return await self._sync("load", self.load_timeout)

    async def refresh(self) -> list[FlashcardSet]:
        """On-demand reload with the short deadline."""
        return await self._sync("refresh", self.refresh_timeout)

    async def _sync(self, operation: str, timeout: float) -> list[FlashcardSet]:
        self._in_flight += 1
        start_time = time.monotonic()
        online = self.connectivity.is_online
        self._events.load_started(operation, online, timeout)
        try:
            source = "cache"
            if online:
                try:
                    sets = await self._race(self.remote.list_sets(), timeout, operation)
                    self._sets = sets
                    if self.cache.replace_all(sets):
                        self._events.cache_mirrored(self.cache.key, len(sets))
                    source = "remote"
                except RemoteError as e:
                    reason = "timeout" if isinstance(e, RemoteTimeoutError) else "error"
                    self._events.load_fallback(operation, reason, str(e))
                except Exception as e:
                    log.debug("Unexpected error during remote read:", exc_info=True)
                    self._events.load_fallback(operation, "unexpected", str(e))

            if source == "cache":
                self._sets = self.cache.list()

            duration_ms = (time.monotonic() - start_time) * 1000
            self._events.load_completed(operation, source, len(self._sets), duration_ms)
            return self.sets
        finally:
            self._in_flight -= 1

    async def _race(self, coro: Awaitable[T], timeout: float, operation: str) -> T:
        """
        Awaits `coro` for at most `timeout` seconds. On timeout the underlying
        request keeps running; its eventual result is discarded.

        Raises:
            RemoteTimeoutError: When the deadline passes first.
        """
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(lambda t: self._discard_late_result(t, operation))
            raise RemoteTimeoutError(
                f"Remote {operation} did not finish within {timeout:.1f}s."
            ) from None

    def _discard_late_result(self, task: asyncio.Task, operation: str) -> None:
        if task.cancelled():
            outcome = "cancelled"
        elif task.exception() is not None:
            outcome = f"error: {task.exception()}"
        else:
            outcome = "success"
        self._events.late_result_discarded(operation, outcome)

    async def get_set(self, set_id: str) -> FlashcardSet | None:
        """
        Looks a set up remotely when online; otherwise, or if that fails, in the
        offline cache and then the backup cache. Never raises.
        """
        if self.connectivity.is_online:
            try:
                return await self._race(
                    self.remote.get_set(set_id), self.load_timeout, "get_set"
                )
            except RemoteError as e:
                self._events.load_fallback("get_set", "error", str(e))
            except Exception as e:
                log.debug("Unexpected error during remote lookup:", exc_info=True)
                self._events.load_fallback("get_set", "unexpected", str(e))

        found = self.cache.get(set_id)
        if found is None and self.backup is not None:
            found = self.backup.get(set_id)
        return found

    async def save_set(self, flashcard_set: FlashcardSet) -> FlashcardSet:
        """
        Stamps `updated_at` once and writes the set everywhere.

        Returns:
            The stamped set, as stored.

        Raises:
            SetValidationError: If the title is blank.
            RemoteError: If the remote write failed (local copies are still updated).
        """
        if not flashcard_set.title.strip():
            raise SetValidationError("A set needs a non-empty title to be saved.")

        stamped = flashcard_set.stamped(now_ms())
        try:
            await self.remote.save_set(stamped)
        except RemoteError as e:
            self._events.write_failed("save_set", stamped.id, str(e))
            raise
        finally:
            self._remember(stamped)
        return stamped

    async def delete_set(self, set_id: str) -> None:
        """
        Deletes the set remotely and locally.

        Raises:
            RemoteError: If the remote delete failed (local copies are still removed).
        """
        try:
            await self.remote.delete_set(set_id)
        except RemoteError as e:
            self._events.write_failed("delete_set", set_id, str(e))
            raise
        finally:
            self._sets = [s for s in self._sets if s.id != set_id]
            self.cache.remove(set_id)

    def _remember(self, flashcard_set: FlashcardSet) -> None:
        """Puts a written set into the in-memory list and the offline cache."""
        for i, existing in enumerate(self._sets):
            if existing.id == flashcard_set.id:
                self._sets[i] = flashcard_set
                break
        else:
            self._sets.insert(0, flashcard_set)
        self.cache.upsert(flashcard_set)

    async def inspect_sources(self) -> SourceReport:
        """Reports what the remote store and both cache slots currently hold."""
        report = SourceReport(offline_sets=self.cache.list())
        if self.backup is not None:
            report.backup_sets = self.backup.list()
        try:
            report.remote_count = await self._race(
                self.remote.count_sets(), self.refresh_timeout, "inspect"
            )
        except RemoteError as e:
            report.remote_error = str(e)
        except Exception as e:
            log.debug("Unexpected error while counting remote sets:", exc_info=True)
            report.remote_error = f"{type(e).__name__}: {e}"
        return report

    def start(self) -> None:
        """Reloads on every connectivity transition until `stop()` is called."""
        if self._unsubscribe is None:
            self._unsubscribe = self.connectivity.subscribe(self._on_connectivity)

    def _on_connectivity(self, online: bool) -> None:
        log.debug(f"Connectivity changed (online={online}); scheduling reload.")
        task = asyncio.get_running_loop().create_task(self.load())
        self._reloads.add(task)
        task.add_done_callback(self._reloads.discard)

    async def stop(self) -> None:
        """Unsubscribes and waits for reloads already scheduled."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._reloads:
            with suppress(asyncio.CancelledError):
                await asyncio.gather(*self._reloads)
