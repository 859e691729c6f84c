"""
A file-based JSON cache holding one slot of serialized flashcard sets.

Each slot is a single file containing a JSON array of sets in their camelCase
wire form. The store is synchronous and never raises to its callers: reads
degrade to an empty list and writes report failure through their return value.
"""

import json
import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from flipdeck.exceptions import CacheParseError
from flipdeck.models.flashcards import FlashcardSet

log = logging.getLogger(__name__)

BACKUP_SLOT = "flashcard-sets"
OFFLINE_SLOT = "offline-flashcard-sets"

_SETS_ADAPTER = TypeAdapter(list[FlashcardSet])


class LocalCacheStore:
    """Persists a list of flashcard sets under a fixed key."""

    def __init__(
        self,
        cache_dir_path: Path,
        key: str = OFFLINE_SLOT,
        on_corruption: Callable[[CacheParseError], None] | None = None,
    ):
        """
        Initializes the cache store.

        Args:
            cache_dir_path: The directory where slot files are stored.
            key: The slot name; the file is `<key>.json`.
            on_corruption: Optional callback invoked with a CacheParseError when
                the slot holds content that cannot be decoded.
        """
        self.cache_dir = cache_dir_path
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.key = key
        self._on_corruption = on_corruption

    @property
    def path(self) -> Path:
        return self.cache_dir / f"{self.key}.json"

    def list(self) -> list[FlashcardSet]:
        """
        Returns all cached sets, or an empty list if the slot is absent or corrupt.
        """
        if not self.path.is_file():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            return _SETS_ADAPTER.validate_python(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            self._report_corruption(e)
            return []
        except OSError as e:
            log.warning(f"Cache read failed for slot '{self.key}': {e}")
            return []

    def get(self, set_id: str) -> FlashcardSet | None:
        return next((s for s in self.list() if s.id == set_id), None)

    def upsert(self, flashcard_set: FlashcardSet) -> bool:
        """
        Replaces the set with the same id in place, or puts a new set first
        (newest first, as the remote lists them). The set is stored exactly as
        given; timestamps are the caller's responsibility.
        """
        sets = self.list()
        for i, existing in enumerate(sets):
            if existing.id == flashcard_set.id:
                sets[i] = flashcard_set
                break
        else:
            sets.insert(0, flashcard_set)
        return self._write(sets)

    def remove(self, set_id: str) -> bool:
        return self._write([s for s in self.list() if s.id != set_id])

    def replace_all(self, sets: Sequence[FlashcardSet]) -> bool:
        """Overwrites the slot with exactly `sets`."""
        return self._write(list(sets))

    def clear(self) -> bool:
        """Removes the slot file."""
        try:
            self.path.unlink(missing_ok=True)
            return True
        except OSError as e:
            log.error(f"Failed to clear cache slot '{self.key}': {e}")
            return False

    def _write(self, sets: Sequence[FlashcardSet]) -> bool:
        try:
            payload = json.dumps([s.to_cache_dict() for s in sets])
            tmp_path = self.path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
            return True
        except (TypeError, OSError) as e:
            log.warning(f"Cache write failed for slot '{self.key}': {e}")
            return False

    def _report_corruption(self, cause: Exception) -> None:
        """
        Moves the unreadable file aside and emits a diagnostic, so corruption
        stays distinguishable from an empty cache.
        """
        quarantine_path = self.path.with_suffix(".json.corrupt")
        try:
            os.replace(self.path, quarantine_path)
        except OSError as e:
            log.error(f"Could not quarantine corrupt cache slot '{self.key}': {e}")
            quarantine_path = None

        error = CacheParseError(
            f"Cache slot '{self.key}' is unreadable: {cause}",
            slot=self.key,
            quarantined_to=str(quarantine_path) if quarantine_path else None,
        )
        kept = f" Original kept at '{quarantine_path}'." if quarantine_path else ""
        log.warning(f"[yellow]{error} Continuing with an empty cache.{kept}[/yellow]")
        if self._on_corruption:
            self._on_corruption(error)
