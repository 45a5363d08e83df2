"""
Polyroll RollHistory v1.1.0
===========================

Bounded, persistent history of formatted roll strings.

The history is an ordered list of display strings, most recent first, capped
at a configurable capacity (10 by default). It is loaded once at startup and
saved after every mutation. Persistence goes through the HistoryStorage
capability so the same store works against a browser-style key-value store,
a JSON file, or a plain dict in tests.

Key behaviours:
- Atomic file saves with temp files and os.replace
- File locking through portalocker while reading and writing
- Missing or malformed stored history loads as an empty history
- Capacity truncation on every write (and on load, for older, longer lists)

Version: 1.1.0
Author: Polyroll Development Team
License: MIT
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterator, List, MutableMapping, Optional, Protocol, Tuple, Union

import portalocker

from dice_engine import DiceEngineError, InvalidConfigurationError

__all__ = [
    "HistoryStorage",
    "KeyValueHistoryStorage",
    "JsonFileHistoryStorage",
    "HistoryStore",
    "HistoryStorageError",
    "DEFAULT_HISTORY_CAPACITY",
    "DEFAULT_STORAGE_KEY",
]

# ==========================================
# CONSTANTS AND EXCEPTIONS
# ==========================================

DEFAULT_HISTORY_CAPACITY = 10
DEFAULT_STORAGE_KEY = "rollHistory"

logger = logging.getLogger(__name__)

class HistoryStorageError(DiceEngineError):
    """Raised when a storage backend fails to persist the history."""
    pass

def _decode_entries(raw: Any, source: str) -> List[str]:
    """Decode a serialized history, falling back to an empty list on bad data."""
    if raw is None:
        return []
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes, bytearray)) else raw
    except (ValueError, RecursionError) as e:
        logger.warning(f"Ignoring malformed history in {source}: {e}")
        return []

    if not isinstance(data, list) or not all(isinstance(entry, str) for entry in data):
        logger.warning(f"Ignoring history in {source}: expected a list of strings")
        return []
    return data

# ==========================================
# STORAGE BACKENDS
# ==========================================

class HistoryStorage(Protocol):
    """Anything that can load and save a list of history strings."""

    def load(self) -> List[str]:
        ...

    def save(self, entries: List[str]) -> None:
        ...

class KeyValueHistoryStorage:
    """
    History kept as a JSON array under one key of a key-value store.

    Mirrors browser localStorage: values are strings, the history lives under
    a single named key. Any MutableMapping works; a private dict is used when
    none is supplied.
    """

    def __init__(self, store: Optional[MutableMapping[str, str]] = None,
                 key: str = DEFAULT_STORAGE_KEY):
        self.store = store if store is not None else {}
        self.key = key

    def load(self) -> List[str]:
        return _decode_entries(self.store.get(self.key), f"key '{self.key}'")

    def save(self, entries: List[str]) -> None:
        self.store[self.key] = json.dumps(list(entries))

    def __repr__(self) -> str:
        return f"KeyValueHistoryStorage(key='{self.key}')"

class JsonFileHistoryStorage:
    """
    History kept as a JSON array in a file.

    Writes go to a temp file that is then renamed over the target, so a
    reader never sees a half-written history.
    """

    def __init__(self, path: Union[str, Path], enable_file_locking: bool = True):
        """
        Initialize the file storage.

        Args:
            path: JSON file holding the history (created on first save)
            enable_file_locking: Hold a portalocker lock while reading or writing
        """
        self.path = Path(path)
        self.enable_file_locking = enable_file_locking
        self.logger = logging.getLogger(f"{__name__}.JsonFileHistoryStorage")

    def load(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                if self.enable_file_locking:
                    portalocker.lock(f, portalocker.LOCK_SH)
                raw = f.read()
        except (OSError, UnicodeDecodeError) as e:
            self.logger.warning(f"Failed to read history from {self.path}: {e}")
            return []
        return _decode_entries(raw, str(self.path))

    def save(self, entries: List[str]) -> None:
        """
        Atomically write the history to disk.

        Raises:
            HistoryStorageError: If the file cannot be written
        """
        temp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                if self.enable_file_locking:
                    portalocker.lock(f, portalocker.LOCK_EX)
                json.dump(list(entries), f, indent=2)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise HistoryStorageError(f"Failed to save history to {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"JsonFileHistoryStorage(path='{self.path}')"

# ==========================================
# HISTORY STORE
# ==========================================

class HistoryStore:
    """
    Most-recent-first list of roll strings with a fixed capacity.

    Every mutation builds the new list, swaps it in, then persists it, so
    the in-memory and stored histories never diverge mid-update.
    """

    def __init__(self, storage: Optional[HistoryStorage] = None,
                 capacity: int = DEFAULT_HISTORY_CAPACITY):
        """
        Initialize the store and load any saved history.

        Args:
            storage: Persistence backend (an in-memory key-value store if omitted)
            capacity: Maximum number of entries kept

        Raises:
            InvalidConfigurationError: If capacity is below 1
        """
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise InvalidConfigurationError(f"History capacity must be a positive integer, got {capacity!r}")

        self.storage = storage if storage is not None else KeyValueHistoryStorage()
        self.capacity = capacity
        self.logger = logging.getLogger(f"{__name__}.HistoryStore")
        self._entries: List[str] = []
        self.reload()

    @property
    def entries(self) -> Tuple[str, ...]:
        """Current history, most recent first."""
        return tuple(self._entries)

    def reload(self) -> None:
        """Replace the in-memory history with what the storage holds."""
        self._entries = self.storage.load()[:self.capacity]
        self.logger.info(f"Loaded {len(self._entries)} history entries from {self.storage!r}")

    def record(self, entry: str) -> None:
        """
        Add an entry at the front, drop anything past capacity, and persist.

        Raises:
            HistoryStorageError: If the storage backend fails; the in-memory
                history keeps the new entry
        """
        self._entries = ([entry] + self._entries)[:self.capacity]
        self.storage.save(list(self._entries))

    def clear(self) -> None:
        """Remove every entry and persist the empty history."""
        self._entries = []
        self.storage.save([])
        self.logger.info("Roll history cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        return f"HistoryStore(entries={len(self._entries)}, capacity={self.capacity})"
