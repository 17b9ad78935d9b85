"""Durable migration state: a small key-value interface and the JSON file store behind it."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from migration_errors import PersistenceError
from migration_types import ProgressState, TransferItem
from migration_utils import get_utc_now

PROGRESS_KEY = "progress"
INDEX_KEY = "index"


class KeyValueStore(Protocol):
    """Minimal persistence surface the progress store depends on."""

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, None if absent; raise PersistenceError if unreadable."""

    def put(self, key: str, value: Any) -> None:
        """Store *value*; raise PersistenceError on failure."""

    def delete(self, key: str) -> bool:
        """Remove *key*; return True if it existed."""


class JsonFileStore:
    """Stores each key as an indented JSON document at a fixed path."""

    def __init__(self, paths: Dict[str, str]):
        self.paths = {key: Path(path).expanduser() for key, path in paths.items()}

    def _path(self, key: str) -> Path:
        try:
            return self.paths[key]
        except KeyError as exc:
            raise PersistenceError(f"No file configured for record '{key}'") from exc

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}") from exc

    def put(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(value, handle, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise PersistenceError(f"Cannot remove {path}: {exc}") from exc
        return True


class ProgressStore:
    """Loads and checkpoints ProgressState plus the redundant object-index record."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @classmethod
    def from_paths(cls, progress_file: str, index_file: str) -> "ProgressStore":
        return cls(JsonFileStore({PROGRESS_KEY: progress_file, INDEX_KEY: index_file}))

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self.store.get(key)
        except PersistenceError as exc:
            logging.warning("Ignoring unreadable %s record: %s", key, exc)
            return None

    def load(self) -> ProgressState:
        """Return the stored state, or a fresh Init state if missing or corrupt."""
        state = None
        raw = self._read(PROGRESS_KEY)
        if raw is not None:
            try:
                state = ProgressState.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logging.warning("Progress record is corrupt, starting fresh: %s", exc)
        if state is None:
            state = ProgressState()
        if not state.items:
            items = self.load_index()
            if items:
                logging.info("Adopted %d items from the object-index record", len(items))
                state.items = items
        return state

    def load_index(self) -> List[TransferItem]:
        raw = self._read(INDEX_KEY)
        if not raw:
            return []
        try:
            return [TransferItem.from_dict(entry) for entry in raw]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logging.warning("Object-index record is corrupt, ignoring it: %s", exc)
            return []

    def save(self, state: ProgressState) -> bool:
        """Write the progress record; failures are logged and reported as False."""
        state.last_saved_at = get_utc_now()
        try:
            self.store.put(PROGRESS_KEY, state.to_dict())
        except PersistenceError as exc:
            logging.error("Failed to save progress (continuing in memory): %s", exc)
            return False
        return True

    def save_index(self, items: List[TransferItem]) -> bool:
        try:
            self.store.put(INDEX_KEY, [item.to_dict() for item in items])
        except PersistenceError as exc:
            logging.error("Failed to save object index (continuing in memory): %s", exc)
            return False
        return True

    def checkpoint(self, state: ProgressState) -> bool:
        """Write both records; True only if both succeeded."""
        saved = self.save(state)
        indexed = self.save_index(state.items)
        return saved and indexed

    def discard(self) -> Dict[str, bool]:
        """Delete both records; returns which of them existed."""
        return {key: self.store.delete(key) for key in (PROGRESS_KEY, INDEX_KEY)}
