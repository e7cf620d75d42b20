"""Whole-file JSON documents shared between requests."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)

_locks: dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _locks_guard:
        lock = _locks.get(path)
        if lock is None:
            lock = _locks[path] = threading.RLock()
        return lock


class JsonDocument:
    """A JSON file read and rewritten as a whole.

    All instances pointing at the same path share one lock, so
    read-modify-write cycles made through :meth:`edit` never lose updates
    within a process.
    """

    def __init__(self, path: str | Path, default: Callable[[], Any]) -> None:
        self._path = Path(path).expanduser()
        self._default = default
        self._lock = _lock_for(self._path.resolve())

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Any:
        """Return the document contents, or the default if unreadable."""
        with self._lock:
            if not self._path.exists():
                return self._default()
            try:
                with open(self._path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError):
                logger.warning("Unreadable document %s, starting empty", self._path)
                return self._default()
            default = self._default()
            if not isinstance(data, type(default)):
                logger.warning("Unexpected content in %s, starting empty", self._path)
                return default
            return data

    def save(self, data: Any) -> None:
        """Atomically replace the document contents."""
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self._path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise

    @contextmanager
    def edit(self) -> Iterator[Any]:
        """Hold the lock for a load → mutate → save cycle.

        The yielded object is saved when the block exits without error.
        """
        with self._lock:
            data = self.load()
            yield data
            self.save(data)
