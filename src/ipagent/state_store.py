"""File-backed ledger state with lock-based concurrency control."""

from __future__ import annotations

import fcntl
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from .ledger import Ledger
from .storage import atomic_write_json, ensure_private_dir, ensure_private_file

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path.home() / ".ipagent" / "ledger.json"


class LedgerStateStore:
    """
    Persists a whole ledger in one JSON file.

    ``session()`` holds an exclusive lock for its duration and writes the
    state back only when the block finishes without raising, so a failed
    command never leaves half-applied state on disk. Subscribers receive
    the session's committed events after the write.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path or DEFAULT_STATE_PATH
        ensure_private_dir(self.path.parent)
        self._lock_path = self.path.parent / f".{self.path.name}.lock"
        ensure_private_file(self._lock_path)

    @contextmanager
    def _lock(self):
        with open(self._lock_path, "r+") as lockf:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)

    def _load_state(self) -> dict:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return {}
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def load(self) -> Ledger:
        """Read-only snapshot; changes made to it are not saved."""
        with self._lock():
            return Ledger(self._load_state())

    @contextmanager
    def session(self, subscribers: tuple[Callable, ...] = ()) -> Iterator[Ledger]:
        with self._lock():
            ledger = Ledger(self._load_state())
            committed: list = []
            ledger.subscribe(committed.append)
            yield ledger
            atomic_write_json(self.path, ledger.state)
            logger.debug("Saved ledger state to %s", self.path)
        # subscribers only hear about events whose state reached disk
        for entry in committed:
            for subscriber in subscribers:
                subscriber(entry)
