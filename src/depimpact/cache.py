from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from depimpact.parser import parse_file
from depimpact.schemas import FileFacts
from depimpact.storage.sqlite_store import FactStore

logger = logging.getLogger(__name__)

FactProvider = Callable[[str, str | None], FileFacts]


class FactCache:
    """Memoizes parsed facts per path.

    Calls that pass explicit ``content`` always reach the provider and never
    touch the stored entries: the content may be a historical version of the
    file.
    """

    def __init__(self, provider: FactProvider = parse_file, store: FactStore | None = None) -> None:
        self.provider = provider
        self.store = store
        self._entries: dict[str, FileFacts] = {}
        self._lock = threading.Lock()

    @classmethod
    def with_store(cls, db_path: str | Path | None, provider: FactProvider = parse_file) -> FactCache:
        store = FactStore(Path(db_path)) if db_path else None
        return cls(provider=provider, store=store)

    def lookup(self, path: str, content: str | None = None) -> FileFacts:
        if content is not None:
            return self.provider(path, content)

        with self._lock:
            cached = self._entries.get(path)
        if cached is not None:
            return cached

        facts = self._load_stored(path)
        if facts is None:
            facts = self.provider(path, None)
            self._save_stored(path, facts)

        with self._lock:
            self._entries[path] = facts
        return facts

    async def facts(self, path: str, content: str | None = None) -> FileFacts:
        return await asyncio.to_thread(self.lookup, path, content)

    def has(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def delete(self, path: str) -> None:
        with self._lock:
            self._entries.pop(path, None)
        if self.store is not None:
            self.store.delete(path)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        if self.store is not None:
            self.store.clear()

    def _load_stored(self, path: str) -> FileFacts | None:
        if self.store is None:
            return None
        try:
            stat = os.stat(path)
        except OSError:
            return None
        facts = self.store.load(path, stat.st_mtime_ns, stat.st_size)
        if facts is not None:
            logger.debug("fact store hit: %s", path)
        return facts

    def _save_stored(self, path: str, facts: FileFacts) -> None:
        if self.store is None:
            return
        try:
            stat = os.stat(path)
        except OSError:
            return
        self.store.save(path, stat.st_mtime_ns, stat.st_size, facts)
