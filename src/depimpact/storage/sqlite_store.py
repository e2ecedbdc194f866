from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from depimpact.schemas import FileFacts
from depimpact.utils import utc_now_iso


class FactStore:
    """Parsed facts persisted across runs, validated by file stat signature."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS facts (
                    path TEXT PRIMARY KEY,
                    mtime_ns INTEGER NOT NULL,
                    size INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    stored_at TEXT NOT NULL
                );
                """
            )

    def load(self, path: str, mtime_ns: int, size: int) -> FileFacts | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT mtime_ns, size, payload FROM facts WHERE path = ?",
                (path,),
            ).fetchone()
        if row is None:
            return None
        if row[0] != mtime_ns or row[1] != size:
            return None
        return FileFacts.from_dict(json.loads(row[2]))

    def save(self, path: str, mtime_ns: int, size: int, facts: FileFacts) -> None:
        payload = json.dumps(facts.to_dict(), ensure_ascii=False)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO facts (path, mtime_ns, size, payload, stored_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    mtime_ns = excluded.mtime_ns,
                    size = excluded.size,
                    payload = excluded.payload,
                    stored_at = excluded.stored_at
                """,
                (path, mtime_ns, size, payload, utc_now_iso()),
            )

    def has(self, path: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM facts WHERE path = ?", (path,)).fetchone()
        return row is not None

    def delete(self, path: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM facts WHERE path = ?", (path,))

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM facts")

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM facts").fetchone()
        return int(row[0])
