"""
SQLite fingerprint store.

Schema (mirrors the relational contract of the fingerprint table):

    songs(id, title, created_at)
    fingerprint(hash, absolute_time_offset, song_id, created_at)
        PRIMARY KEY (song_id, absolute_time_offset, hash)
        song_id REFERENCES songs(id) ON DELETE CASCADE
        INDEX on hash

Inserts use ``INSERT OR IGNORE`` so duplicates are no-ops. A single
connection is shared behind a lock, which makes the store safe to use from
several ingestion threads.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Union

from songprint.errors import StorageError
from songprint.types import Landmark, Song, StoredFingerprint

from .base import FingerprintStore

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 15_000
# stays below SQLite's default bound-parameter limit
LOOKUP_BATCH_SIZE = 900

SCHEMA = """
CREATE TABLE IF NOT EXISTS songs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS fingerprint (
    hash INTEGER NOT NULL,
    absolute_time_offset REAL NOT NULL,
    song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    PRIMARY KEY (song_id, absolute_time_offset, hash)
);

CREATE INDEX IF NOT EXISTS idx_fingerprint_hash ON fingerprint(hash);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _song(row) -> Song:
    return Song(row[0], row[1], datetime.fromisoformat(row[2]))


class SQLiteFingerprintStore(FingerprintStore):
    def __init__(self, path: Union[str, Path] = ":memory:"):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open fingerprint database {self.path}: {exc}") from exc
        logger.debug("Opened fingerprint database %s", self.path)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def insert_batch(self, song_id: int, records: Iterable[Landmark]) -> int:
        created_at = _now()
        rows = [(int(h), float(offset), song_id, created_at) for h, offset in records]
        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM songs WHERE id = ?", (song_id,)).fetchone() is None:
                raise StorageError(f"song {song_id} does not exist")
            before = conn.total_changes
            for start in range(0, len(rows), INSERT_BATCH_SIZE):
                conn.executemany(
                    "INSERT OR IGNORE INTO fingerprint "
                    "(hash, absolute_time_offset, song_id, created_at) VALUES (?, ?, ?, ?)",
                    rows[start:start + INSERT_BATCH_SIZE],
                )
            added = conn.total_changes - before
        logger.debug("Inserted %d/%d fingerprints for song %d", added, len(rows), song_id)
        return added

    def lookup(self, hashes: Set[int]) -> List[StoredFingerprint]:
        hashes = [int(h) for h in hashes]
        rows = []
        with self._transaction() as conn:
            for start in range(0, len(hashes), LOOKUP_BATCH_SIZE):
                batch = hashes[start:start + LOOKUP_BATCH_SIZE]
                placeholders = ",".join("?" * len(batch))
                cursor = conn.execute(
                    "SELECT song_id, hash, absolute_time_offset FROM fingerprint "
                    f"WHERE hash IN ({placeholders})",
                    batch,
                )
                rows.extend(StoredFingerprint(*row) for row in cursor)
        return rows

    def add_song(self, title: str) -> Song:
        created_at = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO songs (title, created_at) VALUES (?, ?)", (title, created_at)
            )
            song_id = cursor.lastrowid
        logger.debug("Inserted song %d: %s", song_id, title)
        return Song(song_id, title, datetime.fromisoformat(created_at))

    def get_song(self, song_id: int) -> Optional[Song]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, title, created_at FROM songs WHERE id = ?", (song_id,)
            ).fetchone()
        return _song(row) if row else None

    def find_song(self, title: str) -> Optional[Song]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, title, created_at FROM songs WHERE title = ? ORDER BY id LIMIT 1",
                (title,),
            ).fetchone()
        return _song(row) if row else None

    def list_songs(self) -> List[Song]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT id, title, created_at FROM songs ORDER BY id").fetchall()
        return [_song(row) for row in rows]

    def delete_song(self, song_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM songs WHERE id = ?", (song_id,))
        return cursor.rowcount > 0

    def count_fingerprints(self, song_id: Optional[int] = None) -> int:
        with self._transaction() as conn:
            if song_id is None:
                row = conn.execute("SELECT COUNT(*) FROM fingerprint").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM fingerprint WHERE song_id = ?", (song_id,)
                ).fetchone()
        return row[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
