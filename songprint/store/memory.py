"""In-memory fingerprint store, optionally persisted with pickle."""

import logging
import os
import pickle
import threading
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from songprint.errors import StorageError
from songprint.types import Landmark, Song, StoredFingerprint

from .base import FingerprintStore

logger = logging.getLogger(__name__)


class MemoryFingerprintStore(FingerprintStore):
    """
    Hash table of posting lists: ``hash -> {(song_id, offset), ...}``.

    Sets make re-insertion of the same (song_id, offset, hash) a no-op. A lock
    serialises all access, so worker threads may insert concurrently.
    """

    def __init__(self):
        self.hash_table: Dict[int, Set[Tuple[int, float]]] = defaultdict(set)
        self.song_table: Dict[int, Song] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def insert_batch(self, song_id: int, records: Iterable[Landmark]) -> int:
        records = list(records)
        with self._lock:
            if song_id not in self.song_table:
                raise StorageError(f"song {song_id} does not exist")
            added = 0
            for h, offset in records:
                postings = self.hash_table[int(h)]
                entry = (song_id, float(offset))
                if entry not in postings:
                    postings.add(entry)
                    added += 1
        logger.debug("Inserted %d/%d fingerprints for song %d", added, len(records), song_id)
        return added

    def lookup(self, hashes: Set[int]) -> List[StoredFingerprint]:
        rows = []
        with self._lock:
            for h in hashes:
                postings = self.hash_table.get(int(h))
                if not postings:
                    continue
                for song_id, offset in postings:
                    rows.append(StoredFingerprint(song_id, int(h), offset))
        return rows

    def add_song(self, title: str) -> Song:
        with self._lock:
            song = Song(self._next_id, title, datetime.now(timezone.utc))
            self.song_table[song.id] = song
            self._next_id += 1
        return song

    def get_song(self, song_id: int) -> Optional[Song]:
        return self.song_table.get(song_id)

    def find_song(self, title: str) -> Optional[Song]:
        with self._lock:
            for song in sorted(self.song_table.values(), key=lambda s: s.id):
                if song.title == title:
                    return song
        return None

    def list_songs(self) -> List[Song]:
        with self._lock:
            return sorted(self.song_table.values(), key=lambda s: s.id)

    def delete_song(self, song_id: int) -> bool:
        with self._lock:
            if self.song_table.pop(song_id, None) is None:
                return False
            for h in list(self.hash_table):
                postings = self.hash_table[h]
                postings.difference_update({e for e in postings if e[0] == song_id})
                if not postings:
                    del self.hash_table[h]
        return True

    def count_fingerprints(self, song_id: Optional[int] = None) -> int:
        with self._lock:
            if song_id is None:
                return sum(len(p) for p in self.hash_table.values())
            return sum(1 for p in self.hash_table.values() for e in p if e[0] == song_id)

    def save(self, path: Union[str, Path]) -> None:
        with self._lock:
            state = {
                "hash_table": dict(self.hash_table),
                "song_table": self.song_table,
                "next_id": self._next_id,
            }
            with open(path, "wb") as f:
                pickle.dump(state, f)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "MemoryFingerprintStore":
        """Load a store saved with ``save``; a missing file gives an empty store."""
        store = cls()
        if not os.path.exists(path):
            return store
        try:
            with open(path, "rb") as f:
                state = pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError) as exc:
            raise StorageError(f"cannot load fingerprint store from {path}: {exc}") from exc
        store.hash_table = defaultdict(set, state["hash_table"])
        store.song_table = state["song_table"]
        store._next_id = state["next_id"]
        return store
