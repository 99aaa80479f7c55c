"""
Fingerprint store interface.

The matching core talks to persistence only through this interface, so it can
be tested against the in-memory double and pointed at any engine without
touching recognition logic.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

from songprint.types import Landmark, Song, StoredFingerprint


class FingerprintStore(ABC):
    """
    Abstract base class for fingerprint storage backends.

    Implementations must allow ``insert_batch`` to be called concurrently for
    different song ids.
    """

    @abstractmethod
    def insert_batch(self, song_id: int, records: Iterable[Landmark]) -> int:
        """
        Store fingerprints of one song.

        Idempotent: a (song_id, offset, hash) triple that is already stored
        is skipped, not reported as an error.

        Args:
            song_id: Id of a song previously created with ``add_song``
            records: (hash, offset) pairs

        Returns:
            Number of rows actually added

        Raises:
            StorageError: The song does not exist or the backend failed
        """
        pass

    @abstractmethod
    def lookup(self, hashes: Set[int]) -> List[StoredFingerprint]:
        """
        Return every stored row whose hash is in ``hashes``, across all songs.

        No ordering is guaranteed; the result may be empty.

        Raises:
            StorageError: The backend failed
        """
        pass

    @abstractmethod
    def add_song(self, title: str) -> Song:
        """Create a song entry and return it with its new id."""
        pass

    @abstractmethod
    def get_song(self, song_id: int) -> Optional[Song]:
        pass

    @abstractmethod
    def find_song(self, title: str) -> Optional[Song]:
        """Return the first song with this exact title, if any."""
        pass

    @abstractmethod
    def list_songs(self) -> List[Song]:
        """All songs ordered by id."""
        pass

    @abstractmethod
    def delete_song(self, song_id: int) -> bool:
        """
        Delete a song and, by cascade, all of its fingerprints.

        Returns:
            True if a song was removed
        """
        pass

    @abstractmethod
    def count_fingerprints(self, song_id: Optional[int] = None) -> int:
        """Number of stored rows, for one song or overall."""
        pass

    def song_titles(self, song_ids: Iterable[int]) -> Dict[int, str]:
        """Map song ids to titles, skipping unknown ids."""
        titles = {}
        for song_id in set(song_ids):
            song = self.get_song(song_id)
            if song is not None:
                titles[song_id] = song.title
        return titles

    @property
    def num_songs(self) -> int:
        return len(self.list_songs())

    def close(self) -> None:
        """Release backend resources."""
