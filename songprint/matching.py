"""
Offset-histogram voting.

Every stored row that shares a hash with the query is a vote for one song at
one time alignment, ``delta = db_offset - query_offset``. Deltas are bucketed
at ``offset_bucket_seconds``. A true match piles its votes into one bucket
(or a bucket and its neighbour when the delta sits on a boundary, hence the
``offset_smoothing`` window); random collisions scatter.
"""

import logging
import math
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, FingerprintConfig
from .errors import InsufficientSignal
from .store.base import FingerprintStore
from .types import CandidateScore, Landmark, MatchResult, StoredFingerprint

logger = logging.getLogger(__name__)


class OffsetHistogram:
    """Per-song vote counts over offset buckets."""

    def __init__(self, bucket_seconds: float, smoothing: int = 0, keep_pairs: bool = True):
        self.bucket_seconds = bucket_seconds
        self.smoothing = smoothing
        self.keep_pairs = keep_pairs
        self.counts: Dict[int, Counter] = defaultdict(Counter)
        self._pairs: Dict[int, List[Tuple[float, float]]] = defaultdict(list)

    def bucket(self, delta: float) -> int:
        # round half up; Python's round() would send 0.5 and 1.5 to the same bucket
        return math.floor(delta / self.bucket_seconds + 0.5)

    def add(self, song_id: int, query_offset: float, db_offset: float) -> None:
        self.counts[song_id][self.bucket(db_offset - query_offset)] += 1
        if self.keep_pairs:
            self._pairs[song_id].append((query_offset, db_offset))

    def pairs(self, song_id: int) -> List[Tuple[float, float]]:
        """(query_offset, db_offset) pairs that voted for ``song_id``."""
        return list(self._pairs.get(song_id, ()))

    @property
    def total_votes(self) -> int:
        return sum(sum(c.values()) for c in self.counts.values())

    def __len__(self) -> int:
        return len(self.counts)

    def best(self, song_id: int) -> Optional[CandidateScore]:
        """Best smoothed bucket of one song; ties go to the larger raw count, then the earlier bucket."""
        counts = self.counts.get(song_id)
        if not counts:
            return None
        s = self.smoothing
        best_key = None
        best_bucket = 0
        for b, raw in counts.items():
            score = raw + sum(counts.get(b + k, 0) + counts.get(b - k, 0) for k in range(1, s + 1))
            key = (score, raw, -b)
            if best_key is None or key > best_key:
                best_key, best_bucket = key, b
        return CandidateScore(
            song_id=song_id,
            votes=best_key[0],
            total_votes=sum(counts.values()),
            offset_bucket=best_bucket,
            offset_seconds=best_bucket * self.bucket_seconds,
        )

    def ranked(self) -> List[CandidateScore]:
        """Best window of every song, most votes first; ties by ascending song id."""
        scores = [self.best(song_id) for song_id in self.counts]
        return sorted(scores, key=lambda c: (-c.votes, c.song_id))


class Matcher:
    """
    Turns query landmarks into a match decision.

    A candidate is reported only if its winning window has at least
    ``min_votes`` votes and at least ``min_vote_ratio`` times (and strictly
    more than) the votes of the best other song.
    """

    def __init__(self, store: FingerprintStore, config: FingerprintConfig = DEFAULT_CONFIG):
        self.store = store
        self.config = config

    def histogram(self, keep_pairs: bool = True) -> OffsetHistogram:
        return OffsetHistogram(self.config.offset_bucket_seconds, self.config.offset_smoothing,
                               keep_pairs=keep_pairs)

    def lookup(self, query: Sequence[Landmark]) -> List[StoredFingerprint]:
        if not query:
            raise InsufficientSignal("no query landmarks to match")
        return self.store.lookup({h for h, _ in query})

    def vote(self, query: Iterable[Landmark], rows: Iterable[StoredFingerprint],
             keep_pairs: bool = True) -> OffsetHistogram:
        # duplicate (hash, offset) pairs in the query vote once
        query_offsets: Dict[int, List[float]] = defaultdict(list)
        for h, offset in sorted(set(query)):
            query_offsets[h].append(offset)

        histogram = self.histogram(keep_pairs)
        for song_id, h, db_offset in rows:
            for query_offset in query_offsets.get(h, ()):
                histogram.add(song_id, query_offset, db_offset)
        return histogram

    def decide(self, histogram: OffsetHistogram) -> Optional[MatchResult]:
        ranked = histogram.ranked()
        if not ranked:
            logger.debug("No candidate songs")
            return None

        winner = ranked[0]
        runner_up = ranked[1].votes if len(ranked) > 1 else 0
        if winner.votes < self.config.min_votes:
            logger.debug("Best candidate %d has %d votes, below minimum %d",
                         winner.song_id, winner.votes, self.config.min_votes)
            return None
        if winner.votes <= runner_up or winner.votes < self.config.min_vote_ratio * runner_up:
            logger.debug("Ambiguous: song %d has %d votes vs runner-up %d",
                         winner.song_id, winner.votes, runner_up)
            return None

        return MatchResult(
            song_id=winner.song_id,
            votes=winner.votes,
            runner_up_votes=runner_up,
            total_song_votes=winner.total_votes,
            confidence=winner.votes / winner.total_votes,
            aligned_offset_seconds=winner.offset_seconds,
        )

    def recognize(self, query: Sequence[Landmark]) -> Optional[MatchResult]:
        """
        Match query landmarks against the store.

        Returns:
            The confident match, or None (no match). A lookup without rows is
            a no match, not an error.

        Raises:
            InsufficientSignal: ``query`` is empty
            StorageError: The store lookup failed
        """
        return self.decide(self.vote(query, self.lookup(query), keep_pairs=False))

    def rank(self, query: Sequence[Landmark], top_k: int = 5) -> List[CandidateScore]:
        """Top ``top_k`` candidate songs without applying the acceptance thresholds."""
        return self.vote(query, self.lookup(query), keep_pairs=False).ranked()[:top_k]
