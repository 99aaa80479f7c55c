"""Value types shared across the pipeline."""

from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple


class Peak(NamedTuple):
    time_frame: int
    frequency_bin: int
    magnitude: float


class Landmark(NamedTuple):
    """A landmark hash and the anchor's absolute time in seconds."""

    hash: int
    offset: float


class StoredFingerprint(NamedTuple):
    """A fingerprint row as returned by ``FingerprintStore.lookup``."""

    song_id: int
    hash: int
    offset: float


class LandmarkFields(NamedTuple):
    """Decoded hash fields, quantized to the fuzz factors used to encode them."""

    anchor_bin: int
    target_bin: int
    delta_frames: int


@dataclass(frozen=True)
class Song:
    id: int
    title: str
    created_at: datetime


@dataclass(frozen=True)
class CandidateScore:
    """Best time-alignment hypothesis of one candidate song."""

    song_id: int
    votes: int
    total_votes: int
    offset_bucket: int
    offset_seconds: float


@dataclass(frozen=True)
class MatchResult:
    """
    A confident match.

    Attributes:
        song_id: Id of the recognized song.
        votes: Votes in the winning offset window.
        runner_up_votes: Best window votes of the second-best distinct song.
        total_song_votes: All votes the winning song received.
        confidence: ``votes / total_song_votes``, in [0, 1].
        aligned_offset_seconds: Where the snippet starts inside the song.
    """

    song_id: int
    votes: int
    runner_up_votes: int
    total_song_votes: int
    confidence: float
    aligned_offset_seconds: float

    @property
    def margin(self) -> int:
        return self.votes - self.runner_up_votes
