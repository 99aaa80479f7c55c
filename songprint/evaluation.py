"""
Accuracy evaluation on random snippets of indexed songs.

For each song a few snippets are cut at random positions, optionally mixed
with white noise, and recognized. A trial is correct when the recognized song
id is the song the snippet was cut from.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from tqdm import tqdm

from .audio import inject_noise
from .errors import InsufficientSignal
from .recognizer import LandmarkRecognizer

logger = logging.getLogger(__name__)


@dataclass
class Trial:
    song_id: int
    start_sec: float
    predicted_song_id: Optional[int]
    offset_seconds: Optional[float]

    @property
    def correct(self) -> bool:
        return self.predicted_song_id == self.song_id

    @property
    def offset_error(self) -> Optional[float]:
        if not self.correct or self.offset_seconds is None:
            return None
        return abs(self.offset_seconds - self.start_sec)


@dataclass
class EvaluationReport:
    snippet_seconds: float
    snr_db: Optional[float]
    trials: List[Trial] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.trials)

    @property
    def correct(self) -> int:
        return sum(t.correct for t in self.trials)

    @property
    def no_match(self) -> int:
        return sum(t.predicted_song_id is None for t in self.trials)

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.trials else 0.0

    @property
    def mean_offset_error(self) -> Optional[float]:
        errors = [t.offset_error for t in self.trials if t.offset_error is not None]
        return float(np.mean(errors)) if errors else None


def evaluate_snippets(
    recognizer: LandmarkRecognizer,
    songs: Dict[int, np.ndarray],
    snippets_per_song: int = 3,
    snippet_seconds: float = 6.0,
    snr_db: Optional[float] = None,
    seed: int = 42,
) -> EvaluationReport:
    """
    Recognize random snippets of already indexed songs.

    Args:
        recognizer: Recognizer whose store holds ``songs``
        songs: song_id -> mono samples at ``recognizer.config.sample_rate``
        snippets_per_song: Trials per song
        snippet_seconds: Snippet duration
        snr_db: Optional SNR of added white noise
        seed: Seed for snippet positions and noise

    Returns:
        An ``EvaluationReport``; songs shorter than a snippet are skipped
    """
    sr = recognizer.config.sample_rate
    rng = np.random.default_rng(seed)
    clip = int(snippet_seconds * sr)
    report = EvaluationReport(snippet_seconds=snippet_seconds, snr_db=snr_db)

    for song_id, samples in tqdm(sorted(songs.items()), desc="Evaluating", unit="song"):
        if len(samples) < clip:
            logger.warning("Song %d is shorter than a %.1fs snippet, skipping", song_id, snippet_seconds)
            continue
        for _ in range(snippets_per_song):
            start = int(rng.integers(0, len(samples) - clip + 1))
            snippet = samples[start:start + clip]
            if snr_db is not None:
                snippet = inject_noise(snippet, snr_db, rng)
            try:
                match, _ = recognizer.recognize(snippet, sr)
            except InsufficientSignal as exc:
                logger.debug("Snippet of song %d at %.2fs: %s", song_id, start / sr, exc)
                match = None
            report.trials.append(Trial(
                song_id=song_id,
                start_sec=start / sr,
                predicted_song_id=match.song_id if match else None,
                offset_seconds=match.aligned_offset_seconds if match else None,
            ))

    logger.info("Accuracy %.2f%% (%d/%d), %d without match",
                100 * report.accuracy, report.correct, report.total, report.no_match)
    return report
