"""
Landmark fingerprinting pipeline: ingestion and recognition.

    samples -> spectrogram -> peaks -> landmarks -> store.insert_batch   (ingest)
    samples -> spectrogram -> peaks -> landmarks -> store.lookup -> vote (recognize)
"""

import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from .audio import cut_audio, inject_noise, load_audio, to_canonical
from .config import DEFAULT_CONFIG, FingerprintConfig
from .errors import InsufficientSignal, SongprintError, StorageError
from .hashing import hash_peaks
from .matching import Matcher
from .peaks import extract_peaks
from .spectrogram import Spectrogram, build_spectrogram, iter_frames
from .store.base import FingerprintStore
from .types import Landmark, MatchResult, Song

logger = logging.getLogger(__name__)


class Timer:
    """Context manager for timing pipeline stages, logged at DEBUG."""

    def __init__(self):
        self.timings: Dict[str, float] = {}

    @contextmanager
    def measure(self, label: str):
        """Time a block of code and log the result."""
        start = time.perf_counter()
        yield
        elapsed = time.perf_counter() - start
        self.timings[label] = elapsed
        logger.debug("%s: %.4fs", label, elapsed)

    @property
    def total(self) -> float:
        return sum(self.timings.values())


def _landmarks_from_spectrogram(spectrogram: Spectrogram, config: FingerprintConfig,
                                timer: Optional[Timer] = None) -> List[Landmark]:
    timer = timer or Timer()
    with timer.measure("Find peaks"):
        peaks = extract_peaks(spectrogram, config)
    with timer.measure("Build hashes"):
        landmarks = hash_peaks(peaks, config)
    if not landmarks:
        raise InsufficientSignal(f"{len(peaks)} peaks produced no landmark pairs")
    return landmarks


def fingerprint_samples(samples, sample_rate: int, config: FingerprintConfig = DEFAULT_CONFIG,
                        timer: Optional[Timer] = None) -> List[Landmark]:
    """
    Landmarks of a mono sample stream at ``config.sample_rate``.

    Raises:
        InsufficientSignal: Too short or too quiet to fingerprint
    """
    timer = timer or Timer()
    with timer.measure("Extract spectrogram"):
        spectrogram = build_spectrogram(samples, sample_rate, config)
    return _landmarks_from_spectrogram(spectrogram, config, timer)


def folder_title(folder: Path, audio_path: Path) -> str:
    """Title of a song found under ``folder``: its relative path without extension."""
    return Path(audio_path).relative_to(folder).with_suffix("").as_posix()


class LandmarkRecognizer:
    """
    Landmark (peak-pair) fingerprinting and recognition over a fingerprint store.

    Audio of any rate and channel count is accepted; it is down-mixed and
    resampled to ``config.sample_rate`` before analysis.
    """

    def __init__(self, store: FingerprintStore, config: FingerprintConfig = DEFAULT_CONFIG):
        """
        Args:
            store: Backend holding songs and fingerprints
            config: Pipeline configuration, shared by ingestion and recognition
        """
        self.store = store
        self.config = config
        self.matcher = Matcher(store, config)
        self._index_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "Landmark"

    @property
    def num_indexed_songs(self) -> int:
        return self.store.num_songs

    def fingerprint(self, samples: np.ndarray, sample_rate: int,
                    timer: Optional[Timer] = None) -> List[Landmark]:
        signal = to_canonical(samples, sample_rate, self.config.sample_rate)
        return fingerprint_samples(signal, self.config.sample_rate, self.config, timer)

    def ingest(self, song_id: int, samples: np.ndarray, sample_rate: int) -> int:
        """
        Fingerprint audio and store it under an existing song id.

        Fingerprints are computed in full before anything is written. Safe to
        retry after a StorageError: inserts are idempotent.

        Returns:
            Number of new fingerprint rows
        """
        landmarks = self.fingerprint(samples, sample_rate)
        added = self.store.insert_batch(song_id, landmarks)
        logger.info("Song %d: %d landmarks, %d new rows", song_id, len(landmarks), added)
        return added

    def _store_song(self, title: str, landmarks: List[Landmark]) -> Song:
        song = self.store.add_song(title)
        try:
            added = self.store.insert_batch(song.id, landmarks)
        except SongprintError:
            try:
                self.store.delete_song(song.id)
            except StorageError as cleanup_exc:
                logger.error("Could not remove song %d after failed ingestion: %s", song.id, cleanup_exc)
            raise
        logger.info("Indexed '%s' as song %d (%d rows)", title, song.id, added)
        return song

    def add_song(self, title: str, samples: np.ndarray, sample_rate: int) -> Song:
        """Create a song entry and ingest its audio; the entry is removed again if that fails."""
        landmarks = self.fingerprint(samples, sample_rate)
        return self._store_song(title, landmarks)

    def index_song(self, audio_path: Path, title: Optional[str] = None) -> Optional[Song]:
        """Add a single song file, titled ``title`` or else the file name without extension.

        Returns None if a song with that title is already indexed. Concurrent
        calls with the same title store it once.
        """
        audio_path = Path(audio_path)
        song_name = title if title is not None else audio_path.stem
        if self.store.find_song(song_name) is not None:
            logger.debug("'%s' already indexed, skipping", song_name)
            return None
        signal, sr = load_audio(audio_path)
        landmarks = self.fingerprint(signal, sr)
        with self._index_lock:
            if self.store.find_song(song_name) is not None:
                logger.debug("'%s' indexed by another worker, skipping", song_name)
                return None
            return self._store_song(song_name, landmarks)

    def index_folder(self, folder: Path, pattern: str = "*.flac", n_jobs: int = 1) -> int:
        """
        Index all songs in a folder concurrently.

        Each song is decoded and fingerprinted by its own worker thread.
        Titles are paths relative to ``folder`` without extension, so
        ``x/track.wav`` and ``y/track.wav`` are two songs. Files that fail
        are logged and skipped.

        Returns:
            Number of songs newly indexed
        """
        folder = Path(folder)
        audio_paths = sorted(folder.rglob(pattern))

        def index_one(path: Path) -> bool:
            try:
                return self.index_song(path, title=folder_title(folder, path)) is not None
            except SongprintError as exc:
                logger.warning("Skipping %s: %s", path.name, exc)
                return False

        results = Parallel(n_jobs=n_jobs, prefer="threads", return_as="generator")(
            delayed(index_one)(p) for p in audio_paths
        )
        count = 0
        for added in tqdm(results, total=len(audio_paths), desc="Indexing songs", unit="song"):
            count += int(added)
        return count

    def _match(self, landmarks: List[Landmark], timer: Timer,
               top_k: int) -> Tuple[Optional[MatchResult], Dict[str, Any]]:
        with timer.measure("Lookup"):
            rows = self.matcher.lookup(landmarks)
        with timer.measure("Hash matching and voting"):
            histogram = self.matcher.vote(landmarks, rows)
            match = self.matcher.decide(histogram)

        candidates = histogram.ranked()[:top_k]
        titles = self.store.song_titles([c.song_id for c in candidates])
        best = candidates[0].song_id if candidates else None

        logger.debug("Query landmarks: %d, rows: %d, candidate songs: %d",
                     len(landmarks), len(rows), len(histogram))
        metadata = {
            "num_query_hashes": len(landmarks),
            "num_db_rows": len(rows),
            "num_total_matches": histogram.total_votes,
            "num_candidate_songs": len(histogram),
            "title": titles.get(match.song_id) if match else None,
            "candidates": [
                {"song_id": c.song_id, "title": titles.get(c.song_id), "votes": c.votes,
                 "offset_seconds": c.offset_seconds}
                for c in candidates
            ],
            "matching_pairs": histogram.pairs(best) if best is not None else [],
            "timings": timer.timings,
            "total_time": timer.total,
        }
        return match, metadata

    def recognize(self, samples: np.ndarray, sample_rate: int,
                  top_k: int = 5) -> Tuple[Optional[MatchResult], Dict[str, Any]]:
        """
        Recognize a song from a recorded snippet.

        Args:
            samples: Snippet audio, any rate, mono or (samples, channels)
            sample_rate: Rate of ``samples``
            top_k: Number of ranked candidates reported in the metadata

        Returns:
            Tuple of (match, metadata)
            - match: The confident ``MatchResult``, or None for no match
            - metadata: Counts, ranked candidates, matching pairs and timings

        Raises:
            InsufficientSignal: The snippet is too short or too quiet
            StorageError: The store lookup failed
        """
        timer = Timer()
        with timer.measure("Resample"):
            signal = to_canonical(samples, sample_rate, self.config.sample_rate)
        landmarks = fingerprint_samples(signal, self.config.sample_rate, self.config, timer)
        return self._match(landmarks, timer, top_k)

    def prepare_query(
        self,
        query_path: Path,
        clip_length_sec: Optional[float] = None,
        start_sec: Optional[float] = None,
        snr_db: Optional[float] = None,
    ) -> np.ndarray:
        """
        Load a query file as canonical mono audio, optionally cut and degraded.

        Args:
            query_path: Path to the audio file to recognize
            clip_length_sec: Optional clip length in seconds
            start_sec: Clip start; random (seeded) if omitted
            snr_db: Optional SNR for noise injection
        """
        signal, sample_rate = load_audio(query_path)
        signal = to_canonical(signal, sample_rate, self.config.sample_rate)
        if clip_length_sec is not None:
            signal = cut_audio(signal, self.config.sample_rate, clip_length_sec, start_sec)
        if snr_db is not None:
            signal = inject_noise(signal, snr_db)
        return signal

    def recognize_file(
        self,
        query_path: Path,
        clip_length_sec: Optional[float] = None,
        start_sec: Optional[float] = None,
        snr_db: Optional[float] = None,
        top_k: int = 5,
    ) -> Tuple[Optional[MatchResult], Dict[str, Any]]:
        """Recognize an audio file, optionally cut and degraded first (see ``prepare_query``)."""
        signal = self.prepare_query(query_path, clip_length_sec, start_sec, snr_db)
        return self.recognize(signal, self.config.sample_rate, top_k)

    def recognize_stream(self, chunks: Iterable,
                         top_k: int = 5) -> Tuple[Optional[MatchResult], Dict[str, Any]]:
        """
        Recognize audio delivered in chunks (mono, at ``config.sample_rate``).

        Frames are computed as chunks arrive; matching starts when the
        iterable is exhausted or yields a ``None`` chunk.
        """
        timer = Timer()
        with timer.measure("Extract spectrogram"):
            frames = list(iter_frames(chunks, self.config))
        if not frames:
            raise InsufficientSignal("stream ended before one full analysis window")
        spectrogram = Spectrogram.from_frames(frames, self.config)
        landmarks = _landmarks_from_spectrogram(spectrogram, self.config, timer)
        return self._match(landmarks, timer, top_k)
