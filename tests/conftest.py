"""
Shared fixtures for the test suite.

Audio is synthetic and seeded: a "song" is a sequence of overlapping notes,
each a few harmonics with a short attack and exponential decay. Every seed
gives a different melody, so songs are distinguishable by their landmarks.
"""

import numpy as np
import pytest

from songprint.config import DEFAULT_CONFIG
from songprint.recognizer import LandmarkRecognizer
from songprint.store import MemoryFingerprintStore, SQLiteFingerprintStore

SR = DEFAULT_CONFIG.sample_rate
HOP = DEFAULT_CONFIG.hop_size
SONG_SECONDS = 40.0


# ---------------------------------------------------------------------------
# Synthetic audio
# ---------------------------------------------------------------------------


def make_song(seed: int, seconds: float = SONG_SECONDS, sr: int = SR) -> np.ndarray:
    """Deterministic melody of decaying harmonic notes, peak amplitude 0.8."""
    rng = np.random.default_rng(seed)
    n = int(seconds * sr)
    out = np.zeros(n)
    t = 0.0
    while t < seconds - 0.5:
        f0 = rng.uniform(300.0, 1200.0)
        start = int(t * sr)
        length = min(int(rng.uniform(0.4, 0.8) * sr), n - start)
        tt = np.arange(length) / sr
        envelope = np.minimum(tt / 0.01, 1.0) * np.exp(-4.0 * tt)
        note = sum(
            amp * np.sin(2 * np.pi * f0 * k * tt + rng.uniform(0, 2 * np.pi))
            for k, amp in ((1, 1.0), (2, 0.5), (3, 0.25))
        )
        out[start:start + length] += rng.uniform(0.3, 1.0) * envelope * note
        t += rng.uniform(0.2, 0.35)
    return (0.8 * out / np.max(np.abs(out))).astype(np.float32)


def make_noise(seed: int, seconds: float, sr: int = SR, std: float = 0.1) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return (std * rng.standard_normal(int(seconds * sr))).astype(np.float32)


def snippet(song: np.ndarray, start_frame: int, seconds: float) -> np.ndarray:
    """Cut a snippet starting exactly on a frame boundary of the song."""
    start = start_frame * HOP
    return song[start:start + int(seconds * SR)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def song_a() -> np.ndarray:
    return make_song(1)


@pytest.fixture(scope="session")
def song_b() -> np.ndarray:
    return make_song(2)


@pytest.fixture(scope="session")
def song_c() -> np.ndarray:
    return make_song(3)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    """An empty fingerprint store of each backend."""
    if request.param == "memory":
        s = MemoryFingerprintStore()
    else:
        s = SQLiteFingerprintStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def indexed(store, song_a, song_b, song_c):
    """Recognizer with songs A, B and C ingested; returns (recognizer, {title: Song})."""
    recognizer = LandmarkRecognizer(store)
    songs = {
        "song_a": recognizer.add_song("song_a", song_a, SR),
        "song_b": recognizer.add_song("song_b", song_b, SR),
        "song_c": recognizer.add_song("song_c", song_c, SR),
    }
    return recognizer, songs
