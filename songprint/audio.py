"""Audio decoding and conditioning: everything before the spectrogram."""

import io
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import librosa
import numpy as np
import soundfile as sf

from .config import DEFAULT_CONFIG, FingerprintConfig
from .errors import DecodeError

logger = logging.getLogger(__name__)


def load_audio(path: Union[str, Path]) -> Tuple[np.ndarray, int]:
    try:
        signal, sr = sf.read(str(path), always_2d=False)
    except (sf.LibsndfileError, RuntimeError, OSError) as exc:
        raise DecodeError(f"cannot decode {path}: {exc}") from exc
    return np.asarray(signal), sr


def decode_bytes(data: bytes) -> Tuple[np.ndarray, int]:
    """Decode an in-memory audio file (e.g. an HTTP upload)."""
    if not data:
        raise DecodeError("empty audio payload")
    try:
        signal, sr = sf.read(io.BytesIO(data), always_2d=False)
    except (sf.LibsndfileError, RuntimeError) as exc:
        raise DecodeError(f"cannot decode audio payload: {exc}") from exc
    return np.asarray(signal), sr


def to_canonical(signal: np.ndarray, sample_rate: int, target_sr: int) -> np.ndarray:
    """
    Down-mix to mono and resample to ``target_sr`` as float32.

    ``signal`` is (num_samples,) or (num_samples, num_channels), the layout
    soundfile returns. Resampling is skipped when the rate already matches.
    """
    signal = np.asarray(signal, dtype=np.float32)
    if signal.ndim > 1:
        # (num_samples, num_channels) -> (channels, samples) for librosa
        signal = librosa.to_mono(signal.T)
    if sample_rate != target_sr:
        signal = librosa.resample(signal, orig_sr=sample_rate, target_sr=target_sr)
    return signal.astype(np.float32, copy=False)


def load_canonical(path: Union[str, Path], config: FingerprintConfig = DEFAULT_CONFIG) -> np.ndarray:
    signal, sr = load_audio(path)
    return to_canonical(signal, sr, config.sample_rate)


def cut_audio(signal: np.ndarray, sample_rate: int, clip_length_sec: float,
              start_sec: Optional[float] = None, seed: int = 42) -> np.ndarray:
    """
    Cut a clip of ``clip_length_sec`` seconds.

    Starts at ``start_sec`` if given, otherwise at a random (seeded) position.
    """
    total_samples = len(signal)
    clip_samples = int(clip_length_sec * sample_rate)
    if clip_samples <= 0:
        raise ValueError(f"clip_length_sec must be positive, got {clip_length_sec}")
    if clip_samples > total_samples:
        raise ValueError(
            f"clip of {clip_length_sec}s is longer than the signal ({total_samples / sample_rate:.2f}s)"
        )
    if start_sec is None:
        rng = np.random.default_rng(seed)
        start = int(rng.integers(0, total_samples - clip_samples + 1))
    else:
        start = int(round(start_sec * sample_rate))
        if start < 0 or start + clip_samples > total_samples:
            raise ValueError(f"clip [{start_sec}s, +{clip_length_sec}s] is outside the signal")
    return signal[start:start + clip_samples]


def inject_noise(signal: np.ndarray, snr_db: float,
                 rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Add white Gaussian noise to `signal` to get the desired SNR in dB.
    Assumes `signal` is a 1D float numpy array.
    """
    signal = signal.astype(float)

    # signal power (mean square)
    signal_power = np.mean(signal ** 2)
    if signal_power == 0:
        # silent signal, nothing to scale the noise against
        return signal

    noise_power = signal_power / (10 ** (snr_db / 10))
    rng = rng or np.random.default_rng()
    noise = rng.normal(0.0, np.sqrt(noise_power), size=signal.shape)
    return signal + noise
