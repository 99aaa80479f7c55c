"""
Spectrogram construction.

Samples are cut into overlapping windows of ``window_size`` samples every
``hop_size`` samples, tapered with the configured window function and turned
into magnitude spectra with a real FFT. Only the bins from 0 Hz up to
``max_frequency`` are kept. A trailing partial window is dropped, so a signal
of ``n`` samples yields ``(n - window_size) // hop_size + 1`` frames.

The batch builder and the streaming builder share the same analysis code and
produce the same frames for the same samples.
"""

import logging
import queue
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Iterator, List, Sequence, Union

import numpy as np
import scipy.fft
import scipy.signal
from numpy.lib.stride_tricks import sliding_window_view

from .config import DEFAULT_CONFIG, FingerprintConfig
from .errors import InsufficientSignal

logger = logging.getLogger(__name__)

# windows analysed per FFT call; bounds the temporary (frames x window) buffer
_FRAMES_PER_BLOCK = 256


@dataclass(frozen=True, eq=False)
class SpectrogramFrame:
    frame_index: int
    timestamp_seconds: float
    magnitudes: np.ndarray = field(repr=False)


@lru_cache(maxsize=8)
def _analysis_window(name: str, size: int) -> np.ndarray:
    window = scipy.signal.get_window(name, size)
    window.setflags(write=False)
    return window


def _analyze(segments: np.ndarray, config: FingerprintConfig) -> np.ndarray:
    """Magnitude spectra of a (frames, window_size) block of samples."""
    window = _analysis_window(config.window, config.window_size)
    out = np.empty((len(segments), config.n_bins), dtype=np.float32)
    for start in range(0, len(segments), _FRAMES_PER_BLOCK):
        block = segments[start:start + _FRAMES_PER_BLOCK] * window
        spectrum = scipy.fft.rfft(block, axis=-1)[:, :config.n_bins]
        # normalise by the window gain so a full-scale sine peaks near 0.5
        out[start:start + len(block)] = np.abs(spectrum) / window.sum()
    return out


def _as_mono(samples) -> np.ndarray:
    signal = np.asarray(samples, dtype=np.float64)
    if signal.ndim != 1:
        raise ValueError(f"expected mono samples (1-D), got shape {signal.shape}")
    return signal


class Spectrogram:
    """
    Time-ordered magnitude frames.

    ``magnitudes`` has shape ``(n_frames, n_bins)``; row ``i`` is the frame
    starting at ``i * frame_seconds``. Iterating yields ``SpectrogramFrame``
    objects in increasing time order.
    """

    def __init__(self, magnitudes: np.ndarray, config: FingerprintConfig = DEFAULT_CONFIG):
        magnitudes = np.asarray(magnitudes, dtype=np.float32)
        if magnitudes.ndim != 2 or magnitudes.shape[1] != config.n_bins:
            raise ValueError(
                f"magnitudes must have shape (n_frames, {config.n_bins}), got {magnitudes.shape}"
            )
        magnitudes.setflags(write=False)
        self.magnitudes = magnitudes
        self.config = config

    @classmethod
    def from_frames(cls, frames: Sequence[SpectrogramFrame],
                    config: FingerprintConfig = DEFAULT_CONFIG) -> "Spectrogram":
        """Reassemble frames (e.g. from a streaming builder) into a spectrogram."""
        for expected, frame in enumerate(frames):
            if frame.frame_index != expected:
                raise ValueError(
                    f"frames out of order: expected index {expected}, got {frame.frame_index}"
                )
        if not frames:
            return cls(np.zeros((0, config.n_bins), dtype=np.float32), config)
        return cls(np.stack([f.magnitudes for f in frames]), config)

    @property
    def n_frames(self) -> int:
        return self.magnitudes.shape[0]

    @property
    def n_bins(self) -> int:
        return self.magnitudes.shape[1]

    @property
    def times(self) -> np.ndarray:
        return np.arange(self.n_frames) * self.config.frame_seconds

    @property
    def frequencies(self) -> np.ndarray:
        return np.arange(self.n_bins) * self.config.bin_hz

    def frame(self, index: int) -> SpectrogramFrame:
        return SpectrogramFrame(index, index * self.config.frame_seconds, self.magnitudes[index])

    def __len__(self) -> int:
        return self.n_frames

    def __iter__(self) -> Iterator[SpectrogramFrame]:
        for i in range(self.n_frames):
            yield self.frame(i)


def build_spectrogram(samples, sample_rate: int,
                      config: FingerprintConfig = DEFAULT_CONFIG) -> Spectrogram:
    """
    Build the spectrogram of a mono sample stream.

    Args:
        samples: 1-D sequence of amplitudes at ``sample_rate``.
        sample_rate: Must equal ``config.sample_rate``; resample beforehand
            (see ``songprint.audio.to_canonical``).
        config: Pipeline configuration.

    Returns:
        A ``Spectrogram`` with at least one frame.

    Raises:
        InsufficientSignal: Fewer samples than one analysis window.
        ValueError: Wrong sample rate or non-mono input.
    """
    if sample_rate != config.sample_rate:
        raise ValueError(
            f"samples must be at {config.sample_rate} Hz, got {sample_rate} Hz; resample first"
        )
    signal = _as_mono(samples)
    if len(signal) < config.window_size:
        raise InsufficientSignal(
            f"{len(signal)} samples is shorter than one analysis window ({config.window_size})"
        )
    segments = sliding_window_view(signal, config.window_size)[::config.hop_size]
    magnitudes = _analyze(segments, config)
    logger.debug("Built spectrogram: %d frames x %d bins", *magnitudes.shape)
    return Spectrogram(magnitudes, config)


class StreamingSpectrogramBuilder:
    """
    Incremental spectrogram builder for audio that arrives in chunks.

    ``push`` returns the frames completed by each chunk; ``finish`` ends the
    stream and discards the incomplete trailing window, so the frames emitted
    over a whole stream equal ``build_spectrogram`` of the concatenated
    samples.
    """

    def __init__(self, config: FingerprintConfig = DEFAULT_CONFIG):
        self.config = config
        self._buffer = np.zeros(0, dtype=np.float64)
        self._next_index = 0
        self._finished = False

    @property
    def frames_emitted(self) -> int:
        return self._next_index

    @property
    def finished(self) -> bool:
        return self._finished

    def push(self, chunk) -> List[SpectrogramFrame]:
        if self._finished:
            raise RuntimeError("cannot push samples after finish()")
        cfg = self.config
        self._buffer = np.concatenate([self._buffer, _as_mono(chunk)])
        if len(self._buffer) < cfg.window_size:
            return []

        n_ready = (len(self._buffer) - cfg.window_size) // cfg.hop_size + 1
        segments = sliding_window_view(self._buffer, cfg.window_size)[::cfg.hop_size][:n_ready]
        magnitudes = _analyze(segments, cfg)
        frames = [
            SpectrogramFrame(idx, idx * cfg.frame_seconds, magnitudes[i])
            for i, idx in enumerate(range(self._next_index, self._next_index + n_ready))
        ]
        self._next_index += n_ready
        self._buffer = self._buffer[n_ready * cfg.hop_size:].copy()
        return frames

    def finish(self) -> None:
        if not self._finished and len(self._buffer):
            logger.debug("Stream ended, dropping %d samples of partial window", len(self._buffer))
        self._finished = True
        self._buffer = np.zeros(0, dtype=np.float64)


def _drain(q: queue.Queue) -> Iterator:
    while True:
        chunk = q.get()
        if chunk is None:
            return
        yield chunk


def iter_frames(chunks: Union[Iterable, queue.Queue],
                config: FingerprintConfig = DEFAULT_CONFIG) -> Iterator[SpectrogramFrame]:
    """
    Yield frames as chunks arrive.

    ``chunks`` is any iterable of sample arrays, or a (bounded) ``queue.Queue``
    filled by a producer thread. A ``None`` chunk ends the stream, so a
    producer signals the end by putting ``None`` on the queue.
    """
    if isinstance(chunks, queue.Queue):
        chunks = _drain(chunks)
    builder = StreamingSpectrogramBuilder(config)
    for chunk in chunks:
        if chunk is None:
            break
        yield from builder.push(chunk)
    builder.finish()
