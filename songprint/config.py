"""
Configuration for the landmark fingerprinting pipeline.

``FingerprintConfig`` is an immutable value built once and passed to every
stage (spectrogram, peaks, hashing, matching). Changing any field changes the
fingerprints, so ingestion and recognition must share the same instance.
"""

import os
from dataclasses import dataclass
from typing import Tuple

# ---------- DEPLOYMENT ---------- #

DB_PATH = os.getenv("SONGPRINT_DB_PATH", "fingerprints/songprint.sqlite3")
LOG_LEVEL = os.getenv("SONGPRINT_LOG_LEVEL", "INFO")

# Frequency bands in Hz. Peaks are thresholded against the energy of their own
# band so that the naturally louder low end does not drown the rest.
BANDS_HZ: Tuple[Tuple[float, float], ...] = (
    (40.0, 110.0),      # very low
    (110.0, 220.0),     # low
    (220.0, 440.0),     # low-mid
    (440.0, 880.0),     # mid
    (880.0, 1760.0),    # mid-high
    (1760.0, 5000.0),   # high
)


@dataclass(frozen=True)
class FingerprintConfig:
    """
    Tunable parameters of the fingerprinting and matching pipeline.

    Attributes:
        sample_rate: Canonical sample rate in Hz. Audio is resampled to this
            rate before analysis.
        window_size: Samples per analysis window (FFT size).
        hop_size: Samples between consecutive windows. 11025 / 368 ~ 30 fps.
        window: Window function name understood by ``scipy.signal.get_window``.
        max_frequency: Highest frequency kept in the spectrogram, in Hz.
        bands_hz: Frequency bands used for band-relative peak thresholds.
        peak_time_radius: Half-width of the peak neighbourhood, in frames.
        peak_freq_radius: Half-height of the peak neighbourhood, in bins.
        peak_threshold_ratio: A peak must exceed this multiple of its band's
            local mean magnitude.
        min_magnitude: Absolute magnitude floor; keeps silence peak-free.
        max_peaks_per_band: Strongest peaks kept per band per frame.
        min_peaks: Fewer peaks than this is ``InsufficientSignal``.
        fan_out: Maximum targets paired with each anchor.
        target_dt_min: Minimum anchor/target distance, in frames.
        target_dt_max: Maximum anchor/target distance, in frames.
        target_freq_base_hz: Constant part of the target zone height.
        target_freq_slope: Part of the target zone height proportional to
            the anchor frequency.
        freq_fuzz: Frequency bins are floored to multiples of this.
        time_fuzz: Time deltas are floored to multiples of this.
        freq_bits: Width of each frequency field in the hash.
        delta_bits: Width of the time-delta field in the hash.
        offset_bucket_seconds: Resolution of the offset histogram.
        offset_smoothing: Neighbouring buckets (each side) summed into a score.
        min_votes: Votes the winning song needs to be reported.
        min_vote_ratio: Winner must have at least this multiple of the
            runner-up song's votes.
    """

    sample_rate: int = 11025
    window_size: int = 2048
    hop_size: int = 368
    window: str = "hann"
    max_frequency: float = 5000.0
    bands_hz: Tuple[Tuple[float, float], ...] = BANDS_HZ

    peak_time_radius: int = 6
    peak_freq_radius: int = 10
    peak_threshold_ratio: float = 1.75
    min_magnitude: float = 1e-4
    max_peaks_per_band: int = 5
    min_peaks: int = 10

    fan_out: int = 5
    target_dt_min: int = 1
    target_dt_max: int = 30
    target_freq_base_hz: float = 40.0
    target_freq_slope: float = 0.4
    freq_fuzz: int = 2
    time_fuzz: int = 2
    freq_bits: int = 12
    delta_bits: int = 12

    offset_bucket_seconds: float = 0.05
    offset_smoothing: int = 1
    min_votes: int = 10
    min_vote_ratio: float = 1.5

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.window_size <= 0:
            raise ValueError(f"window_size must be positive, got {self.window_size}")
        if not 0 < self.hop_size <= self.window_size:
            raise ValueError(
                f"hop_size must be in (0, window_size={self.window_size}], got {self.hop_size}"
            )
        if not 0 < self.max_frequency <= self.sample_rate / 2:
            raise ValueError(
                f"max_frequency must be in (0, {self.sample_rate / 2}], got {self.max_frequency}"
            )
        if not self.bands_hz:
            raise ValueError("bands_hz must not be empty")
        for lo, hi in self.bands_hz:
            if not 0 <= lo < hi:
                raise ValueError(f"invalid band ({lo}, {hi})")
        if self.peak_time_radius < 0 or self.peak_freq_radius < 0:
            raise ValueError("peak neighbourhood radii must be non-negative")
        if self.peak_threshold_ratio <= 0:
            raise ValueError(
                f"peak_threshold_ratio must be positive, got {self.peak_threshold_ratio}"
            )
        if self.min_magnitude < 0:
            raise ValueError(f"min_magnitude must be non-negative, got {self.min_magnitude}")
        if self.max_peaks_per_band <= 0:
            raise ValueError(
                f"max_peaks_per_band must be positive, got {self.max_peaks_per_band}"
            )
        if self.min_peaks < 0:
            raise ValueError(f"min_peaks must be non-negative, got {self.min_peaks}")
        if self.fan_out <= 0:
            raise ValueError(f"fan_out must be positive, got {self.fan_out}")
        if not 0 <= self.target_dt_min <= self.target_dt_max:
            raise ValueError(
                f"target zone must satisfy 0 <= target_dt_min <= target_dt_max, "
                f"got ({self.target_dt_min}, {self.target_dt_max})"
            )
        if self.freq_fuzz <= 0 or self.time_fuzz <= 0:
            raise ValueError("freq_fuzz and time_fuzz must be positive")
        if self.freq_bits <= 0 or self.delta_bits <= 0:
            raise ValueError("freq_bits and delta_bits must be positive")
        if 2 * self.freq_bits + self.delta_bits > 63:
            raise ValueError(
                f"hash layout needs {2 * self.freq_bits + self.delta_bits} bits, "
                f"at most 63 fit a signed 64-bit column"
            )
        if (self.window_size // 2) // self.freq_fuzz >= 1 << self.freq_bits:
            raise ValueError(
                f"freq_bits={self.freq_bits} cannot hold {self.window_size // 2 + 1} bins"
            )
        if self.target_dt_max // self.time_fuzz >= 1 << self.delta_bits:
            raise ValueError(
                f"delta_bits={self.delta_bits} cannot hold target_dt_max={self.target_dt_max}"
            )
        if self.offset_bucket_seconds <= 0:
            raise ValueError(
                f"offset_bucket_seconds must be positive, got {self.offset_bucket_seconds}"
            )
        if self.offset_smoothing < 0:
            raise ValueError(
                f"offset_smoothing must be non-negative, got {self.offset_smoothing}"
            )
        if self.min_votes < 1:
            raise ValueError(f"min_votes must be at least 1, got {self.min_votes}")
        if self.min_vote_ratio < 1.0:
            raise ValueError(f"min_vote_ratio must be >= 1.0, got {self.min_vote_ratio}")

    @property
    def frame_seconds(self) -> float:
        """Time between consecutive frames."""
        return self.hop_size / self.sample_rate

    @property
    def bin_hz(self) -> float:
        """Width of one FFT bin in Hz."""
        return self.sample_rate / self.window_size

    @property
    def n_bins(self) -> int:
        """Number of frequency bins kept (0 Hz up to ``max_frequency``)."""
        return min(self.window_size // 2, int(self.max_frequency / self.bin_hz)) + 1


DEFAULT_CONFIG = FingerprintConfig()
