"""
Peak picking.

A time-frequency point is a peak when it is strictly larger than every other
point of its ``(2 * peak_time_radius + 1) x (2 * peak_freq_radius + 1)``
neighbourhood and exceeds a threshold relative to its band: the band's mean
magnitude over the same time neighbourhood times ``peak_threshold_ratio``
(never below ``min_magnitude``). Per frame and band only the
``max_peaks_per_band`` strongest peaks are kept.
"""

import logging
import math
from typing import List, Tuple

import numpy as np
from scipy.ndimage import maximum_filter, uniform_filter1d

from .config import DEFAULT_CONFIG, FingerprintConfig
from .errors import InsufficientSignal
from .spectrogram import Spectrogram
from .types import Peak

logger = logging.getLogger(__name__)


def band_bins(config: FingerprintConfig = DEFAULT_CONFIG) -> List[Tuple[int, int]]:
    """Convert ``config.bands_hz`` to half-open ``[lo, hi)`` bin ranges."""
    bands = []
    for lo_hz, hi_hz in config.bands_hz:
        lo = math.ceil(lo_hz / config.bin_hz)
        hi = min(math.ceil(hi_hz / config.bin_hz), config.n_bins)
        if lo < hi:
            bands.append((lo, hi))
    return bands


def _neighbour_max(magnitudes: np.ndarray, config: FingerprintConfig) -> np.ndarray:
    """Maximum over each point's neighbourhood, excluding the point itself."""
    t, f = config.peak_time_radius, config.peak_freq_radius
    if t == 0 and f == 0:
        return np.zeros_like(magnitudes)
    footprint = np.ones((2 * t + 1, 2 * f + 1), dtype=bool)
    footprint[t, f] = False
    return maximum_filter(magnitudes, footprint=footprint, mode="constant", cval=0.0)


def _band_thresholds(magnitudes: np.ndarray, bands: List[Tuple[int, int]],
                     config: FingerprintConfig) -> np.ndarray:
    # bins outside every band can never be peaks
    threshold = np.full(magnitudes.shape, np.inf, dtype=np.float32)
    for lo, hi in bands:
        band_mean = magnitudes[:, lo:hi].mean(axis=1)
        local_mean = uniform_filter1d(band_mean, size=2 * config.peak_time_radius + 1, mode="nearest")
        floor = np.maximum(config.peak_threshold_ratio * local_mean, config.min_magnitude)
        threshold[:, lo:hi] = floor[:, None]
    return threshold


def _cap_per_band(t_idx: np.ndarray, f_idx: np.ndarray, mags: np.ndarray,
                  band_of_bin: np.ndarray, cap: int) -> np.ndarray:
    """Indices (into the candidate arrays) of the ``cap`` strongest peaks per frame and band."""
    bands = band_of_bin[f_idx]
    order = np.lexsort((f_idx, -mags, bands, t_idx))
    t_s, b_s = t_idx[order], bands[order]
    n = len(order)
    new_group = np.ones(n, dtype=bool)
    new_group[1:] = (t_s[1:] != t_s[:-1]) | (b_s[1:] != b_s[:-1])
    group_start = np.maximum.accumulate(np.where(new_group, np.arange(n), 0))
    rank = np.arange(n) - group_start
    return np.sort(order[rank < cap])


def extract_peaks(spectrogram: Spectrogram, config: FingerprintConfig = DEFAULT_CONFIG) -> List[Peak]:
    """
    Find the peaks of a spectrogram.

    Args:
        spectrogram: Output of ``build_spectrogram``.
        config: Pipeline configuration.

    Returns:
        Peaks in increasing ``time_frame`` order, ties by ascending
        ``frequency_bin``.

    Raises:
        InsufficientSignal: Fewer than ``config.min_peaks`` peaks were found.
    """
    magnitudes = spectrogram.magnitudes
    peaks: List[Peak] = []

    if magnitudes.size:
        bands = band_bins(config)
        is_peak = magnitudes > _neighbour_max(magnitudes, config)
        is_peak &= magnitudes > _band_thresholds(magnitudes, bands, config)

        # np.nonzero walks row-major: sorted by time, then frequency
        t_idx, f_idx = np.nonzero(is_peak)
        if len(t_idx):
            band_of_bin = np.full(magnitudes.shape[1], -1, dtype=np.int64)
            for i, (lo, hi) in enumerate(bands):
                band_of_bin[lo:hi] = i
            mags = magnitudes[t_idx, f_idx]
            keep = _cap_per_band(t_idx, f_idx, mags, band_of_bin, config.max_peaks_per_band)
            peaks = [
                Peak(int(t), int(f), float(m))
                for t, f, m in zip(t_idx[keep], f_idx[keep], mags[keep])
            ]

    logger.debug("Extracted %d peaks from %d frames", len(peaks), spectrogram.n_frames)
    if len(peaks) < config.min_peaks:
        raise InsufficientSignal(
            f"found {len(peaks)} peaks, at least {config.min_peaks} are required"
        )
    return peaks
