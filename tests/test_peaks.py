"""
Tests for songprint/peaks.py: band-relative constellation peak picking.
"""

import numpy as np
import pytest

from songprint.config import DEFAULT_CONFIG, FingerprintConfig
from songprint.errors import InsufficientSignal
from songprint.peaks import band_bins, extract_peaks
from songprint.spectrogram import Spectrogram, build_spectrogram

from .conftest import SR, make_noise

CFG = DEFAULT_CONFIG


def _blank(n_frames: int = 40) -> np.ndarray:
    return np.zeros((n_frames, CFG.n_bins), dtype=np.float32)


def _peaks_of(magnitudes: np.ndarray, **overrides):
    cfg = FingerprintConfig(min_peaks=0, **overrides)
    return extract_peaks(Spectrogram(magnitudes, cfg), cfg)


class TestBandBins:
    def test_bands_are_ordered_and_disjoint(self):
        bands = band_bins(CFG)
        assert len(bands) == len(CFG.bands_hz)
        for (lo1, hi1), (lo2, hi2) in zip(bands, bands[1:]):
            assert lo1 < hi1 <= lo2 < hi2

    def test_last_band_within_spectrogram(self):
        assert band_bins(CFG)[-1][1] <= CFG.n_bins


class TestExtractPeaks:
    def test_isolated_point_is_a_peak(self):
        mags = _blank()
        mags[20, 100] = 1.0
        peaks = _peaks_of(mags)
        assert [(p.time_frame, p.frequency_bin) for p in peaks] == [(20, 100)]
        assert peaks[0].magnitude == pytest.approx(1.0)

    def test_plateau_is_not_a_peak(self):
        """Equal neighbours: neither point is strictly larger than its neighbourhood."""
        mags = _blank()
        mags[20, 100] = 1.0
        mags[20, 101] = 1.0
        assert _peaks_of(mags) == []

    def test_weaker_neighbour_suppressed(self):
        mags = _blank()
        mags[20, 100] = 1.0
        mags[22, 104] = 0.9
        assert [(p.time_frame, p.frequency_bin) for p in _peaks_of(mags)] == [(20, 100)]

    def test_points_outside_neighbourhood_both_kept(self):
        mags = _blank()
        mags[10, 100] = 1.0
        mags[10 + CFG.peak_time_radius + 1, 100] = 0.5
        assert len(_peaks_of(mags)) == 2

    def test_below_absolute_floor_ignored(self):
        mags = _blank()
        mags[20, 100] = CFG.min_magnitude / 2
        assert _peaks_of(mags) == []

    def test_below_band_threshold_ignored(self):
        """A bump barely above a loud band background is not a peak."""
        lo, hi = band_bins(CFG)[3]
        mags = _blank()
        mags[:, lo:hi] = 0.5
        mags[20, (lo + hi) // 2] = 0.6
        assert _peaks_of(mags) == []

    def test_outside_bands_never_peaks(self):
        mags = _blank()
        mags[20, 1] = 1.0  # ~5 Hz, below the lowest band
        assert _peaks_of(mags) == []

    def test_cap_per_band_keeps_strongest(self):
        lo, hi = band_bins(CFG)[-1]
        mags = _blank()
        bins = list(range(lo + 5, hi - 5, 2 * CFG.peak_freq_radius + 1))[:8]
        for i, b in enumerate(bins):
            mags[20, b] = 0.1 * (i + 1)
        peaks = _peaks_of(mags, max_peaks_per_band=3)
        assert [p.frequency_bin for p in peaks] == bins[-3:]

    def test_sorted_by_time_then_frequency(self):
        spec = build_spectrogram(make_noise(4, 3.0), SR)
        peaks = extract_peaks(spec)
        keys = [(p.time_frame, p.frequency_bin) for p in peaks]
        assert keys == sorted(keys)
        assert len(set(keys)) == len(keys)

    def test_deterministic(self, song_a):
        spec = build_spectrogram(song_a[:5 * SR], SR)
        assert extract_peaks(spec) == extract_peaks(spec)

    def test_silence_raises(self):
        spec = build_spectrogram(np.zeros(3 * SR), SR)
        with pytest.raises(InsufficientSignal):
            extract_peaks(spec)

    def test_music_has_enough_peaks(self, song_a):
        spec = build_spectrogram(song_a[:6 * SR], SR)
        assert len(extract_peaks(spec)) >= CFG.min_peaks
