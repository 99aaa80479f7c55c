"""
Tests for songprint/hashing.py: landmark encoding and anchor/target pairing.
"""

import pytest

from songprint.config import DEFAULT_CONFIG, FingerprintConfig
from songprint.hashing import decode_landmark, encode_landmark, hash_peaks
from songprint.peaks import extract_peaks
from songprint.spectrogram import build_spectrogram
from songprint.types import Peak

from .conftest import SR

CFG = DEFAULT_CONFIG


# ---------------------------------------------------------------------------
# encode_landmark / decode_landmark
# ---------------------------------------------------------------------------


class TestEncodeLandmark:
    def test_decode_inverts_encode_on_fuzz_multiples(self):
        h = encode_landmark(120, 130, 14)
        assert decode_landmark(h) == (120, 130, 14)

    def test_fuzz_floors_fields(self):
        """Bin 43 → 42 and dt 21 → 20 with fuzz factor 2."""
        assert encode_landmark(43, 131, 21) == encode_landmark(42, 130, 20)
        assert decode_landmark(encode_landmark(43, 131, 21)) == (42, 130, 20)

    def test_field_layout(self):
        """[anchor | target | dt], 12 bits each, each storing value // fuzz."""
        h = encode_landmark(2, 4, 6)
        assert h == (1 << 24) | (2 << 12) | 3

    def test_distinct_fields_give_distinct_hashes(self):
        assert encode_landmark(100, 120, 10) != encode_landmark(120, 100, 10)
        assert encode_landmark(100, 120, 10) != encode_landmark(100, 120, 12)

    def test_fits_signed_64_bits(self):
        top = CFG.n_bins - 1
        assert encode_landmark(top, top, CFG.target_dt_max) < 2 ** 63

    def test_negative_raises(self):
        with pytest.raises(ValueError):
            encode_landmark(-2, 10, 4)

    def test_overflowing_field_raises(self):
        with pytest.raises(ValueError):
            encode_landmark(2 * (1 << CFG.freq_bits), 10, 4)
        with pytest.raises(ValueError):
            encode_landmark(10, 10, 2 * (1 << CFG.delta_bits))

    def test_decode_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            decode_landmark(-1)
        with pytest.raises(ValueError):
            decode_landmark(1 << 36)

    def test_custom_layout(self):
        cfg = FingerprintConfig(freq_fuzz=1, time_fuzz=1, freq_bits=11, delta_bits=6)
        assert decode_landmark(encode_landmark(1000, 3, 30, cfg), cfg) == (1000, 3, 30)


# ---------------------------------------------------------------------------
# hash_peaks
# ---------------------------------------------------------------------------


class TestHashPeaks:
    def test_single_pair(self):
        peaks = [Peak(10, 100, 1.0), Peak(14, 104, 0.5)]
        landmarks = hash_peaks(peaks)
        assert len(landmarks) == 1
        assert landmarks[0].hash == encode_landmark(100, 104, 4)
        assert landmarks[0].offset == pytest.approx(10 * CFG.frame_seconds)

    def test_no_pair_with_same_frame_by_default(self):
        """target_dt_min = 1: simultaneous peaks are not paired."""
        assert hash_peaks([Peak(10, 100, 1.0), Peak(10, 104, 0.5)]) == []

    def test_no_self_pairs_with_zero_dt_min(self):
        cfg = FingerprintConfig(target_dt_min=0)
        landmarks = hash_peaks([Peak(10, 100, 1.0), Peak(10, 104, 0.5)], cfg)
        assert [lm.hash for lm in landmarks] == [encode_landmark(100, 104, 0, cfg)]

    def test_target_too_late_ignored(self):
        peaks = [Peak(0, 100, 1.0), Peak(CFG.target_dt_max + 1, 100, 1.0)]
        assert hash_peaks(peaks) == []

    def test_target_outside_frequency_zone_ignored(self):
        """Zone half-height at bin 100 is (40 + 0.4 * 100 * bin_hz) / bin_hz ≈ 47 bins."""
        half_height = CFG.target_freq_base_hz / CFG.bin_hz + CFG.target_freq_slope * 100
        inside = int(half_height)
        outside = int(half_height) + 1
        assert len(hash_peaks([Peak(0, 100, 1.0), Peak(5, 100 + inside, 1.0)])) == 1
        assert hash_peaks([Peak(0, 100, 1.0), Peak(5, 100 + outside, 1.0)]) == []

    def test_fan_out_keeps_strongest_targets(self):
        anchor = Peak(0, 200, 1.0)
        targets = [Peak(dt, 200, 0.1 * dt) for dt in range(1, 9)]
        cfg = FingerprintConfig(fan_out=3, time_fuzz=1)
        landmarks = [lm for lm in hash_peaks([anchor] + targets, cfg) if lm.offset == 0.0]
        deltas = sorted(decode_landmark(lm.hash, cfg).delta_frames for lm in landmarks)
        assert deltas == [6, 7, 8]

    def test_input_order_does_not_matter(self):
        peaks = [Peak(3, 150, 0.4), Peak(0, 100, 1.0), Peak(5, 120, 0.7), Peak(2, 110, 0.2)]
        assert hash_peaks(peaks) == hash_peaks(sorted(peaks, reverse=True))

    def test_empty(self):
        assert hash_peaks([]) == []

    def test_offsets_are_anchor_times(self, song_a):
        peaks = extract_peaks(build_spectrogram(song_a[:6 * SR], SR))
        landmarks = hash_peaks(peaks)
        anchor_times = {p.time_frame * CFG.frame_seconds for p in peaks}
        assert landmarks
        assert all(lm.offset in anchor_times for lm in landmarks)

    def test_deterministic(self, song_a):
        peaks = extract_peaks(build_spectrogram(song_a[:6 * SR], SR))
        assert hash_peaks(peaks) == hash_peaks(list(peaks))
