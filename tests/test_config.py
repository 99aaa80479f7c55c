"""
Tests for songprint/config.py: FingerprintConfig defaults, derived values and validation.
"""

import dataclasses

import pytest

from songprint.config import DEFAULT_CONFIG, FingerprintConfig


class TestDerivedValues:
    def test_frame_seconds(self):
        """368 samples at 11025 Hz ≈ 33 ms per frame."""
        assert DEFAULT_CONFIG.frame_seconds == pytest.approx(368 / 11025)

    def test_bin_hz(self):
        assert DEFAULT_CONFIG.bin_hz == pytest.approx(11025 / 2048)

    def test_n_bins_stops_at_max_frequency(self):
        """Bins 0..floor(5000 / 5.38) are kept."""
        cfg = DEFAULT_CONFIG
        assert cfg.n_bins == int(cfg.max_frequency / cfg.bin_hz) + 1
        assert (cfg.n_bins - 1) * cfg.bin_hz <= cfg.max_frequency

    def test_n_bins_capped_at_nyquist(self):
        cfg = FingerprintConfig(max_frequency=11025 / 2)
        assert cfg.n_bins == cfg.window_size // 2 + 1

    def test_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_CONFIG.fan_out = 3

    def test_replace_keeps_validation(self):
        cfg = dataclasses.replace(DEFAULT_CONFIG, fan_out=3)
        assert cfg.fan_out == 3
        with pytest.raises(ValueError):
            dataclasses.replace(DEFAULT_CONFIG, fan_out=0)


class TestValidation:
    @pytest.mark.parametrize("overrides", [
        {"sample_rate": 0},
        {"window_size": 0},
        {"hop_size": 0},
        {"hop_size": 4096},
        {"max_frequency": 6000.0},
        {"bands_hz": ()},
        {"bands_hz": ((500.0, 100.0),)},
        {"peak_threshold_ratio": 0.0},
        {"max_peaks_per_band": 0},
        {"fan_out": 0},
        {"target_dt_min": 5, "target_dt_max": 4},
        {"freq_fuzz": 0},
        {"freq_bits": 30, "delta_bits": 10},
        {"freq_bits": 8},
        {"delta_bits": 3},
        {"offset_bucket_seconds": 0.0},
        {"offset_smoothing": -1},
        {"min_votes": 0},
        {"min_vote_ratio": 0.9},
    ])
    def test_invalid_values_raise(self, overrides):
        with pytest.raises(ValueError):
            FingerprintConfig(**overrides)

    def test_hash_layout_fits_signed_64_bits(self):
        cfg = FingerprintConfig(freq_bits=20, delta_bits=23)
        assert 2 * cfg.freq_bits + cfg.delta_bits == 63
