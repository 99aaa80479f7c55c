import heapq
import logging
from typing import Iterable, List

from .config import DEFAULT_CONFIG, FingerprintConfig
from .types import Landmark, LandmarkFields, Peak

logger = logging.getLogger(__name__)


def encode_landmark(anchor_bin: int, target_bin: int, delta_frames: int,
                    config: FingerprintConfig = DEFAULT_CONFIG) -> int:
    """
    Pack (anchor_bin, target_bin, delta_frames) into one integer.

    Layout (MSB -> LSB), with the default 12-bit fields:
        [12 bits anchor][12 bits target][12 bits dt]

    Each field stores ``value // fuzz`` (fuzzy quantization absorbs small
    variations: bin 43 -> 42, dt 21 -> 20), so decoding returns the values
    floored to a multiple of the fuzz factor.
    """
    if anchor_bin < 0 or target_bin < 0 or delta_frames < 0:
        raise ValueError(
            f"landmark fields must be non-negative, got ({anchor_bin}, {target_bin}, {delta_frames})"
        )
    fa = anchor_bin // config.freq_fuzz
    fb = target_bin // config.freq_fuzz
    dt = delta_frames // config.time_fuzz
    if fa >> config.freq_bits or fb >> config.freq_bits:
        raise ValueError(
            f"frequency bins ({anchor_bin}, {target_bin}) do not fit {config.freq_bits} bits"
        )
    if dt >> config.delta_bits:
        raise ValueError(f"delta {delta_frames} does not fit {config.delta_bits} bits")
    return (fa << (config.freq_bits + config.delta_bits)) | (fb << config.delta_bits) | dt


def decode_landmark(h: int, config: FingerprintConfig = DEFAULT_CONFIG) -> LandmarkFields:
    """Unpack a hash built by ``encode_landmark``; for debugging and inspection."""
    total_bits = 2 * config.freq_bits + config.delta_bits
    if h < 0 or h >> total_bits:
        raise ValueError(f"hash {h} is not a {total_bits}-bit landmark")
    freq_mask = (1 << config.freq_bits) - 1
    delta_mask = (1 << config.delta_bits) - 1
    dt = h & delta_mask
    fb = (h >> config.delta_bits) & freq_mask
    fa = h >> (config.freq_bits + config.delta_bits)
    return LandmarkFields(fa * config.freq_fuzz, fb * config.freq_fuzz, dt * config.time_fuzz)


def hash_peaks(peaks: Iterable[Peak], config: FingerprintConfig = DEFAULT_CONFIG) -> List[Landmark]:
    """
    Pair peaks into landmarks.

    Every peak acts as an anchor. Its target zone spans
    ``target_dt_min..target_dt_max`` frames ahead and
    ``target_freq_base_hz + target_freq_slope * anchor_hz`` Hz above and below
    the anchor. The ``fan_out`` strongest peaks of the zone become targets.

    Args:
        peaks: Peaks in any order; they are sorted by (time, frequency) first.
        config: Pipeline configuration.

    Returns:
        One ``Landmark(hash, offset)`` per (anchor, target) pair, where offset
        is the anchor's time in seconds.
    """
    peaks = sorted(peaks)
    landmarks: List[Landmark] = []
    append = landmarks.append
    n_peaks = len(peaks)

    # Band constraint in bin-domain (exact for linear FFT bins):
    # abs(f_b - f_a) <= (base + slope * f_a * bin_hz) / bin_hz
    base_bins = config.target_freq_base_hz / config.bin_hz
    slope = config.target_freq_slope
    dt_min, dt_max = config.target_dt_min, config.target_dt_max
    frame_seconds = config.frame_seconds

    for i in range(n_peaks):
        t_a, f_a, _amp_a = peaks[i]
        delta_bins = base_bins + slope * f_a

        # collect candidates in the target zone ahead of this anchor
        candidates = []
        j = i + 1
        while j < n_peaks:
            t_b, f_b, amp_b = peaks[j]
            dt = t_b - t_a
            if dt > dt_max:
                break
            if dt >= dt_min and abs(f_b - f_a) <= delta_bins and (dt, f_b) != (0, f_a):
                candidates.append((amp_b, f_b, dt))
            j += 1

        if not candidates:
            continue

        # nlargest is stable: equal amplitudes keep (time, frequency) order
        offset = t_a * frame_seconds
        for _, f_b, dt in heapq.nlargest(config.fan_out, candidates, key=lambda c: c[0]):
            append(Landmark(encode_landmark(f_a, f_b, dt, config), offset))

    logger.debug("Built %d landmarks from %d peaks", len(landmarks), n_peaks)
    return landmarks
