import logging
from pathlib import Path
from typing import Sequence, Tuple, Union

import librosa
import librosa.display
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from .spectrogram import Spectrogram  # noqa: E402
from .types import Peak  # noqa: E402

logger = logging.getLogger(__name__)


def plot_spectrogram_and_save(spectrogram: Spectrogram, peaks: Sequence[Peak],
                              output_path: Union[str, Path], max_peaks: int = 5000) -> None:
    """Log-magnitude spectrogram with the peaks overlaid as white dots."""
    config = spectrogram.config
    step = max(1, len(peaks) // max_peaks)  # thin out dense constellations for visibility
    plot_peaks = peaks[::step]
    plot_times = [t * config.frame_seconds for (t, _, _) in plot_peaks]
    plot_freqs = [fb * config.bin_hz for (_, fb, _) in plot_peaks]

    # specshow wants (freq, time)
    log_spectrogram = librosa.amplitude_to_db(spectrogram.magnitudes.T, ref=1.0)
    fig = plt.figure(figsize=(10, 4))
    librosa.display.specshow(log_spectrogram, x_coords=spectrogram.times, y_coords=spectrogram.frequencies,
                             x_axis='time', y_axis='linear', sr=config.sample_rate)
    plt.colorbar(format='%+2.0f dB')
    plt.title('Spectrogram and peaks')
    plt.scatter(plot_times, plot_freqs, s=8, c='white', marker='o', alpha=0.8)
    fig.savefig(output_path)
    plt.close(fig)
    logger.debug("Saved spectrogram plot to %s", output_path)


def plot_matching_pairs(pairs: Sequence[Tuple[float, float]], output_path: Union[str, Path],
                        title: str = "Matching landmark offsets") -> None:
    """Scatter of (query offset, db offset); a true match lines up on a diagonal."""
    xs = [p[0] for p in pairs]
    ys = [p[1] for p in pairs]
    fig = plt.figure(figsize=(8, 6))
    plt.scatter(xs, ys, s=2, c='blue')
    plt.xlabel("Query offset (s)")
    plt.ylabel("Song offset (s)")
    plt.title(title)
    plt.grid(True)
    fig.savefig(output_path)
    plt.close(fig)
    logger.debug("Saved %d matching pairs to %s", len(pairs), output_path)
