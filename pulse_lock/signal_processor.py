"""
rPPG signal preprocessing and spectral analysis.

Algorithm
---------
1. Detrend the colour-channel series (subtract its mean) to remove the
   ambient-lighting DC offset.
2. Band-limit to the physiological range (default 0.75 – 3.0 Hz =
   45 – 180 BPM).  The default filter subtracts a windowed local mean whose
   half-width is ``frame_rate / centre_frequency`` samples; a Butterworth
   bandpass is available as an alternative.
3. Compute the FFT magnitude spectrum; the dominant peak, refined by
   parabolic interpolation, gives the heart-rate estimate.
4. Confidence is the peak-to-mean magnitude ratio (SNR), rescaled to 0 – 100.

References
----------
- Verkruysse W. et al., "Remote plethysmographic imaging using ambient light."
  Opt Express, 2008.
- Poh M.-Z. et al., "Non-contact, automated cardiac pulse measurements using
  video imaging and blind source separation." Opt Express, 2010.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from scipy.signal import butter, detrend, sosfilt

logger = logging.getLogger(__name__)

FILTER_METHODS = ("moving_average", "butterworth")

# Peak magnitudes below this are treated as numerical noise (flat input).
_NOISE_FLOOR = 1e-9


class SignalPreprocessor:
    """
    Detrend + bandpass stage.

    Parameters
    ----------
    bpm_low:
        Lower BPM corner of the pass band (default 45 BPM).
    bpm_high:
        Upper BPM corner of the pass band (default 180 BPM).
    method:
        ``"moving_average"`` (local-mean subtraction) or ``"butterworth"``.
    filter_order:
        Order of the Butterworth filter (default 4).
    """

    def __init__(
        self,
        bpm_low: float = 45.0,
        bpm_high: float = 180.0,
        method: str = "moving_average",
        filter_order: int = 4,
    ) -> None:
        if method not in FILTER_METHODS:
            raise ValueError(f"Unknown filter method {method!r}; expected one of {FILTER_METHODS}")
        self.bpm_low = bpm_low
        self.bpm_high = bpm_high
        self.method = method
        self.filter_order = filter_order

    @property
    def center_hz(self) -> float:
        return (self.bpm_low + self.bpm_high) / 2.0 / 60.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(self, samples: np.ndarray, fps: float) -> np.ndarray:
        """
        Return the detrended, band-limited version of *samples*.

        Inputs with fewer than two samples carry no pulse information and
        yield an empty array.
        """
        x = np.asarray(samples, dtype=np.float64)
        if x.size < 2:
            return np.array([])
        return self.bandpass(self.detrend(x), fps)

    @staticmethod
    def detrend(samples: np.ndarray) -> np.ndarray:
        """Remove the DC offset (mean) from *samples*."""
        x = np.asarray(samples, dtype=np.float64)
        if x.size == 0:
            return np.array([])
        return detrend(x, type="constant")

    def bandpass(self, samples: np.ndarray, fps: float) -> np.ndarray:
        x = np.asarray(samples, dtype=np.float64)
        if x.size < 2:
            return np.array([])
        if self.method == "butterworth":
            return sosfilt(self._build_filter(fps), x)
        return self._moving_average_bandpass(x, fps)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _moving_average_bandpass(self, x: np.ndarray, fps: float) -> np.ndarray:
        """Subtract the local mean over ``±fps / center_hz`` samples."""
        n = x.size
        half = max(1, int(np.floor(fps / self.center_hz)))
        idx = np.arange(n)
        lo = np.maximum(idx - half, 0)
        hi = np.minimum(idx + half + 1, n)
        csum = np.concatenate(([0.0], np.cumsum(x)))
        local_mean = (csum[hi] - csum[lo]) / (hi - lo)
        return x - local_mean

    def _build_filter(self, fps: float) -> np.ndarray:
        """Construct a Butterworth bandpass filter (SOS form)."""
        nyq = fps / 2.0
        low = (self.bpm_low / 60.0) / nyq
        high = (self.bpm_high / 60.0) / nyq
        # Clamp to valid range
        low = max(1e-4, min(low, 0.999))
        high = max(low + 1e-4, min(high, 0.999))
        return butter(self.filter_order, [low, high], btype="bandpass", output="sos")


@dataclass(frozen=True)
class SpectrumPeak:
    """Dominant spectral component of a filtered series."""

    dominant_frequency: float                 # Hz, 0.0 when no peak
    peak_magnitude: float
    spectrum: np.ndarray = field(repr=False)  # |FFT| for 0 <= k < n/2
    frequencies: np.ndarray = field(repr=False)

    @property
    def bpm(self) -> float:
        return self.dominant_frequency * 60.0

    @classmethod
    def empty(cls) -> "SpectrumPeak":
        return cls(0.0, 0.0, np.array([]), np.array([]))


class FrequencyAnalyzer:
    """
    FFT-based dominant-frequency estimator.

    The whole half-spectrum (``0 <= k < n/2``) is scored so that
    out-of-band energy (e.g. injected high-frequency flicker) still shows up
    as the dominant frequency and can be rejected downstream.
    """

    def analyze(self, filtered: np.ndarray, fps: float) -> SpectrumPeak:
        x = np.asarray(filtered, dtype=np.float64)
        n = x.size
        if n < 2:
            return SpectrumPeak.empty()

        keep = (n + 1) // 2
        spectrum = np.abs(np.fft.rfft(x))[:keep]
        freqs = np.fft.rfftfreq(n, d=1.0 / fps)[:keep]

        if keep < 2:
            return SpectrumPeak(0.0, 0.0, spectrum, freqs)

        # Skip the DC bin; detrending leaves only numerical residue there.
        peak_idx = 1 + int(np.argmax(spectrum[1:]))
        peak_mag = float(spectrum[peak_idx])
        if peak_mag < _NOISE_FLOOR:
            return SpectrumPeak(0.0, 0.0, spectrum, freqs)

        peak_freq = float(freqs[peak_idx])

        # Parabolic interpolation for sub-bin frequency resolution
        if 0 < peak_idx < len(spectrum) - 1:
            power = spectrum ** 2
            alpha = power[peak_idx - 1]
            beta = power[peak_idx]
            gamma = power[peak_idx + 1]
            denom = alpha - 2 * beta + gamma
            if denom != 0:
                p = 0.5 * (alpha - gamma) / denom
                p = max(-0.5, min(0.5, p))
                peak_freq += p * (freqs[1] - freqs[0])

        logger.debug("Dominant frequency %.3f Hz (%.1f BPM), |X|=%.3f",
                     peak_freq, peak_freq * 60.0, peak_mag)
        return SpectrumPeak(peak_freq, peak_mag, spectrum, freqs)

    @staticmethod
    def confidence(peak: SpectrumPeak) -> float:
        """
        Peak prominence as a 0 – 100 score.

        SNR is the peak magnitude over the mean spectral magnitude; an SNR of
        10 or more maps to full confidence.  An all-zero spectrum scores 0; a
        uniform non-zero spectrum has SNR 1 and so floors at 10.
        """
        if peak.spectrum.size == 0:
            return 0.0
        snr = peak.peak_magnitude / (float(np.mean(peak.spectrum)) + 1e-10)
        return min(100.0, snr / 10.0 * 100.0)
