"""Vibration harshness (chatter) from acceleration windows.

The vertical component is isolated by projecting each sample onto the
window's low-pass gravity estimate, then band-limited to the chatter band so
slow impacts and body motion do not count as harshness.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from ..constants import GRAVITY_MS2
from ..dsp.filters import (
    DEFAULT_BANDPASS_HIGH_HZ,
    DEFAULT_BANDPASS_LOW_HZ,
    DEFAULT_LOWPASS_ALPHA,
    BandpassFilter,
    gravity_estimate,
)
from ..dsp.signal_utils import rms
from ..samples import AccelSample, axes_array
from ..sensitivity import SensitivitySettings

LOGGER = logging.getLogger(__name__)

MIN_WINDOW_SAMPLES = 50
MIN_GRAVITY_NORM_MS2 = 0.1
"""Below this the gravity estimate has no usable direction."""

_MAX_HIGH_CUTOFF_NYQUIST_RATIO = 0.9


def vertical_acceleration(axes: np.ndarray, alpha: float = DEFAULT_LOWPASS_ALPHA) -> np.ndarray:
    """Per-sample acceleration along the estimated gravity direction.

    Falls back to ``|a| - g`` when the gravity estimate is too small.
    """
    arr = np.asarray(axes, dtype=np.float64).reshape(-1, 3)
    if arr.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    gravity = gravity_estimate(arr, alpha)
    norm = float(np.linalg.norm(gravity))
    if norm < MIN_GRAVITY_NORM_MS2:
        return np.linalg.norm(arr, axis=1) - GRAVITY_MS2
    return arr @ (gravity / norm)


class HarshnessAnalyzer:
    def __init__(
        self,
        low_hz: float = DEFAULT_BANDPASS_LOW_HZ,
        high_hz: float = DEFAULT_BANDPASS_HIGH_HZ,
        lowpass_alpha: float = DEFAULT_LOWPASS_ALPHA,
        min_window_samples: int = MIN_WINDOW_SAMPLES,
    ) -> None:
        self.low_hz = float(low_hz)
        self.high_hz = float(high_hz)
        self.lowpass_alpha = float(lowpass_alpha)
        self.min_window_samples = max(2, int(min_window_samples))

    def passband(self, sample_rate_hz: float) -> tuple[float, float] | None:
        """Cutoffs usable at *sample_rate_hz*, or ``None`` if the band collapses."""
        high = min(self.high_hz, _MAX_HIGH_CUTOFF_NYQUIST_RATIO * sample_rate_hz / 2.0)
        if not 0.0 < self.low_hz < high:
            return None
        return self.low_hz, high

    def band_signal(self, samples: Sequence[AccelSample], sample_rate_hz: float) -> np.ndarray:
        """Bandpassed vertical acceleration of one independent window."""
        band = self.passband(sample_rate_hz) if sample_rate_hz > 0 else None
        if band is None or not samples:
            return np.zeros(0, dtype=np.float64)
        vertical = vertical_acceleration(axes_array(samples), self.lowpass_alpha)
        vertical = vertical - vertical.mean()
        # A fresh filter per window so no state carries over between windows.
        bandpass = BandpassFilter(sample_rate_hz, *band)
        return bandpass.process_block(vertical)

    def analyze_window(
        self,
        samples: Sequence[AccelSample],
        sample_rate_hz: float,
        sensitivity: SensitivitySettings | None = None,
    ) -> float:
        """Harshness RMS in m/s², scaled by the harshness sensitivity."""
        if sample_rate_hz <= 0 or len(samples) < self.min_window_samples:
            return 0.0
        if self.passband(sample_rate_hz) is None:
            LOGGER.debug(
                "Harshness band %.1f-%.1f Hz unusable at %.1f Hz sample rate",
                self.low_hz,
                self.high_hz,
                sample_rate_hz,
            )
            return 0.0
        sensitivity = sensitivity or SensitivitySettings()
        return rms(self.band_signal(samples, sample_rate_hz)) * sensitivity.harshness
