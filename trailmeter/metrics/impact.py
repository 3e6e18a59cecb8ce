"""Impact density from gravity-free (linear) acceleration.

The score of a window is the sum of squared peak values in g over every
detected impact peak: a handful of hard hits outweighs many light ones.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..constants import GRAVITY_MS2, SENSITIVITY_FLOOR
from ..dsp.signal_utils import estimate_sample_rate
from ..samples import AccelSample, magnitudes, timestamps_ns
from ..sensitivity import SensitivitySettings

IMPACT_THRESHOLD_MS2 = 2.5
"""Peak threshold at sensitivity 1.0 (about 0.25 g of linear acceleration)."""

MIN_IMPACT_THRESHOLD_MS2 = 0.5
MAX_IMPACT_THRESHOLD_MS2 = 25.0
MIN_PEAK_DISTANCE_MS = 100.0
MIN_WINDOW_SAMPLES = 50


@dataclass(frozen=True, slots=True)
class ImpactPeak:
    sample_index: int
    timestamp_ns: int
    peak_g: float
    severity: float


def impact_threshold_ms2(
    sensitivity: SensitivitySettings,
    base_threshold_ms2: float = IMPACT_THRESHOLD_MS2,
) -> float:
    """Peak threshold scaled by ``1 / impact`` sensitivity and clamped."""
    scaled = base_threshold_ms2 / max(sensitivity.impact, SENSITIVITY_FLOOR)
    return min(max(scaled, MIN_IMPACT_THRESHOLD_MS2), MAX_IMPACT_THRESHOLD_MS2)


def min_peak_distance_samples(
    sample_rate_hz: float,
    min_distance_ms: float = MIN_PEAK_DISTANCE_MS,
) -> int:
    rate = max(float(sample_rate_hz), 1.0)
    return max(1, int(min_distance_ms / 1000.0 * rate))


def impact_peak_indices(
    signal: np.ndarray,
    threshold: float,
    min_distance_samples: int,
) -> list[int]:
    """Local maxima above *threshold*, at most one per *min_distance_samples*.

    Unlike :func:`trailmeter.dsp.signal_utils.find_peaks`, a candidate inside
    the exclusion gap replaces the previous peak when it is larger, so
    vibration riding on the flank of a hit does not stand in for the hit
    itself.  Flat tops count as maxima.  The live gauge and the post-run
    charts both pick peaks here.
    """
    arr = np.asarray(signal, dtype=np.float64).ravel()
    peaks: list[int] = []
    for i in range(1, arr.size - 1):
        current = arr[i]
        if current <= threshold:
            continue
        prev, nxt = arr[i - 1], arr[i + 1]
        if not (current >= prev and current >= nxt and (current > prev or current > nxt)):
            continue
        if peaks and i - peaks[-1] < min_distance_samples:
            if current > arr[peaks[-1]]:
                peaks[-1] = i
        else:
            peaks.append(i)
    return peaks


def impact_density(peak_values_ms2: np.ndarray) -> float:
    """Sum of squared peak values expressed in g."""
    peaks_g = np.asarray(peak_values_ms2, dtype=np.float64) / GRAVITY_MS2
    return float(np.sum(peaks_g * peaks_g))


class ImpactAnalyzer:
    def __init__(
        self,
        threshold_ms2: float = IMPACT_THRESHOLD_MS2,
        min_peak_distance_ms: float = MIN_PEAK_DISTANCE_MS,
        min_window_samples: int = MIN_WINDOW_SAMPLES,
    ) -> None:
        self.threshold_ms2 = float(threshold_ms2)
        self.min_peak_distance_ms = float(min_peak_distance_ms)
        self.min_window_samples = max(3, int(min_window_samples))

    def analyze_window(
        self,
        samples: Sequence[AccelSample],
        sensitivity: SensitivitySettings | None = None,
        sample_rate_hz: float | None = None,
    ) -> float:
        """Impact density score of one window; 0 when the window is too short."""
        if len(samples) < self.min_window_samples:
            return 0.0
        sensitivity = sensitivity or SensitivitySettings()
        rate = sample_rate_hz if sample_rate_hz else estimate_sample_rate(timestamps_ns(samples))
        mags = magnitudes(samples)
        peaks = impact_peak_indices(
            mags,
            impact_threshold_ms2(sensitivity, self.threshold_ms2),
            min_peak_distance_samples(rate, self.min_peak_distance_ms),
        )
        if not peaks:
            return 0.0
        return impact_density(mags[peaks])

    def detect_peaks(
        self,
        samples: Sequence[AccelSample],
        sample_rate_hz: float,
        sensitivity: SensitivitySettings | None = None,
    ) -> list[ImpactPeak]:
        """Discrete impact peaks for event markers."""
        if len(samples) < 3:
            return []
        sensitivity = sensitivity or SensitivitySettings()
        mags = magnitudes(samples)
        indices = impact_peak_indices(
            mags,
            impact_threshold_ms2(sensitivity, self.threshold_ms2),
            min_peak_distance_samples(sample_rate_hz, self.min_peak_distance_ms),
        )
        out: list[ImpactPeak] = []
        for idx in indices:
            peak_g = float(mags[idx]) / GRAVITY_MS2
            out.append(
                ImpactPeak(
                    sample_index=idx,
                    timestamp_ns=samples[idx].timestamp_ns,
                    peak_g=peak_g,
                    severity=peak_g * peak_g,
                )
            )
        return out
