"""Pure signal helpers.

All functions in this module are stateless: they take arrays (and scalar
parameters) and return results without touching any shared mutable state.
Empty input never raises; it yields the neutral value documented per
function.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

from ..constants import (
    DEFAULT_SAMPLE_RATE_HZ,
    MAX_ESTIMATED_SAMPLE_RATE_HZ,
    MIN_ESTIMATED_SAMPLE_RATE_HZ,
    NS_PER_S,
)

ArrayLike = np.ndarray | Sequence[float]


def _as_array(signal: ArrayLike) -> np.ndarray:
    return np.asarray(signal, dtype=np.float64).ravel()


def rms(signal: ArrayLike) -> float:
    """Root mean square; 0 for empty input."""
    arr = _as_array(signal)
    if arr.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(arr * arr)))


def variance(signal: ArrayLike) -> float:
    """Population variance; 0 for empty input."""
    arr = _as_array(signal)
    if arr.size == 0:
        return 0.0
    return float(np.mean((arr - arr.mean()) ** 2))


def percentile(signal: ArrayLike, p: float) -> float:
    """Lower nearest-rank percentile: ``sorted[floor(p/100 * (n-1))]``, clamped."""
    arr = _as_array(signal)
    if arr.size == 0:
        return 0.0
    ordered = np.sort(arr)
    index = int(math.floor(float(p) / 100.0 * (ordered.size - 1)))
    index = min(max(index, 0), ordered.size - 1)
    return float(ordered[index])


def find_peaks(signal: ArrayLike, threshold: float, min_distance_samples: int) -> list[int]:
    """Indices of local maxima above *threshold* spaced at least *min_distance_samples* apart.

    A candidate is a sample strictly greater than both neighbours.  When a
    candidate falls inside the exclusion gap of the last accepted peak it is
    discarded; the earlier peak is kept even if the candidate is larger.
    """
    arr = _as_array(signal)
    min_distance = max(1, int(min_distance_samples))
    peaks: list[int] = []
    last_peak = -min_distance
    for i in range(1, arr.size - 1):
        value = arr[i]
        if (
            value > threshold
            and value > arr[i - 1]
            and value > arr[i + 1]
            and (i - last_peak) >= min_distance
        ):
            peaks.append(i)
            last_peak = i
    return peaks


def normalize(signal: ArrayLike) -> np.ndarray:
    """Min-max rescale to ``[0, 1]``; a zero-range signal maps to all 0.5."""
    arr = _as_array(signal)
    if arr.size == 0:
        return arr.copy()
    lo = float(arr.min())
    hi = float(arr.max())
    span = hi - lo
    if span == 0.0 or not math.isfinite(span):
        return np.full(arr.size, 0.5, dtype=np.float64)
    return np.clip((arr - lo) / span, 0.0, 1.0)


def downsample(signal: ArrayLike, target_points: int) -> np.ndarray:
    """Block-average *signal* down to *target_points* values."""
    if target_points < 1:
        raise ValueError(f"target_points must be >= 1, got {target_points!r}")
    arr = _as_array(signal)
    if arr.size <= target_points:
        return arr.copy()
    ratio = arr.size / target_points
    out = np.empty(target_points, dtype=np.float64)
    for i in range(target_points):
        start = int(i * ratio)
        end = min(int((i + 1) * ratio), arr.size)
        out[i] = arr[start:end].mean() if end > start else arr[start]
    return out


def interpolate(signal: ArrayLike, target_points: int) -> np.ndarray:
    """Linearly resample *signal* onto *target_points* evenly spaced positions."""
    if target_points < 1:
        raise ValueError(f"target_points must be >= 1, got {target_points!r}")
    arr = _as_array(signal)
    if arr.size == target_points:
        return arr.copy()
    if arr.size == 0:
        return np.zeros(target_points, dtype=np.float64)
    if arr.size == 1:
        return np.full(target_points, arr[0], dtype=np.float64)
    src_x = np.linspace(0.0, arr.size - 1, num=target_points)
    return np.interp(src_x, np.arange(arr.size, dtype=np.float64), arr)


def estimate_sample_rate(timestamps_ns: ArrayLike) -> float:
    """Mean sample rate from nanosecond timestamps, clamped to a plausible range."""
    ts = np.asarray(timestamps_ns, dtype=np.int64).ravel()
    if ts.size < 2:
        return DEFAULT_SAMPLE_RATE_HZ
    duration_ns = max(int(ts[-1] - ts[0]), 1)
    rate = (ts.size - 1) * NS_PER_S / duration_ns
    if not math.isfinite(rate):
        return DEFAULT_SAMPLE_RATE_HZ
    return min(max(rate, MIN_ESTIMATED_SAMPLE_RATE_HZ), MAX_ESTIMATED_SAMPLE_RATE_HZ)
