"""GPS distance helpers: haversine, drift-filtered run distance, time→distance mapping."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

from ..constants import (
    EARTH_RADIUS_M,
    MAX_GPS_ACCURACY_CAP_M,
    MIN_GPS_ACCURACY_CAP_M,
    SENSITIVITY_FLOOR,
)
from ..samples import GpsSample, timestamps_ns
from ..sensitivity import SensitivitySettings

FILTERED_DISTANCE_ACCURACY_M = 20.0
MIN_MOVING_SPEED_MPS = 0.5
MIN_SEGMENT_ACCURACY_FACTOR = 0.5


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two WGS84 points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def cumulative_distances(samples: Sequence[GpsSample]) -> np.ndarray:
    """Running path length in metres, starting at 0 for the first fix."""
    out = np.zeros(len(samples), dtype=np.float64)
    for i in range(1, len(samples)):
        prev, curr = samples[i - 1], samples[i]
        step = haversine_m(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
        out[i] = out[i - 1] + step
    return out


def filtered_distance(
    samples: Sequence[GpsSample],
    sensitivity: SensitivitySettings | None = None,
) -> float:
    """Run distance with GPS drift rejected.

    A segment counts only when the later fix is accurate enough, the rider
    is moving, and the segment is longer than the positional uncertainty.
    """
    if len(samples) < 2:
        return 0.0
    sensitivity = sensitivity or SensitivitySettings()
    max_accuracy = FILTERED_DISTANCE_ACCURACY_M / max(sensitivity.gps, SENSITIVITY_FLOOR)
    max_accuracy = min(max(max_accuracy, MIN_GPS_ACCURACY_CAP_M), MAX_GPS_ACCURACY_CAP_M)

    total = 0.0
    for prev, curr in zip(samples, samples[1:]):
        segment = haversine_m(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
        if (
            curr.accuracy <= max_accuracy
            and curr.speed >= MIN_MOVING_SPEED_MPS
            and segment > max(prev.accuracy, curr.accuracy) * MIN_SEGMENT_ACCURACY_FACTOR
        ):
            total += segment
    return total


class DistanceMapping:
    """Maps sample timestamps onto the fraction of the GPS track covered."""

    def __init__(self, samples: Sequence[GpsSample]) -> None:
        self._timestamps = timestamps_ns(samples).astype(np.float64)
        self._cumulative = cumulative_distances(samples)
        self.total_distance_m = float(self._cumulative[-1]) if len(samples) else 0.0

    def dist_pct(self, timestamp_ns: int) -> float:
        """Percentage (0..100) of the track covered at *timestamp_ns*."""
        if self._timestamps.size == 0 or self.total_distance_m <= 0.0:
            return 0.0
        distance = float(np.interp(float(timestamp_ns), self._timestamps, self._cumulative))
        return min(max(distance / self.total_distance_m * 100.0, 0.0), 100.0)

    def distance_m(self, timestamp_ns: int) -> float:
        return self.dist_pct(timestamp_ns) / 100.0 * self.total_distance_m
