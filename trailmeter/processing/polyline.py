"""Simplified GPS track for map display."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

import numpy as np

from ..samples import GpsSample
from .distance import cumulative_distances

MAX_POINTS = 150
GOOD_ACCURACY_M = 15.0
OK_ACCURACY_M = 30.0


class MapGpsQuality(StrEnum):
    GOOD = "good"
    OK = "ok"
    POOR = "poor"


@dataclass(frozen=True, slots=True)
class GpsPoint:
    lat: float
    lon: float
    dist_pct: float


@dataclass(frozen=True, slots=True)
class GpsPolyline:
    points: tuple[GpsPoint, ...]
    total_distance_m: float
    avg_accuracy_m: float
    gps_quality: MapGpsQuality


def map_gps_quality(avg_accuracy_m: float) -> MapGpsQuality:
    if avg_accuracy_m < GOOD_ACCURACY_M:
        return MapGpsQuality.GOOD
    if avg_accuracy_m < OK_ACCURACY_M:
        return MapGpsQuality.OK
    return MapGpsQuality.POOR


def _simplify(cumulative: np.ndarray, max_points: int) -> list[int]:
    """Indices kept when thinning a track to roughly even distance spacing."""
    n = cumulative.size
    if n <= max_points:
        return list(range(n))
    total = float(cumulative[-1])
    if total <= 0.0:
        return [0, n - 1]
    spacing = total / (max_points - 1)
    kept = [0]
    last_dist = 0.0
    for i in range(1, n - 1):
        if cumulative[i] - last_dist >= spacing:
            kept.append(i)
            last_dist = float(cumulative[i])
    if len(kept) > max_points - 1:
        kept = kept[: max_points - 1]
    kept.append(n - 1)
    return kept


def build_polyline(
    samples: Sequence[GpsSample],
    total_distance_m: float,
    max_points: int = MAX_POINTS,
) -> GpsPolyline:
    """Thin *samples* to at most *max_points*, keeping the first and last fix.

    ``dist_pct`` is measured against *total_distance_m* (the run's filtered
    distance) so map markers line up with chart positions.
    """
    if not samples:
        return GpsPolyline(
            points=(),
            total_distance_m=0.0,
            avg_accuracy_m=0.0,
            gps_quality=MapGpsQuality.POOR,
        )
    cumulative = cumulative_distances(samples)
    points = []
    for idx in _simplify(cumulative, max(2, int(max_points))):
        sample = samples[idx]
        pct = float(cumulative[idx]) / total_distance_m * 100.0 if total_distance_m > 0 else 0.0
        points.append(
            GpsPoint(lat=sample.latitude, lon=sample.longitude, dist_pct=min(max(pct, 0.0), 100.0))
        )
    avg_accuracy = float(np.mean([s.accuracy for s in samples]))
    return GpsPolyline(
        points=tuple(points),
        total_distance_m=float(total_distance_m),
        avg_accuracy_m=avg_accuracy,
        gps_quality=map_gps_quality(avg_accuracy),
    )
