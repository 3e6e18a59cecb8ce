"""Display normalisation shared by live gauges and post-run charts.

A *burden* score is 0..100 where lower means a smoother run; the *quality*
score is its complement.  The live monitor divides by the same references,
so a value reads the same on a gauge and on a chart.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

from ..constants import HARSHNESS_REF, IMPACT_REF, STABILITY_REF


class SeriesType(StrEnum):
    IMPACT_DENSITY = "impact_density"
    HARSHNESS = "harshness"
    STABILITY = "stability"
    SPEED_TIME = "speed_time"


_BURDEN_REFERENCES: dict[SeriesType, float] = {
    SeriesType.IMPACT_DENSITY: IMPACT_REF,
    SeriesType.HARSHNESS: HARSHNESS_REF,
    SeriesType.STABILITY: STABILITY_REF,
}


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def normalize_burden_score(series_type: SeriesType, value: float) -> float:
    """Map a raw metric value onto the 0..100 burden scale."""
    reference = _BURDEN_REFERENCES.get(series_type)
    scaled = float(value) if reference is None else float(value) / reference * 100.0
    return _clamp(scaled, 0.0, 100.0)


def burden_to_quality_score(burden_score: float) -> float:
    return _clamp(100.0 - float(burden_score), 0.0, 100.0)


def metric_quality_score(series_type: SeriesType, raw_value: float | None) -> float | None:
    if raw_value is None:
        return None
    return burden_to_quality_score(normalize_burden_score(series_type, raw_value))


def overall_quality_score(
    impact_score: float | None,
    harshness_avg: float | None,
    stability_score: float | None,
) -> float | None:
    """Mean of the available per-metric quality scores, ``None`` when none are known."""
    scores: Iterable[float | None] = (
        metric_quality_score(SeriesType.IMPACT_DENSITY, impact_score),
        metric_quality_score(SeriesType.HARSHNESS, harshness_avg),
        metric_quality_score(SeriesType.STABILITY, stability_score),
    )
    known = [s for s in scores if s is not None]
    if not known:
        return None
    return _clamp(sum(known) / len(known), 0.0, 100.0)


def normalized_unit(series_type: SeriesType, value: float) -> float:
    """Burden score rescaled to ``[0, 1]``, the unit the live gauges use."""
    return normalize_burden_score(series_type, value) / 100.0
