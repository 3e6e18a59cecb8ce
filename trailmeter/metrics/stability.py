"""Rider stability from gyroscope pitch/roll variance.

Yaw (z) is reported but excluded from the index: turning is not instability.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from ..dsp.signal_utils import variance
from ..samples import GyroSample, axes_array
from ..sensitivity import SensitivitySettings

MIN_WINDOW_SAMPLES = 10

EXCELLENT_MAX = 0.05
GOOD_MAX = 0.15
MODERATE_MAX = 0.30


class StabilityLevel(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"


@dataclass(frozen=True, slots=True)
class StabilityResult:
    stability_index: float = 0.0
    variance_x: float = 0.0
    variance_y: float = 0.0
    variance_z: float = 0.0

    @property
    def level(self) -> StabilityLevel:
        return classify_stability(self.stability_index)


def classify_stability(stability_index: float) -> StabilityLevel:
    if stability_index < EXCELLENT_MAX:
        return StabilityLevel.EXCELLENT
    if stability_index < GOOD_MAX:
        return StabilityLevel.GOOD
    if stability_index < MODERATE_MAX:
        return StabilityLevel.MODERATE
    return StabilityLevel.POOR


class StabilityAnalyzer:
    def __init__(self, min_window_samples: int = MIN_WINDOW_SAMPLES) -> None:
        self.min_window_samples = max(2, int(min_window_samples))

    def analyze_window(
        self,
        samples: Sequence[GyroSample],
        sensitivity: SensitivitySettings | None = None,
    ) -> StabilityResult:
        if len(samples) < self.min_window_samples:
            return StabilityResult()
        sensitivity = sensitivity or SensitivitySettings()
        axes = axes_array(samples)
        var_x = variance(axes[:, 0])
        var_y = variance(axes[:, 1])
        var_z = variance(axes[:, 2])
        return StabilityResult(
            stability_index=(var_x + var_y) * sensitivity.stability,
            variance_x=var_x,
            variance_y=var_y,
            variance_z=var_z,
        )
