from __future__ import annotations

import pytest
from builders import sine_gyro

from trailmeter.metrics.stability import (
    StabilityAnalyzer,
    StabilityLevel,
    StabilityResult,
    classify_stability,
)
from trailmeter.sensitivity import SensitivitySettings


def test_short_window_is_neutral() -> None:
    assert StabilityAnalyzer().analyze_window(sine_gyro(9, 1.0, 1.0)) == StabilityResult()


def test_index_sums_pitch_and_roll_variance_only() -> None:
    # Whole periods: variance of A*sin is A^2 / 2.
    gyro = sine_gyro(200, amp_x=0.2, amp_y=0.4, amp_z=3.0)
    result = StabilityAnalyzer().analyze_window(gyro)
    assert result.variance_x == pytest.approx(0.02, rel=1e-6)
    assert result.variance_y == pytest.approx(0.08, rel=1e-6)
    assert result.variance_z == pytest.approx(4.5, rel=1e-6)
    assert result.stability_index == pytest.approx(0.10, rel=1e-6)
    assert result.level is StabilityLevel.GOOD


def test_sensitivity_scales_index() -> None:
    gyro = sine_gyro(200, amp_x=0.2, amp_y=0.4)
    result = StabilityAnalyzer().analyze_window(gyro, SensitivitySettings(stability=3.0))
    assert result.stability_index == pytest.approx(0.30, rel=1e-6)
    assert result.variance_x == pytest.approx(0.02, rel=1e-6)


@pytest.mark.parametrize(
    ("index", "level"),
    [
        (0.0, StabilityLevel.EXCELLENT),
        (0.049, StabilityLevel.EXCELLENT),
        (0.05, StabilityLevel.GOOD),
        (0.15, StabilityLevel.MODERATE),
        (0.29, StabilityLevel.MODERATE),
        (0.30, StabilityLevel.POOR),
        (4.0, StabilityLevel.POOR),
    ],
)
def test_classify_stability(index: float, level: StabilityLevel) -> None:
    assert classify_stability(index) is level
