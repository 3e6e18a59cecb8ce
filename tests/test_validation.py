from __future__ import annotations

import math

import pytest
from builders import gps_track, noisy_accel

from trailmeter.samples import AccelSample, GpsSample
from trailmeter.sensitivity import SensitivitySettings
from trailmeter.validation import (
    LONG_PAUSES_WARNING,
    GpsQuality,
    InvalidRunReason,
    RunValidator,
    adjusted_max_gps_accuracy,
    adjusted_min_good_gps_ratio,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _gps_with_speeds(speeds: list[float], interval_s: float = 1.0, accuracy: float = 4.0) -> list[GpsSample]:
    return [
        GpsSample(
            timestamp_ns=int(i * interval_s * 1_000_000_000),
            latitude=40.0 + i * 1e-4,
            longitude=-3.0,
            speed=speed,
            accuracy=accuracy,
        )
        for i, speed in enumerate(speeds)
    ]


def _gps_with_accuracies(accuracies: list[float]) -> list[GpsSample]:
    return [
        GpsSample(i * 1_000_000_000, 40.0 + i * 1e-4, -3.0, 5.0, acc)
        for i, acc in enumerate(accuracies)
    ]


@pytest.fixture(scope="module")
def good_accel() -> list[AccelSample]:
    return noisy_accel(3000, std_ms2=3.0)


@pytest.fixture(scope="module")
def good_gps() -> list[GpsSample]:
    return gps_track(3000, interval_s=0.1, speed_mps=3.33, accuracy_m=4.0)


# ---------------------------------------------------------------------------
# validate_run
# ---------------------------------------------------------------------------


def test_valid_run(good_accel: list[AccelSample], good_gps: list[GpsSample]) -> None:
    result = RunValidator().validate_run(good_accel, good_gps, 300_000, 1000.0)
    assert result.is_valid is True
    assert result.reasons == ()
    assert result.warnings == ()
    assert result.gps_quality.overall_quality is GpsQuality.EXCELLENT
    assert result.movement_validation.is_valid_movement is True
    assert result.signal_quality == pytest.approx(1.0)
    assert result.avg_speed_mps == pytest.approx(1000.0 / 300.0)


def test_every_failing_gate_is_reported(good_accel: list[AccelSample]) -> None:
    gps = gps_track(5, speed_mps=3.0)
    result = RunValidator().validate_run(good_accel, gps, 10_000, 100.0)
    assert result.is_valid is False
    # NO_MOVEMENT is reported once even though distance and continuity both fail.
    assert result.reasons == (
        InvalidRunReason.TOO_SHORT,
        InvalidRunReason.NO_MOVEMENT,
        InvalidRunReason.GPS_POOR,
    )
    assert result.warnings == (LONG_PAUSES_WARNING,)
    assert result.gps_quality.average_accuracy_m == math.inf


def test_too_long(good_accel: list[AccelSample], good_gps: list[GpsSample]) -> None:
    result = RunValidator().validate_run(good_accel, good_gps, 3_600_001, 1000.0)
    assert result.reasons == (InvalidRunReason.TOO_LONG,)


def test_duration_boundaries_are_inclusive(
    good_accel: list[AccelSample], good_gps: list[GpsSample]
) -> None:
    validator = RunValidator()
    assert validator.validate_run(good_accel, good_gps, 30_000, 1000.0).is_valid
    assert validator.validate_run(good_accel, good_gps, 3_600_000, 1000.0).is_valid
    assert validator.validate_run(good_accel, good_gps, 300_000, 250.0).is_valid


def test_stuck_sensor_is_poor_signal(good_gps: list[GpsSample]) -> None:
    stuck = [AccelSample(i * 5_000_000, 0.0, 0.0, 9.81) for i in range(500)]
    result = RunValidator().validate_run(stuck, good_gps, 300_000, 1000.0)
    assert result.reasons == (InvalidRunReason.POOR_SIGNAL,)
    assert result.signal_quality == pytest.approx(0.3)


def test_zero_duration_average_speed(good_accel: list[AccelSample]) -> None:
    result = RunValidator().validate_run(good_accel, [], 0, 0.0)
    assert result.avg_speed_mps == 0.0


# ---------------------------------------------------------------------------
# validate_gps_quality
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("accuracies", "expected"),
    [
        ([4.0] * 20, GpsQuality.EXCELLENT),
        ([12.0] * 20, GpsQuality.GOOD),
        ([5.0] * 10 + [30.0] * 10, GpsQuality.FAIR),
        ([30.0] * 20, GpsQuality.POOR),
    ],
)
def test_gps_quality_levels(accuracies: list[float], expected: GpsQuality) -> None:
    assert RunValidator().validate_gps_quality(_gps_with_accuracies(accuracies)).overall_quality is expected


def test_gps_quality_reports_ratio_and_gap() -> None:
    result = RunValidator().validate_gps_quality(_gps_with_accuracies([5.0] * 10 + [30.0] * 10))
    assert result.good_sample_ratio == pytest.approx(0.5)
    assert result.average_accuracy_m == pytest.approx(17.5)
    assert result.max_gap_ms == pytest.approx(1000.0)


def test_higher_gps_sensitivity_is_stricter() -> None:
    validator = RunValidator()
    strict = SensitivitySettings(gps=2.0)
    at_threshold = validator.validate_gps_quality(_gps_with_accuracies([12.0] * 20), strict)
    over_threshold = validator.validate_gps_quality(_gps_with_accuracies([13.0] * 20), strict)
    assert at_threshold.overall_quality is GpsQuality.GOOD
    assert over_threshold.overall_quality is GpsQuality.POOR


@pytest.mark.parametrize(
    ("gps", "max_accuracy", "min_ratio"),
    [(1.0, 25.0, 0.7), (0.1, 60.0, 0.52), (2.0, 12.5, 0.9), (5.0, 10.0, 0.95)],
)
def test_adjusted_gps_limits(gps: float, max_accuracy: float, min_ratio: float) -> None:
    settings = SensitivitySettings(gps=gps)
    assert adjusted_max_gps_accuracy(settings) == pytest.approx(max_accuracy)
    assert adjusted_min_good_gps_ratio(settings) == pytest.approx(min_ratio)


# ---------------------------------------------------------------------------
# validate_movement_continuity
# ---------------------------------------------------------------------------


def test_long_pause_invalidates_movement() -> None:
    gps = _gps_with_speeds([3.0] * 10 + [0.1] * 5 + [3.0] * 5)
    result = RunValidator().validate_movement_continuity(gps)
    assert result.moving_ratio == pytest.approx(0.75)
    assert result.has_long_pauses is True
    assert result.max_pause_duration_ms == pytest.approx(5000.0)
    assert result.is_valid_movement is False


def test_slow_rolling_is_neither_moving_nor_paused() -> None:
    gps = _gps_with_speeds([3.0] * 10 + [1.5] * 10)
    result = RunValidator().validate_movement_continuity(gps)
    assert result.moving_ratio == pytest.approx(0.5)
    assert result.has_long_pauses is False
    assert result.is_valid_movement is False


def test_short_pause_at_end_is_measured_to_last_sample() -> None:
    gps = _gps_with_speeds([3.0] * 18 + [0.1] * 2)
    result = RunValidator().validate_movement_continuity(gps)
    assert result.max_pause_duration_ms == pytest.approx(1000.0)
    assert result.is_valid_movement is True


def test_too_few_gps_samples_for_movement() -> None:
    result = RunValidator().validate_movement_continuity(_gps_with_speeds([3.0] * 9))
    assert result.is_valid_movement is False
    assert result.has_long_pauses is True


# ---------------------------------------------------------------------------
# validate_signal_quality / is_moving
# ---------------------------------------------------------------------------


def test_signal_quality_needs_hundred_samples() -> None:
    assert RunValidator().validate_signal_quality(noisy_accel(99, std_ms2=3.0)) == 0.0


def test_signal_quality_penalises_gaps() -> None:
    samples = noisy_accel(200, std_ms2=3.0)
    # Shift the second half by one second: one interval far above the mean.
    gapped = samples[:100] + [
        AccelSample(s.timestamp_ns + 1_000_000_000, s.x, s.y, s.z) for s in samples[100:]
    ]
    score = RunValidator().validate_signal_quality(gapped)
    assert score == pytest.approx(1.0 - 1 / 199)


def test_is_moving_uses_trailing_window() -> None:
    validator = RunValidator()
    assert validator.is_moving([]) is False
    assert validator.is_moving(_gps_with_speeds([0.0] * 10 + [3.0] * 4)) is True
    assert validator.is_moving(_gps_with_speeds([3.0] * 10 + [0.0] * 4)) is False
