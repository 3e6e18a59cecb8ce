"""Tests for the batch RunProcessor."""

from __future__ import annotations

import math

import numpy as np
import pytest
from builders import RATE_HZ, accel_from_g, fill_simulated_run, g_profile, gps_track, timestamp_ns

from trailmeter.config import ProcessingConfig
from trailmeter.constants import GRAVITY_MS2
from trailmeter.metrics.scoring import SeriesType
from trailmeter.processing.processor import (
    CaptureHandle,
    EventType,
    RunProcessor,
    resample_series,
    resolve_sample_rate,
)
from trailmeter.samples import AccelSample
from trailmeter.sensing.buffers import SensorBuffers, SensorSnapshot
from trailmeter.validation import InvalidRunReason

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _snapshot(accel=(), gyro=(), gps=()) -> SensorSnapshot:
    return SensorSnapshot(accel=tuple(accel), gyro=tuple(gyro), rotation=(), gps=tuple(gps))


def _burst_accel(
    seconds: float,
    burst: tuple[float, float],
    base_amp: float,
    burst_amp: float,
) -> list[AccelSample]:
    out = []
    for i in range(int(seconds * RATE_HZ)):
        t = i / RATE_HZ
        amp = burst_amp if burst[0] <= t < burst[1] else base_amp
        z = GRAVITY_MS2 + amp * math.sin(2 * math.pi * 25.0 * t)
        out.append(AccelSample(timestamp_ns(i), 0.0, 0.0, z))
    return out


# ---------------------------------------------------------------------------
# Helpers under test
# ---------------------------------------------------------------------------


def test_resolve_sample_rate_prefers_plausible_declared_rate() -> None:
    samples = accel_from_g([1.0] * 20, rate_hz=100.0)
    assert resolve_sample_rate(200.0, samples) == 200.0
    assert resolve_sample_rate(0.0, samples) == pytest.approx(100.0)
    assert resolve_sample_rate(float("nan"), samples) == pytest.approx(100.0)
    assert resolve_sample_rate(4.0, samples) == pytest.approx(100.0)


class TestResampleSeries:
    def test_linear_interpolation_onto_grid(self) -> None:
        xs, ys = resample_series([0.0, 10.0], [0.0, 100.0], 5)
        np.testing.assert_allclose(xs, [0.0, 25.0, 50.0, 75.0, 100.0])
        np.testing.assert_allclose(ys, [0.0, 2.5, 5.0, 7.5, 10.0])

    def test_duplicate_positions_are_averaged(self) -> None:
        _, ys = resample_series([2.0, 4.0, 8.0], [0.0, 0.0, 100.0], 3)
        np.testing.assert_allclose(ys, [3.0, 5.5, 8.0])

    def test_non_finite_pairs_are_dropped_and_x_clamped(self) -> None:
        _, ys = resample_series([1.0, float("nan"), 3.0, 5.0], [-10.0, 50.0, float("inf"), 150.0], 3)
        np.testing.assert_allclose(ys, [1.0, 3.0, 5.0])

    def test_degenerate_inputs(self) -> None:
        _, ys = resample_series([], [], 4)
        np.testing.assert_allclose(ys, [0.0, 0.0, 0.0, 0.0])
        _, ys = resample_series([7.0], [30.0], 3)
        np.testing.assert_allclose(ys, [7.0, 7.0, 7.0])


def test_capture_handle_duration() -> None:
    assert CaptureHandle(1_000_000_000, 3_500_000_000).duration_ms == 2500
    assert CaptureHandle(5, 1).duration_ms == 0


# ---------------------------------------------------------------------------
# Full processing
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def simulated_run():
    buffers = SensorBuffers(accel_capacity=10_000, gyro_capacity=10_000, gps_capacity=1_000)
    fill_simulated_run(buffers)
    handle = CaptureHandle(0, 8_000_000_000, accel_sample_rate_hz=200.0, gyro_sample_rate_hz=200.0)
    return RunProcessor().process(buffers, handle)


def test_simulated_run_summary(simulated_run) -> None:
    summary = simulated_run.summary
    assert summary.duration_ms == 8000
    # Eight fixes, seven 7 m segments.
    assert summary.distance_m == pytest.approx(49.0, abs=1e-3)
    assert summary.impact_score > 0.0
    assert summary.harshness_avg > 0.0
    assert summary.harshness_p90 >= summary.harshness_avg * 0.5
    assert summary.stability_score >= 0.0
    assert summary.landing_quality_score is None
    assert summary.max_speed_mps == pytest.approx(7.0)
    assert summary.avg_speed_mps == pytest.approx(49.0 / 8.0, abs=1e-3)
    assert summary.accel_sample_rate_hz == 200.0
    assert summary.quality_score is not None and 0.0 <= summary.quality_score <= 100.0


def test_simulated_run_is_rejected_as_too_short(simulated_run) -> None:
    validation = simulated_run.validation
    assert validation.is_valid is False
    assert InvalidRunReason.TOO_SHORT in validation.reasons
    assert InvalidRunReason.NO_MOVEMENT in validation.reasons


def test_simulated_run_series(simulated_run) -> None:
    types = [s.series_type for s in simulated_run.series]
    assert types == [
        SeriesType.IMPACT_DENSITY,
        SeriesType.HARSHNESS,
        SeriesType.STABILITY,
        SeriesType.SPEED_TIME,
    ]
    for series in simulated_run.series:
        assert series.point_count == 200
        assert series.x[0] == 0.0
        assert series.x[-1] == 100.0
        assert all(math.isfinite(v) for v in series.y)
    speed_time = simulated_run.series[-1]
    assert speed_time.y[-1] == pytest.approx(8.0)


def test_simulated_run_impact_events(simulated_run) -> None:
    impacts = [e for e in simulated_run.events if e.event_type is EventType.IMPACT_PEAK]
    assert len(impacts) == 5
    for event, center in zip(impacts, (1.2, 2.8, 4.4, 6.0, 7.4)):
        assert event.time_s == pytest.approx(center, abs=0.05)
        assert event.severity == pytest.approx(event.meta["peak_g"])


def test_events_sorted_and_bounded(simulated_run) -> None:
    pcts = [e.dist_pct for e in simulated_run.events]
    assert pcts == sorted(pcts)
    assert all(0.0 <= p <= 100.0 for p in pcts)


def test_landing_event_suppresses_coincident_impact() -> None:
    profile = g_profile(
        [(1.0, 400), (0.1, 60), (1.5, 1), (4.5, 1), (1.5, 11), (0.2, 20), (1.0, 500)]
    )
    accel = accel_from_g(profile)
    gps = gps_track(10, speed_mps=5.0)
    handle = CaptureHandle(0, timestamp_ns(len(profile)), accel_sample_rate_hz=200.0)
    run = RunProcessor().process(_snapshot(accel=accel, gps=gps), handle)

    landings = [e for e in run.events if e.event_type is EventType.LANDING]
    assert len(landings) == 1
    landing = landings[0]
    assert landing.severity == 2.0
    assert landing.meta["peak_g"] == pytest.approx(4.5)
    assert landing.time_s == pytest.approx(461 / 200.0, abs=0.005)
    assert run.summary.landing_quality_score == 2.0
    assert not [e for e in run.events if e.event_type is EventType.IMPACT_PEAK]


def test_soft_landing_has_severity_one() -> None:
    profile = g_profile(
        [(1.0, 400), (0.1, 60), (1.5, 1), (3.5, 1), (1.5, 11), (0.2, 20), (1.0, 500)]
    )
    handle = CaptureHandle(0, timestamp_ns(len(profile)), accel_sample_rate_hz=200.0)
    run = RunProcessor().process(_snapshot(accel=accel_from_g(profile)), handle)
    landings = [e for e in run.events if e.event_type is EventType.LANDING]
    assert [e.severity for e in landings] == [1.0]


def test_harshness_burst_is_detected() -> None:
    accel = _burst_accel(10.0, burst=(5.0, 6.0), base_amp=0.3, burst_amp=3.0)
    handle = CaptureHandle(0, 10_000_000_000, accel_sample_rate_hz=200.0)
    run = RunProcessor().process(_snapshot(accel=accel, gps=gps_track(11)), handle)

    bursts = [e for e in run.events if e.event_type is EventType.HARSHNESS_BURST]
    assert len(bursts) == 1
    burst = bursts[0]
    assert 5.0 <= burst.time_s <= 6.0
    assert 1.0 <= burst.severity <= 6.0
    assert burst.meta["duration_ms"] >= 180.0


def test_steady_chatter_has_no_burst() -> None:
    accel = _burst_accel(10.0, burst=(0.0, 0.0), base_amp=0.3, burst_amp=0.3)
    handle = CaptureHandle(0, 10_000_000_000, accel_sample_rate_hz=200.0)
    run = RunProcessor().process(_snapshot(accel=accel), handle)
    # Chatter RMS of about 0.21 m/s² stays under the burst floor.
    assert not [e for e in run.events if e.event_type is EventType.HARSHNESS_BURST]


def test_empty_capture() -> None:
    handle = CaptureHandle(0, 60_000_000_000)
    run = RunProcessor().process(_snapshot(), handle)
    assert run.events == ()
    assert run.polyline.points == ()
    assert run.summary.impact_score == 0.0
    assert run.summary.harshness_p90 == 0.0
    assert run.summary.max_speed_mps is None
    assert run.validation.is_valid is False
    speed_time = run.series[-1]
    assert speed_time.series_type is SeriesType.SPEED_TIME
    assert speed_time.y[0] == 0.0
    assert speed_time.y[-1] == pytest.approx(60.0)
    assert all(v == 0.0 for v in run.series[0].y)


def test_zero_duration_has_no_timing_series() -> None:
    run = RunProcessor().process(_snapshot(), CaptureHandle(0, 0))
    assert [s.series_type for s in run.series] == [
        SeriesType.IMPACT_DENSITY,
        SeriesType.HARSHNESS,
        SeriesType.STABILITY,
    ]


def test_speed_time_profile_follows_distance() -> None:
    gps = gps_track(11, speed_mps=7.0)
    handle = CaptureHandle(0, 10_000_000_000)
    run = RunProcessor(
        ProcessingConfig(window_s=1.0, hop_s=0.25, output_points=11, default_sample_rate_hz=200.0)
    ).process(_snapshot(gps=gps), handle)
    speed_time = run.series[-1]
    np.testing.assert_allclose(speed_time.x, np.linspace(0.0, 100.0, 11))
    np.testing.assert_allclose(speed_time.y, np.arange(11, dtype=float), atol=1e-6)
