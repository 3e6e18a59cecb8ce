"""Batch analysis of a finished recording.

``RunProcessor`` reads one snapshot of the session buffers and produces the
persisted view of a run: summary scores, distance-indexed metric series,
discrete events, the map polyline and the validation verdict.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import numpy as np

from ..config import ProcessingConfig
from ..constants import NS_PER_MS, NS_PER_S
from ..dsp.signal_utils import estimate_sample_rate, percentile
from ..metrics.harshness import HarshnessAnalyzer
from ..metrics.impact import ImpactAnalyzer
from ..metrics.landing import LandingDetector, LandingEvent
from ..metrics.scoring import SeriesType, overall_quality_score
from ..metrics.stability import StabilityAnalyzer
from ..samples import AccelSample, GpsSample, GyroSample, timestamps_ns
from ..sensing.buffers import SensorBuffers, SensorSnapshot
from ..sensitivity import SensitivitySettings
from ..validation import GpsQuality, RunValidator, ValidationResult
from .distance import DistanceMapping, cumulative_distances, filtered_distance
from .polyline import GpsPolyline, build_polyline

LOGGER = logging.getLogger(__name__)

DEFAULT_PROCESSING = ProcessingConfig(
    window_s=1.0,
    hop_s=0.25,
    output_points=200,
    default_sample_rate_hz=200.0,
)

MIN_DECLARED_SAMPLE_RATE_HZ = 5.0
MIN_WINDOW_SAMPLES = 3

IMPACT_EVENT_DEBOUNCE_MS = 250
IMPACT_NEAR_LANDING_MS = 350
HARD_LANDING_PEAK_G = 4.0

HARSHNESS_BURST_WINDOW_S = 0.35
HARSHNESS_BURST_HOP_S = 0.10
HARSHNESS_BURST_MIN_WINDOW_SAMPLES = 30
HARSHNESS_BURST_MIN_HOP_SAMPLES = 8
HARSHNESS_BURST_MIN_SAMPLES = 50
HARSHNESS_BURST_MIN_WINDOWS = 3
HARSHNESS_BURST_FLOOR = 0.25
HARSHNESS_BURST_P90_WEIGHT = 0.65
HARSHNESS_BURST_MIN_DURATION_MS = 180
HARSHNESS_BURST_MERGE_GAP_MS = 220
HARSHNESS_BURST_MIN_SEVERITY = 1.0
HARSHNESS_BURST_MAX_SEVERITY = 6.0

_SERIES_X_MERGE_EPS = 1e-5
_SPEED_TIME_END_PCT = 99.5


class EventType(StrEnum):
    LANDING = "landing"
    IMPACT_PEAK = "impact_peak"
    HARSHNESS_BURST = "harshness_burst"


@dataclass(frozen=True, slots=True)
class CaptureHandle:
    """Boundaries and declared sensor rates of one recording."""

    start_time_ns: int
    end_time_ns: int
    accel_sample_rate_hz: float = 0.0
    gyro_sample_rate_hz: float = 0.0
    track_id: str | None = None
    device_model: str | None = None

    @property
    def duration_ms(self) -> int:
        return max(0, self.end_time_ns - self.start_time_ns) // NS_PER_MS


@dataclass(frozen=True, slots=True)
class RunSummary:
    duration_ms: int
    distance_m: float
    impact_score: float
    harshness_avg: float
    harshness_p90: float
    stability_score: float
    landing_quality_score: float | None
    avg_speed_mps: float
    max_speed_mps: float | None
    gps_quality: GpsQuality
    accel_sample_rate_hz: float
    gyro_sample_rate_hz: float
    quality_score: float | None


@dataclass(frozen=True, slots=True)
class RunSeries:
    series_type: SeriesType
    x: tuple[float, ...]
    """Distance percentage of each point."""
    y: tuple[float, ...]

    @property
    def point_count(self) -> int:
        return len(self.x)


@dataclass(frozen=True, slots=True)
class RunEvent:
    event_type: EventType
    dist_pct: float
    time_s: float
    severity: float
    meta: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProcessedRun:
    summary: RunSummary
    series: tuple[RunSeries, ...]
    events: tuple[RunEvent, ...]
    polyline: GpsPolyline
    validation: ValidationResult


@dataclass(slots=True)
class _WindowResults:
    impact_density: list[float] = field(default_factory=list)
    harshness_rms: list[float] = field(default_factory=list)
    stability_index: list[float] = field(default_factory=list)
    dist_pcts: list[float] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _HarshnessBurst:
    start_ns: int
    end_ns: int
    peak_ns: int
    peak_rms: float


def resolve_sample_rate(declared_hz: float, samples: Sequence[AccelSample]) -> float:
    """Declared rate when plausible, otherwise an estimate from timestamps."""
    if np.isfinite(declared_hz) and declared_hz >= MIN_DECLARED_SAMPLE_RATE_HZ:
        return float(declared_hz)
    return estimate_sample_rate(timestamps_ns(samples))


def resample_series(
    values: Sequence[float],
    dist_pcts: Sequence[float],
    output_points: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Resample ``(dist_pct, value)`` pairs onto an even 0..100 grid.

    Non-finite pairs are dropped, x is clamped to 0..100, and points whose x
    coincide are averaged before linear interpolation.
    """
    out_x = np.linspace(0.0, 100.0, num=output_points)
    pairs = [
        (min(max(float(x), 0.0), 100.0), float(y))
        for y, x in zip(values, dist_pcts)
        if np.isfinite(x) and np.isfinite(y)
    ]
    if not pairs:
        return out_x, np.zeros(output_points, dtype=np.float64)
    pairs.sort(key=lambda p: p[0])
    merged: list[tuple[float, float]] = []
    for x, y in pairs:
        if merged and abs(merged[-1][0] - x) < _SERIES_X_MERGE_EPS:
            merged[-1] = (merged[-1][0], (merged[-1][1] + y) / 2.0)
        else:
            merged.append((x, y))
    xs = np.array([p[0] for p in merged], dtype=np.float64)
    ys = np.array([p[1] for p in merged], dtype=np.float64)
    return out_x, np.interp(out_x, xs, ys)


class RunProcessor:
    def __init__(
        self,
        config: ProcessingConfig | None = None,
        impact: ImpactAnalyzer | None = None,
        harshness: HarshnessAnalyzer | None = None,
        stability: StabilityAnalyzer | None = None,
        landing: LandingDetector | None = None,
        validator: RunValidator | None = None,
    ) -> None:
        self.config = config or DEFAULT_PROCESSING
        self.impact = impact or ImpactAnalyzer()
        self.harshness = harshness or HarshnessAnalyzer()
        self.stability = stability or StabilityAnalyzer()
        self.landing = landing or LandingDetector()
        self.validator = validator or RunValidator()

    def process(
        self,
        source: SensorBuffers | SensorSnapshot,
        handle: CaptureHandle,
        sensitivity: SensitivitySettings | None = None,
    ) -> ProcessedRun:
        snapshot = source.snapshot() if isinstance(source, SensorBuffers) else source
        sensitivity = sensitivity or SensitivitySettings()
        accel, gyro, gps = snapshot.accel, snapshot.gyro, snapshot.gps

        duration_ms = handle.duration_ms
        total_distance = filtered_distance(gps, sensitivity)
        validation = self.validator.validate_run(
            accel, gps, duration_ms, total_distance, sensitivity
        )
        mapping = DistanceMapping(gps)
        sample_rate = (
            resolve_sample_rate(handle.accel_sample_rate_hz, accel)
            if accel
            else self.config.default_sample_rate_hz
        )

        windows = self._process_windows(accel, gyro, mapping, sample_rate, sensitivity)
        events = self._detect_events(accel, mapping, handle, sample_rate, sensitivity)

        impact_score = float(sum(windows.impact_density))
        harshness_avg = float(np.mean(windows.harshness_rms)) if windows.harshness_rms else 0.0
        stability_score = (
            float(np.mean(windows.stability_index)) if windows.stability_index else 0.0
        )
        landing_severities = [e.severity for e in events if e.event_type is EventType.LANDING]
        max_speed = max((s.speed for s in gps), default=None)
        summary = RunSummary(
            duration_ms=duration_ms,
            distance_m=total_distance,
            impact_score=impact_score,
            harshness_avg=harshness_avg,
            harshness_p90=percentile(windows.harshness_rms, 90),
            stability_score=stability_score,
            landing_quality_score=(
                float(np.mean(landing_severities)) if landing_severities else None
            ),
            avg_speed_mps=validation.avg_speed_mps,
            max_speed_mps=(
                float(max_speed) if max_speed is not None and np.isfinite(max_speed) else None
            ),
            gps_quality=validation.gps_quality.overall_quality,
            accel_sample_rate_hz=sample_rate,
            gyro_sample_rate_hz=float(handle.gyro_sample_rate_hz),
            quality_score=overall_quality_score(impact_score, harshness_avg, stability_score),
        )

        series = [
            self._series(SeriesType.IMPACT_DENSITY, windows.impact_density, windows.dist_pcts),
            self._series(SeriesType.HARSHNESS, windows.harshness_rms, windows.dist_pcts),
            self._series(SeriesType.STABILITY, windows.stability_index, windows.dist_pcts),
        ]
        timing = self._timing_series(gps, total_distance, handle)
        if timing is not None:
            series.append(timing)

        LOGGER.info(
            "Processed run: duration=%dms distance=%.1fm windows=%d events=%d valid=%s",
            duration_ms,
            total_distance,
            len(windows.impact_density),
            len(events),
            validation.is_valid,
        )
        return ProcessedRun(
            summary=summary,
            series=tuple(series),
            events=tuple(events),
            polyline=build_polyline(gps, total_distance),
            validation=validation,
        )

    # -- windowed metrics -----------------------------------------------------

    def _process_windows(
        self,
        accel: Sequence[AccelSample],
        gyro: Sequence[GyroSample],
        mapping: DistanceMapping,
        sample_rate: float,
        sensitivity: SensitivitySettings,
    ) -> _WindowResults:
        results = _WindowResults()
        if not accel:
            return results
        window_samples = max(1, round(self.config.window_s * sample_rate))
        hop_samples = max(1, round(self.config.hop_s * sample_rate))
        gyro_ts = timestamps_ns(gyro)

        start = 0
        while start < len(accel):
            end = min(start + window_samples, len(accel))
            if end - start < MIN_WINDOW_SAMPLES:
                break
            window = accel[start:end]
            start_ns = window[0].timestamp_ns
            end_ns = window[-1].timestamp_ns
            g_lo = int(np.searchsorted(gyro_ts, start_ns, side="left"))
            g_hi = int(np.searchsorted(gyro_ts, end_ns, side="right"))

            results.impact_density.append(
                self.impact.analyze_window(window, sensitivity, sample_rate_hz=sample_rate)
            )
            results.harshness_rms.append(
                self.harshness.analyze_window(window, sample_rate, sensitivity)
            )
            results.stability_index.append(
                self.stability.analyze_window(gyro[g_lo:g_hi], sensitivity).stability_index
            )
            results.dist_pcts.append(mapping.dist_pct(window[len(window) // 2].timestamp_ns))

            if end >= len(accel):
                break
            start += hop_samples
        return results

    def _series(
        self,
        series_type: SeriesType,
        values: Sequence[float],
        dist_pcts: Sequence[float],
    ) -> RunSeries:
        xs, ys = resample_series(values, dist_pcts, self.config.output_points)
        return RunSeries(series_type=series_type, x=tuple(xs.tolist()), y=tuple(ys.tolist()))

    def _timing_series(
        self,
        gps: Sequence[GpsSample],
        total_distance_m: float,
        handle: CaptureHandle,
    ) -> RunSeries | None:
        """Elapsed seconds against distance percentage, spanning 0..100%."""
        duration_s = handle.duration_ms / 1000.0
        if handle.duration_ms <= 0:
            return None
        if len(gps) < 2 or total_distance_m <= 0.0:
            return self._series(SeriesType.SPEED_TIME, [0.0, duration_s], [0.0, 100.0])

        cumulative = cumulative_distances(gps)
        dist_pcts = np.clip(cumulative / total_distance_m * 100.0, 0.0, 100.0).tolist()
        elapsed = [max(0, s.timestamp_ns - handle.start_time_ns) / NS_PER_S for s in gps]
        if dist_pcts[-1] < _SPEED_TIME_END_PCT:
            dist_pcts.append(100.0)
            elapsed.append(duration_s)
        else:
            elapsed[-1] = max(elapsed[-1], duration_s)
        return self._series(SeriesType.SPEED_TIME, elapsed, dist_pcts)

    # -- events ---------------------------------------------------------------

    def _detect_events(
        self,
        accel: Sequence[AccelSample],
        mapping: DistanceMapping,
        handle: CaptureHandle,
        sample_rate: float,
        sensitivity: SensitivitySettings,
    ) -> list[RunEvent]:
        landings = self.landing.detect_landings(accel, sample_rate)
        events = [self._landing_event(landing, mapping, handle) for landing in landings]
        landing_times_ns = sorted(landing.timestamp_ms * NS_PER_MS for landing in landings)
        events += self._impact_peak_events(
            accel, sample_rate, mapping, handle, landing_times_ns, sensitivity
        )
        events += self._harshness_burst_events(accel, sample_rate, mapping, handle, sensitivity)
        events.sort(key=lambda e: e.dist_pct)
        return events

    def _landing_event(
        self,
        landing: LandingEvent,
        mapping: DistanceMapping,
        handle: CaptureHandle,
    ) -> RunEvent:
        timestamp_ns = landing.timestamp_ms * NS_PER_MS
        return RunEvent(
            event_type=EventType.LANDING,
            dist_pct=mapping.dist_pct(timestamp_ns),
            time_s=(landing.timestamp_ms - handle.start_time_ns // NS_PER_MS) / 1000.0,
            severity=2.0 if landing.peak_g > HARD_LANDING_PEAK_G else 1.0,
            meta={
                "peak_g": landing.peak_g,
                "energy_300ms": landing.energy_300ms,
                "recovery_ms": landing.recovery_ms,
                "airtime_ms": landing.airtime_ms,
            },
        )

    def _impact_peak_events(
        self,
        accel: Sequence[AccelSample],
        sample_rate: float,
        mapping: DistanceMapping,
        handle: CaptureHandle,
        landing_times_ns: list[int],
        sensitivity: SensitivitySettings,
    ) -> list[RunEvent]:
        debounce_ns = IMPACT_EVENT_DEBOUNCE_MS * NS_PER_MS
        near_landing_ns = IMPACT_NEAR_LANDING_MS * NS_PER_MS
        events: list[RunEvent] = []
        last_ns: int | None = None
        for peak in self.impact.detect_peaks(accel, sample_rate, sensitivity):
            ts = peak.timestamp_ns
            if last_ns is not None and ts - last_ns < debounce_ns:
                continue
            if _near_any(landing_times_ns, ts, near_landing_ns):
                continue
            peak_g = max(peak.peak_g, 0.0)
            events.append(
                RunEvent(
                    event_type=EventType.IMPACT_PEAK,
                    dist_pct=mapping.dist_pct(ts),
                    time_s=max(0, ts - handle.start_time_ns) / NS_PER_S,
                    severity=peak_g,
                    meta={"peak_g": peak_g},
                )
            )
            last_ns = ts
        return events

    def _harshness_burst_events(
        self,
        accel: Sequence[AccelSample],
        sample_rate: float,
        mapping: DistanceMapping,
        handle: CaptureHandle,
        sensitivity: SensitivitySettings,
    ) -> list[RunEvent]:
        if sample_rate <= 0 or len(accel) < HARSHNESS_BURST_MIN_SAMPLES:
            return []
        window_samples = max(
            HARSHNESS_BURST_MIN_WINDOW_SAMPLES, round(HARSHNESS_BURST_WINDOW_S * sample_rate)
        )
        hop_samples = max(
            HARSHNESS_BURST_MIN_HOP_SAMPLES, round(HARSHNESS_BURST_HOP_S * sample_rate)
        )
        if window_samples >= len(accel):
            return []

        windows: list[tuple[int, int, float]] = []
        start = 0
        while start + window_samples <= len(accel):
            window = accel[start : start + window_samples]
            rms = self.harshness.analyze_window(window, sample_rate, sensitivity)
            if np.isfinite(rms) and rms > 0.0:
                windows.append((window[0].timestamp_ns, window[-1].timestamp_ns, rms))
            start += hop_samples
        if len(windows) < HARSHNESS_BURST_MIN_WINDOWS:
            return []

        rms_values = [w[2] for w in windows]
        p75 = percentile(rms_values, 75)
        p90 = percentile(rms_values, 90)
        threshold = max(HARSHNESS_BURST_FLOOR, p75 + (p90 - p75) * HARSHNESS_BURST_P90_WEIGHT)

        bursts = _merge_bursts(_threshold_bursts(windows, threshold))
        events: list[RunEvent] = []
        for burst in bursts:
            severity = min(
                max(burst.peak_rms / threshold * 2.0, HARSHNESS_BURST_MIN_SEVERITY),
                HARSHNESS_BURST_MAX_SEVERITY,
            )
            events.append(
                RunEvent(
                    event_type=EventType.HARSHNESS_BURST,
                    dist_pct=mapping.dist_pct(burst.peak_ns),
                    time_s=max(0, burst.peak_ns - handle.start_time_ns) / NS_PER_S,
                    severity=severity,
                    meta={
                        "rms_value": burst.peak_rms,
                        "duration_ms": float(max(0, burst.end_ns - burst.start_ns) // NS_PER_MS),
                    },
                )
            )
        return events


def _near_any(sorted_ns: list[int], target_ns: int, tolerance_ns: int) -> bool:
    if not sorted_ns:
        return False
    idx = bisect.bisect_left(sorted_ns, target_ns)
    neighbours = sorted_ns[max(0, idx - 1) : idx + 1]
    return any(abs(ts - target_ns) <= tolerance_ns for ts in neighbours)


def _threshold_bursts(
    windows: Sequence[tuple[int, int, float]],
    threshold: float,
) -> list[_HarshnessBurst]:
    """Contiguous runs of windows at or over *threshold* lasting long enough."""
    bursts: list[_HarshnessBurst] = []
    active: list[int] | None = None  # [start_ns, end_ns, peak_ns]
    peak_rms = 0.0

    def flush() -> None:
        if active is None:
            return
        start_ns, end_ns, peak_ns = active
        if (end_ns - start_ns) // NS_PER_MS >= HARSHNESS_BURST_MIN_DURATION_MS:
            bursts.append(_HarshnessBurst(start_ns, end_ns, peak_ns, peak_rms))

    for start_ns, end_ns, rms in windows:
        center_ns = start_ns + (end_ns - start_ns) // 2
        if rms >= threshold:
            if active is None:
                active = [start_ns, end_ns, center_ns]
                peak_rms = rms
            else:
                active[1] = end_ns
                if rms > peak_rms:
                    active[2] = center_ns
                    peak_rms = rms
        else:
            flush()
            active = None
    flush()
    return bursts


def _merge_bursts(bursts: list[_HarshnessBurst]) -> list[_HarshnessBurst]:
    if not bursts:
        return []
    ordered = sorted(bursts, key=lambda b: b.start_ns)
    gap_ns = HARSHNESS_BURST_MERGE_GAP_MS * NS_PER_MS
    merged: list[_HarshnessBurst] = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if nxt.start_ns - current.end_ns <= gap_ns:
            end_ns = max(current.end_ns, nxt.end_ns)
            peak = nxt if nxt.peak_rms > current.peak_rms else current
            current = _HarshnessBurst(current.start_ns, end_ns, peak.peak_ns, peak.peak_rms)
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged
