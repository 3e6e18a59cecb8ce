"""End-of-run quality gate.

:meth:`RunValidator.validate_run` evaluates every gate (duration, distance,
GPS quality, movement continuity, signal integrity) and reports all failing
reasons at once; it never stops at the first failure.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

import numpy as np

from .constants import (
    MAX_GPS_ACCURACY_CAP_M,
    MIN_GPS_ACCURACY_CAP_M,
    MOVING_SPEED_MPS,
    NS_PER_MS,
    PAUSE_SPEED_MPS,
    SENSITIVITY_FLOOR,
)
from .dsp.signal_utils import variance
from .samples import AccelSample, GpsSample, axes_array, magnitudes, timestamps_ns
from .sensitivity import SensitivitySettings

MIN_DURATION_MS = 30_000
MAX_DURATION_MS = 3_600_000
MIN_DISTANCE_M = 250.0
MIN_GPS_SAMPLES = 10
MAX_GPS_ACCURACY_M = 25.0
MIN_GOOD_GPS_RATIO = 0.7
MIN_SIGNAL_QUALITY = 0.6
MIN_MOVING_RATIO = 0.7
MAX_PAUSE_DURATION_MS = 2000
MIN_SIGNAL_SAMPLES = 100

EXCELLENT_GOOD_RATIO = 0.9
EXCELLENT_AVG_ACCURACY_M = 10.0
FAIR_GOOD_RATIO = 0.5

LONG_PAUSES_WARNING = "Long pauses detected during run"


class InvalidRunReason(StrEnum):
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    NO_MOVEMENT = "no_movement"
    GPS_POOR = "gps_poor"
    POOR_SIGNAL = "poor_signal"


class GpsQuality(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(frozen=True, slots=True)
class GpsValidation:
    overall_quality: GpsQuality
    good_sample_ratio: float
    average_accuracy_m: float
    max_gap_ms: float


@dataclass(frozen=True, slots=True)
class MovementValidation:
    is_valid_movement: bool
    moving_ratio: float
    has_long_pauses: bool
    max_pause_duration_ms: float


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    reasons: tuple[InvalidRunReason, ...]
    warnings: tuple[str, ...]
    gps_quality: GpsValidation
    signal_quality: float
    movement_validation: MovementValidation
    avg_speed_mps: float


def adjusted_max_gps_accuracy(sensitivity: SensitivitySettings) -> float:
    """Accuracy cap for a "good" fix; a higher GPS sensitivity is stricter."""
    cap = MAX_GPS_ACCURACY_M / max(sensitivity.gps, SENSITIVITY_FLOOR)
    return min(max(cap, MIN_GPS_ACCURACY_CAP_M), MAX_GPS_ACCURACY_CAP_M)


def adjusted_min_good_gps_ratio(sensitivity: SensitivitySettings) -> float:
    ratio = MIN_GOOD_GPS_RATIO + (sensitivity.gps - 1.0) * 0.2
    return min(max(ratio, 0.5), 0.95)


class RunValidator:
    def validate_run(
        self,
        accel_samples: Sequence[AccelSample],
        gps_samples: Sequence[GpsSample],
        duration_ms: float,
        total_distance_m: float,
        sensitivity: SensitivitySettings | None = None,
    ) -> ValidationResult:
        sensitivity = sensitivity or SensitivitySettings()
        reasons: list[InvalidRunReason] = []
        warnings: list[str] = []

        def fail(reason: InvalidRunReason) -> None:
            if reason not in reasons:
                reasons.append(reason)

        if duration_ms < MIN_DURATION_MS:
            fail(InvalidRunReason.TOO_SHORT)
        if duration_ms > MAX_DURATION_MS:
            fail(InvalidRunReason.TOO_LONG)

        if total_distance_m < MIN_DISTANCE_M:
            fail(InvalidRunReason.NO_MOVEMENT)

        gps_quality = self.validate_gps_quality(gps_samples, sensitivity)
        if gps_quality.overall_quality is GpsQuality.POOR:
            fail(InvalidRunReason.GPS_POOR)

        movement = self.validate_movement_continuity(gps_samples)
        if not movement.is_valid_movement:
            fail(InvalidRunReason.NO_MOVEMENT)
        if movement.has_long_pauses:
            warnings.append(LONG_PAUSES_WARNING)

        signal_quality = self.validate_signal_quality(accel_samples)
        if signal_quality < MIN_SIGNAL_QUALITY:
            fail(InvalidRunReason.POOR_SIGNAL)

        avg_speed = total_distance_m / (duration_ms / 1000.0) if duration_ms > 0 else 0.0

        return ValidationResult(
            is_valid=not reasons,
            reasons=tuple(reasons),
            warnings=tuple(warnings),
            gps_quality=gps_quality,
            signal_quality=signal_quality,
            movement_validation=movement,
            avg_speed_mps=avg_speed,
        )

    def validate_gps_quality(
        self,
        samples: Sequence[GpsSample],
        sensitivity: SensitivitySettings | None = None,
    ) -> GpsValidation:
        if len(samples) < MIN_GPS_SAMPLES:
            return GpsValidation(
                overall_quality=GpsQuality.POOR,
                good_sample_ratio=0.0,
                average_accuracy_m=float("inf"),
                max_gap_ms=float("inf"),
            )
        sensitivity = sensitivity or SensitivitySettings()
        max_accuracy = adjusted_max_gps_accuracy(sensitivity)
        min_good_ratio = adjusted_min_good_gps_ratio(sensitivity)

        accuracies = np.array([s.accuracy for s in samples], dtype=np.float64)
        good_ratio = float(np.count_nonzero(accuracies < max_accuracy)) / accuracies.size
        avg_accuracy = float(accuracies.mean())
        max_gap_ms = float(np.diff(timestamps_ns(samples)).max()) / NS_PER_MS

        if good_ratio >= EXCELLENT_GOOD_RATIO and avg_accuracy < EXCELLENT_AVG_ACCURACY_M:
            quality = GpsQuality.EXCELLENT
        elif good_ratio >= min_good_ratio and avg_accuracy < max_accuracy:
            quality = GpsQuality.GOOD
        elif good_ratio >= FAIR_GOOD_RATIO:
            quality = GpsQuality.FAIR
        else:
            quality = GpsQuality.POOR

        return GpsValidation(
            overall_quality=quality,
            good_sample_ratio=good_ratio,
            average_accuracy_m=avg_accuracy,
            max_gap_ms=max_gap_ms,
        )

    def validate_movement_continuity(self, samples: Sequence[GpsSample]) -> MovementValidation:
        """Moving ratio and longest pause.

        A pause starts at the first sample under the pause speed and ends at
        the next moving sample (or the last sample of the run).  Samples
        between the two speeds neither move nor pause.
        """
        if len(samples) < MIN_GPS_SAMPLES:
            return MovementValidation(
                is_valid_movement=False,
                moving_ratio=0.0,
                has_long_pauses=True,
                max_pause_duration_ms=float("inf"),
            )

        moving = 0
        max_pause_ms = 0.0
        pause_start_ns: int | None = None
        for sample in samples:
            if sample.speed >= MOVING_SPEED_MPS:
                moving += 1
                if pause_start_ns is not None:
                    pause_ms = (sample.timestamp_ns - pause_start_ns) / NS_PER_MS
                    max_pause_ms = max(max_pause_ms, pause_ms)
                    pause_start_ns = None
            elif sample.speed < PAUSE_SPEED_MPS and pause_start_ns is None:
                pause_start_ns = sample.timestamp_ns
        if pause_start_ns is not None:
            pause_ms = (samples[-1].timestamp_ns - pause_start_ns) / NS_PER_MS
            max_pause_ms = max(max_pause_ms, pause_ms)

        moving_ratio = moving / len(samples)
        has_long_pauses = max_pause_ms > MAX_PAUSE_DURATION_MS
        return MovementValidation(
            is_valid_movement=moving_ratio >= MIN_MOVING_RATIO and not has_long_pauses,
            moving_ratio=moving_ratio,
            has_long_pauses=has_long_pauses,
            max_pause_duration_ms=max_pause_ms,
        )

    def validate_signal_quality(self, samples: Sequence[AccelSample]) -> float:
        """Accelerometer integrity score in ``[0, 1]``; 0 below 100 samples."""
        if len(samples) < MIN_SIGNAL_SAMPLES:
            return 0.0
        score = 1.0

        intervals = np.diff(timestamps_ns(samples)).astype(np.float64)
        avg_interval = float(intervals.mean())
        large_gaps = int(np.count_nonzero(intervals > avg_interval * 3.0))
        score -= min(max(large_gaps / intervals.size, 0.0), 0.3)

        mag_variance = variance(magnitudes(samples))
        if mag_variance < 0.01:
            score -= 0.3
        if mag_variance > 1000.0:
            score -= 0.2

        # Truncation toward zero, so a stuck sensor collapses to very few keys.
        keys = np.trunc(axes_array(samples)).astype(np.int64)
        unique = np.unique(keys, axis=0).shape[0]
        if unique < len(samples) // 10:
            score -= 0.4

        return min(max(score, 0.0), 1.0)

    def is_moving(self, gps_samples: Sequence[GpsSample], window_ms: float = 3000.0) -> bool:
        """Average speed over the trailing *window_ms* is at least the moving speed."""
        if not gps_samples:
            return False
        cutoff_ns = gps_samples[-1].timestamp_ns - int(window_ms * NS_PER_MS)
        recent = [s.speed for s in gps_samples if s.timestamp_ns >= cutoff_ns]
        if not recent:
            return False
        return float(np.mean(recent)) >= MOVING_SPEED_MPS
