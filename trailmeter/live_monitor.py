"""Live ride feedback computed from the sensor buffers while recording.

:class:`LiveMonitor` recomputes a :class:`LiveMetrics` snapshot every period
from the most recent samples.  The three live metrics are normalised to
``[0, 1]`` with the same references the post-run charts use
(:mod:`trailmeter.metrics.scoring`), so a gauge and a chart agree on the same
underlying value.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

import numpy as np

from .config import LiveMonitorConfig
from .constants import MOVING_SPEED_MPS
from .dsp.signal_utils import variance
from .metrics.harshness import HarshnessAnalyzer
from .metrics.impact import ImpactAnalyzer
from .metrics.scoring import SeriesType, normalized_unit
from .metrics.stability import StabilityAnalyzer
from .samples import AccelSample, GpsSample, GyroSample, magnitudes
from .sensing.buffers import SensorBuffers
from .sensitivity import SensitivitySettings, SensitivityStore

LOGGER = logging.getLogger(__name__)

DEFAULT_PERIOD_S = 0.3
MIN_GPS_SAMPLES_FOR_MOVEMENT = 3
MIN_SIGNAL_STABILITY_SAMPLES = 100
MIN_LIVE_STABILITY_SAMPLES = 50

# Gyro-magnitude variance buckets (rad²/s²) for the signal-stability score.
_SIGNAL_STABILITY_BUCKETS: tuple[tuple[float, float], ...] = (
    (10.0, 0.2),
    (5.0, 0.5),
    (2.0, 0.7),
)
_SIGNAL_STABILITY_STEADY = 0.9

GPS_GOOD_ACCURACY_M = 5.0
GPS_MEDIUM_ACCURACY_M = 15.0
SIGNAL_STABLE_MIN = 0.8
SIGNAL_MODERATE_MIN = 0.5


class GpsSignalLevel(StrEnum):
    NONE = "none"
    GOOD = "good"
    MEDIUM = "medium"
    POOR = "poor"


class SignalQualityLevel(StrEnum):
    UNKNOWN = "unknown"
    STABLE = "stable"
    MODERATE = "moderate"
    LOOSE = "loose"


def gps_signal_level(accuracy_m: float) -> GpsSignalLevel:
    if accuracy_m < 0:
        return GpsSignalLevel.NONE
    if accuracy_m <= GPS_GOOD_ACCURACY_M:
        return GpsSignalLevel.GOOD
    if accuracy_m <= GPS_MEDIUM_ACCURACY_M:
        return GpsSignalLevel.MEDIUM
    return GpsSignalLevel.POOR


def signal_quality_level(signal_stability: float) -> SignalQualityLevel:
    if signal_stability < 0:
        return SignalQualityLevel.UNKNOWN
    if signal_stability >= SIGNAL_STABLE_MIN:
        return SignalQualityLevel.STABLE
    if signal_stability >= SIGNAL_MODERATE_MIN:
        return SignalQualityLevel.MODERATE
    return SignalQualityLevel.LOOSE


@dataclass(frozen=True, slots=True)
class LiveMetrics:
    gps_accuracy: float
    """Mean horizontal accuracy of the recent GPS fixes, ``-1`` without GPS."""
    movement_detected: bool
    signal_stability: float
    """Coarse mounting score in ``[0, 1]``, ``-1`` while there is too little data."""
    current_speed: float
    latitude: float | None = None
    longitude: float | None = None
    live_impact: float = 0.0
    live_harshness: float = 0.0
    live_stability: float = 0.0

    @property
    def gps_level(self) -> GpsSignalLevel:
        return gps_signal_level(self.gps_accuracy)

    @property
    def signal_level(self) -> SignalQualityLevel:
        return signal_quality_level(self.signal_stability)


class LiveMonitor:
    def __init__(
        self,
        buffers: SensorBuffers,
        sensitivity: SensitivityStore | None = None,
        config: LiveMonitorConfig | None = None,
    ) -> None:
        self.buffers = buffers
        self.sensitivity = sensitivity or SensitivityStore()
        self.config = config or LiveMonitorConfig(
            period_s=DEFAULT_PERIOD_S,
            accel_window=200,
            gyro_window=200,
            gps_window=5,
            accel_sample_rate_hz=200.0,
        )
        self._impact = ImpactAnalyzer()
        self._harshness = HarshnessAnalyzer()
        self._stability = StabilityAnalyzer(min_window_samples=MIN_LIVE_STABILITY_SAMPLES)
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    # -- one tick -------------------------------------------------------------

    def sample(self) -> LiveMetrics:
        """Compute one snapshot from the current buffer contents."""
        settings = self.sensitivity.snapshot()
        accel = self.buffers.accel.latest(self.config.accel_window)
        gyro = self.buffers.gyro.latest(self.config.gyro_window)
        recent_gps = self.buffers.gps.latest(self.config.gps_window)
        latest_gps = recent_gps[-1] if recent_gps else None

        return LiveMetrics(
            gps_accuracy=(
                float(np.mean([s.accuracy for s in recent_gps])) if recent_gps else -1.0
            ),
            movement_detected=self._movement_detected(recent_gps),
            signal_stability=self._signal_stability(accel, gyro, settings),
            current_speed=latest_gps.speed if latest_gps is not None else 0.0,
            latitude=latest_gps.latitude if latest_gps is not None else None,
            longitude=latest_gps.longitude if latest_gps is not None else None,
            live_impact=self._live_impact(accel, settings),
            live_harshness=self._live_harshness(accel, settings),
            live_stability=self._live_stability(gyro, settings),
        )

    def _movement_detected(self, recent_gps: Sequence[GpsSample]) -> bool:
        if len(self.buffers.gps) < MIN_GPS_SAMPLES_FOR_MOVEMENT or not recent_gps:
            return False
        avg_speed = float(np.mean([s.speed for s in recent_gps]))
        return avg_speed >= MOVING_SPEED_MPS

    def _signal_stability(
        self,
        accel: Sequence[AccelSample],
        gyro: Sequence[GyroSample],
        settings: SensitivitySettings,
    ) -> float:
        if len(accel) < MIN_SIGNAL_STABILITY_SAMPLES or len(gyro) < MIN_SIGNAL_STABILITY_SAMPLES:
            return -1.0
        adjusted = variance(magnitudes(gyro)) * settings.stability
        for limit, score in _SIGNAL_STABILITY_BUCKETS:
            if adjusted > limit:
                return score
        return _SIGNAL_STABILITY_STEADY

    def _live_impact(self, accel: Sequence[AccelSample], settings: SensitivitySettings) -> float:
        raw = self._impact.analyze_window(accel, settings)
        return normalized_unit(SeriesType.IMPACT_DENSITY, raw)

    def _live_harshness(self, accel: Sequence[AccelSample], settings: SensitivitySettings) -> float:
        raw = self._harshness.analyze_window(accel, self.config.accel_sample_rate_hz, settings)
        return normalized_unit(SeriesType.HARSHNESS, raw)

    def _live_stability(self, gyro: Sequence[GyroSample], settings: SensitivitySettings) -> float:
        result = self._stability.analyze_window(gyro, settings)
        return normalized_unit(SeriesType.STABILITY, result.stability_index)

    # -- periodic loop --------------------------------------------------------

    async def run(self, on_metrics: Callable[[LiveMetrics], None]) -> None:
        """Emit a snapshot every period until :meth:`stop` is called.

        The stop flag is checked once per iteration, so a tick already in
        flight still completes and is emitted.
        """
        self._running = True
        await self._loop(on_metrics)

    async def _loop(self, on_metrics: Callable[[LiveMetrics], None]) -> None:
        period = self.config.period_s
        while self._running:
            try:
                metrics = await asyncio.to_thread(self.sample)
                on_metrics(metrics)
            except Exception:
                LOGGER.warning("Live monitor tick failed; will retry next interval.", exc_info=True)
            await asyncio.sleep(period)

    def start(self, on_metrics: Callable[[LiveMetrics], None]) -> asyncio.Task[None]:
        """Schedule the monitoring loop as a task on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._running = True
        self._task = asyncio.get_running_loop().create_task(
            self._loop(on_metrics), name="live-monitor"
        )
        LOGGER.info("Live monitor started (period=%.2fs)", self.config.period_s)
        return self._task

    def stop(self) -> None:
        if self._running:
            LOGGER.info("Live monitor stopping")
        self._running = False

    async def wait_stopped(self, timeout_s: float | None = None) -> None:
        """Wait for the loop started by :meth:`start` to observe the stop flag."""
        task = self._task
        if task is None:
            return
        if timeout_s is None:
            timeout_s = 2.0 * self.config.period_s + 1.0
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout_s)
        except TimeoutError:
            LOGGER.warning("Live monitor did not stop within %.1fs; cancelling", timeout_s)
            task.cancel()
        finally:
            self._task = None
