"""Recording-session lifecycle.

``RecordingSession`` owns the ordering of a capture: buffers are cleared,
collectors start pushing samples, and the live monitor begins ticking.  On
stop the monitor is halted first so no tick reads a half-torn-down session,
then collectors are released and a :class:`CaptureHandle` describing the
capture is returned for :class:`~trailmeter.processing.RunProcessor`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Protocol

from ..live_monitor import LiveMetrics, LiveMonitor
from ..processing.processor import CaptureHandle
from .buffers import SensorBuffers

LOGGER = logging.getLogger(__name__)


class Collector(Protocol):
    """A sensor source that pushes samples into the session buffers."""

    name: str

    def start(self, buffers: SensorBuffers) -> None: ...

    def stop(self) -> None: ...


class RecordingSession:
    def __init__(
        self,
        buffers: SensorBuffers,
        collectors: Sequence[Collector] = (),
        live_monitor: LiveMonitor | None = None,
        on_metrics: Callable[[LiveMetrics], None] | None = None,
        clock_ns: Callable[[], int] = time.monotonic_ns,
        accel_sample_rate_hz: float = 0.0,
        gyro_sample_rate_hz: float = 0.0,
    ) -> None:
        self.buffers = buffers
        self.collectors = list(collectors)
        self.live_monitor = live_monitor
        self.on_metrics = on_metrics or (lambda _metrics: None)
        self._clock_ns = clock_ns
        self.accel_sample_rate_hz = accel_sample_rate_hz
        self.gyro_sample_rate_hz = gyro_sample_rate_hz
        self._started: list[Collector] = []
        self._start_ns: int | None = None

    @property
    def is_recording(self) -> bool:
        return self._start_ns is not None

    async def start(self) -> None:
        if self._start_ns is not None:
            raise RuntimeError("Recording session already started")
        self.buffers.clear()
        self._start_ns = self._clock_ns()
        try:
            for collector in self.collectors:
                collector.start(self.buffers)
                self._started.append(collector)
        except Exception:
            self._stop_collectors()
            self._start_ns = None
            raise
        if self.live_monitor is not None:
            self.live_monitor.start(self.on_metrics)
        LOGGER.info(
            "Recording started with %d collector(s), live monitor %s",
            len(self._started),
            "on" if self.live_monitor is not None else "off",
        )

    async def stop(self) -> CaptureHandle:
        if self._start_ns is None:
            raise RuntimeError("Recording session is not running")
        if self.live_monitor is not None:
            self.live_monitor.stop()
            await self.live_monitor.wait_stopped()
        self._stop_collectors()
        handle = CaptureHandle(
            start_time_ns=self._start_ns,
            end_time_ns=self._clock_ns(),
            accel_sample_rate_hz=self.accel_sample_rate_hz,
            gyro_sample_rate_hz=self.gyro_sample_rate_hz,
        )
        self._start_ns = None
        LOGGER.info(
            "Recording stopped after %d ms (accel=%d gyro=%d gps=%d samples)",
            handle.duration_ms,
            len(self.buffers.accel),
            len(self.buffers.gyro),
            len(self.buffers.gps),
        )
        return handle

    def _stop_collectors(self) -> None:
        while self._started:
            collector = self._started.pop()
            try:
                collector.stop()
            except Exception:
                LOGGER.warning(
                    "Failed to stop collector %s",
                    getattr(collector, "name", type(collector).__name__),
                    exc_info=True,
                )
