"""Tests for RecordingSession start/stop ordering."""

from __future__ import annotations

import logging

import pytest
from builders import fill_simulated_run, sine_accel
from conftest import async_wait_until

from trailmeter.config import LiveMonitorConfig
from trailmeter.live_monitor import LiveMetrics, LiveMonitor
from trailmeter.sensing.buffers import SensorBuffers
from trailmeter.sensing.recording import RecordingSession


class _FakeCollector:
    def __init__(self, name: str, log: list[str], fail_start: bool = False, fail_stop: bool = False) -> None:
        self.name = name
        self.log = log
        self.fail_start = fail_start
        self.fail_stop = fail_stop

    def start(self, buffers: SensorBuffers) -> None:
        if self.fail_start:
            raise OSError(f"{self.name} unavailable")
        self.log.append(f"start:{self.name}")
        for sample in sine_accel(10, 25.0, 1.0):
            buffers.accel.add(sample)

    def stop(self) -> None:
        self.log.append(f"stop:{self.name}")
        if self.fail_stop:
            raise RuntimeError("sensor stuck")


class _FakeClock:
    def __init__(self, *values: int) -> None:
        self._values = list(values)

    def __call__(self) -> int:
        return self._values.pop(0)


def _buffers() -> SensorBuffers:
    return SensorBuffers(accel_capacity=10_000, gyro_capacity=10_000, gps_capacity=1_000)


@pytest.mark.asyncio
async def test_start_clears_buffers_and_starts_collectors_in_order() -> None:
    buffers = _buffers()
    fill_simulated_run(buffers)
    log: list[str] = []
    session = RecordingSession(
        buffers,
        collectors=[_FakeCollector("accel", log), _FakeCollector("gps", log)],
        clock_ns=_FakeClock(1_000_000_000, 4_500_000_000),
        accel_sample_rate_hz=200.0,
    )

    await session.start()
    assert session.is_recording
    assert log == ["start:accel", "start:gps"]
    # Old capture gone, only what the collectors pushed remains.
    assert len(buffers.accel) == 20
    assert len(buffers.gps) == 0

    handle = await session.stop()
    assert not session.is_recording
    assert log[2:] == ["stop:gps", "stop:accel"]
    assert handle.start_time_ns == 1_000_000_000
    assert handle.end_time_ns == 4_500_000_000
    assert handle.duration_ms == 3500
    assert handle.accel_sample_rate_hz == 200.0
    # Samples stay available for processing after stop.
    assert len(buffers.accel) == 20


@pytest.mark.asyncio
async def test_double_start_and_stop_without_start_raise() -> None:
    session = RecordingSession(_buffers())
    with pytest.raises(RuntimeError, match="not running"):
        await session.stop()
    await session.start()
    with pytest.raises(RuntimeError, match="already started"):
        await session.start()
    await session.stop()


@pytest.mark.asyncio
async def test_failed_collector_start_releases_started_collectors() -> None:
    log: list[str] = []
    session = RecordingSession(
        _buffers(),
        collectors=[_FakeCollector("accel", log), _FakeCollector("gps", log, fail_start=True)],
    )
    with pytest.raises(OSError, match="gps unavailable"):
        await session.start()
    assert log == ["start:accel", "stop:accel"]
    assert not session.is_recording
    # The session can be started again once the fault is gone.
    session.collectors[1].fail_start = False
    await session.start()
    assert session.is_recording
    await session.stop()


@pytest.mark.asyncio
async def test_collector_stop_failure_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    log: list[str] = []
    session = RecordingSession(
        _buffers(),
        collectors=[_FakeCollector("accel", log), _FakeCollector("gyro", log, fail_stop=True)],
    )
    await session.start()
    with caplog.at_level(logging.WARNING, logger="trailmeter.sensing.recording"):
        handle = await session.stop()
    assert handle.duration_ms >= 0
    assert log[-2:] == ["stop:gyro", "stop:accel"]
    assert "Failed to stop collector gyro" in caplog.text


@pytest.mark.asyncio
async def test_live_monitor_runs_only_while_recording() -> None:
    buffers = _buffers()
    monitor = LiveMonitor(
        buffers,
        config=LiveMonitorConfig(
            period_s=0.05,
            accel_window=200,
            gyro_window=200,
            gps_window=5,
            accel_sample_rate_hz=200.0,
        ),
    )
    received: list[LiveMetrics] = []
    session = RecordingSession(buffers, live_monitor=monitor, on_metrics=received.append)

    await session.start()
    assert monitor.is_running
    assert await async_wait_until(lambda: len(received) >= 2)
    await session.stop()
    assert not monitor.is_running
    count = len(received)
    assert await async_wait_until(lambda: len(received) > count, timeout_s=0.2) is False
