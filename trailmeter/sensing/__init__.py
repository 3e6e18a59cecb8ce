"""Sensor sample storage and recording-session orchestration.

- :mod:`~trailmeter.sensing.buffers`: circular buffers per sensor kind.
- :mod:`~trailmeter.sensing.recording`: start/stop lifecycle around the
  collectors, buffers and live monitor.
"""

from .buffers import SampleRingBuffer, SensorBuffers, SensorSnapshot  # noqa: F401

__all__ = [
    "SampleRingBuffer",
    "SensorBuffers",
    "SensorSnapshot",
]
