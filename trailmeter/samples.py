"""Immutable sensor sample records.

Samples are created by the sensor collectors at hardware rate, pushed into a
:class:`~trailmeter.sensing.buffers.SampleRingBuffer` and never mutated
afterwards.  Timestamps are monotonic nanoseconds.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class AccelSample:
    timestamp_ns: int
    x: float
    y: float
    z: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


@dataclass(frozen=True, slots=True)
class GyroSample:
    timestamp_ns: int
    x: float
    y: float
    z: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


@dataclass(frozen=True, slots=True)
class RotationSample:
    timestamp_ns: int
    x: float
    y: float
    z: float
    w: float | None = None


@dataclass(frozen=True, slots=True)
class GpsSample:
    timestamp_ns: int
    latitude: float
    longitude: float
    speed: float
    """Ground speed in m/s."""
    accuracy: float
    """Horizontal accuracy radius in metres."""
    altitude: float | None = None


def axes_array(samples: Sequence[AccelSample | GyroSample]) -> np.ndarray:
    """Return an ``(n, 3)`` float64 array of the x/y/z channels."""
    if not samples:
        return np.zeros((0, 3), dtype=np.float64)
    return np.array([(s.x, s.y, s.z) for s in samples], dtype=np.float64)


def magnitudes(samples: Sequence[AccelSample | GyroSample]) -> np.ndarray:
    """Vector magnitude per sample as a 1-D float64 array."""
    return np.linalg.norm(axes_array(samples), axis=1)


def timestamps_ns(samples: Sequence[AccelSample | GyroSample | GpsSample]) -> np.ndarray:
    return np.array([s.timestamp_ns for s in samples], dtype=np.int64)
