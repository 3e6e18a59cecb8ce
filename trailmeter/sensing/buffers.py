"""Fixed-capacity sample storage.

``SampleRingBuffer`` is a preallocated slot arena plus a write cursor: ``add``
overwrites the oldest slot once full and ``snapshot`` returns the retained
samples oldest-first regardless of where the cursor has wrapped to.

``SensorBuffers`` groups one ring per sensor kind for a recording session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Generic, TypeVar

from ..samples import AccelSample, GpsSample, GyroSample, RotationSample

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# ~5 minutes at the nominal rate of each sensor.
DEFAULT_ACCEL_CAPACITY = 60_000
DEFAULT_GYRO_CAPACITY = 60_000
DEFAULT_ROTATION_CAPACITY = 60_000
DEFAULT_GPS_CAPACITY = 600


class SampleRingBuffer(Generic[T]):
    """Thread-safe circular store of immutable samples.

    Writers and readers share one short critical section; ``snapshot`` copies
    the slots out so callers can iterate while collectors keep writing.
    """

    __slots__ = ("_slots", "_capacity", "_write_idx", "_count", "_lock")

    def __init__(self, capacity: int) -> None:
        capacity = int(capacity)
        if capacity < 1:
            raise ValueError(f"SampleRingBuffer capacity must be >= 1, got {capacity!r}")
        self._slots: list[T | None] = [None] * capacity
        self._capacity = capacity
        self._write_idx = 0
        self._count = 0
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return self._count

    def add(self, sample: T) -> None:
        with self._lock:
            self._slots[self._write_idx] = sample
            self._write_idx = (self._write_idx + 1) % self._capacity
            if self._count < self._capacity:
                self._count += 1

    def snapshot(self) -> list[T]:
        """Return every retained sample, oldest first."""
        with self._lock:
            return self._latest_locked(self._count)

    def latest(self, n: int) -> list[T]:
        """Return up to the *n* most recent samples, oldest first."""
        with self._lock:
            return self._latest_locked(min(max(0, int(n)), self._count))

    def clear(self) -> None:
        with self._lock:
            # Slots are dropped in place so the arena is not reallocated.
            for idx in range(self._count):
                self._slots[(self._write_idx - 1 - idx) % self._capacity] = None
            self._write_idx = 0
            self._count = 0

    def _latest_locked(self, n: int) -> list[T]:
        if n <= 0:
            return []
        start = (self._write_idx - n) % self._capacity
        end = start + n
        if end <= self._capacity:
            out = self._slots[start:end]
        else:
            out = self._slots[start:] + self._slots[: end - self._capacity]
        return out  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class SensorSnapshot:
    accel: tuple[AccelSample, ...]
    gyro: tuple[GyroSample, ...]
    rotation: tuple[RotationSample, ...]
    gps: tuple[GpsSample, ...]


class SensorBuffers:
    """One ring buffer per sensor kind, cleared at the start of each recording."""

    def __init__(
        self,
        accel_capacity: int = DEFAULT_ACCEL_CAPACITY,
        gyro_capacity: int = DEFAULT_GYRO_CAPACITY,
        rotation_capacity: int = DEFAULT_ROTATION_CAPACITY,
        gps_capacity: int = DEFAULT_GPS_CAPACITY,
    ) -> None:
        self.accel: SampleRingBuffer[AccelSample] = SampleRingBuffer(accel_capacity)
        self.gyro: SampleRingBuffer[GyroSample] = SampleRingBuffer(gyro_capacity)
        self.rotation: SampleRingBuffer[RotationSample] = SampleRingBuffer(rotation_capacity)
        self.gps: SampleRingBuffer[GpsSample] = SampleRingBuffer(gps_capacity)

    @classmethod
    def from_config(cls, config) -> SensorBuffers:
        """Build from a :class:`~trailmeter.config.BufferConfig`."""
        return cls(
            accel_capacity=config.accel_capacity,
            gyro_capacity=config.gyro_capacity,
            rotation_capacity=config.rotation_capacity,
            gps_capacity=config.gps_capacity,
        )

    def clear(self) -> None:
        self.accel.clear()
        self.gyro.clear()
        self.rotation.clear()
        self.gps.clear()
        LOGGER.info("Cleared sensor buffers")

    def snapshot(self) -> SensorSnapshot:
        return SensorSnapshot(
            accel=tuple(self.accel.snapshot()),
            gyro=tuple(self.gyro.snapshot()),
            rotation=tuple(self.rotation.snapshot()),
            gps=tuple(self.gps.snapshot()),
        )
