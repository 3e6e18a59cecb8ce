"""Stateful streaming filters.

Each filter instance owns its history.  Independent analysis windows must use
a fresh instance or call :meth:`reset` first; sharing one instance across
concurrent windows leaks state between them.
"""

from __future__ import annotations

from collections import deque
from typing import Protocol

import numpy as np
from scipy import signal as sps

DEFAULT_BANDPASS_LOW_HZ = 15.0
DEFAULT_BANDPASS_HIGH_HZ = 40.0
DEFAULT_LOWPASS_ALPHA = 0.1


class Filter(Protocol):
    def process(self, sample: float) -> float: ...

    def reset(self) -> None: ...


class BandpassFilter:
    """Second-order Butterworth bandpass section (transposed direct form II).

    Coefficients come from ``scipy.signal.butter`` with order 1, which yields
    a single biquad for a bandpass design.  ``process`` and ``process_block``
    share the same two-element state, so a stream may be fed sample by sample
    or in chunks interchangeably.
    """

    def __init__(
        self,
        sample_rate_hz: float,
        low_hz: float = DEFAULT_BANDPASS_LOW_HZ,
        high_hz: float = DEFAULT_BANDPASS_HIGH_HZ,
    ) -> None:
        if not sample_rate_hz > 0:
            raise ValueError(f"sample_rate_hz must be positive, got {sample_rate_hz!r}")
        nyquist = sample_rate_hz / 2.0
        if not 0.0 < low_hz < high_hz < nyquist:
            raise ValueError(
                f"Bandpass cutoffs must satisfy 0 < low < high < {nyquist:g} Hz, "
                f"got low={low_hz!r} high={high_hz!r}"
            )
        self.sample_rate_hz = float(sample_rate_hz)
        self.low_hz = float(low_hz)
        self.high_hz = float(high_hz)
        b, a = sps.butter(1, [self.low_hz, self.high_hz], btype="bandpass", fs=self.sample_rate_hz)
        self._b = np.asarray(b, dtype=np.float64)
        self._a = np.asarray(a, dtype=np.float64)
        self._z = np.zeros(max(self._a.size, self._b.size) - 1, dtype=np.float64)

    @property
    def coefficients(self) -> tuple[np.ndarray, np.ndarray]:
        return self._b.copy(), self._a.copy()

    def process(self, sample: float) -> float:
        b, a, z = self._b, self._a, self._z
        x = float(sample)
        y = b[0] * x + z[0]
        for i in range(1, z.size):
            z[i - 1] = b[i] * x - a[i] * y + z[i]
        z[-1] = b[-1] * x - a[-1] * y
        return float(y)

    def process_block(self, samples: np.ndarray) -> np.ndarray:
        arr = np.asarray(samples, dtype=np.float64).ravel()
        if arr.size == 0:
            return arr.copy()
        out, self._z = sps.lfilter(self._b, self._a, arr, zi=self._z)
        return out

    def reset(self) -> None:
        self._z[:] = 0.0


class LowPassFilter:
    """Exponential smoothing of a 3-axis vector, used as a gravity estimator.

    The first sample initialises the state directly so there is no start-up
    ramp from zero.
    """

    def __init__(self, alpha: float = DEFAULT_LOWPASS_ALPHA) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha!r}")
        self.alpha = float(alpha)
        self._state = np.zeros(3, dtype=np.float64)
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def process(self, x: float, y: float, z: float) -> tuple[float, float, float]:
        sample = np.array((x, y, z), dtype=np.float64)
        if not self._initialized:
            self._state = sample
            self._initialized = True
        else:
            self._state = self.alpha * sample + (1.0 - self.alpha) * self._state
        return (float(self._state[0]), float(self._state[1]), float(self._state[2]))

    def process_block(self, axes: np.ndarray) -> np.ndarray:
        """Filter an ``(n, 3)`` block; returns the ``(n, 3)`` smoothed output."""
        arr = np.asarray(axes, dtype=np.float64).reshape(-1, 3)
        if arr.shape[0] == 0:
            return arr.copy()
        if not self._initialized:
            self._state = arr[0].copy()
            self._initialized = True
            head = arr[:1].copy()
            rest = arr[1:]
        else:
            head = np.zeros((0, 3), dtype=np.float64)
            rest = arr
        if rest.shape[0] == 0:
            return head
        decay = 1.0 - self.alpha
        zi = (decay * self._state).reshape(1, 3)
        out, _ = sps.lfilter([self.alpha], [1.0, -decay], rest, axis=0, zi=zi)
        self._state = out[-1].copy()
        return np.vstack([head, out])

    def reset(self) -> None:
        self._state = np.zeros(3, dtype=np.float64)
        self._initialized = False


class MovingAverageFilter:
    """Fixed-window mean with an O(1) running-sum update."""

    def __init__(self, window_size: int) -> None:
        window_size = int(window_size)
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size!r}")
        self.window_size = window_size
        self._window: deque[float] = deque()
        self._sum = 0.0

    def process(self, sample: float) -> float:
        value = float(sample)
        self._window.append(value)
        self._sum += value
        if len(self._window) > self.window_size:
            self._sum -= self._window.popleft()
        return self._sum / len(self._window)

    def reset(self) -> None:
        self._window.clear()
        self._sum = 0.0


def gravity_estimate(axes: np.ndarray, alpha: float = DEFAULT_LOWPASS_ALPHA) -> np.ndarray:
    """Mean low-passed acceleration vector of a window (fresh filter per call)."""
    arr = np.asarray(axes, dtype=np.float64).reshape(-1, 3)
    if arr.shape[0] == 0:
        return np.zeros(3, dtype=np.float64)
    smoothed = LowPassFilter(alpha).process_block(arr)
    return smoothed.mean(axis=0)
