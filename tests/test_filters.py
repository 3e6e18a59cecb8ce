from __future__ import annotations

import math

import numpy as np
import pytest

from trailmeter.dsp.filters import (
    BandpassFilter,
    LowPassFilter,
    MovingAverageFilter,
    gravity_estimate,
)
from trailmeter.dsp.signal_utils import rms


def _tone(freq_hz: float, n: int = 2000, rate_hz: float = 200.0) -> np.ndarray:
    t = np.arange(n) / rate_hz
    return np.sin(2 * math.pi * freq_hz * t)


class TestBandpassFilter:
    @pytest.mark.parametrize(
        ("rate", "low", "high"),
        [(0.0, 15.0, 40.0), (200.0, 0.0, 40.0), (200.0, 40.0, 15.0), (60.0, 15.0, 40.0)],
    )
    def test_invalid_parameters_raise(self, rate: float, low: float, high: float) -> None:
        with pytest.raises(ValueError):
            BandpassFilter(rate, low, high)

    def test_passes_in_band_and_attenuates_out_of_band(self) -> None:
        in_band = BandpassFilter(200.0).process_block(_tone(25.0))
        below = BandpassFilter(200.0).process_block(_tone(1.0))
        # Skip the start-up transient.
        assert rms(in_band[400:]) > 0.5
        assert rms(below[400:]) < 0.1

    def test_sample_and_block_processing_agree(self) -> None:
        signal = _tone(25.0, n=300) + 0.3 * _tone(3.0, n=300)
        streaming = BandpassFilter(200.0)
        expected = np.array([streaming.process(x) for x in signal])
        block = BandpassFilter(200.0)
        head = block.process_block(signal[:120])
        tail = block.process_block(signal[120:])
        np.testing.assert_allclose(np.concatenate([head, tail]), expected, atol=1e-9)

    def test_reset_clears_state(self) -> None:
        filt = BandpassFilter(200.0)
        filt.process_block(_tone(25.0, n=100))
        filt.reset()
        fresh = BandpassFilter(200.0)
        signal = _tone(30.0, n=50)
        np.testing.assert_allclose(filt.process_block(signal), fresh.process_block(signal))

    def test_coefficients_are_a_single_biquad(self) -> None:
        b, a = BandpassFilter(200.0).coefficients
        assert b.shape == (3,)
        assert a.shape == (3,)
        assert a[0] == pytest.approx(1.0)


class TestLowPassFilter:
    def test_alpha_must_be_in_unit_interval(self) -> None:
        with pytest.raises(ValueError, match="alpha"):
            LowPassFilter(0.0)
        with pytest.raises(ValueError, match="alpha"):
            LowPassFilter(1.5)

    def test_first_sample_initialises_state(self) -> None:
        filt = LowPassFilter(0.1)
        assert not filt.initialized
        assert filt.process(1.0, 2.0, 9.81) == pytest.approx((1.0, 2.0, 9.81))
        assert filt.initialized
        x, _, _ = filt.process(11.0, 2.0, 9.81)
        assert x == pytest.approx(2.0)

    def test_block_matches_streaming(self) -> None:
        rng = np.random.default_rng(3)
        axes = rng.normal(0.0, 1.0, size=(64, 3))
        streaming = LowPassFilter(0.2)
        expected = np.array([streaming.process(*row) for row in axes])
        block = LowPassFilter(0.2)
        out = np.vstack([block.process_block(axes[:10]), block.process_block(axes[10:])])
        np.testing.assert_allclose(out, expected, atol=1e-12)

    def test_reset(self) -> None:
        filt = LowPassFilter()
        filt.process(1.0, 1.0, 1.0)
        filt.reset()
        assert not filt.initialized
        assert filt.process(5.0, 5.0, 5.0) == pytest.approx((5.0, 5.0, 5.0))


class TestMovingAverageFilter:
    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="window_size"):
            MovingAverageFilter(0)

    def test_running_mean_over_window(self) -> None:
        filt = MovingAverageFilter(3)
        assert [filt.process(v) for v in (3.0, 6.0, 9.0, 12.0)] == pytest.approx([3.0, 4.5, 6.0, 9.0])
        filt.reset()
        assert filt.process(1.0) == pytest.approx(1.0)


def test_gravity_estimate_of_steady_device() -> None:
    axes = np.tile([0.0, 0.0, 9.81], (100, 1))
    np.testing.assert_allclose(gravity_estimate(axes), [0.0, 0.0, 9.81])
    np.testing.assert_allclose(gravity_estimate(np.zeros((0, 3))), [0.0, 0.0, 0.0])
