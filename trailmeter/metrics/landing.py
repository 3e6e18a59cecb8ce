"""Jump landing detection from linear (gravity-free) acceleration.

While airborne the linear acceleration stays close to 0 g, so an airborne
interval is a run of low-magnitude samples; the landing is the spike that
ends it and recovery is the return to near zero.

The detector walks the magnitude series (in g) through three phases:

``GROUNDED``
    Normal riding.  A sample under the airtime threshold starts a candidate
    airborne interval.
``AIRBORNE``
    Magnitude stays under the airtime threshold.  Leaving the interval after
    at least the minimum airtime arms the detector; leaving it earlier drops
    back to ``GROUNDED``.
``ARMED``
    The rider has been airborne long enough.  A spike over the landing
    threshold within the rise window emits a :class:`LandingEvent`;
    otherwise the detector returns to ``GROUNDED``.

After an event, detection is suppressed for the debounce interval so the
settling oscillation is not counted twice.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

import numpy as np

from ..constants import GRAVITY_MS2, NS_PER_MS
from ..dsp.signal_utils import estimate_sample_rate, rms
from ..samples import AccelSample, magnitudes, timestamps_ns

LOGGER = logging.getLogger(__name__)

MIN_SAMPLES = 20
LANDING_THRESHOLD_G = 2.5
AIRTIME_THRESHOLD_G = 0.3
RECOVERY_THRESHOLD_G = 0.5
MIN_AIRTIME_MS = 100.0
PEAK_LOOKAHEAD_MS = 50.0
ENERGY_WINDOW_MS = 300.0
DEBOUNCE_MS = 1000.0
RISE_WINDOW_MS = 250.0
"""Longest gap between the end of airtime and the landing spike."""

HARSH_PEAK_G = 5.0
HARSH_RECOVERY_MS = 500.0
MODERATE_PEAK_G = 4.0
MODERATE_RECOVERY_MS = 300.0
SMOOTH_RECOVERY_MS = 200.0


class LandingQuality(StrEnum):
    SMOOTH = "smooth"
    MODERATE = "moderate"
    HARSH = "harsh"


class LandingPhase(StrEnum):
    GROUNDED = "grounded"
    AIRBORNE = "airborne"
    ARMED = "armed"


@dataclass(frozen=True, slots=True)
class LandingEvent:
    timestamp_ms: int
    peak_g: float
    energy_300ms: float
    recovery_ms: float
    airtime_ms: float

    @property
    def quality(self) -> LandingQuality:
        return classify_landing(self)


def classify_landing(event: LandingEvent) -> LandingQuality:
    if event.peak_g > HARSH_PEAK_G or event.recovery_ms > HARSH_RECOVERY_MS:
        return LandingQuality.HARSH
    if event.peak_g > MODERATE_PEAK_G or event.recovery_ms > MODERATE_RECOVERY_MS:
        return LandingQuality.MODERATE
    if event.recovery_ms < SMOOTH_RECOVERY_MS and event.peak_g < MODERATE_PEAK_G:
        return LandingQuality.SMOOTH
    return LandingQuality.MODERATE


def _ms_to_samples(duration_ms: float, sample_rate_hz: float) -> int:
    return max(1, int(round(duration_ms / 1000.0 * sample_rate_hz)))


class LandingDetector:
    def __init__(
        self,
        landing_threshold_g: float = LANDING_THRESHOLD_G,
        airtime_threshold_g: float = AIRTIME_THRESHOLD_G,
        min_airtime_ms: float = MIN_AIRTIME_MS,
        debounce_ms: float = DEBOUNCE_MS,
    ) -> None:
        self.landing_threshold_g = float(landing_threshold_g)
        self.airtime_threshold_g = float(airtime_threshold_g)
        self.min_airtime_ms = float(min_airtime_ms)
        self.debounce_ms = float(debounce_ms)

    def detect_landings(
        self,
        samples: Sequence[AccelSample],
        sample_rate_hz: float | None = None,
    ) -> list[LandingEvent]:
        """Return every qualifying landing in chronological order."""
        if len(samples) < MIN_SAMPLES:
            return []
        rate = sample_rate_hz if sample_rate_hz else estimate_sample_rate(timestamps_ns(samples))
        mags_g = magnitudes(samples) / GRAVITY_MS2
        n = mags_g.size

        min_airtime = _ms_to_samples(self.min_airtime_ms, rate)
        rise_window = _ms_to_samples(RISE_WINDOW_MS, rate)
        debounce = _ms_to_samples(self.debounce_ms, rate)

        events: list[LandingEvent] = []
        phase = LandingPhase.GROUNDED
        airborne_start = 0
        airborne_end = 0
        i = 0
        while i < n:
            g = float(mags_g[i])
            if phase is LandingPhase.GROUNDED:
                if g < self.airtime_threshold_g:
                    phase = LandingPhase.AIRBORNE
                    airborne_start = i
            elif phase is LandingPhase.AIRBORNE:
                if g >= self.airtime_threshold_g:
                    airborne_end = i
                    phase = (
                        LandingPhase.ARMED
                        if airborne_end - airborne_start >= min_airtime
                        else LandingPhase.GROUNDED
                    )
            if phase is LandingPhase.ARMED:
                if g > self.landing_threshold_g:
                    event, peak_idx = self._build_event(samples, mags_g, i, airborne_start, rate)
                    events.append(event)
                    LOGGER.debug(
                        "Landing at %d ms: peak=%.2fg airtime=%.0fms recovery=%.0fms",
                        event.timestamp_ms,
                        event.peak_g,
                        event.airtime_ms,
                        event.recovery_ms,
                    )
                    phase = LandingPhase.GROUNDED
                    i = peak_idx + debounce
                    continue
                if g < self.airtime_threshold_g:
                    # Dipped back under the threshold: the airborne interval continues.
                    phase = LandingPhase.AIRBORNE
                elif i - airborne_end >= rise_window:
                    phase = LandingPhase.GROUNDED
            i += 1
        return events

    def _build_event(
        self,
        samples: Sequence[AccelSample],
        mags_g: np.ndarray,
        spike_idx: int,
        airborne_start: int,
        sample_rate_hz: float,
    ) -> tuple[LandingEvent, int]:
        n = mags_g.size
        lookahead_end = min(n, spike_idx + _ms_to_samples(PEAK_LOOKAHEAD_MS, sample_rate_hz) + 1)
        peak_idx = spike_idx + int(np.argmax(mags_g[spike_idx:lookahead_end]))
        peak_g = float(mags_g[peak_idx])

        energy_end = min(n, peak_idx + _ms_to_samples(ENERGY_WINDOW_MS, sample_rate_hz))
        energy = rms(mags_g[peak_idx:energy_end])

        below = np.flatnonzero(mags_g[peak_idx:] < RECOVERY_THRESHOLD_G)
        recovery_samples = int(below[0]) if below.size else 0
        recovery_ms = recovery_samples / sample_rate_hz * 1000.0
        airtime_ms = (spike_idx - airborne_start) / sample_rate_hz * 1000.0

        event = LandingEvent(
            timestamp_ms=samples[peak_idx].timestamp_ns // NS_PER_MS,
            peak_g=peak_g,
            energy_300ms=energy,
            recovery_ms=recovery_ms,
            airtime_ms=airtime_ms,
        )
        return event, peak_idx
