"""Per-metric sensitivity settings.

Analyzers receive an immutable :class:`SensitivitySettings` snapshot per call.
The mutable, hot-reloadable source of those snapshots is
:class:`SensitivityStore`; the external preferences layer owns persistence
and pushes values in through :meth:`SensitivityStore.update`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from math import isfinite
from threading import RLock

LOGGER = logging.getLogger(__name__)

MIN_SENSITIVITY = 0.1
MAX_SENSITIVITY = 5.0
DEFAULT_SENSITIVITY = 1.0

SENSITIVITY_KEYS: tuple[str, ...] = ("impact", "harshness", "stability", "gps")


def clamp_sensitivity(value: float) -> float:
    return min(max(float(value), MIN_SENSITIVITY), MAX_SENSITIVITY)


@dataclass(frozen=True, slots=True)
class SensitivitySettings:
    impact: float = DEFAULT_SENSITIVITY
    harshness: float = DEFAULT_SENSITIVITY
    stability: float = DEFAULT_SENSITIVITY
    gps: float = DEFAULT_SENSITIVITY

    def normalized(self) -> SensitivitySettings:
        """Return a copy with every value clamped to the supported range."""
        return SensitivitySettings(
            impact=clamp_sensitivity(self.impact),
            harshness=clamp_sensitivity(self.harshness),
            stability=clamp_sensitivity(self.stability),
            gps=clamp_sensitivity(self.gps),
        )

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def sanitize_sensitivity(payload: dict[str, object]) -> dict[str, float]:
    """Validate and filter sensitivity updates, dropping invalid values with logging."""
    out: dict[str, float] = {}
    for key in SENSITIVITY_KEYS:
        raw = payload.get(key)
        if raw is None:
            continue
        if isinstance(raw, bool):
            LOGGER.debug("Dropping boolean sensitivity %s=%r", key, raw)
            continue
        try:
            value = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            LOGGER.debug("Dropping non-numeric sensitivity %s=%r", key, raw)
            continue
        if not isfinite(value):
            LOGGER.debug("Dropping non-finite sensitivity %s=%r", key, raw)
            continue
        bounded = clamp_sensitivity(value)
        if bounded != value:
            LOGGER.info("Clamped sensitivity %s from %r to %r", key, value, bounded)
        out[key] = bounded
    return out


class SensitivityStore:
    def __init__(self, initial: SensitivitySettings | None = None) -> None:
        self._lock = RLock()
        self._values = (initial or SensitivitySettings()).normalized()
        self._listeners: list[Callable[[SensitivitySettings], None]] = []

    def snapshot(self) -> SensitivitySettings:
        with self._lock:
            return self._values

    def update(self, **changes: object) -> SensitivitySettings:
        with self._lock:
            clean = sanitize_sensitivity(changes)
            if clean:
                self._values = replace(self._values, **clean)
            current = self._values
            listeners = list(self._listeners)
        if clean:
            for listener in listeners:
                listener(current)
        return current

    def reset(self) -> SensitivitySettings:
        with self._lock:
            self._values = SensitivitySettings()
            current = self._values
            listeners = list(self._listeners)
        for listener in listeners:
            listener(current)
        return current

    def subscribe(self, listener: Callable[[SensitivitySettings], None]) -> Callable[[], None]:
        """Register *listener* for change notifications; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe
