"""Shared physical and analysis constants.

Every numeric literal that appears in more than one module should live here
so that a change only needs to happen in one place.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Unit conversion
# ---------------------------------------------------------------------------
GRAVITY_MS2: Final[float] = 9.81
"""Standard gravity used to convert m/s² to g."""

MPS_TO_KMH: Final[float] = 3.6
"""Multiply metres-per-second by this to get kilometres-per-hour."""

KMH_TO_MPS: Final[float] = 1.0 / MPS_TO_KMH
"""Multiply kilometres-per-hour by this to get metres-per-second."""

NS_PER_MS: Final[int] = 1_000_000
NS_PER_S: Final[int] = 1_000_000_000

EARTH_RADIUS_M: Final[float] = 6_371_000.0

# ---------------------------------------------------------------------------
# Sample rates
# ---------------------------------------------------------------------------
DEFAULT_SAMPLE_RATE_HZ: Final[float] = 200.0
"""Nominal accelerometer/gyroscope rate when none is declared."""

MIN_ESTIMATED_SAMPLE_RATE_HZ: Final[float] = 20.0
MAX_ESTIMATED_SAMPLE_RATE_HZ: Final[float] = 500.0

# ---------------------------------------------------------------------------
# Movement thresholds
# ---------------------------------------------------------------------------
MOVING_SPEED_MPS: Final[float] = 8.0 * KMH_TO_MPS
"""Speed at or above which the rider is considered moving (8 km/h)."""

PAUSE_SPEED_MPS: Final[float] = 2.0 * KMH_TO_MPS
"""Speed below which a GPS sample counts as a pause (2 km/h)."""

# ---------------------------------------------------------------------------
# Display normalisation references
# ---------------------------------------------------------------------------
# Live gauges and post-run charts divide raw metric values by these
# references; both surfaces must import them from here.
IMPACT_REF: Final[float] = 5.0
HARSHNESS_REF: Final[float] = 3.0
STABILITY_REF: Final[float] = 0.5

# ---------------------------------------------------------------------------
# GPS accuracy scaling
# ---------------------------------------------------------------------------
MIN_GPS_ACCURACY_CAP_M: Final[float] = 10.0
MAX_GPS_ACCURACY_CAP_M: Final[float] = 60.0

SENSITIVITY_FLOOR: Final[float] = 0.01
"""Lower bound applied before dividing by a sensitivity value."""
