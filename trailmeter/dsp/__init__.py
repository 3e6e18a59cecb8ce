"""Signal-processing primitives.

- :mod:`~trailmeter.dsp.signal_utils`: pure statistics, peak-finding and
  resampling helpers.
- :mod:`~trailmeter.dsp.filters`: stateful streaming filters.
"""

from .filters import (  # noqa: F401
    BandpassFilter,
    Filter,
    LowPassFilter,
    MovingAverageFilter,
    gravity_estimate,
)
from .signal_utils import (  # noqa: F401
    downsample,
    estimate_sample_rate,
    find_peaks,
    interpolate,
    normalize,
    percentile,
    rms,
    variance,
)

__all__ = [
    "BandpassFilter",
    "Filter",
    "LowPassFilter",
    "MovingAverageFilter",
    "downsample",
    "estimate_sample_rate",
    "find_peaks",
    "gravity_estimate",
    "interpolate",
    "normalize",
    "percentile",
    "rms",
    "variance",
]
