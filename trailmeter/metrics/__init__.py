"""Windowed ride-quality analyzers.

Every analyzer is stateless between calls: it takes a window of samples and
an immutable :class:`~trailmeter.sensitivity.SensitivitySettings` snapshot
and returns a plain value.  Windows that are too short yield a neutral
result instead of raising.
"""

from .harshness import HarshnessAnalyzer  # noqa: F401
from .impact import ImpactAnalyzer, ImpactPeak  # noqa: F401
from .landing import LandingDetector, LandingEvent, LandingQuality, classify_landing  # noqa: F401
from .scoring import (  # noqa: F401
    SeriesType,
    burden_to_quality_score,
    metric_quality_score,
    normalize_burden_score,
    overall_quality_score,
)
from .stability import (  # noqa: F401
    StabilityAnalyzer,
    StabilityLevel,
    StabilityResult,
    classify_stability,
)

__all__ = [
    "HarshnessAnalyzer",
    "ImpactAnalyzer",
    "ImpactPeak",
    "LandingDetector",
    "LandingEvent",
    "LandingQuality",
    "SeriesType",
    "StabilityAnalyzer",
    "StabilityLevel",
    "StabilityResult",
    "burden_to_quality_score",
    "classify_landing",
    "classify_stability",
    "metric_quality_score",
    "normalize_burden_score",
    "overall_quality_score",
]
