"""Post-run processing: windowed metrics, events, distance mapping and the map polyline."""

from .distance import (  # noqa: F401
    DistanceMapping,
    cumulative_distances,
    filtered_distance,
    haversine_m,
)
from .polyline import GpsPoint, GpsPolyline, MapGpsQuality, build_polyline  # noqa: F401
from .processor import (  # noqa: F401
    CaptureHandle,
    EventType,
    ProcessedRun,
    RunEvent,
    RunProcessor,
    RunSeries,
    RunSummary,
    resample_series,
    resolve_sample_rate,
)

__all__ = [
    "CaptureHandle",
    "DistanceMapping",
    "EventType",
    "GpsPoint",
    "GpsPolyline",
    "MapGpsQuality",
    "ProcessedRun",
    "RunEvent",
    "RunProcessor",
    "RunSeries",
    "RunSummary",
    "build_polyline",
    "cumulative_distances",
    "filtered_distance",
    "haversine_m",
    "resample_series",
    "resolve_sample_rate",
]
