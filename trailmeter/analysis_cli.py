from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import yaml

from .config import load_config
from .json_utils import safe_json_dumps
from .processing.processor import CaptureHandle, RunProcessor
from .samples import AccelSample, GpsSample, GyroSample, RotationSample
from .sensing.buffers import SensorBuffers

LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyse a recorded trailmeter session")
    parser.add_argument("input", type=Path, help="Input capture file (.jsonl)")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional YAML config (buffer sizes, processing windows, sensitivity)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output JSON path (default: <input_stem>_analysis.json)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default: WARNING)",
    )
    return parser.parse_args(argv)


def iter_records(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Yield the JSON objects of a JSON-lines stream, skipping blank lines."""
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ValueError(f"line {lineno}: invalid JSON ({exc.msg})") from exc
        if not isinstance(record, dict):
            LOGGER.debug("Skipping non-object record on line %d", lineno)
            continue
        yield record


def _xyz(record: dict[str, Any]) -> tuple[int, float, float, float]:
    return (
        int(record["timestamp_ns"]),
        float(record["x"]),
        float(record["y"]),
        float(record["z"]),
    )


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def replay_records(
    records: Iterable[dict[str, Any]],
    buffers: SensorBuffers,
) -> dict[str, Any]:
    """Push sample records into *buffers*; return the merged ``session`` metadata."""
    session: dict[str, Any] = {}
    for record in records:
        kind = record.get("type")
        try:
            if kind == "accel":
                buffers.accel.add(AccelSample(*_xyz(record)))
            elif kind == "gyro":
                buffers.gyro.add(GyroSample(*_xyz(record)))
            elif kind == "rotation":
                buffers.rotation.add(
                    RotationSample(*_xyz(record), w=_optional_float(record.get("w")))
                )
            elif kind == "gps":
                buffers.gps.add(
                    GpsSample(
                        timestamp_ns=int(record["timestamp_ns"]),
                        latitude=float(record["latitude"]),
                        longitude=float(record["longitude"]),
                        speed=float(record["speed"]),
                        accuracy=float(record["accuracy"]),
                        altitude=_optional_float(record.get("altitude")),
                    )
                )
            elif kind == "session":
                session.update({k: v for k, v in record.items() if k != "type"})
            else:
                LOGGER.debug("Skipping record with unknown type %r", kind)
        except (KeyError, TypeError, ValueError):
            LOGGER.debug("Skipping malformed %s record: %r", kind, record)
    return session


def capture_handle(session: dict[str, Any], buffers: SensorBuffers) -> CaptureHandle:
    """Build the handle from the ``session`` record, falling back to sample bounds."""
    streams = [ring.snapshot() for ring in (buffers.accel, buffers.gyro, buffers.gps)]
    timestamps = [
        s.timestamp_ns for samples in streams if samples for s in (samples[0], samples[-1])
    ]
    if "start_time_ns" in session:
        start_ns = int(session["start_time_ns"])
    elif timestamps:
        start_ns = min(timestamps)
    else:
        raise ValueError("capture contains no samples and no session record")
    if "end_time_ns" in session:
        end_ns = int(session["end_time_ns"])
    else:
        end_ns = max(timestamps, default=start_ns)
    return CaptureHandle(
        start_time_ns=start_ns,
        end_time_ns=end_ns,
        accel_sample_rate_hz=float(session.get("accel_sample_rate_hz", 0.0)),
        gyro_sample_rate_hz=float(session.get("gyro_sample_rate_hz", 0.0)),
        track_id=session.get("track_id"),
        device_model=session.get("device_model"),
    )


def analyze_capture(path: Path, config_path: Path | None = None) -> dict[str, Any]:
    cfg = load_config(config_path)
    buffers = SensorBuffers.from_config(cfg.buffers)
    with path.open("r", encoding="utf-8") as f:
        session = replay_records(iter_records(f), buffers)
    handle = capture_handle(session, buffers)
    processor = RunProcessor(cfg.processing)
    result = processor.process(buffers, handle, cfg.sensitivity.to_settings())
    return {
        "handle": handle,
        "summary": result.summary,
        "validation": result.validation,
        "events": result.events,
        "series": result.series,
        "polyline": result.polyline,
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.input.exists():
        print(f"Error: input file not found: {args.input}", file=sys.stderr)
        return 1
    try:
        analysis = analyze_capture(args.input, args.config)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    out_path = args.output or args.input.with_name(f"{args.input.stem}_analysis.json")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(safe_json_dumps(analysis, indent=2), encoding="utf-8")
    print(f"wrote analysis: {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
