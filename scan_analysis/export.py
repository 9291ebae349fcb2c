"""CSV export of analysis results and flattened point clouds.

Files:
- run metrics: one row per analysed run
- repeatability: one row per (angle step, settle delay), best first
- point cloud data: one file per recording, one row per sample with the
  point that sample added
"""

import csv
import math
from pathlib import Path
from typing import Any, List, Optional, Union

from .batch_store import SampleRecord
from .errors import NoData
from .experiment import RunMetrics
from .statistics import RepeatabilityRecord

RUN_METRICS_COLUMNS = [
    "start_time",
    "recording_name",
    "angle_step",
    "settle_delay_ms",
    "total_time_ms",
    "num_points",
    "plane_a",
    "plane_b",
    "plane_c",
    "plane_d",
    "angle_error_deg",
    "distance_error",
    "y_intercept",
    "y_intercept_error",
    "is_parallel",
]

REPEATABILITY_COLUMNS = [
    "angle_step",
    "settle_delay_ms",
    "avg_time_ms",
    "std_time_ms",
    "avg_angle_error_deg",
    "std_angle_error_deg",
    "avg_y_error",
    "std_y_error",
    "avg_y_intercept",
    "std_y_intercept",
    "num_repetitions",
    "avg_num_points",
    "num_non_parallel",
]

POINT_CLOUD_COLUMNS = [
    "capture_time",
    "distance",
    "pitch",
    "signal_strength",
    "temperature",
    "yaw",
    "angle_step",
    "settle_delay_ms",
    "x",
    "y",
    "z",
]


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        return "NaN" if math.isnan(value) else repr(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _open_for_writing(path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_run_metrics_csv(path: Union[str, Path], metrics: List[RunMetrics]) -> Path:
    """Write per-run metrics, one row per run.

    Args:
        path: Output CSV path (parent directories are created).
        metrics: Runs to write, in the given order.

    Returns:
        Path to the written file
    """
    path = _open_for_writing(path)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(RUN_METRICS_COLUMNS)
        for run in metrics:
            writer.writerow([_format(getattr(run, column)) for column in RUN_METRICS_COLUMNS])
    return path


def write_repeatability_csv(
    path: Union[str, Path], records: List[RepeatabilityRecord]
) -> Path:
    """Write repeatability records, one row per parameter combination.

    Args:
        path: Output CSV path (parent directories are created).
        records: Records to write, in the given order.

    Returns:
        Path to the written file
    """
    path = _open_for_writing(path)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(REPEATABILITY_COLUMNS)
        for record in records:
            writer.writerow(
                [_format(getattr(record, column)) for column in REPEATABILITY_COLUMNS]
            )
    return path


def point_cloud_filename(angle_step: float, settle_delay_ms: float, suffix: Optional[str] = None) -> str:
    """File name of a flattened point cloud, e.g. ``point_cloud_data_5deg_100ms.csv``."""
    stem = f"point_cloud_data_{angle_step:g}deg_{settle_delay_ms:g}ms"
    if suffix:
        stem = f"{stem}_{suffix}"
    return f"{stem}.csv"


def export_point_cloud(
    output_dir: Union[str, Path],
    batch: List[SampleRecord],
    suffix: Optional[str] = None,
) -> Path:
    """Flatten one recording into a per-sample CSV.

    Each row holds the sample's scalars, the run constants and the point the
    sample added to the cloud (the latest point of its snapshot).

    Args:
        output_dir: Directory for the CSV (created if missing).
        batch: Records of a single recording, in capture-time order.
        suffix: Optional file name suffix to keep repetitions apart.

    Returns:
        Path to the written file

    Raises:
        NoData: If the batch is empty.
    """
    if not batch:
        raise NoData("Cannot export an empty record batch")

    first = batch[0]
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / point_cloud_filename(first.angle_step, first.settle_delay_ms, suffix)

    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(POINT_CLOUD_COLUMNS)
        for record in batch:
            point = record.latest_point
            x, y, z = ("", "", "") if point is None else (_format(float(v)) for v in point)
            writer.writerow([
                f"{record.capture_time:.6f}",
                _format(record.scalar("distance")),
                _format(record.scalar("pitch")),
                _format(record.scalar("signal_strength")),
                _format(record.scalar("temperature")),
                _format(record.scalar("yaw")),
                _format(record.angle_step),
                _format(record.settle_delay_ms),
                x,
                y,
                z,
            ])

    return path
