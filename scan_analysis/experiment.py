"""Group sample records into runs and compute per-run plane metrics.

A run is one scan repetition, identified by its recording start time together
with its parameters. Repetitions of the same (angle step, settle delay) stay
separate because their start times differ.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pantilt_scanner.config import TERM_ORANGE, TERM_RESET

from .batch_store import SampleRecord
from .errors import NoData
from .plane_fit import compute_plane_metrics, fit_plane

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunKey:
    """Identity of one scan run."""

    start_time: datetime
    angle_step: float
    settle_delay_ms: float


@dataclass
class RunMetrics:
    """Timing and accuracy of one analysed run."""

    start_time: datetime
    angle_step: float
    settle_delay_ms: float
    total_time_ms: float
    num_points: int
    plane_a: float
    plane_b: float
    plane_c: float
    plane_d: float
    angle_error_deg: float
    distance_error: float
    y_intercept: float
    y_intercept_error: float
    is_parallel: bool
    recording_name: str = ""


def group_runs(records: Iterable[SampleRecord]) -> Dict[RunKey, List[SampleRecord]]:
    """Group records by (start time, angle step, settle delay).

    Args:
        records: Sample records from any number of recordings.

    Returns:
        Records per run, keyed in first-seen order.
    """
    groups: Dict[RunKey, List[SampleRecord]] = {}
    for record in records:
        key = RunKey(record.start_time, record.angle_step, record.settle_delay_ms)
        groups.setdefault(key, []).append(record)
    return groups


def analyze_run(key: RunKey, records: List[SampleRecord]) -> RunMetrics:
    """Fit a plane to one run and compute its metrics.

    The run's cloud is the snapshot attached to its latest record, which holds
    every point the run produced.

    Args:
        key: Run identity.
        records: All records of the run.

    Returns:
        RunMetrics for the run.

    Raises:
        NoData: If the run has no records or its cloud has no points.
    """
    if not records:
        raise NoData(f"Run {key} has no records")

    capture_times = [r.capture_time for r in records]
    total_time_ms = (max(capture_times) - min(capture_times)) * 1000.0

    latest = max(records, key=lambda r: r.capture_time)
    points = latest.points
    plane = fit_plane(points)
    if plane is None:
        raise NoData(f"Run {latest.recording_name} ({key.start_time}) has no points")

    metrics = compute_plane_metrics(plane)
    if not metrics.is_parallel:
        logger.warning(
            f"{TERM_ORANGE}Run {latest.recording_name} ({key.start_time}): fitted plane "
            f"is {metrics.angle_error_deg:.1f}° off the ground truth{TERM_RESET}"
        )

    return RunMetrics(
        start_time=key.start_time,
        angle_step=key.angle_step,
        settle_delay_ms=key.settle_delay_ms,
        total_time_ms=total_time_ms,
        num_points=len(points),
        plane_a=metrics.plane.a,
        plane_b=metrics.plane.b,
        plane_c=metrics.plane.c,
        plane_d=metrics.plane.d,
        angle_error_deg=metrics.angle_error_deg,
        distance_error=metrics.distance_error,
        y_intercept=metrics.y_intercept,
        y_intercept_error=metrics.y_intercept_error,
        is_parallel=metrics.is_parallel,
        recording_name=latest.recording_name,
    )


def analyze_experiment(
    records: Iterable[SampleRecord], workers: Optional[int] = None
) -> List[RunMetrics]:
    """Analyse every run found in a set of records.

    Args:
        records: Sample records from any number of recordings.
        workers: Thread count for analysing runs concurrently. None or 1
            analyses them sequentially; the result is the same either way.

    Returns:
        RunMetrics per run, ordered by start time.

    Raises:
        NoData: If there are no records, or any run has no points.
    """
    groups = group_runs(records)
    if not groups:
        raise NoData("No records to analyse")

    keys = sorted(groups, key=lambda k: (k.start_time, k.angle_step, k.settle_delay_ms))
    logger.info(f"Analysing {len(keys)} run(s)")

    if workers and workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(lambda k: analyze_run(k, groups[k]), keys))

    return [analyze_run(key, groups[key]) for key in keys]
