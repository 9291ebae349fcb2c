"""Repeatability statistics for scan experiments.

This module aggregates per-run metrics into one repeatability record per
parameter combination and reports on them, including:
- Mean and sample standard deviation of time, angular error, y-intercept
  error and y-intercept per (angle step, settle delay)
- Spread of a repeatability metric across combinations, naming the worst
  combination
- Ranking and plain-text report generation
"""

import csv
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from .experiment import RunMetrics

OVERALL_METRICS = (
    ("avg_y_error", "Y-intercept error", ""),
    ("avg_angle_error_deg", "Angle error", "°"),
    ("avg_time_ms", "Scan time", " ms"),
)


@dataclass
class MetricSummary:
    """Spread of one repeatability metric across all combinations.

    The worst combination is the one with the largest finite value.
    """

    label: str
    unit: str
    mean: float
    median: float
    p90: float
    best: float
    worst: float
    worst_combination: str
    num_combinations: int

    def __str__(self) -> str:
        return (
            f"{self.label}: mean {self.mean:.3f}{self.unit} | "
            f"median {self.median:.3f}{self.unit} | "
            f"90th pct {self.p90:.3f}{self.unit} | "
            f"best {self.best:.3f}{self.unit} | "
            f"worst {self.worst:.3f}{self.unit} ({self.worst_combination}) | "
            f"N={self.num_combinations}"
        )


@dataclass
class RepeatabilityRecord:
    """Repeatability of one (angle step, settle delay) combination.

    Standard deviations are sample deviations (ddof=1), NaN for a single
    repetition.
    """

    angle_step: float
    settle_delay_ms: float
    avg_time_ms: float
    std_time_ms: float
    avg_angle_error_deg: float
    std_angle_error_deg: float
    avg_y_error: float
    std_y_error: float
    avg_y_intercept: float
    std_y_intercept: float
    num_repetitions: int
    avg_num_points: float
    num_non_parallel: int = 0

    @property
    def name(self) -> str:
        return f"{self.angle_step:g}deg-{self.settle_delay_ms:g}ms"


def summarize_metric(
    records: List[RepeatabilityRecord],
    metric: str,
    label: str,
    unit: str = "",
) -> Optional[MetricSummary]:
    """Summarise one RepeatabilityRecord column over the experiment.

    Args:
        records: Repeatability records
        metric: Attribute name, e.g. 'avg_y_error'
        label: Name printed in the report
        unit: Unit suffix printed after every value

    Returns:
        MetricSummary, or None if no combination has a finite value
    """
    finite = [r for r in records if math.isfinite(getattr(r, metric))]
    if not finite:
        return None

    values = np.array([getattr(r, metric) for r in finite], dtype=float)
    worst = finite[int(np.argmax(values))]
    return MetricSummary(
        label=label,
        unit=unit,
        mean=float(np.mean(values)),
        median=float(np.median(values)),
        p90=float(np.percentile(values, 90)),
        best=float(values.min()),
        worst=float(values.max()),
        worst_combination=worst.name,
        num_combinations=len(finite),
    )


def _mean_std(values: List[float]) -> Tuple[float, float]:
    """Mean and sample std (ddof=1). NaN values propagate."""
    array = np.asarray(values, dtype=float)
    mean = float(np.mean(array))
    std = float(np.std(array, ddof=1)) if len(array) > 1 else math.nan
    return mean, std


def _nan_last(value: float) -> Tuple[bool, float]:
    return (math.isnan(value), value)


def calculate_repeatability(run_metrics: List[RunMetrics]) -> List[RepeatabilityRecord]:
    """Aggregate runs per (angle step, settle delay).

    Args:
        run_metrics: Per-run metrics, any order.

    Returns:
        One record per combination, sorted ascending by avg_y_error with
        NaN last. Combinations with equal errors keep (angle step, delay)
        order.
    """
    groups: Dict[Tuple[float, float], List[RunMetrics]] = {}
    for run in run_metrics:
        groups.setdefault((run.angle_step, run.settle_delay_ms), []).append(run)

    records = []
    for (angle_step, settle_delay_ms), runs in sorted(groups.items()):
        avg_time, std_time = _mean_std([r.total_time_ms for r in runs])
        avg_angle, std_angle = _mean_std([r.angle_error_deg for r in runs])
        avg_y_error, std_y_error = _mean_std([r.y_intercept_error for r in runs])
        avg_y, std_y = _mean_std([r.y_intercept for r in runs])

        records.append(
            RepeatabilityRecord(
                angle_step=angle_step,
                settle_delay_ms=settle_delay_ms,
                avg_time_ms=avg_time,
                std_time_ms=std_time,
                avg_angle_error_deg=avg_angle,
                std_angle_error_deg=std_angle,
                avg_y_error=avg_y_error,
                std_y_error=std_y_error,
                avg_y_intercept=avg_y,
                std_y_intercept=std_y,
                num_repetitions=len(runs),
                avg_num_points=float(np.mean([r.num_points for r in runs])),
                num_non_parallel=sum(1 for r in runs if not r.is_parallel),
            )
        )

    return sorted(records, key=lambda r: _nan_last(r.avg_y_error))


def load_repeatability(csv_path: Path) -> List[RepeatabilityRecord]:
    """Load repeatability records from a CSV written by ``write_repeatability_csv``.

    Args:
        csv_path: Path to repeatability CSV file

    Returns:
        List of RepeatabilityRecord, in file order
    """
    records = []

    with open(csv_path, 'r') as f:
        reader = csv.DictReader(f)
        for row in reader:
            records.append(
                RepeatabilityRecord(
                    angle_step=float(row['angle_step']),
                    settle_delay_ms=float(row['settle_delay_ms']),
                    avg_time_ms=float(row['avg_time_ms']),
                    std_time_ms=float(row['std_time_ms']),
                    avg_angle_error_deg=float(row['avg_angle_error_deg']),
                    std_angle_error_deg=float(row['std_angle_error_deg']),
                    avg_y_error=float(row['avg_y_error']),
                    std_y_error=float(row['std_y_error']),
                    avg_y_intercept=float(row['avg_y_intercept']),
                    std_y_intercept=float(row['std_y_intercept']),
                    num_repetitions=int(row['num_repetitions']),
                    avg_num_points=float(row['avg_num_points']),
                    num_non_parallel=int(row.get('num_non_parallel') or 0),
                )
            )

    return records


def rank_records(
    records: List[RepeatabilityRecord],
    metric: str = 'avg_y_error',
    ascending: bool = True
) -> List[RepeatabilityRecord]:
    """Rank combinations by a metric, NaN values last.

    Args:
        records: Repeatability records
        metric: Attribute to rank by ('avg_y_error', 'std_y_error', ...)
        ascending: True for ascending order (lower is better)

    Returns:
        Sorted list of records
    """
    finite = [r for r in records if not math.isnan(getattr(r, metric))]
    missing = [r for r in records if math.isnan(getattr(r, metric))]
    return sorted(finite, key=lambda r: getattr(r, metric), reverse=not ascending) + missing


def generate_report(
    records: List[RepeatabilityRecord],
    output_path: Optional[Path] = None,
    top_n: int = 10,
    source: Optional[str] = None,
) -> str:
    """Generate a plain-text repeatability report.

    Args:
        records: Repeatability records
        output_path: Optional path to save report text file
        top_n: Number of combinations per ranking
        source: Optional description of where the records came from

    Returns:
        Report text as string
    """
    report_lines = []
    report_lines.append("=" * 80)
    report_lines.append("SCAN REPEATABILITY REPORT")
    report_lines.append("=" * 80)
    if source:
        report_lines.append(f"\nSource: {source}")
    report_lines.append(f"Parameter combinations: {len(records)}")
    report_lines.append(f"Total runs: {sum(r.num_repetitions for r in records)}")

    if not records:
        report_lines.append("\nNo runs to report!")
        report_text = "\n".join(report_lines)
        if output_path:
            output_path.write_text(report_text)
        return report_text

    report_lines.append("\n" + "=" * 80)
    report_lines.append("OVERALL STATISTICS (per-combination means)")
    report_lines.append("=" * 80)

    for metric, label, unit in OVERALL_METRICS:
        summary = summarize_metric(records, metric, label, unit)
        if summary:
            report_lines.append(f"\n{summary}")

    report_lines.append("\n" + "=" * 80)
    report_lines.append(f"TOP {top_n} COMBINATIONS BY MEAN Y-INTERCEPT ERROR")
    report_lines.append("=" * 80)

    for i, record in enumerate(rank_records(records, 'avg_y_error')[:top_n], 1):
        report_lines.append(f"\n{i}. {record.name}")
        report_lines.append(
            f"   Y error: {record.avg_y_error:.3f} ± {record.std_y_error:.3f}"
        )
        report_lines.append(
            f"   Angle error: {record.avg_angle_error_deg:.2f}° ± {record.std_angle_error_deg:.2f}°"
        )
        report_lines.append(
            f"   Time: {record.avg_time_ms / 1000.0:.1f}s | "
            f"Points: {record.avg_num_points:.0f} | Repetitions: {record.num_repetitions}"
        )

    report_lines.append("\n" + "=" * 80)
    report_lines.append(f"TOP {top_n} MOST STABLE COMBINATIONS (lowest std of y error)")
    report_lines.append("=" * 80)

    stable = [r for r in rank_records(records, 'std_y_error') if not math.isnan(r.std_y_error)]
    if not stable:
        report_lines.append("\nNeed at least two repetitions per combination.")
    for i, record in enumerate(stable[:top_n], 1):
        report_lines.append(f"\n{i}. {record.name}")
        report_lines.append(f"   Std Dev: {record.std_y_error:.3f}")
        report_lines.append(f"   Mean: {record.avg_y_error:.3f}")
        report_lines.append(f"   Y-intercept: {record.avg_y_intercept:.3f} ± {record.std_y_intercept:.3f}")

    non_parallel = [r for r in records if r.num_non_parallel]
    if non_parallel:
        report_lines.append("\n" + "=" * 80)
        report_lines.append("WARNING: NON-PARALLEL PLANE FITS")
        report_lines.append("=" * 80)
        for record in non_parallel:
            report_lines.append(
                f"\n{record.name}: {record.num_non_parallel}/{record.num_repetitions} run(s) "
                f"fitted a plane far from the target orientation "
                f"(mean angle error {record.avg_angle_error_deg:.1f}°)"
            )

    report_lines.append("\n" + "=" * 80)

    report_text = "\n".join(report_lines)

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(report_text)
        print(f"✓ Report saved to {output_path}")

    return report_text
