"""Visualization of scan experiment results.

This module provides plots for repeatability analysis:
- Error scatter: mean y-intercept error vs settle delay, one series per
  angle step, with standard deviation error bars
- Point cloud: 3D scatter of a scan colored by distance, with the ground
  truth plane outline
- Summary: every plot for a repeatability CSV and the point cloud CSVs
  next to it
"""

import csv
import math
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np

from pantilt_scanner.config import PLOT_BLUE, PLOT_ORANGE, PLOT_TAUPE, PLOT_YELLOW_ORANGE

from .plane_fit import GROUND_TRUTH_PLANE, NORMAL_EPSILON, Plane
from .statistics import RepeatabilityRecord, load_repeatability

SERIES_COLORS = [PLOT_ORANGE, PLOT_BLUE, PLOT_YELLOW_ORANGE, PLOT_TAUPE]


def _finish(output_path: Optional[Path], label: str) -> None:
    plt.tight_layout()
    if output_path:
        plt.savefig(output_path, dpi=150, bbox_inches='tight')
        print(f"✓ {label} saved to {output_path}")
    else:
        plt.show()
    plt.close()


def plot_error_scatter(
    records: List[RepeatabilityRecord],
    output_path: Optional[Path] = None,
    title: str = "Y-Intercept Error vs Settle Delay"
) -> None:
    """Plot mean y-intercept error against settle delay.

    Args:
        records: Repeatability records
        output_path: Optional path to save figure
        title: Plot title
    """
    if not records:
        print("No records to plot!")
        return

    by_step: Dict[float, List[RepeatabilityRecord]] = {}
    for record in records:
        by_step.setdefault(record.angle_step, []).append(record)

    fig, ax = plt.subplots(figsize=(12, 7))

    for i, (angle_step, series) in enumerate(sorted(by_step.items())):
        series = sorted(series, key=lambda r: r.settle_delay_ms)
        delays = [r.settle_delay_ms for r in series]
        errors = [r.avg_y_error for r in series]
        # Single repetitions have no spread to show
        spreads = [0.0 if math.isnan(r.std_y_error) else r.std_y_error for r in series]

        ax.errorbar(
            delays,
            errors,
            yerr=spreads,
            fmt='o-',
            color=SERIES_COLORS[i % len(SERIES_COLORS)],
            ecolor=PLOT_TAUPE,
            capsize=4,
            linewidth=2,
            markersize=7,
            label=f"{angle_step:g}° step",
        )

    ax.set_xlabel("Settle delay (ms)", fontsize=12, fontweight='bold')
    ax.set_ylabel("Mean y-intercept error", fontsize=12, fontweight='bold')
    ax.set_title(title, fontsize=14, fontweight='bold', pad=20)
    ax.legend(loc='best')
    ax.grid(True, alpha=0.3)

    _finish(output_path, "Error scatter")


def _plane_outline(plane: Plane, points: np.ndarray) -> Optional[np.ndarray]:
    """Corners of the plane patch spanning the cloud's x/z extent."""
    if abs(plane.b) <= NORMAL_EPSILON or len(points) == 0:
        return None
    x_min, x_max = points[:, 0].min(), points[:, 0].max()
    z_min, z_max = points[:, 2].min(), points[:, 2].max()
    corners = []
    for x, z in [(x_min, z_min), (x_max, z_min), (x_max, z_max), (x_min, z_max), (x_min, z_min)]:
        y = -(plane.a * x + plane.c * z + plane.d) / plane.b
        corners.append((x, y, z))
    return np.array(corners)


def plot_point_cloud(
    points: np.ndarray,
    output_path: Optional[Path] = None,
    title: str = "Scanned Point Cloud",
    ground_truth: Plane = GROUND_TRUTH_PLANE
) -> None:
    """3D scatter of a point cloud colored by distance from the sensor.

    Args:
        points: (N, 3) array of x, y, z
        output_path: Optional path to save figure
        title: Plot title
        ground_truth: Plane drawn as an outline for reference
    """
    points = np.asarray(points, dtype=float).reshape(-1, 3)
    if len(points) == 0:
        print("No points to plot!")
        return

    distances = np.linalg.norm(points, axis=1)

    fig = plt.figure(figsize=(10, 8))
    ax = fig.add_subplot(111, projection='3d')

    scatter = ax.scatter(
        points[:, 0], points[:, 1], points[:, 2],
        c=distances, cmap='viridis', s=20, alpha=0.8,
    )
    fig.colorbar(scatter, ax=ax, shrink=0.6, label="Distance")

    outline = _plane_outline(ground_truth, points)
    if outline is not None:
        ax.plot(
            outline[:, 0], outline[:, 1], outline[:, 2],
            '--', color=PLOT_BLUE, linewidth=2, label="Ground truth plane",
        )
        ax.legend(loc='upper left')

    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")
    ax.set_title(title, fontsize=14, fontweight='bold')

    _finish(output_path, "Point cloud plot")


def load_point_cloud_csv(csv_path: Path) -> np.ndarray:
    """Read the x, y, z columns of a point cloud CSV, skipping empty rows."""
    points = []
    with open(csv_path, 'r') as f:
        for row in csv.DictReader(f):
            if row.get('x'):
                points.append([float(row['x']), float(row['y']), float(row['z'])])
    return np.array(points, dtype=float).reshape(-1, 3)


def plot_repeatability_summary(
    csv_path: Path,
    output_dir: Optional[Path] = None
) -> None:
    """Generate all plots for a repeatability CSV.

    Point cloud CSVs (``point_cloud_data_*.csv``) found next to the
    repeatability CSV are plotted as well.

    Args:
        csv_path: Path to repeatability CSV file
        output_dir: Optional directory to save plots (default: same as CSV)
    """
    records = load_repeatability(csv_path)

    if output_dir is None:
        output_dir = csv_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    base_name = csv_path.stem

    print("Creating error scatter plot...")
    plot_error_scatter(records, output_path=output_dir / f"{base_name}_y_error.png")

    for cloud_csv in sorted(csv_path.parent.glob("point_cloud_data_*.csv")):
        print(f"Creating point cloud plot for {cloud_csv.name}...")
        plot_point_cloud(
            load_point_cloud_csv(cloud_csv),
            output_path=output_dir / f"{cloud_csv.stem}.png",
            title=cloud_csv.stem,
        )

    print(f"\n✓ All plots saved to {output_dir}")
