"""Offline analysis of pan/tilt scanner recordings.

This package turns a store of scan recordings into accuracy and
repeatability figures:
- Ingestion of recordings as typed sample records
- Plane fitting against the known flat target
- Per-run metrics, grouped by recording start time
- Repeatability statistics per (angle step, settle delay)
- CSV export, text reports and plots

Quick Start:
    >>> from scan_analysis import BatchStore, analyze_experiment, calculate_repeatability
    >>> records = BatchStore.open('recordings').query_all()
    >>> runs = analyze_experiment(records)
    >>> table = calculate_repeatability(runs)

Command Line:
    # Analyse a store and write metrics.csv / repeatability.csv
    python -m scan_analysis.cli analyze recordings/ -o results/ --report

    # Export one point cloud CSV per recording
    python -m scan_analysis.cli export-points recordings/ -o data/

    # Plot an existing repeatability table
    python -m scan_analysis.cli visualize results/repeatability.csv
"""

# Ingestion
from scan_analysis.batch_store import (
    BatchStore,
    RecordingQuery,
    SampleRecord,
)
from scan_analysis.errors import AnalysisError, NoData

# Plane fitting and per-run metrics
from scan_analysis.plane_fit import (
    GROUND_TRUTH_PLANE,
    Plane,
    PlaneMetrics,
    compute_plane_metrics,
    fit_plane,
)
from scan_analysis.experiment import (
    RunKey,
    RunMetrics,
    analyze_experiment,
    analyze_run,
    group_runs,
)

# Repeatability statistics
from scan_analysis.statistics import (
    MetricSummary,
    RepeatabilityRecord,
    calculate_repeatability,
    generate_report,
    load_repeatability,
    rank_records,
    summarize_metric,
)

# Export
from scan_analysis.export import (
    export_point_cloud,
    write_repeatability_csv,
    write_run_metrics_csv,
)

__all__ = [
    # Ingestion
    'BatchStore',
    'RecordingQuery',
    'SampleRecord',
    'AnalysisError',
    'NoData',
    # Plane fitting
    'GROUND_TRUTH_PLANE',
    'Plane',
    'PlaneMetrics',
    'fit_plane',
    'compute_plane_metrics',
    # Experiment
    'RunKey',
    'RunMetrics',
    'group_runs',
    'analyze_run',
    'analyze_experiment',
    # Statistics
    'RepeatabilityRecord',
    'MetricSummary',
    'calculate_repeatability',
    'summarize_metric',
    'load_repeatability',
    'rank_records',
    'generate_report',
    # Export
    'write_run_metrics_csv',
    'write_repeatability_csv',
    'export_point_cloud',
]

__version__ = '0.1.0'
