"""Command-line interface for scan analysis.

This module provides a simple CLI for analysing a store of scan recordings,
exporting flattened point clouds, generating repeatability reports, and
creating visualizations.
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from pantilt_scanner.console import setup_logging
from scan_analysis import export, statistics, visualize
from scan_analysis.batch_store import BatchStore
from scan_analysis.errors import AnalysisError
from scan_analysis.experiment import analyze_experiment

RUN_METRICS_FILENAME = "metrics.csv"
REPEATABILITY_FILENAME = "repeatability.csv"


def _use_file_backend() -> None:
    import matplotlib

    matplotlib.use("Agg")


def _print_table(records: List[statistics.RepeatabilityRecord]) -> None:
    print(
        f"\n{'combination':>16s} | {'reps':>4s} | {'y error':>15s} | "
        f"{'angle error':>15s} | {'time (s)':>8s} | {'points':>6s}"
    )
    print("-" * 80)
    for r in records:
        print(
            f"{r.name:>16s} | {r.num_repetitions:4d} | "
            f"{r.avg_y_error:7.3f} ± {r.std_y_error:5.3f} | "
            f"{r.avg_angle_error_deg:6.2f}° ± {r.std_angle_error_deg:5.2f}° | "
            f"{r.avg_time_ms / 1000.0:8.1f} | {r.avg_num_points:6.0f}"
        )


def run_analyze(args: argparse.Namespace) -> int:
    """Analyse every recording in a store.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    output_dir = Path(args.output_dir)

    try:
        store = BatchStore.open(args.store)
        records = store.query_all()
        run_metrics = analyze_experiment(records, workers=args.workers)
        repeatability = statistics.calculate_repeatability(run_metrics)

        metrics_path = export.write_run_metrics_csv(output_dir / RUN_METRICS_FILENAME, run_metrics)
        csv_path = export.write_repeatability_csv(
            output_dir / REPEATABILITY_FILENAME, repeatability
        )
    except KeyboardInterrupt:
        print("\n\nInterrupted by user.")
        return 1
    except (AnalysisError, OSError, ValueError) as e:
        print(f"Error: {e}")
        if args.verbose:
            raise
        return 1

    _print_table(repeatability)

    if args.report:
        print("\nGenerating repeatability report...")
        statistics.generate_report(
            repeatability,
            csv_path.with_suffix('.txt'),
            top_n=args.top,
            source=str(args.store),
        )

    if args.visualize:
        print("\nGenerating visualizations...")
        _use_file_backend()
        visualize.plot_repeatability_summary(csv_path)

    print(f"\n✓ Analysis complete! {len(run_metrics)} run(s) saved to {metrics_path}")
    print(f"✓ Repeatability saved to {csv_path}")

    return 0


def run_export_points(args: argparse.Namespace) -> int:
    """Flatten every recording of a store into point cloud CSVs.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    seen: Dict[str, int] = {}

    try:
        store = BatchStore.open(args.store)
        for recording in store.recordings():
            batch = [record for chunk in recording.query() for record in chunk]
            name = export.point_cloud_filename(recording.angle_step, recording.settle_delay_ms)

            # Later repetitions of the same parameters get a numeric suffix
            seen[name] = seen.get(name, 0) + 1
            suffix = str(seen[name]) if seen[name] > 1 else None

            path = export.export_point_cloud(args.output_dir, batch, suffix=suffix)
            print(f"✓ {recording.recording_name}: {len(batch)} samples → {path}")
    except (AnalysisError, OSError, ValueError) as e:
        print(f"Error: {e}")
        if args.verbose:
            raise
        return 1

    if not seen:
        print("Error: No usable recordings to export")
        return 1

    return 0


def run_visualize(args: argparse.Namespace) -> int:
    """Generate visualizations from an existing repeatability CSV.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    csv_path = Path(args.csv)

    if not csv_path.exists():
        print(f"Error: File not found: {csv_path}")
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else None

    try:
        _use_file_backend()
        visualize.plot_repeatability_summary(csv_path, output_dir)
        return 0
    except Exception as e:
        print(f"Error: {e}")
        if args.verbose:
            raise
        return 1


def run_stats(args: argparse.Namespace) -> int:
    """Generate a repeatability report from an existing CSV.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    csv_path = Path(args.csv)

    if not csv_path.exists():
        print(f"Error: File not found: {csv_path}")
        return 1

    output_path = Path(args.output) if args.output else None

    try:
        report = statistics.generate_report(
            statistics.load_repeatability(csv_path),
            output_path,
            top_n=args.top,
            source=str(csv_path),
        )

        if not output_path:
            print(report)

        return 0
    except Exception as e:
        print(f"Error: {e}")
        if args.verbose:
            raise
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI.

    Args:
        argv: Optional command-line arguments (for testing)

    Returns:
        Exit code (0 for success)
    """
    parser = argparse.ArgumentParser(
        description="Analysis of pan/tilt scanner recordings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fit planes to every recording and aggregate repeatability
  python -m scan_analysis.cli analyze recordings/ -o results/ --report --visualize

  # Analyse runs on 4 threads
  python -m scan_analysis.cli analyze recordings/ --workers 4

  # Flatten each recording into a point cloud CSV
  python -m scan_analysis.cli export-points recordings/ -o data/

  # Report or plot an existing repeatability table
  python -m scan_analysis.cli stats results/repeatability.csv
  python -m scan_analysis.cli visualize results/repeatability.csv
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Analyze command
    analyze_parser = subparsers.add_parser(
        'analyze',
        help='Analyse a store of recordings'
    )
    analyze_parser.add_argument(
        'store',
        help='Recording store directory (or a single recording directory)'
    )
    analyze_parser.add_argument(
        '--output-dir',
        '-o',
        default='results',
        help='Directory for metrics.csv and repeatability.csv (default: results)'
    )
    analyze_parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='Analyse runs on this many threads (default: sequential)'
    )
    analyze_parser.add_argument(
        '--report',
        action='store_true',
        help='Generate repeatability report'
    )
    analyze_parser.add_argument(
        '--visualize',
        action='store_true',
        help='Generate plots'
    )
    analyze_parser.add_argument(
        '--top',
        type=int,
        default=10,
        help='Number of top combinations in the report (default: 10)'
    )
    analyze_parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    # Export-points command
    export_parser = subparsers.add_parser(
        'export-points',
        help='Export one point cloud CSV per recording'
    )
    export_parser.add_argument(
        'store',
        help='Recording store directory (or a single recording directory)'
    )
    export_parser.add_argument(
        '--output-dir',
        '-o',
        default='data',
        help='Output directory for CSV files (default: data)'
    )
    export_parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    # Visualize command
    viz_parser = subparsers.add_parser(
        'visualize',
        help='Generate visualizations from a repeatability CSV'
    )
    viz_parser.add_argument(
        'csv',
        help='Path to repeatability CSV file'
    )
    viz_parser.add_argument(
        '--output-dir',
        '-o',
        help='Output directory for plots (default: same as CSV)'
    )
    viz_parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose output'
    )

    # Stats command
    stats_parser = subparsers.add_parser(
        'stats',
        help='Generate repeatability report from a CSV'
    )
    stats_parser.add_argument(
        'csv',
        help='Path to repeatability CSV file'
    )
    stats_parser.add_argument(
        '--output',
        '-o',
        help='Output report path (default: print to stdout)'
    )
    stats_parser.add_argument(
        '--top',
        type=int,
        default=10,
        help='Number of top combinations to show (default: 10)'
    )
    stats_parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    if args.command == 'analyze':
        return run_analyze(args)
    elif args.command == 'export-points':
        return run_export_points(args)
    elif args.command == 'visualize':
        return run_visualize(args)
    elif args.command == 'stats':
        return run_stats(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
