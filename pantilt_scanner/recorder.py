"""Telemetry recording for scan runs.

This module provides the recording sink the scan controller writes to:
- ``Recorder``: the append-only, timestamped, multi-field logging interface
- ``CsvRecorder``: a recorder that writes one directory per recording

Recording layout (one directory per recording):
- ``properties.json``: recording name, application id, start time, and
  run-constant properties (angle step, settle delay)
- ``scalars.csv``: ``capture_time, entity_path, value`` (long format)
- ``points.csv``: ``capture_time, entity_path, x, y, z``, one row per cloud point
  in the order the points were accumulated
"""

import csv
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, TextIO

import numpy as np

from .config import APPLICATION_ID, RECORDINGS_DIR, TERM_BLUE, TERM_RESET

PROPERTIES_FILENAME = "properties.json"
SCALARS_FILENAME = "scalars.csv"
POINTS_FILENAME = "points.csv"

logger = logging.getLogger(__name__)


class Recorder(Protocol):
    """Append-only, timestamped, multi-field log."""

    def set_time(self, timestamp: float) -> None:
        """Set the capture time (seconds since epoch) for subsequent logs."""
        ...

    def log(self, entity_path: str, value: Any) -> None:
        """Log a scalar or an (N, 3) point cloud at the current time."""
        ...

    def send_property(self, key: str, value: Any) -> None:
        """Attach a run-constant property to the recording."""
        ...

    def send_recording_name(self, name: str) -> None:
        ...

    def close(self) -> None:
        ...


class CsvRecorder:
    """Writes a scan recording to CSV files plus a JSON property sheet.

    Point clouds follow "latest snapshot wins" semantics: callers may log the
    whole accumulated cloud every time, and only the points not yet stored are
    appended. The stored cloud therefore always equals the latest snapshot.

    Attributes:
        run_dir: Directory holding this recording's files.
        start_time: UTC time the recording was opened.
        properties: Recording name and run-constant properties.
    """

    def __init__(
        self,
        output_dir: str = RECORDINGS_DIR,
        run_dir: Optional[str] = None,
        application_id: str = APPLICATION_ID,
    ) -> None:
        """Initialize the recorder.

        Args:
            output_dir: Base directory for recordings (default: ``recordings``).
            run_dir: Optional specific recording directory. If None, creates a
                timestamped directory inside output_dir.
            application_id: Identifier stored in the property sheet.

        Raises:
            ValueError: If output_dir exists but is not a directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.start_time = datetime.now(timezone.utc)
        if run_dir:
            self.run_dir = Path(run_dir)
        else:
            # recordings/recording_YYYYMMDD_HHMMSS_ffffff/
            self.run_dir = self._run_dir_for(output_path)
            while self.run_dir.exists():
                # Start times identify repetitions, so they must stay unique
                self.start_time += timedelta(microseconds=1)
                self.run_dir = self._run_dir_for(output_path)

        self.properties_path: Path = self.run_dir / PROPERTIES_FILENAME
        self.scalars_path: Path = self.run_dir / SCALARS_FILENAME
        self.points_path: Path = self.run_dir / POINTS_FILENAME

        self.properties: Dict[str, Any] = {
            "application_id": application_id,
            "recording_name": None,
            "start_time": self.start_time.isoformat(),
            "properties": {},
        }

        self.scalars_file: Optional[TextIO] = None
        self.scalars_writer: Any = None
        self.points_file: Optional[TextIO] = None
        self.points_writer: Any = None

        self._current_time: Optional[float] = None
        self._stored_points: Dict[str, np.ndarray] = {}

    def _run_dir_for(self, output_path: Path) -> Path:
        stamp = self.start_time.strftime("%Y%m%d_%H%M%S_%f")
        return output_path / f"recording_{stamp}"

    def setup(self) -> None:
        """Create the recording directory and open the CSV files.

        Must be called before logging data.
        """
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.scalars_file = open(self.scalars_path, "w", newline="")
        self.scalars_writer = csv.writer(self.scalars_file)
        self.scalars_writer.writerow(["capture_time", "entity_path", "value"])
        self.scalars_file.flush()

        self.points_file = open(self.points_path, "w", newline="")
        self.points_writer = csv.writer(self.points_file)
        self.points_writer.writerow(["capture_time", "entity_path", "x", "y", "z"])
        self.points_file.flush()

        self._write_properties()
        logger.info(f"{TERM_BLUE}Recording to {self.run_dir}{TERM_RESET}")

    def __enter__(self) -> "CsvRecorder":
        self.setup()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def set_time(self, timestamp: float) -> None:
        self._current_time = timestamp

    def log(self, entity_path: str, value: Any) -> None:
        """Log a scalar or a point cloud at the current capture time.

        Args:
            entity_path: Name of the logged quantity (e.g. ``distance``).
            value: A scalar, or an array-like of shape (N, 3).

        Raises:
            RuntimeError: If setup() was not called or no time was set.
            ValueError: If the value is neither a scalar nor an (N, 3) cloud,
                or if a cloud does not extend the previously stored one.
        """
        if self.scalars_writer is None or self.points_writer is None:
            raise RuntimeError("CsvRecorder.setup() must be called before logging")
        if self._current_time is None:
            raise RuntimeError("set_time() must be called before logging")

        entity_path = entity_path.strip("/")
        array = np.asarray(value, dtype=float)

        if array.ndim == 0:
            self.scalars_writer.writerow(
                [f"{self._current_time:.6f}", entity_path, repr(float(array))]
            )
            self.scalars_file.flush()
        elif array.ndim == 2 and array.shape[1] == 3:
            self._log_points(entity_path, array)
        else:
            raise ValueError(
                f"Unsupported value for '{entity_path}': expected scalar or (N, 3) "
                f"points, got shape {array.shape}"
            )

    def _log_points(self, entity_path: str, points: np.ndarray) -> None:
        stored = self._stored_points.get(entity_path)
        stored_count = 0 if stored is None else len(stored)

        if len(points) < stored_count:
            raise ValueError(
                f"Point cloud '{entity_path}' shrank from {stored_count} to {len(points)} points"
            )
        if stored_count and not np.array_equal(points[stored_count - 1], stored[-1]):
            raise ValueError(f"Point cloud '{entity_path}' rewrites previously stored points")

        new_points = points[stored_count:]
        for x, y, z in new_points.tolist():
            self.points_writer.writerow(
                [f"{self._current_time:.6f}", entity_path, repr(x), repr(y), repr(z)]
            )
        self.points_file.flush()
        self._stored_points[entity_path] = points.copy()

    def send_property(self, key: str, value: Any) -> None:
        if isinstance(value, np.generic):
            value = value.item()
        self.properties["properties"][key] = value
        self._write_properties()

    def send_recording_name(self, name: str) -> None:
        self.properties["recording_name"] = name
        self._write_properties()

    def _write_properties(self) -> None:
        if not self.run_dir.exists():
            return
        with open(self.properties_path, "w") as f:
            json.dump(self.properties, f, indent=2)

    def close(self) -> None:
        """Close all open CSV files."""
        if self.scalars_file:
            self.scalars_file.close()
            self.scalars_file = None
            self.scalars_writer = None
        if self.points_file:
            self.points_file.close()
            self.points_file = None
            self.points_writer = None
        logger.debug(f"Closed recording {self.run_dir}")
