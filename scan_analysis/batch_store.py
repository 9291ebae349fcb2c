"""Read scan recordings back as typed sample records.

A store is a directory of recordings written by
``pantilt_scanner.recorder.CsvRecorder`` (or a single recording directory).
Each recording is queried on the capture-time index: one ``SampleRecord`` per
distinct capture time, carrying the run constants, the scalars logged at that
time and the "latest-at" point cloud (every point logged at or before it).

This module is the only place that knows file, column and property names.
Everything downstream works on ``SampleRecord`` attributes.
"""

import csv
import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from pantilt_scanner.recorder import POINTS_FILENAME, PROPERTIES_FILENAME, SCALARS_FILENAME

from .errors import NoData

logger = logging.getLogger(__name__)

POSITION_ENTITY = "position"
"""Entity path of the accumulated point cloud."""

COMPLETE_STATUS = "complete"


@dataclass(frozen=True)
class SampleRecord:
    """One row of a recording, indexed by capture time.

    Attributes:
        recording_name: Name sent by the scanner, e.g. ``5deg-100ms``.
        start_time: Recording start time (identifies a repetition).
        angle_step: Run constant (degrees).
        settle_delay_ms: Run constant (milliseconds).
        capture_time: Seconds since epoch.
        scalars: Scalar values logged at this capture time, by entity path.
        points: Read-only (N, 3) view of the cloud as of this capture time.
    """

    recording_name: str
    start_time: datetime
    angle_step: float
    settle_delay_ms: float
    capture_time: float
    scalars: Dict[str, float]
    points: np.ndarray

    def scalar(self, name: str) -> float:
        """Scalar by entity path, NaN if it was not logged at this time."""
        return self.scalars.get(name, math.nan)

    @property
    def latest_point(self) -> Optional[np.ndarray]:
        """Point added most recently (at or before this capture time)."""
        if len(self.points) == 0:
            return None
        return self.points[-1]


class RecordingQuery:
    """Query handle for one recording directory.

    Attributes:
        path: Recording directory.
        properties: Parsed property sheet.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        with open(self.path / PROPERTIES_FILENAME, "r") as f:
            self.properties: Dict = json.load(f)

    @property
    def recording_name(self) -> str:
        return self.properties.get("recording_name") or self.path.name

    @property
    def status(self) -> str:
        # Recordings without a status were written before status tracking
        return self._run_properties().get("status", COMPLETE_STATUS)

    def _run_properties(self) -> Dict:
        return self.properties.get("properties") or {}

    def _require(self, key: str) -> float:
        value = self._run_properties().get(key)
        if value is None:
            raise NoData(f"Recording {self.path} has no '{key}' property")
        return float(value)

    @property
    def start_time(self) -> datetime:
        start_time = self.properties.get("start_time")
        if not start_time:
            raise NoData(f"Recording {self.path} has no start time")
        return datetime.fromisoformat(start_time)

    @property
    def angle_step(self) -> float:
        return self._require("angle_step")

    @property
    def settle_delay_ms(self) -> float:
        return self._require("settle_delay_ms")

    def is_empty(self) -> bool:
        """True if the recording holds no scalar rows at all."""
        scalars_path = self.path / SCALARS_FILENAME
        if not scalars_path.exists():
            return True
        with open(scalars_path, "r") as f:
            reader = csv.reader(f)
            next(reader, None)
            return next(reader, None) is None

    def _load_scalars(self) -> Dict[float, Dict[str, float]]:
        rows: Dict[float, Dict[str, float]] = {}
        scalars_path = self.path / SCALARS_FILENAME
        if not scalars_path.exists():
            return rows

        with open(scalars_path, "r") as f:
            for row in csv.DictReader(f):
                capture_time = float(row["capture_time"])
                rows.setdefault(capture_time, {})[row["entity_path"]] = float(row["value"])
        return rows

    def _load_points(self) -> Tuple[np.ndarray, np.ndarray]:
        times: List[float] = []
        points: List[List[float]] = []
        points_path = self.path / POINTS_FILENAME

        if points_path.exists():
            with open(points_path, "r") as f:
                for row in csv.DictReader(f):
                    if row["entity_path"] != POSITION_ENTITY:
                        continue
                    times.append(float(row["capture_time"]))
                    points.append([float(row["x"]), float(row["y"]), float(row["z"])])

        point_times = np.array(times, dtype=float)
        cloud = np.array(points, dtype=float).reshape(-1, 3)
        cloud.setflags(write=False)
        return point_times, cloud

    def query(self, batch_size: Optional[int] = None) -> List[List[SampleRecord]]:
        """Read the recording as record batches in capture-time order.

        Args:
            batch_size: Records per batch. None returns a single batch.

        Returns:
            List of record batches.

        Raises:
            NoData: If run properties are missing or the recording has no
                scalar rows.
        """
        angle_step = self.angle_step
        settle_delay_ms = self.settle_delay_ms
        start_time = self.start_time

        scalars = self._load_scalars()
        if not scalars:
            raise NoData(f"Recording {self.path} has no scalar data")
        point_times, cloud = self._load_points()

        records = []
        for capture_time in sorted(scalars):
            # Latest-at: every point logged at or before this capture time
            count = int(np.searchsorted(point_times, capture_time, side="right"))
            records.append(
                SampleRecord(
                    recording_name=self.recording_name,
                    start_time=start_time,
                    angle_step=angle_step,
                    settle_delay_ms=settle_delay_ms,
                    capture_time=capture_time,
                    scalars=scalars[capture_time],
                    points=cloud[:count],
                )
            )

        if not batch_size:
            return [records]
        return [records[i:i + batch_size] for i in range(0, len(records), batch_size)]

    def __repr__(self) -> str:
        return f"RecordingQuery({self.path})"


class BatchStore:
    """A directory of scan recordings.

    Attributes:
        root: Store directory.
        paths: Recording directories, sorted by name.
    """

    def __init__(self, root: Path, paths: List[Path]) -> None:
        self.root = root
        self.paths = paths

    @classmethod
    def open(cls, root: Union[str, Path]) -> "BatchStore":
        """Discover recordings under root.

        Args:
            root: A store directory or a single recording directory.

        Returns:
            BatchStore over every recording found.

        Raises:
            NoData: If root does not exist or holds no recordings.
        """
        root = Path(root)
        if not root.is_dir():
            raise NoData(f"Store directory not found: {root}")

        if (root / PROPERTIES_FILENAME).exists():
            paths = [root]
        else:
            paths = sorted(
                p for p in root.iterdir() if p.is_dir() and (p / PROPERTIES_FILENAME).exists()
            )
        if not paths:
            raise NoData(f"No recordings found in {root}")

        logger.debug(f"Opened store {root} with {len(paths)} recording(s)")
        return cls(root, paths)

    def recordings(self) -> Iterator[RecordingQuery]:
        """Yield one query handle per usable recording.

        Empty recordings and recordings whose scan did not complete are
        skipped with a warning.
        """
        for path in self.paths:
            recording = RecordingQuery(path)
            if recording.is_empty():
                logger.warning(f"Skipping empty recording {path}")
                continue
            if recording.status != COMPLETE_STATUS:
                logger.warning(f"Skipping {recording.status} recording {path}")
                continue
            yield recording

    def query_all(self) -> List[SampleRecord]:
        """All records of all usable recordings, concatenated.

        Raises:
            NoData: If no recording yields any record.
        """
        records: List[SampleRecord] = []
        for recording in self.recordings():
            for batch in recording.query():
                records.extend(batch)
        if not records:
            raise NoData(f"No usable recordings in {self.root}")
        return records
