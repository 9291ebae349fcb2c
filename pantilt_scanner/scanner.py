"""Boustrophedon pan/tilt scan controller.

This module drives two servo axes and the ranging sensor through a serpentine
sweep and streams every sample to a recorder.

Sweep pattern:
- The bottom (yaw) axis steps monotonically from its minimum to its maximum.
- The top (pitch) axis sweeps up from its minimum on even rows and back down
  over the same angles on odd rows, so each row starts where the previous one
  ended and the gimbal never travels back to the start of a row.

Per sample: command the top axis, wait the settle delay, trigger the sensor,
wait, read, wait, convert (yaw, pitch, distance) to Cartesian, append to the
point cloud, and log the sample together with the whole accumulated cloud.

Any hardware fault aborts the run immediately. Both axes are sent back to
neutral on the way out, whatever ended the sweep.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np

from .config import (
    DEFAULT_ANGLE_STEP,
    DEFAULT_SETTLE_DELAY_MS,
    SENSOR_SETTLE_DELAY_S,
    SERVO_HOMING_DELAY_S,
    TERM_BLUE,
    TERM_RESET,
)
from .errors import AngleOutOfRange, HardwareFault, SensorFault
from .geometry import Point3D, spherical_to_cartesian
from .hardware import Measurement, RangingSensor
from .recorder import Recorder
from .servo import ServoMotor

logger = logging.getLogger(__name__)

ANGLE_DECIMALS = 6
"""Commanded angles are rounded to this many decimals so that
start + n * step lands exactly on the range bounds."""


class ScanState(Enum):
    """States of the sweep state machine."""

    IDLE = "idle"
    SWEEPING_BOTTOM = "sweeping_bottom"
    SWEEPING_TOP = "sweeping_top"
    ADVANCE_BOTTOM = "advance_bottom"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ScanParameters:
    """Scan cadence under study.

    Attributes:
        angle_step: Angular increment for both axes (degrees, positive).
        settle_delay_ms: Pause after every servo command (milliseconds).
    """

    angle_step: float = DEFAULT_ANGLE_STEP
    settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS

    def __post_init__(self) -> None:
        if not self.angle_step > 0:
            raise ValueError(f"angle_step must be positive, got {self.angle_step}")
        if self.settle_delay_ms < 0:
            raise ValueError(f"settle_delay_ms must be >= 0, got {self.settle_delay_ms}")

    @property
    def settle_delay_s(self) -> float:
        return self.settle_delay_ms / 1000.0

    @property
    def recording_name(self) -> str:
        """Name that identifies a recording by its parameters, e.g. ``5deg-100ms``."""
        return f"{self.angle_step:g}deg-{self.settle_delay_ms:g}ms"


@dataclass
class Sample:
    """One scan step: gimbal pose, raw measurement and derived position."""

    yaw: float
    pitch: float
    measurement: Measurement
    position: Point3D
    timestamp: float


@dataclass
class ScanResult:
    """All samples of one completed scan run."""

    parameters: ScanParameters
    start_time: datetime
    samples: List[Sample] = field(default_factory=list)
    end_time: Optional[datetime] = None

    @property
    def point_cloud(self) -> np.ndarray:
        """Accumulated (N, 3) point cloud in sample order."""
        if not self.samples:
            return np.empty((0, 3))
        return np.array([s.position for s in self.samples], dtype=float)

    @property
    def elapsed_s(self) -> float:
        """Wall-clock span between the first and last sample (seconds)."""
        if len(self.samples) < 2:
            return 0.0
        return self.samples[-1].timestamp - self.samples[0].timestamp


def axis_angle(start: float, direction: int, index: int, angle_step: float) -> float:
    """Angle of the index-th step from start, moving in direction (+1 / -1)."""
    return round(start + direction * index * angle_step, ANGLE_DECIMALS)


def last_step_index(min_angle: float, max_angle: float, angle_step: float) -> int:
    """Index of the last grid angle ``min_angle + i*angle_step`` within bounds."""
    index = max(int(math.floor((max_angle - min_angle) / angle_step)), 0)
    while axis_angle(min_angle, 1, index + 1, angle_step) <= max_angle:
        index += 1
    while index > 0 and axis_angle(min_angle, 1, index, angle_step) > max_angle:
        index -= 1
    return index


def row_angle(min_angle: float, last_index: int, row: int, index: int, angle_step: float) -> float:
    """Top angle of the index-th step in a row.

    Even rows walk the grid up from min_angle; odd rows walk the same grid
    points back down, so every row ends where the next one starts.
    """
    grid_index = index if row % 2 == 0 else last_index - index
    return axis_angle(min_angle, 1, grid_index, angle_step)


def sweep_plan(
    min_angle_bottom: float,
    max_angle_bottom: float,
    min_angle_top: float,
    max_angle_top: float,
    angle_step: float,
) -> Iterator[Tuple[float, float]]:
    """Yield the (yaw, pitch) visiting order of a boustrophedon sweep.

    Same rules as ``ScanController``: the bottom axis advances from its
    minimum, the top axis alternates direction every row, and each axis stops
    before the first angle outside its bounds.

    Args:
        min_angle_bottom: Lower bound of the bottom axis (degrees)
        max_angle_bottom: Upper bound of the bottom axis (degrees)
        min_angle_top: Lower bound of the top axis (degrees)
        max_angle_top: Upper bound of the top axis (degrees)
        angle_step: Increment for both axes (degrees, positive)

    Yields:
        (yaw, pitch) pairs in scan order
    """
    if not angle_step > 0:
        raise ValueError(f"angle_step must be positive, got {angle_step}")

    last_top = last_step_index(min_angle_top, max_angle_top, angle_step)
    row = 0
    yaw = axis_angle(min_angle_bottom, 1, row, angle_step)
    while min_angle_bottom <= yaw <= max_angle_bottom:
        for index in range(last_top + 1):
            pitch = row_angle(min_angle_top, last_top, row, index, angle_step)
            if not min_angle_top <= pitch <= max_angle_top:
                break
            yield yaw, pitch
        row += 1
        yaw = axis_angle(min_angle_bottom, 1, row, angle_step)


def estimate_duration(
    plan: List[Tuple[float, float]],
    parameters: ScanParameters,
    sensor_delay_s: float = SENSOR_SETTLE_DELAY_S,
) -> float:
    """Lower bound of a scan's duration from its waits alone (seconds)."""
    rows = len({yaw for yaw, _ in plan})
    per_sample = parameters.settle_delay_s + 2 * sensor_delay_s
    return len(plan) * per_sample + rows * parameters.settle_delay_s


class ScanController:
    """Runs one serpentine scan over a pan/tilt gimbal.

    The controller owns the two servo axes and the live measurement stream.
    The recorder is a shared, write-only sink.

    A controller runs exactly once: build a new one for every repetition.

    Attributes:
        bottom: Pan (yaw) servo axis.
        top: Tilt (pitch) servo axis.
        sensor: Ranging sensor (already enabled).
        recorder: Telemetry sink.
        parameters: Angle step and settle delay for this run.
        state: Current state of the sweep state machine.
        result: Samples collected so far.
    """

    def __init__(
        self,
        bottom: ServoMotor,
        top: ServoMotor,
        sensor: RangingSensor,
        recorder: Recorder,
        parameters: ScanParameters,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        sensor_delay_s: float = SENSOR_SETTLE_DELAY_S,
        homing_delay_s: float = SERVO_HOMING_DELAY_S,
    ) -> None:
        self.bottom = bottom
        self.top = top
        self.sensor = sensor
        self.recorder = recorder
        self.parameters = parameters
        self.sleep = sleep
        self.clock = clock
        self.sensor_delay_s = sensor_delay_s
        self.homing_delay_s = homing_delay_s

        self.state = ScanState.IDLE
        self.result: Optional[ScanResult] = None
        self._points: List[Point3D] = []

    def run(self) -> ScanResult:
        """Run the full sweep.

        Returns:
            ScanResult with every sample in scan order.

        Raises:
            RuntimeError: If the controller already ran.
            HardwareFault: If a servo or the sensor fails. The run stops at
                the failing step; samples up to that point have already been
                sent to the recorder.
        """
        if self.state is not ScanState.IDLE:
            raise RuntimeError(f"ScanController already used (state: {self.state.value})")

        self.result = ScanResult(
            parameters=self.parameters, start_time=datetime.now(timezone.utc)
        )
        self._announce()

        logger.info(
            f"{TERM_BLUE}Starting scan {self.parameters.recording_name}: "
            f"yaw [{self.bottom.get_min_angle()}, {self.bottom.get_max_angle()}], "
            f"pitch [{self.top.get_min_angle()}, {self.top.get_max_angle()}]{TERM_RESET}"
        )

        try:
            self._sweep()
        except HardwareFault as e:
            self.state = ScanState.ABORTED
            self.recorder.send_property("status", "aborted")
            logger.error(
                f"Scan aborted after {len(self.result.samples)} samples: {e}"
            )
            raise
        finally:
            self._rehome()
            self.result.end_time = datetime.now(timezone.utc)

        self.recorder.send_property("status", "complete")
        logger.info(
            f"{TERM_BLUE}Scan complete: {len(self.result.samples)} samples "
            f"in {self.result.elapsed_s:.1f}s{TERM_RESET}"
        )
        return self.result

    def _announce(self) -> None:
        """Send the recording name and run-constant properties."""
        self.recorder.send_recording_name(self.parameters.recording_name)
        self.recorder.send_property("angle_step", self.parameters.angle_step)
        self.recorder.send_property("settle_delay_ms", self.parameters.settle_delay_ms)
        self.recorder.send_property("status", "running")

    def _sweep(self) -> None:
        """Drive the state machine until every row is done."""
        step = self.parameters.angle_step
        min_bottom = self.bottom.get_min_angle()

        row = 0
        angle_bottom = axis_angle(min_bottom, 1, row, step)
        min_top = self.top.get_min_angle()
        last_top = last_step_index(min_top, self.top.get_max_angle(), step)
        top_index = 0
        self.state = ScanState.SWEEPING_BOTTOM

        while self.state is not ScanState.DONE:
            if self.state is ScanState.SWEEPING_BOTTOM:
                if not self.bottom.is_angle_allowed(angle_bottom):
                    self.state = ScanState.DONE
                    continue
                logger.debug(f"Row {row}: yaw={angle_bottom:.2f}°")
                self._command(self.bottom, angle_bottom)

                top_index = 0
                self.state = ScanState.SWEEPING_TOP

            elif self.state is ScanState.SWEEPING_TOP:
                angle_top = row_angle(min_top, last_top, row, top_index, step)
                if top_index > last_top or not self.top.is_angle_allowed(angle_top):
                    self.state = ScanState.ADVANCE_BOTTOM
                    continue
                self._command(self.top, angle_top)
                self._acquire(angle_bottom, angle_top)
                top_index += 1

            elif self.state is ScanState.ADVANCE_BOTTOM:
                row += 1
                angle_bottom = axis_angle(min_bottom, 1, row, step)
                self.state = ScanState.SWEEPING_BOTTOM

    def _command(self, servo: ServoMotor, angle: float) -> None:
        servo.set_angle(angle)
        self.sleep(self.parameters.settle_delay_s)

    def _measure(self) -> Measurement:
        """Trigger the sensor and read one measurement."""
        try:
            self.sensor.trigger()
            self.sleep(self.sensor_delay_s)
            measurement = self.sensor.read()
            self.sleep(self.sensor_delay_s)
        except SensorFault:
            raise
        except Exception as e:
            raise SensorFault(f"Ranging sensor failed: {e}") from e
        return measurement

    def _acquire(self, yaw: float, pitch: float) -> Sample:
        measurement = self._measure()
        position = spherical_to_cartesian(yaw, pitch, measurement.distance)
        self._points.append(position)

        sample = Sample(
            yaw=yaw,
            pitch=pitch,
            measurement=measurement,
            position=position,
            timestamp=self.clock(),
        )
        self.result.samples.append(sample)
        self._emit(sample)
        return sample

    def _emit(self, sample: Sample) -> None:
        """Log one sample plus the whole accumulated point cloud."""
        rec = self.recorder
        rec.set_time(sample.timestamp)
        rec.log("yaw", sample.yaw)
        rec.log("pitch", sample.pitch)
        rec.log("distance", sample.measurement.distance)
        rec.log("signal_strength", sample.measurement.signal_strength)
        rec.log("temperature", sample.measurement.temperature)
        rec.log("position", np.array(self._points, dtype=float))

    def _rehome(self) -> None:
        """Send both axes back to neutral. Best effort, never retried."""
        for servo in (self.bottom, self.top):
            try:
                servo.set_angle(0.0)
            except (HardwareFault, AngleOutOfRange) as e:
                logger.warning(f"Failed to return {servo.name} to neutral: {e}")
        self.sleep(self.homing_delay_s)
