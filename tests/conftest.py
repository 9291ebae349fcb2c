import itertools
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pantilt_scanner.hardware import Measurement  # noqa: E402
from pantilt_scanner.scanner import ScanController, ScanParameters  # noqa: E402
from pantilt_scanner.servo import ServoCalibration, ServoMotor  # noqa: E402

BOTTOM = 14
TOP = 15


class RecordingActuator:
    """PWM driver fake that records writes and fails on chosen calls."""

    def __init__(self, fail_on=(), fail_after=None):
        self.writes = []
        self.calls = 0
        self.fail_on = set(fail_on)
        self.fail_after = fail_after

    def set_pulse(self, channel, on_tick, off_tick):
        index = self.calls
        self.calls += 1
        if index in self.fail_on or (self.fail_after is not None and index >= self.fail_after):
            raise IOError(f"i2c write {index} failed")
        self.writes.append((channel, on_tick, off_tick))

    def channel_writes(self, channel):
        return [off for ch, _, off in self.writes if ch == channel]


class ScriptedSensor:
    """Ranging sensor fake returning a fixed or scripted sequence of distances."""

    def __init__(self, distances=None, distance=20.0, fail_after=None):
        self.distances = list(distances) if distances is not None else None
        self.distance = distance
        self.fail_after = fail_after
        self.calls = []
        self.reads = 0

    def enable(self):
        self.calls.append("enable")

    def trigger(self):
        self.calls.append("trigger")

    def read(self):
        self.calls.append("read")
        if self.fail_after is not None and self.reads >= self.fail_after:
            raise IOError("no answer from sensor")
        distance = self.distances[self.reads] if self.distances is not None else self.distance
        self.reads += 1
        return Measurement.from_raw(distance, 1000, 2500)


class MemoryRecorder:
    """Recorder fake keeping every call in order."""

    def __init__(self):
        self.events = []
        self.properties = {}
        self.recording_name = None
        self.closed = False
        self._time = None

    def set_time(self, timestamp):
        self._time = timestamp
        self.events.append(("time", timestamp))

    def log(self, entity_path, value):
        self.events.append((entity_path, self._time, np.array(value, dtype=float)))

    def send_property(self, key, value):
        self.properties[key] = value

    def send_recording_name(self, name):
        self.recording_name = name

    def close(self):
        self.closed = True

    def logged(self, entity_path):
        return [value for path, _, value in (e for e in self.events if len(e) == 3) if path == entity_path]


@pytest.fixture
def calibration():
    """Symmetric calibration: 300 at 0°, 2.5 ticks per degree, ±40°."""
    return ServoCalibration.from_reference_pairs((-40.0, 200.0), (40.0, 400.0))


@pytest.fixture
def actuator():
    return RecordingActuator()


@pytest.fixture
def sensor():
    return ScriptedSensor()


@pytest.fixture
def recorder():
    return MemoryRecorder()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def clock():
    return itertools.count(start=1000.0, step=0.25).__next__


@pytest.fixture
def make_controller(calibration, actuator, sensor, recorder, sleeps, clock):
    """Build a controller over ±30° on both axes with fakes everywhere."""

    def _make(angle_step=30.0, settle_delay_ms=100, limits=(-30.0, 30.0), **kwargs):
        limited = calibration.with_limits(*limits)
        bottom = ServoMotor(actuator, BOTTOM, limited, name="bottom")
        top = ServoMotor(actuator, TOP, limited, name="top")
        return ScanController(
            bottom,
            top,
            kwargs.pop("sensor", sensor),
            recorder,
            ScanParameters(angle_step=angle_step, settle_delay_ms=settle_delay_ms),
            sleep=sleeps.append,
            clock=clock,
            **kwargs,
        )

    return _make
