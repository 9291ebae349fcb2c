"""Simulated pan/tilt rig.

Stand-ins for the PWM driver and the ranging sensor so that scans can run
without hardware:

- ``SimulatedPwmDriver`` records every pulse and can inject a fault.
- ``SimulatedRangingSensor`` reads the pose back from the driver's pulses,
  casts the beam onto a flat wall at y = target_distance and reports the
  (optionally noisy, integer) range like a real time-of-flight sensor.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np

from .config import (
    BOTTOM_SERVO_CHANNEL,
    SIM_MAX_RANGE,
    SIM_NOISE_STD,
    SIM_RAW_TEMPERATURE,
    SIM_SIGNAL_STRENGTH,
    SIM_TARGET_DISTANCE,
    TOP_SERVO_CHANNEL,
)
from .geometry import beam_direction
from .hardware import Measurement
from .servo import ServoCalibration

eps = 1e-12


class SimulatedPwmDriver:
    """In-memory multi-channel PWM driver.

    Attributes:
        writes: Every (channel, on_tick, off_tick) written, in order.
        pulses: Latest off tick per channel.
        fail_after: If set, every write after this many successful writes
            raises IOError.
    """

    def __init__(self, fail_after: Optional[int] = None) -> None:
        self.writes: List[Tuple[int, int, int]] = []
        self.pulses: Dict[int, int] = {}
        self.fail_after = fail_after

    def set_pulse(self, channel: int, on_tick: int, off_tick: int) -> None:
        if self.fail_after is not None and len(self.writes) >= self.fail_after:
            raise IOError(f"PWM write to channel {channel} not acknowledged")
        self.writes.append((channel, on_tick, off_tick))
        self.pulses[channel] = off_tick


class SimulatedRangingSensor:
    """Time-of-flight sensor looking at a flat wall.

    The pose is recovered from the pulses currently applied to the yaw and
    pitch channels, so calibration truncation shows up as real pointing error.

    Attributes:
        driver: PWM driver carrying the gimbal pose.
        calibrations: Calibration per channel, used to turn pulses into angles.
        target_distance: Wall position along +y.
        noise_std: Gaussian range noise (1-sigma).
        quantize: Report integer distances, like the physical sensor.
        fail_after: If set, reads after this many successful reads raise IOError.
        reads: Number of successful reads.
    """

    def __init__(
        self,
        driver: SimulatedPwmDriver,
        calibrations: Dict[int, ServoCalibration],
        yaw_channel: int = BOTTOM_SERVO_CHANNEL,
        pitch_channel: int = TOP_SERVO_CHANNEL,
        target_distance: float = SIM_TARGET_DISTANCE,
        noise_std: float = SIM_NOISE_STD,
        quantize: bool = True,
        seed: Optional[int] = None,
        fail_after: Optional[int] = None,
    ) -> None:
        self.driver = driver
        self.calibrations = calibrations
        self.yaw_channel = yaw_channel
        self.pitch_channel = pitch_channel
        self.target_distance = target_distance
        self.noise_std = max(noise_std, 0.0)
        self.quantize = quantize
        self.rng = np.random.default_rng(seed)
        self.fail_after = fail_after

        self.enabled = False
        self.reads = 0
        self._triggered = False

    def enable(self) -> None:
        self.enabled = True

    def trigger(self) -> None:
        if not self.enabled:
            raise IOError("Sensor triggered before being enabled")
        self._triggered = True

    def read(self) -> Measurement:
        if not self._triggered:
            raise IOError("Sensor read without a pending trigger")
        if self.fail_after is not None and self.reads >= self.fail_after:
            raise IOError("Sensor did not answer on the bus")
        self._triggered = False

        distance = self.true_distance() + self.rng.normal(0.0, self.noise_std)
        distance = min(max(distance, 0.0), SIM_MAX_RANGE)
        if self.quantize:
            distance = round(distance)

        self.reads += 1
        return Measurement.from_raw(distance, SIM_SIGNAL_STRENGTH, SIM_RAW_TEMPERATURE)

    def pose(self) -> Tuple[float, float]:
        """(yaw, pitch) in degrees implied by the applied pulses."""
        return self._angle(self.yaw_channel), self._angle(self.pitch_channel)

    def _angle(self, channel: int) -> float:
        calibration = self.calibrations[channel]
        pulse = self.driver.pulses.get(channel, calibration.intercept)
        return (pulse - calibration.intercept) / calibration.slope

    def true_distance(self) -> float:
        """Noise-free range along the beam to the wall y = target_distance.

        Formula: t = target / dir_y. A beam parallel to or pointing away from
        the wall reports the maximum range.
        """
        yaw, pitch = self.pose()
        direction_y = beam_direction(yaw, pitch)[1]
        if direction_y <= eps:
            return SIM_MAX_RANGE
        return min(self.target_distance / direction_y, SIM_MAX_RANGE)
