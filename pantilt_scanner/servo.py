"""Servo motor model for one gimbal axis.

This module converts requested angles into PWM pulse widths using a linear
calibration derived once from two reference points, and enforces the axis'
allowed angular range before anything is written to the hardware.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .errors import ActuatorFault, AngleOutOfRange
from .hardware import Actuator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServoCalibration:
    """Linear angle → pulse mapping for one servo.

    pulse(angle) = slope * angle + intercept

    Attributes:
        slope: Pulse ticks per degree (negative for reversed mounting).
        intercept: Pulse at 0° (the neutral pulse).
        min_angle: Lowest commandable angle (degrees).
        max_angle: Highest commandable angle (degrees).
        reversed: Whether the slope sign was flipped for axis orientation.
    """

    slope: float
    intercept: float
    min_angle: float
    max_angle: float
    reversed: bool = False

    def __post_init__(self) -> None:
        if self.min_angle > self.max_angle:
            raise ValueError(
                f"min_angle ({self.min_angle}) must not exceed max_angle ({self.max_angle})"
            )

    @classmethod
    def from_reference_pairs(
        cls,
        reference_low: Tuple[float, float],
        reference_high: Tuple[float, float],
        min_angle: Optional[float] = None,
        max_angle: Optional[float] = None,
        reversed: bool = False,
    ) -> "ServoCalibration":
        """Derive a calibration from two measured (angle, pulse) pairs.

        Args:
            reference_low: (angle, pulse) at the low reference point.
            reference_high: (angle, pulse) at the high reference point.
            min_angle: Allowed lower bound. Defaults to the low reference angle.
            max_angle: Allowed upper bound. Defaults to the high reference angle.
            reversed: Flip the slope sign around the neutral pulse.

        Returns:
            ServoCalibration for the given references.

        Raises:
            ValueError: If both references share the same angle.
        """
        angle_low, pulse_low = reference_low
        angle_high, pulse_high = reference_high
        if angle_high == angle_low:
            raise ValueError("Reference angles must differ to derive a slope")

        slope = (pulse_high - pulse_low) / (angle_high - angle_low)
        intercept = pulse_high - slope * angle_high
        if reversed:
            slope = -slope

        return cls(
            slope=slope,
            intercept=intercept,
            min_angle=angle_low if min_angle is None else min_angle,
            max_angle=angle_high if max_angle is None else max_angle,
            reversed=reversed,
        )

    @classmethod
    def from_pulse_range(
        cls,
        pulse_min: float,
        pulse_neutral: float,
        pulse_max: float,
        max_angle: float,
        reversed: bool = False,
    ) -> "ServoCalibration":
        """Derive a calibration from the neutral pulse and the travel limits.

        The neutral pulse maps to 0° and pulse_max maps to +max_angle (to
        -max_angle when reversed). Each bound is whichever comes first of
        ±max_angle and the angle at which the pulse limit on that side is
        reached, so an off-center neutral never drives the servo outside
        [pulse_min, pulse_max].

        Args:
            pulse_min: Lowest pulse the servo accepts.
            pulse_neutral: Pulse at 0°.
            pulse_max: Highest pulse the servo accepts.
            max_angle: Travel from neutral in degrees (positive).
            reversed: Flip the slope sign around the neutral pulse.

        Returns:
            ServoCalibration spanning the usable range.
        """
        if max_angle <= 0:
            raise ValueError(f"max_angle must be positive, got {max_angle}")

        slope = (pulse_max - pulse_neutral) / max_angle
        if reversed:
            slope = -slope

        pulse_limit_angles = sorted(
            ((pulse_min - pulse_neutral) / slope, (pulse_max - pulse_neutral) / slope)
        )

        return cls(
            slope=slope,
            intercept=pulse_neutral,
            min_angle=max(-max_angle, pulse_limit_angles[0]),
            max_angle=min(max_angle, pulse_limit_angles[1]),
            reversed=reversed,
        )

    def pulse(self, angle: float) -> float:
        """Pulse width for an angle. No range check."""
        return self.slope * angle + self.intercept

    def with_limits(self, min_angle: float, max_angle: float) -> "ServoCalibration":
        """Narrow the allowed range, e.g. to the bounds of a sweep.

        Raises:
            ValueError: If the new range is not inside the current one.
        """
        if min_angle < self.min_angle or max_angle > self.max_angle:
            raise ValueError(
                f"Limits [{min_angle}, {max_angle}] exceed the servo range "
                f"[{self.min_angle}, {self.max_angle}]"
            )
        return replace(self, min_angle=min_angle, max_angle=max_angle)


class ServoMotor:
    """One gimbal axis driven by a channel of a shared PWM driver.

    The servo does not own the driver: the same ``Actuator`` is injected into
    both axes and each servo addresses it by channel.

    Construction moves the servo to neutral (0°) immediately so a broken
    driver surfaces before any scan starts.

    Attributes:
        actuator: PWM driver shared with the other axis.
        channel: PWM channel of this servo.
        calibration: Angle → pulse mapping and allowed range.
        angle: Last successfully commanded angle (degrees).
    """

    def __init__(
        self,
        actuator: Actuator,
        channel: int,
        calibration: ServoCalibration,
        name: Optional[str] = None,
    ) -> None:
        self.actuator = actuator
        self.channel = channel
        self.calibration = calibration
        self.name = name or f"servo[{channel}]"
        self.angle: Optional[float] = None

        self.set_angle(0.0)

    def get_min_angle(self) -> float:
        return self.calibration.min_angle

    def get_max_angle(self) -> float:
        return self.calibration.max_angle

    def is_angle_allowed(self, angle: float) -> bool:
        """Check whether an angle lies inside [min_angle, max_angle]."""
        return self.calibration.min_angle <= angle <= self.calibration.max_angle

    def pulse_for(self, angle: float) -> float:
        """Pulse the servo would receive for an angle. No range check."""
        return self.calibration.pulse(angle)

    def set_angle(self, angle: float) -> None:
        """Move the servo to an angle.

        Args:
            angle: Target angle in degrees.

        Raises:
            AngleOutOfRange: If the angle is outside the allowed range. No
                pulse is written in that case.
            ActuatorFault: If the PWM driver fails either write.
        """
        if not self.is_angle_allowed(angle):
            raise AngleOutOfRange(angle, self.get_min_angle(), self.get_max_angle())

        pulse = self.pulse_for(angle)
        try:
            self.actuator.set_pulse(self.channel, 0, int(pulse))
        except Exception as e:
            raise ActuatorFault(
                f"Failed setting pulse width {pulse:.1f} on {self.name}: {e}",
                channel=self.channel,
            ) from e

        self.angle = angle
        logger.debug(f"{self.name}: angle={angle:.2f}° pulse={pulse:.1f}")
