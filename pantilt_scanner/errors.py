"""Exceptions raised by the pan/tilt scanner.

Two kinds of failure exist during acquisition:

- ``AngleOutOfRange``: a caller or configuration error. Nothing is written to
  the hardware, so the caller can simply pick a valid angle.
- ``HardwareFault`` (``ActuatorFault`` / ``SensorFault``): a transport or device
  failure. These abort the current scan run and are never retried.
"""

from typing import Optional


class ScannerError(Exception):
    """Base class for all scanner errors."""


class AngleOutOfRange(ScannerError, ValueError):
    """Requested servo angle lies outside the configured range.

    Attributes:
        angle: The rejected angle (degrees).
        min_angle: Lower bound of the allowed range (degrees).
        max_angle: Upper bound of the allowed range (degrees).
    """

    def __init__(self, angle: float, min_angle: float, max_angle: float) -> None:
        self.angle = angle
        self.min_angle = min_angle
        self.max_angle = max_angle
        super().__init__(
            f"Provided angle '{angle}' is outside of valid range [{min_angle}, {max_angle}]"
        )


class HardwareFault(ScannerError):
    """A hardware transaction failed. Fatal to the current scan run."""

    def __init__(self, message: str, channel: Optional[int] = None) -> None:
        self.channel = channel
        super().__init__(message)


class ActuatorFault(HardwareFault):
    """The PWM/servo driver rejected or failed a pulse command."""


class SensorFault(HardwareFault):
    """The ranging sensor failed to enable, trigger or deliver a reading."""
