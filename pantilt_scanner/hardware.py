"""Hardware capabilities used by the scanner.

The scanner never talks to registers directly. It depends on two small
capabilities:

- ``Actuator``: a multi-channel PWM driver exposing ``set_pulse``.
- ``RangingSensor``: a single-point distance sensor with ``enable``,
  ``trigger`` and ``read``.

Both servos and the sensor share one physical bus with no arbitration, so
every transaction must be serialized. ``HardwareBus`` owns that lock and the
``GuardedActuator`` / ``GuardedSensor`` wrappers route each call through it.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Protocol


TEMPERATURE_SCALE = 100.0
"""Raw temperature is reported in hundredths of a degree Celsius."""


@dataclass(frozen=True)
class Measurement:
    """One reading from the ranging sensor.

    Attributes:
        distance: Measured distance (sensor length unit, centimeters).
        signal_strength: Return signal amplitude (raw units).
        temperature: Sensor die temperature (degrees Celsius).
    """

    distance: float
    signal_strength: float
    temperature: float

    @classmethod
    def from_raw(
        cls, distance: int, signal_strength: int, raw_temperature: int
    ) -> "Measurement":
        """Build a measurement from raw register values.

        Args:
            distance: Raw distance register value.
            signal_strength: Raw signal strength register value.
            raw_temperature: Raw temperature in hundredths of a degree.

        Returns:
            Measurement with temperature converted to degrees.
        """
        return cls(
            distance=float(distance),
            signal_strength=float(signal_strength),
            temperature=raw_temperature / TEMPERATURE_SCALE,
        )


class Actuator(Protocol):
    """Multi-channel PWM driver."""

    def set_pulse(self, channel: int, on_tick: int, off_tick: int) -> None:
        """Set the on/off tick of one channel. Raises on transport failure."""
        ...


class RangingSensor(Protocol):
    """Triggered single-point ranging sensor."""

    def enable(self) -> None:
        ...

    def trigger(self) -> None:
        ...

    def read(self) -> Measurement:
        ...


class HardwareBus:
    """Mutual exclusion for the shared hardware bus.

    Exactly one transaction may be in flight at a time. The lock is
    re-entrant so a guarded call may itself issue guarded calls.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.transactions = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the bus for the duration of one transaction."""
        with self._lock:
            self.transactions += 1
            yield


class GuardedActuator:
    """Actuator wrapper that serializes every write on a ``HardwareBus``."""

    def __init__(self, actuator: Actuator, bus: HardwareBus) -> None:
        self.actuator = actuator
        self.bus = bus

    def set_pulse(self, channel: int, on_tick: int, off_tick: int) -> None:
        with self.bus.transaction():
            self.actuator.set_pulse(channel, on_tick, off_tick)


class GuardedSensor:
    """Ranging sensor wrapper that serializes every call on a ``HardwareBus``."""

    def __init__(self, sensor: RangingSensor, bus: HardwareBus) -> None:
        self.sensor = sensor
        self.bus = bus

    def enable(self) -> None:
        with self.bus.transaction():
            self.sensor.enable()

    def trigger(self) -> None:
        with self.bus.transaction():
            self.sensor.trigger()

    def read(self) -> Measurement:
        with self.bus.transaction():
            return self.sensor.read()
