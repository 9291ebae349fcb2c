import threading
import time

import pytest

from pantilt_scanner.hardware import (
    GuardedActuator,
    GuardedSensor,
    HardwareBus,
    Measurement,
)


class ContendedDevice:
    """Device that notices overlapping transactions."""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self.count = 0
        self._counter_lock = threading.Lock()

    def _transaction(self):
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.001)
        with self._counter_lock:
            self.active -= 1
            self.count += 1

    def set_pulse(self, channel, on_tick, off_tick):
        self._transaction()

    def enable(self):
        self._transaction()

    def trigger(self):
        self._transaction()

    def read(self):
        self._transaction()
        return Measurement.from_raw(20, 1000, 2500)


def test_bus_serializes_servo_and_sensor_transactions():
    device = ContendedDevice()
    bus = HardwareBus()
    actuator = GuardedActuator(device, bus)
    sensor = GuardedSensor(device, bus)

    def drive_servo():
        for i in range(20):
            actuator.set_pulse(14, 0, 300 + i)

    def poll_sensor():
        for _ in range(10):
            sensor.trigger()
            sensor.read()

    threads = [threading.Thread(target=drive_servo), threading.Thread(target=poll_sensor)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert device.count == 40
    assert device.max_active == 1
    assert bus.transactions == 40


def test_bus_transaction_is_reentrant():
    bus = HardwareBus()

    with bus.transaction():
        with bus.transaction():
            pass

    assert bus.transactions == 2


def test_guarded_sensor_passes_measurement_through():
    sensor = GuardedSensor(ContendedDevice(), HardwareBus())

    sensor.enable()
    sensor.trigger()
    assert sensor.read() == Measurement(distance=20.0, signal_strength=1000.0, temperature=25.0)


def test_guarded_actuator_propagates_errors():
    class Broken:
        def set_pulse(self, channel, on_tick, off_tick):
            raise IOError("nack")

    bus = HardwareBus()
    with pytest.raises(IOError):
        GuardedActuator(Broken(), bus).set_pulse(15, 0, 300)

    # another thread can take the bus after the failed transaction
    acquired = []

    def try_lock():
        got = bus._lock.acquire(blocking=False)
        acquired.append(got)
        if got:
            bus._lock.release()

    thread = threading.Thread(target=try_lock)
    thread.start()
    thread.join()
    assert acquired == [True]


def test_raw_temperature_is_hundredths_of_a_degree():
    measurement = Measurement.from_raw(123, 4567, 3125)

    assert measurement.distance == 123.0
    assert measurement.signal_strength == 4567.0
    assert measurement.temperature == pytest.approx(31.25)
