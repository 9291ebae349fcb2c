import pytest

from pantilt_scanner.config import BOTTOM_SERVO_CHANNEL, SIM_MAX_RANGE, TOP_SERVO_CHANNEL
from pantilt_scanner.errors import HardwareFault
from pantilt_scanner.runner import build_rig, default_calibrations
from pantilt_scanner.servo import ServoMotor
from pantilt_scanner.simulation import SimulatedPwmDriver, SimulatedRangingSensor


@pytest.fixture
def calibrations():
    bottom, top = default_calibrations()
    return {BOTTOM_SERVO_CHANNEL: bottom, TOP_SERVO_CHANNEL: top}


def make_sensor(calibrations, **kwargs):
    driver = SimulatedPwmDriver()
    sensor = SimulatedRangingSensor(driver, calibrations, quantize=False, **kwargs)
    bottom = ServoMotor(driver, BOTTOM_SERVO_CHANNEL, calibrations[BOTTOM_SERVO_CHANNEL])
    top = ServoMotor(driver, TOP_SERVO_CHANNEL, calibrations[TOP_SERVO_CHANNEL])
    sensor.enable()
    return sensor, bottom, top


def test_neutral_pose_reads_target_distance(calibrations):
    sensor, _, _ = make_sensor(calibrations, target_distance=20.0)

    sensor.trigger()
    measurement = sensor.read()

    assert sensor.pose() == pytest.approx((0.0, 0.0))
    assert measurement.distance == pytest.approx(20.0)
    assert measurement.temperature == pytest.approx(26.5)


def test_oblique_beam_reads_longer_range(calibrations):
    sensor, bottom, top = make_sensor(calibrations, target_distance=20.0)
    bottom.set_angle(30.0)
    top.set_angle(-30.0)

    yaw, pitch = sensor.pose()
    assert yaw == pytest.approx(30.0, abs=0.5)
    assert pitch == pytest.approx(-30.0, abs=0.5)
    assert sensor.true_distance() == pytest.approx(20.0 / 0.75, rel=0.02)


def test_quantized_noisy_reads_are_integers(calibrations):
    driver = SimulatedPwmDriver()
    sensor = SimulatedRangingSensor(driver, calibrations, noise_std=2.0, seed=3)
    sensor.enable()

    readings = []
    for _ in range(20):
        sensor.trigger()
        readings.append(sensor.read().distance)

    assert all(r == int(r) for r in readings)
    assert len(set(readings)) > 1
    assert all(0.0 <= r <= SIM_MAX_RANGE for r in readings)


def test_protocol_misuse_raises_io_errors(calibrations):
    sensor = SimulatedRangingSensor(SimulatedPwmDriver(), calibrations)

    with pytest.raises(IOError):
        sensor.trigger()

    sensor.enable()
    with pytest.raises(IOError):
        sensor.read()


def test_injected_faults(calibrations):
    driver = SimulatedPwmDriver(fail_after=1)
    driver.set_pulse(14, 0, 300)
    with pytest.raises(IOError):
        driver.set_pulse(14, 0, 301)
    assert driver.pulses == {14: 300}

    sensor, _, _ = make_sensor(calibrations, fail_after=1)
    sensor.trigger()
    sensor.read()
    sensor.trigger()
    with pytest.raises(IOError):
        sensor.read()


def test_build_rig_reports_sensor_that_cannot_be_enabled(calibrations):
    class DeadSensor:
        def enable(self):
            raise IOError("no ack")

    with pytest.raises(HardwareFault, match="enabling"):
        build_rig(
            SimulatedPwmDriver(),
            DeadSensor(),
            calibrations[BOTTOM_SERVO_CHANNEL],
            calibrations[TOP_SERVO_CHANNEL],
            sleep=lambda _: None,
        )
