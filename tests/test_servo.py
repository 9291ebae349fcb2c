import pytest

from conftest import BOTTOM, RecordingActuator
from pantilt_scanner.config import (
    BOTTOM_SERVO_PULSE_NEUTRAL,
    SERVO_MAX_ANGLE,
    SERVO_PULSE_MAX,
    SERVO_PULSE_MIN,
)
from pantilt_scanner.errors import ActuatorFault, AngleOutOfRange, ScannerError
from pantilt_scanner.servo import ServoCalibration, ServoMotor


def test_construction_moves_to_neutral(calibration, actuator):
    servo = ServoMotor(actuator, BOTTOM, calibration)

    assert actuator.writes == [(BOTTOM, 0, 300)]
    assert servo.angle == 0.0


def test_construction_fails_fast_on_broken_driver(calibration):
    with pytest.raises(ActuatorFault) as excinfo:
        ServoMotor(RecordingActuator(fail_after=0), BOTTOM, calibration)

    assert excinfo.value.channel == BOTTOM
    assert isinstance(excinfo.value.__cause__, IOError)


def test_pulse_follows_linear_calibration(calibration, actuator):
    servo = ServoMotor(actuator, BOTTOM, calibration)

    assert servo.pulse_for(40.0) == pytest.approx(400.0)
    assert servo.pulse_for(-40.0) == pytest.approx(200.0)

    servo.set_angle(10.0)
    assert actuator.writes[-1] == (BOTTOM, 0, 325)
    assert servo.angle == 10.0


@pytest.mark.parametrize("angle", [-40.0001, 40.5, 90.0, -180.0])
def test_out_of_range_angle_rejected_without_write(calibration, actuator, angle):
    servo = ServoMotor(actuator, BOTTOM, calibration)
    writes_before = list(actuator.writes)

    with pytest.raises(AngleOutOfRange) as excinfo:
        servo.set_angle(angle)

    assert actuator.writes == writes_before
    assert servo.angle == 0.0
    assert excinfo.value.angle == angle
    assert excinfo.value.min_angle == -40.0
    assert excinfo.value.max_angle == 40.0


def test_angle_out_of_range_is_a_value_error(calibration, actuator):
    servo = ServoMotor(actuator, BOTTOM, calibration)

    with pytest.raises(ValueError):
        servo.set_angle(60.0)
    with pytest.raises(ScannerError):
        servo.set_angle(60.0)


def test_bounds_are_inclusive(calibration, actuator):
    servo = ServoMotor(actuator, BOTTOM, calibration)

    assert servo.is_angle_allowed(servo.get_min_angle())
    assert servo.is_angle_allowed(servo.get_max_angle())
    servo.set_angle(-40.0)
    servo.set_angle(40.0)
    assert actuator.channel_writes(BOTTOM) == [300, 200, 400]


def test_pulse_is_monotonic_in_angle(calibration):
    angles = [-40.0 + i * 2.5 for i in range(33)]
    pulses = [calibration.pulse(a) for a in angles]
    assert pulses == sorted(pulses)

    flipped = ServoCalibration.from_reference_pairs((-40.0, 200.0), (40.0, 400.0), reversed=True)
    reversed_pulses = [flipped.pulse(a) for a in angles]
    assert reversed_pulses == sorted(reversed_pulses, reverse=True)
    assert flipped.pulse(0.0) == pytest.approx(300.0)


def test_actuator_failure_becomes_actuator_fault(calibration):
    actuator = RecordingActuator(fail_on={1})
    servo = ServoMotor(actuator, BOTTOM, calibration, name="bottom")

    with pytest.raises(ActuatorFault, match="bottom"):
        servo.set_angle(5.0)
    assert servo.angle == 0.0


def test_reference_pairs_need_distinct_angles():
    with pytest.raises(ValueError):
        ServoCalibration.from_reference_pairs((10.0, 300.0), (10.0, 350.0))


@pytest.mark.parametrize("reversed_mount", [False, True])
def test_pulse_range_calibration_stays_within_pulse_limits(reversed_mount):
    calibration = ServoCalibration.from_pulse_range(
        SERVO_PULSE_MIN, BOTTOM_SERVO_PULSE_NEUTRAL, SERVO_PULSE_MAX, SERVO_MAX_ANGLE,
        reversed=reversed_mount,
    )
    end_pulses = [calibration.pulse(calibration.min_angle), calibration.pulse(calibration.max_angle)]

    assert calibration.pulse(0.0) == pytest.approx(BOTTOM_SERVO_PULSE_NEUTRAL)
    assert max(end_pulses) == pytest.approx(SERVO_PULSE_MAX)
    assert min(end_pulses) >= SERVO_PULSE_MIN - 1e-9
    assert -SERVO_MAX_ANGLE <= calibration.min_angle < 0 < calibration.max_angle <= SERVO_MAX_ANGLE


def test_with_limits_narrows_but_never_widens(calibration):
    narrowed = calibration.with_limits(-30.0, 20.0)
    assert (narrowed.min_angle, narrowed.max_angle) == (-30.0, 20.0)
    assert narrowed.slope == calibration.slope

    with pytest.raises(ValueError):
        calibration.with_limits(-45.0, 30.0)
    with pytest.raises(ValueError):
        ServoCalibration(slope=1.0, intercept=0.0, min_angle=10.0, max_angle=-10.0)
