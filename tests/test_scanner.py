import logging

import numpy as np
import pytest

from conftest import BOTTOM, TOP, RecordingActuator, ScriptedSensor
from pantilt_scanner.errors import ActuatorFault, SensorFault
from pantilt_scanner.geometry import beam_direction, spherical_to_cartesian
from pantilt_scanner.scanner import (
    ScanParameters,
    ScanState,
    estimate_duration,
    sweep_plan,
)

SERPENTINE_30 = [
    (-30.0, -30.0), (-30.0, 0.0), (-30.0, 30.0),
    (0.0, 30.0), (0.0, 0.0), (0.0, -30.0),
    (30.0, -30.0), (30.0, 0.0), (30.0, 30.0),
]


# ============================================================================
# Sweep order
# ============================================================================


def test_sweep_plan_is_serpentine():
    assert list(sweep_plan(-30.0, 30.0, -30.0, 30.0, 30.0)) == SERPENTINE_30


def test_sweep_plan_rows_join_without_drift():
    plan = list(sweep_plan(0.0, 0.3, 0.0, 1.0, 0.1))

    assert len(plan) == 4 * 11
    for row in range(3):
        last_of_row = plan[row * 11 + 10]
        first_of_next = plan[(row + 1) * 11]
        assert last_of_row[1] == first_of_next[1]
    assert {yaw for yaw, _ in plan} == {0.0, 0.1, 0.2, 0.3}


def test_odd_rows_retrace_the_even_row_when_step_leaves_a_remainder():
    plan = list(sweep_plan(-30.0, 30.0, -30.0, 30.0, 25.0))
    rows = [[pitch for _, pitch in plan[i:i + 3]] for i in range(0, len(plan), 3)]

    assert [yaw for yaw, _ in plan[::3]] == [-30.0, -5.0, 20.0]
    assert rows[0] == [-30.0, -5.0, 20.0]
    assert rows[1] == rows[0][::-1]
    assert rows[2] == rows[0]


def test_controller_rows_join_when_step_leaves_a_remainder(make_controller):
    result = make_controller(angle_step=25.0).run()
    pitches = [s.pitch for s in result.samples]

    assert len(pitches) == 9
    assert pitches[2] == pitches[3] == 20.0
    assert pitches[5] == pitches[6] == -30.0
    assert [(s.yaw, s.pitch) for s in result.samples] == list(
        sweep_plan(-30.0, 30.0, -30.0, 30.0, 25.0)
    )


def test_sweep_plan_rejects_non_positive_step():
    with pytest.raises(ValueError):
        list(sweep_plan(-30.0, 30.0, -30.0, 30.0, 0.0))


def test_controller_visits_plan_order(make_controller, recorder):
    result = make_controller().run()

    assert [(s.yaw, s.pitch) for s in result.samples] == SERPENTINE_30


def test_controller_matches_plan_for_fine_steps(make_controller):
    result = make_controller(angle_step=7.5).run()

    assert [(s.yaw, s.pitch) for s in result.samples] == list(
        sweep_plan(-30.0, 30.0, -30.0, 30.0, 7.5)
    )
    assert len(result.samples) == 81


def test_bottom_axis_commanded_once_per_row(make_controller, actuator):
    make_controller().run()

    # construction, three rows, rehome
    assert actuator.channel_writes(BOTTOM) == [300, 225, 300, 375, 300]
    assert actuator.channel_writes(TOP) == [
        300,
        225, 300, 375,
        375, 300, 225,
        225, 300, 375,
        300,
    ]


def test_waits_follow_every_command_and_measurement(make_controller, sleeps):
    make_controller(homing_delay_s=0.5).run()

    assert sleeps.count(0.1) == 3 + 9
    assert sleeps.count(0.02) == 2 * 9
    assert sleeps[-1] == 0.5
    # top command, settle, trigger, wait, read, wait
    assert sleeps[1:4] == [0.1, 0.02, 0.02]


def test_sensor_triggered_before_every_read(make_controller, sensor):
    make_controller().run()

    assert sensor.calls == ["trigger", "read"] * 9


# ============================================================================
# Geometry
# ============================================================================


@pytest.mark.parametrize(
    "yaw, pitch, expected",
    [
        (0.0, 0.0, (0.0, 20.0, 0.0)),
        (90.0, 0.0, (20.0, 0.0, 0.0)),
        (0.0, 90.0, (0.0, 0.0, 20.0)),
        (-90.0, 0.0, (-20.0, 0.0, 0.0)),
    ],
)
def test_spherical_to_cartesian_axes(yaw, pitch, expected):
    assert spherical_to_cartesian(yaw, pitch, 20.0) == pytest.approx(expected, abs=1e-12)


def test_spherical_to_cartesian_preserves_range():
    point = spherical_to_cartesian(23.0, -41.0, 37.5)
    assert np.linalg.norm(point) == pytest.approx(37.5)
    assert np.linalg.norm(beam_direction(23.0, -41.0)) == pytest.approx(1.0)


def test_sample_positions_derive_from_pose_and_distance(make_controller):
    result = make_controller().run()

    for sample in result.samples:
        assert sample.position == pytest.approx(
            spherical_to_cartesian(sample.yaw, sample.pitch, sample.measurement.distance)
        )
    assert result.point_cloud.shape == (9, 3)


# ============================================================================
# Recorder emission
# ============================================================================


def test_run_announces_name_and_properties(make_controller, recorder):
    make_controller().run()

    assert recorder.recording_name == "30deg-100ms"
    assert recorder.properties == {
        "angle_step": 30.0,
        "settle_delay_ms": 100,
        "status": "complete",
    }


def test_each_sample_logs_scalars_then_whole_cloud(make_controller, recorder):
    result = make_controller().run()

    first_sample = [event[0] for event in recorder.events[:7]]
    assert first_sample == [
        "time", "yaw", "pitch", "distance", "signal_strength", "temperature", "position",
    ]

    clouds = recorder.logged("position")
    assert [len(cloud) for cloud in clouds] == list(range(1, 10))
    np.testing.assert_allclose(clouds[-1], result.point_cloud)
    assert recorder.logged("temperature")[0] == pytest.approx(25.0)


def test_capture_times_come_from_clock(make_controller, recorder):
    result = make_controller().run()

    times = [event[1] for event in recorder.events if event[0] == "time"]
    assert times == [1000.0 + 0.25 * i for i in range(9)]
    assert result.elapsed_s == pytest.approx(2.0)


# ============================================================================
# Faults
# ============================================================================


def test_sensor_fault_aborts_and_rehomes(make_controller, actuator, recorder):
    controller = make_controller(sensor=ScriptedSensor(fail_after=4))

    with pytest.raises(SensorFault):
        controller.run()

    assert controller.state is ScanState.ABORTED
    assert len(controller.result.samples) == 4
    assert recorder.properties["status"] == "aborted"
    # no top command after the failing step, then both axes back to neutral
    assert actuator.channel_writes(TOP) == [300, 225, 300, 375, 375, 300, 300]
    assert actuator.writes[-2:] == [(BOTTOM, 0, 300), (TOP, 0, 300)]


def test_actuator_fault_aborts_run(calibration, recorder, sleeps, clock):
    from pantilt_scanner.scanner import ScanController
    from pantilt_scanner.servo import ServoMotor

    # write 4 is the second top command of the first row
    actuator = RecordingActuator(fail_on={4})
    limited = calibration.with_limits(-30.0, 30.0)
    controller = ScanController(
        ServoMotor(actuator, BOTTOM, limited, name="bottom"),
        ServoMotor(actuator, TOP, limited, name="top"),
        ScriptedSensor(),
        recorder,
        ScanParameters(angle_step=30.0, settle_delay_ms=0),
        sleep=sleeps.append,
        clock=clock,
    )

    with pytest.raises(ActuatorFault):
        controller.run()

    assert len(controller.result.samples) == 1
    assert actuator.writes[-2:] == [(BOTTOM, 0, 300), (TOP, 0, 300)]


def test_failed_rehome_never_masks_the_fault(calibration, recorder, sleeps, clock, caplog):
    from pantilt_scanner.scanner import ScanController
    from pantilt_scanner.servo import ServoMotor

    actuator = RecordingActuator(fail_after=4)
    limited = calibration.with_limits(-30.0, 30.0)
    controller = ScanController(
        ServoMotor(actuator, BOTTOM, limited, name="bottom"),
        ServoMotor(actuator, TOP, limited, name="top"),
        ScriptedSensor(),
        recorder,
        ScanParameters(angle_step=30.0, settle_delay_ms=0),
        sleep=sleeps.append,
        clock=clock,
    )

    with caplog.at_level(logging.WARNING):
        with pytest.raises(ActuatorFault, match="top"):
            controller.run()

    assert "Failed to return bottom to neutral" in caplog.text
    assert "Failed to return top to neutral" in caplog.text


def test_controller_runs_only_once(make_controller):
    controller = make_controller()
    controller.run()

    assert controller.state is ScanState.DONE
    with pytest.raises(RuntimeError):
        controller.run()


# ============================================================================
# Parameters
# ============================================================================


def test_scan_parameters_validation_and_name():
    assert ScanParameters(angle_step=2.5, settle_delay_ms=20).recording_name == "2.5deg-20ms"
    assert ScanParameters(angle_step=2.5, settle_delay_ms=20).settle_delay_s == pytest.approx(0.02)

    with pytest.raises(ValueError):
        ScanParameters(angle_step=0.0)
    with pytest.raises(ValueError):
        ScanParameters(angle_step=-5.0)
    with pytest.raises(ValueError):
        ScanParameters(settle_delay_ms=-1)


def test_estimate_duration_counts_every_wait():
    plan = list(sweep_plan(-30.0, 30.0, -30.0, 30.0, 30.0))
    parameters = ScanParameters(angle_step=30.0, settle_delay_ms=100)

    assert estimate_duration(plan, parameters, sensor_delay_s=0.02) == pytest.approx(
        9 * (0.1 + 0.04) + 3 * 0.1
    )
