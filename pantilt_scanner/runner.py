#!/usr/bin/env python3
"""
Scan Runner for the Pan/Tilt Ranging Scanner

This module assembles a scan rig (shared bus, PWM driver, ranging sensor and
both servo axes), runs one scan per (angle step, settle delay, repetition)
combination, and writes each run to its own recording directory for offline
analysis with ``scan_analysis``.

Without hardware drivers attached, the rig is built on the simulated PWM
driver and ranging sensor.
"""

import argparse
import itertools
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from pantilt_scanner.config import (
    BOTTOM_SERVO_CHANNEL,
    BOTTOM_SERVO_PULSE_NEUTRAL,
    DEFAULT_ANGLE_STEP,
    DEFAULT_SETTLE_DELAY_MS,
    MAX_ANGLE_BOTTOM,
    MAX_ANGLE_TOP,
    MIN_ANGLE_BOTTOM,
    MIN_ANGLE_TOP,
    RECORDINGS_DIR,
    SENSOR_ENABLE_DELAY_S,
    SERVO_HOMING_DELAY_S,
    SERVO_MAX_ANGLE,
    SERVO_PULSE_MAX,
    SERVO_PULSE_MIN,
    SERVO_REVERSED,
    SIM_NOISE_STD,
    SIM_TARGET_DISTANCE,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
    TOP_SERVO_CHANNEL,
    TOP_SERVO_PULSE_NEUTRAL,
)
from pantilt_scanner.console import setup_logging
from pantilt_scanner.errors import ScannerError, SensorFault
from pantilt_scanner.hardware import (
    Actuator,
    GuardedActuator,
    GuardedSensor,
    HardwareBus,
    RangingSensor,
)
from pantilt_scanner.recorder import CsvRecorder
from pantilt_scanner.scanner import (
    ScanController,
    ScanParameters,
    ScanResult,
    estimate_duration,
    sweep_plan,
)
from pantilt_scanner.servo import ServoCalibration, ServoMotor
from pantilt_scanner.simulation import SimulatedPwmDriver, SimulatedRangingSensor


def default_calibrations(
    min_angle_bottom: float = MIN_ANGLE_BOTTOM,
    max_angle_bottom: float = MAX_ANGLE_BOTTOM,
    min_angle_top: float = MIN_ANGLE_TOP,
    max_angle_top: float = MAX_ANGLE_TOP,
) -> Tuple[ServoCalibration, ServoCalibration]:
    """Build the (bottom, top) calibrations from the config defaults.

    The mechanical range comes from the pulse limits; the sweep bounds narrow
    it to the scanned window.
    """
    bottom = ServoCalibration.from_pulse_range(
        SERVO_PULSE_MIN, BOTTOM_SERVO_PULSE_NEUTRAL, SERVO_PULSE_MAX,
        SERVO_MAX_ANGLE, reversed=SERVO_REVERSED,
    )
    top = ServoCalibration.from_pulse_range(
        SERVO_PULSE_MIN, TOP_SERVO_PULSE_NEUTRAL, SERVO_PULSE_MAX,
        SERVO_MAX_ANGLE, reversed=SERVO_REVERSED,
    )
    return (
        bottom.with_limits(min_angle_bottom, max_angle_bottom),
        top.with_limits(min_angle_top, max_angle_top),
    )


@dataclass
class ScanRig:
    """A ready-to-scan gimbal: both axes at neutral, sensor enabled."""

    bus: HardwareBus
    actuator: GuardedActuator
    sensor: GuardedSensor
    bottom: ServoMotor
    top: ServoMotor


def build_rig(
    actuator: Actuator,
    sensor: RangingSensor,
    bottom_calibration: ServoCalibration,
    top_calibration: ServoCalibration,
    bottom_channel: int = BOTTOM_SERVO_CHANNEL,
    top_channel: int = TOP_SERVO_CHANNEL,
    sleep: Callable[[float], None] = time.sleep,
) -> ScanRig:
    """Put the PWM driver and the sensor behind one bus guard and home both axes.

    Raises:
        ScannerError: If enabling the sensor or the initial move to neutral
            fails. Nothing is retried.
    """
    bus = HardwareBus()
    guarded_actuator = GuardedActuator(actuator, bus)
    guarded_sensor = GuardedSensor(sensor, bus)

    try:
        guarded_sensor.enable()
    except Exception as e:
        raise SensorFault(f"Failed enabling ranging sensor: {e}") from e
    sleep(SENSOR_ENABLE_DELAY_S)

    bottom = ServoMotor(guarded_actuator, bottom_channel, bottom_calibration, name="bottom")
    top = ServoMotor(guarded_actuator, top_channel, top_calibration, name="top")
    sleep(SERVO_HOMING_DELAY_S)

    return ScanRig(
        bus=bus, actuator=guarded_actuator, sensor=guarded_sensor, bottom=bottom, top=top
    )


def build_simulated_rig(
    bottom_calibration: ServoCalibration,
    top_calibration: ServoCalibration,
    target_distance: float = SIM_TARGET_DISTANCE,
    noise_std: float = SIM_NOISE_STD,
    seed: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ScanRig:
    """Build a rig on the simulated PWM driver and ranging sensor."""
    driver = SimulatedPwmDriver()
    sensor = SimulatedRangingSensor(
        driver,
        {BOTTOM_SERVO_CHANNEL: bottom_calibration, TOP_SERVO_CHANNEL: top_calibration},
        target_distance=target_distance,
        noise_std=noise_std,
        seed=seed,
    )
    return build_rig(driver, sensor, bottom_calibration, top_calibration, sleep=sleep)


def run_scan(
    rig: ScanRig,
    parameters: ScanParameters,
    output_dir: str = RECORDINGS_DIR,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> Tuple[ScanResult, Path]:
    """Run one scan into a fresh recording directory.

    Returns:
        (ScanResult, recording directory)

    Raises:
        HardwareFault: If the scan aborts. The recording is kept on disk and
            marked as aborted.
    """
    with CsvRecorder(output_dir) as recorder:
        controller = ScanController(
            rig.bottom, rig.top, rig.sensor, recorder, parameters, sleep=sleep, clock=clock
        )
        result = controller.run()
    return result, recorder.run_dir


def run_campaign(
    rig: ScanRig,
    angle_steps: List[float],
    settle_delays_ms: List[int],
    repetitions: int = 1,
    output_dir: str = RECORDINGS_DIR,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> List[Path]:
    """Scan every (angle step, settle delay) combination `repetitions` times.

    Repetitions of the same combination land in separate recordings; their
    start times keep them apart during analysis.

    Returns:
        Recording directories in the order they were written.

    Raises:
        HardwareFault: On the first aborted scan. Recordings finished before
            it stay on disk.
    """
    combinations = list(itertools.product(angle_steps, settle_delays_ms))
    total = len(combinations) * repetitions
    recordings = []

    for index, ((angle_step, delay_ms), repetition) in enumerate(
        itertools.product(combinations, range(repetitions)), 1
    ):
        parameters = ScanParameters(angle_step=angle_step, settle_delay_ms=delay_ms)
        logging.info(
            f"{TERM_BLUE}[{index}/{total}] {parameters.recording_name} "
            f"repetition {repetition + 1}/{repetitions}{TERM_RESET}"
        )
        _, run_dir = run_scan(rig, parameters, output_dir, sleep=sleep, clock=clock)
        recordings.append(run_dir)

    return recordings


def _parse_list(text: str, cast: Callable[[str], float]) -> List:
    return [cast(v.strip()) for v in text.split(",") if v.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scan a flat target with the pan/tilt ranging scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One scan with the default cadence
  python -m pantilt_scanner

  # Repeatability campaign: 2 steps x 3 delays x 5 repetitions
  python -m pantilt_scanner --angle-step 5,10 --settle-delay-ms 20,50,100 --repetitions 5

  # Print the sweep plan and estimated duration only
  python -m pantilt_scanner --angle-step 2.5 --dry-run
        """,
    )
    parser.add_argument(
        "--angle-step", default=f"{DEFAULT_ANGLE_STEP:g}",
        help=f"Comma-separated angle steps in degrees (default: {DEFAULT_ANGLE_STEP:g})",
    )
    parser.add_argument(
        "--settle-delay-ms", default=str(DEFAULT_SETTLE_DELAY_MS),
        help=f"Comma-separated settle delays in ms (default: {DEFAULT_SETTLE_DELAY_MS})",
    )
    parser.add_argument(
        "--repetitions", type=int, default=1,
        help="Scans per parameter combination (default: 1)",
    )
    parser.add_argument("--min-angle-bottom", type=float, default=MIN_ANGLE_BOTTOM)
    parser.add_argument("--max-angle-bottom", type=float, default=MAX_ANGLE_BOTTOM)
    parser.add_argument("--min-angle-top", type=float, default=MIN_ANGLE_TOP)
    parser.add_argument("--max-angle-top", type=float, default=MAX_ANGLE_TOP)
    parser.add_argument(
        "--output-dir", "-o", default=RECORDINGS_DIR,
        help=f"Directory for recordings (default: {RECORDINGS_DIR})",
    )
    parser.add_argument(
        "--target-distance", type=float, default=SIM_TARGET_DISTANCE,
        help="Distance of the simulated wall in centimeters",
    )
    parser.add_argument(
        "--noise-std", type=float, default=SIM_NOISE_STD,
        help="Range noise of the simulated sensor (1-sigma, centimeters)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for simulated noise")
    parser.add_argument(
        "--no-wait", action="store_true",
        help="Skip all settle waits (simulation only; timing metrics become meaningless)",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Print the sweep plan and estimated duration without scanning",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for ``python -m pantilt_scanner``.

    Returns:
        Exit code (0 for success)
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        angle_steps = _parse_list(args.angle_step, float)
        settle_delays = _parse_list(args.settle_delay_ms, int)
    except ValueError as e:
        logging.error(f"Invalid parameter list: {e}")
        return 1
    if not angle_steps or not settle_delays or args.repetitions < 1:
        logging.error("Need at least one angle step, one settle delay and one repetition")
        return 1

    if args.dry_run:
        try:
            for angle_step, delay_ms in itertools.product(angle_steps, settle_delays):
                parameters = ScanParameters(angle_step=angle_step, settle_delay_ms=delay_ms)
                plan = list(sweep_plan(
                    args.min_angle_bottom, args.max_angle_bottom,
                    args.min_angle_top, args.max_angle_top, angle_step,
                ))
                logging.info(
                    f"{parameters.recording_name}: {len(plan)} samples, "
                    f"≥{estimate_duration(plan, parameters):.1f}s per scan"
                )
        except ValueError as e:
            logging.error(f"Invalid scan parameters: {e}")
            return 1
        return 0

    sleep = (lambda _: None) if args.no_wait else time.sleep

    try:
        bottom_calibration, top_calibration = default_calibrations(
            args.min_angle_bottom, args.max_angle_bottom,
            args.min_angle_top, args.max_angle_top,
        )
        rig = build_simulated_rig(
            bottom_calibration,
            top_calibration,
            target_distance=args.target_distance,
            noise_std=args.noise_std,
            seed=args.seed,
            sleep=sleep,
        )
        recordings = run_campaign(
            rig,
            angle_steps,
            settle_delays,
            repetitions=args.repetitions,
            output_dir=args.output_dir,
            sleep=sleep,
        )
    except KeyboardInterrupt:
        logging.info("\nInterrupted by user.")
        return 1
    except (ScannerError, ValueError) as e:
        logging.error(f"{TERM_ORANGE}Scan failed: {e}{TERM_RESET}")
        if args.verbose:
            raise
        return 1

    logging.info(f"{TERM_BLUE}✓ {len(recordings)} recording(s) saved to {args.output_dir}{TERM_RESET}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
