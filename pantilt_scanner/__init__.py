"""Pan/Tilt Scanner - Serpentine Range Scans of a Flat Target

A two-axis servo gimbal carrying a single-point time-of-flight ranging sensor.
Each scan sweeps the gimbal in a serpentine (boustrophedon) pattern, converts
every (yaw, pitch, distance) reading into a 3D point and records the growing
point cloud for offline evaluation by ``scan_analysis``.

## Architecture Overview

### Servo Motor (servo.py)
Linear angle → pulse calibration derived from two reference points.
- Range check before any write (``AngleOutOfRange``)
- Driver failures surface as ``ActuatorFault``
- Moves to neutral on construction

### Scan Controller (scanner.py)
State machine over the two axes.
- Bottom (yaw) axis advances once per row
- Top (pitch) axis reverses direction every row
- Settle delay after every servo command, fixed sensor waits around each read
- Any hardware fault aborts the run; both axes are re-homed on exit

### Hardware Access (hardware.py)
- ``Actuator`` / ``RangingSensor`` capabilities
- ``HardwareBus`` serializes every transaction on the shared bus

### Recording (recorder.py)
- ``CsvRecorder``: one directory per recording with properties, scalars and points

## Modules

- `config.py` - Calibration, sweep bounds, timing and simulation constants
- `errors.py` - Exception hierarchy
- `geometry.py` - Spherical to Cartesian conversion
- `simulation.py` - Simulated PWM driver and ranging sensor
- `runner.py` - Rig assembly, scan campaigns and the command-line interface

## Quick Start

```bash
# One scan with the default cadence
python -m pantilt_scanner

# Repeatability campaign
python -m pantilt_scanner --angle-step 5,10 --settle-delay-ms 20,100 --repetitions 5
```
"""

__version__ = "0.1.0"

from .errors import (
    ActuatorFault,
    AngleOutOfRange,
    HardwareFault,
    ScannerError,
    SensorFault,
)
from .recorder import CsvRecorder
from .scanner import ScanController, ScanParameters, ScanResult
from .servo import ServoCalibration, ServoMotor

__all__ = [
    "ServoCalibration",
    "ServoMotor",
    "ScanController",
    "ScanParameters",
    "ScanResult",
    "CsvRecorder",
    "ScannerError",
    "AngleOutOfRange",
    "HardwareFault",
    "ActuatorFault",
    "SensorFault",
]
