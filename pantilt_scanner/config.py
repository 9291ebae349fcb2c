"""Configuration defaults for the pan/tilt ranging scanner.

This module centralizes the default values used to build a scan rig:
- Servo channel assignment and pulse calibration
- Sweep bounds and scan cadence (angle step, settle delay)
- Fixed hardware response delays
- Recording and terminal output settings

These are *defaults only*. Runtime objects (``ServoCalibration``,
``ScanParameters``) take explicit values at construction time so that rigs
with different calibrations can coexist in one process.
"""

# ============================================================================
# PWM Driver
# ============================================================================

PWM_PRESCALE = 122
"""Prescale value for the 12-bit PWM driver.
Corresponds to a 50 Hz output frequency (20 ms period), the standard
hobby-servo frame rate."""

PWM_TICKS_PER_PERIOD = 4096
"""Number of ticks in one PWM period (12-bit counter).
At 50 Hz one tick is ~4.88 µs, so 1 ms of pulse width is ~205 ticks."""


# ============================================================================
# Servo Channels
# ============================================================================

BOTTOM_SERVO_CHANNEL = 14
"""PWM channel driving the bottom (pan / yaw) servo."""

TOP_SERVO_CHANNEL = 15
"""PWM channel driving the top (tilt / pitch) servo."""


# ============================================================================
# Servo Calibration (PWM ticks)
# ============================================================================

SERVO_PULSE_MIN = 205
"""Pulse width at the negative end of travel (ticks). ~1000 µs."""

SERVO_PULSE_MAX = 410
"""Pulse width at the positive end of travel (ticks). ~2000 µs."""

BOTTOM_SERVO_PULSE_NEUTRAL = 307
"""Neutral (0°) pulse of the bottom servo (ticks). ~1500 µs."""

TOP_SERVO_PULSE_NEUTRAL = 312
"""Neutral (0°) pulse of the top servo (ticks). ~1525 µs.

The tilt servo sits slightly off-center when mounted, so its neutral pulse
is trimmed independently of the pan servo."""

SERVO_MAX_ANGLE = 45.0
"""Mechanical travel from neutral in either direction (degrees).
Pulse widths between SERVO_PULSE_MIN and SERVO_PULSE_MAX map onto
[-SERVO_MAX_ANGLE, SERVO_MAX_ANGLE]."""

SERVO_REVERSED = True
"""Whether both servos are mounted with reversed orientation.
Reversal flips the sign of the angle→pulse slope around the neutral pulse."""


# ============================================================================
# Sweep Parameters
# ============================================================================

MIN_ANGLE_BOTTOM = -30.0
"""Lower bound of the bottom (yaw) sweep (degrees)."""

MAX_ANGLE_BOTTOM = 30.0
"""Upper bound of the bottom (yaw) sweep (degrees)."""

MIN_ANGLE_TOP = -30.0
"""Lower bound of the top (pitch) sweep (degrees)."""

MAX_ANGLE_TOP = 30.0
"""Upper bound of the top (pitch) sweep (degrees)."""

DEFAULT_ANGLE_STEP = 30.0
"""Default angular increment for both axes (degrees).

This is one of the two parameters under study. Smaller steps give denser
point clouds at the cost of scan time."""

DEFAULT_SETTLE_DELAY_MS = 100
"""Default pause after every servo command (milliseconds).

This is the second parameter under study: too short and the gimbal is still
moving (or ringing) when the sensor fires, too long and scans get slow."""


# ============================================================================
# Hardware Response Delays
# ============================================================================

SENSOR_SETTLE_DELAY_S = 0.02
"""Fixed wait around a triggered sensor read (seconds).
Applied after the trigger and again after the read. Not a study parameter."""

SENSOR_ENABLE_DELAY_S = 0.1
"""Wait after enabling the ranging sensor before the first trigger (seconds)."""

SERVO_HOMING_DELAY_S = 1.0
"""Wait after moving both servos to neutral at start-up and after a scan
(seconds). Gives the gimbal time to finish large moves."""


# ============================================================================
# Simulated Rig
# ============================================================================

SIM_TARGET_DISTANCE = 20.0
"""Distance from the sensor to the flat test surface (centimeters).
The surface is the plane y = SIM_TARGET_DISTANCE."""

SIM_NOISE_STD = 0.0
"""Gaussian range noise of the simulated sensor (centimeters, 1-sigma)."""

SIM_MAX_RANGE = 800.0
"""Reported distance when the simulated beam misses the surface (centimeters)."""

SIM_SIGNAL_STRENGTH = 1200
"""Signal strength reported by the simulated sensor (raw units)."""

SIM_RAW_TEMPERATURE = 2650
"""Raw temperature reported by the simulated sensor (centidegrees)."""


# ============================================================================
# Recording
# ============================================================================

RECORDINGS_DIR = "recordings"
"""Default directory that holds one sub-directory per scan recording."""

APPLICATION_ID = "pantilt-scanner"
"""Application identifier stored with every recording."""


# ============================================================================
# Plot Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary plot color - used for measured points and error series."""

PLOT_BLUE = "#2374f7"
"""Secondary plot color - used for the ground-truth plane and reference lines."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for guides, grids and error bars."""

PLOT_YELLOW_ORANGE = "#ffa726"
"""Accent color for highlighting non-parallel fits."""


# ============================================================================
# Terminal Output
# ============================================================================

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for headline progress messages."""

TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for warnings worth noticing in scan output."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""
