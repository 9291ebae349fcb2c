"""
Pan/tilt gimbal geometry.

This module converts a gimbal pose and a measured range into a point in the
sensor frame.
"""

import math
from typing import Tuple

Point3D = Tuple[float, float, float]


def spherical_to_cartesian(yaw_deg: float, pitch_deg: float, distance: float) -> Point3D:
    """
    Convert a (yaw, pitch, distance) triple into Cartesian coordinates.

    The sensor frame has +y pointing forward along the neutral boresight, +x to
    the right and +z up:
        x = d * cos(pitch) * sin(yaw)
        y = d * cos(pitch) * cos(yaw)
        z = d * sin(pitch)

    Args:
        yaw_deg: Bottom (pan) servo angle in degrees
        pitch_deg: Top (tilt) servo angle in degrees
        distance: Measured range along the beam

    Returns:
        Point3D: (x, y, z) in the same unit as distance

    Example:
        >>> spherical_to_cartesian(0.0, 0.0, 20.0)
        (0.0, 20.0, 0.0)
    """
    yaw = math.radians(yaw_deg)
    pitch = math.radians(pitch_deg)

    x = distance * math.cos(pitch) * math.sin(yaw)
    y = distance * math.cos(pitch) * math.cos(yaw)
    z = distance * math.sin(pitch)

    return x, y, z


def beam_direction(yaw_deg: float, pitch_deg: float) -> Point3D:
    """Unit vector along the sensor beam for a gimbal pose."""
    return spherical_to_cartesian(yaw_deg, pitch_deg, 1.0)
