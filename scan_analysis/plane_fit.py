"""Plane fitting and accuracy metrics for scanned point clouds.

The scanner looks at a flat wall, so a scan's accuracy is judged by fitting a
plane ``ax + by + cz + d = 0`` to its point cloud and comparing it against the
known wall position (the ground truth plane).

Fit:
    With d fixed to 1, the plane satisfies ``[x y z] · [a b c]^T = -1`` for
    every point. The overdetermined system is solved in the least-squares
    sense through SVD, truncating singular values below SVD_TOLERANCE, so
    degenerate clouds (collinear, coincident) still produce a best-effort
    plane instead of an error.

Metrics (after normalizing the fitted normal to unit length):
    - angle_error_deg: angle between fitted and ground truth normals
    - distance_error: |d - d_gt|
    - y_intercept: where the plane crosses the y axis, -d / b
    - y_intercept_error: |y_intercept - y_gt|
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plane:
    """Plane ax + by + cz + d = 0."""

    a: float
    b: float
    c: float
    d: float

    @property
    def normal(self) -> np.ndarray:
        return np.array([self.a, self.b, self.c], dtype=float)

    def normalized(self) -> "Plane":
        """Scale so that the normal has unit length.

        Planes whose normal is shorter than NORMAL_EPSILON are returned as-is.
        """
        norm = float(np.linalg.norm(self.normal))
        if norm <= NORMAL_EPSILON:
            return self
        return Plane(self.a / norm, self.b / norm, self.c / norm, self.d / norm)

    def y_intercept(self) -> float:
        """y where the plane crosses the y axis (x = z = 0), NaN if parallel to it."""
        if abs(self.b) <= NORMAL_EPSILON:
            return math.nan
        return -self.d / self.b


# ============================================================================
# Fit Configuration
# ============================================================================

GROUND_TRUTH_PLANE = Plane(a=0.0, b=1.0, c=0.0, d=-20.0)
"""The test wall: y = 20 (centimeters in front of the gimbal)."""

SVD_TOLERANCE = 1e-10
"""Singular values at or below this are treated as zero in the least-squares solve."""

NORMAL_EPSILON = 1e-10
"""Normals (and b coefficients) shorter than this are treated as zero."""

PARALLEL_THRESHOLD_DEG = 45.0
"""Fits whose normal deviates more than this from the ground truth are
flagged as non-parallel. Their metrics are still reported."""


@dataclass
class PlaneMetrics:
    """Accuracy of a fitted plane against the ground truth.

    Attributes:
        plane: Fitted plane, normalized.
        angle_error_deg: Angle between the normals (degrees, 0..90).
        distance_error: |d - d_gt| of the normalized planes.
        y_intercept: Fitted plane's y-axis crossing (NaN if parallel to y).
        y_intercept_error: |y_intercept - ground truth y-intercept|.
        is_parallel: angle_error_deg within PARALLEL_THRESHOLD_DEG.
    """

    plane: Plane
    angle_error_deg: float
    distance_error: float
    y_intercept: float
    y_intercept_error: float
    is_parallel: bool


def fit_plane(points) -> Optional[Plane]:
    """Fit a plane to a point cloud by SVD least squares.

    Args:
        points: Array-like of shape (N, 3).

    Returns:
        Raw (unnormalized) plane with d = 1, or None for an empty cloud.

    Raises:
        ValueError: If points is not (N, 3).
    """
    A = np.asarray(points, dtype=float)
    if A.size == 0:
        return None
    if A.ndim != 2 or A.shape[1] != 3:
        raise ValueError(f"Expected (N, 3) points, got shape {A.shape}")

    b = -np.ones(len(A))

    U, s, Vt = np.linalg.svd(A, full_matrices=False)
    s_inv = np.zeros_like(s)
    nonzero = s > SVD_TOLERANCE
    s_inv[nonzero] = 1.0 / s[nonzero]
    solution = Vt.T @ (s_inv * (U.T @ b))

    return Plane(
        a=float(solution[0]),
        b=float(solution[1]),
        c=float(solution[2]),
        d=1.0,
    )


def compute_plane_metrics(
    plane: Plane,
    ground_truth: Plane = GROUND_TRUTH_PLANE,
    parallel_threshold_deg: float = PARALLEL_THRESHOLD_DEG,
) -> PlaneMetrics:
    """Compare a fitted plane with the ground truth.

    Args:
        plane: Fitted plane (any scale).
        ground_truth: Reference plane (any scale).
        parallel_threshold_deg: Largest angle error still considered parallel.

    Returns:
        PlaneMetrics. Never raises: degenerate planes yield NaN or 90° values.
    """
    fitted = plane.normalized()
    truth = ground_truth.normalized()

    # Normals are sign-ambiguous, so compare |cos| clamped against rounding
    cos_angle = min(abs(float(np.dot(fitted.normal, truth.normal))), 1.0)
    angle_error_deg = math.degrees(math.acos(cos_angle))

    distance_error = abs(fitted.d - truth.d)

    y_intercept = fitted.y_intercept()
    y_intercept_error = abs(y_intercept - truth.y_intercept())

    return PlaneMetrics(
        plane=fitted,
        angle_error_deg=angle_error_deg,
        distance_error=distance_error,
        y_intercept=y_intercept,
        y_intercept_error=y_intercept_error,
        is_parallel=angle_error_deg <= parallel_threshold_deg,
    )
