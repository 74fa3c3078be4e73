"""
Geometry helpers for the Nuitrack bridge
- Depth pixel -> 3D point (robot frame, meters)
- Rotation matrix <-> quaternion
"""

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


# ============================================================
# Projection model
# ============================================================
@dataclass(frozen=True)
class ProjectionModel:
    """Pinhole model of the depth stream (engine native frame: x right, y up, z forward, mm)"""
    width: int
    height: int
    fx: float
    fy: float
    cx: float
    cy: float

    @staticmethod
    def from_output_mode(xres: int, yres: int, hfov: float) -> 'ProjectionModel':
        """Square pixels, principal point at the image centre. hfov in radians."""
        f = xres / (2.0 * math.tan(hfov / 2.0))
        return ProjectionModel(
            width=int(xres),
            height=int(yres),
            fx=f,
            fy=f,
            cx=xres / 2.0,
            cy=yres / 2.0,
        )

    def to_real(self, col: float, row: float, depth_mm: float) -> Tuple[float, float, float]:
        """Projective (col, row, depth) -> engine real-world coordinates in mm"""
        x = (col - self.cx) * depth_mm / self.fx
        y = (self.cy - row) * depth_mm / self.fy
        return x, y, float(depth_mm)


# ============================================================
# Coordinate reconstruction
# ============================================================
def reconstruct_point(col: int, row: int, depth_mm: float,
                      projection: ProjectionModel) -> Tuple[float, float, float]:
    """
    One depth sample -> point in the robot frame (meters)

    Engine frame (x right, y up, z forward) is remapped to
    X forward, Y left, Z up: (z, -x, y) / 1000.
    Zero depth is not filtered and lands on the origin.
    """
    x, y, z = projection.to_real(col, row, depth_mm)
    return z / 1000.0, -x / 1000.0, y / 1000.0


def reconstruct_cloud(depth: np.ndarray, projection: ProjectionModel) -> np.ndarray:
    """
    Full depth image (H x W, mm) -> (H*W, 3) float32 points in raster order

    Point index i corresponds to pixel (row, col) = divmod(i, W).
    """
    depth = np.asarray(depth)
    if depth.ndim != 2:
        raise ValueError(f"depth must be 2-D, got shape {depth.shape}")

    h, w = depth.shape
    rows, cols = np.indices((h, w), dtype=np.float64)
    d = depth.astype(np.float64)

    x = (cols - projection.cx) * d / projection.fx
    y = (projection.cy - rows) * d / projection.fy

    points = np.empty((h * w, 3), dtype=np.float32)
    points[:, 0] = (d / 1000.0).reshape(-1)
    points[:, 1] = (-x / 1000.0).reshape(-1)
    points[:, 2] = (y / 1000.0).reshape(-1)
    return points


# ============================================================
# Orientation
# ============================================================
def rotation_matrix_to_quaternion(matrix: Sequence[float]) -> Tuple[float, float, float, float]:
    """
    3x3 rotation matrix (row-major, 9 entries or 3x3 array) -> unit quaternion (w, x, y, z)

    Branches on the trace and the largest diagonal element so the divisor
    never gets close to zero (Shepperd). The input is used as given, only the
    result is normalized.
    """
    m = np.asarray(matrix, dtype=np.float64).reshape(3, 3)
    m00, m01, m02 = m[0]
    m10, m11, m12 = m[1]
    m20, m21, m22 = m[2]

    trace = m00 + m11 + m22

    if trace > 0.0:
        s = math.sqrt(trace + 1.0) * 2.0  # s = 4w
        w = 0.25 * s
        x = (m21 - m12) / s
        y = (m02 - m20) / s
        z = (m10 - m01) / s
    elif m00 > m11 and m00 > m22:
        s = math.sqrt(1.0 + m00 - m11 - m22) * 2.0  # s = 4x
        w = (m21 - m12) / s
        x = 0.25 * s
        y = (m01 + m10) / s
        z = (m02 + m20) / s
    elif m11 > m22:
        s = math.sqrt(1.0 + m11 - m00 - m22) * 2.0  # s = 4y
        w = (m02 - m20) / s
        x = (m01 + m10) / s
        y = 0.25 * s
        z = (m12 + m21) / s
    else:
        s = math.sqrt(1.0 + m22 - m00 - m11) * 2.0  # s = 4z
        w = (m10 - m01) / s
        x = (m02 + m20) / s
        y = (m12 + m21) / s
        z = 0.25 * s

    norm = math.sqrt(w * w + x * x + y * y + z * z)
    if norm < 1e-12:
        # degenerate (all-zero) input
        return 1.0, 0.0, 0.0, 0.0
    return w / norm, x / norm, y / norm, z / norm


def quaternion_to_rotation_matrix(q: Sequence[float]) -> np.ndarray:
    """Unit quaternion (w, x, y, z) -> 3x3 rotation matrix"""
    w, x, y, z = [float(v) for v in q]
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ])
