import math

import numpy as np
import pytest

from nuitrack_bridge.geometry import (
    ProjectionModel,
    quaternion_to_rotation_matrix,
    reconstruct_cloud,
    reconstruct_point,
    rotation_matrix_to_quaternion,
)


def _projection():
    return ProjectionModel(width=4, height=3, fx=500.0, fy=400.0, cx=2.0, cy=1.5)


def _axis_angle(axis, angle):
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    k = np.array([
        [0.0, -axis[2], axis[1]],
        [axis[2], 0.0, -axis[0]],
        [-axis[1], axis[0], 0.0],
    ])
    return np.eye(3) + math.sin(angle) * k + (1.0 - math.cos(angle)) * (k @ k)


def test_from_output_mode_centres_principal_point():
    proj = ProjectionModel.from_output_mode(848, 480, math.radians(90.0))
    assert proj.cx == pytest.approx(424.0)
    assert proj.cy == pytest.approx(240.0)
    assert proj.fx == pytest.approx(424.0)
    assert proj.fy == proj.fx


def test_reconstruct_point_applies_robot_axis_remap():
    proj = _projection()
    col, row, depth = 3, 0, 2000.0
    x, y, z = proj.to_real(col, row, depth)

    out = reconstruct_point(col, row, depth, proj)

    assert out == (z / 1000.0, -x / 1000.0, y / 1000.0)
    # pixel right of centre -> robot right (negative Y), pixel above centre -> up
    assert out[0] == pytest.approx(2.0)
    assert out[1] < 0.0
    assert out[2] > 0.0


def test_reconstruct_point_is_pure():
    proj = _projection()
    assert reconstruct_point(1, 2, 1234.0, proj) == reconstruct_point(1, 2, 1234.0, proj)


def test_zero_depth_reconstructs_to_origin():
    assert reconstruct_point(0, 0, 0.0, _projection()) == (0.0, 0.0, 0.0)


def test_reconstruct_cloud_matches_pointwise_in_raster_order():
    proj = _projection()
    depth = np.arange(12, dtype=np.uint16).reshape(3, 4) * 250

    cloud = reconstruct_cloud(depth, proj)

    assert cloud.shape == (12, 3)
    assert cloud.dtype == np.float32
    for i in range(12):
        row, col = divmod(i, 4)
        expected = reconstruct_point(col, row, float(depth[row, col]), proj)
        assert np.allclose(cloud[i], expected, atol=1e-6)


def test_reconstruct_cloud_rejects_flat_input():
    with pytest.raises(ValueError):
        reconstruct_cloud(np.zeros(5, dtype=np.uint16), _projection())


def test_identity_matrix_gives_identity_quaternion():
    q = rotation_matrix_to_quaternion(np.eye(3).reshape(-1))
    assert q == pytest.approx((1.0, 0.0, 0.0, 0.0))


@pytest.mark.parametrize("axis, angle", [
    ((1, 0, 0), 0.3),
    ((0, 1, 0), -1.2),
    ((0, 0, 1), 2.5),
    ((1, 1, 0), math.pi),        # trace = -1, w = 0
    ((0, 1, 0), math.pi),
    ((0, 0, 1), math.pi - 1e-4),
    ((1, -2, 3), 3.0),
])
def test_quaternion_is_unit_and_round_trips(axis, angle):
    matrix = _axis_angle(axis, angle)

    q = rotation_matrix_to_quaternion(matrix.reshape(-1).tolist())

    assert math.sqrt(sum(v * v for v in q)) == pytest.approx(1.0, abs=1e-5)
    assert np.allclose(quaternion_to_rotation_matrix(q), matrix, atol=1e-5)


def test_quaternion_conversion_is_deterministic():
    matrix = _axis_angle((0.3, -0.4, 0.8), 2.9).reshape(-1).tolist()
    assert rotation_matrix_to_quaternion(matrix) == rotation_matrix_to_quaternion(matrix)


def test_drifted_matrix_still_yields_unit_quaternion():
    matrix = _axis_angle((0, 0, 1), 0.7) * 1.01
    q = rotation_matrix_to_quaternion(matrix)
    assert math.sqrt(sum(v * v for v in q)) == pytest.approx(1.0, abs=1e-9)
