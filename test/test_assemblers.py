import numpy as np
import pytest

from nuitrack_bridge.assemblers import (
    JOINT_NAMES,
    POINT_STEP,
    assemble_color,
    assemble_depth,
    assemble_skeletons,
    assemble_users,
)
from nuitrack_bridge.engine import (
    Joint,
    JointType,
    RawColorFrame,
    RawDepthFrame,
    Skeleton,
    SkeletonData,
    User,
    UserFrame,
)
from nuitrack_bridge.geometry import ProjectionModel, reconstruct_point


IDENTITY = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)
# 90 deg about z
ROT_Z_90 = (0.0, -1.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 1.0)


def _skeleton(user_id, orientation=IDENTITY):
    joints = {}
    # engine delivers joints in arbitrary order
    for i, joint_type in enumerate(reversed(list(JointType))):
        joints[joint_type] = Joint(
            confidence=0.5 + 0.01 * i,
            real=(float(joint_type), 2.0 * joint_type, 3.0 * joint_type),
            orientation=orientation,
        )
    return Skeleton(id=user_id, joints=joints)


def test_color_is_permuted_to_rgb():
    bgr = np.array([[[10, 20, 30], [40, 50, 60]]], dtype=np.uint8)
    frame = RawColorFrame(width=2, height=1, data=bgr)

    img = assemble_color(frame, stamp=123)

    assert img.encoding == "rgb8"
    assert img.width == 2
    assert img.height == 1
    assert img.step == 6
    assert img.stamp == 123
    assert img.data.tolist() == [[[30, 20, 10], [60, 50, 40]]]


def test_color_output_does_not_alias_engine_buffer():
    bgr = np.zeros((2, 2, 3), dtype=np.uint8)
    img = assemble_color(RawColorFrame(2, 2, bgr), stamp=0)

    bgr[:] = 255

    assert int(img.data.max()) == 0


def test_depth_two_pixels_in_raster_order():
    proj = ProjectionModel(width=2, height=1, fx=100.0, fy=100.0, cx=1.0, cy=0.5)
    frame = RawDepthFrame(width=2, height=1, data=np.array([[0, 1000]], dtype=np.uint16))

    cloud = assemble_depth(frame, proj, stamp=7)

    assert cloud.points.shape == (2, 3)
    assert np.allclose(cloud.points[0], reconstruct_point(0, 0, 0.0, proj))
    assert np.allclose(cloud.points[1], reconstruct_point(1, 0, 1000.0, proj))
    assert cloud.points[1][0] == pytest.approx(1.0)


def test_depth_cloud_layout():
    proj = ProjectionModel(width=3, height=2, fx=100.0, fy=100.0, cx=1.5, cy=1.0)
    frame = RawDepthFrame(width=3, height=2, data=np.full((2, 3), 500, dtype=np.uint16))

    cloud = assemble_depth(frame, proj, stamp=0)

    assert cloud.frame_id == "nuitrack_link"
    assert cloud.width == 3
    assert cloud.height == 2
    assert cloud.point_step == POINT_STEP == 16
    assert cloud.row_step == 16 * 3
    assert cloud.is_dense is False


def test_single_skeleton_has_twenty_joints_in_declared_order():
    out = assemble_skeletons(SkeletonData([_skeleton(4)]), stamp=0)

    assert len(out.skeletons) == 1
    record = out.skeletons[0]
    assert record.id == 4
    assert len(JOINT_NAMES) == 20
    assert record.joints == list(JOINT_NAMES)
    assert len(set(record.joints)) == 20
    assert record.joints[0] == "joint_head"
    assert record.joints[-1] == "joint_right_ankle"
    assert len(record.confidences) == len(record.poses) == 20


def test_skeleton_pose_combines_position_and_quaternion():
    out = assemble_skeletons(SkeletonData([_skeleton(1, ROT_Z_90)]), stamp=0)
    record = out.skeletons[0]

    idx = record.joints.index("joint_left_elbow")
    pose = record.poses[idx]
    assert pose.position == (7.0, 14.0, 21.0)
    s = 2 ** -0.5
    assert pose.orientation == pytest.approx((s, 0.0, 0.0, s))


def test_no_skeletons_gives_empty_message():
    out = assemble_skeletons(SkeletonData([]), stamp=0, frame_id="cam")
    assert out.skeletons == []
    assert out.frame_id == "cam"


def test_users_box_scaled_to_pixels():
    user = User(
        id=3,
        real=(100.0, 200.0, 1500.0),
        proj=(0.5, 0.5, 1500.0),
        left=0.25, top=0.1, right=0.75, bottom=0.9,
        occlusion=0.2,
    )
    out = assemble_users(UserFrame(width=640, height=480, users=[user]))

    assert len(out.users) == 1
    record = out.users[0]
    assert record.id == 3
    assert record.x_offset == pytest.approx(160.0)
    assert record.y_offset == pytest.approx(48.0)
    assert record.width == pytest.approx(320.0)
    assert record.height == pytest.approx(384.0)
    assert record.real == (100.0, 200.0, 1500.0)
    assert record.occlusion == pytest.approx(0.2)
