"""
Frame assemblers: one engine frame -> one outbound record
"""

from dataclasses import dataclass, field
from typing import Any, List, Tuple

import cv2
import numpy as np

from .engine import JointType, RawColorFrame, RawDepthFrame, SkeletonData, UserFrame
from .geometry import ProjectionModel, reconstruct_cloud, rotation_matrix_to_quaternion


DEFAULT_FRAME_ID = "nuitrack_link"

# fixed publication order (declaration order, not arrival order)
JOINT_ORDER: Tuple[JointType, ...] = tuple(JointType)
JOINT_NAMES: Tuple[str, ...] = tuple(j.topic_name for j in JOINT_ORDER)

# x, y, z float32 + one padding float
POINT_STEP = 16


# ============================================================
# Outbound records
# ============================================================
@dataclass
class ColorImage:
    stamp: Any
    width: int
    height: int
    step: int
    data: np.ndarray  # H x W x 3 uint8, RGB
    encoding: str = "rgb8"


@dataclass
class PointCloud:
    stamp: Any
    frame_id: str
    width: int
    height: int
    points: np.ndarray  # (H*W, 3) float32, raster order
    point_step: int = POINT_STEP
    row_step: int = 0
    is_dense: bool = False


@dataclass
class JointPose:
    position: Tuple[float, float, float]
    orientation: Tuple[float, float, float, float]  # w, x, y, z


@dataclass
class SkeletonRecord:
    id: int
    joints: List[str] = field(default_factory=list)
    confidences: List[float] = field(default_factory=list)
    poses: List[JointPose] = field(default_factory=list)


@dataclass
class SkeletonSet:
    stamp: Any
    frame_id: str
    skeletons: List[SkeletonRecord] = field(default_factory=list)


@dataclass
class UserRecord:
    id: int
    real: Tuple[float, float, float]
    proj: Tuple[float, float, float]
    x_offset: float
    y_offset: float
    width: float
    height: float
    occlusion: float


@dataclass
class UserSet:
    users: List[UserRecord] = field(default_factory=list)


# ============================================================
# Assemblers
# ============================================================
def assemble_color(frame: RawColorFrame, stamp) -> ColorImage:
    """Engine BGR -> interleaved rgb8. cvtColor allocates, so the engine buffer is not retained."""
    bgr = np.asarray(frame.data, dtype=np.uint8).reshape(frame.height, frame.width, 3)
    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    return ColorImage(
        stamp=stamp,
        width=frame.width,
        height=frame.height,
        step=3 * frame.width,
        data=rgb,
    )


def assemble_depth(frame: RawDepthFrame, projection: ProjectionModel, stamp,
                   frame_id: str = DEFAULT_FRAME_ID) -> PointCloud:
    depth = np.asarray(frame.data).reshape(frame.height, frame.width)
    points = reconstruct_cloud(depth, projection)
    return PointCloud(
        stamp=stamp,
        frame_id=frame_id,
        width=frame.width,
        height=frame.height,
        points=points,
        row_step=POINT_STEP * frame.width,
        is_dense=False,
    )


def assemble_skeletons(data: SkeletonData, stamp,
                       frame_id: str = DEFAULT_FRAME_ID) -> SkeletonSet:
    out = SkeletonSet(stamp=stamp, frame_id=frame_id)

    for skeleton in data.skeletons:
        record = SkeletonRecord(id=int(skeleton.id))

        for joint_type, name in zip(JOINT_ORDER, JOINT_NAMES):
            joint = skeleton.joints[joint_type]
            x, y, z = joint.real
            record.joints.append(name)
            record.confidences.append(float(joint.confidence))
            record.poses.append(JointPose(
                position=(float(x), float(y), float(z)),
                orientation=rotation_matrix_to_quaternion(joint.orientation),
            ))

        out.skeletons.append(record)

    return out


def assemble_users(frame: UserFrame) -> UserSet:
    """Normalized box corners -> pixel offset / size using the frame's cols and rows"""
    out = UserSet()
    width = frame.width
    height = frame.height

    for user in frame.users:
        out.users.append(UserRecord(
            id=int(user.id),
            real=tuple(float(v) for v in user.real),
            proj=tuple(float(v) for v in user.proj),
            x_offset=user.left * width,
            y_offset=user.top * height,
            width=(user.right - user.left) * width,
            height=(user.bottom - user.top) * height,
            occlusion=float(user.occlusion),
        ))

    return out
