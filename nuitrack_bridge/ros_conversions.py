"""
Outbound records -> ROS 2 messages
"""

import numpy as np
from cv_bridge import CvBridge
from geometry_msgs.msg import Pose
from sensor_msgs.msg import Image, PointCloud2, PointField
from std_msgs.msg import Header

from nuitrack_msgs.msg import (
    EventUserUpdate,
    SkeletonData,
    SkeletonDataArray,
    UserData,
    UserDataArray,
)

from .assemblers import ColorImage, PointCloud, SkeletonSet, UserSet
from .presence import PresenceEvent


_bridge = CvBridge()

XYZ_FIELDS = [
    PointField(name='x', offset=0, datatype=PointField.FLOAT32, count=1),
    PointField(name='y', offset=4, datatype=PointField.FLOAT32, count=1),
    PointField(name='z', offset=8, datatype=PointField.FLOAT32, count=1),
]


def _stamp_to_msg(stamp):
    """rclpy Time -> builtin_interfaces Time (already-converted stamps pass through)"""
    return stamp.to_msg() if hasattr(stamp, 'to_msg') else stamp


def color_to_image(color: ColorImage) -> Image:
    img = _bridge.cv2_to_imgmsg(color.data, encoding=color.encoding)
    img.header.stamp = _stamp_to_msg(color.stamp)
    img.is_bigendian = 0
    img.step = color.step
    return img


def cloud_to_pointcloud2(cloud: PointCloud) -> PointCloud2:
    """xyz float32 + padding float per point, raster order preserved"""
    n = cloud.width * cloud.height
    buf = np.zeros((n, cloud.point_step // 4), dtype=np.float32)
    buf[:, :3] = cloud.points

    header = Header()
    header.stamp = _stamp_to_msg(cloud.stamp)
    header.frame_id = cloud.frame_id

    return PointCloud2(
        header=header,
        height=cloud.height,
        width=cloud.width,
        is_dense=cloud.is_dense,
        is_bigendian=False,
        fields=XYZ_FIELDS,
        point_step=cloud.point_step,
        row_step=cloud.row_step,
        data=buf.tobytes(),
    )


def skeletons_to_msg(skeleton_set: SkeletonSet) -> SkeletonDataArray:
    msg = SkeletonDataArray()
    msg.header.stamp = _stamp_to_msg(skeleton_set.stamp)
    msg.header.frame_id = skeleton_set.frame_id

    for record in skeleton_set.skeletons:
        data = SkeletonData()
        data.id = record.id
        data.joints = list(record.joints)
        data.confidences = [float(c) for c in record.confidences]

        for joint_pose in record.poses:
            pose = Pose()
            pose.position.x, pose.position.y, pose.position.z = joint_pose.position
            (pose.orientation.w, pose.orientation.x,
             pose.orientation.y, pose.orientation.z) = joint_pose.orientation
            data.joint_pose.append(pose)

        msg.skeletons.append(data)

    return msg


def users_to_msg(user_set: UserSet) -> UserDataArray:
    msg = UserDataArray()

    for record in user_set.users:
        user = UserData()
        user.id = record.id
        user.real.x, user.real.y, user.real.z = record.real
        user.proj.x, user.proj.y, user.proj.z = record.proj
        # RegionOfInterest is uint32, truncate like the engine's own int cast
        user.box.x_offset = max(0, int(record.x_offset))
        user.box.y_offset = max(0, int(record.y_offset))
        user.box.width = max(0, int(record.width))
        user.box.height = max(0, int(record.height))
        user.occlusion = record.occlusion
        msg.users.append(user)

    return msg


def event_to_msg(event: PresenceEvent) -> EventUserUpdate:
    msg = EventUserUpdate()
    msg.key_id = event.key_id
    msg.user_ids = list(event.user_ids)
    return msg
