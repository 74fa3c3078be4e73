#!/usr/bin/env python3
"""
Nuitrack Bridge Node
- Nuitrack 엔진을 고정 주기(기본 30Hz)로 update
- color -> sensor_msgs/Image (rgb8)
- depth -> sensor_msgs/PointCloud2 (nuitrack_link, meters)
- users / skeletons / appeared / disappeared -> nuitrack_msgs
- LicenseNotAcquired 시 전체 세션 리셋, 그 외 오류는 종료
"""

import math
import sys

import rclpy
from rclpy.logging import get_logger
from rclpy.node import Node
from sensor_msgs.msg import Image, PointCloud2
from rcl_interfaces.msg import ParameterDescriptor

from nuitrack_msgs.msg import EventUserUpdate, SkeletonDataArray, UserDataArray

from .assemblers import (
    DEFAULT_FRAME_ID,
    assemble_color,
    assemble_depth,
    assemble_skeletons,
    assemble_users,
)
from .engine import EngineEvent, EngineFatalError
from .presence import PresenceEvent, PresenceEventKind, PresenceTracker
from .pynuitrack_engine import PyNuitrackEngine
from .ros_conversions import (
    cloud_to_pointcloud2,
    color_to_image,
    event_to_msg,
    skeletons_to_msg,
    users_to_msg,
)
from .session import NuitrackSession, UpdateLoop


class NuitrackBridge(Node):
    def __init__(self, engine_factory=None):
        super().__init__('nuitrack_bridge_node')

        # Parameters
        self.declare_parameter('rgb_topic', '/nuitrack/rgb/image_raw')
        self.declare_parameter('points_topic', '/nuitrack/depth/points')
        self.declare_parameter('skeletons_topic', '/nuitrack/skeletons')
        self.declare_parameter('users_topic', '/nuitrack/detected_users')
        self.declare_parameter('appeared_topic', '/nuitrack/event/person_appeared')
        self.declare_parameter('disappeared_topic', '/nuitrack/event/person_disappeared')
        self.declare_parameter('frame_id', DEFAULT_FRAME_ID)
        self.declare_parameter('update_rate', 30.0)
        self.declare_parameter('depth_hfov_deg', 87.0, ParameterDescriptor(
            description='Depth imager HFOV (deg), used only when DepthProvider.Depth2ColorRegistration is false'))
        self.declare_parameter('color_hfov_deg', 69.0, ParameterDescriptor(
            description='Color camera HFOV (deg), the point cloud geometry while DepthProvider.Depth2ColorRegistration is true'))

        rgb_topic = self.get_parameter('rgb_topic').value
        points_topic = self.get_parameter('points_topic').value
        skeletons_topic = self.get_parameter('skeletons_topic').value
        users_topic = self.get_parameter('users_topic').value
        appeared_topic = self.get_parameter('appeared_topic').value
        disappeared_topic = self.get_parameter('disappeared_topic').value
        self.frame_id = self.get_parameter('frame_id').value
        self.update_rate = float(self.get_parameter('update_rate').value)
        depth_hfov = math.radians(float(self.get_parameter('depth_hfov_deg').value))
        color_hfov = math.radians(float(self.get_parameter('color_hfov_deg').value))

        # Publishers (latest value only for the heavy streams)
        self.pub_rgb = self.create_publisher(Image, rgb_topic, 1)
        self.pub_points = self.create_publisher(PointCloud2, points_topic, 1)
        self.pub_skeletons = self.create_publisher(SkeletonDataArray, skeletons_topic, 1)
        self.pub_users = self.create_publisher(UserDataArray, users_topic, 10)
        self.pub_appeared = self.create_publisher(EventUserUpdate, appeared_topic, 10)
        self.pub_disappeared = self.create_publisher(EventUserUpdate, disappeared_topic, 10)

        if engine_factory is None:
            engine_factory = lambda: PyNuitrackEngine(
                depth_hfov=depth_hfov, color_hfov=color_hfov, logger=self.get_logger())

        self.presence = PresenceTracker(self.on_presence_event)
        self.session = NuitrackSession(
            engine_factory,
            self.presence,
            {
                EngineEvent.COLOR_FRAME: self.on_color_frame,
                EngineEvent.DEPTH_FRAME: self.on_depth_frame,
                EngineEvent.USER_FRAME: self.on_user_frame,
                EngineEvent.SKELETON_DATA: self.on_skeleton_data,
            },
        )
        self.loop = UpdateLoop(
            self.session,
            self.create_timer,
            self.destroy_timer,
            1.0 / self.update_rate,
            self.get_logger(),
        )
        self.loop.start()

        self.get_logger().info("=" * 60)
        self.get_logger().info("Nuitrack Bridge Node Started")
        self.get_logger().info(f"  - Color: {rgb_topic}")
        self.get_logger().info(f"  - Points: {points_topic} ({self.frame_id})")
        self.get_logger().info(f"  - Skeletons: {skeletons_topic}")
        self.get_logger().info(f"  - Users: {users_topic}")
        self.get_logger().info(f"  - Events: {appeared_topic}, {disappeared_topic}")
        self.get_logger().info(f"  - Update rate: {self.update_rate} Hz")
        self.get_logger().info("=" * 60)

    def _now(self):
        return self.get_clock().now()

    def on_color_frame(self, frame):
        self.pub_rgb.publish(color_to_image(assemble_color(frame, self._now())))

    def on_depth_frame(self, frame):
        cloud = assemble_depth(frame, self.session.projection, self._now(), self.frame_id)
        self.pub_points.publish(cloud_to_pointcloud2(cloud))

    def on_user_frame(self, frame):
        self.pub_users.publish(users_to_msg(assemble_users(frame)))

    def on_skeleton_data(self, data):
        skeleton_set = assemble_skeletons(data, self._now(), self.frame_id)
        self.pub_skeletons.publish(skeletons_to_msg(skeleton_set))

    def on_presence_event(self, event: PresenceEvent):
        if event.kind is PresenceEventKind.APPEARED:
            self.pub_appeared.publish(event_to_msg(event))
        else:
            self.pub_disappeared.publish(event_to_msg(event))
        self.get_logger().info(
            f"User {event.key_id} {event.kind.value}, tracked users: {list(event.user_ids)}")

    def destroy_node(self):
        self.loop.shutdown()
        return super().destroy_node()


def main(args=None):
    rclpy.init(args=args)
    node = None
    exit_code = 0

    try:
        node = NuitrackBridge()
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    except EngineFatalError as e:
        get_logger('nuitrack_bridge_node').fatal(f"Can not run Nuitrack: {e}")
        exit_code = 1
    finally:
        if node is not None:
            node.destroy_node()
        if rclpy.ok():
            rclpy.shutdown()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
