from launch import LaunchDescription
from launch_ros.actions import Node
from launch_ros.parameter_descriptions import ParameterValue
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration


def generate_launch_description():
    """Launch the Nuitrack bridge (color / points / users / skeletons / presence events)"""
    update_rate_arg = DeclareLaunchArgument(
        'update_rate',
        default_value='30.0',
        description='Engine update rate (Hz)'
    )
    frame_id_arg = DeclareLaunchArgument(
        'frame_id',
        default_value='nuitrack_link',
        description='Frame id of the point cloud and skeletons'
    )
    depth_hfov_arg = DeclareLaunchArgument(
        'depth_hfov_deg',
        default_value='87.0',
        description='Depth imager HFOV (deg), used only without Depth2ColorRegistration'
    )
    color_hfov_arg = DeclareLaunchArgument(
        'color_hfov_deg',
        default_value='69.0',
        description='Color camera HFOV (deg), the point cloud geometry with Depth2ColorRegistration'
    )

    nuitrack_bridge_node = Node(
        package='nuitrack_bridge',
        executable='nuitrack_bridge_node',
        name='nuitrack_bridge',
        output='screen',
        parameters=[{
            # typed so that update_rate:=30 still arrives as a double
            'update_rate': ParameterValue(LaunchConfiguration('update_rate'), value_type=float),
            'frame_id': LaunchConfiguration('frame_id'),
            'depth_hfov_deg': ParameterValue(LaunchConfiguration('depth_hfov_deg'), value_type=float),
            'color_hfov_deg': ParameterValue(LaunchConfiguration('color_hfov_deg'), value_type=float),
            'rgb_topic': '/nuitrack/rgb/image_raw',
            'points_topic': '/nuitrack/depth/points',
            'skeletons_topic': '/nuitrack/skeletons',
            'users_topic': '/nuitrack/detected_users',
            'appeared_topic': '/nuitrack/event/person_appeared',
            'disappeared_topic': '/nuitrack/event/person_disappeared',
        }],
    )

    return LaunchDescription([
        update_rate_arg,
        frame_id_arg,
        depth_hfov_arg,
        color_hfov_arg,
        nuitrack_bridge_node,
    ])
