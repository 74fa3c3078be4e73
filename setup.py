from setuptools import find_packages, setup
import os
from glob import glob

package_name = 'nuitrack_bridge'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['test']),
    data_files=[
        ('share/ament_index/resource_index/packages',
            ['resource/' + package_name]),
        ('share/' + package_name, ['package.xml']),
        (os.path.join('share', package_name, 'launch'), glob('launch/*.launch.py')),
    ],
    install_requires=['setuptools', 'numpy', 'opencv-python'],
    zip_safe=True,
    maintainer='nvidia',
    maintainer_email='nvidia@todo.todo',
    # PyNuitrack comes from the Nuitrack SDK installer, not from PyPI
    description='Nuitrack body tracking -> ROS 2 bridge (color, point cloud, users, skeletons), '
                'requires the PyNuitrack binding from the Nuitrack SDK',
    license='Apache-2.0',
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'nuitrack_bridge_node = nuitrack_bridge.nuitrack_bridge_node:main',
        ],
    },
)
