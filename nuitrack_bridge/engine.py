"""
Tracking engine capability surface
- Subsystems, notification kinds, fault kinds
- Raw frame types handed to notification callbacks
- Static engine configuration table
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .geometry import ProjectionModel


class Subsystem(Enum):
    COLOR = "color"
    DEPTH = "depth"
    USER = "user"
    SKELETON = "skeleton"


# advance() order within one tick
TICK_ORDER = (Subsystem.COLOR, Subsystem.DEPTH, Subsystem.USER, Subsystem.SKELETON)


class EngineEvent(Enum):
    COLOR_FRAME = "color_frame"
    DEPTH_FRAME = "depth_frame"
    USER_FRAME = "user_frame"
    SKELETON_DATA = "skeleton_data"
    USER_APPEARED = "user_appeared"
    USER_LOST = "user_lost"


class FaultKind(Enum):
    NONE = "none"
    LICENSE = "license"   # engine alive but refused the operation -> reset
    FATAL = "fatal"       # anything else -> abort


class EngineFatalError(RuntimeError):
    """Unrecoverable engine fault. The process is expected to exit."""

    def __init__(self, detail: str, kind: FaultKind = FaultKind.FATAL):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


# Applied once at session start and again, identically, on every reset.
NUITRACK_CONFIG = (
    # Nuitrack AI skeletonization
    ("Skeletonization.Type", "CNN_HPE"),
    # only track the primary user
    ("Skeletonization.ActiveUsers", "1"),
    # RealSense depth module: 848x480 @ 15 FPS
    ("Realsense2Module.Depth.Preset", "3"),
    ("Realsense2Module.Depth.RawWidth", "848"),
    ("Realsense2Module.Depth.RawHeight", "480"),
    ("Realsense2Module.Depth.ProcessWidth", "848"),
    ("Realsense2Module.Depth.ProcessHeight", "480"),
    ("Realsense2Module.Depth.LaserPower", "1.0"),
    ("Realsense2Module.Depth.FPS", "15"),
    # RealSense RGB module: 848x480 @ 15 FPS
    ("Realsense2Module.RGB.RawWidth", "848"),
    ("Realsense2Module.RGB.RawHeight", "480"),
    ("Realsense2Module.RGB.ProcessWidth", "848"),
    ("Realsense2Module.RGB.ProcessHeight", "480"),
    ("Realsense2Module.RGB.FPS", "15"),
    ("DepthProvider.Depth2ColorRegistration", "true"),
)


# ============================================================
# Raw frames (views are only valid inside the callback)
# ============================================================
@dataclass
class RawColorFrame:
    width: int
    height: int
    data: np.ndarray  # H x W x 3 uint8, BGR (engine native order)


@dataclass
class RawDepthFrame:
    width: int
    height: int
    data: np.ndarray  # H x W uint16, mm


@dataclass
class User:
    id: int
    real: Tuple[float, float, float]
    proj: Tuple[float, float, float]
    # normalized [0, 1] box corners
    left: float
    top: float
    right: float
    bottom: float
    occlusion: float = 0.0


@dataclass
class UserFrame:
    width: int   # cols
    height: int  # rows
    users: List[User] = field(default_factory=list)


class JointType(IntEnum):
    """Engine joint ids (declaration order is the published order)"""
    HEAD = 1
    NECK = 2
    TORSO = 3
    WAIST = 4
    LEFT_COLLAR = 5
    LEFT_SHOULDER = 6
    LEFT_ELBOW = 7
    LEFT_WRIST = 8
    LEFT_HAND = 9
    RIGHT_COLLAR = 11
    RIGHT_SHOULDER = 12
    RIGHT_ELBOW = 13
    RIGHT_WRIST = 14
    RIGHT_HAND = 15
    LEFT_HIP = 17
    LEFT_KNEE = 18
    LEFT_ANKLE = 19
    RIGHT_HIP = 21
    RIGHT_KNEE = 22
    RIGHT_ANKLE = 23

    @property
    def topic_name(self) -> str:
        return "joint_" + self.name.lower()


@dataclass
class Joint:
    confidence: float
    real: Tuple[float, float, float]
    orientation: Tuple[float, ...]  # 3x3 row-major, 9 entries


@dataclass
class Skeleton:
    id: int
    joints: Dict[JointType, Joint]


@dataclass
class SkeletonData:
    skeletons: List[Skeleton] = field(default_factory=list)


# ============================================================
# Engine capability
# ============================================================
class TrackingEngine(ABC):
    """
    Opaque tracking engine.

    advance() is blocking: every notification due for that subsystem is
    delivered to the connected callbacks, on the calling thread, before it
    returns.
    """

    @abstractmethod
    def init(self) -> FaultKind:
        pass

    @abstractmethod
    def set_config_value(self, key: str, value: str) -> FaultKind:
        pass

    @abstractmethod
    def create(self, subsystem: Subsystem) -> FaultKind:
        pass

    @abstractmethod
    def connect(self, event: EngineEvent, callback: Callable):
        pass

    @abstractmethod
    def run(self) -> FaultKind:
        pass

    @abstractmethod
    def advance(self, subsystem: Subsystem) -> FaultKind:
        pass

    @abstractmethod
    def projection_model(self) -> Optional[ProjectionModel]:
        pass

    @abstractmethod
    def release(self):
        pass

    def last_error(self) -> str:
        """Diagnostic text for the most recent non-NONE fault"""
        return ""
