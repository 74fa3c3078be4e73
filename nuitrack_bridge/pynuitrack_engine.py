"""
TrackingEngine over the PyNuitrack binding

PyNuitrack is a polling API (update() then get_*()), so this adapter
- refreshes the vendor data once per tick (first advance after every subsystem was consumed)
- turns each get_*() result into the raw frame types and fires the connected callbacks
- derives appeared / lost notifications from the user label map
"""

import math
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import numpy as np

from .engine import (
    TICK_ORDER,
    EngineEvent,
    FaultKind,
    Joint,
    JointType,
    RawColorFrame,
    RawDepthFrame,
    Skeleton,
    SkeletonData,
    Subsystem,
    TrackingEngine,
    User,
    UserFrame,
)
from .geometry import ProjectionModel


# RealSense D435 horizontal fields of view. With DepthProvider.Depth2ColorRegistration
# the depth map is resampled into the color camera, so the color one applies.
DEFAULT_DEPTH_HFOV = math.radians(87.0)
DEFAULT_COLOR_HFOV = math.radians(69.0)

_IDENTITY = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)


def classify_fault(exc: BaseException) -> FaultKind:
    """LicenseNotAcquired (by type name or message) is recoverable, everything else is not"""
    text = f"{type(exc).__name__} {exc}"
    if "LicenseNotAcquired" in text:
        return FaultKind.LICENSE
    return FaultKind.FATAL


def users_from_labels(labels: np.ndarray, depth: Optional[np.ndarray],
                      projection: Optional[ProjectionModel]) -> List[User]:
    """Per-user box and centroid from a label map (0 = background)"""
    labels = np.asarray(labels)
    h, w = labels.shape[:2]
    users = []

    for user_id in np.unique(labels):
        if user_id == 0:
            continue
        rows, cols = np.nonzero(labels == user_id)
        col_c = float(cols.mean())
        row_c = float(rows.mean())

        z = 0.0
        if depth is not None:
            samples = depth[rows, cols]
            samples = samples[samples > 0]
            if samples.size > 0:
                z = float(np.median(samples))

        real = projection.to_real(col_c, row_c, z) if projection is not None else (0.0, 0.0, z)

        users.append(User(
            id=int(user_id),
            real=real,
            proj=(col_c / w, row_c / h, z),
            left=float(cols.min()) / w,
            top=float(rows.min()) / h,
            right=float(cols.max() + 1) / w,
            bottom=float(rows.max() + 1) / h,
        ))

    return users


class PyNuitrackEngine(TrackingEngine):
    def __init__(self,
                 depth_hfov: float = DEFAULT_DEPTH_HFOV,
                 color_hfov: float = DEFAULT_COLOR_HFOV,
                 logger=None):
        from PyNuitrack import py_nuitrack

        self._nuitrack = py_nuitrack.Nuitrack()
        self._depth_hfov = depth_hfov
        self._color_hfov = color_hfov
        self._logger = logger
        self._warned_orientation = False
        self._callbacks: Dict[EngineEvent, List[Callable]] = defaultdict(list)
        self._config: Dict[str, str] = {}
        self._created = set()
        self._pending = set()
        self._known_users: List[int] = []
        self._depth: Optional[np.ndarray] = None
        self._last_error = ""

    # -------------------- lifecycle --------------------
    def init(self) -> FaultKind:
        return self._guard(self._nuitrack.init)

    def set_config_value(self, key: str, value: str) -> FaultKind:
        self._config[key] = value
        return self._guard(lambda: self._nuitrack.set_config_value(key, value))

    def create(self, subsystem: Subsystem) -> FaultKind:
        # PyNuitrack builds every module at once
        if not self._created:
            fault = self._guard(self._nuitrack.create_modules)
            if fault is not FaultKind.NONE:
                return fault
        self._created.add(subsystem)
        return FaultKind.NONE

    def connect(self, event: EngineEvent, callback: Callable):
        self._callbacks[event].append(callback)

    def run(self) -> FaultKind:
        return self._guard(self._nuitrack.run)

    def release(self):
        try:
            self._nuitrack.release()
        except Exception as e:
            # releasing an engine that never ran is not an error worth surfacing
            self._last_error = f"release: {e}"
        self._callbacks.clear()
        self._created.clear()
        self._pending.clear()
        self._known_users = []

    def last_error(self) -> str:
        return self._last_error

    @property
    def registered(self) -> bool:
        return self._config.get("DepthProvider.Depth2ColorRegistration", "").lower() == "true"

    def projection_model(self) -> Optional[ProjectionModel]:
        """Pinhole model of the stream the depth map is expressed in"""
        stream, hfov = ("RGB", self._color_hfov) if self.registered else ("Depth", self._depth_hfov)
        xres = int(self._config.get(f"Realsense2Module.{stream}.ProcessWidth", 0))
        yres = int(self._config.get(f"Realsense2Module.{stream}.ProcessHeight", 0))
        if xres <= 0 or yres <= 0:
            return None
        return ProjectionModel.from_output_mode(xres, yres, hfov)

    # -------------------- per tick --------------------
    def advance(self, subsystem: Subsystem) -> FaultKind:
        if not self._pending:
            fault = self._guard(self._nuitrack.update)
            if fault is not FaultKind.NONE:
                return fault
            self._pending = set(TICK_ORDER)

        self._pending.discard(subsystem)
        return self._guard(lambda: self._deliver(subsystem))

    def _deliver(self, subsystem: Subsystem):
        if subsystem is Subsystem.COLOR:
            color = self._nuitrack.get_color_data()
            if color is not None and np.size(color) > 0:
                h, w = color.shape[:2]
                self._emit(EngineEvent.COLOR_FRAME, RawColorFrame(w, h, color))

        elif subsystem is Subsystem.DEPTH:
            depth = self._nuitrack.get_depth_data()
            if depth is not None and np.size(depth) > 0:
                self._depth = depth
                h, w = depth.shape[:2]
                self._emit(EngineEvent.DEPTH_FRAME, RawDepthFrame(w, h, depth))

        elif subsystem is Subsystem.USER:
            labels = self._nuitrack.get_user_data()
            if labels is None or np.size(labels) == 0:
                return
            users = users_from_labels(labels, self._depth, self.projection_model())
            self._emit_presence([u.id for u in users])
            h, w = np.asarray(labels).shape[:2]
            self._emit(EngineEvent.USER_FRAME, UserFrame(w, h, users))

        elif subsystem is Subsystem.SKELETON:
            data = self._nuitrack.get_skeleton()
            if data is None:
                return
            skeletons = [self._convert_skeleton(s) for s in data.skeletons]
            self._emit(EngineEvent.SKELETON_DATA, SkeletonData(skeletons))

    def _emit_presence(self, current: List[int]):
        for user_id in [u for u in self._known_users if u not in current]:
            self._emit(EngineEvent.USER_LOST, user_id)
        for user_id in [u for u in current if u not in self._known_users]:
            self._emit(EngineEvent.USER_APPEARED, user_id)
        self._known_users = list(current)

    def _convert_skeleton(self, vendor_skeleton) -> Skeleton:
        joints = {}
        for joint_type in JointType:
            vj = getattr(vendor_skeleton, joint_type.name.lower())
            orientation = getattr(vj, "orientation", None)
            if orientation is None:
                orientation = _IDENTITY
                self._warn_missing_orientation()
            joints[joint_type] = Joint(
                confidence=float(vj.confidence),
                real=tuple(float(v) for v in vj.real),
                orientation=tuple(np.asarray(orientation, dtype=float).reshape(-1)),
            )
        return Skeleton(id=int(vendor_skeleton.user_id), joints=joints)

    def _warn_missing_orientation(self):
        if self._warned_orientation or self._logger is None:
            return
        self._warned_orientation = True
        self._logger.warning("PyNuitrack joints carry no orientation, publishing identity quaternions")

    def _emit(self, event: EngineEvent, payload):
        for callback in self._callbacks[event]:
            callback(payload)

    def _guard(self, fn) -> FaultKind:
        """Run one vendor call and turn a vendor exception into a FaultKind"""
        try:
            fn()
        except Exception as e:
            fault = classify_fault(e)
            self._last_error = f"{type(e).__name__}: {e}"
            return fault
        return FaultKind.NONE
