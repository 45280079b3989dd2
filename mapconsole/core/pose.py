# mapconsole/core/pose.py
"""
机器人位姿
职责：
1. 把推送通道上的多种位姿消息统一成 RobotPose
   - {position: {x, y}, orientation: {x, y, z, w}}
   - {x, y, theta}
   - Odometry / PoseWithCovarianceStamped: {pose: {pose: {position, orientation}}}
   - PoseStamped: {pose: {position, orientation}}
   - rosbridge 信封: {topic, msg}
2. 只保留最新位姿（覆盖语义，不排队），变化时通知监听器
"""

from __future__ import annotations

import math
import threading
from typing import Any, Callable, List, Mapping, Optional, TypeAlias

from mapconsole.utils.logging import log

from .models import RobotPose


def quaternion_to_yaw(x: float, y: float, z: float, w: float) -> float:
    """先归一化再取绕 Z 轴的偏航角"""
    norm = math.sqrt(x * x + y * y + z * z + w * w)
    if norm == 0 or not math.isfinite(norm):
        raise ValueError(f"degenerate quaternion ({x}, {y}, {z}, {w})")
    x, y, z, w = x / norm, y / norm, z / norm, w / norm
    return math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))


def _orientation_to_yaw(orientation: Any) -> Optional[float]:
    if orientation is None:
        return None
    if isinstance(orientation, (int, float)):
        return float(orientation)
    if not isinstance(orientation, Mapping):
        raise ValueError(f"unsupported orientation: {orientation!r}")
    if "w" in orientation:
        return quaternion_to_yaw(
            float(orientation.get("x", 0.0)),
            float(orientation.get("y", 0.0)),
            float(orientation.get("z", 0.0)),
            float(orientation["w"]),
        )
    for key in ("theta", "yaw"):
        if key in orientation:
            return float(orientation[key])
    raise ValueError(f"orientation without quaternion or angle: {orientation!r}")


def normalize_pose(msg: Mapping[str, Any]) -> RobotPose:
    """任意受支持的位姿消息 → RobotPose；格式不符抛 ValueError"""
    if not isinstance(msg, Mapping):
        raise ValueError(f"pose message must be a mapping, got {type(msg).__name__}")

    # 信封 / 嵌套层层剥开
    body: Mapping[str, Any] = msg
    if "msg" in body and isinstance(body["msg"], Mapping):
        body = body["msg"]
    while "pose" in body and isinstance(body["pose"], Mapping):
        body = body["pose"]

    try:
        if "position" in body:
            pos = body["position"]
            x, y = float(pos["x"]), float(pos["y"])
            yaw = _orientation_to_yaw(body.get("orientation"))
        elif "x" in body and "y" in body:
            x, y = float(body["x"]), float(body["y"])
            raw_yaw = body.get("theta", body.get("yaw"))
            yaw = None if raw_yaw is None else float(raw_yaw)
        else:
            raise ValueError(f"no position in pose message: {msg!r}")
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed pose message: {e!r}") from e

    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValueError(f"non-finite pose position ({x}, {y})")
    if yaw is not None and not math.isfinite(yaw):
        yaw = None
    return RobotPose(x=x, y=y, yaw=yaw)


PoseListener: TypeAlias = Callable[[Optional[RobotPose], RobotPose], None]


class PoseFeed:
    """最新位姿缓存，可被推送线程写入、UI 线程读取"""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._pose: Optional[RobotPose] = None
        self._listeners: List[PoseListener] = []

    # ------------------------------------------------------------------- #
    #  更新入口
    # ------------------------------------------------------------------- #
    def on_message(self, msg: Mapping[str, Any]) -> Optional[RobotPose]:
        """推送回调；无法解析的消息记录后丢弃"""
        try:
            pose = normalize_pose(msg)
        except ValueError as exc:
            log.warning("Dropping pose message: %s", exc)
            return None
        self.publish(pose)
        return pose

    def publish(self, pose: RobotPose) -> None:
        with self._lock:
            old = self._pose
            if pose == old:
                return
            self._pose = pose
            listeners = self._listeners.copy()
        for fn in listeners:
            try:
                fn(old, pose)
            except Exception:  # noqa: BLE001
                log.exception("Pose listener raised")

    def clear(self) -> None:
        with self._lock:
            self._pose = None

    # ------------------------------------------------------------------- #
    #  查询 / 监听器
    # ------------------------------------------------------------------- #
    @property
    def latest(self) -> Optional[RobotPose]:
        with self._lock:
            return self._pose

    def add_listener(self, fn: PoseListener) -> None:
        with self._lock:
            if fn not in self._listeners:
                self._listeners.append(fn)

    def remove_listener(self, fn: PoseListener) -> None:
        with self._lock:
            if fn in self._listeners:
                self._listeners.remove(fn)
