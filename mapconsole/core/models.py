# mapconsole/core/models.py
"""
地图查看器数据模型
职责：
1. 地图元数据 / 占据栅格 / 导航点 / 路段 / 机器人位姿 / 视图状态
2. 从宿主传入的 camelCase 字典构造（from_dict）
3. 所有模型不可变，更新时整体替换
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import MapDataError


# --------------------------------------------------------------------------- #
#  基础类型
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class Vec3:
    x: float = 0.0  # m
    y: float = 0.0  # m
    z: float = 0.0  # m

    @classmethod
    def from_dict(cls, data: Union[Mapping[str, Any], Sequence[float]]) -> "Vec3":
        """{x, y, z} 或 (x, y[, z])；z 缺省为 0"""
        if isinstance(data, Mapping):
            return cls(float(data["x"]), float(data["y"]), float(data.get("z", 0.0)))
        values = [float(v) for v in data]
        if len(values) not in (2, 3):
            raise ValueError(f"expected 2 or 3 components, got {len(values)}")
        return cls(*values)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y) and math.isfinite(self.z)


def _positive_int(info: Mapping[str, Any], key: str) -> int:
    raw = info[key]
    if isinstance(raw, bool):
        raise ValueError(f"{key} must be an integer, got {raw!r}")
    value = float(raw)
    if not value.is_integer() or value <= 0:
        raise ValueError(f"{key} must be a positive integer, got {raw!r}")
    return int(value)


# --------------------------------------------------------------------------- #
#  地图
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class MapMetadata:
    """origin 为图像像素 (0, height-1) 左下角在世界坐标系中的位置"""

    width: int  # px
    height: int  # px
    resolution: float  # m/px
    origin: Vec3 = field(default_factory=Vec3)

    def __post_init__(self) -> None:
        for name in ("width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
                raise MapDataError(f"map {name} must be a positive integer, got {value!r}")
        if not isinstance(self.resolution, (int, float)) or not math.isfinite(self.resolution) \
                or self.resolution <= 0:
            raise MapDataError(f"map resolution must be > 0, got {self.resolution!r}")
        if not isinstance(self.origin, Vec3) or not self.origin.is_finite():
            raise MapDataError(f"map origin must be a finite Vec3, got {self.origin!r}")

    @classmethod
    def from_dict(cls, info: Mapping[str, Any]) -> "MapMetadata":
        """接受地图列表项（origin: {x,y,z}）与占据栅格 info（origin: {position: {...}}）"""
        try:
            width = _positive_int(info, "width")
            height = _positive_int(info, "height")
            resolution = float(info["resolution"])
            origin = info["origin"]
            if isinstance(origin, Mapping) and "position" in origin:
                origin = origin["position"]
            origin_vec = Vec3.from_dict(origin)
        except (KeyError, TypeError, ValueError) as e:
            raise MapDataError(f"invalid map metadata: {e!r}") from e
        return cls(width=width, height=height, resolution=resolution, origin=origin_vec)

    @property
    def world_width(self) -> float:
        return self.width * self.resolution

    @property
    def world_height(self) -> float:
        return self.height * self.resolution

    @property
    def cell_count(self) -> int:
        return self.width * self.height

    def __str__(self) -> str:
        return (
            f"MapMetadata(size=({self.width}, {self.height}), resolution={self.resolution}, "
            f"origin=({self.origin.x}, {self.origin.y}))"
        )


@dataclass(frozen=True, slots=True)
class MapSummary:
    """地图数据源列表中的一项"""

    id: str
    name: str
    metadata: MapMetadata
    is_active: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MapSummary":
        if "name" not in data and "id" not in data:
            raise MapDataError(f"map entry without id/name: {data!r}")
        name = str(data.get("name", data.get("id")))
        return cls(
            id=str(data.get("id", name)),
            name=name,
            metadata=MapMetadata.from_dict(data),
            is_active=bool(data.get("isActive", data.get("is_active", False))),
        )


@dataclass(frozen=True, eq=False)
class OccupancyGrid:
    """行优先、第 0 行位于世界坐标系底部；-1 未知，0~100 占据概率"""

    metadata: MapMetadata
    cells: np.ndarray

    @classmethod
    def from_cells(cls, metadata: MapMetadata, cells: Sequence[float]) -> "OccupancyGrid":
        return cls(metadata=metadata, cells=np.asarray(cells).reshape(-1))

    @classmethod
    def from_message(cls, msg: Mapping[str, Any]) -> "OccupancyGrid":
        """{info: {width, height, resolution, origin: {position}}, data: [int8, ...]}"""
        try:
            info = msg["info"]
            data = msg["data"]
        except (KeyError, TypeError) as e:
            raise MapDataError(f"occupancy message missing field: {e!r}") from e
        metadata = MapMetadata.from_dict(info)
        if isinstance(data, (bytes, bytearray)):
            cells = np.frombuffer(bytes(data), dtype=np.int8)
        else:
            try:
                cells = np.asarray(data)
            except ValueError as e:  # 嵌套长度不一
                raise MapDataError(f"occupancy data is not a flat cell list: {e}") from e
        return cls(metadata=metadata, cells=cells.reshape(-1))


# --------------------------------------------------------------------------- #
#  导航图
# --------------------------------------------------------------------------- #
class NavPointType(str, Enum):
    START = "start"
    WAYPOINT = "waypoint"
    END = "end"


@dataclass(frozen=True, slots=True)
class NavPoint:
    id: str
    name: str
    position: Vec3
    type: str = NavPointType.WAYPOINT.value
    order: int = 1  # 模板内唯一，定义路径顺序

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NavPoint":
        order = int(data.get("order", 1))
        if order <= 0:
            raise ValueError(f"nav point order must be positive, got {order}")
        ptype = data.get("type", NavPointType.WAYPOINT.value)
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            position=Vec3.from_dict(data["position"]),
            type=ptype.value if isinstance(ptype, NavPointType) else str(ptype),
            order=order,
        )


@dataclass(frozen=True, slots=True)
class SprayParams:
    pump_status: bool = False
    left_arm_status: str = "close"  # open | close | adjusting
    right_arm_status: str = "close"
    left_valve_status: bool = False
    right_valve_status: bool = False
    arm_height: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SprayParams":
        if not data:
            return cls()
        return cls(
            pump_status=bool(data.get("pumpStatus", False)),
            left_arm_status=str(data.get("leftArmStatus", "close")),
            right_arm_status=str(data.get("rightArmStatus", "close")),
            left_valve_status=bool(data.get("leftValveStatus", False)),
            right_valve_status=bool(data.get("rightValveStatus", False)),
            arm_height=float(data.get("armHeight", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class RoadSegment:
    id: str
    start_point_id: str
    end_point_id: str
    spray_params: SprayParams = field(default_factory=SprayParams)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoadSegment":
        start = data.get("startPointId", data.get("startNavPointId"))
        end = data.get("endPointId", data.get("endNavPointId"))
        if start is None or end is None:
            raise ValueError(f"road segment {data.get('id')!r} missing endpoint ids")
        return cls(
            id=str(data["id"]),
            start_point_id=str(start),
            end_point_id=str(end),
            spray_params=SprayParams.from_dict(data.get("sprayParams")),
        )


# --------------------------------------------------------------------------- #
#  位姿 / 视图
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class RobotPose:
    x: float = 0.0  # m
    y: float = 0.0  # m
    yaw: Optional[float] = None  # rad；仅有位置时为 None

    def __str__(self) -> str:
        yaw = "n/a" if self.yaw is None else f"{self.yaw:.3f}"
        return f"RobotPose<({self.x:.3f}, {self.y:.3f}), yaw={yaw}>"


@dataclass(frozen=True, slots=True)
class ViewState:
    scale: float = 1.0  # 用户缩放倍数，叠加在自适应缩放之上
    offset: Tuple[float, float] = (0.0, 0.0)  # 画布像素平移

    def with_scale(self, scale: float) -> "ViewState":
        return replace(self, scale=scale)

    def with_offset(self, x: float, y: float) -> "ViewState":
        return replace(self, offset=(x, y))
