"""
核心层：数据模型、错误类型、视口与位姿

地图相关组件见 :mod:`mapconsole.core.map_module`。
"""

from .errors import AssetLoadError, CoordinateConversionError, MapConsoleError, MapDataError
from .models import (
    MapMetadata,
    MapSummary,
    NavPoint,
    NavPointType,
    OccupancyGrid,
    RoadSegment,
    RobotPose,
    SprayParams,
    Vec3,
    ViewState,
)

__all__ = [
    "MapConsoleError",
    "MapDataError",
    "CoordinateConversionError",
    "AssetLoadError",
    "Vec3",
    "MapMetadata",
    "MapSummary",
    "OccupancyGrid",
    "NavPoint",
    "NavPointType",
    "SprayParams",
    "RoadSegment",
    "RobotPose",
    "ViewState",
]
