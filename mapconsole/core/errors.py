# mapconsole/core/errors.py
"""
地图子系统错误类型
职责：
1. MapDataError：元数据非法或栅格数量不符 → 地图不可用
2. CoordinateConversionError：坐标换算出现 NaN / Inf → 丢弃该次操作
3. AssetLoadError：栅格获取或图像解码失败 → 空白占位
"""

from __future__ import annotations


class MapConsoleError(Exception):
    """Base class for every error raised by mapconsole."""


class MapDataError(MapConsoleError):
    """Malformed metadata or a grid whose cell count does not match its size."""


class CoordinateConversionError(MapConsoleError):
    """A world/canvas conversion produced NaN or infinity (e.g. zero scale)."""


class AssetLoadError(MapConsoleError):
    """Raster fetch or image decode failed."""
