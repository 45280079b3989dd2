# mapconsole/core/map_module/coordinate_mapper.py
"""
坐标变换
职责：
1. 世界坐标（米）↔ 画布像素，统一使用连续空间 Y 翻转
2. 世界坐标 ↔ 栅格 (col, row)
3. 显示像素 → 画布像素（CSS 尺寸与后备尺寸不同时）
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Tuple

from mapconsole.core.errors import CoordinateConversionError
from mapconsole.core.models import MapMetadata, ViewState

DEFAULT_FIT_FACTOR = 0.8


def _finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


@dataclass(frozen=True)
class WorldPixelMapper:
    """坐标变换（无内部可变状态）

    canvas 的 Y 向下、世界 Y 向上，所有 world↔canvas 变换统一使用连续空间翻转
    ``world_height - (wy - origin.y)``。
    """

    metadata: MapMetadata
    view: ViewState = field(default_factory=ViewState)
    container_width: float = 0.0
    container_height: float = 0.0
    fit_factor: float = DEFAULT_FIT_FACTOR

    # ------------------------------------------------------------------ #
    # 缩放                                                               #
    # ------------------------------------------------------------------ #
    @property
    def fit_scale(self) -> float:
        """刚好容纳整张地图的 px/m，再乘留白系数"""
        meta = self.metadata
        return min(
            self.container_width / meta.world_width,
            self.container_height / meta.world_height,
        ) * self.fit_factor

    @property
    def effective_scale(self) -> float:
        return self.fit_scale * self.view.scale

    def map_rect(self) -> Tuple[float, float, float, float]:
        """缩放后地图在画布中的 (left, top, width, height)，用于贴图"""
        ox, oy = self._canvas_origin()
        scale = self.effective_scale
        return (
            ox + self.view.offset[0],
            oy + self.view.offset[1],
            self.metadata.world_width * scale,
            self.metadata.world_height * scale,
        )

    def _canvas_origin(self) -> Tuple[float, float]:
        scale = self.effective_scale
        return (
            (self.container_width - self.metadata.world_width * scale) / 2,
            (self.container_height - self.metadata.world_height * scale) / 2,
        )

    # ------------------------------------------------------------------ #
    # world ↔ canvas                                                     #
    # ------------------------------------------------------------------ #
    def world_to_canvas(self, wx: float, wy: float) -> Tuple[float, float]:
        meta = self.metadata
        scale = self.effective_scale
        ox, oy = self._canvas_origin()
        rel_x = wx - meta.origin.x
        rel_y = wy - meta.origin.y
        cx = ox + rel_x * scale + self.view.offset[0]
        cy = oy + (meta.world_height - rel_y) * scale + self.view.offset[1]
        if not _finite(cx, cy):
            raise CoordinateConversionError(f"world ({wx}, {wy}) maps to non-finite canvas ({cx}, {cy})")
        return cx, cy

    def canvas_to_world(self, cx: float, cy: float) -> Tuple[float, float]:
        """world_to_canvas 的精确逆变换，仅用于解释点击"""
        meta = self.metadata
        scale = self.effective_scale
        if scale == 0 or not _finite(scale, cx, cy):
            raise CoordinateConversionError(f"cannot invert canvas ({cx}, {cy}) at scale {scale}")
        ox, oy = self._canvas_origin()
        rel_x = (cx - ox - self.view.offset[0]) / scale
        rel_y = meta.world_height - (cy - oy - self.view.offset[1]) / scale
        wx = meta.origin.x + rel_x
        wy = meta.origin.y + rel_y
        if not _finite(wx, wy):
            raise CoordinateConversionError(f"canvas ({cx}, {cy}) maps to non-finite world ({wx}, {wy})")
        return wx, wy

    def display_to_canvas(
        self, px: float, py: float, display_width: float, display_height: float
    ) -> Tuple[float, float]:
        """显示尺寸（CSS 像素）与画布后备尺寸不一致时，先换算到画布像素"""
        if display_width <= 0 or display_height <= 0:
            raise CoordinateConversionError(
                f"display size must be positive, got {display_width}x{display_height}"
            )
        return (
            px * self.container_width / display_width,
            py * self.container_height / display_height,
        )

    # ------------------------------------------------------------------ #
    # world ↔ grid                                                       #
    # ------------------------------------------------------------------ #
    def world_to_grid(self, wx: float, wy: float) -> Tuple[int, int]:
        """世界坐标 → 栅格 (col, row)，row 0 在世界底部；可能越界，调用方用 contains_world 判断"""
        meta = self.metadata
        col = (wx - meta.origin.x) / meta.resolution
        row = (wy - meta.origin.y) / meta.resolution
        if not _finite(col, row):
            raise CoordinateConversionError(f"world ({wx}, {wy}) has no grid cell")
        return math.floor(col), math.floor(row)

    def grid_to_world(self, col: int, row: int) -> Tuple[float, float]:
        """栅格中心的世界坐标"""
        meta = self.metadata
        return (
            meta.origin.x + (col + 0.5) * meta.resolution,
            meta.origin.y + (row + 0.5) * meta.resolution,
        )

    def contains_world(self, wx: float, wy: float) -> bool:
        meta = self.metadata
        return (
            meta.origin.x <= wx < meta.origin.x + meta.world_width
            and meta.origin.y <= wy < meta.origin.y + meta.world_height
        )
