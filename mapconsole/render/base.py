"""绘图能力接口 - 由具体后端实现（Pillow / 记录型测试后端 / 宿主画布）"""

from __future__ import annotations

from typing import Optional, Protocol, Tuple

from PIL import Image

Point = Tuple[float, float]


class Renderer(Protocol):
    """地图引擎只依赖这组最小绘图能力"""

    @property
    def size(self) -> Tuple[int, int]:
        ...

    def resize(self, width: int, height: int) -> None:
        ...

    def clear(self, color: str) -> None:
        ...

    def blit_raster(self, bitmap: Image.Image, left: float, top: float, width: float, height: float) -> None:
        ...

    def fill_circle(
        self,
        center: Point,
        radius: float,
        fill: str,
        outline: Optional[str] = None,
        outline_width: int = 0,
    ) -> None:
        ...

    def draw_line(self, start: Point, end: Point, color: str, width: int = 1) -> None:
        ...

    def draw_text(self, position: Point, text: str, color: str, size: int = 12) -> None:
        """position 为文本中心"""
        ...
