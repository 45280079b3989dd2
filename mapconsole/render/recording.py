# mapconsole/render/recording.py
"""
记录型绘图后端
职责：不真正绘图，只按顺序记录每次调用，供测试断言
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image

from .base import Point


@dataclass(frozen=True)
class DrawCall:
    op: str
    args: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.args[key]


class RecordingRenderer:
    def __init__(self, width: int = 800, height: int = 600) -> None:
        self._size = (width, height)
        self.calls: List[DrawCall] = []

    @property
    def size(self) -> Tuple[int, int]:
        return self._size

    def resize(self, width: int, height: int) -> None:
        self._size = (width, height)

    def clear(self, color: str) -> None:
        # 新的一帧
        self.calls = [DrawCall("clear", {"color": color})]

    def blit_raster(self, bitmap: Image.Image, left: float, top: float, width: float, height: float) -> None:
        self.calls.append(
            DrawCall("blit_raster", {"bitmap": bitmap, "left": left, "top": top, "width": width, "height": height})
        )

    def fill_circle(
        self,
        center: Point,
        radius: float,
        fill: str,
        outline: Optional[str] = None,
        outline_width: int = 0,
    ) -> None:
        self.calls.append(
            DrawCall(
                "fill_circle",
                {"center": center, "radius": radius, "fill": fill, "outline": outline, "outline_width": outline_width},
            )
        )

    def draw_line(self, start: Point, end: Point, color: str, width: int = 1) -> None:
        self.calls.append(DrawCall("draw_line", {"start": start, "end": end, "color": color, "width": width}))

    def draw_text(self, position: Point, text: str, color: str, size: int = 12) -> None:
        self.calls.append(DrawCall("draw_text", {"position": position, "text": text, "color": color, "size": size}))

    # ---- 查询 ----
    def of(self, op: str) -> List[DrawCall]:
        return [c for c in self.calls if c.op == op]
