"""Pillow 画布后端：离屏 RGBA 图像，可导出快照"""

from __future__ import annotations

import math
import os
from typing import Dict, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from mapconsole.utils.logging import log

from .base import Point


class PilRenderer:
    """Draw onto an in-memory RGBA image with ImageDraw."""

    def __init__(self, width: int = 800, height: int = 600, background: str = "#f5f5f5") -> None:
        self._background = background
        self._image = Image.new("RGBA", (max(1, width), max(1, height)), background)
        self._draw = ImageDraw.Draw(self._image)
        self._fonts: Dict[int, ImageFont.ImageFont] = {}

    @property
    def size(self) -> Tuple[int, int]:
        return self._image.size

    @property
    def image(self) -> Image.Image:
        return self._image

    def resize(self, width: int, height: int) -> None:
        self._image = Image.new("RGBA", (max(1, width), max(1, height)), self._background)
        self._draw = ImageDraw.Draw(self._image)

    def clear(self, color: str) -> None:
        self._background = color
        self._draw.rectangle((0, 0, self._image.width, self._image.height), fill=color)

    def blit_raster(self, bitmap: Image.Image, left: float, top: float, width: float, height: float) -> None:
        """只缩放可见部分，放大 5 倍时也不会生成整张大图"""
        if width <= 0 or height <= 0:
            return
        cw, ch = self._image.size
        vis_left, vis_top = max(left, 0.0), max(top, 0.0)
        vis_right, vis_bottom = min(left + width, cw), min(top + height, ch)
        if vis_right <= vis_left or vis_bottom <= vis_top:
            return  # 完全移出画布

        sx = bitmap.width / width
        sy = bitmap.height / height
        box = (
            (vis_left - left) * sx,
            (vis_top - top) * sy,
            (vis_right - left) * sx,
            (vis_bottom - top) * sy,
        )
        dst_left, dst_top = int(math.floor(vis_left)), int(math.floor(vis_top))
        dst_size = (
            max(1, int(math.ceil(vis_right)) - dst_left),
            max(1, int(math.ceil(vis_bottom)) - dst_top),
        )
        patch = bitmap.convert("RGBA").resize(dst_size, Image.Resampling.NEAREST, box=box)
        self._image.alpha_composite(patch, dest=(dst_left, dst_top))

    def fill_circle(
        self,
        center: Point,
        radius: float,
        fill: str,
        outline: Optional[str] = None,
        outline_width: int = 0,
    ) -> None:
        x, y = center
        self._draw.ellipse(
            (x - radius, y - radius, x + radius, y + radius),
            fill=fill,
            outline=outline if outline_width > 0 else None,
            width=outline_width if outline_width > 0 else 1,
        )

    def draw_line(self, start: Point, end: Point, color: str, width: int = 1) -> None:
        self._draw.line([start, end], fill=color, width=width)

    def draw_text(self, position: Point, text: str, color: str, size: int = 12) -> None:
        self._draw.text(position, text, fill=color, font=self._font(size), anchor="mm")

    def save(self, path: Union[str, os.PathLike]) -> None:
        """导出当前帧；jpg 等不支持透明的格式先转 RGB"""
        img = self._image
        if str(path).lower().endswith((".jpg", ".jpeg")):
            img = img.convert("RGB")
        img.save(path)
        log.info("Snapshot saved to %s", path)

    def _font(self, size: int) -> ImageFont.ImageFont:
        font = self._fonts.get(size)
        if font is None:
            font = ImageFont.load_default(size=size)
            self._fonts[size] = font
        return font
