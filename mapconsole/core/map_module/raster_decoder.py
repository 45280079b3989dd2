# mapconsole/core/map_module/raster_decoder.py
"""
栅格解码
职责：
1. 占据栅格 → RGBA 位图（-1 未知灰 205，0..100 线性 255..0，其它值按未知）
2. 行翻转：栅格第 0 行在世界底部，位图第 0 行在顶部
3. 预渲染图像（PGM / PNG / bytes）按阈值反向采样回占据栅格
"""

from __future__ import annotations

import io
import os
from typing import Any, Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from mapconsole.core.errors import AssetLoadError, MapDataError
from mapconsole.core.models import MapMetadata, OccupancyGrid
from mapconsole.utils.logging import log, log_performance

# 灰度约定（与 map_server 的 PGM 一致）
UNKNOWN_GRAY = 205
FREE_GRAY = 255
OCCUPIED_GRAY = 0

# 栅格值
UNKNOWN = -1
FREE = 0
OCCUPIED = 100

# 反向采样阈值
FREE_THRESHOLD = 250
OCCUPIED_THRESHOLD = 10

RasterSource = Union[Image.Image, bytes, bytearray, str, os.PathLike]


def _cells_as_float(cells: Any) -> np.ndarray:
    """数值数组直接转换；混入字符串 / None 等非数值时逐格转换，非数值记为 NaN"""
    arr = np.asarray(cells)
    if arr.dtype.kind in "iuf":
        return arr.astype(np.float64)
    values = np.full(arr.shape, np.nan)
    for idx, v in np.ndenumerate(arr):
        if isinstance(v, (int, float, np.integer, np.floating)) and not isinstance(v, (bool, np.bool_)):
            values[idx] = float(v)
    return values


def cells_to_gray(cells: np.ndarray) -> np.ndarray:
    """逐格映射灰度：-1 → 205，0..100 线性 255..0，其它值（含非数值）按未知处理。"""
    values = _cells_as_float(cells)
    gray = np.full(values.shape, UNKNOWN_GRAY, dtype=np.uint8)
    with np.errstate(invalid="ignore"):
        valid = (values >= FREE) & (values <= OCCUPIED) & (values == np.floor(values))
    gray[valid] = np.floor(255.0 - (values[valid] / 100.0) * 255.0).astype(np.uint8)
    return gray


class GridRasterDecoder:
    """Turn occupancy data (or a saved raster) into a width×height RGBA bitmap."""

    @log_performance(threshold_ms=100.0)
    def decode(self, grid: OccupancyGrid) -> Image.Image:
        meta = grid.metadata
        cells = np.asarray(grid.cells).reshape(-1)
        if cells.size != meta.cell_count:
            raise MapDataError(
                f"grid has {cells.size} cells, expected {meta.width}x{meta.height}={meta.cell_count}"
            )

        gray = cells_to_gray(cells).reshape(meta.height, meta.width)
        # 栅格第 0 行在世界底部，图像第 0 行在顶部
        gray = gray[::-1]

        rgba = np.empty((meta.height, meta.width, 4), dtype=np.uint8)
        rgba[..., 0] = gray
        rgba[..., 1] = gray
        rgba[..., 2] = gray
        rgba[..., 3] = 255
        bitmap = Image.fromarray(rgba)  # (h, w, 4) uint8 → RGBA
        assert bitmap.size == (meta.width, meta.height), "bitmap size does not match metadata"
        log.debug("decoded grid %s", meta)
        return bitmap

    def grid_from_image(self, source: RasterSource, metadata: Optional[MapMetadata] = None) -> OccupancyGrid:
        """按阈值采样灰度图，得到与原始消息同构的占据栅格。

        metadata 为空时只能得到尺寸，分辨率按 1 m/px、原点 (0, 0) 处理。
        """
        image = _open_image(source)
        width, height = image.size
        if metadata is None:
            metadata = MapMetadata(width=width, height=height, resolution=1.0)
        elif (width, height) != (metadata.width, metadata.height):
            raise MapDataError(
                f"raster is {width}x{height}, metadata says {metadata.width}x{metadata.height}"
            )

        gray = np.asarray(image.convert("L"), dtype=np.uint8)
        cells = np.full(gray.shape, UNKNOWN, dtype=np.int8)
        cells[gray > FREE_THRESHOLD] = FREE
        cells[gray < OCCUPIED_THRESHOLD] = OCCUPIED
        # 图像行序翻回栅格行序
        return OccupancyGrid(metadata=metadata, cells=cells[::-1].reshape(-1))

    def decode_image(self, source: RasterSource, metadata: Optional[MapMetadata] = None) -> Image.Image:
        return self.decode(self.grid_from_image(source, metadata))


def _open_image(source: RasterSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    try:
        if isinstance(source, (bytes, bytearray)):
            with Image.open(io.BytesIO(bytes(source))) as img:
                img.load()
                return img.copy()
        with Image.open(source) as img:
            img.load()
            return img.copy()
    except (OSError, UnidentifiedImageError) as e:
        raise AssetLoadError(f"cannot decode raster: {e}") from e
