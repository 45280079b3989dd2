"""
本地地图目录数据源

目录结构（每张地图一个子目录）::

    <root>/<map_name>/navigation/map.pgm
    <root>/<map_name>/navigation/map_limits.json
    <root>/<map_name>/navigation/raw_occupancy.json   # 可选，原始占据栅格消息

map_limits.json 字段：resolution, map_origin_x, map_origin_y, num_x_cells,
num_y_cells, is_active（可选）。
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Union

from PIL import Image, UnidentifiedImageError

from mapconsole.core.errors import AssetLoadError
from mapconsole.utils.logging import log

NAV_DIR = "navigation"
PGM_NAME = "map.pgm"
LIMITS_NAME = "map_limits.json"
RAW_NAME = "raw_occupancy.json"


class LocalMapProvider:
    """Scan a directory of saved maps; implements the map data provider protocol."""

    def __init__(self, root: Union[str, os.PathLike]) -> None:
        self.root = Path(root)

    def list_maps(self) -> List[Dict[str, Any]]:
        if not self.root.is_dir():
            raise AssetLoadError(f"map directory not found: {self.root}")
        maps: List[Dict[str, Any]] = []
        for map_dir in sorted(p for p in self.root.iterdir() if p.is_dir()):
            nav_dir = map_dir / NAV_DIR
            if not (nav_dir / PGM_NAME).is_file() or not (nav_dir / LIMITS_NAME).is_file():
                log.debug("Skipping %s: no %s/%s", map_dir.name, PGM_NAME, LIMITS_NAME)
                continue
            try:
                maps.append(self._describe(map_dir.name, nav_dir))
            except (OSError, ValueError) as e:
                log.warning("Skipping map %s: %s", map_dir.name, e)
        log.info("Found %d map(s) under %s", len(maps), self.root)
        return maps

    def fetch_raster(self, map_id: str) -> Union[Path, Dict[str, Any]]:
        """优先返回原始占据栅格消息，否则返回 PGM 路径"""
        nav_dir = self._nav_dir(map_id)
        raw_path = nav_dir / RAW_NAME
        if raw_path.is_file():
            try:
                with open(raw_path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                raise AssetLoadError(f"cannot read {raw_path}: {e}") from e
        pgm_path = nav_dir / PGM_NAME
        if not pgm_path.is_file():
            raise AssetLoadError(f"no raster for map {map_id!r}")
        return pgm_path

    # ------------------------------------------------------------------ #
    def _nav_dir(self, map_id: str) -> Path:
        # map_id 即目录名，禁止跳出 root
        if not map_id or Path(map_id).name != map_id or map_id in (".", ".."):
            raise AssetLoadError(f"invalid map id {map_id!r}")
        nav_dir = self.root / map_id / NAV_DIR
        if not nav_dir.is_dir():
            raise AssetLoadError(f"unknown map {map_id!r}")
        return nav_dir

    def _describe(self, name: str, nav_dir: Path) -> Dict[str, Any]:
        with open(nav_dir / LIMITS_NAME, "r", encoding="utf-8") as f:
            info = json.load(f)
        if "num_x_cells" in info and "num_y_cells" in info:
            size = (int(info["num_x_cells"]), int(info["num_y_cells"]))
        else:
            try:
                with Image.open(nav_dir / PGM_NAME) as pgm:
                    size = pgm.size
            except UnidentifiedImageError as e:
                raise ValueError(f"unreadable {PGM_NAME}: {e}") from e
        return {
            "id": name,
            "name": name,
            "width": size[0],
            "height": size[1],
            "resolution": float(info.get("resolution", 0.05)),
            "origin": {
                "x": float(info.get("map_origin_x", 0.0)),
                "y": float(info.get("map_origin_y", 0.0)),
                "z": 0.0,
            },
            "isActive": bool(info.get("is_active", False)),
        }
