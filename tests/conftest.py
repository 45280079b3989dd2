from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

from mapconsole.core.models import MapMetadata, OccupancyGrid, Vec3, ViewState
from mapconsole.core.map_module import WorldPixelMapper
from mapconsole.render import RecordingRenderer


def occupancy_message(width: int, height: int, resolution: float = 0.05,
                      origin=(0.0, 0.0), fill: int = 0,
                      cells: Optional[List[int]] = None) -> Dict[str, Any]:
    return {
        "info": {
            "width": width,
            "height": height,
            "resolution": resolution,
            "origin": {"position": {"x": origin[0], "y": origin[1], "z": 0.0}},
        },
        "data": cells if cells is not None else [fill] * (width * height),
    }


def listing_entry(map_id: str, width: int, height: int, resolution: float = 0.05,
                  origin=(0.0, 0.0), is_active: bool = False) -> Dict[str, Any]:
    return {
        "id": map_id,
        "name": map_id,
        "width": width,
        "height": height,
        "resolution": resolution,
        "origin": {"x": origin[0], "y": origin[1], "z": 0.0},
        "isActive": is_active,
    }


class FakeProvider:
    """内存数据源；gates 中的地图在 Event 置位前阻塞"""

    def __init__(self) -> None:
        self.entries: List[Dict[str, Any]] = []
        self.rasters: Dict[str, Any] = {}
        self.gates: Dict[str, threading.Event] = {}
        self.fetches: List[str] = []

    def add(self, map_id: str, width: int, height: int, *, resolution: float = 0.05,
            origin=(0.0, 0.0), is_active: bool = False, raster: Any = None, fill: int = 0) -> None:
        self.entries.append(listing_entry(map_id, width, height, resolution, origin, is_active))
        self.rasters[map_id] = raster if raster is not None else occupancy_message(
            width, height, resolution, origin, fill=fill
        )

    def list_maps(self) -> List[Dict[str, Any]]:
        return list(self.entries)

    def fetch_raster(self, map_id: str) -> Any:
        self.fetches.append(map_id)
        gate = self.gates.get(map_id)
        if gate is not None:
            assert gate.wait(5), f"gate for {map_id} never opened"
        raster = self.rasters[map_id]
        if isinstance(raster, Exception):
            raise raster
        return raster


@pytest.fixture
def scenario_meta() -> MapMetadata:
    return MapMetadata(width=100, height=100, resolution=0.05, origin=Vec3(-2.5, -2.5, 0.0))


@pytest.fixture
def scenario_mapper(scenario_meta) -> WorldPixelMapper:
    return WorldPixelMapper(scenario_meta, ViewState(), 800, 600)


@pytest.fixture
def recording() -> RecordingRenderer:
    return RecordingRenderer(800, 600)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def empty_grid(scenario_meta) -> OccupancyGrid:
    return OccupancyGrid(scenario_meta, np.zeros(100 * 100, dtype=np.int8))
