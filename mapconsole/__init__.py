"""mapconsole - occupancy-grid map viewer and coordinate-transform engine."""

from mapconsole.core import (
    AssetLoadError,
    CoordinateConversionError,
    MapConsoleError,
    MapDataError,
)
from mapconsole.core.map_module import GridRasterDecoder, MapSurface, SurfaceStatus, WorldPixelMapper
from mapconsole.core.pose import PoseFeed, normalize_pose
from mapconsole.core.viewport import ViewportController, WheelEvent
from mapconsole.settings import ViewerSettings, load_settings

__version__ = "0.3.0"

__all__ = [
    "MapConsoleError",
    "MapDataError",
    "CoordinateConversionError",
    "AssetLoadError",
    "GridRasterDecoder",
    "WorldPixelMapper",
    "ViewportController",
    "WheelEvent",
    "MapSurface",
    "SurfaceStatus",
    "PoseFeed",
    "normalize_pose",
    "ViewerSettings",
    "load_settings",
]
