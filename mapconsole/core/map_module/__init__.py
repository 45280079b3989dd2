"""Map module package: raster decode, coordinate transforms, overlays, surface."""

from .raster_decoder import GridRasterDecoder, cells_to_gray
from .coordinate_mapper import WorldPixelMapper
from .overlay import OverlayRenderer
from .map_loader import LoadResult, LoadTicket, MapDataProvider, MapLoader
from .surface import MapState, MapSurface, SurfaceStatus

__all__ = [
    "GridRasterDecoder",
    "cells_to_gray",
    "WorldPixelMapper",
    "OverlayRenderer",
    "MapLoader",
    "MapDataProvider",
    "LoadResult",
    "LoadTicket",
    "MapSurface",
    "MapState",
    "SurfaceStatus",
]
