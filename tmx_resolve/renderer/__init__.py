"""Tile placement for rendering hosts"""

from .placement import (
    MapContext,
    TilePosition,
    tile_to_pixel,
    grid_to_pixels,
    layer_pixel_positions,
)

__all__ = [
    "MapContext",
    "TilePosition",
    "tile_to_pixel",
    "grid_to_pixels",
    "layer_pixel_positions",
]
