"""
tmx_resolve - Tiled map (TMX/TMJ) resolution

Reads Tiled documents and turns them into render-ready structures:
decoded tile payloads, inline tilesets, defaulted layer trees, plus
grid -> pixel placement for every map orientation.

    from tmx_resolve import TiledMap, load_external_tilesets, resolve_map

    raw = TiledMap.load("level.tmx")
    resolved = resolve_map(raw, load_external_tilesets(raw, "."))

Requirements:
    pip install numpy
"""

from .document import (
    TiledMap, Tileset, TilesetRef, Tile, TileLayer, ObjectGroup,
    ImageLayer, LayerGroup, Chunk, MapObject, Property,
    load_tileset, load_external_tilesets,
)
from .resolved import (
    DecodedTile, ResolvedMap, ResolvedTileset, ResolvedChunk,
    ResolvedTileLayer, ResolvedImageLayer, ResolvedObjectLayer,
    ResolvedGroupLayer,
)
from .errors import (
    TiledError, UnsupportedEncodingError, UnsupportedCompressionError,
    CompressionRequiresAsyncError, MissingExternalTilesetError,
    MalformedPayloadError, UnknownTileGidError, DocumentError,
)
from .parser import (
    decode_gid, decode_layer_data, decode_layer_data_async,
    resolve_map, resolve_map_async,
)
from .renderer import MapContext, TilePosition, tile_to_pixel, grid_to_pixels

__version__ = "0.1.0"
__all__ = [
    "TiledMap",
    "Tileset",
    "TilesetRef",
    "Tile",
    "TileLayer",
    "ObjectGroup",
    "ImageLayer",
    "LayerGroup",
    "Chunk",
    "MapObject",
    "Property",
    "load_tileset",
    "load_external_tilesets",
    "DecodedTile",
    "ResolvedMap",
    "ResolvedTileset",
    "ResolvedChunk",
    "ResolvedTileLayer",
    "ResolvedImageLayer",
    "ResolvedObjectLayer",
    "ResolvedGroupLayer",
    "TiledError",
    "UnsupportedEncodingError",
    "UnsupportedCompressionError",
    "CompressionRequiresAsyncError",
    "MissingExternalTilesetError",
    "MalformedPayloadError",
    "UnknownTileGidError",
    "DocumentError",
    "decode_gid",
    "decode_layer_data",
    "decode_layer_data_async",
    "resolve_map",
    "resolve_map_async",
    "MapContext",
    "TilePosition",
    "tile_to_pixel",
    "grid_to_pixels",
]
