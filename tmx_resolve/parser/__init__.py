"""Tile payload decoding, GID decoding and map resolution"""

from .gid import (
    decode_gid,
    FLIPPED_HORIZONTALLY_FLAG,
    FLIPPED_VERTICALLY_FLAG,
    FLIPPED_DIAGONALLY_FLAG,
    ROTATED_HEXAGONAL_120_FLAG,
    GID_MASK,
)
from .codec import (
    decode_layer_data,
    decode_layer_data_async,
    decompress_async,
    DecompressionStream,
)
from .resolve import (
    resolve_map,
    resolve_map_async,
    resolve_layer,
    resolve_layer_async,
    resolve_tileset,
    resolve_tilesets,
    resolve_gids,
    find_tileset_index,
    derive_columns,
)

__all__ = [
    "decode_gid",
    "FLIPPED_HORIZONTALLY_FLAG",
    "FLIPPED_VERTICALLY_FLAG",
    "FLIPPED_DIAGONALLY_FLAG",
    "ROTATED_HEXAGONAL_120_FLAG",
    "GID_MASK",
    "decode_layer_data",
    "decode_layer_data_async",
    "decompress_async",
    "DecompressionStream",
    "resolve_map",
    "resolve_map_async",
    "resolve_layer",
    "resolve_layer_async",
    "resolve_tileset",
    "resolve_tilesets",
    "resolve_gids",
    "find_tileset_index",
    "derive_columns",
]
