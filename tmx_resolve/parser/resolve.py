"""
Map resolution: raw document -> ResolvedMap

=============================================================================
STEPS
=============================================================================

1. Tilesets: inline tilesets are resolved directly; TilesetRef entries are
   looked up by source path in the caller's table and resolved with the
   map's firstgid. Column counts and optional fields are defaulted here.

2. Layers (recursive over groups): tile payloads are decoded (codec.py),
   every GID is decoded (gid.py) and attributed to its tileset.

3. Map metadata is copied with defaults applied.

=============================================================================
GID -> TILESET
=============================================================================

Tilesets are expected in ascending firstgid order. A GID belongs to the
tileset with the largest firstgid <= gid:

    Tileset A: firstgid=1
    Tileset B: firstgid=101

    GID 50:  50 >= 1, 50 < 101   -> A, local id 49
    GID 150: 150 >= 101          -> B, local id 49

We scan from the last tileset backwards and stop at the first match. A GID
below every firstgid falls back to tileset 0 (strict=True raises instead).

=============================================================================
BLOCKING vs ASYNC
=============================================================================

resolve_map() decodes everything inline and fails on the first compressed
payload. resolve_map_async() awaits decompression; sibling chunks and
sibling layers are decoded concurrently with asyncio.gather, which returns
results in argument order, so the resolved tree keeps document order.

=============================================================================
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..document import (
    TiledMap, Tileset, TilesetRef, TilesetEntry, LayerBase, Layer,
    TileLayer, ObjectGroup, ImageLayer, LayerGroup, Chunk
)
from ..errors import MissingExternalTilesetError, UnknownTileGidError
from ..resolved import (
    DecodedTile, ResolvedTileset, ResolvedChunk, ResolvedLayer,
    ResolvedTileLayer, ResolvedImageLayer, ResolvedObjectLayer,
    ResolvedGroupLayer, ResolvedMap
)
from .codec import decode_layer_data, decode_layer_data_async
from .gid import decode_gid

logger = logging.getLogger(__name__)


def _default(value: Any, fallback: Any) -> Any:
    return fallback if value is None else value


# =============================================================================
# TILESETS
# =============================================================================

def derive_columns(tileset: Tileset) -> int:
    """
    Effective column count of a tileset.

    The explicit value wins when positive. Otherwise it is derived from the
    spritesheet width:

        columns = (imagewidth - 2*margin + spacing) // (tilewidth + spacing)

    Example: 69px image, 32px tiles, margin 2, spacing 1
             (69 - 4 + 1) // 33 = 2
    """
    if tileset.columns > 0:
        return tileset.columns

    image_width = tileset.image.width if tileset.image else None
    if image_width and tileset.tilewidth > 0:
        return ((image_width - 2 * tileset.margin + tileset.spacing)
                // (tileset.tilewidth + tileset.spacing))
    return 0


def resolve_tileset(tileset: Tileset) -> ResolvedTileset:
    """Resolve one inline tileset (column count, tile lookup, defaults)."""
    image = tileset.image

    resolved = ResolvedTileset(
        firstgid=tileset.firstgid,
        name=tileset.name,
        tilewidth=tileset.tilewidth,
        tileheight=tileset.tileheight,
        columns=derive_columns(tileset),
        tilecount=tileset.tilecount,
        margin=tileset.margin,
        spacing=tileset.spacing,
        image=image.source if image else None,
        imagewidth=image.width if image else None,
        imageheight=image.height if image else None,
        transparentcolor=image.trans if image else None,
        tileoffset=_default(tileset.tileoffset, (0, 0)),
        objectalignment=_default(tileset.objectalignment, "unspecified"),
        tilerendersize=_default(tileset.tilerendersize, "tile"),
        fillmode=_default(tileset.fillmode, "stretch"),
        class_=tileset.class_,
        # Only tiles with explicit per-tile data are present
        tiles={tile.id: tile for tile in tileset.tiles},
        properties=dict(tileset.properties),
        transformations=tileset.transformations,
        grid=tileset.grid
    )

    logger.debug("Resolved tileset %r: firstgid=%d, columns=%d, %d tile definition(s)",
                 resolved.name, resolved.firstgid, resolved.columns, len(resolved.tiles))
    return resolved


def resolve_tilesets(entries: Sequence[TilesetEntry],
                     external_tilesets: Optional[Mapping[str, Tileset]] = None
                     ) -> List[ResolvedTileset]:
    """
    Resolve every tileset entry of a map, in order.

    Parameters:
    -----------
    entries : list of Tileset | TilesetRef
        The map's tileset entries
    external_tilesets : dict, optional
        source path (as written in the map) -> pre-parsed Tileset

    Raises:
    -------
    MissingExternalTilesetError : a TilesetRef has no entry in the table
    """
    external_tilesets = external_tilesets or {}
    resolved = []

    for entry in entries:
        if isinstance(entry, TilesetRef):
            external = external_tilesets.get(entry.source)
            if external is None:
                logger.debug("External tileset %r not in lookup table", entry.source)
                raise MissingExternalTilesetError(entry.source)
            # Copy so the caller's definition keeps its own firstgid
            resolved.append(resolve_tileset(replace(external, firstgid=entry.firstgid)))
        elif isinstance(entry, Tileset):
            resolved.append(resolve_tileset(entry))
        else:
            raise TypeError(f"Unknown tileset entry: {type(entry).__name__}")

    firstgids = [ts.firstgid for ts in resolved]
    if firstgids != sorted(firstgids):
        logger.warning("Tilesets are not in ascending firstgid order %s; "
                       "GID lookup may pick the wrong tileset", firstgids)

    return resolved


# =============================================================================
# GIDS
# =============================================================================

def _owning_tileset_index(gid: int, tilesets: Sequence[ResolvedTileset]) -> Optional[int]:
    # Iterate from last tileset (highest firstgid) to first
    for i in range(len(tilesets) - 1, -1, -1):
        if tilesets[i].firstgid <= gid:
            return i
    return None


def find_tileset_index(gid: int, tilesets: Sequence[ResolvedTileset]) -> int:
    """Index of the tileset owning gid; 0 when no tileset qualifies."""
    index = _owning_tileset_index(gid, tilesets)
    return 0 if index is None else index


def resolve_gids(raw_gids: Sequence[int], tilesets: Sequence[ResolvedTileset],
                 strict: bool = False) -> List[Optional[DecodedTile]]:
    """
    Decode raw GIDs and attribute each to its tileset.

    Returns one entry per input value: None for empty cells, otherwise a
    DecodedTile with local_id and tileset_index filled in.
    """
    result: List[Optional[DecodedTile]] = []
    unowned = 0

    for raw in raw_gids:
        tile = decode_gid(int(raw))
        if tile is None:
            result.append(None)
            continue

        index = _owning_tileset_index(tile.gid, tilesets)
        if index is None:
            if strict:
                logger.debug("GID %d has no owning tileset", tile.gid)
                raise UnknownTileGidError(tile.gid)
            unowned += 1
            index = 0

        if tilesets:
            tile = replace(tile, tileset_index=index,
                           local_id=tile.gid - tilesets[index].firstgid)
        result.append(tile)

    if unowned:
        logger.warning("%d tile(s) have a GID below every tileset's firstgid; "
                       "attributed to tileset 0", unowned)
    return result


# =============================================================================
# LAYERS
# =============================================================================

def _layer_defaults(layer: LayerBase) -> Dict[str, Any]:
    return dict(
        id=layer.id,
        name=layer.name,
        opacity=layer.opacity,
        visible=layer.visible,
        offsetx=_default(layer.offsetx, 0),
        offsety=_default(layer.offsety, 0),
        parallaxx=_default(layer.parallaxx, 1.0),
        parallaxy=_default(layer.parallaxy, 1.0),
        tintcolor=layer.tintcolor,
        class_=layer.class_,
        locked=layer.locked,
        properties=dict(layer.properties)
    )


def _check_tile_count(what: str, tiles: Sequence, width: Optional[int],
                      height: Optional[int]):
    if width is None or height is None:
        return
    if len(tiles) != width * height:
        logger.warning("%s: decoded %d tiles, expected %d (%dx%d)",
                       what, len(tiles), width * height, width, height)


def _resolve_chunk(layer: TileLayer, chunk: Chunk, raw_gids: Sequence[int],
                   tilesets: Sequence[ResolvedTileset], strict: bool) -> ResolvedChunk:
    tiles = resolve_gids(raw_gids, tilesets, strict)
    _check_tile_count(f"Layer {layer.name!r} chunk ({chunk.x}, {chunk.y})",
                      tiles, chunk.width, chunk.height)
    return ResolvedChunk(x=chunk.x, y=chunk.y, width=chunk.width,
                         height=chunk.height, tiles=tiles)


def _infinite_tile_layer(layer: TileLayer, chunks: List[ResolvedChunk]) -> ResolvedTileLayer:
    return ResolvedTileLayer(
        width=_default(layer.width, 0),
        height=_default(layer.height, 0),
        infinite=True,
        tiles=[],
        chunks=chunks,
        **_layer_defaults(layer)
    )


def _finite_tile_layer(layer: TileLayer, raw_gids: Sequence[int],
                       tilesets: Sequence[ResolvedTileset], strict: bool) -> ResolvedTileLayer:
    tiles = resolve_gids(raw_gids, tilesets, strict)
    _check_tile_count(f"Layer {layer.name!r}", tiles, layer.width, layer.height)
    return ResolvedTileLayer(
        width=_default(layer.width, 0),
        height=_default(layer.height, 0),
        infinite=False,
        tiles=tiles,
        **_layer_defaults(layer)
    )


def _resolve_leaf_layer(layer: Layer) -> ResolvedLayer:
    """Image and object layers; identical in both execution modes."""
    if isinstance(layer, ImageLayer):
        image = layer.image
        return ResolvedImageLayer(
            x=layer.x,
            y=layer.y,
            image=image.source if image else "",
            imagewidth=image.width if image else None,
            imageheight=image.height if image else None,
            repeatx=_default(layer.repeatx, False),
            repeaty=_default(layer.repeaty, False),
            transparentcolor=image.trans if image else None,
            **_layer_defaults(layer)
        )

    if isinstance(layer, ObjectGroup):
        return ResolvedObjectLayer(
            draworder=_default(layer.draworder, "topdown"),
            color=layer.color,
            objects=list(layer.objects),
            **_layer_defaults(layer)
        )

    raise TypeError(f"Unknown layer type: {type(layer).__name__}")


def resolve_layer(layer: Layer, tilesets: Sequence[ResolvedTileset],
                  strict: bool = False) -> ResolvedLayer:
    """
    Resolve one layer (and, for groups, its whole subtree) without suspending.

    Raises CompressionRequiresAsyncError on the first gzip/zlib payload.
    """
    if isinstance(layer, TileLayer):
        if layer.chunks:
            chunks = [
                _resolve_chunk(layer, chunk,
                               decode_layer_data(chunk.data, layer.encoding, layer.compression),
                               tilesets, strict)
                for chunk in layer.chunks
            ]
            return _infinite_tile_layer(layer, chunks)

        raw_gids = decode_layer_data(layer.data, layer.encoding, layer.compression)
        return _finite_tile_layer(layer, raw_gids, tilesets, strict)

    if isinstance(layer, LayerGroup):
        return ResolvedGroupLayer(
            layers=[resolve_layer(child, tilesets, strict) for child in layer.layers],
            **_layer_defaults(layer)
        )

    return _resolve_leaf_layer(layer)


async def resolve_layer_async(layer: Layer, tilesets: Sequence[ResolvedTileset],
                              strict: bool = False) -> ResolvedLayer:
    """
    Resolve one layer, awaiting decompression of compressed payloads.

    Chunks of a tile layer and children of a group are decoded concurrently;
    results are reassembled in their original order.
    """
    if isinstance(layer, TileLayer):
        if layer.chunks:
            raw_chunks = await asyncio.gather(*(
                decode_layer_data_async(chunk.data, layer.encoding, layer.compression)
                for chunk in layer.chunks
            ))
            chunks = [_resolve_chunk(layer, chunk, raw_gids, tilesets, strict)
                      for chunk, raw_gids in zip(layer.chunks, raw_chunks)]
            return _infinite_tile_layer(layer, chunks)

        raw_gids = await decode_layer_data_async(layer.data, layer.encoding, layer.compression)
        return _finite_tile_layer(layer, raw_gids, tilesets, strict)

    if isinstance(layer, LayerGroup):
        children = await asyncio.gather(*(
            resolve_layer_async(child, tilesets, strict) for child in layer.layers
        ))
        return ResolvedGroupLayer(layers=list(children), **_layer_defaults(layer))

    return _resolve_leaf_layer(layer)


# =============================================================================
# MAP
# =============================================================================

def _build_resolved_map(tiled_map: TiledMap, tilesets: List[ResolvedTileset],
                        layers: List[ResolvedLayer]) -> ResolvedMap:
    resolved = ResolvedMap(
        orientation=tiled_map.orientation,
        renderorder=_default(tiled_map.renderorder, "right-down"),
        width=tiled_map.width,
        height=tiled_map.height,
        tilewidth=tiled_map.tilewidth,
        tileheight=tiled_map.tileheight,
        infinite=tiled_map.infinite,
        backgroundcolor=tiled_map.backgroundcolor,
        hexsidelength=tiled_map.hexsidelength,
        staggeraxis=tiled_map.staggeraxis,
        staggerindex=tiled_map.staggerindex,
        parallaxoriginx=_default(tiled_map.parallaxoriginx, 0),
        parallaxoriginy=_default(tiled_map.parallaxoriginy, 0),
        class_=tiled_map.class_,
        version=tiled_map.version,
        tiledversion=tiled_map.tiledversion,
        properties=dict(tiled_map.properties),
        tilesets=tilesets,
        layers=layers
    )

    logger.debug("Resolved %s map %dx%d: %d tileset(s), %d top-level layer(s)",
                 resolved.orientation, resolved.width, resolved.height,
                 len(tilesets), len(layers))
    return resolved


def resolve_map(tiled_map: TiledMap,
                external_tilesets: Optional[Mapping[str, Tileset]] = None,
                strict: bool = False) -> ResolvedMap:
    """
    Resolve a raw map without suspending.

    Parameters:
    -----------
    tiled_map : TiledMap
        Parsed document (not modified)
    external_tilesets : dict, optional
        source path -> Tileset for every TilesetRef in the map
    strict : bool
        Raise UnknownTileGidError for GIDs no tileset owns, instead of
        attributing them to tileset 0

    Raises:
    -------
    CompressionRequiresAsyncError : the map has gzip/zlib tile data;
        call resolve_map_async() instead
    MissingExternalTilesetError, UnsupportedEncodingError,
    UnsupportedCompressionError, MalformedPayloadError
    """
    tilesets = resolve_tilesets(tiled_map.tilesets, external_tilesets)
    layers = [resolve_layer(layer, tilesets, strict) for layer in tiled_map.layers]
    return _build_resolved_map(tiled_map, tilesets, layers)


async def resolve_map_async(tiled_map: TiledMap,
                            external_tilesets: Optional[Mapping[str, Tileset]] = None,
                            strict: bool = False) -> ResolvedMap:
    """
    Resolve a raw map, awaiting decompression of gzip/zlib tile data.

    For maps without compression the result equals resolve_map()'s.
    """
    tilesets = resolve_tilesets(tiled_map.tilesets, external_tilesets)
    layers = await asyncio.gather(*(
        resolve_layer_async(layer, tilesets, strict) for layer in tiled_map.layers
    ))
    return _build_resolved_map(tiled_map, tilesets, list(layers))
