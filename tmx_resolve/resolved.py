"""
Resolved (render-ready) map structures

=============================================================================
RAW vs RESOLVED
=============================================================================

The classes in document.py mirror the file on disk: tile payloads are still
base64/CSV text, external tilesets are bare references, and optional
attributes are simply missing.

The classes here are what the resolver produces from that:

- Every tile payload decoded into DecodedTile entries (or None for empty)
- Every tileset inline, with its column count computed
- Every optional attribute given its default value

A ResolvedMap is built once and handed to the consumer. Nothing in the
package mutates it afterwards.

=============================================================================
TILE LOOKUP
=============================================================================

Every DecodedTile carries tileset_index, an index into ResolvedMap.tilesets:

    tile = layer.tiles[y * layer.width + x]
    if tile is not None:
        tileset = resolved.tilesets[tile.tileset_index]
        definition = tileset.tiles.get(tile.local_id)   # None = no overrides

=============================================================================
"""

import logging
from typing import Optional, List, Dict, Union, Iterator, Tuple
from dataclasses import dataclass, field

from .document import (
    Property, Tile, MapObject, Transformations, Grid
)

logger = logging.getLogger(__name__)


# =============================================================================
# DECODED TILE
# =============================================================================

@dataclass(frozen=True)
class DecodedTile:
    """
    One grid cell after GID decoding.

    gid is the numeric tile id with the flip bits stripped. local_id and
    tileset_index are 0 straight out of decode_gid() and are filled in once
    the owning tileset is known.
    """
    gid: int
    local_id: int = 0
    tileset_index: int = 0
    horizontal_flip: bool = False
    vertical_flip: bool = False
    diagonal_flip: bool = False

    @property
    def flipped(self) -> bool:
        return self.horizontal_flip or self.vertical_flip or self.diagonal_flip


# =============================================================================
# RESOLVED TILESET
# =============================================================================

@dataclass
class ResolvedTileset:
    """
    Tileset with every optional field defaulted.

    tiles maps local tile id -> Tile definition. Only tiles that carry
    per-tile data (properties, animation, collision shapes, own image) are
    present; a missing id just means "no overrides for this tile".
    """
    firstgid: int
    name: str
    tilewidth: int
    tileheight: int
    columns: int                                     # Explicit or derived
    tilecount: int = 0
    margin: int = 0
    spacing: int = 0
    image: Optional[str] = None                      # Spritesheet path
    imagewidth: Optional[int] = None
    imageheight: Optional[int] = None
    transparentcolor: Optional[str] = None
    tileoffset: Tuple[int, int] = (0, 0)
    objectalignment: str = "unspecified"
    tilerendersize: str = "tile"
    fillmode: str = "stretch"
    class_: Optional[str] = None
    tiles: Dict[int, Tile] = field(default_factory=dict)
    properties: Dict[str, Property] = field(default_factory=dict)
    transformations: Optional[Transformations] = None
    grid: Optional[Grid] = None

    def tile_rect(self, local_id: int) -> Tuple[int, int, int, int]:
        """
        Source rectangle (x, y, w, h) of a tile inside the spritesheet.

        Uses the same margin/spacing layout the column count is derived from:

            x = margin + (id % columns) * (tilewidth + spacing)
            y = margin + (id // columns) * (tileheight + spacing)
        """
        columns = self.columns or 1
        col = local_id % columns
        row = local_id // columns
        x = self.margin + col * (self.tilewidth + self.spacing)
        y = self.margin + row * (self.tileheight + self.spacing)
        return x, y, self.tilewidth, self.tileheight


# =============================================================================
# RESOLVED LAYERS
# =============================================================================

@dataclass
class ResolvedChunk:
    """Independently positioned sub-grid of an infinite tile layer."""
    x: int
    y: int
    width: int
    height: int
    tiles: List[Optional[DecodedTile]] = field(default_factory=list)


@dataclass
class ResolvedLayerBase:
    """Fields shared by every layer variant, already defaulted."""
    id: int
    name: str
    opacity: float = 1.0
    visible: bool = True
    offsetx: float = 0
    offsety: float = 0
    parallaxx: float = 1.0
    parallaxy: float = 1.0
    tintcolor: Optional[str] = None
    class_: Optional[str] = None
    locked: Optional[bool] = None
    properties: Dict[str, Property] = field(default_factory=dict)


@dataclass
class ResolvedTileLayer(ResolvedLayerBase):
    """
    Tile layer with decoded tiles.

    Finite layers keep width*height slots in row-major order in tiles.
    Infinite layers leave tiles empty and store their data in chunks.
    """
    width: int = 0
    height: int = 0
    infinite: bool = False
    tiles: List[Optional[DecodedTile]] = field(default_factory=list)
    chunks: List[ResolvedChunk] = field(default_factory=list)

    def get_tile(self, x: int, y: int) -> Optional[DecodedTile]:
        """
        Tile at column x, row y, or None for empty/out of bounds.

        For infinite layers x/y are map tile coordinates and may be negative;
        the chunk covering the cell is looked up.
        """
        if self.infinite:
            for chunk in self.chunks:
                cx = x - chunk.x
                cy = y - chunk.y
                if 0 <= cx < chunk.width and 0 <= cy < chunk.height:
                    index = cy * chunk.width + cx
                    if index < len(chunk.tiles):
                        return chunk.tiles[index]
                    return None
            return None

        if 0 <= x < self.width and 0 <= y < self.height:
            index = y * self.width + x
            if index < len(self.tiles):
                return self.tiles[index]
        return None

    def iter_tiles(self) -> Iterator[Tuple[int, int, DecodedTile]]:
        """
        Yield (x, y, tile) for every non-empty cell, chunks included.

        Tiles of a layer or chunk without a positive width have no grid
        position; they are skipped with a warning.
        """
        if self.infinite:
            for chunk in self.chunks:
                if chunk.width <= 0:
                    if chunk.tiles:
                        logger.warning("Layer %r: chunk (%d, %d) has width %d; skipping its tiles",
                                       self.name, chunk.x, chunk.y, chunk.width)
                    continue
                for index, tile in enumerate(chunk.tiles):
                    if tile is not None:
                        yield (chunk.x + index % chunk.width,
                               chunk.y + index // chunk.width, tile)
            return

        if self.width <= 0:
            if self.tiles:
                logger.warning("Layer %r has width %d; skipping its %d tile slot(s)",
                               self.name, self.width, len(self.tiles))
            return

        for index, tile in enumerate(self.tiles):
            if tile is not None:
                yield index % self.width, index // self.width, tile


@dataclass
class ResolvedImageLayer(ResolvedLayerBase):
    x: float = 0
    y: float = 0
    image: str = ""
    imagewidth: Optional[int] = None
    imageheight: Optional[int] = None
    repeatx: bool = False
    repeaty: bool = False
    transparentcolor: Optional[str] = None


@dataclass
class ResolvedObjectLayer(ResolvedLayerBase):
    draworder: str = "topdown"
    color: Optional[str] = None
    objects: List[MapObject] = field(default_factory=list)


@dataclass
class ResolvedGroupLayer(ResolvedLayerBase):
    # Each child is owned by exactly this group
    layers: List['ResolvedLayer'] = field(default_factory=list)


ResolvedLayer = Union[ResolvedTileLayer, ResolvedImageLayer,
                      ResolvedObjectLayer, ResolvedGroupLayer]


# =============================================================================
# RESOLVED MAP
# =============================================================================

@dataclass
class ResolvedMap:
    """
    Fully resolved map: metadata, inline tilesets and the layer tree.

    The layer tree mirrors the document's group structure exactly.
    """
    orientation: str
    renderorder: str
    width: int
    height: int
    tilewidth: int
    tileheight: int
    infinite: bool = False
    backgroundcolor: Optional[str] = None
    hexsidelength: Optional[int] = None
    staggeraxis: Optional[str] = None
    staggerindex: Optional[str] = None
    parallaxoriginx: float = 0
    parallaxoriginy: float = 0
    class_: Optional[str] = None
    version: str = "1.10"
    tiledversion: Optional[str] = None
    properties: Dict[str, Property] = field(default_factory=dict)
    tilesets: List[ResolvedTileset] = field(default_factory=list)
    layers: List[ResolvedLayer] = field(default_factory=list)

    def get_tileset(self, tile: DecodedTile) -> Optional[ResolvedTileset]:
        """Tileset a decoded tile belongs to (None if the map has none)."""
        if 0 <= tile.tileset_index < len(self.tilesets):
            return self.tilesets[tile.tileset_index]
        return None

    def get_tile_definition(self, tile: DecodedTile) -> Optional[Tile]:
        """Per-tile definition (animation, collision...) or None."""
        tileset = self.get_tileset(tile)
        if tileset is None:
            return None
        return tileset.tiles.get(tile.local_id)

    def get_layer_by_name(self, name: str) -> Optional[ResolvedLayer]:
        """Find a layer by name, searching inside groups depth-first."""
        def search_layers(layers):
            for layer in layers:
                if layer.name == name:
                    return layer
                if isinstance(layer, ResolvedGroupLayer):
                    result = search_layers(layer.layers)
                    if result:
                        return result
            return None

        return search_layers(self.layers)

    def get_all_layers_flat(self) -> List[ResolvedLayer]:
        """All non-group layers in draw order, groups expanded."""
        result = []

        def flatten(layers):
            for layer in layers:
                if isinstance(layer, ResolvedGroupLayer):
                    flatten(layer.layers)
                else:
                    result.append(layer)

        flatten(self.layers)
        return result
