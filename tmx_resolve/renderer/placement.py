"""
Grid -> pixel placement for the four Tiled orientations

=============================================================================
ORIENTATIONS
=============================================================================

ORTHOGONAL:
    x = col * tw
    y = row * th

ISOMETRIC (diamond):
    x = (col - row) * tw/2          (0,0) is the top corner of the diamond
    y = (col + row) * th/2

STAGGERED (stagger axis y, the default):
    x = col * tw + (tw/2 if row is staggered)
    y = row * th/2

    Stagger axis x swaps the roles: columns advance by tw/2 and staggered
    columns are pushed down by th/2.

HEXAGONAL (stagger axis y, the default):
    y = row * (th + hexside)/2
    x = col * tw + (tw/2 if row is staggered)

    Stagger axis x: columns advance by (tw + hexside)/2, staggered
    columns are pushed down by th/2.

"Staggered" means an odd index when staggerindex is "odd" (the default)
and an even index when it is "even".

Only grid -> pixel is provided. Unknown orientations are placed as
orthogonal.

=============================================================================
"""

from typing import Optional, Tuple, Any
from dataclasses import dataclass

import numpy as np

from ..resolved import ResolvedMap, ResolvedTileLayer


@dataclass
class MapContext:
    """Static map data needed to place tiles."""
    orientation: str
    tilewidth: int
    tileheight: int
    hexsidelength: Optional[int] = None
    staggeraxis: Optional[str] = None
    staggerindex: Optional[str] = None
    renderorder: str = "right-down"
    mapwidth: int = 0
    mapheight: int = 0

    @classmethod
    def from_map(cls, resolved: ResolvedMap) -> 'MapContext':
        return cls(
            orientation=resolved.orientation,
            tilewidth=resolved.tilewidth,
            tileheight=resolved.tileheight,
            hexsidelength=resolved.hexsidelength,
            staggeraxis=resolved.staggeraxis,
            staggerindex=resolved.staggerindex,
            renderorder=resolved.renderorder,
            mapwidth=resolved.width,
            mapheight=resolved.height
        )


@dataclass
class TilePosition:
    """Pixel offset of a tile's top-left anchor."""
    x: float
    y: float


def _staggered(index: Any, ctx: MapContext) -> Any:
    if ctx.staggerindex == 'even':
        return index % 2 == 0
    return index % 2 != 0


def grid_to_pixels(cols: Any, rows: Any, ctx: MapContext) -> Tuple[np.ndarray, np.ndarray]:
    """
    Vectorized tile_to_pixel().

    cols/rows may be scalars or array-likes of the same shape. Returns
    (xs, ys) as numpy float arrays.
    """
    cols = np.asarray(cols)
    rows = np.asarray(rows)
    tw = ctx.tilewidth
    th = ctx.tileheight

    if ctx.orientation == 'isometric':
        xs = (cols - rows) * (tw / 2)
        ys = (cols + rows) * (th / 2)

    elif ctx.orientation in ('staggered', 'hexagonal'):
        hexside = (ctx.hexsidelength or 0) if ctx.orientation == 'hexagonal' else None

        if ctx.staggeraxis == 'x':
            # Staggered maps step half a tile per column, hex maps step
            # half of (tile + side)
            pitch = tw / 2 if hexside is None else (tw + hexside) / 2
            xs = cols * pitch
            ys = rows * th + np.where(_staggered(cols, ctx), th / 2, 0)
        else:
            pitch = th / 2 if hexside is None else (th + hexside) / 2
            xs = cols * tw + np.where(_staggered(rows, ctx), tw / 2, 0)
            ys = rows * pitch

    else:
        xs = cols * tw
        ys = rows * th

    return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)


def tile_to_pixel(col: int, row: int, ctx: MapContext) -> TilePosition:
    """
    Pixel offset of grid cell (col, row).

    Example (orthogonal, 32x32 tiles):
        tile_to_pixel(3, 2, ctx) -> TilePosition(x=96.0, y=64.0)
    """
    xs, ys = grid_to_pixels(col, row, ctx)
    return TilePosition(float(xs), float(ys))


def layer_pixel_positions(layer: ResolvedTileLayer, ctx: MapContext) -> np.ndarray:
    """
    Pixel offsets of every non-empty tile in a resolved tile layer.

    Returns an (N, 2) float array in the same order as layer.iter_tiles(),
    so row i belongs to the i-th tile it yields. Chunk positions are added
    to the in-chunk coordinates before projecting.
    """
    cells = [(x, y) for x, y, _ in layer.iter_tiles()]
    if not cells:
        return np.zeros((0, 2), dtype=float)

    grid = np.array(cells)
    xs, ys = grid_to_pixels(grid[:, 0], grid[:, 1], ctx)
    return np.stack([xs, ys], axis=1)
