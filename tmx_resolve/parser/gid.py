"""
Global tile ID (GID) decoding

=============================================================================
GID BIT LAYOUT
=============================================================================

A raw GID is an unsigned 32-bit value. The top bits are orientation flags,
the rest is the tile id:

    bit 31  0x80000000  flipped horizontally
    bit 30  0x40000000  flipped vertically
    bit 29  0x20000000  flipped diagonally (swap x/y axes)
    bit 28  0x10000000  rotated 120 degrees (hexagonal maps only)
    bits 0-27           tile id (0 = empty cell)

The 120 degree hexagonal flag is masked off but not reported.

=============================================================================
"""

from typing import Optional

from ..resolved import DecodedTile

FLIPPED_HORIZONTALLY_FLAG = 0x80000000
FLIPPED_VERTICALLY_FLAG = 0x40000000
FLIPPED_DIAGONALLY_FLAG = 0x20000000
ROTATED_HEXAGONAL_120_FLAG = 0x10000000
GID_MASK = 0x0FFFFFFF


def decode_gid(raw: int) -> Optional[DecodedTile]:
    """
    Split a raw 32-bit GID into tile id and flip flags.

    Returns None for an empty cell. local_id and tileset_index are left at 0;
    only the resolver knows which tileset owns the tile.

    Example:
        decode_gid(10 | FLIPPED_HORIZONTALLY_FLAG)
        -> DecodedTile(gid=10, horizontal_flip=True, ...)
    """
    gid = raw & GID_MASK
    if gid == 0:
        return None

    return DecodedTile(
        gid=gid,
        horizontal_flip=bool(raw & FLIPPED_HORIZONTALLY_FLAG),
        vertical_flip=bool(raw & FLIPPED_VERTICALLY_FLAG),
        diagonal_flip=bool(raw & FLIPPED_DIAGONALLY_FLAG)
    )
