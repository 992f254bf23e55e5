import pytest

from tmx_resolve.parser.gid import (
    decode_gid,
    FLIPPED_HORIZONTALLY_FLAG,
    FLIPPED_VERTICALLY_FLAG,
    FLIPPED_DIAGONALLY_FLAG,
    ROTATED_HEXAGONAL_120_FLAG,
)
from tmx_resolve.resolved import DecodedTile


def test_zero_is_empty():
    assert decode_gid(0) is None


def test_flags_only_is_empty():
    # All flip bits set but no tile id
    assert decode_gid(FLIPPED_HORIZONTALLY_FLAG | FLIPPED_VERTICALLY_FLAG) is None


def test_plain_gid():
    tile = decode_gid(42)
    assert tile == DecodedTile(gid=42)
    assert not tile.flipped
    assert tile.local_id == 0
    assert tile.tileset_index == 0


def test_horizontal_flip():
    tile = decode_gid(10 | FLIPPED_HORIZONTALLY_FLAG)
    assert tile.gid == 10
    assert tile.horizontal_flip is True
    assert tile.vertical_flip is False
    assert tile.diagonal_flip is False


@pytest.mark.parametrize("flag, attr", [
    (FLIPPED_HORIZONTALLY_FLAG, "horizontal_flip"),
    (FLIPPED_VERTICALLY_FLAG, "vertical_flip"),
    (FLIPPED_DIAGONALLY_FLAG, "diagonal_flip"),
])
def test_each_flag_is_independent(flag, attr):
    tile = decode_gid(7 | flag)
    assert tile.gid == 7
    for name in ("horizontal_flip", "vertical_flip", "diagonal_flip"):
        assert getattr(tile, name) is (name == attr)


def test_all_flags():
    raw = 1 | FLIPPED_HORIZONTALLY_FLAG | FLIPPED_VERTICALLY_FLAG | FLIPPED_DIAGONALLY_FLAG
    tile = decode_gid(raw)
    assert tile.gid == 1
    assert tile.horizontal_flip and tile.vertical_flip and tile.diagonal_flip
    assert tile.flipped


def test_hexagonal_rotation_bit_is_masked_not_reported():
    tile = decode_gid(5 | ROTATED_HEXAGONAL_120_FLAG)
    assert tile == DecodedTile(gid=5)
