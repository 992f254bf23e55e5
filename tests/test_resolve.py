import asyncio
import base64
import struct
import zlib

import numpy as np
import pytest

from tmx_resolve.document import (
    Chunk, Image, ImageLayer, LayerGroup, MapObject, ObjectGroup, Property,
    Tile, TiledMap, TileLayer, Tileset, TilesetRef,
)
from tmx_resolve.errors import (
    CompressionRequiresAsyncError,
    MissingExternalTilesetError,
    UnknownTileGidError,
    UnsupportedEncodingError,
)
from tmx_resolve.parser.codec import DEFAULT_READ_SIZE
from tmx_resolve.parser.gid import FLIPPED_VERTICALLY_FLAG
from tmx_resolve.parser.resolve import (
    derive_columns,
    find_tileset_index,
    resolve_gids,
    resolve_map,
    resolve_map_async,
    resolve_tileset,
    resolve_tilesets,
)
from tmx_resolve.resolved import (
    ResolvedGroupLayer, ResolvedImageLayer, ResolvedObjectLayer, ResolvedTileLayer,
)


def _zlib_b64(gids):
    raw = struct.pack('<%dI' % len(gids), *gids)
    return base64.b64encode(zlib.compress(raw)).decode('ascii')


# --- Fixtures for common test data ---

@pytest.fixture
def terrain():
    return Tileset(firstgid=1, name="terrain", tilewidth=32, tileheight=32,
                   tilecount=16, columns=4,
                   image=Image(source="tiles.png", width=128, height=128))


@pytest.fixture
def props():
    return Tileset(firstgid=17, name="props", tilewidth=32, tileheight=32,
                   tilecount=8, columns=0,
                   image=Image(source="props.png", width=256, height=32),
                   tiles=[Tile(id=2, type="chest")])


def make_map(**overrides):
    fields = dict(orientation="orthogonal", renderorder="right-down",
                  width=2, height=2, tilewidth=32, tileheight=32)
    fields.update(overrides)
    return TiledMap(**fields)


# --- Tilesets ---

@pytest.mark.parametrize("image_width, tile_width, margin, spacing, expected", [
    (1024, 256, 0, 0, 4),
    (69, 32, 2, 1, 2),
    (128, 32, 0, 0, 4),
])
def test_derive_columns(image_width, tile_width, margin, spacing, expected):
    tileset = Tileset(name="t", tilewidth=tile_width, tileheight=32,
                      margin=margin, spacing=spacing,
                      image=Image(source="t.png", width=image_width))
    assert derive_columns(tileset) == expected


def test_explicit_columns_win():
    tileset = Tileset(name="t", tilewidth=32, tileheight=32, columns=7,
                      image=Image(source="t.png", width=1024))
    assert derive_columns(tileset) == 7


def test_columns_without_image_or_tile_width():
    assert derive_columns(Tileset(name="t", tilewidth=32, tileheight=32)) == 0
    assert derive_columns(Tileset(name="t", tilewidth=0, tileheight=32,
                                  image=Image(source="t.png", width=64))) == 0


def test_resolve_tileset_defaults(props):
    resolved = resolve_tileset(props)
    assert resolved.columns == 8
    assert resolved.tileoffset == (0, 0)
    assert resolved.objectalignment == "unspecified"
    assert resolved.tilerendersize == "tile"
    assert resolved.fillmode == "stretch"
    assert resolved.image == "props.png"
    assert set(resolved.tiles) == {2}
    assert resolved.tiles[2].type == "chest"


def test_resolve_tileset_keeps_explicit_fields():
    tileset = Tileset(name="iso", tilewidth=64, tileheight=32, tileoffset=(0, 16),
                      objectalignment="bottom", tilerendersize="grid",
                      fillmode="preserve-aspect-fit")
    resolved = resolve_tileset(tileset)
    assert resolved.tileoffset == (0, 16)
    assert resolved.objectalignment == "bottom"
    assert resolved.tilerendersize == "grid"
    assert resolved.fillmode == "preserve-aspect-fit"


def test_tile_rect_uses_margin_and_spacing():
    tileset = resolve_tileset(Tileset(name="t", tilewidth=32, tileheight=32,
                                      margin=2, spacing=1,
                                      image=Image(source="t.png", width=69)))
    assert tileset.tile_rect(0) == (2, 2, 32, 32)
    assert tileset.tile_rect(3) == (35, 35, 32, 32)


def test_external_tileset_missing():
    entries = [TilesetRef(firstgid=1, source="missing.tsx")]
    with pytest.raises(MissingExternalTilesetError) as excinfo:
        resolve_tilesets(entries, {})
    assert excinfo.value.source == "missing.tsx"
    assert "missing.tsx" in str(excinfo.value)


def test_external_tileset_uses_reference_firstgid(terrain):
    entries = [TilesetRef(firstgid=101, source="terrain.tsx")]
    resolved = resolve_tilesets(entries, {"terrain.tsx": terrain})
    assert resolved[0].name == "terrain"
    assert resolved[0].firstgid == 101
    # The supplied definition is not modified
    assert terrain.firstgid == 1


# --- GID -> tileset ---

def test_find_tileset_index(terrain, props):
    tilesets = resolve_tilesets([terrain, props])
    assert find_tileset_index(1, tilesets) == 0
    assert find_tileset_index(16, tilesets) == 0
    assert find_tileset_index(17, tilesets) == 1
    assert find_tileset_index(500, tilesets) == 1


def test_gid_below_every_tileset_falls_back_to_first():
    tilesets = resolve_tilesets([Tileset(firstgid=10, name="late", tilewidth=8, tileheight=8)])
    assert find_tileset_index(3, tilesets) == 0
    tile = resolve_gids([3], tilesets)[0]
    assert tile.tileset_index == 0
    assert tile.local_id == -7


def test_strict_mode_rejects_unowned_gid():
    tilesets = resolve_tilesets([Tileset(firstgid=10, name="late", tilewidth=8, tileheight=8)])
    with pytest.raises(UnknownTileGidError) as excinfo:
        resolve_gids([3], tilesets, strict=True)
    assert excinfo.value.gid == 3


def test_resolve_gids_across_tilesets(terrain, props):
    tilesets = resolve_tilesets([terrain, props])
    tiles = resolve_gids([0, 5, 19 | FLIPPED_VERTICALLY_FLAG], tilesets)
    assert tiles[0] is None
    assert (tiles[1].gid, tiles[1].local_id, tiles[1].tileset_index) == (5, 4, 0)
    assert (tiles[2].gid, tiles[2].local_id, tiles[2].tileset_index) == (19, 2, 1)
    assert tiles[2].vertical_flip


def test_resolve_gids_without_tilesets_keeps_placeholders():
    tile = resolve_gids([4], [])[0]
    assert (tile.gid, tile.local_id, tile.tileset_index) == (4, 0, 0)


# --- Maps and layers ---

def test_minimal_map():
    resolved = resolve_map(make_map(renderorder=None))
    assert resolved.orientation == "orthogonal"
    assert resolved.renderorder == "right-down"
    assert (resolved.width, resolved.height) == (2, 2)
    assert resolved.layers == []
    assert resolved.tilesets == []
    assert resolved.infinite is False
    assert (resolved.parallaxoriginx, resolved.parallaxoriginy) == (0, 0)


def test_finite_tile_layer(terrain):
    raw = make_map(tilesets=[terrain],
                   layers=[TileLayer(id=1, name="ground", width=2, height=2,
                                     data=[1, 2, 3, 0])])
    resolved = resolve_map(raw)

    assert resolved.tilesets[0].name == "terrain"
    layer = resolved.layers[0]
    assert isinstance(layer, ResolvedTileLayer)
    assert layer.infinite is False
    assert len(layer.tiles) == 4
    assert (layer.tiles[0].gid, layer.tiles[0].local_id) == (1, 0)
    assert (layer.tiles[2].gid, layer.tiles[2].local_id) == (3, 2)
    assert layer.tiles[3] is None
    assert layer.get_tile(1, 0).gid == 2
    assert layer.get_tile(1, 1) is None
    assert layer.get_tile(5, 5) is None


def test_layer_defaults(terrain):
    raw = make_map(tilesets=[terrain],
                   layers=[TileLayer(id=1, name="ground", width=2, height=2,
                                     data=[0, 0, 0, 0])])
    layer = resolve_map(raw).layers[0]
    assert (layer.offsetx, layer.offsety) == (0, 0)
    assert (layer.parallaxx, layer.parallaxy) == (1, 1)
    assert layer.opacity == 1.0
    assert layer.visible is True
    assert layer.tintcolor is None
    assert layer.locked is None


def test_layer_explicit_values_pass_through():
    raw = make_map(layers=[ObjectGroup(id=3, name="obj", offsetx=4.5, offsety=-2,
                                       parallaxx=0.5, parallaxy=0.25,
                                       tintcolor="#ff0000", class_="enemies",
                                       locked=True, opacity=0.5, visible=False)])
    layer = resolve_map(raw).layers[0]
    assert (layer.offsetx, layer.offsety) == (4.5, -2)
    assert (layer.parallaxx, layer.parallaxy) == (0.5, 0.25)
    assert layer.tintcolor == "#ff0000"
    assert layer.class_ == "enemies"
    assert layer.locked is True
    assert layer.opacity == 0.5
    assert layer.visible is False


def test_infinite_tile_layer(terrain):
    raw = make_map(infinite=True, tilesets=[terrain], layers=[
        TileLayer(id=1, name="ground", chunks=[
            Chunk(x=0, y=0, width=2, height=2, data=[1, 2, 3, 0]),
            Chunk(x=2, y=0, width=2, height=2, data=[4, 5, 0, 6]),
        ])
    ])
    layer = resolve_map(raw).layers[0]

    assert layer.infinite is True
    assert layer.tiles == []
    assert len(layer.chunks) == 2
    assert [t.gid if t else None for t in layer.chunks[0].tiles] == [1, 2, 3, None]
    assert [t.gid if t else None for t in layer.chunks[1].tiles] == [4, 5, None, 6]
    assert layer.chunks[1].x == 2
    assert layer.get_tile(3, 1).gid == 6
    assert layer.get_tile(-1, 0) is None
    assert [(x, y) for x, y, _ in layer.iter_tiles()] == [
        (0, 0), (1, 0), (0, 1), (2, 0), (3, 0), (3, 1)]


def test_image_layer_defaults():
    raw = make_map(layers=[ImageLayer(id=2, name="sky",
                                      image=Image(source="sky.png", width=640, height=480))])
    layer = resolve_map(raw).layers[0]
    assert isinstance(layer, ResolvedImageLayer)
    assert layer.image == "sky.png"
    assert (layer.imagewidth, layer.imageheight) == (640, 480)
    assert layer.repeatx is False and layer.repeaty is False
    assert (layer.x, layer.y) == (0, 0)


def test_image_layer_without_image():
    layer = resolve_map(make_map(layers=[ImageLayer(id=2, name="empty", repeatx=True)])).layers[0]
    assert layer.image == ""
    assert layer.repeatx is True


def test_object_layer():
    spawn = MapObject(id=1, name="spawn", x=100, y=200, point=True)
    raw = make_map(layers=[ObjectGroup(id=1, name="objects", objects=[spawn])])
    layer = resolve_map(raw).layers[0]
    assert isinstance(layer, ResolvedObjectLayer)
    assert layer.draworder == "topdown"
    assert layer.objects == [spawn]
    assert layer.objects[0].point is True


def test_object_layer_index_draworder():
    raw = make_map(layers=[ObjectGroup(id=1, name="objects", draworder="index")])
    assert resolve_map(raw).layers[0].draworder == "index"


def test_group_layer_preserves_order(terrain):
    raw = make_map(tilesets=[terrain], layers=[
        LayerGroup(id=1, name="outer", offsetx=8, layers=[
            TileLayer(id=2, name="a", width=2, height=2, data=[1, 0, 0, 0]),
            LayerGroup(id=3, name="inner", layers=[
                ObjectGroup(id=4, name="b"),
            ]),
            ImageLayer(id=5, name="c"),
        ])
    ])
    resolved = resolve_map(raw)
    outer = resolved.layers[0]
    assert isinstance(outer, ResolvedGroupLayer)
    assert outer.offsetx == 8
    assert outer.parallaxx == 1.0
    assert [layer.name for layer in outer.layers] == ["a", "inner", "c"]
    assert outer.layers[1].layers[0].name == "b"
    assert resolved.get_layer_by_name("b").id == 4
    assert [layer.name for layer in resolved.get_all_layers_flat()] == ["a", "b", "c"]


def test_map_metadata_passes_through():
    raw = make_map(orientation="hexagonal", hexsidelength=16, staggeraxis="x",
                   staggerindex="even", backgroundcolor="#000000",
                   parallaxoriginx=5, tiledversion="1.10.2",
                   properties={"music": Property(name="music", value="theme.ogg")})
    resolved = resolve_map(raw)
    assert resolved.orientation == "hexagonal"
    assert resolved.hexsidelength == 16
    assert (resolved.staggeraxis, resolved.staggerindex) == ("x", "even")
    assert resolved.backgroundcolor == "#000000"
    assert resolved.parallaxoriginx == 5
    assert resolved.parallaxoriginy == 0
    assert resolved.properties["music"].value == "theme.ogg"


def test_tile_definition_lookup(terrain, props):
    raw = make_map(tilesets=[terrain, props],
                   layers=[TileLayer(id=1, name="ground", width=2, height=1, data=[19, 1])])
    resolved = resolve_map(raw)
    chest, grass = resolved.layers[0].tiles
    assert resolved.get_tileset(chest).name == "props"
    assert resolved.get_tile_definition(chest).type == "chest"
    assert resolved.get_tile_definition(grass) is None


def test_missing_external_tileset_aborts_map():
    raw = make_map(tilesets=[TilesetRef(firstgid=1, source="terrain.tsx")],
                   layers=[TileLayer(id=1, name="ground", width=2, height=2,
                                     data=[1, 1, 1, 1])])
    with pytest.raises(MissingExternalTilesetError):
        resolve_map(raw)
    with pytest.raises(MissingExternalTilesetError):
        asyncio.run(resolve_map_async(raw, {}))


def test_external_tileset_supplied(terrain):
    raw = make_map(tilesets=[TilesetRef(firstgid=1, source="terrain.tsx")],
                   layers=[TileLayer(id=1, name="ground", width=2, height=2,
                                     data=[1, 1, 1, 1])])
    resolved = resolve_map(raw, {"terrain.tsx": terrain})
    assert resolved.tilesets[0].name == terrain.name


def test_unsupported_encoding_aborts_map(terrain):
    raw = make_map(tilesets=[terrain], layers=[
        TileLayer(id=1, name="ok", width=2, height=2, data=[1, 1, 1, 1]),
        TileLayer(id=2, name="bad", width=2, height=2, data="AAAA", encoding="hex"),
    ])
    with pytest.raises(UnsupportedEncodingError):
        resolve_map(raw)


def test_raw_map_not_modified(terrain):
    layer = TileLayer(id=1, name="ground", width=2, height=2, data=[1, 2, 3, 0])
    raw = make_map(tilesets=[terrain], layers=[layer])
    resolve_map(raw)
    assert layer.data == [1, 2, 3, 0]
    assert layer.offsetx is None
    assert raw.renderorder == "right-down"


# --- Blocking vs async ---

@pytest.fixture
def compressed_map(terrain):
    return make_map(infinite=True, tilesets=[terrain], layers=[
        LayerGroup(id=1, name="group", layers=[
            TileLayer(id=2, name="ground", encoding="base64", compression="zlib", chunks=[
                Chunk(x=0, y=0, width=2, height=2, data=_zlib_b64([1, 2, 3, 0])),
                Chunk(x=2, y=0, width=2, height=2, data=_zlib_b64([4, 5, 0, 6])),
            ]),
        ]),
        TileLayer(id=3, name="flat", width=2, height=2, encoding="base64",
                  compression="zlib", data=_zlib_b64([7, 0, 0, 8])),
    ])


def test_blocking_fails_fast_on_compression(compressed_map):
    with pytest.raises(CompressionRequiresAsyncError):
        resolve_map(compressed_map)


def test_async_resolves_compressed(compressed_map):
    resolved = asyncio.run(resolve_map_async(compressed_map))
    group, flat = resolved.layers
    ground = group.layers[0]
    assert [c.x for c in ground.chunks] == [0, 2]
    assert [t.gid if t else None for t in ground.chunks[1].tiles] == [4, 5, None, 6]
    assert [t.gid if t else None for t in flat.tiles] == [7, None, None, 8]


def test_async_matches_blocking_without_compression(terrain, props):
    raw = make_map(tilesets=[terrain, props], layers=[
        TileLayer(id=1, name="csv", width=2, height=2, encoding="csv", data="1,2,\n19,0"),
        LayerGroup(id=2, name="group", layers=[
            TileLayer(id=3, name="chunks", chunks=[
                Chunk(x=-2, y=0, width=2, height=1, data=[1, 0]),
                Chunk(x=0, y=0, width=2, height=1, data=[0, 17]),
            ]),
            ObjectGroup(id=4, name="objects", objects=[MapObject(id=1, name="door")]),
        ]),
        ImageLayer(id=5, name="sky", image=Image(source="sky.png")),
    ])
    assert asyncio.run(resolve_map_async(raw)) == resolve_map(raw)


def test_async_keeps_chunk_order_when_later_chunk_finishes_first(terrain):
    # Incompressible payload: its stream needs several reads, the small one needs one
    big_gids = np.random.default_rng(3).integers(1, 1 << 28, size=256 * 256, dtype=np.uint32)
    big = zlib.compress(big_gids.astype('<u4').tobytes())
    assert len(big) > 2 * DEFAULT_READ_SIZE

    raw = make_map(infinite=True, tilesets=[terrain], layers=[
        TileLayer(id=1, name="ground", encoding="base64", compression="zlib", chunks=[
            Chunk(x=0, y=0, width=256, height=256,
                  data=base64.b64encode(big).decode('ascii')),
            Chunk(x=256, y=0, width=2, height=1, data=_zlib_b64([5, 6])),
        ]),
    ])

    ground = asyncio.run(resolve_map_async(raw)).layers[0]
    assert [(c.x, c.y) for c in ground.chunks] == [(0, 0), (256, 0)]
    assert [t.gid for t in ground.chunks[0].tiles] == big_gids.tolist()
    assert [t.gid for t in ground.chunks[1].tiles] == [5, 6]
