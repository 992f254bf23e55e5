"""
Raw Tiled document model (TMX/TSX XML and TMJ/TSJ JSON)

=============================================================================
WHAT LIVES HERE
=============================================================================

These dataclasses hold a map exactly as the document describes it. Nothing
is decoded or defaulted beyond what the file format itself defines:

- Tile payloads stay as written: base64/CSV text, JSON integer arrays, or
  the XML <tile gid="..."/> entries themselves
- External tilesets stay as TilesetRef(firstgid, source)
- Optional layer attributes (offsets, parallax, draw order...) stay None
  when absent, so the resolver can apply the defaults in one place

Turning this into something a renderer can use is the job of
tmx_resolve.parser (see resolve_map / resolve_map_async).

=============================================================================
DOCUMENT STRUCTURE
=============================================================================

    <map version="1.10" orientation="orthogonal" width="100" height="100"
         tilewidth="32" tileheight="32" infinite="0">

        <tileset firstgid="1" name="terrain" tilewidth="32" tileheight="32">
            <image source="terrain.png" width="256" height="256"/>
        </tileset>
        <tileset firstgid="65" source="props.tsx"/>     (external)

        <layer id="1" name="Ground" width="100" height="100">
            <data encoding="base64" compression="zlib">eJzt...</data>
        </layer>

        <objectgroup id="2" name="Collisions">
            <object id="1" x="100" y="200" width="32" height="32"/>
        </objectgroup>

        <imagelayer id="3" name="Sky">
            <image source="sky.png"/>
        </imagelayer>

        <group id="4" name="Decor"> ...more layers... </group>
    </map>

The JSON format (TMJ) carries the same information with "type" fields
("tilelayer", "objectgroup", "imagelayer", "group") instead of tag names.

=============================================================================
INFINITE MAPS
=============================================================================

Infinite maps do not store one width x height grid. Instead, each tile
layer's <data> holds independently positioned chunks:

    <data encoding="csv">
        <chunk x="-16" y="0" width="16" height="16">1,2,3,...</chunk>
        <chunk x="0" y="0" width="16" height="16">...</chunk>
    </data>

Every chunk shares the layer's encoding and compression.

=============================================================================
"""

import json
import logging
import xml.etree.ElementTree as ET
from typing import Optional, List, Dict, Any, Union, Tuple
from dataclasses import dataclass, field
from pathlib import Path

from .errors import DocumentError

logger = logging.getLogger(__name__)


# =============================================================================
# ATTRIBUTE HELPERS
# =============================================================================

def _opt_int(elem: ET.Element, name: str) -> Optional[int]:
    value = elem.get(name)
    return int(value) if value is not None else None


def _opt_float(elem: ET.Element, name: str) -> Optional[float]:
    value = elem.get(name)
    return float(value) if value is not None else None


def _bool(elem: ET.Element, name: str, default: bool = False) -> bool:
    # TMX writes booleans as "1"/"0", a few attributes as "true"/"false"
    value = elem.get(name)
    if value is None:
        return default
    return value in ('1', 'true')


def _opt_bool(elem: ET.Element, name: str) -> Optional[bool]:
    if elem.get(name) is None:
        return None
    return _bool(elem, name)


def _properties_from_xml(elem: ET.Element) -> Dict[str, 'Property']:
    properties = {}
    props_elem = elem.find('properties')
    if props_elem is not None:
        for prop_elem in props_elem.findall('property'):
            prop = Property.from_xml(prop_elem)
            # Store by name for O(1) lookup
            properties[prop.name] = prop
    return properties


def _properties_from_json(data: Dict[str, Any]) -> Dict[str, 'Property']:
    properties = {}
    for item in data.get('properties') or []:
        prop = Property.from_json(item)
        properties[prop.name] = prop
    return properties


# =============================================================================
# PROPERTY CLASS
# =============================================================================

@dataclass
class Property:
    """
    Custom property attached to any Tiled element.

    Supported types: string (default), int, float, bool, color, file,
    object and class. Values are converted to Python types on load; color
    and file stay strings, class becomes a dict of nested values.
    """
    name: str
    type: str = "string"
    value: Any = None
    propertytype: Optional[str] = None           # Custom type name (class/enum)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Property':
        """
        Parse property from XML element.

        XML format:
            <property name="solid" type="bool" value="true"/>
            <property name="health" type="int" value="100"/>
            <property name="notes">multi-line
            text lives in the element body</property>
        """
        prop_type = elem.get('type', 'string')

        if prop_type == 'class':
            # Nested members: <property type="class"><properties>...</properties>
            value = {name: prop.value
                     for name, prop in _properties_from_xml(elem).items()}
        else:
            value = elem.get('value')
            if value is None:
                value = elem.text or ''
            value = cls._convert(prop_type, value)

        return cls(name=elem.get('name', ''), type=prop_type, value=value,
                   propertytype=elem.get('propertytype'))

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'Property':
        """Parse property from a TMJ {"name", "type", "value"} entry."""
        # JSON already carries typed values
        return cls(
            name=data.get('name', ''),
            type=data.get('type', 'string'),
            value=data.get('value'),
            propertytype=data.get('propertytype')
        )

    @staticmethod
    def _convert(prop_type: str, value: str) -> Any:
        if prop_type == 'int' or prop_type == 'object':
            return int(value) if value else 0
        if prop_type == 'float':
            return float(value) if value else 0.0
        if prop_type == 'bool':
            return value.lower() == 'true'
        return value


# =============================================================================
# IMAGE CLASS
# =============================================================================

@dataclass
class Image:
    """
    Image reference used by tilesets, tiles and image layers.

    source: path relative to the document that references it
    trans:  transparent color in hex ("ff00ff" = magenta becomes transparent)
    """
    source: str
    width: Optional[int] = None
    height: Optional[int] = None
    trans: Optional[str] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Image':
        return cls(
            source=elem.get('source', ''),
            width=_opt_int(elem, 'width'),
            height=_opt_int(elem, 'height'),
            trans=elem.get('trans')
        )

    @classmethod
    def from_json(cls, data: Dict[str, Any], prefix: str = 'image') -> Optional['Image']:
        """
        Build from flat TMJ keys ("image", "imagewidth", "imageheight").

        Returns None when the object has no image key.
        """
        source = data.get(prefix)
        if source is None:
            return None
        return cls(
            source=source,
            width=data.get(prefix + 'width'),
            height=data.get(prefix + 'height'),
            trans=data.get('transparentcolor')
        )


# =============================================================================
# SMALL TILESET PARTS
# =============================================================================

@dataclass
class Frame:
    """One animation frame: show local tile `tileid` for `duration` ms."""
    tileid: int
    duration: int


@dataclass
class Transformations:
    """Which flips/rotations the tileset allows when painting."""
    hflip: bool = False
    vflip: bool = False
    rotate: bool = False
    preferuntransformed: bool = False

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Transformations':
        return cls(
            hflip=_bool(elem, 'hflip'),
            vflip=_bool(elem, 'vflip'),
            rotate=_bool(elem, 'rotate'),
            preferuntransformed=_bool(elem, 'preferuntransformed')
        )

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'Transformations':
        return cls(
            hflip=bool(data.get('hflip', False)),
            vflip=bool(data.get('vflip', False)),
            rotate=bool(data.get('rotate', False)),
            preferuntransformed=bool(data.get('preferuntransformed', False))
        )


@dataclass
class Grid:
    """Grid used for tile objects of an image collection tileset."""
    orientation: str = "orthogonal"
    width: int = 0
    height: int = 0


# =============================================================================
# TILE CLASS
# =============================================================================

@dataclass
class Tile:
    """
    Per-tile definition inside a tileset.

    Only tiles with extra data are listed in a tileset: custom properties,
    an animation, collision shapes (an embedded object group) or, for
    image collection tilesets, their own image.

    The 'id' is LOCAL to the tileset. Its global id is firstgid + id.
    """
    id: int
    type: str = ""
    probability: Optional[float] = None
    x: Optional[int] = None                          # Sub-rectangle in image
    y: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    image: Optional[Image] = None
    animation: List[Frame] = field(default_factory=list)
    objectgroup: Optional['ObjectGroup'] = None      # Collision shapes
    properties: Dict[str, Property] = field(default_factory=dict)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Tile':
        """Parse tile from XML element."""
        tile = cls(
            id=int(elem.get('id', 0)),
            # 'class' replaced 'type' in Tiled 1.9
            type=elem.get('type') or elem.get('class') or '',
            probability=_opt_float(elem, 'probability'),
            x=_opt_int(elem, 'x'),
            y=_opt_int(elem, 'y'),
            width=_opt_int(elem, 'width'),
            height=_opt_int(elem, 'height'),
            properties=_properties_from_xml(elem)
        )

        img_elem = elem.find('image')
        if img_elem is not None:
            tile.image = Image.from_xml(img_elem)

        anim_elem = elem.find('animation')
        if anim_elem is not None:
            tile.animation = [
                Frame(tileid=int(f.get('tileid', 0)),
                      duration=int(f.get('duration', 0)))
                for f in anim_elem.findall('frame')
            ]

        og_elem = elem.find('objectgroup')
        if og_elem is not None:
            tile.objectgroup = ObjectGroup.from_xml(og_elem)

        return tile

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'Tile':
        """Parse tile from a TMJ tileset "tiles" entry."""
        tile = cls(
            id=int(data.get('id', 0)),
            type=data.get('type') or data.get('class') or '',
            probability=data.get('probability'),
            x=data.get('x'),
            y=data.get('y'),
            width=data.get('width'),
            height=data.get('height'),
            image=Image.from_json(data),
            properties=_properties_from_json(data)
        )
        tile.animation = [Frame(tileid=f.get('tileid', 0), duration=f.get('duration', 0))
                          for f in data.get('animation') or []]
        if data.get('objectgroup'):
            tile.objectgroup = ObjectGroup.from_json(data['objectgroup'])
        return tile


# =============================================================================
# TILESET CLASSES
# =============================================================================

@dataclass
class Tileset:
    """
    Inline tileset definition - a collection of tile graphics.

    ==========================================================================
    SPACING AND MARGIN
    ==========================================================================

    For spritesheets with gaps between tiles:

    margin = pixels around the EDGE of the entire image
    spacing = pixels BETWEEN tiles

    +--+===+===+===+--+
    |  | 0 | 1 | 2 |  |  <- margin
    +--+===+===+===+--+
    |  | 3 | 4 | 5 |  |
    +--+===+===+===+--+
         ^
         spacing between tiles

    columns may be 0 in older documents; the resolver derives it from the
    image width in that case.

    ==========================================================================
    EXTERNAL TILESETS
    ==========================================================================

    A TSX/TSJ file holds one of these without a firstgid. The map side only
    has a TilesetRef; the resolver combines the two, using the firstgid from
    the map.

    ==========================================================================
    """
    name: str
    tilewidth: int
    tileheight: int
    firstgid: int = 1
    tilecount: int = 0
    columns: int = 0
    spacing: int = 0
    margin: int = 0
    image: Optional[Image] = None
    tileoffset: Optional[Tuple[int, int]] = None
    objectalignment: Optional[str] = None
    tilerendersize: Optional[str] = None
    fillmode: Optional[str] = None
    backgroundcolor: Optional[str] = None
    class_: Optional[str] = None
    transformations: Optional[Transformations] = None
    grid: Optional[Grid] = None
    tiles: List[Tile] = field(default_factory=list)
    properties: Dict[str, Property] = field(default_factory=dict)

    @classmethod
    def from_xml(cls, elem: ET.Element, firstgid: int = 1) -> 'Tileset':
        """
        Parse tileset from a <tileset> element (inline in a TMX, or TSX root).

        Parameters:
        -----------
        elem : ET.Element
            The <tileset> XML element
        firstgid : int
            First Global ID (from the TMX; a TSX does not carry one)
        """
        tileset = cls(
            firstgid=firstgid,
            name=elem.get('name', ''),
            tilewidth=int(elem.get('tilewidth', 0)),
            tileheight=int(elem.get('tileheight', 0)),
            tilecount=int(elem.get('tilecount', 0)),
            columns=int(elem.get('columns', 0)),
            spacing=int(elem.get('spacing', 0)),
            margin=int(elem.get('margin', 0)),
            objectalignment=elem.get('objectalignment'),
            tilerendersize=elem.get('tilerendersize'),
            fillmode=elem.get('fillmode'),
            backgroundcolor=elem.get('backgroundcolor'),
            class_=elem.get('class'),
            properties=_properties_from_xml(elem)
        )

        img_elem = elem.find('image')
        if img_elem is not None:
            tileset.image = Image.from_xml(img_elem)

        offset_elem = elem.find('tileoffset')
        if offset_elem is not None:
            tileset.tileoffset = (int(offset_elem.get('x', 0)),
                                  int(offset_elem.get('y', 0)))

        grid_elem = elem.find('grid')
        if grid_elem is not None:
            tileset.grid = Grid(
                orientation=grid_elem.get('orientation', 'orthogonal'),
                width=int(grid_elem.get('width', 0)),
                height=int(grid_elem.get('height', 0))
            )

        trans_elem = elem.find('transformations')
        if trans_elem is not None:
            tileset.transformations = Transformations.from_xml(trans_elem)

        # Only tiles with metadata (properties, animations, images) are listed
        tileset.tiles = [Tile.from_xml(t) for t in elem.findall('tile')]

        return tileset

    @classmethod
    def from_json(cls, data: Dict[str, Any], firstgid: Optional[int] = None) -> 'Tileset':
        """Parse tileset from a TMJ "tilesets" entry or a TSJ document."""
        tileset = cls(
            firstgid=firstgid if firstgid is not None else data.get('firstgid', 1),
            name=data.get('name', ''),
            tilewidth=data.get('tilewidth', 0),
            tileheight=data.get('tileheight', 0),
            tilecount=data.get('tilecount', 0),
            columns=data.get('columns', 0),
            spacing=data.get('spacing', 0),
            margin=data.get('margin', 0),
            image=Image.from_json(data),
            objectalignment=data.get('objectalignment'),
            tilerendersize=data.get('tilerendersize'),
            fillmode=data.get('fillmode'),
            backgroundcolor=data.get('backgroundcolor'),
            class_=data.get('class'),
            properties=_properties_from_json(data)
        )

        if data.get('tileoffset'):
            offset = data['tileoffset']
            tileset.tileoffset = (offset.get('x', 0), offset.get('y', 0))
        if data.get('grid'):
            grid = data['grid']
            tileset.grid = Grid(orientation=grid.get('orientation', 'orthogonal'),
                                width=grid.get('width', 0),
                                height=grid.get('height', 0))
        if data.get('transformations'):
            tileset.transformations = Transformations.from_json(data['transformations'])

        tileset.tiles = [Tile.from_json(t) for t in data.get('tiles') or []]
        return tileset


@dataclass
class TilesetRef:
    """Unresolved reference to an external TSX/TSJ tileset."""
    firstgid: int
    source: str


TilesetEntry = Union[Tileset, TilesetRef]


def _tileset_entry_from_xml(elem: ET.Element) -> TilesetEntry:
    firstgid = int(elem.get('firstgid', 1))
    if elem.get('source'):
        # The TMX only contains a reference; actual data is in the TSX
        return TilesetRef(firstgid=firstgid, source=elem.get('source'))
    return Tileset.from_xml(elem, firstgid)


def _tileset_entry_from_json(data: Dict[str, Any]) -> TilesetEntry:
    if data.get('source') and 'name' not in data:
        return TilesetRef(firstgid=data.get('firstgid', 1), source=data['source'])
    return Tileset.from_json(data)


# =============================================================================
# MAP OBJECT CLASS
# =============================================================================

@dataclass
class MapObject:
    """
    Object in an object layer.

    Shape is given by which optional field is set:
    - nothing extra: rectangle (x, y, width, height)
    - point / ellipse flags
    - polygon / polyline: points relative to (x, y)
    - text: dict of text attributes plus the 'text' body
    - gid: tile object (raw GID, flip bits included)
    """
    id: int
    name: str = ""
    type: str = ""
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    rotation: float = 0
    gid: Optional[int] = None
    visible: bool = True
    template: Optional[str] = None
    ellipse: bool = False
    point: bool = False
    polygon: Optional[List[Tuple[float, float]]] = None
    polyline: Optional[List[Tuple[float, float]]] = None
    text: Optional[Dict[str, Any]] = None
    properties: Dict[str, Property] = field(default_factory=dict)

    @staticmethod
    def _parse_points(points: str) -> List[Tuple[float, float]]:
        # "0,0 32,0 32,32"
        result = []
        for pair in points.split():
            px, py = pair.split(',')
            result.append((float(px), float(py)))
        return result

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'MapObject':
        """Parse object from XML element."""
        obj = cls(
            id=int(elem.get('id', 0)),
            name=elem.get('name', ''),
            type=elem.get('type') or elem.get('class') or '',
            x=float(elem.get('x', 0)),
            y=float(elem.get('y', 0)),
            width=float(elem.get('width', 0)),
            height=float(elem.get('height', 0)),
            rotation=float(elem.get('rotation', 0)),
            gid=_opt_int(elem, 'gid'),
            visible=_bool(elem, 'visible', True),
            template=elem.get('template'),
            ellipse=elem.find('ellipse') is not None,
            point=elem.find('point') is not None,
            properties=_properties_from_xml(elem)
        )

        polygon_elem = elem.find('polygon')
        if polygon_elem is not None:
            obj.polygon = cls._parse_points(polygon_elem.get('points', ''))

        polyline_elem = elem.find('polyline')
        if polyline_elem is not None:
            obj.polyline = cls._parse_points(polyline_elem.get('points', ''))

        text_elem = elem.find('text')
        if text_elem is not None:
            obj.text = dict(text_elem.attrib)
            obj.text['text'] = text_elem.text or ''

        return obj

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'MapObject':
        obj = cls(
            id=data.get('id', 0),
            name=data.get('name', ''),
            type=data.get('type') or data.get('class') or '',
            x=data.get('x', 0),
            y=data.get('y', 0),
            width=data.get('width', 0),
            height=data.get('height', 0),
            rotation=data.get('rotation', 0),
            gid=data.get('gid'),
            visible=data.get('visible', True),
            template=data.get('template'),
            ellipse=data.get('ellipse', False),
            point=data.get('point', False),
            text=data.get('text'),
            properties=_properties_from_json(data)
        )
        if data.get('polygon') is not None:
            obj.polygon = [(p['x'], p['y']) for p in data['polygon']]
        if data.get('polyline') is not None:
            obj.polyline = [(p['x'], p['y']) for p in data['polyline']]
        return obj


# =============================================================================
# LAYER CLASSES
# =============================================================================

@dataclass
class LayerBase:
    """
    Attributes every layer kind shares.

    Offsets, parallax factors and the locked flag are None when the document
    omits them; defaults are applied during resolution.
    """
    name: str = ""
    id: int = 0
    class_: Optional[str] = None
    visible: bool = True
    opacity: float = 1.0
    offsetx: Optional[float] = None
    offsety: Optional[float] = None
    parallaxx: Optional[float] = None
    parallaxy: Optional[float] = None
    tintcolor: Optional[str] = None
    locked: Optional[bool] = None
    x: int = 0
    y: int = 0
    properties: Dict[str, Property] = field(default_factory=dict)

    @staticmethod
    def _common_xml(elem: ET.Element) -> Dict[str, Any]:
        return dict(
            name=elem.get('name', ''),
            id=int(elem.get('id', 0)),
            class_=elem.get('class'),
            # '1' is default for visible (absent means visible)
            visible=_bool(elem, 'visible', True),
            opacity=float(elem.get('opacity', 1.0)),
            offsetx=_opt_float(elem, 'offsetx'),
            offsety=_opt_float(elem, 'offsety'),
            parallaxx=_opt_float(elem, 'parallaxx'),
            parallaxy=_opt_float(elem, 'parallaxy'),
            tintcolor=elem.get('tintcolor'),
            locked=_opt_bool(elem, 'locked'),
            x=int(elem.get('x', 0)),
            y=int(elem.get('y', 0)),
            properties=_properties_from_xml(elem)
        )

    @staticmethod
    def _common_json(data: Dict[str, Any]) -> Dict[str, Any]:
        return dict(
            name=data.get('name', ''),
            id=data.get('id', 0),
            class_=data.get('class'),
            visible=data.get('visible', True),
            opacity=data.get('opacity', 1.0),
            offsetx=data.get('offsetx'),
            offsety=data.get('offsety'),
            parallaxx=data.get('parallaxx'),
            parallaxy=data.get('parallaxy'),
            tintcolor=data.get('tintcolor'),
            locked=data.get('locked'),
            x=data.get('x', 0),
            y=data.get('y', 0),
            properties=_properties_from_json(data)
        )


# Integer list, base64/CSV text, or structural <tile>/{"gid"} entries
TilePayload = Union[List[int], str, List[Any]]


def _payload_from_xml(elem: ET.Element, encoding: Optional[str]) -> TilePayload:
    if encoding:
        return (elem.text or '').strip()
    # No encoding: keep the <tile gid="..."/> entries, the codec reads them
    return elem.findall('tile')


@dataclass
class Chunk:
    """Rectangular piece of an infinite layer (tile coordinates)."""
    x: int
    y: int
    width: int
    height: int
    data: TilePayload = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element, encoding: Optional[str]) -> 'Chunk':
        return cls(
            x=int(elem.get('x', 0)),
            y=int(elem.get('y', 0)),
            width=int(elem.get('width', 0)),
            height=int(elem.get('height', 0)),
            data=_payload_from_xml(elem, encoding)
        )

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'Chunk':
        return cls(
            x=data.get('x', 0),
            y=data.get('y', 0),
            width=data.get('width', 0),
            height=data.get('height', 0),
            data=data.get('data', [])
        )


@dataclass
class TileLayer(LayerBase):
    """
    Tile layer - a grid of GIDs, still encoded.

    Exactly one of `data` (finite maps) or `chunks` (infinite maps) is
    normally filled. encoding/compression apply to both.

    ==========================================================================
    DATA ENCODINGS
    ==========================================================================

    1. XML (deprecated):     <data><tile gid="1"/><tile gid="2"/>...</data>
    2. CSV:                  <data encoding="csv">1,2,3,...</data>
    3. Base64:               <data encoding="base64">AQAAAAIAAAA=</data>
    4. Base64 + compression: compression="zlib" | "gzip" | "zstd"
    5. JSON arrays:          "data": [1, 2, 3, ...]

    ==========================================================================
    """
    width: Optional[int] = None
    height: Optional[int] = None
    startx: Optional[int] = None
    starty: Optional[int] = None
    encoding: Optional[str] = None
    compression: Optional[str] = None
    data: TilePayload = field(default_factory=list)
    chunks: List[Chunk] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'TileLayer':
        """Parse tile layer from a <layer> element."""
        layer = cls(
            width=_opt_int(elem, 'width'),
            height=_opt_int(elem, 'height'),
            startx=_opt_int(elem, 'startx'),
            starty=_opt_int(elem, 'starty'),
            **cls._common_xml(elem)
        )

        data_elem = elem.find('data')
        if data_elem is not None:
            layer.encoding = data_elem.get('encoding')
            layer.compression = data_elem.get('compression')

            chunk_elems = data_elem.findall('chunk')
            if chunk_elems:
                layer.chunks = [Chunk.from_xml(c, layer.encoding) for c in chunk_elems]
            else:
                layer.data = _payload_from_xml(data_elem, layer.encoding)

        return layer

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'TileLayer':
        return cls(
            width=data.get('width'),
            height=data.get('height'),
            startx=data.get('startx'),
            starty=data.get('starty'),
            encoding=data.get('encoding'),
            compression=data.get('compression'),
            data=data.get('data', []),
            chunks=[Chunk.from_json(c) for c in data.get('chunks') or []],
            **cls._common_json(data)
        )


@dataclass
class ObjectGroup(LayerBase):
    """Object layer - vector objects (collisions, spawns, triggers...)."""
    draworder: Optional[str] = None                  # "topdown" or "index"
    color: Optional[str] = None
    objects: List[MapObject] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ObjectGroup':
        return cls(
            draworder=elem.get('draworder'),
            color=elem.get('color'),
            objects=[MapObject.from_xml(o) for o in elem.findall('object')],
            **cls._common_xml(elem)
        )

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'ObjectGroup':
        return cls(
            draworder=data.get('draworder'),
            color=data.get('color'),
            objects=[MapObject.from_json(o) for o in data.get('objects') or []],
            **cls._common_json(data)
        )


@dataclass
class ImageLayer(LayerBase):
    """Single image drawn at (x, y) plus the layer offset."""
    image: Optional[Image] = None
    repeatx: Optional[bool] = None
    repeaty: Optional[bool] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ImageLayer':
        img_elem = elem.find('image')
        return cls(
            image=Image.from_xml(img_elem) if img_elem is not None else None,
            repeatx=_opt_bool(elem, 'repeatx'),
            repeaty=_opt_bool(elem, 'repeaty'),
            **cls._common_xml(elem)
        )

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'ImageLayer':
        return cls(
            image=Image.from_json(data),
            repeatx=data.get('repeatx'),
            repeaty=data.get('repeaty'),
            **cls._common_json(data)
        )


@dataclass
class LayerGroup(LayerBase):
    """
    Group of layers - a folder containing other layers.

    Groups can be nested; children keep document order.
    """
    layers: List['Layer'] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'LayerGroup':
        return cls(layers=_layers_from_xml(elem), **cls._common_xml(elem))

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'LayerGroup':
        return cls(layers=_layers_from_json(data.get('layers') or []),
                   **cls._common_json(data))


Layer = Union[TileLayer, ObjectGroup, ImageLayer, LayerGroup]

_XML_LAYER_TAGS = {
    'layer': TileLayer,
    'objectgroup': ObjectGroup,
    'imagelayer': ImageLayer,
    'group': LayerGroup,
}

_JSON_LAYER_TYPES = {
    'tilelayer': TileLayer,
    'objectgroup': ObjectGroup,
    'imagelayer': ImageLayer,
    'group': LayerGroup,
}


def _layers_from_xml(parent: ET.Element) -> List[Layer]:
    # Iterate direct children in order; tileset/properties are skipped
    layers = []
    for child in parent:
        layer_cls = _XML_LAYER_TAGS.get(child.tag)
        if layer_cls is not None:
            layers.append(layer_cls.from_xml(child))
    return layers


def _layers_from_json(items: List[Dict[str, Any]]) -> List[Layer]:
    layers = []
    for item in items:
        layer_cls = _JSON_LAYER_TYPES.get(item.get('type'))
        if layer_cls is None:
            logger.warning("Skipping layer %r with unknown type %r",
                           item.get('name'), item.get('type'))
            continue
        layers.append(layer_cls.from_json(item))
    return layers


# =============================================================================
# TILED MAP CLASS (Main Entry Point)
# =============================================================================

@dataclass
class TiledMap:
    """
    Raw Tiled map - the root object of a TMX/TMJ document.

    ==========================================================================
    USAGE
    ==========================================================================

        raw = TiledMap.load("level1.tmx")
        tilesets = load_external_tilesets(raw, Path("level1.tmx").parent)
        resolved = resolve_map(raw, tilesets)

    ==========================================================================
    """
    version: str = "1.10"
    tiledversion: Optional[str] = None
    orientation: str = "orthogonal"
    renderorder: Optional[str] = None
    width: int = 0
    height: int = 0
    tilewidth: int = 0
    tileheight: int = 0
    infinite: bool = False
    hexsidelength: Optional[int] = None
    staggeraxis: Optional[str] = None                # "x" or "y"
    staggerindex: Optional[str] = None               # "odd" or "even"
    parallaxoriginx: Optional[float] = None
    parallaxoriginy: Optional[float] = None
    backgroundcolor: Optional[str] = None
    class_: Optional[str] = None
    compressionlevel: Optional[int] = None
    nextlayerid: int = 0
    nextobjectid: int = 0
    properties: Dict[str, Property] = field(default_factory=dict)
    tilesets: List[TilesetEntry] = field(default_factory=list)
    layers: List[Layer] = field(default_factory=list)

    @classmethod
    def from_xml(cls, root: ET.Element) -> 'TiledMap':
        """Build from the <map> root element of a TMX document."""
        if root.tag != 'map':
            raise DocumentError(f"Expected root <map> element, got <{root.tag}>")

        return cls(
            version=root.get('version', '1.0'),
            tiledversion=root.get('tiledversion'),
            orientation=root.get('orientation', 'orthogonal'),
            renderorder=root.get('renderorder'),
            width=int(root.get('width', 0)),
            height=int(root.get('height', 0)),
            tilewidth=int(root.get('tilewidth', 0)),
            tileheight=int(root.get('tileheight', 0)),
            infinite=_bool(root, 'infinite'),
            hexsidelength=_opt_int(root, 'hexsidelength'),
            staggeraxis=root.get('staggeraxis'),
            staggerindex=root.get('staggerindex'),
            parallaxoriginx=_opt_float(root, 'parallaxoriginx'),
            parallaxoriginy=_opt_float(root, 'parallaxoriginy'),
            backgroundcolor=root.get('backgroundcolor'),
            class_=root.get('class'),
            compressionlevel=_opt_int(root, 'compressionlevel'),
            nextlayerid=int(root.get('nextlayerid', 0)),
            nextobjectid=int(root.get('nextobjectid', 0)),
            properties=_properties_from_xml(root),
            tilesets=[_tileset_entry_from_xml(t) for t in root.findall('tileset')],
            layers=_layers_from_xml(root)
        )

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'TiledMap':
        """Build from a decoded TMJ document."""
        if data.get('type', 'map') != 'map':
            raise DocumentError(f"Expected a map document, got type {data.get('type')!r}")

        return cls(
            version=str(data.get('version', '1.0')),
            tiledversion=data.get('tiledversion'),
            orientation=data.get('orientation', 'orthogonal'),
            renderorder=data.get('renderorder'),
            width=data.get('width', 0),
            height=data.get('height', 0),
            tilewidth=data.get('tilewidth', 0),
            tileheight=data.get('tileheight', 0),
            infinite=bool(data.get('infinite', False)),
            hexsidelength=data.get('hexsidelength'),
            staggeraxis=data.get('staggeraxis'),
            staggerindex=data.get('staggerindex'),
            parallaxoriginx=data.get('parallaxoriginx'),
            parallaxoriginy=data.get('parallaxoriginy'),
            backgroundcolor=data.get('backgroundcolor'),
            class_=data.get('class'),
            compressionlevel=data.get('compressionlevel'),
            nextlayerid=data.get('nextlayerid', 0),
            nextobjectid=data.get('nextobjectid', 0),
            properties=_properties_from_json(data),
            tilesets=[_tileset_entry_from_json(t) for t in data.get('tilesets') or []],
            layers=_layers_from_json(data.get('layers') or [])
        )

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'TiledMap':
        """
        Load a TMX (XML) or TMJ (JSON) file from disk.

        Raises:
        -------
        FileNotFoundError : If the file doesn't exist
        xml.etree.ElementTree.ParseError / json.JSONDecodeError : If malformed
        DocumentError : If the root is not a map
        """
        filepath = Path(filepath)
        logger.debug("Loading map %s", filepath)

        if _is_json(filepath):
            with open(filepath, encoding='utf-8') as f:
                return cls.from_json(json.load(f))
        return cls.from_xml(ET.parse(filepath).getroot())


def _is_json(filepath: Path) -> bool:
    return filepath.suffix.lower() in ('.tmj', '.tsj', '.json')


# =============================================================================
# EXTERNAL TILESETS
# =============================================================================

def load_tileset(filepath: Union[str, Path]) -> Tileset:
    """Load an external TSX (XML) or TSJ (JSON) tileset."""
    filepath = Path(filepath)

    if _is_json(filepath):
        with open(filepath, encoding='utf-8') as f:
            data = json.load(f)
        if data.get('type', 'tileset') != 'tileset':
            raise DocumentError(f"{filepath}: expected a tileset document")
        return Tileset.from_json(data, firstgid=1)

    root = ET.parse(filepath).getroot()
    if root.tag != 'tileset':
        raise DocumentError(f"Expected root <tileset> element, got <{root.tag}>")
    if root.get('source'):
        raise DocumentError("TSX file should not contain a source reference")
    return Tileset.from_xml(root, firstgid=1)


def load_external_tilesets(tiled_map: TiledMap,
                           base_dir: Union[str, Path] = '.') -> Dict[str, Tileset]:
    """
    Load every TilesetRef of a map into a source -> Tileset table.

    Paths are relative to base_dir (normally the map's directory). Keys are
    the source strings exactly as written in the map, which is what the
    resolver looks up. Missing files are skipped with a warning; resolving
    the map then fails with MissingExternalTilesetError.
    """
    base_dir = Path(base_dir)
    table = {}

    for entry in tiled_map.tilesets:
        if not isinstance(entry, TilesetRef) or entry.source in table:
            continue
        tsx_path = base_dir / entry.source
        try:
            table[entry.source] = load_tileset(tsx_path)
        except FileNotFoundError:
            logger.warning("External tileset not found: %s", tsx_path)

    return table
