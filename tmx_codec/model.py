"""
Object model for TMX (Tiled Map XML) documents: parsing, querying, saving.

=============================================================================
TMX FILE STRUCTURE
=============================================================================

    <map version="1.0" orientation="orthogonal" width="71" height="40"
         tilewidth="16" tileheight="16">
        <properties>
            <property name="time1" value="16"/>
        </properties>
        <tileset firstgid="1" name="sprites32" tilewidth="32" tileheight="32">
            <image source="sprites32.png" width="512" height="64"/>
        </tileset>
        <layer name="Ground" width="71" height="40">
            <data encoding="base64" compression="zlib">eJzt2MsKwj...</data>
        </layer>
        <objectgroup name="Spawns">
            <object x="100" y="200" width="32" height="32"/>
        </objectgroup>
        <imagelayer name="Sky">
            <image source="sky.png"/>
        </imagelayer>
    </map>

Every element maps onto a dataclass with a from_xml()/to_xml() pair. The
mapping itself is plain attribute copying; the interesting parts live in
data.py (payload codec) and tiles.py (GID resolution).

=============================================================================
DEFAULT VALUES
=============================================================================

Layers store opacity and visibility as optional attributes:

    opacity absent  -> 1.0      visible absent -> True
    opacity="0.5"   -> 0.5      visible="0"    -> False

The raw attribute text is kept in raw_opacity / raw_visible. Two explicit
passes convert between the raw text and the typed fields:

    parse:      XML -> dataclasses -> after_parse()      (raw -> typed)
    serialize:  before_serialize() -> dataclasses -> XML (typed -> raw)

before_serialize() omits the attribute whenever the value is the default.

=============================================================================
USAGE
=============================================================================

    tmx_map = TiledMap.load("level1.tmx")
    tiles = tmx_map.tiles_from_layer_name("Ground")   # drawable tiles

    layer = tmx_map.layer_by_index(0)
    grid = layer.get_grid()
    grid.set(3, 4, GridTile(id=7, flip_x=True))
    layer.set_grid(grid)
    tmx_map.save("level1_edited.tmx")

=============================================================================
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from .data import Data, DataTileGrid
from .errors import (
    LayerIndexError,
    LayerNotFoundError,
    MalformedTileDataError,
    TmxError,
    TmxParseError,
    TmxSerializeError,
    TmxLookupError,
)
from .gid import unpack_gid
from .tiles import Bounds, Tile, build_layer_tiles, find_tileset, sort_tilesets

logger = logging.getLogger(__name__)

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'
INDENT = "  "

DEFAULT_OPACITY = 1.0
DEFAULT_VISIBLE = True

Number = Union[int, float]


# =============================================================================
# ATTRIBUTE HELPERS
# =============================================================================

def _int(elem: ET.Element, name: str, default: Optional[int] = 0) -> Optional[int]:
    value = elem.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _number(elem: ET.Element, name: str, default: Optional[Number] = 0) -> Optional[Number]:
    """Read a numeric attribute, keeping integers as int so they save unchanged."""
    value = elem.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return float(value)


def _set_if(elem: ET.Element, name: str, value):
    """Set the attribute only when value is not None/empty."""
    if value is not None and value != '':
        elem.set(name, str(value))


def parse_opacity(raw: Optional[str]) -> float:
    if raw is None or not raw.strip():
        return DEFAULT_OPACITY
    return float(raw)


def parse_visible(raw: Optional[str]) -> bool:
    """Visibility is a truthy integer: "0" hides, any positive value shows."""
    if raw is None or not raw.strip():
        return DEFAULT_VISIBLE
    return int(raw) > 0


def format_opacity(opacity: float) -> str:
    """Empty string for the default, else the shortest float32 text."""
    if opacity == DEFAULT_OPACITY:
        return ''
    return np.format_float_positional(np.float32(opacity), trim='-')


def format_visible(visible: bool) -> str:
    return '' if visible else '0'


# =============================================================================
# PROPERTIES
# =============================================================================

@dataclass
class Property:
    """
    Custom name/value pair attached to a map, tileset, layer or object.

    Values are kept as text. Multi-line values are stored as element text
    rather than in the value attribute:

        <property name="speed" value="2"/>
        <property name="dialogue">Hello
        there</property>
    """
    name: str
    value: str = ""
    type: Optional[str] = None       # Only written back when present

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Property':
        value = elem.get('value')
        if value is None:
            value = elem.text or ''
        return cls(name=elem.get('name', ''), value=value, type=elem.get('type'))

    def to_xml(self) -> ET.Element:
        elem = ET.Element('property')
        elem.set('name', self.name)
        _set_if(elem, 'type', self.type)
        if '\n' in self.value:
            elem.text = self.value
        else:
            elem.set('value', self.value)
        return elem


class Properties(list):
    """Ordered list of Property with lookup by name."""

    def get(self, name: str) -> Optional[Property]:
        for prop in self:
            if prop.name == name:
                return prop
        return None

    def get_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        prop = self.get(name)
        return default if prop is None else prop.value

    def set(self, name: str, value: str):
        """Replace the value of an existing property or append a new one."""
        prop = self.get(name)
        if prop is None:
            self.append(Property(name=name, value=value))
        else:
            prop.value = value

    @classmethod
    def from_xml(cls, parent: ET.Element) -> 'Properties':
        """Collect the <properties> child of parent (empty if absent)."""
        props = cls()
        props_elem = parent.find('properties')
        if props_elem is not None:
            for prop_elem in props_elem.findall('property'):
                props.append(Property.from_xml(prop_elem))
        return props

    def append_to(self, parent: ET.Element):
        """Add a <properties> child to parent if there is anything to write."""
        if self:
            props_elem = ET.SubElement(parent, 'properties')
            for prop in self:
                props_elem.append(prop.to_xml())


# =============================================================================
# IMAGE
# =============================================================================

@dataclass
class Image:
    """
    Image reference used by tilesets, tiles, objects and image layers.

    width/height are the image size in pixels; the tileset uses them to work
    out how many tiles fit in a row (see Tileset.texture_bounds).
    """
    source: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None     # For embedded images
    id: Optional[int] = None         # Legacy, still round-tripped
    trans: Optional[str] = None      # Transparent color, e.g. "ff00ff"
    data: Optional[Data] = None      # Embedded image payload

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Image':
        data_elem = elem.find('data')
        return cls(
            source=elem.get('source', ''),
            width=_int(elem, 'width', None),
            height=_int(elem, 'height', None),
            format=elem.get('format'),
            id=_int(elem, 'id', None),
            trans=elem.get('trans'),
            data=Data.from_xml(data_elem) if data_elem is not None else None
        )

    def to_xml(self) -> ET.Element:
        elem = ET.Element('image')
        _set_if(elem, 'format', self.format)
        _set_if(elem, 'id', self.id)
        elem.set('source', self.source)
        _set_if(elem, 'trans', self.trans)
        _set_if(elem, 'width', self.width)
        _set_if(elem, 'height', self.height)
        if self.data is not None:
            elem.append(self.data.to_xml())
        return elem


# =============================================================================
# TILESET
# =============================================================================

@dataclass
class TileOffset:
    """Drawing offset for every tile of a tileset (positive y is down)."""
    x: int = 0
    y: int = 0

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'TileOffset':
        return cls(x=_int(elem, 'x'), y=_int(elem, 'y'))

    def to_xml(self) -> ET.Element:
        elem = ET.Element('tileoffset')
        elem.set('x', str(self.x))
        elem.set('y', str(self.y))
        return elem


@dataclass
class Terrain:
    name: str = ""
    tile: int = 0                    # Local id of the tile representing it
    properties: Properties = field(default_factory=Properties)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Terrain':
        return cls(
            name=elem.get('name', ''),
            tile=_int(elem, 'tile'),
            properties=Properties.from_xml(elem)
        )

    def to_xml(self) -> ET.Element:
        elem = ET.Element('terrain')
        elem.set('name', self.name)
        elem.set('tile', str(self.tile))
        self.properties.append_to(elem)
        return elem


@dataclass
class TilesetTile:
    """
    Per-tile metadata inside a tileset.

    Only tiles with something to say (terrain, probability, properties, their
    own image) appear. The id is LOCAL to the tileset:
    gid = tileset.firstgid + id.
    """
    id: int
    type: Optional[str] = None
    terrain: Optional[str] = None             # "tl,tr,bl,br" terrain indexes
    probability: Optional[Number] = None
    properties: Properties = field(default_factory=Properties)
    image: Optional[Image] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'TilesetTile':
        img_elem = elem.find('image')
        return cls(
            id=_int(elem, 'id'),
            type=elem.get('type'),
            terrain=elem.get('terrain'),
            probability=_number(elem, 'probability', None),
            properties=Properties.from_xml(elem),
            image=Image.from_xml(img_elem) if img_elem is not None else None
        )

    def to_xml(self) -> ET.Element:
        elem = ET.Element('tile')
        elem.set('id', str(self.id))
        _set_if(elem, 'type', self.type)
        _set_if(elem, 'terrain', self.terrain)
        _set_if(elem, 'probability', self.probability)
        self.properties.append_to(elem)
        if self.image is not None:
            elem.append(self.image.to_xml())
        return elem


@dataclass
class Tileset:
    """
    A contiguous block of GIDs cut from one image.

    ==========================================================================
    GID RANGE
    ==========================================================================

    The tileset owns GIDs [firstgid, firstgid + tile count). Tilesets of one
    map never overlap and are normally stored in ascending firstgid order.

    ==========================================================================
    EMBEDDED vs EXTERNAL TILESETS
    ==========================================================================

    EMBEDDED: the definition is inside the TMX file
        <tileset firstgid="1" name="terrain" tilewidth="32" ...>

    EXTERNAL (TSX): only a reference is stored in the map
        <tileset firstgid="1" source="terrain.tsx"/>

    TiledMap.load() reads the TSX file; whatever it contains, saving writes
    the reference back (firstgid + source only).

    ==========================================================================
    """
    firstgid: int                                    # First Global ID
    name: str = ""
    tilewidth: int = 0                               # Tile width in pixels
    tileheight: int = 0                              # Tile height in pixels
    spacing: int = 0                                 # Pixels between tiles
    margin: int = 0                                  # Pixels around edge
    tilecount: Optional[int] = None
    columns: Optional[int] = None
    source: Optional[str] = None                     # TSX file path (if external)
    tileoffset: Optional[TileOffset] = None
    properties: Properties = field(default_factory=Properties)
    image: Optional[Image] = None
    terraintypes: List[Terrain] = field(default_factory=list)
    tiles: List[TilesetTile] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element, firstgid: Optional[int] = None) -> 'Tileset':
        """
        Parse tileset from XML element.

        Parameters:
        -----------
        elem : ET.Element
            A <tileset> element, from the map or from a TSX file
        firstgid : int, optional
            Overrides the element's firstgid (TSX files don't have one)
        """
        if firstgid is None:
            firstgid = _int(elem, 'firstgid', None)
            if firstgid is None:
                raise TmxParseError("tileset without firstgid")

        offset_elem = elem.find('tileoffset')
        img_elem = elem.find('image')
        terrains_elem = elem.find('terraintypes')
        return cls(
            firstgid=firstgid,
            name=elem.get('name', ''),
            tilewidth=_int(elem, 'tilewidth'),
            tileheight=_int(elem, 'tileheight'),
            spacing=_int(elem, 'spacing'),
            margin=_int(elem, 'margin'),
            tilecount=_int(elem, 'tilecount', None),
            columns=_int(elem, 'columns', None),
            source=elem.get('source'),
            tileoffset=TileOffset.from_xml(offset_elem) if offset_elem is not None else None,
            properties=Properties.from_xml(elem),
            image=Image.from_xml(img_elem) if img_elem is not None else None,
            terraintypes=([Terrain.from_xml(t) for t in terrains_elem.findall('terrain')]
                          if terrains_elem is not None else []),
            tiles=[TilesetTile.from_xml(t) for t in elem.findall('tile')]
        )

    def to_xml(self, include_firstgid: bool = True) -> ET.Element:
        """
        Convert tileset back to XML element.

        include_firstgid is False when writing a standalone TSX file.
        """
        elem = ET.Element('tileset')
        if include_firstgid:
            elem.set('firstgid', str(self.firstgid))

        # External tilesets only keep their reference in the map
        if self.source and include_firstgid:
            elem.set('source', self.source)
            return elem

        elem.set('name', self.name)
        elem.set('tilewidth', str(self.tilewidth))
        elem.set('tileheight', str(self.tileheight))
        if self.spacing:
            elem.set('spacing', str(self.spacing))
        if self.margin:
            elem.set('margin', str(self.margin))
        _set_if(elem, 'tilecount', self.tilecount)
        _set_if(elem, 'columns', self.columns)

        if self.tileoffset is not None:
            elem.append(self.tileoffset.to_xml())
        self.properties.append_to(elem)
        if self.image is not None:
            elem.append(self.image.to_xml())
        if self.terraintypes:
            terrains_elem = ET.SubElement(elem, 'terraintypes')
            for terrain in self.terraintypes:
                terrains_elem.append(terrain.to_xml())
        for tile in self.tiles:
            elem.append(tile.to_xml())
        return elem

    def get_tile(self, tile_id: int) -> Optional[TilesetTile]:
        """Metadata for a local tile id, if the tileset defines any."""
        for tile in self.tiles:
            if tile.id == tile_id:
                return tile
        return None

    def texture_bounds(self, index: int) -> Bounds:
        """
        Pixel rectangle of a local tile index within the tileset image.

        ======================================================================
        LAYOUT
        ======================================================================

        Tiles are numbered left to right, top to bottom:

            +---+---+---+---+
            | 0 | 1 | 2 | 3 |   <- row 0 (highest y)
            +---+---+---+---+
            | 4 | 5 | 6 | 7 |   <- row 1
            +---+---+---+---+

        tiles per row = image.width // tilewidth
        column = index % tiles per row, row = index // tiles per row

        The returned y is measured from the BOTTOM of the image, so row 0
        maps to the highest y. Spacing and margin are not taken into
        account. No image (or an image smaller than one tile) gives an
        empty rectangle.
        """
        if self.image is None or not self.tilewidth or not self.tileheight:
            return Bounds()
        tiles_wide = (self.image.width or 0) // self.tilewidth
        tiles_high = (self.image.height or 0) // self.tileheight
        if tiles_wide <= 0:
            return Bounds()

        row, column = divmod(index, tiles_wide)
        return Bounds(
            x=float(column * self.tilewidth),
            y=float((tiles_high - 1 - row) * self.tileheight),
            w=float(self.tilewidth),
            h=float(self.tileheight)
        )


# =============================================================================
# LAYERS
# =============================================================================

class DefaultsMixin:
    """
    Opacity/visibility normalization shared by every layer type.

    Expects the dataclass to define opacity, visible, raw_opacity and
    raw_visible.
    """

    def after_parse(self):
        """raw_opacity/raw_visible text -> opacity/visible values."""
        self.opacity = parse_opacity(self.raw_opacity)
        self.visible = parse_visible(self.raw_visible)

    def before_serialize(self):
        """opacity/visible values -> raw text, empty for the defaults."""
        self.raw_opacity = format_opacity(self.opacity)
        self.raw_visible = format_visible(self.visible)

    def _read_raw_defaults(self, elem: ET.Element):
        self.raw_opacity = elem.get('opacity', '')
        self.raw_visible = elem.get('visible', '')

    def _write_raw_defaults(self, elem: ET.Element):
        _set_if(elem, 'opacity', self.raw_opacity)
        _set_if(elem, 'visible', self.raw_visible)


@dataclass
class Layer(DefaultsMixin):
    """
    Tile layer - a grid of tile references.

    ==========================================================================
    TILE ACCESS
    ==========================================================================

    Two views of the same data, on purpose different:

    get_grid()  -> DataTileGrid, positional: tiles[x][y] for every cell,
                   empty cells included (id 0)
    TiledMap.tiles_from_layer(layer)
                -> list of resolved Tile, compacted: empty cells dropped

    Edit through the grid and write it back with set_grid().

    ==========================================================================
    """
    name: str = ""
    width: int = 0                                   # Width in tiles
    height: int = 0                                  # Height in tiles
    id: Optional[int] = None
    x: int = 0
    y: int = 0
    opacity: float = DEFAULT_OPACITY
    visible: bool = DEFAULT_VISIBLE
    raw_opacity: str = ''
    raw_visible: str = ''
    properties: Properties = field(default_factory=Properties)
    data: Optional[Data] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Layer':
        data_elem = elem.find('data')
        layer = cls(
            name=elem.get('name', ''),
            width=_int(elem, 'width'),
            height=_int(elem, 'height'),
            id=_int(elem, 'id', None),
            x=_int(elem, 'x'),
            y=_int(elem, 'y'),
            properties=Properties.from_xml(elem),
            data=Data.from_xml(data_elem) if data_elem is not None else None
        )
        layer._read_raw_defaults(elem)
        return layer

    def to_xml(self) -> ET.Element:
        elem = ET.Element('layer')
        _set_if(elem, 'id', self.id)
        elem.set('name', self.name)
        if self.x:
            elem.set('x', str(self.x))
        if self.y:
            elem.set('y', str(self.y))
        elem.set('width', str(self.width))
        elem.set('height', str(self.height))
        self._write_raw_defaults(elem)

        self.properties.append_to(elem)
        if self.data is not None:
            elem.append(self.data.to_xml())
        return elem

    def gids(self) -> List[int]:
        return self._require_data().gids()

    def get_grid(self) -> DataTileGrid:
        return self._require_data().get_tile_grid(self.width, self.height)

    def set_grid(self, grid: DataTileGrid):
        if self.data is None:
            self.data = Data()
        self.data.set_tile_grid(grid)

    def _require_data(self) -> Data:
        if self.data is None:
            raise MalformedTileDataError(f"Layer {self.name!r} has no data")
        return self.data


@dataclass
class Polyline:
    """
    Point list of a polygon or polyline object, relative to the object.

    raw_points is the attribute text ("0,0 32,0 32,32"); points parses it.
    """
    raw_points: str = ""

    @property
    def points(self) -> List[tuple]:
        result = []
        for pair in self.raw_points.split():
            px, py = pair.split(',')
            result.append((float(px), float(py)))
        return result

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Polyline':
        return cls(raw_points=elem.get('points', ''))

    def to_xml(self, tag: str) -> ET.Element:
        elem = ET.Element(tag)
        elem.set('points', self.raw_points)
        return elem


@dataclass
class MapObject:
    """
    Object in an object layer: spawn points, triggers, collision shapes.

    Positions and sizes are in pixels. The shape is a rectangle unless
    ellipse is set or a polygon/polyline is present. Objects with a gid
    display that tile. Geometry is passed through untouched.
    """
    id: Optional[int] = None
    name: str = ""
    type: str = ""
    x: Number = 0
    y: Number = 0
    width: Number = 0
    height: Number = 0
    rotation: Number = 0                             # Degrees clockwise
    gid: Optional[int] = None                        # Tile GID (for tile objects)
    visible: bool = True
    properties: Properties = field(default_factory=Properties)
    ellipse: bool = False
    polygon: Optional[Polyline] = None
    polyline: Optional[Polyline] = None
    image: Optional[Image] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'MapObject':
        polygon_elem = elem.find('polygon')
        polyline_elem = elem.find('polyline')
        img_elem = elem.find('image')
        return cls(
            id=_int(elem, 'id', None),
            name=elem.get('name', ''),
            type=elem.get('type', ''),
            x=_number(elem, 'x'),
            y=_number(elem, 'y'),
            width=_number(elem, 'width'),
            height=_number(elem, 'height'),
            rotation=_number(elem, 'rotation'),
            gid=_int(elem, 'gid', None),
            visible=parse_visible(elem.get('visible')),
            properties=Properties.from_xml(elem),
            ellipse=elem.find('ellipse') is not None,
            polygon=Polyline.from_xml(polygon_elem) if polygon_elem is not None else None,
            polyline=Polyline.from_xml(polyline_elem) if polyline_elem is not None else None,
            image=Image.from_xml(img_elem) if img_elem is not None else None
        )

    @property
    def flips(self):
        """(flip_h, flip_v, flip_d) of a tile object's gid, None otherwise."""
        if self.gid is None:
            return None
        return unpack_gid(self.gid)[1:]

    def to_xml(self) -> ET.Element:
        elem = ET.Element('object')
        _set_if(elem, 'id', self.id)
        _set_if(elem, 'name', self.name)
        _set_if(elem, 'type', self.type)
        elem.set('x', str(self.x))
        elem.set('y', str(self.y))
        if self.width:
            elem.set('width', str(self.width))
        if self.height:
            elem.set('height', str(self.height))
        if self.rotation:
            elem.set('rotation', str(self.rotation))
        _set_if(elem, 'gid', self.gid)
        _set_if(elem, 'visible', format_visible(self.visible))

        self.properties.append_to(elem)
        if self.ellipse:
            ET.SubElement(elem, 'ellipse')
        if self.polygon is not None:
            elem.append(self.polygon.to_xml('polygon'))
        if self.polyline is not None:
            elem.append(self.polyline.to_xml('polyline'))
        if self.image is not None:
            elem.append(self.image.to_xml())
        return elem


@dataclass
class ObjectGroup(DefaultsMixin):
    """Object layer. Objects keep their document order."""
    name: str = ""
    color: Optional[str] = None                      # Display color in the editor
    x: int = 0
    y: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    opacity: float = DEFAULT_OPACITY
    visible: bool = DEFAULT_VISIBLE
    raw_opacity: str = ''
    raw_visible: str = ''
    properties: Properties = field(default_factory=Properties)
    objects: List[MapObject] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ObjectGroup':
        group = cls(
            name=elem.get('name', ''),
            color=elem.get('color'),
            x=_int(elem, 'x'),
            y=_int(elem, 'y'),
            width=_int(elem, 'width', None),
            height=_int(elem, 'height', None),
            properties=Properties.from_xml(elem),
            objects=[MapObject.from_xml(o) for o in elem.findall('object')]
        )
        group._read_raw_defaults(elem)
        return group

    def to_xml(self) -> ET.Element:
        elem = ET.Element('objectgroup')
        elem.set('name', self.name)
        _set_if(elem, 'color', self.color)
        if self.x:
            elem.set('x', str(self.x))
        if self.y:
            elem.set('y', str(self.y))
        _set_if(elem, 'width', self.width)
        _set_if(elem, 'height', self.height)
        self._write_raw_defaults(elem)

        self.properties.append_to(elem)
        for obj in self.objects:
            elem.append(obj.to_xml())
        return elem


@dataclass
class ImageLayer(DefaultsMixin):
    """A layer consisting of a single image."""
    name: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    opacity: float = DEFAULT_OPACITY
    visible: bool = DEFAULT_VISIBLE
    raw_opacity: str = ''
    raw_visible: str = ''
    properties: Properties = field(default_factory=Properties)
    image: Optional[Image] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ImageLayer':
        img_elem = elem.find('image')
        layer = cls(
            name=elem.get('name', ''),
            width=_int(elem, 'width', None),
            height=_int(elem, 'height', None),
            properties=Properties.from_xml(elem),
            image=Image.from_xml(img_elem) if img_elem is not None else None
        )
        layer._read_raw_defaults(elem)
        return layer

    def to_xml(self) -> ET.Element:
        elem = ET.Element('imagelayer')
        elem.set('name', self.name)
        _set_if(elem, 'width', self.width)
        _set_if(elem, 'height', self.height)
        self._write_raw_defaults(elem)

        self.properties.append_to(elem)
        if self.image is not None:
            elem.append(self.image.to_xml())
        return elem


# =============================================================================
# TILED MAP CLASS (Main Entry Point)
# =============================================================================

@dataclass
class TiledMap:
    """
    Complete Tiled map - the root object of a TMX document.

    ==========================================================================
    ORDERING
    ==========================================================================

    Each kind of child keeps its own document order. On save they are
    written grouped: properties, tilesets, layers, object groups, image
    layers.

    Tilesets are expected in ascending firstgid order. GID resolution works
    on a sorted copy, so an unsorted list still resolves correctly and is
    never reordered behind the caller's back.

    ==========================================================================
    """
    version: str = "1.0"                             # TMX format version
    orientation: str = "orthogonal"
    width: int = 0                                   # Map width in tiles
    height: int = 0                                  # Map height in tiles
    tilewidth: int = 0                               # Tile width in pixels
    tileheight: int = 0                              # Tile height in pixels
    tiledversion: Optional[str] = None
    renderorder: Optional[str] = None
    backgroundcolor: Optional[str] = None
    nextlayerid: Optional[int] = None
    nextobjectid: Optional[int] = None
    properties: Properties = field(default_factory=Properties)
    tilesets: List[Tileset] = field(default_factory=list)
    layers: List[Layer] = field(default_factory=list)
    objectgroups: List[ObjectGroup] = field(default_factory=list)
    imagelayers: List[ImageLayer] = field(default_factory=list)

    # =========================================================================
    # PARSING
    # =========================================================================

    @classmethod
    def parse(cls, text: Union[str, bytes]) -> 'TiledMap':
        """
        Parse TMX document text.

        Raises:
        -------
        TmxParseError : malformed XML, not a <map>, or bad attribute values
        """
        try:
            root = ET.fromstring(text.strip())
        except ET.ParseError as exc:
            raise TmxParseError(f"Malformed TMX document: {exc}") from exc
        return cls.from_root(root)

    @classmethod
    def from_root(cls, root: ET.Element) -> 'TiledMap':
        """Build a map from an already parsed <map> element."""
        if root.tag != 'map':
            raise TmxParseError(f"Expected <map> root element, got <{root.tag}>")
        try:
            tmx_map = cls.from_xml(root)
            tmx_map.after_parse()
        except (ValueError, TypeError) as exc:
            raise TmxParseError(f"Invalid TMX attribute value: {exc}") from exc
        return tmx_map

    @classmethod
    def from_xml(cls, root: ET.Element) -> 'TiledMap':
        tmx_map = cls(
            version=root.get('version', '1.0'),
            orientation=root.get('orientation', 'orthogonal'),
            width=_int(root, 'width'),
            height=_int(root, 'height'),
            tilewidth=_int(root, 'tilewidth'),
            tileheight=_int(root, 'tileheight'),
            tiledversion=root.get('tiledversion'),
            renderorder=root.get('renderorder'),
            backgroundcolor=root.get('backgroundcolor'),
            nextlayerid=_int(root, 'nextlayerid', None),
            nextobjectid=_int(root, 'nextobjectid', None),
            properties=Properties.from_xml(root)
        )

        for elem in root:
            if elem.tag == 'tileset':
                tmx_map.tilesets.append(Tileset.from_xml(elem))
            elif elem.tag == 'layer':
                tmx_map.layers.append(Layer.from_xml(elem))
            elif elem.tag == 'objectgroup':
                tmx_map.objectgroups.append(ObjectGroup.from_xml(elem))
            elif elem.tag == 'imagelayer':
                tmx_map.imagelayers.append(ImageLayer.from_xml(elem))
            elif elem.tag != 'properties':
                logger.debug("Skipping unsupported <%s> element", elem.tag)
        return tmx_map

    def all_layers(self) -> List[DefaultsMixin]:
        return [*self.layers, *self.objectgroups, *self.imagelayers]

    def after_parse(self):
        """Apply default opacity/visibility to every layer."""
        for layer in self.all_layers():
            layer.after_parse()

    # =========================================================================
    # SERIALIZING
    # =========================================================================

    def before_serialize(self):
        """
        Normalize defaults and re-encode every tile layer.

        All payloads are decoded before anything is modified, so a layer
        that fails to decode leaves the whole map untouched.
        """
        grids = [(layer, layer.get_grid()) for layer in self.layers
                 if layer.data is not None]
        for layer in self.all_layers():
            layer.before_serialize()
        for layer, grid in grids:
            layer.set_grid(grid)
        logger.debug("Prepared %d tile layers for serialization", len(grids))

    def serialize(self) -> str:
        """
        Serialize to TMX text.

        Tile layers are always written as base64 + zlib.

        Raises:
        -------
        TmxSerializeError : a layer payload could not be decoded
        """
        try:
            self.before_serialize()
        except TmxError as exc:
            raise TmxSerializeError(f"Could not serialize map: {exc}") from exc

        root = self.to_xml()
        self._indent(root)
        return XML_HEADER + ET.tostring(root, encoding='unicode',
                                        short_empty_elements=False)

    def to_xml(self) -> ET.Element:
        root = ET.Element('map')
        root.set('version', self.version)
        _set_if(root, 'tiledversion', self.tiledversion)
        root.set('orientation', self.orientation)
        _set_if(root, 'renderorder', self.renderorder)
        root.set('width', str(self.width))
        root.set('height', str(self.height))
        root.set('tilewidth', str(self.tilewidth))
        root.set('tileheight', str(self.tileheight))
        _set_if(root, 'backgroundcolor', self.backgroundcolor)
        _set_if(root, 'nextlayerid', self.nextlayerid)
        _set_if(root, 'nextobjectid', self.nextobjectid)

        self.properties.append_to(root)
        for tileset in self.tilesets:
            root.append(tileset.to_xml())
        for layer in self.all_layers():
            root.append(layer.to_xml())
        return root

    @staticmethod
    def _indent(elem, level=0):
        """
        Add indentation to XML for readable output.

        Elements whose only content is text (like <data>) stay on one line.
        """
        indent = "\n" + INDENT * level

        if len(elem):  # Has children
            if not elem.text or not elem.text.strip():
                elem.text = indent + INDENT
            if level and (not elem.tail or not elem.tail.strip()):
                elem.tail = indent

            for child in elem:
                TiledMap._indent(child, level + 1)

            # Last child's tail
            if not child.tail or not child.tail.strip():
                child.tail = indent
        else:
            if level and (not elem.tail or not elem.tail.strip()):
                elem.tail = indent

    # =========================================================================
    # FILES
    # =========================================================================

    @classmethod
    def load(cls, filepath: Union[str, Path], resolve_external: bool = True) -> 'TiledMap':
        """
        Load a TMX file from disk.

        Parameters:
        -----------
        filepath : str or Path
            Path to the .tmx file
        resolve_external : bool
            Read external TSX tilesets, relative to the map file. A missing
            TSX is logged and replaced with a placeholder named after the
            file, using the map's tile size.
        """
        filepath = Path(filepath)
        tmx_map = cls.parse(filepath.read_bytes())

        if resolve_external:
            tmx_map.tilesets = [
                _load_external_tileset(tileset, filepath.parent, tmx_map)
                if tileset.source else tileset
                for tileset in tmx_map.tilesets
            ]
        return tmx_map

    def save(self, filepath: Union[str, Path]):
        """Serialize and write the map as UTF-8."""
        Path(filepath).write_text(self.serialize(), encoding='utf-8')

    # =========================================================================
    # QUERIES
    # =========================================================================

    def layer_by_name(self, name: str) -> Layer:
        """First tile layer with the given name."""
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise LayerNotFoundError(f"No layer with name {name}")

    def layer_by_index(self, index: int) -> Layer:
        if index < 0 or index >= len(self.layers):
            raise LayerIndexError(f"Index {index} out of bounds")
        return self.layers[index]

    def tiles_from_layer(self, layer: Layer) -> List[Tile]:
        """Resolved tiles of a layer, empty cells omitted."""
        return build_layer_tiles(layer.gids(), layer.width, layer.height,
                                 self.tilewidth, self.tileheight, self.tilesets)

    def tiles_from_layer_name(self, name: str) -> List[Tile]:
        return self.tiles_from_layer(self.layer_by_name(name))

    def tiles_from_layer_index(self, index: int) -> List[Tile]:
        return self.tiles_from_layer(self.layer_by_index(index))

    def get_tileset_for_gid(self, gid: int) -> Optional[Tileset]:
        """Tileset owning a raw GID (flip flags ignored), or None."""
        tile_id = unpack_gid(gid)[0]
        if tile_id == 0:
            return None
        try:
            return find_tileset(tile_id, sort_tilesets(self.tilesets))
        except TmxLookupError:
            return None


def _load_external_tileset(tileset: Tileset, base_path: Path,
                           tmx_map: TiledMap) -> Tileset:
    tsx_path = base_path / tileset.source
    try:
        tsx_root = ET.parse(tsx_path).getroot()
    except FileNotFoundError:
        # TSX file missing - create placeholder
        logger.warning("External tileset not found: %s", tsx_path)
        return Tileset(
            firstgid=tileset.firstgid,
            name=Path(tileset.source).stem,
            tilewidth=tmx_map.tilewidth,
            tileheight=tmx_map.tileheight,
            source=tileset.source
        )
    except ET.ParseError as exc:
        raise TmxParseError(f"Malformed tileset {tsx_path}: {exc}") from exc

    try:
        loaded = Tileset.from_xml(tsx_root, tileset.firstgid)
    except (ValueError, TypeError) as exc:
        raise TmxParseError(f"Invalid attribute in tileset {tsx_path}: {exc}") from exc
    loaded.source = tileset.source
    return loaded


def parse_map_string(text: Union[str, bytes]) -> TiledMap:
    """Parse TMX document text into a TiledMap."""
    return TiledMap.parse(text)


def serialize_map(tmx_map: TiledMap) -> str:
    """Serialize a TiledMap back to TMX document text."""
    return tmx_map.serialize()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def create_layer(name: str, width: int, height: int) -> Layer:
    """
    Create a tile layer filled with GID 0 (empty tiles).

    The payload is already base64 + zlib encoded, ready to edit via
    get_grid()/set_grid().
    """
    layer = Layer(name=name, width=width, height=height)
    layer.set_grid(DataTileGrid.empty(width, height))
    return layer
