"""
Tile layer payload codec.

=============================================================================
DATA ENCODINGS
=============================================================================

A <data> element stores the grid of GIDs of one tile layer:

1. XML (no encoding attribute):
   <data>
       <tile gid="1"/><tile gid="2"/><tile gid="3"/>...
   </data>

2. CSV:
   <data encoding="csv">1,2,3,...</data>
   Not supported here: decoding raises UnsupportedFeatureError.

3. Base64, optionally compressed:
   <data encoding="base64" compression="zlib">eJzt2MsKwj...</data>

   base64 text -> bytes -> (gzip|zlib decompress) -> little-endian uint32[]

Saving always writes base64 + zlib, whatever the map was loaded with.

=============================================================================
GRID VIEW
=============================================================================

The payload is a row-major sequence: index = y * width + x.
DataTileGrid re-indexes it as tiles[x][y] with every GID unpacked into
(id, flip_x, flip_y, flip_d). Empty cells (GID 0) are kept as id 0.

=============================================================================
"""

import base64
import binascii
import gzip
import logging
import zlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, Optional

import numpy as np

from .errors import (
    MalformedTileDataError,
    TileCountMismatchError,
    TileDecompressionError,
    UnsupportedFeatureError,
)
from .gid import pack_gid, unpack_gid

logger = logging.getLogger(__name__)

# Wire layout of one GID: unsigned 32-bit, little-endian
GID_DTYPE = np.dtype('<u4')

ENCODING_BASE64 = 'base64'
ENCODING_CSV = 'csv'
COMPRESSION_ZLIB = 'zlib'
COMPRESSION_GZIP = 'gzip'

ZLIB_LEVEL = zlib.Z_DEFAULT_COMPRESSION


@dataclass
class DataTile:
    """One literal <tile gid="..."/> record inside <data>."""
    gid: int = 0

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'DataTile':
        return cls(gid=int(elem.get('gid', 0)))

    def to_xml(self) -> ET.Element:
        elem = ET.Element('tile')
        elem.set('gid', str(self.gid))
        return elem


class GridTile(NamedTuple):
    """A grid cell: local id magnitude plus the three flip flags."""
    id: int = 0
    flip_x: bool = False
    flip_y: bool = False
    flip_d: bool = False

    @property
    def gid(self) -> int:
        return pack_gid(self.id, self.flip_x, self.flip_y, self.flip_d)


@dataclass
class DataTileGrid:
    """
    Dense 2D view of a layer, indexed tiles[x][y] (column, then row).

    This is the editing surface: change cells with set(), then write the
    grid back with Layer.set_grid() / Data.set_tile_grid().
    """
    width: int
    height: int
    tiles: List[List[GridTile]] = field(default_factory=list)

    @classmethod
    def empty(cls, width: int, height: int) -> 'DataTileGrid':
        """Grid of the given size filled with id 0 (no tile)."""
        return cls(
            width=width,
            height=height,
            tiles=[[GridTile() for _ in range(height)] for _ in range(width)]
        )

    @classmethod
    def from_gids(cls, gids: List[int], width: int, height: int) -> 'DataTileGrid':
        if len(gids) != width * height:
            raise TileCountMismatchError(len(gids), width, height)
        return cls(
            width=width,
            height=height,
            tiles=[[GridTile(*unpack_gid(gids[width * y + x]))
                    for y in range(height)]
                   for x in range(width)]
        )

    def get(self, x: int, y: int) -> GridTile:
        return self.tiles[x][y]

    def set(self, x: int, y: int, tile: GridTile):
        self.tiles[x][y] = tile

    def gids(self) -> List[int]:
        """Re-linearize row-major and pack every cell back into a GID."""
        return [self.tiles[x][y].gid
                for y in range(self.height)
                for x in range(self.width)]


@dataclass
class Data:
    """
    Raw payload of a tile layer (the <data> element).

    Holds either literal tile records (raw_tiles) or an opaque text blob
    (raw_contents) whose meaning depends on encoding/compression. Decoding
    happens on demand in gids(); nothing is cached.
    """
    encoding: Optional[str] = None       # base64, csv, or None (XML)
    compression: Optional[str] = None    # gzip, zlib, or None
    raw_tiles: List[DataTile] = field(default_factory=list)
    raw_contents: str = ''

    @property
    def contents(self) -> str:
        """Text payload with surrounding whitespace removed."""
        return self.raw_contents.strip()

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Data':
        """Parse a <data> element without decoding it."""
        return cls(
            encoding=elem.get('encoding'),
            compression=elem.get('compression'),
            raw_tiles=[DataTile.from_xml(t) for t in elem.findall('tile')],
            raw_contents=elem.text or ''
        )

    def to_xml(self) -> ET.Element:
        elem = ET.Element('data')
        if self.encoding:
            elem.set('encoding', self.encoding)
        if self.compression:
            elem.set('compression', self.compression)

        if self.raw_tiles:
            for tile in self.raw_tiles:
                elem.append(tile.to_xml())
        else:
            elem.text = self.contents
        return elem

    # =========================================================================
    # DECODING
    # =========================================================================

    def gids(self) -> List[int]:
        """
        Decode the payload into a flat, row-major list of raw GIDs.

        Raises:
        -------
        MalformedTileDataError : bad base64, or byte count not a multiple of 4
        TileDecompressionError : corrupt gzip/zlib stream
        UnsupportedFeatureError : csv encoding or an unknown compression
        """
        if self.encoding == ENCODING_BASE64:
            gids = self._base64_gids()
        elif self.encoding == ENCODING_CSV:
            raise UnsupportedFeatureError("csv tile encoding is not implemented")
        else:
            gids = [tile.gid for tile in self.raw_tiles]

        logger.debug("Decoded %d gids (encoding=%s, compression=%s)",
                     len(gids), self.encoding, self.compression)
        return gids

    def _base64_gids(self) -> List[int]:
        # Some writers wrap the base64 text over several lines
        text = ''.join(self.contents.split())
        try:
            raw_data = base64.b64decode(text, validate=True)
        except binascii.Error as exc:
            raise MalformedTileDataError(f"Invalid base64 tile data: {exc}") from exc

        raw_data = decompress(raw_data, self.compression)

        if len(raw_data) % GID_DTYPE.itemsize:
            raise MalformedTileDataError(
                f"Tile data is {len(raw_data)} bytes, "
                f"not a multiple of {GID_DTYPE.itemsize}"
            )
        return np.frombuffer(raw_data, dtype=GID_DTYPE).tolist()

    # =========================================================================
    # ENCODING
    # =========================================================================

    def set_gids(self, gids: Iterable[int]):
        """
        Replace the payload with the given GIDs.

        Always stores base64 + zlib and drops any literal tile records, so a
        map loaded as XML or uncompressed base64 is upgraded on save.
        """
        array = np.asarray(list(gids), dtype=GID_DTYPE)
        raw_data = zlib.compress(array.tobytes(), ZLIB_LEVEL)

        self.encoding = ENCODING_BASE64
        self.compression = COMPRESSION_ZLIB
        self.raw_tiles = []
        self.raw_contents = base64.b64encode(raw_data).decode('ascii')
        logger.debug("Encoded %d gids into %d compressed bytes",
                     array.size, len(raw_data))

    # =========================================================================
    # GRID VIEW
    # =========================================================================

    def get_tile_grid(self, width: int, height: int) -> DataTileGrid:
        """Decode into a [x][y] grid; the tile count must be width * height."""
        return DataTileGrid.from_gids(self.gids(), width, height)

    def set_tile_grid(self, grid: DataTileGrid):
        self.set_gids(grid.gids())


def decompress(raw_data: bytes, compression: Optional[str]) -> bytes:
    """
    Inflate a decoded payload according to the compression attribute.

    No compression (None or empty) returns the bytes unchanged.
    """
    if not compression:
        return raw_data

    if compression == COMPRESSION_ZLIB:
        try:
            return zlib.decompress(raw_data)
        except zlib.error as exc:
            raise TileDecompressionError(f"Corrupt zlib tile data: {exc}") from exc

    if compression == COMPRESSION_GZIP:
        try:
            return gzip.decompress(raw_data)
        except (OSError, EOFError, zlib.error) as exc:
            raise TileDecompressionError(f"Corrupt gzip tile data: {exc}") from exc

    raise UnsupportedFeatureError(f"Unsupported tile compression: {compression!r}")
