"""
tmx_codec - read, query, edit and write TMX (Tiled Map XML) tile maps.

    from tmx_codec import TiledMap

    tmx_map = TiledMap.parse(text)
    tiles = tmx_map.tiles_from_layer_index(0)
    text = tmx_map.serialize()

Requires:
    pip install numpy
"""

from .data import Data, DataTile, DataTileGrid, GridTile
from .errors import (
    LayerIndexError,
    LayerNotFoundError,
    MalformedTileDataError,
    NoTilesetsError,
    TileCountMismatchError,
    TileDecompressionError,
    TilesetLookupError,
    TmxError,
    TmxLookupError,
    TmxParseError,
    TmxSerializeError,
    UnsupportedFeatureError,
)
from .gid import (
    FLIPPED_DIAGONALLY_FLAG,
    FLIPPED_HORIZONTALLY_FLAG,
    FLIPPED_VERTICALLY_FLAG,
    pack_gid,
    unpack_gid,
)
from .model import (
    Image,
    ImageLayer,
    Layer,
    MapObject,
    ObjectGroup,
    Polyline,
    Properties,
    Property,
    Terrain,
    TiledMap,
    TileOffset,
    Tileset,
    TilesetTile,
    create_layer,
    parse_map_string,
    serialize_map,
)
from .tiles import Bounds, Tile, build_layer_tiles, resolve_tile, texture_path

__version__ = "1.0.0"
__all__ = [
    "TiledMap",
    "Tileset",
    "TilesetTile",
    "TileOffset",
    "Terrain",
    "Image",
    "Layer",
    "ObjectGroup",
    "MapObject",
    "Polyline",
    "ImageLayer",
    "Property",
    "Properties",
    "Data",
    "DataTile",
    "DataTileGrid",
    "GridTile",
    "Tile",
    "Bounds",
    "pack_gid",
    "unpack_gid",
    "FLIPPED_HORIZONTALLY_FLAG",
    "FLIPPED_VERTICALLY_FLAG",
    "FLIPPED_DIAGONALLY_FLAG",
    "resolve_tile",
    "build_layer_tiles",
    "texture_path",
    "create_layer",
    "parse_map_string",
    "serialize_map",
    "TmxError",
    "TmxParseError",
    "TmxSerializeError",
    "MalformedTileDataError",
    "TileCountMismatchError",
    "TileDecompressionError",
    "UnsupportedFeatureError",
    "TmxLookupError",
    "LayerNotFoundError",
    "LayerIndexError",
    "NoTilesetsError",
    "TilesetLookupError",
]
