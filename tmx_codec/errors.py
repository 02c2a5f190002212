"""
Exceptions raised by tmx_codec.

Every failure is raised synchronously from the call that hit it; nothing is
retried and a previously parsed map is never left half-modified.

    TmxError
    ├── TmxParseError
    ├── TmxSerializeError
    ├── MalformedTileDataError
    │   └── TileCountMismatchError
    ├── TileDecompressionError
    ├── UnsupportedFeatureError
    └── TmxLookupError
        ├── LayerNotFoundError
        ├── LayerIndexError
        ├── NoTilesetsError
        └── TilesetLookupError
"""


class TmxError(Exception):
    """Base class for all tmx_codec errors."""


class TmxParseError(TmxError):
    """The document could not be mapped onto the object model."""


class TmxSerializeError(TmxError):
    """The map could not be turned back into document text."""


class MalformedTileDataError(TmxError):
    """A layer payload is not a valid little-endian uint32 array."""


class TileCountMismatchError(MalformedTileDataError):
    """Decoded tile count differs from the layer's width x height."""

    def __init__(self, count: int, width: int, height: int):
        super().__init__(
            f"Tile length {count} didn't match width x height ({width},{height})"
        )
        self.count = count
        self.width = width
        self.height = height


class TileDecompressionError(TmxError):
    """The gzip/zlib stream of a layer payload is corrupt."""


class UnsupportedFeatureError(TmxError, NotImplementedError):
    """The document uses a feature this library deliberately doesn't handle."""


class TmxLookupError(TmxError, LookupError):
    """Base class for failed lookups."""


class LayerNotFoundError(TmxLookupError, KeyError):
    def __str__(self):
        # KeyError would repr() the message otherwise
        return str(self.args[0]) if self.args else ''


class LayerIndexError(TmxLookupError, IndexError):
    pass


class NoTilesetsError(TmxLookupError):
    pass


class TilesetLookupError(TmxLookupError):
    pass
