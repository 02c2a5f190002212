"""
GID resolution and tile geometry.

=============================================================================
GID -> TILESET
=============================================================================

Tilesets split the GID space into contiguous ranges:

    Tileset A (firstgid=1):  GIDs 1-32
    Tileset B (firstgid=33): GIDs 33-64
    Tileset C (firstgid=65): GIDs 65-...

A GID belongs to the tileset with the greatest firstgid <= GID, and the
local tile index is GID - firstgid:

    GID 40 -> Tileset B, index 7

=============================================================================
COORDINATES
=============================================================================

Both rectangles use a y-up, bottom-left origin:

    map space:      row 0 of the layer is the TOP row, so it gets the
                    highest y: y = (layer_height - 1 - row) * tileheight
    texture space:  row 0 of the tileset image gets the highest y as well:
                    y = (tiles_high - 1 - row) * tileheight

=============================================================================
"""

from dataclasses import dataclass
from operator import attrgetter
from typing import List, NamedTuple, Sequence, Tuple, TYPE_CHECKING

from .errors import NoTilesetsError, TileCountMismatchError, TilesetLookupError
from .gid import unpack_gid

if TYPE_CHECKING:
    from .model import Tileset


class Bounds(NamedTuple):
    """Axis-aligned rectangle in pixels."""
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    def scaled(self, rx: float, ry: float) -> Tuple[float, float, float, float]:
        """Divide every component by the given ratios."""
        return self.x / rx, self.y / ry, self.w / rx, self.h / ry


@dataclass
class Tile:
    """
    A resolved, drawable tile.

    Produced on demand by resolve_tile() / build_layer_tiles() and never
    written back to the map. The tileset is shared with the map, not owned.
    """
    index: int                      # Local index within the tileset
    tileset: 'Tileset'              # Owning tileset
    flip_horz: bool = False
    flip_vert: bool = False
    flip_diag: bool = False
    tile_bounds: Bounds = Bounds()      # Map space
    texture_bounds: Bounds = Bounds()   # Tileset image space

    def scaled_bounds(self, ratio: float) -> Tuple[float, float, float, float]:
        return self.tile_bounds.scaled(ratio, ratio)

    def scaled_texture_bounds(self, texw: float, texh: float) -> Tuple[float, float, float, float]:
        """Texture rectangle normalized to a texture of size texw x texh (UV)."""
        return self.texture_bounds.scaled(texw, texh)


def sort_tilesets(tilesets: Sequence['Tileset']) -> List['Tileset']:
    """Copy of tilesets sorted by firstgid; equal firstgids keep their order."""
    return sorted(tilesets, key=attrgetter('firstgid'))


def find_tileset(tile_id: int, tilesets: Sequence['Tileset']) -> 'Tileset':
    """
    Find the tileset owning an (unflagged) tile id.

    tilesets must already be sorted by firstgid.
    """
    if not tilesets:
        raise NoTilesetsError("No tilesets")

    # The first tileset starting past the id means the previous one owns it
    for i in range(1, len(tilesets)):
        if tile_id < tilesets[i].firstgid:
            tileset = tilesets[i - 1]
            break
    else:
        tileset = tilesets[-1]

    if tile_id < tileset.firstgid:
        raise TilesetLookupError(
            f"GID {tile_id} is below the first tileset's firstgid {tileset.firstgid}"
        )
    return tileset


def resolve_tile(gid: int, tilesets: Sequence['Tileset'], tile_bounds: Bounds) -> Tile:
    """
    Resolve a raw GID into a Tile.

    Parameters:
    -----------
    gid : int
        Raw GID, flip flags included
    tilesets : sequence of Tileset
        The map's tilesets in any order; a sorted copy is used and the
        caller's sequence is left untouched
    tile_bounds : Bounds
        Where the tile sits in map space

    Raises:
    -------
    NoTilesetsError : tilesets is empty
    TilesetLookupError : the GID falls below every tileset
    """
    return _resolve(gid, sort_tilesets(tilesets), tile_bounds)


def _resolve(gid: int, tilesets: Sequence['Tileset'], tile_bounds: Bounds) -> Tile:
    tile_id, flip_h, flip_v, flip_d = unpack_gid(gid)
    tileset = find_tileset(tile_id, tilesets)
    index = tile_id - tileset.firstgid
    return Tile(
        index=index,
        tileset=tileset,
        flip_horz=flip_h,
        flip_vert=flip_v,
        flip_diag=flip_d,
        tile_bounds=tile_bounds,
        texture_bounds=tileset.texture_bounds(index)
    )


def build_layer_tiles(gids: Sequence[int], layer_width: int, layer_height: int,
                      tilewidth: int, tileheight: int,
                      tilesets: Sequence['Tileset']) -> List[Tile]:
    """
    Resolve every non-empty cell of a layer.

    Empty cells (GID 0) are skipped, so the result is compacted: its
    positions do NOT line up with the grid. Use Layer.get_grid() when
    positions matter.

    Raises:
    -------
    TileCountMismatchError : len(gids) != layer_width * layer_height
    """
    if len(gids) != layer_width * layer_height:
        raise TileCountMismatchError(len(gids), layer_width, layer_height)

    ordered = sort_tilesets(tilesets)
    tiles = []
    for i, gid in enumerate(gids):
        if gid == 0:
            continue
        column = i % layer_width
        row = i // layer_width
        bounds = Bounds(
            x=float(tilewidth * column),
            y=float(tileheight * (layer_height - 1 - row)),
            w=float(tilewidth),
            h=float(tileheight)
        )
        tiles.append(_resolve(gid, ordered, bounds))
    return tiles


def texture_path(tiles: Sequence[Tile]) -> str:
    """Image source of the first tile whose tileset has an image."""
    for tile in tiles:
        if tile.tileset.image is None:
            continue
        return tile.tileset.image.source
    raise TilesetLookupError("Could not find suitable tileset")
