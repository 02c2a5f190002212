"""
Global tile ID (GID) bit packing.

=============================================================================
BIT LAYOUT
=============================================================================

A GID stored in a layer is a 32-bit unsigned value. The three highest bits
are transformation flags, the rest is the tile id:

    bit 31  bit 30  bit 29  bits 28..0
    +-----+-------+-------+--------------------------+
    |  H  |   V   |   D   |        tile id           |
    +-----+-------+-------+--------------------------+

    H = flipped horizontally
    V = flipped vertically
    D = flipped diagonally (combined with H/V gives 90 degree rotations)

Example:
    0x80000001 = tile 1, flipped horizontally
    0xA000000E = tile 14, flipped horizontally and diagonally

The id is still GLOBAL: it has to be matched against the tilesets'
firstgid to find the tile within its tileset (see tiles.resolve_tile).

=============================================================================
"""

from typing import Tuple

FLIPPED_HORIZONTALLY_FLAG = 0x80000000
FLIPPED_VERTICALLY_FLAG = 0x40000000
FLIPPED_DIAGONALLY_FLAG = 0x20000000

GID_FLAG_MASK = (FLIPPED_HORIZONTALLY_FLAG |
                 FLIPPED_VERTICALLY_FLAG |
                 FLIPPED_DIAGONALLY_FLAG)
UINT32_MASK = 0xFFFFFFFF


def unpack_gid(gid: int) -> Tuple[int, bool, bool, bool]:
    """
    Split a raw GID into (id, flip_h, flip_v, flip_d).

    Parameters:
    -----------
    gid : int
        Raw 32-bit value as stored in the layer data

    Returns:
    --------
    tuple : (id with flag bits cleared, flip_h, flip_v, flip_d)
    """
    gid &= UINT32_MASK
    return (
        gid & ~GID_FLAG_MASK & UINT32_MASK,
        bool(gid & FLIPPED_HORIZONTALLY_FLAG),
        bool(gid & FLIPPED_VERTICALLY_FLAG),
        bool(gid & FLIPPED_DIAGONALLY_FLAG),
    )


def pack_gid(tile_id: int, flip_h: bool = False, flip_v: bool = False,
             flip_d: bool = False) -> int:
    """Inverse of unpack_gid: pack_gid(*unpack_gid(g)) == g."""
    gid = tile_id & UINT32_MASK
    if flip_h:
        gid |= FLIPPED_HORIZONTALLY_FLAG
    if flip_v:
        gid |= FLIPPED_VERTICALLY_FLAG
    if flip_d:
        gid |= FLIPPED_DIAGONALLY_FLAG
    return gid
