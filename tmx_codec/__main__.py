#!/usr/bin/env python3

"""
TMX map summary

Usage:
    python -m tmx_codec <map.tmx>

Prints the map size, its tilesets and, for every tile layer, how many
cells hold a tile.
"""

import sys
from pathlib import Path

from .errors import TmxError
from .model import TiledMap


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) < 1:
        print(__doc__)
        return 1

    source_path = Path(argv[0])
    if not source_path.exists():
        print(f"Error: File '{source_path}' not found")
        return 1

    try:
        tmx_map = TiledMap.load(source_path)
        print(f"{source_path.name}: {tmx_map.orientation} "
              f"{tmx_map.width}x{tmx_map.height} tiles of "
              f"{tmx_map.tilewidth}x{tmx_map.tileheight}px")
        for tileset in tmx_map.tilesets:
            print(f"  tileset {tileset.name!r} firstgid={tileset.firstgid}")
        for layer in tmx_map.layers:
            tiles = tmx_map.tiles_from_layer(layer)
            print(f"  layer {layer.name!r}: {len(tiles)}/{layer.width * layer.height} tiles"
                  f" opacity={layer.opacity} visible={layer.visible}")
    except TmxError as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
