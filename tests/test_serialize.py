"""Tests for writing maps back to TMX text."""

import logging
import re

import pytest

from tmx_codec import (
    GridTile,
    TiledMap,
    Tileset,
    TmxSerializeError,
    create_layer,
    parse_map_string,
    serialize_map,
)
from tmx_codec.__main__ import main

EXPECTED_SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<map version="1.0" orientation="orthogonal" width="71" height="40" tilewidth="16" tileheight="16">
  <properties>
    <property name="time1" value="16"></property>
    <property name="time2" value="9"></property>
    <property name="time3" value="6"></property>
  </properties>
  <tileset firstgid="1" name="sprites32" tilewidth="32" tileheight="32">
    <image source="../textures/sprites32.png" width="512" height="64"></image>
  </tileset>
  <tileset firstgid="33" name="sprites16" tilewidth="16" tileheight="16">
    <image source="../textures/sprites16.png" width="256" height="32"></image>
  </tileset>
  <tileset firstgid="65" name="stars" tilewidth="16" tileheight="16">
    <image source="../textures/stars.png" width="64" height="16"></image>
  </tileset>
  <layer name="Tile Layer 3" width="71" height="40">
    <data encoding="base64" compression="zlib">PAYLOAD</data>
  </layer>
  <layer name="Stars" width="71" height="40" opacity="0.5" visible="0">
    <data encoding="base64" compression="zlib">PAYLOAD</data>
  </layer>
</map>
"""

LITERAL_MAP = """
<map version="1.0" orientation="orthogonal" width="2" height="1" tilewidth="8" tileheight="8">
 <tileset firstgid="1" name="t" tilewidth="8" tileheight="8"/>
 <layer name="literal" width="2" height="1">
  <data><tile gid="1"/><tile gid="2147483650"/></data>
 </layer>
</map>
"""


def _grid_cells(layer):
    grid = layer.get_grid()
    return [[tuple(grid.get(x, y)) for y in range(grid.height)] for x in range(grid.width)]


def test_serialize_layout(sample_map):
    text = sample_map.serialize()
    masked = re.sub(r'(<data [^>]*>)[^<]*(</data>)', r'\1PAYLOAD\2', text)
    assert masked.strip() == EXPECTED_SAMPLE.strip()
    assert text.endswith("</map>")


def test_serialize_round_trip_grid(sample_map, sample_text):
    before = parse_map_string(sample_text)
    after = parse_map_string(serialize_map(sample_map))

    for index in range(len(before.layers)):
        assert _grid_cells(after.layer_by_index(index)) == _grid_cells(before.layer_by_index(index))


def test_serialize_is_stable(sample_map):
    first = sample_map.serialize()
    assert TiledMap.parse(first).serialize() == first


def test_defaults_round_trip(sample_map):
    again = TiledMap.parse(sample_map.serialize())
    assert again.layers[0].raw_opacity == ''
    assert again.layers[0].raw_visible == ''
    assert (again.layers[0].opacity, again.layers[0].visible) == (1.0, True)
    assert again.layers[1].raw_opacity == '0.5'
    assert again.layers[1].raw_visible == '0'
    assert (again.layers[1].opacity, again.layers[1].visible) == (0.5, False)


def test_changed_defaults_are_written(sample_map):
    sample_map.layers[0].opacity = 0.3
    sample_map.layers[0].visible = False
    sample_map.layers[1].opacity = 1.0
    sample_map.layers[1].visible = True

    text = sample_map.serialize()
    assert '<layer name="Tile Layer 3" width="71" height="40" opacity="0.3" visible="0">' in text
    assert '<layer name="Stars" width="71" height="40">' in text


def test_literal_data_is_upgraded():
    tmx_map = TiledMap.parse(LITERAL_MAP)
    text = tmx_map.serialize()

    assert '<tile gid' not in text
    layer = TiledMap.parse(text).layers[0]
    assert layer.data.encoding == 'base64'
    assert layer.data.compression == 'zlib'
    assert layer.gids() == [1, 2147483650]


def test_failed_serialize_leaves_map_untouched():
    tmx_map = TiledMap.parse(LITERAL_MAP.replace(
        '</map>',
        '<layer name="csv" width="2" height="1">'
        '<data encoding="csv">1,1</data></layer></map>'
    ))
    tmx_map.layers[0].visible = False

    with pytest.raises(TmxSerializeError):
        tmx_map.serialize()

    literal = tmx_map.layers[0]
    assert literal.data.encoding is None
    assert [t.gid for t in literal.data.raw_tiles] == [1, 2147483650]
    assert literal.raw_visible == ''


def test_grid_edit_survives_save():
    tmx_map = TiledMap.parse(LITERAL_MAP)
    layer = tmx_map.layers[0]
    grid = layer.get_grid()
    grid.set(0, 0, GridTile(id=1, flip_y=True))
    layer.set_grid(grid)

    again = TiledMap.parse(tmx_map.serialize())
    assert again.layers[0].get_grid().get(0, 0) == GridTile(1, False, True, False)
    assert again.layers[0].get_grid().get(1, 0) == GridTile(2, True, False, False)


def test_create_layer():
    tmx_map = TiledMap(width=3, height=2, tilewidth=16, tileheight=16)
    tmx_map.layers.append(create_layer("Ground", 3, 2))

    again = TiledMap.parse(tmx_map.serialize())
    assert again.layers[0].name == "Ground"
    assert again.layers[0].gids() == [0] * 6


def test_objects_round_trip():
    text = """
    <map version="1.0" orientation="orthogonal" width="1" height="1" tilewidth="8" tileheight="8">
     <objectgroup name="things" opacity="0.25">
      <properties><property name="kind" value="loot"/></properties>
      <object id="1" name="spawn" x="10" y="20.5"/>
      <object id="2" x="0" y="0" width="16" height="8"><ellipse/></object>
      <object id="3" x="4" y="4"><polyline points="0,0 8,0"/></object>
     </objectgroup>
     <imagelayer name="sky" visible="0"><image source="sky.png"/></imagelayer>
    </map>
    """
    out = TiledMap.parse(text).serialize()

    assert '<objectgroup name="things" opacity="0.25">' in out
    assert '<object id="1" name="spawn" x="10" y="20.5"></object>' in out
    assert '<ellipse></ellipse>' in out
    assert '<polyline points="0,0 8,0"></polyline>' in out
    assert '<imagelayer name="sky" visible="0">' in out
    assert TiledMap.parse(out).objectgroups[0].properties.get_value("kind") == "loot"


def test_save_and_load_external_tileset(tmp_path, sample_map):
    (tmp_path / "stars.tsx").write_text(
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<tileset name="stars" tilewidth="16" tileheight="16">'
        '<image source="stars.png" width="64" height="16"/></tileset>'
    )
    sample_map.tilesets[2] = Tileset(firstgid=65, source="stars.tsx")
    sample_map.tilesets[1] = Tileset(firstgid=33, source="missing.tsx")
    path = tmp_path / "level.tmx"
    sample_map.save(path)

    assert '<tileset firstgid="65" source="stars.tsx"></tileset>' in path.read_text()

    loaded = TiledMap.load(path)
    stars = loaded.tilesets[2]
    assert stars.name == "stars"
    assert stars.firstgid == 65
    assert stars.image.width == 64
    assert stars.source == "stars.tsx"
    assert loaded.tilesets[1].source == "missing.tsx"


def test_missing_external_tileset_is_logged(tmp_path, caplog):
    path = tmp_path / "level.tmx"
    path.write_text(LITERAL_MAP.replace(
        '<tileset firstgid="1" name="t" tilewidth="8" tileheight="8"/>',
        '<tileset firstgid="1" source="gone.tsx"/>'
    ))
    with caplog.at_level(logging.WARNING, logger="tmx_codec.model"):
        tmx_map = TiledMap.load(path)

    assert tmx_map.tilesets[0].source == "gone.tsx"
    placeholder = tmx_map.tilesets[0]
    assert placeholder.name == "gone"
    assert placeholder.firstgid == 1
    assert (placeholder.tilewidth, placeholder.tileheight) == (8, 8)
    assert "External tileset not found" in caplog.text


def test_main_prints_summary(tmp_path, capsys):
    path = tmp_path / "small.tmx"
    path.write_text(LITERAL_MAP)

    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert "orthogonal 2x1" in out
    assert "layer 'literal': 2/2 tiles" in out


def test_main_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "nope.tmx")]) == 1
    assert "not found" in capsys.readouterr().out
