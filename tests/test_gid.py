"""Tests for GID bit packing."""

import random

import pytest

from tmx_codec import pack_gid, unpack_gid


@pytest.mark.parametrize("bits, tile_id, flip_h, flip_v, flip_d", [
    ("10000000000000000000000000000001", 1, True, False, False),
    ("01000000000000000000000000000011", 3, False, True, False),
    ("00100000000000000000000000000100", 4, False, False, True),
    ("10100000000000000000000000001110", 14, True, False, True),
])
def test_unpack_and_pack(bits, tile_id, flip_h, flip_v, flip_d):
    gid = int(bits, 2)
    assert unpack_gid(gid) == (tile_id, flip_h, flip_v, flip_d)
    assert format(pack_gid(tile_id, flip_h, flip_v, flip_d), '032b') == bits


def test_plain_gid_has_no_flags():
    assert unpack_gid(65) == (65, False, False, False)
    assert unpack_gid(0) == (0, False, False, False)


def test_pack_unpack_round_trip():
    rng = random.Random(1234)
    samples = [0, 1, 0xFFFFFFFF, 0x1FFFFFFF, 0xE0000000]
    samples += [rng.getrandbits(32) for _ in range(500)]
    for gid in samples:
        assert pack_gid(*unpack_gid(gid)) == gid
