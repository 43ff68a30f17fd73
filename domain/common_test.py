# coding: utf-8
import pytest

from domain.common import split_address_range_to_max_size, split_data_chunk_to_max_size, to_hex_string
from domain.mcu_addressing import MCULogicalAddressRange, MCULocatedLogicalDataChunk

def test_split_address_range_to_max_size():
    # When splitting a range that is not a multiple of the maximum size
    ranges = list(split_address_range_to_max_size(MCULogicalAddressRange(0x1000, 0x1000 + 150), max_size=64))

    # Then all resulting ranges are consecutive, and only the last one is smaller
    assert [(r.start_address, r.end_address) for r in ranges] == [(0x1000, 0x1040), (0x1040, 0x1080), (0x1080, 0x1096)]

def test_split_small_range_is_unchanged():
    ranges = list(split_address_range_to_max_size(MCULogicalAddressRange(0x10, 0x20), max_size=64))
    assert [(r.start_address, r.end_address) for r in ranges] == [(0x10, 0x20)]

def test_split_refuses_invalid_max_size():
    with pytest.raises(ValueError):
        list(split_address_range_to_max_size(MCULogicalAddressRange(0x10, 0x20), max_size=0))

def test_split_data_chunk_to_max_size():
    chunks = list(split_data_chunk_to_max_size(MCULocatedLogicalDataChunk(0x2000, bytes(range(150))), max_size=64))

    assert [(c.start_address, c.size) for c in chunks] == [(0x2000, 64), (0x2040, 64), (0x2080, 22)]
    assert b''.join(c.get_content() for c in chunks) == bytes(range(150))

def test_split_empty_data_chunk():
    assert list(split_data_chunk_to_max_size(MCULocatedLogicalDataChunk(0x2000, b''), max_size=64)) == []

def test_to_hex_string():
    assert to_hex_string(b'\xff\x00\x10') == 'ff 00 10'
    assert to_hex_string(b'') == ''
