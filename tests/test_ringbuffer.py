import pytest

from divecomputer import ringbuffer
from divecomputer.common import InvalidArgsError
from divecomputer.ringbuffer import EMPTY, FULL

def test_small_ring_arithmetic():
    assert ringbuffer.distance(6, 2, FULL, 0, 8) == 4
    assert ringbuffer.increment(6, 5, 0, 8) == 3
    assert ringbuffer.decrement(2, 5, 0, 8) == 5

def test_distance_equal_positions():
    assert ringbuffer.distance(3, 3, EMPTY, 0, 8) == 0
    assert ringbuffer.distance(3, 3, FULL, 0, 8) == 8

def test_distance_with_offset_region():
    assert ringbuffer.distance(0x120, 0x180, EMPTY, 0x100, 0x200) == 0x60
    assert ringbuffer.distance(0x180, 0x120, EMPTY, 0x100, 0x200) == 0xA0

def test_increment_then_decrement_is_identity():
    for a in range(0x100, 0x200, 0x17):
        for d in (0, 1, 0x55, 0x100, 0x3FF):
            b = ringbuffer.increment(a, d, 0x100, 0x200)
            assert ringbuffer.decrement(b, d, 0x100, 0x200) == a

def test_distance_matches_increment():
    for a in range(0, 8):
        for d in range(0, 8):
            b = ringbuffer.increment(a, d, 0, 8)
            assert ringbuffer.distance(a, b, EMPTY, 0, 8) == d

def test_normalize():
    assert ringbuffer.normalize(0x205, 0x100, 0x200) == 0x105
    assert ringbuffer.normalize(0x0FF, 0x100, 0x200) == 0x1FF

def test_out_of_range_position():
    with pytest.raises(InvalidArgsError):
        ringbuffer.distance(8, 2, EMPTY, 0, 8)
    with pytest.raises(InvalidArgsError):
        ringbuffer.increment(-1, 1, 0, 8)

def test_empty_region():
    with pytest.raises(InvalidArgsError):
        ringbuffer.normalize(0, 8, 8)
