import struct

import pytest

from divecomputer.common import DataFormatError, ProtocolError
from divecomputer.driver.mares_iconhd import ICONHD, SZ_MEMORY, SZ_VERSION, \
    IconHDDevice

from conftest import FakeStream

VERSION = b'Icon HD'.ljust(SZ_VERSION, b'\x00')

def make_dive(nsamples, tag, length=None):
    header = bytearray(0x5C)
    header[2:4] = struct.pack('<H', nsamples)
    header[6:16] = bytes((tag,)) * 10
    if length is None:
        length = 4 + 0x5C + 8 * nsamples
    return struct.pack('<L', length) + bytes(8 * nsamples) + bytes(header)

def make_image(*dives):
    data = bytearray(b'\xff' * SZ_MEMORY)
    data[0] = ICONHD
    offset = 0xA000
    for dive in dives:
        data[offset:offset + len(dive)] = dive
        offset += len(dive)
    data[0x2001:0x2005] = struct.pack('<L', offset)
    return data

def open_device(context, replies=b''):
    stream = FakeStream(b'\xaa' + VERSION + b'\xea' + replies)
    return IconHDDevice(context, stream), stream

def test_version_handshake(context):
    device, stream = open_device(context)
    assert device.version == VERSION
    assert stream.writes == [b'\xc2\x67']

def test_bad_ack(context):
    with pytest.raises(ProtocolError):
        IconHDDevice(context, FakeStream(b'\x00'))

def test_read(context):
    device, stream = open_device(context, b'\xaa' + bytes(range(16)) + b'\xea')
    assert bytes(device.read(0x100, 16)) == bytes(range(16))
    assert stream.writes[1:] == [b'\xe7\x42', struct.pack('<LL', 0x100, 16)]

def test_extract_newest_first(context):
    older = make_dive(2, 0x11)
    newer = make_dive(1, 0x22)
    device, _ = open_device(context)

    dives = []
    device.extract_dives(make_image(older, newer), lambda data, fp: dives.append((data, fp)) or True)
    assert dives == [(newer, b'\x22' * 10), (older, b'\x11' * 10)]

def test_extract_fingerprint(context):
    older = make_dive(2, 0x11)
    newer = make_dive(1, 0x22)
    device, _ = open_device(context)
    device.set_fingerprint(b'\x11' * 10)

    dives = []
    device.extract_dives(make_image(older, newer), lambda data, fp: dives.append(data) or True)
    assert dives == [newer]

def test_extract_length_mismatch(context):
    device, _ = open_device(context)
    image = make_image(make_dive(1, 0x22, length=0x69))
    with pytest.raises(DataFormatError):
        device.extract_dives(image, None)

def test_extract_bad_pointer(context):
    device, _ = open_device(context)
    image = make_image()
    image[0x2001:0x2005] = struct.pack('<L', 0x100)
    with pytest.raises(DataFormatError):
        device.extract_dives(image, None)
