import struct

import pytest

from divecomputer.common import DataFormatError
from divecomputer.driver.shearwater_common import PETREL, PREDATOR, \
    decompress_lre, decompress_xor, slip_encode
from divecomputer.driver.shearwater_predator import PredatorDevice, \
    RB_PROFILE_END, SZ_MEMORY

from conftest import FakeStream

def make_image(model):
    data = bytearray(b'\xff' * SZ_MEMORY)
    data[0x20000:0x20080] = bytes(range(0x80))
    data[0x2000D] = model
    return data

def put_samples(data, offset):
    data[offset:offset + 0x80] = bytes(0x80)

def put_block(data, offset, marker, number):
    block = bytearray(0x80)
    block[0:2] = marker
    block[2:4] = struct.pack('>H', number)
    block[12:16] = struct.pack('>L', 0x1000 + number)
    data[offset:offset + 0x80] = block

def pack9(values):
    bits = ''.join('{:09b}'.format(v) for v in values)
    return int(bits, 2).to_bytes(len(bits) // 8, 'big')

def collect(device, data):
    dives = []
    device.extract_dives(data, lambda dive, fp: dives.append((dive, fp)) or True)
    return dives

def test_slip_encode_escapes_special_bytes():
    assert slip_encode(b'\x01\xc0\xdb') == b'\x01\xdb\xdc\xdb\xdd\xc0'

def test_decompress_lre():
    data = pack9([0x141, 0x003, 0x142, 0, 0, 0, 0, 0])
    output, final = decompress_lre(data)
    assert bytes(output) == b'A\x00\x00\x00B'
    assert final

def test_decompress_xor_chains_blocks():
    data = bytearray(b'\x01' * 32 + b'\x03' * 32)
    assert decompress_xor(data) == bytearray(b'\x01' * 32 + b'\x02' * 32)

def test_predator_newest_first(context):
    data = make_image(PREDATOR)
    put_block(data, 0x000, b'\xff\xff', 1)
    put_samples(data, 0x080)
    put_block(data, 0x100, b'\xff\xfe', 1)
    put_block(data, 0x180, b'\xff\xff', 2)
    put_samples(data, 0x200)
    put_block(data, 0x280, b'\xff\xfe', 2)

    device = PredatorDevice(context, FakeStream())
    dives = collect(device, data)

    final = bytes(data[0x20000:0x20080])
    assert [fp for _, fp in dives] == [struct.pack('>L', 0x1002), struct.pack('>L', 0x1001)]
    assert dives[0][0] == bytes(data[0x180:0x300]) + final
    assert dives[1][0] == bytes(data[0x000:0x180]) + final

def test_predator_fingerprint(context):
    data = make_image(PREDATOR)
    put_block(data, 0x000, b'\xff\xff', 1)
    put_samples(data, 0x080)
    put_block(data, 0x100, b'\xff\xfe', 1)
    put_block(data, 0x180, b'\xff\xff', 2)
    put_samples(data, 0x200)
    put_block(data, 0x280, b'\xff\xfe', 2)

    device = PredatorDevice(context, FakeStream())
    device.set_fingerprint(struct.pack('>L', 0x1001))
    dives = collect(device, data)
    assert [fp for _, fp in dives] == [struct.pack('>L', 0x1002)]

def test_petrel_image_is_ordered(context):
    data = make_image(PETREL)
    put_block(data, 0x000, b'\xff\xff', 7)
    put_block(data, 0x080, b'\xff\xfe', 7)
    put_block(data, 0x100, b'\xff\xff', 6)
    put_samples(data, 0x180)
    put_block(data, 0x200, b'\xff\xfe', 6)

    device = PredatorDevice(context, FakeStream())
    dives = collect(device, data)
    assert [len(dive) for dive, _ in dives] == [0x100 + 0x80, 0x180 + 0x80]
    assert [fp for _, fp in dives] == [struct.pack('>L', 0x1007), struct.pack('>L', 0x1006)]

def test_predator_newest_dive_wraps(context):
    data = make_image(PREDATOR)
    put_block(data, 0x1F380, b'\xff\xff', 1)
    put_samples(data, 0x1F400)
    put_block(data, 0x1F480, b'\xff\xfe', 1)
    put_block(data, 0x1F500, b'\xff\xff', 2)
    put_samples(data, 0x1F580)
    put_block(data, 0x00000, b'\xff\xfe', 2)

    device = PredatorDevice(context, FakeStream())
    dives = collect(device, data)

    final = bytes(data[0x20000:0x20080])
    assert [fp for _, fp in dives] == [struct.pack('>L', 0x1002), struct.pack('>L', 0x1001)]
    assert dives[0][0] == bytes(data[0x1F500:0x1F600]) + bytes(data[0x000:0x080]) + final
    assert dives[1][0] == bytes(data[0x1F380:0x1F500]) + final

def test_predator_dive_number_mismatch(context):
    data = make_image(PREDATOR)
    put_block(data, 0x000, b'\xff\xff', 1)
    put_samples(data, 0x080)
    put_block(data, 0x100, b'\xff\xfe', 2)

    device = PredatorDevice(context, FakeStream())
    with pytest.raises(DataFormatError):
        collect(device, data)

def test_petrel_full_ring(context):
    data = make_image(PETREL)
    data[0:RB_PROFILE_END] = bytes(RB_PROFILE_END)
    put_block(data, 0x000, b'\xff\xff', 3)
    put_block(data, RB_PROFILE_END - 0x80, b'\xff\xfe', 3)

    device = PredatorDevice(context, FakeStream())
    dives = collect(device, data)
    assert len(dives) == 1
    assert dives[0][0] == bytes(data[0:RB_PROFILE_END]) + bytes(data[0x20000:0x20080])

def test_petrel_truncated_image(context):
    data = make_image(PETREL)
    device = PredatorDevice(context, FakeStream())
    with pytest.raises(DataFormatError):
        collect(device, data[:SZ_MEMORY - 1])

def test_short_image(context):
    device = PredatorDevice(context, FakeStream())
    with pytest.raises(DataFormatError):
        collect(device, bytes(0x100))

def test_download_protocol(context):
    def respond(packet):
        command = packet[4]
        if command == 0x35:
            payload = b'\x75\x10\xfe'
        elif command == 0x36:
            payload = b'\x76' + packet[5:6] + b'ABCD'
        elif command == 0x37:
            payload = b'\x77\x00'
        else:
            return b''
        return slip_encode(bytes((0x01, 0xFF, len(payload) + 1, 0x00)) + payload)

    stream = FakeStream(responder=respond)
    device = PredatorDevice(context, stream)
    assert bytes(device.download(0xDD000000, 4)) == b'ABCD'
    assert [w[4] for w in stream.writes] == [0x35, 0x36, 0x37]
    assert stream.writes[0] == slip_encode(b'\xff\x01\x0b\x00\x35\x00\x34\xdd\x00\x00\x00\x00\x00\x04')
