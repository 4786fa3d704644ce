import struct

import pytest

from divecomputer.checksum import crc16_ccitt
from divecomputer.common import DataFormatError
from divecomputer.driver.seac_screen import ScreenDevice, header_isvalid

from conftest import FakeStream

ADDRESSES = {1: 0x10000, 2: 0x10100}

def make_header(number, nsamples):
    header = bytearray(128)
    header[0x0A:0x11] = bytes((number,)) * 7
    header[0x44:0x48] = struct.pack('<L', nsamples)
    header[62:64] = struct.pack('>H', crc16_ccitt(header[:62]))
    header[126:128] = struct.pack('>H', crc16_ccitt(header[64:126]))
    return bytes(header)

def make_dive(number, nsamples):
    return make_header(number, nsamples) + bytes((0x40 + number,)) * (64 * nsamples)

def make_memory():
    memory = bytearray(b'\xff' * 0x200000)
    memory[0x10000:0x10100] = make_dive(1, 2)
    memory[0x10100:0x101C0] = make_dive(2, 1)
    return memory

def reply(cmd, payload):
    packet = struct.pack('>BHH', 0x55, len(payload) + 7, cmd) + payload + b'\x09'
    return packet + struct.pack('>H', crc16_ccitt(packet))

def responder(memory, addresses=ADDRESSES):
    def respond(packet):
        if packet == b'\x61':
            return b''
        cmd = struct.unpack('>H', packet[3:5])[0]
        data = packet[5:-2]
        if cmd == 0x1833:
            info = bytearray(256)
            info[0x10:0x14] = struct.pack('<L', 98765)
            return reply(cmd, bytes(info))
        elif cmd == 0x1834:
            info = bytearray(256)
            info[0x1C:0x20] = struct.pack('<L', 107)
            return reply(cmd, bytes(info))
        elif cmd == 0x1840:
            return reply(cmd, struct.pack('>LL', min(addresses), max(addresses)))
        elif cmd == 0x1841:
            number = struct.unpack('>L', data)[0]
            return reply(cmd, struct.pack('>L', addresses[number]))
        elif cmd == 0x1842:
            address, size = struct.unpack('>LL', data)
            payload = bytes(memory[address:address + size])
            return reply(cmd, payload + bytes(2048 - len(payload)))
        return b''
    return respond

def test_header_isvalid():
    header = make_header(1, 2)
    assert header_isvalid(header)
    assert not header_isvalid(b'\x01' + header[1:])

def test_open_reads_info(context):
    stream = FakeStream(responder=responder(make_memory()))
    device = ScreenDevice(context, stream)
    assert len(device.info) == 512
    assert stream.writes[0] == b'\x61'

def test_foreach_newest_first(context):
    memory = make_memory()
    stream = FakeStream(responder=responder(memory))
    device = ScreenDevice(context, stream)

    dives = []
    device.foreach(lambda data, fp: dives.append((data, fp)) or True)
    assert dives == [
        (make_dive(2, 1), b'\x02' * 7),
        (make_dive(1, 2), b'\x01' * 7),
    ]
    assert device.devinfo == (0, 107, 98765)

def test_foreach_fingerprint(context):
    stream = FakeStream(responder=responder(make_memory()))
    device = ScreenDevice(context, stream)
    device.set_fingerprint(b'\x01' * 7)

    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)
    assert dives == [make_dive(2, 1)]

def test_foreach_corrupt_header(context):
    memory = make_memory()
    memory[0x10100] ^= 0xFF
    stream = FakeStream(responder=responder(memory))
    device = ScreenDevice(context, stream)
    with pytest.raises(DataFormatError):
        device.foreach(None)
