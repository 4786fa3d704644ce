import binascii
import datetime
import struct

import pytest

from divecomputer.common import InvalidArgsError, ProtocolError
from divecomputer.driver.deepblu_cosmiq import CosmiqDevice, decode, encode

from conftest import FakeStream

MAC = b'\x01\x02\x03\x04\x05\x06'

def reply(cmd, payload=b''):
    return b'$' + encode(cmd, payload)[1:]

def header(number):
    return bytes((number,)) * 6 + bytes((0x10 + number,)) * 6 + bytes(24)

def profile(number):
    return bytes((0xA0 + number,)) * 10

def responder(ndives):
    def respond(line):
        raw = binascii.unhexlify(line[1:-1])
        cmd, payload = raw[0], raw[3:]
        if cmd == 0x58:
            return reply(0x58, b'\x05')
        elif cmd == 0x5A:
            return reply(0x5A, MAC)
        elif cmd == 0x40:
            return reply(0x40, bytes((ndives,)))
        elif cmd == 0x41:
            data = header(payload[0])
            return reply(0x41, b'\x24') + reply(0x42, data[:20]) + reply(0x42, data[20:])
        elif cmd == 0x43:
            return reply(0x43, struct.pack('>H', 10)) + reply(0x44, profile(payload[0]))
        elif cmd == 0x20:
            return reply(0x20, b'\x00')
        return b''
    return respond

def test_encode():
    assert encode(0x40) == b'#40C000\n'
    assert encode(0x41, b'\x01') == b'#41BC0201\n'

def test_decode():
    assert decode(0x41, b'$41BC0201\n') == b'\x01'
    with pytest.raises(ProtocolError):
        decode(0x41, b'$41BE0201\n')
    with pytest.raises(ProtocolError):
        decode(0x40, b'$41BC0201\n')

def test_foreach(context):
    stream = FakeStream(responder=responder(2))
    device = CosmiqDevice(context, stream)

    dives = []
    device.foreach(lambda data, fp: dives.append((data, fp)) or True)
    assert dives == [
        (header(1) + profile(1), bytes((0x11,)) * 6),
        (header(2) + profile(2), bytes((0x12,)) * 6),
    ]
    assert device.devinfo == (0, 5, 0x04030201)

def test_fingerprint_skips_profiles(context):
    stream = FakeStream(responder=responder(2))
    device = CosmiqDevice(context, stream)
    device.set_fingerprint(bytes((0x12,)) * 6)

    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)
    assert dives == [header(1) + profile(1)]
    assert encode(0x43, b'\x02') not in stream.writes

def test_no_dives(context):
    stream = FakeStream(responder=responder(0))
    device = CosmiqDevice(context, stream)
    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)
    assert dives == []

def test_timesync(context):
    stream = FakeStream(responder=responder(0))
    device = CosmiqDevice(context, stream)
    device.timesync(datetime.datetime(2021, 3, 4, 5, 6, 7))
    assert stream.writes[-1] == encode(0x20, b'\x21\x03\x04\x05\x06\x07')

    with pytest.raises(InvalidArgsError):
        device.timesync(datetime.datetime(1999, 12, 31))
