import struct

import pytest

from divecomputer.checksum import reverse_bytes, xor_uint8
from divecomputer.common import DataFormatError, ProtocolError
from divecomputer.device import DevinfoEvent, Event
from divecomputer.driver.uwatec_memomouse import ACK, NAK, MemomouseDevice
from divecomputer.iostream import Direction

from conftest import FakeStream

def dive_header(number, length):
    return bytes((number,)) * 11 + struct.pack('<L', 1000 + number) + struct.pack('<H', length)

def dive(number, length):
    return dive_header(number, length) + bytes((0x80 + number,)) * length

def outer(payload, corrupt=False):
    raw = bytes((len(payload),)) + payload
    raw += bytes((xor_uint8(raw) ^ (0xFF if corrupt else 0),))
    return reverse_bytes(raw)

def inner(content):
    body = struct.pack('<H', len(content)) + content
    body += bytes((xor_uint8(body),))
    return b''.join(outer(body[i:i + 100]) for i in range(0, len(body), 100))

def dive_stream(prefix=b'\x00' * 5):
    return prefix + dive(1, 4) + dive(2, 2) + dive_header(2, 2) + b'\x00' * 4

def test_constructor_sets_lines(context):
    stream = FakeStream()
    MemomouseDevice(context, stream)
    assert stream.settings[0] == 9600
    assert stream.sleeps == [200]
    assert stream.purges == [Direction.ALL]
    assert stream.dtr is True
    assert stream.rts is False

def test_extract_first_pass_newest_first(context):
    device = MemomouseDevice(context, FakeStream())
    dives = []
    device.extract_dives(dive_stream(), lambda data, fp: dives.append((data, fp)) or True)
    assert dives == [
        (dive(2, 2), struct.pack('<L', 1002)),
        (dive(1, 4), struct.pack('<L', 1001)),
    ]

def test_extract_stops_at_fingerprint(context):
    device = MemomouseDevice(context, FakeStream())
    device.set_fingerprint(struct.pack('<L', 1002))
    dives = []
    device.extract_dives(dive_stream(), lambda data, fp: dives.append(data) or True)
    assert dives == []

def test_extract_overrun(context):
    device = MemomouseDevice(context, FakeStream())
    with pytest.raises(DataFormatError):
        device.extract_dives(b'\x00' * 5 + dive_header(1, 100), None)

def test_download(context):
    content = dive_stream()
    replies = outer(b'\x00', corrupt=True) + inner(b'ALADIN') + bytes((ACK,)) + inner(content)
    stream = FakeStream(replies)
    device = MemomouseDevice(context, stream)
    device.set_fingerprint(struct.pack('<L', 1001))

    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)
    assert dives == [dive(2, 2)]

    command = bytearray(b'\x07\x05\x00\x55' + struct.pack('<L', 1001))
    command.append(xor_uint8(command))
    assert stream.writes[0] == bytes((NAK,))
    assert stream.writes[1] == bytes((ACK,))
    assert stream.writes[2] == reverse_bytes(command)
    assert all(w == bytes((ACK,)) for w in stream.writes[3:])

def test_download_emits_devinfo(context):
    content = dive_stream(b'\x12\x34\x56\x1c\x00')
    stream = FakeStream(inner(b'ALADIN') + bytes((ACK,)) + inner(content))
    device = MemomouseDevice(context, stream)

    events = []
    device.set_events(Event.DEVINFO | Event.PROGRESS, lambda event, data: events.append((event, data)))
    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)

    assert dives == [dive(2, 2), dive(1, 4)]
    assert [data for event, data in events if event == Event.DEVINFO] == [DevinfoEvent(0x1c, 0, 123456)]
    progress = [data for event, data in events if event == Event.PROGRESS]
    assert progress[-1].current == progress[-1].maximum == len(content) + 3

def test_first_packet_longer_than_declared(context):
    replies = inner(b'ALADIN') + bytes((ACK,)) + outer(b'\x01\x00abcd')
    device = MemomouseDevice(context, FakeStream(replies))
    with pytest.raises(ProtocolError):
        device.dump()
