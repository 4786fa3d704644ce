import struct

import pytest

from divecomputer.checksum import add_uint16
from divecomputer.common import ProtocolError
from divecomputer.driver.reefnet_sensus import SensusDevice, SZ_MEMORY

from conftest import FakeStream

def make_dive(timestamp):
    dive = bytearray(b'\xff\x00' + struct.pack('<L', timestamp) + b'\xfe')
    for i in range(27):
        dive.append(20 if i < 10 else 3)
        if i % 6 == 0:
            dive.append(0x50)
    return bytes(dive)

def make_memory(*dives):
    memory = b''.join(dives)
    return memory + bytes(SZ_MEMORY - len(memory))

def collect(device, memory):
    dives = []
    device.extract_dives(memory, lambda data, fp: dives.append((data, fp)) or True)
    return dives

def test_dive_ends_after_surface_samples(context):
    dive = make_dive(0x01020304)
    assert len(dive) == 39

    device = SensusDevice(context, FakeStream())
    dives = collect(device, make_memory(dive))
    assert dives == [(dive, struct.pack('<L', 0x01020304))]

def test_dives_newest_first(context):
    older = make_dive(0x01020304)
    newer = make_dive(0x01020404)

    device = SensusDevice(context, FakeStream())
    dives = collect(device, make_memory(older, newer))
    assert [data for data, _ in dives] == [newer, older]

def test_timestamp_filter(context):
    older = make_dive(0x01020304)
    newer = make_dive(0x01020404)

    device = SensusDevice(context, FakeStream())
    device.set_fingerprint(struct.pack('<L', 0x01020305))
    dives = collect(device, make_memory(older, newer))
    assert [data for data, _ in dives] == [newer]

def handshake_reply(memory, checksum=None):
    if checksum is None:
        checksum = add_uint16(memory)
    return b'OK12\x00\x00' + struct.pack('<H', 1234) + struct.pack('<L', 5000) + \
        b'DATA' + memory + struct.pack('<H', checksum) + b'END'

def test_dump(context):
    memory = make_memory(make_dive(0x01020304))
    stream = FakeStream(handshake_reply(memory))
    device = SensusDevice(context, stream)

    assert bytes(device.dump()) == memory
    assert stream.writes == [b'\x0a', b'\x40']
    assert device.devinfo == (1, 2, 1234)
    assert device.clock.devtime == 5000
    assert device.vendor.data == b'12\x00\x00' + struct.pack('<H', 1234) + struct.pack('<L', 5000)

    device.close()
    assert stream.writes == [b'\x0a', b'\x40']

def test_dump_bad_checksum(context):
    memory = make_memory(make_dive(0x01020304))
    stream = FakeStream(handshake_reply(memory, (add_uint16(memory) + 1) & 0xFFFF))
    device = SensusDevice(context, stream)
    with pytest.raises(ProtocolError):
        device.dump()
