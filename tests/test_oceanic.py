import struct

import pytest

from divecomputer import ringbuffer
from divecomputer.checksum import add_uint8
from divecomputer.common import DataFormatError
from divecomputer.device import Event
from divecomputer.driver.oceanic_common import Layout, OceanicDevice, \
    Version, get_profile_first, get_profile_last, match_version
from divecomputer.driver.oceanic_veo250 import BANNER, VEO250, VERSIONS, Veo250Device

from conftest import FakeStream

LAYOUT = Layout(
    memsize=0x400,
    highmem=0,
    cf_devinfo=0x00,
    cf_pointers=0x10,
    rb_logbook_begin=0x20,
    rb_logbook_end=0x80,
    rb_logbook_entry_size=8,
    rb_logbook_direction=1,
    rb_profile_begin=0x80,
    rb_profile_end=0x400,
    pt_mode_global=1,
    pt_mode_logbook=1,
    pt_mode_serial=1,
)

ENTRY_A = b'\x01\x00\x00\x00' + struct.pack('<HH', 0x08, 0x09)
ENTRY_B = b'\x02\x00\x00\x00' + struct.pack('<HH', 0x0A, 0x0C)

class MemoryOceanic(OceanicDevice):
    NAME = 'memory_oceanic'

    def __init__(self, memory):
        super(MemoryOceanic, self).__init__(None, FakeStream())
        self.memory = memory
        self.set_layout(LAYOUT)

    def read(self, address, size):
        return bytes(self.memory[address:address + size])

def make_memory(entry_a=ENTRY_A):
    memory = bytearray(b'\xff' * 0x400)
    memory[0x10:0x20] = bytes(4) + struct.pack('<HH', 0x30, 0x30) + bytes(8)
    memory[0x20:0x28] = entry_a
    memory[0x28:0x30] = ENTRY_B
    for address in range(0x80, 0xD0):
        memory[address] = address & 0xFF
    return memory

def collect(device):
    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)
    return dives

def test_profile_pointers():
    assert get_profile_first(ENTRY_A, LAYOUT) == 0x80
    assert get_profile_last(ENTRY_A, LAYOUT) == 0x90

def test_match_version():
    patterns = [Version(b'ABC\0', 1, 0x10, LAYOUT), Version(b'AB\0\0', 2, 0x20, LAYOUT)]
    assert match_version(b'ABCD', patterns).model == 0x10
    assert match_version(b'ABXD', patterns).model == 0x20
    assert match_version(b'XBCD', patterns) is None

def test_foreach_newest_first():
    memory = make_memory()
    device = MemoryOceanic(memory)
    assert collect(device) == [
        ENTRY_B + bytes(memory[0xA0:0xD0]),
        ENTRY_A + bytes(memory[0x80:0xA0]),
    ]

def test_foreach_fingerprint():
    memory = make_memory()
    device = MemoryOceanic(memory)
    device.set_fingerprint(ENTRY_A)
    assert collect(device) == [ENTRY_B + bytes(memory[0xA0:0xD0])]

def test_invalid_profile_pointer_after_valid_dives():
    memory = make_memory(b'\x01\x00\x00\x00' + struct.pack('<HH', 0x05, 0x09))
    device = MemoryOceanic(memory)

    dives = []
    with pytest.raises(DataFormatError):
        device.foreach(lambda data, fp: dives.append(data) or True)
    assert dives == [ENTRY_B + bytes(memory[0xA0:0xD0])]

def test_dump_reads_whole_memory():
    memory = make_memory()
    device = MemoryOceanic(memory)
    assert bytes(device.dump()) == bytes(memory)

def page(data):
    return data + bytes((add_uint8(data),))

def test_veo250_open_and_read(context):
    version = b'VEO 250 R12 256K'
    memory_page = bytes(range(0x10))
    replies = BANNER + b'\xa5' + b'\x5a' + page(version) + b'\xa5' + \
        b'\x5a' + page(memory_page) + b'\xa5'
    stream = FakeStream(replies)

    device = Veo250Device(context, stream)
    assert device.model == VEO250
    assert device.version == version
    assert device.layout is VERSIONS[2].layout

    assert bytes(device.read(0x40, 0x10)) == memory_page
    assert stream.writes == [b'\x55\x00', b'\x90\x00', b'\x90\x00', struct.pack('<BHHB', 0x20, 4, 4, 0)]

    device.close()
    assert stream.writes[-1] == b'\x98\x00'

def test_logbook_and_profile_wrap():
    # Newest entry at the start of the logbook ring, the older one at its
    # end; the newest profile crosses the end of the profile ring.
    entry_c = b'\x03\x00\x00\x00' + struct.pack('<HH', 0x3E, 0x08)
    entry_d = b'\x04\x00\x00\x00' + struct.pack('<HH', 0x3C, 0x3D)

    memory = bytearray(b'\xff' * 0x400)
    memory[0x10:0x20] = bytes(4) + struct.pack('<HH', 0x78, 0x28) + bytes(8)
    memory[0x20:0x28] = entry_c
    memory[0x78:0x80] = entry_d
    for address in range(0x80, 0x400):
        memory[address] = address & 0xFF

    assert ringbuffer.distance(0x78, 0x28, ringbuffer.EMPTY, 0x20, 0x80) == 0x30
    assert ringbuffer.distance(0x28, 0x28, ringbuffer.EMPTY, 0x20, 0x80) == 0
    assert ringbuffer.distance(0x28, 0x28, ringbuffer.FULL, 0x20, 0x80) == 0x60

    device = MemoryOceanic(memory)
    assert collect(device) == [
        entry_c + bytes(memory[0x3E0:0x400]) + bytes(memory[0x80:0x90]),
        entry_d + bytes(memory[0x3C0:0x3E0]),
    ]

def test_progress_stays_within_maximum():
    memory = make_memory()

    device = MemoryOceanic(memory)
    events = []
    device.set_events(Event.PROGRESS, lambda event, data: events.append(data))
    assert len(collect(device)) == 2
    assert all(e.current <= e.maximum for e in events)
