import datetime
import struct

import pytest

from divecomputer.common import ProtocolError
from divecomputer.device import DevinfoEvent, Event, ProgressEvent
from divecomputer.driver.hw_ostc import OSTCDevice, PREAMBLE, SZ_FW_190, SZ_HEADER
from divecomputer.driver.hw_ostc3 import OSTC3, OSTC3Device, RB_LOGBOOK_COUNT, \
    RB_LOGBOOK_SIZE, State

from conftest import FakeStream

def ostc_header(firmware):
    header = bytearray(PREAMBLE + bytes(SZ_HEADER - len(PREAMBLE)))
    struct.pack_into('<H', header, 6, 4321)
    struct.pack_into('>H', header, 264, firmware)
    return bytes(header)

def ostc_dive(number):
    return b'\xfa\xfa\x00' + bytes((number,)) * 5 + b'\x10' * 4 + b'\xfd\xfd'

def test_ostc_extract_newest_first(context):
    image = ostc_header(0x0100) + ostc_dive(1) + ostc_dive(2) + bytes(32)
    device = OSTCDevice(context, FakeStream())

    dives = []
    device.extract_dives(image, lambda data, fp: dives.append((data, fp)) or True)
    assert dives == [(ostc_dive(2), b'\x02' * 5), (ostc_dive(1), b'\x01' * 5)]

def test_ostc_dump_old_firmware(context):
    memory = ostc_dive(1) + bytes(SZ_FW_190 - len(ostc_dive(1)))
    stream = FakeStream(ostc_header(0x0100) + memory)
    device = OSTCDevice(context, stream)

    data = device.dump()
    assert len(data) == SZ_HEADER + SZ_FW_190
    assert stream.writes == [b'a']

    dives = []
    device.extract_dives(data, lambda dive, fp: dives.append(dive) or True)
    assert dives == [ostc_dive(1)]

def test_ostc_bad_preamble(context):
    stream = FakeStream(bytes(SZ_HEADER))
    device = OSTCDevice(context, stream)
    with pytest.raises(ProtocolError):
        device.dump()

def test_ostc3_timesync(context):
    stream = FakeStream(b'\xbb\x4d' + b'\x62\x4d')
    device = OSTC3Device(context, stream)
    device.timesync(datetime.datetime(2021, 3, 4, 5, 6, 7))

    assert device.state == State.DOWNLOAD
    assert stream.writes == [b'\xbb', b'\x62', bytes((5, 6, 7, 3, 4, 21))]

def test_ostc3_read_config(context):
    stream = FakeStream(b'\xbb\x4d' + b'\x72' + b'\x01\x02\x03\x04' + b'\x4d')
    device = OSTC3Device(context, stream)
    assert bytes(device.read(0x20, 4)) == b'\x01\x02\x03\x04'
    assert stream.writes == [b'\xbb', b'\x72', b'\x20']

def test_ostc3_close_sends_exit(context):
    stream = FakeStream(b'\xbb\x4d' + b'\x62\x4d' + b'\xff')
    device = OSTC3Device(context, stream)
    device.timesync(datetime.datetime(2021, 3, 4, 5, 6, 7))
    device.close()

    assert stream.writes[-1] == b'\xff'
    assert device.state == State.OPEN

def test_ostc3_service_mode(context):
    stream = FakeStream(b'\x4b\xab\xcd\xef\x4c' + b'\x72' + b'\x07' + b'\x4c')
    device = OSTC3Device(context, stream)
    device.init_service()
    assert device.state == State.SERVICE
    assert bytes(device.read(0x01, 1)) == b'\x07'

def test_ostc3_bad_echo(context):
    stream = FakeStream(b'\x00')
    device = OSTC3Device(context, stream)
    with pytest.raises(ProtocolError):
        device.version()

def ostc3_logbook_entry(length):
    entry = bytearray(RB_LOGBOOK_SIZE)
    entry[9:12] = struct.pack('<L', length)[:3]
    entry[12:17] = b'\x01\x02\x03\x04\x05'
    struct.pack_into('<H', entry, 80, 1)
    return bytes(entry)

def test_ostc3_foreach_reports_revised_maximum(context):
    entry = ostc3_logbook_entry(15)
    logbook = entry + b'\xff' * (RB_LOGBOOK_SIZE * (RB_LOGBOOK_COUNT - 1))
    profile = entry + struct.pack('<L', 15)[:3] + b'\x10\x20\x30\x40' + b'\xfd\xfd'

    identity = bytearray(64)
    struct.pack_into('<H', identity, 0, 1234)
    struct.pack_into('>H', identity, 2, 0x0102)

    replies = b'\xbb\x4d' + b'\x69' + bytes(identity) + b'\x4d' + \
        b'\x61' + logbook + b'\x4d' + b'\x66' + profile + b'\x4d'
    stream = FakeStream(replies)
    device = OSTC3Device(context, stream)

    events = []
    device.set_events(Event.PROGRESS | Event.DEVINFO, lambda event, data: events.append((event, data)))
    dives = []
    device.foreach(lambda data, fp: dives.append((data, fp)) or True)

    assert dives == [(profile, b'\x01\x02\x03\x04\x05')]
    assert stream.writes == [b'\xbb', b'\x69', b'\x61', b'\x66', b'\x00']
    assert (Event.DEVINFO, DevinfoEvent(OSTC3, 0x0102, 1234)) in events

    progress = [data for event, data in events if event == Event.PROGRESS]
    logbook_size = RB_LOGBOOK_SIZE * RB_LOGBOOK_COUNT
    assert progress[-2:] == [
        ProgressEvent(logbook_size, logbook_size + len(profile)),
        ProgressEvent(logbook_size + len(profile), logbook_size + len(profile)),
    ]
