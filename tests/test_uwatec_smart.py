import datetime
import struct

import pytest

from divecomputer import adapt, open_device, open_parser
from divecomputer.common import InvalidArgsError, UnsupportedError
from divecomputer.device import Event
from divecomputer.driver.uwatec_smart import SmartDevice
from divecomputer.parser import FieldType, ParseError, SampleEvent, SampleType
from divecomputer.parser.uwatec_smart import EPOCH, GALILEO, SMARTTEC, SmartParser, \
    fix_signbit, galileo_identify, smart_identify

from conftest import FakeStream

def smart_tec_header(maxdepth=1000, divetime=45, temp_min=215, o2=0):
    header = bytearray(132)
    struct.pack_into('<H', header, 18, maxdepth)
    struct.pack_into('<H', header, 20, divetime)
    struct.pack_into('<h', header, 22, temp_min)
    struct.pack_into('<H', header, 28, o2)
    return header

def make_dive(timestamp):
    return SmartDevice.HEADER + struct.pack('<L', 16) + struct.pack('<L', timestamp) + b'\x00' * 4

def smart_replies(data, model=0x18):
    return b'\x01\x01' + struct.pack('<L', 1000) + struct.pack('<L', 12345) + \
        bytes((model,)) + struct.pack('<L', len(data)) + \
        struct.pack('<L', len(data) + 4) + data

def test_parser_samples():
    parser = SmartParser(None, bytes(132) + b'\x40\xc0\x20\x40', model=SMARTTEC)
    assert parser.samples() == [(SampleType.TIME, 0), (SampleType.TIME, 4)]

def test_smart_identify():
    assert smart_identify(b'\x40', 0) == 0
    assert smart_identify(b'\xf8', 0) == 5
    assert smart_identify(b'\x00\xff\x00', 1) == 8
    assert smart_identify(b'\xff\xff', 0) == -1

def test_galileo_identify():
    assert galileo_identify(0x05) == 0
    assert galileo_identify(0x9f) == 1
    assert galileo_identify(0xa0) == 2
    assert galileo_identify(0xe5) == 6
    assert galileo_identify(0xf3) == 10
    assert galileo_identify(0xfb) == 18

def test_fix_signbit():
    assert fix_signbit(0x3f, 7) == 63
    assert fix_signbit(0x7f, 7) == -1
    assert fix_signbit(0x80, 8) == -128
    assert fix_signbit(0x7ff, 11) == -1
    assert fix_signbit(0x12, 0) == 0

def test_parser_emit_order():
    # absolute temperature, absolute depth (calibration), delta depth +50
    samples = b'\xff\x80\x00\x37' + b'\xff\x00\x00\x64' + b'\xf0\x32'
    parser = SmartParser(None, bytes(132) + samples, model=SMARTTEC)

    result = parser.samples()
    assert [kind for kind, value in result] == [
        SampleType.TIME, SampleType.TEMPERATURE, SampleType.DEPTH,
        SampleType.TIME, SampleType.TEMPERATURE, SampleType.DEPTH,
    ]
    assert result[0][1] == 0
    assert result[1][1] == pytest.approx(22.0)
    assert result[2][1] == pytest.approx(0.0)
    assert result[3][1] == 4
    assert result[5][1] == pytest.approx(1.0)

def test_parser_invalid_opcode():
    parser = SmartParser(None, bytes(132) + b'\xff\xff', model=SMARTTEC)
    with pytest.raises(ParseError):
        parser.samples()

def test_parser_truncated_payload():
    parser = SmartParser(None, bytes(132) + b'\xff\x00\x00', model=SMARTTEC)
    with pytest.raises(ParseError):
        parser.samples()

def test_galileo_inline_gasmix_and_bookmark():
    misc = b'\xfb\x10' + b'\x21' + struct.pack('<HHHH', 32, 10, 0xffff, 0xffff) + bytes(6)
    samples = misc + b'\xf0\x20' + b'\xe8' + b'\xc1'
    parser = SmartParser(None, bytes(152) + samples, model=GALILEO)

    result = parser.samples()
    assert [kind for kind, value in result] == \
        [SampleType.TIME, SampleType.GASMIX, SampleType.EVENT]
    assert result[1][1] == 0
    assert result[2][1].type == SampleEvent.BOOKMARK

    assert parser.get_field(FieldType.GASMIX_COUNT) == 1
    assert parser.get_field(FieldType.TANK_COUNT) == 0
    assert tuple(parser.get_field(FieldType.GASMIX, 0)) == pytest.approx((0.32, 0.10, 0.58))

    parser.set_data(bytes(152))
    assert parser.get_field(FieldType.GASMIX_COUNT) == 0

def test_parser_header_fields():
    parser = SmartParser(None, smart_tec_header(o2=32), model=SMARTTEC)
    assert parser.get_field(FieldType.MAXDEPTH) == pytest.approx(10.0)
    assert parser.get_field(FieldType.DIVETIME) == 2700
    assert parser.get_field(FieldType.TEMPERATURE_MINIMUM) == pytest.approx(21.5)
    assert parser.get_field(FieldType.GASMIX_COUNT) == 1
    assert tuple(parser.get_field(FieldType.GASMIX, 0)) == pytest.approx((0.32, 0.0, 0.68))
    assert parser.get_field(FieldType.TANK_COUNT) == 0

    with pytest.raises(UnsupportedError):
        parser.get_field(FieldType.TEMPERATURE_MAXIMUM)
    with pytest.raises(InvalidArgsError):
        parser.get_field(FieldType.GASMIX, 1)

def test_parser_datetime_is_local():
    header = smart_tec_header()
    struct.pack_into('<L', header, 8, 7200)
    parser = SmartParser(None, header, model=SMARTTEC)
    assert parser.get_datetime() == datetime.datetime.fromtimestamp(EPOCH + 3600)

def test_parser_rejects_unknown_model():
    with pytest.raises(InvalidArgsError):
        SmartParser(None, bytes(132), model=0x01)

def test_parser_short_header():
    parser = SmartParser(None, bytes(40), model=SMARTTEC)
    with pytest.raises(ParseError):
        parser.get_field(FieldType.MAXDEPTH)

def test_adapter_summary():
    parser = open_parser(None, 'uwatec_smart', smart_tec_header(o2=21), model=SMARTTEC)
    summary = adapt(parser, serial=12345).summary()
    assert summary['duration'] == pytest.approx(45.0)
    assert summary['max_depth'] == pytest.approx(10.0)
    assert summary['mixes']['gas_0']['o2'] == pytest.approx(0.21)
    assert summary['profile'] == []
    assert summary['vendor'] == {}

def test_handshake_reads_device_info(context):
    stream = FakeStream(smart_replies(b''))
    device = open_device(context, 'uwatec_smart', stream)
    assert isinstance(device, SmartDevice)
    assert device.model == 0x18
    assert device.serial == 12345
    assert device.devtime == 1000
    assert device.model_name == 'Smart Tec'
    assert stream.writes[:5] == [b'\x1b', b'\x1c\x10\x27\x00\x00', b'\x1a', b'\x14', b'\x10']

def test_foreach_newest_first(context):
    older = make_dive(0x100)
    newer = make_dive(0x200)
    stream = FakeStream(smart_replies(older + newer))
    device = SmartDevice(context, stream)

    events = []
    device.set_events(Event.DEVINFO | Event.CLOCK, lambda event, data: events.append(event))

    dives = []
    device.foreach(lambda data, fp: dives.append((data, fp)) or True)
    assert dives == [(newer, struct.pack('<L', 0x200)), (older, struct.pack('<L', 0x100))]
    assert events == [Event.DEVINFO, Event.CLOCK]
    assert device.devinfo == (0x18, 0, 12345)

def test_fingerprint_is_sent_to_device(context):
    stream = FakeStream(smart_replies(b''))
    device = SmartDevice(context, stream)
    device.set_fingerprint(struct.pack('<L', 0x200))

    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)
    assert dives == []
    assert stream.writes[-1] == b'\xc6' + struct.pack('<L', 0x200) + b'\x10\x27\x00\x00'
