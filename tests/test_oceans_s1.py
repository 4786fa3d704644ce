import datetime
import struct

import pytest

from divecomputer.checksum import crc16_ccitt
from divecomputer.common import DataFormatError, ProtocolError
from divecomputer.driver.oceans_s1 import OceansS1Device, parse_divelist

from conftest import FakeStream

DIVELIST = (
    'divelog v1,10s/sample\n'
    'dive 1,0,21,1600000000\n'
    'continue 3,60\n'
    'enddive 3,100\n'
    'dive 2,0,21,1600010000\n'
    'enddive 3,100\n'
    'endlog\n'
)

def xmodem(document, seq=1):
    frames = b''
    for offset in range(0, len(document), 512):
        block = document[offset:offset + 512]
        block += b'\n' * (512 - len(block))
        frames += bytes((0x01, seq, 0xFF - seq)) + block + struct.pack('>H', crc16_ccitt(block, 0))
        seq += 1
    return frames + b'\x04'

def responder():
    pending = []

    def respond(data):
        if data == b'C':
            return xmodem(pending.pop())
        line = data.decode('ascii').strip()
        if line == 'version':
            return b'version>ok 1.5 abc123\n'
        elif line == 'dllist':
            pending.append(DIVELIST.encode('ascii'))
            return b'dllist>xmr\n'
        elif line.startswith('dlget'):
            number = int(line.split()[1])
            pending.append(b'dive %d data\n' % number)
            return b'dlget>xmr\n'
        elif line.startswith('utc'):
            return b'utc>ok\n'
        return b''
    return respond

def test_parse_divelist():
    assert parse_divelist(DIVELIST) == [(1, 1600000000), (2, 1600010000)]
    assert parse_divelist('dive 3,0,21,1600020000\n') == []
    with pytest.raises(DataFormatError):
        parse_divelist('dive x\nenddive\n')

def test_xmodem_receive(context):
    stream = FakeStream(xmodem(b'A' * 512 + b'B' * 10))
    device = OceansS1Device(context, stream)

    assert device.xmodem_receive() == b'A' * 512 + b'B' * 10 + b'\n'
    assert stream.writes == [b'C', b'\x06', b'\x06', b'\x06']

def test_xmodem_bad_sequence(context):
    stream = FakeStream(xmodem(b'data', seq=2))
    device = OceansS1Device(context, stream)
    with pytest.raises(ProtocolError):
        device.xmodem_receive()

def test_xmodem_bad_crc(context):
    frames = bytearray(xmodem(b'data'))
    frames[3] ^= 0xFF
    stream = FakeStream(bytes(frames))
    device = OceansS1Device(context, stream)
    with pytest.raises(ProtocolError):
        device.xmodem_receive()

def test_foreach_newest_first(context):
    stream = FakeStream(responder=responder())
    device = OceansS1Device(context, stream)

    dives = []
    device.foreach(lambda data, fp: dives.append((data, fp)) or True)
    assert dives == [
        (b'dive 2 data\n', struct.pack('>q', 1600010000)),
        (b'dive 1 data\n', struct.pack('>q', 1600000000)),
    ]
    assert device.devinfo == (0, 1 << 16 | 5, 0)
    assert b'dlget 2 3\n' in stream.writes

def test_fingerprint_filters_by_timestamp(context):
    stream = FakeStream(responder=responder())
    device = OceansS1Device(context, stream)
    device.set_fingerprint(struct.pack('>q', 1600000000))

    dives = []
    device.foreach(lambda data, fp: dives.append(data) or True)
    assert dives == [b'dive 2 data\n']
    assert b'dlget 1 2\n' not in stream.writes

def test_unexpected_reply(context):
    stream = FakeStream(b'other>ok\n')
    device = OceansS1Device(context, stream)
    with pytest.raises(ProtocolError):
        device.transfer('version')

def test_timesync(context):
    stream = FakeStream(responder=responder())
    device = OceansS1Device(context, stream)
    device.timesync(datetime.datetime(2020, 9, 13, 12, 26, 40))
    assert stream.writes[-1] == b'utc 1600000000\n'
