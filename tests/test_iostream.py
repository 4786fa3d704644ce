import pytest

from divecomputer.common import InvalidArgsError, Transport, TransportError, \
    TransportTimeoutError, UnsupportedError
from divecomputer.iostream import CustomStream, Direction, \
    IOCTL_DIR_WRITE, IOCTL_SERIAL_SET_LATENCY, ioctl_dir, ioctl_nr, \
    ioctl_request, ioctl_size, ioctl_type

from conftest import FakeStream

def test_read_timeout_carries_partial_data():
    stream = FakeStream(b'\x01\x02')
    with pytest.raises(TransportTimeoutError) as excinfo:
        stream.read(4)
    assert excinfo.value.data == b'\x01\x02'

def test_read_zero_bytes():
    assert FakeStream().read(0) == b''

def test_closed_stream():
    stream = FakeStream(b'\x01')
    stream.close()
    assert stream.closed
    with pytest.raises(TransportError):
        stream.read(1)
    stream.close()

def test_ioctl_request_encoding():
    request = ioctl_request(IOCTL_DIR_WRITE, 's', 5, 4)
    assert ioctl_dir(request) == IOCTL_DIR_WRITE
    assert ioctl_type(request) == ord('s')
    assert ioctl_nr(request) == 5
    assert ioctl_size(request) == 4

def test_custom_stream_callbacks():
    written = []
    state = {'closed': False}

    def close(userdata):
        userdata['closed'] = True

    stream = CustomStream(None, Transport.BLE, userdata=state,
        read=lambda userdata, size: b'x' * size,
        write=lambda userdata, data: written.append(data) or len(data),
        ioctl=lambda userdata, request, data: b'ok',
        close=close)

    assert stream.transport == Transport.BLE
    assert stream.read(3) == b'xxx'
    assert stream.write(b'abc') == 3
    assert written == [b'abc']
    assert stream.ioctl(IOCTL_SERIAL_SET_LATENCY, b'\x01\x00\x00\x00') == b'ok'
    with pytest.raises(InvalidArgsError):
        stream.ioctl(IOCTL_SERIAL_SET_LATENCY, b'\x01')

    stream.close()
    assert state['closed']

def test_custom_stream_missing_callback():
    stream = CustomStream(None, Transport.SERIAL)
    with pytest.raises(UnsupportedError):
        stream.purge(Direction.ALL)

def test_custom_stream_unknown_callback():
    with pytest.raises(InvalidArgsError):
        CustomStream(None, Transport.SERIAL, frobnicate=lambda userdata: None)
