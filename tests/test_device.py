import pytest

from divecomputer.common import CancelledError, InvalidArgsError, \
    ProtocolError, TransportTimeoutError, UnsupportedError
from divecomputer.device import CancelToken, Device, Event, ProgressEvent
from divecomputer.iostream import Direction

class DummyDevice(Device):
    NAME = 'dummy'
    FINGERPRINT_SIZE = 4

    def __init__(self, stream, dives=(), owns_stream=False):
        super(DummyDevice, self).__init__(None, stream, owns_stream=owns_stream)
        self.dives = list(dives)
        self.shutdown = 0

    def read(self, address, size):
        return bytes((address + i) & 0xFF for i in range(size))

    def foreach(self, callback):
        for dive in self.dives:
            if not self.deliver(callback, dive, dive[:4]):
                break

    def _shutdown(self):
        self.shutdown += 1

def test_fingerprint_size_is_checked(stream):
    device = DummyDevice(stream)
    with pytest.raises(InvalidArgsError):
        device.set_fingerprint(b'\x01\x02')
    device.set_fingerprint(b'\x01\x02\x03\x04')
    assert device.fingerprint == b'\x01\x02\x03\x04'
    device.set_fingerprint(None)
    assert device.fingerprint == b''

def test_fingerprint_stops_download(stream):
    dives = [b'DDDDnewest', b'CCCCnewer', b'BBBBold', b'AAAAoldest']
    device = DummyDevice(stream, dives)
    device.set_fingerprint(b'BBBB')

    received = []
    device.foreach(lambda data, fp: received.append(data) or True)
    assert received == dives[:2]

def test_callback_stops_download(stream):
    device = DummyDevice(stream, [b'1111', b'2222', b'3333'])
    received = []

    def callback(data, fingerprint):
        received.append(fingerprint)
        return False

    device.foreach(callback)
    assert received == [b'1111']

def test_unsupported_operations(stream):
    device = DummyDevice(stream)
    with pytest.raises(UnsupportedError):
        device.dump()
    with pytest.raises(UnsupportedError):
        device.timesync(None)
    with pytest.raises(UnsupportedError):
        device.write(0, b'\x00')

def test_events_are_filtered_by_mask(stream):
    device = DummyDevice(stream)
    events = []
    device.set_events(Event.DEVINFO | Event.CLOCK, lambda ev, data: events.append((ev, data)))

    device.emit_devinfo(0x10, 3, 12345)
    device.emit_vendor(b'\x01')
    device.emit_clock(100, 200)

    assert [ev for ev, _ in events] == [Event.DEVINFO, Event.CLOCK]
    assert events[0][1].serial == 12345
    # State is kept even for unsubscribed events
    assert device.vendor.data == b'\x01'

def test_progress_is_monotonic(stream):
    device = DummyDevice(stream)
    events = []
    device.set_events(Event.PROGRESS, lambda ev, data: events.append(data))

    progress = device.progress(100)
    progress.update(10)
    progress.set_current(50)
    with pytest.raises(InvalidArgsError):
        progress.set_current(40)
    with pytest.raises(InvalidArgsError):
        progress.set_maximum(20)
    progress.set_maximum(60)
    progress.set_current(60)

    assert events == [ProgressEvent(10, 100), ProgressEvent(50, 100), ProgressEvent(60, 60)]

def test_retry_recovers_from_protocol_errors(stream):
    device = DummyDevice(stream)
    attempts = []

    def exchange():
        attempts.append(1)
        if len(attempts) < 3:
            raise ProtocolError('Bad packet')
        return b'ok'

    assert device.retry(exchange, 5, 50) == b'ok'
    assert len(attempts) == 3
    assert stream.sleeps == [50, 50]
    assert stream.purges == [Direction.INPUT, Direction.INPUT]

def test_retry_gives_up(stream):
    device = DummyDevice(stream)

    def exchange():
        raise TransportTimeoutError('No answer')

    with pytest.raises(TransportTimeoutError):
        device.retry(exchange, 2)
    assert len(stream.sleeps) == 2

def test_retry_does_not_retry_other_errors(stream):
    device = DummyDevice(stream)
    attempts = []

    def exchange():
        attempts.append(1)
        raise UnsupportedError('Nope')

    with pytest.raises(UnsupportedError):
        device.retry(exchange, 5)
    assert len(attempts) == 1

def test_cancellation(stream):
    device = DummyDevice(stream)
    token = CancelToken()
    device.set_cancel(token)
    device.check_cancel()

    token.cancel()
    assert device.is_cancelled()
    with pytest.raises(CancelledError):
        device.retry(lambda: b'never', 3)

    token.reset()
    assert device.retry(lambda: b'again', 3) == b'again'

def test_cancel_predicate_must_be_callable(stream):
    device = DummyDevice(stream)
    with pytest.raises(InvalidArgsError):
        device.set_cancel(True)

def test_dump_read_chunks(stream):
    device = DummyDevice(stream)
    events = []
    device.set_events(Event.PROGRESS, lambda ev, data: events.append(data.current))

    data = device.dump_read(0x10, 0x30, 0x20)
    assert bytes(data) == bytes(range(0x10, 0x40))
    assert events == [0, 0x20, 0x30]

def test_close_runs_shutdown_once(stream):
    with DummyDevice(stream) as device:
        pass
    device.close()
    assert device.shutdown == 1
    assert not stream.closed

def test_close_owned_stream(stream):
    device = DummyDevice(stream, owns_stream=True)
    device.close()
    assert stream.closed
