import pytest

from divecomputer.common import Transport
from divecomputer.context import Context
from divecomputer.iostream import Direction, IOStream

class FakeStream(IOStream):
    '''
    Scripted in-memory stream

    Replies are served from a byte queue.  A responder callable, if given, is
    called with every written buffer and may return bytes to append to the
    queue.  Purging the input does not drop queued bytes unless
    purge_clears is set, so scripted replies survive the purges drivers do
    before each command.
    '''
    TRANSPORT = Transport.SERIAL

    def __init__(self, replies=b'', responder=None, purge_clears=False):
        super(FakeStream, self).__init__(None)
        self.rx = bytearray(replies)
        self.writes = []
        self.responder = responder
        self.purge_clears = purge_clears

        self.settings = None
        self.dtr = None
        self.rts = None
        self.purges = []
        self.sleeps = []

    @property
    def written(self):
        return b''.join(self.writes)

    def feed(self, data):
        self.rx += data

    def _configure(self, baudrate, databits, parity, stopbits, flowcontrol):
        self.settings = (baudrate, databits, parity, stopbits, flowcontrol)

    def _set_timeout(self, timeout):
        pass

    def _set_break(self, value):
        pass

    def _set_dtr(self, value):
        self.dtr = value

    def _set_rts(self, value):
        self.rts = value

    def _get_available(self):
        return len(self.rx)

    def _poll(self, timeout):
        return len(self.rx) > 0

    def _read(self, size):
        data = bytes(self.rx[:size])
        del self.rx[:size]
        return data

    def _write(self, data):
        self.writes.append(bytes(data))
        if self.responder is not None:
            reply = self.responder(bytes(data))
            if reply:
                self.rx += reply
        return len(data)

    def _purge(self, direction):
        self.purges.append(direction)
        if self.purge_clears and (direction & Direction.INPUT):
            del self.rx[:]

    def _sleep(self, milliseconds):
        self.sleeps.append(milliseconds)

@pytest.fixture
def context():
    ctx = Context()
    yield ctx
    ctx.close()

@pytest.fixture
def stream():
    return FakeStream()
