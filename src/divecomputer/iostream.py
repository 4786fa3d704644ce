# =============================================================================
# 
# Copyright (C) 2011 Asymworks, LLC.  All Rights Reserved.
# www.pydivelog.com / info@pydivelog.com
# 
# This file is part of the Python divecomputer Package (python-divecomputer)
# 
# This library is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License as published by the Free Software Foundation; either
# version 2.1 of the License, or (at your option) any later version.
# 
# This library is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
# 
# You should have received a copy of the GNU Lesser General Public
# License along with this library; if not, write to the Free Software
# Foundation, Inc., 51 Franklin St, Fifth Floor, Boston, MA  02110-1301  USA
# 
# =============================================================================

'''
Byte Stream Abstraction

All device drivers talk to their hardware through an IOStream.  The base
class implements the public operations (argument checking, closed-stream
detection and traffic tracing) and delegates the actual work to underscore
methods which concrete transports override.  Operations a transport cannot
perform raise UnsupportedError.

Reads are all-or-nothing from the caller's point of view: read(size) either
returns exactly size bytes or raises TransportTimeoutError carrying the bytes
that did arrive before the timeout expired.
'''

import enum
import logging
import time

from divecomputer.context import hexdump
from divecomputer.common import InvalidArgsError, TransportError, \
    TransportTimeoutError, UnsupportedError, Transport

log = logging.getLogger(__name__)

class Parity(enum.IntEnum):
    NONE = 0
    ODD = 1
    EVEN = 2
    MARK = 3
    SPACE = 4

class StopBits(enum.IntEnum):
    ONE = 0
    ONEPOINTFIVE = 1
    TWO = 2

class FlowControl(enum.IntEnum):
    NONE = 0
    HARDWARE = 1
    SOFTWARE = 2

class Direction(enum.IntFlag):
    INPUT = 0x01
    OUTPUT = 0x02
    ALL = INPUT | OUTPUT

class Line(enum.IntFlag):
    DCD = 0x01
    CTS = 0x02
    DSR = 0x04
    RNG = 0x08

# ioctl request encoding: dir(2) | size(14) | type(8) | nr(8)
IOCTL_DIR_NONE = 0
IOCTL_DIR_READ = 1
IOCTL_DIR_WRITE = 2
IOCTL_SIZE_VARIABLE = 0

def ioctl_request(direction, type, nr, size):
    '''Encode an ioctl request number'''
    if isinstance(type, str):
        type = ord(type)
    return ((direction & 0x03) << 30) | ((size & 0x3FFF) << 16) | \
        ((type & 0xFF) << 8) | (nr & 0xFF)

def ioctl_dir(request):
    return (request >> 30) & 0x0003

def ioctl_size(request):
    return (request >> 16) & 0x3FFF

def ioctl_type(request):
    return (request >> 8) & 0x00FF

def ioctl_nr(request):
    return request & 0x00FF

IOCTL_SERIAL_SET_LATENCY = ioctl_request(IOCTL_DIR_WRITE, 's', 0, 4)
IOCTL_BLE_GET_NAME = ioctl_request(IOCTL_DIR_READ, 'b', 0, IOCTL_SIZE_VARIABLE)

class IOStream(object):
    '''
    Base class for all byte streams

    Subclasses set the TRANSPORT class attribute and override the underscore
    methods for the operations they support.  A timeout of -1 blocks
    indefinitely, 0 makes reads non-blocking and a positive value bounds each
    read in milliseconds.
    '''
    TRANSPORT = Transport.NONE

    def __init__(self, context):
        self._context = context
        self._closed = False
        self._timeout = -1

    def _check_open(self):
        if self._closed:
            raise TransportError('Stream is closed')

    @property
    def context(self):
        return self._context

    @property
    def transport(self):
        return self.TRANSPORT

    @property
    def closed(self):
        return self._closed

    #-------------------------------------------------------------------------
    # Public Interface

    def configure(self, baudrate, databits=8, parity=Parity.NONE,
                  stopbits=StopBits.ONE, flowcontrol=FlowControl.NONE):
        '''Configure the line settings (serial-like transports)'''
        self._check_open()
        if databits not in (5, 6, 7, 8):
            raise InvalidArgsError('Invalid number of data bits (%d)' % databits)
        log.debug('Configure: baudrate=%d, databits=%d, parity=%s, stopbits=%s, flowcontrol=%s',
            baudrate, databits, Parity(parity).name, StopBits(stopbits).name,
            FlowControl(flowcontrol).name)
        self._configure(baudrate, databits, Parity(parity), StopBits(stopbits),
            FlowControl(flowcontrol))

    def set_timeout(self, timeout):
        '''Set the read timeout in milliseconds'''
        self._check_open()
        if timeout < -1:
            raise InvalidArgsError('Invalid timeout (%d)' % timeout)
        self._set_timeout(timeout)
        self._timeout = timeout

    @property
    def timeout(self):
        return self._timeout

    def set_break(self, value):
        self._check_open()
        self._set_break(bool(value))

    def set_dtr(self, value):
        self._check_open()
        self._set_dtr(bool(value))

    def set_rts(self, value):
        self._check_open()
        self._set_rts(bool(value))

    def get_lines(self):
        '''Return the modem status lines as a Line mask'''
        self._check_open()
        return Line(self._get_lines())

    def get_available(self):
        '''Return the number of bytes that can be read without blocking'''
        self._check_open()
        return self._get_available()

    def poll(self, timeout):
        '''Wait up to timeout ms for input; returns True if data is ready'''
        self._check_open()
        return self._poll(timeout)

    def read(self, size):
        '''
        Read exactly size bytes

        Raises TransportTimeoutError (with the partial data attached) if the
        timeout expires before all bytes have been received.
        '''
        self._check_open()
        if size < 0:
            raise InvalidArgsError('Invalid read size (%d)' % size)
        if size == 0:
            return b''

        data = bytes(self._read(size))
        hexdump(log, logging.DEBUG, 'Read', data)
        if len(data) < size:
            raise TransportTimeoutError('Read timed out (%d of %d bytes)' % (len(data), size), data)
        return data

    def write(self, data):
        '''Write all bytes of data; returns the number of bytes written'''
        self._check_open()
        data = bytes(data)
        if not data:
            return 0
        hexdump(log, logging.DEBUG, 'Write', data)
        n = self._write(data)
        if n is not None and n != len(data):
            raise TransportTimeoutError('Write timed out (%d of %d bytes)' % (n, len(data)))
        return len(data)

    def purge(self, direction=Direction.ALL):
        '''Discard buffered bytes in the given direction'''
        self._check_open()
        self._purge(Direction(direction))

    def sleep(self, milliseconds):
        self._check_open()
        self._sleep(milliseconds)

    def ioctl(self, request, data=b''):
        '''Transport-specific sideband request; returns the output bytes'''
        self._check_open()
        size = ioctl_size(request)
        if size != IOCTL_SIZE_VARIABLE and (ioctl_dir(request) & IOCTL_DIR_WRITE) \
                and len(data) != size:
            raise InvalidArgsError('Invalid ioctl payload size (%d)' % len(data))
        return self._ioctl(request, bytes(data))

    def close(self):
        '''Release all resources; further operations raise TransportError'''
        if self._closed:
            return
        self._closed = True
        self._close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False

    #-------------------------------------------------------------------------
    # Transport Hooks

    def _configure(self, baudrate, databits, parity, stopbits, flowcontrol):
        raise UnsupportedError('%s does not support configure' % self.__class__.__name__)

    def _set_timeout(self, timeout):
        raise UnsupportedError('%s does not support set_timeout' % self.__class__.__name__)

    def _set_break(self, value):
        raise UnsupportedError('%s does not support set_break' % self.__class__.__name__)

    def _set_dtr(self, value):
        raise UnsupportedError('%s does not support set_dtr' % self.__class__.__name__)

    def _set_rts(self, value):
        raise UnsupportedError('%s does not support set_rts' % self.__class__.__name__)

    def _get_lines(self):
        raise UnsupportedError('%s does not support get_lines' % self.__class__.__name__)

    def _get_available(self):
        raise UnsupportedError('%s does not support get_available' % self.__class__.__name__)

    def _poll(self, timeout):
        raise UnsupportedError('%s does not support poll' % self.__class__.__name__)

    def _read(self, size):
        raise UnsupportedError('%s does not support read' % self.__class__.__name__)

    def _write(self, data):
        raise UnsupportedError('%s does not support write' % self.__class__.__name__)

    def _purge(self, direction):
        raise UnsupportedError('%s does not support purge' % self.__class__.__name__)

    def _sleep(self, milliseconds):
        time.sleep(milliseconds / 1000.0)

    def _ioctl(self, request, data):
        raise UnsupportedError('Unsupported ioctl request 0x%08x' % request)

    def _close(self):
        pass

class CustomStream(IOStream):
    '''
    Application-supplied stream

    Each operation is provided as a keyword callable, e.g.
    CustomStream(ctx, Transport.BLE, read=fn, write=fn).  Callables receive
    the userdata object as their first argument, followed by the arguments of
    the corresponding IOStream hook.  Missing callables make the operation
    unsupported; a missing sleep falls back to time.sleep.
    '''
    CALLBACKS = ('configure', 'set_timeout', 'set_break', 'set_dtr', 'set_rts',
                 'get_lines', 'get_available', 'poll', 'read', 'write',
                 'purge', 'sleep', 'ioctl', 'close')

    def __init__(self, context, transport, userdata=None, **callbacks):
        super(CustomStream, self).__init__(context)
        unknown = set(callbacks) - set(self.CALLBACKS)
        if unknown:
            raise InvalidArgsError('Unknown callbacks: %s' % ', '.join(sorted(unknown)))
        self._transport = Transport(transport)
        self._userdata = userdata
        self._callbacks = callbacks

    @property
    def transport(self):
        return self._transport

    def _call(self, name, *args):
        fn = self._callbacks.get(name)
        if fn is None:
            raise UnsupportedError('Custom stream has no %s callback' % name)
        return fn(self._userdata, *args)

    def _configure(self, baudrate, databits, parity, stopbits, flowcontrol):
        self._call('configure', baudrate, databits, parity, stopbits, flowcontrol)

    def _set_timeout(self, timeout):
        self._call('set_timeout', timeout)

    def _set_break(self, value):
        self._call('set_break', value)

    def _set_dtr(self, value):
        self._call('set_dtr', value)

    def _set_rts(self, value):
        self._call('set_rts', value)

    def _get_lines(self):
        return self._call('get_lines')

    def _get_available(self):
        return self._call('get_available')

    def _poll(self, timeout):
        return self._call('poll', timeout)

    def _read(self, size):
        return self._call('read', size)

    def _write(self, data):
        return self._call('write', data)

    def _purge(self, direction):
        self._call('purge', direction)

    def _sleep(self, milliseconds):
        if 'sleep' in self._callbacks:
            self._call('sleep', milliseconds)
        else:
            super(CustomStream, self)._sleep(milliseconds)

    def _ioctl(self, request, data):
        return self._call('ioctl', request, data)

    def _close(self):
        if 'close' in self._callbacks:
            self._call('close')
