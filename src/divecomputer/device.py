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
Dive Computer Device base class

A Device binds a protocol driver to an open IOStream.  The base class holds
the state every driver shares (fingerprint, event subscription, cancellation
predicate, progress bookkeeping) and implements the operations that can be
expressed generically, such as retrying a packet exchange or dumping memory
through read().  Drivers override the operations they support: read, write,
dump, foreach and timesync.  Anything not overridden raises UnsupportedError.

Dives are delivered by foreach() newest first, through a callback called as
callback(data, fingerprint).  A false return value from the callback stops
the download without raising an error.  If a fingerprint has been set, the
download also stops (again without error) when the dive carrying that
fingerprint is reached; that dive and all older ones are not delivered.
'''

import collections
import enum
import logging
import threading

from divecomputer.common import CancelledError, InvalidArgsError, \
    ProtocolError, TransportTimeoutError, UnsupportedError
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

class Event(enum.IntFlag):
    '''Device event types (bit mask for set_events)'''
    WAITING = 1 << 0
    PROGRESS = 1 << 1
    DEVINFO = 1 << 2
    CLOCK = 1 << 3
    VENDOR = 1 << 4
    ALL = WAITING | PROGRESS | DEVINFO | CLOCK | VENDOR

ProgressEvent = collections.namedtuple('ProgressEvent', 'current maximum')
DevinfoEvent = collections.namedtuple('DevinfoEvent', 'model firmware serial')
ClockEvent = collections.namedtuple('ClockEvent', 'devtime systime')
VendorEvent = collections.namedtuple('VendorEvent', 'data')

class CancelToken(object):
    '''
    Thread-safe cancellation flag

    Instances are callable and can be passed directly to set_cancel().  Any
    thread may call cancel(); the device checks the flag before each
    exchange with the hardware.
    '''
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    def reset(self):
        self._event.clear()

    @property
    def cancelled(self):
        return self._event.is_set()

    def __call__(self):
        return self._event.is_set()

class Progress(object):
    '''
    Progress bookkeeping for a single operation

    The maximum may be revised while the operation runs, but never below the
    current value; current never decreases.
    '''
    def __init__(self, device, maximum=0, current=0):
        self._device = device
        self.current = current
        self.maximum = maximum

    def set_maximum(self, maximum):
        if maximum < self.current:
            raise InvalidArgsError('Progress maximum %d below current %d' % (maximum, self.current))
        self.maximum = maximum

    def set_current(self, current):
        if current < self.current:
            raise InvalidArgsError('Progress cannot move backwards (%d < %d)' % (current, self.current))
        self.current = current
        self.emit()

    def update(self, nbytes):
        '''Advance by nbytes and emit a progress event'''
        self.current += nbytes
        self.emit()

    def emit(self):
        self._device.emit_event(Event.PROGRESS, ProgressEvent(self.current, self.maximum))

class Device(object):
    '''
    Base class for Dive Computer devices

    Subclasses define the NAME, DESCRIPTION and FAMILY attributes used by the
    driver registry, and FINGERPRINT_SIZE, the length of the fingerprint
    window of a dive.  If owns_stream is true the device closes its stream
    when it is closed itself; otherwise the stream belongs to the caller.
    '''
    NAME = None
    DESCRIPTION = None
    FAMILY = None
    FINGERPRINT_SIZE = 0

    def __init__(self, context, iostream, model=0, owns_stream=False):
        self._context = context
        self._iostream = iostream
        self._model = model
        self._owns_stream = owns_stream
        self._closed = False

        self._fingerprint = b''
        self._event_mask = Event(0)
        self._event_callback = None
        self._cancel = None

        self.devinfo = None
        self.clock = None
        self.vendor = None

    @property
    def context(self):
        return self._context

    @property
    def iostream(self):
        return self._iostream

    @property
    def model(self):
        return self._model

    @property
    def fingerprint(self):
        return self._fingerprint

    #-------------------------------------------------------------------------
    # Session Configuration

    def set_fingerprint(self, data):
        '''
        Set the fingerprint of the newest dive already downloaded

        An empty value (or None) clears the fingerprint so that all dives are
        downloaded.  Otherwise the value must be exactly FINGERPRINT_SIZE
        bytes long.
        '''
        if not data:
            self._fingerprint = b''
            return
        data = bytes(data)
        if len(data) != self.FINGERPRINT_SIZE:
            raise InvalidArgsError('Fingerprint must be %d bytes (got %d)'
                % (self.FINGERPRINT_SIZE, len(data)))
        self._fingerprint = data

    def matches_fingerprint(self, data):
        '''True if a fingerprint is set and equals data'''
        return bool(self._fingerprint) and bytes(data) == self._fingerprint

    def set_events(self, mask, callback):
        '''Subscribe callback(event, data) to the events selected by mask'''
        self._event_mask = Event(mask)
        self._event_callback = callback

    def set_cancel(self, predicate):
        '''
        Install a cancellation predicate

        The predicate is any callable returning a truthy value once the
        operation should stop (a CancelToken works).  Pass None to remove it.
        '''
        if predicate is not None and not callable(predicate):
            raise InvalidArgsError('Cancellation predicate must be callable')
        self._cancel = predicate

    def is_cancelled(self):
        return bool(self._cancel and self._cancel())

    def check_cancel(self):
        '''Raise CancelledError if the caller requested cancellation'''
        if self.is_cancelled():
            raise CancelledError('Operation cancelled')

    #-------------------------------------------------------------------------
    # Events

    def emit_event(self, event, data=None):
        event = Event(event)
        if event == Event.DEVINFO:
            self.devinfo = data
        elif event == Event.CLOCK:
            self.clock = data
        elif event == Event.VENDOR:
            self.vendor = data

        if self._event_callback is None or not (self._event_mask & event):
            return
        self._event_callback(event, data)

    def emit_devinfo(self, model, firmware, serial):
        self.emit_event(Event.DEVINFO, DevinfoEvent(model, firmware, serial))

    def emit_clock(self, devtime, systime):
        self.emit_event(Event.CLOCK, ClockEvent(devtime, systime))

    def emit_vendor(self, data):
        self.emit_event(Event.VENDOR, VendorEvent(bytes(data)))

    def progress(self, maximum=0, current=0):
        '''Create a progress tracker for a new operation'''
        return Progress(self, maximum, current)

    #-------------------------------------------------------------------------
    # Shared Helpers

    def retry(self, func, retries, delay=100):
        '''
        Call func(), retrying on protocol errors and timeouts

        Between attempts the device sleeps for delay milliseconds and the input
        buffer is purged.  Cancellation is checked before every attempt.  Once
        the retry budget is spent the last error is re-raised.
        '''
        nretries = 0
        while True:
            self.check_cancel()
            try:
                return func()
            except (ProtocolError, TransportTimeoutError) as exc:
                if nretries >= retries:
                    raise
                nretries += 1
                log.debug('Retrying after error (%d/%d): %s', nretries, retries, exc)
                if delay:
                    self._iostream.sleep(delay)
                self._iostream.purge(Direction.INPUT)

    def dump_read(self, address, size, blocksize):
        '''
        Read size bytes starting at address in blocksize chunks

        Emits a progress event after each chunk.  Used by the dump()
        implementations of drivers that support random access reads.
        '''
        if blocksize <= 0:
            raise InvalidArgsError('Invalid block size (%d)' % blocksize)

        progress = self.progress(size)
        progress.emit()

        data = bytearray()
        while len(data) < size:
            n = min(blocksize, size - len(data))
            data += self.read(address + len(data), n)
            progress.update(n)
        return data

    def deliver(self, callback, data, fingerprint):
        '''
        Hand one dive to the application callback

        Returns False if the fingerprint matches the stored one or the callback
        asked to stop, True to continue with the next (older) dive.
        '''
        fingerprint = bytes(fingerprint)
        if self.matches_fingerprint(fingerprint):
            log.debug('Fingerprint %s matched; stopping', fingerprint.hex())
            return False
        if callback is None:
            return True
        return bool(callback(bytes(data), fingerprint))

    #-------------------------------------------------------------------------
    # Device Operations

    def read(self, address, size):
        '''Read size bytes of device memory at address'''
        raise UnsupportedError('%s does not support read' % self.__class__.__name__)

    def write(self, address, data):
        '''Write data to device memory at address'''
        raise UnsupportedError('%s does not support write' % self.__class__.__name__)

    def dump(self):
        '''Return the complete memory image as a bytearray'''
        raise UnsupportedError('%s does not support dump' % self.__class__.__name__)

    def foreach(self, callback):
        '''Download dives newest first, calling callback(data, fingerprint)'''
        raise UnsupportedError('%s does not support foreach' % self.__class__.__name__)

    def timesync(self, dt):
        '''Set the device clock to the datetime dt'''
        raise UnsupportedError('%s does not support timesync' % self.__class__.__name__)

    def close(self):
        '''
        Close the device

        Runs the driver's shutdown sequence, then closes the stream if the
        device owns it.  Closing twice is harmless.
        '''
        if self._closed:
            return
        self._closed = True
        try:
            self._shutdown()
        finally:
            if self._owns_stream:
                self._iostream.close()

    def _shutdown(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False

    def __repr__(self):
        return '<%s model=0x%02x>' % (self.__class__.__name__, self._model)
