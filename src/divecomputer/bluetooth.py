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
Bluetooth RFCOMM Stream

Implements the IOStream interface over a Bluetooth RFCOMM socket using the
AF_BLUETOOTH support built into the Python socket module (Linux and recent
Windows builds).  Addresses are given in the usual "00:11:22:33:44:55" form.
'''

import errno
import logging
import select
import socket

from divecomputer.common import NoAccessError, NoDeviceError, Transport, \
    TransportError, TransportTimeoutError, UnsupportedError
from divecomputer.iostream import IOStream, Direction

log = logging.getLogger(__name__)

def _bluetooth_constants():
    try:
        return socket.AF_BLUETOOTH, socket.BTPROTO_RFCOMM
    except AttributeError as exc:
        raise UnsupportedError(
            'This Python build does not expose Bluetooth socket APIs (AF_BLUETOOTH/BTPROTO_RFCOMM)'
        ) from exc

def parse_address(address):
    '''Validate a Bluetooth address string; returns it upper-cased'''
    parts = address.split(':')
    if len(parts) != 6 or not all(len(p) == 2 for p in parts):
        raise ValueError('Invalid Bluetooth address "%s"' % address)
    int(''.join(parts), 16)
    return address.upper()

class RfcommStream(IOStream):
    '''
    RFCOMM socket stream

    Connects to the given address and channel on construction.  Channel 0
    is not auto-resolved (there is no SDP support in the socket module) and
    callers must pass the channel the device advertises, usually 1.
    '''
    TRANSPORT = Transport.BLUETOOTH

    def __init__(self, context, address, channel=1, connect_timeout=3.0):
        super(RfcommStream, self).__init__(context)
        af_bluetooth, btproto_rfcomm = _bluetooth_constants()
        self._address = parse_address(address)
        self._channel = channel

        try:
            self._socket = socket.socket(af_bluetooth, socket.SOCK_STREAM, btproto_rfcomm)
        except OSError as exc:
            raise TransportError('Could not create RFCOMM socket: %s' % exc) from exc

        self._socket.settimeout(connect_timeout)
        try:
            self._socket.connect((self._address, channel))
        except socket.timeout as exc:
            self._socket.close()
            raise TransportTimeoutError('RFCOMM connect timed out for %s on channel %d'
                % (self._address, channel)) from exc
        except OSError as exc:
            self._socket.close()
            if exc.errno in (errno.EACCES, errno.EPERM):
                raise NoAccessError('RFCOMM connect denied for %s: %s' % (self._address, exc)) from exc
            if exc.errno in (errno.EHOSTDOWN, errno.EHOSTUNREACH, errno.ENODEV):
                raise NoDeviceError('RFCOMM device %s not reachable: %s' % (self._address, exc)) from exc
            raise TransportError('RFCOMM connect failed for %s on channel %d: %s'
                % (self._address, channel, exc)) from exc
        self._socket.settimeout(None)

        log.info('Connected to %s (channel %d)', self._address, channel)

    @property
    def address(self):
        return self._address

    def _set_timeout(self, timeout):
        if timeout < 0:
            self._socket.settimeout(None)
        else:
            self._socket.settimeout(timeout / 1000.0)

    def _get_available(self):
        return 1 if self._poll(0) else 0

    def _poll(self, timeout):
        rlist, _, _ = select.select([self._socket], [], [],
            None if timeout < 0 else timeout / 1000.0)
        return bool(rlist)

    def _read(self, size):
        data = bytearray()
        while len(data) < size:
            try:
                chunk = self._socket.recv(size - len(data))
            except socket.timeout:
                break
            except OSError as exc:
                raise TransportError('RFCOMM receive failed: %s' % exc) from exc
            if not chunk:
                raise TransportError('RFCOMM connection closed by peer')
            data += chunk
        return bytes(data)

    def _write(self, data):
        try:
            self._socket.sendall(data)
        except socket.timeout as exc:
            raise TransportTimeoutError('RFCOMM send timed out') from exc
        except OSError as exc:
            raise TransportError('RFCOMM send failed: %s' % exc) from exc
        return len(data)

    def _purge(self, direction):
        if not direction & Direction.INPUT:
            return
        # Drain whatever is queued without blocking
        timeout = self._socket.gettimeout()
        self._socket.setblocking(False)
        try:
            while True:
                try:
                    if not self._socket.recv(1024):
                        break
                except (BlockingIOError, socket.timeout):
                    break
        finally:
            self._socket.settimeout(timeout)

    def _close(self):
        self._socket.close()
        log.info('Disconnected from %s', self._address)
