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
Uwatec Smart protocol driver

Implements a driver for the Uwatec Smart line of dive computers, including the
Smart Pro, Galileo Sol, Aladin Tec, Aladin Tec 2G, Smart Com, Smart Tec, and
Smart Z.  These devices talk over IrDA; any IOStream carrying the IrDA link
(or a serial bridge to it) can be used.  The device reports its model number
during the handshake, so the model passed to the constructor is replaced with
the one read from the computer.

The device time stamp of a dive (four bytes at offset 8 of the record) is
used as its fingerprint.  The download request carries the fingerprint so
that the computer only returns dives newer than it.
'''

import logging
import struct
import time

from divecomputer.common import DataFormatError, Family, ProtocolError
from divecomputer.device import Device

log = logging.getLogger(__name__)

class SmartDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'uwatec_smart'
    DESCRIPTION = 'Uwatec Smart protocol driver'
    FAMILY = Family.UWATEC_SMART
    FINGERPRINT_SIZE = 4

    # Transfer Chunk Size
    CHUNK_SIZE = 32

    # Read Timeout [ms]
    TIMEOUT = 2000

    # Dive start marker
    HEADER = b'\xa5\xa5\x5a\x5a'

    # List of Uwatec Smart Models
    MODELS = {
        0x10: 'Smart Pro',
        0x11: 'Galileo Sol',
        0x12: 'Aladin Tec',
        0x13: 'Aladin Tec 2G',
        0x14: 'Smart Com',
        0x15: 'Aladin 2G',
        0x17: 'Aladin Sport Matrix',
        0x18: 'Smart Tec',
        0x19: 'Galileo Trimix',
        0x1c: 'Smart Z',
        0x20: 'Meridian',
        0x22: 'Aladin Square',
        0x24: 'Chromis',
        0x25: 'Aladin A1',
        0x26: 'Mantis 2',
        0x28: 'Aladin A2',
        0x32: 'G2',
        0x42: 'G2 HUD',
    }

    def __init__(self, context, iostream, model=0, owns_stream=False):
        '''
        Class Constructor

        Performs all handshaking and reads basic device information including
        the computer model, serial number, and current timestamp.  A DEVINFO
        and a CLOCK event are emitted once the events are subscribed and the
        download starts.
        '''
        super(SmartDevice, self).__init__(context, iostream, model, owns_stream)

        self._timestamp = 0
        self._devtime = 0
        self._systime = 0
        self._serial = 0

        iostream.set_timeout(self.TIMEOUT)

        # Handshake with the Smart device
        self._handshake()

        # Get Device Information
        self._devtime = struct.unpack('<L', self._sendcmd(b'\x1a', 4))[0]
        self._systime = int(time.time())
        self._serial = struct.unpack('<L', self._sendcmd(b'\x14', 4))[0]
        self._model = self._sendcmd(b'\x10', 1)[0]

        log.info('Connected to %s (serial %d)', self.model_name, self._serial)

    def _sendcmd(self, command, recvlen):
        self._iostream.write(command)
        return self._iostream.read(recvlen)

    def _handshake(self):
        r1 = self._sendcmd(b'\x1b', 1)
        r2 = self._sendcmd(b'\x1c\x10\x27\x00\x00', 1)
        if r1 != b'\x01' or r2 != b'\x01':
            log.error('Unexpected handshake reply: %s %s', r1.hex(), r2.hex())
            raise ProtocolError('Failed to handshake with Uwatec Smart device')

    def _request(self, command):
        cmd = command + struct.pack('<L', self._timestamp) + b'\x10\x27\x00\x00'
        return struct.unpack('<L', self._sendcmd(cmd, 4))[0]

    def set_fingerprint(self, data):
        super(SmartDevice, self).set_fingerprint(data)
        if self._fingerprint:
            self._timestamp = struct.unpack('<L', self._fingerprint)[0]
        else:
            self._timestamp = 0

    def dump(self):
        '''
        Transfer Dive Data

        Downloads all dives logged past the current fingerprint and returns
        them as a single buffer of concatenated dive records.
        '''
        progress = self.progress(0)
        progress.emit()

        self.emit_devinfo(self._model, 0, self._serial)
        self.emit_clock(self._devtime, self._systime)

        self.check_cancel()
        length = self._request(b'\xc6')
        if length == 0:
            return bytearray()

        progress.set_maximum(4 + length)

        total = self._request(b'\xc4')
        if total != length + 4:
            log.error('Byte count mismatch: %d != %d + 4', total, length)
            raise ProtocolError('Mismatch in returned byte counts')
        progress.update(4)

        data = bytearray()
        while len(data) < length:
            self.check_cancel()
            n = min(self.CHUNK_SIZE, length - len(data))
            data += self._iostream.read(n)
            progress.update(n)

        return data

    def foreach(self, callback):
        data = self.dump()
        self.extract_dives(data, callback)

    def extract_dives(self, data, callback):
        '''
        Split a dump into dives

        Dives are located by scanning backwards for the A5A5 5A5A start
        marker, which yields them newest first.  The length stored after the
        marker must not run into the following dive.
        '''
        data = bytes(data)
        previous = len(data)
        current = len(data) - 4 if len(data) >= 4 else 0
        while current > 0:
            current -= 1
            if data[current:current + 4] != self.HEADER:
                continue

            length = struct.unpack_from('<L', data, current + 4)[0]
            if current + length > previous:
                log.error('Dive at offset %d extends past the next dive', current)
                raise DataFormatError('Invalid or corrupt dive data')

            dive = data[current:current + length]
            fingerprint = data[current + 8:current + 8 + self.FINGERPRINT_SIZE]
            if not self.deliver(callback, dive, fingerprint):
                return

            previous = current
            current = current - 4 if current >= 4 else 0

    #-------------------------------------------------------------------------
    # Properties

    @property
    def model_name(self):
        '''
        Get the dive computer's model name
        '''
        return self.MODELS.get(self._model, 'Uwatec Smart Device (id:%d)' % self._model)

    @property
    def serial(self):
        '''
        Get the dive computer's serial number
        '''
        return self._serial

    @property
    def devtime(self):
        return self._devtime

    @property
    def systime(self):
        return self._systime
