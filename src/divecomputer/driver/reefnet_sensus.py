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
ReefNet Sensus driver

The Sensus is a depth and temperature logger without a dive logbook.  A
handshake wakes it up and returns a ten byte identification block; the
memory is then sent in a single DATA ... END frame protected by a 16-bit
additive checksum.

Dives are found by their seven byte start record (FF, 4 byte time stamp,
FE).  The logger has no end-of-dive record: a dive ends after 17
consecutive depth samples shallower than 3 feet.  Every sixth sample carries
a temperature byte in front of the depth byte.
'''

import logging
import struct
import time

from divecomputer.common import DataFormatError, Family, ProtocolError
from divecomputer.checksum import add_uint16
from divecomputer.device import Device
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

SZ_MEMORY = 32768
SZ_HANDSHAKE = 10

# Depth threshold (adjusted feet of seawater, 13 ft of atmosphere + 3 ft)
SURFACE_DEPTH = 13 + 3
SURFACE_SAMPLES = 17

class SensusDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'reefnet_sensus'
    DESCRIPTION = 'ReefNet Sensus driver'
    FAMILY = Family.REEFNET_SENSUS
    FINGERPRINT_SIZE = 4

    # Serial Settings
    BAUDRATE = 19200
    TIMEOUT = 3000

    # Read Packet Size
    PACKET_SIZE = 128

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(SensusDevice, self).__init__(context, iostream, model, owns_stream)

        self._waiting = False
        self._timestamp = 0
        self._devtime = 0
        self._systime = -1
        self.handshake = bytes(SZ_HANDSHAKE)

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        # Make sure everything is in a sane state.
        iostream.purge(Direction.ALL)

    def set_fingerprint(self, data):
        '''The fingerprint is the time stamp of the newest downloaded dive'''
        super(SensusDevice, self).set_fingerprint(data)
        if self._fingerprint:
            self._timestamp = struct.unpack('<L', self._fingerprint)[0]
        else:
            self._timestamp = 0

    def _shutdown(self):
        # Leave the waiting state if no transfer was started
        if self._waiting:
            self._iostream.write(b'\x00')
            self._waiting = False

    def _handshake(self):
        self._iostream.write(b'\x0a')

        handshake = self._iostream.read(SZ_HANDSHAKE + 2)
        if handshake[:2] != b'OK':
            log.error('Unexpected handshake header: %s', handshake[:2].hex())
            raise ProtocolError('Unexpected answer header')

        # The device is now waiting for a data request.
        self._waiting = True

        self._systime = int(time.time())
        self._devtime = struct.unpack_from('<L', handshake, 8)[0]
        self.handshake = handshake[2:]

        self.emit_clock(self._devtime, self._systime)
        self.emit_devinfo(handshake[2] - 0x30, handshake[3] - 0x30,
            struct.unpack_from('<H', handshake, 6)[0])
        self.emit_vendor(self.handshake)

        # The data line must be clear before the host transmits again
        self._iostream.sleep(10)

    def dump(self):
        size = 4 + SZ_MEMORY + 2 + 3
        progress = self.progress(size)
        progress.emit()

        self.check_cancel()
        self._handshake()

        self._iostream.write(b'\x40')
        self._waiting = False

        answer = bytearray()
        while len(answer) < size:
            self.check_cancel()
            n = min(self.PACKET_SIZE, size - len(answer))
            answer += self._iostream.read(n)
            progress.update(n)

        if answer[:4] != b'DATA' or answer[-3:] != b'END':
            log.error('Unexpected answer start or end bytes')
            raise ProtocolError('Unexpected answer start or end byte(s)')

        crc = struct.unpack_from('<H', answer, 4 + SZ_MEMORY)[0]
        ccrc = add_uint16(answer[4:4 + SZ_MEMORY])
        if crc != ccrc:
            log.error('Checksum mismatch (0x%04x != 0x%04x)', crc, ccrc)
            raise ProtocolError('Unexpected answer checksum')

        return answer[4:4 + SZ_MEMORY]

    def foreach(self, callback):
        data = self.dump()
        self.extract_dives(data, callback)

    def extract_dives(self, data, callback):
        '''Split a memory image into dives, newest first'''
        data = bytes(data)
        previous = len(data)
        current = len(data) - 7 if len(data) >= 7 else 0
        while current > 0:
            current -= 1
            if data[current] != 0xFF or data[current + 6] != 0xFE:
                continue

            # The end of the dive is searched up to the start of the
            # previously found (newer) dive.
            end = self._find_end(data, current + 7, previous)
            if end is None:
                log.error('No end of dive found for the dive at offset %d', current)
                raise DataFormatError('No end of dive found')

            # Dives older than the stored time stamp are not delivered
            timestamp = struct.unpack_from('<L', data, current + 2)[0]
            if self._fingerprint and timestamp <= self._timestamp:
                return

            if not self.deliver(callback, data[current:end], data[current + 2:current + 6]):
                return

            previous = current
            current = current - 7 if current >= 7 else 0

    def _find_end(self, data, offset, limit):
        nsamples = 0
        count = 0
        while offset + 1 <= limit:
            depth = data[offset]
            offset += 1

            # Temperature
            if nsamples % 6 == 0:
                if offset + 1 > limit:
                    return None
                offset += 1

            nsamples += 1

            if depth < SURFACE_DEPTH:
                count += 1
                if count == SURFACE_SAMPLES:
                    return offset
            else:
                count = 0
        return None
