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
Heinrichs Weikamp OSTC driver

The original OSTC (and OSTC Mk.2/2N) sends its complete memory on a single
'a' command: a 266 byte header starting with the AA AA AA AA AA 55 preamble,
followed by 32 KiB of profile memory (firmware 1.90 and older) or 64 KiB
(newer firmware).  Dives are enclosed in FA FA ... FD FD markers.
'''

import logging
import struct

from divecomputer.common import Family, ProtocolError
from divecomputer.device import Device
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

FW_190 = 0x015A

SZ_HEADER = 266
SZ_FW_190 = 0x8000
SZ_FW_NEW = 0x10000

PREAMBLE = b'\xaa\xaa\xaa\xaa\xaa\x55'

DIVE_HEADER = b'\xfa\xfa'
DIVE_FOOTER = b'\xfd\xfd'

class OSTCDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'hw_ostc'
    DESCRIPTION = 'Heinrichs Weikamp OSTC driver'
    FAMILY = Family.HW_OSTC
    FINGERPRINT_SIZE = 5

    # Serial Settings
    BAUDRATE = 115200
    TIMEOUT = 3000

    # Read Packet Size
    PACKET_SIZE = 1024

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(OSTCDevice, self).__init__(context, iostream, model, owns_stream)

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        # Make sure everything is in a sane state.
        iostream.purge(Direction.ALL)

    def dump(self):
        progress = self.progress(SZ_HEADER + SZ_FW_NEW)
        progress.emit()

        self.check_cancel()
        self._iostream.write(b'a')

        header = self._iostream.read(SZ_HEADER)
        if header[:len(PREAMBLE)] != PREAMBLE:
            log.error('Unexpected answer header: %s', header[:len(PREAMBLE)].hex())
            raise ProtocolError('Unexpected answer header')

        # The profile size depends on the firmware version
        firmware = struct.unpack_from('>H', header, 264)[0]
        size = SZ_HEADER + (SZ_FW_NEW if firmware > FW_190 else SZ_FW_190)

        progress.set_current(SZ_HEADER)
        if size < progress.maximum:
            progress.maximum = size
        progress.emit()

        data = bytearray(header)
        while len(data) < size:
            self.check_cancel()
            n = min(self.PACKET_SIZE, size - len(data))
            data += self._iostream.read(n)
            progress.update(n)

        return data

    def foreach(self, callback):
        data = self.dump()

        self.emit_devinfo(0, struct.unpack_from('>H', data, 264)[0],
            struct.unpack_from('<H', data, 6)[0])

        self.extract_dives(data, callback)

    def extract_dives(self, data, callback):
        '''
        Split a memory image into dives

        The image is searched backwards for dive header markers; each header
        is paired with the first footer marker before the previously found
        dive.  Headers without a footer are skipped.
        '''
        data = bytes(data)
        current = len(data)
        previous = len(data)
        while True:
            current = data.rfind(DIVE_HEADER, SZ_HEADER, current)
            if current < 0:
                break

            end = data.find(DIVE_FOOTER, current, previous)
            if end >= 0:
                end += len(DIVE_FOOTER)
                fingerprint = data[current + 3:current + 3 + self.FINGERPRINT_SIZE]
                if not self.deliver(callback, data[current:end], fingerprint):
                    return

            previous = current
