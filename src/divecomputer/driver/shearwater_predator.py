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
Shearwater Predator driver

The Predator downloads its whole memory image.  Dives are stored in a
ring of 128 byte blocks: a dive starts with a header block marked FF FF and
ends with a footer block marked FF FE, both carrying the dive number at
offset 2.  The final block of the image holds the device settings and is
appended to every dive record.
'''

import logging
import struct

from divecomputer.common import DataFormatError, Family
from divecomputer.driver.shearwater_common import ShearwaterDevice, PETREL

log = logging.getLogger(__name__)

SZ_BLOCK = 0x80
SZ_MEMORY = 0x20080

RB_PROFILE_BEGIN = 0
RB_PROFILE_END = 0x1F600

EMPTY_BLOCK = b'\xff' * SZ_BLOCK

def _is_header(data, offset):
    return data[offset] == 0xFF and data[offset + 1] == 0xFF

def _is_footer(data, offset):
    return data[offset] == 0xFF and data[offset + 1] == 0xFE

def _is_empty(data, offset):
    return data[offset:offset + SZ_BLOCK] == EMPTY_BLOCK

def _dive_number(data, offset):
    return struct.unpack_from('>H', data, offset + 2)[0]

class PredatorDevice(ShearwaterDevice):
    # Magic Attributes for the register_driver method
    NAME = 'shearwater_predator'
    DESCRIPTION = 'Shearwater Predator driver'
    FAMILY = Family.SHEARWATER_PREDATOR
    FINGERPRINT_SIZE = 4

    def dump(self):
        progress = self.progress(3 + SZ_MEMORY + 1)
        progress.emit()
        return self.download(0xDD000000, SZ_MEMORY, False, progress)

    def foreach(self, callback):
        data = self.dump()

        self.emit_devinfo(data[0x2000D], data[0x2000A],
            struct.unpack_from('<L', data, 0x20002)[0])

        self.extract_dives(data, callback)

    def extract_dives(self, data, callback):
        '''Split a memory image into dives, newest first'''
        data = bytes(data)
        if len(data) < SZ_MEMORY:
            raise DataFormatError('Memory image too short (%d bytes)' % len(data))

        if data[0x2000D] == PETREL:
            self._extract_petrel(data, callback)
        else:
            self._extract_predator(data, callback)

    def _extract_predator(self, data, callback):
        # The dive with the highest dive number is the most recent; its
        # footer marks the end of the profile ring.
        maximum = 0
        eop = RB_PROFILE_END

        # The search starts at an arbitrary position, so the lower bound is
        # moved past the first complete dive found.  Dives that cross the
        # ring wrap point are then found when the search wraps around.
        footer = 0
        have_footer = False
        begin = RB_PROFILE_BEGIN
        offset = RB_PROFILE_END
        while offset != begin:
            if offset == RB_PROFILE_BEGIN:
                offset = RB_PROFILE_END
            offset -= SZ_BLOCK

            if _is_empty(data, offset):
                continue
            elif _is_header(data, offset) and have_footer:
                if begin == RB_PROFILE_BEGIN:
                    begin = footer + SZ_BLOCK

                current = _dive_number(data, offset)
                if current > maximum:
                    maximum = current
                    eop = footer + SZ_BLOCK

                if current != _dive_number(data, footer):
                    log.error('Dive number mismatch (%d != %d)', current, _dive_number(data, footer))
                    raise DataFormatError('Unexpected dive number')

                have_footer = False
            elif _is_footer(data, offset):
                footer = offset
                have_footer = True

        # Linearize the ringbuffer
        ring = data[eop:RB_PROFILE_END] + data[RB_PROFILE_BEGIN:eop]
        final = data[SZ_MEMORY - SZ_BLOCK:SZ_MEMORY]

        footer = 0
        have_footer = False
        offset = RB_PROFILE_END - RB_PROFILE_BEGIN
        while offset != 0:
            offset -= SZ_BLOCK
            if _is_empty(ring, offset):
                break
            elif _is_header(ring, offset) and have_footer:
                length = footer + SZ_BLOCK - offset
                dive = ring[offset:offset + length] + final
                if not self.deliver(callback, dive, dive[12:16]):
                    return
                have_footer = False
            elif _is_footer(ring, offset):
                footer = offset
                have_footer = True

    def _extract_petrel(self, data, callback):
        # The Petrel reorders the ring before sending it, so the most recent
        # dive is always the first one.
        final = data[SZ_MEMORY - SZ_BLOCK:SZ_MEMORY]

        header = 0
        have_header = False
        offset = RB_PROFILE_BEGIN
        while offset != RB_PROFILE_END:
            if _is_empty(data, offset):
                break
            elif _is_header(data, offset):
                header = offset
                have_header = True
            elif _is_footer(data, offset) and have_header:
                if data[header + 2:header + 4] != data[offset + 2:offset + 4]:
                    log.error('Dive number mismatch at offset 0x%05x', offset)
                    raise DataFormatError('Unexpected dive number')

                dive = data[header:offset + SZ_BLOCK] + final
                if not self.deliver(callback, dive, dive[12:16]):
                    return
                have_header = False
            offset += SZ_BLOCK
