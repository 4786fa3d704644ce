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
Shearwater Petrel driver

The Petrel family (Petrel, Perdix, NERD) keeps a manifest of 32 byte dive
records, newest first, which is downloaded in 0x600 byte pages until a page
is not completely filled.  Every dive is then downloaded separately with
compression enabled.
'''

import logging
import struct

from divecomputer.common import DataFormatError, Family
from divecomputer.driver.shearwater_common import ShearwaterDevice, \
    ID_SERIAL, ID_FIRMWARE, ID_HARDWARE, PETREL, NERD, NERD2, PERDIX, PERDIXAI

log = logging.getLogger(__name__)

MANIFEST_ADDR = 0xE0000000
MANIFEST_SIZE = 0x600
DIVE_ADDR = 0xC0000000
DIVE_SIZE = 0xFFFFFF

RECORD_SIZE = 0x20
RECORD_COUNT = MANIFEST_SIZE // RECORD_SIZE

RECORD_VALID = 0xA5C4
RECORD_DELETED = 0x5A23

HARDWARE = {
    0x0808: PETREL,     # Petrel 2
    0x0909: PETREL,     # Petrel 1
    0x0B0B: PETREL,     # Petrel 1 (newer hardware)
    0x0A0A: NERD,
    0x0E0D: NERD2,
    0x0707: PERDIX,
    0x0C0D: PERDIXAI,
}

def str2num(data, offset=0):
    '''Parse the decimal digits at offset (stops at the first non-digit)'''
    value = 0
    for c in bytearray(data[offset:]):
        if c < 0x30 or c > 0x39:
            break
        value = value * 10 + (c - 0x30)
    return value

class PetrelDevice(ShearwaterDevice):
    # Magic Attributes for the register_driver method
    NAME = 'shearwater_petrel'
    DESCRIPTION = 'Shearwater Petrel driver'
    FAMILY = Family.SHEARWATER_PETREL
    FINGERPRINT_SIZE = 4

    def _shutdown(self):
        self.transfer(b'\x2e\x90\x20\x00', 0)

    def read_devinfo(self):
        '''Read the serial number, firmware version and hardware type'''
        serial = self.identifier(ID_SERIAL)
        try:
            serial = int(bytes(serial[:8]).decode('ascii'), 16)
        except ValueError:
            log.error('Invalid serial number: %r', serial)
            raise DataFormatError('Failed to convert the serial number')

        firmware = str2num(self.identifier(ID_FIRMWARE), 1)

        hardware = int.from_bytes(self.identifier(ID_HARDWARE), 'big')
        model = HARDWARE.get(hardware, 0)
        if model == 0:
            log.warning('Unknown hardware type %04x', hardware)

        self._model = model
        self.emit_devinfo(model, firmware, serial)

    def foreach(self, callback):
        progress = self.progress(0)
        progress.emit()

        self.read_devinfo()

        # Progress counts manifest pages and dives.  Each manifest is assumed
        # full until it has been processed.
        manifests = bytearray()
        while True:
            progress.set_maximum(progress.maximum + 1 + RECORD_COUNT)
            data = self.download(MANIFEST_ADDR, MANIFEST_SIZE)

            count = 0
            deleted = 0
            offset = 0
            while offset + RECORD_SIZE <= len(data):
                header = struct.unpack_from('>H', data, offset)[0]
                if header == RECORD_DELETED:
                    offset += RECORD_SIZE
                    deleted += 1
                    continue
                if header != RECORD_VALID:
                    break
                if self.matches_fingerprint(data[offset + 4:offset + 8]):
                    break
                offset += RECORD_SIZE
                count += 1

            manifests += data[:offset]
            progress.set_maximum(progress.maximum - (RECORD_COUNT - count - deleted))
            progress.update(1)

            if count + deleted != RECORD_COUNT:
                break

        for offset in range(0, len(manifests), RECORD_SIZE):
            if struct.unpack_from('>H', manifests, offset)[0] == RECORD_DELETED:
                continue

            address = struct.unpack_from('>L', manifests, offset + 20)[0]
            dive = self.download(DIVE_ADDR + address, DIVE_SIZE, True)
            progress.update(1)

            if not self.deliver(callback, dive, dive[12:16]):
                break
