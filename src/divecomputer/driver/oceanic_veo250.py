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
Oceanic Veo 250 driver

The Veo 250 sits behind a PIC-based interface cable which must be reset
(RTS low, then high) and switched to PPS mode before the computer answers.
Every command is acknowledged with ACK before its answer is sent, and every
answer ends with a NAK byte.  Memory is read in 16 byte pages, up to four
pages per request, each page followed by an additive checksum.
'''

import logging
import struct

from divecomputer.common import Family, InvalidArgsError, ProtocolError, \
    TransportTimeoutError
from divecomputer.checksum import add_uint8
from divecomputer.driver.oceanic_common import OceanicDevice, Layout, Version, \
    PAGESIZE, match_version
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

MAXRETRIES = 2
MULTIPAGE = 4

ACK = 0x5A
NAK = 0xA5

BANNER = b'PPS--OK_V2.00'

# Models
REACTPRO = 0x4247
VEO200 = 0x424B
VEO250 = 0x424C
XP5 = 0x4251
VEO180 = 0x4252
XR2 = 0x4255
INSIGHT = 0x425A
DG02 = 0x4352

LAYOUT = Layout(
    memsize=0x8000,
    highmem=0,
    cf_devinfo=0x0000,
    cf_pointers=0x0040,
    rb_logbook_begin=0x0400,
    rb_logbook_end=0x0600,
    rb_logbook_entry_size=8,
    rb_logbook_direction=1,
    rb_profile_begin=0x0600,
    rb_profile_end=0x8000,
    pt_mode_global=1,
    pt_mode_logbook=1,
    pt_mode_serial=1,
)

VERSIONS = [
    Version(b'GENREACT \0\0 256K', 0, REACTPRO, LAYOUT),
    Version(b'VEO 200 R\0\0 256K', 0, VEO200, LAYOUT),
    Version(b'VEO 250 R\0\0 256K', 0, VEO250, LAYOUT),
    Version(b'SEEMANN R\0\0 256K', 0, XP5, LAYOUT),
    Version(b'VEO 180 R\0\0 256K', 0, VEO180, LAYOUT),
    Version(b'AERISXR2 \0\0 256K', 0, XR2, LAYOUT),
    Version(b'INSIGHT R\0\0 256K', 0, INSIGHT, LAYOUT),
    Version(b'HO DGO2 R\0\0 256K', 0, DG02, LAYOUT),
]

class Veo250Device(OceanicDevice):
    # Magic Attributes for the register_driver method
    NAME = 'oceanic_veo250'
    DESCRIPTION = 'Oceanic Veo 250 driver'
    FAMILY = Family.OCEANIC_VEO250

    # Serial Settings
    BAUDRATE = 9600
    TIMEOUT = 3000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(Veo250Device, self).__init__(context, iostream, model, owns_stream)

        self.multipage = MULTIPAGE
        self._last = 0

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        # Reset the PIC inside the cable, then give it time to power up
        iostream.set_dtr(True)
        iostream.set_rts(False)
        iostream.sleep(100)
        iostream.set_rts(True)
        iostream.sleep(100)

        iostream.purge(Direction.ALL)

        self._init()

        iostream.sleep(100)

        # Switches the device from PC mode into download mode
        self.version = self.read_version()

        version = match_version(self.version, VERSIONS)
        if version is None:
            log.warning('Unsupported device detected (%r)', self.version)
            self.set_layout(LAYOUT)
            self._model = 0
        else:
            self.set_layout(version.layout)
            self._model = version.model

    def _init(self):
        self._iostream.write(b'\x55\x00')
        try:
            answer = self._iostream.read(len(BANNER))
        except TransportTimeoutError as exc:
            # Some cables do not answer at all
            if not exc.data:
                return
            raise

        if answer != BANNER:
            log.error('Unexpected PPS banner %r', answer)
            raise ProtocolError('Unexpected answer to the init command')

    def _send(self, command):
        self.check_cancel()

        self._iostream.purge(Direction.INPUT)
        self._iostream.write(command)

        response = self._iostream.read(1)[0]
        if response != ACK:
            log.error('Unexpected response byte 0x%02x', response)
            raise ProtocolError('Unexpected answer start byte')

    def transfer(self, command, asize):
        '''Send command (resending on NAK) and return its asize byte answer'''
        self.retry(lambda: self._send(command), MAXRETRIES, 100)

        answer = self._iostream.read(asize)
        if answer[-1] != NAK:
            log.error('Unexpected answer trailer 0x%02x', answer[-1])
            raise ProtocolError('Unexpected answer trailer byte')
        return answer

    def _shutdown(self):
        # Switch the device back to surface mode
        self._iostream.write(b'\x98\x00')

    def keepalive(self):
        answer = self.transfer(struct.pack('<BHB', 0x91, self._last, 0x00), 2)
        if answer[0] != NAK:
            raise ProtocolError('Unexpected keepalive answer')

    def read_version(self):
        answer = self.transfer(b'\x90\x00', PAGESIZE + 2)

        crc = answer[PAGESIZE]
        ccrc = add_uint8(answer[:PAGESIZE])
        if crc != ccrc:
            log.error('Version checksum mismatch (%02x != %02x)', crc, ccrc)
            raise ProtocolError('Unexpected answer checksum')

        return bytes(answer[:PAGESIZE])

    def read(self, address, size):
        if address % PAGESIZE != 0 or size % PAGESIZE != 0:
            raise InvalidArgsError('Unaligned read of %d bytes at 0x%04x' % (size, address))

        data = bytearray()
        while len(data) < size:
            npackets = min((size - len(data)) // PAGESIZE, MULTIPAGE)
            first = address // PAGESIZE
            last = first + npackets - 1

            answer = self.transfer(struct.pack('<BHHB', 0x20, first, last, 0),
                (PAGESIZE + 1) * npackets + 1)
            self._last = last

            for i in range(npackets):
                page = answer[i * (PAGESIZE + 1):(i + 1) * (PAGESIZE + 1)]
                crc = page[PAGESIZE]
                ccrc = add_uint8(page[:PAGESIZE])
                if crc != ccrc:
                    log.error('Page checksum mismatch at 0x%04x (%02x != %02x)',
                        address, crc, ccrc)
                    raise ProtocolError('Unexpected answer checksum')
                data += page[:PAGESIZE]
                address += PAGESIZE

        return data
