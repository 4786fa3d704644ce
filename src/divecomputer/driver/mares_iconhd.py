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
Mares Icon HD driver

Commands are two bytes, the command code and its complement against 0xA5.
The device answers a valid command with ACK, after which any parameters are
sent; the answer payload is followed by an EOF trailer byte.

The memory image holds a single profile ring starting at 0xA000.  Its end
pointer is stored in one of two configuration areas.  The ring is
linearized at that pointer and walked backwards: every dive ends with a
fixed size header whose sample count gives the dive's total length, which
is also stored in the first four bytes of the dive.
'''

import logging
import struct

from divecomputer.common import DataFormatError, Family, ProtocolError
from divecomputer.device import Device
from divecomputer.iostream import Direction, Parity

log = logging.getLogger(__name__)

ICONHD = 0x14
ICONHDNET = 0x15

ACK = 0xAA
EOF = 0xEA

CMD_VERSION = 0xC2
CMD_READ = 0xE7

SZ_MEMORY = 0x100000
SZ_VERSION = 140
PACKET_SIZE = 256

RB_PROFILE_BEGIN = 0xA000
RB_PROFILE_END = SZ_MEMORY

CONFIG_OFFSETS = (0x2001, 0x3001)

def fix_model(model, version):
    '''Correct the invalid model code reported by some Icon HD Net Ready units'''
    if model == 0xFF:
        log.warning('Invalid model code detected')
        if version[0x46:0x4E] == b'Icon AIR':
            return ICONHDNET
    return model

class IconHDDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'mares_iconhd'
    DESCRIPTION = 'Mares Icon HD driver'
    FAMILY = Family.MARES_ICONHD
    FINGERPRINT_SIZE = 10

    # Serial Settings
    BAUDRATE = 115200
    TIMEOUT = 1000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(IconHDDevice, self).__init__(context, iostream, model, owns_stream)

        self.version = bytes(SZ_VERSION)

        iostream.configure(self.BAUDRATE, 8, Parity.EVEN)
        iostream.set_timeout(self.TIMEOUT)

        iostream.set_dtr(False)
        iostream.set_rts(False)

        iostream.purge(Direction.ALL)

        self.version = self.transfer(CMD_VERSION, b'', SZ_VERSION)

    def transfer(self, cmd, params, asize):
        '''Send cmd with its parameters and return the asize byte payload'''
        self.check_cancel()

        self._iostream.write(bytes((cmd, cmd ^ 0xA5)))

        header = self._iostream.read(1)[0]
        if header != ACK:
            log.error('Unexpected answer byte 0x%02x', header)
            raise ProtocolError('Unexpected answer byte')

        if params:
            self._iostream.write(params)

        answer = self._iostream.read(asize)

        trailer = self._iostream.read(1)[0]
        if trailer != EOF:
            log.error('Unexpected trailer byte 0x%02x', trailer)
            raise ProtocolError('Unexpected trailer byte')

        return answer

    def read(self, address, size):
        data = bytearray()
        while len(data) < size:
            n = min(PACKET_SIZE, size - len(data))
            data += self.transfer(CMD_READ, struct.pack('<LL', address, n), n)
            address += n
        return data

    def dump(self):
        self.emit_vendor(self.version)
        return self.dump_read(0, SZ_MEMORY, PACKET_SIZE)

    def foreach(self, callback):
        data = self.dump()

        model = fix_model(data[0], self.version)
        self.emit_devinfo(model, 0, struct.unpack_from('<H', data, 12)[0])

        self.extract_dives(data, callback)

    def extract_dives(self, data, callback):
        '''Split a memory image into dives, newest first'''
        data = bytes(data)
        if len(data) < SZ_MEMORY:
            raise DataFormatError('Memory image too short (%d bytes)' % len(data))

        model = fix_model(data[0], self.version)
        header = 0x80 if model == ICONHDNET else 0x5C

        for config in CONFIG_OFFSETS:
            eop = struct.unpack_from('<L', data, config)[0]
            if eop != 0xFFFFFFFF:
                break
        if eop < RB_PROFILE_BEGIN or eop >= RB_PROFILE_END:
            log.error('Ringbuffer pointer out of range (0x%08x)', eop)
            raise DataFormatError('Ringbuffer pointer out of range')

        # Linearize the ring so the newest dive ends at the end of the buffer
        buffer = data[eop:RB_PROFILE_END] + data[RB_PROFILE_BEGIN:eop]

        offset = len(buffer)
        while offset >= header + 4:
            nsamples = struct.unpack_from('<H', buffer, offset - header + 2)[0]
            if nsamples == 0xFFFF:
                break

            nbytes = 4 + header
            if model == ICONHDNET:
                nbytes += nsamples * 12 + (nsamples // 4) * 8
            else:
                nbytes += nsamples * 8

            # The oldest dive was partially overwritten
            if offset < nbytes:
                break

            offset -= nbytes

            length = struct.unpack_from('<L', buffer, offset)[0]
            if length == 0:
                break
            if length != nbytes:
                log.error('Calculated and stored size are not equal (%d != %d)', nbytes, length)
                raise DataFormatError('Calculated and stored dive size differ')

            dive = buffer[offset:offset + length]
            fp = length - header + 6
            if not self.deliver(callback, dive, dive[fp:fp + self.FINGERPRINT_SIZE]):
                return
