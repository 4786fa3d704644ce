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
Heinrichs Weikamp OSTC3 driver

The OSTC3 (and OSTC Sport) accept single byte commands which the device
echoes back; the reply data is followed by a ready byte.  The device starts
in the Open state and enters Download mode on the first command, or Service
mode through the service handshake.  Service mode uses a different ready
byte.

Dives are listed in a logbook of 256 headers of 256 bytes each.  The header
of the most recent dive has the highest internal dive number; the profiles
are downloaded one at a time from there backwards.
'''

import enum
import logging
import struct

from divecomputer.common import DataFormatError, Family, InvalidArgsError, \
    ProtocolError, TransportError
from divecomputer.device import Device
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

SZ_VERSION = 64
SZ_MEMORY = 0x200000
SZ_CONFIG = 4

RB_LOGBOOK_SIZE = 256
RB_LOGBOOK_COUNT = 256

# Commands
S_READY = 0x4C
READY = 0x4D
HEADER = 0x61
CLOCK = 0x62
DIVE = 0x66
IDENTITY = 0x69
READ = 0x72
INIT = 0xBB
EXIT = 0xFF

# Model Numbers
OSTC3 = 0
SPORT = 1

class State(enum.Enum):
    OPEN = 'open'
    DOWNLOAD = 'download'
    SERVICE = 'service'

def _uint24(data, offset):
    return data[offset] | (data[offset + 1] << 8) | (data[offset + 2] << 16)

class OSTC3Device(Device):
    # Magic Attributes for the register_driver method
    NAME = 'hw_ostc3'
    DESCRIPTION = 'Heinrichs Weikamp OSTC3 driver'
    FAMILY = Family.HW_OSTC3
    FINGERPRINT_SIZE = 5

    # Serial Settings
    BAUDRATE = 115200
    TIMEOUT = 3000

    # Read Packet Size
    PACKET_SIZE = 1024

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(OSTC3Device, self).__init__(context, iostream, model, owns_stream)

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        # Make sure everything is in a sane state.
        iostream.sleep(300)
        iostream.purge(Direction.ALL)

        self.state = State.OPEN

    def transfer(self, cmd, input=None, osize=0, progress=None):
        '''
        Send a command and read its reply

        The command byte must be echoed.  Unless the command is EXIT, the
        reply data is followed by the ready byte of the current mode.
        '''
        self.check_cancel()

        self._iostream.write(bytes((cmd,)))
        echo = self._iostream.read(1)
        if echo[0] != cmd:
            log.error('Unexpected echo 0x%02x for command 0x%02x', echo[0], cmd)
            raise ProtocolError('Unexpected echo')

        if input:
            self._iostream.write(input)

        output = bytearray()
        while len(output) < osize:
            n = min(self.PACKET_SIZE, osize - len(output))
            output += self._iostream.read(n)
            if progress is not None:
                progress.update(n)

        if cmd != EXIT:
            expected = S_READY if self.state == State.SERVICE else READY
            ready = self._iostream.read(1)
            if ready[0] != expected:
                log.error('Unexpected ready byte 0x%02x', ready[0])
                raise ProtocolError('Unexpected ready byte')

        return output

    def init_download(self):
        self.transfer(INIT)
        self.state = State.DOWNLOAD

    def init_service(self):
        '''Enter service mode (different handshake and ready byte)'''
        self._iostream.write(b'\xaa\xab\xcd\xef')

        # Give the device some time to enter service mode
        self._iostream.sleep(100)

        output = self._iostream.read(5)
        if output != bytes((0x4B, 0xAB, 0xCD, 0xEF, S_READY)):
            log.error('Unexpected service mode response: %s', output.hex())
            raise TransportError('Failed to verify echo')
        self.state = State.SERVICE

    def _check_state_or_init(self):
        if self.state == State.OPEN:
            self.init_download()

    def _shutdown(self):
        if self.state in (State.DOWNLOAD, State.SERVICE):
            self.transfer(EXIT)
        self.state = State.OPEN

    def version(self):
        '''Read the 64 byte identity block'''
        self._check_state_or_init()
        return self.transfer(IDENTITY, osize=SZ_VERSION)

    def read(self, address, size):
        '''Read a configuration value (address is the setting number)'''
        if size > SZ_CONFIG or address > 0xFF:
            raise InvalidArgsError('Invalid configuration request')
        self._check_state_or_init()
        return self.transfer(READ, bytes((address,)), size)

    def timesync(self, dt):
        if dt is None or dt.year < 2000 or dt.year > 2255:
            raise InvalidArgsError('Invalid date and time')
        self._check_state_or_init()
        packet = bytes((dt.hour, dt.minute, dt.second, dt.month, dt.day, dt.year - 2000))
        self.transfer(CLOCK, packet)

    def _profile_length(self, header, offset):
        firmware = struct.unpack_from('>H', header, offset + 0x30)[0]
        length = RB_LOGBOOK_SIZE + _uint24(header, offset + 9) - 6
        if firmware >= 93:
            length += 3
        return length

    def foreach(self, callback):
        logbook_size = RB_LOGBOOK_SIZE * RB_LOGBOOK_COUNT
        progress = self.progress(logbook_size + SZ_MEMORY)
        progress.emit()

        self._check_state_or_init()

        id = self.version()
        serial = struct.unpack_from('<H', id, 0)[0]
        firmware = struct.unpack_from('>H', id, 2)[0]
        self._model = SPORT if serial > 10000 else OSTC3
        self.emit_devinfo(self._model, firmware, serial)

        header = bytes(self.transfer(HEADER, osize=logbook_size, progress=progress))
        empty = b'\xff' * RB_LOGBOOK_SIZE

        # The most recent dive has the highest internal dive number
        count = 0
        latest = 0
        maximum = 0
        for i in range(RB_LOGBOOK_COUNT):
            offset = i * RB_LOGBOOK_SIZE
            if header[offset:offset + RB_LOGBOOK_SIZE] == empty:
                continue
            current = struct.unpack_from('<H', header, offset + 80)[0]
            if current > maximum:
                maximum = current
                latest = i
            count += 1

        work = []
        size = 0
        for i in range(count):
            idx = (latest + RB_LOGBOOK_COUNT - i) % RB_LOGBOOK_COUNT
            offset = idx * RB_LOGBOOK_SIZE

            # Dives interleaved with empty entries are not supported
            if header[offset:offset + RB_LOGBOOK_SIZE] == empty:
                log.warning('Unexpected empty header found')
                break

            if self.matches_fingerprint(header[offset + 12:offset + 12 + self.FINGERPRINT_SIZE]):
                break

            length = self._profile_length(header, offset)
            work.append((idx, offset, length))
            size += length

        progress.set_maximum(logbook_size + size)
        progress.emit()

        for idx, offset, length in work:
            profile = bytes(self.transfer(DIVE, bytes((idx,)), length, progress))

            if profile[:RB_LOGBOOK_SIZE] != header[offset:offset + RB_LOGBOOK_SIZE]:
                log.error('Profile header of dive %d differs from the logbook', idx)
                raise DataFormatError('Unexpected profile header')

            profile = self._check_profile(profile, length)

            if not self.deliver(callback, profile, profile[12:12 + self.FINGERPRINT_SIZE]):
                break

    def _check_profile(self, profile, length):
        '''Truncate a corrupt profile to its logbook header'''
        if length < RB_LOGBOOK_SIZE + 2 or profile[length - 2:length] != b'\xfd\xfd':
            log.warning('Invalid profile end marker detected')
            return profile[:RB_LOGBOOK_SIZE]

        # A profile holding only the end marker is a valid empty profile
        if length == RB_LOGBOOK_SIZE + 2:
            return profile

        expected = _uint24(profile, 9)
        if length < RB_LOGBOOK_SIZE + 5 + 2 or _uint24(profile, RB_LOGBOOK_SIZE) != expected:
            log.warning('Invalid profile header detected')
            return profile[:RB_LOGBOOK_SIZE]

        return profile
