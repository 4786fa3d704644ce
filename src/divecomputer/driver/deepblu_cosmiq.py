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
Deepblu Cosmiq+ driver

The Cosmiq talks an ASCII line protocol over BLE.  A command is sent as
'#' followed by the hex encoding of (cmd, checksum, 2 * length, payload)
and a newline; replies use the same layout with a leading '$'.  The
checksum is chosen so that the bytes of the packet sum to zero modulo 256.

Dive headers are fetched first so the download can stop at the first known
dive before any profile is transferred.
'''

import binascii
import logging
import struct

from divecomputer.common import Family, InvalidArgsError, ProtocolError
from divecomputer.checksum import add_uint8
from divecomputer.context import hexdump
from divecomputer.device import Device
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

MAX_DATA = 20
MAX_LINE = 1 + 2 * (3 + MAX_DATA) + 1

SZ_HEADER = 36
FP_OFFSET = 6
FP_SIZE = 6

CMD_SET_DATETIME = 0x20
CMD_DIVE_COUNT = 0x40
CMD_DIVE_HEADER = 0x41
CMD_DIVE_HEADER_DATA = 0x42
CMD_DIVE_PROFILE = 0x43
CMD_DIVE_PROFILE_DATA = 0x44
CMD_SYSTEM_FW = 0x58
CMD_SYSTEM_MAC = 0x5A

NSTEPS = 1000

def checksum(cmd, payload):
    '''Two's complement of the sum of cmd, the encoded length and payload'''
    return (~add_uint8(payload, cmd + 2 * len(payload)) + 1) & 0xFF

def encode(cmd, payload=b''):
    '''Build the wire form of a command packet'''
    payload = bytes(payload)
    if len(payload) > MAX_DATA:
        raise InvalidArgsError('Payload too long (%d bytes)' % len(payload))
    raw = bytes((cmd, checksum(cmd, payload), 2 * len(payload))) + payload
    return b'#' + binascii.hexlify(raw).upper() + b'\n'

def decode(cmd, line):
    '''Validate a '$' reply line to cmd and return its payload'''
    if len(line) < 8 or len(line) % 2 != 0:
        raise ProtocolError('Unexpected reply length %d' % len(line))
    if line[:1] != b'$' or line[-1:] != b'\n':
        raise ProtocolError('Unexpected reply framing')

    try:
        raw = binascii.unhexlify(line[1:-1])
    except (binascii.Error, ValueError):
        raise ProtocolError('Invalid hex encoding in reply')

    if raw[0] != cmd:
        raise ProtocolError('Unexpected reply to command 0x%02x (0x%02x)' % (cmd, raw[0]))
    if raw[2] % 2 != 0 or raw[2] != len(line) - 8:
        raise ProtocolError('Unexpected payload length %d' % raw[2])
    if add_uint8(raw) != 0:
        raise ProtocolError('Unexpected reply checksum')

    return raw[3:]

def bcd(value):
    return ((value // 10) << 4) | (value % 10)

class CosmiqDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'deepblu_cosmiq'
    DESCRIPTION = 'Deepblu Cosmiq+ driver'
    FAMILY = Family.DEEPBLU_COSMIQ
    FINGERPRINT_SIZE = FP_SIZE

    TIMEOUT = 1000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(CosmiqDevice, self).__init__(context, iostream, model, owns_stream)

        iostream.set_timeout(self.TIMEOUT)
        iostream.purge(Direction.ALL)

    def _send(self, cmd, payload=b''):
        self.check_cancel()
        hexdump(log, logging.DEBUG, 'cmd', bytes((cmd,)) + bytes(payload))
        self._iostream.write(encode(cmd, payload))

    def _recv_line(self):
        line = bytearray()
        while not line.endswith(b'\n'):
            line += self._iostream.read(1)
            if len(line) > MAX_LINE:
                raise ProtocolError('Reply line too long')
        return bytes(line)

    def _recv(self, cmd):
        data = decode(cmd, self._recv_line())
        hexdump(log, logging.DEBUG, 'rcv', data)
        return data

    def transfer(self, cmd, payload, osize):
        '''Send a command and return its osize byte answer'''
        self._send(cmd, payload)
        data = self._recv(cmd)
        if len(data) != osize:
            log.error('Unexpected answer size (%d != %d)', len(data), osize)
            raise ProtocolError('Unexpected answer size')
        return data

    def _recv_bulk(self, cmd, size, progress=None):
        initial = progress.current if progress is not None else 0
        data = bytearray()
        while len(data) < size:
            data += self._recv(cmd)
            if len(data) > size:
                raise ProtocolError('Bulk transfer overrun (%d > %d)' % (len(data), size))
            if progress is not None:
                progress.set_current(initial + NSTEPS * len(data) // size)
        return data

    def foreach(self, callback):
        progress = self.progress()
        progress.emit()

        fw = self.transfer(CMD_SYSTEM_FW, b'\x00', 1)
        mac = self.transfer(CMD_SYSTEM_MAC, b'\x00', 6)
        self.emit_devinfo(0, fw[0] & 0x3F, struct.unpack('<L', mac[:4])[0])

        ndives = self.transfer(CMD_DIVE_COUNT, b'\x00', 1)[0]
        progress.set_maximum((ndives + 1) * NSTEPS)
        progress.set_current(NSTEPS if ndives == 0 else 0)
        if ndives == 0:
            return

        headers = []
        for i in range(ndives):
            length = self.transfer(CMD_DIVE_HEADER, bytes((i + 1,)), 1)[0]
            if length != SZ_HEADER:
                log.error('Unexpected dive header length %d', length)
                raise ProtocolError('Unexpected dive header length')

            header = self._recv_bulk(CMD_DIVE_HEADER_DATA, SZ_HEADER)
            progress.set_current(NSTEPS * (i + 1) // ndives)

            if self.matches_fingerprint(header[FP_OFFSET:FP_OFFSET + FP_SIZE]):
                break
            headers.append(header)

        progress.set_maximum((len(headers) + 1) * NSTEPS)
        progress.set_current(NSTEPS)

        for i, header in enumerate(headers):
            answer = self.transfer(CMD_DIVE_PROFILE, bytes((i + 1,)), 2)
            length = struct.unpack('>H', answer)[0]

            dive = header + self._recv_bulk(CMD_DIVE_PROFILE_DATA, length, progress)
            if length == 0:
                progress.set_current(progress.current + NSTEPS)

            if not self.deliver(callback, dive, dive[FP_OFFSET:FP_OFFSET + FP_SIZE]):
                return

    def timesync(self, dt):
        if dt.year < 2000:
            raise InvalidArgsError('Dates before 2000 are not supported')

        payload = bytes((bcd(dt.year - 2000), bcd(dt.month), bcd(dt.day),
            bcd(dt.hour), bcd(dt.minute), bcd(dt.second)))
        self.transfer(CMD_SET_DATETIME, payload, 1)
