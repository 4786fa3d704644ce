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
Oceans S1 driver

The S1 speaks a line oriented ASCII protocol over BLE.  Each command is a
single line; the reply echoes the command followed by ">ok" and an inline
payload, or by ">xmr" when the payload follows as an XMODEM-CRC transfer of
512 byte blocks.  Both the dive list ("dllist") and the dives themselves
("dlget") are text documents sent this way.

There are no binary fingerprints on the device; the start timestamp of a
dive is used instead, packed as a big endian 64-bit integer.
'''

import calendar
import logging
import re
import struct

from divecomputer.common import DataFormatError, Family, InvalidArgsError, ProtocolError
from divecomputer.checksum import crc16_ccitt
from divecomputer.device import Device
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

SOH = 0x01
EOT = 0x04
ACK = 0x06
NAK = 0x15
CRC = 0x43

SZ_PACKET = 256
SZ_XMODEM = 512
SZ_FINGERPRINT = 8

_DIVE_RE = re.compile(r'dive (\d+),(\d+),(\d+),(-?\d+)')
_VERSION_RE = re.compile(r'(\d+)\.(\d+) ([0-9a-fA-F]+)')

def parse_divelist(text):
    '''
    Parse a "dllist" document into (number, timestamp) pairs

    Dives without a closing "enddive" line are dropped.
    '''
    dives = []
    current = None
    for line in text.splitlines():
        line = line.strip(' ')
        if not line:
            continue
        if line.startswith(('divelog', 'endlog', 'continue')):
            continue
        if line.startswith('enddive'):
            if current is None:
                log.warning("Unexpected line '%s'", line)
            else:
                dives.append(current)
                current = None
        elif line.startswith('dive'):
            m = _DIVE_RE.match(line)
            if m is None:
                log.error("Invalid dive line '%s'", line)
                raise DataFormatError('Invalid dive line in dive list')
            current = (int(m.group(1)), int(m.group(4)))
        else:
            log.warning("Unexpected line '%s'", line)

    if current is not None:
        log.warning("Skipping dive without 'enddive' line")
    return dives

class OceansS1Device(Device):
    # Magic Attributes for the register_driver method
    NAME = 'oceans_s1'
    DESCRIPTION = 'Oceans S1 driver'
    FAMILY = Family.OCEANS_S1
    FINGERPRINT_SIZE = SZ_FINGERPRINT

    TIMEOUT = 4000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(OceansS1Device, self).__init__(context, iostream, model, owns_stream)

        self._timestamp = 0

        iostream.set_timeout(self.TIMEOUT)
        iostream.purge(Direction.ALL)

    def set_fingerprint(self, data):
        super(OceansS1Device, self).set_fingerprint(data)
        if self._fingerprint:
            self._timestamp = struct.unpack('>q', self._fingerprint)[0]
        else:
            self._timestamp = 0

    def _readline(self):
        line = bytearray()
        while not line.endswith(b'\n'):
            line += self._iostream.read(1)
            if len(line) > SZ_PACKET:
                raise ProtocolError('Reply line too long')
        return bytes(line)

    def xmodem_receive(self):
        '''
        Receive an XMODEM-CRC transfer and return its payload

        Runs of trailing newline padding are collapsed to a single newline.
        '''
        self._iostream.write(bytes((CRC,)))

        buffer = bytearray()
        seq = 1
        while True:
            head = self._iostream.read(1)
            if head[0] == EOT:
                break

            packet = head + self._iostream.read(2 + SZ_XMODEM + 2)
            if packet[0] != SOH or packet[1] != seq or packet[1] + packet[2] != 0xFF:
                log.error('Unexpected XMODEM packet header %s', packet[:3].hex())
                raise ProtocolError('Unexpected XMODEM packet header')

            crc = struct.unpack('>H', packet[-2:])[0]
            ccrc = crc16_ccitt(packet[3:-2], 0x0000)
            if crc != ccrc:
                log.error('XMODEM checksum mismatch (%04x != %04x)', crc, ccrc)
                raise ProtocolError('Unexpected XMODEM packet checksum')

            buffer += packet[3:-2]
            self._iostream.write(bytes((ACK,)))
            seq = (seq + 1) & 0xFF

        self._iostream.write(bytes((ACK,)))

        size = len(buffer)
        while size > 1 and buffer[size - 2] in b'\r\n':
            size -= 1
        return bytes(buffer[:size])

    def transfer(self, cmd, params=None):
        '''
        Send a command line and return its payload

        An inline reply is returned as a string and an XMODEM reply as bytes.
        '''
        self.check_cancel()

        line = cmd if params is None else '%s %s' % (cmd, params)
        log.debug('cmd: %s', line)
        if len(line) + 1 > SZ_PACKET:
            raise InvalidArgsError('Command too long')
        self._iostream.write((line + '\n').encode('ascii'))

        reply = self._readline().rstrip(b'\r\n').decode('ascii', 'replace')
        log.debug('rcv: %s', reply)

        if not reply.startswith(cmd):
            log.error("Unexpected reply '%s' to '%s'", reply, cmd)
            raise ProtocolError('Unexpected reply to %s' % cmd)

        rest = reply[len(cmd):]
        if rest.startswith('>ok'):
            return rest[3:].lstrip(' ')
        if rest.startswith('>xmr'):
            if len(rest) > 4:
                log.warning("Packet contains extra data ('%s')", rest[4:])
            return self.xmodem_receive()

        log.error("Unexpected reply '%s'", reply)
        raise ProtocolError('Unexpected reply to %s' % cmd)

    def foreach(self, callback):
        progress = self.progress()
        progress.emit()

        version = self.transfer('version')
        m = _VERSION_RE.match(version)
        if m is None:
            log.error("Unexpected version string '%s'", version)
            raise ProtocolError('Unexpected version string')
        self.emit_devinfo(0, int(m.group(1)) << 16 | int(m.group(2)), 0)

        divelist = self.transfer('dllist')
        if isinstance(divelist, str):
            raise ProtocolError('Expected an XMODEM transfer for the dive list')

        dives = [d for d in parse_divelist(divelist.decode('ascii', 'replace')) if d[1] > self._timestamp]
        dives.sort(key=lambda d: d[0], reverse=True)

        progress.set_maximum(1 + len(dives))
        progress.set_current(1)

        for number, timestamp in dives:
            data = self.transfer('dlget', '%u %u' % (number, number + 1))
            if isinstance(data, str):
                raise ProtocolError('Expected an XMODEM transfer for dive %d' % number)
            progress.update(1)

            if not self.deliver(callback, data, struct.pack('>q', timestamp)):
                return

    def timesync(self, dt):
        '''Set the device clock; the timezone offset of dt is ignored'''
        timestamp = calendar.timegm(dt.replace(tzinfo=None).timetuple())
        if timestamp < 0:
            raise InvalidArgsError('Invalid date/time value')
        self.transfer('utc', '%d' % timestamp)
