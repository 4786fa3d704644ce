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
Seac Screen driver

Packets are framed as [0x55][length BE16][command BE16][payload][CRC BE16],
where the length counts everything after itself.  Replies echo the command
and carry a fixed 0x09 status byte in front of the checksum.

Dives live in a single profile ring of 64 byte samples, each preceded by a
128 byte header.  The device reports the range of valid dive numbers and
the ring address of each dive, so the profile is read backwards from the
end of the newest dive with a RingbufferStream.
'''

import logging
import struct

from divecomputer.common import DataFormatError, Family, InvalidArgsError, ProtocolError
from divecomputer import ringbuffer
from divecomputer.checksum import crc16_ccitt
from divecomputer.device import Device
from divecomputer.iostream import Direction
from divecomputer.rbstream import RingbufferStream, BACKWARD

log = logging.getLogger(__name__)

MAXRETRIES = 4

SZ_MAXCMD = 8

CMD_HWINFO = 0x1833
CMD_SWINFO = 0x1834
CMD_RANGE = 0x1840
CMD_ADDRESS = 0x1841
CMD_READ = 0x1842

SZ_HWINFO = 256
SZ_SWINFO = 256
SZ_RANGE = 8
SZ_ADDRESS = 4
SZ_READ = 2048
SZ_HEADER = 128
SZ_SAMPLE = 64

FP_OFFSET = 0x0A
FP_SIZE = 7

RB_PROFILE_BEGIN = 0x010000
RB_PROFILE_END = 0x200000
RB_PROFILE_SIZE = RB_PROFILE_END - RB_PROFILE_BEGIN

def rb_profile_distance(a, b):
    return ringbuffer.distance(a, b, ringbuffer.FULL, RB_PROFILE_BEGIN, RB_PROFILE_END)

def rb_profile_incr(a, delta):
    return ringbuffer.increment(a, delta, RB_PROFILE_BEGIN, RB_PROFILE_END)

def header_isvalid(header):
    '''Both halves of a dive header carry their own CRC'''
    half = SZ_HEADER // 2
    return crc16_ccitt(header[:half]) == 0 and crc16_ccitt(header[half:SZ_HEADER]) == 0

class ScreenDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'seac_screen'
    DESCRIPTION = 'Seac Screen driver'
    FAMILY = Family.SEAC_SCREEN
    FINGERPRINT_SIZE = FP_SIZE

    # Serial Settings
    BAUDRATE = 115200
    TIMEOUT = 1000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(ScreenDevice, self).__init__(context, iostream, model, owns_stream)

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        iostream.sleep(100)
        iostream.purge(Direction.ALL)

        # Wake up the device
        iostream.write(b'\x61')

        self.info = self.transfer(CMD_HWINFO, b'', SZ_HWINFO) + \
            self.transfer(CMD_SWINFO, b'', SZ_SWINFO)

    def _send(self, cmd, data):
        if len(data) > SZ_MAXCMD:
            raise InvalidArgsError('Command payload too long (%d bytes)' % len(data))

        packet = bytearray(struct.pack('>BHH', 0x55, len(data) + 6, cmd)) + bytes(data)
        packet += struct.pack('>H', crc16_ccitt(packet))
        self._iostream.write(packet)

    def _receive(self, cmd, size):
        header = self._iostream.read(3)
        if header[0] != 0x55:
            log.error('Unexpected start byte 0x%02x', header[0])
            raise ProtocolError('Unexpected packet start byte')

        length = struct.unpack('>H', header[1:])[0]
        if length < 7 or length + 1 > SZ_READ + 8:
            log.error('Unexpected packet length %d', length)
            raise ProtocolError('Unexpected packet length')

        packet = header + self._iostream.read(length - 2)

        crc = struct.unpack('>H', packet[-2:])[0]
        ccrc = crc16_ccitt(packet[:-2])
        if crc != ccrc:
            log.error('Unexpected packet checksum (%04x != %04x)', crc, ccrc)
            raise ProtocolError('Unexpected packet checksum')

        rsp = struct.unpack('>H', packet[3:5])[0]
        if rsp != cmd or packet[-3] != 0x09:
            log.error('Unexpected response %04x (status %02x)', rsp, packet[-3])
            raise ProtocolError('Unexpected command response')

        if length - 7 != size:
            log.error('Unexpected payload size (%d != %d)', length - 7, size)
            raise ProtocolError('Unexpected payload size')

        return packet[5:-3]

    def transfer(self, cmd, data, size):
        '''Exchange one packet, retrying corrupt replies and timeouts'''
        def packet():
            self._send(cmd, data)
            return self._receive(cmd, size)
        return self.retry(packet, MAXRETRIES, 100)

    def read(self, address, size):
        data = bytearray()
        while len(data) < size:
            n = min(size - len(data), SZ_READ)
            # The reply is always a full packet, padded with zeros
            packet = self.transfer(CMD_READ, struct.pack('>LL', address, n), SZ_READ)
            data += packet[:n]
            address += n
        return data

    def _emit_info(self):
        self.emit_devinfo(0,
            struct.unpack_from('<L', self.info, 0x11C)[0],
            struct.unpack_from('<L', self.info, 0x10)[0])
        self.emit_vendor(self.info)

    def dump(self):
        self._emit_info()
        return self.dump_read(RB_PROFILE_BEGIN, RB_PROFILE_SIZE, SZ_READ)

    def foreach(self, callback):
        progress = self.progress(RB_PROFILE_SIZE)
        progress.emit()

        self._emit_info()

        first, last = struct.unpack('>LL', self.transfer(CMD_RANGE, b'', SZ_RANGE))
        if first > last:
            log.error('Invalid dive numbers (%d > %d)', first, last)
            raise DataFormatError('Invalid dive numbers')

        ndives = last - first + 1
        progress.set_maximum(progress.maximum + SZ_RANGE + ndives * (SZ_ADDRESS + SZ_HEADER))
        progress.update(SZ_RANGE)

        # Read the headers, most recent first
        logbook = []
        eop = previous = None
        skip = 0
        total = 0
        remaining = RB_PROFILE_SIZE
        for i in range(ndives):
            number = last - i

            address = struct.unpack('>L', self.transfer(CMD_ADDRESS, struct.pack('>L', number), SZ_ADDRESS))[0]
            if address < RB_PROFILE_BEGIN or address >= RB_PROFILE_END:
                log.error('Invalid ringbuffer pointer (0x%08x)', address)
                raise DataFormatError('Invalid ringbuffer pointer')

            header = bytes(self.read(address, SZ_HEADER))
            progress.update(SZ_ADDRESS + SZ_HEADER)

            if not header_isvalid(header):
                log.error('Unexpected dive header checksum for dive %d', number)
                raise DataFormatError('Unexpected dive header checksum')

            if self.matches_fingerprint(header[FP_OFFSET:FP_OFFSET + FP_SIZE]):
                skip = 1
                break

            nsamples = struct.unpack_from('<L', header, 0x44)[0]
            if eop is None:
                eop = previous = rb_profile_incr(address, SZ_HEADER + nsamples * SZ_SAMPLE)

            length = rb_profile_distance(address, previous)
            if length > remaining:
                log.warning('Reached the end of the ringbuffer')
                skip = 1
                break

            total += length
            remaining -= length
            previous = address
            logbook.append((address, header, length))

        progress.set_maximum(progress.maximum
            - (ndives - len(logbook) - skip) * (SZ_ADDRESS + SZ_HEADER)
            - (RB_PROFILE_SIZE - total))
        progress.emit()

        if not logbook:
            return

        rbstream = RingbufferStream(self, SZ_READ, SZ_READ, RB_PROFILE_BEGIN, RB_PROFILE_END, eop, BACKWARD)
        for address, header, length in logbook:
            dive = rbstream.read(length, progress)

            if dive[:SZ_HEADER] != header:
                log.error('Dive header mismatch at 0x%08x', address)
                raise DataFormatError('Unexpected dive header')

            # Unused space after the last sample is padded with 0xFF
            nsamples = struct.unpack_from('<L', header, 0x44)[0]
            nbytes = SZ_HEADER + nsamples * SZ_SAMPLE
            if nbytes > length:
                log.error('Dive size %d exceeds its ring slot (%d)', nbytes, length)
                raise DataFormatError('Dive extends past its ring slot')

            dive = dive[:nbytes]
            if not self.deliver(callback, dive, dive[FP_OFFSET:FP_OFFSET + FP_SIZE]):
                return
