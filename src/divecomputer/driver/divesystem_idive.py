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
DiveSystem iDive and iX3M driver

Every exchange is a CRC framed packet, [0x55][len][payload][crc16 BE], and
every reply echoes the command byte and ends with ACK or NAK.  A NAK reply
carries an error code instead of data.  Corrupt replies and "busy" NAKs are
retried; any other NAK aborts the operation.
'''

import logging
import struct

from divecomputer.common import DataFormatError, Family, InvalidArgsError, \
    ProtocolError, TransportTimeoutError, UnsupportedError
from divecomputer.checksum import crc16_ccitt
from divecomputer.device import Device
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

MAXRETRIES = 9
MAXPACKET = 0xFF
START = 0x55
ACK = 0x06
NAK = 0x15

ERR_INVALID_CMD = 0x10
ERR_INVALID_LENGTH = 0x20
ERR_INVALID_DATA = 0x30
ERR_UNSUPPORTED = 0x40
ERR_UNAVAILABLE = 0x58
ERR_UNREADABLE = 0x5F
ERR_BUSY = 0x60

NSTEPS = 1000

EPOCH = 1199145600      # 2008-01-01 00:00:00 UTC
TZ_IDX_UNCHANGED = 0xFF

# Timezones known to the iX3M, as (hours, minutes) offsets
TIMEZONES = [
    (-12, 0), (-11, 0), (-10, 0), (-9, 30), (-9, 0), (-8, 0), (-7, 0),
    (-6, 0), (-5, 0), (-4, 30), (-4, 0), (-3, 30), (-3, 0), (-2, 0),
    (-1, 0), (0, 0), (1, 0), (2, 0), (3, 0), (3, 30), (4, 0), (4, 30),
    (5, 0), (5, 30), (5, 45), (6, 0), (6, 30), (7, 0), (8, 0), (8, 45),
    (9, 0), (9, 30), (9, 45), (10, 0), (10, 30), (11, 0), (11, 30),
    (12, 0), (12, 45), (13, 0), (13, 45), (14, 0),
]

class Commands(object):
    '''Command bytes and reply sizes of one protocol variant'''
    def __init__(self, id, range, header, sample, nsamples):
        self.id = id
        self.range = range
        self.header = header
        self.sample = sample
        self.nsamples = nsamples

IDIVE = Commands((0x10, 0x0A), (0x98, 0x04), (0xA0, 0x32), (0xA8, 0x2A), 1)
IX3M = Commands((0x11, 0x1A), (0x78, 0x04), (0x79, 0x36), (0x7A, 0x36), 1)
IX3M_APOS4 = Commands((0x11, 0x1A), (0x78, 0x04), (0x79, 0x36), (0x7A, 0x40), 3)

CMD_IX3M_TIMESYNC = 0x13

class NakError(ProtocolError):
    '''The device answered with a NAK packet'''
    def __init__(self, message, errcode):
        super(NakError, self).__init__(message)
        self.errcode = errcode

def is_ix3m(model):
    return model >= 0x21

def timezone_index(offset):
    '''Return the index of the timezone with the given UTC offset in seconds'''
    for i, (hours, minutes) in enumerate(TIMEZONES):
        seconds = hours * 3600
        if seconds < 0:
            seconds -= minutes * 60
        else:
            seconds += minutes * 60
        if seconds == offset:
            return i
    raise InvalidArgsError('Unsupported timezone offset %d' % offset)

class IDiveDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'divesystem_idive'
    DESCRIPTION = 'DiveSystem iDive / iX3M driver'
    FAMILY = Family.DIVESYSTEM_IDIVE
    FINGERPRINT_SIZE = 4

    # Serial Settings
    BAUDRATE = 115200
    TIMEOUT = 1000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(IDiveDevice, self).__init__(context, iostream, model, owns_stream)

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        iostream.sleep(300)
        iostream.purge(Direction.ALL)

    def _send(self, command):
        self.check_cancel()
        if len(command) < 1 or len(command) > MAXPACKET:
            raise InvalidArgsError('Invalid command length %d' % len(command))

        packet = bytearray((START, len(command))) + bytes(command)
        packet += struct.pack('>H', crc16_ccitt(packet))
        self._iostream.write(packet)

    def _receive(self):
        # Skip garbage until the start byte
        while self._iostream.read(1)[0] != START:
            pass

        length = self._iostream.read(1)[0]
        if length < 2 or length > MAXPACKET:
            log.error('Invalid packet length %d', length)
            raise ProtocolError('Invalid packet length')

        body = self._iostream.read(length + 2)
        crc = struct.unpack('>H', body[length:])[0]
        ccrc = crc16_ccitt(bytes((START, length)) + body[:length])
        if crc != ccrc:
            log.error('Unexpected packet checksum (%04x != %04x)', crc, ccrc)
            raise ProtocolError('Unexpected packet checksum')

        return body[:length]

    def _packet(self, command, asize):
        self._send(command)
        packet = self._receive()

        if packet[0] != command[0]:
            log.error('Unexpected packet header 0x%02x', packet[0])
            raise ProtocolError('Unexpected packet header')

        kind = packet[-1]
        if kind not in (ACK, NAK):
            log.error('Unexpected ACK/NAK byte 0x%02x', kind)
            raise ProtocolError('Unexpected ACK/NAK byte')

        expected = (asize if kind == ACK else 1) + 2
        if len(packet) != expected:
            log.error('Unexpected packet length (%d != %d)', len(packet), expected)
            raise ProtocolError('Unexpected packet length')

        if kind == NAK:
            log.error('Received NAK packet with error code %02x', packet[1])
            raise NakError('Device returned error code 0x%02x' % packet[1], packet[1])

        return packet[1:-1]

    def transfer(self, command, asize):
        '''
        Send command and return the asize byte answer

        Corrupt packets, timeouts and busy replies are retried up to
        MAXRETRIES times.  Other NAK replies raise NakError immediately.
        '''
        nretries = 0
        while True:
            try:
                return self._packet(command, asize)
            except NakError as exc:
                if exc.errcode != ERR_BUSY or nretries >= MAXRETRIES:
                    raise
            except (ProtocolError, TransportTimeoutError):
                if nretries >= MAXRETRIES:
                    raise
            nretries += 1
            self._iostream.purge(Direction.INPUT)
            self._iostream.sleep(100)

    def foreach(self, callback):
        commands = IX3M if is_ix3m(self._model) else IDIVE

        progress = self.progress()
        progress.emit()

        packet = self.transfer(bytes((commands.id[0], 0xED)), commands.id[1])
        model, firmware, serial = struct.unpack('<HLL', packet[:10])
        self.emit_devinfo(model, firmware, serial)
        self.emit_vendor(packet)

        if is_ix3m(self._model) and firmware // 10000000 >= 4:
            commands = IX3M_APOS4

        try:
            packet = self.transfer(bytes((commands.range[0], 0x8D)), commands.range[1])
        except NakError as exc:
            if exc.errcode == ERR_UNAVAILABLE:
                log.info('No dives available')
                return
            raise

        first, last = struct.unpack('<HH', packet[:4])
        if first > last:
            log.error('Invalid dive numbers (%d > %d)', first, last)
            raise DataFormatError('Invalid dive numbers')

        ndives = last - first + 1
        progress.set_maximum(ndives * NSTEPS)
        progress.emit()

        for i in range(ndives):
            number = last - i
            try:
                header = self.transfer(struct.pack('<BH', commands.header[0], number), commands.header[1])
            except NakError as exc:
                if exc.errcode == ERR_UNREADABLE:
                    log.warning('Skipped unreadable dive %d', number)
                    continue
                raise

            fingerprint = header[7:7 + self.FINGERPRINT_SIZE]
            if self.matches_fingerprint(fingerprint):
                break

            nsamples = struct.unpack('<H', header[1:3])[0]
            progress.set_current(i * NSTEPS + NSTEPS // (nsamples + 1))

            dive = bytearray(header)
            for j in range(0, nsamples, commands.nsamples):
                packet = self.transfer(
                    struct.pack('<BH', commands.sample[0], j + 1),
                    commands.sample[1] * commands.nsamples)

                # A partially filled last packet holds garbage past the end
                n = min(commands.nsamples, nsamples - j)
                progress.set_current(i * NSTEPS + NSTEPS * (j + n + 1) // (nsamples + 1))
                dive += packet[:commands.sample[1] * n]

            if not self.deliver(callback, dive, fingerprint):
                return

    def timesync(self, dt):
        '''
        Set the clock of an iX3M

        The datetime must be timezone aware; its UTC offset selects the home
        timezone of the device.
        '''
        if not is_ix3m(self._model):
            raise UnsupportedError('Clock synchronisation requires an iX3M')

        offset = dt.utcoffset()
        if offset is None:
            raise InvalidArgsError('A timezone aware datetime is required')

        timestamp = int(dt.timestamp()) - EPOCH
        index = timezone_index(int(offset.total_seconds()))

        command = struct.pack('<BLBB', CMD_IX3M_TIMESYNC, timestamp & 0xFFFFFFFF, index, TZ_IDX_UNCHANGED)
        try:
            self.transfer(command, 0)
        except NakError as exc:
            if exc.errcode not in (ERR_INVALID_LENGTH, ERR_INVALID_DATA):
                raise
            # Older firmware only knows the home timezone
            self.transfer(command[:-1], 0)
