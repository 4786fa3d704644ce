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
Uwatec Memomouse driver

The Memomouse is a serial interface for the Uwatec Aladin family.  All
bytes on the wire are sent with their bit order reversed.  Data is sent in
outer packets of at most 126 bytes (length byte, payload, XOR checksum)
which the host must ACK or NAK; the payloads form one inner packet that
starts with its 16-bit length and ends with another XOR checksum.

The interface sends all dives twice: oldest to newest, then again in
reverse order.  Only the first pass is used.
'''

import logging
import struct

from divecomputer.common import DataFormatError, Family, ProtocolError
from divecomputer.checksum import reverse_bytes, xor_uint8
from divecomputer.device import Device, Event
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

ACK = 0x60
NAK = 0xA8

SZ_PACKET = 126

# Size of the dive header compared to detect the second pass
SZ_HEADER = 18

def _bcd2dec(value):
    return (value >> 4) * 10 + (value & 0x0F)

class MemomouseDevice(Device):
    # Magic Attributes for the register_driver method
    NAME = 'uwatec_memomouse'
    DESCRIPTION = 'Uwatec Memomouse driver'
    FAMILY = Family.UWATEC_MEMOMOUSE
    FINGERPRINT_SIZE = 4

    # Serial Settings
    BAUDRATE = 9600
    TIMEOUT = 60000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(MemomouseDevice, self).__init__(context, iostream, model, owns_stream)

        self._timestamp = 0

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        iostream.sleep(200)
        iostream.purge(Direction.ALL)

        # Clear the RTS line and set the DTR line.
        iostream.set_dtr(True)
        iostream.set_rts(False)

    def set_fingerprint(self, data):
        super(MemomouseDevice, self).set_fingerprint(data)
        if self._fingerprint:
            self._timestamp = struct.unpack('<L', self._fingerprint)[0]
        else:
            self._timestamp = 0

    def _confirm(self, value):
        self._iostream.write(bytes((value,)))

    def _read_packet(self):
        length = reverse_bytes(self._iostream.read(1))[0]
        if length > SZ_PACKET:
            log.error('Unexpected packet length %d', length)
            raise ProtocolError('Unexpected answer start byte(s)')

        data = bytes((length,)) + reverse_bytes(self._iostream.read(length + 1))

        crc = data[length + 1]
        ccrc = xor_uint8(data[:length + 1])
        if crc != ccrc:
            log.error('Packet checksum mismatch (0x%02x != 0x%02x)', crc, ccrc)
            raise ProtocolError('Unexpected answer CRC')

        return data[1:length + 1]

    def _read_packet_outer(self):
        '''Read one outer packet, rejecting corrupt packets until one is valid'''
        while True:
            self.check_cancel()
            try:
                return self._read_packet()
            except ProtocolError:
                self._iostream.purge(Direction.INPUT)
                self._confirm(NAK)

    def _read_packet_inner(self, progress=None):
        package = self._read_packet_outer()
        self._confirm(ACK)

        if len(package) < 2:
            log.error('First packet is too small (%d bytes)', len(package))
            raise ProtocolError('First package is too small')

        total = package[0] + (package[1] << 8) + 3
        if len(package) > total:
            log.error('Inner packet too long (%d > %d)', len(package), total)
            raise ProtocolError('Inner packet too long')

        if progress is not None:
            progress.set_maximum(total)
            progress.update(len(package))

        buffer = bytearray(package)
        while len(buffer) < total:
            package = self._read_packet_outer()
            self._confirm(ACK)
            if len(buffer) + len(package) > total:
                log.error('Inner packet too long (%d > %d)', len(buffer) + len(package), total)
                raise ProtocolError('Inner packet too long')
            if progress is not None:
                progress.update(len(package))
            buffer += package

        crc = buffer[total - 1]
        ccrc = xor_uint8(buffer[:total - 1])
        if crc != ccrc:
            log.error('Inner packet checksum mismatch (0x%02x != 0x%02x)', crc, ccrc)
            raise ProtocolError('Unexpected inner packet CRC')

        return buffer

    def _download(self):
        progress = self.progress(0)

        # Wait for the greeting message.
        while self._iostream.get_available() == 0:
            self.check_cancel()
            self._iostream.purge(Direction.INPUT)
            self._confirm(NAK)
            self._iostream.sleep(300)

        # Read the ID string.
        self._read_packet_inner()

        command = bytearray((0x07, 0x05, 0x00, 0x55)) + struct.pack('<L', self._timestamp)
        command.append(xor_uint8(command))
        command = reverse_bytes(command)

        # Without this delay the transfer fails most of the time.
        self._iostream.sleep(50)

        # Repeat the command until it is acknowledged
        answer = NAK
        while answer == NAK:
            self.check_cancel()
            self._iostream.purge(Direction.INPUT)
            self._iostream.write(command)
            answer = self._iostream.read(1)[0]
            if answer != ACK:
                log.debug('Received unexpected response (%02x)', answer)

        if answer != ACK:
            log.error('Unexpected answer byte 0x%02x', answer)
            raise ProtocolError('Unexpected answer start byte(s)')

        self.emit_event(Event.WAITING)

        return self._read_packet_inner(progress)

    def dump(self):
        '''Return the dive data without the inner packet framing'''
        buffer = self._download()
        data = buffer[2:-1]

        # The data starts with the BCD serial number and the model byte.
        if len(data) >= 4:
            serial = _bcd2dec(data[0]) * 10000 + _bcd2dec(data[1]) * 100 + _bcd2dec(data[2])
            self.emit_devinfo(data[3], 0, serial)

        return data

    def foreach(self, callback):
        data = self.dump()
        self.extract_dives(data, callback)

    def extract_dives(self, data, callback):
        '''
        Split the first pass of the dive stream into dives, newest first

        Each dive is an 18 byte header, whose last two bytes hold the length
        of the profile, followed by the profile.  The first pass ends when a
        dive header repeats the header of the preceding dive.
        '''
        data = bytes(data)
        dives = []
        previous = None
        current = 5
        while current + SZ_HEADER <= len(data):
            if previous is not None and \
                    data[previous:previous + SZ_HEADER] == data[current:current + SZ_HEADER]:
                break

            length = data[current + 16] + (data[current + 17] << 8)
            if current + length + SZ_HEADER > len(data):
                log.error('Dive at offset %d extends past the data', current)
                raise DataFormatError('Dive extends past the end of the data')

            dives.append((current, length + SZ_HEADER))
            previous = current
            current += length + SZ_HEADER

        for offset, length in reversed(dives):
            dive = data[offset:offset + length]
            if not self.deliver(callback, dive, dive[11:11 + self.FINGERPRINT_SIZE]):
                return
