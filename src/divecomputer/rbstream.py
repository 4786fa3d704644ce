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
Paged ring buffer reader

Streams bytes out of a circular memory region on the device, either
forwards or backwards from a start address, reading whole packets through
Device.read() and wrapping at the region boundaries.  Drivers use the
backward direction to fetch a dive profile that ends at a known address.
'''

from divecomputer.common import InvalidArgsError

FORWARD = 0
BACKWARD = 1

class RingbufferStream(object):
    '''
    Sequential reader over the ring [begin, end) of a device

    Reads are issued in packets of packetsize bytes aligned to pagesize.
    In the backward direction read(n) returns the n bytes that precede the
    current position, in memory order.
    '''
    def __init__(self, device, pagesize, packetsize, begin, end, address, direction=BACKWARD):
        if pagesize <= 0 or packetsize <= 0:
            raise InvalidArgsError('Zero length page or packet size')
        if packetsize % pagesize != 0:
            raise InvalidArgsError('Packet size not a multiple of the page size')
        if begin % pagesize != 0 or end % pagesize != 0:
            raise InvalidArgsError('Ringbuffer not aligned to the page size')
        if begin > end:
            raise InvalidArgsError('Ringbuffer boundaries reversed')
        if packetsize > end - begin:
            raise InvalidArgsError('Packet size larger than the ringbuffer size')
        if address < begin or address > end:
            raise InvalidArgsError('Address 0x%04x outside the ringbuffer' % address)

        self._device = device
        self._direction = direction
        self._pagesize = pagesize
        self._packetsize = packetsize
        self._begin = begin
        self._end = end

        if direction == FORWARD:
            self._address = (address // pagesize) * pagesize
            self._skip = address - self._address
        else:
            self._address = ((address + pagesize - 1) // pagesize) * pagesize
            self._skip = self._address - address

        self._cache = b''
        self._offset = 0
        self._available = 0

    def read(self, size, progress=None):
        '''Return the next size bytes, updating progress per chunk if given'''
        if self._direction == FORWARD:
            return self._read_forward(size, progress)
        return self._read_backward(size, progress)

    def _read_backward(self, size, progress):
        data = bytearray(size)
        offset = size
        nbytes = 0
        while nbytes < size:
            if self._available == 0:
                if self._address == self._begin:
                    self._address = self._end

                length = self._packetsize
                if self._begin + length > self._address:
                    length = self._address - self._begin

                self._cache = self._device.read(self._address - length, self._packetsize)

                self._address -= length
                self._available = length - self._skip
                self._skip = 0

            length = min(self._available, size - nbytes)
            offset -= length
            self._available -= length
            data[offset:offset + length] = self._cache[self._available:self._available + length]

            if progress is not None:
                progress.update(length)

            nbytes += length
        return data

    def _read_forward(self, size, progress):
        data = bytearray()
        while len(data) < size:
            if self._available == 0:
                if self._address == self._end:
                    self._address = self._begin

                length = self._packetsize
                if self._address + length > self._end:
                    length = self._end - self._address

                extra = self._packetsize - length
                self._cache = self._device.read(self._address - extra, self._packetsize)

                self._address += length
                self._offset = extra + self._skip
                self._available = length - self._skip
                self._skip = 0

            length = min(self._available, size - len(data))
            data += self._cache[self._offset:self._offset + length]
            self._offset += length
            self._available -= length

            if progress is not None:
                progress.update(length)
        return data
