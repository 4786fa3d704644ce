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
Shearwater common protocol

The Predator and Petrel families share a SLIP framed request/response
protocol at 115200 8N1.  Memory is read with a three step download sequence
(init, numbered blocks, quit); the Petrel compresses the blocks with a zero
run length encoding followed by a 32 byte XOR chain.
'''

import logging
import struct

from divecomputer.common import InvalidArgsError, ProtocolError
from divecomputer.device import Device
from divecomputer.iostream import Direction

log = logging.getLogger(__name__)

SZ_PACKET = 254

# SLIP special character codes
END = 0xC0
ESC = 0xDB
ESC_END = 0xDC
ESC_ESC = 0xDD

# Identifiers for the identifier() request
ID_SERIAL = 0x8010
ID_FIRMWARE = 0x8011
ID_HARDWARE = 0x8050

# Model Numbers
PREDATOR = 2
PETREL = 3
NERD = 4
PERDIX = 5
PERDIXAI = 6
NERD2 = 7

def slip_encode(data):
    '''Escape a packet and append the END character'''
    out = bytearray()
    for c in bytearray(data):
        if c == END:
            out += bytes((ESC, ESC_END))
        elif c == ESC:
            out += bytes((ESC, ESC_ESC))
        else:
            out.append(c)
    out.append(END)
    return bytes(out)

def decompress_lre(data):
    '''
    Expand the zero run length encoding

    The data is a stream of 9 bit values.  With the 9th bit set the low 8
    bits are a literal byte; otherwise the value is the length of a run of
    zero bytes, and a zero length run ends the stream.  Returns a tuple of
    (output, final).
    '''
    nbits = len(data) * 8
    if nbits % 9 != 0:
        raise ProtocolError('Decompression error (LRE phase)')

    # Pad so that the last 9 bit value can be read as a 16 bit word
    padded = bytes(data) + b'\x00'

    out = bytearray()
    offset = 0
    while offset + 9 <= nbits:
        byte, bit = divmod(offset, 8)
        shift = 16 - (bit + 9)
        value = (struct.unpack_from('>H', padded, byte)[0] >> shift) & 0x1FF
        if value & 0x100:
            out.append(value & 0xFF)
        elif value == 0:
            return (out, True)
        else:
            out += bytes(value)
        offset += 9
    return (out, False)

def decompress_xor(data):
    '''Undo the XOR chain: each 32 byte block is XORed with the previous one'''
    for i in range(32, len(data)):
        data[i] ^= data[i - 32]
    return data

class ShearwaterDevice(Device):
    '''Shared transport for Shearwater computers'''

    # Serial Settings
    BAUDRATE = 115200
    TIMEOUT = 3000

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(ShearwaterDevice, self).__init__(context, iostream, model, owns_stream)

        iostream.configure(self.BAUDRATE)
        iostream.set_timeout(self.TIMEOUT)

        # Make sure everything is in a sane state.
        iostream.sleep(300)
        iostream.purge(Direction.ALL)

    def _slip_read(self):
        packet = bytearray()
        received = 0
        while True:
            c = self._iostream.read(1)[0]
            if c == END:
                # Empty packets are ignored
                if received:
                    break
                continue
            if c == ESC:
                c = self._iostream.read(1)[0]
                if c == ESC_END:
                    c = END
                elif c == ESC_ESC:
                    c = ESC
            if received < SZ_PACKET + 4:
                packet.append(c)
            received += 1

        if received > SZ_PACKET + 4:
            log.error('Response packet too large (%d bytes)', received)
            raise ProtocolError('Response packet too large')
        return bytes(packet)

    def transfer(self, data, osize):
        '''
        Send one request packet and return the response payload

        No response is read when osize is zero.
        '''
        if len(data) > SZ_PACKET or osize > SZ_PACKET:
            raise InvalidArgsError('Packet too large')
        self.check_cancel()

        packet = bytes((0xFF, 0x01, len(data) + 1, 0x00)) + bytes(data)
        self._iostream.write(slip_encode(packet))

        if osize == 0:
            return b''

        packet = self._slip_read()
        if len(packet) < 4 or packet[0] != 0x01 or packet[1] != 0xFF or packet[3] != 0x00:
            log.error('Invalid packet header')
            raise ProtocolError('Invalid packet header')

        length = packet[2]
        if length < 1 or length - 1 + 4 != len(packet) or length - 1 > osize:
            log.error('Invalid packet length')
            raise ProtocolError('Invalid packet length')

        return packet[4:]

    def download(self, address, size, compression=False, progress=None):
        '''Download size bytes of memory at address'''
        req_init = bytes((0x35, 0x10 if compression else 0x00, 0x34)) + \
            struct.pack('>L', address) + struct.pack('>L', size)[1:]

        response = self.transfer(req_init, 3)
        if len(response) != 3 or response[0] != 0x75 or response[1] != 0x10 or response[2] > SZ_PACKET:
            log.error('Unexpected init response: %s', response.hex())
            raise ProtocolError('Unexpected response packet')
        if progress is not None:
            progress.update(3)

        data = bytearray()
        done = False
        block = 1
        nbytes = 0
        while nbytes < size and not done:
            response = self.transfer(bytes((0x36, block & 0xFF)), SZ_PACKET)
            if len(response) < 2 or response[0] != 0x76 or response[1] != block & 0xFF:
                log.error('Unexpected block response for block %d', block)
                raise ProtocolError('Unexpected response packet')

            length = len(response) - 2
            if nbytes + length > size:
                log.error('Unexpected packet size')
                raise ProtocolError('Unexpected packet size')
            if progress is not None:
                progress.update(length)

            if compression:
                chunk, done = decompress_lre(response[2:])
                data += chunk
            else:
                data += response[2:]

            nbytes += length
            block += 1

        if compression:
            decompress_xor(data)

        response = self.transfer(b'\x37', 2)
        if len(response) != 2 or response[0] != 0x77 or response[1] != 0x00:
            log.error('Unexpected quit response: %s', response.hex())
            raise ProtocolError('Unexpected response packet')
        if progress is not None:
            progress.update(1)

        return data

    def identifier(self, id):
        '''Read an identifier record (serial number, firmware, hardware)'''
        request = bytes((0x22, (id >> 8) & 0xFF, id & 0xFF))
        response = self.transfer(request, SZ_PACKET)
        if len(response) < 3 or response[0] != 0x62 or response[1:3] != request[1:3]:
            log.error('Unexpected identifier response')
            raise ProtocolError('Unexpected response packet')
        return response[3:]
