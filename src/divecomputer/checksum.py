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
Checksum and bit manipulation helpers shared by the protocol drivers
'''

def add_uint8(data, init=0):
    '''8-bit additive checksum'''
    return (init + sum(bytearray(data))) & 0xFF

def add_uint16(data, init=0):
    '''16-bit additive checksum'''
    return (init + sum(bytearray(data))) & 0xFFFF

def xor_uint8(data, init=0):
    '''8-bit XOR checksum'''
    crc = init
    for b in bytearray(data):
        crc ^= b
    return crc & 0xFF

def _crc16_table():
    table = []
    for i in range(256):
        crc = i << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
        table.append(crc)
    return table

_CRC16_CCITT = _crc16_table()

def crc16_ccitt(data, init=0xFFFF, xorout=0x0000):
    '''CRC-16-CCITT (polynomial 0x1021, MSB first)'''
    crc = init
    for b in bytearray(data):
        crc = ((crc << 8) & 0xFFFF) ^ _CRC16_CCITT[((crc >> 8) ^ b) & 0xFF]
    return crc ^ xorout

def reverse_bits(value):
    '''Reverse the bit order of a single byte'''
    value = ((value & 0xF0) >> 4) | ((value & 0x0F) << 4)
    value = ((value & 0xCC) >> 2) | ((value & 0x33) << 2)
    value = ((value & 0xAA) >> 1) | ((value & 0x55) << 1)
    return value

def reverse_bytes(data):
    '''Reverse the bit order of every byte in a buffer'''
    return bytes(reverse_bits(b) for b in bytearray(data))
