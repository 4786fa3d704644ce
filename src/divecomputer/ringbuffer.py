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
Ring buffer arithmetic

Helpers for positions inside a circular memory region [begin, end).  All
functions validate their arguments and raise InvalidArgsError when a position
lies outside the region or the region is empty.
'''

from divecomputer.common import InvalidArgsError

# Meaning of distance(a, b) when a == b
EMPTY = 0
FULL = 1

def _check(a, begin, end):
    if end <= begin:
        raise InvalidArgsError('Invalid ringbuffer [0x%04x, 0x%04x)' % (begin, end))
    if a < begin or a >= end:
        raise InvalidArgsError('Position 0x%04x outside ringbuffer [0x%04x, 0x%04x)' % (a, begin, end))

def normalize(a, begin, end):
    '''Fold an arbitrary address into [begin, end)'''
    if end <= begin:
        raise InvalidArgsError('Invalid ringbuffer [0x%04x, 0x%04x)' % (begin, end))
    return (a - begin) % (end - begin) + begin

def distance(a, b, mode, begin, end):
    '''
    Forward distance from a to b

    When a == b the result is 0 for EMPTY and the full ring size for FULL.
    '''
    _check(a, begin, end)
    _check(b, begin, end)
    if a < b:
        return b - a
    elif a > b:
        return (end - a) + (b - begin)
    return (end - begin) if mode == FULL else 0

def increment(a, delta, begin, end):
    _check(a, begin, end)
    return (a - begin + delta) % (end - begin) + begin

def decrement(a, delta, begin, end):
    _check(a, begin, end)
    return (a - begin - delta) % (end - begin) + begin
