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
Oceanic common download engine

Oceanic-style computers keep two ring buffers in their memory: a logbook
ring of fixed size entries, and a profile ring holding the samples.  Each
logbook entry points at the first and last page of its profile.  A page
at cf_pointers holds the first/last logbook entry pointers.

Download walks the logbook ring backwards (newest entry first) until it
reaches the stored fingerprint, an erased entry or an entry whose profile
no longer fits in the profile ring.  The profiles of the accepted entries
are then read backwards from the end of the newest one.  Each dive is
delivered as its logbook entry followed by its profile, and the logbook
entry doubles as the fingerprint.
'''

import collections
import logging
import struct

from divecomputer.common import DataFormatError
from divecomputer import ringbuffer
from divecomputer.device import Device
from divecomputer.rbstream import RingbufferStream, BACKWARD

log = logging.getLogger(__name__)

PAGESIZE = 0x10

Layout = collections.namedtuple('Layout', [
    'memsize',
    'highmem',
    'cf_devinfo',
    'cf_pointers',
    'rb_logbook_begin',
    'rb_logbook_end',
    'rb_logbook_entry_size',
    'rb_logbook_direction',
    'rb_profile_begin',
    'rb_profile_end',
    'pt_mode_global',       # 0: first/last entry pointers, 1: begin/end pair
    'pt_mode_logbook',      # encoding of the profile pointers in an entry
    'pt_mode_serial',       # 0: BCD serial number, 1: binary digits
])

# Version Pattern: (pattern, firmware, model, layout)
Version = collections.namedtuple('Version', 'pattern firmware model layout')

def match_version(version, patterns):
    '''
    Return the first Version whose pattern matches the version page

    A zero byte in a pattern matches any byte.  Returns None if nothing
    matches.
    '''
    version = bytes(version[:PAGESIZE])
    for candidate in patterns:
        pattern = candidate.pattern[:PAGESIZE]
        if all(p == 0 or p == v for p, v in zip(pattern, version)):
            return candidate
    return None

def _bcd2dec(value):
    return (value >> 4) * 10 + (value & 0x0F)

def _pointer_mask(layout):
    if layout.memsize > 0x20000:
        return 0x3FFF
    elif layout.memsize > 0x10000:
        return 0x1FFF
    return 0x0FFF

def get_profile_first(entry, layout):
    '''Address of the first profile page of a logbook entry'''
    mode = layout.pt_mode_logbook
    if mode == 0:
        value = struct.unpack_from('<H', entry, 5)[0]
    elif mode == 1:
        value = struct.unpack_from('<H', entry, 4)[0]
    elif mode == 3:
        value = struct.unpack_from('<H', entry, 16)[0]
    else:
        return struct.unpack_from('<H', entry, 16)[0]
    return (value & _pointer_mask(layout)) * PAGESIZE

def get_profile_last(entry, layout):
    '''Address of the last profile page of a logbook entry'''
    mode = layout.pt_mode_logbook
    if mode == 0:
        value = struct.unpack_from('<H', entry, 6)[0] >> 4
    elif mode == 1:
        value = struct.unpack_from('<H', entry, 6)[0]
    elif mode == 3:
        value = struct.unpack_from('<H', entry, 18)[0]
    else:
        return struct.unpack_from('<H', entry, 18)[0]
    return (value & _pointer_mask(layout)) * PAGESIZE

class OceanicDevice(Device):
    '''
    Base class for Oceanic-style devices

    Subclasses implement read() with page granularity, and set the layout,
    version and multipage attributes while opening the device.
    '''
    FINGERPRINT_SIZE = 8

    def __init__(self, context, iostream, model=0, owns_stream=False):
        super(OceanicDevice, self).__init__(context, iostream, model, owns_stream)
        self.version = bytes(PAGESIZE)
        self.layout = None
        self.multipage = 1

    def set_layout(self, layout):
        self.layout = layout
        self.FINGERPRINT_SIZE = layout.rb_logbook_entry_size

    def dump(self):
        self.emit_vendor(self.version)
        return self.dump_read(0, self.layout.memsize, PAGESIZE * self.multipage)

    def _logbook_incr(self, a, delta):
        layout = self.layout
        return ringbuffer.increment(a, delta, layout.rb_logbook_begin, layout.rb_logbook_end)

    def _logbook_distance(self, a, b):
        layout = self.layout
        return ringbuffer.distance(a, b, ringbuffer.EMPTY, layout.rb_logbook_begin, layout.rb_logbook_end)

    def _profile_incr(self, a, delta):
        layout = self.layout
        return ringbuffer.increment(a, delta, layout.rb_profile_begin, layout.rb_profile_end)

    def _profile_distance(self, a, b):
        layout = self.layout
        return ringbuffer.distance(a, b, ringbuffer.EMPTY, layout.rb_profile_begin, layout.rb_profile_end)

    def _profile_valid(self, address):
        return self.layout.rb_profile_begin <= address < self.layout.rb_profile_end

    def foreach(self, callback):
        layout = self.layout
        logbook_size = layout.rb_logbook_end - layout.rb_logbook_begin
        profile_size = layout.rb_profile_end - layout.rb_profile_begin

        progress = self.progress(2 * PAGESIZE + profile_size + logbook_size)
        if logbook_size == 0:
            progress.set_maximum(progress.maximum - PAGESIZE)
        progress.emit()

        self.emit_vendor(self.version)

        devid = self.read(layout.cf_devinfo, PAGESIZE)
        progress.update(PAGESIZE)

        model = struct.unpack_from('>H', devid, 8)[0]
        if layout.pt_mode_serial == 0:
            serial = _bcd2dec(devid[10]) * 10000 + _bcd2dec(devid[11]) * 100 + _bcd2dec(devid[12])
        else:
            serial = devid[11] * 10000 + devid[12] * 100 + devid[13]
        self.emit_devinfo(model, 0, serial)

        # Without a logbook ring there is nothing to download
        if logbook_size == 0:
            return

        entries, error = self._read_logbook(progress)
        if entries:
            self._read_profiles(entries, progress, callback)

        if error is not None:
            raise error

    def _read_logbook(self, progress):
        '''
        Return the new logbook entries (newest first)

        An invalid profile pointer ends the walk.  The error is returned
        with the entries before it so those can still be downloaded.
        '''
        layout = self.layout
        entry_size = layout.rb_logbook_entry_size

        pointers = self.read(layout.cf_pointers, PAGESIZE)
        first, last = struct.unpack_from('<HH', pointers, 4)
        for pointer in (first, last):
            if pointer < layout.rb_logbook_begin or pointer >= layout.rb_logbook_end:
                log.error('Invalid logbook pointer (0x%04x)', pointer)
                raise DataFormatError('Invalid logbook ringbuffer pointer')

        if layout.pt_mode_global == 0:
            end = self._logbook_incr(last, entry_size)
            size = self._logbook_distance(first, last) + entry_size
        else:
            end = last
            size = self._logbook_distance(first, last)
            # Equal begin/end pointers are ambiguous; treat the ring as full
            # and let the erased entries mark an empty one.
            if first == last:
                size = layout.rb_logbook_end - layout.rb_logbook_begin

        progress.update(PAGESIZE)
        progress.set_maximum(2 * PAGESIZE + (layout.rb_profile_end - layout.rb_profile_begin) + size)

        rbstream = RingbufferStream(self, PAGESIZE, PAGESIZE * self.multipage,
            layout.rb_logbook_begin, layout.rb_logbook_end, end, BACKWARD)

        entries = []
        error = None
        remaining = layout.rb_profile_end - layout.rb_profile_begin
        previous = None
        for _ in range(size // entry_size):
            entry = bytes(rbstream.read(entry_size, progress))

            if entry == b'\xff' * entry_size:
                log.warning('Uninitialized logbook entries detected')
                break

            rb_first = get_profile_first(entry, layout)
            rb_last = get_profile_last(entry, layout)
            if not self._profile_valid(rb_first) or not self._profile_valid(rb_last):
                log.error('Invalid profile pointers (0x%04x, 0x%04x)', rb_first, rb_last)
                error = DataFormatError('Invalid profile ringbuffer pointer')
                break

            rb_end = self._profile_incr(rb_last, PAGESIZE)
            rb_size = self._profile_distance(rb_first, rb_last) + PAGESIZE

            gap = 0
            if previous is not None and rb_end != previous:
                log.warning('Profiles are not continuous')
                gap = self._profile_distance(rb_end, previous)

            if rb_size + gap > remaining:
                log.warning('Unexpected profile size')
                break

            remaining -= rb_size + gap
            previous = rb_first

            if self.matches_fingerprint(entry):
                break

            entries.append(entry)

        return entries, error

    def _read_profiles(self, entries, progress, callback):
        layout = self.layout

        rb_first = get_profile_first(entries[-1], layout)
        rb_last = get_profile_last(entries[0], layout)
        rb_end = self._profile_incr(rb_last, PAGESIZE)
        progress.set_maximum(progress.current + self._profile_distance(rb_first, rb_last) + PAGESIZE)

        rbstream = RingbufferStream(self, PAGESIZE, PAGESIZE * self.multipage,
            layout.rb_profile_begin, layout.rb_profile_end, rb_end, BACKWARD)

        previous = rb_end
        for entry in entries:
            rb_first = get_profile_first(entry, layout)
            rb_last = get_profile_last(entry, layout)
            rb_size = self._profile_distance(rb_first, rb_last) + PAGESIZE
            rb_entry_end = self._profile_incr(rb_last, PAGESIZE)

            gap = 0
            if rb_entry_end != previous:
                log.warning('Profiles are not continuous')
                gap = self._profile_distance(rb_entry_end, previous)

            data = rbstream.read(rb_size + gap, progress)
            previous = rb_first

            dive = entry + bytes(data[:rb_size])
            if not self.deliver(callback, dive, entry):
                return
