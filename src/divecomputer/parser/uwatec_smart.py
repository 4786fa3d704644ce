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
Uwatec Smart parser library

Implements the parser for the Uwatec Smart line of dive computers, including
the Smart Pro, Smart Com, Smart Tec, Smart Z, Aladin Tec, Aladin Tec 2G and
the Galileo family (Galileo Sol/Luna/Terra/Trimix, Aladin 2G, Meridian,
Chromis, Mantis 2, Aladin Square, G2, G2 HUD, Aladin Sport Matrix and Aladin
A1/A2).  Each device uses a slightly different header and profile format, so
the parser must be created with the model number reported by the driver.

The profile is a bitstream of variable length samples.  Each sample starts
with a type identifier (DTI) followed by the data bits; the table for the
model tells how many bits the identifier takes, whether the value is
absolute or a signed delta, and how many whole bytes of data follow.
'''

import datetime
import logging
import struct

from divecomputer import BaseAdapter
from divecomputer.common import Family, InvalidArgsError, NoMemoryError, \
    UnsupportedError
from divecomputer.parser import Parser, ParseError, SampleType, SampleEvent, \
    FieldType, DiveMode, WaterType, Pressure, EventValue, Gasmix, Tank, \
    Salinity, BAR, FRESH, SALT

log = logging.getLogger(__name__)

# Model Numbers
SMARTPRO = 0x10
GALILEO = 0x11
ALADINTEC = 0x12
ALADINTEC2G = 0x13
SMARTCOM = 0x14
ALADIN2G = 0x15
ALADINSPORTMATRIX = 0x17
SMARTTEC = 0x18
GALILEOTRIMIX = 0x19
SMARTZ = 0x1C
MERIDIAN = 0x20
ALADINSQUARE = 0x22
CHROMIS = 0x24
ALADINA1 = 0x25
MANTIS2 = 0x26
ALADINA2 = 0x28
G2 = 0x32
G2HUD = 0x42

# Models using the Galileo type identifier scheme and header layout
GALILEO_MODELS = (GALILEO, GALILEOTRIMIX, ALADIN2G, MERIDIAN, CHROMIS,
    MANTIS2, G2, ALADINSPORTMATRIX, ALADINSQUARE, G2HUD, ALADINA1, ALADINA2)

NGASMIXES = 10

# Settings bits
FREEDIVE = 0x00000080
GAUGE = 0x00001000
SALINITY = 0x00100000

# 2000-01-01 00:00:00 UTC
EPOCH = 946684800

#-----------------------------------------------------------------------------
# Header layouts (byte offsets, None if the model does not record the field)

SMART_PRO_HEADER = {
    'maxdepth':         18,     # offset 0x12 - 0x13
    'divetime':         20,     # offset 0x14 - 0x15
    'gasmix':           24,     # offset 0x18 - 0x19
    'ngases':           1,
    'temp_minimum':     22,     # offset 0x16 - 0x17
    'temp_maximum':     None,
    'temp_surface':     None,
    'tankpressure':     None,
    'timezone':         None,
    'settings':         None,
}

GALILEO_HEADER = {
    'maxdepth':         22,     # offset 0x16 - 0x17
    'divetime':         26,     # offset 0x1a - 0x1b
    'gasmix':           44,     # offset 0x2c - 0x31
    'ngases':           3,
    'temp_minimum':     30,     # offset 0x1e - 0x1f
    'temp_maximum':     28,     # offset 0x1c - 0x1d
    'temp_surface':     32,     # offset 0x20 - 0x21
    'tankpressure':     50,     # offset 0x32 - 0x3d
    'timezone':         16,     # offset 0x10
    'settings':         92,     # offset 0x5c - 0x5f
}

TRIMIX_HEADER = {
    'maxdepth':         22,     # offset 0x16 - 0x17
    'divetime':         26,     # offset 0x1a - 0x1b
    'gasmix':           None,
    'ngases':           0,
    'temp_minimum':     30,     # offset 0x1e - 0x1f
    'temp_maximum':     28,     # offset 0x1c - 0x1d
    'temp_surface':     32,     # offset 0x20 - 0x21
    'tankpressure':     None,
    'timezone':         16,     # offset 0x10
    'settings':         68,     # offset 0x44 - 0x47
}

ALADIN_TEC_HEADER = {
    'maxdepth':         22,     # offset 0x16 - 0x17
    'divetime':         24,     # offset 0x18 - 0x19
    'gasmix':           30,     # offset 0x1e - 0x1f
    'ngases':           1,
    'temp_minimum':     26,     # offset 0x1a - 0x1b
    'temp_maximum':     28,     # offset 0x1c - 0x1d
    'temp_surface':     32,     # offset 0x20 - 0x21
    'tankpressure':     None,
    'timezone':         16,     # offset 0x10
    'settings':         52,     # offset 0x34 - 0x37
}

ALADIN_TEC2G_HEADER = {
    'maxdepth':         22,     # offset 0x16 - 0x17
    'divetime':         26,     # offset 0x1a - 0x1b
    'gasmix':           34,     # offset 0x22 - 0x24
    'ngases':           3,
    'temp_minimum':     30,     # offset 0x1e - 0x1f
    'temp_maximum':     28,     # offset 0x1c - 0x1d
    'temp_surface':     32,     # offset 0x20 - 0x21
    'tankpressure':     None,
    'timezone':         16,     # offset 0x10
    'settings':         60,     # offset 0x3c - 0x3f
}

SMART_COM_HEADER = {
    'maxdepth':         18,     # offset 0x12 - 0x13
    'divetime':         20,     # offset 0x14 - 0x15
    'gasmix':           24,     # offset 0x18 - 0x19
    'ngases':           1,
    'temp_minimum':     22,     # offset 0x16 - 0x17
    'temp_maximum':     None,
    'temp_surface':     None,
    'tankpressure':     30,     # offset 0x1e - 0x21
    'timezone':         None,
    'settings':         None,
}

SMART_TEC_HEADER = {
    'maxdepth':         18,     # offset 0x12 - 0x13
    'divetime':         20,     # offset 0x14 - 0x15
    'gasmix':           28,     # offset 0x1c - 0x21
    'ngases':           3,
    'temp_minimum':     22,     # offset 0x16 - 0x17
    'temp_maximum':     None,
    'temp_surface':     None,
    'tankpressure':     34,     # offset 0x22 - 0x2d
    'timezone':         None,
    'settings':         None,
}

#-----------------------------------------------------------------------------
# Data Type Identifier tables

def _dti(name, abs, idx, bits, ignore_type_bits, extra):
    return {'name': name, 'abs': abs, 'idx': idx, 'bits': bits,
            'ignore_type_bits': ignore_type_bits, 'extra': extra}

SMART_PRO_DTI = [
    _dti('depth',          False, 0, 1, False, 0),    # 0ddd dddd
    _dti('temp',           False, 0, 2, False, 0),    # 10dd dddd
    _dti('time',           True,  0, 3, False, 0),    # 110d dddd
    _dti('alarms',         True,  0, 4, False, 0),    # 1110 dddd
    _dti('depth',          False, 0, 5, False, 1),    # 1111 0ddd dddd dddd
    _dti('temp',           False, 0, 6, False, 1),    # 1111 10dd dddd dddd
    _dti('depth',          True,  0, 7, True,  2),    # 1111 110d dddd dddd dddd dddd
    _dti('temp',           True,  0, 8, False, 2),    # 1111 1110 dddd dddd dddd dddd
]

GALILEO_DTI = [
    _dti('depth',          False, 0, 1, False, 0),    # 0ddd dddd
    _dti('rbt',            False, 0, 3, False, 0),    # 100d dddd
    _dti('pressure',       False, 0, 4, False, 0),    # 1010 dddd
    _dti('temp',           False, 0, 4, False, 0),    # 1011 dddd
    _dti('time',           True,  0, 4, False, 0),    # 1100 dddd
    _dti('heartrate',      False, 0, 4, False, 0),    # 1101 dddd
    _dti('alarms',         True,  0, 4, False, 0),    # 1110 dddd
    _dti('alarms',         True,  1, 8, False, 1),    # 1111 0000 dddd dddd
    _dti('depth',          True,  0, 8, False, 2),    # 1111 0001 dddd dddd dddd dddd
    _dti('rbt',            True,  0, 8, False, 1),    # 1111 0010 dddd dddd
    _dti('temp',           True,  0, 8, False, 2),    # 1111 0011 dddd dddd dddd dddd
    _dti('pressure',       True,  0, 8, False, 2),    # 1111 0100 dddd dddd dddd dddd
    _dti('pressure',       True,  1, 8, False, 2),    # 1111 0101 dddd dddd dddd dddd
    _dti('pressure',       True,  2, 8, False, 2),    # 1111 0110 dddd dddd dddd dddd
    _dti('heartrate',      True,  0, 8, False, 1),    # 1111 0111 dddd dddd
    _dti('bearing',        True,  0, 8, False, 2),    # 1111 1000 dddd dddd dddd dddd
    _dti('alarms',         True,  2, 8, False, 1),    # 1111 1001 dddd dddd
    _dti('apnea',          True,  0, 8, False, 0),    # 1111 1010 (8 bytes)
    _dti('misc',           True,  0, 8, False, 1),    # 1111 1011 dddd dddd (n-1 bytes)
]

ALADIN_DTI = [
    _dti('depth',          False, 0, 1, False, 0),    # 0ddd dddd
    _dti('temp',           False, 0, 2, False, 0),    # 10dd dddd
    _dti('time',           True,  0, 3, False, 0),    # 110d dddd
    _dti('alarms',         True,  0, 4, False, 0),    # 1110 dddd
    _dti('depth',          False, 0, 5, False, 1),    # 1111 0ddd dddd dddd
    _dti('temp',           False, 0, 6, False, 1),    # 1111 10dd dddd dddd
    _dti('depth',          True,  0, 7, True,  2),    # 1111 110d dddd dddd dddd dddd
    _dti('temp',           True,  0, 8, False, 2),    # 1111 1110 dddd dddd dddd dddd
    _dti('alarms',         True,  1, 9, False, 0),    # 1111 1111 0ddd dddd
]

SMART_COM_DTI = [
    _dti('pressure_depth', False, 0,  1, False, 1),   # 0ddd dddd dddd dddd
    _dti('rbt',            False, 0,  2, False, 0),   # 10dd dddd
    _dti('temp',           False, 0,  3, False, 0),   # 110d dddd
    _dti('pressure',       False, 0,  4, False, 1),   # 1110 dddd dddd dddd
    _dti('depth',          False, 0,  5, False, 1),   # 1111 0ddd dddd dddd
    _dti('temp',           False, 0,  6, False, 1),   # 1111 10dd dddd dddd
    _dti('alarms',         True,  0,  7, True,  1),   # 1111 110d dddd dddd
    _dti('time',           True,  0,  8, False, 1),   # 1111 1110 dddd dddd
    _dti('depth',          True,  0,  9, True,  2),   # 1111 1111 0ddd dddd dddd dddd dddd dddd
    _dti('pressure',       True,  0, 10, True,  2),   # 1111 1111 10dd dddd dddd dddd dddd dddd
    _dti('temp',           True,  0, 11, True,  2),   # 1111 1111 110d dddd dddd dddd dddd dddd
    _dti('rbt',            True,  0, 12, True,  1),   # 1111 1111 1110 dddd dddd dddd
]

SMART_TEC_DTI = [
    _dti('pressure_depth', False, 0,  1, False, 1),   # 0ddd dddd dddd dddd
    _dti('rbt',            False, 0,  2, False, 0),   # 10dd dddd
    _dti('temp',           False, 0,  3, False, 0),   # 110d dddd
    _dti('pressure',       False, 0,  4, False, 1),   # 1110 dddd dddd dddd
    _dti('depth',          False, 0,  5, False, 1),   # 1111 0ddd dddd dddd
    _dti('temp',           False, 0,  6, False, 1),   # 1111 10dd dddd dddd
    _dti('alarms',         True,  0,  7, True,  1),   # 1111 110d dddd dddd
    _dti('time',           True,  0,  8, False, 1),   # 1111 1110 dddd dddd
    _dti('depth',          True,  0,  9, True,  2),   # 1111 1111 0ddd dddd dddd dddd dddd dddd
    _dti('temp',           True,  0, 10, True,  2),   # 1111 1111 10dd dddd dddd dddd dddd dddd
    _dti('pressure',       True,  0, 11, True,  2),   # 1111 1111 110d dddd dddd dddd dddd dddd
    _dti('pressure',       True,  1, 12, True,  2),   # 1111 1111 1110 dddd dddd dddd dddd dddd
    _dti('pressure',       True,  2, 13, True,  2),   # 1111 1111 1111 0ddd dddd dddd dddd dddd
    _dti('rbt',            True,  0, 14, True,  1),   # 1111 1111 1111 10dd dddd dddd
]

#-----------------------------------------------------------------------------
# Alarm byte decoding tables (one list per alarm byte index)

def _ev(name, mask, shift):
    return {'name': name, 'mask': mask, 'shift': shift}

SMART_TEC_EVENTS_0 = [
    _ev('warning',          0x01, 0),
    _ev('alarm',            0x02, 1),
    _ev('workload_warning', 0x04, 2),
    _ev('workload',         0x38, 3),
    _ev('unknown',          0xC0, 6),
]

ALADIN_TEC_EVENTS_0 = [
    _ev('warning',          0x01, 0),
    _ev('alarm',            0x02, 1),
    _ev('bookmark',         0x04, 2),
    _ev('unknown',          0x08, 3),
]

ALADIN_TEC_EVENTS_1 = [
    _ev('unknown',          0xFF, 0),
]

ALADIN_TEC2G_EVENTS_0 = ALADIN_TEC_EVENTS_0

ALADIN_TEC2G_EVENTS_1 = [
    _ev('unknown',          0x07, 0),
    _ev('gasmix',           0x18, 3),
]

GALILEO_EVENTS_0 = [
    _ev('warning',          0x01, 0),
    _ev('alarm',            0x02, 1),
    _ev('workload_warning', 0x04, 2),
    _ev('bookmark',         0x08, 3),
]

GALILEO_EVENTS_1 = [
    _ev('workload',         0x07, 0),
    _ev('unknown',          0x18, 3),
    _ev('gasmix',           0x60, 5),
    _ev('unknown',          0x80, 7),
]

GALILEO_EVENTS_2 = [
    _ev('unknown',          0xFF, 0),
]

TRIMIX_EVENTS_2 = [
    _ev('unknown',          0x0F, 0),
    _ev('gasmix',           0xF0, 4),
]

#-----------------------------------------------------------------------------
# Model layouts: (header size, header table, DTI table, alarm tables, trimix)

_LAYOUTS = {}

def _layout(models, headersize, header, dti, events, trimix=False):
    for model in models:
        _LAYOUTS[model] = {
            'headersize': headersize,
            'header': header,
            'dti': dti,
            'events': events,
            'trimix': trimix,
        }

_layout((SMARTPRO,), 92, SMART_PRO_HEADER, SMART_PRO_DTI,
    [SMART_TEC_EVENTS_0])
_layout((GALILEO, GALILEOTRIMIX, ALADIN2G, MERIDIAN, CHROMIS, MANTIS2, ALADINSQUARE),
    152, GALILEO_HEADER, GALILEO_DTI,
    [GALILEO_EVENTS_0, GALILEO_EVENTS_1, GALILEO_EVENTS_2])
_layout((G2, G2HUD, ALADINSPORTMATRIX, ALADINA1, ALADINA2),
    84, TRIMIX_HEADER, GALILEO_DTI,
    [GALILEO_EVENTS_0, GALILEO_EVENTS_1, TRIMIX_EVENTS_2], trimix=True)
_layout((ALADINTEC,), 108, ALADIN_TEC_HEADER, ALADIN_DTI,
    [ALADIN_TEC_EVENTS_0, ALADIN_TEC_EVENTS_1])
_layout((ALADINTEC2G,), 116, ALADIN_TEC2G_HEADER, ALADIN_DTI,
    [ALADIN_TEC2G_EVENTS_0, ALADIN_TEC2G_EVENTS_1])
_layout((SMARTCOM,), 100, SMART_COM_HEADER, SMART_COM_DTI,
    [SMART_TEC_EVENTS_0])
_layout((SMARTTEC, SMARTZ), 132, SMART_TEC_HEADER, SMART_TEC_DTI,
    [SMART_TEC_EVENTS_0])

#-----------------------------------------------------------------------------
# Bitstream primitives

def smart_identify(data, offset):
    '''Return the number of leading '1' bits at offset (-1 if no '0' bit follows)'''
    nbits = 0
    for i in range(offset, len(data)):
        byte = data[i]
        for j in range(8):
            mask = 1 << (7 - j)
            if byte & mask == 0:
                return nbits
            nbits += 1
    return -1

def galileo_identify(value):
    '''Return the DTI index encoded in a Galileo type byte'''
    # Bits: 0ddd dddd
    if value & 0x80 == 0:
        return 0
    # Bits: 100d dddd
    if value & 0xE0 == 0x80:
        return 1
    # Bits: 1XXX dddd
    if value & 0xF0 != 0xF0:
        return (value & 0x70) >> 4
    # Bits: 1111 XXXX
    return (value & 0x0F) + 7

def fix_signbit(value, nbits):
    '''Interpret the low nbits of value as a two's complement number'''
    if nbits <= 0 or nbits > 32:
        return 0
    signbit = 1 << (nbits - 1)
    mask = signbit - 1
    if value & signbit:
        return (value & mask) - signbit
    return value & mask

def _signed8(value):
    value &= 0xFF
    return value - 0x100 if value & 0x80 else value

class SampleCursor(object):
    '''
    Read position in the sample bitstream

    Type identifiers always start on a byte boundary; the data bits that
    share the last identifier byte are consumed together with it.
    '''
    def __init__(self, data, offset):
        self.data = data
        self.offset = offset

    def at_end(self):
        return self.offset >= len(self.data)

    def read_opcode(self, galileo, table):
        if galileo:
            idx = galileo_identify(self.data[self.offset])
        else:
            idx = smart_identify(self.data, self.offset)
        if idx < 0 or idx >= len(table):
            raise ParseError('Invalid type bits')
        return table[idx]

    def read_payload(self, dti):
        '''Consume the identifier and data bits; returns (value, nbits)'''
        self.offset += dti['bits'] // 8

        nbits = 0
        value = 0
        n = dti['bits'] % 8
        if n > 0:
            nbits = 8 - n
            value = self.data[self.offset] & (0xFF >> n)
            if dti['ignore_type_bits']:
                nbits = 0
                value = 0
            self.offset += 1

        if self.offset + dti['extra'] > len(self.data):
            raise ParseError('Incomplete sample data')

        for _ in range(dti['extra']):
            nbits += 8
            value = (value << 8) + self.data[self.offset]
            self.offset += 1

        return (value, nbits)

    def skip(self, nbytes):
        if self.offset + nbytes > len(self.data):
            raise ParseError('Incomplete sample data')
        self.offset += nbytes

#-----------------------------------------------------------------------------
# Parser

class SmartAdapter(BaseAdapter):
    '''Adapter for Uwatec Smart parser results'''
    VENDOR = 'Uwatec'

    def vendor(self):
        result = {}
        for key, field in (('mode', FieldType.DIVEMODE), ('salinity', FieldType.SALINITY)):
            try:
                value = self._parser.get_field(field)
            except UnsupportedError:
                continue
            result[key] = value.type.name.lower() if key == 'salinity' else value.name.lower()
        return result

class SmartParser(Parser):
    '''
    Uwatec Smart/Galileo dive parser

    The header cache (gas mixes, tanks, dive mode and water type) is built on
    first use.  Inline gas mix records in the profile of Galileo models can
    add further mixes and tanks, so get_field() decodes the profile once
    before answering.
    '''
    # Magic Attributes for the register_parser method
    NAME = 'uwatec_smart'
    DESCRIPTION = 'Uwatec Smart/Galileo parser'
    FAMILY = Family.UWATEC_SMART
    ADAPTER = SmartAdapter

    def __init__(self, context, data, model=0, devtime=0, systime=0):
        super(SmartParser, self).__init__(context, data, model, devtime, systime)
        if model not in _LAYOUTS:
            raise InvalidArgsError('Unknown Uwatec Smart model 0x%02x' % model)
        self._galileo = model in GALILEO_MODELS
        self._reset()

    def _reset(self):
        layout = _LAYOUTS[self._model]
        self._headersize = layout['headersize']
        self._header = layout['header']
        self._dti = layout['dti']
        self._events = list(layout['events'])
        self._trimix = layout['trimix']

        self._cached = 0
        self._gasmixes = []
        self._tanks = []
        self._divemode = DiveMode.OC
        self._watertype = WaterType.FRESH

    def set_data(self, data):
        super(SmartParser, self).set_data(data)
        self._reset()

    #-------------------------------------------------------------------------
    # Header Decoding

    def read_uint(self, offset):
        '''Read an unsigned 16-bit value from the data'''
        return struct.unpack_from('<H', self._data, offset)[0]

    def read_sint(self, offset):
        '''Read a signed 16-bit value from the data'''
        return struct.unpack_from('<h', self._data, offset)[0]

    def read_ulong(self, offset):
        '''Read an unsigned 32-bit value from the data'''
        return struct.unpack_from('<L', self._data, offset)[0]

    def _find_gasmix(self, mixid):
        for i, mix in enumerate(self._gasmixes):
            if mix['id'] == mixid:
                return i
        return len(self._gasmixes)

    def _find_tank(self, tankid):
        for i, tank in enumerate(self._tanks):
            if tank['id'] == tankid:
                return i
        return len(self._tanks)

    def _cache_header(self):
        if self._cached:
            return
        data = self._data

        if self._model in (GALILEO, GALILEOTRIMIX):
            if len(data) < 44:
                raise ParseError('Dive data too short (%d bytes)' % len(data))
            if data[43] & 0x80:
                self._trimix = True
                self._headersize = 84
                self._header = TRIMIX_HEADER
                self._events[2] = TRIMIX_EVENTS_2
            else:
                self._trimix = False
                self._headersize = 152
                self._header = GALILEO_HEADER
                self._events[2] = GALILEO_EVENTS_2

        if len(data) < self._headersize:
            raise ParseError('Dive data must be at least %d bytes' % self._headersize)

        header = self._header

        divemode = DiveMode.OC
        watertype = WaterType.FRESH
        if header['settings'] is not None:
            settings = self.read_ulong(header['settings'])

            # Freedives have both the freedive and the gauge bit set
            freedive = False
            gauge = settings & GAUGE != 0
            if self._model not in (ALADINTEC, ALADINTEC2G):
                freedive = settings & FREEDIVE != 0

            if freedive:
                divemode = DiveMode.FREEDIVE
            elif gauge:
                divemode = DiveMode.GAUGE

            if settings & SALINITY:
                watertype = WaterType.SALT

        gasmixes = []
        tanks = []
        if header['gasmix'] is not None:
            for i in range(header['ngases']):
                idx = None
                if self._model == ALADINTEC2G:
                    o2 = data[header['gasmix'] + i]
                else:
                    o2 = self.read_uint(header['gasmix'] + i * 2)

                if o2 != 0:
                    idx = len(gasmixes)
                    gasmixes.append({'id': i, 'oxygen': o2, 'helium': 0})

                beginpressure = 0
                endpressure = 0
                if header['tankpressure'] is not None and divemode != DiveMode.FREEDIVE:
                    if self._galileo:
                        offset = header['tankpressure'] + 2 * i
                        endpressure = self.read_uint(offset)
                        beginpressure = self.read_uint(offset + 2 * header['ngases'])
                    else:
                        offset = header['tankpressure'] + 4 * i
                        beginpressure = self.read_uint(offset)
                        endpressure = self.read_uint(offset + 2)

                if (beginpressure != 0 or endpressure != 0) and \
                        beginpressure != 0xFFFF and endpressure != 0xFFFF:
                    tanks.append({'id': i, 'beginpressure': beginpressure,
                                  'endpressure': endpressure, 'gasmix': idx})

        self._gasmixes = gasmixes
        self._tanks = tanks
        self._divemode = divemode
        self._watertype = watertype
        self._cached = 1

    def _cache_profile(self):
        self._cache_header()
        if self._cached < 2:
            self._parse(None)

    @property
    def density(self):
        return SALT if self._watertype == WaterType.SALT else FRESH

    #-------------------------------------------------------------------------
    # Public Interface

    def get_datetime(self):
        '''
        Return the dive start time

        Models that record their UTC offset yield an aware datetime in that
        offset; the others are interpreted in the host's local time zone.
        '''
        self._cache_header()
        ticks = EPOCH + self.read_ulong(8) // 2

        if self._header['timezone'] is not None:
            utc_offset = struct.unpack_from('<b', self._data, self._header['timezone'])[0] * 900
            tz = datetime.timezone(datetime.timedelta(seconds=utc_offset))
            return datetime.datetime.fromtimestamp(ticks, datetime.timezone.utc).astimezone(tz)

        return datetime.datetime.fromtimestamp(ticks)

    def get_field(self, field, index=0):
        self._cache_profile()
        header = self._header
        density = self.density

        if field == FieldType.DIVETIME:
            return self.read_uint(header['divetime']) * 60
        elif field == FieldType.MAXDEPTH:
            return self.read_uint(header['maxdepth']) * (BAR / 1000.0) / (density * 10.0)
        elif field == FieldType.GASMIX_COUNT:
            return len(self._gasmixes)
        elif field == FieldType.GASMIX:
            if index >= len(self._gasmixes):
                raise InvalidArgsError('Invalid gas mix index %d' % index)
            mix = self._gasmixes[index]
            oxygen = mix['oxygen'] / 100.0
            helium = mix['helium'] / 100.0
            return Gasmix(oxygen, helium, 1.0 - oxygen - helium)
        elif field == FieldType.TANK_COUNT:
            return len(self._tanks)
        elif field == FieldType.TANK:
            if index >= len(self._tanks):
                raise InvalidArgsError('Invalid tank index %d' % index)
            tank = self._tanks[index]
            return Tank(tank['gasmix'], 0.0, 0.0,
                tank['beginpressure'] / 128.0, tank['endpressure'] / 128.0)
        elif field == FieldType.TEMPERATURE_MINIMUM:
            return self.read_sint(header['temp_minimum']) / 10.0
        elif field == FieldType.TEMPERATURE_MAXIMUM:
            if header['temp_maximum'] is None:
                raise UnsupportedError('Maximum temperature not recorded')
            return self.read_sint(header['temp_maximum']) / 10.0
        elif field == FieldType.TEMPERATURE_SURFACE:
            if header['temp_surface'] is None:
                raise UnsupportedError('Surface temperature not recorded')
            return self.read_sint(header['temp_surface']) / 10.0
        elif field == FieldType.DIVEMODE:
            if header['settings'] is None:
                raise UnsupportedError('Dive mode not recorded')
            return self._divemode
        elif field == FieldType.SALINITY:
            if header['settings'] is None:
                raise UnsupportedError('Salinity not recorded')
            return Salinity(self._watertype, density)

        return super(SmartParser, self).get_field(field, index)

    def samples_foreach(self, callback):
        self._cache_profile()
        self._parse(callback)

    #-------------------------------------------------------------------------
    # Profile Decoding

    def _parse(self, callback):
        def emit(kind, value):
            if callback is not None:
                callback(kind, value)

        data = self._data
        table = self._dti
        density = self.density
        interval = 1 if self._divemode == DiveMode.FREEDIVE else 4

        complete = 0
        calibrated = False

        time = 0
        rbt = 99
        tank = 0
        gasmix = 0
        depth = 0
        depth_calibration = 0
        temperature = 0
        pressure = 0
        heartrate = 0
        bearing = 0
        bookmark = 0

        # Impossible value, so that the first mix is always reported
        gasmix_previous = None

        have_depth = have_temperature = have_pressure = have_rbt = False
        have_heartrate = have_bearing = False

        cursor = SampleCursor(data, self._headersize)
        while not cursor.at_end():
            dti = cursor.read_opcode(self._galileo, table)
            value, nbits = cursor.read_payload(dti)
            svalue = fix_signbit(value, nbits)

            name = dti['name']
            if name == 'pressure_depth':
                pressure += _signed8(svalue >> 8)
                depth += _signed8(svalue)
                complete = 1

            elif name == 'rbt':
                if dti['abs']:
                    rbt = value
                    have_rbt = True
                else:
                    rbt += svalue

            elif name == 'temp':
                if dti['abs']:
                    temperature = svalue
                    have_temperature = True
                else:
                    temperature += svalue

            elif name == 'pressure':
                if dti['abs']:
                    if self._trimix:
                        tank = (value & 0xF000) >> 12
                        pressure = value & 0x0FFF
                    else:
                        tank = dti['idx']
                        pressure = value
                    have_pressure = True
                    gasmix = tank
                else:
                    pressure += svalue

            elif name == 'depth':
                if dti['abs']:
                    depth = value
                    if not calibrated:
                        calibrated = True
                        depth_calibration = depth
                    have_depth = True
                else:
                    depth += svalue
                complete = 1

            elif name == 'heartrate':
                if dti['abs']:
                    heartrate = value
                    have_heartrate = True
                else:
                    heartrate += svalue

            elif name == 'bearing':
                bearing = value
                have_bearing = True

            elif name == 'alarms':
                idx = dti['idx']
                if idx >= len(self._events) or self._events[idx] is None:
                    raise ParseError('Unexpected event index %d' % idx)
                for ev in self._events[idx]:
                    ev_value = (value & ev['mask']) >> ev['shift']
                    if ev['name'] == 'bookmark':
                        bookmark = ev_value
                    elif ev['name'] == 'gasmix':
                        gasmix = ev_value

            elif name == 'time':
                complete = value

            elif name == 'apnea':
                # Payload layout unknown; skipped without emitting samples
                cursor.skip(8)

            elif name == 'misc':
                self._parse_misc(cursor, value)

            else:
                log.warning('Unknown sample type: %s', name)

            while complete > 0:
                emit(SampleType.TIME, time)

                if self._gasmixes and gasmix != gasmix_previous:
                    idx = self._find_gasmix(gasmix)
                    if idx >= len(self._gasmixes):
                        raise ParseError('Invalid gas mix index %d' % gasmix)
                    emit(SampleType.GASMIX, idx)
                    gasmix_previous = gasmix

                if have_temperature:
                    emit(SampleType.TEMPERATURE, temperature / 2.5)

                if bookmark:
                    emit(SampleType.EVENT, EventValue(SampleEvent.BOOKMARK, 0, 0, 0))

                if have_rbt or have_pressure:
                    emit(SampleType.RBT, rbt)

                if have_pressure:
                    idx = self._find_tank(tank)
                    if idx < len(self._tanks):
                        emit(SampleType.PRESSURE, Pressure(idx, pressure / 4.0))

                if have_heartrate:
                    emit(SampleType.HEARTBEAT, heartrate)

                if have_bearing:
                    emit(SampleType.BEARING, bearing)
                    have_bearing = False

                if have_depth:
                    emit(SampleType.DEPTH, (depth - depth_calibration) * (2.0 * BAR / 1000.0) / (density * 10.0))

                time += interval
                complete -= 1

        self._cached = 2

    def _parse_misc(self, cursor, length):
        '''Variable length record; sub-types 32..41 carry a gas mix and tank'''
        data = self._data
        offset = cursor.offset
        if length < 1 or offset + length - 1 > len(data):
            raise ParseError('Incomplete sample data')

        subtype = data[offset]
        if 32 <= subtype <= 41:
            if length < 16:
                raise ParseError('Incomplete sample data')
            mixid = subtype - 32
            mixidx = None
            o2, he, beginpressure, endpressure = struct.unpack_from('<HHHH', data, offset + 1)

            if o2 != 0 or he != 0:
                idx = self._find_gasmix(mixid)
                if idx >= len(self._gasmixes):
                    if idx >= NGASMIXES:
                        raise NoMemoryError('Maximum number of gas mixes reached')
                    self._gasmixes.append({'id': mixid, 'oxygen': o2, 'helium': he})
                mixidx = idx

            if (beginpressure != 0 or endpressure != 0) and \
                    beginpressure != 0xFFFF and endpressure != 0xFFFF:
                idx = self._find_tank(mixid)
                if idx >= len(self._tanks):
                    if idx >= NGASMIXES:
                        raise NoMemoryError('Maximum number of tanks reached')
                    self._tanks.append({'id': mixid, 'beginpressure': beginpressure,
                                        'endpressure': endpressure, 'gasmix': mixidx})

        cursor.skip(length - 1)
