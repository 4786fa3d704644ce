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
Dive data parsers

A parser decodes the raw record of one dive, as delivered by a driver's
foreach() callback, into summary fields and a sequence of samples.  Parsers
are created for a single record and keep a reference to it; set_data()
re-targets the parser to another record and drops any cached header data.
'''

import collections
import enum

from divecomputer.common import DataFormatError, UnsupportedError


# Physical Constants
BAR = 100000.0          # Pa
GRAVITY = 9.80665       # m/s^2
FRESH = 1000.0          # kg/m^3
SALT = 1025.0           # kg/m^3

class ParseError(DataFormatError):
    'Raised when a dive record cannot be decoded'

class SampleType(enum.IntEnum):
    TIME = 0
    DEPTH = 1
    PRESSURE = 2
    TEMPERATURE = 3
    EVENT = 4
    RBT = 5
    HEARTBEAT = 6
    BEARING = 7
    VENDOR = 8
    SETPOINT = 9
    PPO2 = 10
    CNS = 11
    DECO = 12
    GASMIX = 13

class SampleEvent(enum.IntEnum):
    NONE = 0
    DECOSTOP = 1
    RBT = 2
    ASCENT = 3
    CEILING = 4
    WORKLOAD = 5
    TRANSMITTER = 6
    VIOLATION = 7
    BOOKMARK = 8
    SURFACE = 9
    SAFETYSTOP = 10

class FieldType(enum.IntEnum):
    DIVETIME = 0
    MAXDEPTH = 1
    AVGDEPTH = 2
    GASMIX_COUNT = 3
    GASMIX = 4
    SALINITY = 5
    ATMOSPHERIC = 6
    TEMPERATURE_SURFACE = 7
    TEMPERATURE_MINIMUM = 8
    TEMPERATURE_MAXIMUM = 9
    TANK_COUNT = 10
    TANK = 11
    DIVEMODE = 12

class DiveMode(enum.IntEnum):
    FREEDIVE = 0
    GAUGE = 1
    OC = 2
    CCR = 3
    SCR = 4

class WaterType(enum.IntEnum):
    FRESH = 0
    SALT = 1

# Sample and field values
Pressure = collections.namedtuple('Pressure', 'tank value')
EventValue = collections.namedtuple('EventValue', 'type time flags value')
Gasmix = collections.namedtuple('Gasmix', 'oxygen helium nitrogen')
Tank = collections.namedtuple('Tank', 'gasmix volume workpressure beginpressure endpressure')
Salinity = collections.namedtuple('Salinity', 'type density')

class Parser(object):
    '''
    Base class for dive parsers

    Subclasses set NAME, DESCRIPTION and FAMILY for the parser registry and
    override get_datetime(), get_field() and samples_foreach().  The model,
    devtime and systime arguments carry what the driver learned about the
    device: its model number and a device/host clock pair used by formats
    which timestamp dives in device ticks.
    '''
    NAME = None
    DESCRIPTION = None
    FAMILY = None
    ADAPTER = None

    def __init__(self, context, data, model=0, devtime=0, systime=0):
        self._context = context
        self._model = model
        self._devtime = devtime
        self._systime = systime
        self._data = bytes(data)

    @property
    def data(self):
        return self._data

    @property
    def model(self):
        return self._model

    def set_data(self, data):
        '''Assign a new dive record, invalidating cached values'''
        self._data = bytes(data)

    def get_datetime(self):
        raise UnsupportedError('%s does not support get_datetime' % self.__class__.__name__)

    def get_field(self, field, index=0):
        raise UnsupportedError('%s does not support field %s' % (self.__class__.__name__, FieldType(field).name))

    def samples_foreach(self, callback):
        '''Call callback(sample_type, value) for every sample in the dive'''
        raise UnsupportedError('%s does not support samples' % self.__class__.__name__)

    def samples(self):
        '''Return the samples as a list of (sample_type, value) pairs'''
        result = []
        self.samples_foreach(lambda kind, value: result.append((kind, value)))
        return result
