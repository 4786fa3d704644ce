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
Python Dive Computer package

Implements a set of device drivers and parsers to download data from
commonly-available SCUBA and free-diving computers.  Protocols and data
formats are adapted from `libdivecomputer <http://www.libdivecomputer.org>`.
All implementations are pure Python for easy incorporation into third-party
dive logging and transferring software.

This package uses `pySerial <https://pyserial.readthedocs.io>` to implement
RS-232 and USB-serial communication, and the socket module's Bluetooth
support for RFCOMM links.  Other transports can be supplied by the
application through divecomputer.iostream.CustomStream.
'''

import logging
import re

from divecomputer.common import Family, InvalidArgsError, UnsupportedError
from divecomputer.parser import FieldType, SampleType, SampleEvent

__version__ = '0.2.0'
__all__ = [ 'Device', 'register_driver', 'list_drivers', 'open_device',
            'Parser', 'register_parser', 'list_parsers', 'open_parser',
            'BaseAdapter',
]

log = logging.getLogger(__name__)

# Driver and Parser Registries
_driver_registry = {}
_parser_registry = {}

# Check for a valid identifier
def isidentifier(str):
    return re.match(r'^[A-Za-z_][A-Za-z0-9_]*$', str) is not None

# Base class for Dive Computer Adapters
class BaseAdapter(object):
    '''
    Base class for Dive Computer Adapters

    This class is used as the base class for adapter objects which translate
    from a computer-specific parser to a standard interface that can be
    used by a higher-level dive logging application.  The default methods
    query the parser through the generic field and sample interface; child
    classes override them where the device records more (or less).

    The adapter class defines a common subset of data that every dive computer
    should implement, namely dive date/time, dive duration, max depth, the
    minimum/maximum/surface temperatures, gas mix information, and the dive
    profile.  All other information logged by the dive computer should be
    added either to the profile, as a user-defined extra profile, or to the
    vendor property, which contains user-defined key/value pairs.
    '''
    VENDOR = None

    def __init__(self, parser, serial=None):
        self._parser = parser
        self._serial = serial

    def _field(self, field, index=0):
        try:
            return self._parser.get_field(field, index)
        except UnsupportedError:
            return None

    def dive_datetime(self):
        '''Dive Date/Time'''
        try:
            return self._parser.get_datetime()
        except UnsupportedError:
            return None

    def repetition(self):
        '''Repetitive Dive Number'''

    def interval(self):
        '''Surface Interval [min]'''

    def duration(self):
        '''Dive Duration [min]'''
        seconds = self._field(FieldType.DIVETIME)
        if seconds is None:
            return None
        return seconds / 60.0

    def max_depth(self):
        '''Maximum Depth [m]'''
        return self._field(FieldType.MAXDEPTH)

    def avg_depth(self):
        '''Average Depth [m]'''
        return self._field(FieldType.AVGDEPTH)

    def air_temp(self):
        '''Air Temperature [deg C]'''
        return self._field(FieldType.TEMPERATURE_SURFACE)

    def max_temp(self):
        '''Maximum Temperature [deg C]'''
        return self._field(FieldType.TEMPERATURE_MAXIMUM)

    def min_temp(self):
        '''Minimum Temperature [deg C]'''
        return self._field(FieldType.TEMPERATURE_MINIMUM)

    def mixes(self):
        '''
        Gas Mix Data

        The return value is a dictionary of gas definitions used by the
        computer during the dive, keyed 'gas_N'.  Each gas definition is itself
        a dictionary with the keys 'n2', 'o2', 'he', 'h2', and 'ar', each
        specifying the fraction of the specified compound (molecular nitrogen,
        molecular oxygen, helium, molecular hydrogen, and argon) present in
        the gas mix.  The sum of all five fractions is 1.
        '''
        result = {}
        count = self._field(FieldType.GASMIX_COUNT) or 0
        for i in range(count):
            mix = self._parser.get_field(FieldType.GASMIX, i)
            result['gas_%d' % i] = {
                'o2': mix.oxygen,
                'he': mix.helium,
                'n2': mix.nitrogen,
                'h2': 0.0,
                'ar': 0.0,
            }
        return result

    def profile(self):
        '''
        Dive Profile Data

        The return value is a list of dictionaries with at least two keys:
        'time' and 'depth'.  Data is stored using the following units:

        Profile Key | Default Units
        ----------------------------
        alarms      | -N/A-
        depth       | meters
        heading     | degrees
        heartrate   | beats/min
        mix         | -N/A-
        pressure    | bar
        rbt         | minutes
        temp        | deg. Celsius
        time        | seconds

        The 'alarms' value is a comma-separated list of alarm flags.  If
        multiple breathing mixes are used, the 'mix' key holds the key name of
        the mix as returned by the mixes() method.

        Depth, temperature and mix are carried forward so that they appear in
        each waypoint, even if the value does not change from one sample to
        the next.
        '''
        waypoints = []
        current = {}
        carried = {}

        def sample(kind, value):
            if kind == SampleType.TIME:
                current.clear()
                current.update(carried)
                current['time'] = value
                waypoints.append(current.copy())
                return
            if not waypoints:
                return

            wp = waypoints[-1]
            if kind == SampleType.DEPTH:
                wp['depth'] = carried['depth'] = value
            elif kind == SampleType.TEMPERATURE:
                wp['temp'] = carried['temp'] = value
            elif kind == SampleType.GASMIX:
                wp['mix'] = carried['mix'] = 'gas_%d' % value
            elif kind == SampleType.PRESSURE:
                wp['pressure'] = value.value
            elif kind == SampleType.RBT:
                wp['rbt'] = value
            elif kind == SampleType.HEARTBEAT:
                wp['heartrate'] = value
            elif kind == SampleType.BEARING:
                wp['heading'] = value
            elif kind == SampleType.EVENT:
                name = SampleEvent(value.type).name.lower()
                if 'alarms' in wp:
                    wp['alarms'] = '%s,%s' % (wp['alarms'], name)
                else:
                    wp['alarms'] = name

        self._parser.samples_foreach(sample)
        return waypoints

    def vendor(self):
        '''
        Vendor-Specific Data

        The return value is a dictionary of user-defined keys.  The data will
        be displayed as a name-value list, with the names derived from the
        keys by translating underscores to spaces and title-casing the result.
        '''
        return {}

    def computer(self):
        '''
        Dive Computer Data

        The return value is a dictionary with the keys 'vendor', 'model',
        'parser', and 'serial'.
        '''
        return {
            'vendor': self.VENDOR,
            'model': self._parser.model,
            'parser': self._parser.NAME,
            'serial': self._serial,
        }

    def summary(self):
        '''Return all adapter values as a single dictionary'''
        dt = self.dive_datetime()
        return {
            'datetime': dt.isoformat() if dt is not None else None,
            'duration': self.duration(),
            'max_depth': self.max_depth(),
            'air_temp': self.air_temp(),
            'max_temp': self.max_temp(),
            'min_temp': self.min_temp(),
            'mixes': self.mixes(),
            'profile': self.profile(),
            'vendor': self.vendor(),
        }

def _register(registry, kind, base, cls, name, desc):
    if not cls:
        raise ValueError("Invalid %s class (None)" % kind)
    if not issubclass(cls, base):
        raise ValueError("Invalid %s class '%s'" % (kind, cls.__name__))

    if not name:
        name = getattr(cls, 'NAME', None) or cls.__name__
    if not desc:
        desc = getattr(cls, 'DESCRIPTION', None)

    if not isidentifier(name):
        raise KeyError("'%s' is not a valid identifier" % name)
    if name in registry:
        raise KeyError("%s '%s' is already registered" % (kind.capitalize(), name))

    if hasattr(cls, 'on_register') and callable(cls.on_register):
        if not cls.on_register():
            return None

    return name, desc

# Register a new Driver class
def register_driver(cls, name=None, desc=None):
    '''
    Register a new driver class

    This function registers a device class with the divecomputer package so
    that it can be discovered at runtime using the list_drivers() function
    and opened by name or family with open_device().  Registration is not
    required if the client knows a priori which class to instantiate.
    Driver classes must extend the Device class.  Driver classes may include
    a class method on_register(cls) which is called by this function when the
    class is registered.  If the function exists, and returns false, the
    class will not be registered and the registration function will exit
    normally.

    All drivers provided by python-divecomputer are automatically registered
    by the master package and do not need to be re-registered by the client.

    The function can be called manually or used as a class decorator.  The
    'name' parameter is a short identifier for the class and must be unique.
    It must obey usual Python identifier rules (starts with character or '_',
    only letters and numbers, no whitespace, etc).  If the identifier is
    invalid or already taken, the function will raise a KeyError.
    '''
    result = _register(_driver_registry, 'driver', Device, cls, name, desc)
    if result is None:
        return cls

    name, desc = result
    _driver_registry[name] = { 'desc': desc, 'class': cls, 'family': cls.FAMILY }

    log.debug('Registered driver class "%s" (%s)', name, desc)

    # In case we are called as a decorator
    return cls

# Register a new Parser class
def register_parser(cls, name=None, desc=None, adapter=None):
    '''
    Register a new parser class

    Works like register_driver() for classes extending Parser.  Parsers can
    optionally specify an adapter class (or an ADAPTER class attribute) which
    turns a parser instance into the standard interface described by
    BaseAdapter.
    '''
    if not adapter and cls is not None and hasattr(cls, 'ADAPTER'):
        adapter = cls.ADAPTER
    if adapter and not issubclass(adapter, BaseAdapter):
        raise ValueError("Adapter '%s' does not descend from BaseAdapter" % adapter.__name__)

    result = _register(_parser_registry, 'parser', Parser, cls, name, desc)
    if result is None:
        return cls

    name, desc = result
    _parser_registry[name] = { 'desc': desc, 'class': cls, 'adapter': adapter,
                               'family': cls.FAMILY }

    log.debug('Registered parser class "%s" (%s)', name, desc)

    # In case we are called as a decorator
    return cls

# Return the Driver registry dict
def list_drivers():
    '''Return the Driver registry'''
    return _driver_registry

# Return the Parser registry dict
def list_parsers():
    '''Return the Parser registry'''
    return _parser_registry

def _lookup(registry, kind, key):
    if isinstance(key, str) and key in registry:
        return registry[key]

    try:
        family = Family[key.upper()] if isinstance(key, str) else Family(key)
    except (KeyError, ValueError):
        raise UnsupportedError('No %s registered for "%s"' % (kind, key))

    for entry in registry.values():
        if entry['family'] == family:
            return entry
    raise UnsupportedError('No %s registered for family %s' % (kind, family.name))

def open_device(context, name, iostream, model=0, owns_stream=False):
    '''
    Open a device by driver name or family

    The name may be a registered driver name, a Family member, or a family
    name such as 'uwatec_smart'.  The driver performs its handshake before
    the device is returned.
    '''
    if iostream is None:
        raise InvalidArgsError('No I/O stream')
    entry = _lookup(_driver_registry, 'driver', name)
    return entry['class'](context, iostream, model=model, owns_stream=owns_stream)

def open_parser(context, name, data, model=0, devtime=0, systime=0):
    '''Create a parser for one dive record by parser name or family'''
    entry = _lookup(_parser_registry, 'parser', name)
    return entry['class'](context, data, model=model, devtime=devtime, systime=systime)

def adapt(parser, serial=None):
    '''Wrap a parser in its registered adapter (BaseAdapter if none)'''
    adapter = BaseAdapter
    entry = _parser_registry.get(parser.NAME)
    if entry and entry['adapter']:
        adapter = entry['adapter']
    return adapter(parser, serial)

# Import and Register built-in drivers and parsers
from divecomputer.device import Device
from divecomputer.parser import Parser

from divecomputer.driver.uwatec_smart import SmartDevice
from divecomputer.driver.shearwater_predator import PredatorDevice
from divecomputer.driver.shearwater_petrel import PetrelDevice
from divecomputer.driver.hw_ostc3 import OSTC3Device
from divecomputer.driver.hw_ostc import OSTCDevice
from divecomputer.driver.reefnet_sensus import SensusDevice
from divecomputer.driver.uwatec_memomouse import MemomouseDevice
from divecomputer.driver.divesystem_idive import IDiveDevice
from divecomputer.driver.deepblu_cosmiq import CosmiqDevice
from divecomputer.driver.oceans_s1 import OceansS1Device
from divecomputer.driver.seac_screen import ScreenDevice
from divecomputer.driver.oceanic_veo250 import Veo250Device
from divecomputer.driver.mares_iconhd import IconHDDevice

from divecomputer.parser.uwatec_smart import SmartParser

register_driver(SmartDevice)
register_driver(PredatorDevice)
register_driver(PetrelDevice)
register_driver(OSTC3Device)
register_driver(OSTCDevice)
register_driver(SensusDevice)
register_driver(MemomouseDevice)
register_driver(IDiveDevice)
register_driver(CosmiqDevice)
register_driver(OceansS1Device)
register_driver(ScreenDevice)
register_driver(Veo250Device)
register_driver(IconHDDevice)

register_parser(SmartParser)
