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
Common status codes, exceptions and family identifiers

Every failure in the package is reported by raising a subclass of
DiveComputerError.  Each exception class carries the Status code it stands
for, so that applications which prefer status codes (or which wrap this
package for another language) can recover the numeric value with the status
attribute.
'''

import enum

class Status(enum.IntEnum):
    '''Operation status codes'''
    SUCCESS = 0
    DONE = 1
    UNSUPPORTED = -1
    INVALIDARGS = -2
    NOMEMORY = -3
    NODEVICE = -4
    NOACCESS = -5
    IO = -6
    TIMEOUT = -7
    PROTOCOL = -8
    DATAFORMAT = -9
    CANCELLED = -10

class DiveComputerError(Exception):
    'Base class for all Dive Computer errors'
    status = Status.IO

class UnsupportedError(DiveComputerError):
    'Operation is not supported by the device or transport'
    status = Status.UNSUPPORTED

class InvalidArgsError(DiveComputerError):
    'Invalid arguments'
    status = Status.INVALIDARGS

class NoMemoryError(DiveComputerError):
    'Buffer or table capacity exceeded'
    status = Status.NOMEMORY

class NoDeviceError(DiveComputerError):
    'Device not found'
    status = Status.NODEVICE

class NoAccessError(DiveComputerError):
    'Access denied'
    status = Status.NOACCESS

class TransportError(DiveComputerError):
    'Input/output error'
    status = Status.IO

class TransportTimeoutError(TransportError):
    '''
    Timeout Error

    Raised when a read did not complete within the configured timeout.  The
    bytes received before the timeout expired are available in the data
    attribute.
    '''
    status = Status.TIMEOUT

    def __init__(self, message='Timeout', data=b''):
        super(TransportTimeoutError, self).__init__(message)
        self.data = bytes(data)

class ProtocolError(DiveComputerError):
    'Framing, echo or checksum mismatch'
    status = Status.PROTOCOL

class DataFormatError(DiveComputerError):
    'Invalid or corrupt data'
    status = Status.DATAFORMAT

class CancelledError(DiveComputerError):
    'Operation cancelled by the caller'
    status = Status.CANCELLED

_ERRORS = {
    Status.UNSUPPORTED: UnsupportedError,
    Status.INVALIDARGS: InvalidArgsError,
    Status.NOMEMORY:    NoMemoryError,
    Status.NODEVICE:    NoDeviceError,
    Status.NOACCESS:    NoAccessError,
    Status.IO:          TransportError,
    Status.TIMEOUT:     TransportTimeoutError,
    Status.PROTOCOL:    ProtocolError,
    Status.DATAFORMAT:  DataFormatError,
    Status.CANCELLED:   CancelledError,
}

def error_class(status):
    '''
    Return the exception class for a status code

    SUCCESS and DONE are not errors and map to None.
    '''
    return _ERRORS.get(Status(status))

def status_of(exc):
    '''Return the status code for an exception (IO for foreign exceptions)'''
    return getattr(exc, 'status', Status.IO)

class Transport(enum.IntFlag):
    '''Transport types (bit mask)'''
    NONE = 0
    SERIAL = 1 << 0
    USB = 1 << 1
    USBHID = 1 << 2
    IRDA = 1 << 3
    BLUETOOTH = 1 << 4
    BLE = 1 << 5

class Family(enum.IntEnum):
    '''Device family identifiers'''
    NULL = 0
    REEFNET_SENSUS = (2 << 16)
    UWATEC_MEMOMOUSE = (3 << 16) + 1
    UWATEC_SMART = (3 << 16) + 2
    OCEANIC_VEO250 = (4 << 16) + 1
    MARES_ICONHD = (5 << 16) + 3
    HW_OSTC = (6 << 16)
    HW_OSTC3 = (6 << 16) + 2
    SHEARWATER_PREDATOR = (10 << 16)
    SHEARWATER_PETREL = (10 << 16) + 1
    DIVESYSTEM_IDIVE = (13 << 16)
    SEAC_SCREEN = (20 << 16)
    DEEPBLU_COSMIQ = (21 << 16)
    OCEANS_S1 = (22 << 16)
