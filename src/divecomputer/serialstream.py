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
RS-232 Serial Stream

Implements the IOStream interface on top of `pySerial
<https://pyserial.readthedocs.io>`_.  USB-serial adapters and Bluetooth
serial port emulation (/dev/rfcomm*) appear as ordinary serial ports and are
handled here as well.
'''

import errno
import logging
import struct

import serial
from serial.tools import list_ports

from divecomputer.common import NoAccessError, NoDeviceError, Transport, \
    TransportError, UnsupportedError
from divecomputer.iostream import IOStream, Direction, FlowControl, Line, \
    Parity, StopBits, IOCTL_SERIAL_SET_LATENCY

log = logging.getLogger(__name__)

_PARITY = {
    Parity.NONE:    serial.PARITY_NONE,
    Parity.ODD:     serial.PARITY_ODD,
    Parity.EVEN:    serial.PARITY_EVEN,
    Parity.MARK:    serial.PARITY_MARK,
    Parity.SPACE:   serial.PARITY_SPACE,
}

_STOPBITS = {
    StopBits.ONE:           serial.STOPBITS_ONE,
    StopBits.ONEPOINTFIVE:  serial.STOPBITS_ONE_POINT_FIVE,
    StopBits.TWO:           serial.STOPBITS_TWO,
}

def enumerate_serial():
    '''
    List the serial ports available on this machine

    Returns a list of dictionaries with 'addr' and 'name' keys, in the same
    shape the device discovery functions have always returned.
    '''
    ports = []
    for port in sorted(list_ports.comports(), key=lambda p: p.device):
        ports.append({'addr': port.device, 'name': port.description or port.device})
    return ports

def _translate(exc, name):
    'Map an OS level error to the package exception hierarchy'
    code = getattr(exc, 'errno', None)
    if code in (errno.EACCES, errno.EBUSY, errno.EPERM):
        return NoAccessError('Access denied to %s: %s' % (name, exc))
    if code in (errno.ENOENT, errno.ENODEV, errno.ENXIO):
        return NoDeviceError('No such device %s: %s' % (name, exc))
    return TransportError('Serial I/O error on %s: %s' % (name, exc))

class SerialStream(IOStream):
    '''
    Serial port stream

    Opens the named port immediately; the port is configured 9600 8N1 with
    blocking reads until configure() and set_timeout() are called.
    '''
    TRANSPORT = Transport.SERIAL

    def __init__(self, context, name):
        super(SerialStream, self).__init__(context)
        self._name = name
        try:
            self._port = serial.Serial(port=name, baudrate=9600, timeout=None)
        except serial.SerialException as exc:
            raise _translate(exc.__context__ or exc, name) from exc
        except OSError as exc:
            raise _translate(exc, name) from exc
        log.info('Opened serial port %s', name)

    @property
    def name(self):
        return self._name

    def _configure(self, baudrate, databits, parity, stopbits, flowcontrol):
        try:
            self._port.baudrate = baudrate
            self._port.bytesize = databits
            self._port.parity = _PARITY[parity]
            self._port.stopbits = _STOPBITS[stopbits]
            self._port.rtscts = flowcontrol == FlowControl.HARDWARE
            self._port.xonxoff = flowcontrol == FlowControl.SOFTWARE
        except (ValueError, serial.SerialException) as exc:
            raise _translate(exc, self._name) from exc

    def _set_timeout(self, timeout):
        if timeout < 0:
            self._port.timeout = None
        else:
            self._port.timeout = timeout / 1000.0

    def _set_break(self, value):
        self._port.break_condition = value

    def _set_dtr(self, value):
        self._port.dtr = value

    def _set_rts(self, value):
        self._port.rts = value

    def _get_lines(self):
        lines = Line(0)
        if self._port.cd:
            lines |= Line.DCD
        if self._port.cts:
            lines |= Line.CTS
        if self._port.dsr:
            lines |= Line.DSR
        if self._port.ri:
            lines |= Line.RNG
        return lines

    def _get_available(self):
        try:
            return self._port.in_waiting
        except (OSError, serial.SerialException) as exc:
            raise _translate(exc, self._name) from exc

    def _poll(self, timeout):
        # pySerial has no select(); emulate with a bounded wait
        if self._port.in_waiting:
            return True
        step = 0.01
        waited = 0
        while timeout < 0 or waited < timeout:
            self._sleep(step * 1000)
            waited += step * 1000
            if self._port.in_waiting:
                return True
        return False

    def _read(self, size):
        try:
            return self._port.read(size)
        except (OSError, serial.SerialException) as exc:
            raise _translate(exc, self._name) from exc

    def _write(self, data):
        try:
            n = self._port.write(data)
            self._port.flush()
            return n
        except serial.SerialTimeoutException as exc:
            raise TransportError('Write timed out on %s' % self._name) from exc
        except (OSError, serial.SerialException) as exc:
            raise _translate(exc, self._name) from exc

    def _purge(self, direction):
        if direction & Direction.INPUT:
            self._port.reset_input_buffer()
        if direction & Direction.OUTPUT:
            self._port.reset_output_buffer()

    def _ioctl(self, request, data):
        if request == IOCTL_SERIAL_SET_LATENCY:
            latency = struct.unpack('<I', data)[0]
            # Only the low-latency flag is exposed through pySerial
            if hasattr(self._port, 'set_low_latency_mode'):
                self._port.set_low_latency_mode(latency <= 1)
                return b''
            raise UnsupportedError('Latency control is not available on this platform')
        return super(SerialStream, self)._ioctl(request, data)

    def _close(self):
        self._port.close()
        log.info('Closed serial port %s', self._name)
