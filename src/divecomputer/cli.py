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
Dive Computer Transfer Tool

The dctool command line application downloads dives from a dive computer
into a local logbook, dumps memory images and decodes saved dive records.
Only dives newer than the last transfer are downloaded, using the
fingerprint the logbook keeps for each computer.
'''

import logging
import os
import sys
from datetime import datetime

import typer

from divecomputer import __version__, adapt, list_drivers, list_parsers, \
    open_device, open_parser
from divecomputer.bluetooth import RfcommStream, parse_address
from divecomputer.common import DataFormatError, DiveComputerError, \
    Transport, UnsupportedError
from divecomputer.context import Context
from divecomputer.descriptor import iterate_descriptors
from divecomputer.device import Event
from divecomputer.parser import FieldType
from divecomputer.serialstream import SerialStream, enumerate_serial
from divecomputer.store import DatabaseError, Logbook

log = logging.getLogger(__name__)

DEFAULT_LOGBOOK = os.path.join(os.path.expanduser('~'), '.dctool', 'logbook.db')

_TRANSPORTS = (Transport.SERIAL, Transport.USB, Transport.USBHID,
    Transport.IRDA, Transport.BLUETOOTH, Transport.BLE)

app = typer.Typer(help='Download and decode dives from dive computers')

# Separate Log Levels into stdout and stderr
class SingleLevelFilter(logging.Filter):
    def __init__(self, min=None, max=None):
        super(SingleLevelFilter, self).__init__()
        self.min = min or 0
        self.max = max or 100

    def filter(self, record):
        return self.min <= record.levelno <= self.max

_handlers = []
_state = {'loglevel': logging.INFO}

def _init_logging(level):
    logger = logging.getLogger()
    for h in _handlers:
        logger.removeHandler(h)
    del _handlers[:]

    h1 = logging.StreamHandler(sys.stdout)
    h1.addFilter(SingleLevelFilter(max=logging.INFO))
    h2 = logging.StreamHandler(sys.stderr)
    h2.addFilter(SingleLevelFilter(min=logging.WARNING))
    for h in (h1, h2):
        logger.addHandler(h)
        _handlers.append(h)
    logger.setLevel(level)
    _state['loglevel'] = level

def _parse_int(value, name):
    try:
        return int(value, 0)
    except ValueError:
        raise typer.BadParameter('%s must be an integer (got "%s")' % (name, value)) from None

def _open_stream(context, port):
    '''Open a Bluetooth RFCOMM link for XX:XX:XX:XX:XX:XX, else a serial port'''
    try:
        address = parse_address(port)
    except ValueError:
        return SerialStream(context, port)
    return RfcommStream(context, address)

def _open_device(context, family, port, model):
    stream = _open_stream(context, port)
    try:
        return open_device(context, family, stream, model=model, owns_stream=True)
    except BaseException:
        stream.close()
        raise

def _transport_names(mask):
    return '/'.join(t.name.lower() for t in _TRANSPORTS if mask & t)

class _ProgressPrinter(object):
    'Print download progress on stderr as whole percentages'
    def __init__(self):
        self._last = None

    def __call__(self, event, data):
        if event != Event.PROGRESS or not data.maximum:
            return
        percent = 100 * data.current // data.maximum
        if percent != self._last:
            self._last = percent
            typer.echo('Progress: %3d%%' % percent, err=True)

class _Transfer(object):
    '''
    Download session state

    Links the device to its logbook record once its serial number is known
    (from the DEVINFO event), applies the stored fingerprint and collects the
    dives as the device delivers them, newest first.
    '''
    def __init__(self, context, logbook, device, force=False):
        self._context = context
        self._logbook = logbook
        self._device = device
        self._force = force
        self._progress = _ProgressPrinter()

        self.computer = None
        self.serial = 0
        self.newest = None
        self.added = 0
        self.skipped = 0

    def attach(self, serial):
        self.serial = serial
        self.computer = self._logbook.find_computer(self._device.NAME, serial)
        if self.computer is not None and self.computer.fingerprint and not self._force:
            log.debug('Resuming after fingerprint %s', self.computer.fingerprint.hex())
            self._device.set_fingerprint(self.computer.fingerprint)

    def on_event(self, event, data):
        if event == Event.DEVINFO and self.newest is None:
            log.info('Model 0x%02x, firmware %d, serial %d', data.model, data.firmware, data.serial)
            self.attach(data.serial)
        elif event == Event.PROGRESS:
            self._progress(event, data)

    def _summary(self, data):
        if not any(e['family'] == self._device.FAMILY for e in list_parsers().values()):
            return None

        devinfo = self._device.devinfo
        clock = self._device.clock
        try:
            parser = open_parser(self._context, self._device.FAMILY, data,
                model=devinfo.model if devinfo else self._device.model,
                devtime=clock.devtime if clock else 0,
                systime=clock.systime if clock else 0)
            return adapt(parser, self.serial).summary()
        except DataFormatError as exc:
            log.warning('Unable to decode dive: %s', exc)
            return None

    def on_dive(self, data, fingerprint):
        if self.computer is None:
            devinfo = self._device.devinfo
            self.computer = self._logbook.add_computer(self._device.NAME, self.serial,
                model=devinfo.model if devinfo else self._device.model,
                firmware=devinfo.firmware if devinfo else None)
        if self.newest is None:
            self.newest = fingerprint

        if self._logbook.has_dive(self.computer, fingerprint):
            self.skipped += 1
            return True

        self._logbook.add_dive(self.computer, data, fingerprint, self._summary(data))
        self.added += 1
        return True

    def finish(self):
        if self.computer is None:
            return
        if self.newest is not None:
            self.computer.fingerprint = self.newest
        self.computer.last_transfer = datetime.now()
        self._logbook.commit()

@app.callback()
def main(
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Show debugging output'),
    quiet: bool = typer.Option(False, '--quiet', '-q', help='Only show warnings and errors'),
):
    '''Download and decode dives from dive computers.'''
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    _init_logging(level)

@app.command('version')
def version():
    '''Print the library version.'''
    typer.echo('dctool %s' % __version__)

@app.command('list')
def list_products():
    '''List supported products and the registered drivers.'''
    for desc in iterate_descriptors():
        typer.echo('%-18s %-18s %-20s %s' % (desc.vendor, desc.product,
            desc.family.name.lower(), _transport_names(desc.transports)))

    typer.echo('')
    typer.echo('Drivers:')
    for name, entry in sorted(list_drivers().items()):
        typer.echo('  %-20s %s' % (name, entry['desc'] or ''))

@app.command('scan')
def scan():
    '''List the serial ports on this machine.'''
    ports = enumerate_serial()
    if not ports:
        typer.echo('No serial ports found')
        return
    for port in ports:
        typer.echo('%s: %s' % (port['addr'], port['name']))

@app.command('download')
def download(
    family: str = typer.Argument(..., help='Driver or family name'),
    port: str = typer.Argument(..., envvar='DCTOOL_PORT', help='Serial port or Bluetooth address'),
    model: str = typer.Option('0', '--model', help='Model number'),
    logbook: str = typer.Option(DEFAULT_LOGBOOK, '--logbook', envvar='DCTOOL_LOGBOOK', help='Logbook file'),
    force: bool = typer.Option(False, '--force', help='Ignore the stored fingerprint'),
):
    '''Download new dives into the logbook.'''
    model = _parse_int(model, 'model')
    try:
        book = Logbook(os.path.expanduser(logbook))
        try:
            with Context(_state['loglevel']) as ctx:
                with _open_device(ctx, family, port, model) as device:
                    transfer = _Transfer(ctx, book, device, force)
                    device.set_events(Event.DEVINFO | Event.PROGRESS, transfer.on_event)
                    if device.devinfo is not None:
                        transfer.attach(device.devinfo.serial)
                    device.foreach(transfer.on_dive)
                transfer.finish()
        finally:
            book.close()
        typer.echo('Downloaded %d new dive(s) (%d already in the logbook)' % (transfer.added, transfer.skipped))
    except (DiveComputerError, DatabaseError) as exc:
        typer.echo('Error: %s' % exc, err=True)
        raise typer.Exit(code=1) from None

@app.command('dump')
def dump(
    family: str = typer.Argument(..., help='Driver or family name'),
    port: str = typer.Argument(..., envvar='DCTOOL_PORT', help='Serial port or Bluetooth address'),
    output: str = typer.Argument(..., help='Output file'),
    model: str = typer.Option('0', '--model', help='Model number'),
):
    '''Write the memory image of the device to a file.'''
    model = _parse_int(model, 'model')
    try:
        with Context(_state['loglevel']) as ctx:
            with _open_device(ctx, family, port, model) as device:
                device.set_events(Event.PROGRESS, _ProgressPrinter())
                data = device.dump()
        with open(output, 'wb') as f:
            f.write(data)
        typer.echo('Wrote %d bytes to %s' % (len(data), output))
    except DiveComputerError as exc:
        typer.echo('Error: %s' % exc, err=True)
        raise typer.Exit(code=1) from None

@app.command('read')
def read(
    family: str = typer.Argument(..., help='Driver or family name'),
    port: str = typer.Argument(..., envvar='DCTOOL_PORT', help='Serial port or Bluetooth address'),
    address: str = typer.Argument(..., help='Start address'),
    size: str = typer.Argument(..., help='Number of bytes'),
    model: str = typer.Option('0', '--model', help='Model number'),
):
    '''Hexdump a range of device memory.'''
    address = _parse_int(address, 'address')
    size = _parse_int(size, 'size')
    model = _parse_int(model, 'model')
    try:
        with Context(_state['loglevel']) as ctx:
            with _open_device(ctx, family, port, model) as device:
                data = device.read(address, size)
        for offset in range(0, len(data), 16):
            chunk = bytes(data[offset:offset + 16])
            text = ''.join(chr(c) if 0x20 <= c < 0x7F else '.' for c in chunk)
            typer.echo('%08X  %-47s  %s' % (address + offset, chunk.hex(' ').upper(), text))
    except DiveComputerError as exc:
        typer.echo('Error: %s' % exc, err=True)
        raise typer.Exit(code=1) from None

@app.command('timesync')
def timesync(
    family: str = typer.Argument(..., help='Driver or family name'),
    port: str = typer.Argument(..., envvar='DCTOOL_PORT', help='Serial port or Bluetooth address'),
    model: str = typer.Option('0', '--model', help='Model number'),
):
    '''Set the device clock to the host time.'''
    model = _parse_int(model, 'model')
    try:
        now = datetime.now().astimezone()
        with Context(_state['loglevel']) as ctx:
            with _open_device(ctx, family, port, model) as device:
                device.timesync(now)
        typer.echo('Clock set to %s' % now.strftime('%Y-%m-%d %H:%M:%S %z'))
    except DiveComputerError as exc:
        typer.echo('Error: %s' % exc, err=True)
        raise typer.Exit(code=1) from None

def _echo_field(parser, label, field, fmt):
    try:
        value = parser.get_field(field)
    except UnsupportedError:
        return
    typer.echo(('%-14s ' + fmt) % (label + ':', value))

@app.command('parse')
def parse(
    family: str = typer.Argument(..., help='Parser or family name'),
    model: str = typer.Argument(..., help='Model number'),
    filename: str = typer.Argument(..., help='Raw dive record'),
):
    '''Decode a raw dive record and print its fields and samples.'''
    model = _parse_int(model, 'model')
    try:
        with open(filename, 'rb') as f:
            data = f.read()
    except OSError as exc:
        typer.echo('Error: %s' % exc, err=True)
        raise typer.Exit(code=1) from None

    try:
        with Context(_state['loglevel']) as ctx:
            parser = open_parser(ctx, family, data, model=model)
            typer.echo('%-14s %s' % ('Date/Time:', parser.get_datetime().isoformat()))
            _echo_field(parser, 'Dive Time', FieldType.DIVETIME, '%d s')
            _echo_field(parser, 'Max Depth', FieldType.MAXDEPTH, '%.2f m')
            _echo_field(parser, 'Min Temp', FieldType.TEMPERATURE_MINIMUM, '%.1f C')
            try:
                mode = parser.get_field(FieldType.DIVEMODE)
                typer.echo('%-14s %s' % ('Dive Mode:', mode.name.lower()))
            except UnsupportedError:
                pass

            for name, mix in sorted(adapt(parser).mixes().items()):
                typer.echo('%-14s O2 %.1f%% He %.1f%%' % (name + ':', mix['o2'] * 100, mix['he'] * 100))

            typer.echo('Samples:')
            for kind, value in parser.samples():
                typer.echo('  %-12s %s' % (kind.name.lower(), value))
    except DiveComputerError as exc:
        typer.echo('Error: %s' % exc, err=True)
        raise typer.Exit(code=1) from None

def run():
    app()

if __name__ == '__main__':
    run()
