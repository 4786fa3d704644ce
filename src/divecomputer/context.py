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
Library Context

A Context ties the package's logging output to an application.  It installs
a handler on the package logger which forwards log records to an optional
callback, and provides the hexdump helper used by the transports and drivers
to trace wire traffic.  Contexts are passed (by reference) to every stream,
device and parser and must outlive them.
'''

import binascii
import logging

# Package Root Logger
PACKAGE_LOGGER = 'divecomputer'

def hexdump(logger, level, prefix, data):
    '''Log a buffer as hex if the logger is enabled for level'''
    if logger.isEnabledFor(level):
        logger.log(level, '%s: size=%u, data=%s', prefix, len(data),
            binascii.hexlify(bytes(data)).decode('ascii').upper())

class _CallbackHandler(logging.Handler):
    '''Forward log records to an application callback'''
    def __init__(self, callback, level):
        super(_CallbackHandler, self).__init__(level)
        self._callback = callback

    def emit(self, record):
        try:
            self._callback(record.levelno, self.format(record))
        except Exception:
            self.handleError(record)

class Context(object):
    '''
    Library Context

    The loglevel parameter sets the threshold of the package logger while the
    context is open.  If logfunc is given, it is called as logfunc(level,
    message) for each record at or above loglevel.  Contexts may be used as
    context managers; leaving the block detaches the handler again.
    '''
    def __init__(self, loglevel=logging.WARNING, logfunc=None):
        self._logger = logging.getLogger(PACKAGE_LOGGER)
        self._saved_level = self._logger.level
        self._handler = None
        self._loglevel = loglevel

        self._logger.setLevel(loglevel)
        if logfunc is not None:
            self.set_logfunc(logfunc)

    def set_loglevel(self, loglevel):
        '''Set the package logging threshold'''
        self._loglevel = loglevel
        self._logger.setLevel(loglevel)
        if self._handler:
            self._handler.setLevel(loglevel)

    def set_logfunc(self, logfunc):
        '''Replace (or remove, with None) the log callback'''
        if self._handler:
            self._logger.removeHandler(self._handler)
            self._handler = None
        if logfunc is not None:
            self._handler = _CallbackHandler(logfunc, self._loglevel)
            self._logger.addHandler(self._handler)

    @property
    def loglevel(self):
        return self._loglevel

    def hexdump(self, logger, level, prefix, data):
        hexdump(logger, level, prefix, data)

    def close(self):
        '''Detach the callback handler and restore the logger level'''
        self.set_logfunc(None)
        self._logger.setLevel(self._saved_level)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False
