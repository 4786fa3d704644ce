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
Dive Logbook Storage

Persists downloaded dives and per-computer fingerprints in an SQLite file
using SQLAlchemy.  The logbook only keeps what the download tool needs to
resume incremental transfers and to re-parse dives later: the raw records,
their fingerprints and, where a parser exists, the decoded summary.
'''

import logging
import os
from datetime import datetime

import sqlalchemy
from sqlalchemy.orm import sessionmaker

from divecomputer.store import models, tables

log = logging.getLogger(__name__)

class DatabaseError(Exception):
    'Database Error Class'

class Logbook(object):
    '''
    Logbook Class

    The Logbook class contains all information related to a single logbook
    database file.  Each Logbook instance is linked to a single file on the
    filesystem, passed to the constructor.  The file is created (along with
    its parent directory) if it does not exist, and the tables are created
    if they are missing.  Pass ':memory:' to use a transient in-memory
    database.
    '''
    def __init__(self, filename, echo=False):
        self._filename = filename
        if filename != ':memory:':
            directory = os.path.dirname(os.path.abspath(filename))
            if not os.path.isdir(directory):
                os.makedirs(directory)
        self._url = 'sqlite:///%s' % filename
        self._engine = sqlalchemy.create_engine(self._url, echo=echo)

        try:
            tables.init_tables(self._engine)
        except sqlalchemy.exc.DatabaseError as exc:
            raise DatabaseError('%s is not a valid Logbook' % filename) from exc

        self._session_factory = sessionmaker(bind=self._engine)
        self._session = None   # We will lazy-create session

        log.info('Opened logbook \'%s\'', filename)

    #-------------------------------------------------------------------------
    # Properties

    @property
    def filename(self):
        return self._filename

    @property
    def session(self):
        '''Return the current SQLalchemy Session'''
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    @property
    def all_computers(self):
        return self.session.query(models.DiveComputer).order_by(models.DiveComputer.id).all()

    @property
    def all_dives(self):
        return self.session.query(models.Dive).order_by(models.Dive.id).all()

    #-------------------------------------------------------------------------
    # Computers

    def find_computer(self, family, serial):
        '''Return the DiveComputer with the given family name and serial, or None'''
        return self.session.query(models.DiveComputer) \
            .filter_by(family=family, serial=serial).one_or_none()

    def add_computer(self, family, serial, model=0, firmware=None, name=None):
        '''Create and return a new DiveComputer'''
        computer = models.DiveComputer()
        computer.family = family
        computer.serial = serial
        computer.model = model
        computer.firmware = firmware
        computer.name = name
        computer.fingerprint = None
        self.session.add(computer)
        log.debug('Added computer %s serial %d', family, serial)
        return computer

    #-------------------------------------------------------------------------
    # Dives

    def has_dive(self, computer, fingerprint):
        '''True if the computer already has a dive with this fingerprint'''
        return self.session.query(models.Dive) \
            .filter_by(computer=computer, fingerprint=bytes(fingerprint)) \
            .count() > 0

    def add_dive(self, computer, data, fingerprint, summary=None):
        '''
        Store a raw dive record for computer

        The summary is the dictionary returned by BaseAdapter.summary(); it is
        optional for families without a parser.
        '''
        dive = models.Dive()
        dive.computer = computer
        dive.fingerprint = bytes(fingerprint)
        dive.data = bytes(data)
        dive.imported = datetime.now()
        if summary is not None:
            dive.init_from_summary(summary)
        self.session.add(dive)
        return dive

    def commit(self):
        self.session.commit()

    def close(self):
        if self._session is not None:
            self._session.close()
            self._session = None
        self._engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False
