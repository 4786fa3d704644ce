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

from datetime import datetime
from sqlalchemy.orm import backref, deferred, registry, relationship
from divecomputer.store import tables

mapper_registry = registry()

# Dive Model
class Dive(object):
    '''
    Dive Model

    Contains the raw record of a single dive as downloaded from the computer,
    its fingerprint and, when the family has a parser, the decoded summary.

    BackRefs:
    - computer : <DiveComputer> (via computer_id)
    '''

    def init_from_summary(self, summary):
        '''Load the decoded values from a BaseAdapter.summary() dictionary'''
        dt = summary.get('datetime')
        if dt is not None:
            # Naive local time, as reported by the device
            dt = datetime.fromisoformat(dt).replace(tzinfo=None)
        self.dive_datetime = dt
        self.duration = summary.get('duration')
        self.max_depth = summary.get('max_depth')
        self.air_temp = summary.get('air_temp')
        self.max_temp = summary.get('max_temp')
        self.min_temp = summary.get('min_temp')

        self.mixes = summary.get('mixes')
        self.profile = summary.get('profile')
        self.vendor = summary.get('vendor')

    def __repr__(self):
        if self.dive_datetime is None:
            return '<Dive %s>' % self.fingerprint.hex().upper()
        return '<Dive %s (%s)>' % (self.fingerprint.hex().upper(), self.dive_datetime.isoformat())

# Dive Mapper
mapper_registry.map_imperatively(Dive, tables.dives, properties={
    'data': deferred(tables.dives.c.data),
    'profile': deferred(tables.dives.c.profile),
    'vendor': deferred(tables.dives.c.vendor)
})

# Dive Computer Model
class DiveComputer(object):
    '''
    DiveComputer Model

    Contains information about a dive computer: the driver family, model and
    serial number used to identify it, and an optional display name.

    Also stored is the fingerprint of the last dive transferred from the
    dive computer, so that on subsequent transfers, only new dives are
    returned rather than all dives.

    Relationships:
    - dives : <Dive>*
    '''

    def __repr__(self):
        return '<Dive Computer: %s>' % (self.name or '%s #%d' % (self.family, self.serial))

# Dive Computer Mapper
mapper_registry.map_imperatively(DiveComputer, tables.computers, properties={
    'dives': relationship(Dive, backref=backref('computer', lazy='joined'),
        order_by=tables.dives.c.id, cascade='all, delete-orphan')
})
