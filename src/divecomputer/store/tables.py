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

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, \
    LargeBinary, MetaData, String, Table, Text, UniqueConstraint
from divecomputer.store.types import HexType, JsonType

# Declare global meta-data
meta = MetaData()

# Computer Table
computers = Table('computers', meta,
    Column('id', Integer, primary_key=True),
    Column('family', String(64), nullable=False),
    Column('model', Integer, nullable=False, default=0),
    Column('serial', Integer, nullable=False),
    Column('firmware', Integer),
    Column('name', String(255)),
    Column('fingerprint', HexType(64)),
    Column('last_transfer', DateTime),
    UniqueConstraint('family', 'serial'),
)

# Dive Table
dives = Table('dives', meta,
    Column('id', Integer, primary_key=True),
    Column('computer_id', Integer, ForeignKey('computers.id'), nullable=False),
    Column('fingerprint', HexType(64), nullable=False),

    # Raw record as delivered by the device
    Column('data', LargeBinary, nullable=False),

    # Decoded Summary (when a parser is available)
    Column('dive_datetime', DateTime),
    Column('duration', Float),
    Column('max_depth', Float),
    Column('air_temp', Float),
    Column('max_temp', Float),
    Column('min_temp', Float),
    Column('mixes', JsonType),
    Column('profile', JsonType),
    Column('vendor', JsonType),
    Column('imported', DateTime),

    Column('comments', Text),
    UniqueConstraint('computer_id', 'fingerprint'),
)

# Initialize model tables
def init_tables(engine):
    '''Initialize model tables'''
    meta.create_all(engine)
