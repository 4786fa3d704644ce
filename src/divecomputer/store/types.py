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

import json
import sqlalchemy.types as satypes

class JsonType(satypes.TypeDecorator):
    '''
    JsonType

    Stores Python objects in the database using a JSON representation.  Ideal
    to store dictionaries and lists/arrays in a platform-independent format.
    Values are replaced rather than mutated in place; assign a new object to
    have the change persisted.
    '''
    impl = satypes.Unicode
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            value = json.dumps(value, ensure_ascii=False)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return json.loads(value)

class HexType(satypes.TypeDecorator):
    '''
    HexType

    Stores a byte string as upper-case hex text, so fingerprints remain
    readable when the logbook is inspected with other tools.
    '''
    impl = satypes.String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            value = bytes(value).hex().upper()
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return bytes.fromhex(value)
