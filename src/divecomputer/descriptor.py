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
Supported Products

A static table of the dive computers the package knows how to talk to.  Each
entry names the vendor and product as printed on the device, the driver
family that handles it, the model number the driver expects (and reports in
its DEVINFO event) and the transports the product can be reached over.
Several products may share a family and model when the manufacturer sold
the same hardware under different names.
'''

import collections

from divecomputer.common import Family, Transport

Descriptor = collections.namedtuple('Descriptor', 'vendor product family model transports')

_SERIAL = Transport.SERIAL
_IRDA = Transport.IRDA
_BT = Transport.SERIAL | Transport.BLUETOOTH
_BLE = Transport.BLE

def _d(vendor, product, family, model, transports=_SERIAL):
    return Descriptor(vendor, product, family, model, transports)

_DESCRIPTORS = (
    # Uwatec Memomouse
    _d('Uwatec', 'Memomouse', Family.UWATEC_MEMOMOUSE, 0),
    # Uwatec Smart
    _d('Uwatec', 'Smart Pro', Family.UWATEC_SMART, 0x10, _IRDA),
    _d('Uwatec', 'Galileo Sol', Family.UWATEC_SMART, 0x11, _IRDA),
    _d('Uwatec', 'Galileo Luna', Family.UWATEC_SMART, 0x11, _IRDA),
    _d('Uwatec', 'Galileo Terra', Family.UWATEC_SMART, 0x11, _IRDA),
    _d('Uwatec', 'Aladin Tec', Family.UWATEC_SMART, 0x12, _IRDA),
    _d('Uwatec', 'Aladin Prime', Family.UWATEC_SMART, 0x12, _IRDA),
    _d('Uwatec', 'Aladin Tec 2G', Family.UWATEC_SMART, 0x13, _IRDA),
    _d('Uwatec', 'Aladin 2G', Family.UWATEC_SMART, 0x13, _IRDA),
    _d('Subgear', 'XP-10', Family.UWATEC_SMART, 0x13, _IRDA),
    _d('Uwatec', 'Smart Com', Family.UWATEC_SMART, 0x14, _IRDA),
    _d('Uwatec', 'Aladin 2G', Family.UWATEC_SMART, 0x15, _IRDA),
    _d('Uwatec', 'Aladin Tec 3G', Family.UWATEC_SMART, 0x15, _IRDA),
    _d('Uwatec', 'Aladin Sport', Family.UWATEC_SMART, 0x15, _IRDA),
    _d('Subgear', 'XP-3G', Family.UWATEC_SMART, 0x15, _IRDA),
    _d('Uwatec', 'Smart Tec', Family.UWATEC_SMART, 0x18, _IRDA),
    _d('Uwatec', 'Galileo Trimix', Family.UWATEC_SMART, 0x19, _IRDA),
    _d('Uwatec', 'Smart Z', Family.UWATEC_SMART, 0x1C, _IRDA),
    _d('Subgear', 'XP Air', Family.UWATEC_SMART, 0x1C, _IRDA),
    # Reefnet
    _d('Reefnet', 'Sensus', Family.REEFNET_SENSUS, 1),
    # Oceanic VT Pro / Veo 250
    _d('Genesis', 'React Pro', Family.OCEANIC_VEO250, 0x4247),
    _d('Oceanic', 'Veo 200', Family.OCEANIC_VEO250, 0x424B),
    _d('Oceanic', 'Veo 250', Family.OCEANIC_VEO250, 0x424C),
    _d('Seemann', 'XP5', Family.OCEANIC_VEO250, 0x4251),
    _d('Oceanic', 'Veo 180', Family.OCEANIC_VEO250, 0x4252),
    _d('Aeris', 'XR-2', Family.OCEANIC_VEO250, 0x4255),
    _d('Sherwood', 'Insight', Family.OCEANIC_VEO250, 0x425A),
    _d('Hollis', 'DG02', Family.OCEANIC_VEO250, 0x4352),
    # Mares Icon HD
    _d('Mares', 'Matrix', Family.MARES_ICONHD, 0x0F),
    _d('Mares', 'Smart', Family.MARES_ICONHD, 0x000010),
    _d('Mares', 'Smart Apnea', Family.MARES_ICONHD, 0x010010),
    _d('Mares', 'Icon HD', Family.MARES_ICONHD, 0x14),
    _d('Mares', 'Icon HD Net Ready', Family.MARES_ICONHD, 0x15),
    _d('Mares', 'Puck Pro', Family.MARES_ICONHD, 0x18),
    _d('Mares', 'Nemo Wide 2', Family.MARES_ICONHD, 0x19),
    _d('Mares', 'Puck 2', Family.MARES_ICONHD, 0x1F),
    _d('Mares', 'Quad Air', Family.MARES_ICONHD, 0x23),
    _d('Mares', 'Quad', Family.MARES_ICONHD, 0x29),
    # Heinrichs Weikamp
    _d('Heinrichs Weikamp', 'OSTC', Family.HW_OSTC, 0),
    _d('Heinrichs Weikamp', 'OSTC Mk2', Family.HW_OSTC, 1),
    _d('Heinrichs Weikamp', 'OSTC 2N', Family.HW_OSTC, 2),
    _d('Heinrichs Weikamp', 'OSTC 2C', Family.HW_OSTC, 3),
    _d('Heinrichs Weikamp', 'OSTC 2', Family.HW_OSTC3, 0x11, _BT),
    _d('Heinrichs Weikamp', 'OSTC 2', Family.HW_OSTC3, 0x13, _BT),
    _d('Heinrichs Weikamp', 'OSTC 2', Family.HW_OSTC3, 0x1B, _BT),
    _d('Heinrichs Weikamp', 'OSTC 3', Family.HW_OSTC3, 0x0A),
    _d('Heinrichs Weikamp', 'OSTC Plus', Family.HW_OSTC3, 0x13, _BT),
    _d('Heinrichs Weikamp', 'OSTC Plus', Family.HW_OSTC3, 0x1A, _BT),
    _d('Heinrichs Weikamp', 'OSTC 4', Family.HW_OSTC3, 0x3B, _BT),
    _d('Heinrichs Weikamp', 'OSTC cR', Family.HW_OSTC3, 0x05),
    _d('Heinrichs Weikamp', 'OSTC cR', Family.HW_OSTC3, 0x07),
    _d('Heinrichs Weikamp', 'OSTC Sport', Family.HW_OSTC3, 0x12, _BT),
    _d('Heinrichs Weikamp', 'OSTC Sport', Family.HW_OSTC3, 0x13, _BT),
    # Shearwater
    _d('Shearwater', 'Predator', Family.SHEARWATER_PREDATOR, 2, _BT),
    _d('Shearwater', 'Petrel', Family.SHEARWATER_PETREL, 3, _BT),
    _d('Shearwater', 'Petrel 2', Family.SHEARWATER_PETREL, 3, _BT),
    _d('Shearwater', 'Nerd', Family.SHEARWATER_PETREL, 4, _BT),
    _d('Shearwater', 'Perdix', Family.SHEARWATER_PETREL, 5, _BT),
    _d('Shearwater', 'Perdix AI', Family.SHEARWATER_PETREL, 6, _BT),
    _d('Shearwater', 'Nerd 2', Family.SHEARWATER_PETREL, 7, _BT),
    # DiveSystem / Ratio
    _d('DiveSystem', 'Orca', Family.DIVESYSTEM_IDIVE, 0x02),
    _d('DiveSystem', 'iDive Pro', Family.DIVESYSTEM_IDIVE, 0x03),
    _d('DiveSystem', 'iDive DAN', Family.DIVESYSTEM_IDIVE, 0x04),
    _d('DiveSystem', 'iDive Tech', Family.DIVESYSTEM_IDIVE, 0x05),
    _d('DiveSystem', 'iDive Reb', Family.DIVESYSTEM_IDIVE, 0x06),
    _d('DiveSystem', 'iDive Stealth', Family.DIVESYSTEM_IDIVE, 0x07),
    _d('DiveSystem', 'iDive Free', Family.DIVESYSTEM_IDIVE, 0x08),
    _d('DiveSystem', 'iDive Easy', Family.DIVESYSTEM_IDIVE, 0x09),
    _d('DiveSystem', 'iDive X3M', Family.DIVESYSTEM_IDIVE, 0x0A),
    _d('DiveSystem', 'iDive Deep', Family.DIVESYSTEM_IDIVE, 0x0B),
    _d('Ratio', 'iX3M Easy', Family.DIVESYSTEM_IDIVE, 0x22),
    _d('Ratio', 'iX3M Deep', Family.DIVESYSTEM_IDIVE, 0x23),
    _d('Ratio', 'iX3M Tech+', Family.DIVESYSTEM_IDIVE, 0x24),
    _d('Ratio', 'iX3M Reb', Family.DIVESYSTEM_IDIVE, 0x25),
    _d('Ratio', 'iX3M Pro Easy', Family.DIVESYSTEM_IDIVE, 0x32),
    _d('Ratio', 'iX3M Pro Deep', Family.DIVESYSTEM_IDIVE, 0x34),
    _d('Ratio', 'iX3M Pro Tech+', Family.DIVESYSTEM_IDIVE, 0x35),
    _d('Ratio', 'iDive Free', Family.DIVESYSTEM_IDIVE, 0x40),
    _d('Ratio', 'iDive Easy', Family.DIVESYSTEM_IDIVE, 0x42),
    _d('Ratio', 'iDive Deep', Family.DIVESYSTEM_IDIVE, 0x44),
    _d('Ratio', 'iDive Tech+', Family.DIVESYSTEM_IDIVE, 0x45),
    _d('Seac', 'Jack', Family.DIVESYSTEM_IDIVE, 0x1000),
    # Seac
    _d('Seac', 'Screen', Family.SEAC_SCREEN, 0),
    _d('Seac', 'Action', Family.SEAC_SCREEN, 0x02),
    # Bluetooth LE only
    _d('Deepblu', 'Cosmiq+', Family.DEEPBLU_COSMIQ, 0, _BLE),
    _d('Oceans', 'S1', Family.OCEANS_S1, 0, _BLE),
)

def iterate_descriptors(family=None, transport=None):
    '''
    Iterate over the supported products

    Optionally restrict the result to one family and/or to products that
    can be reached over the given transport.
    '''
    for desc in _DESCRIPTORS:
        if family is not None and desc.family != family:
            continue
        if transport is not None and not (desc.transports & transport):
            continue
        yield desc

def find_descriptor(vendor, product):
    '''Return the first descriptor matching vendor and product (case-insensitive), or None'''
    vendor = vendor.lower()
    product = product.lower()
    for desc in _DESCRIPTORS:
        if desc.vendor.lower() == vendor and desc.product.lower() == product:
            return desc
    return None
