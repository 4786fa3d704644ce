import datetime

import pytest

from divecomputer.store import DatabaseError, Logbook

SUMMARY = {
    'datetime': '2021-03-04T05:06:07+01:00',
    'duration': 45.0,
    'max_depth': 10.0,
    'air_temp': None,
    'max_temp': None,
    'min_temp': 21.5,
    'mixes': {'gas_0': {'o2': 0.32, 'he': 0.0, 'n2': 0.68, 'h2': 0.0, 'ar': 0.0}},
    'profile': [{'time': 0, 'depth': 1.5}, {'time': 4, 'depth': 3.0}],
    'vendor': {'mode': 'oc'},
}

def test_logbook_round_trip(tmp_path):
    filename = str(tmp_path / 'logs' / 'logbook.db')
    with Logbook(filename) as logbook:
        computer = logbook.add_computer('uwatec_smart', 1234, model=0x18, firmware=2)
        logbook.add_dive(computer, b'raw dive', b'\x01\x02\x03\x04', SUMMARY)
        logbook.add_dive(computer, b'other', b'\x05\x06\x07\x08')
        computer.fingerprint = b'\x01\x02\x03\x04'
        logbook.commit()

    with Logbook(filename) as logbook:
        computer = logbook.find_computer('uwatec_smart', 1234)
        assert computer is not None
        assert computer.model == 0x18
        assert computer.fingerprint == b'\x01\x02\x03\x04'
        assert logbook.find_computer('uwatec_smart', 99) is None

        assert logbook.has_dive(computer, b'\x01\x02\x03\x04')
        assert not logbook.has_dive(computer, b'\x00\x00\x00\x00')

        dives = computer.dives
        assert [d.data for d in dives] == [b'raw dive', b'other']
        assert dives[0].fingerprint == b'\x01\x02\x03\x04'
        assert dives[0].dive_datetime == datetime.datetime(2021, 3, 4, 5, 6, 7)
        assert dives[0].max_depth == pytest.approx(10.0)
        assert dives[0].mixes == SUMMARY['mixes']
        assert dives[0].profile == SUMMARY['profile']
        assert dives[0].vendor == {'mode': 'oc'}
        assert dives[1].dive_datetime is None
        assert dives[0].imported is not None

        assert len(logbook.all_computers) == 1
        assert len(logbook.all_dives) == 2

def test_memory_logbook():
    with Logbook(':memory:') as logbook:
        assert logbook.all_computers == []

def test_invalid_file(tmp_path):
    filename = tmp_path / 'garbage.db'
    filename.write_bytes(b'this is not an sqlite database' * 100)
    with pytest.raises(DatabaseError):
        Logbook(str(filename))
