from divecomputer import checksum

def test_add_checksums():
    assert checksum.add_uint8(b'\x01\x02\xFF') == 0x02
    assert checksum.add_uint8(b'\x10', 0x05) == 0x15
    assert checksum.add_uint16(b'\xFF' * 0x102) == (0xFF * 0x102) & 0xFFFF

def test_xor_checksum():
    assert checksum.xor_uint8(b'\x0F\xF0\x55') == 0xAA
    assert checksum.xor_uint8(b'') == 0

def test_crc16_ccitt_check_values():
    # CRC-16/CCITT-FALSE and XMODEM check values for '123456789'
    assert checksum.crc16_ccitt(b'123456789') == 0x29B1
    assert checksum.crc16_ccitt(b'123456789', 0x0000) == 0x31C3

def test_crc16_ccitt_xorout():
    assert checksum.crc16_ccitt(b'123456789', 0xFFFF, 0xFFFF) == 0x29B1 ^ 0xFFFF

def test_reverse_bits():
    assert checksum.reverse_bits(0x01) == 0x80
    assert checksum.reverse_bits(0x60) == 0x06
    assert checksum.reverse_bits(0xA8) == 0x15
    assert checksum.reverse_bytes(b'\x01\x02\xF0') == b'\x80\x40\x0F'
