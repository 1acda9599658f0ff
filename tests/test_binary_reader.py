import io
import unittest

from atmfjstc.lib.obby_file.BinaryReader import BinaryReader, BinaryReaderMissingDataError, \
    BinaryReaderReadPastEndError, BinaryReaderTruncatedError, BinaryReaderWrongMagicError


class _UnseekableStream(io.RawIOBase):
    def __init__(self, data: bytes, chunk_size: int):
        self._data = data
        self._chunk_size = chunk_size

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        n = min(len(buffer), self._chunk_size, len(self._data))
        buffer[:n] = self._data[:n]
        self._data = self._data[n:]
        return n


class Read7BitEncodedIntTest(unittest.TestCase):
    def test_single_byte(self):
        self.assertEqual(BinaryReader(b'\x00').read_7bit_encoded_int(), 0)
        self.assertEqual(BinaryReader(b'\x7f').read_7bit_encoded_int(), 127)

    def test_two_bytes(self):
        self.assertEqual(BinaryReader(b'\x80\x01').read_7bit_encoded_int(), 128)
        self.assertEqual(BinaryReader(b'\xac\x02').read_7bit_encoded_int(), 300)

    def test_three_bytes(self):
        reader = BinaryReader(b'\xe5\x8e\x26\xff')

        self.assertEqual(reader.read_7bit_encoded_int(), 624485)
        self.assertEqual(reader.tell(), 3)

    def test_no_upper_bound(self):
        self.assertEqual(BinaryReader(b'\x80\x80\x80\x80\x80\x01').read_7bit_encoded_int(), 1 << 35)

    def test_ends_before_terminator(self):
        with self.assertRaises(BinaryReaderMissingDataError):
            BinaryReader(b'\xe5\x8e').read_7bit_encoded_int()


class ReadStringTest(unittest.TestCase):
    def test_empty(self):
        reader = BinaryReader(b'\x00rest')

        self.assertEqual(reader.read_7bit_length_prefixed_str(), '')
        self.assertEqual(reader.tell(), 1)

    def test_utf8(self):
        encoded = 'plugin-ăîș'.encode('utf-8')

        self.assertEqual(
            BinaryReader(bytes([len(encoded)]) + encoded).read_7bit_length_prefixed_str(),
            'plugin-ăîș'
        )

    def test_invalid_utf8_is_replaced(self):
        self.assertEqual(BinaryReader(b'\x03a\xffb').read_7bit_length_prefixed_str(), 'a\ufffdb')

    def test_long_string(self):
        text = 'x' * 300

        self.assertEqual(BinaryReader(b'\xac\x02' + text.encode()).read_7bit_length_prefixed_str(), text)

    def test_payload_truncated(self):
        with self.assertRaises(BinaryReaderReadPastEndError) as cm:
            BinaryReader(b'\x05abc').read_7bit_length_prefixed_str('plugin version')

        self.assertEqual(cm.exception.position, 1)
        self.assertEqual(cm.exception.expected_length, 5)
        self.assertEqual(cm.exception.actual_length, 3)
        self.assertIn('plugin version', str(cm.exception))

    def test_huge_declared_length_fails_without_reading(self):
        reader = BinaryReader(b'\xff\xff\xff\xff\x0fabc')

        with self.assertRaises(BinaryReaderTruncatedError):
            reader.read_7bit_length_prefixed_bytes()


class ReadFixedTest(unittest.TestCase):
    def test_read_u8(self):
        reader = BinaryReader(b'\x00\xff')

        self.assertEqual(reader.read_u8(), 0)
        self.assertEqual(reader.read_u8(), 255)

        with self.assertRaises(BinaryReaderMissingDataError):
            reader.read_u8()

    def test_read_i32_little_endian(self):
        self.assertEqual(BinaryReader(b'\x01\x02\x00\x00').read_i32(), 513)

    def test_read_i32_negative(self):
        self.assertEqual(BinaryReader(b'\xff\xff\xff\xff').read_i32(), -1)
        self.assertEqual(BinaryReader(b'\x00\x00\x00\x80').read_i32(), -2 ** 31)

    def test_read_i32_short(self):
        with self.assertRaises(BinaryReaderReadPastEndError):
            BinaryReader(b'\x01\x02').read_i32('entry count')

    def test_read_amount(self):
        reader = BinaryReader(b'abcdef')

        self.assertEqual(reader.read_amount(0), b'')
        self.assertEqual(reader.read_amount(4), b'abcd')
        self.assertEqual(reader.tell(), 4)
        self.assertEqual(reader.bytes_remaining(), 2)

    def test_read_amount_missing(self):
        reader = BinaryReader(b'ab')
        reader.read_amount(2)

        with self.assertRaises(BinaryReaderMissingDataError) as cm:
            reader.read_amount(1, 'signature')

        self.assertEqual(cm.exception.position, 2)
        self.assertIn('signature', str(cm.exception))

    def test_unseekable_short_reads(self):
        reader = BinaryReader(_UnseekableStream(b'abcdefgh', chunk_size=3))

        self.assertEqual(reader.read_amount(7), b'abcdefg')

        with self.assertRaises(BinaryReaderReadPastEndError):
            reader.read_amount(2)


class ExpectMagicTest(unittest.TestCase):
    def test_matching(self):
        reader = BinaryReader(b'OBBYxyz')
        reader.expect_magic(b'OBBY')

        self.assertEqual(reader.tell(), 4)

    def test_wrong_consumes_only_magic(self):
        fileobj = io.BytesIO(b'PK\x03\x04more data')
        reader = BinaryReader(fileobj)

        with self.assertRaises(BinaryReaderWrongMagicError) as cm:
            reader.expect_magic(b'OBBY')

        self.assertEqual(cm.exception.found_magic, b'PK\x03\x04')
        self.assertEqual(reader.tell(), 4)
        self.assertEqual(fileobj.tell(), 4)

    def test_too_short(self):
        with self.assertRaises(BinaryReaderReadPastEndError):
            BinaryReader(b'OB').expect_magic(b'OBBY')


class InputTest(unittest.TestCase):
    def test_rejects_text(self):
        with self.assertRaises(TypeError):
            BinaryReader(io.StringIO('OBBY'))

    def test_starts_at_current_position(self):
        fileobj = io.BytesIO(b'junkOBBY')
        fileobj.seek(4)
        reader = BinaryReader(fileobj)

        self.assertEqual(reader.tell(), 4)
        reader.expect_magic(b'OBBY')
